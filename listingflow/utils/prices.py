# listingflow/utils/prices.py
from decimal import Decimal, InvalidOperation


def to_decimal(v) -> Decimal | None:
    if v is None or v == "":
        return None
    try:
        d = Decimal(str(v).strip())
    except (InvalidOperation, TypeError):
        return None
    return d if d.is_finite() else None


def parse_rate(v) -> float:
    """Shopify decimal string -> ERP rate. Unparseable values become 0."""
    d = to_decimal(v)
    return float(d) if d is not None else 0.0

