# listingflow/ebay/categories.py
# =============================
# Local eBay category lookup
# Keyword scoring over a category list exported to JSON.
# =============================

import json
import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from listingflow.config import get_ebay_categories_file

logger = logging.getLogger("uvicorn.error")

MAX_SUGGESTIONS = 6
KEYWORD_SCORE = 10
NAME_MATCH_SCORE = 5
WORD_IN_PATH_SCORE = 2


def _normalize(raw: Any) -> List[Dict[str, Any]]:
    # accepts [...] or {"categories": [...]}
    if isinstance(raw, dict):
        raw = raw.get("categories") or []
    if not isinstance(raw, list):
        return []
    cats = []
    for c in raw:
        if isinstance(c, dict) and c.get("id") is not None and c.get("path"):
            cats.append({**c, "id": str(c["id"])})
    return cats


@lru_cache(maxsize=4)
def _load(path: str, mtime: float) -> Tuple[Dict[str, Any], ...]:
    with open(path, "r", encoding="utf-8") as f:
        return tuple(_normalize(json.load(f)))


def load_categories(path: Optional[Path] = None) -> List[Dict[str, Any]]:
    """Categories from disk, cached until the file changes. Missing file → []."""
    p = Path(path or get_ebay_categories_file())
    try:
        mtime = os.path.getmtime(p)
    except OSError:
        logger.warning(f"[eBay] Category file {p} not found")
        return []
    return list(_load(str(p), mtime))


def score_category(cat: Dict[str, Any], query: str) -> int:
    q = query.lower().strip()
    if not q:
        return 0

    path = (cat.get("path") or "").lower()
    name = (cat.get("name") or "").lower()
    keywords = [str(k).lower() for k in cat.get("keywords") or [] if k]
    query_words = [w for w in q.split() if len(w) > 2]

    score = 0
    for keyword in keywords:
        if keyword in q:
            score += KEYWORD_SCORE
    for word in query_words:
        if word in path:
            score += WORD_IN_PATH_SCORE
    if name and name in q:
        score += NAME_MATCH_SCORE
    return score


def suggest_categories(query: str, categories: List[Dict[str, Any]], limit: int = MAX_SUGGESTIONS) -> List[Dict[str, Any]]:
    """Best-scoring categories first; zero scores are dropped."""
    if not (query or "").strip():
        return []
    scored = [(score_category(c, query), c) for c in categories]
    ranked = sorted((sc for sc in scored if sc[0] > 0), key=lambda sc: sc[0], reverse=True)
    return [c for _, c in ranked[:limit]]


def find_category_path(category_id: str, categories: List[Dict[str, Any]]) -> Optional[str]:
    for c in categories:
        if c["id"] == str(category_id):
            return c["path"]
    return None
