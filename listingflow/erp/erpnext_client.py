import json
import re
import logging
import httpx
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import quote

from listingflow.config import get_erp_settings

logger = logging.getLogger("uvicorn.error")

Filters = Dict[str, Any] | Sequence[Sequence[Any]]

_TITLE_RE = re.compile(r"<title[^>]*>(.*?)</title>", re.IGNORECASE | re.DOTALL)
_H1_RE = re.compile(r"<h1[^>]*>(.*?)</h1>", re.IGNORECASE | re.DOTALL)
_TAG_RE = re.compile(r"<[^>]+>")


class ErpRequestError(Exception):
    """ERPNext answered with a non-success status."""

    def __init__(self, status_code: int, message: str):
        super().__init__(f"ERPNext {status_code}: {message}")
        self.status_code = status_code
        self.message = message


def extract_error_message(body: str) -> str:
    """
    Best-effort human message from an ERPNext error body.
    Frappe nests the useful text in _server_messages (a JSON list of JSON strings).
    """
    text = (body or "").strip()
    if not text:
        return "Empty response from ERPNext"

    if "frappe.exceptions.AuthenticationError" in text:
        return "Authentication Error. Please check your ERPNext API Key and Secret."

    if text.lower().startswith(("<!doctype html", "<html")):
        for rx in (_TITLE_RE, _H1_RE):
            m = rx.search(text)
            if m:
                found = " ".join(_TAG_RE.sub("", m.group(1)).split())
                if found:
                    return found
        return "Received an HTML error page from the server."

    try:
        err = json.loads(text)
    except ValueError:
        return text

    if not isinstance(err, dict):
        return text

    server_messages = err.get("_server_messages")
    if server_messages:
        try:
            first = json.loads(server_messages)[0]
            first = json.loads(first) if isinstance(first, str) else first
            if isinstance(first, dict):
                return first.get("message") or json.dumps(first)
            return str(first)
        except (ValueError, IndexError, TypeError):
            pass

    for key in ("message", "exception", "exc_type", "error"):
        if err.get(key):
            return str(err[key])
    return text


def normalize_filters(filters: Optional[Filters]) -> List[List[Any]]:
    """Accept {field: value} or [[field, op, value], ...] and return triples."""
    if not filters:
        return []
    if isinstance(filters, dict):
        return [[field, "=", value] for field, value in filters.items()]
    return [list(f) for f in filters]


class ErpClient:
    """
    Thin async wrapper over the Frappe REST API.
    Credentials are looked up on every call so a missing setting fails the
    request that needs it, not process start.
    """

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None, timeout: float = 20.0):
        self._transport = transport
        self._timeout = timeout

    @asynccontextmanager
    async def _client(self):
        base_url, api_key, api_secret = get_erp_settings()
        headers = {
            "Authorization": f"token {api_key}:{api_secret}",
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        async with httpx.AsyncClient(
            base_url=base_url,
            headers=headers,
            timeout=self._timeout,
            transport=self._transport,
        ) as client:
            yield client

    async def _send(self, method: str, endpoint: str, **kwargs) -> Any:
        async with self._client() as client:
            resp = await client.request(method, endpoint, **kwargs)
        if resp.status_code == 204:
            return None
        if resp.is_error:
            message = extract_error_message(resp.text)
            logger.error(f"[ERP] {method} {endpoint} failed ({resp.status_code}): {message}")
            raise ErpRequestError(resp.status_code, message)
        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError:
            # e.g. a login page served with 200 when the session is not accepted
            message = extract_error_message(resp.text)
            logger.error(f"[ERP] {method} {endpoint} returned non-JSON ({resp.status_code}): {message}")
            raise ErpRequestError(502, f"Unexpected non-JSON response from ERPNext: {message}")

    # ------------------------
    # Resource helpers
    # ------------------------
    async def find_one(self, doctype: str, filters: Filters) -> Optional[str]:
        """Name of the first document matching all filters, or None."""
        params = {
            "fields": json.dumps(["name"]),
            "filters": json.dumps(normalize_filters(filters)),
            "limit_page_length": 1,
        }
        data = await self._send("GET", f"/api/resource/{quote(doctype)}", params=params)
        rows = (data or {}).get("data") or []
        return rows[0].get("name") if rows else None

    async def create(self, doctype: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        data = await self._send("POST", f"/api/resource/{quote(doctype)}", json=_drop_none(fields))
        return (data or {}).get("data") or {}

    async def update(self, doctype: str, name: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        data = await self._send(
            "PUT",
            f"/api/resource/{quote(doctype)}/{quote(name, safe='')}",
            json=_drop_none(fields),
        )
        return (data or {}).get("data") or {}

    async def get_doc(self, doctype: str, name: str) -> Dict[str, Any]:
        data = await self._send("GET", f"/api/resource/{quote(doctype)}/{quote(name, safe='')}")
        return (data or {}).get("data") or {}

    async def get_list(
        self,
        doctype: str,
        filters: Optional[Filters] = None,
        fields: Optional[List[str]] = None,
        limit_page_length: int = 20,
        order_by: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        params: Dict[str, Any] = {
            "fields": json.dumps(fields or ["*"]),
            "limit_page_length": limit_page_length,
        }
        if filters:
            params["filters"] = json.dumps(normalize_filters(filters))
        if order_by:
            params["order_by"] = order_by
        data = await self._send("GET", f"/api/resource/{quote(doctype)}", params=params)
        return (data or {}).get("data") or []

    async def get_logged_user(self) -> str:
        data = await self._send("GET", "/api/method/frappe.auth.get_logged_user")
        return (data or {}).get("message")

    async def request(self, method: str, endpoint: str, body: Any = None) -> Any:
        """Raw pass-through used by the dashboard proxy."""
        if not endpoint.startswith("/"):
            endpoint = "/" + endpoint
        kwargs = {"json": body} if body is not None else {}
        return await self._send(method.upper(), endpoint, **kwargs)


def _drop_none(fields: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in fields.items() if v is not None}
