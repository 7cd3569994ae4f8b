"""
Client HTTP Directus (REST /items)

- Auth: Header Authorization: Bearer {token}
- Token resolved at call time: operator session token, else DIRECTUS_TOKEN
- Non-2xx -> DirectusError with the message reported by Directus
- No retry at this layer
"""

import httpx
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from leadhub.config import DIRECTUS_URL, DIRECTUS_TOKEN, DIRECTUS_TIMEOUT

logger = logging.getLogger("directus_client")


class DirectusError(Exception):
    """Transport failure or non-2xx answer from Directus"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class DirectusConfigError(DirectusError):
    """No credential available for an authenticated call"""


class TokenStore:
    """
    Holds the operator session token (set after login) and falls back to the
    configured service token.
    """

    def __init__(self, fallback_token: str = DIRECTUS_TOKEN):
        self._access_token = ""
        self._refresh_token = ""
        self.fallback_token = (fallback_token or "").strip()

    def set_session(self, access_token: str, refresh_token: str = ""):
        self._access_token = (access_token or "").strip()
        self._refresh_token = (refresh_token or "").strip()

    def clear_session(self):
        self._access_token = ""
        self._refresh_token = ""

    @property
    def access_token(self) -> str:
        return self._access_token

    def token_for_request(self) -> str:
        return self._access_token or self.fallback_token or ""


def _clean_params(params: Optional[Dict[str, Any]]) -> Dict[str, str]:
    """Drop None/empty values, stringify the rest"""
    out = {}
    for k, v in (params or {}).items():
        if v is None or v == "":
            continue
        out[k] = str(v)
    return out


def _data(body: Any) -> Any:
    return body.get("data") if isinstance(body, dict) else None


def _error_message(body: Any, status_code: int) -> str:
    if isinstance(body, str) and body.strip():
        return body
    if isinstance(body, dict):
        errors = body.get("errors")
        if isinstance(errors, list) and errors:
            first = errors[0] or {}
            if isinstance(first, dict) and first.get("message"):
                return str(first["message"])
        if isinstance(body.get("message"), str):
            return body["message"]
        if isinstance(body.get("error"), str):
            return body["error"]
    return f"Directus request failed ({status_code})"


class DirectusClient:
    """Thin async wrapper around the Directus REST API"""

    def __init__(
        self,
        base_url: str = DIRECTUS_URL,
        token_store: Optional[TokenStore] = None,
        timeout: float = DIRECTUS_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token_store = token_store or TokenStore()
        self.timeout = timeout
        self._transport = transport

    def api_url(self, path: str) -> str:
        p = path if path.startswith("/") else f"/{path}"
        return f"{self.base_url}{p}"

    async def request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Any = None,
        skip_auth: bool = False,
    ) -> Any:
        headers = {"Content-Type": "application/json"}
        if not skip_auth:
            token = self.token_store.token_for_request()
            if not token:
                raise DirectusConfigError("No Directus session. Log in to continue.")
            headers["Authorization"] = f"Bearer {token}"

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.request(
                    method,
                    self.api_url(path),
                    params=_clean_params(params),
                    json=json,
                    headers=headers,
                )
        except httpx.TimeoutException as e:
            logger.warning(f"Directus timeout: {method} {path}")
            raise DirectusError(f"Timeout after {self.timeout}s: {str(e)}") from e
        except httpx.HTTPError as e:
            logger.warning(f"Directus connection error: {method} {path}: {str(e)}")
            raise DirectusError(f"Connection error: {str(e)}") from e

        content_type = resp.headers.get("content-type", "")
        body: Any = None
        if "application/json" in content_type:
            try:
                body = resp.json()
            except ValueError:
                body = None
        else:
            body = resp.text

        if resp.status_code >= 400:
            # Only 401 means the session is dead; 403 is a permission issue
            if not skip_auth and resp.status_code == 401:
                self.token_store.clear_session()
            message = _error_message(body, resp.status_code)
            logger.warning(f"Directus {resp.status_code} on {method} {path}: {message}")
            raise DirectusError(message, status_code=resp.status_code)

        return body

    # ==================== ITEMS ====================

    async def read_items(self, collection: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        body = await self.request("GET", f"/items/{collection}", params=params)
        data = _data(body)
        return data if isinstance(data, list) else []

    async def create_item(self, collection: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        body = await self.request("POST", f"/items/{collection}", json=payload)
        return _data(body) or {}

    async def update_item(self, collection: str, item_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        body = await self.request(
            "PATCH", f"/items/{collection}/{quote(str(item_id), safe='')}", json=payload
        )
        return _data(body) or {}

    async def delete_item(self, collection: str, item_id: str) -> None:
        await self.request("DELETE", f"/items/{collection}/{quote(str(item_id), safe='')}")

    async def read_item(self, collection: str, item_id: str, fields: str = "*") -> Optional[Dict[str, Any]]:
        try:
            body = await self.request(
                "GET",
                f"/items/{collection}/{quote(str(item_id), safe='')}",
                params={"fields": fields},
            )
        except DirectusError as e:
            if e.status_code in (403, 404):
                return None
            raise
        data = _data(body)
        return data if isinstance(data, dict) else None
