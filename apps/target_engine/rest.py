"""REST persistence for order targets."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import httpx
import structlog

from targets.errors import TargetApiError
from targets.schema import unwrap_response

TokenProvider = Callable[[], str | None]


class OrderTargetsClient:
    """Thin async client for the ``/ordertargets`` endpoints.

    The backend exposes no GET for targets (they arrive through the order hub);
    updates are sent as POST to the target's URL.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout_s: float = 20.0,
        client_app: str = "targets-engine",
        token_provider: TokenProvider | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout_s = timeout_s
        self._client_app = client_app
        self._token_provider = token_provider
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._log = structlog.get_logger("targets.rest")

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout_s,
                headers={"Content-Type": "application/json", "X-Client-App": self._client_app},
                transport=self._transport,
            )
        return self._client

    async def create_target(self, payload: dict[str, Any]) -> Any:
        return await self._request("POST", "/ordertargets", json=payload)

    async def update_target(self, target_id: int | str, payload: dict[str, Any]) -> Any:
        if target_id is None:
            raise TargetApiError("id is required")
        return await self._request("POST", f"/ordertargets/{target_id}", json=payload)

    async def delete_target(self, target_id: int | str) -> Any:
        if target_id is None:
            raise TargetApiError("id is required")
        return await self._request("DELETE", f"/ordertargets/{target_id}")

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _request(self, method: str, path: str, json: Any = None) -> Any:
        headers: dict[str, str] = {}
        token = self._token_provider() if self._token_provider else None
        if token:
            headers["Authorization"] = f"Bearer {token}"

        try:
            response = await self._get_client().request(method, path, json=json, headers=headers)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            message = _error_message(exc.response) or f"HTTP {exc.response.status_code}"
            self._log.warning(
                "target_request_rejected",
                method=method,
                path=path,
                status_code=exc.response.status_code,
                error=message,
            )
            raise TargetApiError(message, status_code=exc.response.status_code) from exc
        except httpx.RequestError as exc:
            self._log.warning("target_request_failed", method=method, path=path, error=str(exc))
            raise TargetApiError(str(exc) or "Network error.") from exc

        if not response.content:
            return None
        try:
            body = response.json()
        except ValueError:
            return None
        return unwrap_response(body)


def _error_message(response: httpx.Response) -> str | None:
    try:
        body = response.json()
    except ValueError:
        text = response.text.strip()
        return text or None
    if isinstance(body, dict):
        for key in ("message", "error", "title"):
            value = body.get(key)
            if value:
                return str(value)
    return None
