"""Render REST API client (Bearer auth)."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from deploysync.errors import ExternalServiceError, UnrecognizedResponseShape, from_status_error
from deploysync.retry import RetryingInvoker
from deploysync.schemas.events import Deploy, Service

logger = logging.getLogger(__name__)

RENDER_API_BASE = "https://api.render.com/v1"

# Render list endpoints return [{"cursor": ..., "<kind>": {...}}, ...].
_WRAPPER_KEYS = ("service", "deploy", "owner")
_ENVELOPE_KEYS = ("items", "data")


def unwrap_collection(payload: Any) -> list[dict]:
    """Decode a list response into its records.

    Shapes are tried in this order: a list of ``{service|deploy|owner: {...}}``
    wrappers, a plain list of records, ``{"items": [...]}``, ``{"data": [...]}``.
    Anything else raises :class:`UnrecognizedResponseShape`.
    """
    if isinstance(payload, list):
        if not all(isinstance(item, dict) for item in payload):
            raise UnrecognizedResponseShape("list response contains non-object items")
        if payload:
            for key in _WRAPPER_KEYS:
                if all(isinstance(item.get(key), dict) for item in payload):
                    return [item[key] for item in payload]
        return payload

    if isinstance(payload, dict):
        for key in _ENVELOPE_KEYS:
            if isinstance(payload.get(key), list):
                return unwrap_collection(payload[key])

    raise UnrecognizedResponseShape(f"unexpected list response: {type(payload).__name__}")


def unwrap_record(payload: Any, kind: str) -> dict:
    """Decode a single-object response, accepting a ``{kind: {...}}`` wrapper."""
    if isinstance(payload, dict):
        inner = payload.get(kind)
        if isinstance(inner, dict) and "id" not in payload:
            return inner
        return payload
    raise UnrecognizedResponseShape(f"unexpected {kind} response: {type(payload).__name__}")


class RenderClient:
    """Read services and deploys from the Render API."""

    def __init__(
        self,
        api_key: str,
        invoker: RetryingInvoker,
        timeout: float = 15.0,
        base_url: str = RENDER_API_BASE,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not api_key:
            raise RuntimeError("Render not configured — set DEPLOYSYNC_RENDER_API_KEY")
        self._base_url = base_url.rstrip("/")
        self._headers = {
            "Authorization": f"Bearer {api_key}",
            "Accept": "application/json",
        }
        self._invoker = invoker
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def _get(self, path: str, params: dict[str, str] | None = None) -> Any:
        async def call() -> Any:
            resp = await self._client.get(
                f"{self._base_url}{path}", params=params, headers=self._headers
            )
            resp.raise_for_status()
            return resp.json()

        try:
            return await self._invoker.invoke(call)
        except httpx.HTTPStatusError as exc:
            raise from_status_error("Render", exc) from exc

    async def list_services(self, owner_id: str | None = None) -> list[Service]:
        params = {"ownerId": owner_id} if owner_id else None
        payload = await self._get("/services", params)
        return [Service.model_validate(item) for item in unwrap_collection(payload)]

    async def get_service(self, service_id: str) -> Service | None:
        """Return the service, or None when Render does not know it."""
        try:
            payload = await self._get(f"/services/{service_id}")
        except ExternalServiceError as exc:
            if exc.status_code == 404:
                logger.warning("Render service %s not found", service_id)
                return None
            raise
        return Service.model_validate(unwrap_record(payload, "service"))

    async def list_deploys(self, service_id: str, limit: int = 20) -> list[Deploy]:
        payload = await self._get(f"/services/{service_id}/deploys", {"limit": str(limit)})
        return [Deploy.model_validate(item) for item in unwrap_collection(payload)]

    async def close(self) -> None:
        await self._client.aclose()
