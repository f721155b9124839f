"""
ServiceClient — shared httpx plumbing for the HTTP collaborators.

Subclasses set ``error_class`` and ``service`` and call ``_call()``,
which performs one JSON request and converts transport failures and
unexpected status codes into a failed ActionOutcome.
"""

from __future__ import annotations

from typing import Any

import httpx

from phaseflow.core.config import settings
from phaseflow.core.constants import HTTPMethod
from phaseflow.core.logging import get_logger
from phaseflow.workflow.errors import ServiceRequestError
from phaseflow.workflow.phase import ActionOutcome

logger = get_logger(__name__)

EXPECTED_STATUS = (200, 201, 202, 204)


class ServiceClient:
    """Base for JSON-over-HTTP collaborator clients."""

    service: str = "service"
    error_class: type[ServiceRequestError] = ServiceRequestError

    def __init__(
        self,
        base_url: str,
        *,
        api_key: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        headers = {"Accept": "application/json"}
        if api_key:
            headers["X-API-Key"] = api_key
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers=headers,
            timeout=timeout if timeout is not None else settings.HTTP_TIMEOUT_SECONDS,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    # ─── Requests ──────────────────────────────────────

    async def _request(
        self,
        method: HTTPMethod,
        path: str,
        *,
        json: Any = None,
        params: dict[str, Any] | None = None,
    ) -> httpx.Response:
        """Send one request; raise ``error_class`` on failure."""
        try:
            response = await self._client.request(method.value, path, json=json, params=params)
        except httpx.HTTPError as exc:
            raise self.error_class(
                f"{self.service} {method.value} {path} failed: {exc}",
                retryable=isinstance(exc, httpx.TransportError),
            ) from exc

        if response.status_code not in EXPECTED_STATUS:
            raise self.error_class(
                f"{self.service} {method.value} {path} returned {response.status_code}",
                status_code=response.status_code,
                response_body=response.text,
                retryable=response.status_code >= 500,
            )
        return response

    async def _call(
        self,
        method: HTTPMethod,
        path: str,
        *,
        json: Any = None,
        params: dict[str, Any] | None = None,
    ) -> ActionOutcome:
        """Like ``_request`` but reports the result as an ActionOutcome."""
        try:
            response = await self._request(method, path, json=json, params=params)
        except ServiceRequestError as exc:
            logger.warning(
                "Collaborator request failed",
                service=self.service,
                method=method.value,
                path=path,
                status_code=exc.status_code,
                error=str(exc),
            )
            return ActionOutcome.fail(str(exc), status_code=exc.status_code, retryable=exc.retryable)

        payload = _json_body(response)
        errors = payload.get("errors") if isinstance(payload, dict) else None
        if errors:
            return ActionOutcome.fail(*[str(e) for e in errors], status_code=response.status_code)
        return ActionOutcome(
            succeeded=True,
            payload=payload if isinstance(payload, dict) else {"data": payload},
        )


def _json_body(response: httpx.Response) -> Any:
    if not response.content:
        return {}
    try:
        return response.json()
    except ValueError:
        return {"text": response.text}
