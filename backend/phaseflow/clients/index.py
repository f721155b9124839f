"""HTTP client for the search index ingest API."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import httpx

from phaseflow.clients.http import ServiceClient
from phaseflow.core.config import settings
from phaseflow.core.constants import HTTPMethod
from phaseflow.workflow.errors import IndexServiceError
from phaseflow.workflow.phase import ActionOutcome


class IndexClient(ServiceClient):
    """Adds and removes index entries for submissions."""

    service = "index"
    error_class = IndexServiceError

    def __init__(
        self,
        base_url: str | None = None,
        *,
        api_key: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(
            base_url or settings.INDEX_API_BASE_URL,
            api_key=api_key if api_key is not None else settings.INDEX_API_KEY,
            transport=transport,
        )

    async def put_records(self, records: Sequence[dict[str, Any]]) -> ActionOutcome:
        if not records:
            return ActionOutcome.ok(count=0)
        return await self._call(HTTPMethod.PUT, "/records", json=list(records))

    async def delete_records(self, submission_ids: Sequence[str]) -> ActionOutcome:
        if not submission_ids:
            return ActionOutcome.ok(count=0)
        return await self._call(HTTPMethod.POST, "/records/delete", json=list(submission_ids))
