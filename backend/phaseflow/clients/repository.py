"""HTTP client for member repository submission queues."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import httpx

from phaseflow.clients.http import ServiceClient
from phaseflow.core.config import settings
from phaseflow.core.constants import HTTPMethod
from phaseflow.workflow.errors import RepositoryError
from phaseflow.workflow.phase import ActionOutcome


class MemberRepositoryClient(ServiceClient):
    """
    Queues submissions for retrieval by a member repository.

    Endpoints (relative to ``REPOSITORY_API_BASE_URL``)::

        POST   /{repository}/queue            enqueue items
        DELETE /{repository}/queue            dequeue by submission id
        GET    /{repository}/queue/status     retrieval state per id
    """

    service = "repository"
    error_class = RepositoryError

    def __init__(
        self,
        base_url: str | None = None,
        *,
        api_key: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(
            base_url or settings.REPOSITORY_API_BASE_URL,
            api_key=api_key if api_key is not None else settings.REPOSITORY_API_KEY,
            transport=transport,
        )

    async def enqueue(self, repository: str, items: Sequence[dict[str, Any]]) -> ActionOutcome:
        return await self._call(HTTPMethod.POST, f"/{repository}/queue", json={"items": list(items)})

    async def dequeue(self, repository: str, submission_ids: Sequence[str]) -> ActionOutcome:
        return await self._call(
            HTTPMethod.DELETE,
            f"/{repository}/queue",
            params={"sid": list(submission_ids)},
        )

    async def is_retrieved(self, repository: str, submission_ids: Sequence[str]) -> ActionOutcome:
        outcome = await self._call(
            HTTPMethod.GET,
            f"/{repository}/queue/status",
            params={"sid": list(submission_ids)},
        )
        if not outcome:
            return outcome

        retrieved = set(outcome.payload.get("retrieved") or [])
        pending = [sid for sid in submission_ids if sid not in retrieved]
        if pending:
            return ActionOutcome.fail(
                f"not yet retrieved: {', '.join(pending)}",
                retrieved=sorted(retrieved),
                pending=pending,
            )
        return ActionOutcome.ok(retrieved=list(submission_ids))
