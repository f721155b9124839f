"""HTTP client for the human review service."""

from __future__ import annotations

import httpx

from phaseflow.clients.http import ServiceClient
from phaseflow.core.config import settings
from phaseflow.core.constants import HTTPMethod
from phaseflow.workflow.errors import ReviewServiceError
from phaseflow.workflow.phase import ActionOutcome


class ReviewClient(ServiceClient):
    """Schedules reviews, assigns reviewers and records decisions."""

    service = "review"
    error_class = ReviewServiceError

    def __init__(
        self,
        base_url: str | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(base_url or settings.REVIEW_API_BASE_URL, transport=transport)

    async def schedule(self, submission_id: str, *, requested_by: str | None = None) -> ActionOutcome:
        return await self._call(
            HTTPMethod.POST,
            "/reviews",
            json={"submission_id": submission_id, "requested_by": requested_by},
        )

    async def assign(self, submission_id: str, *, reviewer: str) -> ActionOutcome:
        return await self._call(
            HTTPMethod.PUT,
            f"/reviews/{submission_id}/assignee",
            json={"reviewer": reviewer},
        )

    async def decide(
        self,
        submission_id: str,
        *,
        approved: bool,
        remarks: str | None = None,
    ) -> ActionOutcome:
        return await self._call(
            HTTPMethod.POST,
            f"/reviews/{submission_id}/decision",
            json={"approved": approved, "remarks": remarks},
        )

    async def cancel(self, submission_id: str) -> ActionOutcome:
        return await self._call(HTTPMethod.DELETE, f"/reviews/{submission_id}")
