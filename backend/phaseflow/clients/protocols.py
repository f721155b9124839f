"""
Collaborator interfaces consumed by the phase handlers.

Every call returns an ActionOutcome so the transition engine can treat
all collaborators uniformly.  Implementations translate their own
transport errors into failed outcomes instead of raising.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any, Protocol, runtime_checkable

from phaseflow.workflow.phase import ActionOutcome


@runtime_checkable
class ObjectStorage(Protocol):
    """File storage with a temporary cache area and a permanent store area."""

    async def upload(
        self,
        key: str,
        data: bytes,
        *,
        content_type: str = "application/octet-stream",
        metadata: dict[str, str] | None = None,
    ) -> ActionOutcome:
        """Write *data* under *key* in the cache area."""
        ...

    async def promote(self, key: str) -> ActionOutcome:
        """Move *key* from the cache area to the store area."""
        ...

    async def delete(self, keys: Sequence[str]) -> ActionOutcome:
        """Remove *keys* from both areas; missing keys are not an error."""
        ...


@runtime_checkable
class IndexService(Protocol):
    """Search index ingest API."""

    async def put_records(self, records: Sequence[dict[str, Any]]) -> ActionOutcome: ...

    async def delete_records(self, submission_ids: Sequence[str]) -> ActionOutcome: ...


@runtime_checkable
class MemberRepository(Protocol):
    """Submission queue of an external member repository."""

    async def enqueue(self, repository: str, items: Sequence[dict[str, Any]]) -> ActionOutcome: ...

    async def dequeue(self, repository: str, submission_ids: Sequence[str]) -> ActionOutcome: ...

    async def is_retrieved(self, repository: str, submission_ids: Sequence[str]) -> ActionOutcome:
        """Succeeds only if every submission has been retrieved."""
        ...


@runtime_checkable
class ReviewService(Protocol):
    """Human review scheduling and decisions."""

    async def schedule(self, submission_id: str, *, requested_by: str | None = None) -> ActionOutcome: ...

    async def assign(self, submission_id: str, *, reviewer: str) -> ActionOutcome: ...

    async def decide(
        self,
        submission_id: str,
        *,
        approved: bool,
        remarks: str | None = None,
    ) -> ActionOutcome: ...

    async def cancel(self, submission_id: str) -> ActionOutcome: ...


@runtime_checkable
class SubmissionRecords(Protocol):
    """Owner of the stored submission records removed by ``unrecord``."""

    async def remove_submissions(self, submission_ids: Sequence[str]) -> ActionOutcome: ...
