"""Shared test doubles — in-memory collaborators recording every call."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from phaseflow.workflow.phase import ActionOutcome


class _Recorder:
    """Base: records calls and fails the operations named in ``fail``."""

    def __init__(self, fail: Sequence[str] = (), raise_on: Sequence[str] = ()) -> None:
        self.fail = set(fail)
        self.raise_on = set(raise_on)
        self.calls: list[tuple[str, tuple, dict]] = []

    def _record(self, name: str, *args: Any, **kwargs: Any) -> ActionOutcome | None:
        self.calls.append((name, args, kwargs))
        if name in self.raise_on:
            raise RuntimeError(f"{name} exploded")
        if name in self.fail:
            return ActionOutcome.fail(f"{name} rejected")
        return None

    def called(self, name: str) -> list[tuple[tuple, dict]]:
        return [(args, kwargs) for n, args, kwargs in self.calls if n == name]


class MemoryObjectStorage(_Recorder):
    """ObjectStorage keeping objects in two dicts (cache and store)."""

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.cache: dict[str, bytes] = {}
        self.store: dict[str, bytes] = {}

    async def upload(self, key, data, *, content_type="application/octet-stream", metadata=None):
        failed = self._record("upload", key, data, content_type=content_type, metadata=metadata)
        if failed is not None:
            return failed
        self.cache[key] = data
        return ActionOutcome.ok(key=key, size=len(data))

    async def promote(self, key):
        failed = self._record("promote", key)
        if failed is not None:
            return failed
        if key not in self.cache:
            return ActionOutcome.fail(f"{key}: not in cache")
        self.store[key] = self.cache.pop(key)
        return ActionOutcome.ok(key=key)

    async def delete(self, keys):
        failed = self._record("delete", list(keys))
        if failed is not None:
            return failed
        for key in keys:
            self.cache.pop(key, None)
            self.store.pop(key, None)
        return ActionOutcome.ok(deleted=list(keys))


class MemoryIndex(_Recorder):
    """IndexService keeping records by submission id."""

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.records: dict[str, dict] = {}

    async def put_records(self, records):
        failed = self._record("put_records", list(records))
        if failed is not None:
            return failed
        for record in records:
            self.records[record["submission_id"]] = record
        return ActionOutcome.ok(count=len(records))

    async def delete_records(self, submission_ids):
        failed = self._record("delete_records", list(submission_ids))
        if failed is not None:
            return failed
        for sid in submission_ids:
            self.records.pop(sid, None)
        return ActionOutcome.ok(count=len(submission_ids))


class MemoryRepository(_Recorder):
    """MemberRepository with a per-repository queue."""

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.queues: dict[str, list[str]] = {}
        self.retrieved: set[str] = set()

    async def enqueue(self, repository, items):
        failed = self._record("enqueue", repository, list(items))
        if failed is not None:
            return failed
        self.queues.setdefault(repository, []).extend(i["submission_id"] for i in items)
        return ActionOutcome.ok(count=len(items))

    async def dequeue(self, repository, submission_ids):
        failed = self._record("dequeue", repository, list(submission_ids))
        if failed is not None:
            return failed
        queue = self.queues.get(repository, [])
        self.queues[repository] = [s for s in queue if s not in set(submission_ids)]
        return ActionOutcome.ok(count=len(submission_ids))

    async def is_retrieved(self, repository, submission_ids):
        failed = self._record("is_retrieved", repository, list(submission_ids))
        if failed is not None:
            return failed
        pending = [s for s in submission_ids if s not in self.retrieved]
        if pending:
            return ActionOutcome.fail(f"not yet retrieved: {', '.join(pending)}", pending=pending)
        return ActionOutcome.ok(retrieved=list(submission_ids))


class MemoryReview(_Recorder):
    """ReviewService recording decisions."""

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.decisions: dict[str, bool] = {}

    async def schedule(self, submission_id, *, requested_by=None):
        failed = self._record("schedule", submission_id, requested_by=requested_by)
        return failed if failed is not None else ActionOutcome.ok()

    async def assign(self, submission_id, *, reviewer):
        failed = self._record("assign", submission_id, reviewer=reviewer)
        return failed if failed is not None else ActionOutcome.ok()

    async def decide(self, submission_id, *, approved, remarks=None):
        failed = self._record("decide", submission_id, approved=approved, remarks=remarks)
        if failed is not None:
            return failed
        self.decisions[submission_id] = approved
        return ActionOutcome.ok()

    async def cancel(self, submission_id):
        failed = self._record("cancel", submission_id)
        return failed if failed is not None else ActionOutcome.ok()


class CallbackRecorder:
    """Callback collecting every ``(success, phase state, status)`` it receives."""

    def __init__(self) -> None:
        self.calls: list[tuple[bool, str, str]] = []

    def __call__(self, success, phase, status) -> None:
        self.calls.append((success, phase.state, status))

    @property
    def count(self) -> int:
        return len(self.calls)


__all__ = [
    "CallbackRecorder",
    "MemoryIndex",
    "MemoryObjectStorage",
    "MemoryRepository",
    "MemoryReview",
]
