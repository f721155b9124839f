"""
Phase — the control record for one step of a submission workflow.

A single dataclass covers every phase kind; ``kind`` selects the state
table and handler.  Bulk kinds additionally carry an ordered, read-only
``targets`` tuple.  ``state`` and ``condition`` are written only by the
transition engine.

ActionOutcome is the uniform result returned by every external
collaborator call, and CleanupResult is what ``PhaseAction.cleanup()``
hands back to the owning workflow before a phase is removed.
"""

from __future__ import annotations

import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from phaseflow.core.constants import START_STATE, Command, Condition, PhaseKind


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ═══════════════════════════════════════════════════════════
#  Phase
# ═══════════════════════════════════════════════════════════

@dataclass
class Phase:
    """
    Persistent control record.

    Args:
        kind: Which state table and handler apply.
        submission_id: Submission the phase acts on (single kinds).
        repository: Destination repository key (e.g. "emma").
        user: Identity of the user who started the phase.
        targets: Opaque item references; bulk kinds only.
        file_data: Storage metadata (cache/store keys, filename, size).
        emma_data: Descriptive metadata sent to the index.
        remarks: Reviewer comments.
    """

    kind: PhaseKind
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    state: str = START_STATE
    condition: Condition | None = None
    command: Command | None = None
    note: str | None = None

    submission_id: str | None = None
    repository: str | None = None
    user: str | None = None
    remarks: str | None = None
    file_data: dict[str, Any] = field(default_factory=dict)
    emma_data: dict[str, Any] = field(default_factory=dict)
    targets: tuple[Any, ...] = ()
    retries: int = 0

    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    def __post_init__(self) -> None:
        self.kind = PhaseKind(self.kind)
        self.targets = tuple(self.targets)

    @property
    def is_bulk(self) -> bool:
        return self.kind.is_bulk

    @property
    def succeeded(self) -> bool:
        return self.condition == Condition.SUCCEEDED

    @property
    def failed(self) -> bool:
        return self.condition == Condition.FAILED

    @property
    def retry_requested(self) -> bool:
        return self.command == Command.RETRY

    def touch(self) -> None:
        self.updated_at = _utcnow()

    # ── Serialisation ─────────────────────────────

    def to_dict(self) -> dict[str, Any]:
        """Serialise for JSON (Celery payloads, persistence)."""
        return {
            "id": self.id,
            "kind": self.kind.value,
            "state": self.state,
            "condition": self.condition.value if self.condition else None,
            "command": self.command.value if self.command else None,
            "note": self.note,
            "submission_id": self.submission_id,
            "repository": self.repository,
            "user": self.user,
            "remarks": self.remarks,
            "file_data": dict(self.file_data),
            "emma_data": dict(self.emma_data),
            "targets": [_target_to_json(t) for t in self.targets],
            "retries": self.retries,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Phase:
        """Rebuild a phase from ``to_dict()`` output."""
        return cls(
            id=data["id"],
            kind=PhaseKind(data["kind"]),
            state=data.get("state") or START_STATE,
            condition=Condition(data["condition"]) if data.get("condition") else None,
            command=Command(data["command"]) if data.get("command") else None,
            note=data.get("note"),
            submission_id=data.get("submission_id"),
            repository=data.get("repository"),
            user=data.get("user"),
            remarks=data.get("remarks"),
            file_data=dict(data.get("file_data") or {}),
            emma_data=dict(data.get("emma_data") or {}),
            targets=tuple(data.get("targets") or ()),
            retries=int(data.get("retries") or 0),
            created_at=_parse_time(data.get("created_at")),
            updated_at=_parse_time(data.get("updated_at")),
        )


def _target_to_json(target: Any) -> Any:
    """Reduce a target reference to something JSON can carry; records stay records."""
    if isinstance(target, (int, str)):
        return target
    if isinstance(target, Mapping):
        return dict(target)
    for attr in ("submission_id", "id"):
        value = getattr(target, attr, None)
        if value is not None:
            return value
    return str(target)


def _parse_time(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if value:
        return datetime.fromisoformat(value)
    return _utcnow()


# ═══════════════════════════════════════════════════════════
#  ActionOutcome
# ═══════════════════════════════════════════════════════════

@dataclass
class ActionOutcome:
    """Result of one external collaborator call."""

    succeeded: bool
    errors: list[str] = field(default_factory=list)
    payload: dict[str, Any] = field(default_factory=dict)

    def __bool__(self) -> bool:
        return self.succeeded

    @property
    def problem(self) -> str:
        return "; ".join(self.errors) if self.errors else "failed"

    @classmethod
    def ok(cls, **payload: Any) -> ActionOutcome:
        return cls(succeeded=True, payload=payload)

    @classmethod
    def fail(cls, *errors: str, **payload: Any) -> ActionOutcome:
        return cls(succeeded=False, errors=list(errors), payload=payload)


# ═══════════════════════════════════════════════════════════
#  CleanupResult
# ═══════════════════════════════════════════════════════════

@dataclass
class CleanupResult:
    """What ``PhaseAction.cleanup()`` released, and whether it worked."""

    succeeded: bool = True
    released: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    def __bool__(self) -> bool:
        return self.succeeded
