"""In-memory PhaseStore for scripts, demos and tests."""

from __future__ import annotations

from collections.abc import Sequence

from phaseflow.workflow.phase import ActionOutcome, Phase


class MemoryPhaseStore:
    """
    Keeps serialised copies of phases in a dict.

    Stored copies are independent of the caller's object, so a phase
    mutated after ``save`` is not changed in the store until saved again.
    """

    def __init__(self) -> None:
        self._rows: dict[str, dict] = {}

    def __len__(self) -> int:
        return len(self._rows)

    async def load(self, phase_id: str) -> Phase | None:
        row = self._rows.get(phase_id)
        return Phase.from_dict(row) if row else None

    async def save(self, phase: Phase) -> None:
        self._rows[phase.id] = phase.to_dict()

    async def delete(self, phase_id: str) -> bool:
        return self._rows.pop(phase_id, None) is not None

    async def list_for_submission(self, submission_id: str) -> list[Phase]:
        rows = [r for r in self._rows.values() if r.get("submission_id") == submission_id]
        rows.sort(key=lambda r: r["created_at"])
        return [Phase.from_dict(r) for r in rows]

    async def remove_submissions(self, submission_ids: Sequence[str]) -> ActionOutcome:
        wanted = set(submission_ids)
        doomed = [pid for pid, r in self._rows.items() if r.get("submission_id") in wanted]
        for pid in doomed:
            del self._rows[pid]
        return ActionOutcome.ok(removed=len(doomed))
