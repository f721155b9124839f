"""PhaseStore — persistence interface used by owning workflows."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from phaseflow.workflow.phase import ActionOutcome, Phase


@runtime_checkable
class PhaseStore(Protocol):
    """
    Load and save phase control records.

    The transition engine never calls a store; the owning workflow loads a
    phase before a verb and saves it afterwards.
    """

    async def load(self, phase_id: str) -> Phase | None: ...

    async def save(self, phase: Phase) -> None: ...

    async def delete(self, phase_id: str) -> bool: ...

    async def list_for_submission(self, submission_id: str) -> list[Phase]: ...

    async def remove_submissions(self, submission_ids: Sequence[str]) -> ActionOutcome:
        """Delete every phase of the given submissions."""
        ...
