"""
IndexHandler — add a submission's entry to the search index.

    index    started -> indexing -> indexed
    cancel   started -> canceled
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from phaseflow.clients.protocols import IndexService
from phaseflow.core.constants import PhaseKind
from phaseflow.workflow.handlers.base import PhaseHandler, TransitionSequence
from phaseflow.workflow.phase import ActionOutcome, Phase

if TYPE_CHECKING:
    from phaseflow.workflow.engine import PhaseAction


def index_record(phase: Phase) -> dict[str, Any]:
    """Index entry for a single phase: descriptive metadata plus file location."""
    record = dict(phase.emma_data)
    record["submission_id"] = phase.submission_id
    if phase.repository:
        record.setdefault("repository", phase.repository)
    if phase.file_data.get("store_key"):
        record["file_key"] = phase.file_data["store_key"]
    return record


class IndexHandler(PhaseHandler):
    """Verbs for ``index`` and ``batch_index`` phases."""

    kinds = (PhaseKind.INDEX, PhaseKind.BATCH_INDEX)
    transitions = {
        "index": ("indexing", "indexed"),
        "cancel": ("canceled",),
    }

    def __init__(self, index: IndexService, batch_size: int | None = None) -> None:
        super().__init__(batch_size)
        self.index_service = index

    def index(self, action: PhaseAction, **_opt: Any) -> TransitionSequence:
        phase = action.phase

        if phase.is_bulk:
            async def work(targets: tuple[Any, ...]) -> ActionOutcome:
                return await self.fan_out(
                    targets,
                    lambda batch: self.index_service.put_records([self._record(t) for t in batch]),
                )

        else:
            self.require(action, phase.submission_id, "submission id")

            async def work(phase: Phase) -> ActionOutcome:
                return await self.index_service.put_records([index_record(phase)])

        return self.sequence("index", work, True)

    def _record(self, target: Any) -> dict[str, Any]:
        if isinstance(target, dict):
            return target
        if isinstance(target, Phase):
            return index_record(target)
        return {"submission_id": self.submission_ids([target])[0]}
