"""
QueueHandler — hand a submission to a member repository.

    submit              started -> submitting -> unretrieved
    confirm_retrieval   unretrieved -> retrieved
    cancel              started -> canceled

When the repository has not yet picked up every submission,
``confirm_retrieval`` fails with ``command = retry`` so the phase returns
to ``unretrieved`` and the owning workflow can poll again later.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from phaseflow.clients.protocols import MemberRepository
from phaseflow.core.constants import NATIVE_REPOSITORY, Command, PhaseKind
from phaseflow.workflow.errors import MissingPreconditionError
from phaseflow.workflow.handlers.base import PhaseHandler, TransitionSequence
from phaseflow.workflow.phase import ActionOutcome, Phase

if TYPE_CHECKING:
    from phaseflow.workflow.engine import PhaseAction


def queue_item(phase: Phase) -> dict[str, Any]:
    return {
        "submission_id": phase.submission_id,
        "file_key": phase.file_data.get("store_key"),
        "metadata": dict(phase.emma_data),
    }


class QueueHandler(PhaseHandler):
    """Verbs for ``queue`` and ``batch_queue`` phases."""

    kinds = (PhaseKind.QUEUE, PhaseKind.BATCH_QUEUE)
    transitions = {
        "submit": ("submitting", "unretrieved"),
        "confirm_retrieval": ("retrieved",),
        "cancel": ("canceled",),
    }

    def __init__(self, repository: MemberRepository, batch_size: int | None = None) -> None:
        super().__init__(batch_size)
        self.repository = repository

    def _destination(self, action: PhaseAction) -> str:
        repo = self.require(action, action.phase.repository, "repository")
        if repo == NATIVE_REPOSITORY:
            raise MissingPreconditionError(
                f"{repo!r} items are indexed directly, not queued",
                phase_id=action.phase.id,
                kind=action.phase.kind.value,
            )
        return repo

    def submit(self, action: PhaseAction, **_opt: Any) -> TransitionSequence:
        phase = action.phase
        repo = self._destination(action)

        if phase.is_bulk:
            async def work(targets: tuple[Any, ...]) -> ActionOutcome:
                return await self.fan_out(
                    targets,
                    lambda batch: self.repository.enqueue(repo, [self._item(t) for t in batch]),
                )

        else:
            self.require(action, phase.submission_id, "submission id")

            async def work(phase: Phase) -> ActionOutcome:
                return await self.repository.enqueue(repo, [queue_item(phase)])

        return self.sequence("submit", work, True)

    def confirm_retrieval(self, action: PhaseAction, **_opt: Any) -> TransitionSequence:
        phase = action.phase
        repo = self._destination(action)
        if phase.is_bulk:
            sids = self.submission_ids(phase.targets)
        else:
            sids = [self.require(action, phase.submission_id, "submission id")]

        async def work(_arg: Any) -> ActionOutcome:
            outcome = await self.repository.is_retrieved(repo, sids)
            if not outcome and outcome.payload.get("pending"):
                phase.command = Command.RETRY
            return outcome

        return self.sequence("confirm_retrieval", work)

    def _item(self, target: Any) -> dict[str, Any]:
        if isinstance(target, dict):
            return target
        if isinstance(target, Phase):
            return queue_item(target)
        return {"submission_id": self.submission_ids([target])[0]}
