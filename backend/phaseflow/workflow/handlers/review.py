"""
Review handlers — the optional human-review sub-sequence.

``review`` phases::

    schedule   started    -> scheduling
    assign     scheduling -> assigned
    review     assigned   -> reviewing
    approve    reviewing  -> approved
    reject     reviewing  -> rejected
    cancel     (any open) -> canceling -> canceled

``schedule`` phases only book the review::

    schedule   started -> scheduling -> scheduled
    cancel     started -> canceled
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from phaseflow.clients.protocols import ReviewService
from phaseflow.core.constants import PhaseKind
from phaseflow.workflow.handlers.base import PhaseHandler, TransitionSequence
from phaseflow.workflow.phase import ActionOutcome, Phase

if TYPE_CHECKING:
    from phaseflow.workflow.engine import PhaseAction


class ReviewHandler(PhaseHandler):
    """Verbs for ``review`` phases."""

    kinds = (PhaseKind.REVIEW,)
    transitions = {
        "schedule": ("scheduling",),
        "assign": ("assigned",),
        "review": ("reviewing",),
        "approve": ("approved",),
        "reject": ("rejected",),
        "cancel": ("canceling", "canceled"),
    }

    def __init__(self, review: ReviewService, batch_size: int | None = None) -> None:
        super().__init__(batch_size)
        self.review_service = review

    def schedule(self, action: PhaseAction, **_opt: Any) -> TransitionSequence:
        sid = self.require(action, action.phase.submission_id, "submission id")

        async def work(phase: Phase) -> ActionOutcome:
            return await self.review_service.schedule(sid, requested_by=phase.user)

        return self.sequence("schedule", work)

    def assign(self, action: PhaseAction, reviewer: str | None = None, **_opt: Any) -> TransitionSequence:
        sid = self.require(action, action.phase.submission_id, "submission id")
        reviewer = self.require(action, reviewer, "reviewer")

        async def work(phase: Phase) -> ActionOutcome:
            return await self.review_service.assign(sid, reviewer=reviewer)

        return self.sequence("assign", work)

    def review(self, action: PhaseAction, **_opt: Any) -> TransitionSequence:
        return self.sequence("review", True)

    def approve(self, action: PhaseAction, remarks: str | None = None, **_opt: Any) -> TransitionSequence:
        return self.sequence("approve", self._decision(action, True, remarks))

    def reject(self, action: PhaseAction, remarks: str | None = None, **_opt: Any) -> TransitionSequence:
        remarks = self.require(action, remarks, "reason for rejection")
        return self.sequence("reject", self._decision(action, False, remarks))

    def cancel(self, action: PhaseAction, **_opt: Any) -> TransitionSequence:
        sid = self.require(action, action.phase.submission_id, "submission id")

        async def work(phase: Phase) -> ActionOutcome:
            return await self.review_service.cancel(sid)

        return self.sequence("cancel", work, True)

    def _decision(self, action: PhaseAction, approved: bool, remarks: str | None):
        sid = self.require(action, action.phase.submission_id, "submission id")

        async def work(phase: Phase) -> ActionOutcome:
            outcome = await self.review_service.decide(sid, approved=approved, remarks=remarks)
            if outcome:
                phase.remarks = remarks
            return outcome

        return work


class ScheduleHandler(PhaseHandler):
    """Verbs for ``schedule`` phases."""

    kinds = (PhaseKind.SCHEDULE,)
    transitions = {
        "schedule": ("scheduling", "scheduled"),
        "cancel": ("canceled",),
    }

    def __init__(self, review: ReviewService, batch_size: int | None = None) -> None:
        super().__init__(batch_size)
        self.review_service = review

    def schedule(self, action: PhaseAction, **_opt: Any) -> TransitionSequence:
        sid = self.require(action, action.phase.submission_id, "submission id")

        async def work(phase: Phase) -> ActionOutcome:
            return await self.review_service.schedule(sid, requested_by=phase.user)

        return self.sequence("schedule", work, True)
