"""
PhaseHandler — abstract base class for per-kind verb strategies.

A handler owns the verbs of one phase kind and its bulk counterpart.
Each verb builds a transition sequence (ordered mapping of next state to
work function or ``True``) and hands it back to the engine; handlers
never write ``phase.state`` themselves.

Subclasses MUST define:
    - kinds         — the PhaseKinds served
    - transitions   — verb name -> ordered states its sequence visits
    - one method per verb: ``verb(action, *args, **opt) -> sequence``

Subclasses MAY override:
    - cleanup(action)  — release resources before the phase is removed
"""

from __future__ import annotations

import asyncio
from abc import ABC
from collections.abc import Awaitable, Callable, Sequence
from typing import TYPE_CHECKING, Any, ClassVar, Union

from phaseflow.core.config import settings
from phaseflow.core.constants import PhaseKind
from phaseflow.core.logging import get_logger
from phaseflow.workflow.errors import MissingPreconditionError, UnknownVerbError
from phaseflow.workflow.phase import ActionOutcome, CleanupResult
from phaseflow.workflow.targets import chunked, classify_target, describe_targets

if TYPE_CHECKING:
    from phaseflow.workflow.engine import PhaseAction

logger = get_logger(__name__)

Work = Union[Callable[[Any], Any], bool]
TransitionSequence = dict[str, Work]


class PhaseHandler(ABC):
    """Base class for every phase kind's verbs."""

    kinds: ClassVar[tuple[PhaseKind, ...]] = ()
    transitions: ClassVar[dict[str, tuple[str, ...]]] = {"cancel": ("canceled",)}

    def __init__(self, batch_size: int | None = None) -> None:
        self.batch_size = batch_size or settings.BULK_BATCH_SIZE

    @property
    def verbs(self) -> tuple[str, ...]:
        return tuple(self.transitions)

    def verb(self, name: str) -> Callable[..., TransitionSequence]:
        """Return the bound method building *name*'s sequence."""
        if name not in self.transitions:
            raise UnknownVerbError(
                f"{type(self).__name__} has no verb {name!r}; expected one of {list(self.verbs)}",
            )
        return getattr(self, name)

    def referenced_states(self) -> set[str]:
        return {state for states in self.transitions.values() for state in states}

    def sequence(self, verb: str, *works: Work) -> TransitionSequence:
        """Pair *works* with the states declared for *verb*."""
        states = self.transitions[verb]
        if len(states) != len(works):
            raise ValueError(f"{verb}: {len(states)} states but {len(works)} work entries")
        return dict(zip(states, works))

    def cancel(self, action: PhaseAction, **_opt: Any) -> TransitionSequence:
        return self.sequence("cancel", True)

    async def cleanup(self, action: PhaseAction) -> CleanupResult:
        """Release resources held by the phase.  Default: nothing held."""
        return CleanupResult()

    # ─── Helpers available to all handlers ─────────────

    @staticmethod
    def require(action: PhaseAction, value: Any, what: str) -> Any:
        """Raise MissingPreconditionError if *value* is empty."""
        if value is None or value == "" or value == () or value == []:
            raise MissingPreconditionError(
                f"no {what}",
                phase_id=action.phase.id,
                kind=action.phase.kind.value,
            )
        return value

    @staticmethod
    def submission_ids(targets: Sequence[Any]) -> list[str]:
        """Submission id (or record id, or string form) of each target."""
        return [classify_target(target)[1] for target in targets]

    async def fan_out(
        self,
        targets: Sequence[Any],
        call: Callable[[tuple[Any, ...]], Awaitable[ActionOutcome]],
    ) -> ActionOutcome:
        """
        Run *call* once per batch of targets, concurrently, and join.

        Succeeds only if every batch succeeds; otherwise the outcome names
        the targets of every failed batch, and is retryable if any failed
        batch was.
        """
        batches = list(chunked(targets, self.batch_size))
        results = await asyncio.gather(*(call(b) for b in batches), return_exceptions=True)

        failed: list[Any] = []
        errors: list[str] = []
        retryable = False
        for batch, result in zip(batches, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                failed.extend(batch)
                errors.append(str(result) or type(result).__name__)
                retryable = retryable or getattr(result, "retryable", False)
            elif not result:
                failed.extend(batch)
                if isinstance(result, ActionOutcome):
                    errors.extend(result.errors)
                    retryable = retryable or bool(result.payload.get("retryable"))

        if failed:
            logger.warning(
                "Bulk work failed",
                batches=len(batches),
                failed_targets=len(failed),
                total_targets=len(targets),
            )
            return ActionOutcome.fail(
                f"failed for {describe_targets(failed)}",
                *errors,
                failed=self.submission_ids(failed),
                retryable=retryable,
            )
        return ActionOutcome.ok(batches=len(batches), count=len(targets))
