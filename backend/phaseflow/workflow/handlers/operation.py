"""
OperationHandler — run several bulk steps over one list of targets.

    run       started -> running -> completed
    restart   started -> restarting -> running -> completed
    cancel    started | running -> canceling -> canceled

Each step is one verb on a bulk phase of the step's kind, sharing the
operation's targets; steps of the same kind share one phase, so
``batch_store`` upload then promote acts on the same uploads.  Steps run
in order and stop at the first failure.  A failed run or restart asks
for ``command = retry``, so the operation returns to the state it came
from instead of aborting, and a later ``restart`` skips the steps that
already succeeded.

Progress is kept in ``file_data["parts"]``, one entry per step::

    {"kind": "batch_store", "verb": "upload", "succeeded": True,
     "note": None, "phase": {...Phase.to_dict()...}}
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from phaseflow.core.constants import Command, PhaseKind
from phaseflow.core.logging import get_logger
from phaseflow.workflow.errors import IllegalTransitionError, MissingPreconditionError
from phaseflow.workflow.handlers.base import PhaseHandler, TransitionSequence
from phaseflow.workflow.phase import ActionOutcome, Phase

if TYPE_CHECKING:
    from phaseflow.workflow.engine import PhaseAction

logger = get_logger(__name__)


@dataclass
class OperationStep:
    """One verb to run on the bulk phase of *kind*."""

    kind: PhaseKind
    verb: str
    opt: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.kind = PhaseKind(self.kind)

    @classmethod
    def coerce(cls, step: OperationStep | Mapping[str, Any] | tuple) -> OperationStep:
        if isinstance(step, OperationStep):
            return step
        if isinstance(step, Mapping):
            return cls(**step)
        return cls(*step)


class OperationHandler(PhaseHandler):
    """Verbs for ``batch_operation`` phases."""

    kinds = (PhaseKind.BATCH_OPERATION,)
    transitions = {
        "run": ("running", "completed"),
        "restart": ("restarting", "running", "completed"),
        "cancel": ("canceling", "canceled"),
    }

    def run(self, action: PhaseAction, steps: Iterable[Any] = (), **_opt: Any) -> TransitionSequence:
        work = self._steps_work(action, self._steps(action, steps), restart=False)
        return self.sequence("run", work, True)

    def restart(self, action: PhaseAction, steps: Iterable[Any] = (), **_opt: Any) -> TransitionSequence:
        work = self._steps_work(action, self._steps(action, steps), restart=True)
        return self.sequence("restart", True, work, True)

    def cancel(self, action: PhaseAction, **_opt: Any) -> TransitionSequence:
        return self.sequence("cancel", True, True)

    def _steps(self, action: PhaseAction, steps: Iterable[Any]) -> list[OperationStep]:
        steps = [OperationStep.coerce(s) for s in steps]
        self.require(action, steps, "steps to run")
        for step in steps:
            if not step.kind.is_bulk or step.kind == PhaseKind.BATCH_OPERATION:
                raise MissingPreconditionError(
                    f"step {step.kind.value!r} is not a bulk kind",
                    phase_id=action.phase.id,
                    kind=action.phase.kind.value,
                )
        return steps

    def _steps_work(self, action: PhaseAction, steps: list[OperationStep], *, restart: bool):
        phase = action.phase

        async def work(targets: tuple[Any, ...]) -> ActionOutcome:
            from phaseflow.workflow.bulk import BulkAction

            parts: list[dict[str, Any]] = phase.file_data.setdefault("parts", [])
            if not restart:
                parts.clear()
            subphases: dict[PhaseKind, Phase] = {}
            for index, step in enumerate(steps):
                previous = parts[index] if index < len(parts) else None
                if previous and previous["kind"] == step.kind.value and previous["succeeded"]:
                    subphases[step.kind] = Phase.from_dict(previous["phase"])
                    continue

                sub = subphases.get(step.kind)
                if sub is None or action.tables.get(sub.kind).is_terminal(sub.state):
                    sub = Phase(
                        kind=step.kind,
                        targets=targets,
                        repository=phase.repository,
                        user=phase.user,
                        file_data=dict(sub.file_data) if sub else {},
                    )
                    subphases[step.kind] = sub

                sub_action = BulkAction(
                    sub,
                    tables=action.tables,
                    handlers=action.handlers,
                    dispatcher=action.dispatcher,
                    describer=action.describer,
                )
                try:
                    ok = await sub_action.perform(step.verb, **step.opt)
                    note = sub.note
                except IllegalTransitionError as exc:
                    ok, note = False, str(exc)
                part = {
                    "kind": step.kind.value,
                    "verb": step.verb,
                    "succeeded": ok,
                    "note": note,
                    "phase": sub.to_dict(),
                }
                if index < len(parts):
                    parts[index] = part
                else:
                    parts.append(part)
                logger.info(
                    "Operation step finished",
                    phase_id=phase.id,
                    step=index + 1,
                    total_steps=len(steps),
                    kind=step.kind.value,
                    verb=step.verb,
                    succeeded=ok,
                )
                if not ok:
                    phase.command = Command.RETRY
                    return ActionOutcome.fail(
                        f"step {index + 1} ({step.kind.value} {step.verb}): {note or 'failed'}",
                    )
            return ActionOutcome.ok(steps=len(steps))

        return work
