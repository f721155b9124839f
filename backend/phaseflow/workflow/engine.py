"""
PhaseAction — the transition engine that drives one phase.

Responsibilities:
    - Guard every state change against the kind's StateTable
    - Run a verb's transition sequence entry by entry, halting on failure
    - Record success / failure on the phase (condition, note, command)
    - Dispatch the completion callback exactly once per verb invocation

Usage::

    action = PhaseAction(phase, handlers=registry)
    ok = await action.perform("upload", data, filename="book.epub", callback=notify)

    # or, returning before the callback has run:
    ok = await action.perform_deferred("upload", data, callback=notify)

Verbs are also available as awaitable attributes (``await action.upload(...)``).
"""

from __future__ import annotations

import inspect
from collections.abc import Mapping
from typing import Any

import structlog

from phaseflow.core.constants import Command, Condition, PhaseKind, StateGroup
from phaseflow.workflow.callbacks import Callback, CallbackDispatcher
from phaseflow.workflow.describe import StatusDescriber
from phaseflow.workflow.errors import (
    ConstructionError,
    IllegalTransitionError,
    MissingPreconditionError,
    StepExecutionError,
)
from phaseflow.workflow.handlers.base import PhaseHandler, Work
from phaseflow.workflow.phase import ActionOutcome, CleanupResult, Phase
from phaseflow.workflow.registry import HandlerRegistry, default_handler_registry
from phaseflow.workflow.state_table import DEFAULT_STATE_TABLES, StateTable, StateTableRegistry

# Groups whose states mean work is under way.
IN_PROCESS_GROUPS = (
    StateGroup.CREATE,
    StateGroup.SUBMISSION,
    StateGroup.FINALIZATION,
    StateGroup.REVIEW,
    StateGroup.REMOVE,
)


class PhaseAction:
    """
    Drives a single-target phase through its state table.

    Args:
        phase: The control record; mutated in place.
        tables: State tables by kind (default: the built-in tables).
        handlers: Verb handlers by kind (default: production clients).
        dispatcher: Callback dispatcher (default: in-process asyncio).
        describer: Status text renderer.
    """

    bulk: bool = False

    def __init__(
        self,
        phase: Phase,
        *,
        tables: StateTableRegistry | None = None,
        handlers: HandlerRegistry | None = None,
        dispatcher: CallbackDispatcher | None = None,
        describer: StatusDescriber | None = None,
    ) -> None:
        if phase.kind.is_bulk != self.bulk:
            raise ConstructionError(
                f"{type(self).__name__} cannot drive a {phase.kind.value!r} phase",
                phase_id=phase.id,
                kind=phase.kind.value,
            )
        self.phase = phase
        self.tables = tables or DEFAULT_STATE_TABLES
        self.table: StateTable = self.tables.get(phase.kind)
        self.handlers = handlers or default_handler_registry()
        self.handler: PhaseHandler = self.handlers.get(phase.kind)
        self.dispatcher = dispatcher or CallbackDispatcher()
        self.describer = describer or StatusDescriber(self.tables)
        self.logger = structlog.get_logger("workflow.engine").bind(
            phase_id=phase.id,
            kind=phase.kind.value,
        )

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.phase.kind.value} {self.phase.id} state={self.phase.state}>"

    def __getattr__(self, name: str):
        # Only reached for attributes not found normally: expose verbs.
        handler = self.__dict__.get("handler")
        if handler is not None and name in handler.transitions:
            async def verb(*args: Any, **opt: Any) -> bool:
                return await self.perform(name, *args, **opt)

            verb.__name__ = name
            return verb
        raise AttributeError(f"{type(self).__name__!r} object has no attribute {name!r}")

    # ─── State queries ─────────────────────────────────

    @property
    def kind(self) -> PhaseKind:
        return self.phase.kind

    @property
    def state(self) -> str:
        return self.phase.state

    @property
    def work_argument(self) -> Any:
        """What each work function receives: the phase itself."""
        return self.phase

    def can_transition(self, next_state: str) -> bool:
        return self.table.allows(self.phase.state, next_state)

    def state_group(self) -> StateGroup:
        return self.table.group(self.phase.state)

    def in_process(self) -> bool:
        return self.state_group() in IN_PROCESS_GROUPS and not self.finished()

    def finished(self) -> bool:
        return self.table.is_terminal(self.phase.state)

    def describe_status(self) -> str:
        return self.describer.describe_status(self.phase)

    def describe_type(self) -> str:
        return self.describer.describe_type(self.phase)

    # ─── Transitions ───────────────────────────────────

    def transition_to(self, next_state: str, *, meth: str | None = None) -> str:
        """
        Move to *next_state* if the table allows it.

        Returns:
            The previous state.

        Raises:
            IllegalTransitionError: The edge is not in the table.  The
                phase is left unchanged.
        """
        current = self.phase.state
        if not self.table.allows(current, next_state):
            raise IllegalTransitionError(
                f"{meth or 'transition_to'}: {self.phase.kind.value}: "
                f"cannot transition from {current!r} to {next_state!r}",
                from_state=current,
                to_state=next_state,
                phase_id=self.phase.id,
                kind=self.phase.kind.value,
                details={"allowed": list(self.table.transitions(current))},
            )
        self.phase.state = next_state
        self.phase.touch()
        self.logger.debug("Transition", meth=meth, from_state=current, to_state=next_state)
        return current

    async def transition_sequence(
        self,
        sequence: Mapping[str, Work],
        *,
        meth: str | None = None,
        auto_retry: bool = False,
    ) -> bool:
        """
        Run *sequence* in order: transition, then run the entry's work.

        A work function fails by returning a falsy value (including a
        failed ActionOutcome) or by raising.  On failure the phase is
        marked failed and moved to the failure state, or back to the state
        the sequence started from if the work set ``command = retry``; the
        remaining entries are skipped.

        With *auto_retry*, a failure the collaborator marked retryable
        (``StepExecutionError.retryable`` or ``payload["retryable"]``)
        also sets ``command = retry``.

        Returns:
            True only if every entry completed.

        Raises:
            IllegalTransitionError: An entry's state is not reachable from
                the current one.
        """
        meth = meth or "transition_sequence"
        origin = self.phase.state
        log = self.logger.bind(meth=meth, origin=origin)
        total = len(sequence)

        for index, (state, work) in enumerate(sequence.items(), start=1):
            self.transition_to(state, meth=meth)
            if work is True or work is None:
                continue

            step_log = log.bind(state=state, step_index=index, total_steps=total)
            try:
                result = work(self.work_argument)
                if inspect.isawaitable(result):
                    result = await result
            except (IllegalTransitionError, ConstructionError):
                raise
            except StepExecutionError as exc:
                step_log.warning("Work failed", error=str(exc), retryable=exc.retryable)
                if auto_retry and exc.retryable:
                    self.phase.command = Command.RETRY
                self._record_failure(meth, str(exc), origin)
                return False
            except Exception as exc:
                step_log.exception("Unexpected error in work", error=str(exc))
                self._record_failure(meth, f"{type(exc).__name__}: {exc}", origin)
                return False

            if isinstance(result, ActionOutcome):
                ok, problem = result.succeeded, result.problem
                retryable = bool(result.payload.get("retryable"))
            else:
                ok, problem, retryable = bool(result), "failed", False
            if not ok:
                step_log.warning("Work failed", error=problem, retryable=retryable)
                if auto_retry and retryable:
                    self.phase.command = Command.RETRY
                self._record_failure(meth, problem, origin)
                return False
            step_log.debug("Work completed")

        self.phase.condition = Condition.SUCCEEDED
        self.phase.note = None
        self.phase.touch()
        log.info("Sequence completed", state=self.phase.state)
        return True

    def _record_failure(
        self,
        meth: str,
        problem: str,
        origin: str,
        *,
        move_state: bool = True,
    ) -> None:
        """
        Mark the phase failed.

        With *move_state* the phase goes to the failure state (or back to
        *origin* when a retry was requested); this write bypasses the
        transition table.  Without it only condition and note change.
        """
        retry = self.phase.command == Command.RETRY
        self.phase.condition = Condition.FAILED
        self.phase.note = f"{meth}: {problem}"
        if move_state:
            self.phase.state = origin if retry else self.table.failure
        self.phase.touch()
        self.logger.warning(
            "Phase failed",
            meth=meth,
            note=self.phase.note,
            state=self.phase.state,
            retry=retry,
        )

    # ─── Verbs ─────────────────────────────────────────

    async def perform(
        self,
        verb: str,
        *args: Any,
        callback: Callback | None = None,
        meth: str | None = None,
        **opt: Any,
    ) -> bool:
        """Run *verb* and deliver the callback before returning."""
        return await self._perform(verb, args, opt, callback, meth, deferred=False)

    async def perform_deferred(
        self,
        verb: str,
        *args: Any,
        callback: Callback | None = None,
        meth: str | None = None,
        **opt: Any,
    ) -> bool:
        """Run *verb* and schedule the callback in the background."""
        return await self._perform(verb, args, opt, callback, meth, deferred=True)

    async def _perform(
        self,
        verb: str,
        args: tuple[Any, ...],
        opt: dict[str, Any],
        callback: Callback | None,
        meth: str | None,
        *,
        deferred: bool,
    ) -> bool:
        meth = meth or verb
        build = self.handler.verb(verb)
        log = self.logger.bind(verb=verb)

        if self.finished():
            log.info("Phase already finished; verb ignored", state=self.phase.state)
            return False

        if self.phase.command == Command.RETRY:
            self.phase.command = None
            self.phase.retries += 1
            log.info("Retrying", retries=self.phase.retries, state=self.phase.state)

        try:
            sequence = build(self, *args, **opt)
        except MissingPreconditionError as exc:
            log.warning("Missing precondition", error=str(exc), state=self.phase.state)
            self._record_failure(meth, str(exc), self.phase.state, move_state=False)
            await self.run_callback(callback, False, deferred=deferred)
            return False

        try:
            success = await self.transition_sequence(
                sequence,
                meth=meth,
                auto_retry=bool(opt.get("auto_retry")),
            )
        except IllegalTransitionError as exc:
            log.warning("Illegal transition", error=str(exc), state=self.phase.state)
            await self.run_callback(callback, False, deferred=deferred)
            raise

        await self.run_callback(callback, success, deferred=deferred)
        return success

    async def run_callback(
        self,
        callback: Callback | None,
        success: bool | None = None,
        *,
        deferred: bool = False,
    ) -> None:
        """Deliver *callback* with the phase's current status."""
        if success is None:
            success = self.phase.condition == Condition.SUCCEEDED
        status = self.describe_status()
        if deferred:
            self.dispatcher.run_async(callback, success, self.phase, status)
        else:
            await self.dispatcher.run_sync(callback, success, self.phase, status)

    def abort(self, reason: str) -> bool:
        """
        Give up on the phase: drop any pending command and move it to the
        kind's failure state, keeping the last failure note.

        Returns:
            False if the phase had already finished.
        """
        if self.finished():
            return False
        self.phase.command = None
        self.phase.condition = Condition.FAILED
        self.phase.note = f"{self.phase.note}; {reason}" if self.phase.note else reason
        self.phase.state = self.table.failure
        self.phase.touch()
        self.logger.warning("Phase aborted", reason=reason, note=self.phase.note)
        return True

    # ─── Cleanup ───────────────────────────────────────

    async def cleanup(self) -> CleanupResult:
        """Release what the phase holds before the owning workflow removes it."""
        result = await self.handler.cleanup(self)
        self.logger.info(
            "Cleanup",
            succeeded=result.succeeded,
            released=len(result.released),
            errors=result.errors,
        )
        return result


def build_action(phase: Phase, **kwargs: Any) -> PhaseAction:
    """PhaseAction or BulkAction, whichever matches the phase kind."""
    if phase.kind.is_bulk:
        from phaseflow.workflow.bulk import BulkAction

        return BulkAction(phase, **kwargs)
    return PhaseAction(phase, **kwargs)
