"""
SubmissionWorkflow — owns the phases of one submission end to end.

Creation::

    store   upload -> promote
    then    index  (native repository)   or   queue submit (member repository)

Modification::

    edit    upload -> promote -> index (native) or submit (member repository)

Removal::

    unindex deindex (native)  or  unqueue unsubmit (member repository)
    -> unstore -> unrecord

Bulk operations run several bulk steps over one target list and can be
restarted from the first step that failed.

The workflow persists every phase through a PhaseStore after each verb
and honours ``command = retry`` with exponential backoff, up to
``settings.MAX_PHASE_RETRIES`` attempts.  A sequence stops at the first
phase that fails.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

import structlog

from phaseflow.core.config import settings
from phaseflow.core.constants import NATIVE_REPOSITORY, PhaseKind
from phaseflow.persistence.protocols import PhaseStore
from phaseflow.workflow.callbacks import Callback, CallbackDispatcher
from phaseflow.workflow.engine import PhaseAction, build_action
from phaseflow.workflow.phase import CleanupResult, Phase
from phaseflow.workflow.registry import HandlerRegistry
from phaseflow.workflow.state_table import StateTableRegistry


@dataclass
class SubmissionResult:
    """Outcome of a creation or removal run."""

    submission_id: str | None
    succeeded: bool
    phases: list[Phase] = field(default_factory=list)
    cleanup: CleanupResult | None = None

    @property
    def failed_phase(self) -> Phase | None:
        return next((p for p in self.phases if p.failed), None)

    def to_dict(self) -> dict[str, Any]:
        return {
            "submission_id": self.submission_id,
            "succeeded": self.succeeded,
            "phases": [p.to_dict() for p in self.phases],
            "cleanup": (
                {
                    "succeeded": self.cleanup.succeeded,
                    "released": self.cleanup.released,
                    "errors": self.cleanup.errors,
                }
                if self.cleanup is not None else None
            ),
        }


class SubmissionWorkflow:
    """
    Drives the creation and removal sequences for submissions.

    Args:
        store: Where phases are saved after every verb.
        handlers: Verb handlers wired to the collaborators.
        tables: State tables (default: built-in).
        dispatcher: Callback dispatcher shared by every phase.
        max_retries: Retry limit per phase (default from settings).
        retry_backoff: Base delay in seconds, doubled per attempt.
    """

    def __init__(
        self,
        store: PhaseStore,
        *,
        handlers: HandlerRegistry | None = None,
        tables: StateTableRegistry | None = None,
        dispatcher: CallbackDispatcher | None = None,
        max_retries: int | None = None,
        retry_backoff: float | None = None,
    ) -> None:
        self.store = store
        self.handlers = handlers
        self.tables = tables
        self.dispatcher = dispatcher or CallbackDispatcher()
        self.max_retries = settings.MAX_PHASE_RETRIES if max_retries is None else max_retries
        self.retry_backoff = settings.RETRY_BACKOFF_SECONDS if retry_backoff is None else retry_backoff
        self.logger = structlog.get_logger("workflow.submission")

    def action_for(self, phase: Phase) -> PhaseAction:
        return build_action(
            phase,
            tables=self.tables,
            handlers=self.handlers,
            dispatcher=self.dispatcher,
        )

    # ─── Single verbs ──────────────────────────────────

    async def run(
        self,
        phase: Phase,
        verb: str,
        *args: Any,
        callback: Callback | None = None,
        **opt: Any,
    ) -> bool:
        """Perform *verb*, save the phase, and retry while requested."""
        action = self.action_for(phase)
        log = self.logger.bind(phase_id=phase.id, kind=phase.kind.value, verb=verb)

        while True:
            ok = await action.perform(verb, *args, callback=callback, **opt)
            await self.store.save(phase)
            if ok or not phase.retry_requested:
                return ok
            if phase.retries >= self.max_retries:
                log.warning("Retries exhausted", retries=phase.retries, note=phase.note)
                action.abort(f"gave up after {phase.retries} retries")
                await self.store.save(phase)
                return False

            wait_seconds = self.retry_backoff * (2 ** phase.retries)
            log.info(
                f"Verb failed (attempt {phase.retries + 1}/{self.max_retries + 1}), retrying in {wait_seconds}s",
                note=phase.note,
            )
            if wait_seconds:
                await asyncio.sleep(wait_seconds)

    async def run_bulk(
        self,
        kind: PhaseKind | str,
        verb: str,
        targets: Iterable[Any],
        *args: Any,
        callback: Callback | None = None,
        fields: dict[str, Any] | None = None,
        **opt: Any,
    ) -> Phase:
        """Create a bulk phase over *targets*, run *verb* on it and return it."""
        phase = Phase(kind=PhaseKind(kind), targets=tuple(targets), **(fields or {}))
        self.action_for(phase)  # validates kind and targets before anything is saved
        await self.store.save(phase)
        await self.run(phase, verb, *args, callback=callback, **opt)
        return phase

    # ─── Creation ──────────────────────────────────────

    async def create(
        self,
        submission_id: str,
        data: bytes,
        *,
        filename: str,
        repository: str = NATIVE_REPOSITORY,
        user: str | None = None,
        emma_data: dict[str, Any] | None = None,
        auto_retry: bool = True,
        callback: Callback | None = None,
    ) -> SubmissionResult:
        """Upload, promote, then index or queue a new submission."""
        log = self.logger.bind(submission_id=submission_id, repository=repository)
        log.info("Submission creation started", filename=filename)

        common = {
            "submission_id": submission_id,
            "repository": repository,
            "user": user,
            "emma_data": dict(emma_data or {}),
        }
        result = SubmissionResult(submission_id=submission_id, succeeded=False)

        store_phase = Phase(kind=PhaseKind.STORE, **common)
        result.phases.append(store_phase)
        await self.store.save(store_phase)

        ok = await self.run(
            store_phase, "upload", data,
            filename=filename, auto_retry=auto_retry, callback=callback,
        )
        if ok:
            ok = await self.run(store_phase, "promote", auto_retry=auto_retry, callback=callback)
        if not ok:
            result.cleanup = await self.action_for(store_phase).cleanup()
            log.warning("Submission creation failed", phase="store", note=store_phase.note)
            return result

        if repository == NATIVE_REPOSITORY:
            next_phase, verb = Phase(kind=PhaseKind.INDEX, **common), "index"
        else:
            next_phase, verb = Phase(kind=PhaseKind.QUEUE, **common), "submit"
        next_phase.file_data = dict(store_phase.file_data)
        result.phases.append(next_phase)
        await self.store.save(next_phase)

        result.succeeded = await self.run(next_phase, verb, auto_retry=auto_retry, callback=callback)
        log.info(
            "Submission creation finished",
            succeeded=result.succeeded,
            final_kind=next_phase.kind.value,
            final_state=next_phase.state,
        )
        return result

    # ─── Modification ──────────────────────────────────

    async def edit(
        self,
        submission_id: str,
        data: bytes,
        *,
        filename: str,
        repository: str = NATIVE_REPOSITORY,
        user: str | None = None,
        emma_data: dict[str, Any] | None = None,
        auto_retry: bool = True,
        callback: Callback | None = None,
    ) -> SubmissionResult:
        """Replace an existing submission's file, then re-index or resubmit it."""
        log = self.logger.bind(submission_id=submission_id, repository=repository)
        log.info("Submission edit started", filename=filename)

        phase = Phase(
            kind=PhaseKind.EDIT,
            submission_id=submission_id,
            repository=repository,
            user=user,
            emma_data=dict(emma_data or {}),
        )
        result = SubmissionResult(submission_id=submission_id, succeeded=False, phases=[phase])
        await self.store.save(phase)

        final = "index" if repository == NATIVE_REPOSITORY else "submit"
        ok = await self.run(
            phase, "upload", data,
            filename=filename, auto_retry=auto_retry, callback=callback,
        )
        for verb in ("promote", final):
            if not ok:
                break
            ok = await self.run(phase, verb, auto_retry=auto_retry, callback=callback)

        if not ok:
            result.cleanup = await self.action_for(phase).cleanup()
            log.warning("Submission edit failed", state=phase.state, note=phase.note)
            return result

        result.succeeded = True
        log.info("Submission edit finished", final_state=phase.state)
        return result

    # ─── Bulk operations ───────────────────────────────

    async def run_operation(
        self,
        targets: Iterable[Any],
        steps: Iterable[Any],
        *,
        callback: Callback | None = None,
        fields: dict[str, Any] | None = None,
    ) -> Phase:
        """
        Run *steps* (bulk kind and verb pairs) over *targets* as one operation.

        A failed operation is left at ``started`` with the failed step
        recorded, ready for ``restart_operation``; it is not retried here.
        """
        phase = Phase(kind=PhaseKind.BATCH_OPERATION, targets=tuple(targets), **(fields or {}))
        action = self.action_for(phase)
        await self.store.save(phase)
        await action.perform("run", steps=list(steps), callback=callback)
        await self.store.save(phase)
        return phase

    async def restart_operation(
        self,
        phase: Phase,
        steps: Iterable[Any],
        *,
        callback: Callback | None = None,
    ) -> bool:
        """Re-run the steps of *phase* that have not yet succeeded."""
        ok = await self.action_for(phase).perform("restart", steps=list(steps), callback=callback)
        await self.store.save(phase)
        return ok

    # ─── Removal ───────────────────────────────────────

    async def remove(
        self,
        submission_id: str,
        *,
        repository: str = NATIVE_REPOSITORY,
        file_data: dict[str, Any] | None = None,
        user: str | None = None,
        auto_retry: bool = True,
        callback: Callback | None = None,
    ) -> SubmissionResult:
        """Withdraw a submission: deindex or unsubmit, unstore, unrecord."""
        log = self.logger.bind(submission_id=submission_id, repository=repository)
        log.info("Submission removal started")

        if file_data is None:
            file_data = await self._stored_file_data(submission_id)

        common = {"submission_id": submission_id, "repository": repository, "user": user}
        first = (
            (PhaseKind.UNINDEX, "deindex")
            if repository == NATIVE_REPOSITORY
            else (PhaseKind.UNQUEUE, "unsubmit")
        )
        steps = [first, (PhaseKind.UNSTORE, "unstore"), (PhaseKind.UNRECORD, "unrecord")]

        result = SubmissionResult(submission_id=submission_id, succeeded=False)
        for kind, verb in steps:
            phase = Phase(kind=kind, file_data=dict(file_data or {}), **common)
            result.phases.append(phase)
            await self.store.save(phase)
            if not await self.run(phase, verb, auto_retry=auto_retry, callback=callback):
                log.warning("Submission removal halted", kind=kind.value, note=phase.note)
                return result

        result.succeeded = True
        log.info("Submission removal finished")
        return result

    async def _stored_file_data(self, submission_id: str) -> dict[str, Any]:
        for phase in reversed(await self.store.list_for_submission(submission_id)):
            if phase.kind in (PhaseKind.STORE, PhaseKind.EDIT) and phase.file_data.get("store_key"):
                return dict(phase.file_data)
        return {}
