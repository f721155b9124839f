"""
Removal handlers — undo what the creation phases did.

Every removal kind has the same shape::

    <verb>   started -> <working state> -> completed
    cancel   started -> canceled

    unqueue    unsubmit   dequeuing     withdraw from the member repository
    unstore    unstore    unstoring     delete stored files
    unindex    deindex    deindexing    delete index entries
    unrecord   unrecord   unrecording   delete submission records

Targets are submission ids for every kind except ``unstore``, whose
targets are storage keys.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING, Any, ClassVar

from phaseflow.clients.protocols import (
    IndexService,
    MemberRepository,
    ObjectStorage,
    SubmissionRecords,
)
from phaseflow.core.constants import PhaseKind
from phaseflow.workflow.handlers.base import PhaseHandler, TransitionSequence
from phaseflow.workflow.phase import ActionOutcome, Phase

if TYPE_CHECKING:
    from phaseflow.workflow.engine import PhaseAction


class RemovalHandler(PhaseHandler):
    """Shared single-verb removal sequence; subclasses supply ``remove``."""

    verb_name: ClassVar[str] = ""
    key_description: ClassVar[str] = "submission id"

    def _removal_sequence(self, action: PhaseAction) -> TransitionSequence:
        phase = action.phase

        if phase.is_bulk:
            async def work(targets: tuple[Any, ...]) -> ActionOutcome:
                return await self.fan_out(
                    targets,
                    lambda batch: self.remove(phase, self.target_keys(batch)),
                )

        else:
            keys = self.require(action, self.phase_keys(phase), self.key_description)

            async def work(phase: Phase) -> ActionOutcome:
                return await self.remove(phase, keys)

        return self.sequence(self.verb_name, work, True)

    def phase_keys(self, phase: Phase) -> list[str]:
        return [phase.submission_id] if phase.submission_id else []

    def target_keys(self, batch: Sequence[Any]) -> list[str]:
        return self.submission_ids(batch)

    async def remove(self, phase: Phase, keys: list[str]) -> ActionOutcome:
        raise NotImplementedError


class UnqueueHandler(RemovalHandler):
    """Verbs for ``unqueue`` and ``batch_unqueue`` phases."""

    kinds = (PhaseKind.UNQUEUE, PhaseKind.BATCH_UNQUEUE)
    verb_name = "unsubmit"
    transitions = {"unsubmit": ("dequeuing", "completed"), "cancel": ("canceled",)}

    def __init__(self, repository: MemberRepository, batch_size: int | None = None) -> None:
        super().__init__(batch_size)
        self.repository = repository

    def unsubmit(self, action: PhaseAction, **_opt: Any) -> TransitionSequence:
        self.require(action, action.phase.repository, "repository")
        return self._removal_sequence(action)

    async def remove(self, phase: Phase, keys: list[str]) -> ActionOutcome:
        return await self.repository.dequeue(phase.repository, keys)


class UnstoreHandler(RemovalHandler):
    """Verbs for ``unstore`` and ``batch_unstore`` phases."""

    kinds = (PhaseKind.UNSTORE, PhaseKind.BATCH_UNSTORE)
    verb_name = "unstore"
    key_description = "stored file"
    transitions = {"unstore": ("unstoring", "completed"), "cancel": ("canceled",)}

    def __init__(self, storage: ObjectStorage, batch_size: int | None = None) -> None:
        super().__init__(batch_size)
        self.storage = storage

    def unstore(self, action: PhaseAction, **_opt: Any) -> TransitionSequence:
        return self._removal_sequence(action)

    def phase_keys(self, phase: Phase) -> list[str]:
        key = phase.file_data.get("store_key") or phase.file_data.get("cache_key")
        return [key] if key else []

    def target_keys(self, batch: Sequence[Any]) -> list[str]:
        keys = []
        for target in batch:
            if isinstance(target, Phase):
                keys.extend(self.phase_keys(target))
            elif isinstance(target, dict):
                keys.append(target.get("store_key") or target["cache_key"])
            else:
                keys.append(str(target))
        return keys

    async def remove(self, phase: Phase, keys: list[str]) -> ActionOutcome:
        return await self.storage.delete(keys)


class UnindexHandler(RemovalHandler):
    """Verbs for ``unindex`` and ``batch_unindex`` phases."""

    kinds = (PhaseKind.UNINDEX, PhaseKind.BATCH_UNINDEX)
    verb_name = "deindex"
    transitions = {"deindex": ("deindexing", "completed"), "cancel": ("canceled",)}

    def __init__(self, index: IndexService, batch_size: int | None = None) -> None:
        super().__init__(batch_size)
        self.index_service = index

    def deindex(self, action: PhaseAction, **_opt: Any) -> TransitionSequence:
        return self._removal_sequence(action)

    async def remove(self, phase: Phase, keys: list[str]) -> ActionOutcome:
        return await self.index_service.delete_records(keys)


class UnrecordHandler(RemovalHandler):
    """Verbs for ``unrecord`` and ``batch_unrecord`` phases."""

    kinds = (PhaseKind.UNRECORD, PhaseKind.BATCH_UNRECORD)
    verb_name = "unrecord"
    transitions = {"unrecord": ("unrecording", "completed"), "cancel": ("canceled",)}

    def __init__(self, records: SubmissionRecords, batch_size: int | None = None) -> None:
        super().__init__(batch_size)
        self.records = records

    def unrecord(self, action: PhaseAction, **_opt: Any) -> TransitionSequence:
        return self._removal_sequence(action)

    async def remove(self, phase: Phase, keys: list[str]) -> ActionOutcome:
        return await self.records.remove_submissions(keys)
