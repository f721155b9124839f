"""
StoreHandler — upload a submission's file and promote it to permanent storage.

    upload    started  -> uploading -> uploaded
    promote   uploaded -> promoting -> completed
    cancel    started | uploaded -> canceled

Single phases keep the object key in ``file_data["cache_key"]``; bulk
phases keep a mapping of submission id to key in ``file_data["cache_keys"]``
(and, once promoted, ``file_data["store_keys"]``).
"""

from __future__ import annotations

from collections.abc import Hashable, Mapping
from typing import TYPE_CHECKING, Any

from phaseflow.clients.protocols import ObjectStorage
from phaseflow.core.constants import Command, PhaseKind
from phaseflow.core.logging import get_logger
from phaseflow.workflow.handlers.base import PhaseHandler, TransitionSequence
from phaseflow.workflow.phase import ActionOutcome, CleanupResult, Phase
from phaseflow.workflow.targets import chunked

if TYPE_CHECKING:
    from phaseflow.workflow.engine import PhaseAction

logger = get_logger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"

# S3 user metadata travels as HTTP headers, so keys use hyphens.
SUBMISSION_METADATA_KEY = "submission-id"

# Keys per storage delete request during cleanup.
CLEANUP_BATCH_SIZE = 500

# Upload payload per target in a bulk phase: (filename, data).
FileEntry = tuple[str, bytes]


class StoreHandler(PhaseHandler):
    """Verbs for ``store`` and ``batch_store`` phases."""

    kinds = (PhaseKind.STORE, PhaseKind.BATCH_STORE)
    transitions = {
        "upload": ("uploading", "uploaded"),
        "promote": ("promoting", "completed"),
        "cancel": ("canceled",),
    }

    def __init__(self, storage: ObjectStorage, batch_size: int | None = None) -> None:
        super().__init__(batch_size)
        self.storage = storage

    # ─── upload ────────────────────────────────────────

    def upload(
        self,
        action: PhaseAction,
        data: bytes | None = None,
        *,
        filename: str | None = None,
        files: Mapping[Any, FileEntry] | None = None,
        content_type: str = DEFAULT_CONTENT_TYPE,
        auto_retry: bool = False,
        **_opt: Any,
    ) -> TransitionSequence:
        """
        Args:
            data: File content (single phases).
            filename: Stored file name (single phases).
            files: Submission id (or the target itself, when hashable)
                -> (filename, data) (bulk).
            auto_retry: On failure, ask the owning workflow to retry
                instead of aborting.
        """
        phase = action.phase

        if phase.is_bulk:
            files = self.require(action, files, "files to upload")

            async def work(targets: tuple[Any, ...]) -> ActionOutcome:
                outcome = await self.fan_out(
                    targets,
                    lambda batch: self._upload_batch(phase, batch, files, content_type),
                )
                if not outcome and auto_retry:
                    phase.command = Command.RETRY
                return outcome

        else:
            sid = self.require(action, phase.submission_id, "submission id")
            self.require(action, data, "file data")
            name = filename or phase.file_data.get("filename") or "file"

            async def work(phase: Phase) -> ActionOutcome:
                key = f"{sid}/{name}"
                outcome = await self.storage.upload(
                    key, data, content_type=content_type, metadata={SUBMISSION_METADATA_KEY: sid},
                )
                if outcome:
                    phase.file_data.update(filename=name, cache_key=key, size=len(data))
                elif auto_retry:
                    phase.command = Command.RETRY
                return outcome

        return self.sequence("upload", work, True)

    async def _upload_batch(
        self,
        phase: Phase,
        batch: tuple[Any, ...],
        files: Mapping[Any, FileEntry],
        content_type: str,
    ) -> ActionOutcome:
        keys = phase.file_data.setdefault("cache_keys", {})
        errors: list[str] = []
        for target, sid in zip(batch, self.submission_ids(batch)):
            entry = files.get(sid)
            if entry is None and isinstance(target, Hashable):
                entry = files.get(target)
            if entry is None:
                errors.append(f"{sid}: no file")
                continue
            name, data = entry
            key = f"{sid}/{name}"
            outcome = await self.storage.upload(
                key, data, content_type=content_type, metadata={SUBMISSION_METADATA_KEY: sid},
            )
            if outcome:
                keys[sid] = key
            else:
                errors.extend(f"{sid}: {e}" for e in outcome.errors or ["upload failed"])
        return ActionOutcome.fail(*errors) if errors else ActionOutcome.ok(count=len(batch))

    # ─── promote ───────────────────────────────────────

    def promote(self, action: PhaseAction, **_opt: Any) -> TransitionSequence:
        phase = action.phase

        if phase.is_bulk:
            keys = self.require(action, phase.file_data.get("cache_keys"), "uploaded files")

            async def work(targets: tuple[Any, ...]) -> ActionOutcome:
                return await self.fan_out(targets, lambda batch: self._promote_batch(phase, keys, batch))

        else:
            key = self.require(action, phase.file_data.get("cache_key"), "uploaded file")

            async def work(phase: Phase) -> ActionOutcome:
                outcome = await self.storage.promote(key)
                if outcome:
                    phase.file_data["store_key"] = key
                return outcome

        return self.sequence("promote", work, True)

    async def _promote_batch(
        self,
        phase: Phase,
        keys: Mapping[str, str],
        batch: tuple[Any, ...],
    ) -> ActionOutcome:
        promoted = phase.file_data.setdefault("store_keys", {})
        errors: list[str] = []
        for sid in self.submission_ids(batch):
            key = keys.get(sid)
            if key is None:
                errors.append(f"{sid}: not uploaded")
                continue
            outcome = await self.storage.promote(key)
            if outcome:
                promoted[sid] = key
            else:
                errors.extend(f"{sid}: {e}" for e in outcome.errors or ["promote failed"])
        return ActionOutcome.fail(*errors) if errors else ActionOutcome.ok(count=len(batch))

    # ─── cleanup ───────────────────────────────────────

    async def cleanup(self, action: PhaseAction) -> CleanupResult:
        """Delete uploaded files unless the phase completed."""
        if action.phase.state == "completed":
            return CleanupResult()
        return await self.release_uploads(action.phase)

    async def release_uploads(self, phase: Phase) -> CleanupResult:
        """Delete files the phase uploaded but never promoted, in bounded batches."""
        data = phase.file_data
        promoted = data.get("store_keys") or {}
        keys = [key for sid, key in (data.get("cache_keys") or {}).items() if sid not in promoted]
        if data.get("cache_key") and data.get("store_key") != data["cache_key"]:
            keys.append(data["cache_key"])
        if not keys:
            return CleanupResult()

        errors: list[str] = []
        for batch in chunked(keys, CLEANUP_BATCH_SIZE):
            outcome = await self.storage.delete(list(batch))
            if not outcome:
                errors.extend(outcome.errors or ["delete failed"])
        logger.info(
            "Store phase cleanup",
            phase_id=phase.id,
            state=phase.state,
            keys=len(keys),
            succeeded=not errors,
        )
        return CleanupResult(succeeded=not errors, released=keys, errors=errors)
