"""
EditHandler — replace an existing submission's file and republish it.

    upload    started  -> uploading -> uploaded
    promote   uploaded -> replacing -> replaced
    index     replaced -> indexing  -> indexed     (native repository)
    submit    replaced -> submitting -> submitted  (member repository)
    cancel    started | uploaded | replaced -> canceled

The work of each verb is the store, index and queue handlers' own; only
the states it moves through differ.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from phaseflow.core.constants import PhaseKind
from phaseflow.workflow.handlers.base import PhaseHandler, TransitionSequence
from phaseflow.workflow.handlers.index import IndexHandler
from phaseflow.workflow.handlers.queue import QueueHandler
from phaseflow.workflow.handlers.store import StoreHandler
from phaseflow.workflow.phase import CleanupResult

if TYPE_CHECKING:
    from phaseflow.workflow.engine import PhaseAction


class EditHandler(PhaseHandler):
    """Verbs for ``edit`` and ``batch_edit`` phases."""

    kinds = (PhaseKind.EDIT, PhaseKind.BATCH_EDIT)
    transitions = {
        "upload": ("uploading", "uploaded"),
        "promote": ("replacing", "replaced"),
        "index": ("indexing", "indexed"),
        "submit": ("submitting", "submitted"),
        "cancel": ("canceled",),
    }

    def __init__(
        self,
        store: StoreHandler,
        index: IndexHandler,
        queue: QueueHandler,
        batch_size: int | None = None,
    ) -> None:
        super().__init__(batch_size)
        self.store = store
        self.index_handler = index
        self.queue = queue

    def _rename(self, verb: str, sequence: TransitionSequence) -> TransitionSequence:
        return self.sequence(verb, *sequence.values())

    def upload(self, action: PhaseAction, *args: Any, **opt: Any) -> TransitionSequence:
        return self._rename("upload", self.store.upload(action, *args, **opt))

    def promote(self, action: PhaseAction, **opt: Any) -> TransitionSequence:
        return self._rename("promote", self.store.promote(action, **opt))

    def index(self, action: PhaseAction, **opt: Any) -> TransitionSequence:
        return self._rename("index", self.index_handler.index(action, **opt))

    def submit(self, action: PhaseAction, **opt: Any) -> TransitionSequence:
        return self._rename("submit", self.queue.submit(action, **opt))

    async def cleanup(self, action: PhaseAction) -> CleanupResult:
        """Delete the replacement upload unless it was promoted."""
        return await self.store.release_uploads(action.phase)
