"""
HandlerRegistry — maps each PhaseKind to the handler owning its verbs.

Handlers are built with their collaborators injected, so tests can pass
fakes and production code passes the concrete clients.

To add a new phase kind:
    1. Add its state table in workflow/state_table.py
    2. Write a PhaseHandler subclass in workflow/handlers/
    3. Register it in build_handler_registry() below
"""

from __future__ import annotations

from collections.abc import Iterable
from functools import lru_cache

from phaseflow.clients.protocols import (
    IndexService,
    MemberRepository,
    ObjectStorage,
    ReviewService,
    SubmissionRecords,
)
from phaseflow.core.constants import PhaseKind
from phaseflow.core.logging import get_logger
from phaseflow.workflow.errors import ConstructionError
from phaseflow.workflow.handlers import (
    EditHandler,
    IndexHandler,
    OperationHandler,
    PhaseHandler,
    QueueHandler,
    ReviewHandler,
    ScheduleHandler,
    StoreHandler,
    UnindexHandler,
    UnqueueHandler,
    UnrecordHandler,
    UnstoreHandler,
)
from phaseflow.workflow.state_table import StateTableRegistry

logger = get_logger(__name__)


class HandlerRegistry:
    """Lookup of PhaseHandler by PhaseKind."""

    def __init__(self, handlers: Iterable[PhaseHandler] = ()) -> None:
        self._by_kind: dict[PhaseKind, PhaseHandler] = {}
        for handler in handlers:
            self.register(handler)

    def register(self, handler: PhaseHandler) -> None:
        for kind in handler.kinds:
            self._by_kind[kind] = handler

    def get(self, kind: PhaseKind | str) -> PhaseHandler:
        try:
            return self._by_kind[PhaseKind(kind)]
        except (KeyError, ValueError) as exc:
            raise ConstructionError(f"no handler registered for kind {kind!r}", kind=str(kind)) from exc

    def __contains__(self, kind: object) -> bool:
        return kind in self._by_kind

    def kinds(self) -> list[PhaseKind]:
        return list(self._by_kind)

    def validate(self, tables: StateTableRegistry) -> None:
        """Check every handler's declared states against its kind's table."""
        for kind, handler in self._by_kind.items():
            tables.get(kind).validate(referenced=handler.referenced_states())
        logger.debug("Handler registry validated", kinds=[k.value for k in self._by_kind])


def build_handler_registry(
    *,
    storage: ObjectStorage,
    index: IndexService,
    repository: MemberRepository,
    review: ReviewService,
    records: SubmissionRecords,
    batch_size: int | None = None,
    tables: StateTableRegistry | None = None,
) -> HandlerRegistry:
    """Build the registry of every kind with the given collaborators."""
    store = StoreHandler(storage, batch_size)
    indexer = IndexHandler(index, batch_size)
    queue = QueueHandler(repository, batch_size)
    registry = HandlerRegistry([
        store,
        indexer,
        queue,
        EditHandler(store, indexer, queue, batch_size),
        UnqueueHandler(repository, batch_size),
        UnstoreHandler(storage, batch_size),
        UnindexHandler(index, batch_size),
        UnrecordHandler(records, batch_size),
        ReviewHandler(review, batch_size),
        ScheduleHandler(review, batch_size),
        OperationHandler(batch_size),
    ])
    if tables is not None:
        registry.validate(tables)
    return registry


@lru_cache(maxsize=1)
def default_handler_registry() -> HandlerRegistry:
    """Registry wired to the production clients configured in settings."""
    from phaseflow.clients import (
        IndexClient,
        MemberRepositoryClient,
        ReviewClient,
        S3ObjectStorage,
    )
    from phaseflow.persistence.sql_store import SqlPhaseStore
    from phaseflow.workflow.state_table import DEFAULT_STATE_TABLES

    return build_handler_registry(
        storage=S3ObjectStorage.from_settings(),
        index=IndexClient(),
        repository=MemberRepositoryClient(),
        review=ReviewClient(),
        records=SqlPhaseStore.from_settings(),
        tables=DEFAULT_STATE_TABLES,
    )
