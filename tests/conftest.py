"""Shared fixtures: in-memory collaborators wired into a handler registry."""

import pytest

from fakes import (
    CallbackRecorder,
    MemoryIndex,
    MemoryObjectStorage,
    MemoryRepository,
    MemoryReview,
)
from phaseflow.persistence import MemoryPhaseStore
from phaseflow.workflow import (
    DEFAULT_STATE_TABLES,
    CallbackDispatcher,
    Phase,
    build_action,
    build_handler_registry,
)


@pytest.fixture
def storage():
    return MemoryObjectStorage()


@pytest.fixture
def index():
    return MemoryIndex()


@pytest.fixture
def repository():
    return MemoryRepository()


@pytest.fixture
def review():
    return MemoryReview()


@pytest.fixture
def phase_store():
    return MemoryPhaseStore()


@pytest.fixture
def handlers(storage, index, repository, review, phase_store):
    return build_handler_registry(
        storage=storage,
        index=index,
        repository=repository,
        review=review,
        records=phase_store,
        batch_size=2,
        tables=DEFAULT_STATE_TABLES,
    )


@pytest.fixture
def dispatcher():
    return CallbackDispatcher()


@pytest.fixture
def callback():
    return CallbackRecorder()


@pytest.fixture
def make_action(handlers, dispatcher):
    """Build a PhaseAction (or BulkAction) for a new phase of *kind*."""

    def _make(kind, **fields):
        fields.setdefault("submission_id", "u1a2b3c4d")
        phase = Phase(kind=kind, **fields)
        return build_action(phase, handlers=handlers, dispatcher=dispatcher)

    return _make
