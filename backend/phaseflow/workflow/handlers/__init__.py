"""Per-kind verb strategies."""

from phaseflow.workflow.handlers.base import PhaseHandler, TransitionSequence, Work
from phaseflow.workflow.handlers.edit import EditHandler
from phaseflow.workflow.handlers.index import IndexHandler
from phaseflow.workflow.handlers.operation import OperationHandler, OperationStep
from phaseflow.workflow.handlers.queue import QueueHandler
from phaseflow.workflow.handlers.removal import (
    RemovalHandler,
    UnindexHandler,
    UnqueueHandler,
    UnrecordHandler,
    UnstoreHandler,
)
from phaseflow.workflow.handlers.review import ReviewHandler, ScheduleHandler
from phaseflow.workflow.handlers.store import StoreHandler

__all__ = [
    "EditHandler",
    "IndexHandler",
    "OperationHandler",
    "OperationStep",
    "PhaseHandler",
    "QueueHandler",
    "RemovalHandler",
    "ReviewHandler",
    "ScheduleHandler",
    "StoreHandler",
    "TransitionSequence",
    "UnindexHandler",
    "UnqueueHandler",
    "UnrecordHandler",
    "UnstoreHandler",
    "Work",
]
