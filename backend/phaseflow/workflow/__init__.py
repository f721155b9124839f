"""
Phase workflow engine — drives submission phases through their state tables.

Core flow:
    1. A caller invokes a verb on a PhaseAction or BulkAction
    2. The kind's handler builds a transition sequence
    3. The engine runs each entry only if the table allows the transition
    4. Success or failure is recorded on the phase
    5. The completion callback is dispatched exactly once
"""

from phaseflow.workflow.bulk import BulkAction
from phaseflow.workflow.callbacks import (
    CallbackDispatcher,
    CallbackRegistry,
    CeleryCallbackDispatcher,
    callback_registry,
)
from phaseflow.workflow.describe import StatusDescriber, describe_status, describe_type
from phaseflow.workflow.engine import PhaseAction, build_action
from phaseflow.workflow.errors import (
    ConstructionError,
    IllegalTransitionError,
    MissingPreconditionError,
    PhaseError,
    StateTableError,
    StepExecutionError,
)
from phaseflow.workflow.phase import ActionOutcome, CleanupResult, Phase
from phaseflow.workflow.registry import HandlerRegistry, build_handler_registry
from phaseflow.workflow.state_table import (
    DEFAULT_STATE_TABLES,
    StateConfig,
    StateTable,
    StateTableRegistry,
)
from phaseflow.workflow.submission import SubmissionResult, SubmissionWorkflow
from phaseflow.workflow.targets import chunked, describe_targets

__all__ = [
    "ActionOutcome",
    "BulkAction",
    "CallbackDispatcher",
    "CallbackRegistry",
    "CeleryCallbackDispatcher",
    "CleanupResult",
    "ConstructionError",
    "DEFAULT_STATE_TABLES",
    "HandlerRegistry",
    "IllegalTransitionError",
    "MissingPreconditionError",
    "Phase",
    "PhaseAction",
    "PhaseError",
    "StateConfig",
    "StateTable",
    "StateTableError",
    "StateTableRegistry",
    "StatusDescriber",
    "StepExecutionError",
    "SubmissionResult",
    "SubmissionWorkflow",
    "build_action",
    "build_handler_registry",
    "callback_registry",
    "chunked",
    "describe_status",
    "describe_targets",
    "describe_type",
]
