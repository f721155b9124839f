"""Shared constants and enums used across the application."""

from enum import StrEnum


class PhaseKind(StrEnum):
    """Which state table and handler apply to a phase."""

    STORE = "store"
    EDIT = "edit"
    INDEX = "index"
    QUEUE = "queue"
    UNQUEUE = "unqueue"
    UNSTORE = "unstore"
    UNINDEX = "unindex"
    UNRECORD = "unrecord"
    REVIEW = "review"
    SCHEDULE = "schedule"

    # ── Bulk counterparts ────────────────────
    BATCH_STORE = "batch_store"
    BATCH_EDIT = "batch_edit"
    BATCH_INDEX = "batch_index"
    BATCH_QUEUE = "batch_queue"
    BATCH_UNQUEUE = "batch_unqueue"
    BATCH_UNSTORE = "batch_unstore"
    BATCH_UNINDEX = "batch_unindex"
    BATCH_UNRECORD = "batch_unrecord"

    # Drives a run of bulk steps over one target list; no single form.
    BATCH_OPERATION = "batch_operation"

    @property
    def is_bulk(self) -> bool:
        return self.value.startswith("batch_")

    @property
    def single(self) -> "PhaseKind | None":
        """The single-target kind sharing this kind's state graph, if any."""
        try:
            return PhaseKind(self.value.removeprefix("batch_"))
        except ValueError:
            return None


class Condition(StrEnum):
    """Outcome flag orthogonal to a phase's state."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"


class Command(StrEnum):
    """Directives a step leaves for the controlling workflow."""

    RETRY = "retry"


class StateGroup(StrEnum):
    """Thematic grouping of workflow states."""

    CREATE = "create"
    SUBMISSION = "submission"
    FINALIZATION = "finalization"
    REVIEW = "review"
    REMOVE = "remove"
    DONE = "done"
    FAILED = "failed"
    ALL = "all"


# Default start and failure states shared by every state table.
START_STATE = "started"
FAILURE_STATE = "aborted"


# Repository key for items indexed directly rather than queued to a member
# repository.
NATIVE_REPOSITORY = "emma"


class HTTPMethod(StrEnum):
    """HTTP methods used by the collaborator clients."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"
