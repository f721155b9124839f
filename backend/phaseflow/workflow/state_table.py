"""
StateTable — static per-kind tables of legal states and transitions.

Each phase kind has one immutable table: a mapping of state name to
StateConfig (allowed next states, optional human-readable note, theme
group).  A state with no next states is terminal.  Every table starts at
"started" and designates "aborted" as the state a failed step lands in.

Tables are built and validated once at import time.  A broken table is a
programming error, so validation raises StateTableError rather than
returning a result.

To add a new phase kind:
    1. Add it to PhaseKind in core/constants.py
    2. Define its states below and add it to _SINGLE_TABLES
    3. Register a handler for it in workflow/registry.py
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace

from phaseflow.core.config import settings
from phaseflow.core.constants import (
    FAILURE_STATE,
    START_STATE,
    PhaseKind,
    StateGroup,
)
from phaseflow.core.logging import get_logger
from phaseflow.workflow.errors import StateTableError

logger = get_logger(__name__)


@dataclass(frozen=True)
class StateConfig:
    """Configuration for one state within a table."""

    next: tuple[str, ...] = ()
    note: str | None = None          # label with optional %{...} references
    group: StateGroup | None = None

    @property
    def terminal(self) -> bool:
        return not self.next


@dataclass(frozen=True)
class StateTable:
    """Immutable state graph for one phase kind."""

    kind: PhaseKind
    states: Mapping[str, StateConfig]
    start: str = START_STATE
    failure: str = FAILURE_STATE
    final: frozenset[str] = field(default_factory=frozenset)

    # ─── Queries ───────────────────────────────────────

    def __contains__(self, state: object) -> bool:
        return state in self.states

    @property
    def state_names(self) -> list[str]:
        return list(self.states)

    @property
    def terminal_states(self) -> list[str]:
        return [name for name, cfg in self.states.items() if cfg.terminal]

    def transitions(self, state: str) -> tuple[str, ...]:
        """Legal next states from *state* (empty for terminal or unknown)."""
        config = self.states.get(state)
        return config.next if config else ()

    def allows(self, from_state: str, to_state: str) -> bool:
        return to_state in self.transitions(from_state)

    def is_terminal(self, state: str) -> bool:
        config = self.states.get(state)
        return config is not None and config.terminal

    def note(self, state: str) -> str | None:
        config = self.states.get(state)
        return config.note if config else None

    def group(self, state: str) -> StateGroup:
        config = self.states.get(state)
        return (config and config.group) or StateGroup.ALL

    # ─── Validation ────────────────────────────────────

    def validate(self, referenced: Iterable[str] = ()) -> None:
        """
        Check table definitions and interconnections.

        Args:
            referenced: Additional state names used elsewhere (e.g. in a
                handler's transition sequences) that must exist here.

        Raises:
            StateTableError: With every problem found, joined by "; ".
        """
        errors: list[str] = []
        names = set(self.states)

        for state, config in self.states.items():
            for target in config.next:
                if target not in names:
                    errors.append(f"{state}[next]: invalid state {target!r}")
                if target == self.start:
                    errors.append(f"{state}[next]: start state {self.start!r} has an incoming edge")
            if state in self.final and config.next:
                errors.append(f"{state}: final state has outgoing edges {list(config.next)}")

        for state in referenced:
            if state not in names:
                errors.append(f"referenced state {state!r} not in table")

        if self.start not in names:
            errors.append(f"start state {self.start!r} missing")
        if self.failure not in names:
            errors.append(f"failure state {self.failure!r} missing")
        elif not self.states[self.failure].terminal:
            errors.append(f"failure state {self.failure!r} is not terminal")

        if self.start in names:
            for state in sorted(names - self._reachable()):
                errors.append(f"{state}: unreachable from {self.start!r}")

        if errors:
            raise StateTableError(
                f"state table {self.kind.value!r} invalid: " + "; ".join(errors),
                kind=self.kind.value,
                details={"errors": errors},
            )

    def _reachable(self) -> set[str]:
        seen = {self.start}
        pending = [self.start]
        while pending:
            for target in self.transitions(pending.pop()):
                if target in self.states and target not in seen:
                    seen.add(target)
                    pending.append(target)
        return seen


class StateTableRegistry:
    """
    Lookup of StateTable by PhaseKind.

    Passed into PhaseAction at construction so tests and alternative
    deployments can supply their own tables.
    """

    def __init__(self, tables: Iterable[StateTable] = ()) -> None:
        self._tables: dict[PhaseKind, StateTable] = {}
        for table in tables:
            self.register(table)

    def register(self, table: StateTable) -> None:
        self._tables[table.kind] = table

    def get(self, kind: PhaseKind | str) -> StateTable:
        try:
            return self._tables[PhaseKind(kind)]
        except (KeyError, ValueError) as exc:
            raise StateTableError(
                f"no state table for kind {kind!r}",
                kind=str(kind),
            ) from exc

    def __contains__(self, kind: object) -> bool:
        return kind in self._tables

    def kinds(self) -> list[PhaseKind]:
        return list(self._tables)

    def validate_all(self) -> None:
        for table in self._tables.values():
            table.validate()
        logger.debug("State tables validated", kinds=[k.value for k in self._tables])


# ═══════════════════════════════════════════════════════════
#  Default tables
# ═══════════════════════════════════════════════════════════

_C, _S, _F, _RV, _RM, _D, _X = (
    StateGroup.CREATE,
    StateGroup.SUBMISSION,
    StateGroup.FINALIZATION,
    StateGroup.REVIEW,
    StateGroup.REMOVE,
    StateGroup.DONE,
    StateGroup.FAILED,
)

_ENDINGS = {
    "canceled": StateConfig(group=_D),
    "aborted": StateConfig(group=_X),
}

STORE_STATES = {
    "started":   StateConfig(("uploading", "canceled", "aborted"), group=_C),
    "uploading": StateConfig(("uploaded", "aborted"), note="uploading file for %{sid}", group=_C),
    "uploaded":  StateConfig(("promoting", "canceled", "aborted"), note="file for %{sid} is awaiting promotion", group=_C),
    "promoting": StateConfig(("completed", "aborted"), note="moving file for %{sid} to permanent storage", group=_C),
    "completed": StateConfig(group=_D),
    **_ENDINGS,
}

EDIT_STATES = {
    "started":    StateConfig(("uploading", "canceled", "aborted"), group=_C),
    "uploading":  StateConfig(("uploaded", "aborted"), note="uploading replacement file for %{sid}", group=_C),
    "uploaded":   StateConfig(("replacing", "canceled", "aborted"), note="replacement file for %{sid} is awaiting promotion", group=_C),
    "replacing":  StateConfig(("replaced", "aborted"), note="replacing stored file for %{sid}", group=_C),
    "replaced":   StateConfig(("indexing", "submitting", "canceled", "aborted"), note="stored file for %{sid} replaced", group=_C),
    "indexing":   StateConfig(("indexed", "aborted"), group=_F),
    "indexed":    StateConfig(note="index entry for %{sid} updated", group=_D),
    "submitting": StateConfig(("submitted", "aborted"), group=_S),
    "submitted":  StateConfig(note="modifications sent to %{repo}", group=_D),
    **_ENDINGS,
}

INDEX_STATES = {
    "started":  StateConfig(("indexing", "canceled", "aborted"), group=_F),
    "indexing": StateConfig(("indexed", "aborted"), group=_F),
    "indexed":  StateConfig(note="%{Sid} is in the index", group=_D),
    **_ENDINGS,
}

QUEUE_STATES = {
    "started":     StateConfig(("submitting", "canceled", "aborted"), group=_S),
    "submitting":  StateConfig(("unretrieved", "aborted"), group=_S),
    "unretrieved": StateConfig(("retrieved", "aborted"), note="waiting for %{repo} to retrieve %{targets}", group=_S),
    "retrieved":   StateConfig(note="retrieved by %{repo}", group=_D),
    **_ENDINGS,
}


def _removal_states(working: str) -> dict[str, StateConfig]:
    return {
        "started":   StateConfig((working, "canceled", "aborted"), group=_RM),
        working:     StateConfig(("completed", "aborted"), group=_RM),
        "completed": StateConfig(group=_D),
        **_ENDINGS,
    }


REVIEW_STATES = {
    "started":    StateConfig(("scheduling", "canceling", "aborted"), group=_RV),
    "scheduling": StateConfig(("assigned", "canceling", "aborted"), group=_RV),
    "assigned":   StateConfig(("reviewing", "canceling", "aborted"), note="has been submitted for review", group=_RV),
    "reviewing":  StateConfig(("approved", "rejected", "canceling", "aborted"), note="is now being reviewed", group=_RV),
    "canceling":  StateConfig(("canceled", "aborted"), group=_RV),
    "approved":   StateConfig(note="was reviewed and approved", group=_D),
    "rejected":   StateConfig(note="was reviewed and rejected", group=_D),
    "canceled":   StateConfig(note="canceled after being submitted for review", group=_D),
    "aborted":    StateConfig(group=_X),
}

SCHEDULE_STATES = {
    "started":    StateConfig(("scheduling", "canceled", "aborted"), group=_RV),
    "scheduling": StateConfig(("scheduled", "aborted"), group=_RV),
    "scheduled":  StateConfig(note="review scheduled for %{sid}", group=_D),
    **_ENDINGS,
}

_SINGLE_TABLES: dict[PhaseKind, dict[str, StateConfig]] = {
    PhaseKind.STORE: STORE_STATES,
    PhaseKind.EDIT: EDIT_STATES,
    PhaseKind.INDEX: INDEX_STATES,
    PhaseKind.QUEUE: QUEUE_STATES,
    PhaseKind.UNQUEUE: _removal_states("dequeuing"),
    PhaseKind.UNSTORE: _removal_states("unstoring"),
    PhaseKind.UNINDEX: _removal_states("deindexing"),
    PhaseKind.UNRECORD: _removal_states("unrecording"),
    PhaseKind.REVIEW: REVIEW_STATES,
    PhaseKind.SCHEDULE: SCHEDULE_STATES,
}


# A failed run or restart returns to "started", from which it can be restarted.
OPERATION_STATES = {
    "started":    StateConfig(("running", "restarting", "canceling", "aborted"), group=_C),
    "running":    StateConfig(("completed", "canceling", "aborted"), note="running bulk steps for %{targets}", group=_C),
    "restarting": StateConfig(("running", "aborted"), note="restarting unfinished steps for %{targets}", group=_C),
    "canceling":  StateConfig(("canceled", "aborted"), group=_C),
    "completed":  StateConfig(group=_D),
    "canceled":   StateConfig(group=_D),
    "aborted":    StateConfig(group=_X),
}

_BULK_ONLY_TABLES: dict[PhaseKind, dict[str, StateConfig]] = {
    PhaseKind.BATCH_OPERATION: OPERATION_STATES,
}


def build_default_registry(validate: bool = True) -> StateTableRegistry:
    """
    Build the registry of every single and bulk kind.

    Bulk kinds reuse the graph of their single counterpart, except the
    bulk-only kinds which have their own.
    """
    registry = StateTableRegistry()
    for kind, states in {**_SINGLE_TABLES, **_BULK_ONLY_TABLES}.items():
        finals = frozenset(name for name, cfg in states.items() if cfg.terminal)
        registry.register(StateTable(kind=kind, states=states, final=finals))

    for kind in PhaseKind:
        if kind.is_bulk and kind not in registry:
            registry.register(replace(registry.get(kind.single), kind=kind))

    if validate:
        registry.validate_all()
    return registry


DEFAULT_STATE_TABLES = build_default_registry(validate=settings.VALIDATE_STATE_TABLES)
