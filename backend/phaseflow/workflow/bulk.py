"""
BulkAction — the transition engine applied to a batch of targets.

Shares all of PhaseAction's machinery.  The differences:
    - construction requires a bulk kind and at least one target
    - work functions receive the full ``targets`` tuple once per entry
    - status text summarises the targets via ``describe_targets``
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from phaseflow.core.constants import PhaseKind
from phaseflow.workflow.engine import PhaseAction
from phaseflow.workflow.errors import ConstructionError
from phaseflow.workflow.phase import Phase
from phaseflow.workflow.targets import chunked, describe_targets

__all__ = ["BulkAction", "chunked", "describe_targets"]


class BulkAction(PhaseAction):
    """Drives a bulk phase; see PhaseAction for the verb interface."""

    bulk = True

    def __init__(self, phase: Phase, **kwargs: Any) -> None:
        if not phase.targets:
            raise ConstructionError(
                f"{phase.kind.value}: bulk action requires at least one target",
                phase_id=phase.id,
                kind=phase.kind.value,
            )
        super().__init__(phase, **kwargs)

    @classmethod
    def create(
        cls,
        kind: PhaseKind | str,
        targets: Iterable[Any],
        *,
        tables=None,
        handlers=None,
        dispatcher=None,
        describer=None,
        **fields: Any,
    ) -> BulkAction:
        """
        Build a bulk phase and its action in one go.

        Args:
            kind: A bulk PhaseKind.
            targets: Item references; must not be empty.
            **fields: Other Phase fields (repository, user, ...).
        """
        targets = tuple(targets)
        if not targets:
            raise ConstructionError(
                f"{PhaseKind(kind).value}: bulk action requires at least one target",
                kind=str(kind),
            )
        phase = Phase(kind=PhaseKind(kind), targets=targets, **fields)
        return cls(
            phase,
            tables=tables,
            handlers=handlers,
            dispatcher=dispatcher,
            describer=describer,
        )

    @property
    def targets(self) -> tuple[Any, ...]:
        return self.phase.targets

    @property
    def work_argument(self) -> tuple[Any, ...]:
        """What each work function receives: the full target tuple."""
        return self.phase.targets

    def describe_targets(self) -> str:
        return describe_targets(self.phase.targets)
