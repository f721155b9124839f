"""Phase persistence: the PhaseStore interface and its implementations."""

from phaseflow.persistence.memory_store import MemoryPhaseStore
from phaseflow.persistence.protocols import PhaseStore
from phaseflow.persistence.sql_store import SqlPhaseStore

__all__ = ["MemoryPhaseStore", "PhaseStore", "SqlPhaseStore"]
