"""
Models package — re-exports Base and all models.

When adding a new model:
    1. Create `phaseflow/db/models/<table_name>.py`
    2. Import it here
"""

from phaseflow.db.models.base import Base
from phaseflow.db.models.phase_record import PhaseRecord

__all__ = [
    "Base",
    "PhaseRecord",
]
