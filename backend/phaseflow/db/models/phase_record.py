"""
PhaseRecord — persisted form of a Phase control record.

One row per phase.  Free-form payloads (file_data, emma_data, targets)
use the generic JSON type so the table works on PostgreSQL and SQLite.
"""

from __future__ import annotations

from sqlalchemy import JSON, Column, DateTime, Integer, String, Text

from phaseflow.db.models.base import Base, generate_uuid, utcnow


class PhaseRecord(Base):
    """One row per phase."""

    __tablename__ = "phases"

    id = Column(String(36), primary_key=True, default=generate_uuid)

    # ── Kind / Progress ──────────────────────
    kind = Column(String(32), nullable=False, index=True)
    state = Column(String(32), nullable=False, default="started", index=True)
    condition = Column(String(16), nullable=True)
    command = Column(String(16), nullable=True)
    note = Column(Text, nullable=True)
    retries = Column(Integer, nullable=False, default=0)

    # ── Subject ──────────────────────────────
    submission_id = Column(String(64), nullable=True, index=True)
    repository = Column(String(64), nullable=True)
    user = Column(String(255), nullable=True)
    remarks = Column(Text, nullable=True)

    # ── Payloads ─────────────────────────────
    file_data = Column(JSON, default=dict)
    emma_data = Column(JSON, default=dict)
    targets = Column(JSON, default=list)

    # ── Audit timestamps ─────────────────────
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<PhaseRecord {self.id} kind={self.kind} state={self.state} condition={self.condition}>"
