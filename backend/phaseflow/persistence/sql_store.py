"""
SqlPhaseStore — PhaseStore backed by SQLAlchemy (async).

Production uses PostgreSQL via asyncpg; any async SQLAlchemy URL works
(tests use ``sqlite+aiosqlite``).
"""

from __future__ import annotations

from collections.abc import Sequence

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from phaseflow.core.logging import get_logger
from phaseflow.db.models import Base, PhaseRecord
from phaseflow.db.session import make_engine, make_session_factory
from phaseflow.workflow.phase import ActionOutcome, Phase

logger = get_logger(__name__)


def _to_record(phase: Phase, record: PhaseRecord | None = None) -> PhaseRecord:
    data = phase.to_dict()
    record = record or PhaseRecord(id=phase.id)
    record.kind = data["kind"]
    record.state = data["state"]
    record.condition = data["condition"]
    record.command = data["command"]
    record.note = data["note"]
    record.retries = data["retries"]
    record.submission_id = data["submission_id"]
    record.repository = data["repository"]
    record.user = data["user"]
    record.remarks = data["remarks"]
    record.file_data = data["file_data"]
    record.emma_data = data["emma_data"]
    record.targets = data["targets"]
    record.created_at = phase.created_at
    record.updated_at = phase.updated_at
    return record


def _to_phase(record: PhaseRecord) -> Phase:
    return Phase.from_dict({
        "id": record.id,
        "kind": record.kind,
        "state": record.state,
        "condition": record.condition,
        "command": record.command,
        "note": record.note,
        "retries": record.retries,
        "submission_id": record.submission_id,
        "repository": record.repository,
        "user": record.user,
        "remarks": record.remarks,
        "file_data": record.file_data,
        "emma_data": record.emma_data,
        "targets": record.targets,
        "created_at": record.created_at,
        "updated_at": record.updated_at,
    })


class SqlPhaseStore:
    """Stores phases in the ``phases`` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    @classmethod
    def from_settings(cls) -> SqlPhaseStore:
        return cls(make_session_factory(make_engine()))

    @classmethod
    def from_url(cls, url: str) -> SqlPhaseStore:
        return cls(make_session_factory(make_engine(url)))

    @staticmethod
    async def create_schema(engine: AsyncEngine) -> None:
        """Create the tables if missing (scripts and tests)."""
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def load(self, phase_id: str) -> Phase | None:
        async with self._session_factory() as session:
            record = await session.get(PhaseRecord, phase_id)
            return _to_phase(record) if record else None

    async def save(self, phase: Phase) -> None:
        async with self._session_factory() as session:
            async with session.begin():
                existing = await session.get(PhaseRecord, phase.id)
                record = _to_record(phase, existing)
                if existing is None:
                    session.add(record)
        logger.debug("Phase saved", phase_id=phase.id, kind=phase.kind.value, state=phase.state)

    async def delete(self, phase_id: str) -> bool:
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(delete(PhaseRecord).where(PhaseRecord.id == phase_id))
        return result.rowcount > 0

    async def list_for_submission(self, submission_id: str) -> list[Phase]:
        async with self._session_factory() as session:
            rows = await session.scalars(
                select(PhaseRecord)
                .where(PhaseRecord.submission_id == submission_id)
                .order_by(PhaseRecord.created_at)
            )
            return [_to_phase(r) for r in rows]

    async def remove_submissions(self, submission_ids: Sequence[str]) -> ActionOutcome:
        if not submission_ids:
            return ActionOutcome.ok(removed=0)
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    delete(PhaseRecord).where(PhaseRecord.submission_id.in_(list(submission_ids)))
                )
        logger.info("Submission records removed", submissions=len(submission_ids), rows=result.rowcount)
        return ActionOutcome.ok(removed=result.rowcount)
