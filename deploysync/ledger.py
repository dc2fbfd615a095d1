"""Persisted idempotency and watermark store.

The ledger owns two tables: ``processed_tickets`` (append-only, unique per
``(ticket_id, deploy_id)``) and ``last_processed_commits`` (one row per
``(service_id, branch)``). Nothing else writes to them.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from deploysync.database import Base, create_engine
from deploysync.errors import LedgerConstraintError
from deploysync.models.last_processed_commit import LastProcessedCommit
from deploysync.models.processed_ticket import ProcessedTicket
from deploysync.schemas.events import ProcessedTicketRecord

logger = logging.getLogger(__name__)


class Ledger:
    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine
        self._session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    @classmethod
    def open(cls, database_url: str, echo: bool = False) -> Ledger:
        return cls(create_engine(database_url, echo=echo))

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    async def init_schema(self) -> None:
        """Create tables and indexes if they do not exist yet."""
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Ledger schema ready at %s", self._engine.url)

    async def close(self) -> None:
        await self._engine.dispose()

    async def was_ticket_processed_for_deploy(self, ticket_id: str, deploy_id: str) -> bool:
        async with self._session() as session:
            result = await session.execute(
                select(ProcessedTicket.id).where(
                    ProcessedTicket.ticket_id == ticket_id,
                    ProcessedTicket.deploy_id == deploy_id,
                )
            )
            return result.first() is not None

    async def record_processed_ticket(self, record: ProcessedTicketRecord) -> None:
        values = record.model_dump(exclude_none=True)
        async with self._session() as session:
            session.add(ProcessedTicket(**values))
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise LedgerConstraintError(record.ticket_id, record.deploy_id) from exc
        logger.info("Recorded %s for deploy %s", record.ticket_id, record.deploy_id)

    async def get_last_processed_commit(self, service_id: str, branch: str) -> str | None:
        async with self._session() as session:
            result = await session.execute(
                select(LastProcessedCommit.commit_id).where(
                    LastProcessedCommit.service_id == service_id,
                    LastProcessedCommit.branch == branch,
                )
            )
            return result.scalar_one_or_none()

    async def set_last_processed_commit(
        self, service_id: str, service_name: str, branch: str, commit_id: str
    ) -> None:
        now = datetime.now(timezone.utc)
        insert = pg_insert if self._engine.dialect.name == "postgresql" else sqlite_insert
        stmt = insert(LastProcessedCommit).values(
            service_id=service_id,
            service_name=service_name,
            branch=branch,
            commit_id=commit_id,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["service_id", "branch"],
            set_={
                "commit_id": stmt.excluded.commit_id,
                "service_name": stmt.excluded.service_name,
                "updated_at": stmt.excluded.updated_at,
            },
        )
        async with self._session() as session:
            await session.execute(stmt)
            await session.commit()
        logger.info(
            "Watermark for %s@%s is now %s", service_name or service_id, branch, commit_id[:7]
        )

    async def list_processed_tickets(self, limit: int = 100) -> list[ProcessedTicketRecord]:
        async with self._session() as session:
            result = await session.execute(
                select(ProcessedTicket)
                .order_by(ProcessedTicket.processed_at.desc(), ProcessedTicket.id.desc())
                .limit(limit)
            )
            return [ProcessedTicketRecord.model_validate(row) for row in result.scalars()]

    async def get_ticket_history(self, ticket_id: str) -> list[ProcessedTicketRecord]:
        async with self._session() as session:
            result = await session.execute(
                select(ProcessedTicket)
                .where(ProcessedTicket.ticket_id == ticket_id.upper())
                .order_by(ProcessedTicket.processed_at.desc(), ProcessedTicket.id.desc())
            )
            return [ProcessedTicketRecord.model_validate(row) for row in result.scalars()]
