# Standard library imports
from collections.abc import Mapping
from typing import Any
from uuid import UUID

# Third-party imports
from sqlalchemy import and_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

# Local application imports
from civicsync.core.monitoring.logging import get_contextual_logger
from civicsync.models.reports import ReportRow
from civicsync.schemas.reports import Report, ReportCategory, ReportCreate, ReportStatus
from civicsync.services.realtime import ChangeEvent, RedisChangeChannel
from civicsync.settings import settings
from civicsync.sync.exceptions import TransportError, UnknownReportError

logger = get_contextual_logger(__name__)

# Columns a patch may touch; everything else is owned by the database
WRITABLE_COLUMNS = frozenset({"title", "description", "category", "status", "address"})


class ReportService:
    """
    Postgres-backed fetcher and writer for the sync layer.

    Every successful write is published on the change channel so that other
    sessions (and this one) receive the echo.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        publisher: RedisChangeChannel | None = None,
        fetch_limit: int | None = None,
    ):
        if session_factory is None:
            # Local application imports
            from civicsync.core.db import AsyncSessionLocal

            session_factory = AsyncSessionLocal
        self._session_factory = session_factory
        self._publisher = publisher
        self._fetch_limit = fetch_limit if fetch_limit is not None else settings.SYNC_FETCH_LIMIT

    async def fetch_all(self, filter_hints: Mapping[str, Any] | None = None) -> list[Report]:
        """Full collection, newest first; ``status``/``category`` hints narrow it server side."""
        query = select(ReportRow)

        # Apply filters
        filters = []
        hints = filter_hints or {}
        if hints.get("status") not in (None, "all"):
            filters.append(ReportRow.status == ReportStatus(hints["status"]))
        if hints.get("category") not in (None, "all"):
            filters.append(ReportRow.category == ReportCategory(hints["category"]))
        if filters:
            query = query.where(and_(*filters))

        query = query.order_by(ReportRow.created_at.desc())
        if self._fetch_limit:
            query = query.limit(self._fetch_limit)

        try:
            async with self._session_factory() as db:
                result = await db.execute(query)
                rows = result.scalars().all()
        except SQLAlchemyError as e:
            raise TransportError(f"Fetching reports failed: {e}") from e

        reports = [row.to_report() for row in rows]
        logger.bind(count=len(reports)).debug("Fetched reports")
        return reports

    async def write_status(self, report_id: str, status: ReportStatus) -> Report:
        return await self.update_report(report_id, {"status": status})

    async def update_report(self, report_id: str, fields: Mapping[str, Any]) -> Report:
        unknown = set(fields) - WRITABLE_COLUMNS
        if unknown:
            raise TransportError(f"Cannot write columns {sorted(unknown)}")

        try:
            row_id = UUID(report_id)
        except ValueError:
            raise UnknownReportError(report_id) from None

        try:
            async with self._session_factory() as db:
                result = await db.execute(select(ReportRow).where(ReportRow.id == row_id))
                row = result.scalar_one_or_none()
                if row is None:
                    raise UnknownReportError(report_id)

                for name, value in fields.items():
                    setattr(row, name, value)

                try:
                    await db.commit()
                except Exception as e:
                    await db.rollback()
                    raise e
                await db.refresh(row)
                report = row.to_report()
        except SQLAlchemyError as e:
            raise TransportError(f"Updating report {report_id} failed: {e}") from e

        await self._publish(ChangeEvent.UPDATE, report)
        return report

    async def create_report(self, fields: ReportCreate) -> Report:
        location = fields.location
        row = ReportRow(
            title=fields.title,
            description=fields.description,
            category=fields.category,
            status=ReportStatus.OPEN,
            latitude=location.latitude if location else None,
            longitude=location.longitude if location else None,
            address=fields.address,
            image_url=fields.image_reference,
        )

        try:
            async with self._session_factory() as db:
                db.add(row)
                try:
                    await db.commit()
                except Exception as e:
                    await db.rollback()
                    raise e
                await db.refresh(row)
                report = row.to_report()
        except SQLAlchemyError as e:
            raise TransportError(f"Creating report failed: {e}") from e

        await self._publish(ChangeEvent.INSERT, report)
        return report

    async def _publish(self, event: ChangeEvent, report: Report) -> None:
        if self._publisher is None:
            return
        try:
            await self._publisher.publish(event, report)
        except TransportError as e:
            # The row is committed; sessions that miss the echo catch up on their next resync
            logger.bind(report_id=report.id).warning(f"Change was stored but not broadcast: {e}")
