"""Storage service - persistence boundary for endpoints and hits.

Every method opens its own session, so the service is safe to share between
concurrently running probes and API requests. Writes run as a unit of work
that is retried from scratch, in a fresh session, when the database is
temporarily locked.
"""
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, List, TypeVar

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..exceptions import EndpointNotFoundError, InvalidEndpointError
from ..models import EndpointRecord, HitRecord
from ..schemas import Endpoint, EndpointCreate, EndpointUpdate, Hit
from ..utils.db_utils import retry_on_lock

logger = logging.getLogger(__name__)

T = TypeVar('T')


def _to_db_time(value: datetime) -> datetime:
    """Convert to the naive UTC datetimes stored in the hits table."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _hit_from_record(record: HitRecord) -> Hit:
    return Hit(
        endpoint_id=record.endpoint_id,
        status=record.status,
        latency=record.latency,
        created_at=record.created_at.replace(tzinfo=timezone.utc),
    )


class Storage:
    """Endpoint CRUD and hit insert/query on top of an async session factory."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get_all_endpoints(self) -> List[Endpoint]:
        """Return every configured endpoint, ordered by id."""
        async with self._session_factory() as session:
            result = await session.execute(select(EndpointRecord).order_by(EndpointRecord.id))
            return [Endpoint.model_validate(row) for row in result.scalars().all()]

    async def get_endpoint(self, endpoint_id: int) -> Endpoint:
        async with self._session_factory() as session:
            record = await self._get_record(session, endpoint_id)
            return Endpoint.model_validate(record)

    async def insert_endpoint(self, item: EndpointCreate) -> Endpoint:
        async def work(session: AsyncSession) -> Endpoint:
            record = EndpointRecord(**item.model_dump())
            session.add(record)
            await session.commit()
            await session.refresh(record)
            return Endpoint.model_validate(record)

        return await self._write(work)

    async def update_endpoint(self, endpoint_id: int, item: EndpointUpdate) -> Endpoint:
        """Apply the fields set on ``item`` to an existing endpoint."""
        async def work(session: AsyncSession) -> Endpoint:
            record = await self._get_record(session, endpoint_id)
            for key, value in item.model_dump(exclude_unset=True).items():
                if value is not None:
                    setattr(record, key, value)

            if record.timeout > record.interval:
                await session.rollback()
                raise InvalidEndpointError("timeout must not exceed interval")

            await session.commit()
            await session.refresh(record)
            return Endpoint.model_validate(record)

        return await self._write(work)

    async def delete_endpoint(self, endpoint_id: int) -> None:
        """Delete an endpoint together with its hits."""
        async def work(session: AsyncSession) -> int:
            # Hits first: with foreign keys enforced the database would cascade them
            hits = await session.execute(delete(HitRecord).where(HitRecord.endpoint_id == endpoint_id))
            result = await session.execute(delete(EndpointRecord).where(EndpointRecord.id == endpoint_id))
            if result.rowcount == 0:
                await session.rollback()
                raise EndpointNotFoundError(endpoint_id)
            await session.commit()
            return hits.rowcount

        deleted_hits = await self._write(work)
        logger.info(f"Deleted endpoint {endpoint_id} and {deleted_hits} hits")

    async def insert_hit(self, item: Hit) -> None:
        """Append a hit. Fails with IntegrityError if its endpoint no longer exists."""
        async def work(session: AsyncSession) -> None:
            session.add(HitRecord(
                endpoint_id=item.endpoint_id,
                status=item.status.value,
                latency=item.latency,
                created_at=_to_db_time(item.created_at),
            ))
            await session.commit()

        await self._write(work)

    async def get_hits(self, endpoint_id: int, start: datetime, end: datetime) -> List[Hit]:
        """Return the endpoint's hits with ``start <= created_at < end``, oldest first."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(HitRecord)
                .where(
                    HitRecord.endpoint_id == endpoint_id,
                    HitRecord.created_at >= _to_db_time(start),
                    HitRecord.created_at < _to_db_time(end),
                )
                .order_by(HitRecord.created_at.asc(), HitRecord.id.asc())
            )
            return [_hit_from_record(row) for row in result.scalars().all()]

    async def _write(self, work: Callable[[AsyncSession], Awaitable[T]]) -> T:
        """Run ``work`` in a new session, retrying the whole unit on lock errors."""
        async def attempt() -> T:
            async with self._session_factory() as session:
                return await work(session)

        return await retry_on_lock(attempt)

    async def _get_record(self, session: AsyncSession, endpoint_id: int) -> EndpointRecord:
        result = await session.execute(select(EndpointRecord).where(EndpointRecord.id == endpoint_id))
        record = result.scalar_one_or_none()
        if record is None:
            raise EndpointNotFoundError(endpoint_id)
        return record
