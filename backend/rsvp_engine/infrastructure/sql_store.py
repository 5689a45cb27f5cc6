"""
PostgreSQL attendee store.

CONCURRENCY STRATEGY: Optimistic Locking on the event row
=========================================================

Problem:
  Two requests race for the last seat, or two waitlist joins both compute
  "first free position = 3". Both read the same attendee set, both write,
  and the invariants break.

Solution:
  Every transaction reads the event's `version` first, then the attendee
  rows. At commit it runs

    UPDATE events SET version = version + 1
    WHERE id = :event_id AND version = :snapshot_version

  before writing anything else. If rows_affected == 0 another writer
  committed since our snapshot: roll back and raise TransactionConflict so
  the caller can retry from a fresh read.

  Under READ COMMITTED the losing UPDATE blocks on the winner's row lock and
  then re-checks the predicate against the committed version, so exactly one
  of two concurrent writers on the same event wins. Writers on different
  events never touch the same row and never conflict.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from rsvp_engine.core.exceptions import EventNotFoundError
from rsvp_engine.core.logging import get_logger
from rsvp_engine.models.attendee import Attendee as AttendeeRow
from rsvp_engine.models.event import Event as EventRow
from rsvp_engine.services.interfaces.store import (
    AttendeeStore,
    EventTransaction,
    TransactionConflict,
)
from rsvp_engine.services.records import (
    AgeGroup,
    Attendee,
    AttendeeType,
    EventCapacityConfig,
    Relationship,
    RSVPStatus,
    StatusChange,
)

logger = get_logger(__name__)


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes even for timezone-aware columns
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _config_from_row(row: EventRow) -> EventCapacityConfig:
    return EventCapacityConfig(
        event_id=row.id,
        capacity=row.capacity,
        waitlist_enabled=row.waitlist_enabled,
        waitlist_limit=row.waitlist_limit,
    )


def _record_from_row(row: AttendeeRow) -> Attendee:
    return Attendee(
        attendee_id=row.id,
        event_id=row.event_id,
        user_id=row.user_id,
        attendee_type=AttendeeType(row.attendee_type),
        rsvp_status=RSVPStatus(row.rsvp_status),
        waitlist_position=row.waitlist_position,
        waitlist_joined_at=_aware(row.waitlist_joined_at),
        promoted_at=_aware(row.promoted_at),
        name=row.name,
        relationship=Relationship(row.relationship) if row.relationship else None,
        age_group=AgeGroup(row.age_group) if row.age_group else None,
        status_history=[StatusChange.from_dict(entry) for entry in row.status_history or []],
        created_at=_aware(row.created_at),
        updated_at=_aware(row.updated_at),
    )


def _apply_record(row: AttendeeRow, record: Attendee) -> AttendeeRow:
    row.id = record.attendee_id
    row.event_id = record.event_id
    row.user_id = record.user_id
    row.attendee_type = record.attendee_type.value
    row.rsvp_status = record.rsvp_status.value
    row.waitlist_position = record.waitlist_position
    row.waitlist_joined_at = record.waitlist_joined_at
    row.promoted_at = record.promoted_at
    row.name = record.name
    row.relationship = record.relationship.value if record.relationship else None
    row.age_group = record.age_group.value if record.age_group else None
    row.status_history = [entry.to_dict() for entry in record.status_history]
    row.created_at = record.created_at
    row.updated_at = record.updated_at
    return row


class SqlEventTransaction(EventTransaction):

    def __init__(self, session: AsyncSession, rows: dict[str, AttendeeRow], **kwargs):
        super().__init__(**kwargs)
        self.session = session
        self.rows = rows


class SqlAttendeeStore(AttendeeStore):

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], engine: Optional[AsyncEngine] = None):
        super().__init__()
        self.session_factory = session_factory
        self._engine = engine

    async def _begin(self, event_id: str) -> SqlEventTransaction:
        session = self.session_factory()
        try:
            # Version first: a commit that lands between these reads makes our snapshot stale, never torn
            event = await session.get(EventRow, event_id)
            if event is None:
                raise EventNotFoundError(f"Event {event_id} not found", event_id=event_id)
            result = await session.execute(select(AttendeeRow).where(AttendeeRow.event_id == event_id))
            rows = {row.id: row for row in result.scalars().all()}
        except BaseException:
            await session.close()
            raise

        return SqlEventTransaction(
            session=session,
            rows=rows,
            config=_config_from_row(event),
            version=event.version,
            attendees=[_record_from_row(row) for row in rows.values()],
        )

    async def _commit(self, txn: SqlEventTransaction) -> None:
        session = txn.session
        try:
            # Step 1: claim the event version before any other write
            claimed = await session.execute(
                update(EventRow)
                .where(EventRow.id == txn.event_id, EventRow.version == txn.version)
                .values(version=EventRow.version + 1)
                .execution_options(synchronize_session=False)
            )
            if claimed.rowcount == 0:
                logger.info("transaction_version_conflict", event_id=txn.event_id, version=txn.version)
                raise TransactionConflict(txn.event_id)

            # Step 2: staged writes
            if txn.deleted:
                await session.execute(
                    delete(AttendeeRow)
                    .where(AttendeeRow.id.in_(txn.deleted))
                    .execution_options(synchronize_session=False)
                )
            for record in txn.written:
                row = txn.rows.get(record.attendee_id)
                if row is None:
                    session.add(_apply_record(AttendeeRow(), record))
                else:
                    _apply_record(row, record)

            await session.commit()
        except BaseException:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def _abort(self, txn: SqlEventTransaction) -> None:
        try:
            await txn.session.rollback()
        finally:
            await txn.session.close()

    async def get_event_config(self, event_id: str) -> EventCapacityConfig:
        async with self.session_factory() as session:
            event = await session.get(EventRow, event_id)
            if event is None:
                raise EventNotFoundError(f"Event {event_id} not found", event_id=event_id)
            return _config_from_row(event)

    async def register_event(self, config: EventCapacityConfig) -> EventCapacityConfig:
        values = {
            "capacity": config.capacity,
            "waitlist_enabled": config.waitlist_enabled,
            "waitlist_limit": config.waitlist_limit,
        }
        async with self.session_factory() as session:
            # Version bumped in SQL, never from a value read earlier in this session
            updated = await session.execute(
                update(EventRow)
                .where(EventRow.id == config.event_id)
                .values(version=EventRow.version + 1, **values)
                .execution_options(synchronize_session=False)
            )
            if updated.rowcount == 0:
                session.add(EventRow(id=config.event_id, version=1, **values))
            await session.commit()
            logger.info(
                "event_capacity_synced",
                event_id=config.event_id,
                capacity=config.capacity,
                waitlist_enabled=config.waitlist_enabled,
                created=updated.rowcount == 0,
            )
            return EventCapacityConfig(event_id=config.event_id, **values)

    async def delete_event(self, event_id: str) -> int:
        async with self.session_factory() as session:
            event = await session.get(EventRow, event_id)
            if event is None:
                raise EventNotFoundError(f"Event {event_id} not found", event_id=event_id)
            removed = await session.execute(
                delete(AttendeeRow)
                .where(AttendeeRow.event_id == event_id)
                .execution_options(synchronize_session=False)
            )
            await session.delete(event)
            await session.commit()
            return removed.rowcount

    async def list_attendees(self, event_id: str) -> list[Attendee]:
        async with self.session_factory() as session:
            event = await session.get(EventRow, event_id)
            if event is None:
                raise EventNotFoundError(f"Event {event_id} not found", event_id=event_id)
            result = await session.execute(select(AttendeeRow).where(AttendeeRow.event_id == event_id))
            return [_record_from_row(row) for row in result.scalars().all()]

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
