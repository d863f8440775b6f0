"""Event Store — append-only streams with optimistic concurrency.

Every aggregate instance owns one stream. Events in a stream are numbered
1..n (`version`); every event also gets a `position` in the global log so
out-of-band readers (the audit projection) can resume where they stopped.

Guarantees:
  - start_stream fails if the stream exists (StreamAlreadyExists)
  - append_to_stream fails unless the stream is exactly at expected_version
    (ConcurrencyConflict); a racing writer loses on UNIQUE(stream_id, version)
  - commit(batch) writes every staged stream or none of them
"""
from __future__ import annotations

import abc
import asyncio
import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Sequence

from sqlalchemy import (
    JSON,
    BigInteger,
    Column,
    DateTime,
    Integer,
    String,
    Table,
    UniqueConstraint,
    insert,
    select,
    update,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sinco_maquinaria.core.database import get_session_factory, metadata
from sinco_maquinaria.domain.errors import ConcurrencyConflict, StreamAlreadyExists, StreamNotFound
from sinco_maquinaria.domain.events import DomainEvent, RecordedEvent, event_type_name
from sinco_maquinaria.infrastructure.serialization import deserialize_event, serialize_event

logger = logging.getLogger("sinco.event_store")


# ── Tables ───────────────────────────────────────────────

streams_table = Table(
    "streams",
    metadata,
    Column("id", String, primary_key=True),
    Column("aggregate_type", String, nullable=True, index=True),
    Column("version", Integer, nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
)

events_table = Table(
    "events",
    metadata,
    Column("position", BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True),
    Column("event_id", String, nullable=False, unique=True),
    Column("stream_id", String, nullable=False),
    Column("version", Integer, nullable=False),
    Column("event_type", String, nullable=False),
    Column("data", JSON().with_variant(JSONB, "postgresql"), nullable=False),
    Column("timestamp", DateTime(timezone=True), nullable=False),
    UniqueConstraint("stream_id", "version", name="uq_events_stream_version"),
)


# ── Staged Batch ─────────────────────────────────────────

@dataclass
class StagedStream:
    stream_id: str
    events: list[DomainEvent]
    expected_version: int | None = None  # None: start a new stream
    aggregate_type: str | None = None

    @property
    def is_new(self) -> bool:
        return self.expected_version is None


@dataclass
class EventBatch:
    """Events staged for several streams, committed together by EventStore.commit.

    Staging the same stream twice extends the first staged entry.
    """
    streams: dict[str, StagedStream] = field(default_factory=dict)

    def start_stream(self, stream_id: str, events: Sequence[DomainEvent], aggregate_type: str | None = None) -> None:
        self._stage(stream_id, list(events), None, aggregate_type)

    def append(self, stream_id: str, expected_version: int, events: Sequence[DomainEvent]) -> None:
        self._stage(stream_id, list(events), expected_version, None)

    def _stage(self, stream_id: str, events: list[DomainEvent], expected_version: int | None,
               aggregate_type: str | None) -> None:
        staged = self.streams.get(stream_id)
        if staged is None:
            self.streams[stream_id] = StagedStream(stream_id, events, expected_version, aggregate_type)
            return
        if expected_version is not None and not staged.is_new and expected_version != staged.expected_version:
            raise ValueError(f"Stream {stream_id} staged twice with different expected versions")
        staged.events.extend(events)

    def __len__(self) -> int:
        return sum(len(s.events) for s in self.streams.values())

    def __bool__(self) -> bool:
        return bool(self.streams)


# ── Interface ────────────────────────────────────────────

class EventStore(abc.ABC):

    @abc.abstractmethod
    async def start_stream(
        self, stream_id: str, events: Sequence[DomainEvent], aggregate_type: str | None = None,
    ) -> int:
        """Create stream_id with events; return its version.

        Raises:
            StreamAlreadyExists
        """

    @abc.abstractmethod
    async def append_to_stream(self, stream_id: str, expected_version: int, events: Sequence[DomainEvent]) -> int:
        """Append events to stream_id; return its new version.

        Raises:
            ConcurrencyConflict: the stream is not at expected_version.
            StreamNotFound
        """

    @abc.abstractmethod
    async def load_stream(self, stream_id: str, from_version: int = 1) -> list[RecordedEvent]:
        """Events of stream_id with version >= from_version, in order.

        Raises:
            StreamNotFound
        """

    @abc.abstractmethod
    async def fetch_stream_version(self, stream_id: str) -> int | None:
        """Current version of stream_id, None when it does not exist."""

    @abc.abstractmethod
    async def stream_ids(self, aggregate_type: str) -> list[str]:
        """Ids of every stream started for aggregate_type, oldest first."""

    @abc.abstractmethod
    async def read_all(self, after_position: int = 0, limit: int | None = None) -> list[RecordedEvent]:
        """Global log after after_position, in append order."""

    @abc.abstractmethod
    async def commit(self, batch: EventBatch) -> dict[str, int]:
        """Write every staged stream atomically; return the new version per stream."""


def _require_events(stream_id: str, events: Sequence[DomainEvent]) -> None:
    if not events:
        raise ValueError(f"No events to write to stream {stream_id}")


def _now() -> datetime:
    return datetime.now(timezone.utc)


# ── In-memory ────────────────────────────────────────────

class InMemoryEventStore(EventStore):
    """Process-local store. Same contract as SqlEventStore; used by tests and tools."""

    def __init__(self) -> None:
        self._streams: dict[str, list[RecordedEvent]] = {}
        self._types: dict[str, str | None] = {}
        self._log: list[RecordedEvent] = []
        self._lock = asyncio.Lock()

    async def start_stream(self, stream_id, events, aggregate_type=None) -> int:
        batch = EventBatch()
        batch.start_stream(stream_id, events, aggregate_type)
        return (await self.commit(batch))[stream_id]

    async def append_to_stream(self, stream_id, expected_version, events) -> int:
        batch = EventBatch()
        batch.append(stream_id, expected_version, events)
        return (await self.commit(batch))[stream_id]

    async def load_stream(self, stream_id, from_version=1) -> list[RecordedEvent]:
        stream = self._streams.get(stream_id)
        if stream is None:
            raise StreamNotFound(stream_id)
        return [r for r in stream if r.version >= from_version]

    async def fetch_stream_version(self, stream_id) -> int | None:
        stream = self._streams.get(stream_id)
        return len(stream) if stream is not None else None

    async def stream_ids(self, aggregate_type) -> list[str]:
        return [sid for sid, kind in self._types.items() if kind == aggregate_type]

    async def read_all(self, after_position=0, limit=None) -> list[RecordedEvent]:
        # positions are 1-based and dense here
        tail = self._log[after_position:]
        return tail if limit is None else tail[:limit]

    async def commit(self, batch: EventBatch) -> dict[str, int]:
        async with self._lock:
            for staged in batch.streams.values():
                _require_events(staged.stream_id, staged.events)
                current = self._streams.get(staged.stream_id)
                if staged.is_new:
                    if current is not None:
                        raise StreamAlreadyExists(staged.stream_id)
                elif current is None:
                    raise StreamNotFound(staged.stream_id)
                elif len(current) != staged.expected_version:
                    raise ConcurrencyConflict(staged.stream_id, staged.expected_version, len(current))

            versions: dict[str, int] = {}
            for staged in batch.streams.values():
                if staged.is_new:
                    self._streams[staged.stream_id] = []
                    self._types[staged.stream_id] = staged.aggregate_type
                stream = self._streams[staged.stream_id]
                timestamp = _now()
                for event in staged.events:
                    recorded = RecordedEvent(
                        data=event,
                        stream_id=staged.stream_id,
                        version=len(stream) + 1,
                        event_type=event_type_name(event),
                        timestamp=timestamp,
                        event_id=str(uuid.uuid4()),
                        position=len(self._log) + 1,
                    )
                    stream.append(recorded)
                    self._log.append(recorded)
                versions[staged.stream_id] = len(stream)
        logger.debug("Committed %d events to %d streams", len(batch), len(versions))
        return versions


# ── SQLAlchemy ───────────────────────────────────────────

class SqlEventStore(EventStore):
    """Event store on the `streams` / `events` tables (SQLAlchemy Core, async)."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None) -> None:
        self._session_factory = session_factory or get_session_factory()

    async def start_stream(self, stream_id, events, aggregate_type=None) -> int:
        batch = EventBatch()
        batch.start_stream(stream_id, events, aggregate_type)
        return (await self.commit(batch))[stream_id]

    async def append_to_stream(self, stream_id, expected_version, events) -> int:
        batch = EventBatch()
        batch.append(stream_id, expected_version, events)
        return (await self.commit(batch))[stream_id]

    async def load_stream(self, stream_id, from_version=1) -> list[RecordedEvent]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(events_table)
                .where(events_table.c.stream_id == stream_id, events_table.c.version >= from_version)
                .order_by(events_table.c.version)
            )
            rows = result.fetchall()
            if not rows and await self._version(session, stream_id) is None:
                raise StreamNotFound(stream_id)
        return [_row_to_recorded(row) for row in rows]

    async def fetch_stream_version(self, stream_id) -> int | None:
        async with self._session_factory() as session:
            return await self._version(session, stream_id)

    async def stream_ids(self, aggregate_type) -> list[str]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(streams_table.c.id)
                .where(streams_table.c.aggregate_type == aggregate_type)
                .order_by(streams_table.c.created_at)
            )
            return [row[0] for row in result.fetchall()]

    async def read_all(self, after_position=0, limit=None) -> list[RecordedEvent]:
        stmt = (
            select(events_table)
            .where(events_table.c.position > after_position)
            .order_by(events_table.c.position)
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return [_row_to_recorded(row) for row in result.fetchall()]

    async def commit(self, batch: EventBatch) -> dict[str, int]:
        versions: dict[str, int] = {}
        async with self._session_factory() as session:
            async with session.begin():
                for staged in batch.streams.values():
                    _require_events(staged.stream_id, staged.events)
                    versions[staged.stream_id] = await self._write(session, staged)
        logger.debug("Committed %d events to %d streams", len(batch), len(versions))
        return versions

    # ── internals ──

    @staticmethod
    async def _version(session: AsyncSession, stream_id: str) -> int | None:
        result = await session.execute(
            select(streams_table.c.version).where(streams_table.c.id == stream_id)
        )
        return result.scalar_one_or_none()

    async def _write(self, session: AsyncSession, staged: StagedStream) -> int:
        now = _now()
        count = len(staged.events)

        if staged.is_new:
            try:
                await session.execute(insert(streams_table).values(
                    id=staged.stream_id,
                    aggregate_type=staged.aggregate_type,
                    version=count,
                    created_at=now,
                    updated_at=now,
                ))
            except IntegrityError as e:
                raise StreamAlreadyExists(staged.stream_id) from e
            base = 0
        else:
            result = await session.execute(
                update(streams_table)
                .where(
                    streams_table.c.id == staged.stream_id,
                    streams_table.c.version == staged.expected_version,
                )
                .values(version=staged.expected_version + count, updated_at=now)
            )
            if result.rowcount == 0:
                actual = await self._version(session, staged.stream_id)
                if actual is None:
                    raise StreamNotFound(staged.stream_id)
                raise ConcurrencyConflict(staged.stream_id, staged.expected_version, actual)
            base = staged.expected_version

        rows: list[dict[str, Any]] = [
            {
                "event_id": str(uuid.uuid4()),
                "stream_id": staged.stream_id,
                "version": base + offset,
                "event_type": event_type_name(event),
                "data": serialize_event(event),
                "timestamp": now,
            }
            for offset, event in enumerate(staged.events, start=1)
        ]
        try:
            await session.execute(insert(events_table), rows)
        except IntegrityError as e:
            raise ConcurrencyConflict(staged.stream_id, base, None) from e
        return base + count


def _row_to_recorded(row: Any) -> RecordedEvent:
    data = row.data if isinstance(row.data, dict) else json.loads(row.data)
    return RecordedEvent(
        data=deserialize_event(row.event_type, data),
        stream_id=row.stream_id,
        version=row.version,
        event_type=row.event_type,
        timestamp=row.timestamp,
        event_id=row.event_id,
        position=row.position,
    )
