"""Aggregate repository — load by folding, write with optimistic concurrency.

Writers never append an event the aggregate cannot fold: `execute` applies
the decided events to the loaded state first, so a ConsistencyViolation
surfaces before anything reaches the log.
"""
from __future__ import annotations

import logging
from typing import Callable, Sequence, TypeVar

from sinco_maquinaria.core.config import settings
from sinco_maquinaria.domain.aggregates.base import Aggregate, fold
from sinco_maquinaria.domain.errors import ConcurrencyConflict, StreamAlreadyExists, StreamNotFound
from sinco_maquinaria.domain.events import DomainEvent, RecordedEvent
from sinco_maquinaria.infrastructure.event_store import EventBatch, EventStore
from sinco_maquinaria.infrastructure.snapshots import SnapshotStore

logger = logging.getLogger("sinco.repository")

A = TypeVar("A", bound=Aggregate)

Decision = Callable[[A], Sequence[DomainEvent]]


class AggregateRepository:

    def __init__(
        self,
        store: EventStore,
        snapshots: SnapshotStore | None = None,
        snapshot_every: int | None = None,
        max_retries: int | None = None,
    ):
        self.store = store
        self.snapshots = snapshots
        self.snapshot_every = snapshot_every if snapshot_every is not None else settings.SNAPSHOT_EVERY
        self.max_retries = max_retries if max_retries is not None else settings.MAX_APPEND_RETRIES

    # ── Load ─────────────────────────────────────────────

    async def load(self, cls: type[A], stream_id: str) -> A:
        """Fold stream_id into a cls instance.

        Raises:
            StreamNotFound
            ConsistencyViolation: the stored history does not fold.
        """
        initial = cls(id=stream_id)
        if self.snapshots is not None:
            snapshot = await self.snapshots.get(cls.stream_type, cls, stream_id)
            if snapshot is not None:
                initial = snapshot.state

        events = await self.store.load_stream(stream_id, from_version=initial.version + 1)
        if not events and not initial.exists:
            raise StreamNotFound(stream_id)

        state = fold(initial, events).unwrap()
        if self.snapshots is not None and len(events) > self.snapshot_every:
            await self.snapshots.save(cls.stream_type, stream_id, state)
            logger.debug("Snapshot refreshed at version %d", state.version, extra={"stream_id": stream_id})
        return state

    async def find(self, cls: type[A], stream_id: str) -> A | None:
        try:
            return await self.load(cls, stream_id)
        except StreamNotFound:
            return None

    async def load_all(self, cls: type[A]) -> list[A]:
        return [await self.load(cls, stream_id) for stream_id in await self.store.stream_ids(cls.stream_type)]

    # ── Write ────────────────────────────────────────────

    def stage(self, batch: EventBatch, state: A, events: Sequence[DomainEvent]) -> A:
        """Check events against state, add them to batch, and return the resulting state."""
        new_state = fold(state, [RecordedEvent.wrap(e, stream_id=state.id) for e in events]).unwrap()
        if state.exists:
            batch.append(state.id, state.version, events)
        else:
            batch.start_stream(state.id, events, type(state).stream_type)
        return new_state

    async def save(self, state: A, events: Sequence[DomainEvent]) -> A:
        """Write events for state; start the stream when state does not exist yet.

        Raises:
            ConcurrencyConflict, StreamAlreadyExists: someone else wrote first.
            ConsistencyViolation: events do not fold onto state.
        """
        batch = EventBatch()
        new_state = self.stage(batch, state, events)
        await self.store.commit(batch)
        return new_state

    async def execute(self, cls: type[A], stream_id: str, decide: Decision, create: bool = False) -> A:
        """Load, decide, write; on a concurrency conflict reload and decide again.

        `decide` receives the current state and returns the events to append;
        it raises ValidationError to reject the command. With create=True a
        missing stream is decided against an empty aggregate and started.
        """
        attempt = 0
        while True:
            attempt += 1
            state = await self.find(cls, stream_id)
            if state is None:
                if not create:
                    raise StreamNotFound(stream_id)
                state = cls(id=stream_id)

            events = list(decide(state))
            if not events:
                return state
            try:
                return await self.save(state, events)
            except (ConcurrencyConflict, StreamAlreadyExists) as e:
                if attempt > self.max_retries:
                    logger.error("Giving up after %d attempts: %s", attempt, e.message, extra={"stream_id": stream_id})
                    raise
                logger.warning("Retry %d/%d: %s", attempt, self.max_retries, e.message, extra={"stream_id": stream_id})
