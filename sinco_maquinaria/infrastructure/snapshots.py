"""Snapshot cache — a folded aggregate state plus the version it represents.

A snapshot is an optimization only: losing one costs a full replay, never
correctness. Loaders fold the events recorded after `version` onto `state`.
"""
from __future__ import annotations

import abc
import json
import logging
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

import redis.asyncio as redis

from sinco_maquinaria.core.config import settings
from sinco_maquinaria.core.redis_client import get_redis
from sinco_maquinaria.infrastructure.serialization import dump_state, load_state

logger = logging.getLogger("sinco.snapshots")

S = TypeVar("S")


@dataclass(frozen=True)
class Snapshot(Generic[S]):
    state: S
    version: int


class SnapshotStore(abc.ABC):

    @abc.abstractmethod
    async def get(self, kind: str, cls: type[S], stream_id: str) -> Snapshot[S] | None:
        ...

    @abc.abstractmethod
    async def save(self, kind: str, stream_id: str, state: Any) -> None:
        ...

    @abc.abstractmethod
    async def delete(self, kind: str, stream_id: str) -> None:
        ...


def snapshot_key(kind: str, stream_id: str) -> str:
    return f"snapshot:{kind}:{stream_id}"


class InMemorySnapshotStore(SnapshotStore):

    def __init__(self) -> None:
        self._items: dict[str, dict[str, Any]] = {}

    async def get(self, kind, cls, stream_id):
        body = self._items.get(snapshot_key(kind, stream_id))
        if body is None:
            return None
        state = load_state(cls, body)
        return Snapshot(state=state, version=state.version)

    async def save(self, kind, stream_id, state) -> None:
        # stored serialized so later mutation of `state` cannot leak in
        self._items[snapshot_key(kind, stream_id)] = dump_state(state)

    async def delete(self, kind, stream_id) -> None:
        self._items.pop(snapshot_key(kind, stream_id), None)


class RedisSnapshotStore(SnapshotStore):
    """JSON snapshots under `snapshot:{kind}:{stream_id}` with a TTL."""

    def __init__(self, client: redis.Redis | None = None, ttl_seconds: int | None = None) -> None:
        self._client = client
        self._ttl = ttl_seconds if ttl_seconds is not None else settings.SNAPSHOT_TTL_SECONDS

    @property
    def client(self) -> redis.Redis:
        if self._client is None:
            self._client = get_redis()
        return self._client

    async def get(self, kind, cls, stream_id):
        key = snapshot_key(kind, stream_id)
        raw = await self.client.get(key)
        if raw is None:
            return None
        try:
            state = load_state(cls, json.loads(raw))
        except ValueError as e:
            # stale shape after a model change: drop it and replay
            logger.warning("Discarding unreadable snapshot %s: %s", key, e, extra={"stream_id": stream_id})
            await self.client.delete(key)
            return None
        return Snapshot(state=state, version=state.version)

    async def save(self, kind, stream_id, state) -> None:
        body = json.dumps(dump_state(state), ensure_ascii=False)
        await self.client.set(snapshot_key(kind, stream_id), body, ex=self._ttl)

    async def delete(self, kind, stream_id) -> None:
        await self.client.delete(snapshot_key(kind, stream_id))
