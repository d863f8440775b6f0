"""Aggregate fold protocol.

Invariants:
1. An aggregate is only ever produced by folding its stream in version order
2. apply() never mutates its input: the caller either gets a new state or a
   ConsistencyViolation and keeps the old one
3. version increases by exactly one per applied event; a gap is a violation
4. An event type with no apply function is a defect (UnhandledEventError),
   never a silent no-op
"""
from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, ClassVar, Generic, Iterable, Mapping, TypeVar

from sinco_maquinaria.domain.errors import ConsistencyViolation, UnhandledEventError
from sinco_maquinaria.domain.events import DomainEvent, RecordedEvent, resolve_event_type

logger = logging.getLogger("sinco.fold")

A = TypeVar("A", bound="Aggregate")

Applier = Callable[[Any, Any, RecordedEvent], None]


def applies(*event_types: type[DomainEvent]) -> Callable[[Applier], Applier]:
    """Register the decorated method as the apply function for event_types."""
    def decorator(fn: Applier) -> Applier:
        fn._applies_to = event_types  # type: ignore[attr-defined]
        return fn
    return decorator


@dataclass
class Aggregate:
    """Base class for folded stream state.

    Subclasses declare their fields as dataclass fields and their apply
    functions with @applies. `version` is the number of events folded so far
    and doubles as the optimistic-concurrency token for the next append.
    """

    id: str = ""
    version: int = 0

    stream_type: ClassVar[str] = ""
    _appliers: ClassVar[dict[type[DomainEvent], Applier]] = {}

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        appliers: dict[type[DomainEvent], Applier] = {}
        for klass in reversed(cls.__mro__):
            for attr in vars(klass).values():
                for event_cls in getattr(attr, "_applies_to", ()):
                    appliers[event_cls] = attr
        cls._appliers = appliers

    @property
    def exists(self) -> bool:
        return self.version > 0

    def _require_new(self, event: DomainEvent) -> None:
        if self.exists:
            raise ConsistencyViolation(
                f"{type(self).__name__} {self.id} ya fue creado; "
                f"'{event.type_name()}' no puede iniciarlo de nuevo"
            )


def event_time(explicit: datetime | None, recorded: RecordedEvent) -> datetime:
    """Timestamp carried by the event, else the store's, else the server clock."""
    if explicit is not None:
        return explicit
    if recorded.timestamp is not None:
        return recorded.timestamp
    return datetime.now(timezone.utc)


def apply(state: A, recorded: RecordedEvent | DomainEvent) -> A:
    """Fold one event onto state and return the new state.

    Raises:
        ConsistencyViolation: the event breaks an invariant of the aggregate.
        UnhandledEventError: the aggregate has no apply function for the event.
    """
    if isinstance(recorded, DomainEvent):
        recorded = RecordedEvent.wrap(recorded, stream_id=state.id)

    event = recorded.data
    handler = type(state)._appliers.get(type(event))
    if handler is None:
        if isinstance(event, Mapping) and resolve_event_type(recorded.event_type) is not None:
            # registered type whose stored payload did not decode
            raise ConsistencyViolation(
                f"Payload inválido para el evento '{recorded.event_type}'",
                stream_id=recorded.stream_id,
                version=recorded.version,
            )
        raise UnhandledEventError(type(state).__name__, recorded.event_type or type(event).__name__)

    expected_version = state.version + 1
    if recorded.version is not None and recorded.version != expected_version:
        raise ConsistencyViolation(
            f"Versión fuera de orden: se esperaba {expected_version}, llegó {recorded.version}",
            stream_id=recorded.stream_id,
            version=recorded.version,
        )

    new_state = copy.deepcopy(state)
    try:
        handler(new_state, event, recorded)
    except ConsistencyViolation as exc:
        exc.stream_id = exc.stream_id or recorded.stream_id or state.id
        exc.version = expected_version
        raise
    new_state.version = expected_version
    return new_state


@dataclass(frozen=True)
class FoldResult(Generic[A]):
    """Outcome of a fold: the last consistent state plus the error that stopped it."""

    state: A
    error: ConsistencyViolation | None = None
    failed_event: RecordedEvent | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def version(self) -> int:
        return self.state.version

    def unwrap(self) -> A:
        if self.error is not None:
            raise self.error
        return self.state


def fold(initial: A, events: Iterable[RecordedEvent | DomainEvent]) -> FoldResult[A]:
    """Fold events in order onto initial, halting at the first violation.

    `initial` may be an empty aggregate or a snapshot; in the latter case
    `events` is the suffix recorded after the snapshot version.
    """
    state = initial
    for recorded in events:
        try:
            state = apply(state, recorded)
        except ConsistencyViolation as exc:
            logger.error(
                "Fold halted on %s: %s",
                type(state).__name__,
                exc.message,
                extra={"stream_id": exc.stream_id, "version": exc.version},
            )
            failed = recorded if isinstance(recorded, RecordedEvent) else RecordedEvent.wrap(recorded)
            return FoldResult(state=state, error=exc, failed_event=failed)
    return FoldResult(state=state)
