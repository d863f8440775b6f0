"""Event and aggregate-state codec.

Events and aggregates are plain dataclasses; pydantic TypeAdapters turn them
into JSON-safe dicts (Decimal → str, datetime → ISO 8601, timedelta → ISO
duration) and back.
"""
from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any, Mapping, TypeVar

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from sinco_maquinaria.domain.events import DomainEvent, resolve_event_type

logger = logging.getLogger("sinco.event_store")

T = TypeVar("T")


@lru_cache(maxsize=None)
def _adapter(cls: type) -> TypeAdapter:
    return TypeAdapter(cls)


def serialize_event(event: DomainEvent) -> dict[str, Any]:
    """DomainEvent → JSON-serializable dict."""
    return _adapter(type(event)).dump_python(event, mode="json")


def deserialize_event(event_type: str, data: Mapping[str, Any]) -> Any:
    """Stored payload → DomainEvent.

    Unregistered type names, and payloads that no longer validate against
    their registered class, come back as a plain dict so that readers which
    only need field access (the audit projection) keep working.
    """
    event_cls = resolve_event_type(event_type)
    if event_cls is None:
        return dict(data)
    try:
        return _adapter(event_cls).validate_python(dict(data))
    except PydanticValidationError as e:
        logger.warning(
            "Stored payload does not match %s: %s", event_cls.__name__, e,
            extra={"event_type": event_type},
        )
        return dict(data)


def dump_state(state: Any) -> dict[str, Any]:
    """Aggregate state → JSON-serializable dict (snapshot body)."""
    return _adapter(type(state)).dump_python(state, mode="json")


def load_state(cls: type[T], data: Mapping[str, Any]) -> T:
    return _adapter(cls).validate_python(dict(data))
