"""Domain Errors — fold-time, store-time and import-time failures."""
from __future__ import annotations


class DomainError(Exception):
    """Base class for all domain-level errors."""
    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


class ConsistencyViolation(DomainError):
    """An event cannot be folded without breaking an aggregate invariant.

    Raised during replay as well as at write time. On a well-formed log this
    never happens, so callers treat it as a defect signal and abort.
    """
    def __init__(self, message: str, *, stream_id: str | None = None, version: int | None = None):
        super().__init__(code="CONSISTENCY_VIOLATION", message=message)
        self.stream_id = stream_id
        self.version = version


class UnhandledEventError(DomainError):
    """An aggregate received an event type it has no apply function for."""
    def __init__(self, aggregate: str, event_type: str):
        super().__init__(
            code="UNHANDLED_EVENT",
            message=f"{aggregate} has no apply function for event '{event_type}'",
        )
        self.aggregate = aggregate
        self.event_type = event_type


class ConcurrencyConflict(DomainError):
    def __init__(self, stream_id: str, expected_version: int, actual_version: int | None):
        super().__init__(
            code="CONCURRENCY_CONFLICT",
            message=(
                f"Optimistic concurrency conflict: stream={stream_id}, "
                f"expected_version={expected_version}, actual_version={actual_version}"
            ),
        )
        self.stream_id = stream_id
        self.expected_version = expected_version
        self.actual_version = actual_version


class StreamAlreadyExists(DomainError):
    def __init__(self, stream_id: str):
        super().__init__(code="STREAM_ALREADY_EXISTS", message=f"Stream already exists: {stream_id}")
        self.stream_id = stream_id


class StreamNotFound(DomainError):
    def __init__(self, stream_id: str = ""):
        super().__init__(code="STREAM_NOT_FOUND", message=f"Stream not found: {stream_id}")
        self.stream_id = stream_id


class ValidationError(DomainError):
    """Business-rule failure detected before anything is appended."""
    def __init__(self, errors: list[str] | str, code: str = "VALIDATION_ERROR"):
        if isinstance(errors, str):
            errors = [errors]
        super().__init__(code=code, message="; ".join(errors))
        self.errors = list(errors)


class ImportValidationError(ValidationError):
    """Row-level errors of a bulk import. The whole batch was rejected."""
    def __init__(self, errors: list[str], max_reported: int | None = None):
        super().__init__(errors, code="IMPORT_VALIDATION_ERROR")
        shown = errors if max_reported is None else errors[:max_reported]
        self.message = "Errores de validación:\n" + "\n".join(shown)
        if max_reported is not None and len(errors) > max_reported:
            self.message += f"\n... y {len(errors) - max_reported} más."
        self.args = (self.message,)
