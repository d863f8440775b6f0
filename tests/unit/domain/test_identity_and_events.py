import hashlib
import uuid

import pytest

from sinco_maquinaria.domain.enums import EstadoDetalleOrden, parse_enum, try_parse_enum
from sinco_maquinaria.domain.errors import ConsistencyViolation, ImportValidationError, ValidationError
from sinco_maquinaria.domain.events import (
    EVENT_TYPES,
    EquipoMigrado,
    OrdenDeTrabajoCreada,
    RecordedEvent,
    event_type_name,
    resolve_event_type,
    to_snake_case,
)
from sinco_maquinaria.domain.identity import derive_stream_id, new_stream_id


class TestDeriveStreamId:
    def test_same_key_same_id(self):
        assert derive_stream_id("ABC123") == derive_stream_id("ABC123")

    def test_case_insensitive(self):
        assert derive_stream_id("abc123") == derive_stream_id("ABC123")

    def test_different_keys_differ(self):
        assert derive_stream_id("ABC123") != derive_stream_id("ABC124")

    def test_digest_read_little_endian(self):
        digest = hashlib.md5(b"abc123").digest()
        assert derive_stream_id("ABC123") == str(uuid.UUID(bytes_le=digest))

    def test_new_ids_are_unique_uuids(self):
        a, b = new_stream_id(), new_stream_id()
        assert a != b
        uuid.UUID(a)


class TestEventRegistry:
    def test_snake_case(self):
        assert to_snake_case("OrdenDeTrabajoCreada") == "orden_de_trabajo_creada"

    def test_both_spellings_resolve(self):
        assert resolve_event_type("EquipoMigrado") is EquipoMigrado
        assert resolve_event_type("equipo_migrado") is EquipoMigrado

    def test_unknown_type(self):
        assert resolve_event_type("NadaQueVer") is None

    def test_registry_holds_two_spellings_per_event(self):
        assert len(EVENT_TYPES) == 2 * len(set(EVENT_TYPES.values()))

    def test_type_name_of_event(self):
        assert event_type_name(OrdenDeTrabajoCreada()) == "OrdenDeTrabajoCreada"
        assert event_type_name({"a": 1}) == "dict"

    def test_wrap_fills_event_type(self):
        recorded = RecordedEvent.wrap(EquipoMigrado(placa="A"), stream_id="s", version=1)
        assert recorded.event_type == "EquipoMigrado"
        assert recorded.stream_id == "s"


class TestEnums:
    def test_parse_by_value_or_name(self):
        assert parse_enum(EstadoDetalleOrden, "finalizado", "Estado") is EstadoDetalleOrden.FINALIZADO
        assert parse_enum(EstadoDetalleOrden, "EN_PROCESO", "Estado") is EstadoDetalleOrden.EN_PROCESO

    def test_parse_rejects_unknown(self):
        with pytest.raises(ConsistencyViolation):
            parse_enum(EstadoDetalleOrden, "Cancelado", "Estado")

    def test_try_parse_blank(self):
        assert try_parse_enum(EstadoDetalleOrden, "  ") is None
        assert try_parse_enum(EstadoDetalleOrden, None) is None


class TestErrors:
    def test_validation_error_collects_messages(self):
        err = ValidationError(["a", "b"])
        assert err.errors == ["a", "b"]
        assert err.message == "a; b"
        assert err.code == "VALIDATION_ERROR"

    def test_import_error_truncates_report(self):
        err = ImportValidationError([f"Fila {i}" for i in range(5)], max_reported=2)
        assert len(err.errors) == 5
        assert err.message.startswith("Errores de validación:\nFila 0\nFila 1")
        assert "y 3 más" in err.message
