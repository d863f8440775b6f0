"""Fold protocol: apply, version numbering, halting on violations."""
from datetime import datetime, timezone

import pytest

from sinco_maquinaria.domain.aggregates import Empleado, Equipo, OrdenDeTrabajo
from sinco_maquinaria.domain.aggregates.base import FoldResult, apply, event_time, fold
from sinco_maquinaria.domain.enums import EstadoOrdenDeTrabajo
from sinco_maquinaria.domain.errors import ConsistencyViolation, UnhandledEventError
from sinco_maquinaria.domain.events import (
    ActividadAgregada,
    AvanceDeActividadRegistrado,
    EmpleadoCreado,
    EquipoActualizado,
    EquipoCreado,
    OrdenDeTrabajoCreada,
    RecordedEvent,
)


def _recorded(event, version, stream_id="s-1", timestamp=None):
    return RecordedEvent.wrap(event, stream_id=stream_id, version=version, timestamp=timestamp)


def _orden_events():
    return [
        OrdenDeTrabajoCreada(orden_id="o-1", numero_orden="OT-1", equipo_id="e-1", tipo_mantenimiento="Preventivo"),
        ActividadAgregada(item_detalle_id="d-1", descripcion="Cambio de aceite"),
        ActividadAgregada(item_detalle_id="d-2", descripcion="Revisión de frenos"),
    ]


# ── apply ────────────────────────────────────────────────

class TestApply:
    def test_apply_returns_new_state_without_mutating_input(self):
        empty = OrdenDeTrabajo(id="o-1")
        created = apply(empty, _orden_events()[0])

        assert empty.version == 0
        assert empty.estado == EstadoOrdenDeTrabajo.INEXISTENTE
        assert created.version == 1
        assert created.estado == EstadoOrdenDeTrabajo.BORRADOR

    def test_failed_apply_leaves_input_untouched(self):
        state = fold(OrdenDeTrabajo(id="o-1"), _orden_events()).unwrap()
        before = [d.estado for d in state.detalles]

        with pytest.raises(ConsistencyViolation):
            apply(state, AvanceDeActividadRegistrado(item_detalle_id="nope", nuevo_estado="Finalizado"))

        assert [d.estado for d in state.detalles] == before
        assert state.version == 3

    def test_unhandled_event_type_is_a_defect(self):
        with pytest.raises(UnhandledEventError) as exc_info:
            apply(Equipo(id="e-1"), EmpleadoCreado(id="x", nombre="Ana", identificacion="1", cargo="Operario"))
        assert exc_info.value.aggregate == "Equipo"
        assert exc_info.value.event_type == "EmpleadoCreado"

    def test_unknown_raw_payload_is_unhandled(self):
        recorded = RecordedEvent(data={"x": 1}, stream_id="e-1", version=1, event_type="EventoDesconocido")
        with pytest.raises(UnhandledEventError):
            apply(Equipo(id="e-1"), recorded)

    def test_registered_type_with_undecodable_payload_is_a_violation(self):
        recorded = RecordedEvent(data={"placa": object()}, stream_id="e-1", version=1, event_type="EquipoCreado")
        with pytest.raises(ConsistencyViolation) as exc_info:
            apply(Equipo(id="e-1"), recorded)
        assert exc_info.value.stream_id == "e-1"

    def test_version_gap_is_a_violation(self):
        with pytest.raises(ConsistencyViolation) as exc_info:
            apply(Equipo(id="e-1"), _recorded(EquipoCreado(id="e-1", placa="ABC123"), version=2))
        assert exc_info.value.version == 2

    def test_violation_carries_stream_and_version(self):
        state = fold(OrdenDeTrabajo(id="o-1"), [_recorded(e, i) for i, e in enumerate(_orden_events(), 1)]).unwrap()
        with pytest.raises(ConsistencyViolation) as exc_info:
            apply(state, _recorded(AvanceDeActividadRegistrado(item_detalle_id="zzz", nuevo_estado="Finalizado"), 4))
        assert exc_info.value.stream_id == "s-1"
        assert exc_info.value.version == 4


# ── fold ─────────────────────────────────────────────────

class TestFold:
    def test_fold_is_deterministic(self):
        events = [_recorded(e, i) for i, e in enumerate(_orden_events(), 1)]
        first = fold(OrdenDeTrabajo(id="o-1"), events).unwrap()
        second = fold(OrdenDeTrabajo(id="o-1"), events).unwrap()
        assert first == second

    def test_version_equals_number_of_events(self):
        result = fold(OrdenDeTrabajo(id="o-1"), _orden_events())
        assert result.ok
        assert result.version == 3

    def test_fold_from_snapshot_continues_numbering(self):
        events = [_recorded(e, i) for i, e in enumerate(_orden_events(), 1)]
        snapshot = fold(OrdenDeTrabajo(id="o-1"), events[:2]).unwrap()
        resumed = fold(snapshot, events[2:]).unwrap()
        assert resumed == fold(OrdenDeTrabajo(id="o-1"), events).unwrap()

    def test_fold_halts_at_first_violation(self):
        events = _orden_events() + [
            AvanceDeActividadRegistrado(item_detalle_id="no-existe", nuevo_estado="Finalizado"),
            ActividadAgregada(item_detalle_id="d-3", descripcion="Nunca aplicado"),
        ]
        result = fold(OrdenDeTrabajo(id="o-1"), events)

        assert not result.ok
        assert isinstance(result.error, ConsistencyViolation)
        assert result.state.version == 3
        assert [d.id for d in result.state.detalles] == ["d-1", "d-2"]
        assert result.failed_event.event_type == "AvanceDeActividadRegistrado"

    def test_unwrap_raises_the_stopping_error(self):
        result = fold(Equipo(id="e-1"), [EquipoCreado(id="e-1", placa="A"), EquipoCreado(id="e-1", placa="A")])
        with pytest.raises(ConsistencyViolation):
            result.unwrap()

    def test_empty_fold_returns_initial_state(self):
        initial = Empleado(id="x")
        result = fold(initial, [])
        assert isinstance(result, FoldResult)
        assert result.state is initial
        assert result.version == 0


# ── Timestamps ───────────────────────────────────────────

class TestEventTime:
    def test_explicit_timestamp_wins(self):
        explicit = datetime(2024, 1, 1, tzinfo=timezone.utc)
        recorded = RecordedEvent(data=None, timestamp=datetime(2025, 1, 1, tzinfo=timezone.utc))
        assert event_time(explicit, recorded) == explicit

    def test_falls_back_to_recorded_timestamp(self):
        stored = datetime(2025, 1, 1, tzinfo=timezone.utc)
        assert event_time(None, RecordedEvent(data=None, timestamp=stored)) == stored

    def test_falls_back_to_clock(self):
        before = datetime.now(timezone.utc)
        assert event_time(None, RecordedEvent(data=None)) >= before

    def test_equipment_update_uses_recorded_timestamp(self):
        stored = datetime(2025, 3, 4, tzinfo=timezone.utc)
        state = fold(Equipo(id="e-1"), [
            _recorded(EquipoCreado(id="e-1", placa="ABC123"), 1),
            _recorded(EquipoActualizado(id="e-1", descripcion="Volqueta", usuario_id="u-1"), 2, timestamp=stored),
        ]).unwrap()
        assert state.fecha_modificacion == stored
        assert state.modificado_por == "u-1"
