from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from sinco_maquinaria.domain.aggregates import (
    AGGREGATE_KINDS,
    ConfiguracionGlobal,
    Empleado,
    Equipo,
    OrdenDeTrabajo,
    RutinaMantenimiento,
    Usuario,
    fold,
)
from sinco_maquinaria.domain.enums import (
    CargoEmpleado,
    EstadoDetalleOrden,
    EstadoOrdenDeTrabajo,
    RolUsuario,
)
from sinco_maquinaria.domain.errors import ConsistencyViolation
from sinco_maquinaria.domain.events import (
    ActividadAgregada,
    ActividadDeRutinaActualizada,
    ActividadDeRutinaAgregada,
    ActividadDeRutinaEliminada,
    AvanceDeActividadRegistrado,
    CausaFallaCreada,
    EmpleadoActualizado,
    EmpleadoCreado,
    EquipoActualizado,
    EquipoMigrado,
    EstadoGrupoMantenimientoCambiado,
    GrupoMantenimientoActualizado,
    GrupoMantenimientoCreado,
    MedicionRegistrada,
    OrdenDeTrabajoCreada,
    OrdenDeTrabajoEliminada,
    OrdenFinalizada,
    OrdenProgramada,
    ParteAgregada,
    ParteEliminada,
    RefreshTokenGenerado,
    RefreshTokenRevocado,
    RutinaCreada,
    TipoFallaCreado,
    TipoMedidorCreado,
    UsuarioActualizado,
    UsuarioCreado,
    UsuarioDesactivado,
)


# ── OrdenDeTrabajo ───────────────────────────────────────

class TestOrdenDeTrabajo:
    def _orden(self, *extra):
        return fold(OrdenDeTrabajo(id="o-1"), [
            OrdenDeTrabajoCreada(orden_id="o-1", numero_orden="OT-1", equipo_id="e-1"),
            ActividadAgregada(item_detalle_id="d-1", descripcion="A"),
            ActividadAgregada(item_detalle_id="d-2", descripcion="B"),
            ActividadAgregada(item_detalle_id="d-3", descripcion="C"),
            *extra,
        ])

    def test_created_as_draft(self):
        orden = self._orden().unwrap()
        assert orden.estado == EstadoOrdenDeTrabajo.BORRADOR
        assert orden.numero == "OT-1"
        assert len(orden.detalles) == 3

    def test_second_creation_is_rejected(self):
        result = self._orden(OrdenDeTrabajoCreada(orden_id="o-1", numero_orden="OT-2"))
        assert not result.ok
        assert result.state.numero == "OT-1"

    def test_programming_sets_state_and_dates(self):
        cuando = datetime(2025, 5, 1, tzinfo=timezone.utc)
        orden = self._orden(OrdenProgramada(fecha_programada=cuando, duracion_estimada=timedelta(hours=4))).unwrap()
        assert orden.estado == EstadoOrdenDeTrabajo.PROGRAMADA
        assert orden.fecha_programada == cuando
        assert orden.duracion_estimada == timedelta(hours=4)

    def test_partial_completion_is_in_execution(self):
        orden = self._orden(
            AvanceDeActividadRegistrado(item_detalle_id="d-1", porcentaje_avance=Decimal("100"), nuevo_estado="Finalizado"),
            AvanceDeActividadRegistrado(item_detalle_id="d-2", porcentaje_avance=Decimal("100"), nuevo_estado="Finalizado"),
        ).unwrap()
        assert orden.estado == EstadoOrdenDeTrabajo.EN_EJECUCION
        assert orden.find_detalle("d-3").estado == EstadoDetalleOrden.PENDIENTE

    def test_all_details_finished_completes_execution(self):
        orden = self._orden(*[
            AvanceDeActividadRegistrado(item_detalle_id=d, porcentaje_avance=Decimal("100"), nuevo_estado="Finalizado")
            for d in ("d-1", "d-2", "d-3")
        ]).unwrap()
        assert orden.estado == EstadoOrdenDeTrabajo.EJECUCION_COMPLETA
        assert orden.porcentaje_avance_general == Decimal("100")

    def test_progress_on_missing_detail_halts(self):
        result = self._orden(AvanceDeActividadRegistrado(item_detalle_id="d-9", nuevo_estado="Finalizado"))
        assert isinstance(result.error, ConsistencyViolation)
        assert result.state.version == 4

    def test_invalid_detail_state_halts(self):
        result = self._orden(AvanceDeActividadRegistrado(item_detalle_id="d-1", nuevo_estado="Terminado"))
        assert not result.ok

    def test_finalize_with_invalid_state_halts(self):
        result = self._orden(OrdenFinalizada(estado_final="Cerrada", aprobado_por="jefe"))
        assert not result.ok

    def test_finalize_sets_approval(self):
        orden = self._orden(OrdenFinalizada(estado_final="EjecucionCompleta", aprobado_por="jefe")).unwrap()
        assert orden.estado == EstadoOrdenDeTrabajo.EJECUCION_COMPLETA
        assert orden.aprobado_por == "jefe"

    def test_deleted_is_terminal(self):
        orden = self._orden(OrdenDeTrabajoEliminada(orden_id="o-1")).unwrap()
        assert orden.is_terminal

    def test_average_progress(self):
        orden = self._orden(
            AvanceDeActividadRegistrado(item_detalle_id="d-1", porcentaje_avance=Decimal("60"), nuevo_estado="EnProceso"),
        ).unwrap()
        assert orden.porcentaje_avance_general == Decimal("20")


# ── Equipo ───────────────────────────────────────────────

class TestEquipo:
    def test_migrated_then_updated_keeps_plate(self):
        equipo = fold(Equipo(id="e-1"), [
            EquipoMigrado(id="e-1", placa="ABC123", descripcion="Volqueta", grupo="Livianos"),
            EquipoActualizado(id="e-1", descripcion="Volqueta doble troque", grupo="Pesados"),
        ]).unwrap()
        assert equipo.placa == "ABC123"
        assert equipo.descripcion == "Volqueta doble troque"
        assert equipo.grupo == "Pesados"
        assert equipo.estado == "Activo"

    def test_creation_twice_halts(self):
        result = fold(Equipo(id="e-1"), [EquipoMigrado(id="e-1", placa="A"), EquipoMigrado(id="e-1", placa="A")])
        assert not result.ok

    def test_reading_replaces_previous_for_same_meter(self):
        equipo = fold(Equipo(id="e-1"), [
            EquipoMigrado(id="e-1", placa="A", tipo_medidor_id="HR"),
            MedicionRegistrada(tipo_medidor="HR", valor_medicion=Decimal("10"), trabajo_acumulado_calculado=Decimal("10")),
            MedicionRegistrada(tipo_medidor="HR", valor_medicion=Decimal("25"), trabajo_acumulado_calculado=Decimal("25")),
        ]).unwrap()
        assert equipo.lecturas["HR"].valor == Decimal("25")
        assert len(equipo.lecturas) == 1


# ── ConfiguracionGlobal ──────────────────────────────────

class TestConfiguracionGlobal:
    def test_duplicate_meter_code_halts(self):
        result = fold(ConfiguracionGlobal(), [
            TipoMedidorCreado(codigo="HR", nombre="Horómetro", unidad="HR"),
            TipoMedidorCreado(codigo="HR", nombre="Otro", unidad="HR"),
        ])
        assert not result.ok
        assert len(result.state.tipos_medidor) == 1

    def test_same_code_allowed_across_catalogs(self):
        config = fold(ConfiguracionGlobal(), [
            TipoMedidorCreado(codigo="X1", nombre="Km", unidad="KM"),
            TipoFallaCreado(codigo="X1", descripcion="Falla eléctrica"),
            CausaFallaCreada(codigo="X1", descripcion="Desgaste"),
        ]).unwrap()
        assert config.buscar_tipo_medidor("X1").unidad == "KM"
        assert config.buscar_tipo_falla("X1").prioridad == "Media"
        assert config.buscar_causa_falla("X1").descripcion == "Desgaste"

    def test_update_of_missing_group_halts(self):
        result = fold(ConfiguracionGlobal(), [GrupoMantenimientoActualizado(codigo="NOPE", nombre="x")])
        assert not result.ok

    def test_group_deactivation_filters_active_list(self):
        config = fold(ConfiguracionGlobal(), [
            GrupoMantenimientoCreado(codigo="LIV", nombre="Livianos"),
            GrupoMantenimientoCreado(codigo="PES", nombre="Pesados"),
            EstadoGrupoMantenimientoCambiado(codigo="LIV", activo=False, usuario_id="u-1"),
        ]).unwrap()
        assert [g.codigo for g in config.grupos_activos()] == ["PES"]
        assert config.buscar_grupo("LIV").modificado_por == "u-1"


# ── RutinaMantenimiento ──────────────────────────────────

class TestRutinaMantenimiento:
    def _base(self):
        return [
            RutinaCreada(rutina_id="r-1", descripcion="Rutina 250h", grupo="Pesados"),
            ParteAgregada(parte_id="p-1", descripcion="Motor", rutina_id="r-1"),
            ActividadDeRutinaAgregada(actividad_id="a-1", parte_id="p-1", descripcion="Aceite",
                                      frecuencia=250, unidad_medida="HR"),
        ]

    def test_tree_is_built(self):
        rutina = fold(RutinaMantenimiento(id="r-1"), self._base()).unwrap()
        assert rutina.find_parte("p-1").descripcion == "Motor"
        assert rutina.find_actividad("a-1").frecuencia == 250
        assert rutina.unidades_requeridas() == {"HR"}

    def test_activity_on_missing_part_halts(self):
        result = fold(RutinaMantenimiento(id="r-1"), self._base() + [
            ActividadDeRutinaAgregada(actividad_id="a-2", parte_id="p-9", descripcion="x"),
        ])
        assert not result.ok
        assert result.state.version == 3

    def test_update_of_missing_activity_halts(self):
        result = fold(RutinaMantenimiento(id="r-1"), self._base() + [
            ActividadDeRutinaActualizada(actividad_id="a-9", descripcion="x"),
        ])
        assert not result.ok

    def test_duplicate_part_halts(self):
        result = fold(RutinaMantenimiento(id="r-1"), self._base() + [
            ParteAgregada(parte_id="p-1", descripcion="Motor otra vez", rutina_id="r-1"),
        ])
        assert not result.ok

    def test_removing_missing_part_is_a_noop(self):
        rutina = fold(RutinaMantenimiento(id="r-1"), self._base() + [ParteEliminada(parte_id="p-9")]).unwrap()
        assert len(rutina.partes) == 1
        assert rutina.version == 4

    def test_activity_removal(self):
        rutina = fold(RutinaMantenimiento(id="r-1"), self._base() + [
            ActividadDeRutinaEliminada(actividad_id="a-1", parte_id="p-1"),
        ]).unwrap()
        assert rutina.find_actividad("a-1") is None


# ── Empleado / Usuario ───────────────────────────────────

class TestEmpleado:
    def test_created_and_updated(self):
        empleado = fold(Empleado(id="m-1"), [
            EmpleadoCreado(id="m-1", nombre="Ana", identificacion="123", cargo="Mecanico", usuario_id="u-1"),
            EmpleadoActualizado(id="m-1", nombre="Ana María", identificacion="123", cargo="operario"),
        ]).unwrap()
        assert empleado.cargo == CargoEmpleado.OPERARIO
        assert empleado.nombre == "Ana María"
        assert empleado.creado_por == "u-1"

    def test_invalid_cargo_halts(self):
        result = fold(Empleado(id="m-1"), [EmpleadoCreado(id="m-1", nombre="Ana", identificacion="1", cargo="Piloto")])
        assert not result.ok


class TestUsuario:
    def _usuario(self, *extra):
        return fold(Usuario(id="u-1"), [
            UsuarioCreado(id="u-1", email="a@b.co", password_hash="h", nombre="Ana", rol="Admin"),
            *extra,
        ]).unwrap()

    def test_partial_update_keeps_omitted_fields(self):
        usuario = self._usuario(UsuarioActualizado(id="u-1", nombre="Ana B"))
        assert usuario.rol == RolUsuario.ADMIN
        assert usuario.password_hash == "h"
        assert usuario.nombre == "Ana B"

    def test_refresh_token_lifecycle(self):
        now = datetime.now(timezone.utc)
        usuario = self._usuario(RefreshTokenGenerado(usuario_id="u-1", refresh_token="t", expiry=now + timedelta(days=1)))
        assert usuario.refresh_token_valido("t", now)
        assert not usuario.refresh_token_valido("otro", now)
        assert not usuario.refresh_token_valido("t", now + timedelta(days=2))

        revocado = fold(usuario, [RefreshTokenRevocado(usuario_id="u-1")]).unwrap()
        assert not revocado.refresh_token_valido("t", now)

    def test_deactivated_user_has_no_valid_token(self):
        now = datetime.now(timezone.utc)
        usuario = self._usuario(
            RefreshTokenGenerado(usuario_id="u-1", refresh_token="t", expiry=now + timedelta(days=1)),
            UsuarioDesactivado(id="u-1"),
        )
        assert not usuario.activo
        assert not usuario.refresh_token_valido("t", now)


def test_every_aggregate_kind_is_registered():
    assert set(AGGREGATE_KINDS) == {
        "orden_de_trabajo", "equipo", "configuracion_global", "rutina_mantenimiento", "usuario", "empleado",
    }
