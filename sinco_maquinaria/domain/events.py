"""Domain Events — immutable records of things that happened in the domain.

The class name is the event's discriminant. The snake_case spelling of the
same name is accepted wherever a type name is resolved, because older
streams were written with it.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any


@dataclass(frozen=True)
class DomainEvent:
    """Base class for all domain events."""

    @classmethod
    def type_name(cls) -> str:
        return cls.__name__


# ── Órdenes de Trabajo ───────────────────────────────────

@dataclass(frozen=True)
class OrdenDeTrabajoCreada(DomainEvent):
    orden_id: str = ""
    numero_orden: str = ""
    equipo_id: str = ""
    origen: str = ""
    tipo_mantenimiento: str = ""
    fecha_orden: datetime | None = None
    fecha_creacion: datetime | None = None
    usuario_id: str | None = None
    usuario_nombre: str | None = None


@dataclass(frozen=True)
class OrdenProgramada(DomainEvent):
    fecha_programada: datetime | None = None
    duracion_estimada: timedelta = timedelta(0)
    usuario_id: str | None = None
    usuario_nombre: str | None = None


@dataclass(frozen=True)
class OrdenFinalizada(DomainEvent):
    estado_final: str = ""
    aprobado_por: str = ""
    fecha_aprobacion: datetime | None = None
    usuario_id: str | None = None
    usuario_nombre: str | None = None


@dataclass(frozen=True)
class OrdenDeTrabajoEliminada(DomainEvent):
    orden_id: str = ""
    usuario_id: str | None = None
    usuario_nombre: str | None = None


@dataclass(frozen=True)
class ActividadAgregada(DomainEvent):
    item_detalle_id: str = ""
    descripcion: str = ""
    fecha_estimada_ejecucion: datetime | None = None
    frecuencia: int = 0
    tipo_falla_id: str | None = None
    causa_falla_id: str | None = None
    usuario_id: str | None = None
    usuario_nombre: str | None = None


@dataclass(frozen=True)
class AvanceDeActividadRegistrado(DomainEvent):
    item_detalle_id: str = ""
    porcentaje_avance: Decimal = Decimal("0")
    observacion: str = ""
    nuevo_estado: str = ""
    usuario_id: str | None = None
    usuario_nombre: str | None = None


# ── Equipos ──────────────────────────────────────────────

@dataclass(frozen=True)
class EquipoCreado(DomainEvent):
    id: str = ""
    placa: str = ""
    descripcion: str = ""
    marca: str = ""
    modelo: str = ""
    serie: str = ""
    codigo: str = ""
    tipo_medidor_id: str = ""
    tipo_medidor_id2: str = ""
    grupo: str = ""
    rutina: str = ""
    usuario_id: str | None = None
    usuario_nombre: str | None = None
    fecha_creacion: datetime | None = None


@dataclass(frozen=True)
class EquipoMigrado(DomainEvent):
    """Equipment brought in from the legacy spreadsheet import."""
    id: str = ""
    placa: str = ""
    descripcion: str = ""
    marca: str = ""
    modelo: str = ""
    serie: str = ""
    codigo: str = ""
    tipo_medidor_id: str = ""
    tipo_medidor_id2: str = ""
    grupo: str = ""
    rutina: str = ""
    usuario_id: str | None = None
    usuario_nombre: str | None = None
    fecha_creacion: datetime | None = None


@dataclass(frozen=True)
class EquipoActualizado(DomainEvent):
    id: str = ""
    descripcion: str = ""
    marca: str = ""
    modelo: str = ""
    serie: str = ""
    codigo: str = ""
    tipo_medidor_id: str = ""
    tipo_medidor_id2: str = ""
    grupo: str = ""
    rutina: str = ""
    usuario_id: str | None = None
    usuario_nombre: str | None = None
    fecha_modificacion: datetime | None = None


@dataclass(frozen=True)
class MedicionRegistrada(DomainEvent):
    tipo_medidor: str = ""
    valor_medicion: Decimal = Decimal("0")
    fecha_lectura: datetime | None = None
    trabajo_acumulado_calculado: Decimal = Decimal("0")
    usuario_id: str | None = None
    usuario_nombre: str | None = None


# ── Configuración Global ─────────────────────────────────

@dataclass(frozen=True)
class TipoMedidorCreado(DomainEvent):
    codigo: str = ""
    nombre: str = ""
    unidad: str = ""
    usuario_id: str | None = None
    usuario_nombre: str | None = None
    fecha_creacion: datetime | None = None


@dataclass(frozen=True)
class TipoMedidorActualizado(DomainEvent):
    codigo: str = ""
    nombre: str = ""
    unidad: str = ""
    usuario_id: str | None = None
    usuario_nombre: str | None = None


@dataclass(frozen=True)
class EstadoTipoMedidorCambiado(DomainEvent):
    codigo: str = ""
    activo: bool = True
    usuario_id: str | None = None
    usuario_nombre: str | None = None


@dataclass(frozen=True)
class GrupoMantenimientoCreado(DomainEvent):
    codigo: str = ""
    nombre: str = ""
    descripcion: str = ""
    activo: bool = True
    usuario_id: str | None = None
    usuario_nombre: str | None = None
    fecha_creacion: datetime | None = None


@dataclass(frozen=True)
class GrupoMantenimientoActualizado(DomainEvent):
    codigo: str = ""
    nombre: str = ""
    descripcion: str = ""
    usuario_id: str | None = None
    usuario_nombre: str | None = None


@dataclass(frozen=True)
class EstadoGrupoMantenimientoCambiado(DomainEvent):
    codigo: str = ""
    activo: bool = True
    usuario_id: str | None = None
    usuario_nombre: str | None = None


@dataclass(frozen=True)
class TipoFallaCreado(DomainEvent):
    codigo: str = ""
    descripcion: str = ""
    prioridad: str = "Media"
    usuario_id: str | None = None
    usuario_nombre: str | None = None
    fecha_creacion: datetime | None = None


@dataclass(frozen=True)
class TipoFallaActualizado(DomainEvent):
    codigo: str = ""
    descripcion: str = ""
    prioridad: str = "Media"
    usuario_id: str | None = None
    usuario_nombre: str | None = None


@dataclass(frozen=True)
class EstadoTipoFallaCambiado(DomainEvent):
    codigo: str = ""
    activo: bool = True
    usuario_id: str | None = None
    usuario_nombre: str | None = None


@dataclass(frozen=True)
class CausaFallaCreada(DomainEvent):
    codigo: str = ""
    descripcion: str = ""
    usuario_id: str | None = None
    usuario_nombre: str | None = None
    fecha_creacion: datetime | None = None


@dataclass(frozen=True)
class CausaFallaActualizada(DomainEvent):
    codigo: str = ""
    descripcion: str = ""
    usuario_id: str | None = None
    usuario_nombre: str | None = None


@dataclass(frozen=True)
class EstadoCausaFallaCambiado(DomainEvent):
    codigo: str = ""
    activo: bool = True
    usuario_id: str | None = None
    usuario_nombre: str | None = None


# ── Rutinas de Mantenimiento ─────────────────────────────

@dataclass(frozen=True)
class RutinaCreada(DomainEvent):
    rutina_id: str = ""
    descripcion: str = ""
    grupo: str = ""
    usuario_id: str | None = None
    usuario_nombre: str | None = None


@dataclass(frozen=True)
class RutinaMigrada(DomainEvent):
    rutina_id: str = ""
    descripcion: str = ""
    grupo: str = ""
    usuario_id: str | None = None
    usuario_nombre: str | None = None


@dataclass(frozen=True)
class RutinaActualizada(DomainEvent):
    rutina_id: str = ""
    descripcion: str = ""
    grupo: str = ""
    usuario_id: str | None = None
    usuario_nombre: str | None = None


@dataclass(frozen=True)
class ParteAgregada(DomainEvent):
    parte_id: str = ""
    descripcion: str = ""
    rutina_id: str = ""
    usuario_id: str | None = None
    usuario_nombre: str | None = None


@dataclass(frozen=True)
class ParteDeRutinaMigrada(DomainEvent):
    parte_id: str = ""
    descripcion: str = ""
    rutina_id: str = ""


@dataclass(frozen=True)
class ParteActualizada(DomainEvent):
    parte_id: str = ""
    descripcion: str = ""
    usuario_id: str | None = None
    usuario_nombre: str | None = None


@dataclass(frozen=True)
class ParteEliminada(DomainEvent):
    parte_id: str = ""
    usuario_id: str | None = None
    usuario_nombre: str | None = None


@dataclass(frozen=True)
class ActividadDeRutinaAgregada(DomainEvent):
    actividad_id: str = ""
    parte_id: str = ""
    descripcion: str = ""
    clase: str = ""
    frecuencia: int = 0
    unidad_medida: str = ""
    nombre_medidor: str = ""
    alerta_faltando: int = 0
    frecuencia2: int = 0
    unidad_medida2: str = ""
    nombre_medidor2: str = ""
    alerta_faltando2: int = 0
    insumo: str | None = None
    cantidad: float = 0.0
    usuario_id: str | None = None
    usuario_nombre: str | None = None


@dataclass(frozen=True)
class ActividadDeRutinaMigrada(DomainEvent):
    actividad_id: str = ""
    parte_id: str = ""
    descripcion: str = ""
    clase: str = ""
    frecuencia: int = 0
    unidad_medida: str = ""
    nombre_medidor: str = ""
    alerta_faltando: int = 0
    frecuencia2: int = 0
    unidad_medida2: str = ""
    nombre_medidor2: str = ""
    alerta_faltando2: int = 0
    insumo: str | None = None
    cantidad: float = 0.0


@dataclass(frozen=True)
class ActividadDeRutinaActualizada(DomainEvent):
    actividad_id: str = ""
    descripcion: str = ""
    clase: str = ""
    frecuencia: int = 0
    unidad_medida: str = ""
    nombre_medidor: str = ""
    alerta_faltando: int = 0
    frecuencia2: int = 0
    unidad_medida2: str = ""
    nombre_medidor2: str = ""
    alerta_faltando2: int = 0
    insumo: str | None = None
    cantidad: float = 0.0
    usuario_id: str | None = None
    usuario_nombre: str | None = None


@dataclass(frozen=True)
class ActividadDeRutinaEliminada(DomainEvent):
    actividad_id: str = ""
    parte_id: str = ""
    usuario_id: str | None = None
    usuario_nombre: str | None = None


# ── Empleados ────────────────────────────────────────────

@dataclass(frozen=True)
class EmpleadoCreado(DomainEvent):
    id: str = ""
    nombre: str = ""
    identificacion: str = ""
    cargo: str = ""
    especialidad: str = ""
    valor_hora: Decimal = Decimal("0")
    estado: str = "Activo"
    usuario_id: str | None = None
    usuario_nombre: str | None = None
    fecha_creacion: datetime | None = None


@dataclass(frozen=True)
class EmpleadoActualizado(DomainEvent):
    id: str = ""
    nombre: str = ""
    identificacion: str = ""
    cargo: str = ""
    especialidad: str = ""
    valor_hora: Decimal = Decimal("0")
    estado: str = "Activo"
    usuario_id: str | None = None
    usuario_nombre: str | None = None
    fecha_modificacion: datetime | None = None


# ── Usuarios ─────────────────────────────────────────────

@dataclass(frozen=True)
class UsuarioCreado(DomainEvent):
    id: str = ""
    email: str = ""
    password_hash: str = ""
    nombre: str = ""
    rol: str = "User"
    fecha_creacion: datetime | None = None


@dataclass(frozen=True)
class UsuarioActualizado(DomainEvent):
    id: str = ""
    nombre: str = ""
    rol: str | None = None
    activo: bool | None = None
    password_hash: str | None = None
    modificado_por: str | None = None
    modificado_por_nombre: str | None = None
    fecha_modificacion: datetime | None = None


@dataclass(frozen=True)
class UsuarioDesactivado(DomainEvent):
    id: str = ""


@dataclass(frozen=True)
class RefreshTokenGenerado(DomainEvent):
    usuario_id: str = ""
    refresh_token: str = ""
    expiry: datetime | None = None
    fecha_creacion: datetime | None = None


@dataclass(frozen=True)
class RefreshTokenRevocado(DomainEvent):
    usuario_id: str = ""
    fecha_revocacion: datetime | None = None


# ── Event Type Registry ──────────────────────────────────

_ALL_EVENTS: tuple[type[DomainEvent], ...] = (
    OrdenDeTrabajoCreada,
    OrdenProgramada,
    OrdenFinalizada,
    OrdenDeTrabajoEliminada,
    ActividadAgregada,
    AvanceDeActividadRegistrado,
    EquipoCreado,
    EquipoMigrado,
    EquipoActualizado,
    MedicionRegistrada,
    TipoMedidorCreado,
    TipoMedidorActualizado,
    EstadoTipoMedidorCambiado,
    GrupoMantenimientoCreado,
    GrupoMantenimientoActualizado,
    EstadoGrupoMantenimientoCambiado,
    TipoFallaCreado,
    TipoFallaActualizado,
    EstadoTipoFallaCambiado,
    CausaFallaCreada,
    CausaFallaActualizada,
    EstadoCausaFallaCambiado,
    RutinaCreada,
    RutinaMigrada,
    RutinaActualizada,
    ParteAgregada,
    ParteDeRutinaMigrada,
    ParteActualizada,
    ParteEliminada,
    ActividadDeRutinaAgregada,
    ActividadDeRutinaMigrada,
    ActividadDeRutinaActualizada,
    ActividadDeRutinaEliminada,
    EmpleadoCreado,
    EmpleadoActualizado,
    UsuarioCreado,
    UsuarioActualizado,
    UsuarioDesactivado,
    RefreshTokenGenerado,
    RefreshTokenRevocado,
)

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")


def to_snake_case(type_name: str) -> str:
    """OrdenDeTrabajoCreada -> orden_de_trabajo_creada."""
    return _CAMEL_BOUNDARY.sub("_", type_name).lower()


EVENT_TYPES: dict[str, type[DomainEvent]] = {}
for _cls in _ALL_EVENTS:
    EVENT_TYPES[_cls.__name__] = _cls
    EVENT_TYPES[to_snake_case(_cls.__name__)] = _cls


def resolve_event_type(type_name: str) -> type[DomainEvent] | None:
    """Return the event class for either spelling of its name, or None."""
    return EVENT_TYPES.get(type_name)


def event_type_name(event: object) -> str:
    if isinstance(event, DomainEvent):
        return event.type_name()
    return type(event).__name__


# ── Stored Envelope ──────────────────────────────────────

@dataclass(frozen=True)
class RecordedEvent:
    """An event as read back from a stream.

    `data` is the typed event, or the raw payload mapping when the stored type
    name is not registered in EVENT_TYPES. `version` is None for events that
    were never stored; folding treats them as the next version.
    """
    data: Any
    stream_id: str = ""
    version: int | None = None
    event_type: str = ""
    timestamp: datetime | None = None
    event_id: str = ""
    position: int = 0

    @classmethod
    def wrap(cls, event: DomainEvent, stream_id: str = "", **kwargs: Any) -> RecordedEvent:
        return cls(data=event, stream_id=stream_id, event_type=event_type_name(event), **kwargs)
