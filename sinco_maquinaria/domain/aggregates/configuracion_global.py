"""ConfiguracionGlobal Aggregate — singleton holding the four catalogs.

Exactly one stream uses CONFIGURACION_GLOBAL_ID. Each catalog is keyed by
`codigo`: a Created event with a code already present, or an Updated /
EstadoCambiado event with an absent one, halts the fold.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import ClassVar, TypeVar

from sinco_maquinaria.domain.aggregates.base import Aggregate, applies, event_time
from sinco_maquinaria.domain.errors import ConsistencyViolation
from sinco_maquinaria.domain.events import (
    CausaFallaActualizada,
    CausaFallaCreada,
    EstadoCausaFallaCambiado,
    EstadoGrupoMantenimientoCambiado,
    EstadoTipoFallaCambiado,
    EstadoTipoMedidorCambiado,
    GrupoMantenimientoActualizado,
    GrupoMantenimientoCreado,
    RecordedEvent,
    TipoFallaActualizado,
    TipoFallaCreado,
    TipoMedidorActualizado,
    TipoMedidorCreado,
)
from sinco_maquinaria.domain.identity import CONFIGURACION_GLOBAL_ID


@dataclass
class EntradaCatalogo:
    codigo: str
    activo: bool = True
    creado_por: str | None = None
    creado_por_nombre: str | None = None
    fecha_creacion: datetime | None = None
    modificado_por: str | None = None
    modificado_por_nombre: str | None = None
    fecha_modificacion: datetime | None = None


@dataclass
class TipoMedidor(EntradaCatalogo):
    nombre: str = ""
    unidad: str = ""


@dataclass
class GrupoMantenimiento(EntradaCatalogo):
    nombre: str = ""
    descripcion: str = ""


@dataclass
class TipoFalla(EntradaCatalogo):
    descripcion: str = ""
    prioridad: str = "Media"


@dataclass
class CausaFalla(EntradaCatalogo):
    descripcion: str = ""


E = TypeVar("E", bound=EntradaCatalogo)


@dataclass
class ConfiguracionGlobal(Aggregate):
    stream_type: ClassVar[str] = "configuracion_global"

    id: str = CONFIGURACION_GLOBAL_ID
    tipos_medidor: list[TipoMedidor] = field(default_factory=list)
    grupos_mantenimiento: list[GrupoMantenimiento] = field(default_factory=list)
    tipos_falla: list[TipoFalla] = field(default_factory=list)
    causas_falla: list[CausaFalla] = field(default_factory=list)

    # ── Queries ──────────────────────────────────────────

    def tipos_medidor_activos(self) -> list[TipoMedidor]:
        return [t for t in self.tipos_medidor if t.activo]

    def grupos_activos(self) -> list[GrupoMantenimiento]:
        return [g for g in self.grupos_mantenimiento if g.activo]

    def buscar_tipo_medidor(self, codigo: str) -> TipoMedidor | None:
        return _find(self.tipos_medidor, codigo)

    def buscar_grupo(self, codigo: str) -> GrupoMantenimiento | None:
        return _find(self.grupos_mantenimiento, codigo)

    def buscar_tipo_falla(self, codigo: str) -> TipoFalla | None:
        return _find(self.tipos_falla, codigo)

    def buscar_causa_falla(self, codigo: str) -> CausaFalla | None:
        return _find(self.causas_falla, codigo)

    # ── Meter types ──────────────────────────────────────

    @applies(TipoMedidorCreado)
    def _tipo_medidor_creado(self, e: TipoMedidorCreado, meta: RecordedEvent) -> None:
        _insert(self.tipos_medidor, TipoMedidor(
            codigo=e.codigo,
            nombre=e.nombre,
            unidad=e.unidad,
            creado_por=e.usuario_id,
            creado_por_nombre=e.usuario_nombre,
            fecha_creacion=event_time(e.fecha_creacion, meta),
        ), "tipo de medidor")

    @applies(TipoMedidorActualizado)
    def _tipo_medidor_actualizado(self, e: TipoMedidorActualizado, meta: RecordedEvent) -> None:
        tipo = _require(self.tipos_medidor, e.codigo, "Tipo de medidor")
        tipo.nombre = e.nombre
        tipo.unidad = e.unidad
        _touch(tipo, e.usuario_id, e.usuario_nombre, meta)

    @applies(EstadoTipoMedidorCambiado)
    def _tipo_medidor_estado(self, e: EstadoTipoMedidorCambiado, meta: RecordedEvent) -> None:
        tipo = _require(self.tipos_medidor, e.codigo, "Tipo de medidor")
        tipo.activo = e.activo
        _touch(tipo, e.usuario_id, e.usuario_nombre, meta)

    # ── Maintenance groups ───────────────────────────────

    @applies(GrupoMantenimientoCreado)
    def _grupo_creado(self, e: GrupoMantenimientoCreado, meta: RecordedEvent) -> None:
        _insert(self.grupos_mantenimiento, GrupoMantenimiento(
            codigo=e.codigo,
            nombre=e.nombre,
            descripcion=e.descripcion,
            activo=e.activo,
            creado_por=e.usuario_id,
            creado_por_nombre=e.usuario_nombre,
            fecha_creacion=event_time(e.fecha_creacion, meta),
        ), "grupo de mantenimiento")

    @applies(GrupoMantenimientoActualizado)
    def _grupo_actualizado(self, e: GrupoMantenimientoActualizado, meta: RecordedEvent) -> None:
        grupo = _require(self.grupos_mantenimiento, e.codigo, "Grupo de mantenimiento")
        grupo.nombre = e.nombre
        grupo.descripcion = e.descripcion
        _touch(grupo, e.usuario_id, e.usuario_nombre, meta)

    @applies(EstadoGrupoMantenimientoCambiado)
    def _grupo_estado(self, e: EstadoGrupoMantenimientoCambiado, meta: RecordedEvent) -> None:
        grupo = _require(self.grupos_mantenimiento, e.codigo, "Grupo de mantenimiento")
        grupo.activo = e.activo
        _touch(grupo, e.usuario_id, e.usuario_nombre, meta)

    # ── Failure types ────────────────────────────────────

    @applies(TipoFallaCreado)
    def _tipo_falla_creado(self, e: TipoFallaCreado, meta: RecordedEvent) -> None:
        _insert(self.tipos_falla, TipoFalla(
            codigo=e.codigo,
            descripcion=e.descripcion,
            prioridad=e.prioridad,
            creado_por=e.usuario_id,
            creado_por_nombre=e.usuario_nombre,
            fecha_creacion=event_time(e.fecha_creacion, meta),
        ), "tipo de falla")

    @applies(TipoFallaActualizado)
    def _tipo_falla_actualizado(self, e: TipoFallaActualizado, meta: RecordedEvent) -> None:
        tipo = _require(self.tipos_falla, e.codigo, "Tipo de falla")
        tipo.descripcion = e.descripcion
        tipo.prioridad = e.prioridad
        _touch(tipo, e.usuario_id, e.usuario_nombre, meta)

    @applies(EstadoTipoFallaCambiado)
    def _tipo_falla_estado(self, e: EstadoTipoFallaCambiado, meta: RecordedEvent) -> None:
        tipo = _require(self.tipos_falla, e.codigo, "Tipo de falla")
        tipo.activo = e.activo
        _touch(tipo, e.usuario_id, e.usuario_nombre, meta)

    # ── Failure causes ───────────────────────────────────

    @applies(CausaFallaCreada)
    def _causa_creada(self, e: CausaFallaCreada, meta: RecordedEvent) -> None:
        _insert(self.causas_falla, CausaFalla(
            codigo=e.codigo,
            descripcion=e.descripcion,
            creado_por=e.usuario_id,
            creado_por_nombre=e.usuario_nombre,
            fecha_creacion=event_time(e.fecha_creacion, meta),
        ), "causa de falla")

    @applies(CausaFallaActualizada)
    def _causa_actualizada(self, e: CausaFallaActualizada, meta: RecordedEvent) -> None:
        causa = _require(self.causas_falla, e.codigo, "Causa de falla")
        causa.descripcion = e.descripcion
        _touch(causa, e.usuario_id, e.usuario_nombre, meta)

    @applies(EstadoCausaFallaCambiado)
    def _causa_estado(self, e: EstadoCausaFallaCambiado, meta: RecordedEvent) -> None:
        causa = _require(self.causas_falla, e.codigo, "Causa de falla")
        causa.activo = e.activo
        _touch(causa, e.usuario_id, e.usuario_nombre, meta)


def _find(entries: list[E], codigo: str) -> E | None:
    return next((x for x in entries if x.codigo == codigo), None)


def _insert(entries: list[E], entry: E, label: str) -> None:
    if _find(entries, entry.codigo) is not None:
        raise ConsistencyViolation(f"Ya existe un {label} con el código '{entry.codigo}'")
    entries.append(entry)


def _require(entries: list[E], codigo: str, label: str) -> E:
    entry = _find(entries, codigo)
    if entry is None:
        raise ConsistencyViolation(f"{label} con código '{codigo}' no encontrado")
    return entry


def _touch(entry: EntradaCatalogo, usuario_id: str | None, usuario_nombre: str | None,
           meta: RecordedEvent) -> None:
    entry.modificado_por = usuario_id
    entry.modificado_por_nombre = usuario_nombre
    entry.fecha_modificacion = event_time(None, meta)
