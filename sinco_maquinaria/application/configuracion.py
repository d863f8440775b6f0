"""Global configuration catalogs: meter types, maintenance groups, failure types and causes.

All four live in the singleton ConfiguracionGlobal stream, started by the
first command that writes to it.
"""
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Callable

from sinco_maquinaria.application.repository import AggregateRepository
from sinco_maquinaria.application.validacion import Reglas
from sinco_maquinaria.domain.aggregates.configuracion_global import ConfiguracionGlobal, EntradaCatalogo
from sinco_maquinaria.domain.errors import ValidationError
from sinco_maquinaria.domain.events import (
    CausaFallaActualizada,
    CausaFallaCreada,
    DomainEvent,
    EstadoCausaFallaCambiado,
    EstadoGrupoMantenimientoCambiado,
    EstadoTipoFallaCambiado,
    EstadoTipoMedidorCambiado,
    GrupoMantenimientoActualizado,
    GrupoMantenimientoCreado,
    TipoFallaActualizado,
    TipoFallaCreado,
    TipoMedidorActualizado,
    TipoMedidorCreado,
)
from sinco_maquinaria.domain.identity import CONFIGURACION_GLOBAL_ID

PRIORIDADES_VALIDAS = ("Alta", "Media", "Baja")


def nuevo_codigo() -> str:
    return uuid.uuid4().hex.upper()[:8]


def codigo_desde_nombre(nombre: str) -> str:
    """Code for catalog entries created implicitly (bulk import): upper-case, '_' for spaces."""
    return nombre.strip().upper().replace(" ", "_")


class ConfiguracionService:

    def __init__(self, repository: AggregateRepository):
        self.repository = repository

    async def obtener(self) -> ConfiguracionGlobal:
        """Current configuration; an empty one when nothing was configured yet."""
        config = await self.repository.find(ConfiguracionGlobal, CONFIGURACION_GLOBAL_ID)
        return config or ConfiguracionGlobal()

    async def _execute(self, decide: Callable[[ConfiguracionGlobal], list[DomainEvent]]) -> ConfiguracionGlobal:
        return await self.repository.execute(ConfiguracionGlobal, CONFIGURACION_GLOBAL_ID, decide, create=True)

    # ── Meter types ──────────────────────────────────────

    async def crear_tipo_medidor(
        self, nombre: str, unidad: str, usuario_id: str | None = None, usuario_nombre: str | None = None,
    ) -> str:
        _validar_tipo_medidor(nombre, unidad)
        codigo = nuevo_codigo()

        def decide(config: ConfiguracionGlobal) -> list[DomainEvent]:
            if any(t.nombre.casefold() == nombre.casefold() for t in config.tipos_medidor):
                raise ValidationError(f"El tipo '{nombre}' ya existe.", code="DUPLICATE")
            return [TipoMedidorCreado(
                codigo=codigo, nombre=nombre, unidad=unidad.upper(),
                usuario_id=usuario_id, usuario_nombre=usuario_nombre,
                fecha_creacion=datetime.now(timezone.utc),
            )]

        await self._execute(decide)
        return codigo

    async def actualizar_tipo_medidor(
        self, codigo: str, nombre: str, unidad: str,
        usuario_id: str | None = None, usuario_nombre: str | None = None,
    ) -> ConfiguracionGlobal:
        _validar_tipo_medidor(nombre, unidad)

        def decide(config: ConfiguracionGlobal) -> list[DomainEvent]:
            _existente(config.buscar_tipo_medidor(codigo), "Tipo de medidor", codigo)
            return [TipoMedidorActualizado(
                codigo=codigo, nombre=nombre, unidad=unidad.upper(),
                usuario_id=usuario_id, usuario_nombre=usuario_nombre,
            )]

        return await self._execute(decide)

    async def cambiar_estado_tipo_medidor(
        self, codigo: str, activo: bool, usuario_id: str | None = None, usuario_nombre: str | None = None,
    ) -> ConfiguracionGlobal:
        def decide(config: ConfiguracionGlobal) -> list[DomainEvent]:
            _existente(config.buscar_tipo_medidor(codigo), "Tipo de medidor", codigo)
            return [EstadoTipoMedidorCambiado(
                codigo=codigo, activo=activo, usuario_id=usuario_id, usuario_nombre=usuario_nombre,
            )]

        return await self._execute(decide)

    # ── Maintenance groups ───────────────────────────────

    async def crear_grupo(
        self, nombre: str, descripcion: str = "",
        usuario_id: str | None = None, usuario_nombre: str | None = None,
    ) -> str:
        _validar_grupo(nombre, descripcion)
        codigo = nuevo_codigo()

        def decide(config: ConfiguracionGlobal) -> list[DomainEvent]:
            if any(g.nombre.casefold() == nombre.casefold() for g in config.grupos_mantenimiento):
                raise ValidationError(f"El grupo '{nombre}' ya existe.", code="DUPLICATE")
            return [GrupoMantenimientoCreado(
                codigo=codigo, nombre=nombre, descripcion=descripcion, activo=True,
                usuario_id=usuario_id, usuario_nombre=usuario_nombre,
                fecha_creacion=datetime.now(timezone.utc),
            )]

        await self._execute(decide)
        return codigo

    async def actualizar_grupo(
        self, codigo: str, nombre: str, descripcion: str = "",
        usuario_id: str | None = None, usuario_nombre: str | None = None,
    ) -> ConfiguracionGlobal:
        _validar_grupo(nombre, descripcion)

        def decide(config: ConfiguracionGlobal) -> list[DomainEvent]:
            _existente(config.buscar_grupo(codigo), "Grupo de mantenimiento", codigo)
            return [GrupoMantenimientoActualizado(
                codigo=codigo, nombre=nombre, descripcion=descripcion,
                usuario_id=usuario_id, usuario_nombre=usuario_nombre,
            )]

        return await self._execute(decide)

    async def cambiar_estado_grupo(
        self, codigo: str, activo: bool, usuario_id: str | None = None, usuario_nombre: str | None = None,
    ) -> ConfiguracionGlobal:
        def decide(config: ConfiguracionGlobal) -> list[DomainEvent]:
            _existente(config.buscar_grupo(codigo), "Grupo de mantenimiento", codigo)
            return [EstadoGrupoMantenimientoCambiado(
                codigo=codigo, activo=activo, usuario_id=usuario_id, usuario_nombre=usuario_nombre,
            )]

        return await self._execute(decide)

    # ── Failure types ────────────────────────────────────

    async def crear_tipo_falla(
        self, descripcion: str, prioridad: str,
        usuario_id: str | None = None, usuario_nombre: str | None = None,
    ) -> str:
        prioridad = _validar_tipo_falla(descripcion, prioridad)
        codigo = nuevo_codigo()

        def decide(config: ConfiguracionGlobal) -> list[DomainEvent]:
            if any(f.descripcion.casefold() == descripcion.casefold() for f in config.tipos_falla):
                raise ValidationError(f"El tipo de falla '{descripcion}' ya existe.", code="DUPLICATE")
            return [TipoFallaCreado(
                codigo=codigo, descripcion=descripcion, prioridad=prioridad,
                usuario_id=usuario_id, usuario_nombre=usuario_nombre,
                fecha_creacion=datetime.now(timezone.utc),
            )]

        await self._execute(decide)
        return codigo

    async def actualizar_tipo_falla(
        self, codigo: str, descripcion: str, prioridad: str,
        usuario_id: str | None = None, usuario_nombre: str | None = None,
    ) -> ConfiguracionGlobal:
        prioridad = _validar_tipo_falla(descripcion, prioridad)

        def decide(config: ConfiguracionGlobal) -> list[DomainEvent]:
            _existente(config.buscar_tipo_falla(codigo), "Tipo de falla", codigo)
            return [TipoFallaActualizado(
                codigo=codigo, descripcion=descripcion, prioridad=prioridad,
                usuario_id=usuario_id, usuario_nombre=usuario_nombre,
            )]

        return await self._execute(decide)

    async def cambiar_estado_tipo_falla(
        self, codigo: str, activo: bool, usuario_id: str | None = None, usuario_nombre: str | None = None,
    ) -> ConfiguracionGlobal:
        def decide(config: ConfiguracionGlobal) -> list[DomainEvent]:
            _existente(config.buscar_tipo_falla(codigo), "Tipo de falla", codigo)
            return [EstadoTipoFallaCambiado(
                codigo=codigo, activo=activo, usuario_id=usuario_id, usuario_nombre=usuario_nombre,
            )]

        return await self._execute(decide)

    # ── Failure causes ───────────────────────────────────

    async def crear_causa_falla(
        self, descripcion: str, usuario_id: str | None = None, usuario_nombre: str | None = None,
    ) -> str:
        _validar_causa_falla(descripcion)
        codigo = nuevo_codigo()

        def decide(config: ConfiguracionGlobal) -> list[DomainEvent]:
            if any(c.descripcion.casefold() == descripcion.casefold() for c in config.causas_falla):
                raise ValidationError(f"La causa de falla '{descripcion}' ya existe.", code="DUPLICATE")
            return [CausaFallaCreada(
                codigo=codigo, descripcion=descripcion,
                usuario_id=usuario_id, usuario_nombre=usuario_nombre,
                fecha_creacion=datetime.now(timezone.utc),
            )]

        await self._execute(decide)
        return codigo

    async def actualizar_causa_falla(
        self, codigo: str, descripcion: str, usuario_id: str | None = None, usuario_nombre: str | None = None,
    ) -> ConfiguracionGlobal:
        _validar_causa_falla(descripcion)

        def decide(config: ConfiguracionGlobal) -> list[DomainEvent]:
            _existente(config.buscar_causa_falla(codigo), "Causa de falla", codigo)
            return [CausaFallaActualizada(
                codigo=codigo, descripcion=descripcion, usuario_id=usuario_id, usuario_nombre=usuario_nombre,
            )]

        return await self._execute(decide)

    async def cambiar_estado_causa_falla(
        self, codigo: str, activo: bool, usuario_id: str | None = None, usuario_nombre: str | None = None,
    ) -> ConfiguracionGlobal:
        def decide(config: ConfiguracionGlobal) -> list[DomainEvent]:
            _existente(config.buscar_causa_falla(codigo), "Causa de falla", codigo)
            return [EstadoCausaFallaCambiado(
                codigo=codigo, activo=activo, usuario_id=usuario_id, usuario_nombre=usuario_nombre,
            )]

        return await self._execute(decide)


# ── Field rules ──────────────────────────────────────────

def _existente(entry: EntradaCatalogo | None, label: str, codigo: str) -> None:
    if entry is None:
        raise ValidationError(f"{label} con código '{codigo}' no encontrado", code="NOT_FOUND")


def _validar_tipo_medidor(nombre: str, unidad: str) -> None:
    (Reglas()
        .requerido(nombre, "El nombre del tipo de medidor es requerido")
        .max_len(nombre, 100, "El nombre no puede exceder 100 caracteres")
        .requerido(unidad, "La unidad es requerida")
        .max_len(unidad, 50, "La unidad no puede exceder 50 caracteres")
        .validar())


def _validar_grupo(nombre: str, descripcion: str) -> None:
    (Reglas()
        .requerido(nombre, "El nombre del grupo es requerido")
        .max_len(nombre, 100, "El nombre no puede exceder 100 caracteres")
        .max_len(descripcion, 500, "La descripción no puede exceder 500 caracteres")
        .validar())


def _validar_tipo_falla(descripcion: str, prioridad: str) -> str:
    """Validate and return the canonical spelling of prioridad."""
    (Reglas()
        .requerido(descripcion, "La descripción del tipo de falla es requerida")
        .max_len(descripcion, 200, "La descripción no puede exceder 200 caracteres")
        .requerido(prioridad, "La prioridad es requerida")
        .en(prioridad, PRIORIDADES_VALIDAS,
            f"La prioridad debe ser una de: {', '.join(PRIORIDADES_VALIDAS)}", ignore_case=True)
        .validar())
    return next(p for p in PRIORIDADES_VALIDAS if p.casefold() == prioridad.casefold())


def _validar_causa_falla(descripcion: str) -> None:
    (Reglas()
        .requerido(descripcion, "La descripción de la causa de falla es requerida")
        .max_len(descripcion, 200, "La descripción no puede exceder 200 caracteres")
        .validar())
