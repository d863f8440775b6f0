"""Maintenance-routine commands: routine header, parts, and activities."""
from __future__ import annotations

from dataclasses import dataclass

from sinco_maquinaria.application.repository import AggregateRepository
from sinco_maquinaria.application.validacion import Reglas
from sinco_maquinaria.domain.aggregates.rutina_mantenimiento import RutinaMantenimiento
from sinco_maquinaria.domain.errors import ValidationError
from sinco_maquinaria.domain.events import (
    ActividadDeRutinaActualizada,
    ActividadDeRutinaAgregada,
    ActividadDeRutinaEliminada,
    DomainEvent,
    ParteActualizada,
    ParteAgregada,
    ParteEliminada,
    RutinaActualizada,
    RutinaCreada,
)
from sinco_maquinaria.domain.identity import new_stream_id


@dataclass
class DatosActividad:
    descripcion: str
    clase: str
    frecuencia: int
    unidad_medida: str
    nombre_medidor: str
    alerta_faltando: int = 0
    frecuencia2: int = 0
    unidad_medida2: str = ""
    nombre_medidor2: str = ""
    alerta_faltando2: int = 0
    insumo: str | None = None
    cantidad: float = 0.0

    def validar(self) -> None:
        (Reglas()
            .requerido(self.descripcion, "La descripción es requerida")
            .max_len(self.descripcion, 300, "La descripción no puede exceder 300 caracteres")
            .requerido(self.clase, "La clase de actividad es requerida")
            .max_len(self.clase, 100, "La clase no puede exceder 100 caracteres")
            .no_negativo(self.frecuencia, "La frecuencia debe ser mayor o igual a 0")
            .requerido(self.unidad_medida, "La unidad de medida es requerida")
            .max_len(self.unidad_medida, 50, "La unidad de medida no puede exceder 50 caracteres")
            .requerido(self.nombre_medidor, "El nombre del medidor es requerido")
            .max_len(self.nombre_medidor, 100, "El nombre del medidor no puede exceder 100 caracteres")
            .no_negativo(self.alerta_faltando, "La alerta debe ser mayor o igual a 0")
            .no_negativo(self.frecuencia2, "La frecuencia II debe ser mayor o igual a 0")
            .max_len(self.unidad_medida2, 50, "La unidad de medida II no puede exceder 50 caracteres")
            .max_len(self.nombre_medidor2, 100, "El nombre del medidor II no puede exceder 100 caracteres")
            .no_negativo(self.alerta_faltando2, "La alerta II debe ser mayor o igual a 0")
            .no_negativo(self.cantidad, "La cantidad debe ser mayor o igual a 0")
            .validar())


def _validar_rutina(descripcion: str, grupo: str) -> None:
    (Reglas()
        .requerido(descripcion, "La descripción es requerida")
        .max_len(descripcion, 200, "La descripción no puede exceder 200 caracteres")
        .requerido(grupo, "El grupo es requerido")
        .max_len(grupo, 100, "El grupo no puede exceder 100 caracteres")
        .validar())


def _validar_parte(descripcion: str) -> None:
    (Reglas()
        .requerido(descripcion, "La descripción es requerida")
        .max_len(descripcion, 200, "La descripción no puede exceder 200 caracteres")
        .validar())


def _require_parte(rutina: RutinaMantenimiento, parte_id: str) -> None:
    if rutina.find_parte(parte_id) is None:
        raise ValidationError("Parte no encontrada", code="NOT_FOUND")


class RutinasService:

    def __init__(self, repository: AggregateRepository):
        self.repository = repository

    async def crear(
        self, descripcion: str, grupo: str, usuario_id: str | None = None, usuario_nombre: str | None = None,
    ) -> RutinaMantenimiento:
        _validar_rutina(descripcion, grupo)
        rutina_id = new_stream_id()
        return await self.repository.save(RutinaMantenimiento(id=rutina_id), [RutinaCreada(
            rutina_id=rutina_id, descripcion=descripcion, grupo=grupo,
            usuario_id=usuario_id, usuario_nombre=usuario_nombre,
        )])

    async def actualizar(
        self, rutina_id: str, descripcion: str, grupo: str,
        usuario_id: str | None = None, usuario_nombre: str | None = None,
    ) -> RutinaMantenimiento:
        _validar_rutina(descripcion, grupo)

        def decide(rutina: RutinaMantenimiento) -> list[DomainEvent]:
            return [RutinaActualizada(
                rutina_id=rutina.id, descripcion=descripcion, grupo=grupo,
                usuario_id=usuario_id, usuario_nombre=usuario_nombre,
            )]

        return await self.repository.execute(RutinaMantenimiento, rutina_id, decide)

    # ── Parts ────────────────────────────────────────────

    async def agregar_parte(
        self, rutina_id: str, descripcion: str, usuario_id: str | None = None, usuario_nombre: str | None = None,
    ) -> str:
        _validar_parte(descripcion)
        parte_id = new_stream_id()

        def decide(rutina: RutinaMantenimiento) -> list[DomainEvent]:
            return [ParteAgregada(
                parte_id=parte_id, descripcion=descripcion, rutina_id=rutina.id,
                usuario_id=usuario_id, usuario_nombre=usuario_nombre,
            )]

        await self.repository.execute(RutinaMantenimiento, rutina_id, decide)
        return parte_id

    async def actualizar_parte(
        self, rutina_id: str, parte_id: str, descripcion: str,
        usuario_id: str | None = None, usuario_nombre: str | None = None,
    ) -> RutinaMantenimiento:
        _validar_parte(descripcion)

        def decide(rutina: RutinaMantenimiento) -> list[DomainEvent]:
            _require_parte(rutina, parte_id)
            return [ParteActualizada(
                parte_id=parte_id, descripcion=descripcion, usuario_id=usuario_id, usuario_nombre=usuario_nombre,
            )]

        return await self.repository.execute(RutinaMantenimiento, rutina_id, decide)

    async def eliminar_parte(
        self, rutina_id: str, parte_id: str, usuario_id: str | None = None, usuario_nombre: str | None = None,
    ) -> RutinaMantenimiento:
        def decide(rutina: RutinaMantenimiento) -> list[DomainEvent]:
            _require_parte(rutina, parte_id)
            return [ParteEliminada(parte_id=parte_id, usuario_id=usuario_id, usuario_nombre=usuario_nombre)]

        return await self.repository.execute(RutinaMantenimiento, rutina_id, decide)

    # ── Activities ───────────────────────────────────────

    async def agregar_actividad(
        self, rutina_id: str, parte_id: str, datos: DatosActividad,
        usuario_id: str | None = None, usuario_nombre: str | None = None,
    ) -> str:
        datos.validar()
        actividad_id = new_stream_id()

        def decide(rutina: RutinaMantenimiento) -> list[DomainEvent]:
            _require_parte(rutina, parte_id)
            return [ActividadDeRutinaAgregada(
                actividad_id=actividad_id, parte_id=parte_id, **vars(datos),
                usuario_id=usuario_id, usuario_nombre=usuario_nombre,
            )]

        await self.repository.execute(RutinaMantenimiento, rutina_id, decide)
        return actividad_id

    async def actualizar_actividad(
        self, rutina_id: str, actividad_id: str, datos: DatosActividad,
        usuario_id: str | None = None, usuario_nombre: str | None = None,
    ) -> RutinaMantenimiento:
        datos.validar()

        def decide(rutina: RutinaMantenimiento) -> list[DomainEvent]:
            if rutina.find_actividad(actividad_id) is None:
                raise ValidationError("Actividad no encontrada", code="NOT_FOUND")
            return [ActividadDeRutinaActualizada(
                actividad_id=actividad_id, **vars(datos),
                usuario_id=usuario_id, usuario_nombre=usuario_nombre,
            )]

        return await self.repository.execute(RutinaMantenimiento, rutina_id, decide)

    async def eliminar_actividad(
        self, rutina_id: str, parte_id: str, actividad_id: str,
        usuario_id: str | None = None, usuario_nombre: str | None = None,
    ) -> RutinaMantenimiento:
        def decide(rutina: RutinaMantenimiento) -> list[DomainEvent]:
            _require_parte(rutina, parte_id)
            parte = rutina.find_parte(parte_id)
            if not any(a.id == actividad_id for a in parte.actividades):
                raise ValidationError("Actividad no encontrada", code="NOT_FOUND")
            return [ActividadDeRutinaEliminada(
                actividad_id=actividad_id, parte_id=parte_id, usuario_id=usuario_id, usuario_nombre=usuario_nombre,
            )]

        return await self.repository.execute(RutinaMantenimiento, rutina_id, decide)

    async def obtener(self, rutina_id: str) -> RutinaMantenimiento:
        return await self.repository.load(RutinaMantenimiento, rutina_id)

    async def listar(self) -> list[RutinaMantenimiento]:
        return await self.repository.load_all(RutinaMantenimiento)
