"""RutinaMantenimiento Aggregate — routine → parts → activities.

Events addressing a part or activity by id halt the fold when the id does
not exist, except ParteEliminada which removes nothing in that case.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import ClassVar

from sinco_maquinaria.domain.aggregates.base import Aggregate, applies
from sinco_maquinaria.domain.errors import ConsistencyViolation
from sinco_maquinaria.domain.events import (
    ActividadDeRutinaActualizada,
    ActividadDeRutinaAgregada,
    ActividadDeRutinaEliminada,
    ActividadDeRutinaMigrada,
    ParteActualizada,
    ParteAgregada,
    ParteDeRutinaMigrada,
    ParteEliminada,
    RecordedEvent,
    RutinaActualizada,
    RutinaCreada,
    RutinaMigrada,
)


@dataclass
class ActividadRutina:
    id: str
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

    def unidades(self) -> set[str]:
        return {u for u in (self.unidad_medida, self.unidad_medida2) if u}


@dataclass
class ParteRutina:
    id: str
    descripcion: str = ""
    actividades: list[ActividadRutina] = field(default_factory=list)


@dataclass
class RutinaMantenimiento(Aggregate):
    stream_type: ClassVar[str] = "rutina_mantenimiento"

    descripcion: str = ""
    grupo: str = ""
    partes: list[ParteRutina] = field(default_factory=list)

    # ── Queries ──────────────────────────────────────────

    def find_parte(self, parte_id: str) -> ParteRutina | None:
        return next((p for p in self.partes if p.id == parte_id), None)

    def find_actividad(self, actividad_id: str) -> ActividadRutina | None:
        for parte in self.partes:
            for actividad in parte.actividades:
                if actividad.id == actividad_id:
                    return actividad
        return None

    def unidades_requeridas(self) -> set[str]:
        """Meter units any activity of the routine is scheduled against."""
        unidades: set[str] = set()
        for parte in self.partes:
            for actividad in parte.actividades:
                unidades |= actividad.unidades()
        return unidades

    def _require_parte(self, parte_id: str) -> ParteRutina:
        parte = self.find_parte(parte_id)
        if parte is None:
            raise ConsistencyViolation(f"Parte con ID {parte_id} no existe en la rutina")
        return parte

    # ── Routine ──────────────────────────────────────────

    @applies(RutinaCreada, RutinaMigrada)
    def _creada(self, e: RutinaCreada | RutinaMigrada, meta: RecordedEvent) -> None:
        self._require_new(e)
        self.id = e.rutina_id or meta.stream_id
        self.descripcion = e.descripcion
        self.grupo = e.grupo

    @applies(RutinaActualizada)
    def _actualizada(self, e: RutinaActualizada, meta: RecordedEvent) -> None:
        self.descripcion = e.descripcion
        self.grupo = e.grupo

    # ── Parts ────────────────────────────────────────────

    @applies(ParteAgregada, ParteDeRutinaMigrada)
    def _parte_agregada(self, e: ParteAgregada | ParteDeRutinaMigrada, meta: RecordedEvent) -> None:
        if self.find_parte(e.parte_id) is not None:
            raise ConsistencyViolation(f"Parte con ID {e.parte_id} ya existe en la rutina")
        self.partes.append(ParteRutina(id=e.parte_id, descripcion=e.descripcion))

    @applies(ParteActualizada)
    def _parte_actualizada(self, e: ParteActualizada, meta: RecordedEvent) -> None:
        self._require_parte(e.parte_id).descripcion = e.descripcion

    @applies(ParteEliminada)
    def _parte_eliminada(self, e: ParteEliminada, meta: RecordedEvent) -> None:
        self.partes = [p for p in self.partes if p.id != e.parte_id]

    # ── Activities ───────────────────────────────────────

    @applies(ActividadDeRutinaAgregada, ActividadDeRutinaMigrada)
    def _actividad_agregada(
        self, e: ActividadDeRutinaAgregada | ActividadDeRutinaMigrada, meta: RecordedEvent,
    ) -> None:
        parte = self._require_parte(e.parte_id)
        parte.actividades.append(ActividadRutina(
            id=e.actividad_id,
            descripcion=e.descripcion,
            clase=e.clase,
            frecuencia=e.frecuencia,
            unidad_medida=e.unidad_medida,
            nombre_medidor=e.nombre_medidor,
            alerta_faltando=e.alerta_faltando,
            frecuencia2=e.frecuencia2,
            unidad_medida2=e.unidad_medida2,
            nombre_medidor2=e.nombre_medidor2,
            alerta_faltando2=e.alerta_faltando2,
            insumo=e.insumo,
            cantidad=e.cantidad,
        ))

    @applies(ActividadDeRutinaActualizada)
    def _actividad_actualizada(self, e: ActividadDeRutinaActualizada, meta: RecordedEvent) -> None:
        actividad = self.find_actividad(e.actividad_id)
        if actividad is None:
            raise ConsistencyViolation(
                f"Actividad con ID {e.actividad_id} no existe en ninguna parte de la rutina"
            )
        actividad.descripcion = e.descripcion
        actividad.clase = e.clase
        actividad.frecuencia = e.frecuencia
        actividad.unidad_medida = e.unidad_medida
        actividad.nombre_medidor = e.nombre_medidor
        actividad.alerta_faltando = e.alerta_faltando
        actividad.frecuencia2 = e.frecuencia2
        actividad.unidad_medida2 = e.unidad_medida2
        actividad.nombre_medidor2 = e.nombre_medidor2
        actividad.alerta_faltando2 = e.alerta_faltando2
        actividad.insumo = e.insumo
        actividad.cantidad = e.cantidad

    @applies(ActividadDeRutinaEliminada)
    def _actividad_eliminada(self, e: ActividadDeRutinaEliminada, meta: RecordedEvent) -> None:
        parte = self._require_parte(e.parte_id)
        parte.actividades = [a for a in parte.actividades if a.id != e.actividad_id]
