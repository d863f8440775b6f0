"""OrdenDeTrabajo Aggregate — work order lifecycle plus its activity details.

Invariants:
1. Created only from INEXISTENTE → BORRADOR
2. Progress may only reference an existing detail
3. After any progress, estado is EJECUCION_COMPLETA iff every detail is
   FINALIZADO, else EN_EJECUCION
4. ELIMINADA is terminal; the fold does not reject later events, callers must
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import ClassVar

from sinco_maquinaria.domain.aggregates.base import Aggregate, applies, event_time
from sinco_maquinaria.domain.enums import EstadoDetalleOrden, EstadoOrdenDeTrabajo, parse_enum
from sinco_maquinaria.domain.errors import ConsistencyViolation
from sinco_maquinaria.domain.events import (
    ActividadAgregada,
    AvanceDeActividadRegistrado,
    OrdenDeTrabajoCreada,
    OrdenDeTrabajoEliminada,
    OrdenFinalizada,
    OrdenProgramada,
    RecordedEvent,
)


@dataclass
class DetalleOrden:
    id: str
    descripcion: str = ""
    avance: Decimal = Decimal("0")
    estado: EstadoDetalleOrden = EstadoDetalleOrden.PENDIENTE
    observaciones: str = ""
    frecuencia: int = 0
    fecha_estimada_ejecucion: datetime | None = None
    tipo_falla_id: str | None = None
    causa_falla_id: str | None = None


@dataclass
class OrdenDeTrabajo(Aggregate):
    stream_type: ClassVar[str] = "orden_de_trabajo"

    numero: str = ""
    equipo_id: str = ""
    estado: EstadoOrdenDeTrabajo = EstadoOrdenDeTrabajo.INEXISTENTE
    tipo: str = ""
    origen: str = ""
    fecha_orden: datetime | None = None
    fecha_programada: datetime | None = None
    duracion_estimada: timedelta | None = None
    fecha_creacion: datetime | None = None
    aprobado_por: str = ""
    fecha_aprobacion: datetime | None = None
    detalles: list[DetalleOrden] = field(default_factory=list)

    # ── Queries ──────────────────────────────────────────

    @property
    def porcentaje_avance_general(self) -> Decimal:
        if not self.detalles:
            return Decimal("0")
        return sum((d.avance for d in self.detalles), Decimal("0")) / len(self.detalles)

    @property
    def is_terminal(self) -> bool:
        return self.estado == EstadoOrdenDeTrabajo.ELIMINADA

    def find_detalle(self, detalle_id: str) -> DetalleOrden | None:
        return next((d for d in self.detalles if d.id == detalle_id), None)

    # ── Apply ────────────────────────────────────────────

    @applies(OrdenDeTrabajoCreada)
    def _creada(self, e: OrdenDeTrabajoCreada, meta: RecordedEvent) -> None:
        if self.estado != EstadoOrdenDeTrabajo.INEXISTENTE:
            raise ConsistencyViolation(
                f"La orden {self.id} ya existe en estado {self.estado.value}"
            )
        self.id = e.orden_id or meta.stream_id
        self.numero = e.numero_orden
        self.equipo_id = e.equipo_id
        self.estado = EstadoOrdenDeTrabajo.BORRADOR
        self.tipo = e.tipo_mantenimiento
        self.origen = e.origen
        self.fecha_orden = e.fecha_orden
        self.fecha_creacion = event_time(e.fecha_creacion, meta)

    @applies(OrdenProgramada)
    def _programada(self, e: OrdenProgramada, meta: RecordedEvent) -> None:
        self.fecha_programada = e.fecha_programada
        self.duracion_estimada = e.duracion_estimada
        self.estado = EstadoOrdenDeTrabajo.PROGRAMADA

    @applies(ActividadAgregada)
    def _actividad_agregada(self, e: ActividadAgregada, meta: RecordedEvent) -> None:
        self.detalles.append(DetalleOrden(
            id=e.item_detalle_id,
            descripcion=e.descripcion,
            frecuencia=e.frecuencia,
            fecha_estimada_ejecucion=e.fecha_estimada_ejecucion,
            tipo_falla_id=e.tipo_falla_id,
            causa_falla_id=e.causa_falla_id,
        ))

    @applies(AvanceDeActividadRegistrado)
    def _avance_registrado(self, e: AvanceDeActividadRegistrado, meta: RecordedEvent) -> None:
        detalle = self.find_detalle(e.item_detalle_id)
        if detalle is None:
            raise ConsistencyViolation(
                f"Detalle con ID {e.item_detalle_id} no existe en la orden"
            )
        detalle.avance = e.porcentaje_avance
        detalle.observaciones = e.observacion
        detalle.estado = parse_enum(EstadoDetalleOrden, e.nuevo_estado, "Estado del detalle")

        if all(d.estado == EstadoDetalleOrden.FINALIZADO for d in self.detalles):
            self.estado = EstadoOrdenDeTrabajo.EJECUCION_COMPLETA
        else:
            self.estado = EstadoOrdenDeTrabajo.EN_EJECUCION

    @applies(OrdenFinalizada)
    def _finalizada(self, e: OrdenFinalizada, meta: RecordedEvent) -> None:
        self.estado = parse_enum(EstadoOrdenDeTrabajo, e.estado_final, "Estado final")
        self.aprobado_por = e.aprobado_por
        self.fecha_aprobacion = e.fecha_aprobacion

    @applies(OrdenDeTrabajoEliminada)
    def _eliminada(self, e: OrdenDeTrabajoEliminada, meta: RecordedEvent) -> None:
        self.estado = EstadoOrdenDeTrabajo.ELIMINADA
