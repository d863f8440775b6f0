"""Work-order commands."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal

from sinco_maquinaria.application.repository import AggregateRepository
from sinco_maquinaria.domain.aggregates.orden_de_trabajo import OrdenDeTrabajo
from sinco_maquinaria.domain.aggregates.rutina_mantenimiento import ActividadRutina, RutinaMantenimiento
from sinco_maquinaria.domain.enums import (
    EstadoDetalleOrden,
    EstadoOrdenDeTrabajo,
    TipoMantenimiento,
    try_parse_enum,
)
from sinco_maquinaria.domain.errors import ValidationError
from sinco_maquinaria.domain.events import (
    ActividadAgregada,
    AvanceDeActividadRegistrado,
    DomainEvent,
    OrdenDeTrabajoCreada,
    OrdenDeTrabajoEliminada,
    OrdenFinalizada,
    OrdenProgramada,
)
from sinco_maquinaria.domain.identity import new_stream_id

ORIGENES_VALIDOS = ("Interno", "Externo")


def incluir_actividad(actividad: ActividadRutina, frecuencia_preventiva: int | None) -> bool:
    """Whether a routine activity is due at the given preventive frequency."""
    if frecuencia_preventiva is None:
        return True
    if actividad.frecuencia <= 0:
        return False
    return frecuencia_preventiva % actividad.frecuencia == 0


class OrdenesService:

    def __init__(self, repository: AggregateRepository):
        self.repository = repository

    async def crear(
        self,
        numero: str,
        equipo_id: str,
        tipo: str,
        origen: str,
        fecha_orden: datetime | None = None,
        rutina_id: str | None = None,
        frecuencia_preventiva: int | None = None,
        actividad_inicial: str | None = None,
        usuario_id: str | None = None,
        usuario_nombre: str | None = None,
    ) -> OrdenDeTrabajo:
        """Start a work order, optionally pre-filled with the activities of a routine."""
        errors = []
        if not numero:
            errors.append("El número de orden es requerido")
        elif len(numero) > 50:
            errors.append("El número de orden no puede exceder 50 caracteres")
        if not equipo_id:
            errors.append("El ID del equipo es requerido")
        if try_parse_enum(TipoMantenimiento, tipo) is None:
            errors.append(f"El tipo debe ser uno de: {', '.join(t.value for t in TipoMantenimiento)}")
        if origen not in ORIGENES_VALIDOS:
            errors.append(f"El origen debe ser uno de: {', '.join(ORIGENES_VALIDOS)}")
        if errors:
            raise ValidationError(errors)

        now = datetime.now(timezone.utc)
        orden_id = new_stream_id()
        events: list[DomainEvent] = [OrdenDeTrabajoCreada(
            orden_id=orden_id,
            numero_orden=numero,
            equipo_id=equipo_id,
            origen=origen,
            tipo_mantenimiento=try_parse_enum(TipoMantenimiento, tipo).value,
            fecha_orden=fecha_orden or now,
            fecha_creacion=now,
            usuario_id=usuario_id,
            usuario_nombre=usuario_nombre,
        )]

        if rutina_id:
            rutina = await self.repository.find(RutinaMantenimiento, rutina_id)
            if rutina is not None:
                for parte in rutina.partes:
                    for actividad in parte.actividades:
                        if incluir_actividad(actividad, frecuencia_preventiva):
                            events.append(ActividadAgregada(
                                item_detalle_id=new_stream_id(),
                                descripcion=f"{parte.descripcion}: {actividad.descripcion}",
                                fecha_estimada_ejecucion=now + timedelta(hours=actividad.frecuencia),
                                frecuencia=actividad.frecuencia,
                                usuario_id=usuario_id,
                                usuario_nombre=usuario_nombre,
                            ))

        if actividad_inicial:
            events.append(ActividadAgregada(
                item_detalle_id=new_stream_id(),
                descripcion=actividad_inicial,
                fecha_estimada_ejecucion=now + timedelta(hours=1),
                usuario_id=usuario_id,
                usuario_nombre=usuario_nombre,
            ))

        return await self.repository.save(OrdenDeTrabajo(id=orden_id), events)

    async def programar(
        self,
        orden_id: str,
        fecha_programada: datetime,
        duracion_estimada: timedelta,
        usuario_id: str | None = None,
        usuario_nombre: str | None = None,
    ) -> OrdenDeTrabajo:
        if duracion_estimada < timedelta(0):
            raise ValidationError("La duración estimada no puede ser negativa")

        def decide(orden: OrdenDeTrabajo) -> list[DomainEvent]:
            _require_modificable(orden)
            return [OrdenProgramada(
                fecha_programada=fecha_programada,
                duracion_estimada=duracion_estimada,
                usuario_id=usuario_id,
                usuario_nombre=usuario_nombre,
            )]

        return await self.repository.execute(OrdenDeTrabajo, orden_id, decide)

    async def agregar_actividad(
        self,
        orden_id: str,
        descripcion: str,
        fecha_estimada: datetime | None = None,
        frecuencia: int = 0,
        tipo_falla_id: str | None = None,
        causa_falla_id: str | None = None,
        usuario_id: str | None = None,
        usuario_nombre: str | None = None,
    ) -> str:
        """Append an activity to the order and return the new detail id."""
        if not descripcion:
            raise ValidationError("La descripción de la actividad es requerida")
        if len(descripcion) > 500:
            raise ValidationError("La descripción no puede exceder 500 caracteres")
        detalle_id = new_stream_id()

        def decide(orden: OrdenDeTrabajo) -> list[DomainEvent]:
            _require_modificable(orden)
            return [ActividadAgregada(
                item_detalle_id=detalle_id,
                descripcion=descripcion,
                fecha_estimada_ejecucion=fecha_estimada,
                frecuencia=frecuencia,
                tipo_falla_id=tipo_falla_id,
                causa_falla_id=causa_falla_id,
                usuario_id=usuario_id,
                usuario_nombre=usuario_nombre,
            )]

        await self.repository.execute(OrdenDeTrabajo, orden_id, decide)
        return detalle_id

    async def registrar_avance(
        self,
        orden_id: str,
        detalle_id: str,
        porcentaje: Decimal | int | float,
        nuevo_estado: str,
        observacion: str = "",
        usuario_id: str | None = None,
        usuario_nombre: str | None = None,
    ) -> OrdenDeTrabajo:
        porcentaje = Decimal(str(porcentaje))
        errors = []
        if not Decimal("0") <= porcentaje <= Decimal("100"):
            errors.append("El porcentaje debe estar entre 0 y 100")
        estado = try_parse_enum(EstadoDetalleOrden, nuevo_estado)
        if estado is None:
            errors.append(f"El estado debe ser uno de: {', '.join(e.value for e in EstadoDetalleOrden)}")
        if len(observacion) > 1000:
            errors.append("La observación no puede exceder 1000 caracteres")
        if errors:
            raise ValidationError(errors)

        def decide(orden: OrdenDeTrabajo) -> list[DomainEvent]:
            _require_modificable(orden)
            if orden.find_detalle(detalle_id) is None:
                raise ValidationError(f"Detalle con ID {detalle_id} no existe en la orden")
            return [AvanceDeActividadRegistrado(
                item_detalle_id=detalle_id,
                porcentaje_avance=porcentaje,
                observacion=observacion,
                nuevo_estado=estado.value,
                usuario_id=usuario_id,
                usuario_nombre=usuario_nombre,
            )]

        return await self.repository.execute(OrdenDeTrabajo, orden_id, decide)

    async def finalizar(
        self,
        orden_id: str,
        aprobado_por: str,
        estado_final: str = EstadoOrdenDeTrabajo.EJECUCION_COMPLETA.value,
        usuario_id: str | None = None,
        usuario_nombre: str | None = None,
    ) -> OrdenDeTrabajo:
        estado = try_parse_enum(EstadoOrdenDeTrabajo, estado_final)
        if estado is None or estado == EstadoOrdenDeTrabajo.INEXISTENTE:
            raise ValidationError(f"Estado final inválido: {estado_final}")
        if not aprobado_por:
            raise ValidationError("El aprobador es requerido")

        def decide(orden: OrdenDeTrabajo) -> list[DomainEvent]:
            _require_modificable(orden)
            return [OrdenFinalizada(
                estado_final=estado.value,
                aprobado_por=aprobado_por,
                fecha_aprobacion=datetime.now(timezone.utc),
                usuario_id=usuario_id,
                usuario_nombre=usuario_nombre,
            )]

        return await self.repository.execute(OrdenDeTrabajo, orden_id, decide)

    async def eliminar(
        self,
        orden_id: str,
        usuario_id: str | None = None,
        usuario_nombre: str | None = None,
    ) -> OrdenDeTrabajo:
        def decide(orden: OrdenDeTrabajo) -> list[DomainEvent]:
            _require_modificable(orden)
            return [OrdenDeTrabajoEliminada(
                orden_id=orden.id,
                usuario_id=usuario_id,
                usuario_nombre=usuario_nombre,
            )]

        return await self.repository.execute(OrdenDeTrabajo, orden_id, decide)

    async def obtener(self, orden_id: str) -> OrdenDeTrabajo:
        return await self.repository.load(OrdenDeTrabajo, orden_id)


def _require_modificable(orden: OrdenDeTrabajo) -> None:
    if orden.is_terminal:
        raise ValidationError(f"La orden {orden.numero} fue eliminada y no admite cambios")
