"""Empleado Aggregate."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import ClassVar

from sinco_maquinaria.domain.aggregates.base import Aggregate, applies, event_time
from sinco_maquinaria.domain.enums import CargoEmpleado, EstadoEmpleado, parse_enum
from sinco_maquinaria.domain.events import EmpleadoActualizado, EmpleadoCreado, RecordedEvent


@dataclass
class Empleado(Aggregate):
    stream_type: ClassVar[str] = "empleado"

    nombre: str = ""
    identificacion: str = ""
    cargo: CargoEmpleado = CargoEmpleado.CONDUCTOR
    especialidad: str = ""
    valor_hora: Decimal = Decimal("0")
    estado: EstadoEmpleado = EstadoEmpleado.ACTIVO

    creado_por: str | None = None
    creado_por_nombre: str | None = None
    fecha_creacion: datetime | None = None
    modificado_por: str | None = None
    modificado_por_nombre: str | None = None
    fecha_modificacion: datetime | None = None

    @applies(EmpleadoCreado)
    def _creado(self, e: EmpleadoCreado, meta: RecordedEvent) -> None:
        self._require_new(e)
        self.id = e.id or meta.stream_id
        self._set_datos(e)
        self.creado_por = e.usuario_id
        self.creado_por_nombre = e.usuario_nombre
        self.fecha_creacion = event_time(e.fecha_creacion, meta)

    @applies(EmpleadoActualizado)
    def _actualizado(self, e: EmpleadoActualizado, meta: RecordedEvent) -> None:
        self._set_datos(e)
        self.modificado_por = e.usuario_id
        self.modificado_por_nombre = e.usuario_nombre
        self.fecha_modificacion = event_time(e.fecha_modificacion, meta)

    def _set_datos(self, e: EmpleadoCreado | EmpleadoActualizado) -> None:
        self.nombre = e.nombre
        self.identificacion = e.identificacion
        self.cargo = parse_enum(CargoEmpleado, e.cargo, "Cargo")
        self.especialidad = e.especialidad
        self.valor_hora = e.valor_hora
        self.estado = parse_enum(EstadoEmpleado, e.estado, "Estado")
