"""Equipo Aggregate — flat equipment record.

`placa` is the business key: set once by the creating event and never
changed by updates. Its uniqueness across streams comes from the stream id
being derived from it (see domain.identity).
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import ClassVar

from sinco_maquinaria.domain.aggregates.base import Aggregate, applies, event_time
from sinco_maquinaria.domain.events import (
    EquipoActualizado,
    EquipoCreado,
    EquipoMigrado,
    MedicionRegistrada,
    RecordedEvent,
)

ESTADO_ACTIVO = "Activo"
ESTADO_INACTIVO = "Inactivo"


@dataclass
class LecturaMedidor:
    valor: Decimal = Decimal("0")
    fecha_lectura: datetime | None = None
    trabajo_acumulado: Decimal = Decimal("0")


@dataclass
class Equipo(Aggregate):
    stream_type: ClassVar[str] = "equipo"

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
    estado: str = ESTADO_INACTIVO
    lecturas: dict[str, LecturaMedidor] = field(default_factory=dict)

    creado_por: str | None = None
    creado_por_nombre: str | None = None
    fecha_creacion: datetime | None = None
    modificado_por: str | None = None
    modificado_por_nombre: str | None = None
    fecha_modificacion: datetime | None = None

    @applies(EquipoCreado, EquipoMigrado)
    def _creado(self, e: EquipoCreado | EquipoMigrado, meta: RecordedEvent) -> None:
        self._require_new(e)
        self.id = e.id or meta.stream_id
        self.placa = e.placa
        self.descripcion = e.descripcion
        self.marca = e.marca
        self.modelo = e.modelo
        self.serie = e.serie
        self.codigo = e.codigo
        self.tipo_medidor_id = e.tipo_medidor_id
        self.tipo_medidor_id2 = e.tipo_medidor_id2
        self.grupo = e.grupo
        self.rutina = e.rutina
        self.estado = ESTADO_ACTIVO
        self.creado_por = e.usuario_id
        self.creado_por_nombre = e.usuario_nombre
        self.fecha_creacion = event_time(e.fecha_creacion, meta)

    @applies(EquipoActualizado)
    def _actualizado(self, e: EquipoActualizado, meta: RecordedEvent) -> None:
        self.descripcion = e.descripcion
        self.marca = e.marca
        self.modelo = e.modelo
        self.serie = e.serie
        self.codigo = e.codigo
        self.tipo_medidor_id = e.tipo_medidor_id
        self.tipo_medidor_id2 = e.tipo_medidor_id2
        self.grupo = e.grupo
        self.rutina = e.rutina
        self.modificado_por = e.usuario_id
        self.modificado_por_nombre = e.usuario_nombre
        self.fecha_modificacion = event_time(e.fecha_modificacion, meta)

    @applies(MedicionRegistrada)
    def _medicion(self, e: MedicionRegistrada, meta: RecordedEvent) -> None:
        self.lecturas[e.tipo_medidor] = LecturaMedidor(
            valor=e.valor_medicion,
            fecha_lectura=event_time(e.fecha_lectura, meta),
            trabajo_acumulado=e.trabajo_acumulado_calculado,
        )
