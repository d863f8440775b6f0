"""Equipment commands.

An equipment stream id is derived from its plate, so two writers creating
the same plate race for the same stream and the loser gets
StreamAlreadyExists from the store.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal

from sinco_maquinaria.application.repository import AggregateRepository
from sinco_maquinaria.application.validacion import Reglas
from sinco_maquinaria.domain.aggregates.equipo import Equipo
from sinco_maquinaria.domain.errors import StreamAlreadyExists, ValidationError
from sinco_maquinaria.domain.events import DomainEvent, EquipoActualizado, EquipoCreado, MedicionRegistrada
from sinco_maquinaria.domain.identity import derive_stream_id


@dataclass
class DatosEquipo:
    descripcion: str
    marca: str = ""
    modelo: str = ""
    serie: str = ""
    codigo: str = ""
    tipo_medidor_id: str = ""
    tipo_medidor_id2: str = ""
    grupo: str = ""
    rutina: str = ""

    def validar(self) -> None:
        (Reglas()
            .requerido(self.descripcion, "La descripción del equipo es requerida")
            .max_len(self.descripcion, 200, "La descripción no puede exceder 200 caracteres")
            .max_len(self.marca, 100, "La marca no puede exceder 100 caracteres")
            .max_len(self.modelo, 100, "El modelo no puede exceder 100 caracteres")
            .max_len(self.serie, 100, "El número de serie no puede exceder 100 caracteres")
            .max_len(self.codigo, 50, "El código no puede exceder 50 caracteres")
            .max_len(self.grupo, 100, "El grupo no puede exceder 100 caracteres")
            .max_len(self.rutina, 100, "La rutina no puede exceder 100 caracteres")
            .validar())


class EquiposService:

    def __init__(self, repository: AggregateRepository):
        self.repository = repository

    async def crear(
        self,
        placa: str,
        datos: DatosEquipo,
        usuario_id: str | None = None,
        usuario_nombre: str | None = None,
    ) -> Equipo:
        placa = (placa or "").strip()
        if not placa:
            raise ValidationError("La placa del equipo es requerida")
        datos.validar()

        stream_id = derive_stream_id(placa)
        if await self.repository.store.fetch_stream_version(stream_id) is not None:
            raise ValidationError(f"Ya existe un equipo con la placa '{placa}'", code="DUPLICATE_PLACA")

        event = EquipoCreado(
            id=stream_id,
            placa=placa,
            **vars(datos),
            usuario_id=usuario_id,
            usuario_nombre=usuario_nombre,
            fecha_creacion=datetime.now(timezone.utc),
        )
        try:
            return await self.repository.save(Equipo(id=stream_id), [event])
        except StreamAlreadyExists as e:
            raise ValidationError(f"Ya existe un equipo con la placa '{placa}'", code="DUPLICATE_PLACA") from e

    async def actualizar(
        self,
        equipo_id: str,
        datos: DatosEquipo,
        usuario_id: str | None = None,
        usuario_nombre: str | None = None,
    ) -> Equipo:
        datos.validar()

        def decide(equipo: Equipo) -> list[DomainEvent]:
            return [EquipoActualizado(
                id=equipo.id,
                **vars(datos),
                usuario_id=usuario_id,
                usuario_nombre=usuario_nombre,
                fecha_modificacion=datetime.now(timezone.utc),
            )]

        return await self.repository.execute(Equipo, equipo_id, decide)

    async def registrar_medicion(
        self,
        equipo_id: str,
        tipo_medidor: str,
        valor: Decimal | int | float,
        fecha_lectura: datetime | None = None,
        usuario_id: str | None = None,
        usuario_nombre: str | None = None,
    ) -> Equipo:
        """Record a meter reading; accumulated work is the increase over the previous one."""
        valor = Decimal(str(valor))
        (Reglas()
            .requerido(tipo_medidor, "El tipo de medidor es requerido")
            .no_negativo(valor, "La medición debe ser mayor o igual a cero")
            .validar())

        def decide(equipo: Equipo) -> list[DomainEvent]:
            anterior = equipo.lecturas.get(tipo_medidor)
            acumulado = Decimal("0")
            if anterior is not None:
                if valor < anterior.valor:
                    raise ValidationError(
                        f"La medición {valor} es menor que la última registrada ({anterior.valor})"
                    )
                acumulado = anterior.trabajo_acumulado + (valor - anterior.valor)
            return [MedicionRegistrada(
                tipo_medidor=tipo_medidor,
                valor_medicion=valor,
                fecha_lectura=fecha_lectura or datetime.now(timezone.utc),
                trabajo_acumulado_calculado=acumulado,
                usuario_id=usuario_id,
                usuario_nombre=usuario_nombre,
            )]

        return await self.repository.execute(Equipo, equipo_id, decide)

    async def obtener(self, equipo_id: str) -> Equipo:
        return await self.repository.load(Equipo, equipo_id)

    async def obtener_por_placa(self, placa: str) -> Equipo | None:
        return await self.repository.find(Equipo, derive_stream_id(placa.strip()))
