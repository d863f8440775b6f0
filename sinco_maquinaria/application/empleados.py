"""Employee commands."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal

from sinco_maquinaria.application.repository import AggregateRepository
from sinco_maquinaria.application.validacion import Reglas
from sinco_maquinaria.domain.aggregates.empleado import Empleado
from sinco_maquinaria.domain.enums import CargoEmpleado, EstadoEmpleado, try_parse_enum
from sinco_maquinaria.domain.errors import ValidationError
from sinco_maquinaria.domain.events import DomainEvent, EmpleadoActualizado, EmpleadoCreado
from sinco_maquinaria.domain.identity import new_stream_id


@dataclass
class DatosEmpleado:
    nombre: str
    identificacion: str
    cargo: str
    especialidad: str = ""
    valor_hora: Decimal = Decimal("0")
    estado: str = EstadoEmpleado.ACTIVO.value

    def validar(self) -> None:
        cargos = tuple(c.value for c in CargoEmpleado)
        estados = tuple(e.value for e in EstadoEmpleado)
        (Reglas()
            .requerido(self.nombre, "El nombre del empleado es requerido")
            .max_len(self.nombre, 200, "El nombre no puede exceder 200 caracteres")
            .requerido(self.identificacion, "La identificación es requerida")
            .max_len(self.identificacion, 50, "La identificación no puede exceder 50 caracteres")
            .fallar_si(try_parse_enum(CargoEmpleado, self.cargo) is None,
                       f"El cargo debe ser uno de: {', '.join(cargos)}")
            .max_len(self.especialidad, 100, "La especialidad no puede exceder 100 caracteres")
            .no_negativo(self.valor_hora, "El valor por hora debe ser mayor o igual a cero")
            .fallar_si(try_parse_enum(EstadoEmpleado, self.estado) is None,
                       f"El estado debe ser uno de: {', '.join(estados)}")
            .validar())

    def campos(self) -> dict:
        return {
            "nombre": self.nombre.strip(),
            "identificacion": self.identificacion.strip(),
            "cargo": try_parse_enum(CargoEmpleado, self.cargo).value,
            "especialidad": self.especialidad,
            "valor_hora": Decimal(str(self.valor_hora)),
            "estado": try_parse_enum(EstadoEmpleado, self.estado).value,
        }


class EmpleadosService:

    def __init__(self, repository: AggregateRepository):
        self.repository = repository

    async def _identificacion_en_uso(self, identificacion: str, excepto: str | None = None) -> bool:
        for empleado in await self.repository.load_all(Empleado):
            if empleado.id != excepto and empleado.identificacion.casefold() == identificacion.strip().casefold():
                return True
        return False

    async def crear(
        self, datos: DatosEmpleado, usuario_id: str | None = None, usuario_nombre: str | None = None,
    ) -> Empleado:
        datos.validar()
        if await self._identificacion_en_uso(datos.identificacion):
            raise ValidationError(
                f"Ya existe un empleado con la identificación '{datos.identificacion}'", code="DUPLICATE",
            )
        empleado_id = new_stream_id()
        return await self.repository.save(Empleado(id=empleado_id), [EmpleadoCreado(
            id=empleado_id,
            **datos.campos(),
            usuario_id=usuario_id,
            usuario_nombre=usuario_nombre,
            fecha_creacion=datetime.now(timezone.utc),
        )])

    async def actualizar(
        self, empleado_id: str, datos: DatosEmpleado,
        usuario_id: str | None = None, usuario_nombre: str | None = None,
    ) -> Empleado:
        datos.validar()
        if await self._identificacion_en_uso(datos.identificacion, excepto=empleado_id):
            raise ValidationError(
                f"Ya existe un empleado con la identificación '{datos.identificacion}'", code="DUPLICATE",
            )

        def decide(empleado: Empleado) -> list[DomainEvent]:
            return [EmpleadoActualizado(
                id=empleado.id,
                **datos.campos(),
                usuario_id=usuario_id,
                usuario_nombre=usuario_nombre,
                fecha_modificacion=datetime.now(timezone.utc),
            )]

        return await self.repository.execute(Empleado, empleado_id, decide)

    async def obtener(self, empleado_id: str) -> Empleado:
        return await self.repository.load(Empleado, empleado_id)

    async def listar(self) -> list[Empleado]:
        return await self.repository.load_all(Empleado)
