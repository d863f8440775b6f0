"""Finite value sets shared by events and aggregates."""
from __future__ import annotations

from enum import Enum
from typing import TypeVar

from sinco_maquinaria.domain.errors import ConsistencyViolation

E = TypeVar("E", bound=Enum)


class EstadoOrdenDeTrabajo(str, Enum):
    INEXISTENTE = "Inexistente"
    BORRADOR = "Borrador"
    PROGRAMADA = "Programada"
    EN_EJECUCION = "EnEjecucion"
    EJECUCION_COMPLETA = "EjecucionCompleta"
    ELIMINADA = "Eliminada"


class EstadoDetalleOrden(str, Enum):
    PENDIENTE = "Pendiente"
    EN_PROCESO = "EnProceso"
    FINALIZADO = "Finalizado"


class TipoMantenimiento(str, Enum):
    PREVENTIVO = "Preventivo"
    CORRECTIVO = "Correctivo"
    PREDICTIVO = "Predictivo"


class CargoEmpleado(str, Enum):
    CONDUCTOR = "Conductor"
    OPERARIO = "Operario"
    MECANICO = "Mecanico"


class EstadoEmpleado(str, Enum):
    ACTIVO = "Activo"
    INACTIVO = "Inactivo"


class RolUsuario(str, Enum):
    ADMIN = "Admin"
    USER = "User"


def parse_enum(enum_cls: type[E], value: str | E, field_name: str) -> E:
    """Case-insensitive lookup by value or member name.

    Raises:
        ConsistencyViolation: the value is not part of the enumeration.
    """
    if isinstance(value, enum_cls):
        return value
    found = try_parse_enum(enum_cls, value)
    if found is None:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ConsistencyViolation(f"{field_name} '{value}' no es válido. Valores permitidos: {allowed}")
    return found


def try_parse_enum(enum_cls: type[E], value: object) -> E | None:
    if isinstance(value, enum_cls):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    key = value.strip().casefold()
    for member in enum_cls:
        if key in (member.value.casefold(), member.name.casefold(), member.name.replace("_", "").casefold()):
            return member
    return None
