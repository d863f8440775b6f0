from sinco_maquinaria.domain.aggregates.base import Aggregate, FoldResult, apply, fold
from sinco_maquinaria.domain.aggregates.configuracion_global import ConfiguracionGlobal
from sinco_maquinaria.domain.aggregates.empleado import Empleado
from sinco_maquinaria.domain.aggregates.equipo import Equipo
from sinco_maquinaria.domain.aggregates.orden_de_trabajo import OrdenDeTrabajo
from sinco_maquinaria.domain.aggregates.rutina_mantenimiento import RutinaMantenimiento
from sinco_maquinaria.domain.aggregates.usuario import Usuario

AGGREGATE_KINDS: dict[str, type[Aggregate]] = {
    cls.stream_type: cls
    for cls in (OrdenDeTrabajo, Equipo, ConfiguracionGlobal, RutinaMantenimiento, Usuario, Empleado)
}

__all__ = [
    "AGGREGATE_KINDS",
    "Aggregate",
    "ConfiguracionGlobal",
    "Empleado",
    "Equipo",
    "FoldResult",
    "OrdenDeTrabajo",
    "RutinaMantenimiento",
    "Usuario",
    "apply",
    "fold",
]
