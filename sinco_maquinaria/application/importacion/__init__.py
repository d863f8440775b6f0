from sinco_maquinaria.application.importacion.empleados import ImportadorEmpleados
from sinco_maquinaria.application.importacion.equipos import ImportadorEquipos
from sinco_maquinaria.application.importacion.resultado import ResultadoImportacion
from sinco_maquinaria.application.importacion.rutinas import ImportadorRutinas

__all__ = ["ImportadorEmpleados", "ImportadorEquipos", "ImportadorRutinas", "ResultadoImportacion"]
