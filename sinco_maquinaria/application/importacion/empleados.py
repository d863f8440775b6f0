"""Employee bulk import."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Sequence

from sinco_maquinaria.application.importacion.resultado import ResultadoImportacion
from sinco_maquinaria.application.importacion.tabla import data_rows, detect_header, parse_decimal
from sinco_maquinaria.application.repository import AggregateRepository
from sinco_maquinaria.core.config import settings
from sinco_maquinaria.domain.aggregates.empleado import Empleado
from sinco_maquinaria.domain.enums import CargoEmpleado, EstadoEmpleado, try_parse_enum
from sinco_maquinaria.domain.errors import ImportValidationError
from sinco_maquinaria.domain.events import EmpleadoCreado
from sinco_maquinaria.domain.identity import derive_stream_id
from sinco_maquinaria.infrastructure.event_store import EventBatch

logger = logging.getLogger("sinco.importacion")

_COLUMNAS_IDENTIFICACION = ("No. Identificación", "Identificación", "Identificacion", "Documento")


class ImportadorEmpleados:

    def __init__(self, repository: AggregateRepository, max_reported_errors: int | None = None):
        self.repository = repository
        self.max_reported_errors = (
            max_reported_errors if max_reported_errors is not None else settings.IMPORT_MAX_REPORTED_ERRORS
        )

    async def importar(
        self,
        rows: Sequence[Sequence[Any]],
        usuario_id: str | None = None,
        usuario_nombre: str | None = None,
    ) -> ResultadoImportacion:
        encabezado = detect_header(rows, ("Nombres", "Nombre", *_COLUMNAS_IDENTIFICACION))
        if encabezado is None:
            raise ImportValidationError(
                ["No se encontró la fila de encabezados (columna 'Nombres'). Verifique el archivo."]
            )

        registradas = {e.identificacion.casefold() for e in await self.repository.load_all(Empleado)}
        vistas: set[str] = set()
        errors: list[str] = []
        nuevos: list[EmpleadoCreado] = []
        now = datetime.now(timezone.utc)

        for row in data_rows(rows, encabezado):
            nombre = " ".join(p for p in (row.get("Nombres"), row.get("Apellidos")) if p) or row.get("Nombre")
            identificacion = row.get(*_COLUMNAS_IDENTIFICACION)
            if not nombre and not identificacion:
                continue

            n_errors = len(errors)
            if not nombre:
                errors.append(f"Fila {row.numero}: El nombre es requerido.")
            if not identificacion:
                errors.append(f"Fila {row.numero}: La identificación es requerida.")
            elif identificacion.casefold() in vistas:
                errors.append(f"Fila {row.numero}: La identificación '{identificacion}' está duplicado en el archivo.")
            elif identificacion.casefold() in registradas:
                errors.append(f"Fila {row.numero}: La identificación '{identificacion}' ya existe en el sistema.")

            texto_cargo = row.get("Cargo")
            cargo = try_parse_enum(CargoEmpleado, texto_cargo) if texto_cargo else CargoEmpleado.OPERARIO
            if cargo is None:
                errors.append(f"Fila {row.numero}: El cargo '{texto_cargo}' no es válido.")

            valor_hora = parse_decimal(row.raw("Valor $ (Hr)", "Valor Hora"))
            if valor_hora is not None and valor_hora < 0:
                errors.append(f"Fila {row.numero}: El valor por hora debe ser mayor o igual a cero.")

            if identificacion:
                vistas.add(identificacion.casefold())
            if len(errors) > n_errors:
                continue

            nuevos.append(EmpleadoCreado(
                id=derive_stream_id(f"empleado:{identificacion}"),
                nombre=nombre,
                identificacion=identificacion,
                cargo=cargo.value,
                especialidad=row.get("Especialidad"),
                valor_hora=valor_hora if valor_hora is not None else Decimal("0"),
                estado=EstadoEmpleado.ACTIVO.value,
                usuario_id=usuario_id,
                usuario_nombre=usuario_nombre,
                fecha_creacion=now,
            ))

        if not nuevos and not errors:
            raise ImportValidationError(["No se encontraron empleados para importar en el archivo."])
        if errors:
            logger.warning("Employee import rejected: %d errors", len(errors))
            raise ImportValidationError(errors, max_reported=self.max_reported_errors)

        batch = EventBatch()
        for event in nuevos:
            self.repository.stage(batch, Empleado(id=event.id), [event])
        await self.repository.store.commit(batch)
        logger.info("Employee import committed: %d employees", len(nuevos))
        return ResultadoImportacion(creados=len(nuevos))
