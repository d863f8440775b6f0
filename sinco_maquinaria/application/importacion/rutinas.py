"""Maintenance routine bulk import.

Rows are flat (routine, part, activity) triples; consecutive rows sharing a
routine and part are grouped under one stream. Routines already registered
are rejected rather than merged.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Sequence

from sinco_maquinaria.application.importacion.resultado import ResultadoImportacion
from sinco_maquinaria.application.importacion.tabla import (
    SheetRow,
    data_rows,
    detect_header,
    limpiar_numero,
    parse_decimal,
    parse_entero,
)
from sinco_maquinaria.application.repository import AggregateRepository
from sinco_maquinaria.core.config import settings
from sinco_maquinaria.domain.aggregates.configuracion_global import ConfiguracionGlobal, TipoMedidor
from sinco_maquinaria.domain.aggregates.rutina_mantenimiento import RutinaMantenimiento
from sinco_maquinaria.domain.errors import ImportValidationError
from sinco_maquinaria.domain.events import (
    ActividadDeRutinaMigrada,
    DomainEvent,
    ParteDeRutinaMigrada,
    RutinaMigrada,
)
from sinco_maquinaria.domain.identity import CONFIGURACION_GLOBAL_ID, derive_stream_id, new_stream_id
from sinco_maquinaria.infrastructure.event_store import EventBatch

logger = logging.getLogger("sinco.importacion")

GRUPO_POR_DEFECTO = "General"
CLASE_POR_DEFECTO = "General"


@dataclass
class _RutinaPendiente:
    rutina_id: str
    descripcion: str
    grupo: str
    events: list[DomainEvent] = field(default_factory=list)
    partes: dict[str, str] = field(default_factory=dict)  # casefolded description -> parte_id


class ImportadorRutinas:

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
        """Start one RutinaMigrada stream per new routine description.

        A sheet without data rows imports nothing and is not an error.
        """
        encabezado = detect_header(rows, ("Rutina", "Equipo"))
        if encabezado is None:
            raise ImportValidationError(
                ["No se encontró la fila de encabezados (columna 'Rutina'). Verifique el archivo."]
            )

        config = await self.repository.find(ConfiguracionGlobal, CONFIGURACION_GLOBAL_ID) or ConfiguracionGlobal()
        unidades = {t.unidad.upper(): t for t in config.tipos_medidor_activos()}
        existentes = {r.descripcion.casefold() for r in await self.repository.load_all(RutinaMantenimiento)}

        errors: list[str] = []
        reportadas: set[str] = set()
        pendientes: dict[str, _RutinaPendiente] = {}

        for row in data_rows(rows, encabezado, prefijo=True):
            descripcion = row.get("Rutina")
            if not descripcion:
                continue
            key = descripcion.casefold()
            if key in existentes:
                if key not in reportadas:
                    reportadas.add(key)
                    errors.append(f"Fila {row.numero}: La rutina '{descripcion}' ya existe en el sistema.")
                continue

            actividad = self._leer_actividad(row, unidades, errors)
            if actividad is None:
                continue

            rutina = pendientes.get(key)
            if rutina is None:
                rutina = _RutinaPendiente(
                    rutina_id=derive_stream_id(f"rutina:{descripcion}"),
                    descripcion=descripcion,
                    grupo=row.get("Grupo") or GRUPO_POR_DEFECTO,
                )
                rutina.events.append(RutinaMigrada(
                    rutina_id=rutina.rutina_id,
                    descripcion=descripcion,
                    grupo=rutina.grupo,
                    usuario_id=usuario_id,
                    usuario_nombre=usuario_nombre,
                ))
                pendientes[key] = rutina

            nombre_parte = row.get("Parte") or descripcion
            parte_id = rutina.partes.get(nombre_parte.casefold())
            if parte_id is None:
                parte_id = derive_stream_id(f"{descripcion}|{nombre_parte}")
                rutina.partes[nombre_parte.casefold()] = parte_id
                rutina.events.append(ParteDeRutinaMigrada(
                    parte_id=parte_id, descripcion=nombre_parte, rutina_id=rutina.rutina_id,
                ))
            rutina.events.append(ActividadDeRutinaMigrada(parte_id=parte_id, **actividad))

        if errors:
            logger.warning("Routine import rejected: %d errors", len(errors))
            raise ImportValidationError(errors, max_reported=self.max_reported_errors)

        resultado = ResultadoImportacion()
        if not pendientes:
            return resultado

        batch = EventBatch()
        for rutina in pendientes.values():
            self.repository.stage(batch, RutinaMantenimiento(id=rutina.rutina_id), rutina.events)
            resultado.creados += 1
        await self.repository.store.commit(batch)
        logger.info("Routine import committed: %d routines", resultado.creados)
        return resultado

    @staticmethod
    def _leer_actividad(
        row: SheetRow, unidades: dict[str, TipoMedidor], errors: list[str],
    ) -> dict[str, Any] | None:
        n_errors = len(errors)
        descripcion = row.get("Actividad")
        if not descripcion:
            errors.append(f"Fila {row.numero}: La actividad es requerida.")

        frecuencia = parse_entero(limpiar_numero(row.get("Frecuencia")))
        if frecuencia is None or frecuencia <= 0:
            errors.append(f"Fila {row.numero}: La frecuencia debe ser un número mayor a cero.")

        unidad = row.get("Frec UM", "Frec. UM", "Unidad").upper()
        medidor = unidades.get(unidad)
        if medidor is None:
            errors.append(f"Fila {row.numero}: La unidad de medida '{unidad}' no existe en los tipos de medidor activos.")

        alerta = parse_entero(limpiar_numero(row.get("Alerta Faltando", "Alerta", "AlertaFaltando"))) or 0

        frecuencia2 = parse_entero(limpiar_numero(row.get("Frecuencia II", "Frecuencia 2", "Frecuencia2"))) or 0
        unidad2 = row.get("Frec UM II", "Frec. UM II", "Unidad II", "Unidad 2").upper()
        medidor2 = None
        if unidad2:
            medidor2 = unidades.get(unidad2)
            if medidor2 is None:
                errors.append(
                    f"Fila {row.numero}: La unidad de medida II '{unidad2}' no existe en los tipos de medidor activos."
                )
        alerta2 = parse_entero(limpiar_numero(row.get("Alerta Faltando II", "Alerta II", "Alerta 2"))) or 0

        insumo = row.get("Insumo")
        if insumo and parse_decimal(limpiar_numero(insumo)) is None:
            errors.append(f"Fila {row.numero}: El insumo '{insumo}' debe ser numérico.")
        cantidad = parse_decimal(limpiar_numero(row.get("Cantidad")))

        if len(errors) > n_errors:
            return None
        return {
            "actividad_id": new_stream_id(),
            "descripcion": descripcion,
            "clase": row.get("Clase Actividad", "Clase") or CLASE_POR_DEFECTO,
            "frecuencia": frecuencia,
            "unidad_medida": medidor.unidad,
            "nombre_medidor": medidor.nombre,
            "alerta_faltando": alerta,
            "frecuencia2": frecuencia2,
            "unidad_medida2": medidor2.unidad if medidor2 else "",
            "nombre_medidor2": medidor2.nombre if medidor2 else "",
            "alerta_faltando2": alerta2,
            "insumo": insumo or None,
            "cantidad": float(cantidad) if cantidad is not None else 0.0,
        }
