"""Equipment bulk import — idempotent upsert keyed by plate.

Each plate maps to a stream id derived from it, so importing the same file
twice converges on the same streams: the first run starts them with
EquipoMigrado (plus the initial meter readings), later runs append
EquipoActualizado. Every row is validated before anything is written; a
single bad row rejects the whole file.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Sequence

from sinco_maquinaria.application.configuracion import codigo_desde_nombre
from sinco_maquinaria.application.importacion.resultado import ResultadoImportacion
from sinco_maquinaria.application.importacion.tabla import (
    SheetRow,
    data_rows,
    detect_header,
    parse_decimal,
    parse_fecha,
)
from sinco_maquinaria.application.repository import AggregateRepository
from sinco_maquinaria.core.config import settings
from sinco_maquinaria.domain.aggregates.configuracion_global import ConfiguracionGlobal, GrupoMantenimiento
from sinco_maquinaria.domain.aggregates.equipo import Equipo
from sinco_maquinaria.domain.aggregates.rutina_mantenimiento import RutinaMantenimiento
from sinco_maquinaria.domain.errors import ImportValidationError
from sinco_maquinaria.domain.events import (
    DomainEvent,
    EquipoActualizado,
    EquipoMigrado,
    GrupoMantenimientoCreado,
    MedicionRegistrada,
)
from sinco_maquinaria.domain.identity import CONFIGURACION_GLOBAL_ID, derive_stream_id
from sinco_maquinaria.infrastructure.event_store import EventBatch

logger = logging.getLogger("sinco.importacion")

COLUMNAS_OBLIGATORIAS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("Descripcion", ("Descripción",)),
    ("Grupo de mtto", ("Grupo",)),
    ("Rutina", ()),
    ("Medidor 1", ("Medidor1",)),
    ("Medidor inicial medidor 1", ()),
    ("Fecha inicial medidor 1", ()),
    ("Fecha ultima OT", ("Fecha Ultima OT",)),
)

DESCRIPCION_GRUPO_AUTOMATICO = "Auto-creado por importación"


@dataclass(frozen=True)
class MedidorResuelto:
    codigo: str
    unidad: str


@dataclass
class FilaEquipo:
    numero: int
    placa: str
    descripcion: str
    grupo: str
    rutina: str
    medidor1: MedidorResuelto | None
    medidor2: MedidorResuelto | None
    lecturas: list[tuple[MedidorResuelto, Any, Any]]  # (medidor, valor crudo, fecha cruda)


class _Catalogo:
    """Lookups over the active meter types and groups of the configuration."""

    def __init__(self, config: ConfiguracionGlobal):
        self.config = config
        activos = config.tipos_medidor_activos()
        self.por_unidad = {t.unidad.casefold(): t for t in reversed(activos)}
        self.por_nombre = {t.nombre.casefold(): t for t in reversed(activos)}
        self.grupos_nuevos: dict[str, GrupoMantenimientoCreado] = {}

    def resolver_medidor(self, texto: str) -> MedidorResuelto | None:
        tipo = self.por_unidad.get(texto.casefold()) or self.por_nombre.get(texto.casefold())
        if tipo is None:
            return None
        return MedidorResuelto(codigo=tipo.codigo, unidad=tipo.unidad)

    def opciones_medidor(self) -> str:
        unidades = [t.unidad for t in self.por_unidad.values()][:5]
        nombres = [t.nombre for t in self.por_nombre.values()][:5]
        return ", ".join(unidades + nombres)

    def buscar_grupo(self, grupo: str) -> GrupoMantenimiento | None:
        """Group matching by name, code, or the code an auto-creation would assign."""
        key = grupo.casefold()
        codigo = codigo_desde_nombre(grupo).casefold()
        for g in self.config.grupos_mantenimiento:
            if g.nombre.casefold() == key or g.codigo.casefold() in (key, codigo):
                return g
        return None

    def asegurar_grupo(self, grupo: str, usuario_id: str | None, usuario_nombre: str | None) -> None:
        codigo = codigo_desde_nombre(grupo)
        if codigo.casefold() in self.grupos_nuevos:
            return
        self.grupos_nuevos[codigo.casefold()] = GrupoMantenimientoCreado(
            codigo=codigo,
            nombre=grupo,
            descripcion=DESCRIPCION_GRUPO_AUTOMATICO,
            activo=True,
            usuario_id=usuario_id,
            usuario_nombre=usuario_nombre,
        )


class ImportadorEquipos:

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
        """Validate every row, then create or update one equipment stream per plate.

        Raises:
            ImportValidationError: no header, no importable row, or any row error.
                Nothing is written in that case.
        """
        encabezado = detect_header(rows, ("Placa",))
        if encabezado is None:
            raise ImportValidationError(
                ["No se encontró la fila de encabezados (columna 'Placa'). Verifique el archivo."]
            )

        config = await self.repository.find(ConfiguracionGlobal, CONFIGURACION_GLOBAL_ID) or ConfiguracionGlobal()
        catalogo = _Catalogo(config)
        rutinas = {r.descripcion.casefold(): r for r in await self.repository.load_all(RutinaMantenimiento)}

        errors: list[str] = []
        filas: list[FilaEquipo] = []
        placas: set[str] = set()
        for row in data_rows(rows, encabezado):
            placa = row.get("Placa")
            if not placa:
                continue
            if placa.casefold() in placas:
                errors.append(f"Fila {row.numero}: La placa '{placa}' está duplicada en el archivo.")
                continue
            placas.add(placa.casefold())

            fila = self._validar_fila(row, placa, catalogo, rutinas, errors, usuario_id, usuario_nombre)
            if fila is not None:
                filas.append(fila)

        if not filas and not errors:
            raise ImportValidationError([
                "No se procesó ningún equipo. Verifica que existan datos debajo de la fila de "
                f"encabezados (detectada en fila {encabezado.indice + 1}). "
                f"Columnas mapeadas: {', '.join(encabezado.nombres)}"
            ])
        if errors:
            logger.warning("Equipment import rejected: %d errors", len(errors))
            raise ImportValidationError(errors, max_reported=self.max_reported_errors)

        batch = EventBatch()
        resultado = ResultadoImportacion()

        if catalogo.grupos_nuevos:
            self.repository.stage(batch, config, list(catalogo.grupos_nuevos.values()))
            for grupo in catalogo.grupos_nuevos.values():
                aviso = f"Grupo de mantenimiento '{grupo.nombre}' creado automáticamente ({grupo.codigo})"
                resultado.advertencias.append(aviso)
                logger.warning(aviso, extra={"stream_id": CONFIGURACION_GLOBAL_ID})

        for fila in filas:
            stream_id = derive_stream_id(fila.placa)
            existente = await self.repository.find(Equipo, stream_id)
            if existente is None:
                self.repository.stage(batch, Equipo(id=stream_id), self._eventos_nuevo(stream_id, fila, usuario_id, usuario_nombre))
                resultado.creados += 1
            else:
                self.repository.stage(batch, existente, [EquipoActualizado(
                    id=stream_id,
                    descripcion=fila.descripcion,
                    marca=existente.marca,
                    modelo=existente.modelo,
                    serie=existente.serie,
                    codigo=existente.codigo,
                    tipo_medidor_id=fila.medidor1.codigo if fila.medidor1 else "",
                    tipo_medidor_id2=fila.medidor2.codigo if fila.medidor2 else "",
                    grupo=fila.grupo,
                    rutina=fila.rutina,
                    usuario_id=usuario_id,
                    usuario_nombre=usuario_nombre,
                    fecha_modificacion=datetime.now(timezone.utc),
                )])
                resultado.actualizados += 1

        await self.repository.store.commit(batch)
        logger.info(
            "Equipment import committed: %d created, %d updated", resultado.creados, resultado.actualizados,
        )
        return resultado

    def _validar_fila(
        self,
        row: SheetRow,
        placa: str,
        catalogo: _Catalogo,
        rutinas: dict[str, RutinaMantenimiento],
        errors: list[str],
        usuario_id: str | None,
        usuario_nombre: str | None,
    ) -> FilaEquipo | None:
        valores: dict[str, str] = {}
        for columna, alternativas in COLUMNAS_OBLIGATORIAS:
            valor = row.get(columna, *alternativas)
            if not valor:
                errors.append(f"Fila {row.numero}: El campo '{columna}' es obligatorio.")
                return None
            valores[columna] = valor

        n_errors = len(errors)
        grupo = valores["Grupo de mtto"]
        existente = catalogo.buscar_grupo(grupo)
        if existente is None:
            catalogo.asegurar_grupo(grupo, usuario_id, usuario_nombre)
        elif not existente.activo:
            errors.append(f"Fila {row.numero}: El grupo de mantenimiento '{grupo}' está inactivo.")

        medidor1 = catalogo.resolver_medidor(valores["Medidor 1"])
        if medidor1 is None:
            errors.append(
                f"Fila {row.numero}: Medidor 1 '{valores['Medidor 1']}' no válido. "
                f"Unidades válidas: {catalogo.opciones_medidor()}..."
            )
        medidor2 = None
        texto_medidor2 = row.get("Medidor 2", "Medidor2")
        if texto_medidor2:
            medidor2 = catalogo.resolver_medidor(texto_medidor2)
            if medidor2 is None:
                errors.append(
                    f"Fila {row.numero}: Medidor 2 '{texto_medidor2}' no válido. "
                    f"Unidades válidas: {catalogo.opciones_medidor()}..."
                )

        nombre_rutina = valores["Rutina"]
        rutina = rutinas.get(nombre_rutina.casefold())
        if rutina is None:
            errors.append(f"Fila {row.numero}: La Rutina asignada '{nombre_rutina}' no existe en el sistema.")
        else:
            error = _compatibilidad_rutina(rutina, medidor1, medidor2)
            if error:
                errors.append(f"Fila {row.numero}: La Rutina '{nombre_rutina}' {error}")

        if parse_fecha(row.raw("Fecha ultima OT", "Fecha Ultima OT")) is None:
            errors.append(
                f"Fila {row.numero}: El campo 'Fecha ultima OT' tiene un formato de fecha inválido: "
                f"'{valores['Fecha ultima OT']}'."
            )

        if len(errors) > n_errors:
            return None

        lecturas = [(medidor1, row.raw("Medidor inicial medidor 1"), row.raw("Fecha inicial medidor 1"))]
        if medidor2 is not None:
            lecturas.append((medidor2, row.raw("Medidor inicial medidor 2"), row.raw("Fecha inicial medidor 2")))
        return FilaEquipo(
            numero=row.numero,
            placa=placa,
            descripcion=valores["Descripcion"],
            grupo=grupo,
            rutina=nombre_rutina,
            medidor1=medidor1,
            medidor2=medidor2,
            lecturas=lecturas,
        )

    @staticmethod
    def _eventos_nuevo(
        stream_id: str, fila: FilaEquipo, usuario_id: str | None, usuario_nombre: str | None,
    ) -> list[DomainEvent]:
        now = datetime.now(timezone.utc)
        events: list[DomainEvent] = [EquipoMigrado(
            id=stream_id,
            placa=fila.placa,
            descripcion=fila.descripcion,
            tipo_medidor_id=fila.medidor1.codigo if fila.medidor1 else "",
            tipo_medidor_id2=fila.medidor2.codigo if fila.medidor2 else "",
            grupo=fila.grupo,
            rutina=fila.rutina,
            usuario_id=usuario_id,
            usuario_nombre=usuario_nombre,
            fecha_creacion=now,
        )]
        for medidor, valor_crudo, fecha_cruda in fila.lecturas:
            valor = parse_decimal(valor_crudo)
            if valor is None:
                continue
            events.append(MedicionRegistrada(
                tipo_medidor=medidor.codigo,
                valor_medicion=valor,
                fecha_lectura=parse_fecha(fecha_cruda) or now,
                trabajo_acumulado_calculado=valor,
                usuario_id=usuario_id,
                usuario_nombre=usuario_nombre,
            ))
        return events


def _compatibilidad_rutina(
    rutina: RutinaMantenimiento, medidor1: MedidorResuelto | None, medidor2: MedidorResuelto | None,
) -> str | None:
    """Error text when the routine schedules activities on a meter unit the equipment lacks."""
    unidad1 = medidor1.unidad if medidor1 else ""
    unidad2 = medidor2.unidad if medidor2 else ""
    for parte in rutina.partes:
        for actividad in parte.actividades:
            if actividad.unidad_medida and actividad.unidad_medida.casefold() != unidad1.casefold():
                return (
                    f"requiere Medidor 1 '{actividad.unidad_medida}' (Actividad: {actividad.descripcion}), "
                    f"pero el equipo tiene '{unidad1}'."
                )
            if actividad.unidad_medida2 and actividad.unidad_medida2.casefold() != unidad2.casefold():
                return (
                    f"requiere Medidor 2 '{actividad.unidad_medida2}' (Actividad: {actividad.descripcion}), "
                    f"pero el equipo tiene '{unidad2}'."
                )
    return None
