"""Audit Projection — one flat audit record per event, for any event type.

The projector never looks at aggregate state and has no per-event code:
payload fields are enumerated structurally, the actor is picked out by
conventional field names, and the event type name is classified into a
display module through EVENTO_MODULO_MAP. A field that cannot be rendered
is dropped from the record; the record itself is always produced.

AuditProjection tails the global log from a stored checkpoint, so the
audit table can lag behind writers and can be rebuilt from scratch.
"""
from __future__ import annotations

import abc
import asyncio
import dataclasses
import json
import logging
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Iterable, Sequence

from pydantic import BaseModel
from sqlalchemy import (
    JSON,
    BigInteger,
    Column,
    DateTime,
    Integer,
    String,
    Table,
    delete,
    insert,
    select,
    update,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sinco_maquinaria.core.config import settings
from sinco_maquinaria.core.database import get_session_factory, metadata
from sinco_maquinaria.domain.events import RecordedEvent, event_type_name, to_snake_case
from sinco_maquinaria.infrastructure.event_store import EventStore

logger = logging.getLogger("sinco.auditoria")

MODULO_ORDENES = "Órdenes"
MODULO_EQUIPOS = "Equipos"
MODULO_EMPLEADOS = "Empleados"
MODULO_CONFIGURACION = "Configuración"
MODULO_USUARIOS = "Usuarios"
MODULO_RUTINAS = "Rutinas"
MODULO_OTROS = "Otros"


def _por_modulo(modulo: str, *tipos: str) -> dict[str, str]:
    entries = {}
    for tipo in tipos:
        entries[tipo] = modulo
        entries[to_snake_case(tipo)] = modulo
    return entries


EVENTO_MODULO_MAP: dict[str, str] = {
    **_por_modulo(
        MODULO_ORDENES,
        "OrdenDeTrabajoCreada", "OrdenProgramada", "OrdenFinalizada", "OrdenDeTrabajoEliminada",
        "ActividadAgregada", "AvanceDeActividadRegistrado",
    ),
    **_por_modulo(
        MODULO_EQUIPOS,
        "EquipoCreado", "EquipoMigrado", "EquipoActualizado", "MedicionRegistrada",
    ),
    **_por_modulo(MODULO_EMPLEADOS, "EmpleadoCreado", "EmpleadoActualizado"),
    **_por_modulo(
        MODULO_CONFIGURACION,
        "TipoMedidorCreado", "TipoMedidorActualizado", "EstadoTipoMedidorCambiado",
        "GrupoMantenimientoCreado", "GrupoMantenimientoActualizado", "EstadoGrupoMantenimientoCambiado",
        "TipoFallaCreado", "TipoFallaActualizado", "EstadoTipoFallaCambiado",
        "CausaFallaCreada", "CausaFallaActualizada", "EstadoCausaFallaCambiado",
    ),
    **_por_modulo(
        MODULO_USUARIOS,
        "UsuarioCreado", "UsuarioActualizado", "UsuarioDesactivado",
        "RefreshTokenGenerado", "RefreshTokenRevocado",
    ),
    **_por_modulo(
        MODULO_RUTINAS,
        "RutinaCreada", "RutinaMigrada", "RutinaActualizada",
        "ParteAgregada", "ParteDeRutinaMigrada", "ParteActualizada", "ParteEliminada",
        "ActividadDeRutinaAgregada", "ActividadDeRutinaMigrada",
        "ActividadDeRutinaActualizada", "ActividadDeRutinaEliminada",
    ),
}

# First match wins. modificado_por comes after usuario_id so UsuarioActualizado
# falls back to it.
ACTOR_ID_FIELDS = ("usuario_id", "UsuarioId", "usuarioId", "actor_id", "actorId", "modificado_por")
ACTOR_NAME_FIELDS = (
    "usuario_nombre", "UsuarioNombre", "usuarioNombre", "actor_name", "actorName", "modificado_por_nombre",
)
ACTOR_FIELDS = frozenset(ACTOR_ID_FIELDS + ACTOR_NAME_FIELDS)
EXCLUDED_FIELDS = frozenset({"id", "Id", "fecha_creacion", "FechaCreacion", "fechaCreacion"})
# credentials never reach the audit table
SENSITIVE_FIELDS = frozenset({"password_hash", "refresh_token"})


@dataclass
class RegistroAuditoria:
    id: str
    stream_id: str
    tipo_evento: str
    modulo: str
    usuario_id: str | None
    usuario_nombre: str | None
    fecha: datetime
    version: int | None
    detalles: dict[str, str] = field(default_factory=dict)
    position: int = 0

    @property
    def detalles_json(self) -> str:
        return json.dumps(self.detalles, ensure_ascii=False, sort_keys=True)


# ── Projection ───────────────────────────────────────────

def _payload_fields(payload: Any) -> Iterable[tuple[str, Any]]:
    """Structural enumeration of a payload's fields, whatever its shape."""
    if isinstance(payload, Mapping):
        return list(payload.items())
    if dataclasses.is_dataclass(payload) and not isinstance(payload, type):
        return [(f.name, getattr(payload, f.name, None)) for f in dataclasses.fields(payload)]
    if isinstance(payload, BaseModel):
        return [(name, getattr(payload, name, None)) for name in type(payload).model_fields]
    if hasattr(payload, "__dict__"):
        return [(k, v) for k, v in vars(payload).items() if not k.startswith("_")]
    return []


def _render(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, (int, float, Decimal, uuid.UUID)):
        return str(value)
    if isinstance(value, BaseModel):
        return value.model_dump_json()
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        value = dataclasses.asdict(value)
    return json.dumps(value, ensure_ascii=False, default=str)


def project_audit(recorded: RecordedEvent, module_map: Mapping[str, str] = EVENTO_MODULO_MAP) -> RegistroAuditoria:
    """Flatten one recorded event into an audit record. Never raises on payload shape."""
    tipo = recorded.event_type or event_type_name(recorded.data)

    try:
        fields = list(_payload_fields(recorded.data))
    except Exception as e:
        logger.warning(
            "Could not enumerate payload fields: %s", e,
            extra={"stream_id": recorded.stream_id, "event_type": tipo},
        )
        fields = []

    valores = dict(fields)
    usuario_id = next((str(valores[k]) for k in ACTOR_ID_FIELDS if valores.get(k) is not None), None)
    usuario_nombre = next((str(valores[k]) for k in ACTOR_NAME_FIELDS if valores.get(k) is not None), None)

    detalles: dict[str, str] = {}
    for name, value in fields:
        if name in EXCLUDED_FIELDS or name in SENSITIVE_FIELDS or name in ACTOR_FIELDS:
            continue
        try:
            rendered = _render(value)
        except (TypeError, ValueError) as e:
            logger.warning(
                "Dropped field %s from audit record: %s", name, e,
                extra={"stream_id": recorded.stream_id, "event_type": tipo},
            )
            continue
        if rendered is not None:
            detalles[str(name)] = rendered

    return RegistroAuditoria(
        id=recorded.event_id or str(uuid.uuid4()),
        stream_id=recorded.stream_id,
        tipo_evento=tipo,
        modulo=module_map.get(tipo, MODULO_OTROS),
        usuario_id=usuario_id,
        usuario_nombre=usuario_nombre,
        fecha=recorded.timestamp or datetime.now(timezone.utc),
        version=recorded.version,
        detalles=detalles,
        position=recorded.position,
    )


# ── Audit Log Stores ─────────────────────────────────────

class AuditLogStore(abc.ABC):

    @abc.abstractmethod
    async def save_many(self, records: Sequence[RegistroAuditoria], checkpoint: int | None = None) -> None:
        """Persist records and, when given, advance the checkpoint in the same write."""

    @abc.abstractmethod
    async def clear(self) -> None:
        """Remove every record and reset the checkpoint to 0."""

    @abc.abstractmethod
    async def query(
        self,
        modulo: str | None = None,
        stream_id: str | None = None,
        usuario_id: str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[RegistroAuditoria]:
        """Newest first."""

    @abc.abstractmethod
    async def get_checkpoint(self) -> int: ...

    @abc.abstractmethod
    async def set_checkpoint(self, position: int) -> None: ...


class InMemoryAuditLogStore(AuditLogStore):

    def __init__(self) -> None:
        self.records: list[RegistroAuditoria] = []
        self.checkpoint = 0

    async def save_many(self, records, checkpoint=None) -> None:
        self.records.extend(records)
        if checkpoint is not None:
            self.checkpoint = checkpoint

    async def clear(self) -> None:
        self.records.clear()
        self.checkpoint = 0

    async def query(self, modulo=None, stream_id=None, usuario_id=None, limit=100, offset=0):
        matches = [
            r for r in self.records
            if (modulo is None or r.modulo == modulo)
            and (stream_id is None or r.stream_id == stream_id)
            and (usuario_id is None or r.usuario_id == usuario_id)
        ]
        matches.sort(key=lambda r: (r.fecha, r.position), reverse=True)
        return matches[offset:offset + limit]

    async def get_checkpoint(self) -> int:
        return self.checkpoint

    async def set_checkpoint(self, position: int) -> None:
        self.checkpoint = position


audit_table = Table(
    "audit_log",
    metadata,
    Column("id", String, primary_key=True),
    Column("position", BigInteger().with_variant(Integer, "sqlite"), nullable=False, index=True),
    Column("stream_id", String, nullable=False, index=True),
    Column("tipo_evento", String, nullable=False),
    Column("modulo", String, nullable=False, index=True),
    Column("usuario_id", String, nullable=True, index=True),
    Column("usuario_nombre", String, nullable=True),
    Column("fecha", DateTime(timezone=True), nullable=False),
    Column("version", Integer, nullable=True),
    Column("detalles", JSON().with_variant(JSONB, "postgresql"), nullable=False),
)

checkpoints_table = Table(
    "projection_checkpoints",
    metadata,
    Column("name", String, primary_key=True),
    Column("position", BigInteger().with_variant(Integer, "sqlite"), nullable=False),
)


class SqlAuditLogStore(AuditLogStore):
    """Audit records on `audit_log`; the checkpoint is one row of `projection_checkpoints`."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        name: str = "auditoria",
    ) -> None:
        self._session_factory = session_factory or get_session_factory()
        self.name = name

    async def save_many(self, records, checkpoint=None) -> None:
        async with self._session_factory() as session:
            async with session.begin():
                if records:
                    await session.execute(insert(audit_table), [_record_to_row(r) for r in records])
                if checkpoint is not None:
                    await self._write_checkpoint(session, checkpoint)

    async def clear(self) -> None:
        async with self._session_factory() as session:
            async with session.begin():
                await session.execute(delete(audit_table))
                await self._write_checkpoint(session, 0)

    async def query(self, modulo=None, stream_id=None, usuario_id=None, limit=100, offset=0):
        stmt = select(audit_table)
        if modulo is not None:
            stmt = stmt.where(audit_table.c.modulo == modulo)
        if stream_id is not None:
            stmt = stmt.where(audit_table.c.stream_id == stream_id)
        if usuario_id is not None:
            stmt = stmt.where(audit_table.c.usuario_id == usuario_id)
        stmt = (
            stmt.order_by(audit_table.c.fecha.desc(), audit_table.c.position.desc())
            .limit(limit)
            .offset(offset)
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return [_row_to_record(row) for row in result.fetchall()]

    async def get_checkpoint(self) -> int:
        async with self._session_factory() as session:
            result = await session.execute(
                select(checkpoints_table.c.position).where(checkpoints_table.c.name == self.name)
            )
            return result.scalar_one_or_none() or 0

    async def set_checkpoint(self, position: int) -> None:
        async with self._session_factory() as session:
            async with session.begin():
                await self._write_checkpoint(session, position)

    async def _write_checkpoint(self, session: AsyncSession, position: int) -> None:
        result = await session.execute(
            update(checkpoints_table)
            .where(checkpoints_table.c.name == self.name)
            .values(position=position)
        )
        if result.rowcount == 0:
            await session.execute(insert(checkpoints_table).values(name=self.name, position=position))


def _record_to_row(record: RegistroAuditoria) -> dict[str, Any]:
    return {
        "id": record.id,
        "position": record.position,
        "stream_id": record.stream_id,
        "tipo_evento": record.tipo_evento,
        "modulo": record.modulo,
        "usuario_id": record.usuario_id,
        "usuario_nombre": record.usuario_nombre,
        "fecha": record.fecha,
        "version": record.version,
        "detalles": record.detalles,
    }


def _row_to_record(row: Any) -> RegistroAuditoria:
    detalles = row.detalles if isinstance(row.detalles, dict) else json.loads(row.detalles)
    return RegistroAuditoria(
        id=row.id,
        stream_id=row.stream_id,
        tipo_evento=row.tipo_evento,
        modulo=row.modulo,
        usuario_id=row.usuario_id,
        usuario_nombre=row.usuario_nombre,
        fecha=row.fecha,
        version=row.version,
        detalles=detalles,
        position=row.position,
    )


# ── Runner ───────────────────────────────────────────────

class AuditProjection:
    """Projects the global event log into an AuditLogStore, batch by batch."""

    def __init__(
        self,
        store: EventStore,
        log_store: AuditLogStore,
        batch_size: int | None = None,
        module_map: Mapping[str, str] = EVENTO_MODULO_MAP,
    ) -> None:
        self.store = store
        self.log_store = log_store
        self.batch_size = batch_size or settings.AUDIT_BATCH_SIZE
        self.module_map = module_map
        self._lock = asyncio.Lock()

    async def run_once(self) -> int:
        """Project every event after the checkpoint. Returns how many were projected."""
        async with self._lock:
            return await self._catch_up()

    async def rebuild(self) -> int:
        async with self._lock:
            await self.log_store.clear()
            logger.info("Audit log cleared, re-projecting from position 0")
            return await self._catch_up()

    async def _catch_up(self) -> int:
        checkpoint = await self.log_store.get_checkpoint()
        total = 0
        while True:
            events = await self.store.read_all(after_position=checkpoint, limit=self.batch_size)
            if not events:
                break
            records = [project_audit(e, self.module_map) for e in events]
            checkpoint = events[-1].position
            await self.log_store.save_many(records, checkpoint=checkpoint)
            total += len(records)
            if len(events) < self.batch_size:
                break
        if total:
            logger.info("Projected %d events into the audit log (checkpoint %d)", total, checkpoint)
        return total
