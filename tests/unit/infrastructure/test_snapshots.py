import json
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from sinco_maquinaria.domain.aggregates import OrdenDeTrabajo, fold
from sinco_maquinaria.domain.enums import EstadoOrdenDeTrabajo
from sinco_maquinaria.domain.events import (
    ActividadAgregada,
    AvanceDeActividadRegistrado,
    OrdenDeTrabajoCreada,
    OrdenProgramada,
)
from sinco_maquinaria.infrastructure.serialization import (
    deserialize_event,
    dump_state,
    load_state,
    serialize_event,
)
from sinco_maquinaria.infrastructure.snapshots import InMemorySnapshotStore, RedisSnapshotStore, snapshot_key


def _orden():
    return fold(OrdenDeTrabajo(id="o-1"), [
        OrdenDeTrabajoCreada(orden_id="o-1", numero_orden="OT-7", fecha_orden=datetime(2025, 2, 1, tzinfo=timezone.utc)),
        OrdenProgramada(fecha_programada=datetime(2025, 2, 3, tzinfo=timezone.utc), duracion_estimada=timedelta(hours=2)),
        ActividadAgregada(item_detalle_id="d-1", descripcion="Engrase"),
        AvanceDeActividadRegistrado(item_detalle_id="d-1", porcentaje_avance=Decimal("40.5"), nuevo_estado="EnProceso"),
    ]).unwrap()


# ── Serialization ────────────────────────────────────────

class TestSerialization:
    def test_event_payload_is_json_safe(self):
        data = serialize_event(AvanceDeActividadRegistrado(item_detalle_id="d-1", porcentaje_avance=Decimal("12.5")))
        assert data["porcentaje_avance"] == "12.5"
        json.dumps(data)

    def test_event_decodes_to_its_class(self):
        event = OrdenProgramada(fecha_programada=datetime(2025, 1, 1, tzinfo=timezone.utc), duracion_estimada=timedelta(hours=3))
        decoded = deserialize_event("orden_programada", serialize_event(event))
        assert decoded == event

    def test_mismatched_payload_stays_a_dict(self):
        decoded = deserialize_event("OrdenProgramada", {"duracion_estimada": "no es una duración"})
        assert decoded == {"duracion_estimada": "no es una duración"}

    def test_state_dump_and_load(self):
        orden = _orden()
        restored = load_state(OrdenDeTrabajo, json.loads(json.dumps(dump_state(orden))))
        assert restored == orden
        assert restored.estado == EstadoOrdenDeTrabajo.EN_EJECUCION


# ── Snapshot stores ──────────────────────────────────────

class TestInMemorySnapshotStore:
    @pytest.mark.asyncio
    async def test_save_get_delete(self):
        store = InMemorySnapshotStore()
        orden = _orden()
        await store.save("orden_de_trabajo", "o-1", orden)

        snapshot = await store.get("orden_de_trabajo", OrdenDeTrabajo, "o-1")
        assert snapshot.version == 4
        assert snapshot.state == orden
        assert snapshot.state is not orden

        await store.delete("orden_de_trabajo", "o-1")
        assert await store.get("orden_de_trabajo", OrdenDeTrabajo, "o-1") is None


class TestRedisSnapshotStore:
    @pytest.mark.asyncio
    async def test_save_sets_ttl(self):
        client = AsyncMock()
        store = RedisSnapshotStore(client=client, ttl_seconds=60)
        await store.save("orden_de_trabajo", "o-1", _orden())

        key, body = client.set.await_args.args
        assert key == snapshot_key("orden_de_trabajo", "o-1")
        assert json.loads(body)["numero"] == "OT-7"
        assert client.set.await_args.kwargs["ex"] == 60

    @pytest.mark.asyncio
    async def test_get_restores_state(self):
        client = AsyncMock()
        client.get.return_value = json.dumps(dump_state(_orden()))
        store = RedisSnapshotStore(client=client, ttl_seconds=60)

        snapshot = await store.get("orden_de_trabajo", OrdenDeTrabajo, "o-1")
        assert snapshot.version == 4
        assert snapshot.state.detalles[0].avance == Decimal("40.5")

    @pytest.mark.asyncio
    async def test_missing_snapshot(self):
        client = AsyncMock()
        client.get.return_value = None
        assert await RedisSnapshotStore(client=client).get("x", OrdenDeTrabajo, "o-1") is None

    @pytest.mark.asyncio
    async def test_unreadable_snapshot_is_dropped(self):
        client = AsyncMock()
        client.get.return_value = json.dumps({"version": "no-es-un-numero"})
        store = RedisSnapshotStore(client=client)

        assert await store.get("orden_de_trabajo", OrdenDeTrabajo, "o-1") is None
        client.delete.assert_awaited_once_with(snapshot_key("orden_de_trabajo", "o-1"))
