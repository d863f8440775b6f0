from unittest.mock import AsyncMock

import pytest

from sinco_maquinaria.application.repository import AggregateRepository
from sinco_maquinaria.domain.aggregates import Equipo, OrdenDeTrabajo
from sinco_maquinaria.domain.errors import ConcurrencyConflict, ConsistencyViolation, StreamNotFound
from sinco_maquinaria.domain.events import (
    ActividadAgregada,
    AvanceDeActividadRegistrado,
    EquipoActualizado,
    EquipoMigrado,
    OrdenDeTrabajoCreada,
)
from sinco_maquinaria.infrastructure.event_store import EventBatch
from sinco_maquinaria.infrastructure.snapshots import snapshot_key


class TestLoad:
    @pytest.mark.asyncio
    async def test_load_folds_stream(self, store, repository):
        await store.start_stream("e-1", [
            EquipoMigrado(id="e-1", placa="ABC123", descripcion="Volqueta"),
            EquipoActualizado(id="e-1", descripcion="Volqueta 2"),
        ], "equipo")

        equipo = await repository.load(Equipo, "e-1")
        assert equipo.version == 2
        assert equipo.descripcion == "Volqueta 2"

    @pytest.mark.asyncio
    async def test_missing_stream(self, repository):
        with pytest.raises(StreamNotFound):
            await repository.load(Equipo, "nope")
        assert await repository.find(Equipo, "nope") is None

    @pytest.mark.asyncio
    async def test_corrupt_history_raises(self, store, repository):
        # written behind the repository's back, so nothing checked it
        await store.start_stream("o-1", [
            OrdenDeTrabajoCreada(orden_id="o-1", numero_orden="OT-1"),
            AvanceDeActividadRegistrado(item_detalle_id="d-9", nuevo_estado="Finalizado"),
        ], "orden_de_trabajo")

        with pytest.raises(ConsistencyViolation):
            await repository.load(OrdenDeTrabajo, "o-1")

    @pytest.mark.asyncio
    async def test_load_all_by_kind(self, store, repository):
        await store.start_stream("a", [EquipoMigrado(id="a", placa="A")], "equipo")
        await store.start_stream("b", [EquipoMigrado(id="b", placa="B")], "equipo")
        await store.start_stream("o", [OrdenDeTrabajoCreada(orden_id="o")], "orden_de_trabajo")

        assert sorted(e.placa for e in await repository.load_all(Equipo)) == ["A", "B"]


class TestSnapshots:
    @pytest.mark.asyncio
    async def test_snapshot_written_after_long_replay(self, store, snapshots):
        repository = AggregateRepository(store, snapshots=snapshots, snapshot_every=2)
        await store.start_stream("e-1", [EquipoMigrado(id="e-1", placa="A")] + [
            EquipoActualizado(id="e-1", descripcion=f"v{i}") for i in range(3)
        ], "equipo")

        await repository.load(Equipo, "e-1")

        snapshot = await snapshots.get("equipo", Equipo, "e-1")
        assert snapshot.version == 4

    @pytest.mark.asyncio
    async def test_load_resumes_from_snapshot(self, store, snapshots):
        repository = AggregateRepository(store, snapshots=snapshots, snapshot_every=100)
        await store.start_stream("e-1", [EquipoMigrado(id="e-1", placa="A")], "equipo")
        base = await repository.load(Equipo, "e-1")
        await snapshots.save("equipo", "e-1", base)
        await store.append_to_stream("e-1", 1, [EquipoActualizado(id="e-1", descripcion="después")])

        store.load_stream = AsyncMock(wraps=store.load_stream)
        equipo = await repository.load(Equipo, "e-1")

        store.load_stream.assert_awaited_once_with("e-1", from_version=2)
        assert equipo.version == 2
        assert equipo.descripcion == "después"
        assert snapshot_key("equipo", "e-1") in snapshots._items


class TestWrite:
    @pytest.mark.asyncio
    async def test_save_starts_then_appends(self, store, repository):
        equipo = await repository.save(Equipo(id="e-1"), [EquipoMigrado(id="e-1", placa="A")])
        equipo = await repository.save(equipo, [EquipoActualizado(id="e-1", descripcion="x")])

        assert equipo.version == 2
        assert await store.fetch_stream_version("e-1") == 2
        assert await store.stream_ids("equipo") == ["e-1"]

    @pytest.mark.asyncio
    async def test_invalid_event_never_reaches_the_log(self, store, repository):
        orden = await repository.save(OrdenDeTrabajo(id="o-1"), [OrdenDeTrabajoCreada(orden_id="o-1")])

        with pytest.raises(ConsistencyViolation):
            await repository.save(orden, [AvanceDeActividadRegistrado(item_detalle_id="d-9", nuevo_estado="Finalizado")])
        assert await store.fetch_stream_version("o-1") == 1

    @pytest.mark.asyncio
    async def test_stage_collects_into_batch(self, store, repository):
        batch = EventBatch()
        state = repository.stage(batch, Equipo(id="e-1"), [EquipoMigrado(id="e-1", placa="A")])

        assert state.placa == "A"
        assert await store.fetch_stream_version("e-1") is None
        await store.commit(batch)
        assert await store.fetch_stream_version("e-1") == 1

    @pytest.mark.asyncio
    async def test_execute_retries_on_conflict(self, store, repository):
        await repository.save(OrdenDeTrabajo(id="o-1"), [OrdenDeTrabajoCreada(orden_id="o-1")])
        calls = []

        def decide(orden):
            calls.append(orden.version)
            return [ActividadAgregada(item_detalle_id="mine")]

        original_commit = store.commit
        # the first commit loses a race against another writer
        conflicts = iter([ConcurrencyConflict("o-1", 1, 2)])

        async def flaky_commit(batch):
            error = next(conflicts, None)
            if error is not None:
                raise error
            return await original_commit(batch)

        store.commit = flaky_commit
        orden = await repository.execute(OrdenDeTrabajo, "o-1", decide)

        assert len(calls) == 2
        assert [d.id for d in orden.detalles] == ["mine"]

    @pytest.mark.asyncio
    async def test_execute_gives_up_after_max_retries(self, store):
        repository = AggregateRepository(store, max_retries=1)
        await repository.save(OrdenDeTrabajo(id="o-1"), [OrdenDeTrabajoCreada(orden_id="o-1")])
        store.commit = AsyncMock(side_effect=ConcurrencyConflict("o-1", 1, 2))

        with pytest.raises(ConcurrencyConflict):
            await repository.execute(OrdenDeTrabajo, "o-1", lambda o: [ActividadAgregada(item_detalle_id="x")])
        assert store.commit.await_count == 2

    @pytest.mark.asyncio
    async def test_execute_with_no_events_writes_nothing(self, store, repository):
        await repository.save(OrdenDeTrabajo(id="o-1"), [OrdenDeTrabajoCreada(orden_id="o-1")])
        orden = await repository.execute(OrdenDeTrabajo, "o-1", lambda o: [])
        assert orden.version == 1
        assert len(await store.read_all()) == 1

    @pytest.mark.asyncio
    async def test_execute_create_starts_missing_stream(self, store, repository):
        equipo = await repository.execute(
            Equipo, "e-1", lambda e: [EquipoMigrado(id="e-1", placa="A")], create=True,
        )
        assert equipo.version == 1

    @pytest.mark.asyncio
    async def test_execute_without_create_requires_stream(self, repository):
        with pytest.raises(StreamNotFound):
            await repository.execute(Equipo, "e-1", lambda e: [])
