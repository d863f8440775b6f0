"""End to end on the in-memory store: configure, import, operate, audit."""
from decimal import Decimal

import pytest

from sinco_maquinaria.application.configuracion import ConfiguracionService
from sinco_maquinaria.application.equipos import EquiposService
from sinco_maquinaria.application.importacion import ImportadorEmpleados, ImportadorEquipos, ImportadorRutinas
from sinco_maquinaria.application.ordenes import OrdenesService
from sinco_maquinaria.application.repository import AggregateRepository
from sinco_maquinaria.domain.aggregates import AGGREGATE_KINDS, Equipo
from sinco_maquinaria.domain.identity import derive_stream_id
from sinco_maquinaria.infrastructure.event_store import InMemoryEventStore
from sinco_maquinaria.infrastructure.snapshots import InMemorySnapshotStore
from sinco_maquinaria.projections.auditoria import (
    MODULO_CONFIGURACION,
    MODULO_EMPLEADOS,
    MODULO_EQUIPOS,
    MODULO_ORDENES,
    MODULO_RUTINAS,
    AuditProjection,
    InMemoryAuditLogStore,
)

RUTINAS = [
    ["Plan de mantenimiento"],
    ["Rutina", "Parte", "Actividad", "Frecuencia", "Frec UM"],
    ["Rutina 250 HR", "Motor", "Cambio de aceite", 250, "HR"],
    ["Rutina 250 HR", "Motor", "Filtro de aire", 500, "HR"],
]

EQUIPOS = [
    ["Placa", "Descripcion", "Grupo de mtto", "Rutina", "Medidor 1",
     "Medidor inicial medidor 1", "Fecha inicial medidor 1", "Fecha ultima OT"],
    ["ABC123", "Volqueta", "Pesados", "Rutina 250 HR", "HR", 100, "01/02/2025", "15/01/2025"],
    ["XYZ789", "Retroexcavadora", "Pesados", "Rutina 250 HR", "HR", 2500, "01/02/2025", "15/01/2025"],
]

EMPLEADOS = [
    ["Nombres", "Apellidos", "Identificación", "Cargo"],
    ["Ana", "Pérez", "1001", "Mecanico"],
]


@pytest.mark.asyncio
async def test_import_operate_and_audit():
    store = InMemoryEventStore()
    repository = AggregateRepository(store, snapshots=InMemorySnapshotStore(), snapshot_every=1)

    hr = await ConfiguracionService(repository).crear_tipo_medidor("Horómetro", "HR", usuario_nombre="Admin")
    assert (await ImportadorRutinas(repository).importar(RUTINAS)).creados == 1
    equipos = await ImportadorEquipos(repository).importar(EQUIPOS, usuario_id="u-1", usuario_nombre="Admin")
    assert equipos.creados == 2
    assert len(equipos.advertencias) == 1  # group Pesados was missing
    await ImportadorEmpleados(repository).importar(EMPLEADOS, usuario_nombre="Admin")

    # re-importing converges on the same streams
    again = await ImportadorEquipos(repository).importar(EQUIPOS, usuario_nombre="Admin")
    assert (again.creados, again.actualizados) == (0, 2)
    assert len(await store.stream_ids("equipo")) == 2

    equipo_id = derive_stream_id("abc123")
    equipo = await EquiposService(repository).registrar_medicion(equipo_id, hr, 350, usuario_nombre="Ana")
    assert equipo.lecturas[hr].trabajo_acumulado == Decimal("350")

    ordenes = OrdenesService(repository)
    orden = await ordenes.crear(
        "OT-100", equipo_id, "Preventivo", "Interno",
        rutina_id=derive_stream_id("rutina:Rutina 250 HR"), frecuencia_preventiva=250,
        usuario_nombre="Ana",
    )
    assert [d.descripcion for d in orden.detalles] == ["Motor: Cambio de aceite"]

    # every stream in the log folds cleanly
    for kind, cls in AGGREGATE_KINDS.items():
        for stream_id in await store.stream_ids(kind):
            assert (await repository.load(cls, stream_id)).exists

    log = InMemoryAuditLogStore()
    projection = AuditProjection(store, log, batch_size=4)
    projected = await projection.run_once()
    assert projected == len(await store.read_all())
    assert log.checkpoint == projected

    modulos = {r.modulo for r in log.records}
    assert {MODULO_CONFIGURACION, MODULO_RUTINAS, MODULO_EQUIPOS, MODULO_EMPLEADOS, MODULO_ORDENES} <= modulos
    por_equipo = await log.query(stream_id=equipo_id)
    assert por_equipo[0].tipo_evento == "MedicionRegistrada"
    assert por_equipo[0].usuario_nombre == "Ana"

    assert await projection.rebuild() == projected
    assert len(log.records) == projected

    snapshot_state = await repository.load(Equipo, equipo_id)
    assert snapshot_state.version == 4
