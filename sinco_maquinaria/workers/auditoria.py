from __future__ import annotations

import asyncio
import logging

from sinco_maquinaria.core.config import settings
from sinco_maquinaria.core.database import init_database
from sinco_maquinaria.core.logging import setup_logging
from sinco_maquinaria.infrastructure.event_store import SqlEventStore
from sinco_maquinaria.projections.auditoria import AuditProjection, SqlAuditLogStore
from sinco_maquinaria.workers.base import BaseWorker

logger = logging.getLogger("sinco.workers.auditoria")


class AuditProjectionWorker(BaseWorker):
    """
    Out-of-band audit projector: tails the global event log and appends one
    audit record per event. Lags behind writers by at most one poll interval
    while healthy; a failing iteration is logged and retried on the next poll.
    """

    def __init__(self, projection: AuditProjection, poll_interval_seconds: float | None = None):
        super().__init__("auditoria")
        self.projection = projection
        self.poll_interval_seconds = (
            poll_interval_seconds if poll_interval_seconds is not None else settings.AUDIT_POLL_INTERVAL_SECONDS
        )

    async def run(self):
        logger.info("Audit projection worker started (poll=%ss)", self.poll_interval_seconds)
        while self._running:
            try:
                await self.process_with_retry(self.projection.run_once)
            except Exception:
                logger.exception("Audit projection iteration failed")
            if self._running:
                await asyncio.sleep(self.poll_interval_seconds)


async def main() -> None:
    setup_logging()
    await init_database()
    worker = AuditProjectionWorker(AuditProjection(SqlEventStore(), SqlAuditLogStore()))
    await worker.start()


if __name__ == "__main__":
    asyncio.run(main())
