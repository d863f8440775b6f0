from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from sinco_maquinaria.workers.auditoria import AuditProjectionWorker
from sinco_maquinaria.workers.base import BaseWorker


class TestProcessWithRetry:
    @pytest.mark.asyncio
    async def test_returns_after_transient_failures(self):
        worker = BaseWorker("test")
        func = AsyncMock(side_effect=[ConnectionError("down"), ConnectionError("down"), 5])

        with patch("sinco_maquinaria.workers.base.asyncio.sleep", new_callable=AsyncMock) as sleep:
            assert await worker.process_with_retry(func, "arg", base_delay=0.5) == 5

        func.assert_awaited_with("arg")
        assert [c.args[0] for c in sleep.await_args_list] == [0.5, 1.0]

    @pytest.mark.asyncio
    async def test_last_failure_propagates(self):
        worker = BaseWorker("test")
        func = AsyncMock(side_effect=RuntimeError("boom"))

        with patch("sinco_maquinaria.workers.base.asyncio.sleep", new_callable=AsyncMock):
            with pytest.raises(RuntimeError):
                await worker.process_with_retry(func, max_retries=2)
        assert func.await_count == 2


class TestAuditProjectionWorker:
    @pytest.mark.asyncio
    async def test_polls_until_shut_down(self):
        projection = MagicMock()
        worker = AuditProjectionWorker(projection, poll_interval_seconds=0)
        calls = []

        async def run_once():
            calls.append(1)
            if len(calls) == 2:
                worker._shutdown()
            return 0

        projection.run_once = run_once
        with patch("sinco_maquinaria.workers.auditoria.asyncio.sleep", new_callable=AsyncMock) as sleep:
            await worker.start()

        assert len(calls) == 2
        assert sleep.await_count == 1

    @pytest.mark.asyncio
    async def test_failed_iteration_does_not_stop_the_worker(self):
        projection = MagicMock()
        worker = AuditProjectionWorker(projection, poll_interval_seconds=0)
        worker.process_with_retry = AsyncMock(side_effect=[RuntimeError("db down"), None])

        async def stop_after_second_poll(_):
            if worker.process_with_retry.await_count == 2:
                worker._shutdown()

        with patch("sinco_maquinaria.workers.auditoria.asyncio.sleep", side_effect=stop_after_second_poll):
            await worker.run()

        assert worker.process_with_retry.await_count == 2
