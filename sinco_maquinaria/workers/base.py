import asyncio
import logging
from typing import Any, Callable

logger = logging.getLogger("sinco.workers")


class BaseWorker:
    def __init__(self, name: str):
        self.name = name
        self._running = True

    async def start(self):
        logger.info(f"Worker {self.name} started")
        await self.run()

    async def run(self):
        raise NotImplementedError

    def _shutdown(self):
        logger.info(f"Worker {self.name} shutting down...")
        self._running = False

    async def process_with_retry(self, func: Callable, *args: Any, max_retries: int = 3, base_delay: float = 1.0):
        """Await func(*args), retrying with exponential backoff. The last failure propagates."""
        for attempt in range(max_retries):
            try:
                return await func(*args)
            except Exception as e:
                if attempt == max_retries - 1:
                    logger.error(f"Worker {self.name} task failed permanently after {max_retries} attempts.")
                    raise
                wait = base_delay * 2 ** attempt
                logger.warning(f"Retry {attempt + 1}/{max_retries} for {getattr(func, '__name__', func)}: {e}")
                await asyncio.sleep(wait)
