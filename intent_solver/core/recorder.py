"""
Fill recorder - posts successful fills to an external log endpoint.

Fire-and-forget: the POST runs in its own task, and a failure is only
logged. A fill is never delayed or rolled back because recording failed.
"""

import asyncio
from typing import Optional, Set

import aiohttp

from intent_solver.utils.logger import get_logger

logger = get_logger("recorder")


class FillRecorder:
    def __init__(self, url: Optional[str], solver_address: Optional[str] = None, timeout: float = 10.0):
        self.url = url
        self.solver_address = solver_address
        self.timeout = timeout
        self._tasks: Set[asyncio.Task] = set()
        self.recorded = 0
        self.failed = 0

    @property
    def enabled(self) -> bool:
        return bool(self.url)

    def record(self, intent_id: int, tx_hash: str, operation: str) -> Optional[asyncio.Task]:
        """Schedule a POST for one fill. Returns the task, or None when disabled."""
        if not self.enabled:
            return None
        task = asyncio.create_task(self._post({
            "intent_id": intent_id,
            "tx_hash": tx_hash,
            "solver": self.solver_address,
            "operation": operation,
        }))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _post(self, payload: dict) -> bool:
        try:
            timeout_obj = aiohttp.ClientTimeout(total=self.timeout)
            async with aiohttp.ClientSession(timeout=timeout_obj) as session:
                async with session.request("POST", self.url, json=payload) as resp:
                    status = resp.status
                    text = await resp.text() if status >= 400 else ""
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self.failed += 1
            logger.warning(f"Could not record fill for intent {payload['intent_id']}: {e}")
            return False

        if status >= 400:
            self.failed += 1
            logger.warning(f"Could not record fill for intent {payload['intent_id']}: HTTP {status} {text[:200]}")
            return False

        self.recorded += 1
        logger.debug(f"Recorded fill for intent {payload['intent_id']}")
        return True

    async def drain(self) -> None:
        """Wait for in-flight POSTs (used at shutdown)."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
