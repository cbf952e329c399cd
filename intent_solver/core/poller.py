"""
Intent Poller - delivers each new pending intent to subscribers once.

Each tick fetches the full pending set from the ledger and hands every id
not yet in `last_seen` to the subscribers. `last_seen` lives for the whole
process; its growth is bounded by the ledger's intent count.

Error channel:
- Failures during a tick (RPC errors, a subscriber raising) go to the
  handlers registered with on_error() and never stop the loop.
- Records that fail to decode are skipped individually and reported the
  same way.

Backpressure: a subscriber that returns False defers the intent; it stays
out of `last_seen` and is delivered again on the next tick.
"""

import asyncio
import inspect
from typing import Any, Awaitable, Callable, List, Optional, Set, Union

from intent_solver.core.intent.intent import Intent
from intent_solver.utils.logger import get_logger
from intent_solver.utils.timing import pause

logger = get_logger("poller")

IntentCallback = Callable[[Intent], Union[Optional[bool], Awaitable[Optional[bool]]]]
ErrorHandler = Callable[[Exception], Any]


class Subscription:
    """Handle returned by subscribe()/on_error(); call unsubscribe() to detach."""

    def __init__(self, registry: List[Any], callback: Any):
        self._registry = registry
        self.callback = callback

    @property
    def active(self) -> bool:
        return self.callback in self._registry

    def unsubscribe(self) -> None:
        if self.callback in self._registry:
            self._registry.remove(self.callback)


class IntentPoller:
    """
    Pull-based intent discovery.

    Args:
        ledger: Object exposing get_pending_intents(on_error)
        poll_interval: Seconds between ticks
        skip_existing_on_startup: Treat intents pending at startup as seen
        stop_event: Shared stop signal; a private one is created if omitted
    """

    def __init__(
        self,
        ledger,
        poll_interval: float = 5.0,
        skip_existing_on_startup: bool = False,
        stop_event: Optional[asyncio.Event] = None,
    ):
        self.ledger = ledger
        self.poll_interval = poll_interval
        self.skip_existing_on_startup = skip_existing_on_startup
        self.last_seen: Set[int] = set()
        self._subscribers: List[IntentCallback] = []
        self._error_handlers: List[ErrorHandler] = []
        self._stop_event = stop_event
        self._primed = False
        self.ticks = 0

    # =========================================================================
    # Registration
    # =========================================================================

    def subscribe(self, callback: IntentCallback) -> Subscription:
        self._subscribers.append(callback)
        return Subscription(self._subscribers, callback)

    def on_error(self, handler: ErrorHandler) -> Subscription:
        self._error_handlers.append(handler)
        return Subscription(self._error_handlers, handler)

    async def emit_error(self, error: Exception) -> None:
        if not self._error_handlers:
            logger.error(f"Poller error: {error}")
            return
        for handler in list(self._error_handlers):
            try:
                result = handler(error)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Error handler failed: {e}")

    # =========================================================================
    # Ticks
    # =========================================================================

    async def _fetch(self) -> List[Intent]:
        decode_errors: List[Exception] = []
        intents = await self.ledger.get_pending_intents(on_error=decode_errors.append)
        for error in decode_errors:
            await self.emit_error(error)
        return intents

    async def prime(self) -> int:
        """Mark every currently pending intent as seen. Returns how many."""
        intents = await self._fetch()
        for intent in intents:
            self.last_seen.add(intent.id)
        self._primed = True
        logger.info(f"Skipping {len(intents)} existing intents")
        return len(intents)

    async def _deliver(self, intent: Intent) -> bool:
        """Run all subscribers; False if any of them deferred the intent."""
        accepted = True
        for callback in list(self._subscribers):
            try:
                result = callback(intent)
                if inspect.isawaitable(result):
                    result = await result
            except Exception as e:
                logger.error(f"Subscriber failed on intent {intent.id}: {e}")
                await self.emit_error(e)
                continue
            if result is False:
                accepted = False
        return accepted

    async def tick(self) -> int:
        """
        One poll. Returns the number of intents newly marked as seen.

        Exceptions from the ledger propagate to the caller; run() reports
        them to the error channel.
        """
        self.ticks += 1
        delivered = 0
        for intent in await self._fetch():
            if intent.id in self.last_seen:
                continue
            if await self._deliver(intent):
                self.last_seen.add(intent.id)
                delivered += 1
            else:
                logger.debug(f"Intent {intent.id} deferred to next tick")
        return delivered

    # =========================================================================
    # Loop
    # =========================================================================

    async def run(self) -> None:
        """Poll until stop() is called. In-flight ticks always finish."""
        if self._stop_event is None:
            self._stop_event = asyncio.Event()

        logger.info(f"Polling for intents every {self.poll_interval}s")
        while not self._stop_event.is_set():
            try:
                if self.skip_existing_on_startup and not self._primed:
                    await self.prime()
                else:
                    await self.tick()
            except Exception as e:
                await self.emit_error(e)

            if await pause(self._stop_event, self.poll_interval):
                break

        logger.info("Intent poller stopped")

    def stop(self) -> None:
        if self._stop_event is None:
            self._stop_event = asyncio.Event()
        self._stop_event.set()
