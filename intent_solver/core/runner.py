"""
Solver Runner - wires poller, strategies, gate and engines together.

For every new intent the poller delivers:
1. Filter: enabled types and auctions, token whitelists, input amount
   range, minimum time to deadline
2. Concurrency: beyond max_concurrent in-flight intents, defer to the
   next tick
3. Strategy: first registered strategy that can handle the intent
4. Gate: expected profit, less the protocol fee, must beat the gas cost
   of the route
5. Route: sealed-bid (open auction) -> Dutch (active auction) -> direct
   fill; TWAP/DCA go to the scheduled monitor, unmet limit orders are
   watched until expiry
6. Record successful fills and update run statistics

Each intent is processed in its own asyncio task. stop() sets the shared
stop event; monitors exit at their next iteration and shutdown() waits for
them.
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Set, Tuple

from intent_solver.core.auction.dutch import DutchAuctionEngine, Requote
from intent_solver.core.auction.sealed_bid import SealedBidEngine
from intent_solver.core.chain.client import ChainClient
from intent_solver.core.chain.ledger import IntentLedger
from intent_solver.core.config import SolverConfig
from intent_solver.core.errors import ChainError, ConfigurationError
from intent_solver.core.gas import OperationKind, estimate_path, format_gas_cost, is_profitable
from intent_solver.core.intent.codec import IntentCodec, TokenDirectory
from intent_solver.core.intent.intent import Intent, IntentType, LimitOrderTerms, TokenInfo
from intent_solver.core.intent.solution import FillResult, Solution, format_amount, protocol_fee
from intent_solver.core.poller import IntentPoller
from intent_solver.core.pricing.oracle import PriceOracle
from intent_solver.core.recorder import FillRecorder
from intent_solver.core.scheduled import ScheduledExecutor
from intent_solver.core.strategy.base import Strategy, StrategySet
from intent_solver.core.strategy.chunked import ChunkedStrategy
from intent_solver.core.strategy.spread import SpreadCaptureStrategy
from intent_solver.core.strategy.surplus import SurplusStrategy
from intent_solver.crypto import addresses_equal
from intent_solver.utils.logger import get_logger

logger = get_logger("runner")


# =============================================================================
# Routes
# =============================================================================

ROUTE_SEALED_BID = "sealed_bid"
ROUTE_DUTCH = "dutch"
ROUTE_DIRECT = "direct"
ROUTE_SCHEDULED = "scheduled"

ROUTE_GAS = {
    ROUTE_SEALED_BID: (OperationKind.SUBMIT_SOLUTION, OperationKind.EXECUTE_SETTLEMENT),
    ROUTE_DUTCH: (OperationKind.SUBMIT_SOLUTION, OperationKind.EXECUTE_SETTLEMENT),
    ROUTE_DIRECT: (OperationKind.EXECUTE_SETTLEMENT,),
    ROUTE_SCHEDULED: (OperationKind.EXECUTE_SETTLEMENT,),
}

FILL_FUNCTIONS = {
    IntentType.SWAP: "solve_swap",
    IntentType.LIMIT_ORDER: "solve_limit_order",
    IntentType.TWAP: "solve_twap_chunk",
    IntentType.DCA: "solve_dca_period",
}

SHUTDOWN_TIMEOUT = 30.0

MISS_NO_SOLUTION = "no_solution"
MISS_UNPROFITABLE = "unprofitable"


@dataclass
class RunnerStats:
    """Counters for one run."""
    started_at: float = field(default_factory=time.time)
    seen: int = 0
    skipped: int = 0
    deferred: int = 0
    processed: int = 0
    no_solution: int = 0
    unprofitable: int = 0
    filled: int = 0
    failed: int = 0
    lost: int = 0
    errors: int = 0

    def summary(self) -> str:
        uptime = int(time.time() - self.started_at)
        return (
            f"uptime {uptime}s | seen {self.seen} | processed {self.processed} | filled {self.filled} | "
            f"lost {self.lost} | failed {self.failed} | skipped {self.skipped} | "
            f"no solution {self.no_solution} | unprofitable {self.unprofitable} | errors {self.errors}"
        )


def default_strategies(
    config: SolverConfig, oracle: PriceOracle, clock: Callable[[], float] = time.time
) -> StrategySet:
    """Surplus for swaps, spread capture for swaps and limit orders, chunked for TWAP/DCA."""
    return StrategySet([
        SurplusStrategy(oracle, min_profit_bps=config.min_profit_bps, clock=clock),
        SpreadCaptureStrategy(oracle, spread_bps=config.spread_bps, max_exposure=config.max_exposure, clock=clock),
        ChunkedStrategy(oracle, spread_bps=config.spread_bps, clock=clock),
    ])


def _token_matches(entry: str, token: TokenInfo) -> bool:
    """Whitelist entries may name a token by address or by symbol."""
    if entry.startswith("0x"):
        return addresses_equal(entry, token.address)
    return entry.strip().upper() == token.symbol.upper()


class SolverRunner:
    """
    Bounded-concurrency solving loop.

    Args:
        config: Validated SolverConfig
        ledger: IntentLedger (or compatible)
        oracle: Price source; built from config if omitted
        strategies: Ordered strategies; default_strategies() if omitted
        recorder: Fill recorder; built from config if omitted
        clock: UNIX time source
    """

    def __init__(
        self,
        config: SolverConfig,
        ledger,
        oracle: Optional[PriceOracle] = None,
        strategies: Optional[StrategySet] = None,
        recorder: Optional[FillRecorder] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config
        self.ledger = ledger
        self._clock = clock
        self.stop_event = asyncio.Event()

        self.oracle = oracle or PriceOracle(
            config.price_feed_url,
            cache_seconds=config.price_cache_seconds,
            spread_bps=config.spread_bps,
        )
        self.strategies = strategies if strategies is not None else default_strategies(config, self.oracle, clock)
        self.recorder = recorder or FillRecorder(config.record_url, solver_address=ledger.address)

        self.poller = IntentPoller(
            ledger,
            poll_interval=config.poll_interval,
            skip_existing_on_startup=config.skip_existing_on_startup,
            stop_event=self.stop_event,
        )
        self.dutch = DutchAuctionEngine(
            ledger, poll_interval=config.auction_poll_interval, stop_event=self.stop_event, clock=clock
        )
        self.sealed = SealedBidEngine(
            ledger,
            poll_interval=config.auction_poll_interval,
            premium_bps=config.sealed_bid_premium_bps,
            stop_event=self.stop_event,
            clock=clock,
        )
        self.scheduled = ScheduledExecutor(
            ledger,
            scheduled_check_interval=config.scheduled_check_interval,
            limit_order_check_interval=config.limit_order_check_interval,
            stop_event=self.stop_event,
            clock=clock,
        )

        self.stats = RunnerStats()
        self.fee_bps: Optional[int] = None
        self._tasks: Dict[int, asyncio.Task] = {}
        self.poller.subscribe(self.handle_intent)

    @classmethod
    def from_config(cls, config: SolverConfig) -> "SolverRunner":
        """Build the runner with a live connection to the node's REST API."""
        client = ChainClient(
            config.rpc_url,
            private_key=config.private_key,
            timeout=config.rpc_timeout,
            finality_timeout=config.finality_timeout,
            gas_price=config.gas_price,
            api_key=config.node_api_key,
        )
        codec = IntentCodec(TokenDirectory(config.tokens))
        ledger = IntentLedger(client, config.contract_address, codec, fee_config_address=config.fee_config_address)
        return cls(config, ledger)

    def on_error(self, handler):
        """Register an error-channel handler (tick, decode and task failures)."""
        return self.poller.on_error(handler)

    @property
    def active_count(self) -> int:
        return len(self._tasks)

    # =========================================================================
    # Intake
    # =========================================================================

    def filter_intent(self, intent: Intent) -> Optional[str]:
        """Reason to skip the intent, or None if it should be processed."""
        config = self.config
        enabled = {
            IntentType.SWAP: config.enable_swap,
            IntentType.LIMIT_ORDER: config.enable_limit_order,
            IntentType.TWAP: config.enable_twap,
            IntentType.DCA: config.enable_dca,
        }
        if not enabled[intent.intent_type]:
            return f"{intent.intent_type.name} disabled"

        sealed = intent.sealed_bid_auction
        if sealed is not None:
            if not sealed.is_open:
                return "sealed-bid auction closed"
            if not config.enable_sealed_bid_auction:
                return "sealed-bid auctions disabled"

        dutch = intent.dutch_auction
        if dutch is not None:
            if not dutch.is_active:
                return "Dutch auction closed"
            if not config.enable_dutch_auction:
                return "Dutch auctions disabled"

        if config.input_token_whitelist and not any(
            _token_matches(entry, intent.input_token) for entry in config.input_token_whitelist
        ):
            return f"input token {intent.input_token.symbol} not whitelisted"
        if config.output_token_whitelist and not any(
            _token_matches(entry, intent.output_token) for entry in config.output_token_whitelist
        ):
            return f"output token {intent.output_token.symbol} not whitelisted"

        amount = intent.input_amount
        if amount < config.min_input_amount or amount > config.max_input_amount:
            return f"input amount {amount} outside [{config.min_input_amount}, {config.max_input_amount}]"

        remaining = intent.seconds_to_deadline(self._clock())
        if remaining < config.min_deadline_seconds:
            return f"deadline in {max(int(remaining), 0)}s"

        return None

    def handle_intent(self, intent: Intent) -> bool:
        """
        Poller callback. Returns False to defer the intent to the next tick.
        """
        if intent.id in self._tasks:
            return True

        reason = self.filter_intent(intent)
        if reason:
            self.stats.skipped += 1
            logger.debug(f"Skipping intent {intent.id}: {reason}")
            return True

        if self.active_count >= self.config.max_concurrent:
            self.stats.deferred += 1
            logger.debug(f"Deferring intent {intent.id}: {self.active_count} intents in flight")
            return False

        self.stats.seen += 1
        logger.info(
            f"New {intent.intent_type.name} intent {intent.id}: "
            f"{format_amount(intent.input_amount, intent.input_token.decimals)} {intent.input_token.symbol} -> "
            f"{intent.output_token.symbol}"
        )
        task = asyncio.create_task(self._run_guarded(intent), name=f"intent-{intent.id}")
        self._tasks[intent.id] = task
        task.add_done_callback(lambda _t, intent_id=intent.id: self._tasks.pop(intent_id, None))
        return True

    async def _run_guarded(self, intent: Intent) -> None:
        try:
            await self.process_intent(intent)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.stats.errors += 1
            logger.error(f"Intent {intent.id}: processing failed: {e}")
            await self.poller.emit_error(e)

    # =========================================================================
    # Processing
    # =========================================================================

    def route_for(self, intent: Intent) -> str:
        sealed = intent.sealed_bid_auction
        if sealed is not None and sealed.is_open and self.config.enable_sealed_bid_auction:
            return ROUTE_SEALED_BID
        dutch = intent.dutch_auction
        if dutch is not None and dutch.is_active and self.config.enable_dutch_auction:
            return ROUTE_DUTCH
        if intent.is_scheduled:
            return ROUTE_SCHEDULED
        return ROUTE_DIRECT

    async def load_fee_bps(self) -> int:
        """Protocol fee, read from the ledger once per run."""
        if self.fee_bps is None:
            self.fee_bps = await self.ledger.get_fee_bps()
            logger.info(f"Protocol fee: {self.fee_bps} bps")
        return self.fee_bps

    def passes_gate(self, intent: Intent, strategy: Strategy, solution: Solution, route: str) -> bool:
        """
        Gas/profitability gate. A False result is a silent skip.

        Profit is what the strategy expects to keep at solution.output_amount,
        less the protocol fee withheld on settlement.
        """
        config = self.config
        if config.gas_price > config.max_gas_price:
            logger.debug(f"Intent {intent.id}: gas price {config.gas_price} above max {config.max_gas_price}")
            return False

        fee = protocol_fee(solution.quoted_output or solution.output_amount, self.fee_bps or 0)
        profit = strategy.estimate_profit(intent, solution) - fee
        gas = estimate_path(ROUTE_GAS[route], config.gas_price)
        if not is_profitable(profit, gas, config.min_profit_margin):
            logger.debug(
                f"Intent {intent.id}: profit {profit} (after fee {fee}) does not cover gas "
                f"{format_gas_cost(gas.total_cost)}"
            )
            return False
        return True

    def _count_miss(self, reason: str) -> None:
        if reason == MISS_UNPROFITABLE:
            self.stats.unprofitable += 1
        else:
            self.stats.no_solution += 1

    async def _solve(
        self,
        intent: Intent,
        strategy: Strategy,
        route: str,
        on_miss: Optional[Callable[[str], None]] = None,
    ) -> Optional[Solution]:
        """
        Solution that passed the gate, or None.

        Sealed-bid solutions are gated with the bid premium applied first;
        if the premium eats the margin the plain solution is bid instead.
        """
        on_miss = on_miss or self._count_miss
        solution = await strategy.calculate_solution(intent)
        if solution is None:
            on_miss(MISS_NO_SOLUTION)
            logger.debug(f"Intent {intent.id}: no viable solution from {strategy.name}")
            return None

        if route == ROUTE_SEALED_BID:
            raised = self.sealed.with_premium(solution)
            if raised is not solution and self.passes_gate(intent, strategy, raised, route):
                return raised
            if raised is not solution:
                logger.debug(f"Intent {intent.id}: bidding without premium")

        if not self.passes_gate(intent, strategy, solution, route):
            on_miss(MISS_UNPROFITABLE)
            strategy.on_fill_result(intent, solution, False)
            return None
        return solution

    async def fill_direct(self, intent: Intent, solution: Solution) -> Optional[FillResult]:
        """
        Submit the type-specific solve_* call for one fill.

        The ledger is asked first whether this solver may fill the intent
        and what the fill must deliver at least. None if it may not.
        """
        function = FILL_FUNCTIONS[intent.intent_type]
        fill_input = solution.input_amount or intent.fill_amount
        try:
            if not await self.ledger.can_fill(intent.id):
                logger.info(f"Intent {intent.id}: not fillable by this solver any more")
                return None
            minimum = await self.ledger.calculate_min_output_for_fill(intent.id, fill_input)
            if solution.output_amount < minimum:
                logger.info(f"Intent {intent.id}: output {solution.output_amount} below ledger minimum {minimum}")
                return FillResult.failed(f"output below ledger minimum {minimum}", operation=function)
            tx_hash = await getattr(self.ledger, function)(intent.id, solution.output_amount)
        except ChainError as e:
            logger.info(f"Intent {intent.id}: {function} failed: {e}")
            return FillResult.failed(str(e), operation=function)
        return FillResult.ok(tx_hash, operation=function, output_amount=solution.output_amount)

    def _dutch_limit(self, solution: Solution) -> int:
        return solution.output_amount * self.config.dutch_max_price_percent // 100

    async def _execute(
        self, intent: Intent, route: str, solution: Solution, requote: Optional[Requote] = None
    ) -> Optional[FillResult]:
        if route == ROUTE_SEALED_BID:
            max_wait = None
            if intent.deadline:
                max_wait = max(intent.deadline - self._clock(), 0.0)
            return await self.sealed.participate(intent, solution, max_wait=max_wait)
        if route == ROUTE_DUTCH:
            return await self.dutch.participate(
                intent.id,
                self._dutch_limit(solution),
                deadline=intent.deadline or None,
                valid_until=solution.expires_at or None,
                requote=requote,
            )
        return await self.fill_direct(intent, solution)

    def _finish(self, intent: Intent, strategy: Strategy, solution: Solution, result: Optional[FillResult]) -> None:
        if result is None:
            self.stats.lost += 1
            strategy.on_fill_result(intent, solution, False)
            return

        strategy.on_fill_result(intent, solution, result.success)
        if result.success:
            self.stats.filled += 1
            logger.info(f"✓ Intent {intent.id} filled via {result.operation}: {result.tx_hash}")
            if result.tx_hash:
                self.recorder.record(intent.id, result.tx_hash, result.operation)
        else:
            self.stats.failed += 1

    async def _submit(self, intent: Intent, strategy: Strategy, solution: Solution, route: str) -> Optional[FillResult]:
        if self.config.dry_run:
            logger.info(
                f"[dry-run] Intent {intent.id}: would fill via {route} with output "
                f"{format_amount(solution.output_amount, intent.output_token.decimals)} "
                f"{intent.output_token.symbol} (strategy {strategy.name})"
            )
            strategy.on_fill_result(intent, solution, False)
            return None

        current = solution

        async def requote() -> Optional[Tuple[int, Optional[float]]]:
            nonlocal current
            fresh = await self._solve(intent, strategy, route)
            if fresh is None:
                return None
            strategy.on_fill_result(intent, current, False)
            current = fresh
            return self._dutch_limit(fresh), fresh.expires_at or None

        try:
            result = await self._execute(intent, route, solution, requote)
        except BaseException:
            strategy.on_fill_result(intent, current, False)
            raise
        self._finish(intent, strategy, current, result)
        return result

    async def process_intent(self, intent: Intent) -> Optional[FillResult]:
        """
        Solve and fill one intent.

        Returns:
            The final FillResult, or None if skipped, not won or dry run
        """
        self.stats.processed += 1
        strategy = self.strategies.select(intent)
        if strategy is None:
            self.stats.no_solution += 1
            logger.debug(f"Intent {intent.id}: no strategy handles {intent.intent_type.name}")
            return None

        await self.load_fee_bps()
        route = self.route_for(intent)
        watched = route == ROUTE_SCHEDULED or (route == ROUTE_DIRECT and isinstance(intent.terms, LimitOrderTerms))

        # Watched intents are re-solved on every check; a miss counts once per intent
        misses: Set[str] = set()
        attempted = False

        async def solve(current: Intent) -> Optional[Solution]:
            return await self._solve(current, strategy, route, on_miss=misses.add if watched else None)

        async def fill(current: Intent, solution: Solution) -> Optional[FillResult]:
            nonlocal attempted
            attempted = True
            return await self._submit(current, strategy, solution, route)

        if route == ROUTE_SCHEDULED:
            if not self.config.monitor_scheduled_intents:
                logger.debug(f"Intent {intent.id}: scheduled monitoring disabled")
                return None
            results: List[FillResult] = await self.scheduled.run_scheduled(intent, solve, fill)
            result = results[-1] if results else None
        elif watched:
            result = await self.scheduled.watch_limit_order(intent, solve, fill)
        else:
            solution = await solve(intent)
            if solution is None:
                return None
            return await fill(intent, solution)

        if not attempted:
            for reason in sorted(misses):
                self._count_miss(reason)
        return result

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def check_registration(self) -> None:
        """
        Verify the solver is registered on the ledger.

        Raises:
            ConfigurationError: if the solver is not registered
        """
        address = self.ledger.address
        if not address:
            logger.warning("No signing key configured; skipping registration check")
            return
        info = await self.ledger.get_solver_info(address)
        if info is None:
            raise ConfigurationError(f"Solver {address} is not registered with the solver registry")
        if not info.get("is_active", True):
            logger.warning(f"Solver {address} is registered but inactive")
        else:
            logger.info(f"Solver {address} registered (stake {info.get('stake', '?')})")

    async def run(self, check_registration: bool = True) -> None:
        """Start polling until stop() is called, then shut down gracefully."""
        self.config.require_signer()
        if check_registration and not self.config.dry_run:
            await self.check_registration()
        await self.load_fee_bps()

        logger.info("Starting solver" + (" (dry run)" if self.config.dry_run else ""))
        for line in self.config.to_summary().splitlines():
            logger.info(line)

        try:
            await self.poller.run()
        finally:
            await self.shutdown()

    def stop(self) -> None:
        logger.info("Stop requested")
        self.stop_event.set()

    async def shutdown(self, timeout: float = SHUTDOWN_TIMEOUT) -> None:
        """Wait for in-flight intents to observe the stop signal, then drain the recorder."""
        self.stop_event.set()
        tasks = list(self._tasks.values())
        if tasks:
            logger.info(f"Waiting for {len(tasks)} in-flight intents")
            _, pending = await asyncio.wait(tasks, timeout=timeout)
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
                logger.warning(f"Cancelled {len(pending)} intents after {timeout}s")
        await self.recorder.drain()
        logger.info(f"Solver stopped: {self.stats.summary()}")
