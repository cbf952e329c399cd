"""
Intent Solver CLI - Command Line Interface for the solver agent

Main entry point for all CLI commands.
"""

import asyncio
import sys
from collections import Counter

import click
from dotenv import load_dotenv

from intent_solver import __version__
from intent_solver.utils.logger import setup_logging


@click.group()
@click.option("--log-level", default=None, help="debug, info, warning or error (default: LOG_LEVEL or info)")
@click.option("--env-file", default=None, type=click.Path(dir_okay=False), help=".env file to load")
@click.option("--no-color", is_flag=True, help="Disable colored log output")
@click.version_option(version=__version__)
@click.pass_context
def cli(ctx, log_level, env_file, no_color):
    """Intent Solver - fills user trade intents on the ledger for profit"""
    import os

    if env_file:
        load_dotenv(env_file, override=False)

    level = (log_level or os.environ.get("LOG_LEVEL") or "info").upper()
    if level == "WARN":
        level = "WARNING"
    setup_logging(level=level, log_dir=os.environ.get("LOG_DIR") or None, colored=not no_color)

    ctx.ensure_object(dict)
    ctx.obj["log_level"] = log_level


def _load(ctx, **overrides):
    """Load config or exit with the validation messages."""
    from intent_solver.core.config import load_config
    from intent_solver.core.errors import ConfigurationError

    if ctx.obj.get("log_level"):
        overrides.setdefault("log_level", ctx.obj["log_level"])
    try:
        return load_config(**overrides)
    except ConfigurationError as e:
        click.echo(f"✗ {e}", err=True)
        sys.exit(1)


# =============================================================================
# Solver Commands
# =============================================================================


@cli.command("run")
@click.option("--rpc-url", default=None, help="Node REST API base URL, ending in /v1 (RPC_URL)")
@click.option("--contract", "contract_address", default=None, help="Intent ledger address (CONTRACT_ADDRESS)")
@click.option("--poll-interval", type=float, default=None, help="Seconds between polls")
@click.option("--max-concurrent", type=int, default=None, help="Max intents in flight")
@click.option("--min-profit-bps", type=int, default=None, help="Minimum surplus for swaps")
@click.option("--spread-bps", type=int, default=None, help="Spread kept by the solver")
@click.option("--max-gas-price", type=int, default=None, help="Skip fills above this gas price")
@click.option("--min-deadline", "min_deadline_seconds", type=int, default=None,
              help="Skip intents expiring sooner than this")
@click.option("--skip-existing/--no-skip-existing", "skip_existing_on_startup", default=None,
              help="Ignore intents pending at startup")
@click.option("--dry-run", is_flag=True, default=None, help="Solve but never submit")
@click.option("--skip-registration-check", is_flag=True, help="Start even if not registered")
@click.pass_context
def run(ctx, skip_registration_check, **options):
    """Run the solver until interrupted"""
    from intent_solver.core.config import validate_config
    from intent_solver.core.errors import ConfigurationError, SolverError
    from intent_solver.core.runner import SolverRunner

    config = _load(ctx, **options)
    valid, error = validate_config(config)
    if not valid:
        click.echo(f"✗ {error}", err=True)
        sys.exit(1)
    runner = SolverRunner.from_config(config)

    click.echo("=" * 60)
    click.echo("  INTENT SOLVER" + ("  [DRY RUN]" if config.dry_run else ""))
    click.echo("=" * 60)
    if runner.ledger.address:
        click.echo(f"  Solver: {runner.ledger.address}")

    async def run_solver():
        loop = asyncio.get_running_loop()
        try:
            import signal
            loop.add_signal_handler(signal.SIGTERM, runner.stop)
        except (NotImplementedError, RuntimeError):
            pass
        await runner.run(check_registration=not skip_registration_check)

    try:
        asyncio.run(run_solver())
    except KeyboardInterrupt:
        click.echo("\n🛑 Solver stopped")
    except ConfigurationError as e:
        click.echo(f"✗ {e}", err=True)
        sys.exit(1)
    except SolverError as e:
        click.echo(f"✗ Solver error: {e}", err=True)
        sys.exit(1)

    click.echo(f"📊 {runner.stats.summary()}")


@cli.command("status")
@click.pass_context
def status(ctx):
    """Show registration and pending intents"""
    from intent_solver.core.errors import ChainError
    from intent_solver.core.runner import SolverRunner

    config = _load(ctx, dry_run=True)
    runner = SolverRunner.from_config(config)
    ledger = runner.ledger

    async def fetch():
        info = await ledger.get_solver_info() if ledger.address else None
        count = await ledger.total_intent_count()
        pending = await ledger.get_pending_intents()
        return info, count, pending

    try:
        info, count, pending = asyncio.run(fetch())
    except ChainError as e:
        click.echo(f"✗ Ledger unreachable: {e}", err=True)
        sys.exit(1)

    click.echo(config.to_summary())
    click.echo()
    if ledger.address:
        if info is None:
            click.echo(f"✗ Solver {ledger.address} is not registered")
        else:
            state = "active" if info.get("is_active", True) else "inactive"
            click.echo(f"✓ Solver {ledger.address} registered ({state})")
            for key, value in sorted(info.items()):
                click.echo(f"    {key}: {value}")
    else:
        click.echo("  No signing key configured")

    click.echo(f"\nIntents on ledger: {count}")
    click.echo(f"Pending: {len(pending)}")
    by_type = Counter(intent.intent_type.name for intent in pending)
    for name, n in sorted(by_type.items()):
        click.echo(f"  {name:<12} {n}")
    auctions = sum(1 for intent in pending if intent.auction is not None)
    if auctions:
        click.echo(f"  with auction {auctions}")


# =============================================================================
# Pricing Commands
# =============================================================================


@cli.command("quote")
@click.argument("token_in")
@click.argument("token_out")
@click.argument("amount")
@click.option("--decimals-in", type=int, default=None, help="Input token decimals (default: from TOKENS, else 8)")
@click.option("--decimals-out", type=int, default=None, help="Output token decimals (default: from TOKENS, else 8)")
@click.option("--spread-bps", type=int, default=0, help="Spread to deduct")
@click.option("--feed-url", default=None, help="Price feed URL (PRICE_FEED_URL)")
def quote(token_in, token_out, amount, decimals_in, decimals_out, spread_bps, feed_url):
    """Quote AMOUNT of TOKEN_IN in TOKEN_OUT using the price feed"""
    import json
    import os
    from intent_solver.core.config import DEFAULT_PRICE_FEED_URL, DEFAULT_TOKENS
    from intent_solver.core.intent.codec import DEFAULT_DECIMALS, TokenDirectory
    from intent_solver.core.intent.solution import format_amount, parse_amount
    from intent_solver.core.pricing.oracle import PriceOracle

    try:
        tokens = TokenDirectory(json.loads(os.environ["TOKENS"]) if os.environ.get("TOKENS") else DEFAULT_TOKENS)
    except (ValueError, KeyError, TypeError, AttributeError) as e:
        click.echo(f"✗ TOKENS is not a valid token directory: {e}", err=True)
        sys.exit(1)

    def decimals_for(symbol, given):
        if given is not None:
            return given
        known = tokens.by_symbol(symbol)
        return known.decimals if known else DEFAULT_DECIMALS

    decimals_in = decimals_for(token_in, decimals_in)
    decimals_out = decimals_for(token_out, decimals_out)

    oracle = PriceOracle(feed_url or os.environ.get("PRICE_FEED_URL") or DEFAULT_PRICE_FEED_URL)
    try:
        amount_in = parse_amount(amount, decimals_in)
    except ValueError as e:
        click.echo(f"✗ {e}", err=True)
        sys.exit(1)

    async def fetch():
        rate = await oracle.exchange_rate(token_in, token_out)
        output = await oracle.quote(token_in, token_out, amount_in, decimals_in, decimals_out, spread_bps)
        return rate, output

    rate, output = asyncio.run(fetch())
    if output == 0:
        click.echo(f"✗ No price available for {token_in}/{token_out}")
        sys.exit(1)

    click.echo(f"1 {token_in.upper()} = {rate:.8f} {token_out.upper()}")
    click.echo(f"{format_amount(amount_in, decimals_in)} {token_in.upper()} -> "
               f"{format_amount(output, decimals_out)} {token_out.upper()}"
               + (f" (after {spread_bps} bps spread)" if spread_bps else ""))


@cli.command("dutch-curve")
@click.option("--start-price", type=int, required=True, help="Price at auction start")
@click.option("--end-price", type=int, required=True, help="Floor price")
@click.option("--duration", type=int, required=True, help="Decay length in seconds")
@click.option("--steps", type=int, default=10, help="Number of samples")
@click.option("--target", type=int, default=None, help="Also show when this price is reached")
def dutch_curve(start_price, end_price, duration, steps, target):
    """Print the price schedule of a Dutch auction"""
    from intent_solver.core.auction.dutch import price_schedule, time_to_price
    from intent_solver.core.intent.intent import DutchAuction

    if duration <= 0 or end_price > start_price:
        click.echo("✗ Need duration > 0 and end price <= start price", err=True)
        sys.exit(1)

    auction = DutchAuction(start_time=0, start_price=start_price, end_price=end_price, duration=duration)
    click.echo(f"{'elapsed':>10}  {'price':>20}")
    for elapsed, price in price_schedule(auction, steps):
        click.echo(f"{elapsed:>9}s  {price:>20}")

    if target is not None:
        seconds = time_to_price(auction, target)
        if seconds is None:
            click.echo(f"\nPrice {target} is never reached (floor {end_price})")
        else:
            click.echo(f"\nPrice {target} reached after {seconds}s")


# =============================================================================
# Key Commands
# =============================================================================


@cli.command("keygen")
def keygen():
    """Generate a solver signing key"""
    from intent_solver.crypto import generate_keypair

    kp = generate_keypair()
    click.echo("✓ Key generated")
    click.echo(f"  Address:    {kp.address}")
    click.echo(f"  Public key: {kp.public_key_hex}")
    click.echo(f"  SOLVER_PRIVATE_KEY={kp.private_key_hex}")
    click.echo(f"  ⚠️  Keep this key secret - it controls the solver's funds!")


if __name__ == "__main__":
    cli()
