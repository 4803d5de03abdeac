"""
UPA CLI - Command Line Interface for the Uniform Price Auction server

Main entry point for all CLI commands.
"""

import json
import click
from pathlib import Path
from typing import Optional

from upa.utils.logger import setup_logging


def _open_storage(ctx):
    """StorageManager for the configured state file, seeded with the default catalog."""
    from upa.core.catalog import default_state
    from upa.core.storage import StorageManager

    config = ctx.obj["config"]
    return StorageManager(config.state_file, default_factory=lambda: default_state(config))


def _fail(message: str) -> None:
    click.echo(f"❌ {message}")
    raise SystemExit(1)


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.option("--state-file", default=None, help="Auction state file (JSON)")
@click.option("--env-file", default=None, help="dotenv file with UPA_* settings")
@click.option("--log-file", is_flag=True, help="Also write logs to <log dir>/upa.log")
@click.version_option(version="0.1.0")
@click.pass_context
def cli(ctx, debug, state_file, env_file, log_file):
    """Uniform Price Auction - timed multi-unit sealed-bid auction server"""
    import logging
    from upa.core.config import load_config

    level = logging.DEBUG if debug else logging.INFO
    state_path: Optional[Path] = Path(state_file).expanduser() if state_file else None

    try:
        config = load_config(env_file, state_file=state_path)
    except ValueError as e:
        raise click.BadParameter(str(e))

    setup_logging(level=level, log_dir=config.log_dir, log_to_file=log_file)

    ctx.ensure_object(dict)
    ctx.obj["config"] = config


# =============================================================================
# Server Commands
# =============================================================================


@cli.command("serve")
@click.option("--host", default=None, help="Bind address")
@click.option("--port", default=None, type=int, help="TCP port")
@click.option("--duration", default=None, type=int, help="Auction duration in seconds")
@click.pass_context
def serve(ctx, host, port, duration):
    """Run the auction server"""
    import asyncio
    from dataclasses import replace
    from upa.core.auction import AuctionLifecycle
    from upa.core.auth import Authenticator
    from upa.core.errors import AuctionError
    from upa.network import AuctionServer

    config = ctx.obj["config"]
    overrides = {k: v for k, v in (("host", host), ("port", port)) if v is not None}
    config = replace(config, **overrides)

    storage = _open_storage(ctx)
    state = storage.load()
    lifecycle = AuctionLifecycle(state, storage=storage)
    if duration is not None:
        try:
            lifecycle.set_duration(duration)
        except AuctionError as e:
            storage.close()
            raise click.BadParameter(e.message, param_hint="--duration")

    authenticator = Authenticator(
        state,
        admin_passcode=config.admin_passcode,
        token_secret=config.token_secret,
        token_ttl_seconds=config.token_ttl_seconds,
    )

    async def run_server():
        server = AuctionServer(config, lifecycle, authenticator)
        await server.start()
        click.echo(f"🏛️  Auction server running on {config.host}:{server.port}. Press Ctrl+C to stop.")
        click.echo(f"   Phase: {lifecycle.phase.value}, duration: {state.run.duration_seconds}s")
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            pass
        finally:
            await server.stop()

    try:
        asyncio.run(run_server())
    except KeyboardInterrupt:
        click.echo("\nServer stopped.")
    finally:
        storage.close()


@cli.command("token")
@click.option("--passcode", prompt=True, hide_input=True, help="Admin passcode")
@click.pass_context
def token(ctx, passcode):
    """Print an admin token for the configured token secret"""
    from upa.core.auth import Authenticator
    from upa.core.errors import AuthenticationError
    from upa.core.models import AuctionState

    config = ctx.obj["config"]
    if not config.token_secret:
        _fail("UPA_TOKEN_SECRET is not set; tokens would not survive a server restart")

    authenticator = Authenticator(
        AuctionState(),
        admin_passcode=config.admin_passcode,
        token_secret=config.token_secret,
        token_ttl_seconds=config.token_ttl_seconds,
    )
    try:
        click.echo(authenticator.login_admin(passcode))
    except AuthenticationError as e:
        _fail(e.message)


# =============================================================================
# Demo
# =============================================================================


@cli.command("demo")
@click.option("--quantity", default=2, type=int, help="Units offered on the demo asset")
def demo(quantity):
    """Run a scripted in-process auction"""
    from upa.core.auction import AuctionLifecycle
    from upa.core.catalog import CatalogAdmin
    from upa.core.events import AUCTION_RESOLVED, BIDS_UPDATED, EventLog
    from upa.core.models import AuctionState

    click.echo("=" * 60)
    click.echo("  UNIFORM PRICE AUCTION - DEMO")
    click.echo("=" * 60)
    click.echo()

    # Setup
    click.echo("📦 Setting up catalog...")
    state = AuctionState()
    catalog = CatalogAdmin(state)
    catalog.add_asset("GPU", "GPU Cluster Hour", min_bid=100, quantity=quantity, category="Tech")
    catalog.add_team("A", "Team A", "team-a", "team-a", starting_budget=1_000)
    catalog.add_team("B", "Team B", "team-b", "team-b", starting_budget=1_000)
    catalog.add_team("C", "Team C", "team-c", "team-c", starting_budget=1_000)
    catalog.add_team("D", "Team D", "team-d", "team-d", starting_budget=200)
    catalog.add_asset("DB", "Managed Database", min_bid=100, quantity=1, category="Tech")
    click.echo(f"  ✓ {len(state.assets)} assets, {len(state.teams)} teams")
    click.echo()

    events = EventLog()
    lifecycle = AuctionLifecycle(state, events=events)

    click.echo("🚀 Starting auction...")
    lifecycle.start()
    click.echo(f"  ✓ Running for {state.run.duration_seconds}s")
    click.echo()

    click.echo("💸 Placing sealed bids...")
    bids = [
        ("A", "GPU", 150), ("B", "GPU", 120), ("C", "GPU", 200),
        ("D", "GPU", 160), ("D", "DB", 150), ("B", "DB", 110),
    ]
    for team_id, asset_id, amount in bids:
        accepted, reason = lifecycle.submit_bid(team_id, asset_id, amount)
        mark = "✓" if accepted else "✗"
        suffix = "" if accepted else f" ({reason})"
        click.echo(f"  {mark} {team_id} bids {amount:,} on {asset_id}{suffix}")
    click.echo(f"  Admin feed: {len(events.named(BIDS_UPDATED))} bids_updated events")
    click.echo()

    click.echo("⚖️  Stopping and resolving...")
    report = lifecycle.force_stop()
    for asset in state.assets.values():
        winners = ", ".join(asset.winners) or "-"
        click.echo(f"  {asset.asset_id}: {asset.outcome.value}, price {asset.clearing_price:,}, winners [{winners}]")
    if report.voided:
        click.echo(f"  ⚠️  Voided for exceeding budget: {', '.join(report.voided)}")
    click.echo()

    click.echo("📊 Team budgets:")
    for team in state.teams.values():
        won = ", ".join(f"{w.name} @ {w.cost:,}" for w in team.assets_won) or "nothing"
        click.echo(f"  {team.team_id}: {team.budget:,} / {team.starting_budget:,} VC, won {won}")
    click.echo()

    entry = lifecycle.reset()
    click.echo(f"🗂️  Archived as game #{entry.game_id}; "
               f"{len(events.named(AUCTION_RESOLVED))} auction_resolved broadcasts sent")
    click.echo()
    click.echo("✅ Demo complete!")


# =============================================================================
# State Commands
# =============================================================================


@cli.group()
def state():
    """Saved state inspection"""
    pass


@state.command("show")
@click.option("--bids", is_flag=True, help="Include sealed bids")
@click.pass_context
def state_show(ctx, bids):
    """Show the saved auction state"""
    storage = _open_storage(ctx)
    auction = storage.load()
    run = auction.run

    click.echo("Auction State")
    click.echo("-" * 40)
    click.echo(f"  Phase: {run.phase.value}")
    click.echo(f"  Duration: {run.duration_seconds}s")
    if run.end_time:
        click.echo(f"  Ends at: {run.end_time:.0f}")
    click.echo(f"  Games played: {len(auction.history)}")
    click.echo("")

    click.echo("  Assets:")
    for asset in auction.assets.values():
        line = f"    {asset.asset_id}: {asset.name} (min {asset.min_bid:,}, qty {asset.quantity})"
        if asset.is_resolved:
            line += f" -> {asset.outcome.value} @ {asset.clearing_price:,} {asset.winners}"
        click.echo(line)
        if bids:
            for team_id, amount in asset.bid_amounts().items():
                click.echo(f"      {team_id}: {amount:,}")

    click.echo("  Teams:")
    for team in auction.teams.values():
        click.echo(f"    {team.team_id}: {team.name} ({team.budget:,} / {team.starting_budget:,} VC)")
    storage.close()


# =============================================================================
# History Commands
# =============================================================================


@cli.group()
def history():
    """Resolved game history"""
    pass


@history.command("list")
@click.option("--json", "as_json", is_flag=True, help="Print raw JSON")
@click.pass_context
def history_list(ctx, as_json):
    """List archived games"""
    storage = _open_storage(ctx)
    entries = storage.load().history
    storage.close()

    if as_json:
        click.echo(json.dumps([e.to_dict() for e in entries], indent=2))
        return
    if not entries:
        click.echo("No games recorded.")
        return

    for entry in entries:
        sold = sum(len(a.get("winners", [])) for a in entry.assets)
        click.echo(f"  Game #{entry.game_id}: {entry.duration_seconds}s, "
                   f"{len(entry.assets)} assets, {sold} units sold, {len(entry.teams)} teams")


# =============================================================================
# Catalog Commands
# =============================================================================


def _catalog_edit(ctx, edit):
    """Load, apply one CatalogAdmin edit, save synchronously."""
    from upa.core.catalog import CatalogAdmin
    from upa.core.errors import AuctionError

    config = ctx.obj["config"]
    storage = _open_storage(ctx)
    auction = storage.load()
    catalog = CatalogAdmin(auction, default_budget=config.starting_budget)
    try:
        result = edit(catalog)
        storage.save_now(auction)
    except AuctionError as e:
        _fail(e.message)
    finally:
        storage.close()
    return result


@cli.group()
def asset():
    """Asset catalog commands"""
    pass


@asset.command("add")
@click.argument("asset_id")
@click.option("--name", required=True, help="Display name")
@click.option("--min-bid", required=True, type=int, help="Minimum bid per unit")
@click.option("--quantity", default=1, type=int, help="Units offered")
@click.option("--category", default="", help="Category label")
@click.pass_context
def asset_add(ctx, asset_id, name, min_bid, quantity, category):
    """Add an asset"""
    added = _catalog_edit(
        ctx, lambda catalog: catalog.add_asset(asset_id, name, min_bid, quantity, category)
    )
    click.echo(f"✓ Asset added: {added.asset_id} ({added.name}), min {added.min_bid:,}, qty {added.quantity}")


@asset.command("list")
@click.pass_context
def asset_list(ctx):
    """List assets"""
    storage = _open_storage(ctx)
    auction = storage.load()
    storage.close()
    if not auction.assets:
        click.echo("No assets found.")
        return
    for item in auction.assets.values():
        click.echo(f"  {item.asset_id}: {item.name} [{item.category}] min {item.min_bid:,}, qty {item.quantity}")


@asset.command("remove")
@click.argument("asset_id")
@click.pass_context
def asset_remove(ctx, asset_id):
    """Remove an asset"""
    _catalog_edit(ctx, lambda catalog: catalog.delete_asset(asset_id))
    click.echo(f"✓ Asset removed: {asset_id}")


@cli.group()
def team():
    """Team registry commands"""
    pass


@team.command("add")
@click.argument("team_id")
@click.option("--name", required=True, help="Display name")
@click.option("--username", required=True, help="Login username")
@click.option("--password", prompt=True, hide_input=True, confirmation_prompt=True, help="Login password")
@click.option("--budget", default=None, type=int, help="Starting budget")
@click.pass_context
def team_add(ctx, team_id, name, username, password, budget):
    """Register a team"""
    added = _catalog_edit(
        ctx, lambda catalog: catalog.add_team(team_id, name, username, password, budget)
    )
    click.echo(f"✓ Team added: {added.team_id} ({added.name}), budget {added.starting_budget:,} VC")


@team.command("list")
@click.pass_context
def team_list(ctx):
    """List teams"""
    storage = _open_storage(ctx)
    auction = storage.load()
    storage.close()
    if not auction.teams:
        click.echo("No teams found.")
        return
    for item in auction.teams.values():
        click.echo(f"  {item.team_id}: {item.name} (user {item.username}), "
                   f"{item.budget:,} / {item.starting_budget:,} VC")


@team.command("remove")
@click.argument("team_id")
@click.pass_context
def team_remove(ctx, team_id):
    """Remove a team and its bids"""
    _catalog_edit(ctx, lambda catalog: catalog.delete_team(team_id))
    click.echo(f"✓ Team removed: {team_id}")


if __name__ == "__main__":
    cli()
