"""CLI entry point for the Tradeboard copy-trading dashboard.

Commands:
  tradeboard serve               — Launch the dashboard web app
  tradeboard login               — Sign in with a wallet and store the session
  tradeboard whoami              — Show the signed-in user
  tradeboard refresh             — Exchange the stored token for a new one
  tradeboard logout              — End the session (always clears locally)
  tradeboard leaderboard         — Show the trader leaderboard
"""

from __future__ import annotations

import asyncio
import os
import sys
from typing import Any

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

from tradeboard.config import AppConfig, load_config
from tradeboard.errors import GatewayError, WalletError
from tradeboard.gateway.auth import AuthGateway
from tradeboard.gateway.backend import BackendClient
from tradeboard.gateway.models import normalize_listing
from tradeboard.observability.logger import configure_logging, get_logger
from tradeboard.session.manager import SessionManager
from tradeboard.session.store import FileSessionStore
from tradeboard.session.wallet_login import sign_in_with_wallet
from tradeboard.wallet.client import WalletClient
from tradeboard.wallet.provider import JsonRpcProvider, LocalKeyProvider, WalletProvider

load_dotenv()

console = Console()
log = get_logger(__name__)


def _run(coro: Any) -> Any:
    """Run an async coroutine from sync CLI."""
    return asyncio.run(coro)


@click.group()
@click.option("--config", "config_path", default=None, help="Path to config.yaml")
@click.pass_context
def cli(ctx: click.Context, config_path: str | None) -> None:
    """Tradeboard copy-trading dashboard."""
    ctx.ensure_object(dict)
    cfg = load_config(config_path)
    ctx.obj["config"] = cfg
    configure_logging(
        level=cfg.observability.log_level,
        fmt="console",
        log_file=cfg.observability.log_file or None,
    )


async def _with_session(cfg: AppConfig, fn: Any) -> Any:
    store = FileSessionStore.from_config(cfg.session)
    async with AuthGateway.from_config(cfg.backend) as gateway:
        return await fn(SessionManager(gateway, store), gateway)


# ─── SERVE ───────────────────────────────────────────────────────

@cli.command()
@click.option("--host", default="127.0.0.1", help="Host to bind to")
@click.option("--port", default=3000, help="Port to listen on")
@click.option("--debug", is_flag=True, help="Enable Flask debug mode")
@click.pass_context
def serve(ctx: click.Context, host: str, port: int, debug: bool) -> None:
    """Launch the dashboard web app."""
    from tradeboard.dashboard.app import run_dashboard

    run_dashboard(config_path=ctx.parent.params.get("config_path"), host=host, port=port, debug=debug)


# ─── LOGIN ───────────────────────────────────────────────────────

def _make_provider(private_key_env: str, rpc_url: str | None) -> WalletProvider | None:
    if rpc_url:
        return JsonRpcProvider(rpc_url)
    private_key = os.environ.get(private_key_env)
    if private_key:
        return LocalKeyProvider(private_key)
    return None


@cli.command()
@click.option("--private-key-env", default="WALLET_PRIVATE_KEY", help="Env var holding the signing key")
@click.option("--rpc-url", default=None, help="External wallet JSON-RPC endpoint (overrides the key)")
@click.option("--chain", default="ethereum", help="Chain name sent to the backend")
@click.pass_context
def login(ctx: click.Context, private_key_env: str, rpc_url: str | None, chain: str) -> None:
    """Sign in with a wallet and store the session token."""
    cfg: AppConfig = ctx.obj["config"]
    wallet = WalletClient(_make_provider(private_key_env, rpc_url))
    if not wallet.is_available:
        console.print(
            f"[red]❌ No wallet available.[/red] Set {private_key_env} or pass --rpc-url."
        )
        sys.exit(1)

    try:
        result = _run(_with_session(
            cfg, lambda session, gateway: sign_in_with_wallet(session, gateway, wallet, chain),
        ))
    except (GatewayError, WalletError) as e:
        console.print(f"[red]❌ Login failed:[/red] {e}")
        sys.exit(1)

    who = wallet.connection.address if wallet.connection else "wallet"
    console.print(f"[green]✅ Signed in as {who}[/green]")
    if result.is_new_user:
        console.print("Welcome! A new account was created for this wallet.")


# ─── WHOAMI ──────────────────────────────────────────────────────

@cli.command()
@click.pass_context
def whoami(ctx: click.Context) -> None:
    """Show the user owning the stored session."""
    cfg: AppConfig = ctx.obj["config"]
    state = _run(_with_session(cfg, lambda session, _gw: session.initialize()))
    if not state.is_authenticated or state.user is None:
        console.print("[yellow]Not signed in.[/yellow]")
        sys.exit(1)

    user = state.user
    table = Table(title="👤 Current User")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("ID", str(user.id))
    table.add_row("Email", user.email or "—")
    table.add_row("Wallets", ", ".join(w.address for w in user.wallets) or "—")
    table.add_row("Exchange keys", str(user.exchange_keys_count))
    table.add_row("Copy subscriptions", str(user.copy_subscriptions_count))
    table.add_row("Member since", user.created_at or "—")
    console.print(table)


# ─── REFRESH / LOGOUT ────────────────────────────────────────────

@cli.command()
@click.pass_context
def refresh(ctx: click.Context) -> None:
    """Exchange the stored token for a fresh one."""
    cfg: AppConfig = ctx.obj["config"]
    ok = _run(_with_session(cfg, lambda session, _gw: session.refresh_token()))
    if not ok:
        console.print("[red]❌ Token refresh failed.[/red] Run `tradeboard login` again.")
        sys.exit(1)
    console.print("[green]✅ Session token refreshed.[/green]")


@cli.command()
@click.pass_context
def logout(ctx: click.Context) -> None:
    """Log out. The local session is cleared even if the backend is down."""
    cfg: AppConfig = ctx.obj["config"]
    _run(_with_session(cfg, lambda session, _gw: session.logout()))
    console.print("Signed out.")


# ─── LEADERBOARD ─────────────────────────────────────────────────

@cli.command()
@click.option("--sort-by", default="win_rate", help="Ranking column")
@click.option("--order", type=click.Choice(["asc", "desc"]), default="desc")
@click.option("--search", default=None, help="Filter by trader address")
@click.option("--limit", default=20, help="Rows to show")
@click.pass_context
def leaderboard(ctx: click.Context, sort_by: str, order: str, search: str | None, limit: int) -> None:
    """Show the trader leaderboard."""
    cfg: AppConfig = ctx.obj["config"]
    params = {"sort_by": sort_by, "order": order}
    if search:
        params["search"] = search

    async def _fetch() -> Any:
        async with BackendClient(cfg.backend) as backend:
            return await backend.request(
                "GET", "/api/v1/leaderboard",
                params=params, fallback="Failed to fetch leaderboard", op="leaderboard",
            )

    try:
        listing = normalize_listing(_run(_fetch()))
    except GatewayError as e:
        console.print(f"[red]❌ {e.message}[/red]")
        sys.exit(1)

    table = Table(title=f"🏆 Leaderboard ({listing.total} traders)")
    table.add_column("#", justify="right")
    table.add_column("Trader", style="cyan")
    table.add_column("Win rate", justify="right", style="green")
    table.add_column("Volume", justify="right")
    table.add_column("Max DD", justify="right", style="red")
    table.add_column("Score", justify="right")

    for rank, row in enumerate(listing.items[:limit], start=1):
        if not isinstance(row, dict):
            continue
        table.add_row(
            str(rank),
            str(row.get("trader_address") or row.get("address") or "?"),
            _fmt(row.get("win_rate"), "{:.1%}"),
            _fmt(row.get("total_volume_usd"), "${:,.0f}"),
            _fmt(row.get("max_drawdown"), "{:.1%}"),
            _fmt(row.get("trader_score"), "{:.2f}"),
        )

    console.print(table)


def _fmt(value: Any, pattern: str) -> str:
    try:
        return pattern.format(float(value))
    except (TypeError, ValueError):
        return "—"


if __name__ == "__main__":
    cli()
