"""CLI commands for fleetlock.

Provides command-line interface using Typer:
- fleetlock check: Connect to Redis and report whether locks are enforced
- fleetlock holder: Show which node holds a lock
- fleetlock exec: Run a command on at most one replica at a time

Connection parameters come from the environment (REDIS_HOST, REDIS_PORT,
REDIS_PASSWORD, REDIS_DB, REDIS_KEY_PREFIX).

Usage:
    fleetlock --help
    fleetlock check
    fleetlock holder cron:daily-sync
    fleetlock exec cron:daily-sync --ttl-ms 300000 -- ./sync.sh --full
"""

from __future__ import annotations

import asyncio

import typer
from rich.console import Console
from rich.markup import escape

from fleetlock.config import settings
from fleetlock.distributed import LockCoordinator, run_exclusively
from fleetlock.observability.logging import configure_logging
from fleetlock.store import InvalidLockRequest, LockKeys, LockStoreClient, StoreConfig

app = typer.Typer(
    name="fleetlock",
    help="fleetlock: run jobs on at most one replica at a time",
    no_args_is_help=True,
)

console = Console()


@app.callback()
def callback(
    json_logs: bool = typer.Option(
        settings.log_json,
        "--json-logs/--console-logs",
        help="Emit JSON logs (default from FLEETLOCK_LOG_JSON)",
    ),
) -> None:
    """fleetlock: run jobs on at most one replica at a time."""
    configure_logging(json_format=json_logs, level=settings.log_level)


@app.command()
def check() -> None:
    """Connect to Redis and report whether locks are enforced."""

    async def _check() -> tuple[bool, str, str]:
        async with LockStoreClient(StoreConfig.from_settings(settings)) as store:
            coordinator = LockCoordinator(store)
            return store.is_ready(), store.state.value, coordinator.node_id

    ready, state, node_id = asyncio.run(_check())

    console.print(f"[bold]Store:[/bold]   {settings.redis_host}:{settings.redis_port}")
    console.print(f"[bold]State:[/bold]   {state}")
    console.print(f"[bold]Node id:[/bold] {node_id}")

    if not ready:
        console.print("[yellow]Store not ready, locks will fail open[/yellow]")
        raise typer.Exit(code=1)

    console.print("[green]Locks are enforced[/green]")


@app.command()
def holder(
    name: str = typer.Argument(..., help="Logical lock name"),
) -> None:
    """Show which node currently holds a lock."""
    _require_valid_name(name)

    async def _holder() -> tuple[bool, str | None]:
        async with LockStoreClient(StoreConfig.from_settings(settings)) as store:
            return store.is_ready(), await LockCoordinator(store).holder(name)

    ready, node_id = asyncio.run(_holder())

    if not ready:
        console.print("[red]Store not ready, cannot read lock state[/red]")
        raise typer.Exit(code=1)

    if node_id is None:
        console.print(f"{name}: unlocked")
    else:
        console.print(f"{name}: held by {node_id}")


@app.command(name="exec")
def exec_command(
    name: str = typer.Argument(..., help="Logical lock name"),
    command: list[str] = typer.Argument(..., help="Command to run (after --)"),
    ttl_ms: int = typer.Option(
        ...,
        "--ttl-ms",
        "-t",
        min=1,
        help="Lock TTL in milliseconds, longer than the command is expected to run",
    ),
) -> None:
    """Run a command only if no other replica holds the lock.

    Exits with the command's exit code, or 0 when skipped. A command that
    cannot be started exits 127, one killed by a signal exits 128 + signal.
    """
    _require_valid_name(name)

    async def _run() -> int:
        try:
            proc = await asyncio.create_subprocess_exec(*command)
        except OSError as e:
            console.print(f"[red]Cannot run {escape(command[0])}:[/red] {escape(str(e))}")
            return 127
        returncode = await proc.wait()
        return 128 - returncode if returncode < 0 else returncode

    async def _exec() -> tuple[bool, int | None]:
        async with LockStoreClient(StoreConfig.from_settings(settings)) as store:
            outcome = await run_exclusively(LockCoordinator(store), name, ttl_ms, _run)
            return outcome.skipped, outcome.result

    skipped, returncode = asyncio.run(_exec())

    if skipped:
        console.print(f"[yellow]Skipped:[/yellow] lock '{name}' held by another node")
        return

    if returncode:
        raise typer.Exit(code=returncode)


def _require_valid_name(name: str) -> None:
    try:
        LockKeys.validate_name(name)
    except InvalidLockRequest as e:
        console.print(f"[red]Invalid lock name:[/red] {escape(str(e))}")
        raise typer.Exit(code=2) from e


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
