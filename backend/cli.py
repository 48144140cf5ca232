"""
KDS CLI.

Operator commands for the distribution engine: run a cycle, inspect queue
balance, move screens in and out of standby, repair indexes.
"""

import asyncio

import typer
from rich.console import Console
from rich.table import Table

app = typer.Typer(
    name="kds",
    help="Kitchen display order distribution CLI",
    add_completion=False,
)
console = Console()


async def _with_container(action):
    """Run an async action against a freshly built container, closing Redis after."""
    from shared.config.logging import setup_logging
    from shared.infrastructure.redis import get_redis_pool, close_redis_pool
    from kds_api.services import build_container

    setup_logging()
    redis = await get_redis_pool()
    try:
        return await action(build_container(redis))
    finally:
        await close_redis_pool()


# =============================================================================
# Database Commands
# =============================================================================

@app.command()
def db_init():
    """Create the KDS tables if they do not exist."""
    from shared.infrastructure.db import engine
    from kds_api.models import Base

    try:
        Base.metadata.create_all(bind=engine)
        console.print("[green]✓ Tables created/verified[/green]")
    except Exception as e:
        console.print(f"[red]✗ Table creation failed: {e}[/red]")
        raise typer.Exit(1)


@app.command()
def cleanup(
    hours: int = typer.Option(None, help="Hours of terminal orders to keep (default from settings)"),
):
    """Delete FINISHED and CANCELLED orders older than the retention window."""
    from shared.config.settings import settings
    from shared.infrastructure.db import get_db_context
    from kds_api.services import OrderService

    hours_to_keep = hours if hours is not None else settings.order_retention_hours

    async def _cleanup(container):
        with get_db_context() as db:
            return OrderService(db, container.index, container.notifier).cleanup_old_orders(hours_to_keep)

    deleted = asyncio.run(_with_container(_cleanup))
    console.print(f"[green]✓ Deleted {deleted} orders older than {hours_to_keep}h[/green]")


# =============================================================================
# Distribution Commands
# =============================================================================

@app.command()
def poll_once():
    """Run one ingestion + distribution cycle and print its summary."""

    async def _poll(container):
        return await container.polling.force_poll()

    summary = asyncio.run(_with_container(_poll))
    if summary is None:
        console.print("[red]✗ Cycle failed, see logs[/red]")
        raise typer.Exit(1)

    table = Table(title=f"Cycle {summary.correlation_id}")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Ingested", str(summary.ingested))
    table.add_row("Offered", str(summary.offered))
    table.add_row("Assigned", str(summary.assigned))
    table.add_row("Deleted", str(summary.deleted))
    table.add_row("Duration (s)", f"{summary.duration_seconds:.3f}")
    for screen_id, count in sorted(summary.per_screen.items()):
        table.add_row(f"Screen {screen_id}", str(count))

    console.print(table)


@app.command()
def stats(
    queue_id: int = typer.Argument(..., help="Queue id"),
):
    """Show open orders per screen and the rotation cursor of a queue."""
    from shared.infrastructure.db import get_db_context

    async def _stats(container):
        with get_db_context() as db:
            return await container.balancer.get_balance_stats(db, queue_id)

    try:
        result = asyncio.run(_with_container(_stats))
    except Exception as e:
        console.print(f"[red]✗ {e}[/red]")
        raise typer.Exit(1)

    cursor = "unavailable" if result.rotation_cursor is None else str(result.rotation_cursor)
    table = Table(title=f"{result.queue_name} ({result.strategy}, cursor {cursor})")
    table.add_column("Screen", style="cyan")
    table.add_column("Name")
    table.add_column("Status", style="yellow")
    table.add_column("Open orders", style="green")

    for load in result.screens:
        table.add_row(str(load.screen_id), load.name, load.status, str(load.open_orders))

    console.print(table)
    console.print(
        f"{result.active_screens}/{result.total_screens} screens active, "
        f"{result.total_orders} open orders"
    )


@app.command()
def reset_rotation(
    queue_id: int = typer.Argument(..., help="Queue id"),
):
    """Restart the round-robin of a queue at its first screen."""

    async def _reset(container):
        await container.balancer.reset_balance_index(queue_id)

    asyncio.run(_with_container(_reset))
    console.print(f"[green]✓ Rotation reset for queue {queue_id}[/green]")


@app.command()
def rebuild_index(
    screen_id: int = typer.Argument(..., help="Screen id"),
):
    """Rewrite a screen's fast index from the database."""
    from shared.infrastructure.db import get_db_context
    from kds_api.services import OrderService

    async def _rebuild(container):
        with get_db_context() as db:
            service = OrderService(db, container.index, container.notifier)
            return await service.rebuild_screen_index(screen_id)

    order_ids = asyncio.run(_with_container(_rebuild))
    console.print(f"[green]✓ Screen {screen_id} index holds {len(order_ids)} orders[/green]")


# =============================================================================
# Screen Commands
# =============================================================================

@app.command()
def screens(
    queue_id: int = typer.Option(None, help="Only screens of this queue"),
):
    """List registered screens."""
    from shared.infrastructure.db import get_db_context
    from kds_api.services import ScreenRegistry

    with get_db_context() as db:
        rows = ScreenRegistry(db).list_screens(queue_id=queue_id)

        table = Table(title="Screens")
        table.add_column("Id", style="cyan")
        table.add_column("Name")
        table.add_column("Queue")
        table.add_column("Status", style="yellow")
        table.add_column("Last heartbeat")

        for screen in rows:
            table.add_row(
                str(screen.id),
                screen.name,
                str(screen.queue_id),
                screen.status,
                str(screen.last_heartbeat or "-"),
            )

    console.print(table)


@app.command()
def standby(
    screen_id: int = typer.Argument(..., help="Screen id"),
):
    """Stop distributing new orders to a screen."""
    from shared.infrastructure.db import get_db_context
    from kds_api.services import ScreenRegistry

    async def _standby(container):
        with get_db_context() as db:
            registry = ScreenRegistry(db, container.balancer, container.notifier)
            await registry.set_standby(screen_id)

    asyncio.run(_with_container(_standby))
    console.print(f"[green]✓ Screen {screen_id} in standby[/green]")


@app.command()
def activate(
    screen_id: int = typer.Argument(..., help="Screen id"),
):
    """Bring a screen back into distribution from the next cycle."""
    from shared.infrastructure.db import get_db_context
    from kds_api.services import ScreenRegistry

    async def _activate(container):
        with get_db_context() as db:
            registry = ScreenRegistry(db, container.balancer, container.notifier)
            await registry.activate(screen_id)

    asyncio.run(_with_container(_activate))
    console.print(f"[green]✓ Screen {screen_id} online[/green]")


# =============================================================================
# Health Commands
# =============================================================================

@app.command()
def health(
    url: str = typer.Option("http://localhost:8000/api/health", help="API health URL"),
):
    """Check API and Redis health."""
    import time
    import httpx

    async def _health():
        table = Table(title="Service Health")
        table.add_column("Service", style="cyan")
        table.add_column("Status", style="green")
        table.add_column("Response Time", style="yellow")

        async with httpx.AsyncClient(timeout=5.0) as client:
            try:
                start = time.time()
                response = await client.get(url)
                elapsed = (time.time() - start) * 1000
                if response.status_code == 200:
                    table.add_row("KDS API", "✓ Healthy", f"{elapsed:.0f}ms")
                else:
                    table.add_row("KDS API", f"✗ Status {response.status_code}", f"{elapsed:.0f}ms")
            except Exception as e:
                table.add_row("KDS API", f"✗ {type(e).__name__}", "-")

        from shared.infrastructure.redis import check_redis_health, close_redis_pool

        start = time.time()
        redis_status = await check_redis_health()
        elapsed = (time.time() - start) * 1000
        await close_redis_pool()
        if redis_status["status"] == "healthy":
            table.add_row("Redis", "✓ Healthy", f"{elapsed:.0f}ms")
        else:
            table.add_row("Redis", f"✗ {redis_status.get('error', 'unhealthy')}", "-")

        console.print(table)

    asyncio.run(_health())


if __name__ == "__main__":
    app()
