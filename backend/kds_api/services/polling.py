"""
Cycle runner for ingestion + distribution.

Each cycle:
1. Marks ONLINE screens with a stale heartbeat OFFLINE
2. Drains the ingestion feeds and upserts by external id
3. Builds the batch: new orders, then older unassigned PENDING orders
   that at least one active queue accepts
4. Distributes the batch to every active queue (queues run concurrently)
5. Hands each manifest to the notifier
6. Runs the retention sweep and records metrics

Cycles never overlap: a forced poll waits for a scheduled one in flight.
Any exception is logged and the next scheduled cycle still fires.
"""

import asyncio
import time
from datetime import datetime, timedelta, timezone
from typing import Callable, Sequence

from sqlalchemy.orm import Session

from shared.config.constants import Limits, OrderStatus
from shared.config.logging import polling_logger as logger
from shared.config.settings import settings
from shared.infrastructure.correlation import correlation_scope
from shared.infrastructure.metrics import KdsMetrics
from shared.utils.exceptions import StoreUnavailableError
from shared.utils.kds_schemas import CycleSummaryOutput, OrderInput, PollingStatusOutput
from kds_api.models import Queue, utcnow
from kds_api.repositories import OrderRepository, QueueRepository
from kds_api.services.balancer import Balancer
from kds_api.services.feeds import OrderFeed, PushOrderFeed
from kds_api.services.filter_engine import accepted_by_any
from kds_api.services.order_service import OrderService
from kds_api.services.screen_service import ScreenRegistry
from kds_api.services.stores import Notifier


class PollingService:
    """
    Periodic ingestion + distribution loop.

    Runs as a background task started from the application lifespan, or
    one cycle at a time through force_poll() (operator command, CLI).
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        balancer: Balancer,
        notifier: Notifier,
        push_feed: PushOrderFeed,
        feeds: Sequence[OrderFeed] = (),
        metrics: KdsMetrics | None = None,
        interval_seconds: float | None = None,
    ):
        self._session_factory = session_factory
        self._balancer = balancer
        self._notifier = notifier
        self._push_feed = push_feed
        self._feeds: list[OrderFeed] = [push_feed, *feeds]
        self._metrics = metrics
        self._interval = interval_seconds or settings.polling_interval_seconds

        self._running = False
        self._task: asyncio.Task | None = None
        self._cycle_lock = asyncio.Lock()

        self._cycles = 0
        self._last_cycle_at: datetime | None = None
        self._last_error: str | None = None

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> bool:
        """Start the loop. Returns False when it was already running."""
        if self._running:
            logger.warning("Polling already running")
            return False

        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info("Polling started", interval_seconds=self._interval)
        return True

    async def stop(self) -> bool:
        """Stop the loop gracefully. Returns False when it was not running."""
        was_running = self._running
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Polling stopped")
        return was_running

    async def _run_loop(self) -> None:
        """Main loop: one cycle, then sleep for the interval."""
        while self._running:
            await self.poll()
            await asyncio.sleep(self._interval)

    async def force_poll(self) -> CycleSummaryOutput | None:
        """Run one cycle now. Returns None if the cycle failed."""
        return await self.poll()

    async def poll(self) -> CycleSummaryOutput | None:
        """Run one cycle, never raising."""
        async with self._cycle_lock:
            with correlation_scope("cycle") as cycle_id:
                started = time.perf_counter()
                try:
                    summary = await self._run_cycle(cycle_id, started)
                except Exception as e:
                    self._last_error = str(e)
                    logger.error("Error in poll cycle", error=str(e), exc_info=True)
                    if self._metrics is not None:
                        await self._metrics.cycle_completed(time.perf_counter() - started, failed=True)
                    return None
                finally:
                    self._cycles += 1
                    self._last_cycle_at = datetime.now(timezone.utc)

        return summary

    def status(self) -> PollingStatusOutput:
        return PollingStatusOutput(
            running=self._running,
            interval_seconds=self._interval,
            cycles=self._cycles,
            last_cycle_at=self._last_cycle_at,
            last_error=self._last_error,
            pending_push_orders=self._push_feed.pending,
        )

    # =========================================================================
    # Cycle steps
    # =========================================================================

    async def _run_cycle(self, cycle_id: str, started: float) -> CycleSummaryOutput:
        incoming = await self._drain_feeds()

        with self._session_factory() as db:
            ScreenRegistry(db).mark_stale_offline(settings.screen_heartbeat_timeout_seconds)

            created = OrderService(db, self._balancer.index, self._notifier).upsert_orders(incoming)
            created_ids = [order.id for order in created]

            queues = QueueRepository(db).find_active()
            queue_ids = [queue.id for queue in queues]
            backlog_ids = self._select_backlog(db, queues, created_ids)
            batch_ids = created_ids + backlog_ids

        if incoming:
            logger.info(f"Found {len(incoming)} orders", created=len(created_ids))

        per_screen: dict[int, int] = {}
        failed = False
        if batch_ids and queue_ids:
            results = await asyncio.gather(
                *(self._distribute_queue(queue_id, batch_ids) for queue_id in queue_ids),
                return_exceptions=True,
            )
            for queue_id, result in zip(queue_ids, results):
                if isinstance(result, StoreUnavailableError):
                    failed = True
                    self._last_error = str(result)
                    logger.warning("Distribution aborted, will retry next cycle", queue_id=queue_id, error=str(result))
                elif isinstance(result, BaseException):
                    failed = True
                    self._last_error = str(result)
                    logger.error("Distribution failed", queue_id=queue_id, error=str(result))
                else:
                    for screen_id, count in result.items():
                        per_screen[screen_id] = per_screen.get(screen_id, 0) + count

        deleted = self._cleanup()

        duration = time.perf_counter() - started
        assigned = sum(per_screen.values())
        if not failed:
            self._last_error = None

        if batch_ids:
            logger.info(
                "Cycle completed",
                offered=len(batch_ids),
                assigned=assigned,
                per_screen=per_screen,
                duration_ms=round(duration * 1000, 1),
            )

        if self._metrics is not None:
            await self._metrics.orders_distributed(per_screen)
            await self._metrics.cycle_completed(duration, failed=failed)

        return CycleSummaryOutput(
            correlation_id=cycle_id,
            ingested=len(created_ids),
            offered=len(batch_ids),
            assigned=assigned,
            deleted=deleted,
            per_screen=per_screen,
            duration_seconds=round(duration, 4),
        )

    def _select_backlog(self, db: Session, queues: Sequence[Queue], exclude_ids: list[int]) -> list[int]:
        """
        Older unassigned PENDING orders to offer again, oldest first.

        Only orders some active queue accepts count towards MAX_BACKLOG_ORDERS,
        so orders no queue wants cannot crowd out the ones that can still be
        placed.
        """
        if not queues:
            return []

        filter_sets = [queue.active_filters for queue in queues]
        since = utcnow() - timedelta(hours=settings.order_lifetime_hours)
        repo = OrderRepository(db)

        selected: list[int] = []
        offset = 0
        while len(selected) < Limits.MAX_BACKLOG_ORDERS:
            page = repo.find_unassigned_pending(
                since, Limits.BACKLOG_SCAN_PAGE, exclude_ids=exclude_ids, offset=offset
            )
            if not page:
                break
            offset += len(page)
            for order in page:
                if accepted_by_any(order.items, filter_sets):
                    selected.append(order.id)
                    if len(selected) == Limits.MAX_BACKLOG_ORDERS:
                        break
        return selected

    async def _drain_feeds(self) -> list[OrderInput]:
        incoming: list[OrderInput] = []
        for feed in self._feeds:
            try:
                incoming.extend(await feed.fetch())
            except Exception as e:
                logger.error("Order feed failed", feed=type(feed).__name__, error=str(e))
        return incoming

    async def _distribute_queue(self, queue_id: int, order_ids: list[int]) -> dict[int, int]:
        """Distribute one queue in its own session. Returns orders per screen."""
        with self._session_factory() as db:
            by_id = {order.id: order for order in OrderRepository(db).find_by_ids(order_ids)}
            # Keep batch order; skip orders that left PENDING since the batch was built
            orders = [
                by_id[order_id]
                for order_id in order_ids
                if order_id in by_id and by_id[order_id].status == OrderStatus.PENDING
            ]

            try:
                manifest = await self._balancer.distribute_orders(db, orders, queue_id)
            except StoreUnavailableError as e:
                # Screens still learn about the orders committed before the abort
                if e.partial_manifest:
                    await self._notifier.distributed(queue_id, e.partial_manifest)
                raise
            if manifest:
                await self._notifier.distributed(queue_id, manifest)

            return {entry.screen_id: len(entry.orders) for entry in manifest}

    def _cleanup(self) -> int:
        try:
            with self._session_factory() as db:
                return OrderService(db, self._balancer.index, self._notifier).cleanup_old_orders(
                    settings.order_retention_hours
                )
        except Exception as e:
            logger.error("Cleanup error", error=str(e))
            return 0
