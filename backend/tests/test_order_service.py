"""
Tests for order ingestion and the finish / undo / cancel lifecycle.
"""

import pytest
from sqlalchemy import func, select

from shared.config.constants import OrderAction, OrderStatus
from shared.utils.exceptions import InvalidTransitionError, OrderNotFoundError
from shared.utils.kds_schemas import OrderInput, OrderItemInput
from kds_api.models import Order, OrderItem, utcnow
from kds_api.services import OrderService


@pytest.fixture
def service(db_session, screen_index, notifier):
    return OrderService(db_session, screen_index, notifier)


@pytest.fixture
def assigned(make_queue, make_screen, make_order, screen_index):
    """An order shown on a screen, mirrored in the fast index."""
    screen = make_screen(make_queue())
    order = make_order(screen_id=screen.id)
    screen_index.sets[screen.id] = {order.id}
    return order, screen


def _input(external_id, *items):
    return OrderInput(
        external_id=external_id,
        identifier=f"#{external_id}",
        items=[OrderItemInput(name=name) for name in items],
    )


class TestUpsertOrders:
    def test_creates_orders_with_items(self, db_session, service):
        created = service.upsert_orders([_input("A1", "Burger", "Fries")])

        assert len(created) == 1
        order = created[0]
        assert order.status == OrderStatus.PENDING
        assert order.screen_id is None
        assert [i.name for i in order.items] == ["Burger", "Fries"]

    def test_known_external_id_is_skipped(self, db_session, service):
        service.upsert_orders([_input("A1", "Burger")])

        created = service.upsert_orders([_input("A1", "Changed"), _input("A2", "Salad")])

        assert [o.external_id for o in created] == ["A2"]
        assert db_session.scalar(select(func.count(Order.id))) == 2

    def test_duplicates_within_one_batch_create_once(self, db_session, service):
        created = service.upsert_orders([_input("A1", "Burger"), _input("A1", "Burger")])

        assert len(created) == 1
        assert db_session.scalar(select(func.count(Order.id))) == 1

    def test_redelivery_never_updates_existing(self, db_session, service):
        service.upsert_orders([_input("A1", "Burger")])
        service.upsert_orders([_input("A1", "Pizza")])

        names = db_session.execute(select(OrderItem.name)).scalars().all()
        assert names == ["Burger"]

    def test_empty_input(self, service):
        assert service.upsert_orders([]) == []


class TestFinishAndUndo:
    @pytest.mark.asyncio
    async def test_finish_removes_from_index(self, service, assigned, screen_index, notifier):
        order, screen = assigned

        result = await service.finish(order.id, screen.id)

        assert result.status == OrderStatus.FINISHED
        assert result.finished_at is not None
        assert screen_index.sets[screen.id] == set()
        assert notifier.changes == [(screen.id, order.id, OrderAction.FINISHED)]

    @pytest.mark.asyncio
    async def test_finish_then_undo_restores_pending(self, service, assigned, screen_index):
        order, screen = assigned

        await service.finish(order.id, screen.id)
        result = await service.undo_finish(order.id)

        assert result.status == OrderStatus.PENDING
        assert result.finished_at is None
        assert result.screen_id == screen.id
        assert screen_index.sets[screen.id] == {order.id}
        assert screen_index.cache[order.id]["status"] == OrderStatus.PENDING

    @pytest.mark.asyncio
    async def test_finish_from_another_screen_cleans_both(self, service, assigned, make_screen, screen_index):
        order, screen = assigned
        other = make_screen(screen.queue)
        screen_index.sets[other.id] = {order.id}

        await service.finish(order.id, other.id)

        assert order.id not in screen_index.sets[screen.id]
        assert order.id not in screen_index.sets[other.id]

    @pytest.mark.asyncio
    async def test_finish_twice_is_a_noop(self, service, assigned, notifier):
        order, screen = assigned

        await service.finish(order.id, screen.id)
        await service.finish(order.id, screen.id)

        assert len(notifier.changes) == 1

    @pytest.mark.asyncio
    async def test_undo_on_pending_order_is_a_noop(self, service, assigned, notifier):
        order, _ = assigned

        result = await service.undo_finish(order.id)

        assert result.status == OrderStatus.PENDING
        assert notifier.changes == []

    @pytest.mark.asyncio
    async def test_finish_survives_index_outage(self, db_session, service, assigned, screen_index):
        order, screen = assigned
        screen_index.fail = True

        result = await service.finish(order.id, screen.id)

        assert result.status == OrderStatus.FINISHED
        db_session.expire_all()
        assert db_session.get(Order, order.id).status == OrderStatus.FINISHED

    @pytest.mark.asyncio
    async def test_unknown_order(self, service):
        with pytest.raises(OrderNotFoundError):
            await service.finish(987654, 1)


class TestCancel:
    @pytest.mark.asyncio
    async def test_cancel_removes_from_screen(self, service, assigned, screen_index, notifier):
        order, screen = assigned

        result = await service.cancel(order.id, reason="customer left")

        assert result.status == OrderStatus.CANCELLED
        assert screen_index.sets[screen.id] == set()
        assert notifier.changes[-1] == (screen.id, order.id, OrderAction.CANCELLED)

    @pytest.mark.asyncio
    async def test_finish_after_cancel_is_rejected(self, service, assigned):
        order, screen = assigned
        await service.cancel(order.id)

        with pytest.raises(InvalidTransitionError):
            await service.finish(order.id, screen.id)

        assert (service.get_order(order.id)).status == OrderStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_cancel_finished_order_is_rejected(self, service, assigned):
        order, screen = assigned
        await service.finish(order.id, screen.id)

        with pytest.raises(InvalidTransitionError):
            await service.cancel(order.id)

    @pytest.mark.asyncio
    async def test_undo_cancelled_order_is_rejected(self, service, assigned):
        order, _ = assigned
        await service.cancel(order.id)

        with pytest.raises(InvalidTransitionError):
            await service.undo_finish(order.id)

    @pytest.mark.asyncio
    async def test_cancel_twice_is_a_noop(self, service, assigned, notifier):
        order, _ = assigned
        await service.cancel(order.id)
        await service.cancel(order.id)

        assert len(notifier.changes) == 1

    @pytest.mark.asyncio
    async def test_cancel_unassigned_order_sends_nothing(self, service, make_order, notifier):
        order = make_order()

        await service.cancel(order.id)

        assert notifier.changes == []


class TestStartAndRequeue:
    @pytest.mark.asyncio
    async def test_start_then_requeue(self, service, assigned, notifier, screen_index):
        order, screen = assigned

        started = await service.start(order.id)
        assert started.status == OrderStatus.IN_PROGRESS
        assert screen_index.cache[order.id]["status"] == OrderStatus.IN_PROGRESS

        requeued = await service.requeue(order.id)
        assert requeued.status == OrderStatus.PENDING
        assert [c[2] for c in notifier.changes] == [OrderAction.STARTED, OrderAction.REQUEUED]

    @pytest.mark.asyncio
    async def test_in_progress_order_can_be_finished(self, service, assigned):
        order, screen = assigned
        await service.start(order.id)

        result = await service.finish(order.id, screen.id)

        assert result.status == OrderStatus.FINISHED

    @pytest.mark.asyncio
    async def test_requeue_finished_order_is_rejected(self, service, assigned):
        order, screen = assigned
        await service.finish(order.id, screen.id)

        with pytest.raises(InvalidTransitionError):
            await service.requeue(order.id)

    @pytest.mark.asyncio
    async def test_start_cancelled_order_is_rejected(self, service, assigned):
        order, _ = assigned
        await service.cancel(order.id)

        with pytest.raises(InvalidTransitionError):
            await service.start(order.id)


class TestMaintenance:
    def test_cleanup_deletes_old_terminal_orders(self, db_session, service, make_order, hours_ago):
        old_finished = make_order(status=OrderStatus.FINISHED, finished_at=hours_ago(13))
        old_cancelled = make_order(status=OrderStatus.CANCELLED, created_at=hours_ago(13))
        fresh_finished = make_order(status=OrderStatus.FINISHED, finished_at=hours_ago(1))
        old_pending = make_order(created_at=hours_ago(20))
        kept = {fresh_finished.id, old_pending.id}
        removed = {old_finished.id, old_cancelled.id}

        deleted = service.cleanup_old_orders(12)

        assert deleted == 2
        remaining = set(db_session.execute(select(Order.id)).scalars().all())
        assert remaining == kept
        assert remaining.isdisjoint(removed)
        item_owners = set(db_session.execute(select(OrderItem.order_id)).scalars().all())
        assert item_owners == kept

    def test_cleanup_with_nothing_to_delete(self, service, make_order):
        make_order()
        assert service.cleanup_old_orders(12) == 0

    @pytest.mark.asyncio
    async def test_rebuild_screen_index(self, service, make_queue, make_screen, make_order, screen_index):
        screen = make_screen(make_queue())
        a = make_order(screen_id=screen.id)
        b = make_order(screen_id=screen.id, status=OrderStatus.IN_PROGRESS)
        make_order(screen_id=screen.id, status=OrderStatus.FINISHED, finished_at=utcnow())
        screen_index.sets[screen.id] = {99999}

        order_ids = await service.rebuild_screen_index(screen.id)

        assert order_ids == sorted([a.id, b.id])
        assert screen_index.sets[screen.id] == {a.id, b.id}

    @pytest.mark.asyncio
    async def test_screen_order_ids_falls_back_to_database(self, service, assigned, screen_index):
        order, screen = assigned
        screen_index.fail = True

        result = await service.screen_order_ids(screen.id)

        assert result.source == "database"
        assert result.order_ids == [order.id]

    @pytest.mark.asyncio
    async def test_screen_order_ids_from_index(self, service, assigned):
        order, screen = assigned

        result = await service.screen_order_ids(screen.id)

        assert result.source == "index"
        assert result.order_ids == [order.id]


class TestQueries:
    @pytest.mark.asyncio
    async def test_recently_finished_newest_first(self, service, make_queue, make_screen, make_order):
        screen = make_screen(make_queue())
        first = make_order(screen_id=screen.id)
        second = make_order(screen_id=screen.id)
        await service.finish(first.id, screen.id)
        await service.finish(second.id, screen.id)

        result = service.recently_finished(screen.id)

        assert [o.id for o in result] == [second.id, first.id]

    def test_recently_finished_respects_window_and_limit(self, service, make_queue, make_screen, make_order, hours_ago):
        screen = make_screen(make_queue())
        make_order(screen_id=screen.id, status=OrderStatus.FINISHED, finished_at=hours_ago(1))
        recent = [
            make_order(screen_id=screen.id, status=OrderStatus.FINISHED, finished_at=hours_ago(0.01 * i))
            for i in range(1, 4)
        ]

        assert len(service.recently_finished(screen.id, minutes_back=5)) == 3
        assert [o.id for o in service.recently_finished(screen.id, minutes_back=5, limit=2)] == [
            recent[0].id,
            recent[1].id,
        ]
        assert len(service.recently_finished(screen.id, minutes_back=120)) == 4

    def test_order_stats(self, service, make_order, hours_ago):
        make_order()
        make_order(status=OrderStatus.IN_PROGRESS)
        make_order(status=OrderStatus.FINISHED, finished_at=utcnow())

        stats = service.get_order_stats()

        assert stats.pending == 1
        assert stats.in_progress == 1
        assert stats.finished_today == 1
        assert stats.avg_finish_seconds is not None
