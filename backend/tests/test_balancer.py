"""
Tests for order distribution across screens.
"""

import asyncio

import pytest

from shared.config.constants import DistributionStrategy, ScreenStatus
from shared.utils.exceptions import QueueNotFoundError, StoreUnavailableError
from kds_api.models import Order
from kds_api.services.balancer import Balancer
from tests.fakes import InMemoryCursorStore


async def _distribute(balancer, db, orders, queue):
    return await balancer.distribute_orders(db, orders, queue.id)


def _as_map(manifest):
    return {entry.screen_id: entry.order_ids for entry in manifest}


class YieldingCursorStore(InMemoryCursorStore):
    """Gives up the event loop around every cursor access."""

    async def get(self, queue_id):
        await asyncio.sleep(0)
        return await super().get(queue_id)

    async def set_after_batch(self, queue_id, value):
        await asyncio.sleep(0)
        await super().set_after_batch(queue_id, value)


class TestDistributedStrategy:
    """Round-robin distribution."""

    @pytest.mark.asyncio
    async def test_round_robin_batch_and_cursor(self, db_session, balancer, cursor_store, make_queue, make_screen, make_order):
        queue = make_queue()
        s1, s2 = make_screen(queue), make_screen(queue)
        o1, o2, o3 = make_order(), make_order(), make_order()
        ids = [o1.id, o2.id, o3.id]

        manifest = await _distribute(balancer, db_session, [o1, o2, o3], queue)

        assert _as_map(manifest) == {s1.id: [ids[0], ids[2]], s2.id: [ids[1]]}
        assert cursor_store.values[queue.id] == 3

    @pytest.mark.asyncio
    async def test_next_batch_continues_rotation(self, db_session, balancer, cursor_store, make_queue, make_screen, make_order):
        queue = make_queue()
        s1, s2 = make_screen(queue), make_screen(queue)
        await _distribute(balancer, db_session, [make_order(), make_order(), make_order()], queue)

        o4 = make_order()
        o4_id = o4.id
        manifest = await _distribute(balancer, db_session, [o4], queue)

        assert _as_map(manifest) == {s1.id: [], s2.id: [o4_id]}
        assert cursor_store.values[queue.id] == 4

    @pytest.mark.asyncio
    async def test_concurrent_calls_on_one_queue_are_serialized(self, db_session, screen_index, make_queue, make_screen, make_order):
        cursors = YieldingCursorStore()
        balancer = Balancer(cursors, screen_index)
        queue = make_queue()
        s1, s2 = make_screen(queue), make_screen(queue)
        o1, o2 = make_order(), make_order()
        o1_id, o2_id = o1.id, o2.id

        first, second = await asyncio.gather(
            _distribute(balancer, db_session, [o1], queue),
            _distribute(balancer, db_session, [o2], queue),
        )

        assert cursors.values[queue.id] == 2
        assert _as_map(first) == {s1.id: [o1_id], s2.id: []}
        assert _as_map(second) == {s1.id: [], s2.id: [o2_id]}

    @pytest.mark.asyncio
    async def test_consecutive_calls_visit_every_screen(self, db_session, balancer, make_queue, make_screen, make_order):
        queue = make_queue()
        screens = [make_screen(queue) for _ in range(4)]
        screen_ids = [s.id for s in screens]

        first = await _distribute(balancer, db_session, [make_order() for _ in range(3)], queue)
        second = await _distribute(balancer, db_session, [make_order()], queue)

        receivers = [e.screen_id for e in first if e.orders] + [e.screen_id for e in second if e.orders]
        assert receivers == screen_ids

    @pytest.mark.asyncio
    async def test_even_split_over_multiple_rounds(self, db_session, balancer, make_queue, make_screen, make_order):
        queue = make_queue()
        for _ in range(3):
            make_screen(queue)

        manifest = await _distribute(balancer, db_session, [make_order() for _ in range(9)], queue)

        assert [len(e.orders) for e in manifest] == [3, 3, 3]

    @pytest.mark.asyncio
    async def test_assignment_is_persisted_and_indexed(self, db_session, balancer, screen_index, make_queue, make_screen, make_order):
        queue = make_queue()
        screen = make_screen(queue)
        order = make_order()
        order_id, screen_id = order.id, screen.id

        await _distribute(balancer, db_session, [order], queue)

        db_session.expire_all()
        assert db_session.get(Order, order_id).screen_id == screen_id
        assert screen_index.sets[screen_id] == {order_id}
        assert screen_index.cache[order_id]["identifier"] == order.identifier

    @pytest.mark.asyncio
    async def test_standby_and_offline_screens_are_skipped(self, db_session, balancer, make_queue, make_screen, make_order):
        queue = make_queue()
        online = make_screen(queue)
        make_screen(queue, status=ScreenStatus.STANDBY)
        make_screen(queue, status=ScreenStatus.OFFLINE)

        manifest = await _distribute(balancer, db_session, [make_order(), make_order()], queue)

        assert [e.screen_id for e in manifest] == [online.id]
        assert len(manifest[0].orders) == 2


class TestSingleStrategy:
    @pytest.mark.asyncio
    async def test_everything_goes_to_first_screen(self, db_session, balancer, cursor_store, make_queue, make_screen, make_order):
        queue = make_queue(strategy=DistributionStrategy.SINGLE)
        s1, s2, s3 = make_screen(queue), make_screen(queue), make_screen(queue)

        manifest = await _distribute(balancer, db_session, [make_order() for _ in range(5)], queue)

        counts = {e.screen_id: len(e.orders) for e in manifest}
        assert counts == {s1.id: 5, s2.id: 0, s3.id: 0}
        assert cursor_store.writes == []

    @pytest.mark.asyncio
    async def test_cursor_never_read(self, db_session, balancer, cursor_store, make_queue, make_screen, make_order):
        queue = make_queue(strategy=DistributionStrategy.SINGLE)
        make_screen(queue)
        cursor_store.fail_reads = True

        manifest = await _distribute(balancer, db_session, [make_order()], queue)

        assert len(manifest[0].orders) == 1


class TestEmptyResults:
    @pytest.mark.asyncio
    async def test_no_active_screens_leaves_orders_unassigned(self, db_session, balancer, cursor_store, make_queue, make_screen, make_order):
        queue = make_queue()
        make_screen(queue, status=ScreenStatus.STANDBY)
        orders = [make_order(), make_order()]
        ids = [o.id for o in orders]

        manifest = await _distribute(balancer, db_session, orders, queue)

        assert manifest == []
        db_session.expire_all()
        assert all(db_session.get(Order, i).screen_id is None for i in ids)
        assert cursor_store.writes == []

    @pytest.mark.asyncio
    async def test_missing_queue_returns_empty(self, db_session, balancer, make_order):
        assert await balancer.distribute_orders(db_session, [make_order()], 9999) == []

    @pytest.mark.asyncio
    async def test_nothing_passes_filters(self, db_session, balancer, cursor_store, make_queue, make_screen, make_order):
        queue = make_queue(filters=[("pizza", False)])
        make_screen(queue)

        manifest = await _distribute(balancer, db_session, [make_order(items=["Burger"])], queue)

        assert manifest == []
        assert cursor_store.writes == []

    @pytest.mark.asyncio
    async def test_filters_reduce_batch_before_rotation(self, db_session, balancer, cursor_store, make_queue, make_screen, make_order):
        queue = make_queue(filters=[("bacon", True)])
        s1, s2 = make_screen(queue), make_screen(queue)
        bacon = make_order(items=["Bacon Burger"])
        veggie = make_order(items=["Veggie Wrap"])
        veggie_id = veggie.id

        manifest = await _distribute(balancer, db_session, [bacon, veggie], queue)

        assert _as_map(manifest) == {s1.id: [veggie_id], s2.id: []}
        assert cursor_store.values[queue.id] == 1

    @pytest.mark.asyncio
    async def test_inactive_filters_are_ignored(self, db_session, balancer, make_queue, make_screen, make_order):
        queue = make_queue(filters=[("pizza", False)])
        queue.filters[0].active = False
        db_session.commit()
        make_screen(queue)

        manifest = await _distribute(balancer, db_session, [make_order(items=["Burger"])], queue)

        assert len(manifest[0].orders) == 1


class TestStoreFailures:
    @pytest.mark.asyncio
    async def test_cursor_read_failure_aborts_without_assigning(self, db_session, balancer, cursor_store, make_queue, make_screen, make_order):
        queue = make_queue()
        make_screen(queue)
        order = make_order()
        order_id = order.id
        cursor_store.fail_reads = True

        with pytest.raises(StoreUnavailableError):
            await _distribute(balancer, db_session, [order], queue)

        db_session.expire_all()
        assert db_session.get(Order, order_id).screen_id is None
        assert cursor_store.writes == []

    @pytest.mark.asyncio
    async def test_index_failure_mid_batch_keeps_cursor(self, db_session, balancer, cursor_store, screen_index, make_queue, make_screen, make_order):
        queue = make_queue()
        s1, s2 = make_screen(queue), make_screen(queue)
        cursor_store.values[queue.id] = 5
        screen_index.fail_after_adds = 1
        orders = [make_order(), make_order(), make_order()]
        ids = [order.id for order in orders]

        with pytest.raises(StoreUnavailableError) as exc_info:
            await _distribute(balancer, db_session, orders, queue)

        # Cursor 5 starts on the second screen; the second order commits before its index add fails
        assert _as_map(exc_info.value.partial_manifest) == {s1.id: [ids[1]], s2.id: [ids[0]]}
        assert cursor_store.values[queue.id] == 5
        assert cursor_store.writes == []

    @pytest.mark.asyncio
    async def test_failed_assignment_still_consumes_slot(self, db_session, balancer, cursor_store, make_queue, make_screen, make_order, monkeypatch):
        queue = make_queue()
        s1, s2 = make_screen(queue), make_screen(queue)
        o1, o2, o3 = make_order(), make_order(), make_order()
        failing_id = o2.id
        o1_id, o3_id = o1.id, o3.id

        from kds_api.services import balancer as balancer_module

        real_commit = balancer_module.safe_commit

        def flaky_commit(db):
            pending = [obj for obj in db.dirty if isinstance(obj, Order) and obj.id == failing_id]
            if pending:
                db.rollback()
                raise RuntimeError("write failed")
            real_commit(db)

        monkeypatch.setattr(balancer_module, "safe_commit", flaky_commit)

        manifest = await _distribute(balancer, db_session, [o1, o2, o3], queue)

        assert _as_map(manifest) == {s1.id: [o1_id, o3_id], s2.id: []}
        assert cursor_store.values[queue.id] == 3


class TestBalanceStats:
    @pytest.mark.asyncio
    async def test_open_orders_per_screen(self, db_session, balancer, make_queue, make_screen, make_order):
        queue = make_queue()
        s1 = make_screen(queue)
        s2 = make_screen(queue, status=ScreenStatus.STANDBY)
        make_order(screen_id=s1.id)
        make_order(screen_id=s1.id)
        make_order(screen_id=s2.id)
        make_order(screen_id=s1.id, status="FINISHED")

        stats = await balancer.get_balance_stats(db_session, queue.id)

        assert stats.active_screens == 1
        assert stats.total_screens == 2
        assert stats.total_orders == 3
        assert {load.screen_id: load.open_orders for load in stats.screens} == {s1.id: 2, s2.id: 1}
        assert stats.rotation_cursor == 0

    @pytest.mark.asyncio
    async def test_cursor_unavailable_is_reported_as_none(self, db_session, balancer, cursor_store, make_queue):
        queue = make_queue()
        cursor_store.fail_reads = True

        stats = await balancer.get_balance_stats(db_session, queue.id)

        assert stats.rotation_cursor is None

    @pytest.mark.asyncio
    async def test_unknown_queue_raises(self, db_session, balancer):
        with pytest.raises(QueueNotFoundError):
            await balancer.get_balance_stats(db_session, 424242)

    @pytest.mark.asyncio
    async def test_reset_restarts_at_first_screen(self, db_session, balancer, cursor_store, make_queue, make_screen, make_order):
        queue = make_queue()
        s1, _ = make_screen(queue), make_screen(queue)
        await _distribute(balancer, db_session, [make_order()], queue)

        await balancer.reset_balance_index(queue.id)
        manifest = await _distribute(balancer, db_session, [make_order()], queue)

        assert manifest[0].screen_id == s1.id
        assert len(manifest[0].orders) == 1

    def test_orders_for_screen_oldest_first(self, db_session, balancer, make_queue, make_screen, make_order, hours_ago):
        queue = make_queue()
        screen = make_screen(queue)
        newer = make_order(screen_id=screen.id, created_at=hours_ago(1))
        older = make_order(screen_id=screen.id, created_at=hours_ago(2))
        make_order(screen_id=screen.id, status="CANCELLED")

        orders = balancer.get_orders_for_screen(db_session, screen.id)

        assert [o.id for o in orders] == [older.id, newer.id]
