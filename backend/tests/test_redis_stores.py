"""
Tests for the Redis store adapters, with the client mocked.
"""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest
import redis.asyncio as redis

from shared.config.constants import OrderAction
from shared.infrastructure.events import SCREEN_STATUS_CHANGED, ScreenEvent
from shared.infrastructure.redis.constants import CHANNEL_ORDERS_UPDATED
from shared.utils.exceptions import StoreUnavailableError
from kds_api.services.balancer import ScreenAssignment
from kds_api.services.stores import RedisNotifier, RedisRotationCursorStore, RedisScreenIndex


@pytest.fixture
def redis_client():
    return AsyncMock()


class TestRedisRotationCursorStore:
    @pytest.mark.asyncio
    async def test_absent_cursor_reads_zero(self, redis_client):
        redis_client.get.return_value = None

        assert await RedisRotationCursorStore(redis_client).get(3) == 0
        redis_client.get.assert_awaited_once_with("kds:balancer:index:3")

    @pytest.mark.asyncio
    async def test_reads_string_encoded_integer(self, redis_client):
        redis_client.get.return_value = "17"
        assert await RedisRotationCursorStore(redis_client).get(3) == 17

    @pytest.mark.asyncio
    async def test_corrupt_value_restarts_at_zero(self, redis_client):
        redis_client.get.return_value = "not-a-number"
        assert await RedisRotationCursorStore(redis_client).get(3) == 0

    @pytest.mark.asyncio
    async def test_write_stores_string(self, redis_client):
        await RedisRotationCursorStore(redis_client).set_after_batch(3, 12)
        redis_client.set.assert_awaited_once_with("kds:balancer:index:3", "12")

    @pytest.mark.asyncio
    async def test_redis_error_becomes_store_unavailable(self, redis_client):
        redis_client.get.side_effect = redis.ConnectionError("refused")

        with pytest.raises(StoreUnavailableError) as exc_info:
            await RedisRotationCursorStore(redis_client).get(3)

        assert exc_info.value.key == "kds:balancer:index:3"


class TestRedisScreenIndex:
    @pytest.mark.asyncio
    async def test_add_and_members(self, redis_client):
        redis_client.smembers.return_value = {"4", "9"}
        index = RedisScreenIndex(redis_client)

        await index.add(2, 9)

        redis_client.sadd.assert_awaited_once_with("kds:screen:2:orders", "9")
        assert await index.members(2) == {4, 9}

    @pytest.mark.asyncio
    async def test_cache_order_with_ttl(self, redis_client):
        await RedisScreenIndex(redis_client, order_ttl=60).cache_order(5, {"id": 5})

        redis_client.set.assert_awaited_once_with("kds:order:5", json.dumps({"id": 5}), ex=60)

    @pytest.mark.asyncio
    async def test_replace_uses_transaction(self):
        pipe = MagicMock()
        pipe.execute = AsyncMock()
        pipeline_cm = MagicMock()
        pipeline_cm.__aenter__ = AsyncMock(return_value=pipe)
        pipeline_cm.__aexit__ = AsyncMock(return_value=False)
        client = MagicMock()
        client.pipeline.return_value = pipeline_cm

        await RedisScreenIndex(client).replace(2, [1, 3])

        client.pipeline.assert_called_once_with(transaction=True)
        pipe.delete.assert_called_once_with("kds:screen:2:orders")
        pipe.sadd.assert_called_once_with("kds:screen:2:orders", "1", "3")
        pipe.execute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_remove_failure_is_store_unavailable(self, redis_client):
        redis_client.srem.side_effect = redis.TimeoutError("slow")

        with pytest.raises(StoreUnavailableError):
            await RedisScreenIndex(redis_client).remove(2, 9)


class TestRedisNotifier:
    @pytest.mark.asyncio
    async def test_order_change_mirrored_on_global_channel(self, redis_client):
        await RedisNotifier(redis_client).order_changed(2, 9, OrderAction.FINISHED)

        channels = [c.args[0] for c in redis_client.publish.await_args_list]
        assert "kds:screen:2" in channels
        assert CHANNEL_ORDERS_UPDATED in channels
        global_call = next(c for c in redis_client.publish.await_args_list if c.args[0] == CHANNEL_ORDERS_UPDATED)
        assert json.loads(global_call.args[1]) == {"screenId": 2, "orderId": 9, "action": "finished"}

    @pytest.mark.asyncio
    async def test_screen_event_payload(self, redis_client):
        await RedisNotifier(redis_client).screen_status_changed(2, "STANDBY")

        channel, raw = redis_client.publish.await_args.args
        event = ScreenEvent.from_json(raw)
        assert channel == "kds:screen:2"
        assert event.type == SCREEN_STATUS_CHANGED
        assert event.entity == {"status": "STANDBY"}

    @pytest.mark.asyncio
    async def test_empty_manifest_entries_are_not_published(self, redis_client):
        await RedisNotifier(redis_client).distributed(1, [ScreenAssignment(screen_id=2)])
        redis_client.publish.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_publish_failure_is_logged_not_raised(self, redis_client):
        redis_client.publish.side_effect = redis.ConnectionError("down")

        await RedisNotifier(redis_client).screen_status_changed(2, "STANDBY")
