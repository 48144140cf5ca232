"""
In-memory stand-ins for the Redis-backed stores.

Each fake can be switched into a failing mode to exercise the
StoreUnavailableError paths.
"""

from typing import Any, Iterable

from shared.utils.exceptions import StoreUnavailableError


class InMemoryCursorStore:
    """Rotation cursors in a dict. Records every write."""

    def __init__(self):
        self.values: dict[int, int] = {}
        self.writes: list[tuple[int, int]] = []
        self.fail_reads = False
        self.fail_writes = False

    async def get(self, queue_id: int) -> int:
        if self.fail_reads:
            raise StoreUnavailableError("cursor read", f"cursor:{queue_id}")
        return self.values.get(queue_id, 0)

    async def set_after_batch(self, queue_id: int, value: int) -> None:
        if self.fail_writes:
            raise StoreUnavailableError("cursor write", f"cursor:{queue_id}")
        self.values[queue_id] = value
        self.writes.append((queue_id, value))

    async def reset(self, queue_id: int) -> None:
        await self.set_after_batch(queue_id, 0)


class InMemoryScreenIndex:
    """Per-screen id sets and cached payloads."""

    def __init__(self):
        self.sets: dict[int, set[int]] = {}
        self.cache: dict[int, dict[str, Any]] = {}
        self.fail = False
        # Fail once this many add() calls have succeeded
        self.fail_after_adds: int | None = None
        self._adds = 0

    def _check(self, operation: str) -> None:
        if self.fail:
            raise StoreUnavailableError(operation, "index")

    async def add(self, screen_id: int, order_id: int) -> None:
        self._check("index add")
        if self.fail_after_adds is not None and self._adds >= self.fail_after_adds:
            raise StoreUnavailableError("index add", f"screen:{screen_id}")
        self._adds += 1
        self.sets.setdefault(screen_id, set()).add(order_id)

    async def remove(self, screen_id: int, order_id: int) -> None:
        self._check("index remove")
        self.sets.get(screen_id, set()).discard(order_id)

    async def members(self, screen_id: int) -> set[int]:
        self._check("index read")
        return set(self.sets.get(screen_id, set()))

    async def replace(self, screen_id: int, order_ids: Iterable[int]) -> None:
        self._check("index rebuild")
        self.sets[screen_id] = set(order_ids)

    async def cache_order(self, order_id: int, payload: dict[str, Any]) -> None:
        self._check("order cache write")
        self.cache[order_id] = payload

    async def drop_order(self, order_id: int) -> None:
        self._check("order cache drop")
        self.cache.pop(order_id, None)


class RecordingNotifier:
    """Keeps every notification for assertions."""

    def __init__(self):
        self.manifests: list[tuple[int, list]] = []
        # Order ids per screen, read while the distributing session is open
        self.assignments: list[tuple[int, dict[int, list[int]]]] = []
        self.changes: list[tuple[int, int, str]] = []
        self.status_changes: list[tuple[int, str]] = []

    async def distributed(self, queue_id: int, manifest: list) -> None:
        self.manifests.append((queue_id, manifest))
        self.assignments.append((queue_id, {entry.screen_id: entry.order_ids for entry in manifest}))

    async def order_changed(
        self,
        screen_id: int,
        order_id: int,
        action: str,
        payload: dict[str, Any] | None = None,
    ) -> None:
        self.changes.append((screen_id, order_id, action))

    async def screen_status_changed(self, screen_id: int, status: str) -> None:
        self.status_changes.append((screen_id, status))
