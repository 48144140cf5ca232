"""
Distribution metrics kept in Redis, exported in Prometheus text format.

Redis holds the values so the API process and CLI-triggered cycles report
into the same series.
"""

from typing import TYPE_CHECKING

from redis.exceptions import RedisError

from shared.config.logging import get_logger
from shared.infrastructure.redis.constants import PREFIX_METRICS

if TYPE_CHECKING:
    from redis.asyncio import Redis

logger = get_logger(__name__)

COUNTER = "counter"
GAUGE = "gauge"


class MetricsRegistry:
    """
    Counters and gauges under kds:metrics:{kind}:{name}[:label=value...].
    Labels are sorted into the key, so the same label set always maps to
    the same series.
    """

    def __init__(self, redis: "Redis", namespace: str = "kds"):
        self._redis = redis
        self._namespace = namespace

    @staticmethod
    def _key(kind: str, name: str, labels: dict | None = None) -> str:
        suffix = "".join(f":{k}={v}" for k, v in sorted((labels or {}).items()))
        return f"{PREFIX_METRICS}{kind}:{name}{suffix}"

    @staticmethod
    def _parse_key(key: str) -> tuple[str, str, dict[str, str]] | None:
        kind, _, rest = key[len(PREFIX_METRICS):].partition(":")
        name, *pairs = rest.split(":")
        if not kind or not name:
            return None
        return kind, name, dict(pair.split("=", 1) for pair in pairs if "=" in pair)

    async def _read(self, key: str) -> float:
        value = await self._redis.get(key)
        return float(value) if value else 0.0

    async def counter_inc(self, name: str, value: float = 1, labels: dict | None = None) -> None:
        await self._redis.incrbyfloat(self._key(COUNTER, name, labels), value)

    async def counter_get(self, name: str, labels: dict | None = None) -> float:
        return await self._read(self._key(COUNTER, name, labels))

    async def gauge_set(self, name: str, value: float, labels: dict | None = None) -> None:
        await self._redis.set(self._key(GAUGE, name, labels), str(value))

    async def gauge_get(self, name: str, labels: dict | None = None) -> float:
        return await self._read(self._key(GAUGE, name, labels))

    async def export_prometheus(self) -> str:
        """One TYPE line per metric, then one sample per label set."""
        series: dict[str, tuple[str, list[str]]] = {}

        keys = [key async for key in self._redis.scan_iter(match=f"{PREFIX_METRICS}*", count=100)]
        for key in sorted(k.decode() if isinstance(k, bytes) else k for k in keys):
            parsed = self._parse_key(key)
            if parsed is None:
                continue
            kind, name, labels = parsed

            value = await self._redis.get(key)
            if value is None:
                # Expired between SCAN and GET
                continue

            full_name = f"{self._namespace}_{name}"
            label_str = ",".join(f'{k}="{v}"' for k, v in labels.items())
            sample = f"{full_name}{{{label_str}}}" if label_str else full_name
            series.setdefault(full_name, (kind, []))[1].append(f"{sample} {float(value)}")

        lines = []
        for full_name, (kind, samples) in sorted(series.items()):
            lines.append(f"# TYPE {full_name} {COUNTER if kind == COUNTER else GAUGE}")
            lines.extend(samples)
        return "\n".join(lines)


class KdsMetrics:
    """
    The distribution cycle's metrics.

    Recording never raises: a Redis failure is logged and the cycle goes on.

        metrics = KdsMetrics(MetricsRegistry(redis))
        await metrics.orders_distributed({3: 2, 4: 1})
    """

    def __init__(self, registry: MetricsRegistry):
        self._registry = registry

    @property
    def registry(self) -> MetricsRegistry:
        return self._registry

    async def orders_distributed(self, per_screen: dict[int, int]) -> None:
        try:
            for screen_id, count in per_screen.items():
                if count:
                    await self._registry.counter_inc(
                        "orders_distributed_total", count, labels={"screen_id": str(screen_id)}
                    )
        except (RedisError, OSError) as e:
            logger.warning("Could not record distribution metrics", error=str(e))

    async def cycle_completed(self, duration_seconds: float, failed: bool = False) -> None:
        try:
            await self._registry.counter_inc("poll_cycles_total")
            if failed:
                await self._registry.counter_inc("poll_cycle_errors_total")
            await self._registry.gauge_set("last_cycle_duration_seconds", round(duration_seconds, 4))
        except (RedisError, OSError) as e:
            logger.warning("Could not record cycle metrics", error=str(e))

    async def export(self) -> str:
        return await self._registry.export_prometheus()
