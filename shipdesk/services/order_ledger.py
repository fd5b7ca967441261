"""
Order ledger: completed orders keyed by idempotency key (the admin page's pkgId).

The ledger is what stops the same order from having its labels bought twice.
Storage is pluggable:
- InMemoryOrderLedger: process memory, lost on restart (default)
- RedisOrderLedger: shared across instances when REDIS_URL is set

Both expose the same atomic primitives, so the purchase flow can claim a key
before spending money and two concurrent requests for one order cannot both
get through.
"""
import asyncio
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Set

import redis.asyncio as redis

from shipdesk.core.config import Settings
from shipdesk.services.label_purchaser import LabelResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrderRecord:
    """A finished order. Written once, never updated."""
    method: str
    delivery: str
    total: str
    labels: List[LabelResult] = field(default_factory=list)
    completed_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> dict:
        return {
            "method": self.method,
            "delivery": self.delivery,
            "total": self.total,
            "labels": [label.to_dict() for label in self.labels],
            "completed_at": self.completed_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "OrderRecord":
        labels = [
            LabelResult(
                package_index=item.get("packageIndex", 0),
                tracking_number=item.get("tracking_number"),
                label_url=item.get("label_url"),
                tracking_url=item.get("tracking_url"),
            )
            for item in data.get("labels", [])
        ]
        return cls(
            method=data.get("method", "N/A"),
            delivery=data.get("delivery", "N/A"),
            total=data.get("total", "N/A"),
            labels=labels,
            completed_at=data.get("completed_at", ""),
        )


class OrderLedger(ABC):
    """Storage boundary for completed orders."""

    @abstractmethod
    async def get(self, key: str) -> Optional[OrderRecord]:
        """Return the completed order for key, or None."""

    @abstractmethod
    async def put_if_absent(self, key: str, record: OrderRecord) -> bool:
        """Store record unless key already has one. Returns True if stored."""

    @abstractmethod
    async def reserve(self, key: str) -> bool:
        """
        Atomically claim key for an in-flight purchase.

        Returns False if the key is already completed or claimed.
        """

    @abstractmethod
    async def release(self, key: str) -> None:
        """Drop an in-flight claim (after success or failure)."""

    async def close(self) -> None:
        return None


class InMemoryOrderLedger(OrderLedger):
    """Process-local ledger. One asyncio.Lock covers both check and write."""

    def __init__(self):
        self._orders: Dict[str, OrderRecord] = {}
        self._claims: Set[str] = set()
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> Optional[OrderRecord]:
        return self._orders.get(key)

    async def put_if_absent(self, key: str, record: OrderRecord) -> bool:
        async with self._lock:
            if key in self._orders:
                return False
            self._orders[key] = record
            return True

    async def reserve(self, key: str) -> bool:
        async with self._lock:
            if key in self._orders or key in self._claims:
                return False
            self._claims.add(key)
            return True

    async def release(self, key: str) -> None:
        async with self._lock:
            self._claims.discard(key)

    def __len__(self) -> int:
        return len(self._orders)


ORDER_KEY_PREFIX = "shipdesk:order:"
CLAIM_KEY_PREFIX = "shipdesk:order-claim:"


class RedisOrderLedger(OrderLedger):
    """
    Redis-backed ledger for multi-instance deployments.

    Records and claims both use SET NX. Claims carry a TTL so a crashed
    worker cannot block an order forever.
    """

    def __init__(self, client: redis.Redis, claim_ttl_seconds: int = 600):
        self._client = client
        self._claim_ttl = claim_ttl_seconds

    @classmethod
    def from_url(cls, url: str, claim_ttl_seconds: int = 600) -> "RedisOrderLedger":
        client = redis.from_url(url, encoding="utf-8", decode_responses=True)
        return cls(client, claim_ttl_seconds=claim_ttl_seconds)

    async def get(self, key: str) -> Optional[OrderRecord]:
        data = await self._client.get(f"{ORDER_KEY_PREFIX}{key}")
        if not data:
            return None
        return OrderRecord.from_dict(json.loads(data))

    async def put_if_absent(self, key: str, record: OrderRecord) -> bool:
        stored = await self._client.set(
            f"{ORDER_KEY_PREFIX}{key}",
            json.dumps(record.to_dict()),
            nx=True,
        )
        return bool(stored)

    async def reserve(self, key: str) -> bool:
        if await self._client.exists(f"{ORDER_KEY_PREFIX}{key}"):
            return False
        claimed = await self._client.set(
            f"{CLAIM_KEY_PREFIX}{key}",
            "1",
            nx=True,
            ex=self._claim_ttl,
        )
        if not claimed:
            return False
        # The previous claimant may have recorded and released between our two calls.
        if await self._client.exists(f"{ORDER_KEY_PREFIX}{key}"):
            await self.release(key)
            return False
        return True

    async def release(self, key: str) -> None:
        await self._client.delete(f"{CLAIM_KEY_PREFIX}{key}")

    async def close(self) -> None:
        await self._client.aclose()


def get_order_ledger(settings: Settings) -> OrderLedger:
    """Pick the ledger backend from settings."""
    if settings.REDIS_URL:
        logger.info("Order ledger: Redis")
        return RedisOrderLedger.from_url(settings.REDIS_URL, claim_ttl_seconds=settings.ORDER_CLAIM_TTL_SECONDS)
    logger.info("Order ledger: in-memory (orders are forgotten on restart)")
    return InMemoryOrderLedger()
