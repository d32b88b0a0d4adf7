from __future__ import annotations

import json
import logging
import threading
import time
from abc import ABC, abstractmethod
from datetime import date

import redis

from dental_booking.services.slots import TimeSlot

logger = logging.getLogger("dental_booking.slot_cache")

CacheKey = tuple[date, int, int]


class SlotCache(ABC):
    """Short-lived cache of available slots keyed by (date, duration, buffer).

    Entries are stored under a generation token read with ``generation``
    before the appointments were loaded. ``invalidate`` and ``clear`` move
    the token on, so a result computed from appointments read before a
    write can be stored but is never served.
    """

    def __init__(self, *, ttl_seconds: int) -> None:
        self.ttl_seconds = ttl_seconds

    @abstractmethod
    def generation(self, target: date) -> str | None:
        """Current token for ``target``; None when the cache cannot be used."""

    @abstractmethod
    def get(self, key: CacheKey, *, generation: str) -> list[TimeSlot] | None:
        ...

    @abstractmethod
    def set(self, key: CacheKey, slots: list[TimeSlot], *, generation: str) -> None:
        ...

    @abstractmethod
    def invalidate(self, target: date) -> None:
        ...

    @abstractmethod
    def clear(self) -> None:
        ...


def _encode(slots: list[TimeSlot]) -> str:
    return json.dumps([[slot.start_minute, slot.end_minute] for slot in slots])


def _decode(raw: str | bytes) -> list[TimeSlot]:
    return [TimeSlot(start_minute=start, end_minute=end) for start, end in json.loads(raw)]


def _token(epoch: int, generation: int) -> str:
    return f"{epoch}.{generation}"


class InMemorySlotCache(SlotCache):
    """Process-local cache; only correct for a single app instance."""

    def __init__(self, *, ttl_seconds: int) -> None:
        super().__init__(ttl_seconds=ttl_seconds)
        self._lock = threading.Lock()
        self._epoch = 0
        self._generations: dict[date, int] = {}
        self._entries: dict[date, dict[tuple[int, int], tuple[str, float, list[TimeSlot]]]] = {}

    def _current(self, target: date) -> str:
        return _token(self._epoch, self._generations.get(target, 0))

    def generation(self, target: date) -> str | None:
        with self._lock:
            return self._current(target)

    def get(self, key: CacheKey, *, generation: str) -> list[TimeSlot] | None:
        target, duration, buffer = key
        now = time.monotonic()
        with self._lock:
            entry = self._entries.get(target, {}).get((duration, buffer))
            if entry is None:
                return None
            stored_generation, expires_at, slots = entry
            if expires_at <= now or stored_generation != self._current(target):
                del self._entries[target][(duration, buffer)]
                return None
            if stored_generation != generation:
                return None
            return list(slots)

    def set(self, key: CacheKey, slots: list[TimeSlot], *, generation: str) -> None:
        if self.ttl_seconds <= 0:
            return
        target, duration, buffer = key
        with self._lock:
            if generation != self._current(target):
                return
            self._entries.setdefault(target, {})[(duration, buffer)] = (
                generation,
                time.monotonic() + self.ttl_seconds,
                list(slots),
            )

    def invalidate(self, target: date) -> None:
        with self._lock:
            self._generations[target] = self._generations.get(target, 0) + 1
            self._entries.pop(target, None)

    def clear(self) -> None:
        with self._lock:
            self._epoch += 1
            self._entries.clear()


class RedisSlotCache(SlotCache):
    KEY_PATTERN = "dental_booking:slots:{date}:{generation}:{duration}:{buffer}"
    GENERATION_KEY = "dental_booking:slot_generation:{date}"
    EPOCH_KEY = "dental_booking:slot_generation"

    def __init__(self, client: redis.Redis, *, ttl_seconds: int) -> None:
        super().__init__(ttl_seconds=ttl_seconds)
        self.client = client

    @classmethod
    def from_url(cls, url: str, *, ttl_seconds: int) -> "RedisSlotCache":
        return cls(redis.Redis.from_url(url, retry_on_timeout=True), ttl_seconds=ttl_seconds)

    def _key(self, key: CacheKey, generation: str) -> str:
        target, duration, buffer = key
        return self.KEY_PATTERN.format(
            date=target.isoformat(), generation=generation, duration=duration, buffer=buffer
        )

    def generation(self, target: date) -> str | None:
        try:
            epoch, current = self.client.mget(
                [self.EPOCH_KEY, self.GENERATION_KEY.format(date=target.isoformat())]
            )
        except redis.RedisError as exc:
            logger.warning("Slot cache unavailable, computing fresh: %s", exc)
            return None
        return _token(int(epoch or 0), int(current or 0))

    def get(self, key: CacheKey, *, generation: str) -> list[TimeSlot] | None:
        try:
            raw = self.client.get(self._key(key, generation))
        except redis.RedisError as exc:
            logger.warning("Slot cache read failed, computing fresh: %s", exc)
            return None
        if raw is None:
            return None
        return _decode(raw)

    def set(self, key: CacheKey, slots: list[TimeSlot], *, generation: str) -> None:
        if self.ttl_seconds <= 0:
            return
        try:
            self.client.setex(self._key(key, generation), self.ttl_seconds, _encode(slots))
        except redis.RedisError as exc:
            logger.warning("Slot cache write failed: %s", exc)

    def _bump(self, counter_key: str) -> None:
        try:
            self.client.incr(counter_key)
        except redis.RedisError as exc:
            logger.error(
                "Slot cache invalidation failed for %s; entries expire in %ss: %s",
                counter_key,
                self.ttl_seconds,
                exc,
            )

    def invalidate(self, target: date) -> None:
        self._bump(self.GENERATION_KEY.format(date=target.isoformat()))

    def clear(self) -> None:
        self._bump(self.EPOCH_KEY)


def build_slot_cache(url: str | None, *, ttl_seconds: int) -> SlotCache:
    if url:
        return RedisSlotCache.from_url(url, ttl_seconds=ttl_seconds)
    return InMemorySlotCache(ttl_seconds=ttl_seconds)
