"""Counter store adapter over ``redis.asyncio``.

Every primitive the engine needs is expressed here so that recorders and
readers never touch raw Redis replies:

- atomic increments (``INCR`` / ``HINCRBY`` / ``ZINCRBY``)
- bounded list push + trim (``LPUSH`` + ``LTRIM``)
- set-once expiry (``EXPIRE ... NX``) so windows are fixed, never sliding
- fixed-window limiter steps (``INCR`` + ``PTTL``, ``PEXPIRE``, ``DECR``, ``DEL``)
- ping / info probes

Related writes for one logical event are queued on a :class:`CounterBatch`
and sent in a single ``MULTI``/``EXEC`` round trip.

Replies are normalized whether the client was created with
``decode_responses=True`` or not.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from datetime import UTC, datetime
from typing import Any

from redis.exceptions import RedisError

from tally.errors import MalformedStoredValue, StoreUnavailable

logger = logging.getLogger(__name__)


def decode_text(value: object) -> str | None:
    if isinstance(value, str):
        return value
    if isinstance(value, bytes):
        try:
            return value.decode()
        except UnicodeDecodeError:
            return None
    return None


def parse_int(key: str, raw_value: object) -> int:
    """Parse a stored integer. Missing values read as zero."""
    if raw_value is None:
        return 0
    if isinstance(raw_value, int):
        return raw_value
    text = decode_text(raw_value)
    if text is None:
        raise MalformedStoredValue(key, raw_value)
    try:
        return int(float(text))
    except ValueError as exc:
        raise MalformedStoredValue(key, raw_value) from exc


def parse_float(key: str, raw_value: object) -> float:
    if isinstance(raw_value, int | float):
        return float(raw_value)
    text = decode_text(raw_value)
    if text is None:
        raise MalformedStoredValue(key, raw_value)
    try:
        return float(text)
    except ValueError as exc:
        raise MalformedStoredValue(key, raw_value) from exc


def int_mapping(key: str, raw_mapping: object) -> dict[str, int]:
    """Decode an ``HGETALL`` reply of counters, skipping malformed fields."""
    if not isinstance(raw_mapping, Mapping):
        return {}
    result: dict[str, int] = {}
    for raw_field, raw_value in raw_mapping.items():
        field = decode_text(raw_field)
        if not field:
            continue
        try:
            result[field] = parse_int(key, raw_value)
        except MalformedStoredValue:
            logger.warning("Ignoring malformed hash field %s at %s", field, key)
    return result


def text_mapping(raw_mapping: object) -> dict[str, str]:
    if not isinstance(raw_mapping, Mapping):
        return {}
    result: dict[str, str] = {}
    for raw_field, raw_value in raw_mapping.items():
        field = decode_text(raw_field)
        value = decode_text(raw_value)
        if field and value is not None:
            result[field] = value
    return result


def parse_epoch_ms(raw_value: object) -> datetime | None:
    """Decode a stored epoch-milliseconds timestamp."""
    text = decode_text(raw_value)
    if not text:
        return None
    try:
        return datetime.fromtimestamp(int(text) / 1000, UTC)
    except (ValueError, OverflowError, OSError):
        return None


def text_list(raw_values: object) -> list[str]:
    if not isinstance(raw_values, list | tuple):
        return []
    return [text for text in (decode_text(item) for item in raw_values) if text is not None]


class CounterBatch:
    """Queued writes that execute atomically in one round trip."""

    def __init__(self, pipeline: Any) -> None:
        self._pipe = pipeline
        self._size = 0

    def __len__(self) -> int:
        return self._size

    def _expire_once(self, key: str, ttl_seconds: int | None) -> None:
        if ttl_seconds:
            self._pipe.expire(key, ttl_seconds, nx=True)
            self._size += 1

    def incr(self, key: str, *, ttl_seconds: int | None = None) -> CounterBatch:
        self._pipe.incr(key)
        self._size += 1
        self._expire_once(key, ttl_seconds)
        return self

    def hincr(
        self,
        key: str,
        field: str,
        amount: int = 1,
        *,
        ttl_seconds: int | None = None,
    ) -> CounterBatch:
        self._pipe.hincrby(key, field, amount)
        self._size += 1
        self._expire_once(key, ttl_seconds)
        return self

    def zincr(
        self,
        key: str,
        member: str,
        amount: float = 1,
        *,
        ttl_seconds: int | None = None,
    ) -> CounterBatch:
        self._pipe.zincrby(key, amount, member)
        self._size += 1
        self._expire_once(key, ttl_seconds)
        return self

    def push_bounded(
        self,
        key: str,
        value: str | int | float,
        max_len: int,
        *,
        ttl_seconds: int | None = None,
    ) -> CounterBatch:
        """Prepend ``value`` and keep only the newest ``max_len`` entries."""
        self._pipe.lpush(key, value)
        self._pipe.ltrim(key, 0, max_len - 1)
        self._size += 2
        self._expire_once(key, ttl_seconds)
        return self

    def set_value(
        self,
        key: str,
        value: str | int | float,
        *,
        ttl_seconds: int | None = None,
    ) -> CounterBatch:
        self._pipe.set(key, value)
        self._size += 1
        self._expire_once(key, ttl_seconds)
        return self

    def hset(
        self,
        key: str,
        field: str,
        value: str | int | float,
        *,
        ttl_seconds: int | None = None,
    ) -> CounterBatch:
        self._pipe.hset(key, field, value)
        self._size += 1
        self._expire_once(key, ttl_seconds)
        return self

    async def execute(self) -> list[Any]:
        if self._size == 0:
            return []
        try:
            return await self._pipe.execute()
        except RedisError as exc:
            raise StoreUnavailable(f"Batch of {self._size} commands failed: {exc}") from exc


class CounterStore:
    """Thin async interface over a shared Redis client."""

    def __init__(self, redis_client: Any) -> None:
        self._redis = redis_client

    def batch(self, *, transaction: bool = True) -> CounterBatch:
        return CounterBatch(self._redis.pipeline(transaction=transaction))

    async def _call(self, command: str, *args: Any, **kwargs: Any) -> Any:
        try:
            return await getattr(self._redis, command)(*args, **kwargs)
        except RedisError as exc:
            raise StoreUnavailable(f"{command.upper()} failed: {exc}") from exc

    async def get_ints(self, keys: Sequence[str]) -> list[int]:
        """``MGET`` a set of counters. Malformed entries read as zero."""
        if not keys:
            return []
        raw_values = await self._call("mget", list(keys))
        values: list[int] = []
        for key, raw_value in zip(keys, raw_values, strict=False):
            try:
                values.append(parse_int(key, raw_value))
            except MalformedStoredValue:
                logger.warning("Ignoring malformed counter at %s", key)
                values.append(0)
        return values

    async def get_text(self, key: str) -> str | None:
        return decode_text(await self._call("get", key))

    async def set_text(self, key: str, value: str, *, ttl_seconds: int) -> None:
        await self._call("set", key, value, ex=ttl_seconds)

    async def list_range(self, key: str, count: int | None = None) -> list[str]:
        """Newest-first list entries (all of them when ``count`` is None)."""
        stop = -1 if count is None else max(count, 1) - 1
        return text_list(await self._call("lrange", key, 0, stop))

    async def list_ranges(self, keys: Sequence[str]) -> list[list[str]]:
        """Read several whole lists in one round trip."""
        if not keys:
            return []
        pipe = self.read_pipeline()
        for key in keys:
            pipe.lrange(key, 0, -1)
        results = await self.execute(pipe)
        return [text_list(raw) for raw in results]

    def read_pipeline(self) -> Any:
        """Non-transactional pipeline for batching independent reads."""
        return self._redis.pipeline(transaction=False)

    async def execute(self, pipeline: Any) -> list[Any]:
        try:
            return await pipeline.execute()
        except RedisError as exc:
            raise StoreUnavailable(f"Read pipeline failed: {exc}") from exc

    async def hash_ints(self, key: str) -> dict[str, int]:
        return int_mapping(key, await self._call("hgetall", key))

    async def hash_texts(self, key: str) -> dict[str, str]:
        return text_mapping(await self._call("hgetall", key))

    async def top(self, key: str, count: int | None = None) -> list[tuple[str, int]]:
        """Highest-scoring members of a sorted set, descending.

        Returns every member when ``count`` is None.
        """
        if count is not None and count <= 0:
            return []
        stop = -1 if count is None else count - 1
        raw_pairs = await self._call("zrevrange", key, 0, stop, withscores=True)
        ranked: list[tuple[str, int]] = []
        for raw_member, raw_score in raw_pairs or []:
            member = decode_text(raw_member)
            if not member:
                continue
            ranked.append((member, int(parse_float(key, raw_score))))
        return ranked

    async def incr_with_pttl(self, key: str) -> tuple[int, int]:
        """``INCR`` then ``PTTL`` in one ``MULTI``; returns (value, pttl ms)."""
        pipe = self._redis.pipeline(transaction=True)
        pipe.incr(key)
        pipe.pttl(key)
        try:
            total_raw, ttl_raw = await pipe.execute()
        except RedisError as exc:
            raise StoreUnavailable(f"INCR/PTTL failed: {exc}") from exc
        return parse_int(key, total_raw), parse_int(key, ttl_raw)

    async def pexpire(self, key: str, ttl_ms: int) -> None:
        await self._call("pexpire", key, ttl_ms)

    async def decr(self, key: str) -> int:
        return parse_int(key, await self._call("decr", key))

    async def delete(self, key: str) -> None:
        await self._call("delete", key)

    async def ping(self) -> bool:
        pong = await self._call("ping")
        return pong is True or decode_text(pong) == "PONG"

    async def info(self, section: str | None = None) -> dict[str, Any]:
        if section:
            info = await self._call("info", section)
        else:
            info = await self._call("info")
        return dict(info) if isinstance(info, Mapping) else {}


__all__ = [
    "CounterBatch",
    "CounterStore",
    "decode_text",
    "int_mapping",
    "parse_epoch_ms",
    "parse_float",
    "parse_int",
    "text_list",
    "text_mapping",
]
