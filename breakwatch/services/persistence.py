# breakwatch/services/persistence.py

import asyncio
import json
import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Optional

import redis.asyncio as redis

from breakwatch.config import Settings, StoreBackend
from breakwatch.errors import StoreError

logger = logging.getLogger(__name__)


class StateStore(ABC):
    """
    Durable state shared by every process instance.
    Holds the watchlist, the alerts hash, cumulative call stats and the
    snapshot counters. Per-instance caches never go through here.

    Failures raise StoreError; callers decide whether to degrade.
    """

    @abstractmethod
    async def get_json(self, key: str) -> Optional[Any]:
        ...

    @abstractmethod
    async def set_json(self, key: str, value: Any) -> None:
        ...

    @abstractmethod
    async def hash_get_all(self, key: str) -> Dict[str, str]:
        ...

    @abstractmethod
    async def hash_set(self, key: str, field: str, value: str) -> None:
        ...

    @abstractmethod
    async def hash_set_if_absent(self, key: str, field: str, value: str) -> bool:
        """Atomic insert. True when the field did not exist and was written."""
        ...

    @abstractmethod
    async def hash_increment(
        self, key: str, increments: Dict[str, int], fields: Optional[Dict[str, str]] = None
    ) -> None:
        """Apply all increments (and plain field writes) as one unit."""
        ...

    async def close(self) -> None:
        pass


class RedisStateStore(StateStore):
    """Shared Redis backend for multi-instance deployments."""

    def __init__(self, url: str):
        # decode_responses=True ensures we get Strings, not Bytes
        self.redis = redis.from_url(url, decode_responses=True)

    async def get_json(self, key: str) -> Optional[Any]:
        try:
            raw = await self.redis.get(key)
        except Exception as e:
            raise StoreError(f"Redis read failed for {key}: {e}") from e
        return json.loads(raw) if raw else None

    async def set_json(self, key: str, value: Any) -> None:
        try:
            await self.redis.set(key, json.dumps(value))
        except Exception as e:
            raise StoreError(f"Redis write failed for {key}: {e}") from e

    async def hash_get_all(self, key: str) -> Dict[str, str]:
        try:
            return await self.redis.hgetall(key) or {}
        except Exception as e:
            raise StoreError(f"Redis hash read failed for {key}: {e}") from e

    async def hash_set(self, key: str, field: str, value: str) -> None:
        try:
            await self.redis.hset(key, field, value)
        except Exception as e:
            raise StoreError(f"Redis hash write failed for {key}: {e}") from e

    async def hash_set_if_absent(self, key: str, field: str, value: str) -> bool:
        try:
            return bool(await self.redis.hsetnx(key, field, value))
        except Exception as e:
            raise StoreError(f"Redis HSETNX failed for {key}: {e}") from e

    async def hash_increment(
        self, key: str, increments: Dict[str, int], fields: Optional[Dict[str, str]] = None
    ) -> None:
        try:
            async with self.redis.pipeline(transaction=True) as pipe:
                for name, amount in increments.items():
                    pipe.hincrby(key, name, amount)
                if fields:
                    pipe.hset(key, mapping=fields)
                await pipe.execute()
        except Exception as e:
            raise StoreError(f"Redis increment failed for {key}: {e}") from e

    async def close(self) -> None:
        await self.redis.close()


class FileStateStore(StateStore):
    """
    Single-instance JSON file backend.
    Hash values are kept as strings so both backends read back identically.
    Every operation is serialized under one lock and rewrites the file
    atomically (temp file + replace).
    """

    def __init__(self, path: str):
        self.path = Path(path)
        self._lock = asyncio.Lock()

    # ---- file helpers (run in a worker thread) ----

    def _read(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {"kv": {}, "hashes": {}}
        with open(self.path, "r", encoding="utf-8") as f:
            data = json.load(f)
        data.setdefault("kv", {})
        data.setdefault("hashes", {})
        return data

    def _write(self, data: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(data, f)
        os.replace(tmp, self.path)

    async def _load(self) -> Dict[str, Any]:
        try:
            return await asyncio.to_thread(self._read)
        except (OSError, ValueError) as e:
            raise StoreError(f"State file read failed ({self.path}): {e}") from e

    async def _save(self, data: Dict[str, Any]) -> None:
        try:
            await asyncio.to_thread(self._write, data)
        except OSError as e:
            raise StoreError(f"State file write failed ({self.path}): {e}") from e

    # ---- StateStore ----

    async def get_json(self, key: str) -> Optional[Any]:
        async with self._lock:
            data = await self._load()
        return data["kv"].get(key)

    async def set_json(self, key: str, value: Any) -> None:
        async with self._lock:
            data = await self._load()
            data["kv"][key] = value
            await self._save(data)

    async def hash_get_all(self, key: str) -> Dict[str, str]:
        async with self._lock:
            data = await self._load()
        return dict(data["hashes"].get(key, {}))

    async def hash_set(self, key: str, field: str, value: str) -> None:
        async with self._lock:
            data = await self._load()
            data["hashes"].setdefault(key, {})[field] = value
            await self._save(data)

    async def hash_set_if_absent(self, key: str, field: str, value: str) -> bool:
        async with self._lock:
            data = await self._load()
            bucket = data["hashes"].setdefault(key, {})
            if field in bucket:
                return False
            bucket[field] = value
            await self._save(data)
            return True

    async def hash_increment(
        self, key: str, increments: Dict[str, int], fields: Optional[Dict[str, str]] = None
    ) -> None:
        async with self._lock:
            data = await self._load()
            bucket = data["hashes"].setdefault(key, {})
            for name, amount in increments.items():
                bucket[name] = str(int(bucket.get(name, 0)) + amount)
            if fields:
                bucket.update(fields)
            await self._save(data)


def create_state_store(config: Settings) -> StateStore:
    """Backend is chosen once at startup; nothing downstream branches on it."""
    if config.STORE_BACKEND == StoreBackend.REDIS:
        logger.info(f"Using Redis state store at {config.REDIS_URL}")
        return RedisStateStore(config.REDIS_URL)
    logger.info(f"Using file state store at {config.STATE_FILE}")
    return FileStateStore(config.STATE_FILE)
