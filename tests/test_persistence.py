"""
State store backends
"""
import json
import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from breakwatch.config import Settings, StoreBackend
from breakwatch.errors import ErrorCode, StoreError
from breakwatch.services.persistence import (
    FileStateStore,
    RedisStateStore,
    create_state_store,
)


# === FILE BACKEND ===

@pytest.mark.asyncio
async def test_file_store_json_and_hash_survive_reopen(tmp_path):
    path = tmp_path / "nested" / "state.json"
    store = FileStateStore(str(path))
    await store.set_json("breakwatch:watchlist", [{"symbol": "INFY"}])
    await store.hash_set("breakwatch:alerts", "k1", "v1")

    reopened = FileStateStore(str(path))
    assert await reopened.get_json("breakwatch:watchlist") == [{"symbol": "INFY"}]
    assert await reopened.hash_get_all("breakwatch:alerts") == {"k1": "v1"}
    assert await reopened.get_json("missing") is None


@pytest.mark.asyncio
async def test_file_store_set_if_absent(file_store):
    assert await file_store.hash_set_if_absent("h", "f", "first") is True
    assert await file_store.hash_set_if_absent("h", "f", "second") is False
    assert await file_store.hash_get_all("h") == {"f": "first"}


@pytest.mark.asyncio
async def test_file_store_increment_keeps_strings(file_store):
    await file_store.hash_increment("stats", {"apiCalls": 2}, {"lastFlushed": "t1"})
    await file_store.hash_increment("stats", {"apiCalls": 3, "cacheHits": 1})

    assert await file_store.hash_get_all("stats") == {
        "apiCalls": "5", "cacheHits": "1", "lastFlushed": "t1"
    }


@pytest.mark.asyncio
async def test_corrupt_file_raises_store_error(tmp_path):
    path = tmp_path / "state.json"
    path.write_text("{not json")
    store = FileStateStore(str(path))

    with pytest.raises(StoreError) as exc:
        await store.get_json("anything")
    assert exc.value.code == ErrorCode.STORE_FAILURE
    assert exc.value.retryable is True


# === REDIS BACKEND ===

@pytest.fixture
def redis_store():
    with patch("breakwatch.services.persistence.redis.from_url") as from_url:
        from_url.return_value = AsyncMock()
        yield RedisStateStore("redis://test:6379")


@pytest.mark.asyncio
async def test_redis_set_if_absent_uses_hsetnx(redis_store):
    redis_store.redis.hsetnx.return_value = 0

    assert await redis_store.hash_set_if_absent("alerts", "key", "{}") is False
    redis_store.redis.hsetnx.assert_awaited_once_with("alerts", "key", "{}")


@pytest.mark.asyncio
async def test_redis_get_json_decodes(redis_store):
    redis_store.redis.get.return_value = json.dumps([1, 2])
    assert await redis_store.get_json("k") == [1, 2]


@pytest.mark.asyncio
async def test_redis_errors_are_wrapped(redis_store):
    redis_store.redis.hgetall.side_effect = ConnectionError("refused")

    with pytest.raises(StoreError):
        await redis_store.hash_get_all("k")


@pytest.mark.asyncio
async def test_redis_increment_is_one_transaction(redis_store):
    pipe = MagicMock()
    pipe.execute = AsyncMock()
    ctx = MagicMock()
    ctx.__aenter__ = AsyncMock(return_value=pipe)
    ctx.__aexit__ = AsyncMock(return_value=False)
    redis_store.redis.pipeline = MagicMock(return_value=ctx)

    await redis_store.hash_increment("stats", {"apiCalls": 2, "cacheHits": 1}, {"lastFlushed": "t"})

    redis_store.redis.pipeline.assert_called_once_with(transaction=True)
    assert pipe.hincrby.call_count == 2
    pipe.hset.assert_called_once_with("stats", mapping={"lastFlushed": "t"})
    pipe.execute.assert_awaited_once()


# === FACTORY ===

def test_factory_picks_backend(tmp_path):
    file_cfg = Settings(STORE_BACKEND=StoreBackend.FILE, STATE_FILE=str(tmp_path / "s.json"))
    assert isinstance(create_state_store(file_cfg), FileStateStore)

    with patch("breakwatch.services.persistence.redis.from_url"):
        redis_cfg = Settings(STORE_BACKEND=StoreBackend.REDIS)
        assert isinstance(create_state_store(redis_cfg), RedisStateStore)
