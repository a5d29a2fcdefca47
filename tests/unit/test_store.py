"""Unit tests for order snapshot storage."""

from collections.abc import Generator
from unittest.mock import AsyncMock, patch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from orderflow.core.config import settings
from orderflow.core.errors import StoreUnavailableError, WorkItemNotFoundError
from orderflow.core.store import InMemoryWorkItemStore, RedisWorkItemStore, create_store
from orderflow.domain.work_item import Assignment, WorkItem


@pytest.fixture(autouse=True)
def mock_asyncio_sleep() -> Generator[AsyncMock, None, None]:
    """Mock asyncio.sleep to avoid actual delays in retry tests."""
    with patch("orderflow.core.store.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
        yield mock_sleep


@pytest.fixture
def item():
    return WorkItem(owner_id="customer-1", payload={"items": ["tacos"]})


@pytest.mark.unit
class TestInMemoryStore:
    async def test_put_then_get_returns_equal_snapshot(self, item):
        store = InMemoryWorkItemStore()

        await store.put(item)
        loaded = await store.get(item.id)

        assert loaded == item
        assert len(store) == 1

    async def test_snapshots_are_not_shared(self, item):
        store = InMemoryWorkItemStore()
        await store.put(item)

        loaded = await store.get(item.id)
        loaded.assignment_history.append(Assignment(candidate_id="driver-a"))

        assert (await store.get(item.id)).assignment_history == []

    async def test_get_missing_raises_not_found(self):
        store = InMemoryWorkItemStore()

        with pytest.raises(WorkItemNotFoundError) as exc_info:
            await store.get("nope")
        assert exc_info.value.work_item_id == "nope"

    async def test_delete(self, item):
        store = InMemoryWorkItemStore()
        await store.put(item)

        await store.delete(item.id)

        with pytest.raises(WorkItemNotFoundError):
            await store.get(item.id)
        with pytest.raises(WorkItemNotFoundError):
            await store.delete(item.id)


@pytest.mark.unit
class TestRedisStore:
    async def test_get_decodes_snapshot(self, item):
        client = AsyncMock()
        client.get = AsyncMock(return_value=item.model_dump_json())
        store = RedisWorkItemStore("redis://unused", client=client)

        loaded = await store.get(item.id)

        assert loaded == item
        client.get.assert_awaited_once_with(f"orderflow:work_item:{item.id}")

    async def test_get_missing_raises_not_found_without_retry(self):
        client = AsyncMock()
        client.get = AsyncMock(return_value=None)
        store = RedisWorkItemStore("redis://unused", client=client)

        with pytest.raises(WorkItemNotFoundError):
            await store.get("nope")
        assert client.get.await_count == 1

    async def test_put_retries_then_succeeds(self, item, mock_asyncio_sleep):
        client = AsyncMock()
        client.set = AsyncMock(side_effect=[RedisConnectionError("First failure"), None])
        store = RedisWorkItemStore("redis://unused", client=client)

        await store.put(item)

        assert client.set.await_count == 2
        mock_asyncio_sleep.assert_awaited_once()

    async def test_persistent_failure_raises_store_unavailable(self, item):
        client = AsyncMock()
        client.get = AsyncMock(side_effect=RedisConnectionError("Always fails"))
        store = RedisWorkItemStore("redis://unused", client=client)

        with pytest.raises(StoreUnavailableError):
            await store.get(item.id)
        assert client.get.await_count == 3

    async def test_ping_reports_failure(self):
        client = AsyncMock()
        client.ping = AsyncMock(side_effect=RedisConnectionError("down"))
        store = RedisWorkItemStore("redis://unused", client=client)

        assert await store.ping() is False


@pytest.mark.unit
def test_create_store_defaults_to_memory():
    assert isinstance(create_store(), InMemoryWorkItemStore)


@pytest.mark.unit
def test_create_store_uses_redis_when_configured(monkeypatch):
    monkeypatch.setattr(settings, "redis_url", "redis://localhost:6379/0")

    assert isinstance(create_store(), RedisWorkItemStore)
