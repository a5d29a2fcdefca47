"""Order snapshot storage: in-memory and Redis-backed implementations.

The store persists whole snapshots keyed by order ID. It never changes
business state itself; the assignment engine reads a snapshot, mutates it in
memory and writes it back.
"""

import asyncio
import logging
from collections.abc import Callable, Coroutine
from functools import wraps
from typing import Any, Protocol, TypeVar

from redis.asyncio import Redis
from redis.asyncio.connection import ConnectionPool
from redis.exceptions import RedisError

from orderflow.core.config import Constants, settings
from orderflow.core.errors import StoreUnavailableError, WorkItemNotFoundError
from orderflow.domain.work_item import WorkItem


logger = logging.getLogger(__name__)

T = TypeVar("T")


class WorkItemStore(Protocol):
    """Keyed snapshot storage for orders."""

    async def get(self, work_item_id: str) -> WorkItem:
        """Return the current snapshot or raise WorkItemNotFoundError."""
        ...

    async def put(self, item: WorkItem) -> None:
        """Overwrite the snapshot stored under item.id."""
        ...

    async def delete(self, work_item_id: str) -> None:
        """Remove a snapshot or raise WorkItemNotFoundError."""
        ...

    async def ping(self) -> bool:
        """Return True when the backing storage is reachable."""
        ...


class InMemoryWorkItemStore:
    """Dict-backed store holding serialized snapshots.

    Snapshots are stored as JSON so callers never share mutable instances
    with the store.
    """

    def __init__(self) -> None:
        self._records: dict[str, str] = {}

    async def get(self, work_item_id: str) -> WorkItem:
        raw = self._records.get(work_item_id)
        if raw is None:
            raise WorkItemNotFoundError(work_item_id)
        return WorkItem.model_validate_json(raw)

    async def put(self, item: WorkItem) -> None:
        self._records[item.id] = item.model_dump_json()

    async def delete(self, work_item_id: str) -> None:
        if self._records.pop(work_item_id, None) is None:
            raise WorkItemNotFoundError(work_item_id)

    async def ping(self) -> bool:
        return True

    def __len__(self) -> int:
        return len(self._records)


def with_retry(
    max_retries: int = Constants.STORE_MAX_RETRIES,
    base_delay: float = Constants.STORE_RETRY_BASE_DELAY_SECONDS,
) -> Callable[[Callable[..., Coroutine[Any, Any, T]]], Callable[..., Coroutine[Any, Any, T]]]:
    """Decorator to retry Redis operations with exponential backoff.

    After the last attempt the RedisError is wrapped in StoreUnavailableError
    so callers can tell infrastructure failures from business-rule failures.
    """

    def decorator(func: Callable[..., Coroutine[Any, Any, T]]) -> Callable[..., Coroutine[Any, Any, T]]:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:  # noqa: ANN401
            last_exception: RedisError | None = None
            for attempt in range(max_retries):
                try:
                    return await func(*args, **kwargs)
                except RedisError as e:
                    last_exception = e
                    if attempt < max_retries - 1:
                        delay = base_delay * (2**attempt)
                        logger.warning(
                            "Redis operation %s failed (attempt %d/%d): %s. Retrying in %.2fs",
                            func.__name__,
                            attempt + 1,
                            max_retries,
                            e,
                            delay,
                        )
                        await asyncio.sleep(delay)
                    else:
                        logger.error("Redis operation %s failed after %d attempts: %s", func.__name__, max_retries, e)
            raise StoreUnavailableError(f"Order store unavailable: {last_exception}") from last_exception

        return wrapper

    return decorator


class RedisWorkItemStore:
    """Redis-backed store with connection pooling."""

    def __init__(self, url: str, *, client: Redis | None = None) -> None:
        if client is not None:
            self._client = client
        else:
            pool = ConnectionPool.from_url(
                url,
                decode_responses=True,
                max_connections=Constants.REDIS_MAX_CONNECTIONS,
            )
            self._client = Redis(connection_pool=pool)
        logger.info("Redis order store initialized")

    @staticmethod
    def _key(work_item_id: str) -> str:
        return f"{Constants.REDIS_KEY_PREFIX}{work_item_id}"

    @with_retry()
    async def get(self, work_item_id: str) -> WorkItem:
        raw = await self._client.get(self._key(work_item_id))
        if raw is None:
            raise WorkItemNotFoundError(work_item_id)
        return WorkItem.model_validate_json(raw)

    @with_retry()
    async def put(self, item: WorkItem) -> None:
        await self._client.set(self._key(item.id), item.model_dump_json())

    @with_retry()
    async def delete(self, work_item_id: str) -> None:
        removed = await self._client.delete(self._key(work_item_id))
        if not removed:
            raise WorkItemNotFoundError(work_item_id)

    async def ping(self) -> bool:
        try:
            return bool(await self._client.ping())
        except RedisError as e:
            logger.warning("Redis ping failed: %s", e)
            return False

    async def close(self) -> None:
        await self._client.aclose()


def create_store() -> WorkItemStore:
    """Build the store configured for this process."""
    if settings.redis_url:
        return RedisWorkItemStore(settings.redis_url)
    logger.info("Redis URL not configured. Using in-memory order store.")
    return InMemoryWorkItemStore()
