"""Redis-based Key-Value storage for a local cache shared between processes."""

import json
from dataclasses import dataclass, field
from typing import Optional, Dict, Any, List

try:
    import redis.asyncio as aioredis
    from redis.backoff import ExponentialBackoff
    from redis.retry import Retry
    from redis.exceptions import RedisError, ConnectionError as RedisConnectionError
    REDIS_AVAILABLE = True
except ImportError:
    REDIS_AVAILABLE = False
    aioredis = None

from ..base import BaseKVStorage
from .._utils import logger


@dataclass
class RedisKVStorage(BaseKVStorage):
    """Redis-based Key-Value storage. Entries never expire."""

    _redis_client: Optional[Any] = field(init=False, default=None)
    _connection_pool: Optional[Any] = field(init=False, default=None)
    _initialized: bool = field(init=False, default=False)

    def __post_init__(self):
        if not REDIS_AVAILABLE:
            raise ImportError(
                "Redis support not available. Install with: pip install redis[hiredis]"
            )

        self._prefix = f"memeos_backup:{self.namespace}:"

        self.redis_url = self.global_config.get("redis_url", "redis://localhost:6379")
        self.redis_password = self.global_config.get("redis_password", None)
        self.max_connections = self.global_config.get("redis_max_connections", 10)
        self.socket_timeout = self.global_config.get("redis_socket_timeout", 5.0)
        self.connection_timeout = self.global_config.get("redis_connection_timeout", 5.0)
        self.health_check_interval = self.global_config.get("redis_health_check_interval", 30)

    async def _ensure_initialized(self):
        """Ensure Redis connection is initialized."""
        if self._initialized:
            return

        retry = Retry(
            ExponentialBackoff(cap=10, base=1),
            retries=3,
            supported_errors=(RedisConnectionError, TimeoutError, ConnectionError)
        )

        self._connection_pool = aioredis.ConnectionPool.from_url(
            self.redis_url,
            password=self.redis_password,
            max_connections=self.max_connections,
            socket_timeout=self.socket_timeout,
            socket_connect_timeout=self.connection_timeout,
            decode_responses=False,
            retry=retry,
            health_check_interval=self.health_check_interval
        )

        self._redis_client = aioredis.Redis(
            connection_pool=self._connection_pool,
            auto_close_connection_pool=False
        )

        try:
            await self._redis_client.ping()
            logger.info(f"Connected to Redis for namespace: {self.namespace}")
        except RedisError as e:
            logger.error(f"Redis connection failed: {e}")
            raise

        self._initialized = True

    def _get_key(self, id: str) -> str:
        return f"{self._prefix}{id}"

    def _serialize(self, data: Any) -> bytes:
        return json.dumps(data, default=str, ensure_ascii=False).encode('utf-8')

    def _deserialize(self, data: Optional[bytes]) -> Any:
        if data is None:
            return None
        try:
            return json.loads(data.decode('utf-8'))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.error(f"Failed to deserialize data: {e}")
            return None

    async def all_keys(self) -> List[str]:
        await self._ensure_initialized()

        keys = []
        async for key in self._redis_client.scan_iter(match=f"{self._prefix}*", count=1000):
            if isinstance(key, bytes):
                key = key.decode('utf-8')
            keys.append(key[len(self._prefix):])
        return keys

    async def get_by_id(self, id: str) -> Optional[Any]:
        await self._ensure_initialized()

        try:
            data = await self._redis_client.get(self._get_key(id))
            return self._deserialize(data)
        except RedisError as e:
            logger.error(f"Redis get error for {id}: {e}")
            raise

    async def get_by_ids(self, ids: List[str], fields: Optional[List[str]] = None) -> List[Optional[Any]]:
        if not ids:
            return []

        await self._ensure_initialized()

        async with self._redis_client.pipeline() as pipe:
            for id in ids:
                pipe.get(self._get_key(id))
            results = await pipe.execute()

        items = []
        for data in results:
            item = self._deserialize(data)
            if item and fields and isinstance(item, dict):
                item = {k: v for k, v in item.items() if k in fields}
            items.append(item)
        return items

    async def upsert(self, data: Dict[str, Any]) -> None:
        if not data:
            return

        await self._ensure_initialized()

        async with self._redis_client.pipeline() as pipe:
            for id, value in data.items():
                pipe.set(self._get_key(id), self._serialize(value))
            await pipe.execute()

        logger.debug(f"Upserted {len(data)} items to Redis namespace: {self.namespace}")

    async def delete(self, ids: List[str]) -> int:
        if not ids:
            return 0

        await self._ensure_initialized()
        removed = await self._redis_client.delete(*[self._get_key(id) for id in ids])
        logger.debug(f"Deleted {removed} items from Redis namespace: {self.namespace}")
        return int(removed)

    async def filter_keys(self, data: List[str]) -> set:
        if not data:
            return set()

        await self._ensure_initialized()

        async with self._redis_client.pipeline() as pipe:
            for key in data:
                pipe.exists(self._get_key(key))
            results = await pipe.execute()

        return {key for key, exists in zip(data, results) if not exists}

    async def drop(self) -> None:
        await self._ensure_initialized()

        cursor = 0
        # Delete in batches to avoid blocking
        while True:
            cursor, keys = await self._redis_client.scan(
                cursor, match=f"{self._prefix}*", count=1000
            )
            if keys:
                await self._redis_client.delete(*keys)
            if cursor == 0:
                break

        logger.info(f"Dropped all data in Redis namespace: {self.namespace}")

    async def index_done_callback(self) -> None:
        # Writes are durable on SET, nothing to flush
        pass

    async def close(self) -> None:
        """Release Redis connections."""
        if self._redis_client:
            await self._redis_client.aclose()
        if self._connection_pool:
            await self._connection_pool.disconnect()
        self._initialized = False
