"""
Redis client manager for TestFlow AI
Handles connection pooling, JSON values, list/set helpers and health checks
"""

import json
import logging
import threading
from typing import Any, Dict, List, Optional, Set

import redis

from config import get_redis_url

logger = logging.getLogger(__name__)


def _encode(value: Any) -> str:
    return value if isinstance(value, str) else json.dumps(value)


def _decode(value: Optional[str], decode_json: bool = True) -> Any:
    if value is None or not decode_json:
        return value
    try:
        return json.loads(value)
    except (json.JSONDecodeError, TypeError):
        # Not JSON, return as-is
        return value


class RedisClient:
    """
    Redis connection manager with connection pooling and retry logic.
    """

    def __init__(self, redis_url: Optional[str] = None):
        redis_url = redis_url or get_redis_url()

        try:
            # Create connection pool for efficiency
            self.pool = redis.ConnectionPool.from_url(
                redis_url,
                max_connections=20,
                decode_responses=True,  # Auto-decode bytes to strings
                socket_timeout=5,
                socket_connect_timeout=5,
                retry_on_timeout=True,
            )
            self.client = redis.Redis(connection_pool=self.pool)

            # Test connection
            self.client.ping()
            logger.info(f"✅ Redis connected successfully: {redis_url}")
        except (redis.ConnectionError, redis.TimeoutError) as e:
            logger.error(f"❌ Redis connection failed: {str(e)}")
            raise RuntimeError(f"Failed to connect to Redis: {str(e)}")

    def ping(self) -> bool:
        """Check if Redis is available"""
        try:
            return self.client.ping()
        except redis.ConnectionError:
            return False

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        """
        Store a value with optional TTL.

        Args:
            key: Redis key
            value: Value to store (will be JSON-encoded if not a string)
            ttl: Time to live in seconds (None = no expiration)
        """
        value = _encode(value)
        if ttl:
            return bool(self.client.setex(key, ttl, value))
        return bool(self.client.set(key, value))

    def get(self, key: str, decode_json: bool = True) -> Optional[Any]:
        return _decode(self.client.get(key), decode_json)

    def delete(self, key: str) -> bool:
        return bool(self.client.delete(key))

    # Lists (newest first)
    def push_list(self, name: str, value: Any) -> int:
        return self.client.lpush(name, _encode(value))

    def get_list(self, name: str, start: int = 0, end: int = -1) -> List[str]:
        return self.client.lrange(name, start, end)

    def remove_from_list(self, name: str, value: str) -> int:
        return self.client.lrem(name, 0, value)

    def list_length(self, name: str) -> int:
        return self.client.llen(name)

    # Sets
    def add_to_set(self, name: str, member: str) -> int:
        return self.client.sadd(name, member)

    def get_set_members(self, name: str) -> Set[str]:
        return set(self.client.smembers(name))

    def remove_from_set(self, name: str, member: str) -> int:
        return self.client.srem(name, member)

    def get_stats(self) -> dict:
        """
        Get Redis connection and memory stats.

        Returns:
            Dictionary with Redis statistics
        """
        try:
            info = self.client.info()
            return {
                "connected_clients": info.get("connected_clients", 0),
                "used_memory_human": info.get("used_memory_human", "unknown"),
                "total_commands_processed": info.get("total_commands_processed", 0),
                "keyspace": info.get("keyspace", {}),
            }
        except redis.RedisError as e:
            logger.error(f"Failed to get Redis stats: {str(e)}")
            return {"error": str(e)}


class InMemoryClient:
    """
    Process-local stand-in with the RedisClient surface used by the test store.
    Used when Redis is unreachable; data lives only as long as the process.
    """

    def __init__(self):
        self._values: Dict[str, str] = {}
        self._lists: Dict[str, List[str]] = {}
        self._sets: Dict[str, Set[str]] = {}
        self._lock = threading.Lock()

    def ping(self) -> bool:
        return True

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        with self._lock:
            self._values[key] = _encode(value)
        return True

    def get(self, key: str, decode_json: bool = True) -> Optional[Any]:
        with self._lock:
            value = self._values.get(key)
        return _decode(value, decode_json)

    def delete(self, key: str) -> bool:
        with self._lock:
            removed = [
                store.pop(key, None) is not None
                for store in (self._values, self._lists, self._sets)
            ]
        return any(removed)

    def push_list(self, name: str, value: Any) -> int:
        with self._lock:
            items = self._lists.setdefault(name, [])
            items.insert(0, _encode(value))
            return len(items)

    def get_list(self, name: str, start: int = 0, end: int = -1) -> List[str]:
        with self._lock:
            items = list(self._lists.get(name, []))
        stop = None if end == -1 else end + 1
        return items[start:stop]

    def remove_from_list(self, name: str, value: str) -> int:
        with self._lock:
            items = self._lists.get(name, [])
            kept = [item for item in items if item != value]
            removed = len(items) - len(kept)
            if kept:
                self._lists[name] = kept
            else:
                self._lists.pop(name, None)
            return removed

    def list_length(self, name: str) -> int:
        with self._lock:
            return len(self._lists.get(name, []))

    def add_to_set(self, name: str, member: str) -> int:
        with self._lock:
            members = self._sets.setdefault(name, set())
            added = member not in members
            members.add(member)
            return int(added)

    def get_set_members(self, name: str) -> Set[str]:
        with self._lock:
            return set(self._sets.get(name, set()))

    def remove_from_set(self, name: str, member: str) -> int:
        with self._lock:
            members = self._sets.get(name, set())
            if member not in members:
                return 0
            members.discard(member)
            if not members:
                self._sets.pop(name, None)
            return 1

    def get_stats(self) -> dict:
        with self._lock:
            return {
                "backend": "memory",
                "keys": len(self._values) + len(self._lists) + len(self._sets),
            }


# Global Redis client instance
redis_client: Optional[RedisClient] = None


def get_redis_client() -> RedisClient:
    """
    Get or create the global Redis client instance.

    Raises:
        RuntimeError: If Redis cannot be reached
    """
    global redis_client

    if redis_client is None:
        redis_client = RedisClient()

    return redis_client
