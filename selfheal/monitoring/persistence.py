"""Key/value storage adapters for the persisted failure snapshot."""

import os
import re
import tempfile
from pathlib import Path
from typing import Dict, Optional, Protocol
from urllib.parse import urlparse, urlunparse

from loguru import logger

from selfheal.core.exceptions import ConfigurationError, PersistenceError


class KeyValueStore(Protocol):
    """Minimal string key/value surface used to save state across restarts."""

    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...

    def delete(self, key: str) -> None:
        ...


class InMemoryKeyValueStore:
    """Process-local store, mainly for tests and ephemeral runs."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileKeyValueStore:
    """One file per key under a directory, replaced atomically on write."""

    _SAFE_KEY = re.compile(r"[^A-Za-z0-9._-]")

    def __init__(self, base_dir: str = "data/monitoring"):
        """
        Initialize file store.

        Args:
            base_dir: Directory that holds one ``<key>.json`` file per key
        """
        self.base_dir = Path(base_dir)

    def _path(self, key: str) -> Path:
        return self.base_dir / f"{self._SAFE_KEY.sub('_', key)}.json"

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            return path.read_text(encoding="utf-8")
        except OSError as e:
            raise PersistenceError(f"Failed to read {path}: {e}", key=key) from e

    def set(self, key: str, value: str) -> None:
        path = self._path(key)
        try:
            self.base_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.base_dir, prefix=".tmp-", suffix=".json")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(value)
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise PersistenceError(f"Failed to write {path}: {e}", key=key) from e

    def delete(self, key: str) -> None:
        try:
            self._path(key).unlink(missing_ok=True)
        except OSError as e:
            raise PersistenceError(f"Failed to delete {key}: {e}", key=key) from e


def mask_url(url: str) -> str:
    """Hide the password part of a connection URL for logging."""
    parsed = urlparse(url)
    if parsed.password is None:
        return url
    netloc = parsed.netloc.replace(f":{parsed.password}@", ":***@", 1)
    return urlunparse(parsed._replace(netloc=netloc))


class RedisKeyValueStore:
    """Snapshot keys stored under a namespace in Redis."""

    def __init__(self, client, namespace: str = "selfheal"):
        """
        Initialize Redis store.

        Args:
            client: redis.Redis client created with decode_responses=True
            namespace: Prefix for every key
        """
        self._client = client
        self.namespace = namespace

    @classmethod
    def connect(
        cls, redis_url: str, namespace: str = "selfheal"
    ) -> Optional["RedisKeyValueStore"]:
        """
        Open a client for ``redis_url`` and check it answers.

        Returns:
            Store instance, or None when the server cannot be reached
        """
        try:
            import redis

            client = redis.from_url(
                redis_url,
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
            )
            client.ping()
        except Exception as e:
            logger.warning(f"Snapshot store cannot reach Redis ({mask_url(redis_url)}): {e}")
            return None
        logger.info(f"Snapshot store using Redis at {mask_url(redis_url)}")
        return cls(client, namespace=namespace)

    def _key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    def get(self, key: str) -> Optional[str]:
        try:
            value = self._client.get(self._key(key))
        except Exception as e:
            raise PersistenceError(f"Redis GET failed: {e}", key=key) from e
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return value

    def set(self, key: str, value: str) -> None:
        try:
            self._client.set(self._key(key), value)
        except Exception as e:
            raise PersistenceError(f"Redis SET failed: {e}", key=key) from e

    def delete(self, key: str) -> None:
        try:
            self._client.delete(self._key(key))
        except Exception as e:
            raise PersistenceError(f"Redis DEL failed: {e}", key=key) from e


def create_store(
    backend: str, storage_dir: str = "data/monitoring", redis_url: Optional[str] = None
) -> KeyValueStore:
    """
    Build the configured snapshot store.

    Args:
        backend: memory, file or redis
        storage_dir: Directory for the file backend
        redis_url: URL for the redis backend (defaults to settings.redis_url)

    Returns:
        KeyValueStore instance (redis falls back to the file backend when unavailable)

    Raises:
        ConfigurationError: If the backend is unknown
    """
    if backend == "memory":
        return InMemoryKeyValueStore()
    if backend == "redis":
        if not redis_url:
            from selfheal.core.config import get_settings

            redis_url = get_settings().redis_url
        if redis_url:
            kv = RedisKeyValueStore.connect(redis_url)
            if kv is not None:
                return kv
        else:
            logger.warning("SELFHEAL_REDIS_URL not set")
        logger.warning("Redis unavailable, falling back to file snapshot storage")
        return JsonFileKeyValueStore(storage_dir)
    if backend == "file":
        return JsonFileKeyValueStore(storage_dir)
    raise ConfigurationError(
        f"Unknown storage backend: {backend}", details={"storage_backend": backend}
    )
