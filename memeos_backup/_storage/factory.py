"""Storage factory for centralized backend creation."""

from typing import Type, Dict, Callable
from memeos_backup.base import BaseKVStorage


class StorageFactory:
    """Factory for creating local cache backends with validation and registration."""

    _kv_backends: Dict[str, Callable[[], Type[BaseKVStorage]]] = {}

    ALLOWED_KV = {"json", "redis"}

    @classmethod
    def register_kv(cls, name: str, backend_loader: Callable[[], Type[BaseKVStorage]]) -> None:
        """Register a KV storage backend.

        Args:
            name: Backend name (must be in ALLOWED_KV)
            backend_loader: Function that returns the KV storage class

        Raises:
            ValueError: If backend name not in allowed list
        """
        if name not in cls.ALLOWED_KV:
            raise ValueError(f"Backend {name} not in allowed KV backends: {cls.ALLOWED_KV}")
        cls._kv_backends[name] = backend_loader

    @classmethod
    def create_kv_storage(
        cls,
        backend: str,
        namespace: str,
        global_config: dict,
        **kwargs
    ) -> BaseKVStorage:
        """Create a KV storage instance.

        Args:
            backend: Backend name
            namespace: Storage namespace
            global_config: Global configuration dict
            **kwargs: Additional backend-specific parameters

        Returns:
            Initialized KV storage instance

        Raises:
            ValueError: If backend not registered
        """
        if backend not in cls._kv_backends:
            _register_backends()
            if backend not in cls._kv_backends:
                raise ValueError(f"Unknown KV backend: {backend}. Available: {list(cls._kv_backends.keys())}")

        backend_class = cls._kv_backends[backend]()
        return backend_class(
            namespace=namespace,
            global_config=global_config,
            **kwargs
        )


def _get_json_storage():
    """Lazy loader for JSON KV storage."""
    from .kv_json import JsonKVStorage
    return JsonKVStorage


def _get_redis_storage():
    """Lazy loader for Redis KV storage."""
    from .kv_redis import RedisKVStorage
    return RedisKVStorage


def _register_backends():
    """Register built-in backends with lazy loaders. Called when factory is first used."""
    if not StorageFactory._kv_backends:
        StorageFactory.register_kv("json", _get_json_storage)
        StorageFactory.register_kv("redis", _get_redis_storage)
