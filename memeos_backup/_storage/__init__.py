"""Local cache backends with lazy loading support."""

from typing import TYPE_CHECKING

from .factory import StorageFactory, _register_backends

if TYPE_CHECKING:
    from .kv_json import JsonKVStorage
    from .kv_redis import RedisKVStorage
    from .media_local import LocalMediaStore


def __getattr__(name):
    """Lazy import storage backends so redis is only imported when used."""
    if name == "JsonKVStorage":
        from .kv_json import JsonKVStorage
        return JsonKVStorage
    elif name == "RedisKVStorage":
        from .kv_redis import RedisKVStorage
        return RedisKVStorage
    elif name == "LocalMediaStore":
        from .media_local import LocalMediaStore
        return LocalMediaStore
    else:
        raise AttributeError(f"module '{__name__}' has no attribute '{name}'")


__all__ = [
    "StorageFactory",
    "_register_backends",
    "JsonKVStorage",
    "RedisKVStorage",
    "LocalMediaStore",
]
