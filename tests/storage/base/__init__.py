"""Base test suites for local cache backends."""

from .kv_suite import BaseKVStorageTestSuite, KVStorageContract
from .fixtures import temp_storage_dir, mock_global_config

__all__ = [
    "BaseKVStorageTestSuite",
    "KVStorageContract",
    "temp_storage_dir",
    "mock_global_config",
]
