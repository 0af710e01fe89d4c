"""Shared fixtures for storage testing."""

import pytest
import tempfile
from pathlib import Path


@pytest.fixture
def temp_storage_dir():
    """Temporary working directory for file-backed stores."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def mock_global_config(temp_storage_dir):
    """Minimal global config accepted by every KV backend."""
    return {
        "working_dir": str(temp_storage_dir),
        "kv_backend": "json",
    }
