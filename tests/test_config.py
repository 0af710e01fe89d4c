"""Tests for configuration management."""

import os
import pytest
from unittest.mock import patch

from memeos_backup.config import (
    ArchiveConfig,
    EngineConfig,
    MediaConfig,
    RemoteConfig,
    SchedulerConfig,
    StorageConfig,
)


class TestRemoteConfig:
    """Test remote server configuration."""

    def test_defaults(self):
        """Test default values."""
        config = RemoteConfig()
        assert config.base_url == "http://localhost:3001/api"
        assert config.request_timeout == 10.0
        assert config.max_attempts == 3
        assert config.auth_token is None

    def test_from_env(self):
        """Test creating from environment variables."""
        with patch.dict(os.environ, {
            "REMOTE_BASE_URL": "https://notes.example/api",
            "REMOTE_REQUEST_TIMEOUT": "2.5",
            "REMOTE_MAX_ATTEMPTS": "5",
            "REMOTE_AUTH_TOKEN": "secret"
        }):
            config = RemoteConfig.from_env()
            assert config.base_url == "https://notes.example/api"
            assert config.request_timeout == 2.5
            assert config.max_attempts == 5
            assert config.auth_token == "secret"

    def test_validation(self):
        """Test validation errors."""
        with pytest.raises(ValueError, match="base_url must be an http"):
            RemoteConfig(base_url="ftp://notes.example")

        with pytest.raises(ValueError, match="request_timeout must be positive"):
            RemoteConfig(request_timeout=0)

        with pytest.raises(ValueError, match="max_attempts must be positive"):
            RemoteConfig(max_attempts=0)

    def test_server_root(self):
        assert RemoteConfig().server_root == "http://localhost:3001"
        assert RemoteConfig(base_url="https://notes.example/api/").server_root == "https://notes.example"
        assert RemoteConfig(base_url="https://notes.example").server_root == "https://notes.example"

    def test_immutable(self):
        """Test that config is immutable."""
        config = RemoteConfig()
        with pytest.raises(AttributeError):
            config.base_url = "http://other"


class TestMediaConfig:
    """Test media configuration."""

    def test_defaults(self):
        config = MediaConfig()
        assert config.uploads_dir is None
        assert config.uploads_prefix == "/uploads/"
        assert config.max_concurrent_fetches == 4
        assert config.fetch_remote_urls is True

    def test_from_env(self):
        with patch.dict(os.environ, {
            "MEDIA_UPLOADS_DIR": "/srv/uploads",
            "MEDIA_FETCH_TIMEOUT": "3",
            "MEDIA_MAX_CONCURRENT_FETCHES": "8",
            "MEDIA_FETCH_REMOTE_URLS": "false"
        }):
            config = MediaConfig.from_env()
            assert config.uploads_dir == "/srv/uploads"
            assert config.fetch_timeout == 3.0
            assert config.max_concurrent_fetches == 8
            assert config.fetch_remote_urls is False

    def test_validation(self):
        with pytest.raises(ValueError, match="fetch_timeout must be positive"):
            MediaConfig(fetch_timeout=0)

        with pytest.raises(ValueError, match="max_concurrent_fetches must be positive"):
            MediaConfig(max_concurrent_fetches=0)

        with pytest.raises(ValueError, match="uploads_prefix must start and end"):
            MediaConfig(uploads_prefix="uploads")


class TestStorageConfig:
    """Test storage configuration."""

    def test_defaults(self):
        config = StorageConfig()
        assert config.kv_backend == "json"
        assert config.working_dir == "./memeos_backup_cache"
        assert config.redis_url == "redis://localhost:6379"

    def test_from_env(self):
        with patch.dict(os.environ, {
            "STORAGE_KV_BACKEND": "redis",
            "STORAGE_WORKING_DIR": "/tmp/test_cache",
            "REDIS_URL": "redis://cache:6379",
            "REDIS_MAX_CONNECTIONS": "20"
        }):
            config = StorageConfig.from_env()
            assert config.kv_backend == "redis"
            assert config.working_dir == "/tmp/test_cache"
            assert config.redis_url == "redis://cache:6379"
            assert config.redis_max_connections == 20

    def test_validation(self):
        with pytest.raises(ValueError, match="Unknown kv backend"):
            StorageConfig(kv_backend="sqlite")

        with pytest.raises(ValueError, match="redis_max_connections must be positive"):
            StorageConfig(redis_max_connections=0)


class TestSchedulerConfig:
    def test_defaults(self):
        config = SchedulerConfig()
        assert config.retention_per_note == 30

    def test_from_env(self):
        with patch.dict(os.environ, {"AUTO_BACKUP_RETENTION": "5"}):
            assert SchedulerConfig.from_env().retention_per_note == 5

    def test_validation(self):
        with pytest.raises(ValueError, match="retention_per_note must be positive"):
            SchedulerConfig(retention_per_note=0)


class TestArchiveConfig:
    def test_validation(self):
        with pytest.raises(ValueError, match="document_prefix"):
            ArchiveConfig(document_prefix="")

        with pytest.raises(ValueError, match="media_dir_prefix"):
            ArchiveConfig(media_dir_prefix="a/b")


class TestEngineConfig:
    """Test main engine configuration."""

    def test_defaults(self):
        config = EngineConfig()
        assert isinstance(config.remote, RemoteConfig)
        assert isinstance(config.storage, StorageConfig)
        assert config.archive.document_prefix == "memeos_backup"

    def test_from_env(self):
        with patch.dict(os.environ, {
            "REMOTE_BASE_URL": "https://notes.example/api",
            "AUTO_BACKUP_RETENTION": "7"
        }):
            config = EngineConfig.from_env()
            assert config.remote.base_url == "https://notes.example/api"
            assert config.scheduler.retention_per_note == 7

    def test_to_dict_json(self):
        config = EngineConfig(storage=StorageConfig(working_dir="/tmp/cache"))
        config_dict = config.to_dict()

        assert config_dict["working_dir"] == "/tmp/cache"
        assert config_dict["kv_backend"] == "json"
        assert config_dict["retention_per_note"] == 30
        assert "redis_url" not in config_dict

    def test_to_dict_redis(self):
        config = EngineConfig(storage=StorageConfig(kv_backend="redis", redis_password="pw"))
        config_dict = config.to_dict()

        assert config_dict["redis_url"] == "redis://localhost:6379"
        assert config_dict["redis_password"] == "pw"
        assert config_dict["redis_health_check_interval"] == 30
