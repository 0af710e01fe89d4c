"""Configuration management for memeos-backup."""

import os
from dataclasses import dataclass, field
from typing import Optional


@dataclass(frozen=True)
class RemoteConfig:
    """Connection settings for the application server."""
    base_url: str = "http://localhost:3001/api"
    request_timeout: float = 10.0
    max_attempts: int = 3
    auth_token: Optional[str] = None

    @classmethod
    def from_env(cls) -> 'RemoteConfig':
        """Create config from environment variables."""
        return cls(
            base_url=os.getenv("REMOTE_BASE_URL", "http://localhost:3001/api"),
            request_timeout=float(os.getenv("REMOTE_REQUEST_TIMEOUT", "10.0")),
            max_attempts=int(os.getenv("REMOTE_MAX_ATTEMPTS", "3")),
            auth_token=os.getenv("REMOTE_AUTH_TOKEN")
        )

    def __post_init__(self):
        """Validate configuration."""
        if not self.base_url.startswith(("http://", "https://")):
            raise ValueError(f"base_url must be an http(s) URL, got {self.base_url}")
        if self.request_timeout <= 0:
            raise ValueError(f"request_timeout must be positive, got {self.request_timeout}")
        if self.max_attempts <= 0:
            raise ValueError(f"max_attempts must be positive, got {self.max_attempts}")

    @property
    def server_root(self) -> str:
        """Server origin without the ``/api`` suffix, where ``/uploads/`` is served."""
        root = self.base_url.rstrip("/")
        if root.endswith("/api"):
            root = root[: -len("/api")]
        return root


@dataclass(frozen=True)
class MediaConfig:
    """Media extraction and upload settings."""
    uploads_dir: Optional[str] = None  # read uploads from disk instead of over HTTP
    uploads_prefix: str = "/uploads/"
    fetch_timeout: float = 15.0
    max_concurrent_fetches: int = 4
    fetch_remote_urls: bool = True

    @classmethod
    def from_env(cls) -> 'MediaConfig':
        """Create config from environment variables."""
        return cls(
            uploads_dir=os.getenv("MEDIA_UPLOADS_DIR"),
            uploads_prefix=os.getenv("MEDIA_UPLOADS_PREFIX", "/uploads/"),
            fetch_timeout=float(os.getenv("MEDIA_FETCH_TIMEOUT", "15.0")),
            max_concurrent_fetches=int(os.getenv("MEDIA_MAX_CONCURRENT_FETCHES", "4")),
            fetch_remote_urls=os.getenv("MEDIA_FETCH_REMOTE_URLS", "true").lower() == "true"
        )

    def __post_init__(self):
        """Validate configuration."""
        if self.fetch_timeout <= 0:
            raise ValueError(f"fetch_timeout must be positive, got {self.fetch_timeout}")
        if self.max_concurrent_fetches <= 0:
            raise ValueError(f"max_concurrent_fetches must be positive, got {self.max_concurrent_fetches}")
        if not self.uploads_prefix.startswith("/") or not self.uploads_prefix.endswith("/"):
            raise ValueError(f"uploads_prefix must start and end with '/', got {self.uploads_prefix}")


@dataclass(frozen=True)
class StorageConfig:
    """Local fallback cache backend configuration."""
    kv_backend: str = "json"  # json, redis
    working_dir: str = "./memeos_backup_cache"

    # Redis specific settings
    redis_url: str = "redis://localhost:6379"
    redis_password: Optional[str] = None
    redis_max_connections: int = 10
    redis_connection_timeout: float = 5.0
    redis_socket_timeout: float = 5.0
    redis_health_check_interval: int = 30

    @classmethod
    def from_env(cls) -> 'StorageConfig':
        """Create config from environment variables."""
        return cls(
            kv_backend=os.getenv("STORAGE_KV_BACKEND", "json"),
            working_dir=os.getenv("STORAGE_WORKING_DIR", "./memeos_backup_cache"),
            redis_url=os.getenv("REDIS_URL", "redis://localhost:6379"),
            redis_password=os.getenv("REDIS_PASSWORD"),
            redis_max_connections=int(os.getenv("REDIS_MAX_CONNECTIONS", "10")),
            redis_connection_timeout=float(os.getenv("REDIS_CONNECTION_TIMEOUT", "5.0")),
            redis_socket_timeout=float(os.getenv("REDIS_SOCKET_TIMEOUT", "5.0")),
            redis_health_check_interval=int(os.getenv("REDIS_HEALTH_CHECK_INTERVAL", "30"))
        )

    def __post_init__(self):
        """Validate configuration."""
        valid_kv_backends = {"json", "redis"}
        if self.kv_backend not in valid_kv_backends:
            raise ValueError(f"Unknown kv backend: {self.kv_backend}. Valid options: {valid_kv_backends}")
        if self.redis_max_connections <= 0:
            raise ValueError(f"redis_max_connections must be positive, got {self.redis_max_connections}")


@dataclass(frozen=True)
class SchedulerConfig:
    """Auto-backup policy settings."""
    retention_per_note: int = 30

    @classmethod
    def from_env(cls) -> 'SchedulerConfig':
        """Create config from environment variables."""
        return cls(
            retention_per_note=int(os.getenv("AUTO_BACKUP_RETENTION", "30"))
        )

    def __post_init__(self):
        """Validate configuration."""
        if self.retention_per_note <= 0:
            raise ValueError(f"retention_per_note must be positive, got {self.retention_per_note}")


@dataclass(frozen=True)
class ArchiveConfig:
    """Export archive naming."""
    document_prefix: str = "memeos_backup"
    media_dir_prefix: str = "media_files"

    @classmethod
    def from_env(cls) -> 'ArchiveConfig':
        """Create config from environment variables."""
        return cls(
            document_prefix=os.getenv("ARCHIVE_DOCUMENT_PREFIX", "memeos_backup"),
            media_dir_prefix=os.getenv("ARCHIVE_MEDIA_DIR_PREFIX", "media_files")
        )

    def __post_init__(self):
        """Validate configuration."""
        for name in ("document_prefix", "media_dir_prefix"):
            value = getattr(self, name)
            if not value or "/" in value:
                raise ValueError(f"{name} must be a non-empty name without '/', got {value!r}")


@dataclass(frozen=True)
class EngineConfig:
    """Main configuration for the backup engine."""
    remote: RemoteConfig = field(default_factory=RemoteConfig)
    media: MediaConfig = field(default_factory=MediaConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    archive: ArchiveConfig = field(default_factory=ArchiveConfig)

    @classmethod
    def from_env(cls) -> 'EngineConfig':
        """Create config from environment variables."""
        return cls(
            remote=RemoteConfig.from_env(),
            media=MediaConfig.from_env(),
            storage=StorageConfig.from_env(),
            scheduler=SchedulerConfig.from_env(),
            archive=ArchiveConfig.from_env()
        )

    def to_dict(self) -> dict:
        """Build the ``global_config`` dict handed to storage backends."""
        config_dict = {
            "working_dir": self.storage.working_dir,
            "kv_backend": self.storage.kv_backend,
            "remote_base_url": self.remote.base_url,
            "retention_per_note": self.scheduler.retention_per_note,
        }

        if self.storage.kv_backend == "redis":
            config_dict.update({
                "redis_url": self.storage.redis_url,
                "redis_password": self.storage.redis_password,
                "redis_max_connections": self.storage.redis_max_connections,
                "redis_connection_timeout": self.storage.redis_connection_timeout,
                "redis_socket_timeout": self.storage.redis_socket_timeout,
                "redis_health_check_interval": self.storage.redis_health_check_interval,
            })

        return config_dict
