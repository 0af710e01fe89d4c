"""Backup and versioning engine for the memeos note-taking application."""

from .config import EngineConfig
from .backup import BackupManager, BackupSettings

__version__ = "0.3.0"
__author__ = "memeos contributors"
__url__ = "https://github.com/memeos/memeos-backup"

__all__ = ["BackupManager", "BackupSettings", "EngineConfig"]
