"""Fixtures shared by the backup engine tests."""

import pytest

from memeos_backup._storage.kv_json import JsonKVStorage
from memeos_backup.backup.manager import BackupManager
from memeos_backup.config import EngineConfig, StorageConfig
from tests.utils import (
    FakeRemote,
    InMemoryHistorySink,
    InMemoryMediaStore,
    InMemoryNoteStore,
    make_note,
)


@pytest.fixture
def note_store():
    return InMemoryNoteStore([
        make_note("1", "hello", title="Greeting"),
        make_note("2", "groceries: milk, eggs", title="Shopping", tags=["todo"]),
    ])


@pytest.fixture
def remote():
    return FakeRemote()


@pytest.fixture
def media_store():
    return InMemoryMediaStore({"cat.png": b"\x89PNG-cat"})


@pytest.fixture
def history_sink():
    return InMemoryHistorySink()


@pytest.fixture
def local_cache(temp_storage_dir):
    return JsonKVStorage(namespace="backups", global_config={"working_dir": str(temp_storage_dir)})


@pytest.fixture
def settings_cache(temp_storage_dir):
    return JsonKVStorage(namespace="settings", global_config={"working_dir": str(temp_storage_dir)})


@pytest.fixture
def manager(note_store, remote, local_cache, history_sink, media_store, settings_cache, temp_storage_dir):
    config = EngineConfig(storage=StorageConfig(working_dir=str(temp_storage_dir)))
    return BackupManager(
        note_store=note_store,
        remote=remote,
        local_cache=local_cache,
        history_sink=history_sink,
        media_store=media_store,
        settings_cache=settings_cache,
        config=config,
    )
