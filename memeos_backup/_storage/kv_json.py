"""JSON file Key-Value storage, the default local cache."""

import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..base import BaseKVStorage
from .._utils import load_json, logger, write_json


@dataclass
class JsonKVStorage(BaseKVStorage):
    _data: Dict[str, Any] = field(init=False, default_factory=dict)

    def __post_init__(self):
        working_dir = self.global_config["working_dir"]
        os.makedirs(working_dir, exist_ok=True)
        self._file_name = os.path.join(working_dir, f"kv_store_{self.namespace}.json")
        self._data = load_json(self._file_name) or {}
        logger.info(f"Load KV {self.namespace} with {len(self._data)} data")

    async def all_keys(self) -> List[str]:
        return list(self._data.keys())

    async def index_done_callback(self):
        write_json(self._data, self._file_name)

    async def get_by_id(self, id: str) -> Optional[Any]:
        return self._data.get(id, None)

    async def get_by_ids(self, ids: List[str], fields: Optional[List[str]] = None) -> List[Optional[Any]]:
        if fields is None:
            return [self._data.get(id, None) for id in ids]
        return [
            (
                {k: v for k, v in self._data[id].items() if k in fields}
                if self._data.get(id, None) is not None
                else None
            )
            for id in ids
        ]

    async def filter_keys(self, data: List[str]) -> set:
        return set([s for s in data if s not in self._data])

    async def upsert(self, data: Dict[str, Any]) -> None:
        self._data.update(data)

    async def delete(self, ids: List[str]) -> int:
        removed = 0
        for id in ids:
            if self._data.pop(id, None) is not None:
                removed += 1
        return removed

    async def drop(self) -> None:
        self._data = {}
