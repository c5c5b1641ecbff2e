import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, Optional, Union

from instrument_gateway.app.core.gateway_exceptions import ItemNotFoundError
from instrument_gateway.app.models.device_config import DeviceConfig, ItemKey, ItemKind


Reading = Union[float, bool]


@dataclass(frozen=True)
class CachedValue:
    value: Reading
    updated_at: datetime


class CacheCell:
    """Latest value of a single item, guarded by its own lock"""

    def __init__(self):
        self._lock = threading.Lock()
        self._current: Optional[CachedValue] = None

    def get(self) -> Optional[CachedValue]:
        with self._lock:
            return self._current

    def set(self, value: Reading) -> CachedValue:
        cached = CachedValue(value=value, updated_at=datetime.now())
        with self._lock:
            self._current = cached
        return cached


class CacheWriter:
    """Write access to the cells of one device"""

    def __init__(self, cache: "ValueCache", device_id: str):
        self._cache = cache
        self.device_id = device_id

    def set(self, kind: ItemKind, item_id: str, value: Reading) -> CachedValue:
        return self._cache._cell(ItemKey(self.device_id, kind, item_id)).set(value)


class ValueCache:
    """
    Last known value for every configured item.

    The set of cells is fixed when the cache is built, so lookups need no
    cache-wide lock; each cell synchronizes on its own. Readers never wait on
    device I/O. Writing is only possible through a per-device CacheWriter.
    """

    def __init__(self, keys: Iterable[ItemKey]):
        self._cells: Dict[ItemKey, CacheCell] = {key: CacheCell() for key in keys}
        self._writers: Dict[str, CacheWriter] = {}

    @classmethod
    def from_devices(cls, devices: Iterable[DeviceConfig]) -> "ValueCache":
        keys = [
            ItemKey(device.device_id, kind, item.item_id)
            for device in devices
            for kind, item in device.iter_items()
        ]
        return cls(keys)

    def get(self, key: ItemKey) -> Optional[CachedValue]:
        """Latest value, or None if the item has never been read"""
        return self._cell(key).get()

    def writer(self, device_id: str) -> CacheWriter:
        if device_id in self._writers:
            raise RuntimeError(f"Cache writer for device {device_id} already issued")
        writer = CacheWriter(self, device_id)
        self._writers[device_id] = writer
        return writer

    def __contains__(self, key: ItemKey) -> bool:
        return key in self._cells

    def __len__(self) -> int:
        return len(self._cells)

    def snapshot(self, device_id: Optional[str] = None) -> Dict[str, Dict[str, Dict[str, Any]]]:
        """Nested {device: {kind: {item: value}}} view for diagnostics"""
        view: Dict[str, Dict[str, Dict[str, Any]]] = {}
        for key, cell in self._cells.items():
            if device_id is not None and key.device_id != device_id:
                continue
            cached = cell.get()
            view.setdefault(key.device_id, {}).setdefault(key.kind.value, {})[key.item_id] = (
                None if cached is None else {"value": cached.value, "updated_at": cached.updated_at.isoformat()}
            )
        return view

    def _cell(self, key: ItemKey) -> CacheCell:
        cell = self._cells.get(key)
        if cell is None:
            raise ItemNotFoundError(
                f"No {key.kind.value} item '{key.item_id}' on device '{key.device_id}'",
                device_id=key.device_id,
                item_id=key.item_id
            )
        return cell
