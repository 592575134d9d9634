import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class CacheError(Exception):
    """The local cache could not be read."""


class LocalCache:
    """
    Key/value copy of the foreground app's storage.
    In memory, optionally mirrored to a JSON file so it survives restarts.
    """

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path else None
        self._data: Optional[Dict[str, Any]] = None

    def _load(self) -> Dict[str, Any]:
        if self._data is not None:
            return self._data
        if self.path is None or not self.path.exists():
            self._data = {}
            return self._data
        try:
            self._data = json.loads(self.path.read_text())
        except (OSError, json.JSONDecodeError) as e:
            raise CacheError(f"Failed to read cache {self.path}: {e}") from e
        if not isinstance(self._data, dict):
            self._data = None
            raise CacheError(f"Cache {self.path} is not a JSON object")
        return self._data

    def get(self, key: str, default: Any = None) -> Any:
        return self._load().get(key, default)

    def put(self, key: str, value: Any) -> None:
        data = self._load()
        data[key] = value
        self._flush()

    def _flush(self) -> None:
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(self._data))
        os.replace(tmp, self.path)
