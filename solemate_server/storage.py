"""Client-local key/value storage backed by a JSON file."""

import json
import logging
import os
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)


class LocalStorage:
    """A small persistent key/value store, one JSON object per file."""

    def __init__(self, storage_file: Optional[str] = None) -> None:
        """
        Initialize the storage.

        Args:
            storage_file: Path to storage file (default: ~/.solemate_storage.json)
        """
        if storage_file is None:
            storage_file = str(Path.home() / ".solemate_storage.json")
        self.storage_file = storage_file

    def _read(self) -> dict[str, Any]:
        if not os.path.exists(self.storage_file):
            return {}
        try:
            with open(self.storage_file) as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Could not read {self.storage_file}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: dict[str, Any]) -> None:
        with open(self.storage_file, "w") as f:
            json.dump(data, f, indent=2)

    def get_item(self, key: str) -> Any:
        """Return the stored value, or None."""
        return self._read().get(key)

    def set_item(self, key: str, value: Any) -> None:
        """Store a JSON-serializable value under key."""
        data = self._read()
        data[key] = value
        self._write(data)

    def remove_item(self, key: str) -> None:
        data = self._read()
        if key in data:
            del data[key]
            self._write(data)
