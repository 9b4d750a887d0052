"""Local key-value storage used by data modules and the credential store.

Values are strings, mirroring the browser ``localStorage`` contract the data
modules were written against. ``JsonFileStore`` keeps every key in one JSON
object on disk.
"""

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional


logger = logging.getLogger(__name__)


class KeyValueStore(ABC):
    """String key-value store."""

    @abstractmethod
    def get_item(self, key: str) -> Optional[str]:
        """Return the stored value or None."""
        pass

    @abstractmethod
    def set_item(self, key: str, value: str) -> None:
        pass

    @abstractmethod
    def remove_item(self, key: str) -> None:
        pass

    @abstractmethod
    def keys(self) -> List[str]:
        pass

    def get_json(self, key: str, default=None):
        """Return the JSON-decoded value, or ``default`` if absent or invalid."""
        raw = self.get_item(key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning(f"Invalid JSON stored under {key}, using default")
            return default

    def set_json(self, key: str, value) -> None:
        self.set_item(key, json.dumps(value, ensure_ascii=False))


class MemoryStore(KeyValueStore):
    """In-process store; contents are lost when the process exits."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove_item(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> List[str]:
        return list(self._data)


class JsonFileStore(KeyValueStore):
    """Store persisted as a single JSON object file."""

    def __init__(self, path: Path):
        """Initialize the store.

        Args:
            path: JSON file holding all keys; created on first write
        """
        self.path = Path(path)
        self.logger = logging.getLogger(__name__)
        self._data: Dict[str, str] = self._read()

    def _read(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            self.logger.error(f"Failed to read storage file {self.path}: {e}")
            return {}
        if not isinstance(data, dict):
            self.logger.error(f"Storage file {self.path} does not hold an object, ignoring it")
            return {}
        return {str(k): v for k, v in data.items() if isinstance(v, str)}

    def _write(self):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        temp_file = self.path.with_suffix('.tmp')
        with open(temp_file, 'w', encoding='utf-8') as f:
            json.dump(self._data, f, indent=2, ensure_ascii=False, sort_keys=True)
        temp_file.replace(self.path)

    def get_item(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._data[key] = value
        self._write()

    def remove_item(self, key: str) -> None:
        if key in self._data:
            del self._data[key]
            self._write()

    def keys(self) -> List[str]:
        return list(self._data)
