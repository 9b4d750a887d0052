"""Local data domains exchanged with the remote repository.

A data module is a narrow capability: ``read()`` returns a JSON-serializable
value and ``write(value)`` applies one. The sync engine never looks inside the
value. The host application owns the modules and hands a registry to the
engine; :func:`default_modules` builds the standard set on top of a
:class:`~repo_sync.storage.KeyValueStore`.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional

from .storage import KeyValueStore


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DataModule:
    """One local data domain."""

    name: str
    filename: str
    read: Callable[[], Any]
    write: Callable[[Any], None]
    storage_key: Optional[str] = None


class DataModuleRegistry:
    """Ordered collection of data modules with unique names and filenames."""

    def __init__(self, modules: Optional[Iterable[DataModule]] = None):
        self._modules: List[DataModule] = []
        for module in modules or []:
            self.register(module)

    def register(self, module: DataModule):
        """Add a module.

        Raises:
            ValueError: If the name or filename is already registered
        """
        for existing in self._modules:
            if existing.name == module.name:
                raise ValueError(f"Duplicate data module name: {module.name}")
            if existing.filename == module.filename:
                raise ValueError(f"Duplicate data module filename: {module.filename}")
        self._modules.append(module)
        logger.debug(f"Registered data module {module.name} ({module.filename})")

    def get(self, name: str) -> Optional[DataModule]:
        for module in self._modules:
            if module.name == name:
                return module
        return None

    def get_by_filename(self, filename: str) -> Optional[DataModule]:
        for module in self._modules:
            if module.filename == filename:
                return module
        return None

    def names(self) -> List[str]:
        return [module.name for module in self._modules]

    def __iter__(self) -> Iterator[DataModule]:
        return iter(list(self._modules))

    def __len__(self) -> int:
        return len(self._modules)

    def __contains__(self, name: str) -> bool:
        return self.get(name) is not None


# Default module set

HABIT_DEFAULTS = {"habits": [], "records": [], "dailyNotes": [], "version": "1.0.0", "lastUpdated": ""}


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _tasks_module(store: KeyValueStore) -> DataModule:
    def read():
        return {
            "tasks": store.get_json("tasks", []),
            "taskGroups": store.get_json("taskGroups", []),
        }

    def write(data):
        data = _as_dict(data)
        store.set_json("tasks", data.get("tasks") or [])
        store.set_json("taskGroups", data.get("taskGroups") or [])

    return DataModule("tasks", "tasks.json", read, write, storage_key="tasks-data")


def _habits_module(store: KeyValueStore) -> DataModule:
    def read():
        data = _as_dict(store.get_json("habit-data", HABIT_DEFAULTS))
        return {
            "habits": data.get("habits") or [],
            "records": data.get("records") or [],
            "dailyNotes": data.get("dailyNotes") or [],
            "version": data.get("version") or "1.0.0",
            "lastUpdated": data.get("lastUpdated") or "",
        }

    def write(data):
        store.set_json("habit-data", data)

    return DataModule("habits", "habits.json", read, write, storage_key="habit-data")


def _bookmarks_module(store: KeyValueStore) -> DataModule:
    def read():
        data = _as_dict(store.get_json("bookmarks-data", {}))
        return {"bookmarks": data.get("bookmarks") or [], "groups": data.get("groups") or []}

    def write(data):
        store.set_json("bookmarks-data", data)

    return DataModule("bookmarks", "bookmarks.json", read, write, storage_key="bookmarks-data")


def _calendar_module(store: KeyValueStore) -> DataModule:
    def read():
        return store.get_json("calendar-events", [])

    def write(data):
        store.set_json("calendar-events", data)

    return DataModule("calendarEvents", "calendar-events.json", read, write,
                      storage_key="calendar-events")


def _pomodoro_module(store: KeyValueStore) -> DataModule:
    def read():
        data = _as_dict(store.get_json("pomodoro-data", {}))
        return {"sessions": data.get("sessions") or [], "settings": data.get("settings") or {}}

    def write(data):
        store.set_json("pomodoro-data", data)

    return DataModule("pomodoro", "pomodoro.json", read, write, storage_key="pomodoro-data")


def _app_settings_module(store: KeyValueStore) -> DataModule:
    def read():
        auto_sync = True
        raw = store.get_item("app-autoSync")
        if raw is not None:
            try:
                auto_sync = json.loads(raw)
            except ValueError:
                logger.warning(f"Failed to parse autoSync value: {raw!r}")

        return {
            "theme": store.get_item("app-theme") or "light",
            "searchEngine": store.get_item("app-searchEngine") or "google",
            "autoSync": auto_sync,
            "sidebarCollapsed": store.get_json("app-sidebarCollapsed", False),
            "lastSyncTime": store.get_item("app-lastSyncTime"),
        }

    def write(data):
        data = _as_dict(data)
        store.set_item("app-theme", data.get("theme") or "light")
        store.set_item("app-searchEngine", data.get("searchEngine") or "google")
        auto_sync = data.get("autoSync")
        store.set_json("app-autoSync", True if auto_sync is None else auto_sync)
        store.set_json("app-sidebarCollapsed", bool(data.get("sidebarCollapsed")))
        if data.get("lastSyncTime"):
            store.set_item("app-lastSyncTime", data["lastSyncTime"])

    return DataModule("appSettings", "app-settings.json", read, write, storage_key="app-settings")


def default_modules(store: KeyValueStore) -> DataModuleRegistry:
    """Build the standard productivity data modules over ``store``."""
    return DataModuleRegistry([
        _tasks_module(store),
        _habits_module(store),
        _bookmarks_module(store),
        _calendar_module(store),
        _pomodoro_module(store),
        _app_settings_module(store),
    ])
