"""Content hashing and per-module change baselines."""

import hashlib
import json
import logging
from typing import Any, Dict, Iterable, Optional

from .data_modules import DataModule


logger = logging.getLogger(__name__)


def content_hash(value: Any) -> str:
    """Hash a JSON-serializable value.

    The value is serialized exactly as it is written into the remote envelope
    (two-space indent, non-ASCII kept) so that hashes computed on any replica
    agree with the one stored remotely.
    """
    serialized = json.dumps(value, indent=2, ensure_ascii=False)
    return hashlib.md5(serialized.encode("utf-8")).hexdigest()


class HashTracker:
    """Remembers the last observed content hash of each module.

    Baselines live for the lifetime of the tracker and are only dropped by
    :meth:`clear`.
    """

    def __init__(self):
        self._baselines: Dict[str, str] = {}
        self.logger = logging.getLogger(__name__)

    def __len__(self) -> int:
        return len(self._baselines)

    @property
    def is_initialized(self) -> bool:
        return bool(self._baselines)

    def get_baseline(self, module_name: str) -> Optional[str]:
        return self._baselines.get(module_name)

    def set_baseline(self, module_name: str, value_hash: str):
        self._baselines[module_name] = value_hash

    def has_changed(self, module_name: str, value: Any) -> bool:
        """Check whether ``value`` differs from the module's baseline.

        The first observation only seeds the baseline and reports no change.
        A differing value replaces the baseline and reports a change.
        """
        current = content_hash(value)
        cached = self._baselines.get(module_name)

        if cached is None:
            self._baselines[module_name] = current
            return False

        if cached != current:
            self.logger.info(f"Data changed for module {module_name}")
            self._baselines[module_name] = current
            return True

        return False

    def initialize(self, modules: Iterable[DataModule]):
        """Seed the baseline of every module from its current data."""
        for module in modules:
            self._baselines[module.name] = content_hash(module.read())

    def clear(self):
        self._baselines.clear()
