"""Application settings for repo_sync.

Only non-secret settings live here. Repository credentials are handled by
:mod:`repo_sync.credential_store` and are encrypted at rest.
"""

import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, ValidationError, field_validator


logger = logging.getLogger(__name__)

DEFAULT_DATA_DIR = "~/.repo_sync"


class SyncSettings(BaseModel):
    """Tunable settings for the sync engine and CLI."""

    data_dir: str = DEFAULT_DATA_DIR
    storage_file: str = "storage.json"

    # Request handling
    request_cache_ttl: float = 5.0  # seconds
    request_timeout: float = 30.0  # seconds

    # Remote layout
    sync_prefix: str = "sync-"

    # Logging
    log_level: str = "WARNING"

    @field_validator('request_cache_ttl', 'request_timeout')
    @classmethod
    def validate_positive(cls, v):
        if v <= 0:
            raise ValueError('Timeouts must be positive')
        return v

    @field_validator('sync_prefix')
    @classmethod
    def validate_prefix(cls, v):
        if not v or '/' in v:
            raise ValueError('Sync prefix must be a non-empty file name prefix')
        return v

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v):
        level = v.upper()
        if level not in ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'):
            raise ValueError(f'Unknown log level: {v}')
        return level

    @property
    def data_path(self) -> Path:
        return Path(os.path.expanduser(self.data_dir))

    @property
    def storage_path(self) -> Path:
        return self.data_path / self.storage_file


class SettingsManager:
    """Loads and saves :class:`SyncSettings` as YAML."""

    SETTINGS_FILE = "settings.yaml"

    def __init__(self, config_dir: Optional[Path] = None):
        """Initialize settings manager.

        Args:
            config_dir: Optional config directory path
        """
        self.config_dir = Path(config_dir) if config_dir else Path(os.path.expanduser(DEFAULT_DATA_DIR))
        self.settings_file = self.config_dir / self.SETTINGS_FILE
        self.settings = SyncSettings(data_dir=str(self.config_dir))
        self.logger = logging.getLogger(__name__)

    def load(self) -> SyncSettings:
        """Load settings from file, falling back to defaults."""
        if not self.settings_file.exists():
            self.logger.debug("No settings file found, using defaults")
            return self.settings

        try:
            with open(self.settings_file, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            self.logger.error(f"Failed to read settings from {self.settings_file}: {e}")
            return self.settings

        if not data:
            return self.settings
        if not isinstance(data, dict):
            self.logger.error(f"Settings file {self.settings_file} must contain a mapping")
            return self.settings

        data.pop('_metadata', None)
        data.setdefault('data_dir', str(self.config_dir))
        try:
            self.settings = SyncSettings(**data)
        except ValidationError as e:
            self.logger.error(f"Invalid settings in {self.settings_file}, using defaults: {e}")
            return self.settings

        self.logger.debug(f"Loaded settings from {self.settings_file}")
        return self.settings

    def save(self, settings: Optional[SyncSettings] = None):
        """Save settings to file."""
        if settings is not None:
            self.settings = settings

        data = self.settings.model_dump()
        data['_metadata'] = {
            'version': '1.0',
            'updated_at': datetime.now(timezone.utc).isoformat(),
        }

        self.settings_file.parent.mkdir(parents=True, exist_ok=True)

        temp_file = self.settings_file.with_suffix('.tmp')
        with open(temp_file, 'w', encoding='utf-8') as f:
            yaml.dump(data, f, default_flow_style=False, indent=2, sort_keys=True)
        temp_file.replace(self.settings_file)

        self.logger.debug(f"Saved settings to {self.settings_file}")


def load_settings(config_dir: Optional[Path] = None) -> SyncSettings:
    """Load settings from ``config_dir`` (default ``~/.repo_sync``)."""
    return SettingsManager(config_dir).load()
