"""Tests for application settings."""

import pytest
import yaml
from pydantic import ValidationError

from repo_sync.config import SettingsManager, SyncSettings, load_settings


def test_defaults():
    settings = SyncSettings()
    assert settings.request_cache_ttl == 5.0
    assert settings.request_timeout == 30.0
    assert settings.sync_prefix == "sync-"
    assert settings.log_level == "WARNING"


def test_validation():
    with pytest.raises(ValidationError):
        SyncSettings(request_cache_ttl=0)
    with pytest.raises(ValidationError):
        SyncSettings(sync_prefix="a/b")
    with pytest.raises(ValidationError):
        SyncSettings(log_level="chatty")
    assert SyncSettings(log_level="debug").log_level == "DEBUG"


def test_load_missing_file_uses_defaults(tmp_path):
    settings = load_settings(tmp_path)
    assert settings.data_path == tmp_path
    assert settings.storage_path == tmp_path / "storage.json"


def test_save_and_load(tmp_path):
    manager = SettingsManager(tmp_path)
    manager.save(SyncSettings(data_dir=str(tmp_path), request_cache_ttl=2.5, log_level="INFO"))

    raw = yaml.safe_load((tmp_path / "settings.yaml").read_text())
    assert raw["request_cache_ttl"] == 2.5
    assert "_metadata" in raw

    loaded = SettingsManager(tmp_path).load()
    assert loaded.request_cache_ttl == 2.5
    assert loaded.log_level == "INFO"


def test_invalid_file_falls_back_to_defaults(tmp_path):
    (tmp_path / "settings.yaml").write_text("request_timeout: -1\n")
    assert SettingsManager(tmp_path).load().request_timeout == 30.0

    (tmp_path / "settings.yaml").write_text("- just\n- a list\n")
    assert SettingsManager(tmp_path).load().sync_prefix == "sync-"
