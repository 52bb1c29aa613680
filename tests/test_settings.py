import json
import logging
from pathlib import Path

import pytest

from settings import SettingsError, default_config_path, load_settings, save_settings


def test_missing_file_is_created_with_defaults(tmp_path: Path):
    path = tmp_path / "conf" / "config.json"
    settings = load_settings(path)

    assert settings.log_level == "info"
    assert settings.image_directories == []
    assert json.loads(path.read_text()) == {"log_level": "info", "image_directories": []}


def test_default_config_path_honours_xdg(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))
    assert default_config_path() == tmp_path / "image-shelf" / "config.json"


def test_load_fills_defaults_and_keeps_unknown_keys(tmp_path: Path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"window_width": 1024}))

    settings = load_settings(path)
    assert settings.log_level == "info"
    saved = json.loads(path.read_text())
    assert saved["window_width"] == 1024
    assert saved["image_directories"] == []


def test_load_drops_duplicate_directories(tmp_path: Path, caplog):
    photos = tmp_path / "photos"
    photos.mkdir()
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"image_directories": [str(photos), str(photos) + "/.", "", 5]}))

    with caplog.at_level(logging.WARNING, logger="settings"):
        settings = load_settings(path)
    assert settings.list_root_directories() == (str(photos),)
    assert "duplicate" in caplog.text


def test_invalid_json(tmp_path: Path):
    path = tmp_path / "config.json"
    path.write_text("{not json")
    with pytest.raises(SettingsError):
        load_settings(path)


def test_non_object_document(tmp_path: Path):
    path = tmp_path / "config.json"
    path.write_text("[]")
    with pytest.raises(SettingsError):
        load_settings(path)


def test_add_directory(tmp_path: Path):
    photos = tmp_path / "photos"
    photos.mkdir()
    settings = load_settings(tmp_path / "config.json")

    assert settings.add_directory(photos) is True
    assert settings.add_directory(str(photos) + "/../photos") is False
    assert settings.list_root_directories() == (str(photos.resolve()),)

    save_settings(settings)
    assert load_settings(settings.path).list_root_directories() == (str(photos.resolve()),)


def test_add_directory_rejects_files(tmp_path: Path):
    settings = load_settings(tmp_path / "config.json")
    target = tmp_path / "file.txt"
    target.write_text("x")
    with pytest.raises(SettingsError):
        settings.add_directory(target)


def test_numeric_log_level(tmp_path: Path):
    settings = load_settings(tmp_path / "config.json")
    assert settings.numeric_log_level() == logging.INFO
    settings.log_level = "debug"
    assert settings.numeric_log_level() == logging.DEBUG
    settings.log_level = "chatty"
    assert settings.numeric_log_level() == logging.INFO
