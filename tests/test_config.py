from __future__ import annotations

import logging

import pytest

from filetrack.config import AppConfig, ConfigRepository
from filetrack.errors import SchemaInvalidError, UnparsableError


def test_missing_file_gives_defaults(tmp_path):
    config, existed = ConfigRepository(tmp_path).load()
    assert not existed
    assert config == AppConfig()
    assert config.ui.page_size == 20
    assert config.log.logging_level == logging.INFO


def test_save_and_load(tmp_path):
    repo = ConfigRepository(tmp_path / "cfg")
    config = AppConfig()
    config.log.level = "debug"
    config.ui.page_size = 50
    repo.save(config)

    assert (tmp_path / "cfg" / "config.json").read_text(encoding="utf-8") == (
        "{\n"
        '  "format_version": 1,\n'
        '  "last_project_root_path": "",\n'
        '  "log": {\n'
        '    "level": "debug"\n'
        "  },\n"
        '  "ui": {\n'
        '    "page_size": 50\n'
        "  }\n"
        "}\n"
    )
    loaded, existed = repo.load()
    assert existed
    assert loaded == config


def test_save_last_project_root_keeps_other_fields(tmp_path):
    repo = ConfigRepository(tmp_path)
    (tmp_path / "config.json").write_text('{"format_version": 1, "ui": {"page_size": 7}, "theme": "dark"}')

    repo.save_last_project_root("/srv/issues")

    loaded, _ = repo.load()
    assert loaded.last_project_root_path == "/srv/issues"
    assert loaded.ui.page_size == 7
    assert loaded.extra == {"theme": "dark"}


def test_malformed_json(tmp_path):
    (tmp_path / "config.json").write_text("{")
    with pytest.raises(UnparsableError):
        ConfigRepository(tmp_path).load()


def test_schema_violation(tmp_path):
    (tmp_path / "config.json").write_text('{"format_version": 1, "ui": {"page_size": 0}}')
    with pytest.raises(SchemaInvalidError):
        ConfigRepository(tmp_path).load()
