"""AppConfig: per-user application settings in ``<config_dir>/config.json``.

Layout (written through the canonical serializer):

    {
      "format_version": 1,
      "last_project_root_path": "/home/me/projects/acme-issues",
      "log": {
        "level": "info"
      },
      "ui": {
        "page_size": 20
      }
    }

The config directory also holds ``auth/contractor.json`` (see credentials).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from filetrack import jsonfmt
from filetrack.atomic import AtomicWriter
from filetrack.errors import IOFailure, SchemaInvalidError, UnparsableError
from filetrack.fsops import FileSystem
from filetrack.query import DEFAULT_PAGE_SIZE
from filetrack.schema import SchemaGate

logger = logging.getLogger("filetrack.config")

CONFIG_FILENAME = "config.json"
CONFIG_FORMAT_VERSION = 1
LOG_LEVELS = ("debug", "info", "error")
_DEFAULT_LOG_LEVEL = "info"


@dataclass
class LogConfig:
    level: str = _DEFAULT_LOG_LEVEL

    @property
    def logging_level(self) -> int:
        return {"debug": logging.DEBUG, "error": logging.ERROR}.get(self.level, logging.INFO)


@dataclass
class UIConfig:
    page_size: int = DEFAULT_PAGE_SIZE


@dataclass
class AppConfig:
    format_version: int = CONFIG_FORMAT_VERSION
    last_project_root_path: str = ""
    log: LogConfig = field(default_factory=LogConfig)
    ui: UIConfig = field(default_factory=UIConfig)
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> AppConfig:
        log_section = raw.get("log", {})
        ui_section = raw.get("ui", {})
        return cls(
            format_version=int(raw.get("format_version", CONFIG_FORMAT_VERSION)),
            last_project_root_path=str(raw.get("last_project_root_path", "")),
            log=LogConfig(level=log_section.get("level", _DEFAULT_LOG_LEVEL)),
            ui=UIConfig(page_size=int(ui_section.get("page_size", DEFAULT_PAGE_SIZE))),
            extra={k: v for k, v in raw.items() if k not in {"format_version", "last_project_root_path", "log", "ui"}},
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "format_version": self.format_version,
            "last_project_root_path": self.last_project_root_path,
            "log": {"level": self.log.level},
            "ui": {"page_size": self.ui.page_size},
        }
        for k, v in self.extra.items():
            d.setdefault(k, v)
        return d


class ConfigRepository:
    """Load-or-default and atomic save of config.json."""

    def __init__(
        self,
        config_dir: Path | str,
        gate: SchemaGate | None = None,
        fs: FileSystem | None = None,
        writer: AtomicWriter | None = None,
    ) -> None:
        self.config_dir = Path(config_dir)
        self.path = self.config_dir / CONFIG_FILENAME
        self.gate = gate or SchemaGate()
        self.fs = fs or FileSystem()
        self.writer = writer or AtomicWriter(self.fs)

    def load(self) -> tuple[AppConfig, bool]:
        """Return ``(config, existed)``. A missing file gives the defaults."""
        try:
            raw = self.fs.read_bytes(self.path)
        except FileNotFoundError:
            return AppConfig(), False
        except OSError as exc:
            msg = f"read config {self.path}: {exc}"
            raise IOFailure(msg) from exc

        result = self.gate.validate_config(raw)
        if result.is_unparsable:
            msg = f"parse config {self.path}: {result.parse_error}"
            raise UnparsableError(msg)
        if not result.is_valid:
            msg = f"config {self.path} is invalid: {result.detail()}"
            raise SchemaInvalidError(msg)
        return AppConfig.from_dict(result.document), True

    def save(self, config: AppConfig) -> None:
        try:
            self.fs.makedirs(self.config_dir)
        except OSError as exc:
            msg = f"create config dir {self.config_dir}: {exc}"
            raise IOFailure(msg) from exc
        self.writer.write(self.path, jsonfmt.dumps_config(config))
        logger.debug("config saved to %s", self.path)

    def save_last_project_root(self, path: Path | str) -> AppConfig:
        config, _ = self.load()
        config.last_project_root_path = str(path)
        self.save(config)
        return config
