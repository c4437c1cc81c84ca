from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml


class ConfigError(RuntimeError):
    pass


DEFAULT_PAGE_SIZE = 20
DEFAULT_CONNECT_TIMEOUT = 10

REGISTRY_FILE_NAME = "config.json"
KEY_FILE_NAME = "key.bin"
LOG_FILE_NAME = "daedalus.log"


@dataclass
class AppConfig:
    """Process-wide settings, built once at start-up and passed down explicitly."""

    version: int = 1
    data_dir: Path = field(default_factory=lambda: default_data_dir())
    page_size: int = DEFAULT_PAGE_SIZE
    connect_timeout: int = DEFAULT_CONNECT_TIMEOUT
    log_file: Optional[Path] = None
    source_path: Optional[Path] = None

    @property
    def registry_path(self) -> Path:
        return self.data_dir / REGISTRY_FILE_NAME

    @property
    def key_path(self) -> Path:
        return self.data_dir / KEY_FILE_NAME

    @property
    def effective_log_file(self) -> Path:
        return self.log_file or (self.data_dir / LOG_FILE_NAME)

    def to_json(self) -> str:
        out = {
            "version": self.version,
            "data_dir": str(self.data_dir),
            "registry_path": str(self.registry_path),
            "key_path": str(self.key_path),
            "page_size": self.page_size,
            "connect_timeout": self.connect_timeout,
            "log_file": str(self.effective_log_file),
            "source_path": str(self.source_path) if self.source_path else None,
        }
        return json.dumps(out, indent=2, sort_keys=True)


def default_data_dir() -> Path:
    override = os.environ.get("DAEDALUS_HOME")
    if override:
        return Path(override).expanduser()
    return Path("~/.daedalus-cli").expanduser()


def _expand_env(value: Any) -> Any:
    if isinstance(value, str):
        # Expand ${VAR} style
        return os.path.expandvars(value)
    if isinstance(value, dict):
        return {k: _expand_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_expand_env(v) for v in value]
    return value


def _positive_int(raw: Any, key: str, default: int) -> int:
    if raw is None:
        return default
    try:
        value = int(raw)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{key} must be an integer, got {raw!r}") from e
    if value <= 0:
        raise ConfigError(f"{key} must be greater than zero, got {value}")
    return value


def resolve_config_path() -> Optional[Path]:
    """Locate the optional settings file.

    Returns None when no file exists; only an explicit ``DAEDALUS_CONFIG``
    pointing at a missing file is an error.
    """
    # Highest priority: explicit override
    override = os.environ.get("DAEDALUS_CONFIG")
    if override:
        p = Path(override).expanduser()
        if p.is_file():
            return p
        raise ConfigError(f"DAEDALUS_CONFIG path not found: {p}")

    # XDG base dirs
    xdg_home = Path(os.environ.get("XDG_CONFIG_HOME", "~/.config")).expanduser()
    candidates = [xdg_home / "daedalus" / "config.yaml"]

    xdg_dirs = os.environ.get("XDG_CONFIG_DIRS", "/etc/xdg")
    for d in xdg_dirs.split(":"):
        if d:
            candidates.append(Path(d) / "daedalus" / "config.yaml")

    for c in candidates:
        if c.is_file():
            return c
    return None


def load_config(path: Optional[Path] = None) -> AppConfig:
    cfg_path = path or resolve_config_path()
    if cfg_path is None:
        return AppConfig()

    try:
        data = yaml.safe_load(cfg_path.read_text()) or {}
    except FileNotFoundError as e:
        raise ConfigError(str(e)) from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {cfg_path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Expected a mapping at the top of {cfg_path}")

    data = _expand_env(data)
    data_dir = data.get("data_dir")
    log_file = data.get("log_file")

    return AppConfig(
        version=int(data.get("version", 1)),
        data_dir=Path(data_dir).expanduser() if data_dir else default_data_dir(),
        page_size=_positive_int(data.get("page_size"), "page_size", DEFAULT_PAGE_SIZE),
        connect_timeout=_positive_int(
            data.get("connect_timeout"), "connect_timeout", DEFAULT_CONNECT_TIMEOUT
        ),
        log_file=Path(log_file).expanduser() if log_file else None,
        source_path=cfg_path,
    )
