from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List

import yaml

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parents[1]
DEFAULT_LOAD_TIMEOUT = 10.0


def _config_path() -> Path:
    configured = os.getenv("PAGEHOST_CONFIG")
    if configured:
        return Path(configured)
    return PROJECT_ROOT / "config" / "pagehost.yaml"


@dataclass
class HostConfig:
    """Extension host settings after file and environment overrides."""
    extension_roots: List[Path] = field(default_factory=lambda: [PROJECT_ROOT / "bundled_extensions"])
    disabled_extensions: List[str] = field(default_factory=list)
    load_timeout: float = DEFAULT_LOAD_TIMEOUT
    log_level: str = "INFO"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "extension_roots": [str(p) for p in self.extension_roots],
            "disabled_extensions": list(self.disabled_extensions),
            "load_timeout": self.load_timeout,
            "log_level": self.log_level,
        }


@lru_cache(maxsize=1)
def load_host_config_file() -> Dict[str, Any]:
    """Load the host config YAML file (if present)."""
    path = _config_path()
    if not path.exists():
        return {}

    parsed = yaml.safe_load(path.read_text(encoding="utf-8"))
    if not isinstance(parsed, dict):
        logger.warning(f"Ignoring host config {path}: top level is not a mapping")
        return {}
    return parsed


def _resolve_root(value: str, base: Path) -> Path:
    path = Path(value).expanduser()
    return path if path.is_absolute() else base / path


def get_host_config() -> HostConfig:
    """
    Build the effective HostConfig.

    Relative roots in the file resolve against the project root. The
    environment overrides the file:
    PAGEHOST_EXTENSION_ROOTS (os.pathsep separated),
    PAGEHOST_DISABLED_EXTENSIONS (comma separated),
    PAGEHOST_LOAD_TIMEOUT and PAGEHOST_LOG_LEVEL.
    """
    data = load_host_config_file()
    section = data.get("extensions", {}) if isinstance(data.get("extensions"), dict) else {}
    config = HostConfig()

    roots = section.get("roots")
    if isinstance(roots, list) and roots:
        config.extension_roots = [_resolve_root(str(r), PROJECT_ROOT) for r in roots]

    disabled = section.get("disabled")
    if isinstance(disabled, list):
        config.disabled_extensions = [str(d) for d in disabled]

    if section.get("load_timeout") is not None:
        config.load_timeout = float(section["load_timeout"])

    logging_section = data.get("logging", {}) if isinstance(data.get("logging"), dict) else {}
    if logging_section.get("level"):
        config.log_level = str(logging_section["level"]).upper()

    env_roots = os.getenv("PAGEHOST_EXTENSION_ROOTS")
    if env_roots:
        config.extension_roots = [
            _resolve_root(r, Path.cwd()) for r in env_roots.split(os.pathsep) if r.strip()
        ]

    env_disabled = os.getenv("PAGEHOST_DISABLED_EXTENSIONS")
    if env_disabled is not None:
        config.disabled_extensions = [d.strip() for d in env_disabled.split(",") if d.strip()]

    env_timeout = os.getenv("PAGEHOST_LOAD_TIMEOUT")
    if env_timeout:
        try:
            config.load_timeout = float(env_timeout)
        except ValueError:
            logger.warning(f"Ignoring invalid PAGEHOST_LOAD_TIMEOUT={env_timeout!r}")

    env_level = os.getenv("PAGEHOST_LOG_LEVEL")
    if env_level:
        config.log_level = env_level.upper()

    return config
