"""Runtime settings for the DeesseJS project generator."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

import yaml

from deesse import __version__

CONFIG_FILENAME = "config.yaml"
DEFAULT_TEMPLATES_REPO = "nesalia-inc/deessejs"
DEFAULT_TEMPLATES_REF = "main"
DEFAULT_DOWNLOAD_TIMEOUT = 60.0
DEFAULT_DOWNLOAD_RETRIES = 2


class ConfigError(RuntimeError):
    """Raised when config.yaml or an environment override is invalid."""


@dataclass(frozen=True)
class RuntimeSettings:
    home_dir: Path
    template_dir: Path
    log_dir: Path
    templates_repo: str = DEFAULT_TEMPLATES_REPO
    templates_ref: str = DEFAULT_TEMPLATES_REF
    download_timeout: float = DEFAULT_DOWNLOAD_TIMEOUT
    download_retries: int = DEFAULT_DOWNLOAD_RETRIES
    local_templates: Path | None = None
    cli_version: str = __version__

    @property
    def config_file(self) -> Path:
        return self.home_dir / CONFIG_FILENAME


def _default_home_dir(env: Mapping[str, str]) -> Path:
    override = env.get("DEESSE_HOME")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".deessejs"


def _read_config(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    try:
        payload = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"config file invalid YAML ({path}): {exc}") from exc
    if not isinstance(payload, dict):
        raise ConfigError(f"config file must be a mapping: {path}")
    return payload


def _section(payload: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    value = payload.get(name) or {}
    if not isinstance(value, dict):
        raise ConfigError(f"config section '{name}' must be a mapping")
    return value


def _as_float(value: Any, label: str) -> float:
    try:
        result = float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{label} must be a number, got {value!r}") from exc
    if result <= 0:
        raise ConfigError(f"{label} must be positive")
    return result


def _as_int(value: Any, label: str) -> int:
    try:
        result = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{label} must be an integer, got {value!r}") from exc
    if result < 0:
        raise ConfigError(f"{label} must not be negative")
    return result


def load_settings(environ: Mapping[str, str] | None = None) -> RuntimeSettings:
    env = os.environ if environ is None else environ
    base = _default_home_dir(env)
    config = _read_config(base / CONFIG_FILENAME)
    templates = _section(config, "templates")
    download = _section(config, "download")

    cache_value = env.get("DEESSE_CACHE_DIR") or config.get("cache_dir")
    template_dir = Path(str(cache_value)).expanduser() if cache_value else base / "templates"

    local_value = env.get("DEESSE_TEMPLATES_PATH") or templates.get("path")
    local_templates = Path(str(local_value)).expanduser().resolve() if local_value else None

    timeout_value = env.get("DEESSE_DOWNLOAD_TIMEOUT", download.get("timeout", DEFAULT_DOWNLOAD_TIMEOUT))
    retries_value = env.get("DEESSE_DOWNLOAD_RETRIES", download.get("retries", DEFAULT_DOWNLOAD_RETRIES))

    return RuntimeSettings(
        home_dir=base,
        template_dir=template_dir,
        log_dir=base / "logs",
        templates_repo=str(env.get("DEESSE_TEMPLATES_REPO") or templates.get("repo") or DEFAULT_TEMPLATES_REPO),
        templates_ref=str(env.get("DEESSE_TEMPLATES_REF") or templates.get("ref") or DEFAULT_TEMPLATES_REF),
        download_timeout=_as_float(timeout_value, "download timeout"),
        download_retries=_as_int(retries_value, "download retries"),
        local_templates=local_templates,
    )

