"""Runtime settings for a carry-over run.

Settings live in a small YAML file (``/etc/vps_carryover.yaml`` unless
``CARRYOVER_CONFIG`` points elsewhere).  Every key can be overridden through a
``CARRYOVER_<KEY>`` environment variable, which is how cron jobs and tests
adjust a single value without touching the file.
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from carryover.core.errors import ConfigError

DEFAULT_CONFIG_PATH = Path("/etc/vps_carryover.yaml")
DEFAULT_REPORT_NAME = "vps_report.txt"
DEFAULT_PANEL_PORT = 4085

ENV_PREFIX = "CARRYOVER_"
ENV_KEYS = (
    "host",
    "key",
    "password",
    "api_base",
    "parallel_jobs",
    "insecure",
    "log_api_responses",
    "log_api_max_chars",
    "report_file",
    "log_dir",
    "timeout",
)


class Settings(BaseModel):
    host: str = ""
    key: str = ""
    password: str = ""
    api_base: str | None = None
    parallel_jobs: int = Field(default=5, ge=1)
    insecure: bool = False
    log_api_responses: bool = True
    log_api_max_chars: int = Field(default=2000, ge=0)
    report_file: Path = Path(DEFAULT_REPORT_NAME)
    log_dir: Path = Path("/root")
    timeout: float = Field(default=30.0, gt=0)

    @property
    def verbose_log(self) -> Path:
        return self.log_dir / "carryover.log"

    @property
    def change_log(self) -> Path:
        return self.log_dir / "carryover_changes.log"

    def resolved_api_base(self) -> str:
        return build_api_base(self.host, self.key, self.password, api_base=self.api_base)


def build_api_base(host: str, key: str, password: str, *, api_base: str | None = None) -> str:
    """Return the panel entry URL carrying the admin credentials."""

    if api_base:
        return api_base

    host_clean = host.strip()
    for scheme in ("http://", "https://"):
        if host_clean.startswith(scheme):
            host_clean = host_clean[len(scheme):]
    host_clean = host_clean.rstrip("/")
    if ":" not in host_clean:
        host_clean = f"{host_clean}:{DEFAULT_PANEL_PORT}"
    return f"https://{host_clean}/index.php?adminapikey={key}&adminapipass={password}"


def _config_path(path: str | Path | None) -> Path:
    if path:
        return Path(path).expanduser()
    env_path = os.getenv(f"{ENV_PREFIX}CONFIG")
    if env_path:
        return Path(env_path).expanduser()
    return DEFAULT_CONFIG_PATH


def _read_yaml(path: Path) -> dict[str, Any]:
    if not path.is_file():
        raise ConfigError(f"Config not found at {path}")
    try:
        with path.open("r", encoding="utf-8") as fp:
            data = yaml.safe_load(fp)
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"Config at {path} could not be read: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config at {path} must be a mapping of settings")
    return {str(key).lower(): value for key, value in data.items()}


def load_settings(path: str | Path | None = None) -> Settings:
    """Load settings from YAML and apply ``CARRYOVER_*`` overrides."""

    config_path = _config_path(path)
    raw = _read_yaml(config_path)

    for key in ENV_KEYS:
        value = os.getenv(f"{ENV_PREFIX}{key.upper()}")
        if value is not None and value != "":
            raw[key] = value

    # blank entries in the file mean "use the default"
    raw = {key: value for key, value in raw.items() if value not in (None, "")}

    try:
        settings = Settings(**raw)
    except PydanticValidationError as exc:
        raise ConfigError(f"Invalid settings in {config_path}: {exc}") from exc

    if not settings.report_file.is_absolute():
        settings = settings.model_copy(
            update={"report_file": config_path.resolve().parent / settings.report_file}
        )

    if not settings.api_base:
        missing = [name for name in ("host", "key", "password") if not getattr(settings, name)]
        if missing:
            raise ConfigError(f"Missing panel credentials: {', '.join(missing)}")
    return settings


__all__ = ["Settings", "build_api_base", "load_settings", "DEFAULT_CONFIG_PATH"]
