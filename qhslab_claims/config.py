#!/usr/bin/env python3
"""
Bot configuration - defaults, JSON config file and environment overrides.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

from .errors import ConfigurationError
from .models import RunMode

CONFIG_FILE_NAME = "qhslab_claims.json"

DEFAULT_CHROME_ARGS = [
    "--no-sandbox",
    "--disable-dev-shm-usage",
    "--disable-notifications",
    "--disable-infobars",
    "--disable-extensions",
    "--disable-popup-blocking",
    "--disable-blink-features=AutomationControlled",
]

_TRUE_VALUES = {"1", "true", "yes", "on"}


@dataclass
class Timeouts:
    page_load: float = 30.0
    element_wait: float = 10.0
    short: float = 1.0


@dataclass
class BotConfig:
    base_url: str = "https://my.qhslab.com"
    login_path: str = "/login"
    listing_path: str = "/6oQ5FvCBDUC5CiIrutgARg/accounts"

    headless: bool = False
    chrome_args: List[str] = field(default_factory=lambda: list(DEFAULT_CHROME_ARGS))
    timeouts: Timeouts = field(default_factory=Timeouts)
    settle_delay: float = 0.5

    billable_sentinel: str = "QHSLAB"
    entity_source: str = "IntellyChart"
    assessment_resource: str = "Health Assessment"

    excel_path: Optional[str] = None
    excel_dir: str = "."
    excel_file_name: Optional[str] = None
    sheet_name: Optional[str] = None
    skip_hidden_rows: bool = False

    mode: RunMode = RunMode.NORMAL
    email: Optional[str] = None
    log_dir: str = "logs"
    log_level: str = "INFO"

    @property
    def dry_run(self) -> bool:
        return self.mode is RunMode.DRY_RUN

    @property
    def login_url(self) -> str:
        return self.base_url.rstrip("/") + self.login_path

    @property
    def listing_url(self) -> str:
        return self.base_url.rstrip("/") + self.listing_path


def _coerce(name: str, value: Any) -> Any:
    if name == "timeouts":
        if isinstance(value, Timeouts):
            return value
        if not isinstance(value, dict):
            raise ConfigurationError("'timeouts' must be an object")
        known = {f.name for f in fields(Timeouts)}
        unknown = set(value) - known
        if unknown:
            raise ConfigurationError(f"Unknown timeout keys: {', '.join(sorted(unknown))}")
        return Timeouts(**{k: float(v) for k, v in value.items()})
    if name == "mode":
        try:
            return RunMode(value)
        except ValueError as exc:
            raise ConfigurationError(f"Unknown run mode: {value!r}") from exc
    return value


def apply_overrides(config: BotConfig, overrides: Dict[str, Any]) -> BotConfig:
    """Set fields from a mapping, rejecting keys the config does not know."""
    known = {f.name for f in fields(BotConfig)}
    for key, value in overrides.items():
        if key not in known:
            raise ConfigurationError(f"Unknown configuration key: {key}")
        if value is None:
            continue
        setattr(config, key, _coerce(key, value))
    return config


def load_config_file(path: Path) -> Dict[str, Any]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"Malformed config file {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigurationError(f"Cannot read config file {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {path} must contain a JSON object")
    return data


def env_overrides(environ: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    env = os.environ if environ is None else environ
    overrides: Dict[str, Any] = {
        "email": env.get("QHSLAB_EMAIL") or None,
        "excel_path": env.get("EXCEL_FILE_PATH") or None,
        "excel_dir": env.get("EXCEL_DIR") or None,
        "excel_file_name": env.get("EXCEL_FILE_NAME") or None,
        "sheet_name": env.get("EXCEL_SHEET_NAME") or None,
    }
    if env.get("DRY_RUN", "").strip().lower() in _TRUE_VALUES:
        overrides["mode"] = RunMode.DRY_RUN
    return overrides


def load_config(
    config_path: Optional[Path] = None,
    *,
    environ: Optional[Dict[str, str]] = None,
    cli_overrides: Optional[Dict[str, Any]] = None,
) -> BotConfig:
    """Build the effective configuration.

    Precedence, lowest first: defaults, JSON file, environment, CLI flags.
    Without an explicit path the file is looked up in the working directory
    and silently skipped when absent.
    """
    config = BotConfig()

    path = config_path
    if path is None:
        candidate = Path.cwd() / CONFIG_FILE_NAME
        path = candidate if candidate.exists() else None
    elif not path.exists():
        raise ConfigurationError(f"Config file not found: {path}")

    if path is not None:
        apply_overrides(config, load_config_file(path))
    apply_overrides(config, env_overrides(environ))
    if cli_overrides:
        apply_overrides(config, cli_overrides)
    return config


__all__ = ["BotConfig", "CONFIG_FILE_NAME", "Timeouts", "apply_overrides", "env_overrides", "load_config"]
