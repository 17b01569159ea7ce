"""
commbook/config.py
Report engine configuration. Persists to commbook_config.json in the project
root; deployment secrets and toggles can be overridden from the environment
so they never have to be written to disk.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

logger = logging.getLogger(__name__)

DEFAULT_CONFIG = {
    "db_path": "commbook.db",
    "settings_path": ".local/settings",
    "app_url": "http://localhost:8000",
    "timezone": "America/Argentina/Buenos_Aires",

    # Trigger endpoint
    "daily_reports": False,
    "cron_job_token": "",
    "auth_secret": "",
    "cron_job_url": None,
    "cron_times": ["08:00", "15:00"],
    "cron_weekdays_only": True,

    # Recipients. Empty means "use reportToEmails from general.json".
    "report_to_emails": [],

    # Outbound mail
    "smtp_host": None,
    "smtp_port": 587,
    "smtp_use_ssl": False,
    "smtp_starttls": True,
    "smtp_user": None,
    "smtp_pass": None,
    "smtp_from_email": None,
    "smtp_from_name": None,
    "mail_workers": 4,

    # Policy thresholds
    "week_start": 6,                # Python weekday: Monday=0 … Sunday=6
    "weekly_threshold": 3,
    "weekly_repeat_threshold": 6,
    "cumulative_threshold": 3,
}

# ENV VAR → (config key, converter)
ENV_OVERRIDES = {
    "DB_PATH":         ("db_path",         str),
    "SETTINGS_PATH":   ("settings_path",   str),
    "APP_URL":         ("app_url",         str),
    "TIMEZONE":        ("timezone",        str),
    "DAILY_REPORTS":   ("daily_reports",   lambda v: parse_bool(v)),
    "CRON_JOB_TOKEN":  ("cron_job_token",  str),
    "AUTH_SECRET":     ("auth_secret",     str),
    "CRON_JOB_URL":    ("cron_job_url",    str),
    "SMTP_HOST":       ("smtp_host",       str),
    "SMTP_PORT":       ("smtp_port",       lambda v: _parse_port(v)),
    "SMTP_USE_SSL":    ("smtp_use_ssl",    lambda v: parse_bool(v)),
    "SMTP_USER":       ("smtp_user",       str),
    "SMTP_PASS":       ("smtp_pass",       str),
    "SMTP_FROM_EMAIL": ("smtp_from_email", str),
    "SMTP_FROM_NAME":  ("smtp_from_name",  str),
}

_TRUTHY = {"true", "on", "yes", "1"}


def parse_bool(value: Any) -> bool:
    """'true' / 'on' / 'yes' / '1' (any case, surrounding whitespace ignored)."""
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in _TRUTHY


def _parse_port(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return DEFAULT_CONFIG["smtp_port"]


def _config_path(project_root: Optional[Path] = None) -> Path:
    root = project_root or Path.cwd()
    return root / "commbook_config.json"


def load_config(
    project_root: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Dict[str, Any]:
    """
    Load config from commbook_config.json, then apply environment overrides.
    Returns defaults (plus overrides) if the file is missing or unreadable.
    """
    path = _config_path(project_root)
    config = dict(DEFAULT_CONFIG)
    if path.exists():
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            config.update(data)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Config load failed: {e}")
    return apply_env_overrides(config, environ)


def apply_env_overrides(
    config: Dict[str, Any],
    environ: Optional[Mapping[str, str]] = None,
) -> Dict[str, Any]:
    env = os.environ if environ is None else environ
    merged = dict(config)
    for var, (key, convert) in ENV_OVERRIDES.items():
        raw = env.get(var)
        if raw is None or raw == "":
            continue
        merged[key] = convert(raw)
    return merged


def save_config(config: Dict[str, Any], project_root: Optional[Path] = None) -> Path:
    """Persist config to commbook_config.json. Secrets are not written."""
    path = _config_path(project_root)
    public = {k: v for k, v in config.items() if k not in ("smtp_pass", "cron_job_token", "auth_secret")}
    path.write_text(json.dumps(public, indent=2), encoding="utf-8")
    return path


def resolve_token(config: Mapping[str, Any]) -> str:
    """Bearer token expected by the trigger endpoint."""
    return config.get("cron_job_token") or config.get("auth_secret") or ""


def resolve_from_address(config: Mapping[str, Any]) -> Optional[str]:
    return config.get("smtp_from_email") or config.get("smtp_user") or None


def resolve_cron_url(config: Mapping[str, Any]) -> str:
    return config.get("cron_job_url") or (config.get("app_url") or "http://localhost:8000").rstrip("/") + "/api/cron"


def resolve_path(config: Mapping[str, Any], key: str, project_root: Optional[Path] = None) -> Path:
    """Config paths are relative to the project root unless absolute."""
    p = Path(config[key])
    if not p.is_absolute():
        p = (project_root or Path.cwd()) / p
    return p
