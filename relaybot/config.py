"""Bot configuration loader."""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

DEFAULT_MODEL = "gpt-3.5-turbo"
DEFAULT_INFISICAL_API_BASE = "https://app.infisical.com"


@dataclass(frozen=True)
class InfisicalSettings:
    workspace_id: str
    token: str
    environment: str
    secret_type: str
    telegram_bot_token_key_path: str
    openai_api_key_key_path: str
    openai_org_id_key_path: str | None = None
    e2ee_api_key: str | None = None
    api_base: str = DEFAULT_INFISICAL_API_BASE


@dataclass(frozen=True)
class Settings:
    telegram_bot_token: str
    openai_api_key: str
    openai_org_id: str
    allowed_telegram_users: frozenset[str]
    openai_model: str | None = None
    verbose: bool = False
    db_filepath: str | None = None
    infisical: InfisicalSettings | None = None

    @property
    def model(self) -> str:
        return self.openai_model or DEFAULT_MODEL


class ConfigError(ValueError):
    """Raised when the config file is missing or invalid."""


def _read_raw(path: Path) -> Any:
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigError(f"Cannot read config file {path}: {exc}") from exc
    if path.suffix.lower() in {".yaml", ".yml"}:
        try:
            return yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid YAML in config file {path}: {exc}") from exc
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Invalid JSON in config file {path}: {exc}") from exc


def _optional_str(raw: dict[str, Any], key: str) -> str | None:
    value = raw.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ConfigError(f"'{key}' must be a string")
    value = value.strip()
    return value or None


def _parse_allowed_users(raw: dict[str, Any]) -> frozenset[str]:
    users = raw.get("allowed_telegram_users", [])
    if not isinstance(users, list):
        raise ConfigError("allowed_telegram_users must be a list of usernames")
    out: set[str] = set()
    for user in users:
        if not isinstance(user, str):
            raise ConfigError(f"allowed_telegram_users entries must be strings, got {user!r}")
        handle = user.strip().lstrip("@")
        if handle:
            out.add(handle)
    return frozenset(out)


def _parse_infisical(raw: Any) -> InfisicalSettings:
    if not isinstance(raw, dict):
        raise ConfigError("'infisical' must be a mapping")
    required = {
        "workspace_id",
        "token",
        "environment",
        "telegram_bot_token_key_path",
        "openai_api_key_key_path",
    }
    missing = sorted(key for key in required if not _optional_str(raw, key))
    if missing:
        raise ConfigError(f"Missing required infisical keys: {', '.join(missing)}")
    return InfisicalSettings(
        workspace_id=str(raw["workspace_id"]).strip(),
        token=str(raw["token"]).strip(),
        environment=str(raw["environment"]).strip(),
        secret_type=_optional_str(raw, "secret_type") or "shared",
        telegram_bot_token_key_path=str(raw["telegram_bot_token_key_path"]).strip(),
        openai_api_key_key_path=str(raw["openai_api_key_key_path"]).strip(),
        openai_org_id_key_path=_optional_str(raw, "openai_org_id_key_path"),
        e2ee_api_key=_optional_str(raw, "e2ee_api_key"),
        api_base=_optional_str(raw, "api_base") or DEFAULT_INFISICAL_API_BASE,
    )


def load_settings(path: str | Path) -> Settings:
    """Load bot settings from a JSON (or YAML) file."""
    config_path = Path(path)
    if not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    raw = _read_raw(config_path)
    if not isinstance(raw, dict):
        raise ConfigError(f"Config file must contain a mapping: {config_path}")

    infisical = _parse_infisical(raw["infisical"]) if raw.get("infisical") else None

    token = _optional_str(raw, "telegram_bot_token") or ""
    api_key = _optional_str(raw, "openai_api_key") or ""
    if infisical is None:
        missing = [
            key
            for key, value in (("telegram_bot_token", token), ("openai_api_key", api_key))
            if not value
        ]
        if missing:
            raise ConfigError(f"Missing required config keys: {', '.join(missing)}")

    verbose = raw.get("verbose", False)
    if not isinstance(verbose, bool):
        raise ConfigError("'verbose' must be a boolean")

    return Settings(
        telegram_bot_token=token,
        openai_api_key=api_key,
        openai_org_id=_optional_str(raw, "openai_org_id") or "",
        allowed_telegram_users=_parse_allowed_users(raw),
        openai_model=_optional_str(raw, "openai_model"),
        verbose=verbose,
        db_filepath=_optional_str(raw, "db_filepath"),
        infisical=infisical,
    )
