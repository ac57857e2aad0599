"""Credential providers: static config values or an Infisical secret store."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Protocol
from urllib import error, parse, request

from relaybot.config import InfisicalSettings, Settings

logger = logging.getLogger(__name__)

DEFAULT_SECRET_TIMEOUT_SECONDS = 30


@dataclass(frozen=True)
class Credentials:
    telegram_bot_token: str
    openai_api_key: str
    openai_org_id: str


class CredentialError(RuntimeError):
    """Raised when credentials cannot be resolved."""


class CredentialProvider(Protocol):
    def resolve(self) -> Credentials: ...


class StaticCredentialProvider:
    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    def resolve(self) -> Credentials:
        return Credentials(
            telegram_bot_token=self._settings.telegram_bot_token,
            openai_api_key=self._settings.openai_api_key,
            openai_org_id=self._settings.openai_org_id,
        )


def split_key_path(key_path: str) -> tuple[str, str]:
    """Split `/folder/NAME` into (`/folder`, `NAME`)."""
    cleaned = key_path.strip().rstrip("/")
    if not cleaned:
        raise CredentialError("Empty secret key path")
    folder, _, name = cleaned.rpartition("/")
    if not name:
        raise CredentialError(f"Invalid secret key path: {key_path}")
    return (folder or "/", name)


class InfisicalCredentialProvider:
    def __init__(
        self,
        settings: InfisicalSettings,
        *,
        timeout_seconds: int = DEFAULT_SECRET_TIMEOUT_SECONDS,
    ) -> None:
        self._settings = settings
        self._timeout_seconds = timeout_seconds

    def _secret_url(self, key_path: str) -> str:
        folder, name = split_key_path(key_path)
        query = parse.urlencode(
            {
                "workspaceId": self._settings.workspace_id,
                "environment": self._settings.environment,
                "secretPath": folder,
                "type": self._settings.secret_type,
            }
        )
        base = self._settings.api_base.rstrip("/")
        return f"{base}/api/v3/secrets/raw/{parse.quote(name)}?{query}"

    def _headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/json",
            "Authorization": f"Bearer {self._settings.token}",
        }
        if self._settings.e2ee_api_key:
            headers["X-API-Key"] = self._settings.e2ee_api_key
        return headers

    def fetch(self, key_path: str) -> str:
        req = request.Request(self._secret_url(key_path), headers=self._headers(), method="GET")
        try:
            with request.urlopen(req, timeout=self._timeout_seconds) as resp:  # noqa: S310
                data: Any = json.loads(resp.read().decode("utf-8"))
        except error.HTTPError as exc:
            body = exc.read().decode("utf-8", errors="replace")
            raise CredentialError(f"Infisical HTTP {exc.code} for {key_path}: {body}") from exc
        except (error.URLError, TimeoutError, OSError) as exc:
            raise CredentialError(f"Infisical request failed for {key_path}: {exc}") from exc
        except json.JSONDecodeError as exc:
            raise CredentialError(f"Infisical returned invalid JSON for {key_path}") from exc

        secret = data.get("secret") if isinstance(data, dict) else None
        value = secret.get("secretValue") if isinstance(secret, dict) else None
        if not isinstance(value, str):
            raise CredentialError(f"Infisical response has no secret value for {key_path}")
        return value.strip()

    def resolve(self) -> Credentials:
        logger.info("resolving credentials from infisical workspace %s", self._settings.workspace_id)
        org_id = ""
        if self._settings.openai_org_id_key_path:
            org_id = self.fetch(self._settings.openai_org_id_key_path)
        return Credentials(
            telegram_bot_token=self.fetch(self._settings.telegram_bot_token_key_path),
            openai_api_key=self.fetch(self._settings.openai_api_key_key_path),
            openai_org_id=org_id,
        )


def credential_provider_for(settings: Settings) -> CredentialProvider:
    if settings.infisical is not None:
        return InfisicalCredentialProvider(settings.infisical)
    return StaticCredentialProvider(settings)
