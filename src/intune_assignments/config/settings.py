from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, Mapping

from dotenv import dotenv_values
from platformdirs import user_cache_dir, user_config_dir, user_documents_dir

APP_NAME = "IntuneAssignments"
ENV_PREFIX = "INTUNE_ASSIGNMENTS_"
ENV_FILE_NAME = "settings.env"
TOKEN_CACHE_NAME = "token_cache.bin"
EXPORT_DIR_NAME = "IntuneAssignments"

DEFAULT_REQUEST_TIMEOUT = 30.0
DEFAULT_MAX_CONCURRENCY = 1

# Read-only scopes; the inventory never writes to the tenant.
DEFAULT_GRAPH_SCOPES: tuple[str, ...] = (
    "https://graph.microsoft.com/DeviceManagementConfiguration.Read.All",
    "https://graph.microsoft.com/DeviceManagementApps.Read.All",
    "https://graph.microsoft.com/DeviceManagementManagedDevices.Read.All",
    "https://graph.microsoft.com/Group.Read.All",
)


def _ensure(path: Path) -> Path:
    path.mkdir(parents=True, exist_ok=True)
    return path


def config_dir() -> Path:
    return _ensure(Path(user_config_dir(APP_NAME, roaming=True)))


def cache_dir() -> Path:
    return _ensure(Path(user_cache_dir(APP_NAME)))


def log_dir() -> Path:
    return _ensure(cache_dir() / "logs")


def default_output_dir() -> Path:
    return Path(user_documents_dir()) / EXPORT_DIR_NAME


@dataclass(slots=True)
class Settings:
    """Tenant, app registration and run options for an inventory pass.

    When ``client_secret`` is set the app authenticates as itself using the
    client-credentials flow (application permissions). Otherwise the app
    registration must be a public client and a user signs in interactively.
    """

    tenant_id: str | None = None
    client_id: str | None = None
    client_secret: str | None = field(default=None, repr=False)
    redirect_uri: str | None = None
    authority: str | None = None
    graph_scopes: list[str] = field(default_factory=lambda: list(DEFAULT_GRAPH_SCOPES))
    token_cache_path: Path = field(default_factory=lambda: cache_dir() / TOKEN_CACHE_NAME)
    output_dir: Path = field(default_factory=default_output_dir)
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY

    def configured_scopes(self) -> Iterator[str]:
        """Configured scopes first, then any default not already listed."""

        seen: set[str] = set()
        for scope in (*self.graph_scopes, *DEFAULT_GRAPH_SCOPES):
            if scope and scope not in seen:
                seen.add(scope)
                yield scope

    @property
    def is_configured(self) -> bool:
        return bool(self.tenant_id and self.client_id)

    @property
    def uses_client_credentials(self) -> bool:
        return bool(self.client_secret)

    def derive_authority(self) -> str:
        return self.authority or f"https://login.microsoftonline.com/{self.tenant_id or 'common'}"


class _PrefixedEnv:
    """``INTUNE_ASSIGNMENTS_*`` lookups over the process env layered on the env file."""

    def __init__(self, values: Mapping[str, str | None]) -> None:
        self._values = values

    def text(self, name: str) -> str | None:
        value = self._values.get(ENV_PREFIX + name)
        return value.strip() or None if value else None

    def path(self, name: str) -> Path | None:
        value = self.text(name)
        return Path(value).expanduser() if value else None

    def positive(self, name: str, default: float) -> float:
        value = self.text(name)
        try:
            number = float(value) if value else default
        except ValueError:
            return default
        return number if number > 0 else default

    def scopes(self) -> list[str]:
        return [part.strip() for part in (self.text("SCOPES") or "").split(";") if part.strip()]


class SettingsManager:
    """Load settings from the environment and persist them to ``settings.env``.

    Process environment variables win over the file; the client secret is
    read but never written back.
    """

    def __init__(self, env_file: Path | None = None) -> None:
        self.env_file = env_file or config_dir() / ENV_FILE_NAME

    def load(self) -> Settings:
        file_values = dotenv_values(self.env_file) if self.env_file.exists() else {}
        env = _PrefixedEnv({**file_values, **os.environ})

        settings = Settings(
            tenant_id=env.text("TENANT_ID"),
            client_id=env.text("CLIENT_ID"),
            client_secret=env.text("CLIENT_SECRET"),
            redirect_uri=env.text("REDIRECT_URI"),
            authority=env.text("AUTHORITY"),
            request_timeout=env.positive("REQUEST_TIMEOUT", DEFAULT_REQUEST_TIMEOUT),
            max_concurrency=int(env.positive("MAX_CONCURRENCY", DEFAULT_MAX_CONCURRENCY)),
        )
        if scopes := env.scopes():
            settings.graph_scopes = scopes
        if token_cache := env.path("TOKEN_CACHE_PATH"):
            settings.token_cache_path = token_cache
        if output_dir := env.path("OUTPUT_DIR"):
            settings.output_dir = output_dir
        return settings

    def save(self, settings: Settings) -> None:
        values = {
            "TENANT_ID": settings.tenant_id or "",
            "CLIENT_ID": settings.client_id or "",
            "REDIRECT_URI": settings.redirect_uri or "",
            "AUTHORITY": settings.authority or "",
            "SCOPES": ";".join(settings.configured_scopes()),
            "TOKEN_CACHE_PATH": str(settings.token_cache_path),
            "OUTPUT_DIR": str(settings.output_dir),
            "REQUEST_TIMEOUT": str(settings.request_timeout),
            "MAX_CONCURRENCY": str(settings.max_concurrency),
        }
        _ensure(self.env_file.parent)
        self.env_file.write_text(
            "".join(f"{ENV_PREFIX}{key}={value}\n" for key, value in values.items()),
            encoding="utf-8",
        )


__all__ = [
    "APP_NAME",
    "DEFAULT_GRAPH_SCOPES",
    "Settings",
    "SettingsManager",
    "cache_dir",
    "config_dir",
    "default_output_dir",
    "log_dir",
]
