from __future__ import annotations

from typing import Callable

from keyring.errors import KeyringError

from intune_assignments.auth import (
    APP_ONLY_SCOPES,
    AuthManager,
    InsecureKeyringError,
    SecretStore,
    TokenProvider,
)
from intune_assignments.config import Settings
from intune_assignments.graph import GraphClientConfig, GraphClientFactory, RateLimiter
from intune_assignments.graph.sources import GraphGroupSource, GraphObjectSource
from intune_assignments.services import ExportService, InventoryRunner, ServiceRegistry
from intune_assignments.utils import ProgressCallback, get_logger


logger = get_logger(__name__)


def resolve_client_secret(
    settings: Settings,
    *,
    secret_store_factory: Callable[[], SecretStore] = SecretStore,
) -> str | None:
    """Return the client secret from the environment, else from the OS keyring."""

    if settings.client_secret:
        return settings.client_secret
    try:
        secret = secret_store_factory().get_secret()
    except InsecureKeyringError as exc:
        logger.warning("Skipping keyring lookup for client secret", error=str(exc))
        return None
    except KeyringError as exc:
        logger.warning("Keyring lookup for client secret failed", error=str(exc))
        return None
    if secret:
        logger.debug("Loaded client secret from keyring")
    return secret


def build_auth_manager(
    settings: Settings,
    *,
    secret_store_factory: Callable[[], SecretStore] = SecretStore,
) -> AuthManager:
    auth_manager = AuthManager()
    auth_manager.configure(
        settings,
        client_secret=resolve_client_secret(
            settings, secret_store_factory=secret_store_factory
        ),
    )
    return auth_manager


def build_services(
    settings: Settings,
    token_provider: TokenProvider,
    *,
    app_only: bool = False,
    limiter: RateLimiter | None = None,
    progress_callback: ProgressCallback | None = None,
) -> ServiceRegistry:
    """Wire the Graph client, sources, exporter and runner for one session."""

    scopes = list(APP_ONLY_SCOPES) if app_only else list(settings.configured_scopes())
    client_factory = GraphClientFactory(
        token_provider,
        GraphClientConfig(scopes=scopes, timeout=settings.request_timeout),
        limiter=limiter,
    )
    export = ExportService(settings.output_dir)
    runner = InventoryRunner(
        settings,
        object_source=GraphObjectSource(client_factory),
        group_source=GraphGroupSource(client_factory),
        export_service=export,
        progress_callback=progress_callback,
    )
    logger.debug(
        "Service registry initialised",
        output_dir=str(settings.output_dir),
        max_concurrency=settings.max_concurrency,
    )
    return ServiceRegistry(client_factory=client_factory, export=export, runner=runner)


__all__ = ["build_auth_manager", "build_services", "resolve_client_secret"]
