from __future__ import annotations

import asyncio
import threading
import time
from dataclasses import dataclass
from typing import Any, Sequence

import msal

from intune_assignments.auth.types import AccessToken, TokenProvider
from intune_assignments.config.settings import DEFAULT_GRAPH_SCOPES, Settings
from intune_assignments.graph.errors import AuthenticationError
from intune_assignments.utils import get_logger

from .permission_checker import GRAPH_SCOPE_PREFIX, PermissionChecker
from .token_cache import TokenCacheManager


logger = get_logger(__name__)

# MSAL adds these itself and rejects them when requested explicitly.
_MSAL_RESERVED_SCOPES = frozenset({"profile", "openid", "offline_access"})
APP_ONLY_SCOPES: tuple[str, ...] = (f"{GRAPH_SCOPE_PREFIX}.default",)


@dataclass(slots=True)
class AuthenticatedUser:
    display_name: str | None
    username: str | None
    home_account_id: str | None
    tenant_id: str | None


class AuthManager:
    """MSAL authentication for Graph reads.

    Two modes are supported. With a client secret the app signs in as itself
    (``ConfidentialClientApplication.acquire_token_for_client``) and relies on
    application permissions. Without one the registration must be a public
    client; a user signs in through the browser once and later calls refresh
    silently from the persisted token cache.
    """

    def __init__(self) -> None:
        self._cache_manager: TokenCacheManager | None = None
        self._app: msal.ClientApplication | None = None
        self._confidential = False
        self._lock = threading.RLock()
        self._user: AuthenticatedUser | None = None
        self._permission_checker = PermissionChecker()
        self._missing_scopes: list[str] = []

    @property
    def uses_client_credentials(self) -> bool:
        return self._confidential

    def configure(self, settings: Settings, *, client_secret: str | None = None) -> None:
        """Build the MSAL application for ``settings``.

        ``client_secret`` overrides ``settings.client_secret`` (used when the
        secret comes from the OS keyring).
        """
        if not settings.client_id:
            raise AuthenticationError(
                "Client ID must be provided before initializing authentication"
            )

        secret = client_secret or settings.client_secret
        if secret and not settings.tenant_id and not settings.authority:
            raise AuthenticationError(
                "A tenant ID is required for client-credentials authentication"
            )

        authority = settings.derive_authority()
        self._cache_manager = TokenCacheManager(settings.token_cache_path)
        try:
            if secret:
                self._app = msal.ConfidentialClientApplication(
                    client_id=settings.client_id,
                    client_credential=secret,
                    authority=authority,
                    token_cache=self._cache_manager.cache,
                )
            else:
                self._app = msal.PublicClientApplication(
                    client_id=settings.client_id,
                    authority=authority,
                    token_cache=self._cache_manager.cache,
                )
        except ValueError as exc:
            logger.error(
                "Invalid MSAL configuration", authority=authority, error=str(exc)
            )
            raise AuthenticationError(f"Invalid authority: {exc}") from exc

        self._confidential = bool(secret)
        self._permission_checker = PermissionChecker(
            list(settings.configured_scopes()) or None
        )
        self._missing_scopes = []
        logger.info(
            "Configured MSAL client",
            authority=authority,
            flow="client_credentials" if secret else "interactive",
        )

    def token_provider(self) -> TokenProvider:
        def provider(scopes: Sequence[str]) -> AccessToken:
            return self.acquire_token_sync(scopes)

        return provider

    async def sign_in(self, scopes: Sequence[str] | None = None) -> AccessToken:
        """Obtain a token, prompting in the browser when no cached account fits."""

        requested = list(scopes or DEFAULT_GRAPH_SCOPES)
        return await asyncio.to_thread(self._acquire_token, requested, True)

    async def sign_out(self) -> None:
        await asyncio.to_thread(self._sign_out_sync)

    def acquire_token_sync(self, scopes: Sequence[str] | None = None) -> AccessToken:
        requested = list(scopes or DEFAULT_GRAPH_SCOPES)
        try:
            return self._acquire_token(requested, False)
        except AuthenticationError as exc:
            if self._confidential:
                raise
            raise AuthenticationError(
                "Interactive sign-in required before accessing Microsoft Graph",
            ) from exc

    def current_user(self) -> AuthenticatedUser | None:
        return self._user

    def missing_scopes(self) -> list[str]:
        """Scopes the last token did not grant."""
        return list(self._missing_scopes)

    # Internal --------------------------------------------------------

    def _filter_scopes(self, scopes: Sequence[str]) -> list[str]:
        filtered = [
            s
            for s in scopes
            if s not in _MSAL_RESERVED_SCOPES and not s.endswith("/.default")
        ]
        if len(filtered) != len(scopes):
            logger.debug(
                "Filtered reserved scopes",
                removed=sorted(set(scopes) - set(filtered)),
            )
        return filtered

    def _acquire_token(self, scopes: Sequence[str], interactive: bool) -> AccessToken:
        with self._lock:
            app = self._ensure_app()
            if self._confidential:
                result = app.acquire_token_for_client(scopes=list(APP_ONLY_SCOPES))
                return self._finish(result)

            token = self._acquire_token_silent(app, scopes)
            if token is not None:
                return token
            if not interactive:
                raise AuthenticationError("Silent token acquisition failed")
            result = app.acquire_token_interactive(
                scopes=self._filter_scopes(scopes),
                prompt="select_account",
            )
            return self._finish(result)

    def _acquire_token_silent(
        self,
        app: msal.PublicClientApplication,
        scopes: Sequence[str],
    ) -> AccessToken | None:
        account = self._get_account(app)
        if account is None:
            return None
        result = app.acquire_token_silent(self._filter_scopes(scopes), account=account)
        if not result:
            return None
        return self._finish(result)

    def _finish(self, result: dict[str, Any] | None) -> AccessToken:
        token = self._process_result(result or {})
        if self._cache_manager is not None:
            self._cache_manager.save()
        return token

    def _sign_out_sync(self) -> None:
        app = self._ensure_app()
        for account in app.get_accounts():
            app.remove_account(account)
        if self._cache_manager is not None:
            self._cache_manager.clear()
            app.token_cache = self._cache_manager.cache
        self._user = None
        self._missing_scopes = []
        logger.info("Signed out MSAL accounts")

    def _process_result(self, result: dict[str, Any]) -> AccessToken:
        if "error" in result:
            error_code = result.get("error")
            error_desc = result.get("error_description", error_code)
            if (
                not self._confidential
                and "client_assertion" in str(error_desc).lower()
            ):
                raise AuthenticationError(
                    message=(
                        "The app registration is a confidential client. Either set "
                        "INTUNE_ASSIGNMENTS_CLIENT_SECRET or enable 'Allow public "
                        "client flows' on the registration.\n\n"
                        f"Original error: {error_desc}"
                    ),
                )
            raise AuthenticationError(message=f"MSAL error: {error_desc}")

        access_token = result.get("access_token")
        if not isinstance(access_token, str):
            raise AuthenticationError("MSAL response missing access token")

        expires_in = result.get("expires_in")
        try:
            lifetime = int(expires_in) if expires_in is not None else 3600
        except (TypeError, ValueError):
            lifetime = 3600
        expiry = int(time.time()) + lifetime

        id_claims = result.get("id_token_claims")
        if isinstance(id_claims, dict):
            self._user = AuthenticatedUser(
                display_name=id_claims.get("name"),
                username=id_claims.get("preferred_username") or id_claims.get("email"),
                home_account_id=id_claims.get("oid"),
                tenant_id=id_claims.get("tid"),
            )

        self._missing_scopes = self._permission_checker.missing_scopes(access_token)
        if self._missing_scopes:
            logger.warning("Token is missing Graph scopes", missing=self._missing_scopes)
        return AccessToken(access_token, expiry)

    def _get_account(self, app: msal.PublicClientApplication) -> dict[str, Any] | None:
        accounts = app.get_accounts()
        if not accounts:
            return None
        account = accounts[0]
        self._user = AuthenticatedUser(
            display_name=account.get("name"),
            username=account.get("username"),
            home_account_id=account.get("home_account_id"),
            tenant_id=account.get("realm"),
        )
        return account

    def _ensure_app(self) -> msal.ClientApplication:
        if self._app is None:
            raise AuthenticationError("Authentication has not been configured")
        return self._app


__all__ = ["APP_ONLY_SCOPES", "AuthManager", "AuthenticatedUser"]
