"""Authentication against Microsoft Entra ID for Graph reads."""

from .auth_manager import APP_ONLY_SCOPES, AuthManager, AuthenticatedUser
from .permission_checker import PermissionChecker
from .secret_store import CLIENT_SECRET_KEY, InsecureKeyringError, SecretStore
from .token_cache import TokenCacheManager
from .types import AccessToken, TokenProvider

__all__ = [
    "APP_ONLY_SCOPES",
    "AccessToken",
    "AuthManager",
    "AuthenticatedUser",
    "CLIENT_SECRET_KEY",
    "InsecureKeyringError",
    "PermissionChecker",
    "SecretStore",
    "TokenCacheManager",
    "TokenProvider",
]
