from __future__ import annotations

import base64
import binascii
import json
from typing import Iterable, Sequence

from intune_assignments.config.settings import DEFAULT_GRAPH_SCOPES


GRAPH_SCOPE_PREFIX = "https://graph.microsoft.com/"


class PermissionChecker:
    """Compares the scopes granted in an access token with the read scopes we need.

    Tokens list delegated scopes under ``scp`` and application permissions
    under ``roles``, always in short form (``Group.Read.All``), so required
    scopes are normalised the same way before comparing.
    """

    def __init__(self, required_scopes: Sequence[str] | None = None) -> None:
        raw_scopes = required_scopes or DEFAULT_GRAPH_SCOPES
        self._required = [
            scope
            for scope in dict.fromkeys(self._normalize_scope(s) for s in raw_scopes)
            if scope != ".default"
        ]

    @property
    def required(self) -> list[str]:
        return list(self._required)

    def missing_scopes(self, access_token: str) -> list[str]:
        granted = {self._normalize_scope(s) for s in self._extract_scopes(access_token)}
        return [scope for scope in self._required if scope not in granted]

    @staticmethod
    def _normalize_scope(scope: str) -> str:
        if scope.startswith(GRAPH_SCOPE_PREFIX):
            return scope[len(GRAPH_SCOPE_PREFIX) :]
        return scope

    @staticmethod
    def _extract_scopes(token: str) -> Iterable[str]:
        parts = token.split(".")
        if len(parts) < 2:
            return []
        padding = "=" * (-len(parts[1]) % 4)
        try:
            claims = json.loads(base64.urlsafe_b64decode(parts[1] + padding))
        except (binascii.Error, ValueError):
            return []
        if not isinstance(claims, dict):
            return []
        scopes = claims.get("scp") or claims.get("roles")
        if isinstance(scopes, str):
            return scopes.split()
        if isinstance(scopes, list):
            return [str(scope) for scope in scopes]
        return []


__all__ = ["PermissionChecker"]
