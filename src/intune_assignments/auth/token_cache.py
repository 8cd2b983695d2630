from __future__ import annotations

import os
from pathlib import Path

import msal

from intune_assignments.config.settings import TOKEN_CACHE_NAME, cache_dir
from intune_assignments.utils import get_logger


logger = get_logger(__name__)


def _read_cache(path: Path) -> msal.SerializableTokenCache:
    cache = msal.SerializableTokenCache()
    if not path.exists():
        return cache
    try:
        cache.deserialize(path.read_text(encoding="utf-8"))
    except ValueError:
        logger.warning("Discarding unreadable token cache", path=str(path))
        return msal.SerializableTokenCache()
    return cache


def _scrub(path: Path) -> None:
    size = path.stat().st_size
    if size:
        with path.open("r+b") as handle:
            handle.write(os.urandom(size))
            handle.flush()
            os.fsync(handle.fileno())
    path.unlink()


class TokenCacheManager:
    """Keeps MSAL's serialisable cache in a file so sign-in survives restarts."""

    def __init__(self, cache_path: Path | None = None) -> None:
        self.path = cache_path or cache_dir() / TOKEN_CACHE_NAME
        self.cache = _read_cache(self.path)

    def save(self) -> None:
        if not self.cache.has_state_changed:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(self.cache.serialize(), encoding="utf-8")

    def clear(self) -> None:
        """Forget every account: the file is overwritten before it is unlinked."""

        self.cache = msal.SerializableTokenCache()
        if not self.path.exists():
            return
        try:
            _scrub(self.path)
        except OSError as exc:  # pragma: no cover - filesystem race
            logger.warning("Failed to delete token cache", path=str(self.path), error=str(exc))
            return
        logger.info("Cleared MSAL token cache", path=str(self.path))


__all__ = ["TokenCacheManager"]
