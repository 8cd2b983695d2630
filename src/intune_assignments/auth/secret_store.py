from __future__ import annotations

import os
from typing import Final

import keyring
from keyring.backend import KeyringBackend
from keyring.errors import PasswordDeleteError

from intune_assignments.config.settings import APP_NAME, ENV_PREFIX
from intune_assignments.utils import get_logger


logger = get_logger(__name__)

CLIENT_SECRET_KEY: Final[str] = "client_secret"
ALLOW_INSECURE_ENV: Final[str] = f"{ENV_PREFIX}ALLOW_INSECURE_KEYRING"

_PLAINTEXT_MODULES = ("keyring.backends.null", "keyring.backends.fail", "keyrings.alt.file")
_PLAINTEXT_MARKERS = ("plaintext", "unencrypted", "insecure")
_TRUTHY = frozenset({"1", "true", "yes", "on"})


class InsecureKeyringError(RuntimeError):
    """The active keyring backend stores secrets without encryption."""


def backend_is_encrypted(backend: KeyringBackend) -> bool:
    declared = getattr(backend, "secure_storage", None)
    if isinstance(declared, bool):
        return declared

    cls = type(backend)
    if cls.__module__.startswith("keyring.backends.chainer"):
        children = list(getattr(backend, "backends", ()))
        return bool(children) and all(backend_is_encrypted(child) for child in children)
    if cls.__module__.startswith(_PLAINTEXT_MODULES):
        return False
    return not any(marker in cls.__name__.lower() for marker in _PLAINTEXT_MARKERS)


class SecretStore:
    """Reads and writes the app registration's client secret in the OS keyring.

    Refuses to start on a backend that writes plaintext unless
    ``allow_insecure`` (or ``INTUNE_ASSIGNMENTS_ALLOW_INSECURE_KEYRING``) says
    otherwise.
    """

    def __init__(
        self,
        service_name: str = APP_NAME,
        *,
        backend: KeyringBackend | None = None,
        allow_insecure: bool | None = None,
    ) -> None:
        self._service = service_name
        self._backend = backend or keyring.get_keyring()
        backend_name = f"{type(self._backend).__module__}.{type(self._backend).__name__}"

        if backend_is_encrypted(self._backend):
            logger.debug("Using keyring backend", backend=backend_name)
        elif self._insecure_allowed(allow_insecure):
            logger.warning("Using unencrypted keyring backend", backend=backend_name)
        else:
            raise InsecureKeyringError(
                f"Keyring backend {backend_name} does not encrypt stored secrets. "
                f"Set {ALLOW_INSECURE_ENV}=1 to use it anyway."
            )

    @staticmethod
    def _insecure_allowed(flag: bool | None) -> bool:
        if flag is None:
            return os.getenv(ALLOW_INSECURE_ENV, "").strip().lower() in _TRUTHY
        return flag

    def get_secret(self, key: str = CLIENT_SECRET_KEY) -> str | None:
        return self._backend.get_password(self._service, key)

    def set_secret(self, key: str, value: str) -> None:
        self._backend.set_password(self._service, key, value)

    def delete_secret(self, key: str) -> None:
        try:
            self._backend.delete_password(self._service, key)
        except PasswordDeleteError:
            logger.debug("No stored secret to delete", key=key)


__all__ = ["CLIENT_SECRET_KEY", "InsecureKeyringError", "SecretStore"]
