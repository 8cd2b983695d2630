from __future__ import annotations

import pytest
from keyring.errors import KeyringError

from intune_assignments.auth import InsecureKeyringError
from intune_assignments.bootstrap import (
    build_auth_manager,
    build_services,
    resolve_client_secret,
)
from intune_assignments.config import Settings
from intune_assignments.services import InventoryRunner
from tests.factories import make_access_token
from tests.stubs import StubConfidentialClientApplication, StubPublicClientApplication


class _FakeSecretStore:
    def __init__(self, secret: str | None = None, error: Exception | None = None) -> None:
        self.secret = secret
        self.error = error

    def get_secret(self, key: str = "client_secret") -> str | None:
        if self.error is not None:
            raise self.error
        return self.secret


def test_environment_secret_wins_over_keyring(settings: Settings) -> None:
    settings.client_secret = "from-env"

    secret = resolve_client_secret(
        settings, secret_store_factory=lambda: _FakeSecretStore("from-keyring")
    )

    assert secret == "from-env"


def test_keyring_secret_is_used_when_env_is_empty(settings: Settings) -> None:
    secret = resolve_client_secret(
        settings, secret_store_factory=lambda: _FakeSecretStore("from-keyring")
    )

    assert secret == "from-keyring"


@pytest.mark.parametrize(
    "error",
    [InsecureKeyringError("plaintext backend"), KeyringError("locked")],
)
def test_keyring_problems_fall_back_to_interactive(
    settings: Settings, error: Exception
) -> None:
    secret = resolve_client_secret(
        settings, secret_store_factory=lambda: _FakeSecretStore(error=error)
    )

    assert secret is None


def test_build_auth_manager_selects_flow(
    settings: Settings, monkeypatch: pytest.MonkeyPatch
) -> None:
    import msal

    public = StubPublicClientApplication()
    confidential = StubConfidentialClientApplication()
    monkeypatch.setattr(msal, "PublicClientApplication", lambda **_kwargs: public)
    monkeypatch.setattr(
        msal, "ConfidentialClientApplication", lambda **_kwargs: confidential
    )

    interactive = build_auth_manager(
        settings, secret_store_factory=lambda: _FakeSecretStore()
    )
    app_only = build_auth_manager(
        settings, secret_store_factory=lambda: _FakeSecretStore("from-keyring")
    )

    assert not interactive.uses_client_credentials
    assert app_only.uses_client_credentials


@pytest.mark.asyncio
async def test_build_services_wires_runner_and_export(settings: Settings) -> None:
    registry = build_services(settings, lambda _scopes: make_access_token())

    assert isinstance(registry.runner, InventoryRunner)
    assert registry.runner.export_service is registry.export
    assert registry.export.output_dir == settings.output_dir
    assert registry.client_factory.absolute_url("/groups") == (
        "https://graph.microsoft.com/v1.0/groups"
    )

    await registry.close()
