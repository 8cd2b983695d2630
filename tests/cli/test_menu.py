from __future__ import annotations

import asyncio
import os
import signal
from pathlib import Path
from typing import Iterator, Sequence

import pytest
from click.testing import CliRunner

from intune_assignments.auth import AccessToken, AuthenticatedUser, InsecureKeyringError
from intune_assignments.cli import menu
from intune_assignments.config import Settings
from intune_assignments.data.models import ResourceKind
from intune_assignments.graph.errors import AuthenticationError
from intune_assignments.services import ExportService, InventoryRunner, ServiceRegistry
from tests.factories import (
    FakeGroupSource,
    FakeObjectSource,
    all_devices_target,
    exclusion_target,
    make_object_payload,
)


class _FakeClientFactory:
    def __init__(self) -> None:
        self.closed = False

    async def close(self) -> None:
        self.closed = True


class _FakeAuthManager:
    def __init__(self, *, error: Exception | None = None) -> None:
        self.error = error
        self.sign_in_scopes: list[str] | None = None
        self.uses_client_credentials = False
        self.user: AuthenticatedUser | None = None
        self.signed_out = False

    async def sign_in(self, scopes: Sequence[str] | None = None) -> AccessToken:
        if self.error is not None:
            raise self.error
        self.sign_in_scopes = list(scopes or [])
        return AccessToken("token", 0)

    async def sign_out(self) -> None:
        self.signed_out = True
        self.user = None

    def current_user(self) -> AuthenticatedUser | None:
        return self.user

    def missing_scopes(self) -> list[str]:
        return []

    def token_provider(self):
        return lambda _scopes: AccessToken("token", 0)


class _FakeSecretStore:
    def __init__(self, secrets: dict[str, str], *, error: Exception | None = None) -> None:
        self.secrets = secrets
        if error is not None:
            raise error

    def set_secret(self, key: str, value: str) -> None:
        self.secrets[key] = value

    def delete_secret(self, key: str) -> None:
        self.secrets.pop(key, None)


def _registry(settings: Settings) -> ServiceRegistry:
    objects = FakeObjectSource()
    objects.set_collection(
        "/deviceManagement/deviceConfigurations",
        [
            make_object_payload(
                "p1",
                display_name="Baseline",
                targets=[all_devices_target(), exclusion_target("g1")],
            )
        ],
    )
    export = ExportService(settings.output_dir)
    runner = InventoryRunner(
        settings,
        object_source=objects,
        group_source=FakeGroupSource({"g1": "Finance"}),
        export_service=export,
    )
    return ServiceRegistry(client_factory=_FakeClientFactory(), export=export, runner=runner)


@pytest.fixture
def cli_env(
    monkeypatch: pytest.MonkeyPatch, settings: Settings, tmp_path: Path
) -> Iterator[dict[str, object]]:
    state: dict[str, object] = {"auth": _FakeAuthManager(), "registries": [], "secrets": {}}

    class _Manager:
        env_file = tmp_path / "settings.env"

        def load(self) -> Settings:
            return settings

        def save(self, settings_arg: Settings) -> None:
            state["saved"] = settings_arg

    def _build_services(settings_arg: Settings, *_args, **_kwargs) -> ServiceRegistry:
        registry = _registry(settings_arg)
        state["registries"].append(registry)  # type: ignore[union-attr]
        return registry

    monkeypatch.setattr(menu, "configure_logging", lambda _options: tmp_path / "run.log")
    monkeypatch.setattr(menu, "SettingsManager", _Manager)
    monkeypatch.setattr(menu, "SecretStore", lambda: _FakeSecretStore(state["secrets"]))
    monkeypatch.setattr(menu, "build_auth_manager", lambda _settings: state["auth"])
    monkeypatch.setattr(menu, "build_services", _build_services)
    yield state


def test_menu_numbers_map_to_selections() -> None:
    assert menu.selection_for_choice(0) is None
    assert menu.selection_for_choice(1) == menu.Selection(
        kinds=(ResourceKind.CONFIGURATION_PROFILE,)
    )
    assert menu.selection_for_choice(7) == menu.Selection(
        kinds=(ResourceKind.PROTECTION_POLICY,)
    )
    assert menu.selection_for_choice(menu.ALL_KINDS_CHOICE).kinds == tuple(ResourceKind)
    assert menu.selection_for_choice(menu.GRAPH_CHOICE).graph
    with pytest.raises(ValueError):
        menu.selection_for_choice(42)


def test_options_map_to_selections() -> None:
    assert menu.selections_from_options((), False, False) == []
    assert menu.selections_from_options(
        ("Application", "configurationprofile", "Application"), False, True
    ) == [
        menu.Selection(
            kinds=(ResourceKind.CONFIGURATION_PROFILE, ResourceKind.APPLICATION)
        ),
        menu.Selection(graph=True),
    ]
    assert menu.selections_from_options(("Application",), True, False) == [
        menu.Selection(kinds=tuple(ResourceKind))
    ]


def test_apply_overrides(settings: Settings, tmp_path: Path) -> None:
    updated = menu.apply_overrides(
        settings, output_dir=tmp_path / "elsewhere", max_concurrency=3
    )

    assert updated.output_dir == tmp_path / "elsewhere"
    assert updated.max_concurrency == 3


def test_scripted_kind_export(
    cli_env: dict[str, object], settings: Settings, tmp_path: Path
) -> None:
    output_dir = tmp_path / "cli-out"

    result = CliRunner().invoke(
        menu.main, ["--kind", "ConfigurationProfile", "--output-dir", str(output_dir)]
    )

    assert result.exit_code == 0, result.output
    csv_path = output_dir / "ConfigurationProfileAssignments.csv"
    assert csv_path.read_text(encoding="utf-8").splitlines()[1:] == [
        "Baseline,,All Devices,ConfigurationProfile,Included",
        "Baseline,g1,Finance,ConfigurationProfile,Excluded",
    ]
    auth = cli_env["auth"]
    assert isinstance(auth, _FakeAuthManager)
    assert auth.sign_in_scopes == list(settings.configured_scopes())
    (registry,) = cli_env["registries"]  # type: ignore[misc]
    assert registry.client_factory.closed


def test_scripted_all_and_graph(cli_env: dict[str, object], settings: Settings) -> None:
    result = CliRunner().invoke(menu.main, ["--all", "--graph"])

    assert result.exit_code == 0, result.output
    assert (settings.output_dir / "AllAssignments.csv").exists()
    assert (settings.output_dir / "AssignmentGraph.json").exists()
    assert (settings.output_dir / "AssignmentGraph.html").exists()


def test_interactive_menu_runs_until_quit(
    cli_env: dict[str, object],
    settings: Settings,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    choices = iter([menu.GRAPH_CHOICE, 3, menu.QUIT_CHOICE])
    monkeypatch.setattr(menu, "prompt_choice", lambda: next(choices))

    result = CliRunner().invoke(menu.main, [])

    assert result.exit_code == 0, result.output
    assert (settings.output_dir / "AssignmentGraph.json").exists()
    assert (settings.output_dir / "ApplicationAssignments.csv").exists()
    assert "Quit" in result.output


def test_unconfigured_tenant_is_rejected(
    cli_env: dict[str, object], settings: Settings
) -> None:
    settings.tenant_id = None

    result = CliRunner().invoke(menu.main, ["--all"])

    assert result.exit_code == 1
    assert "INTUNE_ASSIGNMENTS_TENANT_ID" in result.output
    assert cli_env["registries"] == []


def test_sign_in_failure_is_reported(cli_env: dict[str, object]) -> None:
    cli_env["auth"] = _FakeAuthManager(error=AuthenticationError("MSAL error: expired"))

    result = CliRunner().invoke(menu.main, ["--all"])

    assert result.exit_code == 1
    assert "MSAL error: expired" in result.output
    assert "Sign in again" in result.output


class _InterruptingRunner:
    async def export_kinds(self, kinds, *, cancellation_token):
        os.kill(os.getpid(), signal.SIGINT)
        for _ in range(200):
            if cancellation_token.cancelled:
                break
            await asyncio.sleep(0.01)
        cancellation_token.raise_if_cancelled()


class _FailingRunner:
    async def export_kinds(self, kinds, *, cancellation_token):
        raise asyncio.CancelledError()


@pytest.mark.asyncio
async def test_interrupt_cancels_the_pass_only(settings: Settings) -> None:
    registry = ServiceRegistry(
        client_factory=_FakeClientFactory(),
        export=ExportService(settings.output_dir),
        runner=_InterruptingRunner(),  # type: ignore[arg-type]
    )

    result = await menu.run_selection(
        registry, menu.Selection(kinds=(ResourceKind.APPLICATION,))
    )

    assert result is None


@pytest.mark.asyncio
async def test_foreign_cancellation_propagates(settings: Settings) -> None:
    registry = ServiceRegistry(
        client_factory=_FakeClientFactory(),
        export=ExportService(settings.output_dir),
        runner=_FailingRunner(),  # type: ignore[arg-type]
    )

    with pytest.raises(asyncio.CancelledError):
        await menu.run_selection(
            registry, menu.Selection(kinds=(ResourceKind.APPLICATION,))
        )


def test_save_settings_writes_overrides_without_running(
    cli_env: dict[str, object], tmp_path: Path
) -> None:
    result = CliRunner().invoke(
        menu.main, ["--save-settings", "--output-dir", str(tmp_path / "saved-out")]
    )

    assert result.exit_code == 0, result.output
    saved = cli_env["saved"]
    assert isinstance(saved, Settings)
    assert saved.output_dir == tmp_path / "saved-out"
    assert "Saved settings to" in result.output
    assert cli_env["registries"] == []


def test_store_and_forget_client_secret(cli_env: dict[str, object]) -> None:
    runner = CliRunner()

    stored = runner.invoke(menu.main, ["--store-secret"], input="s3cret\n")

    assert stored.exit_code == 0, stored.output
    assert cli_env["secrets"] == {"client_secret": "s3cret"}
    assert "s3cret" not in stored.output

    forgotten = runner.invoke(menu.main, ["--forget-secret"])

    assert forgotten.exit_code == 0, forgotten.output
    assert cli_env["secrets"] == {}
    assert cli_env["registries"] == []


def test_insecure_keyring_is_reported(
    cli_env: dict[str, object], monkeypatch: pytest.MonkeyPatch
) -> None:
    def _insecure_store() -> _FakeSecretStore:
        return _FakeSecretStore({}, error=InsecureKeyringError("plaintext backend"))

    monkeypatch.setattr(menu, "SecretStore", _insecure_store)

    result = CliRunner().invoke(menu.main, ["--forget-secret"])

    assert result.exit_code == 1
    assert "plaintext backend" in result.output


def test_sign_out_runs_alone_unless_a_pass_is_requested(
    cli_env: dict[str, object], settings: Settings
) -> None:
    auth = cli_env["auth"]
    assert isinstance(auth, _FakeAuthManager)

    result = CliRunner().invoke(menu.main, ["--sign-out"])

    assert result.exit_code == 0, result.output
    assert auth.signed_out
    assert auth.sign_in_scopes is None
    assert cli_env["registries"] == []

    again = CliRunner().invoke(menu.main, ["--sign-out", "--kind", "Application"])

    assert again.exit_code == 0, again.output
    assert auth.sign_in_scopes == list(settings.configured_scopes())
    assert len(cli_env["registries"]) == 1  # type: ignore[arg-type]


def test_session_greets_user_and_reports_kind_counts(cli_env: dict[str, object]) -> None:
    auth = cli_env["auth"]
    assert isinstance(auth, _FakeAuthManager)
    auth.user = AuthenticatedUser(
        display_name="Ada Admin",
        username="ada@contoso.com",
        home_account_id="home",
        tenant_id="tenant",
    )

    result = CliRunner().invoke(
        menu.main, ["--kind", "ConfigurationProfile", "--kind", "Application"]
    )

    assert result.exit_code == 0, result.output
    assert "Signed in as Ada Admin" in result.output
    assert "ConfigurationProfile: 2 assignments" in result.output
    assert "Application: 0 assignments" in result.output
