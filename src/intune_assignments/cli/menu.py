"""Interactive and scripted entry point for the assignment inventory."""

from __future__ import annotations

import asyncio
import contextlib
import signal
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Sequence

import click
from keyring.errors import KeyringError
from rich.console import Console

from intune_assignments.auth import (
    CLIENT_SECRET_KEY,
    AuthManager,
    InsecureKeyringError,
    SecretStore,
)
from intune_assignments.bootstrap import build_auth_manager, build_services
from intune_assignments.config import Settings, SettingsManager
from intune_assignments.data.models import ResourceKind
from intune_assignments.graph.errors import GraphAPIError
from intune_assignments.services import InventoryResult, ServiceRegistry
from intune_assignments.utils import (
    CancellationTokenSource,
    LoggingOptions,
    ProgressUpdate,
    configure_logging,
    get_logger,
)


console = Console()
logger = get_logger(__name__)

MENU_KINDS: tuple[ResourceKind, ...] = tuple(ResourceKind)
ALL_KINDS_CHOICE = len(MENU_KINDS) + 1
GRAPH_CHOICE = ALL_KINDS_CHOICE + 1
QUIT_CHOICE = 0


@dataclass(slots=True, frozen=True)
class Selection:
    """One inventory pass: either a CSV export of some kinds or the graph build."""

    kinds: tuple[ResourceKind, ...] = ()
    graph: bool = False

    @property
    def description(self) -> str:
        if self.graph:
            return "assignment graph"
        if len(self.kinds) == len(MENU_KINDS):
            return "all assignments"
        return ", ".join(kind.value for kind in self.kinds)


def selection_for_choice(choice: int) -> Selection | None:
    """Map a menu number to a pass; ``None`` means quit."""

    if choice == QUIT_CHOICE:
        return None
    if 1 <= choice <= len(MENU_KINDS):
        return Selection(kinds=(MENU_KINDS[choice - 1],))
    if choice == ALL_KINDS_CHOICE:
        return Selection(kinds=MENU_KINDS)
    if choice == GRAPH_CHOICE:
        return Selection(graph=True)
    raise ValueError(f"Unknown menu option: {choice}")


def selections_from_options(
    kinds: Sequence[str],
    all_kinds: bool,
    graph: bool,
) -> list[Selection]:
    selections: list[Selection] = []
    if all_kinds:
        selections.append(Selection(kinds=MENU_KINDS))
    elif kinds:
        parsed = sorted({ResourceKind.parse(kind) for kind in kinds}, key=lambda k: k.rank)
        selections.append(Selection(kinds=tuple(parsed)))
    if graph:
        selections.append(Selection(graph=True))
    return selections


def render_menu() -> None:
    console.print()
    console.print("[bold]Intune assignment inventory[/bold]")
    for index, kind in enumerate(MENU_KINDS, start=1):
        console.print(f"  {index}. Export {kind.value} assignments")
    console.print(f"  {ALL_KINDS_CHOICE}. Export all assignments")
    console.print(f"  {GRAPH_CHOICE}. Build assignment graph")
    console.print(f"  {QUIT_CHOICE}. Quit")


def prompt_choice() -> int:
    return click.prompt(
        "Select an option",
        type=click.IntRange(QUIT_CHOICE, GRAPH_CHOICE),
    )


def report_progress(update: ProgressUpdate) -> None:
    if update.current is None or update.total is None:
        return
    done = update.completed + update.failed
    console.print(f"[dim][{done}/{update.total}] {update.current}[/dim]")


def report_result(result: InventoryResult) -> None:
    diagnostics = result.diagnostics
    console.print(
        f"[green]Collected {len(result.edges)} assignments "
        f"from {diagnostics.object_count} objects.[/green]"
    )
    for event in diagnostics.collection_errors:
        console.print(
            f"[yellow]{event.kind.value}: {event.descriptor.headline}[/yellow]"
        )
    if diagnostics.dropped_targets:
        console.print(
            f"[yellow]{diagnostics.dropped_targets} assignment targets could not be "
            "resolved and were skipped (see log).[/yellow]"
        )
    if diagnostics.skipped_objects:
        console.print(
            f"[yellow]{diagnostics.skipped_objects} objects had an unexpected shape "
            "and were skipped (see log).[/yellow]"
        )
    if len(result.kinds) > 1:
        for kind in result.kinds:
            console.print(f"  {kind.value}: {len(result.edges_for(kind))} assignments")
    for path in result.paths:
        console.print(f"Wrote {path}")


@contextlib.contextmanager
def _interrupt_cancels(source: CancellationTokenSource) -> Iterator[None]:
    loop = asyncio.get_running_loop()
    installed = True
    try:
        loop.add_signal_handler(
            signal.SIGINT, lambda: source.cancel(reason="Interrupted by user")
        )
    except (NotImplementedError, RuntimeError):
        # No loop signal support (Windows); Ctrl+C raises KeyboardInterrupt instead.
        installed = False
    try:
        yield
    finally:
        if installed:
            loop.remove_signal_handler(signal.SIGINT)


async def run_selection(
    registry: ServiceRegistry, selection: Selection
) -> InventoryResult | None:
    console.print(f"[bold blue]Collecting {selection.description}...[/bold blue]")
    source = CancellationTokenSource()
    with _interrupt_cancels(source):
        try:
            if selection.graph:
                result = await registry.runner.export_graph(
                    cancellation_token=source.token
                )
            else:
                result = await registry.runner.export_kinds(
                    selection.kinds, cancellation_token=source.token
                )
        except asyncio.CancelledError:
            # gather() reports a cancelled child as a plain CancelledError.
            if not source.cancelled:
                raise
            console.print("[yellow]Pass cancelled; nothing was written.[/yellow]")
            return None
    report_result(result)
    return result


async def run_session(
    settings: Settings,
    auth_manager: AuthManager,
    selections: Sequence[Selection],
) -> None:
    await auth_manager.sign_in(list(settings.configured_scopes()))
    user = auth_manager.current_user()
    if user is not None:
        console.print(f"Signed in as {user.display_name or user.username}")
    missing = auth_manager.missing_scopes()
    if missing:
        console.print(
            "[yellow]The token is missing permissions: "
            f"{', '.join(missing)}. Some kinds may come back empty.[/yellow]"
        )

    registry = build_services(
        settings,
        auth_manager.token_provider(),
        app_only=auth_manager.uses_client_credentials,
        progress_callback=report_progress,
    )
    try:
        if selections:
            for selection in selections:
                await run_selection(registry, selection)
            return
        while True:
            render_menu()
            choice = await asyncio.to_thread(prompt_choice)
            selection = selection_for_choice(choice)
            if selection is None:
                return
            await run_selection(registry, selection)
    finally:
        await registry.close()


def apply_overrides(
    settings: Settings,
    *,
    output_dir: Path | None,
    max_concurrency: int | None,
) -> Settings:
    if output_dir is not None:
        settings.output_dir = output_dir.expanduser()
    if max_concurrency is not None:
        settings.max_concurrency = max_concurrency
    return settings


def manage_client_secret(*, store: bool, forget: bool) -> None:
    """Write or remove the client secret kept in the OS keyring."""

    try:
        secrets = SecretStore()
        if forget:
            secrets.delete_secret(CLIENT_SECRET_KEY)
            console.print("Removed the client secret from the keyring.")
        if store:
            value = click.prompt("Client secret", hide_input=True)
            secrets.set_secret(CLIENT_SECRET_KEY, value)
            console.print("Stored the client secret in the keyring.")
    except (InsecureKeyringError, KeyringError) as exc:
        logger.error("Keyring update failed", error=str(exc))
        raise click.ClickException(str(exc)) from exc


@click.command(name="intune-assignments")
@click.option(
    "--kind",
    "kinds",
    multiple=True,
    type=click.Choice([kind.value for kind in ResourceKind], case_sensitive=False),
    help="Export the assignments of one kind. Repeat for several kinds.",
)
@click.option("--all", "all_kinds", is_flag=True, help="Export every kind to one CSV.")
@click.option("--graph", is_flag=True, help="Build the assignment graph (JSON + HTML).")
@click.option(
    "--output-dir",
    type=click.Path(file_okay=False, path_type=Path),
    help="Directory for export files.",
)
@click.option(
    "--max-concurrency",
    type=click.IntRange(min=1),
    help="Parallel collectors and group lookups (1 = sequential).",
)
@click.option(
    "--save-settings",
    is_flag=True,
    help="Write the effective settings (without the secret) to settings.env.",
)
@click.option(
    "--store-secret",
    is_flag=True,
    help="Prompt for the client secret and keep it in the OS keyring.",
)
@click.option(
    "--forget-secret", is_flag=True, help="Remove the client secret from the OS keyring."
)
@click.option(
    "--sign-out", is_flag=True, help="Forget the signed-in account and cached tokens."
)
@click.option("--debug", is_flag=True, help="Log debug output to the console.")
def main(
    kinds: tuple[str, ...],
    all_kinds: bool,
    graph: bool,
    output_dir: Path | None,
    max_concurrency: int | None,
    save_settings: bool,
    store_secret: bool,
    forget_secret: bool,
    sign_out: bool,
    debug: bool,
) -> None:
    """Inventory Intune assignments and export them as CSV or a graph.

    Without options an interactive menu is shown. The settings, secret and
    sign-out options run on their own unless a pass is also requested.
    """
    log_path = configure_logging(
        LoggingOptions(level="DEBUG" if debug else "WARNING", debug=debug)
    )
    manager = SettingsManager()
    settings = apply_overrides(
        manager.load(),
        output_dir=output_dir,
        max_concurrency=max_concurrency,
    )
    if save_settings:
        manager.save(settings)
        console.print(f"Saved settings to {manager.env_file}")
    if store_secret or forget_secret:
        manage_client_secret(store=store_secret, forget=forget_secret)

    selections = selections_from_options(kinds, all_kinds, graph)
    maintenance_only = save_settings or store_secret or forget_secret
    if maintenance_only and not selections and not sign_out:
        return
    if not settings.is_configured:
        raise click.ClickException(
            "Set INTUNE_ASSIGNMENTS_TENANT_ID and INTUNE_ASSIGNMENTS_CLIENT_ID "
            "(environment or settings.env) before running."
        )

    logger.info(
        "Starting assignment inventory",
        interactive=not selections,
        output_dir=str(settings.output_dir),
        log_path=str(log_path),
    )
    try:
        auth_manager = build_auth_manager(settings)
        if sign_out:
            asyncio.run(auth_manager.sign_out())
            console.print("Signed out; the next run prompts for sign-in.")
            if not selections:
                return
        asyncio.run(run_session(settings, auth_manager, selections))
    except GraphAPIError as exc:
        logger.error("Inventory aborted", error=str(exc), category=exc.category.value)
        message = str(exc)
        if exc.recovery_suggestion:
            message = f"{message}\n{exc.recovery_suggestion}"
        raise click.ClickException(message) from exc
    except KeyboardInterrupt:
        console.print("\n[yellow]Operation cancelled by user[/yellow]")
        raise SystemExit(130) from None


__all__ = [
    "Selection",
    "main",
    "manage_client_secret",
    "report_result",
    "run_selection",
    "run_session",
    "selection_for_choice",
    "selections_from_options",
]
