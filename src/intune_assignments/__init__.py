"""Read-only inventory of Intune assignments via Microsoft Graph."""

from __future__ import annotations

__version__ = "0.1.0"


def main() -> None:
    from intune_assignments.cli.menu import main as cli_main

    cli_main()


__all__ = ["__version__", "main"]
