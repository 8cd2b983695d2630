"""Configuration helpers for the assignment inventory."""

from .settings import DEFAULT_GRAPH_SCOPES, Settings, SettingsManager

__all__ = [
    "DEFAULT_GRAPH_SCOPES",
    "Settings",
    "SettingsManager",
]
