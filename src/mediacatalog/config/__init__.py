"""Configuration module for mediacatalog."""

from .settings import (
    CatalogSettings,
    DatabaseSettings,
    ObservabilitySettings,
    ScanSettings,
    Settings,
    get_settings,
)

__all__ = [
    "CatalogSettings",
    "DatabaseSettings",
    "ObservabilitySettings",
    "ScanSettings",
    "Settings",
    "get_settings",
]
