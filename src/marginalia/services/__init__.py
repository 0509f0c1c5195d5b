"""Service layer package."""

from .settings import SecretVault, Settings, SettingsStore

__all__ = ["SecretVault", "Settings", "SettingsStore"]
