"""Configuration module: exports Settings, load_config, and a module-level singleton."""

from expense_sync.config.loader import load_config
from expense_sync.config.settings import Settings

settings = Settings()

__all__ = ["Settings", "load_config", "settings"]
