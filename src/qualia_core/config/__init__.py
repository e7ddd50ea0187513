"""Configuration modules for Qualia services."""

from .settings import Settings, settings

__all__ = ["Settings", "settings"]
