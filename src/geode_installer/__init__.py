"""Installer and manager for the Geode mod loader."""

__version__ = "0.1.0"
