"""Render live web pages and package them as offline-browsable archives."""

__version__ = "0.1.0"
