"""Command line interface for parley."""

from .app import app, main

__all__ = ["app", "main"]
