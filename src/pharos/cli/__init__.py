"""Command line interface (``pharos``)."""

from pharos.cli.app import app

__all__ = ["app"]
