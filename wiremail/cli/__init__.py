"""Command-line interface: ``wiremail <command>``."""

from .cli import main

__all__ = ["main"]
