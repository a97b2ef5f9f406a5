"""Command line interface for modelrepo."""

from .lib import main

__all__ = ["main"]
