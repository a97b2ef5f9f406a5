"""Exceptions raised by modelrepo."""

from pathlib import Path


class ModelRepositoryError(Exception):
    """Base exception for model repository errors."""


class BadParameterError(ModelRepositoryError, ValueError):
    """Raised when caller input or persisted repository state is invalid.

    Covers colliding or non-writable repository paths, failed archive
    fetches and extractions, and malformed ``config.json`` files. The
    lifecycle logs the message at error level before raising.

    Attributes:
        path: Offending path or source reference, when there is one.
    """

    def __init__(self, message: str, path: str | Path | None = None):
        super().__init__(message)
        self.path = path


class IndexBackendError(ModelRepositoryError):
    """Raised when a similarity index backend cannot be created or used."""


__all__ = ["ModelRepositoryError", "BadParameterError", "IndexBackendError"]
