"""Shared plumbing for modelrepo: logging and the exception hierarchy."""

from .errors import BadParameterError, IndexBackendError, ModelRepositoryError
from .log import get_logger, setup_logging

__all__ = [
    "get_logger",
    "setup_logging",
    "ModelRepositoryError",
    "BadParameterError",
    "IndexBackendError",
]
