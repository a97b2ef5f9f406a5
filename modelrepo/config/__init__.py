"""Centralized configuration management for modelrepo.

Provides unified access to all configuration via the `get_environment()` function.

Example:
    >>> from modelrepo.config import EnvVar, get_environment
    >>>
    >>> backend = get_environment(EnvVar.SIMSEARCH_BACKEND)  # Returns str: "faiss"
    >>>
    >>> # List available variables by category
    >>> for var in list_environment_variables("bootstrap"):
    ...     info = get_environment_info(var)
    ...     print(f"{info.name}: {info.description}")

Environment Variable Categories:
    simsearch: Similarity index backend selection and GPU placement
    bootstrap: Model archive fetching (timeout, progress, user agent)
    logging: CLI log level
"""

from .lib import (
    # Core types
    EnvConfig,
    EnvVar,
    # Main interface
    get_environment,
    get_environment_info,
    get_fetch_timeout,
    get_simsearch_backend,
    # Introspection
    list_environment_variables,
)

__all__ = [
    # Core types
    "EnvConfig",
    "EnvVar",
    # Main interface
    "get_environment",
    "get_environment_info",
    # Convenience functions
    "get_simsearch_backend",
    "get_fetch_timeout",
    # Introspection
    "list_environment_variables",
]
