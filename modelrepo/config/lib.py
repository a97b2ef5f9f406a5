"""Environment configuration for modelrepo.

Every setting modelrepo reads from the process environment is declared once
in :class:`EnvVar`, with its type, default and a short description, and is
read through :func:`get_environment`:

    explicit override  >  MODELREPO_* environment variable  >  default

Example:
    >>> from modelrepo.config import EnvVar, get_environment
    >>> get_environment(EnvVar.SIMSEARCH_BACKEND)
    'faiss'
    >>> get_environment(EnvVar.FETCH_TIMEOUT, override=2.5)
    2.5
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum
from typing import Any, overload

# =============================================================================
# Declarations
# =============================================================================

_TRUE_WORDS = frozenset({"true", "1", "yes", "on"})
_FALSE_WORDS = frozenset({"false", "0", "no", "off"})


@dataclass(frozen=True)
class EnvConfig:
    """Declaration of one environment variable.

    Attributes:
        name: Variable name, e.g. "MODELREPO_FETCH_TIMEOUT".
        default: Value used when the variable is unset or unparsable.
        var_type: One of str, int, float, bool.
        description: One-line help shown by ``modelrepo env``.
        category: simsearch, bootstrap or logging.
    """

    name: str
    default: Any
    var_type: type
    description: str = ""
    category: str = "general"

    def parse(self, raw: str | None) -> Any:
        """Convert a raw environment string, falling back to the default."""
        if raw is None:
            return self.default

        if self.var_type is bool:
            word = raw.strip().lower()
            if word in _TRUE_WORDS:
                return True
            if word in _FALSE_WORDS:
                return False
            return self.default

        if self.var_type in (int, float):
            try:
                return self.var_type(raw.strip())
            except ValueError:
                return self.default

        return raw


class EnvVar(Enum):
    """Environment variables read by modelrepo."""

    # -------------------------------------------------------------------------
    # Similarity Search
    # -------------------------------------------------------------------------
    SIMSEARCH_BACKEND = EnvConfig(
        name="MODELREPO_SIMSEARCH_BACKEND",
        default="faiss",
        var_type=str,
        description="Similarity index backend: 'faiss', 'annoy' or 'none'",
        category="simsearch",
    )
    USE_GPU = EnvConfig(
        name="MODELREPO_USE_GPU",
        default=None,
        var_type=bool,
        description="Force GPU placement of indexes on/off (None=per index config)",
        category="simsearch",
    )

    # -------------------------------------------------------------------------
    # Archive Bootstrap
    # -------------------------------------------------------------------------
    FETCH_TIMEOUT = EnvConfig(
        name="MODELREPO_FETCH_TIMEOUT",
        default=None,
        var_type=float,
        description="Deadline in seconds for the model archive fetch (None=no deadline)",
        category="bootstrap",
    )
    SHOW_PROGRESS = EnvConfig(
        name="MODELREPO_SHOW_PROGRESS",
        default=True,
        var_type=bool,
        description="Show a progress bar while fetching model archives",
        category="bootstrap",
    )
    USER_AGENT = EnvConfig(
        name="MODELREPO_USER_AGENT",
        default="modelrepo/1.0",
        var_type=str,
        description="User-Agent header sent when fetching model archives",
        category="bootstrap",
    )

    # -------------------------------------------------------------------------
    # Logging
    # -------------------------------------------------------------------------
    LOG_LEVEL = EnvConfig(
        name="MODELREPO_LOG_LEVEL",
        default="INFO",
        var_type=str,
        description="Log level used by the command line interface",
        category="logging",
    )


# =============================================================================
# Lookup
# =============================================================================


@overload
def get_environment(env_var: EnvVar, override: bool) -> bool: ...
@overload
def get_environment(env_var: EnvVar, override: float) -> float: ...
@overload
def get_environment(env_var: EnvVar, override: str) -> str: ...
@overload
def get_environment(env_var: EnvVar, override: None = None) -> Any: ...


def get_environment(env_var: EnvVar, override: Any = None) -> Any:
    """Read a setting.

    Args:
        env_var: The setting to read.
        override: Value that wins over the environment when not None.

    Returns:
        The override, else the parsed environment value, else the default.
    """
    if override is not None:
        return override
    config: EnvConfig = env_var.value
    return config.parse(os.environ.get(config.name))


def get_environment_info(env_var: EnvVar) -> EnvConfig:
    """Declaration of a setting (name, default, type, description)."""
    return env_var.value


def list_environment_variables(category: str | None = None) -> list[EnvVar]:
    """Settings in declaration order, optionally restricted to one category."""
    return [var for var in EnvVar if category is None or var.value.category == category]


# =============================================================================
# Typed Accessors
# =============================================================================


def get_simsearch_backend(override: str | None = None) -> str:
    """Similarity backend name, stripped and lower-cased."""
    return str(get_environment(EnvVar.SIMSEARCH_BACKEND, override)).strip().lower()


def get_fetch_timeout(override: float | None = None) -> float | None:
    """Archive fetch deadline in seconds; None when unset or not positive."""
    timeout = get_environment(EnvVar.FETCH_TIMEOUT, override)
    if timeout is None or timeout <= 0:
        return None
    return timeout


__all__ = [
    "EnvConfig",
    "EnvVar",
    "get_environment",
    "get_environment_info",
    "list_environment_variables",
    "get_simsearch_backend",
    "get_fetch_timeout",
]
