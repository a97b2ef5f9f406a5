"""Persisted ``config.json`` handling.

A bootstrapped repository may ship a ``config.json`` whose ``parameters``
section must reach the caller's outgoing parameters before the model is
usable. Only that section is consumed; every other key is passed over.
"""

import json
import logging
from pathlib import Path
from typing import Any, MutableMapping

from pydantic import BaseModel, ConfigDict, ValidationError

from modelrepo.core.errors import BadParameterError

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "config.json"


class PersistedConfig(BaseModel):
    """Internal representation of a repository ``config.json``.

    Attributes:
        parameters: Opaque nested parameters, merged as-is.
    """

    parameters: dict[str, Any] = {}

    model_config = ConfigDict(extra="allow")


def load_persisted_config(config_path: Path) -> PersistedConfig:
    """Parse and convert a ``config.json`` file.

    ``NaN``, ``Infinity`` and ``-Infinity`` literals are accepted.

    Raises:
        BadParameterError: If the file is not valid JSON or does not convert
            to a :class:`PersistedConfig`.
    """
    raw = b""
    try:
        raw = config_path.read_bytes()
        document = json.loads(raw.decode("utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.error(
            f"config.json parsing error on string: {raw.decode('utf-8', 'replace')}"
        )
        raise BadParameterError(
            f"failed parsing config file {config_path}", path=config_path
        ) from e

    try:
        return PersistedConfig.model_validate(document)
    except ValidationError as e:
        logger.error(f"JSON error {e}")
        raise BadParameterError(
            "failed converting JSON file to internal data format", path=config_path
        ) from e


def merge_persisted_config(
    repo_path: str | Path, params: MutableMapping[str, Any]
) -> None:
    """Merge the repository's persisted ``parameters`` into ``params``.

    ``params["parameters"]`` is replaced wholesale, not deep-merged. A
    repository without ``config.json`` leaves ``params`` untouched.

    Args:
        repo_path: Repository directory.
        params: Caller's outgoing parameters, updated in place.

    Raises:
        BadParameterError: If ``config.json`` exists but is unusable; in that
            case ``params`` is not modified.
    """
    config_path = Path(repo_path) / CONFIG_FILENAME
    if not config_path.exists():
        return

    config = load_persisted_config(config_path)
    params["parameters"] = config.parameters
    logger.debug(f"Merged parameters from {config_path}")


__all__ = [
    "CONFIG_FILENAME",
    "PersistedConfig",
    "load_persisted_config",
    "merge_persisted_config",
]
