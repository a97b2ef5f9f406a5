"""Typed options consumed when a model repository is initialized."""

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field


class InitializationOptions(BaseModel):
    """Recognized repository options from a model-creation request.

    Unknown keys are ignored so a whole request body can be validated
    directly with ``InitializationOptions.model_validate(body)``.

    Attributes:
        repository: Repository directory.
        create_repository: Create the directory when it does not exist.
        init: Archive to bootstrap from (local path or http/https/file URL).
        index_preload: Prefault similarity indexes when they are loaded.
    """

    repository: Path
    create_repository: bool = False
    init: str | None = Field(default=None, min_length=1)
    index_preload: bool = False

    model_config = ConfigDict(frozen=True, extra="ignore")


__all__ = ["InitializationOptions"]
