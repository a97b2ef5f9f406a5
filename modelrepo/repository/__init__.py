"""Model repository lifecycle.

Available pieces:
- ModelRepository: validates, bootstraps and configures a repository
- ensure_repository_dir: repository directory validation
- bootstrap_repository: fetch and extract an ``init`` archive
- merge_persisted_config: merge ``config.json`` parameters into a request
- CorrespondenceTable: class index to label lookups
"""

from .bootstrap import (
    archive_basename,
    bootstrap_repository,
    extract_archive,
    fetch_archive,
    is_remote_source,
)
from .corresp import CorrespondenceTable
from .lib import BEST_MODEL_FILENAME, ModelRepository
from .models import InitializationOptions
from .paths import ensure_repository_dir, is_directory_writable
from .persisted import (
    CONFIG_FILENAME,
    PersistedConfig,
    load_persisted_config,
    merge_persisted_config,
)

__all__ = [
    # Lifecycle
    "ModelRepository",
    "InitializationOptions",
    "BEST_MODEL_FILENAME",
    # Directory validation
    "ensure_repository_dir",
    "is_directory_writable",
    # Bootstrap
    "bootstrap_repository",
    "fetch_archive",
    "extract_archive",
    "archive_basename",
    "is_remote_source",
    # Persisted configuration
    "CONFIG_FILENAME",
    "PersistedConfig",
    "load_persisted_config",
    "merge_persisted_config",
    # Correspondences
    "CorrespondenceTable",
]
