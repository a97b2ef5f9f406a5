"""Model archive bootstrap for repositories.

Materializes the ``init`` archive of a model inside its repository:
- Local paths are extracted in place
- ``http://``, ``https://`` and ``file://`` sources are fetched exactly once
  (progress bar via tqdm), then extracted
- An archive already present in the repository is reused, never re-fetched

Extraction accepts every tar flavour ``tarfile`` recognises, zip archives
and single-file gzip.
"""

import gzip
import logging
import os
import posixpath
import shutil
import tarfile
import zipfile
import zlib
from http.client import HTTPException
from pathlib import Path
from urllib.error import HTTPError
from urllib.parse import unquote, urlsplit
from urllib.request import Request, urlopen

from tqdm import tqdm

from modelrepo.config import EnvVar, get_environment, get_fetch_timeout
from modelrepo.core.errors import BadParameterError

logger = logging.getLogger(__name__)

FETCH_SCHEMES = ("http", "https", "file")

# Default chunk size for streaming downloads (8KB)
CHUNK_SIZE = 8192

GZIP_MAGIC = b"\x1f\x8b"

INSTALL_ERROR = "failed installing model from archive, check 'init' argument to model"


def is_remote_source(source: str) -> bool:
    """Check whether ``source`` is a URL that must be fetched."""
    return urlsplit(source).scheme.lower() in FETCH_SCHEMES


def archive_basename(source: str) -> str:
    """File name an archive source is stored under inside the repository.

    URL query strings and fragments are not part of the name.
    """
    if is_remote_source(source):
        return posixpath.basename(unquote(urlsplit(source).path))
    return os.path.basename(source)


def fetch_archive(
    url: str,
    dest_path: Path,
    timeout: float | None = None,
    show_progress: bool = True,
    user_agent: str | None = None,
) -> None:
    """Fetch ``url`` into ``dest_path`` with a single request.

    Args:
        url: http, https or file URL.
        dest_path: Local file receiving the bytes verbatim.
        timeout: Socket timeout in seconds, None to block.
        show_progress: Display a tqdm progress bar.
        user_agent: User-Agent header value.

    Raises:
        BadParameterError: If the fetch fails for any reason. A partial
            download is removed first.
    """
    outcode = -1
    logger.info(f"Downloading init model {url}")
    try:
        headers = {"User-Agent": user_agent or get_environment(EnvVar.USER_AGENT)}
        with urlopen(Request(url, headers=headers), timeout=timeout) as response:
            outcode = getattr(response, "status", None) or outcode
            total_size = response.headers.get("Content-Length")
            with (
                tqdm(
                    total=int(total_size) if total_size else None,
                    unit="B",
                    unit_scale=True,
                    unit_divisor=1024,
                    desc=dest_path.name,
                    ncols=80,
                    disable=not show_progress,
                ) as pbar,
                open(dest_path, "wb") as f,
            ):
                while True:
                    chunk = response.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    f.write(chunk)
                    pbar.update(len(chunk))
    except (OSError, ValueError, HTTPException) as e:
        if isinstance(e, HTTPError):
            outcode = e.code
        dest_path.unlink(missing_ok=True)
        message = f"failed fetching model archive: {url} with code: {outcode}"
        logger.error(f"{message} ({e})")
        raise BadParameterError(message, path=url) from e

    logger.info(f"Downloaded init model to {dest_path}")


def _is_gzip(path: Path) -> bool:
    with open(path, "rb") as f:
        return f.read(2) == GZIP_MAGIC


def extract_archive(archive_path: Path, extract_dir: Path) -> None:
    """Extract an archive into ``extract_dir``.

    Args:
        archive_path: Tar (any compression), zip or gzip file.
        extract_dir: Destination directory.

    Raises:
        ValueError: If the archive format is not supported.
        OSError: If the archive cannot be read or written out.
        tarfile.TarError: On corrupt tar archives or unsafe members.
        zipfile.BadZipFile: On corrupt zip archives.
    """
    logger.info(f"Extracting {archive_path.name} into {extract_dir}")

    if tarfile.is_tarfile(archive_path):
        with tarfile.open(archive_path, "r:*") as tar:
            tar.extractall(path=extract_dir, filter="data")
    elif zipfile.is_zipfile(archive_path):
        with zipfile.ZipFile(archive_path, "r") as zf:
            zf.extractall(path=extract_dir)
    elif _is_gzip(archive_path):
        name = archive_path.name
        target = extract_dir / (name[:-3] if name.endswith(".gz") else f"{name}.out")
        with gzip.open(archive_path, "rb") as src, open(target, "wb") as dst:
            shutil.copyfileobj(src, dst)
    else:
        raise ValueError(f"Unsupported archive format: {archive_path.name}")

    logger.info(f"Extracted {archive_path.name}")


def bootstrap_repository(
    repo_path: str | Path,
    source: str,
    *,
    timeout: float | None = None,
    show_progress: bool | None = None,
    user_agent: str | None = None,
) -> Path:
    """Install a model archive into a repository.

    Repeated calls with the same source fetch at most once: the archive is
    stored as ``repo_path / basename(source)`` and reused when present.

    Args:
        repo_path: Validated repository directory.
        source: Local archive path, or http/https/file URL.
        timeout: Fetch deadline in seconds (default: MODELREPO_FETCH_TIMEOUT).
        show_progress: Progress bar toggle (default: MODELREPO_SHOW_PROGRESS).
        user_agent: User-Agent header (default: MODELREPO_USER_AGENT).

    Returns:
        Path of the archive that was extracted.

    Raises:
        BadParameterError: If the source has no file name, the fetch fails,
            or extraction fails.
    """
    repo_path = Path(repo_path)

    name = archive_basename(source)
    if not name:
        message = f"cannot derive an archive file name from init source {source}"
        logger.error(message)
        raise BadParameterError(message, path=source)

    archive_path = repo_path / name
    if archive_path.exists():
        logger.warning(
            f"Init model {archive_path} is already in directory, not fetching it"
        )
        source = str(archive_path)

    if is_remote_source(source):
        fetch_archive(
            source,
            archive_path,
            timeout=get_fetch_timeout(timeout),
            show_progress=get_environment(EnvVar.SHOW_PROGRESS, show_progress),
            user_agent=user_agent,
        )
        source = str(archive_path)

    try:
        extract_archive(Path(source), repo_path)
    except (
        OSError,
        ValueError,
        EOFError,
        tarfile.TarError,
        zipfile.BadZipFile,
        zlib.error,
    ) as e:
        logger.error(f"{INSTALL_ERROR}: {e}")
        raise BadParameterError(INSTALL_ERROR, path=source) from e

    return Path(source)


__all__ = [
    "bootstrap_repository",
    "fetch_archive",
    "extract_archive",
    "archive_basename",
    "is_remote_source",
]
