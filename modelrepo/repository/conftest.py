"""Repository module test fixtures."""

from __future__ import annotations

import gzip
import io
import json
import tarfile
import threading
import zipfile
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path

import pytest

# =============================================================================
# Archive Builders
# =============================================================================

MODEL_CONFIG = {
    "parameters": {
        "mllib": {"nclasses": 2, "gpu": False},
        "input": {"width": 224, "height": 224},
    },
    "description": "test model",
}

MODEL_FILES = {
    "config.json": json.dumps(MODEL_CONFIG),
    "corresp.txt": "0 cat\n1 dog\n",
    "best_model.txt": "model_iter_1000.bin\n",
}


def write_tar_gz(path: Path, files: dict[str, str] = MODEL_FILES) -> Path:
    """Write a gzipped tarball holding ``files``."""
    with tarfile.open(path, "w:gz") as tar:
        for name, content in files.items():
            data = content.encode("utf-8")
            info = tarfile.TarInfo(name)
            info.size = len(data)
            tar.addfile(info, io.BytesIO(data))
    return path


def write_zip(path: Path, files: dict[str, str] = MODEL_FILES) -> Path:
    """Write a zip archive holding ``files``."""
    with zipfile.ZipFile(path, "w") as zf:
        for name, content in files.items():
            zf.writestr(name, content)
    return path


def write_gzip(path: Path, content: str) -> Path:
    """Write a single-file gzip."""
    with gzip.open(path, "wb") as f:
        f.write(content.encode("utf-8"))
    return path


@pytest.fixture
def source_dir(tmp_path) -> Path:
    """Directory holding archives outside of the repository."""
    path = tmp_path / "sources"
    path.mkdir()
    return path


@pytest.fixture
def repo_dir(tmp_path) -> Path:
    """Existing, empty, writable repository directory."""
    path = tmp_path / "repo"
    path.mkdir()
    return path


@pytest.fixture
def model_tarball(source_dir) -> Path:
    """Model archive with config.json, corresp.txt and best_model.txt."""
    return write_tar_gz(source_dir / "model.tar.gz")


# =============================================================================
# HTTP Server
# =============================================================================


class ArchiveServer:
    """Static file server over ``root`` counting GET requests per path."""

    def __init__(self, root: Path):
        self.root = root
        self.requests: dict[str, int] = {}
        self.user_agents: list[str] = []
        server = self

        class Handler(BaseHTTPRequestHandler):
            def do_GET(self):
                path = self.path.split("?", 1)[0]
                server.requests[path] = server.requests.get(path, 0) + 1
                server.user_agents.append(self.headers.get("User-Agent", ""))
                file_path = server.root / path.lstrip("/")
                if not file_path.is_file():
                    self.send_error(404)
                    return
                data = file_path.read_bytes()
                self.send_response(200)
                self.send_header("Content-Length", str(len(data)))
                self.end_headers()
                self.wfile.write(data)

            def log_message(self, format, *args):
                pass

        self._httpd = ThreadingHTTPServer(("127.0.0.1", 0), Handler)
        self._thread = threading.Thread(target=self._httpd.serve_forever, daemon=True)

    @property
    def base_url(self) -> str:
        host, port = self._httpd.server_address[:2]
        return f"http://{host}:{port}"

    def url(self, name: str) -> str:
        return f"{self.base_url}/{name}"

    def start(self) -> None:
        self._thread.start()

    def stop(self) -> None:
        self._httpd.shutdown()
        self._httpd.server_close()
        self._thread.join()


@pytest.fixture
def archive_server(source_dir):
    """HTTP server publishing the files in ``source_dir``."""
    server = ArchiveServer(source_dir)
    server.start()
    yield server
    server.stop()
