"""Tests for model archive bootstrap."""

import pytest

from modelrepo.core.errors import BadParameterError

from .bootstrap import (
    INSTALL_ERROR,
    archive_basename,
    bootstrap_repository,
    extract_archive,
    fetch_archive,
    is_remote_source,
)
from .conftest import write_gzip, write_tar_gz, write_zip

# =============================================================================
# Source Helpers
# =============================================================================


class TestSourceHelpers:
    """Tests for source classification and archive naming."""

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "source,expected",
        [
            ("http://host/model.tar.gz", True),
            ("https://host/model.tar.gz", True),
            ("HTTPS://host/model.tar.gz", True),
            ("file:///tmp/model.tar.gz", True),
            ("/tmp/model.tar.gz", False),
            ("models/model.tar.gz", False),
            ("ftp://host/model.tar.gz", False),
        ],
    )
    def test_is_remote_source(self, source, expected):
        assert is_remote_source(source) is expected

    @pytest.mark.unit
    def test_basename_of_url(self):
        assert archive_basename("https://host/a/b/model.tar.gz") == "model.tar.gz"

    @pytest.mark.unit
    def test_basename_drops_query_string(self):
        url = "https://host/model.tar.gz?token=abc#frag"
        assert archive_basename(url) == "model.tar.gz"

    @pytest.mark.unit
    def test_basename_unquotes_url(self):
        assert archive_basename("http://host/my%20model.zip") == "my model.zip"

    @pytest.mark.unit
    def test_basename_of_local_path(self):
        assert archive_basename("/data/archives/model.zip") == "model.zip"

    @pytest.mark.unit
    def test_basename_of_directory_url_is_empty(self):
        assert archive_basename("https://host/models/") == ""


# =============================================================================
# Extraction
# =============================================================================


class TestExtractArchive:
    """Tests for extract_archive format detection."""

    @pytest.mark.unit
    def test_tar_gz(self, source_dir, repo_dir):
        archive = write_tar_gz(source_dir / "m.tar.gz", {"a.txt": "A"})
        extract_archive(archive, repo_dir)
        assert (repo_dir / "a.txt").read_text() == "A"

    @pytest.mark.unit
    def test_zip(self, source_dir, repo_dir):
        archive = write_zip(source_dir / "m.zip", {"sub/b.txt": "B"})
        extract_archive(archive, repo_dir)
        assert (repo_dir / "sub" / "b.txt").read_text() == "B"

    @pytest.mark.unit
    def test_single_file_gzip(self, source_dir, repo_dir):
        archive = write_gzip(source_dir / "weights.bin.gz", "payload")
        extract_archive(archive, repo_dir)
        assert (repo_dir / "weights.bin").read_text() == "payload"

    @pytest.mark.unit
    def test_unknown_format_raises(self, source_dir, repo_dir):
        archive = source_dir / "plain.txt"
        archive.write_text("not an archive")
        with pytest.raises(ValueError, match="Unsupported archive format"):
            extract_archive(archive, repo_dir)


# =============================================================================
# Fetch
# =============================================================================


class TestFetchArchive:
    """Tests for fetch_archive."""

    @pytest.mark.unit
    def test_fetches_bytes_verbatim(self, archive_server, model_tarball, tmp_path):
        dest = tmp_path / "out.tar.gz"
        fetch_archive(archive_server.url("model.tar.gz"), dest, show_progress=False)
        assert dest.read_bytes() == model_tarball.read_bytes()

    @pytest.mark.unit
    def test_sends_user_agent(self, archive_server, model_tarball, tmp_path):
        fetch_archive(
            archive_server.url("model.tar.gz"),
            tmp_path / "out.tar.gz",
            show_progress=False,
            user_agent="tester/2.0",
        )
        assert archive_server.user_agents == ["tester/2.0"]

    @pytest.mark.unit
    def test_http_error_reports_status(self, archive_server, tmp_path):
        dest = tmp_path / "missing.tar.gz"
        url = archive_server.url("missing.tar.gz")
        with pytest.raises(BadParameterError) as exc_info:
            fetch_archive(url, dest, show_progress=False)
        assert str(exc_info.value) == (
            f"failed fetching model archive: {url} with code: 404"
        )
        assert exc_info.value.path == url
        assert not dest.exists()

    @pytest.mark.unit
    def test_connection_error_reports_minus_one(self, tmp_path):
        url = "http://127.0.0.1:9/model.tar.gz"
        with pytest.raises(BadParameterError, match="with code: -1"):
            fetch_archive(url, tmp_path / "model.tar.gz", timeout=2, show_progress=False)

    @pytest.mark.unit
    def test_file_url(self, model_tarball, tmp_path):
        dest = tmp_path / "copy.tar.gz"
        fetch_archive(model_tarball.as_uri(), dest, show_progress=False)
        assert dest.read_bytes() == model_tarball.read_bytes()


# =============================================================================
# Bootstrap
# =============================================================================


class TestBootstrapRepository:
    """Tests for bootstrap_repository."""

    @pytest.mark.unit
    def test_local_archive(self, repo_dir, model_tarball):
        result = bootstrap_repository(repo_dir, str(model_tarball))
        assert result == model_tarball
        assert (repo_dir / "config.json").exists()
        assert (repo_dir / "corresp.txt").read_text() == "0 cat\n1 dog\n"
        # Local archives are extracted in place, not copied
        assert not (repo_dir / "model.tar.gz").exists()

    @pytest.mark.unit
    def test_http_archive_is_stored_in_repository(
        self, repo_dir, archive_server, model_tarball
    ):
        result = bootstrap_repository(repo_dir, archive_server.url("model.tar.gz"))
        assert result == repo_dir / "model.tar.gz"
        assert result.read_bytes() == model_tarball.read_bytes()
        assert (repo_dir / "best_model.txt").exists()

    @pytest.mark.unit
    def test_fetches_once(self, repo_dir, archive_server, model_tarball):
        url = archive_server.url("model.tar.gz")
        bootstrap_repository(repo_dir, url)
        bootstrap_repository(repo_dir, url)
        assert archive_server.requests == {"/model.tar.gz": 1}

    @pytest.mark.unit
    def test_query_string_not_in_stored_name(
        self, repo_dir, archive_server, model_tarball
    ):
        url = archive_server.url("model.tar.gz") + "?version=3"
        result = bootstrap_repository(repo_dir, url)
        assert result.name == "model.tar.gz"

    @pytest.mark.unit
    def test_file_url(self, repo_dir, model_tarball):
        result = bootstrap_repository(repo_dir, model_tarball.as_uri())
        assert result == repo_dir / "model.tar.gz"
        assert (repo_dir / "config.json").exists()

    @pytest.mark.unit
    def test_fetch_failure(self, repo_dir, archive_server):
        with pytest.raises(BadParameterError, match="with code: 404"):
            bootstrap_repository(repo_dir, archive_server.url("nope.tar.gz"))
        assert not (repo_dir / "nope.tar.gz").exists()

    @pytest.mark.unit
    def test_corrupt_archive(self, repo_dir, source_dir):
        archive = source_dir / "broken.tar.gz"
        archive.write_bytes(b"\x1f\x8b\x08\x00garbage")
        with pytest.raises(BadParameterError) as exc_info:
            bootstrap_repository(repo_dir, str(archive))
        assert str(exc_info.value) == INSTALL_ERROR

    @pytest.mark.unit
    def test_escaping_tar_member_rejected(self, repo_dir, source_dir):
        archive = write_tar_gz(source_dir / "evil.tar.gz", {"../outside.txt": "x"})
        with pytest.raises(BadParameterError) as exc_info:
            bootstrap_repository(repo_dir, str(archive))
        assert str(exc_info.value) == INSTALL_ERROR
        assert not (repo_dir.parent / "outside.txt").exists()

    @pytest.mark.unit
    def test_missing_local_archive(self, repo_dir, source_dir):
        with pytest.raises(BadParameterError, match="failed installing model"):
            bootstrap_repository(repo_dir, str(source_dir / "absent.tar.gz"))

    @pytest.mark.unit
    def test_source_without_file_name(self, repo_dir):
        with pytest.raises(BadParameterError, match="cannot derive an archive"):
            bootstrap_repository(repo_dir, "https://host/models/")
