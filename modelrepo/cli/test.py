"""Tests for the command line interface."""

import io
import json
import tarfile

import numpy as np
import pytest

from .lib import main


def _write_archive(path, files):
    with tarfile.open(path, "w:gz") as tar:
        for name, content in files.items():
            data = content.encode("utf-8")
            info = tarfile.TarInfo(name)
            info.size = len(data)
            tar.addfile(info, io.BytesIO(data))
    return path


class TestMain:
    """Tests for top-level dispatch."""

    @pytest.mark.unit
    def test_no_arguments_shows_help(self, capsys):
        assert main([]) == 1
        assert "Usage: modelrepo" in capsys.readouterr().out

    @pytest.mark.unit
    def test_help(self, capsys):
        assert main(["--help"]) == 0
        assert "Commands:" in capsys.readouterr().out

    @pytest.mark.unit
    def test_unknown_command(self, capsys):
        assert main(["frobnicate"]) == 1


class TestInitCommand:
    """Tests for the init command."""

    @pytest.mark.unit
    def test_create_and_bootstrap(self, tmp_path, capsys):
        archive = _write_archive(
            tmp_path / "model.tar.gz",
            {"config.json": json.dumps({"parameters": {"nclasses": 3}})},
        )
        repo = tmp_path / "repo"
        code = main(
            ["init", "-r", str(repo), "--create", "--init", str(archive), "--params", "{}"]
        )
        assert code == 0
        assert json.loads(capsys.readouterr().out) == {"parameters": {"nclasses": 3}}
        assert (repo / "config.json").exists()

    @pytest.mark.unit
    def test_missing_repository_fails(self, tmp_path):
        assert main(["init", "-r", str(tmp_path / "absent")]) == 1

    @pytest.mark.unit
    def test_invalid_params(self, tmp_path):
        assert main(["init", "-r", str(tmp_path), "--params", "[1]"]) == 1
        assert main(["init", "-r", str(tmp_path), "--params", "{bad"]) == 1


class TestLabelCommand:
    """Tests for the label command."""

    @pytest.mark.unit
    def test_lookup(self, tmp_path, capsys):
        corresp = tmp_path / "corresp.txt"
        corresp.write_text("3 cat\n5 dog\n")
        assert main(["label", "-c", str(corresp), "3", "4", "5"]) == 0
        assert capsys.readouterr().out.splitlines() == ["3 cat", "4 4", "5 dog"]


class TestIndexCommand:
    """Tests for the index command."""

    @pytest.mark.unit
    def test_no_subcommand(self, tmp_path):
        assert main(["index"]) == 1

    @pytest.mark.unit
    def test_disabled_backend(self, tmp_path):
        assert main(["index", "create", "-r", str(tmp_path), "-d", "4", "-b", "none"]) == 0

    @pytest.mark.unit
    def test_unknown_backend_from_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv("MODELREPO_SIMSEARCH_BACKEND", "nope")
        assert main(["index", "create", "-r", str(tmp_path), "-d", "4"]) == 1

    @pytest.mark.faiss
    def test_build_search_remove(self, tmp_path, capsys):
        vectors = tmp_path / "vectors.npy"
        np.save(vectors, np.eye(4, dtype=np.float32))
        query = tmp_path / "query.npy"
        np.save(query, np.array([0, 0, 1, 0], dtype=np.float32))
        common = ["-r", str(tmp_path), "-d", "4", "-b", "faiss"]

        assert main(["index", "build", *common, "--vectors", str(vectors)]) == 0
        assert (tmp_path / "index.faiss").exists()

        capsys.readouterr()
        assert main(["index", "search", *common, "-q", str(query), "-k", "1"]) == 0
        assert capsys.readouterr().out.split("\t")[:2] == ["0", "2"]

        assert main(["index", "remove", *common]) == 0
        assert not (tmp_path / "index.faiss").exists()

    @pytest.mark.faiss
    def test_build_dimension_mismatch(self, tmp_path):
        vectors = tmp_path / "vectors.npy"
        np.save(vectors, np.zeros((2, 3), dtype=np.float32))
        code = main(
            ["index", "build", "-r", str(tmp_path), "-d", "4", "--vectors", str(vectors)]
        )
        assert code == 1


class TestEnvCommand:
    """Tests for the env command."""

    @pytest.mark.unit
    def test_lists_variables(self, capsys):
        assert main(["env"]) == 0
        out = capsys.readouterr().out
        assert "MODELREPO_SIMSEARCH_BACKEND=faiss" in out
        assert "MODELREPO_FETCH_TIMEOUT=None" in out

    @pytest.mark.unit
    def test_category_filter(self, capsys):
        assert main(["env", "--category", "logging"]) == 0
        assert capsys.readouterr().out.splitlines() == [
            "MODELREPO_LOG_LEVEL=INFO  # Log level used by the command line interface"
        ]


class TestIndexOptionValidation:
    """Invalid index options are reported, not raised."""

    @pytest.mark.unit
    @pytest.mark.parametrize("option", ["--nprobe", "--train-samples"])
    @pytest.mark.parametrize("command", ["create", "build", "remove"])
    def test_non_positive_counts_fail_cleanly(self, tmp_path, command, option):
        argv = ["index", command, "-r", str(tmp_path), "-d", "4", "-b", "none", option, "0"]
        assert main(argv) == 1


class TestCliLogger:
    """The CLI logs under the package logger hierarchy."""

    @pytest.mark.unit
    def test_logger_name(self):
        from . import lib

        assert lib.logger.name == "modelrepo.cli.lib"
