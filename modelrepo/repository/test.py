"""Unit tests for the repository module."""

import json
import os

import pytest

from modelrepo.core.errors import BadParameterError
from modelrepo.simsearch import IndexConfiguration, SimilarityIndex

from .conftest import MODEL_CONFIG, write_tar_gz
from .lib import ModelRepository
from .models import InitializationOptions
from .paths import ensure_repository_dir, is_directory_writable
from .persisted import PersistedConfig, load_persisted_config, merge_persisted_config

skip_if_root = pytest.mark.skipif(
    hasattr(os, "geteuid") and os.geteuid() == 0,
    reason="root ignores directory permissions",
)


# =============================================================================
# Directory Validation
# =============================================================================


class TestEnsureRepositoryDir:
    """Tests for ensure_repository_dir."""

    @pytest.mark.unit
    def test_existing_writable_directory(self, repo_dir):
        assert ensure_repository_dir(repo_dir) == repo_dir

    @pytest.mark.unit
    def test_file_collision(self, tmp_path):
        path = tmp_path / "repo"
        path.write_text("x")
        with pytest.raises(BadParameterError) as exc_info:
            ensure_repository_dir(path, allow_create=True)
        assert str(exc_info.value) == f"file exists with same name as repository {path}"
        assert exc_info.value.path == path
        assert path.is_file()

    @pytest.mark.unit
    def test_missing_without_create(self, tmp_path):
        path = tmp_path / "absent"
        with pytest.raises(BadParameterError, match="is not writable"):
            ensure_repository_dir(path)
        assert not path.exists()

    @pytest.mark.unit
    def test_creates_missing_parents(self, tmp_path):
        path = tmp_path / "a" / "b" / "repo"
        assert ensure_repository_dir(path, allow_create=True) == path
        assert path.is_dir()

    @pytest.mark.unit
    def test_create_failure(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("x")
        with pytest.raises(BadParameterError, match="failed creating repository"):
            ensure_repository_dir(blocker / "repo", allow_create=True)

    @pytest.mark.unit
    @skip_if_root
    def test_read_only_directory(self, tmp_path):
        path = tmp_path / "ro"
        path.mkdir()
        path.chmod(0o555)
        try:
            assert not is_directory_writable(path)
            with pytest.raises(BadParameterError) as exc_info:
                ensure_repository_dir(path)
            assert str(exc_info.value) == (
                f"destination model directory {path} is not writable"
            )
        finally:
            path.chmod(0o755)


# =============================================================================
# Persisted Configuration
# =============================================================================


class TestPersistedConfig:
    """Tests for config.json loading and merging."""

    @pytest.mark.unit
    def test_merge_replaces_parameters(self, repo_dir):
        (repo_dir / "config.json").write_text(json.dumps(MODEL_CONFIG))
        params = {"parameters": {"old": True}, "other": 1}
        merge_persisted_config(repo_dir, params)
        assert params == {"parameters": MODEL_CONFIG["parameters"], "other": 1}

    @pytest.mark.unit
    def test_merge_without_config_is_noop(self, repo_dir):
        params = {"parameters": {"keep": 1}}
        merge_persisted_config(repo_dir, params)
        assert params == {"parameters": {"keep": 1}}

    @pytest.mark.unit
    def test_missing_parameters_section_gives_empty(self, repo_dir):
        (repo_dir / "config.json").write_text('{"description": "x"}')
        params = {}
        merge_persisted_config(repo_dir, params)
        assert params == {"parameters": {}}

    @pytest.mark.unit
    def test_non_finite_literals_accepted(self, repo_dir):
        path = repo_dir / "config.json"
        path.write_text('{"parameters": {"lr": NaN, "max": Infinity}}')
        config = load_persisted_config(path)
        assert config.parameters["max"] == float("inf")

    @pytest.mark.unit
    def test_extra_keys_allowed(self, repo_dir):
        path = repo_dir / "config.json"
        path.write_text('{"parameters": {}, "mllib": "caffe"}')
        assert isinstance(load_persisted_config(path), PersistedConfig)

    @pytest.mark.unit
    def test_invalid_json(self, repo_dir):
        path = repo_dir / "config.json"
        path.write_text("{not json")
        params = {"parameters": {"keep": 1}}
        with pytest.raises(BadParameterError, match="failed parsing config file"):
            merge_persisted_config(repo_dir, params)
        assert params == {"parameters": {"keep": 1}}

    @pytest.mark.unit
    def test_wrong_shape(self, repo_dir):
        (repo_dir / "config.json").write_text('{"parameters": [1, 2]}')
        with pytest.raises(BadParameterError, match="failed converting JSON file"):
            merge_persisted_config(repo_dir, {})


# =============================================================================
# Initialization Options
# =============================================================================


class TestInitializationOptions:
    """Tests for InitializationOptions validation."""

    @pytest.mark.unit
    def test_defaults(self):
        options = InitializationOptions(repository="models/x")
        assert options.create_repository is False
        assert options.init is None
        assert options.index_preload is False

    @pytest.mark.unit
    def test_unknown_keys_ignored(self):
        options = InitializationOptions.model_validate(
            {"repository": "m", "mllib": "torch", "nclasses": 10}
        )
        assert str(options.repository) == "m"

    @pytest.mark.unit
    def test_empty_init_rejected(self, repo_dir):
        with pytest.raises(BadParameterError, match="invalid repository options"):
            ModelRepository({"repository": repo_dir, "init": ""})

    @pytest.mark.unit
    def test_repository_required(self):
        with pytest.raises(BadParameterError):
            ModelRepository({"create_repository": True})


# =============================================================================
# Model Repository Lifecycle
# =============================================================================


class TestModelRepository:
    """Tests for the ModelRepository initialization sequence."""

    @pytest.mark.unit
    def test_existing_directory(self, repo_dir):
        repo = ModelRepository({"repository": repo_dir})
        assert repo.repo_path == repo_dir
        assert repo.sim_search is None
        assert repo.read_best_model() is None

    @pytest.mark.unit
    def test_creates_directory(self, tmp_path):
        path = tmp_path / "new" / "repo"
        ModelRepository({"repository": str(path), "create_repository": True})
        assert path.is_dir()

    @pytest.mark.unit
    def test_accepts_options_model(self, repo_dir):
        repo = ModelRepository(
            InitializationOptions(repository=repo_dir, index_preload=True)
        )
        assert repo.index_preload is True

    @pytest.mark.unit
    def test_bootstrap_merges_parameters(self, tmp_path, model_tarball):
        path = tmp_path / "repo-new"
        params = {}
        repo = ModelRepository(
            {
                "repository": path,
                "create_repository": True,
                "init": str(model_tarball),
            },
            params,
        )
        assert params == {"parameters": MODEL_CONFIG["parameters"]}
        assert repo.read_best_model() == "model_iter_1000.bin"
        assert repo.config_path.exists()

    @pytest.mark.unit
    def test_bootstrap_over_http_fetches_once(
        self, repo_dir, archive_server, model_tarball
    ):
        options = {"repository": repo_dir, "init": archive_server.url("model.tar.gz")}
        first, second = {}, {}
        ModelRepository(options, first)
        ModelRepository(options, second)
        assert first == second == {"parameters": MODEL_CONFIG["parameters"]}
        assert archive_server.requests == {"/model.tar.gz": 1}

    @pytest.mark.unit
    def test_no_merge_without_init(self, repo_dir):
        (repo_dir / "config.json").write_text(json.dumps(MODEL_CONFIG))
        params = {}
        ModelRepository({"repository": repo_dir}, params)
        assert params == {}

    @pytest.mark.unit
    def test_archive_without_config(self, repo_dir, source_dir):
        archive = write_tar_gz(source_dir / "bare.tar.gz", {"weights.bin": "w"})
        params = {"parameters": {"keep": 1}}
        ModelRepository({"repository": repo_dir, "init": str(archive)}, params)
        assert params == {"parameters": {"keep": 1}}
        assert (repo_dir / "weights.bin").exists()

    @pytest.mark.unit
    def test_bad_config_aborts(self, repo_dir, source_dir):
        archive = write_tar_gz(source_dir / "bad.tar.gz", {"config.json": "{oops"})
        with pytest.raises(BadParameterError, match="failed parsing config file"):
            ModelRepository({"repository": repo_dir, "init": str(archive)}, {})

    @pytest.mark.unit
    def test_bootstrap_failure_aborts(self, repo_dir, archive_server):
        params = {}
        with pytest.raises(BadParameterError, match="with code: 404"):
            ModelRepository(
                {"repository": repo_dir, "init": archive_server.url("x.tar.gz")},
                params,
            )
        assert params == {}

    @pytest.mark.unit
    def test_directory_failure_skips_bootstrap(self, tmp_path, archive_server):
        with pytest.raises(BadParameterError, match="is not writable"):
            ModelRepository(
                {
                    "repository": tmp_path / "absent",
                    "init": archive_server.url("model.tar.gz"),
                }
            )
        assert archive_server.requests == {}

    @pytest.mark.unit
    def test_labels_from_bootstrapped_corresp(self, repo_dir, model_tarball):
        repo = ModelRepository({"repository": repo_dir, "init": str(model_tarball)})
        repo.corresp = repo_dir / "corresp.txt"
        repo.read_corresp_file()
        assert repo.get_label(0) == "cat"
        assert repo.get_label(1) == "dog"
        assert repo.get_label(42) == "42"

    @pytest.mark.unit
    def test_labels_without_corresp(self, repo_dir):
        repo = ModelRepository({"repository": repo_dir})
        repo.read_corresp_file()
        assert repo.get_label(3) == "3"

    @pytest.mark.unit
    def test_from_path_skips_validation(self, tmp_path):
        repo = ModelRepository.from_path(tmp_path / "anywhere")
        assert repr(repo) == f"ModelRepository({str(tmp_path / 'anywhere')!r})"
        assert repo.correspondences.lookup(1) == "1"


class TestModelRepositorySimSearch:
    """Tests for the similarity index wiring of ModelRepository."""

    @pytest.mark.unit
    def test_index_calls_are_noops_before_create(self, repo_dir):
        repo = ModelRepository({"repository": repo_dir})
        repo.create_index()
        repo.build_index()
        repo.remove_index()
        assert repo.search([0.0, 0.0]) == []
        assert repo.sim_search is None

    @pytest.mark.unit
    def test_disabled_backend(self, repo_dir):
        repo = ModelRepository({"repository": repo_dir}, simsearch_backend="none")
        sim = repo.create_sim_search(4)
        assert isinstance(sim, SimilarityIndex)
        assert not sim.enabled
        repo.build_index()
        assert repo.search([0.0] * 4) == []

    @pytest.mark.unit
    def test_create_sim_search_is_idempotent(self, repo_dir):
        repo = ModelRepository({"repository": repo_dir}, simsearch_backend="none")
        assert repo.create_sim_search(4) is repo.create_sim_search(8)

    @pytest.mark.unit
    def test_one_backend_per_repository(self, repo_dir, monkeypatch):
        from modelrepo.simsearch.conftest import RecordingBackend

        created = []

        def fake_create_backend(dimension, repo_path, config=None, **kwargs):
            backend = RecordingBackend(dimension, repo_path, kwargs.get("preload", False))
            created.append(backend)
            return backend

        monkeypatch.setattr("modelrepo.repository.lib.create_backend", fake_create_backend)
        repo = ModelRepository({"repository": repo_dir, "index_preload": True})
        repo.create_sim_search(4)
        repo.create_sim_search(4)
        repo.build_index()

        assert len(created) == 1
        assert created[0].preload is True
        assert created[0].calls == ["create_index", "update_index"]

        repo.close()
        assert created[0].calls[-1] == "close"

    @pytest.mark.unit
    def test_failed_create_index_is_not_kept(self, repo_dir, monkeypatch):
        from modelrepo.core.errors import IndexBackendError
        from modelrepo.simsearch.conftest import RecordingBackend

        class BrokenBackend(RecordingBackend):
            def create_index(self):
                super().create_index()
                raise IndexBackendError("cannot open index")

        created = []

        def fake_create_backend(dimension, repo_path, config=None, **kwargs):
            backend_class = BrokenBackend if not created else RecordingBackend
            created.append(backend_class(dimension, repo_path))
            return created[-1]

        monkeypatch.setattr("modelrepo.repository.lib.create_backend", fake_create_backend)
        repo = ModelRepository({"repository": repo_dir})

        with pytest.raises(IndexBackendError):
            repo.create_sim_search(8)
        assert repo.sim_search is None
        assert created[0].calls == ["create_index", "close"]

        sim = repo.create_sim_search(4)
        assert sim.backend is created[1]
        assert sim.backend.dimension == 4

    @pytest.mark.faiss
    def test_retry_after_dimension_mismatch(self, repo_dir):
        import numpy as np

        from modelrepo.core.errors import IndexBackendError

        with ModelRepository({"repository": repo_dir}, simsearch_backend="faiss") as repo:
            repo.create_sim_search(4)
            repo.index(np.eye(4, dtype=np.float32), ["a", "b", "c", "d"])
            repo.build_index()

        repo = ModelRepository({"repository": repo_dir}, simsearch_backend="faiss")
        with pytest.raises(IndexBackendError, match="has dimension 4"):
            repo.create_sim_search(8)
        assert repo.sim_search is None

        sim = repo.create_sim_search(4)
        assert sim.backend.dimension == 4
        assert sim.backend.size == 4
        repo.close()

    @pytest.mark.unit
    def test_close_releases_facade(self, repo_dir):
        with ModelRepository({"repository": repo_dir}, simsearch_backend="none") as repo:
            repo.create_sim_search(4)
        assert repo.sim_search is None

    @pytest.mark.faiss
    def test_faiss_index_persists_in_repository(self, repo_dir):
        import numpy as np

        vectors = np.eye(4, dtype=np.float32)
        with ModelRepository({"repository": repo_dir}, simsearch_backend="faiss") as repo:
            repo.create_sim_search(4, IndexConfiguration(index_type="Flat"))
            repo.index(vectors, ["a", "b", "c", "d"])
            repo.build_index()

        assert (repo_dir / "index.faiss").exists()

        with ModelRepository({"repository": repo_dir}, simsearch_backend="faiss") as repo:
            repo.create_sim_search(4)
            results = repo.search(vectors[2], k=1)
            assert [r.id for r in results] == ["c"]
            repo.remove_index()

        assert not (repo_dir / "index.faiss").exists()
