"""Unit tests for the similarity search module."""

import json

import numpy as np
import pytest

from modelrepo.core.errors import IndexBackendError

from .backend import (
    ApproximateTreeBackend,
    IndexBackend,
    InvertedFileBackend,
    create_backend,
    resolve_backend_type,
)
from .backend.factory import resolve_options
from .backend.utils import as_matrix, check_ids
from .conftest import RecordingBackend
from .lib import SimilarityIndex
from .types import (
    DEFAULT_NPROBE,
    FAISS_INDEX_FILENAME,
    INDEX_META_FILENAME,
    BackendType,
    IndexConfiguration,
)

# =============================================================================
# Configuration
# =============================================================================


class TestIndexConfiguration:
    """Tests for IndexConfiguration validation."""

    @pytest.mark.unit
    def test_all_optional(self):
        config = IndexConfiguration()
        assert config.model_dump() == {
            "index_type": None,
            "train_samples": None,
            "ondisk": None,
            "nprobe": None,
            "index_gpu": None,
            "index_gpuid": None,
        }

    @pytest.mark.unit
    @pytest.mark.parametrize("field", ["nprobe", "train_samples"])
    def test_positive_counts(self, field):
        with pytest.raises(ValueError):
            IndexConfiguration(**{field: 0})

    @pytest.mark.unit
    def test_unknown_fields_ignored(self):
        config = IndexConfiguration.model_validate({"nprobe": 4, "metric": "l2"})
        assert config.nprobe == 4


# =============================================================================
# Factory
# =============================================================================


class TestResolveBackendType:
    """Tests for backend name resolution."""

    @pytest.mark.unit
    def test_default_is_faiss(self):
        assert resolve_backend_type() == BackendType.FAISS

    @pytest.mark.unit
    def test_from_environment(self, monkeypatch):
        monkeypatch.setenv("MODELREPO_SIMSEARCH_BACKEND", " Annoy ")
        assert resolve_backend_type() == BackendType.ANNOY

    @pytest.mark.unit
    def test_explicit_overrides_environment(self, monkeypatch):
        monkeypatch.setenv("MODELREPO_SIMSEARCH_BACKEND", "annoy")
        assert resolve_backend_type("none") == BackendType.NONE
        assert resolve_backend_type(BackendType.FAISS) == BackendType.FAISS

    @pytest.mark.unit
    def test_unknown_name(self):
        with pytest.raises(IndexBackendError, match="Unknown similarity backend"):
            resolve_backend_type("hnswlib")


class TestResolveOptions:
    """Tests for option flattening and the GPU override."""

    @pytest.mark.unit
    def test_includes_preload(self):
        options = resolve_options(IndexConfiguration(nprobe=4), preload=True)
        assert options["nprobe"] == 4
        assert options["preload"] is True

    @pytest.mark.unit
    def test_gpu_forced_off(self, monkeypatch):
        monkeypatch.setenv("MODELREPO_USE_GPU", "false")
        options = resolve_options(IndexConfiguration(index_gpu=True, index_gpuid=[0, 1]))
        assert options["index_gpu"] is False
        assert options["index_gpuid"] is None

    @pytest.mark.unit
    def test_gpu_forced_on_when_unset(self, monkeypatch):
        monkeypatch.setenv("MODELREPO_USE_GPU", "true")
        assert resolve_options()["index_gpu"] is True
        assert resolve_options(IndexConfiguration(index_gpu=False))["index_gpu"] is False


class TestCreateBackend:
    """Tests for create_backend."""

    @pytest.mark.unit
    def test_none_disables(self, tmp_path):
        assert create_backend(8, tmp_path, backend="none") is None

    @pytest.mark.unit
    def test_faiss_receives_its_options(self, tmp_path):
        config = IndexConfiguration(
            index_type="IVF16,Flat", nprobe=4, ondisk=False, train_samples=500
        )
        backend = create_backend(8, tmp_path, config, backend="faiss", preload=True)
        assert isinstance(backend, InvertedFileBackend)
        assert backend.index_type == "IVF16,Flat"
        assert backend.nprobe == 4
        assert backend.ondisk is False
        assert backend.train_samples == 500
        assert backend.dimension == 8

    @pytest.mark.unit
    def test_faiss_defaults(self, tmp_path):
        backend = create_backend(8, tmp_path, backend="faiss")
        assert backend.index_type == "Flat"
        assert backend.nprobe == DEFAULT_NPROBE
        assert backend.use_gpu is False

    @pytest.mark.unit
    def test_gpuid_implies_gpu(self, tmp_path):
        config = IndexConfiguration(index_gpuid=[1])
        backend = create_backend(8, tmp_path, config, backend="faiss")
        assert backend.use_gpu is True
        assert backend.gpuids == [1]

    @pytest.mark.unit
    def test_annoy_ignores_faiss_options(self, tmp_path):
        config = IndexConfiguration(index_type="IVF16,Flat", nprobe=4, index_gpu=True)
        backend = create_backend(8, tmp_path, config, backend="annoy", preload=True)
        assert isinstance(backend, ApproximateTreeBackend)
        assert backend.preload is True

    @pytest.mark.unit
    def test_backends_satisfy_protocol(self, tmp_path):
        assert isinstance(InvertedFileBackend(4, tmp_path), IndexBackend)
        assert isinstance(ApproximateTreeBackend(4, tmp_path), IndexBackend)
        assert isinstance(RecordingBackend(), IndexBackend)


# =============================================================================
# Helpers
# =============================================================================


class TestVectorHelpers:
    """Tests for vector coercion helpers."""

    @pytest.mark.unit
    def test_single_vector_becomes_row(self):
        matrix = as_matrix([1, 2, 3], 3)
        assert matrix.shape == (1, 3)
        assert matrix.dtype == np.float32

    @pytest.mark.unit
    def test_wrong_dimension(self):
        with pytest.raises(IndexBackendError, match="must match index dimension"):
            as_matrix(np.zeros((2, 5)), 4)

    @pytest.mark.unit
    def test_id_count_mismatch(self):
        with pytest.raises(IndexBackendError, match="must match ID count"):
            check_ids(np.zeros((2, 4)), ["a"])


# =============================================================================
# Facade
# =============================================================================


class TestSimilarityIndex:
    """Tests for the SimilarityIndex facade."""

    @pytest.mark.unit
    def test_forwards_lifecycle(self, recording_backend):
        sim = SimilarityIndex(recording_backend)
        sim.create_index()
        sim.build_index()
        sim.remove_index()
        assert recording_backend.calls == ["create_index", "update_index", "remove_index"]

    @pytest.mark.unit
    def test_index_and_search(self, recording_backend):
        sim = SimilarityIndex(recording_backend)
        sim.index(np.eye(4, dtype=np.float32), ["a", "b", "c", "d"])
        results = sim.search(np.array([0, 0, 1, 0], dtype=np.float32), k=2)
        assert results[0].id == "c"
        assert results[0].rank == 0
        assert len(results) == 2

    @pytest.mark.unit
    def test_disabled_is_noop(self):
        sim = SimilarityIndex()
        assert not sim.enabled
        sim.create_index()
        sim.build_index()
        sim.remove_index()
        sim.index(np.zeros((1, 4)), ["a"])
        assert sim.search(np.zeros(4)) == []

    @pytest.mark.unit
    def test_close_releases_backend(self, recording_backend):
        with SimilarityIndex(recording_backend) as sim:
            assert sim.backend is recording_backend
        assert recording_backend.calls == ["close"]
        assert sim.backend is None
        sim.build_index()
        assert recording_backend.calls == ["close"]


# =============================================================================
# FAISS Backend
# =============================================================================


class TestInvertedFileBackend:
    """Tests for the FAISS backend."""

    @pytest.mark.faiss
    def test_flat_add_build_search(self, tmp_path):
        backend = InvertedFileBackend(4, tmp_path)
        backend.create_index()
        backend.add(np.eye(4, dtype=np.float32), ["a", "b", "c", "d"])
        assert backend.size == 0
        assert backend.pending == 4

        backend.update_index()
        assert backend.size == 4
        assert backend.pending == 0
        results = backend.search(np.array([0, 1, 0, 0], dtype=np.float32), k=2)
        assert results[0].id == "b"
        assert results[0].distance == pytest.approx(0.0)
        assert [r.rank for r in results] == [0, 1]

    @pytest.mark.faiss
    def test_search_before_build_is_empty(self, tmp_path):
        backend = InvertedFileBackend(4, tmp_path)
        backend.create_index()
        backend.add(np.eye(4, dtype=np.float32), ["a", "b", "c", "d"])
        assert backend.search(np.zeros(4, dtype=np.float32)) == []

    @pytest.mark.faiss
    def test_k_larger_than_size(self, tmp_path):
        backend = InvertedFileBackend(4, tmp_path)
        backend.create_index()
        backend.add(np.eye(4, dtype=np.float32)[:2], ["a", "b"])
        backend.update_index()
        assert len(backend.search(np.zeros(4, dtype=np.float32), k=10)) == 2

    @pytest.mark.faiss
    def test_persisted_and_reloaded(self, tmp_path):
        first = InvertedFileBackend(4, tmp_path)
        first.create_index()
        first.add(np.eye(4, dtype=np.float32), ["a", "b", "c", "d"])
        first.update_index()
        first.close()

        meta = json.loads((tmp_path / INDEX_META_FILENAME).read_text())
        assert meta["dimension"] == 4
        assert meta["id_map"] == ["a", "b", "c", "d"]

        for ondisk in (True, False):
            reopened = InvertedFileBackend(4, tmp_path, ondisk=ondisk)
            reopened.create_index()
            assert reopened.size == 4
            assert reopened.search(np.eye(4, dtype=np.float32)[3], k=1)[0].id == "d"

    @pytest.mark.faiss
    def test_incremental_build_after_reload(self, tmp_path):
        first = InvertedFileBackend(4, tmp_path)
        first.create_index()
        first.add(np.eye(4, dtype=np.float32)[:2], ["a", "b"])
        first.update_index()

        second = InvertedFileBackend(4, tmp_path, ondisk=True)
        second.create_index()
        second.add(np.eye(4, dtype=np.float32)[2:], ["c", "d"])
        second.update_index()
        assert second.size == 4
        assert second.search(np.eye(4, dtype=np.float32)[2], k=1)[0].id == "c"

    @pytest.mark.faiss
    def test_ivf_trained_with_nprobe(self, tmp_path, clustered_vectors):
        import faiss

        backend = InvertedFileBackend(
            8, tmp_path, index_type="IVF4,Flat", nprobe=3, ondisk=False
        )
        backend.create_index()
        ids = [f"v{i}" for i in range(len(clustered_vectors))]
        backend.add(clustered_vectors, ids)
        backend.update_index()

        assert faiss.extract_index_ivf(backend._index).nprobe == 3
        results = backend.search(clustered_vectors[70], k=1)
        assert results[0].id == "v70"

    @pytest.mark.faiss
    def test_training_failure_keeps_pending(self, tmp_path):
        backend = InvertedFileBackend(4, tmp_path, index_type="IVF64,Flat")
        backend.create_index()
        backend.add(np.eye(4, dtype=np.float32), ["a", "b", "c", "d"])
        with pytest.raises(IndexBackendError, match="training failed"):
            backend.update_index()
        assert backend.pending == 4
        assert not (tmp_path / FAISS_INDEX_FILENAME).exists()

    @pytest.mark.faiss
    def test_invalid_index_type(self, tmp_path):
        backend = InvertedFileBackend(4, tmp_path, index_type="NotAnIndex")
        with pytest.raises(IndexBackendError, match="Invalid FAISS index type"):
            backend.create_index()

    @pytest.mark.faiss
    def test_dimension_mismatch_on_reload(self, tmp_path):
        backend = InvertedFileBackend(4, tmp_path)
        backend.create_index()
        backend.add(np.eye(4, dtype=np.float32), ["a", "b", "c", "d"])
        backend.update_index()

        with pytest.raises(IndexBackendError, match="has dimension 4"):
            InvertedFileBackend(8, tmp_path).create_index()

    @pytest.mark.faiss
    def test_gpu_request_falls_back_to_cpu(self, tmp_path, monkeypatch):
        import faiss

        monkeypatch.setattr(faiss, "get_num_gpus", lambda: 0, raising=False)
        backend = InvertedFileBackend(4, tmp_path, index_gpu=True)
        backend.create_index()
        assert backend.is_gpu is False
        backend.add(np.eye(4, dtype=np.float32), ["a", "b", "c", "d"])
        backend.update_index()
        assert backend.search(np.eye(4, dtype=np.float32)[0], k=1)[0].id == "a"

    @pytest.mark.faiss
    def test_remove_index(self, tmp_path):
        backend = InvertedFileBackend(4, tmp_path)
        backend.create_index()
        backend.add(np.eye(4, dtype=np.float32), ["a", "b", "c", "d"])
        backend.update_index()
        backend.remove_index()
        assert not (tmp_path / FAISS_INDEX_FILENAME).exists()
        assert not (tmp_path / INDEX_META_FILENAME).exists()
        assert backend.size == 0
        assert backend.search(np.zeros(4, dtype=np.float32)) == []

    @pytest.mark.faiss
    def test_facade_over_factory(self, tmp_path):
        sim = SimilarityIndex(create_backend(4, tmp_path, backend="faiss"))
        sim.create_index()
        sim.index(np.eye(4, dtype=np.float32), ["a", "b", "c", "d"])
        sim.build_index()
        assert sim.search(np.eye(4, dtype=np.float32)[1], k=1)[0].id == "b"
        sim.remove_index()
        assert not (tmp_path / FAISS_INDEX_FILENAME).exists()


# =============================================================================
# Annoy Backend
# =============================================================================


class TestApproximateTreeBackend:
    """Tests for the Annoy backend."""

    @pytest.mark.annoy
    def test_add_build_search(self, tmp_path, clustered_vectors):
        backend = ApproximateTreeBackend(8, tmp_path, metric="euclidean", n_trees=10)
        backend.create_index()
        ids = [f"v{i}" for i in range(len(clustered_vectors))]
        backend.add(clustered_vectors, ids)
        backend.update_index()

        assert backend.size == len(ids)
        results = backend.search(clustered_vectors[200], k=3)
        assert results[0].id == "v200"
        assert [r.rank for r in results] == [0, 1, 2]

    @pytest.mark.annoy
    def test_rebuild_keeps_existing_items(self, tmp_path):
        vectors = np.eye(4, dtype=np.float32)
        first = ApproximateTreeBackend(4, tmp_path, metric="euclidean", n_trees=5)
        first.create_index()
        first.add(vectors[:2], ["a", "b"])
        first.update_index()
        first.close()

        second = ApproximateTreeBackend(4, tmp_path, metric="euclidean", n_trees=5)
        second.create_index()
        assert second.size == 2
        second.add(vectors[2:], ["c", "d"])
        second.update_index()
        assert second.size == 4
        assert second.search(vectors[3], k=1)[0].id == "d"
        assert second.search(vectors[0], k=1)[0].id == "a"

    @pytest.mark.annoy
    def test_remove_index(self, tmp_path):
        backend = ApproximateTreeBackend(4, tmp_path, n_trees=2)
        backend.create_index()
        backend.add(np.eye(4, dtype=np.float32), ["a", "b", "c", "d"])
        backend.update_index()
        backend.remove_index()
        assert not (tmp_path / "index.ann").exists()
        assert backend.search(np.ones(4, dtype=np.float32)) == []
