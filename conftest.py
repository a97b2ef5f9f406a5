"""Root pytest configuration and fixtures.

This module provides:
- Optional-dependency markers (faiss, annoy) that skip when the library
  is missing
- Isolation of tests from MODELREPO_* variables set in the shell or .env
"""

from __future__ import annotations

import importlib.util
import os

import pytest

# =============================================================================
# Optional Backends
# =============================================================================

HAS_FAISS = importlib.util.find_spec("faiss") is not None
HAS_ANNOY = importlib.util.find_spec("annoy") is not None


def pytest_collection_modifyitems(config, items):
    """Skip backend tests whose library is not installed."""
    skip_faiss = pytest.mark.skip(reason="FAISS not installed")
    skip_annoy = pytest.mark.skip(reason="Annoy not installed")

    for item in items:
        if "faiss" in item.keywords and not HAS_FAISS:
            item.add_marker(skip_faiss)
        if "annoy" in item.keywords and not HAS_ANNOY:
            item.add_marker(skip_annoy)


# =============================================================================
# Environment Isolation
# =============================================================================


@pytest.fixture(autouse=True)
def clean_modelrepo_env(monkeypatch):
    """Remove MODELREPO_* variables so every test starts from defaults."""
    for name in list(os.environ):
        if name.startswith("MODELREPO_"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("MODELREPO_SHOW_PROGRESS", "false")
