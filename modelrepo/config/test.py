"""Tests for configuration management."""

import pytest

from .lib import (
    EnvConfig,
    EnvVar,
    get_environment,
    get_environment_info,
    get_fetch_timeout,
    get_simsearch_backend,
    list_environment_variables,
)

# =============================================================================
# Tests for get_environment (main interface)
# =============================================================================


class TestGetEnvironment:
    """Tests for the unified get_environment interface."""

    @pytest.mark.unit
    def test_returns_default_when_not_set(self, monkeypatch):
        """Returns default value when env var is not set."""
        monkeypatch.delenv("MODELREPO_SIMSEARCH_BACKEND", raising=False)
        assert get_environment(EnvVar.SIMSEARCH_BACKEND) == "faiss"

    @pytest.mark.unit
    def test_override_takes_priority(self, monkeypatch):
        """Override parameter takes highest priority."""
        monkeypatch.setenv("MODELREPO_FETCH_TIMEOUT", "99")
        assert get_environment(EnvVar.FETCH_TIMEOUT, override=5) == 5

    @pytest.mark.unit
    def test_float_type_conversion(self, monkeypatch):
        """Numeric settings are parsed from strings."""
        monkeypatch.setenv("MODELREPO_FETCH_TIMEOUT", "2.5")
        result = get_environment(EnvVar.FETCH_TIMEOUT)
        assert result == 2.5
        assert isinstance(result, float)

    @pytest.mark.unit
    def test_bool_type_conversion_true(self, monkeypatch):
        """Boolean type conversion for true values."""
        for value in ("true", "1", "yes", "TRUE", "Yes"):
            monkeypatch.setenv("MODELREPO_USE_GPU", value)
            assert get_environment(EnvVar.USE_GPU) is True

    @pytest.mark.unit
    def test_bool_type_conversion_false(self, monkeypatch):
        """Boolean type conversion for false values."""
        for value in ("false", "0", "no", "FALSE", "No"):
            monkeypatch.setenv("MODELREPO_USE_GPU", value)
            assert get_environment(EnvVar.USE_GPU) is False

    @pytest.mark.unit
    def test_unrecognized_bool_returns_default(self, monkeypatch):
        """Unrecognized boolean strings fall back to the default."""
        monkeypatch.setenv("MODELREPO_SHOW_PROGRESS", "maybe")
        assert get_environment(EnvVar.SHOW_PROGRESS) is True

    @pytest.mark.unit
    def test_invalid_number_returns_default(self, monkeypatch):
        """Unparsable numbers fall back to the default."""
        monkeypatch.setenv("MODELREPO_FETCH_TIMEOUT", "soon")
        assert get_environment(EnvVar.FETCH_TIMEOUT) is None


class TestGetEnvironmentInfo:
    """Tests for environment variable metadata."""

    @pytest.mark.unit
    def test_returns_env_config(self):
        """Returns EnvConfig dataclass."""
        info = get_environment_info(EnvVar.FETCH_TIMEOUT)
        assert isinstance(info, EnvConfig)
        assert info.name == "MODELREPO_FETCH_TIMEOUT"
        assert info.default is None
        assert info.var_type is float
        assert info.category == "bootstrap"

    @pytest.mark.unit
    def test_description_present(self):
        """Description field is populated."""
        info = get_environment_info(EnvVar.SIMSEARCH_BACKEND)
        assert "annoy" in info.description


class TestListEnvironmentVariables:
    """Tests for listing environment variables."""

    @pytest.mark.unit
    def test_returns_all_variables(self):
        """Returns all EnvVar members when no category."""
        result = list_environment_variables()
        assert len(result) == len(EnvVar)

    @pytest.mark.unit
    def test_filter_by_category(self):
        """Filters by category correctly."""
        simsearch_vars = list_environment_variables("simsearch")
        assert EnvVar.SIMSEARCH_BACKEND in simsearch_vars
        assert EnvVar.USE_GPU in simsearch_vars
        assert EnvVar.FETCH_TIMEOUT not in simsearch_vars


# =============================================================================
# Tests for convenience functions
# =============================================================================


class TestConvenience:
    """Tests for the typed convenience accessors."""

    @pytest.mark.unit
    def test_backend_name_is_normalized(self, monkeypatch):
        """Backend names are stripped and lower-cased."""
        monkeypatch.setenv("MODELREPO_SIMSEARCH_BACKEND", "  Annoy ")
        assert get_simsearch_backend() == "annoy"

    @pytest.mark.unit
    def test_backend_override(self, monkeypatch):
        """Explicit backend overrides the environment."""
        monkeypatch.setenv("MODELREPO_SIMSEARCH_BACKEND", "annoy")
        assert get_simsearch_backend("NONE") == "none"

    @pytest.mark.unit
    def test_fetch_timeout_default_is_unbounded(self, monkeypatch):
        """No deadline unless one is configured."""
        monkeypatch.delenv("MODELREPO_FETCH_TIMEOUT", raising=False)
        assert get_fetch_timeout() is None

    @pytest.mark.unit
    def test_non_positive_timeout_disables_deadline(self, monkeypatch):
        """Zero or negative timeouts mean no deadline."""
        monkeypatch.setenv("MODELREPO_FETCH_TIMEOUT", "0")
        assert get_fetch_timeout() is None
        assert get_fetch_timeout(override=-3) is None

    @pytest.mark.unit
    def test_fetch_timeout_from_env(self, monkeypatch):
        """Configured deadline is returned in seconds."""
        monkeypatch.setenv("MODELREPO_FETCH_TIMEOUT", "12")
        assert get_fetch_timeout() == 12


class TestEnvConfigParse:
    """Tests for EnvConfig.parse."""

    @pytest.mark.unit
    def test_bool_words(self):
        config = EnvConfig(name="X", default=None, var_type=bool)
        assert config.parse(" On ") is True
        assert config.parse("off") is False
        assert config.parse("perhaps") is None
        assert config.parse(None) is None

    @pytest.mark.unit
    def test_int(self):
        config = EnvConfig(name="X", default=7, var_type=int)
        assert config.parse("42") == 42
        assert config.parse("4.2") == 7

    @pytest.mark.unit
    def test_str_is_verbatim(self):
        config = EnvConfig(name="X", default="d", var_type=str)
        assert config.parse(" raw ") == " raw "
