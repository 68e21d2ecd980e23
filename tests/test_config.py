"""Tests for configuration models and YAML loading."""

import textwrap

import pytest
from pydantic import ValidationError

from study_orchestrator.config import (
    AppConfig,
    OrchestratorConfig,
    ProviderConfig,
    StorageConfig,
)
from study_orchestrator.config_loader import (
    load_config,
    load_text_file_with_guess_encoding,
    read_yaml,
)


def write_yaml(tmp_path, text, name="conf.yaml"):
    path = tmp_path / name
    path.write_text(textwrap.dedent(text), encoding="utf-8")
    return str(path)


class TestDefaults:
    def test_app_defaults(self):
        config = AppConfig()
        assert config.orchestrator.request_deadline_seconds == 60.0
        assert config.orchestrator.failure_threshold == 3
        assert config.orchestrator.circuit_breaker_threshold == 5
        assert config.memory.default_limit == 5
        assert config.memory.default_min_similarity == 0.7
        assert config.embedding_cache.ttl_seconds == 3600
        assert config.content_cache.ttl_seconds == 1800
        assert config.content_source.enabled is False

    def test_provider_is_immutable(self):
        provider = ProviderConfig(name="groq")
        with pytest.raises(ValidationError):
            provider.tier = 2


class TestValidation:
    def test_duplicate_provider_names(self):
        with pytest.raises(ValidationError, match="duplicate provider names"):
            OrchestratorConfig(
                providers=[ProviderConfig(name="groq"), ProviderConfig(name="groq")]
            )

    def test_breaker_below_degraded_threshold(self):
        with pytest.raises(ValidationError):
            OrchestratorConfig(failure_threshold=5, circuit_breaker_threshold=3)

    def test_tier_must_be_positive(self):
        with pytest.raises(ValidationError):
            ProviderConfig(name="groq", tier=0)

    def test_context_level_pattern(self):
        with pytest.raises(ValidationError):
            AppConfig(memory={"default_context_level": "everything"})

    def test_db_path_traversal_rejected(self):
        with pytest.raises(ValidationError):
            StorageConfig(sqlite_db_path="../outside/memory.db")

    def test_in_memory_db_allowed(self):
        assert StorageConfig(sqlite_db_path=":memory:").sqlite_db_path == ":memory:"


class TestProviderKeys:
    def test_explicit_key_wins(self, monkeypatch):
        monkeypatch.setenv("GROQ_API_KEY", "from-env")
        assert ProviderConfig(name="groq", api_key="inline").resolved_api_key() == "inline"

    def test_conventional_env_name(self, monkeypatch):
        monkeypatch.setenv("GROQ_API_KEY", "from-env")
        assert ProviderConfig(name="groq").resolved_api_key() == "from-env"

    def test_missing_key(self, monkeypatch):
        monkeypatch.delenv("MISTRAL_API_KEY", raising=False)
        assert ProviderConfig(name="mistral").resolved_api_key() is None


class TestLoading:
    def test_load_config_with_env_substitution(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TEST_GROQ_URL", "https://groq.example.com/v1")
        path = write_yaml(
            tmp_path,
            """
            orchestrator:
              request_deadline_seconds: 45
              providers:
                - name: groq
                  tier: 1
                  models: [llama-3.1-8b-instant]
                  base_url: ${TEST_GROQ_URL}
                  requests_per_minute: 30
                - name: offline
                  kind: static
                  tier: 7
            memory:
              default_context_level: light
            """,
        )

        config = load_config(path)

        providers = config.orchestrator.providers
        assert [p.name for p in providers] == ["groq", "offline"]
        assert providers[0].base_url == "https://groq.example.com/v1"
        assert providers[0].models == ("llama-3.1-8b-instant",)
        assert providers[1].kind.value == "static"
        assert config.orchestrator.request_deadline_seconds == 45
        assert config.memory.default_context_level == "light"

    def test_unknown_env_var_left_verbatim(self, tmp_path, monkeypatch):
        monkeypatch.delenv("NOT_SET_ANYWHERE", raising=False)
        path = write_yaml(tmp_path, "key: ${NOT_SET_ANYWHERE}\n")
        assert read_yaml(path) == {"key": "${NOT_SET_ANYWHERE}"}

    def test_empty_file_gives_defaults(self, tmp_path):
        path = write_yaml(tmp_path, "")
        config = load_config(path)
        assert config.orchestrator.providers == []

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            read_yaml(str(tmp_path / "missing.yaml"))

    def test_invalid_values_raise(self, tmp_path):
        path = write_yaml(
            tmp_path,
            """
            orchestrator:
              failure_threshold: not-a-number
            """,
        )
        with pytest.raises(ValidationError):
            load_config(path)

    def test_non_utf8_file_is_decoded(self, tmp_path):
        path = tmp_path / "latin.yaml"
        path.write_bytes("name: café résumé naïve\n".encode("latin-1") * 20)
        content = load_text_file_with_guess_encoding(str(path))
        assert content is not None
        assert content.startswith("name: caf")
