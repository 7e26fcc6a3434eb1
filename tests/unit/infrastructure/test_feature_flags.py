"""Tests for FeatureFlags: ENV > JSON > default precedence and rollout buckets."""

import json

import pytest

from cafe_navigator.infrastructure.feature_flags import FeatureFlags, hash_string, is_in_percentage


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "feature_flags.json"
    path.write_text(
        json.dumps(
            {
                "rag": {
                    "use_parallel_rag": False,
                    "use_new_embeddings": True,
                    "new_embeddings_percentage": 30,
                    "enable_gradual_migration": False,
                },
                "cache": {"use_sqlite_embedding_cache": True},
            }
        ),
        encoding="utf-8",
    )
    return path


class TestHashing:
    def test_hash_string(self):
        assert hash_string("") == 0
        assert hash_string("a") == 97
        assert hash_string("ab") == 3105

    def test_hash_wraps_to_signed_32bit(self):
        value = hash_string("user-" * 20)
        assert -(2**31) <= value < 2**31

    def test_percentage_bounds(self):
        assert is_in_percentage("anyone", 100) is True
        assert is_in_percentage("anyone", 0) is False

    def test_percentage_is_deterministic(self):
        assert is_in_percentage("user-42", 50) == is_in_percentage("user-42", 50)

    def test_bucket(self):
        # "a" -> 97 % 100 + 1 = 98
        assert is_in_percentage("a", 98) is True
        assert is_in_percentage("a", 97) is False


class TestPrecedence:
    def test_json_values(self, config_file):
        flags = FeatureFlags(config_file)
        assert flags.use_new_embeddings() is True
        assert flags.new_embeddings_percentage() == 30
        assert flags.use_sqlite_embedding_cache() is True

    def test_missing_file_uses_defaults(self, tmp_path):
        flags = FeatureFlags(tmp_path / "missing.json")
        assert flags.get_all_flags() == {
            "use_parallel_rag": False,
            "use_new_embeddings": False,
            "new_embeddings_percentage": 0,
            "enable_gradual_migration": False,
            "use_sqlite_embedding_cache": False,
        }

    def test_malformed_file_uses_defaults(self, tmp_path):
        path = tmp_path / "feature_flags.json"
        path.write_text("{not json", encoding="utf-8")
        assert FeatureFlags(path).use_new_embeddings() is False

    def test_sectioned_env_overrides_json(self, config_file, monkeypatch):
        monkeypatch.setenv("FF_RAG_USE_NEW_EMBEDDINGS", "false")
        assert FeatureFlags(config_file).use_new_embeddings() is False

    def test_unsectioned_env(self, config_file, monkeypatch):
        monkeypatch.setenv("FF_USE_PARALLEL_RAG", "yes")
        assert FeatureFlags(config_file).use_parallel_rag() is True

    def test_sectioned_env_wins_over_unsectioned(self, config_file, monkeypatch):
        monkeypatch.setenv("FF_USE_PARALLEL_RAG", "true")
        monkeypatch.setenv("FF_RAG_USE_PARALLEL_RAG", "off")
        assert FeatureFlags(config_file).use_parallel_rag() is False

    def test_percentage_clamped(self, config_file, monkeypatch):
        monkeypatch.setenv("FF_RAG_NEW_EMBEDDINGS_PERCENTAGE", "250")
        assert FeatureFlags(config_file).new_embeddings_percentage() == 100

    def test_invalid_int_falls_back(self, config_file, monkeypatch):
        monkeypatch.setenv("FF_RAG_NEW_EMBEDDINGS_PERCENTAGE", "lots")
        assert FeatureFlags(config_file).get_int("rag", "new_embeddings_percentage", 7) == 7

    def test_reload(self, config_file):
        flags = FeatureFlags(config_file)
        config_file.write_text(json.dumps({"rag": {"use_new_embeddings": False}}), encoding="utf-8")
        flags.reload()
        assert flags.use_new_embeddings() is False


class TestSelection:
    def test_user_override_wins(self, config_file):
        flags = FeatureFlags(config_file)
        flags.set_user_override("u1", use_new_embeddings=False, use_parallel_rag=True)

        assert flags.should_use_new_embeddings("u1") is False
        assert flags.should_use_new_embeddings("u2") is True
        assert flags.use_parallel_rag("u1") is True
        assert flags.use_parallel_rag("u2") is False

        flags.clear_user_override("u1")
        assert flags.should_use_new_embeddings("u1") is True

    def test_gradual_migration_uses_bucket(self, tmp_path, monkeypatch):
        monkeypatch.setenv("FF_RAG_ENABLE_GRADUAL_MIGRATION", "true")
        monkeypatch.setenv("FF_RAG_NEW_EMBEDDINGS_PERCENTAGE", "98")
        flags = FeatureFlags(tmp_path / "missing.json")

        assert flags.should_use_new_embeddings("a") is True

        monkeypatch.setenv("FF_RAG_NEW_EMBEDDINGS_PERCENTAGE", "97")
        assert flags.should_use_new_embeddings("a") is False

    def test_gradual_migration_without_key_uses_global(self, tmp_path, monkeypatch):
        monkeypatch.setenv("FF_RAG_ENABLE_GRADUAL_MIGRATION", "true")
        monkeypatch.setenv("FF_RAG_NEW_EMBEDDINGS_PERCENTAGE", "100")
        assert FeatureFlags(tmp_path / "missing.json").should_use_new_embeddings(None) is False


class TestSingleton:
    def test_get_instance(self, config_file):
        first = FeatureFlags.get_instance(config_file)
        assert FeatureFlags.get_instance() is first

        FeatureFlags.reset_instance()
        assert FeatureFlags.get_instance(config_file) is not first
