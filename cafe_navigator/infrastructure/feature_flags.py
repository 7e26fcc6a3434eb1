"""Feature Flags infrastructure for gradual embedding migration and A/B routing.

Supports three levels of override (highest priority first):
1. Environment variable: FF_{SECTION}_{KEY} (e.g., FF_RAG_USE_PARALLEL_RAG=true)
   The unsectioned form FF_{KEY} (e.g., FF_USE_PARALLEL_RAG) is also honored.
2. JSON config file: config/feature_flags.json
3. Default value passed to get_flag()

Per-user overrides (set_user_override) take precedence over all three for
the user they are registered for.

Usage:
    from cafe_navigator.infrastructure.feature_flags import FeatureFlags

    flags = FeatureFlags()
    if flags.use_parallel_rag():
        # dual dispatch
    elif flags.should_use_new_embeddings(user_id):
        # v2
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

_TRUE_VALUES = ("true", "1", "yes", "on")


def hash_string(value: str) -> int:
    """31-multiplier string hash wrapped to a signed 32-bit integer."""
    h = 0
    for char in value:
        h = ((h << 5) - h + ord(char)) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return h


def is_in_percentage(key: str, percentage: int) -> bool:
    """Deterministic bucket membership for percentage rollouts."""
    if percentage >= 100:
        return True
    if percentage <= 0:
        return False
    bucket = abs(hash_string(key)) % 100 + 1
    return bucket <= percentage


class FeatureFlags:
    """Feature flag reader with ENV > JSON > default precedence."""

    _instance: FeatureFlags | None = None

    def __init__(self, config_path: str | Path | None = None) -> None:
        self._config: dict[str, dict[str, Any]] = {}
        self._user_overrides: dict[str, dict[str, Any]] = {}
        self._config_path = Path(config_path) if config_path is not None else self._find_config_path()
        self._load_config()

    @staticmethod
    def _find_config_path() -> Path:
        """Find feature_flags.json by walking up from this file's location."""
        current = Path(__file__).resolve().parent
        for _ in range(5):  # max 5 levels up
            candidate = current / "config" / "feature_flags.json"
            if candidate.exists():
                return candidate
            current = current.parent
        # Fallback: relative to CWD
        return Path("config/feature_flags.json")

    def _load_config(self) -> None:
        """Load JSON config file. Uses empty config if file missing or unreadable."""
        if self._config_path and self._config_path.exists():
            try:
                with open(self._config_path, encoding="utf-8") as f:
                    self._config = json.load(f)
            except (json.JSONDecodeError, OSError) as e:
                logger.warning(f"Failed to load feature flags from {self._config_path}: {e}")
                self._config = {}
        else:
            self._config = {}

    def reload(self) -> None:
        """Reload config from disk."""
        self._load_config()

    def _lookup(self, section: str, key: str) -> tuple[bool, Any]:
        """Returns (found, raw_value) from ENV then JSON."""
        for env_key in (f"FF_{section.upper()}_{key.upper()}", f"FF_{key.upper()}"):
            env_val = os.environ.get(env_key)
            if env_val is not None:
                return True, env_val

        section_config = self._config.get(section, {})
        if key in section_config:
            return True, section_config[key]
        return False, None

    def get_flag(self, section: str, key: str, default: bool = False) -> bool:
        """Get a boolean feature flag with ENV > JSON > default precedence.

        Args:
            section: Config section (e.g., "rag", "cache")
            key: Flag key (e.g., "use_parallel_rag")
            default: Default value if not found anywhere

        Returns:
            Boolean flag value
        """
        found, value = self._lookup(section, key)
        if not found:
            return default
        if isinstance(value, str):
            return value.lower() in _TRUE_VALUES
        return bool(value)

    def get_int(self, section: str, key: str, default: int = 0) -> int:
        """Get an integer flag (e.g., rollout percentage)."""
        found, value = self._lookup(section, key)
        if not found:
            return default
        try:
            return int(value)
        except (TypeError, ValueError):
            logger.warning(f"Invalid integer flag {section}.{key}={value!r}, using {default}")
            return default

    # ── Per-user overrides ───────────────────────────────────────────

    def set_user_override(self, user_id: str, **overrides: Any) -> None:
        """Register per-user flag values (e.g., use_new_embeddings=True)."""
        self._user_overrides.setdefault(user_id, {}).update(overrides)

    def clear_user_override(self, user_id: str) -> None:
        self._user_overrides.pop(user_id, None)

    def _user_override(self, user_id: str | None, key: str) -> tuple[bool, Any]:
        if user_id and key in self._user_overrides.get(user_id, {}):
            return True, self._user_overrides[user_id][key]
        return False, None

    # ── Convenience methods ──────────────────────────────────────────

    def use_parallel_rag(self, user_id: str | None = None) -> bool:
        """Whether to dispatch both retrieval implementations concurrently."""
        found, value = self._user_override(user_id, "use_parallel_rag")
        if found:
            return bool(value)
        return self.get_flag("rag", "use_parallel_rag", default=False)

    def use_new_embeddings(self) -> bool:
        """Global switch for the v2 (new embedding model) implementation."""
        return self.get_flag("rag", "use_new_embeddings", default=False)

    def new_embeddings_percentage(self) -> int:
        """Rollout percentage for v2 when gradual migration is enabled (0-100)."""
        return max(0, min(100, self.get_int("rag", "new_embeddings_percentage", default=0)))

    def enable_gradual_migration(self) -> bool:
        """Whether v2 selection is decided per user by percentage bucket."""
        return self.get_flag("rag", "enable_gradual_migration", default=False)

    def use_sqlite_embedding_cache(self) -> bool:
        """Whether to use SQLite-backed embedding cache (vs in-memory dict)."""
        return self.get_flag("cache", "use_sqlite_embedding_cache", default=False)

    def should_use_new_embeddings(self, user_id: str | None = None) -> bool:
        """Pick v2 for this user/session.

        Order: per-user override > percentage bucket (gradual migration) > global flag.
        """
        found, value = self._user_override(user_id, "use_new_embeddings")
        if found:
            return bool(value)
        if self.enable_gradual_migration() and user_id:
            return is_in_percentage(user_id, self.new_embeddings_percentage())
        return self.use_new_embeddings()

    def get_all_flags(self) -> dict[str, Any]:
        return {
            "use_parallel_rag": self.use_parallel_rag(),
            "use_new_embeddings": self.use_new_embeddings(),
            "new_embeddings_percentage": self.new_embeddings_percentage(),
            "enable_gradual_migration": self.enable_gradual_migration(),
            "use_sqlite_embedding_cache": self.use_sqlite_embedding_cache(),
        }

    # ── Singleton access ─────────────────────────────────────────────

    @classmethod
    def get_instance(cls, config_path: str | Path | None = None) -> FeatureFlags:
        """Get or create the shared instance."""
        if cls._instance is None:
            cls._instance = cls(config_path=config_path)
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Reset shared instance. Used in tests."""
        cls._instance = None
