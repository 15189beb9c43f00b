# =============================================================================
# test_config.py - Compiler Configuration Tests
# =============================================================================
# Tests for feature toggles, environment flags and compiler options.
# =============================================================================

import dataclasses
import logging

import pytest

from boulder.rockc.config import CompilerOptions, FeatureToggles, parse_flag


ENV_VARS = ("BOULDER_LOGGING", "BOULDER_PRINTING", "BOULDER_HEAP")


@pytest.fixture
def clean_env(monkeypatch):
    """Remove every BOULDER_* feature variable for the test."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


# =============================================================================
# Flag Parsing
# =============================================================================

class TestParseFlag:
    """Environment flag values."""

    @pytest.mark.parametrize("text", ["1", "true", "YES", "On", " on "])
    def test_true_values(self, text):
        assert parse_flag(text) is True

    @pytest.mark.parametrize("text", ["0", "false", "No", "OFF"])
    def test_false_values(self, text):
        assert parse_flag(text) is False

    @pytest.mark.parametrize("text", ["", "maybe", "2", "enabled"])
    def test_unrecognized(self, text):
        assert parse_flag(text) is None


# =============================================================================
# Feature Toggles
# =============================================================================

class TestFeatureToggles:
    """Runtime facility switches."""

    def test_defaults(self):
        features = FeatureToggles()
        assert features.logging and features.printing and features.heap_allocator
        assert features.uses_stdio

    def test_uses_stdio(self):
        assert FeatureToggles(logging=False).uses_stdio
        assert FeatureToggles(printing=False).uses_stdio
        assert not FeatureToggles(logging=False, printing=False).uses_stdio

    def test_frozen(self):
        with pytest.raises(dataclasses.FrozenInstanceError):
            FeatureToggles().printing = False

    def test_from_env_defaults(self, clean_env):
        assert FeatureToggles.from_env() == FeatureToggles()

    def test_from_env(self, clean_env):
        clean_env.setenv("BOULDER_PRINTING", "off")
        clean_env.setenv("BOULDER_HEAP", "No")
        features = FeatureToggles.from_env()
        assert features == FeatureToggles(logging=True, printing=False, heap_allocator=False)

    def test_from_env_invalid_value_ignored(self, clean_env, caplog):
        """A value that is not a flag keeps the default and logs a warning."""
        clean_env.setenv("BOULDER_LOGGING", "maybe")
        with caplog.at_level(logging.WARNING, logger="boulder.rockc.config"):
            features = FeatureToggles.from_env()
        assert features.logging
        assert "BOULDER_LOGGING='maybe'" in caplog.text

    def test_from_env_empty_value_ignored(self, clean_env):
        clean_env.setenv("BOULDER_HEAP", "")
        assert FeatureToggles.from_env().heap_allocator


# =============================================================================
# Compiler Options
# =============================================================================

class TestCompilerOptions:
    """Per-compilation options."""

    def test_defaults(self):
        options = CompilerOptions()
        assert options.features == FeatureToggles()
        assert options.search_paths == []
        assert options.max_errors == 50
        assert options.emit_main
        assert not options.verbose

    def test_search_paths_not_shared(self):
        first = CompilerOptions()
        first.search_paths.append("lib")
        assert CompilerOptions().search_paths == []

    def test_from_env(self, clean_env):
        clean_env.setenv("BOULDER_LOGGING", "0")
        options = CompilerOptions.from_env()
        assert not options.features.logging
        assert options.features.printing
