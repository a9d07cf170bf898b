# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for blockwatch.config: defaults, validation and loaders."""

from __future__ import annotations

import pytest

from blockwatch.config import (
    DEFAULT_CHALLENGE_SELECTORS,
    EngineConfig,
    load_config,
)
from blockwatch.errors import BlockWatchError, ConfigError

# ── Defaults and validation ─────────────────────────────────────


class TestEngineConfig:
    def test_defaults(self):
        cfg = EngineConfig()
        assert cfg.enabled is True
        assert cfg.challenge_selectors == DEFAULT_CHALLENGE_SELECTORS
        assert len(cfg.challenge_selectors) == 8
        assert cfg.extra_keywords == ()
        assert cfg.extra_status_codes == ()
        assert cfg.network_idle_timeout_ms == 3000
        assert cfg.auto_reload is False
        assert cfg.auto_reload_on_suspected is False

    def test_builtin_status_codes(self):
        assert EngineConfig().blocking_status_codes == frozenset({403, 429})

    def test_extra_status_codes_append(self):
        cfg = EngineConfig(extra_status_codes=[451])
        assert cfg.blocking_status_codes == frozenset({403, 429, 451})

    def test_lists_stored_as_tuples(self):
        cfg = EngineConfig(challenge_selectors=["#a"], extra_keywords=["k"])
        assert cfg.challenge_selectors == ("#a",)
        assert cfg.extra_keywords == ("k",)
        hash(cfg)

    def test_selectors_replace_wholesale(self):
        cfg = EngineConfig(challenge_selectors=("#only",))
        assert cfg.challenge_selectors == ("#only",)

    def test_timeout_seconds(self):
        assert EngineConfig(network_idle_timeout_ms=1500).network_idle_timeout_s == 1.5

    def test_negative_timeout(self):
        with pytest.raises(ValueError, match="network_idle_timeout_ms"):
            EngineConfig(network_idle_timeout_ms=-1)

    def test_invalid_status_code(self):
        with pytest.raises(ValueError, match="extra_status_codes"):
            EngineConfig(extra_status_codes=(99,))

    def test_string_instead_of_list(self):
        with pytest.raises(ValueError, match="extra_keywords"):
            EngineConfig(extra_keywords="captcha")

    def test_blank_keyword(self):
        with pytest.raises(ValueError, match="extra_keywords"):
            EngineConfig(extra_keywords=("  ",))

    def test_non_bool_flag(self):
        with pytest.raises(ValueError, match="enabled"):
            EngineConfig(enabled="yes")

    def test_frozen(self):
        cfg = EngineConfig()
        with pytest.raises(AttributeError):
            cfg.enabled = False


# ── from_mapping ────────────────────────────────────────────────


class TestFromMapping:
    def test_empty_gives_defaults(self):
        assert EngineConfig.from_mapping({}) == EngineConfig()
        assert EngineConfig.from_mapping(None) == EngineConfig()

    def test_camel_case_keys(self):
        cfg = EngineConfig.from_mapping(
            {
                "enabled": False,
                "challengeSelectors": ["#cf"],
                "extraKeywords": ["pardon our interruption"],
                "extraStatusCodes": [451],
                "networkIdleTimeoutMs": 1000,
                "autoReload": True,
                "autoReloadOnSuspected": True,
            }
        )
        assert cfg.enabled is False
        assert cfg.challenge_selectors == ("#cf",)
        assert cfg.extra_keywords == ("pardon our interruption",)
        assert cfg.extra_status_codes == (451,)
        assert cfg.network_idle_timeout_ms == 1000
        assert cfg.auto_reload is True
        assert cfg.auto_reload_on_suspected is True

    def test_snake_case_keys(self):
        cfg = EngineConfig.from_mapping({"network_idle_timeout_ms": 250})
        assert cfg.network_idle_timeout_ms == 250

    def test_unknown_keys_ignored(self):
        cfg = EngineConfig.from_mapping({"onDetection": "ignored", "verbose": True, "enabled": True})
        assert cfg == EngineConfig()

    def test_none_values_fall_back_to_defaults(self):
        assert EngineConfig.from_mapping({"challengeSelectors": None}).challenge_selectors == DEFAULT_CHALLENGE_SELECTORS

    def test_invalid_value_raises_config_error(self):
        with pytest.raises(ConfigError, match="network_idle_timeout_ms") as exc_info:
            EngineConfig.from_mapping({"networkIdleTimeoutMs": -5})
        assert exc_info.value.option == "network_idle_timeout_ms"
        assert isinstance(exc_info.value, BlockWatchError)

    @pytest.mark.parametrize(
        "options, option",
        [
            ({"extraStatusCodes": ["451"]}, "extra_status_codes"),
            ({"autoReload": "yes"}, "auto_reload"),
            ({"challenge_selectors": "#one"}, "challenge_selectors"),
            ({"extraKeywords": ["  "]}, "extra_keywords"),
        ],
    )
    def test_error_names_the_field(self, options, option):
        with pytest.raises(ConfigError) as exc_info:
            EngineConfig.from_mapping(options)
        assert exc_info.value.option == option

    def test_direct_construction_names_the_field(self):
        with pytest.raises(ConfigError) as exc_info:
            EngineConfig(enabled="yes")
        assert exc_info.value.option == "enabled"
        assert isinstance(exc_info.value, ValueError)

    def test_non_mapping(self):
        with pytest.raises(ConfigError):
            EngineConfig.from_mapping(["enabled"])


# ── from_env ────────────────────────────────────────────────────


class TestFromEnv:
    def test_no_vars(self):
        assert EngineConfig.from_env({}) == EngineConfig()

    def test_all_vars(self):
        cfg = EngineConfig.from_env(
            {
                "BLOCKWATCH_ENABLED": "false",
                "BLOCKWATCH_CHALLENGE_SELECTORS": "#a, #b; .c",
                "BLOCKWATCH_EXTRA_KEYWORDS": "pardon our interruption, checking your browser",
                "BLOCKWATCH_EXTRA_STATUS_CODES": "451, 999x, 418",
                "BLOCKWATCH_NETWORK_IDLE_TIMEOUT_MS": "1200",
                "BLOCKWATCH_AUTO_RELOAD": "yes",
                "BLOCKWATCH_AUTO_RELOAD_ON_SUSPECTED": "1",
            }
        )
        assert cfg.enabled is False
        assert cfg.challenge_selectors == ("#a, #b", ".c")
        assert cfg.extra_keywords == ("pardon our interruption", "checking your browser")
        assert cfg.extra_status_codes == (451, 418)
        assert cfg.network_idle_timeout_ms == 1200
        assert cfg.auto_reload is True
        assert cfg.auto_reload_on_suspected is True

    def test_malformed_timeout_ignored(self):
        assert EngineConfig.from_env({"BLOCKWATCH_NETWORK_IDLE_TIMEOUT_MS": "soon"}).network_idle_timeout_ms == 3000

    def test_unrecognized_bool_ignored(self):
        assert EngineConfig.from_env({"BLOCKWATCH_ENABLED": "maybe"}).enabled is True

    def test_reads_process_environment(self, monkeypatch):
        monkeypatch.setenv("BLOCKWATCH_AUTO_RELOAD", "true")
        assert EngineConfig.from_env().auto_reload is True


# ── load_config (YAML) ──────────────────────────────────────────


class TestLoadConfig:
    def test_section(self, tmp_path):
        path = tmp_path / "blockwatch.yaml"
        path.write_text(
            "block_detection:\n"
            "  extraKeywords: [checking your browser]\n"
            "  network_idle_timeout_ms: 500\n"
            "proxy:\n"
            "  port: 8080\n",
            encoding="utf-8",
        )
        cfg = load_config(path)
        assert cfg.extra_keywords == ("checking your browser",)
        assert cfg.network_idle_timeout_ms == 500

    def test_top_level_document(self, tmp_path):
        path = tmp_path / "cfg.yaml"
        path.write_text("enabled: false\n", encoding="utf-8")
        assert load_config(path).enabled is False

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("", encoding="utf-8")
        assert load_config(path) == EngineConfig()

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="Cannot read"):
            load_config(tmp_path / "nope.yaml")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("enabled: [unclosed\n", encoding="utf-8")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_config(path)

    def test_non_mapping_document(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(ConfigError, match="mapping"):
            load_config(path)
