"""
Tests for config.manager.ConfigManager.
"""

import json

from config.manager import ConfigManager, DEFAULT_VALIDATOR_CONFIG


def test_missing_file_uses_defaults(tmp_path):
    manager = ConfigManager(tmp_path)
    assert manager.get_validator_config() == DEFAULT_VALIDATOR_CONFIG


def test_invalid_json_uses_defaults(tmp_path):
    (tmp_path / "validator_config.json").write_text("{not json", encoding="utf-8")
    manager = ConfigManager(tmp_path)
    assert manager.get_default_limits()["max_forms"] == 1


def test_partial_sections_are_merged_and_clamped(tmp_path):
    (tmp_path / "validator_config.json").write_text(json.dumps({
        "resolver": {"max_depth": 100000, "max_concurrency": "x"},
        "rules": {"auto_error_messaging": False},
        "limits_cache_ttl_sec": -5,
    }), encoding="utf-8")
    manager = ConfigManager(tmp_path)

    resolver = manager.get_resolver_settings()
    assert resolver["max_depth"] == 1024
    assert resolver["max_concurrency"] == 8
    assert resolver["field_types"] == ["TextInput", "TextArea", "CustomWidget"]
    assert manager.get_rule_defaults()["auto_error_messaging"] is False
    assert manager.get_rule_defaults()["custom_widget_id_marker"] == "custom-widget"
    assert manager.get_limits_cache_ttl() == 0


def test_environment_override(tmp_path, monkeypatch):
    (tmp_path / "validator_config.json").write_text(json.dumps({
        "plan_limits": {"team": {"max_forms": 7}},
    }), encoding="utf-8")
    monkeypatch.setenv("FORM_VALIDATOR_CONFIG_DIR", str(tmp_path))
    assert ConfigManager().get_plan_limits() == {"team": {"max_forms": 7}}


def test_repository_config_loads():
    manager = ConfigManager()
    assert manager.get_supabase_tables()["validation_states_table"] == "validation_states"
    assert "free" in manager.get_plan_limits()
