import json

import pytest

from reportdraft.config import AppConfig, atomic_save_json, normalize_key, save_settings, validate_config
from reportdraft.errors import ConfigError


def test_defaults_are_flagged_as_missing():
    errors = validate_config(AppConfig())
    assert "template_document_id is not set" in errors
    assert "directory_source_id is not set" in errors
    assert "link_repository_source_id is not set" in errors


def test_layering_settings_env_then_overrides(tmp_path):
    settings = tmp_path / "settings.json"
    settings.write_text(json.dumps({
        "templateDocumentId": "from-file",
        "thread_search_limit": 3,
        "recipients_tab_name": "FileTab",
    }), encoding="utf-8")
    environ = {
        "REPORTDRAFT_RECIPIENTS_TAB_NAME": "EnvTab",
        "REPORTDRAFT_DRY_RUN": "yes",
        "REPORTDRAFT_RECIPIENT_TAG_COLUMNS": "role_a, role_b",
    }

    config = AppConfig.load({"thread_search_limit": "7"}, settings_path=str(settings), environ=environ)

    assert config.template_document_id == "from-file"
    assert config.recipients_tab_name == "EnvTab"
    assert config.dry_run is True
    assert config.recipient_tag_columns == ["role_a", "role_b"]
    assert config.thread_search_limit == 7


def test_unknown_override_is_ignored():
    config = AppConfig().with_overrides({"not_a_setting": 1, "emailAction": "send"})
    assert config.email_action == "send"


def test_with_overrides_returns_a_copy():
    base = AppConfig()
    changed = base.with_overrides({"dry_run": True})
    assert changed.dry_run and not base.dry_run


def test_broken_settings_file_is_ignored(tmp_path):
    settings = tmp_path / "settings.json"
    settings.write_text("{not json", encoding="utf-8")
    config = AppConfig.load(settings_path=str(settings), environ={})
    assert config.recipients_tab_name == "Combined_Long"


def test_require_valid_collects_all_errors():
    config = AppConfig().with_overrides({
        "template_document_id": "doc",
        "directory_source_id": "dir",
        "link_repository_source_id": "links",
        "email_action": "print",
        "batch_pacing_seconds": -1,
        "recipient_tag_columns": [],
    })
    with pytest.raises(ConfigError) as info:
        config.require_valid()
    assert len(info.value.errors) == 3


def test_time_zone_table_upper_cases_aliases():
    config = AppConfig().with_overrides({"time_zones": '{"sgt": ["Asia/Singapore", "SGT"]}'})
    assert config.time_zone_table() == {"SGT": ("Asia/Singapore", "SGT")}


def test_normalize_key():
    assert normalize_key("templateDocumentId") == "template_document_id"
    assert normalize_key("DRY_RUN") == "dry_run"


def test_save_settings_merges_and_rejects_unknown(tmp_path):
    path = str(tmp_path / "nested" / "settings.json")
    save_settings({"dryRun": "true"}, path)
    save_settings({"operator_email": "me@example.com"}, path)

    with open(path, encoding="utf-8") as f:
        assert json.load(f) == {"dry_run": True, "operator_email": "me@example.com"}

    with pytest.raises(ConfigError):
        save_settings({"bogus": 1}, path)


def test_atomic_save_leaves_no_temp_files(tmp_path):
    target = tmp_path / "data.json"
    atomic_save_json(str(target), {"a": 1})
    atomic_save_json(str(target), {"a": 2})
    assert json.loads(target.read_text(encoding="utf-8")) == {"a": 2}
    assert [p.name for p in tmp_path.iterdir()] == ["data.json"]
