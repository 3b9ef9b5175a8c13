import dataclasses

import pytest

from sync_config import SyncConfig, load_config, read_notion_token_from_keys_file


def test_defaults_match_column_map():
    cfg = SyncConfig()
    assert cfg.column_map["Title"] == "__TITLE__"
    assert cfg.image_property("Name") == "Thumbnail"
    assert cfg.percent_properties == ("STR", "APV")
    assert cfg.upload_poll_attempts == 6


def test_config_is_immutable():
    with pytest.raises(dataclasses.FrozenInstanceError):
        SyncConfig().rate_delay = 0


def test_load_yaml_and_env(tmp_path, monkeypatch):
    path = tmp_path / "sync.yaml"
    path.write_text(
        "notion:\n"
        "  database_id: db-123\n"
        "sheet:\n"
        "  unique_key_column: Name\n"
        "  error_column: ''\n"
        "columns:\n"
        "  Name: __TITLE__\n"
        "  Score: Score\n"
        "rules:\n"
        "  percent: Score\n"
        "sync:\n"
        "  rate_delay: 0\n"
        "  upload_thumbs_as_files: false\n",
        encoding="utf-8",
    )
    monkeypatch.setenv("NOTION_TOKEN", "ntn_env")
    monkeypatch.delenv("NOTION_DATABASE_ID", raising=False)

    cfg = load_config(str(path), keys_path=str(tmp_path / "missing-keys"))
    assert cfg.database_id == "db-123"
    assert cfg.notion_token == "ntn_env"
    assert cfg.unique_key_column == "Name"
    assert cfg.error_column == ""
    assert cfg.column_map == {"Name": "__TITLE__", "Score": "Score"}
    assert cfg.percent_properties == ("Score",)
    assert cfg.rate_delay == 0.0
    assert cfg.upload_thumbs_as_files is False
    assert cfg.image_property("Name") is None


def test_token_from_keys_file(tmp_path, monkeypatch):
    keys = tmp_path / "keys"
    keys.write_text("internal integration = ntn_from_keys\n", encoding="utf-8")
    monkeypatch.delenv("NOTION_TOKEN", raising=False)
    monkeypatch.delenv("NOTION_API_KEY", raising=False)
    monkeypatch.setenv("NOTION_DATABASE_ID", "db-env")
    monkeypatch.chdir(tmp_path)

    assert read_notion_token_from_keys_file(str(keys)) == "ntn_from_keys"
    cfg = load_config(None, keys_path=str(keys))
    assert cfg.notion_token == "ntn_from_keys"
    assert cfg.database_id == "db-env"


def test_missing_explicit_config_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(str(tmp_path / "nope.yaml"))


def test_with_overrides_ignores_none():
    cfg = SyncConfig(database_id="a").with_overrides(database_id=None, rate_delay=1.5)
    assert cfg.database_id == "a"
    assert cfg.rate_delay == 1.5


def test_column_map_is_read_only_copy():
    source = {"Name": "__TITLE__"}
    cfg = SyncConfig(column_map=source)
    source["Extra"] = "Extra"

    assert "Extra" not in cfg.column_map
    with pytest.raises(TypeError):
        cfg.column_map["X"] = "Y"
    with pytest.raises(TypeError):
        SyncConfig().column_map["Title"] = "Other"
