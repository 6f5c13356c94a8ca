"""Tests for settings and the config store."""
from pulse.config_store import ConfigStore, read_config_file
from pulse.settings import Settings


def test_read_yaml_and_json(tmp_path) -> None:
    yaml_file = tmp_path / "config.yaml"
    yaml_file.write_text("token_limit: 5\nwatch_recency_overrides:\n  chats: 30\n")
    json_file = tmp_path / "config.json"
    json_file.write_text('{"cleanup_interval_hours": 6}')

    assert read_config_file(yaml_file) == {"token_limit": 5, "watch_recency_overrides": {"chats": 30}}
    assert read_config_file(json_file) == {"cleanup_interval_hours": 6}


def test_unusable_config_files_are_ignored(tmp_path) -> None:
    invalid = tmp_path / "bad.yaml"
    invalid.write_text("token_limit: [unclosed\n")
    listing = tmp_path / "list.yaml"
    listing.write_text("- a\n- b\n")
    empty = tmp_path / "empty.yaml"
    empty.write_text("")
    other = tmp_path / "config.toml"
    other.write_text("token_limit = 5\n")

    assert read_config_file(tmp_path / "missing.yaml") == {}
    assert read_config_file(invalid) == {}
    assert read_config_file(listing) == {}
    assert read_config_file(empty) == {}
    assert read_config_file(other) == {}


def test_file_overrides_defaults_and_runtime_overrides_win(tmp_path) -> None:
    path = tmp_path / "config.yaml"
    path.write_text("token_limit: 4\ncleanup_interval_hours: 12\n")
    store = ConfigStore(Settings, str(path))
    store.load_initial()

    assert store.get_settings().token_limit == 4

    store.update({"token_limit": 2})
    assert store.get_settings().token_limit == 2

    path.write_text("token_limit: 7\ncleanup_interval_hours: 6\n")
    store.reload_from_file()
    current = store.get_settings()
    assert current.token_limit == 2
    assert current.cleanup_interval_hours == 6


def test_invalid_update_keeps_previous_settings(tmp_path) -> None:
    store = ConfigStore(Settings, str(tmp_path / "absent.yaml"))

    store.update({"token_limit": "many"})

    assert store.get_settings().token_limit == Settings().token_limit


def test_recency_window_for() -> None:
    config = Settings(watch_recency_window_seconds=120, watch_recency_overrides={"chats": 30})

    assert config.recency_window_for("chats") == 30.0
    assert config.recency_window_for("reports") == 120.0
