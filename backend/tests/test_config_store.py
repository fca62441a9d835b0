"""Tests for the config store precedence: overrides > config file > env > defaults."""
from vibefield.config_store import ConfigStore
from vibefield.settings import Settings


def write(path, text):
    path.write_text(text)
    return str(path)


def test_defaults_without_file(tmp_path):
    store = ConfigStore(Settings, str(tmp_path / "missing.yaml"))
    assert store.get_settings().tile_default_resolution == 7


def test_yaml_file_is_master_over_defaults(tmp_path):
    path = write(tmp_path / "config.yaml", "tile_default_resolution: 6\npolicy_theta_min: 0.8\n")
    store = ConfigStore(Settings, path)
    store.load_initial()
    current = store.get_settings()
    assert current.tile_default_resolution == 6
    assert current.policy_theta_min == 0.8


def test_json_file_supported(tmp_path):
    path = write(tmp_path / "config.json", '{"presence_ttl_seconds": 120}')
    assert ConfigStore(Settings, path).get_settings().presence_ttl_seconds == 120


def test_overrides_win_and_rejected_update_keeps_previous(tmp_path):
    path = write(tmp_path / "config.yaml", "tile_default_resolution: 6\n")
    store = ConfigStore(Settings, path)
    assert store.update({"tile_default_resolution": 5}) is True
    assert store.get_settings().tile_default_resolution == 5

    assert store.update({"tile_default_resolution": "fine"}) is False
    assert store.get_settings().tile_default_resolution == 5

    store.clear_overrides()
    assert store.get_settings().tile_default_resolution == 6


def test_reload_picks_up_file_edits_and_keeps_overrides(tmp_path):
    config = tmp_path / "config.yaml"
    path = write(config, "tile_default_resolution: 6\n")
    store = ConfigStore(Settings, path)
    store.update({"presence_ttl_seconds": 45})

    config.write_text("tile_default_resolution: 8\n")
    store.reload_from_file()
    current = store.get_settings()
    assert current.tile_default_resolution == 8
    assert current.presence_ttl_seconds == 45


def test_unusable_files_fall_back_to_env(tmp_path):
    for name, text in (("broken.yaml", "a: [1, 2\n"), ("list.yaml", "- a\n- b\n"), ("config.toml", "x = 1\n")):
        store = ConfigStore(Settings, write(tmp_path / name, text))
        assert store.get_settings().tile_default_resolution == 7


def test_module_store_backs_settings_proxy():
    from vibefield.settings import get_config_store, get_settings, settings

    store = get_config_store()
    assert store.get_settings() is get_settings()
    assert settings.identity_header == get_settings().identity_header
