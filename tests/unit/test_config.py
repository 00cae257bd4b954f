"""Unit tests for config loading and validation."""

import logging

import pytest

from blockmove.config import BlockmoveConfig, expand_env_vars, load_config, resolve_config_path
from blockmove.core.errors import ConfigError


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    monkeypatch.delenv("SECRETS_LOCATION", raising=False)
    monkeypatch.delenv("BLOCKMOVE_CONFIG", raising=False)


def test_missing_file_yields_defaults(tmp_path):
    config = load_config(tmp_path / "absent.yml")

    assert config.server.host == "0.0.0.0"
    assert config.server.port == 2222
    assert config.server.host_key_path is None
    assert config.sprites.calm_path == "./normal.png"
    assert config.sprites.alarmed_path == "./scared.png"
    assert config.render.frame_interval_ms == 33
    assert (config.render.default_width, config.render.default_height) == (80, 24)
    assert config.quit_byte == b"q"
    assert config.session.seed is None


def test_yaml_values_override_defaults(tmp_path):
    path = tmp_path / "blockmove.yml"
    path.write_text(
        "server:\n"
        "  port: 2022\n"
        "  host_key_path: /keys/host\n"
        "sprites:\n"
        "  calm_path: /art/calm.png\n"
        "session:\n"
        "  quit_key: x\n"
        "  seed: 7\n",
        encoding="utf-8",
    )

    config = load_config(path)

    assert config.server.port == 2022
    assert config.server.host_key_path == "/keys/host"
    assert config.sprites.calm_path == "/art/calm.png"
    assert config.sprites.alarmed_path == "./scared.png"
    assert config.quit_byte == b"x"
    assert config.session.seed == 7


def test_env_vars_are_expanded(tmp_path, monkeypatch):
    monkeypatch.setenv("SPRITE_DIR", "/srv/sprites")
    path = tmp_path / "blockmove.yml"
    path.write_text("sprites:\n  calm_path: ${SPRITE_DIR}/calm.png\n", encoding="utf-8")

    config = load_config(path)

    assert config.sprites.calm_path == "/srv/sprites/calm.png"


def test_expand_env_vars_leaves_unset_variables(monkeypatch):
    monkeypatch.delenv("NOT_SET_ANYWHERE", raising=False)
    monkeypatch.setenv("IS_SET", "yes")

    result = expand_env_vars({"a": ["${IS_SET}", "${NOT_SET_ANYWHERE}"], "b": 3})

    assert result == {"a": ["yes", "${NOT_SET_ANYWHERE}"], "b": 3}


def test_host_key_falls_back_to_secrets_location(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRETS_LOCATION", "/run/secrets/host_key")

    config = load_config(tmp_path / "absent.yml")

    assert config.server.host_key_path == "/run/secrets/host_key"


def test_unset_variable_in_host_key_falls_back(tmp_path, monkeypatch):
    monkeypatch.delenv("HOST_KEY_FILE", raising=False)
    monkeypatch.setenv("SECRETS_LOCATION", "/run/secrets/host_key")
    path = tmp_path / "blockmove.yml"
    path.write_text("server:\n  host_key_path: ${HOST_KEY_FILE}\n", encoding="utf-8")

    config = load_config(path)

    assert config.server.host_key_path == "/run/secrets/host_key"


def test_explicit_host_key_wins_over_secrets_location(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRETS_LOCATION", "/run/secrets/host_key")
    path = tmp_path / "blockmove.yml"
    path.write_text("server:\n  host_key_path: /etc/blockmove/key\n", encoding="utf-8")

    assert load_config(path).server.host_key_path == "/etc/blockmove/key"


@pytest.mark.parametrize("quit_key", ["", "qq", "é"])
def test_invalid_quit_key_raises(tmp_path, quit_key):
    path = tmp_path / "blockmove.yml"
    path.write_text(f"session:\n  quit_key: '{quit_key}'\n", encoding="utf-8")

    with pytest.raises(ConfigError, match="Invalid config"):
        load_config(path)


def test_invalid_port_raises(tmp_path):
    path = tmp_path / "blockmove.yml"
    path.write_text("server:\n  port: 70000\n", encoding="utf-8")

    with pytest.raises(ConfigError):
        load_config(path)


def test_malformed_yaml_raises(tmp_path):
    path = tmp_path / "blockmove.yml"
    path.write_text("server: [unclosed\n", encoding="utf-8")

    with pytest.raises(ConfigError, match="Failed to read"):
        load_config(path)


def test_non_mapping_top_level_raises(tmp_path):
    path = tmp_path / "blockmove.yml"
    path.write_text("- just\n- a list\n", encoding="utf-8")

    with pytest.raises(ConfigError, match="mapping"):
        load_config(path)


def test_unknown_keys_are_warned(tmp_path, caplog):
    path = tmp_path / "blockmove.yml"
    path.write_text("render:\n  fps: 60\n", encoding="utf-8")

    with caplog.at_level(logging.WARNING, logger="blockmove.config.loader"):
        config = load_config(path)

    assert isinstance(config, BlockmoveConfig)
    assert "Unknown keys in root.render" in caplog.text
    assert "fps" in caplog.text


def test_resolve_config_path_precedence(monkeypatch):
    monkeypatch.setenv("BLOCKMOVE_CONFIG", "/etc/blockmove/env.yml")

    assert str(resolve_config_path("/tmp/cli.yml")) == "/tmp/cli.yml"
    assert str(resolve_config_path()) == "/etc/blockmove/env.yml"

    monkeypatch.delenv("BLOCKMOVE_CONFIG")
    assert str(resolve_config_path()) == "blockmove.yml"
