import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from cdn_server import config
from cdn_server.config import ConfigError, Settings, load_config


def write_config(tmp_path, data):
    path = tmp_path / "config.json"
    path.write_text(json.dumps(data) if not isinstance(data, str) else data)
    return path


def test_load_config(tmp_path):
    path = write_config(tmp_path, {
        "port": "9090",
        "upload_directory": "/srv/cdn",
        "max_upload_size": 1048576,
        "require_auth": True,
        "username": "admin",
        "password": "secret",
    })
    settings = load_config(path)
    assert settings.port == 9090
    assert settings.uploads_dir == Path("/srv/cdn")
    assert settings.max_upload_size == 1048576
    assert settings.username == "admin"
    assert settings.password == "secret"


def test_load_config_uploads_dir_key(tmp_path):
    path = write_config(tmp_path, {"uploads_dir": "files", "username": "u", "password": "p"})
    assert load_config(path).uploads_dir == Path("files")


def test_defaults(tmp_path):
    settings = load_config(write_config(tmp_path, {"username": "u", "password": "p"}))
    assert settings.port == config.DEFAULT_PORT
    assert settings.host == config.DEFAULT_HOST
    assert settings.max_upload_size == config.DEFAULT_MAX_UPLOAD_SIZE
    assert settings.uploads_dir == Path(config.DEFAULT_UPLOADS_DIR)
    assert settings.require_auth is True
    assert settings.logzio_token is None
    assert settings.log_level == "INFO"


def test_log_level_normalized(tmp_path):
    settings = load_config(write_config(tmp_path, {"require_auth": False, "log_level": "debug"}))
    assert settings.log_level == "DEBUG"


def test_settings_are_immutable():
    settings = Settings(username="u", password="p")
    with pytest.raises(ValidationError):
        settings.port = 1


def test_missing_file(tmp_path):
    with pytest.raises(ConfigError, match="Cannot read config file"):
        load_config(tmp_path / "nope.json")


def test_invalid_json(tmp_path):
    with pytest.raises(ConfigError, match="Invalid JSON"):
        load_config(write_config(tmp_path, "{not json"))


def test_non_object(tmp_path):
    with pytest.raises(ConfigError, match="must contain a JSON object"):
        load_config(write_config(tmp_path, [1, 2, 3]))


@pytest.mark.parametrize("data", [
    {"require_auth": True},
    {"require_auth": True, "username": "admin"},
    {"require_auth": True, "password": "secret"},
    {"require_auth": False, "port": 0},
    {"require_auth": False, "port": "70000"},
    {"require_auth": False, "port": "http"},
    {"require_auth": False, "max_upload_size": 0},
    {"require_auth": False, "max_upload_size": -5},
    {"require_auth": False, "log_level": "LOUD"},
])
def test_invalid_settings(tmp_path, data):
    with pytest.raises(ConfigError, match="Invalid configuration"):
        load_config(write_config(tmp_path, data))


def test_auth_optional(tmp_path):
    settings = load_config(write_config(tmp_path, {"require_auth": False}))
    assert settings.require_auth is False
    assert settings.username == ""
