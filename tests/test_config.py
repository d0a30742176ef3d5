"""Tests for configuration loading and validation."""

import textwrap

import pytest

from image_watcher.config import Config
from image_watcher.errors import ConfigError

URL_ENV = {"CAM_IMAGE_URL1": "http://cam1/snapshot.jpg"}


@pytest.fixture
def yaml_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(textwrap.dedent("""\
        cameras:
          urls:
            - http://cam1/snapshot.jpg
            - http://cam2/snapshot.jpg
        composite:
          max_width: 960
          output_quality: 70
          font:
            size: 14
            color: "#00ff00"
        schedule:
          capture_interval_sec: 30
          retention_hours: 48
        storage:
          mode: local
          path: /tmp/frames
        metrics:
          enabled: true
          port: 9000
        """))
    return path


def test_defaults_match_documented_values():
    config = Config.load(environ=URL_ENV)

    assert config.max_width == 1280
    assert config.output_quality == 80
    assert config.capture_interval_sec == 60
    assert config.cleanup_interval_min == 60
    assert config.retention_hours == 24
    assert config.session_renewal_min == 60
    assert config.storage_mode == "local"
    assert config.seafile_directory == "/"
    assert config.font_size == 12
    assert config.font_color == "#ff0000"


def test_load_from_yaml(yaml_file):
    config = Config.load(str(yaml_file), environ={})

    assert config.camera_urls == ["http://cam1/snapshot.jpg", "http://cam2/snapshot.jpg"]
    assert config.max_width == 960
    assert config.output_quality == 70
    assert config.font_size == 14
    assert config.font_color == "#00ff00"
    assert config.capture_interval_sec == 30
    assert config.retention_hours == 48
    assert config.storage_path == "/tmp/frames"
    assert config.metrics_enabled
    assert config.metrics_port == 9000


def test_environment_overrides_yaml(yaml_file):
    environ = {
        "CAM_IMAGE_URL1": "http://a",
        "CAM_IMAGE_URL3": "http://c",
        "CAM_MAX_WIDTH": "800.4",
        "CAM_INTERVAL_TIME_SECS": "15",
        "CAM_RETENTION_TIME_HOURS": "1.5",
        "CAM_LOG_DEBUG": "true",
    }

    config = Config.load(str(yaml_file), environ=environ)

    assert config.camera_urls == ["http://a", "http://c"]
    assert config.max_width == 800
    assert config.capture_interval_sec == 15
    assert config.retention_hours == 1.5
    assert config.log_level == "DEBUG"


def test_remote_settings_from_environment():
    environ = dict(URL_ENV,
                   CAM_STORAGE_MODE="remote",
                   CAM_SEAFILE_URL="https://seafile.example.org",
                   CAM_SEAFILE_APITOKEN="token",
                   CAM_SEAFILE_LIBRARY_ID="lib-1",
                   CAM_SEAFILE_ENCRYPTION_KEY="secret",
                   CAM_ENCRYPT_TIMEOUT_MINS="45")

    config = Config.load(environ=environ)

    assert config.storage_mode == "remote"
    assert config.session_secret == "secret"
    assert config.session_renewal_min == 45


def test_secret_ignored_for_local_storage():
    config = Config.load(environ=dict(URL_ENV, CAM_SEAFILE_ENCRYPTION_KEY="secret"))

    assert config.session_secret is None


def test_all_nine_camera_slots_are_read():
    environ = {f"CAM_IMAGE_URL{i}": f"http://cam{i}" for i in range(1, 10)}

    config = Config.load(environ=environ)

    assert len(config.camera_urls) == 9


@pytest.mark.parametrize("environ", [
    {},
    dict(URL_ENV, CAM_OUTPUT_QUALITY="abc"),
    dict(URL_ENV, CAM_OUTPUT_QUALITY="101"),
    dict(URL_ENV, CAM_MAX_WIDTH="5"),
    dict(URL_ENV, CAM_INTERVAL_TIME_SECS="0"),
    dict(URL_ENV, CAM_CLEAN_TIME_MINS="-1"),
    dict(URL_ENV, CAM_STORAGE_MODE="ftp"),
    dict(URL_ENV, CAM_FONT_COLOR="not-a-color"),
    dict(URL_ENV, CAM_TIMEZONE="Mars/Olympus"),
    dict(URL_ENV, CAM_STORAGE_MODE="remote"),
    dict(URL_ENV, CAM_STORAGE_MODE="remote", CAM_SEAFILE_URL="https://x",
         CAM_SEAFILE_APITOKEN="token"),
])
def test_invalid_configuration_is_rejected(environ):
    with pytest.raises(ConfigError):
        Config.load(environ=environ)


def test_more_than_nine_cameras_rejected():
    config = Config(camera_urls=[f"http://cam{i}" for i in range(10)])

    with pytest.raises(ConfigError):
        config.validate()


def test_yaml_with_bad_number_is_rejected(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("composite:\n  max_width: wide\n")

    with pytest.raises(ConfigError):
        Config.load(str(path), environ=URL_ENV)


def test_missing_yaml_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        Config.load(str(tmp_path / "nope.yaml"), environ=URL_ENV)


@pytest.mark.parametrize("name", [
    "CAM_INTERVAL_TIME_SECS",
    "CAM_CLEAN_TIME_MINS",
    "CAM_RETENTION_TIME_HOURS",
    "CAM_ENCRYPT_TIMEOUT_MINS",
    "CAM_MAX_WIDTH",
    "CAM_OUTPUT_QUALITY",
    "CAM_FONT_SIZE",
])
@pytest.mark.parametrize("value", ["nan", "inf", "-inf"])
def test_non_finite_numbers_are_rejected(name, value):
    with pytest.raises(ConfigError):
        Config.load(environ=dict(URL_ENV, **{name: value}))


def test_non_finite_yaml_number_is_rejected(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("schedule:\n  retention_hours: .nan\n")

    with pytest.raises(ConfigError):
        Config.load(str(path), environ=URL_ENV)


def test_unrepresentable_retention_is_rejected():
    with pytest.raises(ConfigError):
        Config.load(environ=dict(URL_ENV, CAM_RETENTION_TIME_HOURS="1e300"))


@pytest.mark.parametrize("raw,expected", [
    ("true", True),
    ("false", False),
    ("'false'", False),
    ("'no'", False),
    ("'On'", True),
    ("0", False),
])
def test_metrics_enabled_parsing(tmp_path, raw, expected):
    path = tmp_path / "config.yaml"
    path.write_text(f"metrics:\n  enabled: {raw}\n")

    config = Config.load(str(path), environ=URL_ENV)

    assert config.metrics_enabled is expected


def test_metrics_enabled_rejects_garbage(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("metrics:\n  enabled: maybe\n")

    with pytest.raises(ConfigError):
        Config.load(str(path), environ=URL_ENV)
