import json

from meter_remote.config import AppConfig, load_config
from meter_remote.const import DEFAULT_REFRESH_INTERVAL, DEFAULT_REQUEST_TIMEOUT


def test_defaults():
    config = AppConfig()
    assert config.request_timeout == 15.0
    assert config.refresh_interval == 60.0


def test_options_file(tmp_path):
    path = tmp_path / "options.json"
    path.write_text(json.dumps({
        "base_url": "http://meter.local:5000/",
        "meter_number": 12345678,
        "refresh_interval": 30,
        "mqtt_topic_prefix": "/meters/",
        "log_level": "debug",
    }))
    config = load_config(str(path))
    assert config.base_url == "http://meter.local:5000"
    assert config.meter_number == "12345678"
    assert config.refresh_interval == 30.0
    assert config.mqtt_topic_prefix == "meters"
    assert config.log_level == "DEBUG"


def test_invalid_numbers_keep_defaults(tmp_path):
    path = tmp_path / "options.json"
    path.write_text(json.dumps({"refresh_interval": 0, "request_timeout": "soon"}))
    config = load_config(str(path))
    assert config.refresh_interval == DEFAULT_REFRESH_INTERVAL
    assert config.request_timeout == DEFAULT_REQUEST_TIMEOUT


def test_env_fallback(tmp_path, monkeypatch):
    monkeypatch.setenv("METER_BASE_URL", "http://10.0.0.2:5000")
    monkeypatch.setenv("METER_NUMBER", "42")
    monkeypatch.setenv("METER_REQUEST_TIMEOUT", "5")
    monkeypatch.setenv("MQTT_PORT", "1884")
    config = load_config(str(tmp_path / "missing.json"))
    assert config.base_url == "http://10.0.0.2:5000"
    assert config.meter_number == "42"
    assert config.request_timeout == 5.0
    assert config.mqtt_port == 1884


def test_corrupt_options_fall_back_to_env(tmp_path, monkeypatch):
    path = tmp_path / "options.json"
    path.write_text("{broken")
    monkeypatch.setenv("METER_NUMBER", "99")
    assert load_config(str(path)).meter_number == "99"


def test_non_finite_numbers_keep_defaults(tmp_path, monkeypatch):
    path = tmp_path / "options.json"
    path.write_text('{"refresh_interval": "nan", "request_timeout": "inf"}')
    config = load_config(str(path))
    assert config.refresh_interval == DEFAULT_REFRESH_INTERVAL
    assert config.request_timeout == DEFAULT_REQUEST_TIMEOUT

    monkeypatch.setenv("METER_REFRESH_INTERVAL", "NaN")
    config = load_config(str(tmp_path / "missing.json"))
    assert config.refresh_interval == DEFAULT_REFRESH_INTERVAL
