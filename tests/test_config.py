"""Tests for layered configuration loading and validation."""

import pytest

from probe_client.config import load_config


def write_yaml(tmp_path, text):
    path = tmp_path / "config.yaml"
    path.write_text(text)
    return str(path)


def test_defaults_with_destination_override():
    config = load_config(overrides={"probe": {"destination": "8.8.8.8"}}, environ={})

    assert config["probe"]["destination"] == "8.8.8.8"
    assert config["probe"]["interval_ms"] == 1000
    assert config["probe"]["time_limit_seconds"] == 0
    assert config["detection"]["spike_multiplier_percent"] == 200
    assert config["detection"]["recompute_interval"] == 10
    assert config["detection"]["min_threshold_ms"] == 20
    assert config["detection"]["max_threshold_ms"] == 500
    assert config["output"]["debug"] is False


def test_missing_destination_is_fatal():
    with pytest.raises(ValueError, match="destination"):
        load_config(environ={})


def test_yaml_file_is_merged_by_section(tmp_path):
    path = write_yaml(tmp_path, """
probe:
  destination: example.org
  interval_ms: 2000
detection:
  recompute_interval: 5
""")
    config = load_config(config_path=path, environ={})

    assert config["probe"]["destination"] == "example.org"
    assert config["probe"]["interval_ms"] == 2000
    assert config["probe"]["timeout_ms"] == 5000
    assert config["detection"]["recompute_interval"] == 5
    assert config["detection"]["max_threshold_ms"] == 500


def test_precedence_cli_over_env_over_file(tmp_path):
    path = write_yaml(tmp_path, "probe:\n  destination: from-file\n  interval_ms: 2000\n")
    environ = {"UBERPING_DESTINATION": "from-env", "UBERPING_INTERVAL_MS": "3000", "UBERPING_DEBUG": "yes"}

    config = load_config(config_path=path, environ=environ,
                         overrides={"probe": {"destination": "from-cli", "interval_ms": None}})

    assert config["probe"]["destination"] == "from-cli"
    assert config["probe"]["interval_ms"] == 3000
    assert config["output"]["debug"] is True


def test_non_numeric_interval_is_rejected():
    with pytest.raises(ValueError, match="interval_ms"):
        load_config(environ={"UBERPING_DESTINATION": "host", "UBERPING_INTERVAL_MS": "fast"})


def test_fractional_recompute_interval_is_rejected():
    with pytest.raises(ValueError, match="recompute_interval"):
        load_config(environ={}, overrides={"probe": {"destination": "host"},
                                           "detection": {"recompute_interval": 2.5}})


def test_min_threshold_above_max_is_rejected():
    with pytest.raises(ValueError, match="cannot exceed"):
        load_config(environ={}, overrides={"probe": {"destination": "host"},
                                           "detection": {"min_threshold_ms": 600}})


def test_negative_time_limit_is_rejected():
    with pytest.raises(ValueError, match="time_limit_seconds"):
        load_config(environ={}, overrides={"probe": {"destination": "host", "time_limit_seconds": -1}})


def test_missing_config_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(config_path=str(tmp_path / "nope.yaml"), environ={})


def test_malformed_yaml_is_rejected(tmp_path):
    path = write_yaml(tmp_path, "probe: [unclosed\n")
    with pytest.raises(ValueError, match="Failed to load configuration"):
        load_config(config_path=path, environ={})


def test_section_must_be_mapping(tmp_path):
    path = write_yaml(tmp_path, "probe: 5\n")
    with pytest.raises(ValueError, match="must be a mapping"):
        load_config(config_path=path, environ={})


def test_numeric_strings_are_coerced():
    config = load_config(environ={
        "UBERPING_DESTINATION": "host",
        "UBERPING_SPIKE_MULTIPLIER_PERCENT": "150",
        "UBERPING_TIME_LIMIT_SECONDS": "60",
    })
    assert config["detection"]["spike_multiplier_percent"] == 150.0
    assert config["probe"]["time_limit_seconds"] == 60.0


def test_quoted_false_debug_in_yaml_stays_disabled(tmp_path):
    path = write_yaml(tmp_path, 'probe:\n  destination: host\noutput:\n  debug: "false"\n')
    config = load_config(config_path=path, environ={})
    assert config["output"]["debug"] is False


def test_detection_warmup_and_logs_dir_from_environment():
    environ = {
        "UBERPING_DESTINATION": "host",
        "UBERPING_INITIAL_THRESHOLD_MS": "35",
        "UBERPING_MIN_SAMPLES": "25",
        "UBERPING_LOGS_DIR": "/var/log/uberping",
    }
    config = load_config(environ=environ)

    assert config["detection"]["initial_threshold_ms"] == 35.0
    assert config["detection"]["min_samples"] == 25
    assert config["output"]["logs_dir"] == "/var/log/uberping"
