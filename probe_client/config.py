import copy
import os
import yaml
from pathlib import Path
from typing import Any, Dict, Optional
from dotenv import load_dotenv
from probe_client.logger import logger

DEFAULT_CONFIG = {
    "probe": {
        "destination": None,
        "interval_ms": 1000,
        "timeout_ms": 5000,
        "time_limit_seconds": 0,
    },
    "detection": {
        "spike_multiplier_percent": 200,
        "recompute_interval": 10,
        "min_threshold_ms": 20,
        "max_threshold_ms": 500,
        "initial_threshold_ms": 20,
        "min_samples": 15,
    },
    "output": {
        "log_file": None,
        "logs_dir": "uberping_logs",
        "results_dir": "session_results",
        "debug": False,
    },
}

# Environment variable -> (section, key)
ENV_OVERRIDES = {
    "UBERPING_DESTINATION": ("probe", "destination"),
    "UBERPING_INTERVAL_MS": ("probe", "interval_ms"),
    "UBERPING_TIMEOUT_MS": ("probe", "timeout_ms"),
    "UBERPING_TIME_LIMIT_SECONDS": ("probe", "time_limit_seconds"),
    "UBERPING_SPIKE_MULTIPLIER_PERCENT": ("detection", "spike_multiplier_percent"),
    "UBERPING_RECOMPUTE_INTERVAL": ("detection", "recompute_interval"),
    "UBERPING_MIN_THRESHOLD_MS": ("detection", "min_threshold_ms"),
    "UBERPING_MAX_THRESHOLD_MS": ("detection", "max_threshold_ms"),
    "UBERPING_INITIAL_THRESHOLD_MS": ("detection", "initial_threshold_ms"),
    "UBERPING_MIN_SAMPLES": ("detection", "min_samples"),
    "UBERPING_LOG_FILE": ("output", "log_file"),
    "UBERPING_LOGS_DIR": ("output", "logs_dir"),
    "UBERPING_RESULTS_DIR": ("output", "results_dir"),
    "UBERPING_DEBUG": ("output", "debug"),
}

INTEGER_FIELDS = {
    ("probe", "interval_ms"),
    ("probe", "timeout_ms"),
    ("detection", "recompute_interval"),
    ("detection", "min_samples"),
}

NUMERIC_FIELDS = INTEGER_FIELDS | {
    ("probe", "time_limit_seconds"),
    ("detection", "spike_multiplier_percent"),
    ("detection", "min_threshold_ms"),
    ("detection", "max_threshold_ms"),
    ("detection", "initial_threshold_ms"),
}

TRUE_STRINGS = ("1", "true", "yes", "on")


def _merge(config: Dict[str, Any], overrides: Dict[str, Any], source: str) -> None:
    for section, values in overrides.items():
        if not isinstance(values, dict):
            raise ValueError(f"Section '{section}' in {source} must be a mapping")
        if section in config:
            config[section].update(values)
        else:
            logger.warning(f"Ignoring unknown configuration section '{section}' in {source}")


def _load_yaml(config_path: str) -> Dict[str, Any]:
    if not Path(config_path).exists():
        raise FileNotFoundError(f"Configuration file {config_path} not found")

    try:
        with open(config_path, 'r') as file:
            data = yaml.safe_load(file) or {}
    except (yaml.YAMLError, IOError) as e:
        raise ValueError(f"Failed to load configuration from {config_path}: {e}") from e

    if not isinstance(data, dict):
        raise ValueError(f"Configuration file {config_path} must contain a mapping")
    return data


def _parse_bool(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in TRUE_STRINGS
    return bool(value)


def _env_overrides(environ) -> Dict[str, Dict[str, Any]]:
    overrides: Dict[str, Dict[str, Any]] = {}
    for variable, (section, key) in ENV_OVERRIDES.items():
        value = environ.get(variable)
        if value is None or value == "":
            continue
        if (section, key) == ("output", "debug"):
            value = _parse_bool(value)
        overrides.setdefault(section, {})[key] = value
    return overrides


def _coerce_numbers(config: Dict[str, Any]) -> None:
    for section, key in NUMERIC_FIELDS:
        value = config[section].get(key)
        if isinstance(value, bool):
            raise ValueError(f"'{section}.{key}' must be numeric, got {value!r}")
        try:
            if (section, key) in INTEGER_FIELDS:
                number = float(value)
                if not number.is_integer():
                    raise ValueError
                config[section][key] = int(number)
            else:
                config[section][key] = float(value)
        except (TypeError, ValueError):
            raise ValueError(f"'{section}.{key}' must be numeric, got {value!r}") from None


def validate_config(config: Dict[str, Any]) -> None:
    probe = config["probe"]
    detection = config["detection"]

    destination = probe.get("destination")
    if not destination or not str(destination).strip():
        raise ValueError("'destination' is required")
    probe["destination"] = str(destination).strip()

    _coerce_numbers(config)

    if probe["interval_ms"] < 0:
        raise ValueError(f"'probe.interval_ms' must be non-negative, got {probe['interval_ms']}")
    if probe["timeout_ms"] <= 0:
        raise ValueError(f"'probe.timeout_ms' must be positive, got {probe['timeout_ms']}")
    if probe["time_limit_seconds"] < 0:
        raise ValueError(f"'probe.time_limit_seconds' must be non-negative, got {probe['time_limit_seconds']}")

    if detection["spike_multiplier_percent"] <= 0:
        raise ValueError("'detection.spike_multiplier_percent' must be positive")
    if detection["recompute_interval"] < 1:
        raise ValueError("'detection.recompute_interval' must be at least 1")
    if detection["min_samples"] < 1:
        raise ValueError("'detection.min_samples' must be at least 1")
    if detection["min_threshold_ms"] < 0:
        raise ValueError("'detection.min_threshold_ms' must be non-negative")
    if detection["min_threshold_ms"] > detection["max_threshold_ms"]:
        raise ValueError(
            f"'detection.min_threshold_ms' ({detection['min_threshold_ms']}) cannot exceed "
            f"'detection.max_threshold_ms' ({detection['max_threshold_ms']})"
        )

    config["output"]["debug"] = _parse_bool(config["output"].get("debug"))


def load_config(config_path: Optional[str] = None,
                overrides: Optional[Dict[str, Dict[str, Any]]] = None,
                environ=None,
                use_dotenv: bool = True) -> Dict[str, Any]:
    """
    Build the monitor configuration.

    Layers, lowest precedence first: built-in defaults, the YAML file at
    ``config_path``, ``UBERPING_*`` environment variables (``.env`` is loaded
    first when ``use_dotenv`` is set) and finally ``overrides``, typically the
    CLI arguments. ``None`` values in ``overrides`` are skipped so unset flags
    do not mask lower layers. Raises ValueError or FileNotFoundError when the
    result is unusable.
    """
    config = copy.deepcopy(DEFAULT_CONFIG)

    if config_path:
        _merge(config, _load_yaml(config_path), config_path)
        logger.info(f"Configuration loaded from {config_path}")

    if environ is None:
        if use_dotenv:
            load_dotenv()
        environ = os.environ
    _merge(config, _env_overrides(environ), "environment")

    if overrides:
        cleaned = {
            section: {k: v for k, v in values.items() if v is not None}
            for section, values in overrides.items()
        }
        _merge(config, cleaned, "command line")

    validate_config(config)
    logger.debug(f"Effective configuration: {config}")
    return config
