import copy
from pathlib import Path
from typing import Optional, Union

import yaml
from loguru import logger

from swingfit.exceptions import ConfigError

DATA_DIR = Path(__file__).parent / "data"
DEFAULT_CONFIG_PATH = DATA_DIR / "config.yaml"

REQUIRED_SECTIONS = ('system', 'swing_detection', 'synthetic', 'serial', 'recommendations', 'websocket')


def _read_yaml(path: Path) -> dict:
    try:
        with open(path, 'r') as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Failed to load configuration from {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Configuration in {path} must be a mapping")
    return data


def _merge(base: dict, override: dict) -> dict:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def default_config() -> dict:
    return _read_yaml(DEFAULT_CONFIG_PATH)


def load_config(config_path: Optional[Union[str, Path]] = None) -> dict:
    """Load the bundled defaults, overlaid with ``config_path`` when given."""
    config = default_config()

    if config_path is not None:
        config = _merge(config, _read_yaml(Path(config_path)))
        logger.info(f"Configuration loaded from {config_path}")

    missing = [section for section in REQUIRED_SECTIONS if section not in config]
    if missing:
        raise ConfigError(f"Missing configuration sections: {', '.join(missing)}")

    detection = config['swing_detection']
    if detection['min_duration'] >= detection['max_duration']:
        raise ConfigError("swing_detection.min_duration must be lower than max_duration")

    return config
