import logging
import os
from dataclasses import asdict, dataclass, fields
from typing import Any, Dict, Mapping, Optional

import yaml

from synthesizer.data_and_types import DuplicatePolicy
from typesys.errors import ConfigError

logger = logging.getLogger(__name__)

CONFIG_DIR = os.path.join(os.path.expanduser('~'), '.tfsynth')
CONFIG_FILE = os.path.join(CONFIG_DIR, 'config.yaml')

LOG_LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL')

ENV_OVERRIDES = {
    'TFSYNTH_OUTPUT_DIR': 'output_dir',
    'TFSYNTH_LOG_LEVEL': 'log_level',
    'TFSYNTH_DUPLICATE_POLICY': 'duplicate_policy',
}


@dataclass
class Settings:
    output_dir: str = './IaC'
    log_level: str = 'INFO'
    log_dir: str = os.path.join(CONFIG_DIR, 'logs')
    duplicate_policy: str = 'error'
    json_indent: int = 2
    namespace: str = 'default'
    backend: Optional[Dict[str, Any]] = None
    colors: bool = True

    def __post_init__(self):
        self.log_level = str(self.log_level).upper()
        if self.log_level not in LOG_LEVELS:
            raise ConfigError('log_level', f"expected one of {', '.join(LOG_LEVELS)}, got '{self.log_level}'")
        try:
            self.duplicate_policy = DuplicatePolicy.parse(self.duplicate_policy).value
        except ValueError as e:
            raise ConfigError('duplicate_policy', str(e)) from None
        if isinstance(self.json_indent, bool) or not isinstance(self.json_indent, int) or self.json_indent < 0:
            raise ConfigError('json_indent', f"expected a non-negative integer, got {self.json_indent!r}")
        if self.backend is not None and not isinstance(self.backend, dict):
            raise ConfigError('backend', "expected a mapping of S3 backend settings")
        if not isinstance(self.colors, bool):
            raise ConfigError('colors', f"expected true or false, got {self.colors!r}")
        if not self.namespace:
            raise ConfigError('namespace', "must not be empty")

    @property
    def policy(self) -> DuplicatePolicy:
        return DuplicatePolicy.parse(self.duplicate_policy)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def default_config() -> Dict[str, Any]:
    defaults = Settings().to_dict()
    # backend stays unset until the user configures one
    defaults.pop('backend')
    return defaults


def init_config_dir(config_file: str = CONFIG_FILE) -> str:
    """Create the config directory and a default config file if missing"""
    os.makedirs(os.path.dirname(config_file) or '.', exist_ok=True)
    if not os.path.exists(config_file):
        with open(config_file, 'w') as f:
            yaml.dump(default_config(), f, sort_keys=False)
        logger.debug("Wrote default configuration to %s", config_file)
    return config_file


def load_settings(config_file: Optional[str] = None, env: Optional[Mapping[str, str]] = None) -> Settings:
    """Settings from a YAML file, then TFSYNTH_* environment variables on top"""
    env = os.environ if env is None else env
    values: Dict[str, Any] = {}

    if config_file and os.path.exists(config_file):
        try:
            with open(config_file, 'r') as f:
                loaded = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(config_file, f"invalid YAML: {e}") from e
        if not isinstance(loaded, dict):
            raise ConfigError(config_file, "top level must be a mapping")
        values.update(loaded)

    known = {f.name for f in fields(Settings)}
    for key in values:
        if key not in known:
            raise ConfigError(str(key), "unknown configuration key")

    for variable, key in ENV_OVERRIDES.items():
        if env.get(variable):
            values[key] = env[variable]

    settings = Settings(**values)
    logger.debug("Loaded settings: %s", settings)
    return settings
