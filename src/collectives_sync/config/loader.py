"""Configuration loader for JSON/YAML files and environment variables."""

import os
import json
import yaml
from pathlib import Path
from typing import Dict, Any, List, Union

from pydantic import ValidationError

from .schema import SyncConfig
from ..utils.logging import get_logger


class ConfigurationError(Exception):
    """Raised when configuration loading fails."""
    pass


ENV_PREFIX = "COLLECTIVES_"

# Environment variable suffix -> SyncConfig field
ENV_FIELDS = {
    "URL": "nextcloud_url",
    "USERNAME": "username",
    "PASSWORD": "password",
    "ACCESS_TOKEN": "access_token",
    "USE_TOKEN": "use_token",
    "COLLECTIVE_PATH": "collective_path",
    "LOCAL_FOLDER_PATH": "local_folder_path",
    "SYNC_INTERVAL": "sync_interval",
    "SYNC_ON_STARTUP": "sync_on_startup",
    "SYNC_ON_SAVE": "sync_on_save",
    "STARTUP_DELAY_SECONDS": "startup_delay_seconds",
}

BOOLEAN_FIELDS = {"use_token", "sync_on_startup", "sync_on_save"}
INTEGER_FIELDS = {"sync_interval", "startup_delay_seconds"}


class ConfigLoader:
    """Loads, validates and saves sync configuration."""

    def __init__(self):
        self.logger = get_logger(self.__class__.__name__)

    def load_from_file(self, file_path: Union[str, Path]) -> SyncConfig:
        """Load configuration from a JSON or YAML file.

        Raises:
            ConfigurationError: If file cannot be loaded or validated
        """
        file_path = Path(file_path)

        if not file_path.exists():
            raise ConfigurationError(f"Configuration file not found: {file_path}")

        self.logger.info("Loading configuration from file", file_path=str(file_path))

        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                if file_path.suffix.lower() in ['.yaml', '.yml']:
                    data = yaml.safe_load(f) or {}
                elif file_path.suffix.lower() == '.json':
                    data = json.load(f)
                else:
                    raise ConfigurationError(f"Unsupported file format: {file_path.suffix}")
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML format: {e}") from e
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON format: {e}") from e
        except OSError as e:
            raise ConfigurationError(f"Failed to read configuration: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationError(f"Configuration must be a mapping, got {type(data).__name__}")

        return self.load_from_dict(data)

    def load_from_dict(self, data: Dict[str, Any]) -> SyncConfig:
        """Load configuration from a dictionary, applying environment overrides."""
        data = self._apply_env_overrides(data)

        try:
            config = SyncConfig(**data)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e

        self.logger.info("Configuration loaded", config=config.redacted())
        return config

    def save_to_file(self, config: SyncConfig, file_path: Union[str, Path], format: str = 'yaml'):
        """Save configuration to file.

        Args:
            config: Configuration to save
            file_path: Output file path
            format: Output format ('yaml' or 'json')
        """
        file_path = Path(file_path)
        file_path.parent.mkdir(parents=True, exist_ok=True)

        data = config.model_dump()

        try:
            with open(file_path, 'w', encoding='utf-8') as f:
                if format.lower() == 'yaml':
                    yaml.safe_dump(data, f, default_flow_style=False, indent=2, allow_unicode=True)
                elif format.lower() == 'json':
                    json.dump(data, f, indent=2)
                else:
                    raise ConfigurationError(f"Unsupported format: {format}")
        except OSError as e:
            raise ConfigurationError(f"Failed to save configuration: {e}") from e

        # The file holds secrets
        try:
            os.chmod(file_path, 0o600)
        except OSError:
            self.logger.warning("Could not restrict configuration file permissions", file_path=str(file_path))

        self.logger.info("Configuration saved successfully", file_path=str(file_path))

    def _apply_env_overrides(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Apply environment variable overrides to configuration data.

        Environment variables use the format: COLLECTIVES_<KEY>
        For example: COLLECTIVES_URL, COLLECTIVES_PASSWORD
        """
        env_overrides = {}

        for suffix, field_name in ENV_FIELDS.items():
            value = os.getenv(ENV_PREFIX + suffix)
            if value is None or value == "":
                continue

            if field_name in BOOLEAN_FIELDS:
                env_overrides[field_name] = value.lower() in ['true', '1', 'yes']
            elif field_name in INTEGER_FIELDS:
                try:
                    env_overrides[field_name] = int(value)
                except ValueError:
                    self.logger.warning("Invalid integer override, ignoring", variable=ENV_PREFIX + suffix)
            else:
                env_overrides[field_name] = value

        if env_overrides:
            self.logger.info("Applied environment variable overrides", overrides=list(env_overrides.keys()))
            data = {**data, **env_overrides}

        return data

    def validate_config(self, config: SyncConfig) -> List[str]:
        """Return a list of warnings for a config that is valid but questionable."""
        warnings = []

        if not config.is_connectable:
            warnings.append("Nextcloud URL, username and password or token are required to connect")

        if config.nextcloud_url.startswith("http://"):
            warnings.append("Nextcloud URL uses plain HTTP; credentials are sent unencrypted")

        if config.password and config.access_token:
            warnings.append("Both password and access token are set; only the active mode is used")

        if config.collective_path == '/':
            warnings.append("Collective path is the storage root; every markdown file in the account will sync")

        if config.sync_interval == 0 and not config.sync_on_save:
            warnings.append("Interval sync and sync-on-save are both disabled; only manual syncs will run")

        if warnings:
            self.logger.warning("Configuration validation warnings", warnings=warnings)
        else:
            self.logger.info("Configuration validation passed")

        return warnings


def load_config_from_env() -> SyncConfig:
    """Load configuration from environment variables and default files.

    Looks for configuration files in this order:
    1. COLLECTIVES_CONFIG_FILE environment variable
    2. ./config/collectives.yaml, .yml, .json
    3. ./collectives.yaml, .yml, .json

    If no file is found, the defaults plus environment overrides are used.
    """
    loader = ConfigLoader()
    logger = get_logger("load_config_from_env")

    config_file = os.getenv('COLLECTIVES_CONFIG_FILE')
    if config_file:
        if os.path.exists(config_file):
            return loader.load_from_file(config_file)
        logger.warning("Specified config file not found", file=config_file)

    possible_files = [
        './config/collectives.yaml',
        './config/collectives.yml',
        './config/collectives.json',
        './collectives.yaml',
        './collectives.yml',
        './collectives.json'
    ]

    for file_path in possible_files:
        if os.path.exists(file_path):
            logger.info("Found configuration file", file=file_path)
            return loader.load_from_file(file_path)

    logger.info("No configuration file found, using defaults")
    return loader.load_from_dict({})
