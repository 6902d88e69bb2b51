"""Configuration loader for the LDAP poller."""

import os
import re
from pathlib import Path
from typing import Any

import structlog
import yaml
from pydantic import ValidationError

from ldap_poller.models.config import AppConfig, CacheMethod

log = structlog.stdlib.get_logger()


class ConfigurationError(Exception):
    """Raised when configuration is invalid or missing."""

    pass


class ConfigLoader:
    """Loads and validates application configuration from YAML files and environment variables."""

    def __init__(self, config_dir: str | Path | None = None) -> None:
        """
        Initialize the ConfigLoader.

        Args:
            config_dir: Directory holding <env>.yaml files. Defaults to ./config
                next to the package.
        """
        self.env_var_pattern = re.compile(r"\$\{([^}]+)\}")
        self.config_dir = (
            Path(config_dir) if config_dir is not None else Path(__file__).parent.parent.parent / "config"
        )

    def load_config(self, config_path: str | None = None) -> AppConfig:
        """Load configuration from YAML file with environment variable overrides.

        Args:
            config_path: Path to the configuration YAML file. If None, uses the
                file selected by LDAP_POLLER_ENV, falling back to default.yaml

        Returns:
            AppConfig: Validated application configuration

        Raises:
            ConfigurationError: If configuration is missing, unparsable or invalid
        """
        if config_path is None:
            config_path = self._get_default_config_path()

        log.info("loading_configuration", config_path=config_path)

        config_dict = self._load_yaml_file(config_path)
        config_dict = self._substitute_env_vars(config_dict)

        try:
            app_config = AppConfig(**config_dict)
        except ValidationError as e:
            log.error("configuration_validation_failed", error=str(e))
            raise ConfigurationError(f"Configuration validation failed: {e}") from e

        log.info("configuration_loaded_successfully", url=str(app_config.ldap.url))
        return app_config

    def _get_default_config_path(self) -> str:
        env = os.getenv("LDAP_POLLER_ENV", "default")
        config_file = self.config_dir / f"{env}.yaml"

        if not config_file.exists():
            config_file = self.config_dir / "default.yaml"

        if not config_file.exists():
            raise ConfigurationError(
                f"Configuration file not found: {config_file}. "
                f"Please create config/default.yaml or set LDAP_POLLER_ENV to a valid environment."
            )

        return str(config_file)

    def _load_yaml_file(self, config_path: str) -> dict[str, Any]:
        """Load YAML configuration file.

        Raises:
            ConfigurationError: If file cannot be read or parsed
        """
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                config_dict = yaml.safe_load(f)
        except FileNotFoundError as e:
            raise ConfigurationError(f"Configuration file not found: {config_path}") from e
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Failed to parse YAML file {config_path}: {e}") from e
        except OSError as e:
            raise ConfigurationError(f"Failed to load configuration file {config_path}: {e}") from e

        if config_dict is None:
            raise ConfigurationError(f"Configuration file is empty: {config_path}")
        if not isinstance(config_dict, dict):
            raise ConfigurationError(f"Configuration file must contain a mapping: {config_path}")

        log.debug("yaml_file_loaded", config_path=config_path)
        return config_dict

    def _substitute_env_vars(self, config: Any) -> Any:
        """Recursively substitute ${VAR_NAME} references with environment values."""
        if isinstance(config, dict):
            return {key: self._substitute_env_vars(value) for key, value in config.items()}
        elif isinstance(config, list):
            return [self._substitute_env_vars(item) for item in config]
        elif isinstance(config, str):
            return self._substitute_env_var_in_string(config)
        else:
            return config

    def _substitute_env_var_in_string(self, value: str) -> str:
        """Substitute environment variables in a string.

        Raises:
            ConfigurationError: If a referenced environment variable is not set
        """
        for var_name in self.env_var_pattern.findall(value):
            env_value = os.getenv(var_name)
            if env_value is None:
                raise ConfigurationError(
                    f"Required environment variable not set: {var_name}. "
                    f"Please set {var_name} in your environment."
                )
            value = value.replace(f"${{{var_name}}}", env_value)

        return value

    def validate_config(self, config: AppConfig) -> list[str]:
        """Check for settings that are valid but probably not what was intended.

        Args:
            config: Application configuration to validate

        Returns:
            List of warning messages (empty if no warnings)
        """
        warnings = []
        ldap = config.ldap

        if ldap.check_for_deleted_entries and ldap.cache_method == CacheMethod.DISABLED:
            warnings.append(
                "check_for_deleted_entries has no effect with cache_method 'disabled': "
                "nothing is cached, so no entry can be reported as removed"
            )

        if not ldap.check_for_deleted_entries and not ldap.attributes.updated:
            warnings.append(
                "attributes.updated is not set: every cycle performs a full scan"
            )

        if ldap.cache_method == CacheMethod.TRACKED_ATTRIBUTES and not ldap.attributes.tracked():
            warnings.append(
                "No tracked attributes configured: known entries are never reported as changed"
            )

        if ldap.connection.tls.no_tls_verify:
            warnings.append("TLS certificate verification is disabled")

        if warnings:
            log.warning("configuration_validation_warnings", warnings=warnings)

        return warnings
