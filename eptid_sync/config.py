"""
Configuration loading and management for eptid-sync.

This module handles loading configuration from YAML files and environment variables,
with validation and defaults. The mapper options are exposed as an immutable
MapperConfig built once at startup.
"""

import os
import yaml
import logging
from types import MappingProxyType
from typing import Dict, Any, Mapping, Optional

from eptid_sync.saml import NameFormat

logger = logging.getLogger(__name__)

ATTRIBUTE_NAME = 'attribute.name'
ATTRIBUTE_FRIENDLY_NAME = 'attribute.friendly.name'
ATTRIBUTE_NAME_FORMAT = 'attribute.name.format'
USER_ATTRIBUTE = 'user.attribute'

ATTRIBUTE_NAME_DEFAULT = 'urn:oid:1.3.6.1.4.1.5923.1.1.1.10'
ATTRIBUTE_FRIENDLY_NAME_DEFAULT = 'eduPersonTargetedID'
ATTRIBUTE_NAME_FORMAT_DEFAULT = NameFormat.ATTRIBUTE_FORMAT_URI.name
USER_ATTRIBUTE_DEFAULT = 'eduPersonTargetedID'

MAPPER_DEFAULTS = {
    ATTRIBUTE_NAME: ATTRIBUTE_NAME_DEFAULT,
    ATTRIBUTE_FRIENDLY_NAME: ATTRIBUTE_FRIENDLY_NAME_DEFAULT,
    ATTRIBUTE_NAME_FORMAT: ATTRIBUTE_NAME_FORMAT_DEFAULT,
    USER_ATTRIBUTE: USER_ATTRIBUTE_DEFAULT,
}


class ConfigurationError(Exception):
    """Raised when configuration is invalid or missing required fields."""
    pass


class MapperConfig(Mapping):
    """
    Read-only view of the mapper options.

    Behaves like a plain mapping keyed by option name (``attribute.name`` ...).
    Options explicitly set to null keep the value None.
    """

    def __init__(self, options: Optional[Mapping[str, Any]] = None):
        merged = dict(MAPPER_DEFAULTS)
        if options:
            merged.update(options)
        self._options = MappingProxyType(merged)

    def __getitem__(self, key):
        return self._options[key]

    def __iter__(self):
        return iter(self._options)

    def __len__(self):
        return len(self._options)

    def __repr__(self):
        return f"MapperConfig({dict(self._options)!r})"

    @property
    def attribute_name(self) -> Optional[str]:
        return self._options.get(ATTRIBUTE_NAME)

    @property
    def attribute_friendly_name(self) -> Optional[str]:
        return self._options.get(ATTRIBUTE_FRIENDLY_NAME)

    @property
    def attribute_name_format(self) -> Optional[str]:
        return self._options.get(ATTRIBUTE_NAME_FORMAT)

    @property
    def user_attribute(self) -> Optional[str]:
        return self._options.get(USER_ATTRIBUTE)


class ConfigLoader:
    """Handles loading and validation of application configuration."""

    # Environment variable mappings for sensitive or deployment specific fields
    ENV_OVERRIDES = {
        'ldap.bind_password': 'LDAP_BIND_PASSWORD',
        f'mapper.{USER_ATTRIBUTE}': 'EPTID_USER_ATTRIBUTE',
    }

    # Sections an environment override must not create on its own
    OPTIONAL_SECTIONS = ('ldap',)

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize config loader.

        Args:
            config_path: Path to config file. If None, uses CONFIG_PATH env var or 'config.yaml'
        """
        self.config_path = config_path or os.getenv('CONFIG_PATH', 'config.yaml')
        self.config = {}

    def load(self) -> Dict[str, Any]:
        """
        Load configuration from file and apply environment overrides.

        Returns:
            Parsed and validated configuration dictionary

        Raises:
            ConfigurationError: If config file not found or validation fails
        """
        try:
            with open(self.config_path, 'r') as f:
                self.config = yaml.safe_load(f) or {}
        except FileNotFoundError:
            raise ConfigurationError(f"Configuration file not found: {self.config_path}")
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in config file: {e}")

        if not isinstance(self.config, dict):
            raise ConfigurationError("Configuration root must be a mapping")

        self._apply_env_overrides()
        self._validate()
        self._apply_defaults()

        logger.info(f"Configuration loaded successfully from {self.config_path}")
        return self.config

    def _apply_env_overrides(self):
        """Apply environment variable overrides."""
        for config_key, env_var in self.ENV_OVERRIDES.items():
            env_value = os.getenv(env_var)
            section = config_key.split('.', 1)[0]
            if section in self.OPTIONAL_SECTIONS and section not in self.config:
                continue
            if env_value:
                self._set_nested_value(self.config, config_key, env_value)
                logger.debug(f"Applied environment override for {config_key}")

    def _set_nested_value(self, config: Dict, key_path: str, value: Any):
        """Set a nested value; the first dot separates the section from the option name."""
        section, key = key_path.split('.', 1)
        if not isinstance(config.get(section), dict):
            config[section] = {}
        config[section][key] = value

    def _validate(self):
        """Validate configuration fields."""
        errors = []

        mapper_config = self.config.get('mapper') or {}
        if not isinstance(mapper_config, dict):
            errors.append("The mapper section must be a mapping")
            mapper_config = {}

        for key, value in mapper_config.items():
            if key not in MAPPER_DEFAULTS:
                errors.append(f"Unknown mapper option: {key}")
            elif value is not None and not isinstance(value, str):
                errors.append(f"Mapper option {key} must be a string")

        name_format = mapper_config.get(ATTRIBUTE_NAME_FORMAT)
        if isinstance(name_format, str):
            try:
                NameFormat.from_config(name_format)
            except ValueError:
                options = ', '.join(member.name for member in NameFormat)
                errors.append(f"Invalid {ATTRIBUTE_NAME_FORMAT} '{name_format}', expected one of: {options}")

        if ATTRIBUTE_NAME in mapper_config and ATTRIBUTE_FRIENDLY_NAME in mapper_config:
            if not mapper_config[ATTRIBUTE_NAME] and not mapper_config[ATTRIBUTE_FRIENDLY_NAME]:
                errors.append(f"At least one of {ATTRIBUTE_NAME} and {ATTRIBUTE_FRIENDLY_NAME} must be set")

        # LDAP section is optional, but complete when present
        ldap_config = self.config.get('ldap')
        if ldap_config is not None:
            if not isinstance(ldap_config, dict):
                errors.append("The ldap section must be a mapping")
            else:
                for field in ['server_url', 'bind_dn', 'bind_password']:
                    if not ldap_config.get(field):
                        errors.append(f"Missing required LDAP field: {field}")

        if errors:
            raise ConfigurationError("Configuration validation failed:\n" + "\n".join(f"  - {error}" for error in errors))

    def _apply_defaults(self):
        """Apply default values for optional configuration fields."""
        mapper_config = self.config.get('mapper')
        if not isinstance(mapper_config, dict):
            mapper_config = self.config['mapper'] = {}
        for key, value in MAPPER_DEFAULTS.items():
            mapper_config.setdefault(key, value)

        if isinstance(self.config.get('ldap'), dict):
            ldap_defaults = {
                'user_base_dn': '',
                'user_filter': '(objectClass=person)',
                'uid_attribute': 'uid',
            }
            for key, value in ldap_defaults.items():
                self.config['ldap'].setdefault(key, value)

        # Logging defaults
        logging_defaults = {
            'level': 'INFO',
            'log_dir': 'logs',
            'rotation': 'daily',
            'retention_days': 7
        }
        logging_config = self.config.setdefault('logging', {})
        for key, value in logging_defaults.items():
            logging_config.setdefault(key, value)

        error_defaults = {
            'max_retries': 3,
            'retry_wait_seconds': 5,
        }
        error_config = self.config.setdefault('error_handling', {})
        for key, value in error_defaults.items():
            error_config.setdefault(key, value)


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Convenience function to load configuration.

    Args:
        config_path: Path to config file

    Returns:
        Loaded configuration dictionary
    """
    loader = ConfigLoader(config_path)
    return loader.load()


def mapper_config_from(config: Dict[str, Any]) -> MapperConfig:
    """Build the immutable mapper options from a loaded configuration."""
    return MapperConfig(config.get('mapper') or {})
