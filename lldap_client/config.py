"""
Configuration loading for the LLDAP client.

Connection parameters come from an optional YAML file and environment
variables, which take precedence over the file. The core never reads the
environment itself; it is handed a ConnectionSettings built here.
"""

import logging
import os
from typing import Any, Dict, Optional, Tuple
from urllib.parse import urlparse

import yaml

from lldap_client.logging_setup import security_logger
from lldap_client.session import ConnectionSettings

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = 'lldap.yaml'

TRUE_VALUES = ('1', 'true', 'yes', 'on')
FALSE_VALUES = ('0', 'false', 'no', 'off')


class ConfigurationError(Exception):
    """Raised when configuration is invalid or missing required fields."""
    pass


def parse_bool(value: Any, name: str) -> bool:
    """Parse a boolean setting given as a bool or a string."""
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in TRUE_VALUES:
        return True
    if text in FALSE_VALUES:
        return False
    raise ConfigurationError(f"Invalid boolean value for {name}: {value!r}")


class ConfigLoader:
    """Handles loading and validation of client configuration."""

    ENV_OVERRIDES = {
        'http_url': 'LLDAP_HTTP_URL',
        'ldap_url': 'LLDAP_LDAP_URL',
        'username': 'LLDAP_USER',
        'password': 'LLDAP_PASSWORD',
        'base_dn': 'LLDAP_BASE_DN',
        'insecure_skip_cert_check': 'INSECURE_CERT',
    }

    LLDAP_DEFAULTS = {
        'username': 'admin',
        'base_dn': 'dc=example,dc=com',
        'insecure_skip_cert_check': False,
        'ldap_dial_timeout': 5,
        'http_timeout': 30,
    }

    LOGGING_DEFAULTS = {
        'level': 'INFO',
        'log_dir': 'logs',
        'rotation': 'daily',
        'retention_days': 7,
        'console_output': True,
        'console_level': 'WARNING',
    }

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize config loader.

        Args:
            config_path: Path to config file. If None, uses LLDAP_CONFIG env var or 'lldap.yaml'
        """
        self.explicit_path = config_path is not None
        self.config_path = config_path or os.getenv('LLDAP_CONFIG', DEFAULT_CONFIG_PATH)
        self.config = {}

    def load(self) -> Dict[str, Any]:
        """
        Load configuration from file and apply environment overrides.

        Returns:
            Parsed and validated configuration dictionary

        Raises:
            ConfigurationError: If an explicit config file is missing or validation fails
        """
        self.config = self._read_file()

        self._apply_env_overrides()
        self._apply_defaults()
        self._validate()

        logger.info(f"Configuration loaded for {self.config['lldap'].get('http_url')}")
        return self.config

    def _read_file(self) -> Dict[str, Any]:
        try:
            with open(self.config_path, 'r') as f:
                data = yaml.safe_load(f)
        except FileNotFoundError:
            if self.explicit_path:
                raise ConfigurationError(f"Configuration file not found: {self.config_path}")
            logger.debug(f"No configuration file at {self.config_path}, using environment only")
            return {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in config file: {e}")

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigurationError(f"Configuration file {self.config_path} must contain a mapping")

        security_logger.log_configuration_access(self.config_path)
        return data

    def _apply_env_overrides(self):
        lldap_config = self.config.setdefault('lldap', {}) or {}
        self.config['lldap'] = lldap_config
        for key, env_var in self.ENV_OVERRIDES.items():
            env_value = os.getenv(env_var)
            if env_value:
                lldap_config[key] = env_value
                logger.debug(f"Applied environment override for lldap.{key}")

    def _apply_defaults(self):
        lldap_config = self.config['lldap']
        for key, value in self.LLDAP_DEFAULTS.items():
            lldap_config.setdefault(key, value)

        logging_config = self.config.setdefault('logging', {}) or {}
        self.config['logging'] = logging_config
        for key, value in self.LOGGING_DEFAULTS.items():
            logging_config.setdefault(key, value)

    def _validate(self):
        """Validate connection parameters, collecting every problem."""
        errors = []
        lldap_config = self.config['lldap']

        http_url = lldap_config.get('http_url')
        if not http_url:
            errors.append("Missing required field: lldap.http_url")
        elif urlparse(str(http_url)).scheme not in ('http', 'https'):
            errors.append(f"lldap.http_url must start with http:// or https://: {http_url}")

        ldap_url = lldap_config.get('ldap_url')
        if not ldap_url:
            errors.append("Missing required field: lldap.ldap_url")
        elif urlparse(str(ldap_url)).scheme not in ('ldap', 'ldaps'):
            errors.append(f"lldap.ldap_url must start with ldap:// or ldaps://: {ldap_url}")

        for field in ('password', 'base_dn'):
            if not lldap_config.get(field):
                errors.append(f"Missing required field: lldap.{field}")

        try:
            lldap_config['insecure_skip_cert_check'] = parse_bool(
                lldap_config['insecure_skip_cert_check'], 'insecure_skip_cert_check')
        except ConfigurationError as e:
            errors.append(str(e))

        for field in ('ldap_dial_timeout', 'http_timeout'):
            try:
                lldap_config[field] = int(lldap_config[field])
            except (TypeError, ValueError):
                errors.append(f"lldap.{field} must be an integer: {lldap_config[field]!r}")

        if errors:
            raise ConfigurationError("Configuration validation failed:\n" + "\n".join(f"  - {error}" for error in errors))

    def settings(self) -> ConnectionSettings:
        """Build ConnectionSettings from the loaded configuration."""
        lldap_config = self.config['lldap']
        return ConnectionSettings(
            http_url=str(lldap_config['http_url']),
            ldap_url=str(lldap_config['ldap_url']),
            username=str(lldap_config['username']),
            password=str(lldap_config['password']),
            base_dn=str(lldap_config['base_dn']),
            insecure_skip_cert_check=lldap_config['insecure_skip_cert_check'],
            ldap_dial_timeout=lldap_config['ldap_dial_timeout'],
            http_timeout=lldap_config['http_timeout'],
        )


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


def load_settings(config_path: Optional[str] = None) -> Tuple[ConnectionSettings, Dict[str, Any]]:
    """
    Load configuration and build connection settings.

    Returns:
        Tuple of (ConnectionSettings, logging configuration)
    """
    loader = ConfigLoader(config_path)
    config = loader.load()
    return loader.settings(), config['logging']
