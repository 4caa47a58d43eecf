"""
ConfigLoader module for loading and validating TOML or YAML client configuration files
"""

import os
import tomllib
import yaml
from pathlib import Path
from dataclasses import dataclass, field
from typing import Dict, Any, Optional

from .error_classifier import CMSClientError


class ConfigurationError(CMSClientError):
    """Raised when configuration is invalid or incomplete"""
    pass


class EnvironmentError(CMSClientError):
    """Raised when required environment variables are missing"""
    pass


@dataclass
class ClientConfig:
    """Configuration data class for the CMS client"""
    base_url: str
    authentication: Dict[str, Any]
    environment: Optional[str] = None
    timeout: float = 30.0
    retries: Dict[str, Any] = field(default_factory=dict)
    cache: Dict[str, Any] = field(default_factory=dict)
    logging: Dict[str, Any] = field(default_factory=dict)
    jobs: Dict[str, Any] = field(default_factory=dict)


class ConfigLoader:
    """Loads and validates TOML or YAML configuration files"""

    # Required configuration sections and their mandatory keys
    REQUIRED_SECTIONS = {
        'api': ['base_url'],
        'authentication': ['type']
    }

    # Optional sections that can have default empty values
    OPTIONAL_SECTIONS = [
        'retries',
        'cache',
        'logging',
        'jobs'
    ]

    SUPPORTED_AUTH_TYPES = ['bearer_token']

    # Retry keys understood by HTTPClient
    RETRY_KEYS = [
        'max_server_retries',
        'backoff_base',
        'backoff_factor',
        'jitter',
        'max_rate_limit_retries',
        'max_retry_after'
    ]

    @staticmethod
    def load_config(config_path: Path) -> ClientConfig:
        """
        Load client configuration, choosing the parser from the file suffix

        Args:
            config_path: Path to a .toml, .yaml or .yml file

        Returns:
            ClientConfig object with all configuration data

        Raises:
            FileNotFoundError: If config file doesn't exist
            ConfigurationError: If the file is invalid or incomplete
        """
        config_path = Path(config_path)
        if config_path.suffix.lower() == '.toml':
            return ConfigLoader.load_toml_config(config_path)
        if config_path.suffix.lower() in ('.yaml', '.yml'):
            return ConfigLoader.load_yaml_config(config_path)
        raise ConfigurationError(f"Unsupported configuration format: {config_path.suffix}")

    @staticmethod
    def load_toml_config(config_path: Path) -> ClientConfig:
        """
        Load client configuration from TOML file

        Raises:
            FileNotFoundError: If config file doesn't exist
            ConfigurationError: If TOML syntax is invalid or configuration is missing
        """
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        try:
            with open(config_path, 'rb') as f:
                config_data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigurationError(f"Invalid TOML syntax in {config_path}: {e}") from e

        return ConfigLoader.build_config(config_data)

    @staticmethod
    def load_yaml_config(config_path: Path) -> ClientConfig:
        """
        Load client configuration from YAML file

        Raises:
            FileNotFoundError: If config file doesn't exist
            ConfigurationError: If YAML syntax is invalid or configuration is missing
        """
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        try:
            with open(config_path, 'r') as f:
                config_data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML syntax in {config_path}: {e}") from e

        if not isinstance(config_data, dict):
            raise ConfigurationError(f"Configuration root must be a mapping in {config_path}")

        return ConfigLoader.build_config(config_data)

    @staticmethod
    def build_config(config_data: Dict[str, Any]) -> ClientConfig:
        """
        Validate parsed configuration data and build ClientConfig

        Args:
            config_data: Parsed configuration mapping

        Returns:
            ClientConfig object

        Raises:
            ConfigurationError: If required configuration is missing or invalid
        """
        ConfigLoader._validate_required_sections(config_data)

        api_section = config_data['api']
        authentication = config_data['authentication']

        if authentication['type'] not in ConfigLoader.SUPPORTED_AUTH_TYPES:
            raise ConfigurationError(f"Unsupported authentication type: {authentication['type']}")
        if 'token' not in authentication and 'token_env' not in authentication:
            raise ConfigurationError("Section [authentication] needs 'token' or 'token_env'")

        for section_name in ConfigLoader.OPTIONAL_SECTIONS:
            if not isinstance(config_data.get(section_name, {}), dict):
                raise ConfigurationError(f"Section [{section_name}] must be a table")

        retries = config_data.get('retries', {})
        unknown_retry_keys = set(retries) - set(ConfigLoader.RETRY_KEYS)
        if unknown_retry_keys:
            raise ConfigurationError(
                f"Unknown keys in section [retries]: {', '.join(sorted(unknown_retry_keys))}"
            )

        return ClientConfig(
            base_url=api_section['base_url'],
            authentication=authentication,
            environment=api_section.get('environment'),
            timeout=float(api_section.get('timeout', 30.0)),
            retries=retries,
            cache=config_data.get('cache', {}),
            logging=config_data.get('logging', {}),
            jobs=config_data.get('jobs', {})
        )

    @staticmethod
    def _validate_required_sections(config_data: Dict[str, Any]) -> None:
        """Collect every missing [api] or [authentication] entry into one ConfigurationError"""
        missing_items = []

        for section_name, required_keys in ConfigLoader.REQUIRED_SECTIONS.items():
            if section_name not in config_data:
                missing_items.append(f"Section [{section_name}]")
            else:
                section_data = config_data[section_name]
                for key in required_keys:
                    if key not in section_data:
                        missing_items.append(f"Key '{key}' in section [{section_name}]")

        if missing_items:
            raise ConfigurationError(
                f"Missing required configuration items: {', '.join(missing_items)}"
            )

    @staticmethod
    def validate_environment_variables(config: ClientConfig) -> bool:
        """Check that every `*_env` authentication entry names a set variable"""
        missing_vars = []

        for key, value in config.authentication.items():
            if key.endswith('_env') and isinstance(value, str):
                if not os.getenv(value):
                    missing_vars.append(value)

        if missing_vars:
            raise EnvironmentError(
                f"Missing required environment variables: {', '.join(missing_vars)}"
            )

        return True

    @staticmethod
    def get_environment_value(env_var_name: str) -> str:
        """Read a token variable, raising EnvironmentError when it is unset"""
        value = os.getenv(env_var_name)
        if value is None:
            raise EnvironmentError(f"Environment variable '{env_var_name}' is not set")
        return value

    @staticmethod
    def resolve_api_token(config: ClientConfig) -> str:
        """
        Return the API token, reading it from the environment when configured so

        Raises:
            EnvironmentError: If the referenced environment variable is not set
        """
        authentication = config.authentication
        if authentication.get('token'):
            return authentication['token']
        return ConfigLoader.get_environment_value(authentication['token_env'])
