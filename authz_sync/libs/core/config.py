"""
Configuration Management

Handles loading and managing configuration files for the authz-sync engine.
"""

import logging
from pathlib import Path
from typing import Dict, Any

try:
    import yaml
except ImportError:
    raise ImportError("PyYAML is required. Install with: pip install PyYAML")

from .exceptions import ConfigurationError
from .constants import KubernetesConstants, NetworkConstants, FileConstants

logger = logging.getLogger(__name__)


class ConfigManager:
    """Manages configuration loading and validation"""

    # Configuration schema - defines expected structure and types
    CONFIG_SCHEMA = {
        'cluster': {
            'type': dict,
            'required': False,
            'fields': {
                'name': {'type': str, 'required': False}
            }
        },
        'store': {
            'type': dict,
            'required': False,
            'fields': {
                'request_timeout': {'type': (int, float), 'required': False},
                'watch_timeout': {'type': int, 'required': False}
            }
        },
        'hooks': {
            'type': dict,
            'required': False,
            'fields': {
                'max_retries': {'type': int, 'required': False},
                'backoff_seconds': {'type': (int, float), 'required': False}
            }
        },
        'global': {
            'type': dict,
            'required': False,
            'fields': {
                'skip_tls': {'type': bool, 'required': False},
                'debug': {'type': bool, 'required': False}
            }
        },
    }

    DEFAULTS = {
        'cluster': {
            'name': KubernetesConstants.DEFAULT_CLUSTER_NAME
        },
        'store': {
            'request_timeout': NetworkConstants.DEFAULT_TIMEOUT,
            'watch_timeout': NetworkConstants.WATCH_TIMEOUT
        },
        'hooks': {
            'max_retries': NetworkConstants.DEFAULT_MAX_RETRIES,
            'backoff_seconds': NetworkConstants.DEFAULT_BACKOFF_SECONDS
        },
        'global': {
            'skip_tls': False,
            'debug': False
        }
    }

    def __init__(self):
        """Initialize configuration manager"""
        self.config_data = {}
        self.config_file_path = None

    def load_config(self, config_path: str) -> Dict[str, Any]:
        """
        Load configuration from YAML file

        Args:
            config_path: Path to configuration file

        Returns:
            Dict containing configuration data

        Raises:
            ConfigurationError: If configuration file cannot be loaded or is invalid
        """
        config_file = Path(config_path)

        if not config_file.exists():
            raise ConfigurationError(f"Configuration file not found: {config_path}")

        if not config_file.is_file():
            raise ConfigurationError(f"Configuration path is not a file: {config_path}")

        try:
            with open(config_file, 'r') as f:
                config_data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in configuration file {config_path}: {e}")
        except OSError as e:
            raise ConfigurationError(f"Failed to load configuration from {config_path}: {e}")

        self.load_dict(config_data)
        self.config_file_path = config_path
        logger.info(f"Successfully loaded configuration from {config_path}")
        return self.config_data

    def load_dict(self, config_data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Load configuration from an already-parsed mapping

        Raises:
            ConfigurationError: If configuration is invalid
        """
        if not isinstance(config_data, dict):
            raise ConfigurationError("Configuration must be a dictionary")

        self._validate_against_schema(config_data, self.CONFIG_SCHEMA, "config")
        self.config_data = config_data
        return self.config_data

    def _validate_against_schema(self, data: Dict[str, Any], schema: Dict[str, Any], path: str = "") -> None:
        """
        Validate data against schema definition

        Args:
            data: Data to validate
            schema: Schema definition
            path: Current path for error reporting

        Raises:
            ConfigurationError: If data doesn't match schema
        """
        for key, field_schema in schema.items():
            current_path = f"{path}.{key}" if path else key

            if key in data:
                value = data[key]

                # Skip None values for optional fields
                if value is None and not field_schema.get('required', False):
                    continue

                expected_type = field_schema['type']
                # bool is an int subclass; numeric fields must not accept it
                numeric = expected_type in (int, float) or (
                    isinstance(expected_type, tuple) and int in expected_type)
                if isinstance(value, bool) and numeric:
                    raise ConfigurationError(f"{current_path} must be a number")
                if not isinstance(value, expected_type):
                    if isinstance(expected_type, tuple):
                        type_name = "number"
                    else:
                        type_name = expected_type.__name__
                    raise ConfigurationError(f"{current_path} must be a {type_name}")

                if 'choices' in field_schema and value not in field_schema['choices']:
                    choices_str = ', '.join(f"'{c}'" for c in field_schema['choices'])
                    raise ConfigurationError(f"{current_path} must be one of: {choices_str}")

                if expected_type == dict and 'fields' in field_schema:
                    self._validate_against_schema(value, field_schema['fields'], current_path)

            elif field_schema.get('required', False):
                raise ConfigurationError(f"Required field {current_path} is missing")

    def get_config(self) -> Dict[str, Any]:
        """Get current configuration data"""
        return self.config_data.copy()

    def get_section(self, section: str) -> Dict[str, Any]:
        """
        Get specific configuration section merged over its defaults

        Args:
            section: Section name (e.g., 'store', 'hooks')

        Returns:
            Dict containing section data
        """
        merged = dict(self.DEFAULTS.get(section, {}))
        merged.update(self.config_data.get(section) or {})
        return merged

    def get_value(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value by key

        Args:
            key: Configuration key (supports dot notation like 'store.request_timeout')
            default: Default value if key not found in the file or the defaults

        Returns:
            Configuration value or default
        """
        for source in (self.config_data, self.DEFAULTS):
            value = source
            try:
                for k in key.split('.'):
                    value = value[k]
            except (KeyError, TypeError):
                continue
            if value is not None:
                return value
        return default

    def get_config_template_content(self) -> str:
        """
        Generate configuration template content as string without file I/O

        Returns:
            str: YAML configuration template content
        """
        header = (
            "# authz-sync Configuration File\n"
            "# Template for configuring the role binding reconciliation engine\n"
        )
        return header + yaml.safe_dump(self.DEFAULTS, default_flow_style=False, sort_keys=False)

    def generate_config_template(self, output_dir: str = None) -> str:
        """
        Generate configuration template file

        Args:
            output_dir: Directory to save template (optional)

        Returns:
            str: Path to generated template file

        Raises:
            ConfigurationError: If template generation fails
        """
        if output_dir:
            output_path = Path(output_dir)
            config_file = output_path / FileConstants.DEFAULT_CONFIG_FILE
        else:
            config_file = Path(FileConstants.DEFAULT_CONFIG_FILE)

        try:
            config_file.parent.mkdir(parents=True, exist_ok=True)
            with open(config_file, 'w') as f:
                f.write(self.get_config_template_content())
        except OSError as e:
            raise ConfigurationError(f"Failed to write configuration file: {e}")

        logger.info(f"Configuration file written: {config_file}")
        return str(config_file)
