# devstack_setup/config_loader.py
# -*- coding: utf-8 -*-
"""
Configuration loader for the stack bootstrap.

Handles loading settings from Pydantic model defaults, environment
variables, a YAML file and command-line options, applying a specific order
of precedence:
1. Pydantic Model Defaults
2. Environment Variables (via Pydantic's BaseSettings)
3. YAML Configuration File
4. Command-Line Options
"""

import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from pydantic import ValidationError

from devstack_common.errors import ConfigurationError

from .config_models import (
    AppSettings,
    GitLabSettings,
    GrafanaSettings,
    JenkinsSettings,
    NexusSettings,
    PrometheusSettings,
    SonarQubeSettings,
    VaultSettings,
)

module_logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "config.yaml"

SERVICE_SETTINGS_CLASSES = {
    "gitlab": GitLabSettings,
    "sonarqube": SonarQubeSettings,
    "nexus": NexusSettings,
    "jenkins": JenkinsSettings,
    "grafana": GrafanaSettings,
    "prometheus": PrometheusSettings,
    "vault": VaultSettings,
}


def _deep_update(
    source: Dict[str, Any], overrides: Dict[str, Any]
) -> Dict[str, Any]:
    """
    Recursively update ``source`` with the values of ``overrides``.

    Nested dictionaries are merged key by key. ``None`` values in
    ``overrides`` are ignored, so unset CLI options neither clobber YAML
    values nor hide field defaults.

    Returns:
        The updated ``source`` dictionary (modified in place).
    """
    for key, value in overrides.items():
        if (
            isinstance(value, dict)
            and key in source
            and isinstance(source[key], dict)
        ):
            source[key] = _deep_update(source[key], value)
        elif value is not None:
            source[key] = value
    return source


def read_yaml_config(
    config_file_path: Union[str, Path],
    required: bool = False,
    current_logger: Optional[logging.Logger] = None,
) -> Dict[str, Any]:
    """
    Read a YAML configuration file into a dictionary.

    Args:
        config_file_path: Path to the YAML file.
        required: Raise if the file does not exist instead of returning {}.
        current_logger: Optional logger to use instead of the module logger.

    Returns:
        The parsed mapping, or an empty dict when the file is absent.

    Raises:
        ConfigurationError: If the file is required but missing, cannot be
            parsed, or does not contain a mapping.
    """
    logger_to_use = current_logger if current_logger else module_logger
    path = Path(config_file_path)

    if not path.is_file():
        if required:
            raise ConfigurationError(f"Configuration file not found: {path}")
        logger_to_use.info(
            f"Configuration file '{path}' not found. Using defaults, environment variables, and CLI options."
        )
        return {}

    try:
        with open(path, "r", encoding="utf-8") as f:
            yaml_data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(
            f"Could not parse YAML config file '{path}': {e}"
        ) from e
    except OSError as e:
        raise ConfigurationError(
            f"Could not read config file '{path}': {e}"
        ) from e

    if yaml_data is None:
        return {}
    if not isinstance(yaml_data, dict):
        raise ConfigurationError(
            f"Config file '{path}' does not contain a YAML mapping."
        )

    logger_to_use.info(f"Loaded configuration from {path}")
    return yaml_data


def load_app_settings(
    cli_overrides: Optional[Dict[str, Any]] = None,
    config_file_path: Optional[Union[str, Path]] = None,
    current_logger: Optional[logging.Logger] = None,
) -> AppSettings:
    """
    Load application settings with defaults < env < YAML < CLI precedence.

    Service sections are instantiated through their own settings class so
    that environment variables such as ``GITLAB_TOKEN`` still apply to
    fields the YAML file does not mention.

    Args:
        cli_overrides: Values from the command line. ``None`` values are
            ignored. Nested service values use nested dicts.
        config_file_path: Path to the YAML configuration file. When omitted,
            ``config.yaml`` in the working directory is used if present.
        current_logger: Optional logger to use instead of the module logger.

    Returns:
        An instance of AppSettings with the fully resolved configuration.

    Raises:
        ConfigurationError: If the file cannot be read or validation fails.
    """
    logger_to_use = current_logger if current_logger else module_logger

    if config_file_path is None:
        values = read_yaml_config(
            DEFAULT_CONFIG_FILE, required=False, current_logger=logger_to_use
        )
    else:
        values = read_yaml_config(
            config_file_path, required=True, current_logger=logger_to_use
        )

    if cli_overrides:
        values = _deep_update(values, cli_overrides)

    try:
        for service_name, settings_class in SERVICE_SETTINGS_CLASSES.items():
            section = values.get(service_name)
            if section is None:
                continue
            if not isinstance(section, dict):
                raise ConfigurationError(
                    f"Section '{service_name}' must be a mapping, got {type(section).__name__}"
                )
            values[service_name] = settings_class(**section)

        final_settings = AppSettings(**values)
    except ValidationError as e:
        logger_to_use.error(f"Configuration validation failed: {e}")
        raise ConfigurationError(f"Configuration error: {e}") from e

    logger_to_use.debug("Successfully loaded and validated application settings")
    return final_settings
