"""
Configuration Loader - OplogSettings from YAML files, environment and keyword overrides

Precedence, highest first: keyword overrides, the YAML file, OPLOG_* environment
variables, field defaults. A YAML file may hold the settings at its top level or
under an ``oplog:`` section, so the oplog block can live in a larger application file.
"""

import copy
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import structlog
import yaml

from mongo_oplog.config.settings import OplogSettings

logger = structlog.get_logger(__name__)

CONFIG_FILE_ENV = "OPLOG_CONFIG_FILE"
SECTION = "oplog"


def load_yaml_config(file_path: str, section: Optional[str] = SECTION) -> Dict[str, Any]:
    """
    Read the oplog settings mapping from a YAML file

    Args:
        file_path: Path to YAML file
        section: Top-level key to read when present (None reads the whole file)

    Raises:
        FileNotFoundError: If the file doesn't exist
        yaml.YAMLError: If YAML parsing fails
        ValueError: If the file (or its section) is not a mapping
    """
    path = Path(file_path)
    if not path.is_file():
        raise FileNotFoundError(f"Configuration file not found: {file_path}")

    try:
        with path.open("r", encoding="utf-8") as f:
            document = yaml.safe_load(f)
    except yaml.YAMLError as e:
        logger.error("Invalid YAML in configuration file", path=file_path, error=str(e))
        raise

    if document is None:
        logger.warning("Empty configuration file", path=file_path)
        return {}
    if not isinstance(document, dict):
        raise ValueError(f"Configuration file {file_path} must contain a mapping")

    if section and section in document:
        document = document[section] or {}
        if not isinstance(document, dict):
            raise ValueError(f"Section '{section}' of {file_path} must be a mapping")

    return document


def merge_configs(*configs: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Deep-merge mappings into a new dict; later mappings win, inputs are left untouched"""
    merged: Dict[str, Any] = {}
    for config in configs:
        if config:
            merged = _merged(merged, config)
    return merged


def _merged(base: Mapping[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    result = dict(base)
    for key, value in override.items():
        if isinstance(result.get(key), Mapping) and isinstance(value, Mapping):
            result[key] = _merged(result[key], value)
        else:
            result[key] = copy.deepcopy(value)
    return result


def load_config(config_path: Optional[str] = None, **overrides: Any) -> OplogSettings:
    """
    Build validated OplogSettings

    Args:
        config_path: YAML file to read; defaults to $OPLOG_CONFIG_FILE when set
        **overrides: Field values taking precedence over the file, e.g.
            ``cursor={"batch_size": 100}``

    Raises:
        FileNotFoundError: If the config file doesn't exist
        yaml.YAMLError: If YAML parsing fails
        pydantic.ValidationError: If a value is invalid

    Examples:
        >>> config = load_config()
        >>> config = load_config("config/oplog.yaml", namespace="local.oplog.rs")
    """
    path = config_path or os.environ.get(CONFIG_FILE_ENV)
    file_config = load_yaml_config(path) if path else {}

    config = OplogSettings(**merge_configs(file_config, overrides))
    logger.info(
        "Configuration loaded",
        source=path or "environment",
        namespace=config.namespace,
        await_data=config.cursor.await_data,
    )
    return config
