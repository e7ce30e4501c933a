"""Loading device descriptors and config payloads from files.

Descriptors and config.json payloads can be supplied as YAML or JSON
files; the format is chosen by file extension.
"""

import json
from pathlib import Path
from typing import Any

import yaml

from device_init.manifest.schema import DeviceDescriptor


def load_yaml(path: Path) -> dict[str, Any]:
    """Load a YAML file and return its contents as a dict.

    Args:
        path: Path to the YAML file.

    Returns:
        Parsed YAML content as a dictionary.

    Raises:
        FileNotFoundError: If the file does not exist.
        yaml.YAMLError: If the file is not valid YAML.
        ValueError: If the document is not a mapping.
    """
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Expected a YAML mapping, got {type(data).__name__}")
    return data


def load_json(path: Path) -> dict[str, Any]:
    """Load a JSON file and return its contents as a dict.

    Args:
        path: Path to the JSON file.

    Returns:
        Parsed JSON content as a dictionary.

    Raises:
        FileNotFoundError: If the file does not exist.
        json.JSONDecodeError: If the file is not valid JSON.
        ValueError: If the document is not an object.
    """
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"Expected a JSON object, got {type(data).__name__}")
    return data


def load_mapping(path: Path) -> dict[str, Any]:
    """Load a YAML or JSON mapping, chosen by file extension.

    Raises:
        ValueError: If the file extension is not supported.
    """
    suffix = path.suffix.lower()
    if suffix in (".yaml", ".yml"):
        return load_yaml(path)
    elif suffix == ".json":
        return load_json(path)
    else:
        raise ValueError(
            f"Unsupported file extension '{suffix}'. Use .yaml, .yml, or .json"
        )


def parse_manifest(data: dict[str, Any]) -> DeviceDescriptor:
    """Validate raw manifest data.

    Raises:
        pydantic.ValidationError: If data does not match the schema.
    """
    return DeviceDescriptor.model_validate(data)


def load_manifest(path: Path) -> DeviceDescriptor:
    """Load and validate a device descriptor from a YAML or JSON file.

    Args:
        path: Path to the manifest file.

    Returns:
        Validated DeviceDescriptor.

    Raises:
        ValueError: If file extension is not supported.
        FileNotFoundError: If the file does not exist.
        pydantic.ValidationError: If data does not match the schema.
    """
    return parse_manifest(load_mapping(path))


def load_config_payload(path: Path) -> dict[str, Any]:
    """Load a config.json payload from a YAML or JSON file."""
    return load_mapping(path)


__all__ = [
    "load_config_payload",
    "load_json",
    "load_manifest",
    "load_mapping",
    "load_yaml",
    "parse_manifest",
]
