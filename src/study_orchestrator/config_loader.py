# config_loader.py
import os
import re
from typing import Any, Dict

import chardet
import yaml
from loguru import logger
from pydantic import ValidationError

from .config import AppConfig


_ENV_PATTERN = re.compile(r"\$\{(\w+)\}")


def read_yaml(config_path: str) -> Dict[str, Any]:
    """
    Read the specified YAML configuration file with environment variable substitution
    and guess encoding. Return the configuration data as a dictionary.

    Args:
        config_path: Path to the YAML configuration file.

    Returns:
        Configuration data as a dictionary.

    Raises:
        FileNotFoundError: If the configuration file is not found.
        IOError: If the configuration file cannot be read.
    """

    if not os.path.exists(config_path):
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    content = load_text_file_with_guess_encoding(config_path)
    if content is None:
        raise IOError(f"Failed to read configuration file: {config_path}")

    def replacer(match):
        env_var = match.group(1)
        return os.getenv(env_var, match.group(0))

    content = _ENV_PATTERN.sub(replacer, content)

    try:
        return yaml.safe_load(content) or {}
    except yaml.YAMLError as e:
        logger.critical(f"Error parsing YAML file: {e}")
        raise e


def _format_validation_error(error: ValidationError) -> str:
    """Render a ValidationError as one readable line per problem."""
    error_messages = []

    for err in error.errors():
        location = " -> ".join(str(loc) for loc in err["loc"])
        error_type = err["type"]
        msg = err["msg"]
        input_value = err.get("input", "N/A")

        if error_type == "missing":
            error_messages.append(
                f"  - '{location}': required field is missing."
            )
        elif error_type in ("string_type", "int_type", "float_type", "bool_type"):
            expected = error_type.split("_")[0]
            error_messages.append(
                f"  - '{location}': expected {expected}, got {input_value!r}"
            )
        elif error_type == "value_error":
            error_messages.append(f"  - '{location}': {msg}")
        elif "greater_than" in error_type or "less_than" in error_type:
            error_messages.append(f"  - '{location}': value out of range. {msg}")
        else:
            error_messages.append(f"  - '{location}': {msg} (type: {error_type})")

    return "\n".join(error_messages)


def validate_config(config_data: dict) -> AppConfig:
    """
    Validate configuration data against the AppConfig model.

    Raises:
        ValidationError: if validation fails. A readable summary is logged first.
    """
    try:
        return AppConfig(**config_data)
    except ValidationError as e:
        formatted_errors = _format_validation_error(e)
        logger.critical(
            "\n"
            + "=" * 60
            + "\nConfiguration Validation Error\n"
            + "=" * 60
            + f"\n{formatted_errors}\n"
            + "=" * 60
        )
        logger.debug(f"Configuration data keys: {list(config_data.keys())}")
        raise e


def load_config(config_path: str) -> AppConfig:
    """Read, substitute and validate a YAML config file."""
    config = validate_config(read_yaml(config_path))
    logger.info(
        f"Configuration loaded from {config_path}: "
        f"{len(config.orchestrator.providers)} providers"
    )
    return config


def load_text_file_with_guess_encoding(file_path: str) -> str | None:
    """
    Load a text file with guessed encoding.

    Parameters:
    - file_path (str): The path to the text file.

    Returns:
    - str: The content of the text file or None if an error occurred.
    """
    encodings = ["utf-8", "utf-8-sig", "ascii"]

    for encoding in encodings:
        try:
            with open(file_path, "r", encoding=encoding) as file:
                return file.read()
        except UnicodeDecodeError:
            continue
    # If common encodings fail, try chardet to guess the encoding
    try:
        with open(file_path, "rb") as file:
            raw_data = file.read()
        detected = chardet.detect(raw_data)
        if detected["encoding"]:
            return raw_data.decode(detected["encoding"])
    except (OSError, UnicodeDecodeError, LookupError) as e:
        logger.error(f"Error detecting encoding for config file {file_path}: {e}")
    return None
