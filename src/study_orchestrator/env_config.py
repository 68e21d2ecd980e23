"""
Environment configuration module.

Centralizes environment variable access. Values come from a .env file or
the process environment; provider credentials are never hard-coded.
"""

import os

from dotenv import load_dotenv

# Load .env file if it exists
load_dotenv()


def get_env(key: str, default: str = "") -> str:
    """Get environment variable with default fallback."""
    return os.getenv(key, default)


def get_env_int(key: str, default: int = 0) -> int:
    """Get environment variable as integer with default fallback."""
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def default_config_path() -> str:
    """Path of the YAML config file (``STUDY_ORCHESTRATOR_CONFIG``)."""
    return get_env("STUDY_ORCHESTRATOR_CONFIG", "conf.yaml")
