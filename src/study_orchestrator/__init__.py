"""Request orchestration core for a conversational study assistant."""

from .app_context import AppContext
from .config import AppConfig
from .config_loader import load_config
from .exceptions import AllProvidersExhausted, OrchestratorError

__version__ = "0.1.0"

__all__ = [
    "AllProvidersExhausted",
    "AppConfig",
    "AppContext",
    "OrchestratorError",
    "load_config",
]
