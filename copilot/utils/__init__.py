"""Utility modules"""

from .config_loader import CopilotConfig, RuleSettings, load_config
from .errors import (
    CopilotError,
    ConfigurationError,
    DocumentNotFoundError,
    PreconditionFailedError,
    InvalidTransitionError,
    LLMError,
    StoreError
)

__all__ = [
    "CopilotConfig",
    "RuleSettings",
    "load_config",
    "CopilotError",
    "ConfigurationError",
    "DocumentNotFoundError",
    "PreconditionFailedError",
    "InvalidTransitionError",
    "LLMError",
    "StoreError"
]
