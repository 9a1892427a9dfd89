"""Configuration file loader with validation"""

import os
import yaml
from pathlib import Path
from typing import Dict, Any, Optional
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from copilot.constants import DEFAULT_AMOUNT_THRESHOLD, DEFAULT_FRAUD_TOKEN, LLM_TIMEOUT_SECONDS
from .errors import ConfigurationError

DEFAULT_CONFIG_PATH = "config/copilot.yaml"

REQUIRED_KEYS = ['version', 'app', 'rules', 'llm', 'store', 'notifications']


class AppSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    app_id: str = Field("ai-financial-copilot", min_length=1)


class RuleSettings(BaseModel):
    """Thresholds for the anomaly rules"""
    model_config = ConfigDict(frozen=True)

    amount_threshold: float = Field(DEFAULT_AMOUNT_THRESHOLD, gt=0)
    fraud_token: str = Field(DEFAULT_FRAUD_TOKEN, min_length=1)


class LLMSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    base_url: str = "https://openrouter.ai/api/v1"
    model: str = "google/gemini-2.5-flash"
    api_key: Optional[str] = Field(None, repr=False)
    timeout_seconds: float = Field(float(LLM_TIMEOUT_SECONDS), gt=0)
    max_retries: int = Field(3, ge=1)
    temperature: float = Field(0.4, ge=0, le=2)


class StoreSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    backend: str = Field("memory", pattern="^(memory|redis)$")
    redis_url: str = "redis://localhost:6379/0"


class NotificationSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    recipient: str = "fraud-desk@example.com"


class CopilotConfig(BaseModel):
    """Immutable configuration built once at startup and passed to each component"""
    model_config = ConfigDict(frozen=True)

    version: str = "1.0"
    app: AppSettings = Field(default_factory=AppSettings)
    rules: RuleSettings = Field(default_factory=RuleSettings)
    llm: LLMSettings = Field(default_factory=LLMSettings)
    store: StoreSettings = Field(default_factory=StoreSettings)
    notifications: NotificationSettings = Field(default_factory=NotificationSettings)


def load_config(config_path: Optional[str] = None) -> CopilotConfig:
    """
    Load YAML configuration file with validation.
    Secrets and a few overrides are taken from the environment.

    Args:
        config_path: Path to configuration file (defaults to $COPILOT_CONFIG
            or config/copilot.yaml)

    Returns:
        Frozen CopilotConfig

    Raises:
        ConfigurationError: If file doesn't exist, is invalid YAML or fails validation
    """
    config_path = config_path or os.getenv("COPILOT_CONFIG", DEFAULT_CONFIG_PATH)
    config_file = Path(config_path)

    if not config_file.exists():
        raise ConfigurationError(f"Configuration file not found: {config_path}")

    try:
        with open(config_file, 'r') as f:
            raw = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in configuration file: {e}")

    if not isinstance(raw, dict):
        raise ConfigurationError(f"Configuration root must be a mapping: {config_path}")

    missing_keys = [key for key in REQUIRED_KEYS if key not in raw]
    if missing_keys:
        raise ConfigurationError(f"Missing required configuration keys: {missing_keys}")

    return build_config(apply_env_overrides(raw))


def apply_env_overrides(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Merge environment-provided secrets and overrides into raw config"""
    merged = {key: dict(value) if isinstance(value, dict) else value for key, value in raw.items()}

    api_key = os.getenv("OPENROUTER_API_KEY")
    if api_key:
        merged.setdefault('llm', {})['api_key'] = api_key

    model = os.getenv("DEFAULT_LLM_MODEL")
    if model:
        merged.setdefault('llm', {})['model'] = model

    backend = os.getenv("STORE_BACKEND")
    if backend:
        merged.setdefault('store', {})['backend'] = backend

    redis_url = os.getenv("REDIS_URL")
    if redis_url:
        merged.setdefault('store', {})['redis_url'] = redis_url

    return merged


def build_config(raw: Dict[str, Any]) -> CopilotConfig:
    """
    Validate a raw configuration mapping

    Raises:
        ConfigurationError: If any section fails validation
    """
    try:
        return CopilotConfig.model_validate(raw)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}")
