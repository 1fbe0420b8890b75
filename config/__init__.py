"""Configuration module for the RunInsight churn prediction service."""

import os
from pathlib import Path

import yaml

# Project root directory
ROOT_DIR = Path(__file__).parent.parent.absolute()

# Load configuration
CONFIG_PATH = ROOT_DIR / "config" / "config.yaml"

# Environment variables that override values from the YAML file
ENV_OVERRIDES = {
    "GATEWAY_BASE_URL": ("gateway", "base_url"),
    "PREDICTION_API_URL": ("prediction", "api_url"),
    "LOG_LEVEL": ("logging", "level"),
}


def load_config(path: Path = CONFIG_PATH) -> dict:
    """Load configuration from YAML file."""
    with open(path, "r") as f:
        config = yaml.safe_load(f) or {}

    for env_var, (section, key) in ENV_OVERRIDES.items():
        value = os.getenv(env_var)
        if value:
            config.setdefault(section, {})[key] = value

    return config


def get_config() -> dict:
    """Get configuration dictionary."""
    return load_config()


# Export commonly used paths
LOGS_DIR = ROOT_DIR / "logs"
OUTPUTS_DIR = ROOT_DIR / "outputs"
