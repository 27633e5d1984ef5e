"""Application settings and YAML configuration loading."""

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic_settings import BaseSettings, SettingsConfigDict

from .workflow.states import DEFAULT_PHASE_CATEGORIES, WorkflowStage, parse_phase


class Settings(BaseSettings):
    # App
    app_name: str = "specstate"
    debug: bool = False

    # Database (store side)
    database_url: str = "sqlite:///./specstate.db"

    # Store client
    store_url: str = "http://localhost:9082"
    request_timeout: float = 10.0  # seconds

    # Audit history
    history_limit: int = 50

    # Logging
    log_level: str = "INFO"
    log_dir: str = "./logs"
    file_logging: bool = False

    # Phase approval requirements
    phase_config_path: Optional[str] = None

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="SPECSTATE_",
        case_sensitive=False,
        extra="ignore",
    )

    def phase_categories(self) -> Dict[WorkflowStage, List[str]]:
        """Required categories per phase, from ``phase_config_path`` if set."""
        if not self.phase_config_path:
            return {phase: list(categories) for phase, categories in DEFAULT_PHASE_CATEGORIES.items()}
        return load_phase_categories(self.phase_config_path)


@lru_cache
def get_settings() -> Settings:
    return Settings()


def load_config(config_path: str) -> Dict[str, Any]:
    """Load configuration from YAML file.

    Args:
        config_path: Path to configuration file

    Returns:
        Configuration dictionary

    Raises:
        FileNotFoundError: If config file doesn't exist
        TypeError: If the document root is not a mapping
        yaml.YAMLError: If config file is invalid YAML
    """
    config_file = Path(config_path)

    if not config_file.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with config_file.open("r") as f:
        config = yaml.safe_load(f)

    if config is None:
        config = {}

    if not isinstance(config, dict):
        raise TypeError(
            f"Configuration root must be a mapping, got {type(config).__name__}"
        )

    return _expand_env_vars(config)


def _expand_env_vars(obj: Any) -> Any:
    """Recursively expand environment variables in configuration."""
    if isinstance(obj, dict):
        return {key: _expand_env_vars(value) for key, value in obj.items()}
    elif isinstance(obj, list):
        return [_expand_env_vars(item) for item in obj]
    elif isinstance(obj, str):
        return os.path.expandvars(obj)
    else:
        return obj


def load_phase_categories(config_path: str) -> Dict[WorkflowStage, List[str]]:
    """Load the categories each phase requires before it can be approved.

    The file holds a ``phases`` mapping of phase name to category list::

        phases:
          intent: [vision, ideation, storyboard]
          specification: [capabilities, enablers]

    Phases not listed keep their default requirements.

    Raises:
        FileNotFoundError: If config file doesn't exist
        TypeError: If ``phases`` or a category list has the wrong shape
        ValueError: If a phase name is unknown
    """
    config = load_config(config_path)
    phases = config.get("phases") or {}
    if not isinstance(phases, dict):
        raise TypeError(f"'phases' must be a mapping, got {type(phases).__name__}")

    categories = {phase: list(names) for phase, names in DEFAULT_PHASE_CATEGORIES.items()}
    for name, required in phases.items():
        phase = parse_phase(name)
        if required is None:
            required = []
        if not isinstance(required, list):
            raise TypeError(
                f"Categories for phase {phase.value} must be a list, got {type(required).__name__}"
            )
        categories[phase] = [str(item).strip().lower() for item in required]

    return categories
