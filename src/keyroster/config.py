"""
keyroster configuration -- ~/.keyroster/config/config.yaml.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field

from .api import DEFAULT_API_URL

logger = logging.getLogger("keyroster.config")


class RosterConfig(BaseModel):
    """User configuration for team sync."""

    api_url: str = DEFAULT_API_URL
    request_timeout: float = Field(default=30.0, gt=0)
    request_expiry_days: int = Field(default=7, ge=1)
    editor: Optional[str] = None
    import_to_gpg: bool = False
    password_env_var: str = "KEYROSTER_PASSWORD"


def config_path(home: Path) -> Path:
    return Path(home).expanduser() / "config" / "config.yaml"


def load_config(home: Path) -> RosterConfig:
    """Load configuration, falling back to defaults if missing or invalid."""
    config_file = config_path(home)
    if config_file.exists():
        try:
            data = yaml.safe_load(config_file.read_text(encoding="utf-8")) or {}
            return RosterConfig(**data)
        except (yaml.YAMLError, ValueError, TypeError) as exc:
            logger.warning("Failed to load config %s: %s", config_file, exc)
    return RosterConfig()


def save_config(home: Path, config: RosterConfig) -> Path:
    """Persist configuration to disk."""
    config_file = config_path(home)
    config_file.parent.mkdir(parents=True, exist_ok=True)
    data = config.model_dump(mode="json")
    config_file.write_text(yaml.dump(data, default_flow_style=False), encoding="utf-8")
    return config_file
