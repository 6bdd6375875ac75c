from __future__ import annotations

import os
from typing import Literal, Optional

import yaml
from pydantic import BaseModel, Field

from .constants import DEFAULT_ACTIVE_PAGE_SIZE


class EngineSettings(BaseModel):
    """Settings controlling how triggers are fired."""

    # "template": skip a template once any of its tasks exists for the entity.
    # "step": always create only the steps that are still missing.
    idempotency_scope: Literal["template", "step"] = "template"
    # "idempotency_key": attach an entity/template/step key to every task so
    # backends that honour keys can drop concurrent duplicates.
    duplicate_guard: Literal["none", "idempotency_key"] = "none"
    active_page_size: int = Field(DEFAULT_ACTIVE_PAGE_SIZE, gt=0)


class TaskchainConfig(BaseModel):
    """Top-level configuration model."""

    database_url: Optional[str] = None
    templates_path: Optional[str] = None
    log_level: str = "INFO"
    engine: EngineSettings = EngineSettings()


def load_config(path: Optional[str] = None) -> TaskchainConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to TASKCHAIN_CONFIG env
            variable or 'taskchain.yaml' in the current directory.
    """

    config_path = path or os.getenv("TASKCHAIN_CONFIG", "taskchain.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = TaskchainConfig(**data)
    else:
        config = TaskchainConfig()

    env_db_url = os.getenv("TASKCHAIN_DATABASE_URL") or os.getenv("DATABASE_URL")
    if env_db_url:
        config.database_url = env_db_url
    env_log_level = os.getenv("TASKCHAIN_LOG_LEVEL")
    if env_log_level:
        config.log_level = env_log_level.upper()
    return config
