"""Repository configuration."""

from __future__ import annotations
from dataclasses import dataclass
from pathlib import Path


@dataclass
class RepoConfig:
    """Configuration for the workflow step repository."""

    db_path: str | Path
    """Path to SQLite database file (``:memory:`` for a throw-away store)"""

    table: str = "workflow_steps"
    """Table holding the step records"""

    @classmethod
    def from_config(cls) -> "RepoConfig":
        from core.config.config_service import config_service
        return cls(db_path=config_service.database.workflows)
