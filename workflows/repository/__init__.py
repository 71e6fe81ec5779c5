"""Repository layer for the workflows module.

Provides data access abstractions.
"""

from workflows.repository.repo_config import RepoConfig
from workflows.repository.sqlite_step_repository import SQLiteStepRepository
from workflows.repository.step_repository import StepRepository

__all__ = [
    "RepoConfig",
    "SQLiteStepRepository",
    "StepRepository",
]
