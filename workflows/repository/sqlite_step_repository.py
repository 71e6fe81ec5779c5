"""SQLite implementation of StepRepository.

Lightweight repository - only CRUD and simple queries.
Business rules (validation, email exclusivity, deletion policy) are in the
services layer.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import AbstractContextManager
from typing import Any, Dict, Iterable, List, Optional

from core.helpers.date_time_helper import utc_now_iso
from workflows.adapters.database_adapter import DatabaseAdapter
from workflows.adapters.sqlite_adapter import SQLiteAdapter
from workflows.dto.step_patch import StepPatch
from workflows.enum.dependency_type import DependencyType
from workflows.enum.target_audience import TargetAudience
from workflows.exceptions.errors import DuplicateKeyError, StepNotFoundError
from workflows.models.workflow_step import NewStepFields, WorkflowStep, normalize_depends_on
from workflows.repository.repo_config import RepoConfig

logger = logging.getLogger(__name__)

# record field -> column
_COLUMNS: Dict[str, str] = {
    "key": "step_key",
    "name": "name",
    "description": "description",
    "required_role": "required_role",
    "form_id": "form_id",
    "target_audience": "target_audience",
    "is_exit_step": "is_exit_step",
    "dependency_type": "dependency_type",
    "depends_on": "depends_on",
    "display_order": "display_order",
    "email_step": "email_step",
    "is_active": "is_active",
    "color": "color",
    "icon": "icon",
}


class SQLiteStepRepository:
    """SQLite backend for workflow steps."""

    def __init__(self, config: RepoConfig, *, db_adapter: Optional[DatabaseAdapter] = None) -> None:
        """
        Args:
            config: Repository configuration
            db_adapter: Database adapter (default: SQLiteAdapter)
        """
        self._cfg = config
        self._table = config.table
        self._db = db_adapter or SQLiteAdapter(config.db_path)
        self._ensure_schema()

    # =========================================================================
    # Schema Management
    # =========================================================================

    def _ensure_schema(self) -> None:
        """Create database schema if not exists."""
        self._db.executescript(
            f"""
            CREATE TABLE IF NOT EXISTS {self._table} (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                step_key TEXT NOT NULL UNIQUE,
                name TEXT NOT NULL,
                description TEXT NOT NULL DEFAULT '',
                required_role TEXT NOT NULL,
                form_id INTEGER,
                target_audience TEXT NOT NULL DEFAULT 'LOCAL'
                    CHECK (target_audience IN ('LOCAL', 'INTERNATIONAL')),
                is_exit_step INTEGER NOT NULL DEFAULT 0,
                dependency_type TEXT NOT NULL DEFAULT 'ANY'
                    CHECK (dependency_type IN ('NONE', 'ALL', 'ANY')),
                depends_on TEXT NOT NULL DEFAULT '[]',
                display_order INTEGER NOT NULL DEFAULT 0 CHECK (display_order >= 0),
                email_step INTEGER NOT NULL DEFAULT 0,
                is_active INTEGER NOT NULL DEFAULT 1,
                color TEXT,
                icon TEXT,
                created_at TEXT,
                updated_at TEXT
            );

            CREATE INDEX IF NOT EXISTS idx_{self._table}_scope
                ON {self._table} (form_id, target_audience, is_exit_step);
            """
        )

    # =========================================================================
    # Queries
    # =========================================================================

    def list_steps(self) -> List[WorkflowStep]:
        rows = self._db.fetchall(f"SELECT * FROM {self._table} ORDER BY id")
        return [self._row_to_step(r) for r in rows]

    def get_step(self, step_id: int) -> WorkflowStep:
        row = self._db.fetchone(f"SELECT * FROM {self._table} WHERE id = ?", (step_id,))
        if row is None:
            raise StepNotFoundError(step_id)
        return self._row_to_step(row)

    def find_by_key(self, key: str) -> Optional[WorkflowStep]:
        row = self._db.fetchone(f"SELECT * FROM {self._table} WHERE step_key = ?", (key,))
        return self._row_to_step(row) if row else None

    # =========================================================================
    # Writes
    # =========================================================================

    def create_step(self, fields: NewStepFields) -> WorkflowStep:
        now = utc_now_iso()
        dep_type = DependencyType.parse(fields.dependency_type)
        data = {
            "step_key": fields.key,
            "name": fields.name,
            "description": fields.description or "",
            "required_role": fields.required_role,
            "form_id": fields.form_id,
            "target_audience": TargetAudience.parse(fields.target_audience).value,
            "is_exit_step": int(bool(fields.is_exit_step)),
            "dependency_type": dep_type.value,
            "depends_on": json.dumps(list(normalize_depends_on(fields.key, dep_type, fields.depends_on))),
            "display_order": 0,
            "email_step": int(bool(fields.email_step)),
            "is_active": int(bool(fields.is_active)),
            "color": fields.color,
            "icon": fields.icon,
            "created_at": now,
            "updated_at": now,
        }
        try:
            new_id = self._db.insert(self._table, data)
        except sqlite3.IntegrityError as ex:
            if "step_key" in str(ex):
                raise DuplicateKeyError(fields.key) from ex
            raise
        logger.debug("Created workflow step %s (%s)", new_id, fields.key)
        return self.get_step(new_id)

    def update_step(self, step_id: int, patch: StepPatch) -> WorkflowStep:
        columns = self._patch_to_columns(patch)
        if not columns:
            return self.get_step(step_id)
        columns["updated_at"] = utc_now_iso()
        try:
            count = self._db.update(self._table, columns, "id = ?", (step_id,))
        except sqlite3.IntegrityError as ex:
            if "step_key" in str(ex):
                raise DuplicateKeyError(patch.key) from ex
            raise
        if count == 0:
            raise StepNotFoundError(step_id)
        return self.get_step(step_id)

    def delete_step(self, step_id: int) -> None:
        count = self._db.delete(self._table, "id = ?", (step_id,))
        if count == 0:
            raise StepNotFoundError(step_id)
        logger.debug("Deleted workflow step %s", step_id)

    def bulk_update_steps(self, patches: Iterable[StepPatch]) -> None:
        patches = list(patches)
        with self._db.transaction():
            for patch in patches:
                self.update_step(patch.step_id, patch)
        logger.debug("Bulk-updated %d workflow steps", len(patches))

    def transaction(self) -> AbstractContextManager[None]:
        return self._db.transaction()

    def close(self) -> None:
        self._db.close()

    # =========================================================================
    # Mapping
    # =========================================================================

    @staticmethod
    def _row_to_step(row: Dict[str, Any]) -> WorkflowStep:
        return WorkflowStep(
            id=int(row["id"]),
            key=row["step_key"],
            name=row["name"],
            description=row.get("description") or "",
            required_role=row["required_role"],
            form_id=row.get("form_id"),
            target_audience=TargetAudience.parse(row["target_audience"]),
            is_exit_step=bool(row["is_exit_step"]),
            dependency_type=DependencyType.parse(row["dependency_type"]),
            depends_on=tuple(json.loads(row.get("depends_on") or "[]")),
            display_order=int(row["display_order"]),
            email_step=bool(row["email_step"]),
            is_active=bool(row["is_active"]),
            color=row.get("color"),
            icon=row.get("icon"),
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )

    @staticmethod
    def _patch_to_columns(patch: StepPatch) -> Dict[str, Any]:
        columns: Dict[str, Any] = {}
        for name, value in patch.changes().items():
            if name == "depends_on":
                value = json.dumps(list(value))
            elif name in ("dependency_type", "target_audience"):
                value = value.value
            elif name in ("is_exit_step", "email_step", "is_active"):
                value = int(bool(value))
            columns[_COLUMNS[name]] = value
        return columns
