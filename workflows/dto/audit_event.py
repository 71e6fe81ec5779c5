"""Audit event DTO for workflow definition changes.

Audit events are NOT stored in a separate table. They are written to the
central operator log (``core.logging``) by ``AuditService``.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Dict, Any
from enum import Enum


class AuditAction(Enum):
    """Audit action types for workflow definitions."""

    # Step lifecycle
    STEP_CREATED = "step_created"
    STEP_UPDATED = "step_updated"
    STEP_DELETED = "step_deleted"
    STEP_DELETE_REJECTED = "step_delete_rejected"
    KEY_RENAMED = "key_renamed"
    EMAIL_STEP_REASSIGNED = "email_step_reassigned"

    # Flow
    FLOW_SAVED = "flow_saved"
    SAVE_FAILED = "save_failed"
    DANGLING_DEPENDENCY = "dangling_dependency"

    # Input
    VALIDATION_FAILED = "validation_failed"


class AuditSeverity(Enum):
    """Audit event severity levels."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class AuditEvent:
    """Immutable audit log event."""

    event_id: str
    """Unique event ID (UUID)"""

    event_type: AuditAction
    """Type of action performed"""

    occurred_at: datetime
    """When the event occurred (UTC)"""

    actor_id: str
    """User ID who performed the action ("system" for engine-generated events)"""

    actor_name: Optional[str] = None

    step_key: Optional[str] = None
    """Key of the affected step (if applicable)"""

    scope: Optional[str] = None
    """Scope label, e.g. 'form 5/LOCAL/ENTRY'"""

    action_result: str = "success"
    """Result: 'success', 'failure', 'denied'"""

    reason: Optional[str] = None
    error_message: Optional[str] = None

    changes: Dict[str, Any] = field(default_factory=dict)
    """Format: {'field_name': {'old': <value>, 'new': <value>}}"""

    metadata: Dict[str, Any] = field(default_factory=dict)

    severity: AuditSeverity = AuditSeverity.INFO

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_id": self.event_id,
            "event_type": self.event_type.value,
            "occurred_at": self.occurred_at.isoformat(),
            "actor_id": self.actor_id,
            "actor_name": self.actor_name,
            "step_key": self.step_key,
            "scope": self.scope,
            "action_result": self.action_result,
            "reason": self.reason,
            "error_message": self.error_message,
            "changes": self.changes,
            "metadata": self.metadata,
            "severity": self.severity.value,
        }

    def to_log_string(self) -> str:
        parts = [
            f"{self.event_type.value}",
            f"by {self.actor_name or self.actor_id}",
        ]

        if self.step_key:
            parts.append(f"on {self.step_key}")

        if self.scope:
            parts.append(f"in {self.scope}")

        if self.changes:
            parts.append(f"[{', '.join(sorted(self.changes))}]")

        if self.reason:
            parts.append(f"- {self.reason}")

        if self.action_result != "success":
            parts.append(f"[{self.action_result.upper()}]")

        if self.error_message:
            parts.append(f"Error: {self.error_message}")

        return " ".join(parts)
