"""Audit logging service for workflow definitions.

Uses the central operator log (``core.logging``) instead of an own table.
"""

from __future__ import annotations
from typing import Any, Dict, Iterable, List, Optional
from datetime import datetime, timezone
from uuid import uuid4
import logging

from core.logging.logic.logger import Logger, get_logger
from workflows.dto.audit_event import AuditEvent, AuditAction, AuditSeverity
from workflows.dto.graph import DanglingDependency
from workflows.models.step_scope import StepScope

logger = logging.getLogger(__name__)

_LEVELS = {
    AuditSeverity.INFO: logging.INFO,
    AuditSeverity.WARNING: logging.WARNING,
    AuditSeverity.ERROR: logging.ERROR,
}


class AuditService:
    """
    Operator-visible change log for workflow definitions.

    Delegates persistence to a ``core.logging`` Logger; every event is also
    forwarded to the standard ``logging`` module.
    """

    def __init__(self, log: Optional[Logger] = None, *, feature: str = "workflows"):
        """
        Args:
            log: Operator log (default: shared instance from config)
            feature: Feature name stored with each entry
        """
        self._log = log
        self._feature = feature

    @property
    def operator_log(self) -> Logger:
        if self._log is None:
            self._log = get_logger()
        return self._log

    def log(self, event: AuditEvent) -> None:
        logger.log(_LEVELS[event.severity], event.to_log_string())
        self.operator_log.log(
            self._feature,
            event.event_type.value,
            username=event.actor_name or event.actor_id,
            level=event.severity.name,
            reference_id=event.step_key,
            message=event.to_log_string(),
        )

    def log_action(
        self,
        *,
        action: AuditAction,
        actor_id: str = "system",
        actor_name: Optional[str] = None,
        step_key: Optional[str] = None,
        scope: Optional[StepScope] = None,
        reason: Optional[str] = None,
        changes: Optional[Dict[str, Any]] = None,
        metadata: Optional[Dict[str, Any]] = None,
        severity: AuditSeverity = AuditSeverity.INFO,
        result: str = "success",
        error_message: Optional[str] = None
    ) -> AuditEvent:
        """
        Convenience method to log an action.

        Returns:
            Created AuditEvent (already logged)
        """
        event = AuditEvent(
            event_id=str(uuid4()),
            event_type=action,
            occurred_at=datetime.now(timezone.utc),
            actor_id=actor_id,
            actor_name=actor_name,
            step_key=step_key,
            scope=scope.label() if scope is not None else None,
            action_result=result,
            reason=reason,
            error_message=error_message,
            changes=changes or {},
            metadata=metadata or {},
            severity=severity,
        )

        self.log(event)
        return event

    # -------- Step lifecycle ------------------------------------------------ #
    def log_step_created(self, *, step_key: str, scope: StepScope, actor_id: str = "system") -> None:
        self.log_action(action=AuditAction.STEP_CREATED, actor_id=actor_id,
                        step_key=step_key, scope=scope)

    def log_step_updated(
        self,
        *,
        step_key: str,
        scope: StepScope,
        changes: Dict[str, Any],
        actor_id: str = "system"
    ) -> None:
        self.log_action(action=AuditAction.STEP_UPDATED, actor_id=actor_id,
                        step_key=step_key, scope=scope, changes=changes)

    def log_key_renamed(self, *, old_key: str, new_key: str, rewritten: int, actor_id: str = "system") -> None:
        self.log_action(
            action=AuditAction.KEY_RENAMED,
            actor_id=actor_id,
            step_key=new_key,
            changes={"key": {"old": old_key, "new": new_key}},
            metadata={"rewritten_dependents": rewritten},
        )

    def log_step_deleted(
        self,
        *,
        step_key: str,
        scope: StepScope,
        cleared_from: Iterable[str] = (),
        actor_id: str = "system"
    ) -> None:
        cleared = list(cleared_from)
        self.log_action(
            action=AuditAction.STEP_DELETED,
            actor_id=actor_id,
            step_key=step_key,
            scope=scope,
            metadata={"cascade_cleared": cleared} if cleared else None,
            severity=AuditSeverity.WARNING if cleared else AuditSeverity.INFO,
        )

    def log_delete_rejected(self, *, step_key: str, referenced_by: Iterable[str], actor_id: str = "system") -> None:
        refs = list(referenced_by)
        self.log_action(
            action=AuditAction.STEP_DELETE_REJECTED,
            actor_id=actor_id,
            step_key=step_key,
            reason=f"referenced by {len(refs)} steps",
            metadata={"referenced_by": refs},
            severity=AuditSeverity.WARNING,
            result="denied",
        )

    def log_email_step_reassigned(
        self,
        *,
        step_key: str,
        scope: StepScope,
        cleared: Iterable[str],
        actor_id: str = "system"
    ) -> None:
        cleared = list(cleared)
        if not cleared:
            return
        self.log_action(
            action=AuditAction.EMAIL_STEP_REASSIGNED,
            actor_id=actor_id,
            step_key=step_key,
            scope=scope,
            changes={"email_step": {"old": cleared, "new": step_key}},
        )

    # -------- Flow ---------------------------------------------------------- #
    def log_flow_saved(self, *, scope: StepScope, patch_count: int, reset_keys: List[str], actor_id: str = "system") -> None:
        self.log_action(
            action=AuditAction.FLOW_SAVED,
            actor_id=actor_id,
            scope=scope,
            metadata={"patches": patch_count, "removed_from_canvas": reset_keys},
        )

    def log_save_failed(self, *, scope: StepScope, error_message: str, actor_id: str = "system") -> None:
        self.log_action(
            action=AuditAction.SAVE_FAILED,
            actor_id=actor_id,
            scope=scope,
            error_message=error_message,
            severity=AuditSeverity.ERROR,
            result="failure",
        )

    def log_dangling_dependencies(self, warnings: Iterable[DanglingDependency], *, scope: StepScope) -> None:
        for warning in warnings:
            self.log_action(
                action=AuditAction.DANGLING_DEPENDENCY,
                step_key=warning.step_key,
                scope=scope,
                reason=warning.describe(),
                metadata={"missing_key": warning.missing_key, "reason": warning.reason},
                severity=AuditSeverity.WARNING,
            )

    def log_validation_failed(self, *, step_key: Optional[str], error_message: str, actor_id: str = "system") -> None:
        self.log_action(
            action=AuditAction.VALIDATION_FAILED,
            actor_id=actor_id,
            step_key=step_key,
            error_message=error_message,
            severity=AuditSeverity.WARNING,
            result="failure",
        )
