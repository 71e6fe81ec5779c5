"""Services layer for the workflows module.

Pure layout/gate/scope logic plus the writer and edit-session services.
"""

from workflows.services.audit_service import AuditService
from workflows.services.graph_edit_session import GraphEditSession
from workflows.services.layout.row_layout_engine import LayoutConfig, RowLayoutEngine
from workflows.services.policy.dependency_gate import DependencyGateEvaluator, is_actionable
from workflows.services.save_protocol import prepare_save, reset_patch
from workflows.services.scope_filter import filter_steps, index_by_key, steps_in_view, steps_owned_by
from workflows.services.step_service import StepService

__all__ = [
    "AuditService",
    "GraphEditSession",
    "LayoutConfig",
    "RowLayoutEngine",
    "DependencyGateEvaluator",
    "is_actionable",
    "prepare_save",
    "reset_patch",
    "filter_steps",
    "index_by_key",
    "steps_in_view",
    "steps_owned_by",
    "StepService",
]
