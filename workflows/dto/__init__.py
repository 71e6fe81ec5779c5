"""Data Transfer Objects for the workflows module."""

from workflows.dto.audit_event import AuditAction, AuditEvent, AuditSeverity
from workflows.dto.graph import (
    DanglingDependency,
    ExecutionLevel,
    GraphEdge,
    GraphNode,
    WorkflowGraph,
)
from workflows.dto.step_patch import UNSET, StepPatch

__all__ = [
    "AuditAction",
    "AuditEvent",
    "AuditSeverity",
    "DanglingDependency",
    "ExecutionLevel",
    "GraphEdge",
    "GraphNode",
    "WorkflowGraph",
    "UNSET",
    "StepPatch",
]
