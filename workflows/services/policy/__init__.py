"""Policy services for the workflows module.

Gate rules without I/O.
"""

from workflows.services.policy.dependency_gate import DependencyGateEvaluator, StatusLookup, is_actionable

__all__ = [
    "DependencyGateEvaluator",
    "StatusLookup",
    "is_actionable",
]
