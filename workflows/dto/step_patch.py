"""Step patch DTO.

A patch names one step by id and carries only the fields that change. Unset
fields hold the ``UNSET`` sentinel so that ``form_id=None`` (make the step
global) stays distinguishable from "leave form_id alone".
"""
from __future__ import annotations

from dataclasses import dataclass, fields, replace
from typing import Any, Dict, Mapping

from workflows.enum.dependency_type import DependencyType
from workflows.enum.target_audience import TargetAudience


class _Unset:
    __slots__ = ()

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()

SCOPE_FIELDS = frozenset({"form_id", "target_audience", "is_exit_step"})


@dataclass(frozen=True)
class StepPatch:
    """Partial update of one workflow step."""

    step_id: int
    key: Any = UNSET
    name: Any = UNSET
    description: Any = UNSET
    required_role: Any = UNSET
    form_id: Any = UNSET
    target_audience: Any = UNSET
    is_exit_step: Any = UNSET
    dependency_type: Any = UNSET
    depends_on: Any = UNSET
    display_order: Any = UNSET
    email_step: Any = UNSET
    is_active: Any = UNSET
    color: Any = UNSET
    icon: Any = UNSET

    def __post_init__(self) -> None:
        # coerce loose input (strings, lists) into the record types
        if self.dependency_type is not UNSET:
            object.__setattr__(self, "dependency_type", DependencyType.parse(self.dependency_type))
        if self.target_audience is not UNSET:
            object.__setattr__(self, "target_audience", TargetAudience.parse(self.target_audience))
        if self.depends_on is not UNSET:
            object.__setattr__(self, "depends_on", tuple(self.depends_on or ()))

    @classmethod
    def from_dict(cls, step_id: int, data: Mapping[str, Any]) -> "StepPatch":
        allowed = patch_field_names()
        unknown = set(data) - allowed
        if unknown:
            raise ValueError(f"Unknown step fields: {', '.join(sorted(unknown))}")
        return cls(step_id=step_id, **dict(data))

    def changes(self) -> Dict[str, Any]:
        """Return the set fields as a plain dict (without ``step_id``)."""
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if f.name != "step_id" and getattr(self, f.name) is not UNSET
        }

    @property
    def is_empty(self) -> bool:
        return not self.changes()

    @property
    def touches_scope(self) -> bool:
        return bool(SCOPE_FIELDS & set(self.changes()))

    def merged(self, other: "StepPatch") -> "StepPatch":
        """Return a patch with ``other``'s set fields layered over this one."""
        if other.step_id != self.step_id:
            raise ValueError("Cannot merge patches of different steps")
        return replace(self, **other.changes())


def patch_field_names() -> frozenset[str]:
    return frozenset(f.name for f in fields(StepPatch) if f.name != "step_id")
