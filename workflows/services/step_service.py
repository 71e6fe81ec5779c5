"""
Step service: the single writer in front of the step repository.

Every change to workflow steps goes through this class, so the cross-step
rules hold no matter which screen or job issues the change:

- keys are validated and unique before anything is written;
- NONE steps never keep dependencies, self references and duplicates are
  dropped;
- ``email_step`` stays exclusive per exact scope: claiming it clears every
  other step of that scope in the same transaction;
- renaming a key rewrites the dependency lists that reference it;
- deleting a referenced step is rejected unless cascade is requested, in
  which case the references are removed in the same transaction.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, List, Optional

from core.config.config_service import config_service
from workflows.dto.step_patch import UNSET, StepPatch
from workflows.enum.dependency_type import DependencyType
from workflows.enum.target_audience import TargetAudience
from workflows.exceptions.errors import (
    DuplicateKeyError,
    ScopeViolationError,
    StepNotFoundError,
    StepReferencedError,
    ValidationError,
)
from workflows.models.step_scope import StepScope
from workflows.models.workflow_step import NewStepFields, WorkflowStep, normalize_depends_on
from workflows.repository.step_repository import StepRepository
from workflows.services.audit_service import AuditService
from workflows.services.scope_filter import steps_in_view

logger = logging.getLogger(__name__)

_KEY_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.\-]*$")


@dataclass
class _WritePlan:
    patches: List[StepPatch] = field(default_factory=list)
    renames: Dict[str, str] = field(default_factory=dict)
    rewritten: int = 0
    email_cleared: Dict[int, List[str]] = field(default_factory=dict)


class StepService:
    """Validated write access to workflow steps."""

    def __init__(
        self,
        repository: StepRepository,
        *,
        audit: Optional[AuditService] = None,
        known_roles: Optional[Iterable[str]] = None,
        delete_cascade: Optional[bool] = None,
    ) -> None:
        """
        Args:
            repository: Persistence backend
            audit: Operator log writer (default: shared operator log)
            known_roles: Role names from the roles collaborator; when given,
                ``required_role`` must be one of them
            delete_cascade: Default deletion policy (default: config
                ``[Workflows] delete_cascade``)
        """
        self._repo = repository
        self._audit = audit or AuditService()
        self._known_roles = (
            {str(r).strip().upper() for r in known_roles} if known_roles is not None else None
        )
        settings = config_service.workflows
        if delete_cascade is None:
            delete_cascade = settings.delete_cascade
        self._delete_cascade = bool(delete_cascade)
        self._default_color = settings.default_color

    @property
    def audit(self) -> AuditService:
        return self._audit

    # ------------------------------------------------------------------ #
    #  Reads                                                             #
    # ------------------------------------------------------------------ #
    def list_steps(self) -> List[WorkflowStep]:
        return self._repo.list_steps()

    def get_step(self, step_id: int) -> WorkflowStep:
        return self._repo.get_step(step_id)

    def steps_in_view(self, scope: StepScope) -> List[WorkflowStep]:
        return steps_in_view(self._repo.list_steps(), scope)

    def referencing_steps(self, key: str) -> List[WorkflowStep]:
        """Steps whose ``depends_on`` lists ``key``."""
        return [s for s in self._repo.list_steps() if s.key != key and key in s.depends_on]

    # ------------------------------------------------------------------ #
    #  Create                                                            #
    # ------------------------------------------------------------------ #
    def create_step(self, fields: NewStepFields, *, actor_id: str = "system") -> WorkflowStep:
        """Create an unplaced step (display order 0)."""
        try:
            fields = self._validate_new(fields)
            if self._repo.find_by_key(fields.key) is not None:
                raise DuplicateKeyError(fields.key)
            scope = fields.scope
            for key in fields.depends_on:
                dep = self._repo.find_by_key(key)
                if dep is not None and not scope.contains(dep):
                    raise ScopeViolationError(
                        f"Step '{fields.key}' ({scope.label()}) cannot depend on '{dep.key}' ({dep.scope.label()})"
                    )
        except (ValidationError, ScopeViolationError) as ex:
            self._audit.log_validation_failed(step_key=str(fields.key), error_message=str(ex), actor_id=actor_id)
            raise

        with self._repo.transaction():
            created = self._repo.create_step(fields)
            cleared = self._clear_email_competitors(created) if created.email_step else []

        self._audit.log_step_created(step_key=created.key, scope=created.scope, actor_id=actor_id)
        self._audit.log_email_step_reassigned(
            step_key=created.key, scope=created.scope, cleared=cleared, actor_id=actor_id
        )
        return created

    # ------------------------------------------------------------------ #
    #  Update                                                            #
    # ------------------------------------------------------------------ #
    def update_step(self, step_id: int, patch: StepPatch, *, actor_id: str = "system") -> WorkflowStep:
        """Apply one patch (scope changes and key renames included)."""
        if patch.step_id != step_id:
            patch = replace(patch, step_id=step_id)
        before = self._repo.get_step(step_id)
        plan = self._write([patch], scope=None, actor_id=actor_id)
        after = self._repo.get_step(step_id)

        changes = {
            name: {"old": getattr(before, name), "new": getattr(after, name)}
            for name in patch.changes()
            if getattr(before, name) != getattr(after, name)
        }
        if changes:
            self._audit.log_step_updated(step_key=after.key, scope=after.scope, changes=changes, actor_id=actor_id)
        for old_key, new_key in plan.renames.items():
            self._audit.log_key_renamed(old_key=old_key, new_key=new_key, rewritten=plan.rewritten, actor_id=actor_id)
        return after

    def set_email_step(self, step_id: int, *, actor_id: str = "system") -> WorkflowStep:
        """Make ``step_id`` the email step of its scope."""
        return self.update_step(step_id, StepPatch(step_id=step_id, email_step=True), actor_id=actor_id)

    def bulk_update_steps(
        self,
        patches: Iterable[StepPatch],
        *,
        scope: Optional[StepScope] = None,
        actor_id: str = "system",
    ) -> List[StepPatch]:
        """
        Validate and apply a patch set atomically.

        With ``scope`` given, every patched step must be visible in that scope
        and no patch may change scope fields (flow saves).

        Returns:
            The patches actually written, derived ones included
        """
        plan = self._write(list(patches), scope=scope, actor_id=actor_id)
        return plan.patches

    # ------------------------------------------------------------------ #
    #  Delete                                                            #
    # ------------------------------------------------------------------ #
    def delete_step(self, step_id: int, *, cascade: Optional[bool] = None, actor_id: str = "system") -> None:
        """
        Delete a step.

        Raises:
            StepReferencedError: other steps depend on it and cascade is off
        """
        cascade = self._delete_cascade if cascade is None else cascade
        step = self._repo.get_step(step_id)
        dependents = self.referencing_steps(step.key)

        if dependents and not cascade:
            refs = [s.key for s in dependents]
            self._audit.log_delete_rejected(step_key=step.key, referenced_by=refs, actor_id=actor_id)
            raise StepReferencedError(step.key, refs)

        with self._repo.transaction():
            for dep in dependents:
                remaining = tuple(k for k in dep.depends_on if k != step.key)
                dep_type = dep.dependency_type if remaining else DependencyType.NONE
                self._repo.update_step(dep.id, StepPatch(
                    step_id=dep.id, depends_on=remaining, dependency_type=dep_type,
                ))
            self._repo.delete_step(step_id)

        self._audit.log_step_deleted(
            step_key=step.key, scope=step.scope, cleared_from=[s.key for s in dependents], actor_id=actor_id
        )

    # ------------------------------------------------------------------ #
    #  Write planning                                                    #
    # ------------------------------------------------------------------ #
    def _write(self, patches: List[StepPatch], *, scope: Optional[StepScope], actor_id: str) -> _WritePlan:
        try:
            plan, final = self._plan(patches, scope)
        except (ValidationError, ScopeViolationError) as ex:
            self._audit.log_validation_failed(step_key=None, error_message=str(ex), actor_id=actor_id)
            raise

        if plan.patches:
            self._repo.bulk_update_steps(plan.patches)
            logger.info("Wrote %d step patches", len(plan.patches))

        for step_id, cleared in plan.email_cleared.items():
            step = final[step_id]
            self._audit.log_email_step_reassigned(
                step_key=step.key, scope=step.scope, cleared=cleared, actor_id=actor_id
            )
        return plan

    def _plan(self, patches: List[StepPatch], scope: Optional[StepScope]) -> tuple[_WritePlan, Dict[int, WorkflowStep]]:
        steps = self._repo.list_steps()
        current = {s.id: s for s in steps}

        merged: Dict[int, StepPatch] = {}
        for patch in patches:
            if patch.step_id not in current:
                raise StepNotFoundError(patch.step_id)
            prior = merged.get(patch.step_id)
            merged[patch.step_id] = prior.merged(patch) if prior else patch

        if scope is not None:
            outside = [current[i].key for i in merged if not scope.contains(current[i])]
            if outside:
                raise ScopeViolationError(
                    f"Steps outside scope {scope.label()}: {', '.join(outside)}"
                )
            moving = [current[i].key for i, p in merged.items() if p.touches_scope]
            if moving:
                raise ScopeViolationError(
                    f"Scope fields cannot change while saving a flow: {', '.join(moving)}"
                )

        merged = {i: self._validate_patch(p) for i, p in merged.items()}

        final: Dict[int, WorkflowStep] = dict(current)
        for step_id, patch in merged.items():
            final[step_id] = current[step_id].with_changes(**patch.changes())

        # dependency normalization
        for step_id, patch in merged.items():
            step = final[step_id]
            deps = normalize_depends_on(step.key, step.dependency_type, step.depends_on)
            if deps != current[step_id].depends_on or patch.depends_on is not UNSET:
                merged[step_id] = replace(patch, depends_on=deps)
                final[step_id] = step.with_changes(depends_on=deps)

        # key uniqueness over the resulting step set
        owners: Dict[str, int] = {}
        for step in final.values():
            if step.key in owners:
                raise DuplicateKeyError(step.key)
            owners[step.key] = step.id

        plan = _WritePlan()
        derived: Dict[int, StepPatch] = {}

        def _derive(step_id: int, **changes) -> None:
            if step_id in merged:
                merged[step_id] = replace(merged[step_id], **changes)
            else:
                base = derived.get(step_id) or StepPatch(step_id=step_id)
                derived[step_id] = replace(base, **changes)
            final[step_id] = final[step_id].with_changes(**changes)

        # key renames: keep dependency references pointing at the renamed step
        for step_id in merged:
            old_key, new_key = current[step_id].key, final[step_id].key
            if old_key != new_key:
                plan.renames[old_key] = new_key
        for old_key, new_key in plan.renames.items():
            if old_key in owners:
                continue  # the old key was taken over by another step
            for step in list(final.values()):
                if old_key in step.depends_on:
                    deps = tuple(new_key if k == old_key else k for k in step.depends_on)
                    _derive(step.id, depends_on=normalize_depends_on(step.key, step.dependency_type, deps))
                    plan.rewritten += 1

        self._check_dependency_scopes(current, final, merged)

        # email exclusivity per exact scope
        claimers = [
            i for i, p in merged.items()
            if final[i].email_step and (p.email_step is True or p.touches_scope)
        ]
        claimed: Dict[StepScope, int] = {}
        for step_id in claimers:
            owner_scope = final[step_id].scope
            if owner_scope in claimed:
                raise ValidationError(
                    f"Only one email step allowed in {owner_scope.label()}: "
                    f"'{final[claimed[owner_scope]].key}' and '{final[step_id].key}'"
                )
            claimed[owner_scope] = step_id
        for owner_scope, step_id in claimed.items():
            for step in list(final.values()):
                if step.id != step_id and step.email_step and owner_scope.owns(step):
                    _derive(step.id, email_step=False)
                    plan.email_cleared.setdefault(step_id, []).append(step.key)

        plan.patches = [p for p in merged.values() if not p.is_empty]
        plan.patches += [derived[i] for i in sorted(derived)]
        return plan, final

    @staticmethod
    def _check_dependency_scopes(
        current: Dict[int, WorkflowStep],
        final: Dict[int, WorkflowStep],
        merged: Dict[int, StepPatch],
    ) -> None:
        """
        A step may only depend on steps visible wherever the step itself is
        visible: same audience and phase, and either global or in its own form.

        Only new references are checked, plus every reference touching a step
        whose scope changed. Unknown keys stay allowed (dangling).
        """
        by_key = {s.key: s for s in final.values()}
        moved = {final[i].key for i in merged if final[i].scope != current[i].scope}

        for step in final.values():
            if step.id in merged and step.scope == current[step.id].scope:
                known = set(current[step.id].depends_on)
            elif step.id in merged:
                known = set()
            elif moved.intersection(step.depends_on):
                known = set(step.depends_on) - moved
            else:
                continue
            for key in step.depends_on:
                dep = by_key.get(key)
                if dep is None or (key in known and key not in moved):
                    continue
                if not step.scope.contains(dep):
                    raise ScopeViolationError(
                        f"Step '{step.key}' ({step.scope.label()}) cannot depend on "
                        f"'{dep.key}' ({dep.scope.label()})"
                    )

    def _clear_email_competitors(self, step: WorkflowStep) -> List[str]:
        cleared: List[str] = []
        for other in self._repo.list_steps():
            if other.id != step.id and other.email_step and step.scope.owns(other):
                self._repo.update_step(other.id, StepPatch(step_id=other.id, email_step=False))
                cleared.append(other.key)
        return cleared

    # ------------------------------------------------------------------ #
    #  Validation                                                        #
    # ------------------------------------------------------------------ #
    def _validate_new(self, fields: NewStepFields) -> NewStepFields:
        key = self._clean_key(fields.key)
        try:
            dep_type = DependencyType.parse(fields.dependency_type)
            audience = TargetAudience.parse(fields.target_audience)
        except ValueError as ex:
            raise ValidationError(str(ex)) from ex
        return replace(
            fields,
            key=key,
            name=self._require_text(fields.name, "name"),
            required_role=self._clean_role(fields.required_role),
            form_id=self._clean_form_id(fields.form_id),
            target_audience=audience,
            is_exit_step=bool(fields.is_exit_step),
            dependency_type=dep_type,
            depends_on=normalize_depends_on(key, dep_type, fields.depends_on),
            description=(fields.description or "").strip(),
            color=fields.color or self._default_color,
        )

    def _validate_patch(self, patch: StepPatch) -> StepPatch:
        changes = {}
        if patch.key is not UNSET:
            changes["key"] = self._clean_key(patch.key)
        if patch.name is not UNSET:
            changes["name"] = self._require_text(patch.name, "name")
        if patch.required_role is not UNSET:
            changes["required_role"] = self._clean_role(patch.required_role)
        if patch.form_id is not UNSET:
            changes["form_id"] = self._clean_form_id(patch.form_id)
        if patch.display_order is not UNSET:
            changes["display_order"] = self._clean_order(patch.display_order)
        if patch.description is not UNSET:
            changes["description"] = (patch.description or "").strip()
        for flag in ("is_exit_step", "email_step", "is_active"):
            value = getattr(patch, flag)
            if value is not UNSET:
                changes[flag] = bool(value)
        return replace(patch, **changes) if changes else patch

    @staticmethod
    def _clean_key(value) -> str:
        key = str(value or "").strip()
        if not key:
            raise ValidationError("Step key must not be empty")
        if not _KEY_PATTERN.match(key):
            raise ValidationError(
                f"Step key '{key}' may only contain letters, digits, '_', '-' and '.'"
            )
        return key

    @staticmethod
    def _require_text(value, label: str) -> str:
        text = str(value or "").strip()
        if not text:
            raise ValidationError(f"Step {label} must not be empty")
        return text

    def _clean_role(self, value) -> str:
        role = self._require_text(value, "role")
        if self._known_roles is not None and role.upper() not in self._known_roles:
            raise ValidationError(f"Unknown role '{role}'")
        return role

    @staticmethod
    def _clean_form_id(value) -> Optional[int]:
        if value is None:
            return None
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            raise ValidationError(f"Form id must be a positive integer or None, got {value!r}")
        return value

    @staticmethod
    def _clean_order(value) -> int:
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise ValidationError(f"Display order must be a non-negative integer, got {value!r}")
        return value
