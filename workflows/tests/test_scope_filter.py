"""Scope filter tests (pure functions, no IO)."""
from __future__ import annotations

from workflows.enum import TargetAudience, WorkflowPhase
from workflows.models import StepScope, WorkflowStep
from workflows.services.scope_filter import filter_steps, index_by_key, steps_owned_by


def _step(step_id: int, key: str, form_id=None, audience=TargetAudience.LOCAL, exit_step=False) -> WorkflowStep:
    return WorkflowStep(
        id=step_id,
        key=key,
        name=key,
        required_role="ICS",
        form_id=form_id,
        target_audience=audience,
        is_exit_step=exit_step,
        display_order=10,
    )


STEPS = [
    _step(1, "global_check"),
    _step(2, "form5_review", form_id=5),
    _step(3, "form7_review", form_id=7),
    _step(4, "intl_check", audience=TargetAudience.INTERNATIONAL),
    _step(5, "exit_clearance", exit_step=True),
]


def test_global_step_visible_in_every_form_view() -> None:
    for form_id in (5, 7):
        keys = [s.key for s in filter_steps(STEPS, form_id, "LOCAL", WorkflowPhase.ENTRY)]
        assert "global_check" in keys

    seen_5 = filter_steps(STEPS, 5, TargetAudience.LOCAL, WorkflowPhase.ENTRY)
    seen_7 = filter_steps(STEPS, 7, TargetAudience.LOCAL, WorkflowPhase.ENTRY)
    assert seen_5[0] is seen_7[0]
    assert seen_5[0].form_id is None


def test_form_view_excludes_other_forms_audiences_and_phases() -> None:
    keys = [s.key for s in filter_steps(STEPS, 5, "local", "ENTRY")]
    assert keys == ["global_check", "form5_review"]


def test_exit_phase_only_returns_exit_steps() -> None:
    keys = [s.key for s in filter_steps(STEPS, 5, TargetAudience.LOCAL, WorkflowPhase.EXIT)]
    assert keys == ["exit_clearance"]


def test_global_view_only_returns_global_steps() -> None:
    keys = [s.key for s in filter_steps(STEPS, None, TargetAudience.LOCAL, WorkflowPhase.ENTRY)]
    assert keys == ["global_check"]


def test_owned_by_excludes_globals_from_form_scope() -> None:
    scope = StepScope.of(5, "LOCAL", "ENTRY")
    assert [s.key for s in steps_owned_by(STEPS, scope)] == ["form5_review"]
    assert scope.contains(STEPS[0])
    assert not scope.owns(STEPS[0])


def test_index_by_key_keeps_first_on_clash() -> None:
    clash = [_step(10, "dup"), _step(11, "dup", form_id=5)]
    assert index_by_key(clash)["dup"].id == 10


def test_scope_label() -> None:
    assert StepScope.of(5, "LOCAL", "ENTRY").label() == "form 5/LOCAL/ENTRY"
    assert StepScope.of(None, "INTERNATIONAL", "EXIT").label() == "global/INTERNATIONAL/EXIT"
