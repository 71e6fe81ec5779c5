"""
workflows/tests/test_step_service.py

Step service rules: validation, email-step exclusivity, key renames and the
deletion policy. Runs against in-memory SQLite stores.
"""

from __future__ import annotations

import unittest

from core.logging.logic.logger import Logger
from workflows.dto.audit_event import AuditAction
from workflows.dto.step_patch import StepPatch
from workflows.enum import DependencyType, TargetAudience
from workflows.exceptions import (
    DuplicateKeyError,
    ScopeViolationError,
    StepNotFoundError,
    StepReferencedError,
    ValidationError,
)
from workflows.models import NewStepFields, StepScope
from workflows.repository import RepoConfig, SQLiteStepRepository
from workflows.services.audit_service import AuditService
from workflows.services.step_service import StepService


class StepServiceTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.repo = SQLiteStepRepository(RepoConfig(db_path=":memory:"))
        self.log = Logger(":memory:")
        self.service = StepService(
            self.repo,
            audit=AuditService(self.log),
            known_roles=["ICS", "SECURITY", "MEDICAL"],
            delete_cascade=False,
        )

    def tearDown(self) -> None:
        self.repo.close()
        self.log.close()

    def create(self, key: str, **kw):
        kw.setdefault("required_role", "ICS")
        kw.setdefault("name", key.title())
        return self.service.create_step(NewStepFields(key=key, **kw))

    def events(self) -> list[str]:
        return [e.event for e in self.log.entries]

    def key_of(self, step_id: int) -> str:
        return self.repo.get_step(step_id).key


class TestCreateStep(StepServiceTestCase):
    def test_created_step_is_unplaced(self) -> None:
        step = self.create("intake", dependency_type=DependencyType.NONE, depends_on=("x",))
        self.assertEqual(step.display_order, 0)
        self.assertEqual(step.depends_on, ())
        self.assertIn(AuditAction.STEP_CREATED.value, self.events())

    def test_duplicate_key_rejected_before_write(self) -> None:
        self.create("intake")
        with self.assertRaises(DuplicateKeyError):
            self.create("intake", name="Other")
        self.assertEqual(len(self.repo.list_steps()), 1)
        self.assertIn(AuditAction.VALIDATION_FAILED.value, self.events())

    def test_invalid_fields(self) -> None:
        for kwargs in (
            {"key": "   "},
            {"key": "has space"},
            {"key": "ok", "name": " "},
            {"key": "ok", "required_role": "JANITOR"},
            {"key": "ok", "form_id": 0},
            {"key": "ok", "dependency_type": "SOME"},
        ):
            with self.subTest(kwargs=kwargs):
                with self.assertRaises(ValidationError):
                    self.create(**kwargs)
        self.assertEqual(self.repo.list_steps(), [])

    def test_role_check_is_case_insensitive(self) -> None:
        self.assertEqual(self.create("sec", required_role="security").required_role, "security")

    def test_email_step_exclusive_within_exact_scope(self) -> None:
        first = self.create("first", form_id=5, email_step=True)
        second = self.create("second", form_id=5, email_step=True)
        other_form = self.create("other_form", form_id=7, email_step=True)
        global_step = self.create("global_step", email_step=True)

        self.assertFalse(self.repo.get_step(first.id).email_step)
        self.assertTrue(self.repo.get_step(second.id).email_step)
        self.assertTrue(self.repo.get_step(other_form.id).email_step)
        self.assertTrue(self.repo.get_step(global_step.id).email_step)
        self.assertIn(AuditAction.EMAIL_STEP_REASSIGNED.value, self.events())


class TestUpdateStep(StepServiceTestCase):
    def test_key_rename_rewrites_dependents(self) -> None:
        a = self.create("a", dependency_type=DependencyType.NONE)
        b = self.create("b", depends_on=("a",))
        c = self.create("c", dependency_type=DependencyType.ALL, depends_on=("b", "a"), form_id=7)

        self.service.update_step(a.id, StepPatch(step_id=a.id, key="intake"))

        self.assertEqual(self.key_of(a.id), "intake")
        self.assertEqual(self.repo.get_step(b.id).depends_on, ("intake",))
        self.assertEqual(self.repo.get_step(c.id).depends_on, ("b", "intake"))
        self.assertIn(AuditAction.KEY_RENAMED.value, self.events())

    def test_rename_to_taken_key(self) -> None:
        a = self.create("a")
        self.create("b")
        with self.assertRaises(DuplicateKeyError):
            self.service.update_step(a.id, StepPatch(step_id=a.id, key="b"))
        self.assertEqual(self.key_of(a.id), "a")

    def test_negative_display_order_rejected(self) -> None:
        a = self.create("a")
        with self.assertRaises(ValidationError):
            self.service.update_step(a.id, StepPatch(step_id=a.id, display_order=-1))

    def test_none_clears_dependencies_and_self_refs_dropped(self) -> None:
        a = self.create("a")
        b = self.create("b", depends_on=("a",))
        updated = self.service.update_step(b.id, StepPatch(step_id=b.id, dependency_type=DependencyType.NONE))
        self.assertEqual(updated.depends_on, ())

        updated = self.service.update_step(
            b.id, StepPatch(step_id=b.id, dependency_type="ALL", depends_on=["b", "a", "a"])
        )
        self.assertEqual(updated.depends_on, ("a",))
        self.assertEqual(self.repo.get_step(a.id).depends_on, ())

    def test_set_email_step(self) -> None:
        a = self.create("a", form_id=5, email_step=True)
        b = self.create("b", form_id=5)
        self.service.set_email_step(b.id)
        self.assertFalse(self.repo.get_step(a.id).email_step)
        self.assertTrue(self.repo.get_step(b.id).email_step)

    def test_scope_move_enforces_exclusivity_in_target_scope(self) -> None:
        mover = self.create("mover", form_id=5, email_step=True)
        resident = self.create("resident", form_id=7, email_step=True)
        moved = self.service.update_step(mover.id, StepPatch(step_id=mover.id, form_id=7))
        self.assertEqual(moved.form_id, 7)
        self.assertTrue(moved.email_step)
        self.assertFalse(self.repo.get_step(resident.id).email_step)

    def test_global_step_cannot_depend_on_form_step(self) -> None:
        f5 = self.create("f5", form_id=5)
        shared = self.create("shared", dependency_type=DependencyType.NONE)
        with self.assertRaises(ScopeViolationError):
            self.service.update_step(
                shared.id, StepPatch(step_id=shared.id, dependency_type="ANY", depends_on=("f5",))
            )
        with self.assertRaises(ScopeViolationError):
            self.create("shared_late", depends_on=("f5",))
        with self.assertRaises(ScopeViolationError):
            self.create("exit_check", form_id=5, is_exit_step=True, depends_on=("f5",))

        self.assertEqual(self.repo.get_step(shared.id).depends_on, ())
        self.assertIsNone(self.repo.find_by_key("shared_late"))
        self.assertEqual(self.repo.get_step(f5.id).form_id, 5)
        self.assertIn(AuditAction.VALIDATION_FAILED.value, self.events())

    def test_form_step_may_depend_on_global_step(self) -> None:
        self.create("shared")
        f5 = self.create("f5", form_id=5, depends_on=("shared", "not_yet_created"))
        self.assertEqual(f5.depends_on, ("shared", "not_yet_created"))

    def test_scope_move_cannot_strand_dependents(self) -> None:
        intake = self.create("intake", form_id=5)
        self.create("review", form_id=5, depends_on=("intake",))
        with self.assertRaises(ScopeViolationError):
            self.service.update_step(intake.id, StepPatch(step_id=intake.id, form_id=7))
        self.assertEqual(self.repo.get_step(intake.id).form_id, 5)

    def test_update_logs_changes(self) -> None:
        a = self.create("a")
        self.service.update_step(a.id, StepPatch(step_id=a.id, name="Arrival"))
        entry = self.log.query_logs(event=AuditAction.STEP_UPDATED.value)[0]
        self.assertEqual(entry.reference_id, "a")
        self.assertIn("[name]", entry.message)


class TestBulkUpdate(StepServiceTestCase):
    def test_two_email_claims_in_one_scope_rejected(self) -> None:
        a = self.create("a", form_id=5)
        b = self.create("b", form_id=5)
        with self.assertRaises(ValidationError):
            self.service.bulk_update_steps([
                StepPatch(step_id=a.id, email_step=True),
                StepPatch(step_id=b.id, email_step=True),
            ])
        self.assertFalse(any(s.email_step for s in self.repo.list_steps()))

    def test_unknown_step_writes_nothing(self) -> None:
        a = self.create("a")
        with self.assertRaises(StepNotFoundError):
            self.service.bulk_update_steps([
                StepPatch(step_id=a.id, display_order=10),
                StepPatch(step_id=999, display_order=20),
            ])
        self.assertEqual(self.repo.get_step(a.id).display_order, 0)

    def test_scope_guard(self) -> None:
        f5 = self.create("f5", form_id=5)
        f7 = self.create("f7", form_id=7)
        glob = self.create("glob")
        scope = StepScope.of(5, TargetAudience.LOCAL, "ENTRY")

        written = self.service.bulk_update_steps([
            StepPatch(step_id=f5.id, display_order=10),
            StepPatch(step_id=glob.id, display_order=10),
        ], scope=scope)
        self.assertEqual(len(written), 2)
        self.assertIsNone(self.repo.get_step(glob.id).form_id)

        with self.assertRaises(ScopeViolationError):
            self.service.bulk_update_steps([StepPatch(step_id=f7.id, display_order=10)], scope=scope)
        with self.assertRaises(ScopeViolationError):
            self.service.bulk_update_steps([StepPatch(step_id=glob.id, form_id=5)], scope=scope)
        self.assertEqual(self.repo.get_step(f7.id).display_order, 0)

    def test_patches_for_one_step_are_merged(self) -> None:
        a = self.create("a")
        self.service.bulk_update_steps([
            StepPatch(step_id=a.id, display_order=10),
            StepPatch(step_id=a.id, name="Renamed"),
        ])
        step = self.repo.get_step(a.id)
        self.assertEqual((step.display_order, step.name), (10, "Renamed"))


class TestDeleteStep(StepServiceTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.a = self.create("a", dependency_type=DependencyType.NONE)
        self.b = self.create("b", dependency_type=DependencyType.ALL, depends_on=("a",))
        self.c = self.create("c", dependency_type=DependencyType.ALL, depends_on=("a", "b"))

    def test_referenced_step_is_rejected(self) -> None:
        with self.assertRaises(StepReferencedError) as ctx:
            self.service.delete_step(self.a.id)
        self.assertIn("referenced by 2 steps", str(ctx.exception))
        self.assertEqual(ctx.exception.referenced_by, ("b", "c"))
        self.assertEqual(self.key_of(self.a.id), "a")
        self.assertIn(AuditAction.STEP_DELETE_REJECTED.value, self.events())

    def test_cascade_removes_references(self) -> None:
        self.service.delete_step(self.a.id, cascade=True)
        self.assertIsNone(self.repo.find_by_key("a"))

        b = self.repo.get_step(self.b.id)
        c = self.repo.get_step(self.c.id)
        self.assertEqual(b.depends_on, ())
        self.assertIs(b.dependency_type, DependencyType.NONE)
        self.assertEqual(c.depends_on, ("b",))
        self.assertIs(c.dependency_type, DependencyType.ALL)
        self.assertIn(AuditAction.STEP_DELETED.value, self.events())

    def test_unreferenced_step_deletes(self) -> None:
        self.service.delete_step(self.c.id)
        self.assertIsNone(self.repo.find_by_key("c"))

    def test_default_policy_from_constructor(self) -> None:
        cascading = StepService(self.repo, audit=AuditService(self.log), delete_cascade=True)
        cascading.delete_step(self.a.id)
        self.assertIsNone(self.repo.find_by_key("a"))


if __name__ == "__main__":
    unittest.main()
