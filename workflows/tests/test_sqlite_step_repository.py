"""
workflows/tests/test_sqlite_step_repository.py

Repository round trips against an in-memory SQLite database.
Uses unittest to avoid external test dependencies.
"""

from __future__ import annotations

import unittest

from workflows.dto.step_patch import StepPatch
from workflows.enum import DependencyType, TargetAudience
from workflows.exceptions import DuplicateKeyError, StepNotFoundError
from workflows.models import NewStepFields
from workflows.repository import RepoConfig, SQLiteStepRepository


class TestSQLiteStepRepository(unittest.TestCase):
    def setUp(self) -> None:
        self.repo = SQLiteStepRepository(RepoConfig(db_path=":memory:"))

    def tearDown(self) -> None:
        self.repo.close()

    def _create(self, key: str, **kw):
        return self.repo.create_step(NewStepFields(key=key, name=key.title(), required_role="ICS", **kw))

    def test_create_is_unplaced_and_normalized(self) -> None:
        step = self._create(
            "medical",
            form_id=5,
            target_audience=TargetAudience.INTERNATIONAL,
            dependency_type=DependencyType.NONE,
            depends_on=("intake",),
        )
        self.assertEqual(step.display_order, 0)
        self.assertEqual(step.depends_on, ())
        self.assertEqual(step.form_id, 5)
        self.assertIs(step.target_audience, TargetAudience.INTERNATIONAL)
        self.assertIsNotNone(step.created_at)
        self.assertEqual(self.repo.find_by_key("medical"), step)

    def test_duplicate_key_raises(self) -> None:
        self._create("intake")
        with self.assertRaises(DuplicateKeyError):
            self._create("intake")

    def test_update_and_read_back(self) -> None:
        a = self._create("a")
        b = self._create("b")
        updated = self.repo.update_step(b.id, StepPatch(
            step_id=b.id, display_order=20, depends_on=["a"], dependency_type="ALL", form_id=None,
        ))
        self.assertEqual(updated.display_order, 20)
        self.assertEqual(updated.depends_on, ("a",))
        self.assertIs(updated.dependency_type, DependencyType.ALL)
        self.assertEqual(self.repo.get_step(a.id).display_order, 0)

    def test_empty_patch_changes_nothing(self) -> None:
        a = self._create("a")
        self.assertEqual(self.repo.update_step(a.id, StepPatch(step_id=a.id)), a)

    def test_missing_step(self) -> None:
        with self.assertRaises(StepNotFoundError):
            self.repo.get_step(404)
        with self.assertRaises(StepNotFoundError):
            self.repo.update_step(404, StepPatch(step_id=404, name="x"))
        with self.assertRaises(StepNotFoundError):
            self.repo.delete_step(404)

    def test_delete(self) -> None:
        a = self._create("a")
        self.repo.delete_step(a.id)
        self.assertIsNone(self.repo.find_by_key("a"))
        self.assertEqual(self.repo.list_steps(), [])

    def test_bulk_update_is_atomic(self) -> None:
        a = self._create("a")
        b = self._create("b")
        patches = [
            StepPatch(step_id=a.id, display_order=10),
            StepPatch(step_id=b.id, display_order=20),
            StepPatch(step_id=999, display_order=30),
        ]
        with self.assertRaises(StepNotFoundError):
            self.repo.bulk_update_steps(patches)
        self.assertEqual([s.display_order for s in self.repo.list_steps()], [0, 0])

    def test_bulk_update_rolls_back_on_constraint_violation(self) -> None:
        a = self._create("a")
        b = self._create("b")
        with self.assertRaises(DuplicateKeyError):
            self.repo.bulk_update_steps([
                StepPatch(step_id=a.id, display_order=10),
                StepPatch(step_id=b.id, key="a"),
            ])
        self.assertEqual(self.repo.get_step(a.id).display_order, 0)
        self.assertEqual(self.repo.get_step(b.id).key, "b")


if __name__ == "__main__":
    unittest.main()
