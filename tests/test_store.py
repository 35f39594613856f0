"""Tests for the store: schema upgrade and transaction semantics."""
import pytest
from sqlalchemy import inspect

from pdl_core import models, ordering
from pdl_core.database import Base
from pdl_core.errors import ConflictError, ErrorKind
from pdl_core.store import Store


class TestSchema:
    """Alembic migrations build the full schema."""

    def test_all_tables_created(self, store):
        tables = set(inspect(store.engine).get_table_names())

        assert set(Base.metadata.tables) <= tables
        assert "alembic_version" in tables

    def test_reopen_is_noop(self, settings, store):
        """Test upgrading an up-to-date store leaves data in place."""
        with store.transaction() as db:
            db.add(models.Repository(id="kept"))

        reopened = Store.from_settings(settings)
        try:
            with reopened.read() as db:
                assert db.get(models.Repository, "kept") is not None
        finally:
            reopened.dispose()


class TestTransactions:
    """Store.transaction commits or rolls back as a unit."""

    def test_commit(self, store):
        with store.transaction() as db:
            db.add(models.Repository(id="r1", description="first"))

        with store.read() as db:
            assert db.get(models.Repository, "r1").description == "first"

    def test_exception_rolls_back_and_propagates(self, store):
        with pytest.raises(RuntimeError):
            with store.transaction() as db:
                db.add(models.Repository(id="r1"))
                db.flush()
                raise RuntimeError("boom")

        with store.read() as db:
            assert db.get(models.Repository, "r1") is None

    def test_nested_transaction_joins_outer(self, store):
        """Test an inner failure rolls back the outer work too."""
        with pytest.raises(RuntimeError):
            with store.transaction() as outer:
                outer.add(models.Repository(id="outer"))
                with store.transaction() as inner:
                    assert inner is outer
                    inner.add(models.Repository(id="inner"))
                raise RuntimeError("after inner")

        with store.read() as db:
            assert db.query(models.Repository).count() == 0

    def test_integrity_error_becomes_conflict(self, store):
        with store.transaction() as db:
            db.add(models.Repository(id="dup"))

        with pytest.raises(ConflictError) as exc_info:
            with store.transaction() as db:
                db.add(models.Repository(id="dup"))

        assert exc_info.value.kind == ErrorKind.CONFLICT


class TestRollbackAtomicity:
    """Failed operations leave no partial change."""

    def test_bulk_update_with_unknown_task(self, ops, phase):
        """Test a failure on the second update undoes the first."""
        task = ops.create_task(phase.id, {"description": "original", "step_number": 1}).value

        result = ops.bulk_update_tasks([
            {"task_id": task.id, "description": "changed", "status": "done"},
            {"task_id": "missing", "status": "done"},
        ])

        assert not result.ok
        assert result.kind == ErrorKind.NOT_FOUND
        reread = ops.list_tasks(phase.id).value[0]
        assert reread.description == "original"
        assert reread.status == "todo"

    def test_bulk_update_applies_all(self, ops, phase):
        a = ops.create_task(phase.id, {"description": "a", "step_number": 1}).value
        b = ops.create_task(phase.id, {"description": "b", "step_number": 1}).value

        result = ops.bulk_update_tasks([
            {"task_id": a.id, "status": "done"},
            {"task_id": b.id, "assignee": "sam", "story_points": 3},
        ])

        assert result.ok
        by_id = {t.id: t for t in ops.list_tasks(phase.id).value}
        assert by_id[a.id].status == "done"
        assert by_id[b.id].assignee == "sam"
        assert by_id[b.id].story_points == 3

    def test_update_task_applies_patch(self, ops, phase):
        task = ops.create_task(phase.id, {"description": "draft", "step_number": 2}).value

        result = ops.update_task(task.id, {"status": "in_progress", "assignee": "ana"})

        assert result.ok
        assert result.value.status == "in_progress"
        assert result.value.assignee == "ana"
        assert result.value.description == "draft"
        assert ops.get_activity().value[0].action == "task_updated"

    def test_update_task_rejects_negative_points(self, ops, phase):
        task = ops.create_task(phase.id, {"description": "draft", "step_number": 2}).value

        result = ops.update_task(task.id, {"story_points": -1})

        assert not result.ok
        assert result.kind == ErrorKind.VALIDATION
        assert ops.list_tasks(phase.id).value[0].story_points is None

    def test_forced_failure_mid_reorder(self, ops, phase, monkeypatch):
        """Test a failure after renumbering has started restores the old order."""
        ids = [ops.create_task(phase.id, {"description": d, "step_number": 1}).value.id for d in "abc"]
        original = ordering._renumber

        def renumber_then_fail(scope, rows):
            original(scope, rows)
            raise RuntimeError("disk full")

        monkeypatch.setattr(ordering, "_renumber", renumber_then_fail)
        with pytest.raises(RuntimeError):
            ops.reorder_tasks(phase.id, 1, list(reversed(ids)))
        monkeypatch.undo()

        assert [t.id for t in ops.list_tasks(phase.id, step_number=1).value] == ids

    def test_failed_operation_logs_no_activity(self, ops, project):
        before = len(ops.get_activity(limit=100).value)

        result = ops.delete_project("missing")

        assert not result.ok
        assert len(ops.get_activity(limit=100).value) == before
