"""Tests for merging legacy per-checkout stores into the canonical store."""
import json
import os
import shutil
import socket
import time

import pytest

from pdl_core import models
from pdl_core.config import Settings
from pdl_core.consolidation import ConsolidationService, MigrationLock, VALIDATION_PASSED, content_hash
from pdl_core.operations import Operations
from pdl_core.queries import get_migration_records
from pdl_core.store import Store

DEAD_PID = 2 ** 22 + 1  # above Linux pid_max, never running


def build_legacy_store(directory, repository_id="legacy-repo", populate=True):
    """Create ``<directory>/data/pdl.sqlite`` with one project, phase and task."""
    legacy_settings = Settings(
        data_dir=directory / "data",
        search_root=directory,
        repository_id=repository_id,
    )
    legacy = Store.from_settings(legacy_settings)
    if populate:
        ops = Operations(legacy, legacy_settings)
        ops.initialize_repository(description="Old checkout", team_composition={"engineers": ["ana"]})
        project = ops.create_project({"name": "Legacy", "objective": "Keep history"}).value
        phase = ops.create_phase(project.id, {"name": "Old sprint"}).value
        ops.advance_cycle(phase.id)
        ops.create_task(phase.id, {"description": "Carry over", "step_number": 2})
    legacy.dispose()
    return legacy_settings.database_path


def count(store, model):
    with store.read() as db:
        return db.query(model).count()


def ledger(store):
    with store.read() as db:
        return get_migration_records(db)


@pytest.fixture
def service(store, settings):
    return ConsolidationService(store, settings)


@pytest.fixture
def legacy_path(settings):
    return build_legacy_store(settings.search_root)


class TestDiscovery:
    def test_nothing_to_do(self, service):
        report = service.run()

        assert report.lock_acquired
        assert report.sources_found == []

    def test_finds_checkout_and_parent(self, settings, store):
        here = build_legacy_store(settings.search_root)
        parent = build_legacy_store(settings.search_root.parent, repository_id="parent-repo")

        found = ConsolidationService(store, settings).discover_sources()

        assert found == [here.resolve(), parent.resolve()]

    def test_canonical_store_is_never_a_source(self, settings, store):
        """Test the canonical store is excluded even when it sits on the search path."""
        deep = settings.model_copy(update={"consolidation_search_depth": 2})
        assert settings.database_path.exists()

        found = ConsolidationService(store, deep).discover_sources()

        assert settings.database_path.resolve() not in found


class TestConsolidation:
    def test_migrates_and_retires_source(self, store, service, legacy_path):
        source = str(legacy_path.resolve())

        report = service.run()

        assert report.migrated == [source]
        assert not legacy_path.exists()
        marker = json.loads((legacy_path.parent / ".pdl-migrated").read_text())
        assert marker["original_db"] == source
        assert marker["migrated_to"] == str(service.settings.database_path)

        with store.read() as db:
            project = db.query(models.Project).filter_by(name="Legacy").one()
            assert project.repository_id == "legacy-repo"
            assert project.order == 1
            repository = db.get(models.Repository, "legacy-repo")
            assert repository.team_composition.engineers == ["ana"]
            assert db.query(models.Step).filter_by(phase_id=project.phases[0].id).count() == 7
            assert db.query(models.Task).filter_by(description="Carry over").one().position == 1

        records = ledger(store)
        assert len(records) == 1
        assert records[0].status == "completed"
        assert records[0].validation_result == VALIDATION_PASSED

    def test_merged_rows_record_their_source(self, ops, store, service, legacy_path):
        source = str(legacy_path.resolve())
        ops.create_project({"name": "Native"})

        service.run()

        digest = ledger(store)[0].content_hash
        with store.read() as db:
            for model in (models.Repository, models.Project, models.Phase, models.Task):
                rows = db.query(model).filter(model.migrated_from.isnot(None)).all()
                assert rows, model.__name__
                assert {(r.migrated_from, r.migrated_hash) for r in rows} == {(source, digest)}
                assert all(r.migrated_at is not None for r in rows)
            native = db.query(models.Project).filter_by(name="Native").one()
            assert native.migrated_from is None
            assert db.get(models.Repository, "test-repo").migrated_from is None

    def test_source_under_uri_special_directory(self, service, tmp_path):
        """Test a store whose directory name contains ``?`` and ``#`` is read from the right file."""
        build_legacy_store(tmp_path / "plain")
        odd = tmp_path / "odd?dir#1"
        shutil.move(str(tmp_path / "plain"), str(odd))

        snapshot = service.extract(odd / "data" / "pdl.sqlite")

        assert [p["name"] for p in snapshot["projects"]] == ["Legacy"]
        assert [r["id"] for r in snapshot["repositories"]] == ["legacy-repo"]

    def test_idempotent_rerun(self, store, service, legacy_path, tmp_path):
        """Test re-running against the same content changes nothing."""
        backup = tmp_path / "backup.sqlite"
        shutil.copy(legacy_path, backup)
        service.run()
        counts = {model: count(store, model) for model in models.CONSOLIDATED_MODELS}

        shutil.copy(backup, legacy_path)
        report = service.run()

        assert report.skipped == [str(legacy_path.resolve())]
        assert report.migrated == []
        assert {model: count(store, model) for model in models.CONSOLIDATED_MODELS} == counts
        assert len(ledger(store)) == 1
        assert legacy_path.read_bytes() == backup.read_bytes()

    def test_validation_failure_keeps_source(self, store, service, legacy_path, monkeypatch):
        monkeypatch.setattr(ConsolidationService, "validate", lambda self, snapshot: "projects.name differs")

        report = service.run()

        assert report.failed == [str(legacy_path.resolve())]
        assert legacy_path.exists()
        assert not (legacy_path.parent / ".pdl-migrated").exists()
        records = ledger(store)
        assert [(r.status, r.validation_result) for r in records] == [("failed", "projects.name differs")]

    def test_retry_after_failure_does_not_duplicate(self, store, service, legacy_path, monkeypatch):
        monkeypatch.setattr(ConsolidationService, "validate", lambda self, snapshot: "forced")
        service.run()
        monkeypatch.undo()

        report = service.run()

        assert report.migrated == [str(legacy_path.resolve())]
        assert count(store, models.Project) == 1
        assert count(store, models.Step) == 7
        assert [r.status for r in ledger(store)] == ["failed", "completed"]

    def test_unreadable_source_is_recorded(self, store, service, settings):
        broken = settings.search_root / "data" / "pdl.sqlite"
        broken.parent.mkdir(parents=True)
        broken.write_bytes(b"not a database at all" * 100)

        report = service.run()

        assert report.failed == [str(broken.resolve())]
        assert broken.exists()
        records = ledger(store)
        assert records[0].status == "failed"
        assert records[0].validation_result.startswith("error: ")
        assert records[0].content_hash == ""

    def test_empty_source_is_skipped(self, store, service, settings):
        empty = build_legacy_store(settings.search_root, populate=False)

        report = service.run()

        assert report.skipped == [str(empty.resolve())]
        assert empty.exists()
        assert ledger(store) == []

    def test_sibling_collision_is_resequenced(self, ops, store, settings):
        """Test merged projects land in a gapless order next to existing ones."""
        ops.create_project({"name": "Existing"})
        build_legacy_store(settings.search_root, repository_id="test-repo")

        report = ConsolidationService(store, settings).run()

        assert len(report.migrated) == 1
        orders = sorted(p.order for p in ops.list_projects().value)
        assert orders == [1, 2]
        assert {p.name for p in ops.list_projects().value} == {"Existing", "Legacy"}

    def test_held_lock_skips_run(self, store, settings, legacy_path):
        holder = MigrationLock(settings.lock_path, settings.lock_stale_after_seconds)
        assert holder.acquire()
        try:
            report = ConsolidationService(store, settings).run()
        finally:
            holder.release()

        assert not report.lock_acquired
        assert report.sources_found == []
        assert legacy_path.exists()

    def test_lock_released_after_run(self, service, legacy_path):
        service.run()

        assert not service.settings.lock_path.exists()

    def test_run_through_operations(self, ops, legacy_path):
        result = ops.run_consolidation()

        assert result.ok
        assert result.value.migrated == [str(legacy_path.resolve())]


class TestContentHash:
    def test_hash_ignores_key_order(self):
        a = {"projects": [{"id": "1", "name": "x"}], "tasks": []}
        b = {"tasks": [], "projects": [{"name": "x", "id": "1"}]}

        assert content_hash(a) == content_hash(b)
        assert len(content_hash(a)) == 64

    def test_hash_changes_with_content(self):
        assert content_hash({"projects": [{"id": "1"}]}) != content_hash({"projects": [{"id": "2"}]})


class TestMigrationLock:
    """The lock is only taken over when provably stale."""

    def write_holder(self, path, **overrides):
        holder = {"pid": os.getpid(), "hostname": socket.gethostname(), "timestamp": time.time()}
        holder.update(overrides)
        path.write_text(json.dumps(holder))

    def test_acquire_and_release(self, tmp_path):
        path = tmp_path / "pdl-migration.lock"
        lock = MigrationLock(path, 3600)

        assert lock.acquire()
        holder = json.loads(path.read_text())
        assert holder["pid"] == os.getpid()
        assert holder["hostname"] == socket.gethostname()

        lock.release()
        assert not path.exists()

    def test_live_holder_is_respected(self, tmp_path):
        path = tmp_path / "pdl-migration.lock"
        self.write_holder(path, timestamp=time.time() - 10 * 3600)

        assert not MigrationLock(path, 3600).acquire()
        assert path.exists()

    def test_stale_lock_is_taken_over(self, tmp_path):
        """Test same host, dead pid and old timestamp together make a lock stale."""
        path = tmp_path / "pdl-migration.lock"
        self.write_holder(path, pid=DEAD_PID, timestamp=time.time() - 7200)
        lock = MigrationLock(path, 3600)

        assert lock.is_stale()
        assert lock.acquire()
        assert json.loads(path.read_text())["pid"] == os.getpid()
        lock.release()

    def test_recent_dead_holder_is_respected(self, tmp_path):
        path = tmp_path / "pdl-migration.lock"
        self.write_holder(path, pid=DEAD_PID)

        assert not MigrationLock(path, 3600).acquire()

    def test_other_host_is_respected(self, tmp_path):
        path = tmp_path / "pdl-migration.lock"
        self.write_holder(path, pid=DEAD_PID, hostname="elsewhere.invalid", timestamp=0)

        assert not MigrationLock(path, 3600).acquire()

    def test_unparseable_lock_is_held(self, tmp_path):
        path = tmp_path / "pdl-migration.lock"
        path.write_text("{not json")

        lock = MigrationLock(path, 0)
        assert not lock.is_stale()
        assert not lock.acquire()

    def test_release_without_holding_keeps_file(self, tmp_path):
        path = tmp_path / "pdl-migration.lock"
        self.write_holder(path)

        MigrationLock(path, 3600).release()

        assert path.exists()
