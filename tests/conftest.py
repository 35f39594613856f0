"""Shared fixtures: a real SQLite store per test, migrated with Alembic."""
import pytest

from pdl_core.config import Settings
from pdl_core.operations import Operations
from pdl_core.store import Store


@pytest.fixture
def settings(tmp_path):
    """Settings isolated under tmp_path; the checkout lives two levels down."""
    checkout = tmp_path / "workspace" / "checkout"
    checkout.mkdir(parents=True)
    return Settings(
        data_dir=tmp_path / "data",
        search_root=checkout,
        repository_id="test-repo",
        consolidation_search_depth=1,
    )


@pytest.fixture
def store(settings):
    store = Store.from_settings(settings)
    yield store
    store.dispose()


@pytest.fixture
def ops(store, settings):
    """Operations over an initialized repository."""
    operations = Operations(store, settings)
    result = operations.initialize_repository(description="Test repository")
    assert result.ok
    return operations


@pytest.fixture
def project(ops):
    result = ops.create_project({"name": "Launch", "objective": "Ship v1"})
    assert result.ok
    return result.value


@pytest.fixture
def phase(ops, project):
    result = ops.create_phase(project.id, {"name": "Sprint 1"})
    assert result.ok
    return result.value
