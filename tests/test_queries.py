"""Tests for status, roadmap and listing queries."""
from pdl_core.config import Settings
from pdl_core.errors import ErrorKind
from pdl_core.operations import Operations


class TestCurrentStatus:
    def test_empty_repository(self, ops):
        status = ops.get_current_status().value

        assert status.repository.id == "test-repo"
        assert status.repository.description == "Test repository"
        assert status.projects == []
        assert status.active_project is None
        assert status.active_phase is None

    def test_active_project_and_phase(self, ops, project, phase):
        """Test the first unfinished project and its latest active phase are reported."""
        ops.advance_cycle(phase.id)

        status = ops.get_current_status().value

        assert status.active_project.id == project.id
        assert status.active_phase.id == phase.id
        assert status.current_step.step_number == 2
        assert status.current_step.status == "in_progress"
        assert status.current_cycle.cycle_number == 1

    def test_in_progress_project_wins(self, ops, project):
        second = ops.create_project({"name": "Second", "status": "in_progress"}).value

        status = ops.get_current_status().value

        assert status.active_project.id == second.id

    def test_completed_projects_are_skipped(self, ops, project):
        ops.update_project_phase(project.id, {"status": "in_progress"})
        ops.update_project_phase(project.id, {"status": "completed"})
        second = ops.create_project({"name": "Second"}).value

        assert ops.get_current_status().value.active_project.id == second.id

    def test_latest_active_phase(self, ops, project, phase):
        later = ops.create_phase(project.id, {"name": "Sprint 2"}).value
        ops.create_phase(project.id, {"name": "Sprint 3", "status": "planning"})

        assert ops.get_current_status().value.active_phase.id == later.id

    def test_uninitialized_repository(self, store, settings):
        result = Operations(store, settings).get_current_status()

        assert not result.ok
        assert result.kind == ErrorKind.NOT_FOUND


class TestRoadmap:
    def test_roadmap_view(self, ops):
        result = ops.create_roadmap("Make planning painless", [
            {"name": "Foundations", "deliverables": ["schema", "api"]},
            {"name": "Growth", "success_metrics": ["100 users"]},
        ])

        assert result.ok
        roadmap = result.value
        assert roadmap.vision == "Make planning painless"
        assert [(p.name, p.order) for p in roadmap.projects] == [("Foundations", 1), ("Growth", 2)]
        assert roadmap.projects[0].deliverables == ["schema", "api"]
        assert roadmap.active_phase is None

    def test_roadmap_invalid_project_creates_nothing(self, ops):
        result = ops.create_roadmap("Vision", [{"name": "Ok"}, {"name": ""}])

        assert not result.ok
        assert result.kind == ErrorKind.VALIDATION
        assert ops.list_projects().value == []
        assert ops.get_roadmap().value.vision is None

    def test_details_include_active_phase(self, ops, project, phase):
        plain = ops.get_roadmap().value
        detailed = ops.get_roadmap(include_details=True).value

        assert plain.active_phase is None
        assert plain.projects[0].phases[0].id == phase.id
        assert detailed.active_phase.id == phase.id
        assert len(detailed.active_phase.steps) == 7
        assert detailed.active_phase.current_cycle.cycle_number == 1

    def test_phase_progress_is_step_mean(self, ops, project, phase):
        ops.update_step(phase.id, 1, {"status": "completed"})
        ops.update_step(phase.id, 2, {"completion_percentage": 50})

        summary = ops.get_roadmap().value.projects[0].phases[0]

        assert summary.progress == 21

    def test_other_repository(self, ops, store, settings):
        other = Operations(store, Settings(**{**settings.model_dump(), "repository_id": "other"}))
        other.initialize_repository()
        other.create_project({"name": "Elsewhere"})

        roadmap = ops.get_roadmap(repository_id="other").value

        assert [p.name for p in roadmap.projects] == ["Elsewhere"]
        assert {r.id for r in ops.list_repositories().value} == {"test-repo", "other"}


class TestSearch:
    """Listings filter with case-insensitive substring search."""

    def test_list_projects_search(self, ops, project):
        ops.create_project({"name": "Billing", "description": "Invoices and PAYMENTS"})

        assert [p.name for p in ops.list_projects(search="payments").value] == ["Billing"]
        assert [p.name for p in ops.list_projects(search="SHIP").value] == ["Launch"]
        assert ops.list_projects(search="nothing").value == []

    def test_list_tasks_search_and_step_filter(self, ops, phase):
        ops.create_task(phase.id, {"description": "Write API docs", "step_number": 4, "assignee": "Ana"})
        ops.create_task(phase.id, {"description": "Load test", "step_number": 5})
        ops.create_task(phase.id, {"description": "100% coverage", "step_number": 5})

        assert [t.description for t in ops.list_tasks(phase.id, search="ana").value] == ["Write API docs"]
        assert [t.description for t in ops.list_tasks(phase.id, step_number=5).value] == [
            "Load test", "100% coverage",
        ]
        assert [t.description for t in ops.list_tasks(phase.id, search="0%").value] == ["100% coverage"]

    def test_list_steps_search(self, ops, phase):
        ops.update_step(phase.id, 3, {"notes": "Figma handoff"})

        assert [s.step_number for s in ops.list_steps(phase.id, search="figma").value] == [3]
        assert [s.step_number for s in ops.list_steps(phase.id, search="testing").value] == [5]

    def test_list_phases_search(self, ops, project, phase):
        ops.create_phase(project.id, {"name": "Hardening"})

        assert [p.name for p in ops.list_phases(project.id, search="hard").value] == ["Hardening"]

    def test_list_unknown_phase(self, ops):
        result = ops.list_tasks("missing")

        assert not result.ok
        assert result.kind == ErrorKind.NOT_FOUND


class TestDocumentation:
    def test_create_and_filter(self, ops, project, phase):
        doc = ops.create_documentation({
            "name": "Architecture",
            "path": "docs/architecture.md",
            "summary_brief": "How the store works",
            "project_id": project.id,
        })
        ops.create_documentation({"name": "Runbook", "path": "docs/runbook.md", "phase_id": phase.id})

        assert doc.ok
        assert doc.value.repository_id == "test-repo"
        assert [d.name for d in ops.list_documentation(project_id=project.id).value] == ["Architecture"]
        assert [d.name for d in ops.list_documentation(search="RUNBOOK").value] == ["Runbook"]
        assert len(ops.list_documentation().value) == 2

    def test_unknown_link_rejected(self, ops):
        result = ops.create_documentation({"name": "Orphan", "path": "x.md", "task_id": "missing"})

        assert not result.ok
        assert result.kind == ErrorKind.NOT_FOUND
        assert ops.list_documentation().value == []


class TestMetadataAndActivity:
    def test_metadata_params(self, store, settings):
        ops = Operations(store, settings)
        ops.initialize_repository(metadata={"language": "python", "team": "core"})

        assert ops.get_metadata().value == {"language": "python", "team": "core"}
        assert ops.get_metadata(params=["team", "absent"]).value == {"team": "core"}

    def test_initialize_is_idempotent(self, ops):
        result = ops.initialize_repository(description="Changed")

        assert result.ok
        assert result.value.already_existed is True
        assert ops.get_current_status().value.repository.description == "Test repository"

    def test_activity_newest_first(self, ops, project, phase):
        ops.advance_cycle(phase.id)

        entries = ops.get_activity().value

        assert [e.action for e in entries[:3]] == ["cycle_advanced", "phase_created", "project_created"]
        assert entries[-1].action == "repository_initialized"
        assert entries[0].phase_id == phase.id
        assert len(ops.get_activity(limit=2).value) == 2

    def test_activity_limit_must_be_positive(self, ops):
        for limit in (0, -1):
            result = ops.get_activity(limit=limit)

            assert not result.ok
            assert result.kind == ErrorKind.VALIDATION
