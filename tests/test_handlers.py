"""Tests for MCP tool definitions and handlers."""
import pytest

from pdl_mcp import handlers, tools


class TestToolDefinitions:
    def test_every_tool_has_a_handler(self):
        names = [tool.name for tool in tools.get_tools()]

        assert len(names) == len(set(names))
        assert set(names) == set(handlers.HANDLERS)

    def test_required_arguments_are_declared(self):
        """Test every required argument is also a declared property."""
        for tool in tools.get_tools():
            schema = tool.inputSchema
            assert schema["type"] == "object"
            for name in schema.get("required", []):
                assert name in schema["properties"], f"{tool.name}: {name}"


class TestDispatch:
    @pytest.mark.asyncio
    async def test_unknown_tool(self, ops):
        content = await handlers.dispatch("does_not_exist", {}, ops)

        assert len(content) == 1
        assert content[0].type == "text"
        assert content[0].text == "Unknown tool: does_not_exist"

    @pytest.mark.asyncio
    async def test_missing_required_argument(self, ops):
        content = await handlers.dispatch("update_step", {"phase_id": "x"}, ops)

        assert content[0].text.startswith("Error (validation): missing required argument")
        assert "step_number" in content[0].text

    @pytest.mark.asyncio
    async def test_error_result_is_text(self, ops):
        content = await handlers.dispatch("delete_project", {"project_id": "missing"}, ops)

        assert content[0].text.startswith("Error (not_found):")
        assert "missing" in content[0].text


class TestHandlers:
    @pytest.mark.asyncio
    async def test_project_lifecycle_through_tools(self, ops):
        """Test a roadmap can be built and inspected entirely through tool calls."""
        created = await handlers.dispatch("create_roadmap", {
            "vision": "Ship it",
            "projects": [{"name": "Launch"}, {"name": "Scale"}],
        }, ops)
        assert "# Roadmap for test-repo" in created[0].text
        assert "Vision: Ship it" in created[0].text

        project_id = ops.list_projects().value[0].id
        phase = await handlers.dispatch("create_phase", {"project_id": project_id, "name": "Sprint 1"}, ops)
        assert "Phase 1: **Sprint 1** (active)" in phase[0].text
        assert "Cycle 1 (open" in phase[0].text

        phase_id = ops.list_phases(project_id).value[0].id
        step = await handlers.dispatch("update_step", {"phase_id": phase_id, "step_number": 1, "status": "completed"}, ops)
        assert "Step 1: **Discovery & Ideation** (completed)" in step[0].text

        status = await handlers.dispatch("get_current_status", {}, ops)
        assert "## Active phase" in status[0].text
        assert "Step 2: **Definition & Scoping** (in_progress)" in status[0].text

    @pytest.mark.asyncio
    async def test_initialize_again_reports_existing(self, ops):
        content = await handlers.dispatch("initialize_repository", {"description": "again"}, ops)

        assert content[0].text == "Repository test-repo already initialized."

    @pytest.mark.asyncio
    async def test_list_projects_empty(self, ops):
        content = await handlers.dispatch("list_projects", {}, ops)

        assert content[0].text == "No projects found."

    @pytest.mark.asyncio
    async def test_task_tools(self, ops, phase):
        created = await handlers.dispatch("create_task", {
            "phase_id": phase.id,
            "description": "Write tests",
            "step_number": 1,
            "assignee": "ana",
            "story_points": 3,
        }, ops)
        assert "[todo] Write tests @ana [3 pts]" in created[0].text

        task_id = ops.list_tasks(phase.id).value[0].id
        updated = await handlers.dispatch("bulk_update_tasks", {"updates": [{"task_id": task_id, "status": "done"}]}, ops)
        assert "Found 1 updated tasks" in updated[0].text
        assert "[done] Write tests" in updated[0].text

        listed = await handlers.dispatch("list_tasks", {"phase_id": phase.id, "search": "TESTS"}, ops)
        assert "Found 1 tasks" in listed[0].text

    @pytest.mark.asyncio
    async def test_update_task_null_clears_assignee(self, ops, phase):
        task = ops.create_task(phase.id, {
            "description": "Review",
            "step_number": 2,
            "assignee": "ana",
            "story_points": 5,
        }).value

        content = await handlers.dispatch("update_task", {
            "task_id": task.id,
            "assignee": None,
            "story_points": None,
            "description": None,
        }, ops)

        assert "[todo] Review (step 2" in content[0].text
        reread = ops.list_tasks(phase.id).value[0]
        assert reread.assignee is None
        assert reread.story_points is None
        assert reread.description == "Review"

    @pytest.mark.asyncio
    async def test_advance_cycle_tool(self, ops, phase):
        for _ in range(7):
            content = await handlers.dispatch("advance_cycle", {"phase_id": phase.id}, ops)

        assert content[0].text.startswith("Cycle 2 (open")

    @pytest.mark.asyncio
    async def test_invalid_input_is_reported(self, ops, phase):
        content = await handlers.dispatch("create_task", {
            "phase_id": phase.id,
            "description": "Bad step",
            "step_number": 9,
        }, ops)

        assert content[0].text.startswith("Error (validation): Invalid input: step_number")

    @pytest.mark.asyncio
    async def test_delete_with_reassignment(self, ops, project, phase):
        target = ops.create_project({"name": "Target"}).value

        content = await handlers.dispatch("delete_project", {"project_id": project.id, "reassign_to": target.id}, ops)

        assert content[0].text == f"Deleted project {project.id}. Moved 1 phase(s) to {target.id}."

    @pytest.mark.asyncio
    async def test_documentation_tools(self, ops):
        await handlers.dispatch("create_documentation", {"name": "ADR 1", "path": "docs/adr/001.md"}, ops)

        content = await handlers.dispatch("list_documentation", {"search": "adr"}, ops)

        assert "Found 1 documents" in content[0].text
        assert "Path: docs/adr/001.md" in content[0].text

    @pytest.mark.asyncio
    async def test_consolidation_tool(self, ops):
        content = await handlers.dispatch("run_consolidation", {}, ops)

        assert content[0].text == "No legacy stores found."

    @pytest.mark.asyncio
    async def test_metadata_and_activity(self, ops):
        metadata = await handlers.dispatch("get_metadata", {}, ops)
        activity = await handlers.dispatch("get_activity", {"limit": 5}, ops)

        assert metadata[0].text == "No metadata."
        assert "repository_initialized" in activity[0].text
