"""MCP tool handlers.

All handlers follow a consistent pattern:
- Accept: arguments dict and the Operations facade
- Return: list[TextContent]
- Use formatters from formatters module for consistent output
- Turn Err results into an "Error (kind): message" text, never an exception
"""
import logging
from typing import Any, Callable

from mcp.types import TextContent

from pdl_core.operations import Operations
from pdl_core.results import Err

from . import formatters

logger = logging.getLogger("pdl-mcp.handlers")


def _text(text: str) -> list[TextContent]:
    return [TextContent(type="text", text=text)]


def _render(result, formatter: Callable[[Any], str]) -> list[TextContent]:
    """Format an operation result; the value is passed in its JSON form."""
    if isinstance(result, Err):
        return _text(f"Error ({result.kind.value}): {result.message}")
    value = result.model_dump(mode="json")["value"]
    return _text(formatter(value))


def _render_list(result, formatter: Callable[[dict], str], noun: str) -> list[TextContent]:
    def format_items(items: list[dict]) -> str:
        if not items:
            return f"No {noun} found."
        return f"Found {len(items)} {noun}\n\n" + "\n".join(formatter(item) for item in items)
    return _render(result, format_items)


# ============================================================================
# Repository Handlers
# ============================================================================

async def handle_initialize_repository(arguments: dict, ops: Operations) -> list[TextContent]:
    """Create the repository for the current codebase, or report that it exists."""
    result = ops.initialize_repository(
        description=arguments.get("description", ""),
        team_composition=arguments.get("team_composition"),
        metadata=arguments.get("metadata"),
    )

    def format_init(value: dict) -> str:
        if value["already_existed"]:
            return f"Repository {value['repository_id']} already initialized."
        logger.info(f"Initialized repository {value['repository_id']}")
        return f"Initialized repository {value['repository_id']}."
    return _render(result, format_init)


async def handle_list_repositories(arguments: dict, ops: Operations) -> list[TextContent]:
    return _render_list(ops.list_repositories(), formatters.format_repository, "repositories")


async def handle_get_metadata(arguments: dict, ops: Operations) -> list[TextContent]:
    result = ops.get_metadata(params=arguments.get("params"))
    return _render(result, lambda value: "\n".join(f"{k}: {v}" for k, v in value.items()) or "No metadata.")


async def handle_get_current_status(arguments: dict, ops: Operations) -> list[TextContent]:
    return _render(ops.get_current_status(), formatters.format_current_status)


async def handle_get_roadmap(arguments: dict, ops: Operations) -> list[TextContent]:
    result = ops.get_roadmap(
        repository_id=arguments.get("repository_id"),
        include_details=arguments.get("include_details", False),
    )
    return _render(result, formatters.format_roadmap)


async def handle_get_activity(arguments: dict, ops: Operations) -> list[TextContent]:
    result = ops.get_activity(limit=arguments.get("limit", 50))
    return _render_list(result, formatters.format_activity, "activity entries")


# ============================================================================
# Project Handlers
# ============================================================================

PROJECT_FIELDS = ("name", "description", "objective", "deliverables", "success_metrics",
                  "status", "completion_percentage")


def _pick(arguments: dict, fields: tuple[str, ...]) -> dict:
    return {k: arguments[k] for k in fields if k in arguments and arguments[k] is not None}


async def handle_create_roadmap(arguments: dict, ops: Operations) -> list[TextContent]:
    result = ops.create_roadmap(vision=arguments["vision"], projects=arguments.get("projects", []))
    return _render(result, formatters.format_roadmap)


async def handle_create_project(arguments: dict, ops: Operations) -> list[TextContent]:
    result = ops.create_project(_pick(arguments, PROJECT_FIELDS), position=arguments.get("position"))
    return _render(result, formatters.format_project)


async def handle_insert_project_at(arguments: dict, ops: Operations) -> list[TextContent]:
    result = ops.insert_project_at(_pick(arguments, PROJECT_FIELDS), position=arguments["position"])
    return _render(result, formatters.format_project)


async def handle_update_project_phase(arguments: dict, ops: Operations) -> list[TextContent]:
    result = ops.update_project_phase(arguments["project_id"], _pick(arguments, PROJECT_FIELDS))
    return _render(result, formatters.format_project)


async def handle_delete_project(arguments: dict, ops: Operations) -> list[TextContent]:
    result = ops.delete_project(arguments["project_id"], reassign_to=arguments.get("reassign_to"))
    return _render(result, _format_delete("project", "phase"))


async def handle_reorder_projects(arguments: dict, ops: Operations) -> list[TextContent]:
    result = ops.reorder_projects(arguments["project_ids"])
    return _render_list(result, formatters.format_project_summary, "projects")


async def handle_move_project(arguments: dict, ops: Operations) -> list[TextContent]:
    result = ops.move_project(
        arguments["project_id"],
        position=arguments.get("position"),
        repository_id=arguments.get("repository_id"),
    )
    return _render(result, formatters.format_project)


async def handle_list_projects(arguments: dict, ops: Operations) -> list[TextContent]:
    result = ops.list_projects(search=arguments.get("search"))
    return _render_list(result, formatters.format_project_summary, "projects")


def _format_delete(entity: str, child: str) -> Callable[[dict], str]:
    def format_delete(value: dict) -> str:
        text = f"Deleted {entity} {value['id']}."
        if value.get("reassigned_count"):
            text += f" Moved {value['reassigned_count']} {child}(s) to {value['reassigned_to']}."
        return text
    return format_delete


# ============================================================================
# Phase Handlers
# ============================================================================

PHASE_FIELDS = ("name", "status", "ended_at", "velocity", "retrospective")


async def handle_create_phase(arguments: dict, ops: Operations) -> list[TextContent]:
    result = ops.create_phase(
        arguments["project_id"],
        _pick(arguments, ("name", "status")),
        position=arguments.get("position"),
    )
    return _render(result, formatters.format_phase)


async def handle_insert_phase_at(arguments: dict, ops: Operations) -> list[TextContent]:
    result = ops.insert_phase_at(arguments["project_id"], _pick(arguments, ("name", "status")), arguments["position"])
    return _render(result, formatters.format_phase)


async def handle_update_phase(arguments: dict, ops: Operations) -> list[TextContent]:
    result = ops.update_phase(arguments["phase_id"], _pick(arguments, PHASE_FIELDS))
    return _render(result, formatters.format_phase)


async def handle_delete_phase(arguments: dict, ops: Operations) -> list[TextContent]:
    result = ops.delete_phase(arguments["phase_id"], reassign_to=arguments.get("reassign_to"))
    return _render(result, _format_delete("phase", "task"))


async def handle_reorder_phases(arguments: dict, ops: Operations) -> list[TextContent]:
    result = ops.reorder_phases(arguments["project_id"], arguments["phase_ids"])
    return _render_list(result, formatters.format_phase, "phases")


async def handle_move_phase(arguments: dict, ops: Operations) -> list[TextContent]:
    result = ops.move_phase(
        arguments["phase_id"],
        project_id=arguments.get("project_id"),
        position=arguments.get("position"),
    )
    return _render(result, formatters.format_phase)


async def handle_list_phases(arguments: dict, ops: Operations) -> list[TextContent]:
    result = ops.list_phases(arguments["project_id"], search=arguments.get("search"))
    return _render_list(result, formatters.format_phase, "phases")


# ============================================================================
# Step / Cycle Handlers
# ============================================================================

STEP_FIELDS = ("status", "completion_percentage", "deliverables", "blockers", "notes")


async def handle_list_steps(arguments: dict, ops: Operations) -> list[TextContent]:
    result = ops.list_steps(arguments["phase_id"], search=arguments.get("search"))
    return _render_list(result, formatters.format_step, "steps")


async def handle_update_step(arguments: dict, ops: Operations) -> list[TextContent]:
    result = ops.update_step(arguments["phase_id"], arguments["step_number"], _pick(arguments, STEP_FIELDS))
    return _render(result, formatters.format_step)


async def handle_advance_cycle(arguments: dict, ops: Operations) -> list[TextContent]:
    result = ops.advance_cycle(arguments["phase_id"], notes=arguments.get("notes"))
    return _render(result, formatters.format_cycle)


# ============================================================================
# Task Handlers
# ============================================================================

TASK_FIELDS = ("description", "step_number", "assignee", "status", "story_points")


async def handle_create_task(arguments: dict, ops: Operations) -> list[TextContent]:
    result = ops.create_task(arguments["phase_id"], _pick(arguments, TASK_FIELDS), position=arguments.get("position"))
    return _render(result, formatters.format_task)


async def handle_insert_task_at(arguments: dict, ops: Operations) -> list[TextContent]:
    result = ops.insert_task_at(arguments["phase_id"], _pick(arguments, TASK_FIELDS), arguments["position"])
    return _render(result, formatters.format_task)


async def handle_update_task(arguments: dict, ops: Operations) -> list[TextContent]:
    patch = _pick(arguments, ("description", "status"))
    # An explicit null clears these
    patch.update({k: arguments[k] for k in ("assignee", "story_points") if k in arguments})
    return _render(ops.update_task(arguments["task_id"], patch), formatters.format_task)


async def handle_bulk_update_tasks(arguments: dict, ops: Operations) -> list[TextContent]:
    result = ops.bulk_update_tasks(arguments["updates"])
    return _render_list(result, formatters.format_task, "updated tasks")


async def handle_delete_task(arguments: dict, ops: Operations) -> list[TextContent]:
    return _render(ops.delete_task(arguments["task_id"]), _format_delete("task", "task"))


async def handle_reorder_tasks(arguments: dict, ops: Operations) -> list[TextContent]:
    result = ops.reorder_tasks(arguments["phase_id"], arguments["step_number"], arguments["task_ids"])
    return _render_list(result, formatters.format_task, "tasks")


async def handle_move_task(arguments: dict, ops: Operations) -> list[TextContent]:
    result = ops.move_task(
        arguments["task_id"],
        phase_id=arguments.get("phase_id"),
        step_number=arguments.get("step_number"),
        position=arguments.get("position"),
    )
    return _render(result, formatters.format_task)


async def handle_list_tasks(arguments: dict, ops: Operations) -> list[TextContent]:
    result = ops.list_tasks(
        arguments["phase_id"],
        step_number=arguments.get("step_number"),
        search=arguments.get("search"),
    )
    return _render_list(result, formatters.format_task, "tasks")


# ============================================================================
# Documentation Handlers
# ============================================================================

DOCUMENTATION_FIELDS = ("name", "path", "summary_brief", "creating_agent", "project_id", "phase_id", "task_id")


async def handle_create_documentation(arguments: dict, ops: Operations) -> list[TextContent]:
    result = ops.create_documentation(_pick(arguments, DOCUMENTATION_FIELDS))
    return _render(result, formatters.format_documentation)


async def handle_list_documentation(arguments: dict, ops: Operations) -> list[TextContent]:
    result = ops.list_documentation(
        search=arguments.get("search"),
        project_id=arguments.get("project_id"),
        phase_id=arguments.get("phase_id"),
    )
    return _render_list(result, formatters.format_documentation, "documents")


# ============================================================================
# Consolidation Handlers
# ============================================================================

async def handle_run_consolidation(arguments: dict, ops: Operations) -> list[TextContent]:
    return _render(ops.run_consolidation(), formatters.format_consolidation_report)


HANDLERS = {
    "initialize_repository": handle_initialize_repository,
    "list_repositories": handle_list_repositories,
    "get_metadata": handle_get_metadata,
    "get_current_status": handle_get_current_status,
    "get_roadmap": handle_get_roadmap,
    "get_activity": handle_get_activity,
    "create_roadmap": handle_create_roadmap,
    "create_project": handle_create_project,
    "insert_project_at": handle_insert_project_at,
    "update_project_phase": handle_update_project_phase,
    "delete_project": handle_delete_project,
    "reorder_projects": handle_reorder_projects,
    "move_project": handle_move_project,
    "list_projects": handle_list_projects,
    "create_phase": handle_create_phase,
    "insert_phase_at": handle_insert_phase_at,
    "update_phase": handle_update_phase,
    "delete_phase": handle_delete_phase,
    "reorder_phases": handle_reorder_phases,
    "move_phase": handle_move_phase,
    "list_phases": handle_list_phases,
    "list_steps": handle_list_steps,
    "update_step": handle_update_step,
    "advance_cycle": handle_advance_cycle,
    "create_task": handle_create_task,
    "insert_task_at": handle_insert_task_at,
    "update_task": handle_update_task,
    "bulk_update_tasks": handle_bulk_update_tasks,
    "delete_task": handle_delete_task,
    "reorder_tasks": handle_reorder_tasks,
    "move_task": handle_move_task,
    "list_tasks": handle_list_tasks,
    "create_documentation": handle_create_documentation,
    "list_documentation": handle_list_documentation,
    "run_consolidation": handle_run_consolidation,
}


async def dispatch(name: str, arguments: dict, ops: Operations) -> list[TextContent]:
    """Route a tool call to its handler. Unknown tools and missing arguments become error text."""
    handler = HANDLERS.get(name)
    if handler is None:
        logger.warning(f"Unknown tool requested: {name}")
        return _text(f"Unknown tool: {name}")
    try:
        return await handler(arguments or {}, ops)
    except KeyError as e:
        logger.warning(f"Tool {name} called without required argument {e}")
        return _text(f"Error (validation): missing required argument {e}")
