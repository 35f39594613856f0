"""MCP tool definitions for the project lifecycle tracker.

Each tool maps one-to-one onto an ``Operations`` method; see handlers.HANDLERS.
"""

from mcp.types import Tool

STEP_STATUS_VALUES = ["not_started", "in_progress", "completed", "blocked"]
PHASE_STATUS_VALUES = ["planning", "active", "completed", "cancelled"]
TASK_STATUS_VALUES = ["todo", "in_progress", "done", "blocked"]


def _project_properties() -> dict:
    return {
        "name": {"type": "string", "description": "Project name"},
        "description": {"type": "string", "description": "Free-form description"},
        "objective": {"type": "string", "description": "What the project should achieve"},
        "deliverables": {
            "type": "array",
            "items": {"type": "string"},
            "description": "Expected deliverables",
        },
        "success_metrics": {
            "type": "array",
            "items": {"type": "string"},
            "description": "How success is measured",
        },
        "status": {
            "type": "string",
            "enum": STEP_STATUS_VALUES,
            "description": "Project status (default: not_started)",
        },
        "completion_percentage": {
            "type": "integer",
            "description": "Completion 0-100",
        },
    }


def _task_properties() -> dict:
    return {
        "description": {"type": "string", "description": "What needs doing"},
        "step_number": {"type": "integer", "description": "Step 1-7 the task belongs to"},
        "assignee": {"type": "string", "description": "Who owns the task"},
        "status": {
            "type": "string",
            "enum": TASK_STATUS_VALUES,
            "description": "Task status (default: todo)",
        },
        "story_points": {"type": "integer", "description": "Estimate (>= 0)"},
    }


def get_tools() -> list[Tool]:
    """Get the list of all MCP tools for project lifecycle tracking."""
    return [
        # ============================================================================
        # Repository Tools
        # ============================================================================
        Tool(
            name="initialize_repository",
            description="Initialize tracking for the current codebase. Safe to call again: "
                       "an existing repository is left untouched. "
                       "Common pattern: initialize_repository() → create_roadmap() → create_phase().",
            inputSchema={
                "type": "object",
                "properties": {
                    "description": {
                        "type": "string",
                        "description": "What the codebase is"
                    },
                    "team_composition": {
                        "type": "object",
                        "description": "Roles mapped to names, e.g. {\"engineers\": [\"ana\"]}"
                    },
                    "metadata": {
                        "type": "object",
                        "description": "Arbitrary key/value metadata"
                    }
                }
            }
        ),
        Tool(
            name="list_repositories",
            description="List every repository in the store.",
            inputSchema={"type": "object", "properties": {}}
        ),
        Tool(
            name="get_metadata",
            description="Get metadata of the current repository, optionally only selected keys.",
            inputSchema={
                "type": "object",
                "properties": {
                    "params": {
                        "type": "array",
                        "items": {"type": "string"},
                        "description": "Keys to return (default: all)"
                    }
                }
            }
        ),
        Tool(
            name="get_current_status",
            description="Show where the repository stands: active project, active phase, "
                       "current step and current cycle.",
            inputSchema={"type": "object", "properties": {}}
        ),
        Tool(
            name="get_roadmap",
            description="Show the roadmap: vision, ordered projects with progress, and the active phase.",
            inputSchema={
                "type": "object",
                "properties": {
                    "repository_id": {
                        "type": "string",
                        "description": "Repository to show (default: current)"
                    },
                    "include_details": {
                        "type": "boolean",
                        "description": "Include the active phase with its steps and cycle (default: false)"
                    }
                }
            }
        ),
        Tool(
            name="get_activity",
            description="List recent activity, newest first.",
            inputSchema={
                "type": "object",
                "properties": {
                    "limit": {
                        "type": "integer",
                        "description": "Maximum entries (default: 50)"
                    }
                }
            }
        ),
        # ============================================================================
        # Project Tools
        # ============================================================================
        Tool(
            name="create_roadmap",
            description="Set the roadmap vision and append projects in the given order.",
            inputSchema={
                "type": "object",
                "properties": {
                    "vision": {
                        "type": "string",
                        "description": "Product vision statement"
                    },
                    "projects": {
                        "type": "array",
                        "items": {"type": "object", "properties": _project_properties(), "required": ["name"]},
                        "description": "Projects to create, in roadmap order"
                    }
                },
                "required": ["vision"]
            }
        ),
        Tool(
            name="create_project",
            description="Create a roadmap project. Appended at the end unless position is given.",
            inputSchema={
                "type": "object",
                "properties": {
                    **_project_properties(),
                    "position": {
                        "type": "integer",
                        "description": "1-based order to insert at (default: append)"
                    }
                },
                "required": ["name"]
            }
        ),
        Tool(
            name="insert_project_at",
            description="Create a project at a 1-based position, shifting later projects down. "
                       "Errors: validation (position out of range).",
            inputSchema={
                "type": "object",
                "properties": {
                    **_project_properties(),
                    "position": {
                        "type": "integer",
                        "description": "1-based order, at most project count + 1"
                    }
                },
                "required": ["name", "position"]
            }
        ),
        Tool(
            name="update_project_phase",
            description="Update a project's fields or status. Status changes follow "
                       "not_started → in_progress → completed, with blocked as a side state.",
            inputSchema={
                "type": "object",
                "properties": {
                    "project_id": {
                        "type": "string",
                        "description": "UUID of the project"
                    },
                    **_project_properties()
                },
                "required": ["project_id"]
            }
        ),
        Tool(
            name="delete_project",
            description="Delete a project. A project with phases needs reassign_to, "
                       "another project of the same repository that receives them. "
                       "Errors: dependent_children (phases exist and no reassign_to).",
            inputSchema={
                "type": "object",
                "properties": {
                    "project_id": {
                        "type": "string",
                        "description": "UUID of the project to delete"
                    },
                    "reassign_to": {
                        "type": "string",
                        "description": "UUID of the project that receives the phases"
                    }
                },
                "required": ["project_id"]
            }
        ),
        Tool(
            name="reorder_projects",
            description="Reorder all projects. project_ids must list every project exactly once.",
            inputSchema={
                "type": "object",
                "properties": {
                    "project_ids": {
                        "type": "array",
                        "items": {"type": "string"},
                        "description": "Project UUIDs in the new order"
                    }
                },
                "required": ["project_ids"]
            }
        ),
        Tool(
            name="move_project",
            description="Move a project to another position, or to another repository.",
            inputSchema={
                "type": "object",
                "properties": {
                    "project_id": {
                        "type": "string",
                        "description": "UUID of the project"
                    },
                    "position": {
                        "type": "integer",
                        "description": "Target 1-based order (default: end)"
                    },
                    "repository_id": {
                        "type": "string",
                        "description": "Target repository (default: unchanged)"
                    }
                },
                "required": ["project_id"]
            }
        ),
        Tool(
            name="list_projects",
            description="List projects in roadmap order, optionally filtered by a search term.",
            inputSchema={
                "type": "object",
                "properties": {
                    "search": {
                        "type": "string",
                        "description": "Case-insensitive match on name, description or objective"
                    }
                }
            }
        ),
        # ============================================================================
        # Phase Tools
        # ============================================================================
        Tool(
            name="create_phase",
            description="Create a phase (sprint) in a project. The phase gets 7 steps and cycle 1, "
                       "with step 1 in progress.",
            inputSchema={
                "type": "object",
                "properties": {
                    "project_id": {
                        "type": "string",
                        "description": "UUID of the parent project"
                    },
                    "name": {
                        "type": "string",
                        "description": "Phase name"
                    },
                    "status": {
                        "type": "string",
                        "enum": PHASE_STATUS_VALUES,
                        "description": "Phase status (default: active)"
                    },
                    "position": {
                        "type": "integer",
                        "description": "1-based number to insert at (default: append)"
                    }
                },
                "required": ["project_id", "name"]
            }
        ),
        Tool(
            name="insert_phase_at",
            description="Create a phase at a 1-based position within its project.",
            inputSchema={
                "type": "object",
                "properties": {
                    "project_id": {
                        "type": "string",
                        "description": "UUID of the parent project"
                    },
                    "name": {
                        "type": "string",
                        "description": "Phase name"
                    },
                    "status": {
                        "type": "string",
                        "enum": PHASE_STATUS_VALUES,
                        "description": "Phase status (default: active)"
                    },
                    "position": {
                        "type": "integer",
                        "description": "1-based number, at most phase count + 1"
                    }
                },
                "required": ["project_id", "name", "position"]
            }
        ),
        Tool(
            name="update_phase",
            description="Update a phase. Completing or cancelling stamps ended_at; "
                       "reactivating opens a new cycle when none is open.",
            inputSchema={
                "type": "object",
                "properties": {
                    "phase_id": {
                        "type": "string",
                        "description": "UUID of the phase"
                    },
                    "name": {"type": "string", "description": "Phase name"},
                    "status": {
                        "type": "string",
                        "enum": PHASE_STATUS_VALUES,
                        "description": "New status"
                    },
                    "ended_at": {"type": "string", "description": "ISO-8601 end timestamp"},
                    "velocity": {"type": "integer", "description": "Story points delivered"},
                    "retrospective": {"type": "string", "description": "Retrospective notes"}
                },
                "required": ["phase_id"]
            }
        ),
        Tool(
            name="delete_phase",
            description="Delete a phase. A phase with tasks needs reassign_to, another phase "
                       "of the same project; tasks keep their step number.",
            inputSchema={
                "type": "object",
                "properties": {
                    "phase_id": {
                        "type": "string",
                        "description": "UUID of the phase to delete"
                    },
                    "reassign_to": {
                        "type": "string",
                        "description": "UUID of the phase that receives the tasks"
                    }
                },
                "required": ["phase_id"]
            }
        ),
        Tool(
            name="reorder_phases",
            description="Reorder the phases of a project. phase_ids must list every phase exactly once.",
            inputSchema={
                "type": "object",
                "properties": {
                    "project_id": {
                        "type": "string",
                        "description": "UUID of the project"
                    },
                    "phase_ids": {
                        "type": "array",
                        "items": {"type": "string"},
                        "description": "Phase UUIDs in the new order"
                    }
                },
                "required": ["project_id", "phase_ids"]
            }
        ),
        Tool(
            name="move_phase",
            description="Move a phase to another position, or to another project.",
            inputSchema={
                "type": "object",
                "properties": {
                    "phase_id": {
                        "type": "string",
                        "description": "UUID of the phase"
                    },
                    "project_id": {
                        "type": "string",
                        "description": "Target project (default: unchanged)"
                    },
                    "position": {
                        "type": "integer",
                        "description": "Target 1-based number (default: end)"
                    }
                },
                "required": ["phase_id"]
            }
        ),
        Tool(
            name="list_phases",
            description="List the phases of a project in order.",
            inputSchema={
                "type": "object",
                "properties": {
                    "project_id": {
                        "type": "string",
                        "description": "UUID of the project"
                    },
                    "search": {
                        "type": "string",
                        "description": "Case-insensitive match on phase name or retrospective"
                    }
                },
                "required": ["project_id"]
            }
        ),
        # ============================================================================
        # Step / Cycle Tools
        # ============================================================================
        Tool(
            name="list_steps",
            description="List the 7 steps of a phase with status and progress.",
            inputSchema={
                "type": "object",
                "properties": {
                    "phase_id": {
                        "type": "string",
                        "description": "UUID of the phase"
                    },
                    "search": {
                        "type": "string",
                        "description": "Case-insensitive match on step name or notes"
                    }
                },
                "required": ["phase_id"]
            }
        ),
        Tool(
            name="update_step",
            description="Update a step. Completing the current step starts the next one. "
                       "Only the current step can be set in_progress. "
                       "Errors: validation (invalid status transition).",
            inputSchema={
                "type": "object",
                "properties": {
                    "phase_id": {
                        "type": "string",
                        "description": "UUID of the phase"
                    },
                    "step_number": {
                        "type": "integer",
                        "description": "Step 1-7"
                    },
                    "status": {
                        "type": "string",
                        "enum": STEP_STATUS_VALUES,
                        "description": "New status"
                    },
                    "completion_percentage": {"type": "integer", "description": "Completion 0-100"},
                    "deliverables": {
                        "type": "array",
                        "items": {"type": "string"},
                        "description": "Step deliverables"
                    },
                    "blockers": {
                        "type": "array",
                        "items": {"type": "string"},
                        "description": "Current blockers"
                    },
                    "notes": {"type": "string", "description": "Work notes"}
                },
                "required": ["phase_id", "step_number"]
            }
        ),
        Tool(
            name="advance_cycle",
            description="Complete the current step and move on. From step 7 the cycle closes "
                       "and a new cycle starts at step 1.",
            inputSchema={
                "type": "object",
                "properties": {
                    "phase_id": {
                        "type": "string",
                        "description": "UUID of the phase"
                    },
                    "notes": {
                        "type": "string",
                        "description": "Notes appended to the cycle"
                    }
                },
                "required": ["phase_id"]
            }
        ),
        # ============================================================================
        # Task Tools
        # ============================================================================
        Tool(
            name="create_task",
            description="Create a task under a phase step. Appended unless position is given.",
            inputSchema={
                "type": "object",
                "properties": {
                    "phase_id": {
                        "type": "string",
                        "description": "UUID of the phase"
                    },
                    **_task_properties(),
                    "position": {
                        "type": "integer",
                        "description": "1-based position within the step (default: append)"
                    }
                },
                "required": ["phase_id", "description", "step_number"]
            }
        ),
        Tool(
            name="insert_task_at",
            description="Create a task at a 1-based position within its phase step.",
            inputSchema={
                "type": "object",
                "properties": {
                    "phase_id": {
                        "type": "string",
                        "description": "UUID of the phase"
                    },
                    **_task_properties(),
                    "position": {
                        "type": "integer",
                        "description": "1-based position, at most task count + 1"
                    }
                },
                "required": ["phase_id", "description", "step_number", "position"]
            }
        ),
        Tool(
            name="update_task",
            description="Update a task's description, assignee, status or story points.",
            inputSchema={
                "type": "object",
                "properties": {
                    "task_id": {
                        "type": "string",
                        "description": "UUID of the task"
                    },
                    "description": {"type": "string", "description": "What needs doing"},
                    "assignee": {"type": ["string", "null"], "description": "Who owns the task (null clears it)"},
                    "status": {
                        "type": "string",
                        "enum": TASK_STATUS_VALUES,
                        "description": "New status"
                    },
                    "story_points": {"type": ["integer", "null"], "description": "Estimate (>= 0, null clears it)"}
                },
                "required": ["task_id"]
            }
        ),
        Tool(
            name="bulk_update_tasks",
            description="Update several tasks at once. All updates apply, or none do.",
            inputSchema={
                "type": "object",
                "properties": {
                    "updates": {
                        "type": "array",
                        "items": {
                            "type": "object",
                            "properties": {
                                "task_id": {"type": "string"},
                                "description": {"type": "string"},
                                "assignee": {"type": "string"},
                                "status": {"type": "string", "enum": TASK_STATUS_VALUES},
                                "story_points": {"type": "integer"}
                            },
                            "required": ["task_id"]
                        },
                        "description": "One entry per task to update"
                    }
                },
                "required": ["updates"]
            }
        ),
        Tool(
            name="delete_task",
            description="Delete a task. Remaining tasks of the step are renumbered.",
            inputSchema={
                "type": "object",
                "properties": {
                    "task_id": {
                        "type": "string",
                        "description": "UUID of the task to delete"
                    }
                },
                "required": ["task_id"]
            }
        ),
        Tool(
            name="reorder_tasks",
            description="Reorder the tasks of one phase step. task_ids must list every task exactly once.",
            inputSchema={
                "type": "object",
                "properties": {
                    "phase_id": {
                        "type": "string",
                        "description": "UUID of the phase"
                    },
                    "step_number": {
                        "type": "integer",
                        "description": "Step 1-7"
                    },
                    "task_ids": {
                        "type": "array",
                        "items": {"type": "string"},
                        "description": "Task UUIDs in the new order"
                    }
                },
                "required": ["phase_id", "step_number", "task_ids"]
            }
        ),
        Tool(
            name="move_task",
            description="Move a task to another position, step or phase.",
            inputSchema={
                "type": "object",
                "properties": {
                    "task_id": {
                        "type": "string",
                        "description": "UUID of the task"
                    },
                    "phase_id": {
                        "type": "string",
                        "description": "Target phase (default: unchanged)"
                    },
                    "step_number": {
                        "type": "integer",
                        "description": "Target step (default: unchanged)"
                    },
                    "position": {
                        "type": "integer",
                        "description": "Target 1-based position (default: end)"
                    }
                },
                "required": ["task_id"]
            }
        ),
        Tool(
            name="list_tasks",
            description="List the tasks of a phase, optionally for one step or matching a search term.",
            inputSchema={
                "type": "object",
                "properties": {
                    "phase_id": {
                        "type": "string",
                        "description": "UUID of the phase"
                    },
                    "step_number": {
                        "type": "integer",
                        "description": "Only tasks of this step"
                    },
                    "search": {
                        "type": "string",
                        "description": "Case-insensitive match on description or assignee"
                    }
                },
                "required": ["phase_id"]
            }
        ),
        # ============================================================================
        # Documentation Tools
        # ============================================================================
        Tool(
            name="create_documentation",
            description="Register a documentation file, optionally linked to a project, phase or task.",
            inputSchema={
                "type": "object",
                "properties": {
                    "name": {"type": "string", "description": "Document title"},
                    "path": {"type": "string", "description": "Path of the file"},
                    "summary_brief": {"type": "string", "description": "Short summary"},
                    "creating_agent": {"type": "string", "description": "Who wrote it"},
                    "project_id": {"type": "string", "description": "Linked project UUID"},
                    "phase_id": {"type": "string", "description": "Linked phase UUID"},
                    "task_id": {"type": "string", "description": "Linked task UUID"}
                },
                "required": ["name", "path"]
            }
        ),
        Tool(
            name="list_documentation",
            description="List registered documentation, optionally filtered.",
            inputSchema={
                "type": "object",
                "properties": {
                    "search": {
                        "type": "string",
                        "description": "Case-insensitive match on name, path or summary"
                    },
                    "project_id": {"type": "string", "description": "Only documents of this project"},
                    "phase_id": {"type": "string", "description": "Only documents of this phase"}
                }
            }
        ),
        # ============================================================================
        # Consolidation Tools
        # ============================================================================
        Tool(
            name="run_consolidation",
            description="Merge legacy per-directory stores found near the search root into "
                       "the canonical store. Already-merged content is skipped.",
            inputSchema={"type": "object", "properties": {}}
        ),
    ]
