"""Formatting functions for MCP responses.

Every formatter takes the JSON form of an operation result
(``model_dump(mode="json")``) and returns display text.
"""

STATUS_ICONS = {
    'not_started': '⬜',
    'in_progress': '🔄',
    'completed': '✅',
    'blocked': '⛔',
}


def format_progress_bar(percentage: int, width: int = 20) -> str:
    """Render a percentage as a fixed-width text bar."""
    filled = round(width * percentage / 100)
    return f"[{'█' * filled}{'░' * (width - filled)}] {percentage}%"


def format_repository(repo: dict) -> str:
    """Format a repository for display."""
    desc_info = f"\nDescription: {repo['description']}" if repo.get('description') else ""
    vision_info = f"\nVision: {repo['vision']}" if repo.get('vision') else ""
    team = repo.get('team_composition') or {}
    team_info = ""
    if team:
        roles = [f"{role}: {', '.join(v) if isinstance(v, list) else v}" for role, v in team.items() if v]
        team_info = "\nTeam: " + "; ".join(roles)

    return f"""**{repo['id']}**{desc_info}{vision_info}{team_info}
Overall progress: {format_progress_bar(repo['overall_progress'])}
Created: {repo['created_at']}"""


def format_project(proj: dict) -> str:
    """Format a roadmap project for display."""
    icon = STATUS_ICONS.get(proj['status'], '📋')
    objective_info = f"\nObjective: {proj['objective']}" if proj.get('objective') else ""
    desc_info = f"\nDescription: {proj['description']}" if proj.get('description') else ""
    deliverables_info = f"\nDeliverables: {', '.join(proj['deliverables'])}" if proj.get('deliverables') else ""
    metrics_info = f"\nSuccess metrics: {', '.join(proj['success_metrics'])}" if proj.get('success_metrics') else ""

    return f"""{proj['order']}. {icon} **{proj['name']}** ({proj['status']})
ID: {proj['id']}
Progress: {format_progress_bar(proj['completion_percentage'])}{objective_info}{desc_info}{deliverables_info}{metrics_info}"""


def format_project_summary(proj: dict) -> str:
    """Format a project as a compact one-liner for list views."""
    return f"{proj['order']}. [{proj['status']}] {proj['name']} - {proj['completion_percentage']}% (ID: {proj['id']})"


def format_phase(phase: dict) -> str:
    """Format a phase (sprint) for display, with steps when present."""
    progress = phase.get('progress')
    progress_info = f"\nProgress: {format_progress_bar(progress)}" if progress is not None else ""
    ended_info = f"\nEnded: {phase['ended_at']}" if phase.get('ended_at') else ""
    retro_info = f"\nRetrospective: {phase['retrospective']}" if phase.get('retrospective') else ""

    text = f"""Phase {phase['number']}: **{phase['name']}** ({phase['status']})
ID: {phase['id']}
Current step: {phase['current_step']}/7{progress_info}
Velocity: {phase['velocity']}
Started: {phase['started_at']}{ended_info}{retro_info}"""

    if phase.get('current_cycle'):
        text += "\n" + format_cycle(phase['current_cycle'])
    if phase.get('steps'):
        text += "\n\n" + "\n".join(format_step_summary(step) for step in phase['steps'])
    return text


def format_step(step: dict) -> str:
    """Format a step with its driver, activities and work notes."""
    icon = STATUS_ICONS.get(step['status'], '📋')
    deliverables_info = f"\nDeliverables: {', '.join(step['deliverables'])}" if step.get('deliverables') else ""
    blockers_info = f"\nBlockers: {', '.join(step['blockers'])}" if step.get('blockers') else ""
    notes_info = f"\nNotes: {step['notes']}" if step.get('notes') else ""

    return f"""{icon} Step {step['step_number']}: **{step['name']}** ({step['status']})
Primary driver: {step['primary_driver']}
Key activities: {', '.join(step['key_activities'])}
Progress: {format_progress_bar(step['completion_percentage'])}{deliverables_info}{blockers_info}{notes_info}"""


def format_step_summary(step: dict) -> str:
    """Format a step as a compact one-liner."""
    icon = STATUS_ICONS.get(step['status'], '📋')
    return f"{icon} {step['step_number']}. {step['name']} - {step['completion_percentage']}%"


def format_cycle(cycle: dict) -> str:
    """Format a cycle for display."""
    state = f"closed {cycle['ended_at']}" if cycle.get('ended_at') else "open"
    notes_info = f"\nCycle notes: {cycle['notes']}" if cycle.get('notes') else ""
    return f"Cycle {cycle['cycle_number']} ({state}, started {cycle['started_at']}){notes_info}"


def format_task(task: dict) -> str:
    """Format a task as a one-liner."""
    assignee_info = f" @{task['assignee']}" if task.get('assignee') else ""
    points_info = f" [{task['story_points']} pts]" if task.get('story_points') is not None else ""
    return (
        f"- {task['position']}. [{task['status']}] {task['description']}{assignee_info}{points_info} "
        f"(step {task['step_number']}, ID: {task['id']})"
    )


def format_documentation(doc: dict) -> str:
    """Format a documentation entry for display."""
    summary_info = f"\n{doc['summary_brief']}" if doc.get('summary_brief') else ""
    agent_info = f"\nCreated by: {doc['creating_agent']}" if doc.get('creating_agent') else ""
    return f"""**{doc['name']}**
Path: {doc['path']}
ID: {doc['id']}{agent_info}{summary_info}"""


def format_activity(entry: dict) -> str:
    """Format an activity log entry."""
    return f"- [{entry['timestamp']}] {entry['actor']}: {entry['action']} - {entry['details']}"


def format_roadmap(roadmap: dict) -> str:
    """Format the full roadmap view."""
    vision_info = f"Vision: {roadmap['vision']}\n" if roadmap.get('vision') else ""
    lines = [
        f"# Roadmap for {roadmap['repository_id']}",
        f"{vision_info}Overall progress: {format_progress_bar(roadmap['overall_progress'])}",
    ]
    for proj in roadmap['projects']:
        lines.append("")
        lines.append(format_project(proj))
        for phase in proj.get('phases', []):
            lines.append(f"  - Phase {phase['number']}: {phase['name']} ({phase['status']}, step {phase['current_step']}/7)")
    if roadmap.get('active_phase'):
        lines.append("\n## Active phase")
        lines.append(format_phase(roadmap['active_phase']))
    return "\n".join(lines)


def format_current_status(status: dict) -> str:
    """Format the current status view."""
    lines = [format_repository(status['repository'])]
    if status.get('active_project'):
        lines.append("\n## Active project\n" + format_project(status['active_project']))
    else:
        lines.append("\nNo active project. Use create_project() or create_roadmap() to plan work.")
    if status.get('active_phase'):
        lines.append("\n## Active phase\n" + format_phase(status['active_phase']))
    if status.get('current_step'):
        lines.append("\n## Current step\n" + format_step(status['current_step']))
    if status.get('projects'):
        lines.append("\n## Roadmap\n" + "\n".join(format_project_summary(p) for p in status['projects']))
    return "\n".join(lines)


def format_consolidation_report(report: dict) -> str:
    """Format a consolidation run report."""
    if not report['lock_acquired']:
        return "Consolidation skipped: another process holds the migration lock."
    if not report['sources_found']:
        return "No legacy stores found."
    return (
        f"Found {len(report['sources_found'])} legacy store(s): "
        f"{len(report['migrated'])} migrated, {len(report['skipped'])} skipped, {len(report['failed'])} failed"
    )
