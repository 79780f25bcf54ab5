"""
Default workflow status sets, one per project methodology.

A project created with a methodology code is seeded with the matching set.
Each entry is ``(status_id, name, category, color, flags)``.
"""
from typing import Any, Dict, List, Tuple

from .constants import StatusCategory

TODO = StatusCategory.TODO.value
IN_PROGRESS = StatusCategory.IN_PROGRESS.value
DONE = StatusCategory.DONE.value

_StatusRow = Tuple[str, str, str, str, str]

_DEFAULTS: Dict[str, List[_StatusRow]] = {
    "scrum": [
        ("backlog", "Backlog", TODO, "#6B7280", "initial"),
        ("ready", "Ready", TODO, "#3B82F6", ""),
        ("in-progress", "In Progress", IN_PROGRESS, "#F59E0B", ""),
        ("in-review", "In Review", IN_PROGRESS, "#8B5CF6", ""),
        ("done", "Done", DONE, "#10B981", "final"),
    ],
    "kanban": [
        ("todo", "To Do", TODO, "#6B7280", "initial"),
        ("in-progress", "In Progress", IN_PROGRESS, "#F59E0B", ""),
        ("review", "Review", IN_PROGRESS, "#8B5CF6", ""),
        ("done", "Done", DONE, "#10B981", "final"),
    ],
    "waterfall": [
        ("requirements", "Requirements", TODO, "#6B7280", "initial"),
        ("design", "Design", IN_PROGRESS, "#3B82F6", ""),
        ("implementation", "Implementation", IN_PROGRESS, "#F59E0B", ""),
        ("testing", "Testing", IN_PROGRESS, "#8B5CF6", ""),
        ("deployment", "Deployment", IN_PROGRESS, "#EC4899", ""),
        ("completed", "Completed", DONE, "#10B981", "final"),
    ],
    "itil": [
        ("draft", "Draft", TODO, "#6B7280", "initial"),
        ("submitted", "Submitted", TODO, "#3B82F6", ""),
        ("assessment", "Assessment", IN_PROGRESS, "#F59E0B", ""),
        ("cab-review", "CAB Review", IN_PROGRESS, "#8B5CF6", ""),
        ("approved", "Approved", IN_PROGRESS, "#10B981", ""),
        ("scheduled", "Scheduled", IN_PROGRESS, "#EC4899", ""),
        ("implementing", "Implementing", IN_PROGRESS, "#F97316", ""),
        ("review", "Post-Implementation Review", IN_PROGRESS, "#06B6D4", ""),
        ("closed", "Closed", DONE, "#10B981", "final"),
        ("rejected", "Rejected", DONE, "#EF4444", "final"),
    ],
    "lean": [
        ("idea", "Idea", TODO, "#6B7280", "initial"),
        ("validated", "Validated", TODO, "#3B82F6", ""),
        ("building", "Building", IN_PROGRESS, "#F59E0B", ""),
        ("measuring", "Measuring", IN_PROGRESS, "#8B5CF6", ""),
        ("learning", "Learning", IN_PROGRESS, "#EC4899", ""),
        ("done", "Done", DONE, "#10B981", "final"),
    ],
    "okr": [
        ("draft", "Draft", TODO, "#6B7280", "initial"),
        ("committed", "Committed", TODO, "#3B82F6", ""),
        ("on-track", "On Track", IN_PROGRESS, "#10B981", ""),
        ("at-risk", "At Risk", IN_PROGRESS, "#F59E0B", ""),
        ("off-track", "Off Track", IN_PROGRESS, "#EF4444", ""),
        ("achieved", "Achieved", DONE, "#10B981", "final"),
        ("missed", "Missed", DONE, "#EF4444", "final"),
    ],
}

METHODOLOGIES = tuple(_DEFAULTS)


def default_statuses(methodology: str) -> List[Dict[str, Any]]:
    """Return the default status definitions for ``methodology``, in order."""
    rows = _DEFAULTS[methodology]
    return [
        {
            "status_id": status_id,
            "name": name,
            "category": category,
            "color": color,
            "order": index,
            "is_initial": flags == "initial",
            "is_final": flags == "final",
        }
        for index, (status_id, name, category, color, flags) in enumerate(rows)
    ]
