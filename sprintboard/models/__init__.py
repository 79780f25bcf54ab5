from .base import Base, BaseModel
from .project import Project
from .workflow import WorkflowStatus
from .board import Board, BoardColumn
from .sprint import Sprint
from .task import Task
from .activity import ActivityEntry

__all__ = [
    "Base",
    "BaseModel",
    "Project",
    "WorkflowStatus",
    "Board",
    "BoardColumn",
    "Sprint",
    "Task",
    "ActivityEntry",
]
