from sqlalchemy import Column, String, Integer, Text
from .base import BaseModel


class Project(BaseModel):
    __tablename__ = "projects"

    key = Column(String(10), nullable=False, unique=True, index=True)
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    organization_id = Column(String, nullable=False, index=True)
    methodology = Column(String, nullable=False, default="scrum")  # scrum, kanban, waterfall, itil, lean, okr

    # Last issued task number; tasks get "<key>-<task_counter>"
    task_counter = Column(Integer, nullable=False, default=0)
    sprint_counter = Column(Integer, nullable=False, default=0)

    # Bumped by every workflow status mutation
    workflow_version = Column(Integer, nullable=False, default=0)

    created_by = Column(String, nullable=True)
