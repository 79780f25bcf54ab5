from sqlalchemy import Column, String, Integer, Text, Date, DateTime, ForeignKey, JSON, UniqueConstraint
from .base import BaseModel


class Task(BaseModel):
    __tablename__ = "tasks"
    __table_args__ = (
        UniqueConstraint("project_id", "number", name="uq_task_project_number"),
    )

    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    number = Column(Integer, nullable=False)
    key = Column(String(32), nullable=False, index=True)

    # Core fields
    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=True)
    type = Column(String, nullable=False, default="task")  # epic, story, task, bug, subtask, change_request
    priority = Column(String, nullable=False, default="medium")  # critical, high, medium, low
    labels = Column(JSON, default=list)

    # Denormalized snapshot of the workflow status at write time
    status_id = Column(String(64), nullable=False, index=True)
    status_name = Column(String(100), nullable=False)
    status_category = Column(String, nullable=False)
    status_version = Column(Integer, nullable=False, default=0)

    # Planning
    assignee = Column(String, nullable=True)
    reporter = Column(String, nullable=True)
    sprint_id = Column(Integer, ForeignKey("sprints.id", ondelete="SET NULL"), nullable=True, index=True)
    story_points = Column(Integer, nullable=True)
    due_date = Column(Date, nullable=True)
    start_date = Column(Date, nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    # Position within its board column
    column_order = Column(Integer, nullable=False, default=0)

    @property
    def status(self) -> dict:
        return {
            "id": self.status_id,
            "name": self.status_name,
            "category": self.status_category,
        }
