from sqlalchemy import Column, String, Integer, Text, ForeignKey, JSON
from .base import BaseModel


class ActivityEntry(BaseModel):
    """Append-only record of task status changes and sprint events."""
    __tablename__ = "activity_log"

    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    task_id = Column(Integer, ForeignKey("tasks.id", ondelete="SET NULL"), nullable=True, index=True)
    sprint_id = Column(Integer, ForeignKey("sprints.id", ondelete="SET NULL"), nullable=True, index=True)

    action = Column(String, nullable=False)  # task_created, status_changed, task_moved, sprint_started, ...

    # Status change payload
    from_status = Column(String(64), nullable=True)
    to_status = Column(String(64), nullable=True)
    from_category = Column(String, nullable=True)
    to_category = Column(String, nullable=True)

    actor = Column(String, nullable=True)
    comment = Column(Text, nullable=True)
    details = Column(JSON, default=dict)
