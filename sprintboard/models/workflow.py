from sqlalchemy import Column, String, Integer, Boolean, ForeignKey, UniqueConstraint
from .base import BaseModel


class WorkflowStatus(BaseModel):
    __tablename__ = "workflow_statuses"
    __table_args__ = (
        UniqueConstraint("project_id", "status_id", name="uq_workflow_status_project_slug"),
    )

    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)

    # Slug, unique within the project (e.g. "in-progress")
    status_id = Column(String(64), nullable=False)
    name = Column(String(100), nullable=False)
    category = Column(String, nullable=False, default="todo")  # todo, in_progress, done
    color = Column(String(16), nullable=True)

    # Dense 0..n-1 within the project
    order = Column("sort_order", Integer, nullable=False)

    is_initial = Column(Boolean, nullable=False, default=False)
    is_final = Column(Boolean, nullable=False, default=False)
