from sqlalchemy import Column, String, Integer, Date, DateTime, ForeignKey, JSON, Boolean, Text, Index, UniqueConstraint, text
from .base import BaseModel


class Sprint(BaseModel):
    __tablename__ = "sprints"
    __table_args__ = (
        UniqueConstraint("project_id", "number", name="uq_sprint_project_number"),
        # One active sprint per project, enforced by the database
        Index(
            "uq_sprint_one_active_per_project",
            "project_id",
            unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
    )

    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    number = Column(Integer, nullable=False)
    name = Column(String(100), nullable=False)
    goal = Column(Text, nullable=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    status = Column(String, nullable=False, default="planning")  # planning, active, completed, cancelled

    # Sprint metrics (story points)
    capacity = Column(Integer, nullable=True)
    committed_points = Column(Integer, nullable=False, default=0)
    completed_points = Column(Integer, nullable=True)  # velocity, recorded at completion
    over_capacity = Column(Boolean, nullable=False, default=False)

    # Start gate
    require_goal = Column(Boolean, nullable=False, default=True)
    require_estimates = Column(Boolean, nullable=False, default=False)
    enforce_capacity = Column(Boolean, nullable=False, default=True)

    # Commitment
    participants = Column(JSON, default=list)
    started_by = Column(String, nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    created_by = Column(String, nullable=True)
