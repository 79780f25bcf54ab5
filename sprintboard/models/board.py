from sqlalchemy import Column, String, Integer, ForeignKey
from sqlalchemy.orm import relationship
from .base import BaseModel


class Board(BaseModel):
    __tablename__ = "boards"

    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, unique=True)
    name = Column(String(100), nullable=False, default="Default Board")

    columns = relationship(
        "BoardColumn",
        back_populates="board",
        order_by="BoardColumn.order",
        cascade="all, delete-orphan",
        lazy="selectin",
    )


class BoardColumn(BaseModel):
    __tablename__ = "board_columns"

    board_id = Column(Integer, ForeignKey("boards.id", ondelete="CASCADE"), nullable=False, index=True)
    status_id = Column(String(64), nullable=False)
    name = Column(String(100), nullable=False)
    color = Column(String(16), nullable=False)
    category = Column(String, nullable=False)
    order = Column("sort_order", Integer, nullable=False)

    # Only column-owned field; everything else mirrors the workflow status
    wip_limit = Column(Integer, nullable=True)

    board = relationship("Board", back_populates="columns")
