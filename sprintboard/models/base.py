from sqlalchemy import Column, Integer, DateTime
from sqlalchemy.orm import declarative_base
from typing import Any, Dict

from ..utils.dates import utcnow

Base = declarative_base()


class BaseModel(Base):
    __abstract__ = True

    id = Column(Integer, primary_key=True, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        """Convert model instance to dictionary"""
        return {
            column.key: getattr(self, column.key)
            for column in self.__mapper__.column_attrs
        }
