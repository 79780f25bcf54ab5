from typing import Optional
import re

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from ..models.project import Project
from ..models.workflow import WorkflowStatus
from ..core.auth import Principal
from ..core.exceptions import ConflictError, NotFoundError, ValidationError
from ..core.methodologies import METHODOLOGIES, default_statuses
from ..utils.logging import get_logger

logger = get_logger(__name__)

PROJECT_KEY_PATTERN = re.compile(r"^[A-Z][A-Z0-9]{1,9}$")


class ProjectService:
    """Project bootstrap: creation and methodology initialization"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_project(self, project_id: int) -> Project:
        stmt = select(Project).where(Project.id == project_id)
        result = await self.db.execute(stmt)
        project = result.scalar_one_or_none()

        if project is None:
            raise NotFoundError("Project", project_id)

        return project

    async def lock_project(self, project_id: int) -> Project:
        """Load the project row for update, serializing project-wide checks."""

        stmt = (
            select(Project)
            .where(Project.id == project_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        project = result.scalar_one_or_none()

        if project is None:
            raise NotFoundError("Project", project_id)

        return project

    async def create_project(
        self,
        principal: Principal,
        key: str,
        name: str,
        methodology: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Project:
        """Create a project and seed its workflow and board from the methodology defaults."""

        from ..config import settings
        from .board_service import BoardService

        methodology = (methodology or settings.default_methodology).lower()
        key = key.strip().upper()

        if methodology not in METHODOLOGIES:
            raise ValidationError(
                f"Unknown methodology '{methodology}'. Must be one of: {', '.join(METHODOLOGIES)}"
            )
        if not PROJECT_KEY_PATTERN.match(key):
            raise ValidationError("Project key must be 2-10 uppercase letters or digits, starting with a letter")
        if not name.strip():
            raise ValidationError("Project name cannot be empty")

        logger.info("Creating project %s (%s) for organization %s", key, methodology, principal.organization_id)

        try:
            existing = await self.db.execute(select(Project.id).where(Project.key == key))
            if existing.scalar_one_or_none() is not None:
                raise ConflictError(f"Project key '{key}' is already taken")

            project = Project(
                key=key,
                name=name.strip(),
                description=description,
                organization_id=principal.organization_id,
                methodology=methodology,
                task_counter=0,
                sprint_counter=0,
                workflow_version=1,
                created_by=principal.id,
            )
            self.db.add(project)
            await self.db.flush()

            for definition in default_statuses(methodology):
                self.db.add(WorkflowStatus(project_id=project.id, **definition))
            await self.db.flush()

            await BoardService(self.db).sync_board_from_workflow(project.id)

            await self.db.commit()
            await self.db.refresh(project)

            logger.info("Created project %d (%s)", project.id, key)
            return project

        except IntegrityError:
            await self.db.rollback()
            raise ConflictError(f"Project key '{key}' is already taken")
        except Exception as e:
            await self.db.rollback()
            logger.error("Failed to create project %s: %s", key, str(e))
            raise
