from typing import Any, Dict, Optional

from fastapi.encoders import jsonable_encoder
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.auth import Principal, authorize_project
from ..models.project import Project
from ..services.project_service import ProjectService


def success(data: Any = None, message: Optional[str] = None) -> Dict[str, Any]:
    """Wrap ``data`` in the success envelope"""
    body: Dict[str, Any] = {"success": True, "data": jsonable_encoder(data)}
    if message:
        body["message"] = message
    return body


async def authorized_project(
    db: AsyncSession,
    principal: Principal,
    project_id: int,
    write: bool = False,
    manage: bool = False,
) -> Project:
    """Load a project and check the principal may act on it"""
    project = await ProjectService(db).get_project(project_id)
    authorize_project(principal, project.organization_id, write=write, manage=manage)
    return project
