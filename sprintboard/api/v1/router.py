from fastapi import APIRouter
from .projects import router as projects_router
from .workflow import router as workflow_router
from .board import router as board_router
from .tasks import router as tasks_router
from .sprints import router as sprints_router
from .analytics import router as analytics_router

api_router = APIRouter()

# Include all sub-routers
api_router.include_router(projects_router, prefix="/projects", tags=["projects"])
api_router.include_router(workflow_router, prefix="/projects", tags=["workflow"])
api_router.include_router(board_router, prefix="/projects", tags=["board"])
api_router.include_router(tasks_router, tags=["tasks"])
api_router.include_router(sprints_router, tags=["sprints"])
api_router.include_router(analytics_router, prefix="/analytics", tags=["analytics"])
