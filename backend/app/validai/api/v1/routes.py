from fastapi import APIRouter

from validai.api.v1.routes_projects import router as projects_router
from validai.api.v1.routes_workspace import router as workspace_router

# v1 统一入口：所有 v1 API 都从 /api/v1 开始
router = APIRouter(prefix="/api/v1")

router.include_router(projects_router)
router.include_router(workspace_router)
