"""ValidAI - Project API Routes

项目记录 API 路由（历史列表、详情、删除、导出）
"""
from urllib.parse import quote

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import Response
from sqlalchemy.orm import Session

from validai.api.deps.workspace_deps import get_ai_service
from validai.database.config import get_db
from validai.models.export_schemas import CodeExportRequest
from validai.models.project_schemas import ValidationProject
from validai.models.workspace_schemas import ProjectListResponse, ProjectSummary
from validai.services.ai_service import AIService, AIServiceError
from validai.services.code_export import export_code
from validai.services.project_store import ProjectNotFoundError, ProjectStore
from validai.services.report_export import export_report
from validai.services.spreadsheet import export_test_plan
from validai.services.testcase_service import TestCaseNotFoundError

router = APIRouter(prefix="/projects", tags=["projects"])

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _attachment(content: bytes, filename: str, media_type: str) -> Response:
    """下载响应；非 ASCII 文件名按 RFC 5987 编码（与 FileResponse 一致）"""
    quoted = quote(filename)
    if quoted != filename:
        disposition = f"attachment; filename*=utf-8''{quoted}"
    else:
        disposition = f'attachment; filename="{filename}"'
    return Response(content=content, media_type=media_type, headers={"Content-Disposition": disposition})


def _load(db: Session, project_id: str) -> ValidationProject:
    try:
        return ProjectStore(db).require(project_id)
    except ProjectNotFoundError:
        raise HTTPException(status_code=404, detail="Project not found")


@router.get("", response_model=ProjectListResponse)
def list_projects(db: Session = Depends(get_db)):
    """项目列表（最新在前）"""
    projects = ProjectStore(db).list_all()
    return ProjectListResponse(
        total=len(projects),
        items=[ProjectSummary.from_project(p) for p in projects],
    )


@router.get("/{project_id}", response_model=ValidationProject)
def get_project(project_id: str, db: Session = Depends(get_db)):
    return _load(db, project_id)


@router.delete("/{project_id}", status_code=204)
def delete_project(project_id: str, db: Session = Depends(get_db)):
    if not ProjectStore(db).delete(project_id):
        raise HTTPException(status_code=404, detail="Project not found")
    return Response(status_code=204)


@router.get("/{project_id}/export/xlsx")
def export_project_xlsx(project_id: str, db: Session = Depends(get_db)):
    """导出测试计划表格"""
    content, filename = export_test_plan(_load(db, project_id))
    return _attachment(content, filename, XLSX_MEDIA_TYPE)


@router.get("/{project_id}/export/report")
def export_project_report(project_id: str, db: Session = Depends(get_db)):
    """导出验证报告（PDF，失败时为可打印 HTML）"""
    document = export_report(_load(db, project_id))
    return _attachment(document.content, document.filename, document.media_type)


@router.post("/{project_id}/export/code")
async def export_project_code(
    project_id: str,
    req: CodeExportRequest,
    db: Session = Depends(get_db),
    ai_service: AIService = Depends(get_ai_service),
):
    """生成自动化脚本"""
    project = _load(db, project_id)
    try:
        artifact = await export_code(ai_service, project, req.framework, req.test_case_id)
    except TestCaseNotFoundError:
        raise HTTPException(status_code=404, detail="Test case not found")
    except AIServiceError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return _attachment(artifact.content.encode("utf-8"), artifact.filename, "text/plain; charset=utf-8")
