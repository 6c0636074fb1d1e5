"""ValidAI - Workspace API Routes

工作区 API 路由：驱动视图控制器（对话、导入、测试计划、执行、重试）
"""
from contextlib import contextmanager

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile

from validai.api.deps.workspace_deps import get_ai_service, get_simulator, get_view_controller
from validai.models.workspace_schemas import (
    ChatMessageRequest,
    ChatReplyResponse,
    ExecutionResponse,
    FixProposalResponse,
    FixSaveRequest,
    GenerationResponse,
    ProjectSettingsUpdate,
    RefineRequest,
    TestCaseEditRequest,
    WorkspaceState,
)
from validai.services.ai_service import AIService, AIServiceError
from validai.services.execution.simulator import ExecutionSimulator
from validai.services.project_store import ProjectNotFoundError
from validai.services.spreadsheet import SpreadsheetParseError
from validai.services.testcase_service import StepNotFoundError, TestCaseNotFoundError
from validai.services.workflow import InvalidTransitionError, NoActiveProjectError, ViewController

router = APIRouter(prefix="/workspace", tags=["workspace"])


@contextmanager
def workspace_errors():
    """领域异常 → HTTP 状态码"""
    try:
        yield
    except (InvalidTransitionError, NoActiveProjectError) as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ProjectNotFoundError:
        raise HTTPException(status_code=404, detail="Project not found")
    except TestCaseNotFoundError:
        raise HTTPException(status_code=404, detail="Test case not found")
    except StepNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except SpreadsheetParseError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except AIServiceError as e:
        raise HTTPException(status_code=502, detail=str(e))


@router.get("", response_model=WorkspaceState)
def get_workspace(controller: ViewController = Depends(get_view_controller)):
    return controller.snapshot()


# ========== 导航 ==========

@router.post("/dashboard", response_model=WorkspaceState)
def go_dashboard(controller: ViewController = Depends(get_view_controller)):
    controller.back_to_dashboard()
    return controller.snapshot()


@router.post("/history", response_model=WorkspaceState)
def go_history(controller: ViewController = Depends(get_view_controller)):
    controller.open_history()
    return controller.snapshot()


@router.post("/history/{project_id}", response_model=WorkspaceState)
def open_history_project(
    project_id: str,
    controller: ViewController = Depends(get_view_controller),
):
    """打开历史项目（按状态进入计划评审或报告）"""
    with workspace_errors():
        controller.select_history_project(project_id)
    return controller.snapshot()


# ========== 需求收集 ==========

@router.post("/gather", response_model=WorkspaceState)
def start_gathering(
    controller: ViewController = Depends(get_view_controller),
    ai_service: AIService = Depends(get_ai_service),
):
    """开始新项目（新对话）"""
    with workspace_errors():
        controller.start_new_project(ai_service)
    return controller.snapshot()


@router.post("/chat/messages", response_model=ChatReplyResponse)
async def send_chat_message(
    req: ChatMessageRequest,
    controller: ViewController = Depends(get_view_controller),
):
    with workspace_errors():
        try:
            reply = await controller.send_chat_message(req.text)
        except ValueError as e:
            raise HTTPException(status_code=422, detail=str(e))
    return ChatReplyResponse(reply=reply, state=controller.snapshot())


@router.post("/chat/extract", response_model=WorkspaceState)
async def extract_requirements(
    controller: ViewController = Depends(get_view_controller),
    ai_service: AIService = Depends(get_ai_service),
):
    """从对话提取需求并创建项目"""
    with workspace_errors():
        await controller.extract_requirements(ai_service)
    return controller.snapshot()


@router.post("/import", response_model=WorkspaceState, status_code=201)
async def import_requirements(
    file: UploadFile = File(...),
    controller: ViewController = Depends(get_view_controller),
):
    """
    导入需求表格

    支持的文件类型：xlsx、xls、csv（只读取第一个工作表）
    """
    content = await file.read()
    with workspace_errors():
        controller.import_spreadsheet(content, file.filename or "requirements.xlsx")
    return controller.snapshot()


# ========== 测试计划 ==========

@router.patch("/project", response_model=WorkspaceState)
def update_project(
    req: ProjectSettingsUpdate,
    controller: ViewController = Depends(get_view_controller),
):
    """更新项目名称、平台版本、环境配置"""
    with workspace_errors():
        controller.update_project_settings(
            name=req.name,
            platform_version=req.platform_version,
            environment_config=req.environment_config,
        )
    return controller.snapshot()


@router.post("/testcases/generate", response_model=GenerationResponse)
async def generate_test_cases(
    controller: ViewController = Depends(get_view_controller),
    ai_service: AIService = Depends(get_ai_service),
):
    with workspace_errors():
        generation = await controller.generate_test_cases(ai_service)
    return GenerationResponse(
        test_cases=generation.test_cases,
        uncovered_requirement_ids=generation.uncovered_requirement_ids,
        state=controller.snapshot(),
    )


@router.put("/testcases/{test_case_id}", response_model=WorkspaceState)
def edit_test_case(
    test_case_id: str,
    req: TestCaseEditRequest,
    controller: ViewController = Depends(get_view_controller),
):
    with workspace_errors():
        controller.edit_test_case(test_case_id, req.title, req.steps)
    return controller.snapshot()


@router.post("/testcases/{test_case_id}/steps", response_model=WorkspaceState)
def add_step(
    test_case_id: str,
    controller: ViewController = Depends(get_view_controller),
):
    with workspace_errors():
        controller.add_step(test_case_id)
    return controller.snapshot()


@router.delete("/testcases/{test_case_id}/steps/{step_number}", response_model=WorkspaceState)
def remove_step(
    test_case_id: str,
    step_number: int,
    controller: ViewController = Depends(get_view_controller),
):
    with workspace_errors():
        controller.remove_step(test_case_id, step_number)
    return controller.snapshot()


@router.post("/testcases/{test_case_id}/refine", response_model=WorkspaceState)
async def refine_test_case(
    test_case_id: str,
    req: RefineRequest,
    controller: ViewController = Depends(get_view_controller),
    ai_service: AIService = Depends(get_ai_service),
):
    with workspace_errors():
        await controller.refine_test_case(ai_service, test_case_id, req.instruction)
    return controller.snapshot()


@router.post("/testcases/{test_case_id}/fix", response_model=FixProposalResponse)
async def propose_fix(
    test_case_id: str,
    controller: ViewController = Depends(get_view_controller),
    ai_service: AIService = Depends(get_ai_service),
):
    """AI 修复建议（不修改项目）"""
    with workspace_errors():
        proposal = await controller.propose_fix(ai_service, test_case_id)
    return FixProposalResponse(test_case_id=test_case_id, proposal=proposal)


@router.put("/testcases/{test_case_id}/fix", response_model=WorkspaceState)
def save_fix(
    test_case_id: str,
    req: FixSaveRequest,
    controller: ViewController = Depends(get_view_controller),
):
    """保存修复，用例重新排队"""
    with workspace_errors():
        controller.save_fix(test_case_id, req.steps)
    return controller.snapshot()


# ========== 执行 ==========

async def _execute(controller: ViewController, simulator: ExecutionSimulator) -> ExecutionResponse:
    result = await controller.run_execution(simulator)
    return ExecutionResponse(
        status=result.project.status,
        executed_count=result.executed_count,
        failed_count=result.failed_count,
        console=result.console,
        state=controller.snapshot(),
    )


@router.post("/execution", response_model=ExecutionResponse)
async def start_execution(
    controller: ViewController = Depends(get_view_controller),
    simulator: ExecutionSimulator = Depends(get_simulator),
):
    """开始执行（请求在执行完成后返回）"""
    with workspace_errors():
        controller.start_execution()
        return await _execute(controller, simulator)


@router.post("/retry", response_model=ExecutionResponse)
async def retry_execution(
    controller: ViewController = Depends(get_view_controller),
    simulator: ExecutionSimulator = Depends(get_simulator),
):
    """重试失败用例"""
    with workspace_errors():
        controller.retry_execution()
        return await _execute(controller, simulator)
