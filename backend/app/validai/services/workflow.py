"""ValidAI - Workflow

视图控制器（服务端状态机）

状态流转:
    DASHBOARD → GATHER_REQUIREMENTS → REVIEW_PLAN → EXECUTION → REPORT
    DASHBOARD → REVIEW_PLAN（表格导入）
    REPORT → EXECUTION（重试失败用例）
    HISTORY → REVIEW_PLAN | REPORT（按项目状态）
    任意状态 → DASHBOARD | HISTORY

活动项目只由控制器持有，每次被接受的修改立即整体写入项目存储。
操作失败时控制器保持操作前状态。
"""
from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, Optional, Sequence

from sqlalchemy.orm import Session

from validai.database.config import SessionLocal
from validai.models.ai_schemas import FixProposal, TestCaseGeneration
from validai.models.project_schemas import (
    ChatMessage,
    ProjectStatus,
    TestCase,
    TestCaseStatus,
    TestStep,
    ValidationProject,
    now_ms,
)
from validai.models.workspace_schemas import WorkspaceState
from validai.services import testcase_service
from validai.services.ai_service import AIService
from validai.services.chat_session import ConversationSession
from validai.services.execution.simulator import ExecutionResult, ExecutionSimulator
from validai.services.project_store import ProjectStore
from validai.services.spreadsheet import parse_requirements
from validai.services.testcase_service import TestCaseNotFoundError

logger = logging.getLogger(__name__)


class AppView(str, Enum):
    """当前视图"""
    DASHBOARD = "DASHBOARD"
    GATHER_REQUIREMENTS = "GATHER_REQUIREMENTS"
    REVIEW_PLAN = "REVIEW_PLAN"
    EXECUTION = "EXECUTION"
    REPORT = "REPORT"
    HISTORY = "HISTORY"


# 允许修改测试计划的视图
PLAN_VIEWS = (AppView.REVIEW_PLAN, AppView.REPORT)


class InvalidTransitionError(Exception):
    """当前视图不允许该操作"""
    pass


class NoActiveProjectError(Exception):
    """没有活动项目"""
    pass


def view_for_project(project: ValidationProject) -> AppView:
    """历史项目打开后的视图"""
    if project.status == ProjectStatus.DRAFT and not project.test_cases:
        return AppView.REVIEW_PLAN
    if project.status.is_terminal():
        return AppView.REPORT
    return AppView.REVIEW_PLAN


class ViewController:
    """视图控制器"""

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        self.session_factory = session_factory
        self.current_view = AppView.DASHBOARD
        self.active_project: Optional[ValidationProject] = None
        self.chat_session: Optional[ConversationSession] = None
        self.last_console: list[str] = []
        self.last_uncovered: list[str] = []
        self._current_run: Optional[object] = None

    # ========== 内部工具 ==========

    def _require_view(self, *views: AppView) -> None:
        if self.current_view not in views:
            allowed = ", ".join(v.value for v in views)
            raise InvalidTransitionError(
                f"当前视图 {self.current_view.value} 不允许该操作（允许: {allowed}）"
            )

    def _require_project(self) -> ValidationProject:
        if self.active_project is None:
            raise NoActiveProjectError("没有活动项目")
        return self.active_project

    def _require_test_case(self, test_case_id: str) -> TestCase:
        tc = self._require_project().find_test_case(test_case_id)
        if tc is None:
            raise TestCaseNotFoundError(test_case_id)
        return tc

    def _store(self, project: ValidationProject) -> ValidationProject:
        with self.session_factory() as db:
            ProjectStore(db).save(project)
        return project

    def _persist(self, project: ValidationProject) -> ValidationProject:
        self._store(project)
        self.active_project = project
        return project

    def _commit_test_case(self, updated: TestCase, **project_updates) -> TestCase:
        project = self._require_project()
        cases = testcase_service.replace_test_case(project.test_cases, updated)
        self._persist(project.model_copy(update={"test_cases": cases, **project_updates}))
        return updated

    def snapshot(self) -> WorkspaceState:
        """当前工作区状态"""
        session = self.chat_session
        return WorkspaceState(
            view=self.current_view.value,
            project=self.active_project,
            session_id=session.session_id if session else None,
            chat_messages=session.messages if session else [],
            can_extract=session.can_extract if session else False,
            uncovered_requirement_ids=self.last_uncovered,
            console=self.last_console,
        )

    def _reset(self) -> None:
        self._current_run = None
        self.active_project = None
        self.chat_session = None
        self.last_console = []
        self.last_uncovered = []

    # ========== 导航 ==========

    def back_to_dashboard(self) -> AppView:
        self._reset()
        self.current_view = AppView.DASHBOARD
        return self.current_view

    def open_history(self) -> AppView:
        self._reset()
        self.current_view = AppView.HISTORY
        return self.current_view

    def start_new_project(self, ai_service: AIService) -> ConversationSession:
        """开始新项目：创建新的需求收集对话"""
        self._require_view(AppView.DASHBOARD)
        self._reset()
        self.chat_session = ConversationSession(ai_service)
        self.current_view = AppView.GATHER_REQUIREMENTS
        logger.info(f"开始需求收集对话: {self.chat_session.session_id}")
        return self.chat_session

    def select_history_project(self, project_id: str) -> ValidationProject:
        """
        打开历史项目

        Raises:
            ProjectNotFoundError: 项目不存在
        """
        self._require_view(AppView.HISTORY)
        with self.session_factory() as db:
            project = ProjectStore(db).require(project_id)
        self.active_project = project
        self.current_view = view_for_project(project)
        logger.info(f"打开历史项目 {project.id} → {self.current_view.value}")
        return project

    # ========== 需求收集 ==========

    async def send_chat_message(self, text: str) -> ChatMessage:
        self._require_view(AppView.GATHER_REQUIREMENTS)
        if self.chat_session is None:
            raise InvalidTransitionError("没有进行中的对话")
        return await self.chat_session.send(text)

    async def extract_requirements(self, ai_service: AIService) -> ValidationProject:
        """
        从对话中提取需求，创建草稿项目并进入计划评审

        Raises:
            InvalidTransitionError: 不在需求收集视图或对话轮数不足
            AIServiceError: 模型调用失败（状态不变）
        """
        self._require_view(AppView.GATHER_REQUIREMENTS)
        session = self.chat_session
        if session is None or not session.can_extract:
            raise InvalidTransitionError("对话内容不足，无法提取需求")

        extraction = await ai_service.extract_requirements(session.transcript_text())
        project = ValidationProject(
            id=f"PROJ-{now_ms()}",
            name=extraction.suggested_name,
            status=ProjectStatus.DRAFT,
            requirements=extraction.requirements,
            chat_history=session.messages,
        )
        self._persist(project)
        self.chat_session = None
        self.current_view = AppView.REVIEW_PLAN
        logger.info(f"创建项目 {project.id} ({project.name})，需求 {len(project.requirements)} 条")
        return project

    def import_spreadsheet(self, content: bytes, filename: str) -> ValidationProject:
        """
        从需求表格创建草稿项目

        Raises:
            SpreadsheetParseError: 文件无法解析（不创建项目）
        """
        self._require_view(AppView.DASHBOARD)
        requirements, name = parse_requirements(content, filename)
        project = ValidationProject(
            id=f"PROJ-IMPORT-{now_ms()}",
            name=name,
            status=ProjectStatus.DRAFT,
            requirements=requirements,
        )
        self._reset()
        self._persist(project)
        self.current_view = AppView.REVIEW_PLAN
        return project

    # ========== 测试计划 ==========

    def update_project_settings(
        self,
        name: Optional[str] = None,
        platform_version: Optional[str] = None,
        environment_config: Optional[str] = None,
    ) -> ValidationProject:
        self._require_view(*PLAN_VIEWS)
        project = self._require_project()
        updates = {}
        if name is not None:
            updates["name"] = name
        if platform_version is not None:
            updates["platform_version"] = platform_version
        if environment_config is not None:
            # 空字符串表示清除
            updates["environment_config"] = environment_config or None
        return self._persist(project.model_copy(update=updates))

    async def generate_test_cases(self, ai_service: AIService) -> TestCaseGeneration:
        """为全部需求生成测试用例（替换现有用例）"""
        self._require_view(*PLAN_VIEWS)
        project = self._require_project()
        cases = await ai_service.generate_test_cases(project.requirements)
        uncovered = testcase_service.find_uncovered_requirements(project.requirements, cases)
        self._persist(project.model_copy(update={"test_cases": cases}))
        self.last_uncovered = uncovered
        return TestCaseGeneration(test_cases=cases, uncovered_requirement_ids=uncovered)

    def edit_test_case(self, test_case_id: str, title: str, steps: Sequence[TestStep]) -> TestCase:
        self._require_view(*PLAN_VIEWS)
        tc = self._require_test_case(test_case_id)
        return self._commit_test_case(testcase_service.apply_manual_edit(tc, title, steps))

    def add_step(self, test_case_id: str) -> TestCase:
        self._require_view(*PLAN_VIEWS)
        tc = self._require_test_case(test_case_id)
        return self._commit_test_case(testcase_service.add_step(tc))

    def remove_step(self, test_case_id: str, step_number: int) -> TestCase:
        self._require_view(*PLAN_VIEWS)
        tc = self._require_test_case(test_case_id)
        return self._commit_test_case(testcase_service.remove_step(tc, step_number))

    async def refine_test_case(self, ai_service: AIService, test_case_id: str, instruction: str) -> TestCase:
        self._require_view(*PLAN_VIEWS)
        tc = self._require_test_case(test_case_id)
        result = await ai_service.refine_test_case(tc, instruction)
        return self._commit_test_case(testcase_service.apply_refinement(tc, result.title, result.steps))

    async def propose_fix(self, ai_service: AIService, test_case_id: str) -> FixProposal:
        """请求 AI 修复建议（不修改项目）"""
        self._require_view(*PLAN_VIEWS)
        tc = self._require_test_case(test_case_id)
        return await ai_service.analyze_and_fix_test_case(tc)

    def save_fix(self, test_case_id: str, steps: Sequence[TestStep]) -> TestCase:
        """保存修复：用例重新排队，项目回到 In Progress"""
        self._require_view(*PLAN_VIEWS)
        tc = self._require_test_case(test_case_id)
        fixed = testcase_service.apply_fix(tc, steps)
        return self._commit_test_case(fixed, status=ProjectStatus.IN_PROGRESS)

    # ========== 执行 ==========

    def start_execution(self) -> ValidationProject:
        self._require_view(AppView.REVIEW_PLAN)
        project = self._require_project()
        self._persist(project.model_copy(update={"status": ProjectStatus.IN_PROGRESS}))
        self.current_view = AppView.EXECUTION
        return self.active_project

    def retry_execution(self) -> ValidationProject:
        """失败用例重置为 PENDING 后重新进入执行"""
        self._require_view(AppView.REPORT)
        project = self._require_project()
        cases = [
            tc.model_copy(update={"status": TestCaseStatus.PENDING})
            if tc.status == TestCaseStatus.FAILED else tc
            for tc in project.test_cases
        ]
        self._persist(project.model_copy(update={
            "test_cases": cases,
            "status": ProjectStatus.IN_PROGRESS,
        }))
        self.current_view = AppView.EXECUTION
        return self.active_project

    async def run_execution(self, simulator: ExecutionSimulator) -> ExecutionResult:
        """
        运行模拟执行，完成后进入报告视图

        执行期间离开执行视图（返回仪表盘、打开历史）即放弃本次执行：
        后续进度只写入项目存储，不再改变活动项目和当前视图。
        """
        self._require_view(AppView.EXECUTION)
        project = self._require_project()
        run = object()
        self._current_run = run

        def on_update(updated: ValidationProject) -> None:
            if self._current_run is run:
                self._persist(updated)
            else:
                self._store(updated)

        result = await simulator.run(project, on_update=on_update)
        if self._current_run is not run:
            self._store(result.project)
            logger.info(f"执行已放弃，结果仅写入存储: {project.id}")
            return result

        self._current_run = None
        self._persist(result.project)
        self.last_console = result.console
        self.current_view = AppView.REPORT
        return result
