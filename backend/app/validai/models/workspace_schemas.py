"""ValidAI - Workspace Schemas

工作区 API 的请求/响应模型
"""
from __future__ import annotations

from typing import Optional
from uuid import UUID

from pydantic import Field

from validai.models.ai_schemas import FixProposal
from validai.models.project_schemas import (
    CamelModel,
    ChatMessage,
    ProjectStatus,
    TestCase,
    TestStep,
    ValidationProject,
)


# ============================================================
# Request Schemas
# ============================================================

class ChatMessageRequest(CamelModel):
    """发送对话消息"""
    text: str = Field(..., min_length=1)


class ProjectSettingsUpdate(CamelModel):
    """更新项目设置（字段为空表示不修改）"""
    name: Optional[str] = Field(None, min_length=1)
    platform_version: Optional[str] = Field(None, min_length=1)
    environment_config: Optional[str] = None


class TestCaseEditRequest(CamelModel):
    """手工编辑用例"""
    __test__ = False

    title: str = Field(..., min_length=1)
    steps: list[TestStep]


class RefineRequest(CamelModel):
    instruction: str = Field(..., min_length=1)


class FixSaveRequest(CamelModel):
    """保存修复（AI 建议或手工修改后的步骤）"""
    steps: list[TestStep]


# ============================================================
# Response Schemas
# ============================================================

class WorkspaceState(CamelModel):
    """工作区当前状态"""
    view: str
    project: Optional[ValidationProject] = None
    session_id: Optional[UUID] = None
    chat_messages: list[ChatMessage] = Field(default_factory=list)
    can_extract: bool = False
    uncovered_requirement_ids: list[str] = Field(default_factory=list)
    console: list[str] = Field(default_factory=list)


class ChatReplyResponse(CamelModel):
    reply: ChatMessage
    state: WorkspaceState


class GenerationResponse(CamelModel):
    test_cases: list[TestCase]
    uncovered_requirement_ids: list[str]
    state: WorkspaceState


class FixProposalResponse(CamelModel):
    test_case_id: str
    proposal: FixProposal


class ExecutionResponse(CamelModel):
    """一次执行的结果（执行完成后返回）"""
    status: ProjectStatus
    executed_count: int
    failed_count: int
    console: list[str]
    state: WorkspaceState


class ProjectSummary(CamelModel):
    """项目列表条目"""
    id: str
    name: str
    status: ProjectStatus
    platform_version: str
    created_at: str
    requirement_count: int
    test_case_count: int

    @classmethod
    def from_project(cls, project: ValidationProject) -> "ProjectSummary":
        return cls(
            id=project.id,
            name=project.name,
            status=project.status,
            platform_version=project.platform_version,
            created_at=project.created_at.isoformat(),
            requirement_count=len(project.requirements),
            test_case_count=len(project.test_cases),
        )


class ProjectListResponse(CamelModel):
    total: int
    items: list[ProjectSummary]
