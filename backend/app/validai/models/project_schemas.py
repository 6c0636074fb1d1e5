"""ValidAI - Project Schemas

验证项目领域模型（需求、测试步骤、测试用例、证据、对话消息、项目）

持久化格式使用 camelCase 别名，输入同时接受字段名和别名。
"""
from __future__ import annotations

import time
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """camelCase 序列化基类"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============================================================
# 枚举类型
# ============================================================

class RequirementType(str, Enum):
    """需求类别"""
    USER = "User Requirement"
    FUNCTIONAL = "Functional Requirement"
    TECHNICAL = "Technical Requirement"


class Priority(str, Enum):
    """需求优先级"""
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


class TestCaseStatus(str, Enum):
    """用例执行状态

    状态流转:
        PENDING → RUNNING → [PASSED|FAILED]
        FAILED → PENDING（保存修复后重新排队）
    """
    __test__ = False

    PENDING = "PENDING"
    RUNNING = "RUNNING"
    PASSED = "PASSED"
    FAILED = "FAILED"


class ProjectStatus(str, Enum):
    """项目聚合状态"""
    DRAFT = "Draft"
    IN_PROGRESS = "In Progress"
    VALIDATED = "Validated"
    PARTLY_VALIDATED = "Partly Validated"
    FAILED = "Failed"

    @classmethod
    def terminal_states(cls) -> set["ProjectStatus"]:
        """终态集合（执行完成后的结论）"""
        return {cls.VALIDATED, cls.PARTLY_VALIDATED, cls.FAILED}

    def is_terminal(self) -> bool:
        return self in self.terminal_states()


class ChatRole(str, Enum):
    USER = "user"
    MODEL = "model"


class EvidenceKind(str, Enum):
    """证据类型"""
    SYNTHETIC_PLACEHOLDER = "synthetic-placeholder"  # 模拟器绘制的占位截图
    REAL_CAPTURE = "real-capture"                    # 真实执行后端的截图


# ============================================================
# 数据模型
# ============================================================

class Requirement(CamelModel):
    """需求"""
    id: str
    type: RequirementType = RequirementType.FUNCTIONAL
    description: str
    priority: Priority = Priority.MEDIUM


class TestStep(CamelModel):
    """测试步骤"""
    __test__ = False

    step_number: int = Field(..., ge=1)
    action: str
    expected_result: str


class Evidence(CamelModel):
    """执行证据"""
    kind: EvidenceKind
    media_type: str = "image/png"
    data_url: str
    captured_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class TestCase(CamelModel):
    """测试用例"""
    __test__ = False

    id: str
    requirement_id: str
    title: str
    steps: list[TestStep] = Field(default_factory=list)
    status: TestCaseStatus = TestCaseStatus.PENDING
    logs: list[str] = Field(default_factory=list)
    evidence: Optional[Evidence] = None
    failed_step_number: Optional[int] = None
    failure_reason: Optional[str] = None


class ChatMessage(CamelModel):
    """对话消息（只追加，不修改）"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    role: ChatRole
    text: str
    timestamp: int = Field(default_factory=lambda: int(time.time() * 1000))


class ValidationProject(CamelModel):
    """验证项目"""
    id: str
    name: str
    platform_version: str = "1.0.0"
    status: ProjectStatus = ProjectStatus.DRAFT
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    requirements: list[Requirement] = Field(default_factory=list)
    test_cases: list[TestCase] = Field(default_factory=list)
    chat_history: list[ChatMessage] = Field(default_factory=list)
    environment_config: Optional[str] = None

    def find_test_case(self, test_case_id: str) -> Optional[TestCase]:
        for tc in self.test_cases:
            if tc.id == test_case_id:
                return tc
        return None

    def to_record(self) -> dict:
        """序列化为持久化记录"""
        return self.model_dump(mode="json", by_alias=True)


def now_ms() -> int:
    """当前时间戳（毫秒），用于生成 REQ-/TC-/PROJ- 标识"""
    return int(time.time() * 1000)
