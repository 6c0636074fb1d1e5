"""ValidAI - AI Schemas

模型网关的结构化输出：线上 JSON Schema 定义 + 解析后的 Pydantic 模型
"""
from __future__ import annotations

from pydantic import Field

from validai.models.project_schemas import (
    CamelModel,
    Priority,
    Requirement,
    RequirementType,
    TestCase,
    TestStep,
)


# ============================================================
# 模型返回结构（解析用）
# ============================================================

class GeneratedStep(CamelModel):
    """模型返回的步骤（编号按原样接收，入库前重新编号）"""
    step_number: int
    action: str
    expected_result: str


class ExtractedRequirement(CamelModel):
    """模型返回的需求条目（无 ID）"""
    type: RequirementType
    description: str
    priority: Priority


class RequirementsPayload(CamelModel):
    requirements: list[ExtractedRequirement]
    suggested_project_name: str


class GeneratedTestCase(CamelModel):
    """模型返回的用例条目（无 ID、无状态）"""
    requirement_id: str
    title: str
    steps: list[GeneratedStep]


class TestCasesPayload(CamelModel):
    __test__ = False

    test_cases: list[GeneratedTestCase]


class FixPayload(CamelModel):
    steps: list[GeneratedStep]
    explanation: str


class RefinePayload(CamelModel):
    title: str
    steps: list[GeneratedStep]


# ============================================================
# 网关操作结果
# ============================================================

class FixProposal(CamelModel):
    """AI 修复建议（步骤已重新编号）"""
    steps: list[TestStep]
    explanation: str


class RefineResult(CamelModel):
    """AI 优化结果（步骤已重新编号）"""
    title: str
    steps: list[TestStep]


class RequirementExtraction(CamelModel):
    """需求提取结果"""
    requirements: list[Requirement]
    suggested_name: str


class TestCaseGeneration(CamelModel):
    """用例生成结果（附覆盖率检查）"""
    __test__ = False

    test_cases: list[TestCase]
    uncovered_requirement_ids: list[str] = Field(default_factory=list)


# ============================================================
# 线上 JSON Schema（response_format）
# ============================================================

_STEP_SCHEMA = {
    "type": "object",
    "properties": {
        "stepNumber": {"type": "integer"},
        "action": {"type": "string"},
        "expectedResult": {"type": "string"},
    },
    "required": ["stepNumber", "action", "expectedResult"],
}

REQUIREMENTS_SCHEMA = {
    "type": "object",
    "properties": {
        "requirements": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "type": {"type": "string", "enum": [t.value for t in RequirementType]},
                    "description": {"type": "string"},
                    "priority": {"type": "string", "enum": [p.value for p in Priority]},
                },
                "required": ["type", "description", "priority"],
            },
        },
        "suggestedProjectName": {"type": "string"},
    },
    "required": ["requirements", "suggestedProjectName"],
}

TEST_CASES_SCHEMA = {
    "type": "object",
    "properties": {
        "testCases": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "requirementId": {
                        "type": "string",
                        "description": "The ID of the requirement this test covers",
                    },
                    "title": {"type": "string"},
                    "steps": {"type": "array", "items": _STEP_SCHEMA},
                },
                "required": ["requirementId", "title", "steps"],
            },
        },
    },
    "required": ["testCases"],
}

FIX_SCHEMA = {
    "type": "object",
    "properties": {
        "steps": {"type": "array", "items": _STEP_SCHEMA},
        "explanation": {"type": "string"},
    },
    "required": ["steps", "explanation"],
}

REFINE_SCHEMA = {
    "type": "object",
    "properties": {
        "title": {"type": "string"},
        "steps": {"type": "array", "items": _STEP_SCHEMA},
    },
    "required": ["title", "steps"],
}
