"""ValidAI - TestCase Service

测试用例仓库操作：手工编辑、步骤增删、AI 优化、AI 修复、覆盖率检查

所有操作返回新的用例对象，不修改入参；步骤编号在每次编辑后保持从 1 开始连续。
"""
from __future__ import annotations

import logging
from typing import Iterable, Sequence

from validai.models.project_schemas import (
    Requirement,
    TestCase,
    TestCaseStatus,
    TestStep,
)

logger = logging.getLogger(__name__)

DEFAULT_STEP_ACTION = "New action"
DEFAULT_STEP_EXPECTED = "Expected result"


class TestCaseNotFoundError(LookupError):
    """用例不存在"""
    __test__ = False


class StepNotFoundError(LookupError):
    """步骤不存在"""
    pass


def renumber_steps(steps: Iterable[TestStep]) -> list[TestStep]:
    """按顺序重新编号为 1..n"""
    return [
        step.model_copy(update={"step_number": index})
        for index, step in enumerate(steps, start=1)
    ]


def add_step(
    test_case: TestCase,
    action: str = DEFAULT_STEP_ACTION,
    expected_result: str = DEFAULT_STEP_EXPECTED,
) -> TestCase:
    """末尾追加步骤"""
    steps = list(test_case.steps) + [
        TestStep(step_number=len(test_case.steps) + 1, action=action, expected_result=expected_result)
    ]
    return test_case.model_copy(update={"steps": renumber_steps(steps)})


def remove_step(test_case: TestCase, step_number: int) -> TestCase:
    """删除指定编号的步骤并重新编号"""
    if not any(s.step_number == step_number for s in test_case.steps):
        raise StepNotFoundError(f"{test_case.id} 不存在步骤 {step_number}")
    steps = [s for s in test_case.steps if s.step_number != step_number]
    return test_case.model_copy(update={"steps": renumber_steps(steps)})


def apply_manual_edit(test_case: TestCase, title: str, steps: Sequence[TestStep]) -> TestCase:
    """手工编辑：整体替换标题和步骤"""
    return test_case.model_copy(update={"title": title, "steps": renumber_steps(steps)})


def apply_refinement(test_case: TestCase, title: str, steps: Sequence[TestStep]) -> TestCase:
    """AI 优化：替换标题和步骤，不改变状态/日志"""
    return test_case.model_copy(update={"title": title, "steps": renumber_steps(steps)})


def apply_fix(test_case: TestCase, steps: Sequence[TestStep]) -> TestCase:
    """
    保存修复（AI 或手工）：替换步骤并重新排队

    状态重置为 PENDING，清空失败步骤、失败原因、证据和日志。
    """
    return test_case.model_copy(update={
        "steps": renumber_steps(steps),
        "status": TestCaseStatus.PENDING,
        "failed_step_number": None,
        "failure_reason": None,
        "evidence": None,
        "logs": [],
    })


def replace_test_case(test_cases: Sequence[TestCase], updated: TestCase) -> list[TestCase]:
    """按 ID 替换列表中的用例"""
    if not any(tc.id == updated.id for tc in test_cases):
        raise TestCaseNotFoundError(updated.id)
    return [updated if tc.id == updated.id else tc for tc in test_cases]


def find_uncovered_requirements(
    requirements: Sequence[Requirement],
    test_cases: Sequence[TestCase],
) -> list[str]:
    """
    覆盖率检查：返回没有任何用例关联的需求 ID

    只做报告，不拒绝生成结果。
    """
    covered = {tc.requirement_id for tc in test_cases}
    uncovered = [r.id for r in requirements if r.id not in covered]
    if uncovered:
        logger.warning(f"以下需求没有生成测试用例: {', '.join(uncovered)}")
    return uncovered
