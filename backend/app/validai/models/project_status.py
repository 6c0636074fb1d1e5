"""项目聚合状态计算

一次完整执行结束后，根据所有用例状态计算项目结论。
"""

from typing import Iterable

from validai.models.project_schemas import ProjectStatus, TestCaseStatus


def aggregate_project_status(statuses: Iterable[TestCaseStatus]) -> ProjectStatus:
    """将用例状态聚合为项目状态

    规则:
        - 无失败 -> VALIDATED
        - 失败数 <= 总数一半 -> PARTLY_VALIDATED
        - 失败数 > 总数一半 -> FAILED

    Args:
        statuses: 项目内所有用例的状态

    Returns:
        ProjectStatus 项目聚合状态
    """
    statuses = list(statuses)
    total = len(statuses)
    failed = sum(1 for s in statuses if s == TestCaseStatus.FAILED)

    if failed > total / 2:
        return ProjectStatus.FAILED

    if failed > 0:
        return ProjectStatus.PARTLY_VALIDATED

    return ProjectStatus.VALIDATED


__all__ = [
    "aggregate_project_status",
]
