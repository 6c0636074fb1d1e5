"""ValidAI - Spreadsheet Service

需求表格导入 / 测试计划表格导出（pandas + openpyxl）
"""
from __future__ import annotations

import io
import logging
import re
from pathlib import Path
from typing import Any, Optional

import pandas as pd

from validai.models.project_schemas import (
    Priority,
    Requirement,
    RequirementType,
    ValidationProject,
    now_ms,
)

logger = logging.getLogger(__name__)

# 列名区分大小写，按顺序查找
DESCRIPTION_COLUMNS = ("Description", "Requirement", "desc")
TYPE_COLUMNS = ("Type", "Category")
PRIORITY_COLUMNS = ("Priority",)

EXPORT_COLUMNS = [
    "Test Case ID",
    "Requirement ID",
    "Test Title",
    "Step #",
    "Action",
    "Expected Result",
    "Status",
]
EXPORT_SHEET_NAME = "Test Plan"

SUPPORTED_EXTENSIONS = {".xlsx", ".xls", ".csv"}


class SpreadsheetParseError(ValueError):
    """表格读取/解析失败"""
    pass


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value == ""
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def _first_present(row: dict, keys: tuple[str, ...]) -> Optional[Any]:
    for key in keys:
        value = row.get(key)
        if not _is_missing(value):
            return value
    return None


def _first_value(row: dict) -> Optional[Any]:
    for value in row.values():
        if not _is_missing(value):
            return value
    return None


def _cell_text(value: Any) -> str:
    # 整数值的浮点单元格（如 3.0）按整数输出
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def resolve_type(raw: Any) -> RequirementType:
    text = str(raw).lower()
    req_type = RequirementType.FUNCTIONAL
    if "user" in text:
        req_type = RequirementType.USER
    if "tech" in text:
        req_type = RequirementType.TECHNICAL
    return req_type


def resolve_priority(raw: Any) -> Priority:
    text = str(raw).lower()
    priority = Priority.MEDIUM
    if "high" in text:
        priority = Priority.HIGH
    if "low" in text:
        priority = Priority.LOW
    return priority


def project_name_from_filename(filename: str) -> str:
    """文件名（首个点之前）→ 项目名：首字母大写，其余 -/_ 替换为空格"""
    base = Path(filename).name.split(".")[0]
    if not base:
        return base
    return base[0].upper() + re.sub(r"[-_]", " ", base[1:])


def rows_to_requirements(rows: list[dict]) -> list[Requirement]:
    """表格行 → 需求列表（描述为空的行丢弃）"""
    stamp = now_ms()
    requirements = []
    for index, row in enumerate(rows):
        description = _first_present(row, DESCRIPTION_COLUMNS)
        if description is None:
            description = _first_value(row)
        description_text = _cell_text(description) if description is not None else ""

        type_raw = _first_present(row, TYPE_COLUMNS) or "Functional"
        priority_raw = _first_present(row, PRIORITY_COLUMNS) or "Medium"

        if not description_text.strip():
            continue

        requirements.append(Requirement(
            id=f"REQ-IMPORT-{stamp}-{index}",
            description=description_text,
            type=resolve_type(type_raw),
            priority=resolve_priority(priority_raw),
        ))
    return requirements


def read_rows(content: bytes, filename: str) -> list[dict]:
    """读取第一个工作表为行字典列表"""
    ext = Path(filename).suffix.lower()
    if ext not in SUPPORTED_EXTENSIONS:
        raise SpreadsheetParseError(
            f"不支持的文件类型: {ext}。支持的类型: {', '.join(sorted(SUPPORTED_EXTENSIONS))}"
        )

    try:
        if ext == ".csv":
            df = pd.read_csv(io.BytesIO(content))
        else:
            df = pd.read_excel(io.BytesIO(content), sheet_name=0)
    except Exception as e:
        raise SpreadsheetParseError(f"表格解析失败: {e}") from e

    return df.to_dict(orient="records")


def parse_requirements(content: bytes, filename: str) -> tuple[list[Requirement], str]:
    """
    解析需求表格

    Args:
        content: 文件内容
        filename: 原始文件名（用于判断格式和生成项目名）

    Returns:
        (需求列表, 项目名)

    Raises:
        SpreadsheetParseError: 文件无法读取
    """
    rows = read_rows(content, filename)
    requirements = rows_to_requirements(rows)
    name = project_name_from_filename(filename)
    logger.info(f"导入需求表格 {filename}: {len(rows)} 行, 有效需求 {len(requirements)} 条")
    return requirements, name


def file_stem(name: str) -> str:
    """项目名中的空白和路径分隔符替换为下划线，用于导出文件名"""
    return re.sub(r"[\s/\\]+", "_", name)


def plan_rows(project: ValidationProject) -> list[dict]:
    """每个 (用例 × 步骤) 一行"""
    rows = []
    for tc in project.test_cases:
        for step in tc.steps:
            rows.append({
                "Test Case ID": tc.id,
                "Requirement ID": tc.requirement_id,
                "Test Title": tc.title,
                "Step #": step.step_number,
                "Action": step.action,
                "Expected Result": step.expected_result,
                "Status": tc.status.value,
            })
    return rows


def export_test_plan(project: ValidationProject) -> tuple[bytes, str]:
    """
    导出测试计划为 xlsx

    Returns:
        (文件内容, 文件名)
    """
    df = pd.DataFrame(plan_rows(project), columns=EXPORT_COLUMNS)
    buffer = io.BytesIO()
    df.to_excel(buffer, sheet_name=EXPORT_SHEET_NAME, index=False, engine="openpyxl")
    return buffer.getvalue(), f"{file_stem(project.name)}_TestPlan.xlsx"
