"""ValidAI - Code Export

自动化脚本导出：生成脚本文本并确定下载文件名
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from validai.models.export_schemas import Framework
from validai.models.project_schemas import ValidationProject
from validai.services.ai_service import AIService
from validai.services.spreadsheet import file_stem
from validai.services.testcase_service import TestCaseNotFoundError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CodeArtifact:
    filename: str
    content: str


def extension_for(framework: str) -> str:
    """按框架名称子串选择扩展名"""
    if "Python" in framework:
        return ".py"
    if "JavaScript" in framework or "Cypress" in framework:
        return ".js"
    return ".ts"


def export_filename(project: ValidationProject, framework: str, test_case_id: Optional[str] = None) -> str:
    suffix = f"_{test_case_id}" if test_case_id else "_Tests"
    return f"{file_stem(project.name)}{suffix}{extension_for(framework)}"


async def export_code(
    ai_service: AIService,
    project: ValidationProject,
    framework: Framework,
    test_case_id: Optional[str] = None,
) -> CodeArtifact:
    """
    生成整个套件或单个用例的自动化脚本

    Raises:
        TestCaseNotFoundError: 指定的用例不存在
        AIServiceError: 生成失败
    """
    if test_case_id:
        tc = project.find_test_case(test_case_id)
        if tc is None:
            raise TestCaseNotFoundError(test_case_id)
        cases = [tc]
    else:
        cases = list(project.test_cases)

    content = await ai_service.generate_test_suite_code(cases, framework, project.environment_config)
    filename = export_filename(project, framework.value, test_case_id)
    logger.info(f"导出脚本 {filename} ({len(cases)} 个用例)")
    return CodeArtifact(filename=filename, content=content)
