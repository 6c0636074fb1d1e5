"""ValidAI - Export Schemas

导出相关的数据模型
"""
from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import Field

from validai.models.project_schemas import CamelModel


class Framework(str, Enum):
    """自动化脚本框架（固定三选一）"""
    PLAYWRIGHT_TS = "Playwright (TypeScript)"
    CYPRESS_JS = "Cypress (JavaScript)"
    SELENIUM_PY = "Selenium (Python)"


class CodeExportRequest(CamelModel):
    """代码导出请求"""
    framework: Framework = Framework.PLAYWRIGHT_TS
    test_case_id: Optional[str] = Field(default=None, description="仅导出单个用例；为空则导出整个套件")
