"""ValidAI - AI Service

模型网关 - 结构化输出、重试机制、响应解析
"""
from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

import httpx
from pydantic import BaseModel, ValidationError

from validai.core.config import Settings, settings as default_settings
from validai.models.ai_schemas import (
    FIX_SCHEMA,
    REFINE_SCHEMA,
    REQUIREMENTS_SCHEMA,
    TEST_CASES_SCHEMA,
    FixPayload,
    FixProposal,
    GeneratedStep,
    RefinePayload,
    RefineResult,
    RequirementExtraction,
    RequirementsPayload,
    TestCasesPayload,
)
from validai.models.export_schemas import Framework
from validai.models.project_schemas import (
    ChatMessage,
    ChatRole,
    Requirement,
    TestCase,
    TestCaseStatus,
    TestStep,
    now_ms,
)
from validai.services.retry import RetryPolicy, run_with_retry

logger = logging.getLogger(__name__)


@dataclass
class GenerationConfig:
    """生成配置"""
    temperature: float = 0.7
    max_tokens: int = 4096
    timeout: float = 120.0


class AIServiceError(Exception):
    """AI 服务错误"""
    pass


class AIConfigurationError(AIServiceError):
    """AI 配置缺失（不重试）"""
    pass


class AIStep(str, Enum):
    """AI 执行步骤"""
    CHAT = "chat"
    REQUIREMENT_EXTRACTION = "requirement_extraction"
    TESTCASE_GENERATION = "testcase_generation"
    TESTCASE_FIX = "testcase_fix"
    TESTCASE_REFINE = "testcase_refine"
    CODE_GENERATION = "code_generation"


_FENCE_OPEN = re.compile(r"^```[a-z]*\n", re.IGNORECASE)
_FENCE_CLOSE = re.compile(r"\n```$")


def strip_code_fences(text: str) -> str:
    """去掉模型返回中首尾的 Markdown 代码块标记"""
    return _FENCE_CLOSE.sub("", _FENCE_OPEN.sub("", text))


def _clean_json(content: str) -> str:
    # 清理 Markdown 代码块标记
    cleaned = content.strip()
    if cleaned.startswith("```json"):
        cleaned = cleaned[7:]
    if cleaned.startswith("```"):
        cleaned = cleaned[3:]
    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]
    return cleaned.strip()


class AIService:
    """模型网关"""

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str],
        model: str,
        gen_config: Optional[GenerationConfig] = None,
        retry_policy: Optional[RetryPolicy] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        self.base_url = base_url
        self.api_key = api_key
        self.model = model
        self.gen_config = gen_config or GenerationConfig()
        self.retry_policy = retry_policy or RetryPolicy()
        self._transport = transport
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings: Settings = default_settings, **kwargs) -> "AIService":
        return cls(
            base_url=settings.AI_BASE_URL,
            api_key=settings.AI_API_KEY,
            model=settings.AI_MODEL,
            gen_config=GenerationConfig(
                temperature=settings.AI_TEMPERATURE,
                max_tokens=settings.AI_MAX_TOKENS,
                timeout=settings.AI_TIMEOUT,
            ),
            retry_policy=RetryPolicy.from_settings(settings),
            **kwargs,
        )

    # ================== 底层调用 ==================

    async def call_openai_compatible(
        self,
        messages: List[Dict[str, str]],
        response_format: Optional[Dict[str, Any]] = None,
    ) -> str:
        """单次调用 /chat/completions，返回文本内容"""
        if not self.api_key:
            raise AIConfigurationError("未配置 VALIDAI_AI_API_KEY")

        url = f"{self.base_url.rstrip('/')}/chat/completions"
        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": self.gen_config.temperature,
            "max_tokens": self.gen_config.max_tokens,
        }
        if response_format:
            payload["response_format"] = response_format

        async with httpx.AsyncClient(transport=self._transport) as client:
            response = await client.post(
                url,
                json=payload,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                timeout=self.gen_config.timeout,
            )
            response.raise_for_status()

        try:
            result = response.json()
            return result["choices"][0]["message"]["content"] or ""
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise AIServiceError(f"AI 响应结构异常: {e}") from e

    async def call_with_retry(
        self,
        step: AIStep,
        messages: List[Dict[str, str]],
        response_format: Optional[Dict[str, Any]] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ) -> str:
        """
        带重试机制的 AI 调用（仅重试传输层/HTTP 错误）

        Raises:
            AIServiceError: 重试次数用尽或配置缺失
        """
        policy = retry_policy or self.retry_policy
        try:
            return await run_with_retry(
                policy,
                lambda: self.call_openai_compatible(messages, response_format),
                label=f"AI 调用[{step.value}]",
                retry_on=(httpx.HTTPError,),
                sleep=self._sleep,
            )
        except httpx.HTTPError as e:
            raise AIServiceError(f"AI 调用失败 (已尝试 {policy.max_attempts} 次): {e}") from e

    async def call_json(
        self,
        step: AIStep,
        prompt: str,
        schema_name: str,
        schema: Dict[str, Any],
        payload_model: type[BaseModel],
    ) -> BaseModel:
        """结构化输出调用：约束 schema 并解析为 payload_model"""
        response_format = {
            "type": "json_schema",
            "json_schema": {"name": schema_name, "schema": schema},
        }
        content = await self.call_with_retry(
            step,
            [{"role": "user", "content": prompt}],
            response_format=response_format,
        )
        if not content or not content.strip():
            raise AIServiceError("No response from model")

        try:
            data = json.loads(_clean_json(content))
            return payload_model.model_validate(data)
        except json.JSONDecodeError as e:
            raise AIServiceError(f"AI 响应不是有效的 JSON 格式: {e}") from e
        except ValidationError as e:
            raise AIServiceError(f"AI 响应结构不符合预期: {e}") from e

    # ================== 网关操作 ==================

    async def chat(self, history: Sequence[ChatMessage], message: str) -> str:
        """对话一轮（不重试，失败由会话兜底）"""
        messages = [{"role": "system", "content": CHAT_SYSTEM_INSTRUCTION}]
        for msg in history:
            messages.append({
                "role": "assistant" if msg.role == ChatRole.MODEL else "user",
                "content": msg.text,
            })
        messages.append({"role": "user", "content": message})
        return await self.call_with_retry(
            AIStep.CHAT,
            messages,
            retry_policy=RetryPolicy(max_retries=0),
        )

    async def extract_requirements(self, transcript_text: str) -> RequirementExtraction:
        """从对话记录中提取需求并建议项目名"""
        prompt = PROMPTS[AIStep.REQUIREMENT_EXTRACTION].format(transcript=transcript_text)
        payload = await self.call_json(
            AIStep.REQUIREMENT_EXTRACTION, prompt, "requirements", REQUIREMENTS_SCHEMA, RequirementsPayload
        )
        stamp = now_ms()
        requirements = [
            Requirement(
                id=f"REQ-{stamp}-{index}",
                type=item.type,
                description=item.description,
                priority=item.priority,
            )
            for index, item in enumerate(payload.requirements)
        ]
        logger.info(f"提取需求 {len(requirements)} 条，建议项目名: {payload.suggested_project_name}")
        return RequirementExtraction(requirements=requirements, suggested_name=payload.suggested_project_name)

    async def generate_test_cases(self, requirements: Sequence[Requirement]) -> List[TestCase]:
        """根据需求生成测试用例（每条需求至少一个用例由提示词约束）"""
        requirements_json = json.dumps([r.model_dump(mode="json", by_alias=True) for r in requirements])
        prompt = PROMPTS[AIStep.TESTCASE_GENERATION].format(requirements=requirements_json)
        payload = await self.call_json(
            AIStep.TESTCASE_GENERATION, prompt, "test_cases", TEST_CASES_SCHEMA, TestCasesPayload
        )
        stamp = now_ms()
        return [
            TestCase(
                id=f"TC-{stamp}-{index}",
                requirement_id=item.requirement_id,
                title=item.title,
                steps=numbered_steps(item.steps),
                status=TestCaseStatus.PENDING,
                logs=[],
            )
            for index, item in enumerate(payload.test_cases)
        ]

    async def analyze_and_fix_test_case(self, test_case: TestCase) -> FixProposal:
        """分析失败原因并给出修正后的步骤"""
        failed_step = next(
            (s for s in test_case.steps if s.step_number == test_case.failed_step_number), None
        )
        prompt = PROMPTS[AIStep.TESTCASE_FIX].format(
            title=test_case.title,
            failed_step_number=failed_step.step_number if failed_step else "Unknown",
            failed_action=failed_step.action if failed_step else "Unknown",
            expected_result=failed_step.expected_result if failed_step else "Unknown",
            failure_reason=test_case.failure_reason or "Unknown error",
            steps=_steps_json(test_case),
        )
        payload = await self.call_json(AIStep.TESTCASE_FIX, prompt, "fix_result", FIX_SCHEMA, FixPayload)
        return FixProposal(steps=numbered_steps(payload.steps), explanation=payload.explanation)

    async def refine_test_case(self, test_case: TestCase, instruction: str) -> RefineResult:
        """按用户指令改写用例"""
        prompt = PROMPTS[AIStep.TESTCASE_REFINE].format(
            title=test_case.title,
            steps=_steps_json(test_case),
            instruction=instruction,
        )
        payload = await self.call_json(AIStep.TESTCASE_REFINE, prompt, "refine_result", REFINE_SCHEMA, RefinePayload)
        return RefineResult(title=payload.title, steps=numbered_steps(payload.steps))

    async def generate_test_suite_code(
        self,
        test_cases: Sequence[TestCase],
        framework: Framework = Framework.PLAYWRIGHT_TS,
        env_config: Optional[str] = None,
    ) -> str:
        """生成自动化测试脚本（原始源码文本）"""
        framework_name = framework.value if isinstance(framework, Framework) else str(framework)
        env_block = ENV_CONFIG_BLOCK.format(env_config=env_config) if env_config else ""
        input_data = json.dumps([
            {
                "id": tc.id,
                "title": tc.title,
                "steps": [s.model_dump(by_alias=True) for s in tc.steps],
            }
            for tc in test_cases
        ])
        prompt = PROMPTS[AIStep.CODE_GENERATION].format(
            framework=framework_name,
            env_block=env_block,
            input_data=input_data,
        )
        content = await self.call_with_retry(AIStep.CODE_GENERATION, [{"role": "user", "content": prompt}])
        return strip_code_fences(content or "")


def _steps_json(test_case: TestCase) -> str:
    return json.dumps([s.model_dump(by_alias=True) for s in test_case.steps])


def numbered_steps(steps: Sequence[GeneratedStep]) -> List[TestStep]:
    """模型返回的步骤按顺序编号为 1..n"""
    return [
        TestStep(step_number=index, action=s.action, expected_result=s.expected_result)
        for index, s in enumerate(steps, start=1)
    ]


# ================== 提示词 ==================

CHAT_SYSTEM_INSTRUCTION = """
You are a Senior QA Validation Agent. Your goal is to help the user define a software feature so you can validate it.
Ask clarifying questions to gather:
1. User Requirements (What the user needs)
2. Functional Requirements (How the system behaves)
3. Technical Requirements (Performance, Security, APIs)

Be professional, concise, and guiding. Do not generate code, just gather info.
"""

ENV_CONFIG_BLOCK = '''
--- ENVIRONMENT CONFIGURATION ---
The user has provided the following free-text configuration (URLs, credentials, etc).
1. ANALYZE this text to extract specific values (Base URLs, Usernames, Passwords, API Keys).
2. DEFINE these extracted values as constants at the TOP of the script.
3. USE these constants in the test code (e.g. navigate to the base URL, log in with the extracted credentials).

Configuration Input:
"""
{env_config}
"""
---------------------------------
'''

PROMPTS = {
    AIStep.REQUIREMENT_EXTRACTION: """
Based on the following conversation history, extract a comprehensive list of requirements.
Also suggest a short, professional project name.

Conversation History:
{transcript}
""",
    AIStep.TESTCASE_GENERATION: """
Generate detailed test cases for the following requirements.
Ensure every requirement has at least one test case.

Requirements:
{requirements}
""",
    AIStep.TESTCASE_FIX: """
The following test case failed during execution.

Test Title: {title}
Failed Step #{failed_step_number}: {failed_action}
Expected Result: {expected_result}
Failure Reason: {failure_reason}

Full Steps:
{steps}

Please analyze the failure and generate a corrected list of steps.
- You may add 'Wait' steps.
- You may refine the action description.
- You may split complex steps.

Return the new steps and a short explanation of the fix.
""",
    AIStep.TESTCASE_REFINE: """
Refine the following test case based on the user's instruction.

Current Test Case:
Title: {title}
Steps: {steps}

User Instruction: "{instruction}"

Return the updated title and steps in the specified JSON structure. Ensure step numbers are sequential starting from 1.
""",
    AIStep.CODE_GENERATION: """
You are a Senior Test Automation Engineer.
Generate a single, complete, runnable test script file for the following test cases using {framework}.
{env_block}
Input Data:
{input_data}

Requirements:
1. Header: Include a comment block at the very top with the exact commands to install dependencies and run this file.
2. Traceability: For EACH test case, include a comment with the Test Case ID and Title before the test definition.
3. Implementation: Write code that attempts to match the natural language step descriptions. Use best-guess semantic selectors.
4. Assertions: Convert "Expected Result" into assertions.
5. Structure: Use standard syntax for {framework}.
6. Output: Return ONLY the raw code string. Do NOT use Markdown code blocks. Do not include any text outside the code.
""",
}
