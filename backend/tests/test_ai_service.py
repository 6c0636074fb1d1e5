"""模型网关测试（httpx.MockTransport 替身）"""
import httpx
import pytest

from conftest import FakeModel, make_ai_service, make_project
from validai.models.export_schemas import Framework
from validai.models.project_schemas import ChatMessage, ChatRole, Priority, RequirementType, TestCaseStatus
from validai.services.ai_service import (
    AIConfigurationError,
    AIService,
    AIServiceError,
    strip_code_fences,
)
from validai.services.retry import RetryPolicy

REQUIREMENTS_REPLY = {
    "requirements": [
        {"type": "Functional Requirement", "description": "User can log in", "priority": "High"},
        {"type": "Technical Requirement", "description": "Passwords are hashed", "priority": "Medium"},
    ],
    "suggestedProjectName": "Login",
}


class TestStripCodeFences:
    def test_strips_language_fence(self):
        text = "```typescript\nimport { test } from '@playwright/test';\n```"
        assert strip_code_fences(text) == "import { test } from '@playwright/test';"

    def test_strips_bare_fence(self):
        assert strip_code_fences("```\nprint('hi')\n```") == "print('hi')"

    def test_plain_text_untouched(self):
        assert strip_code_fences("print('hi')") == "print('hi')"


@pytest.mark.asyncio
async def test_extract_requirements_assigns_ids():
    fake = FakeModel(REQUIREMENTS_REPLY)
    service = make_ai_service(fake)

    result = await service.extract_requirements("USER: I need a login page")

    assert result.suggested_name == "Login"
    assert [r.description for r in result.requirements] == ["User can log in", "Passwords are hashed"]
    assert result.requirements[0].type == RequirementType.FUNCTIONAL
    assert result.requirements[0].priority == Priority.HIGH
    assert result.requirements[0].id.startswith("REQ-")
    assert result.requirements[1].id.endswith("-1")

    request = fake.requests[0]
    assert request["model"] == "test-model"
    assert request["response_format"]["type"] == "json_schema"
    assert "USER: I need a login page" in request["messages"][0]["content"]


@pytest.mark.asyncio
async def test_extract_requirements_tolerates_markdown_fence():
    import json

    fake = FakeModel("```json\n" + json.dumps(REQUIREMENTS_REPLY) + "\n```")
    result = await make_ai_service(fake).extract_requirements("USER: login")
    assert len(result.requirements) == 2


@pytest.mark.asyncio
async def test_empty_reply_raises():
    service = make_ai_service(FakeModel(""))
    with pytest.raises(AIServiceError, match="No response from model"):
        await service.extract_requirements("USER: login")


@pytest.mark.asyncio
async def test_malformed_structure_raises():
    service = make_ai_service(FakeModel({"requirements": [{"description": "no type"}]}))
    with pytest.raises(AIServiceError):
        await service.extract_requirements("USER: login")


@pytest.mark.asyncio
async def test_invalid_json_raises():
    service = make_ai_service(FakeModel("not json at all"))
    with pytest.raises(AIServiceError):
        await service.extract_requirements("USER: login")


@pytest.mark.asyncio
async def test_generate_test_cases_are_pending():
    project = make_project(case_count=0)
    fake = FakeModel({
        "testCases": [
            {
                "requirementId": "REQ-1-0",
                "title": "Valid login",
                "steps": [{"stepNumber": 1, "action": "Open page", "expectedResult": "Form shown"}],
            }
        ]
    })

    cases = await make_ai_service(fake).generate_test_cases(project.requirements)

    assert len(cases) == 1
    assert cases[0].id.startswith("TC-")
    assert cases[0].status == TestCaseStatus.PENDING
    assert cases[0].logs == []
    assert cases[0].requirement_id == "REQ-1-0"


@pytest.mark.asyncio
async def test_generated_steps_are_renumbered_from_one():
    project = make_project(case_count=0)
    fake = FakeModel({
        "testCases": [
            {
                "requirementId": "REQ-1-0",
                "title": "Valid login",
                "steps": [
                    {"stepNumber": 2, "action": "Open page", "expectedResult": "Form shown"},
                    {"stepNumber": 5, "action": "Submit", "expectedResult": "Dashboard shown"},
                ],
            },
            {
                "requirementId": "REQ-1-1",
                "title": "Locked account",
                "steps": [{"stepNumber": 0, "action": "Log in as locked user", "expectedResult": "Error shown"}],
            },
        ]
    })

    cases = await make_ai_service(fake).generate_test_cases(project.requirements)

    assert [s.step_number for s in cases[0].steps] == [1, 2]
    assert [s.action for s in cases[0].steps] == ["Open page", "Submit"]
    assert [s.step_number for s in cases[1].steps] == [1]


@pytest.mark.asyncio
async def test_retries_then_raises_after_three_attempts():
    fake = FakeModel(*[httpx.Response(503, json={"error": "unavailable"})] * 3)
    delays = []

    async def record(delay):
        delays.append(delay)

    service = make_ai_service(fake, retry_policy=RetryPolicy(max_retries=2, base_delay=1.0, multiplier=1.5), sleep=record)

    with pytest.raises(AIServiceError):
        await service.extract_requirements("USER: login")

    assert len(fake.requests) == 3
    assert delays == pytest.approx([1.0, 1.5])


@pytest.mark.asyncio
async def test_recovers_after_transient_error():
    fake = FakeModel(httpx.Response(500), REQUIREMENTS_REPLY)
    result = await make_ai_service(fake).extract_requirements("USER: login")

    assert len(fake.requests) == 2
    assert result.suggested_name == "Login"


@pytest.mark.asyncio
async def test_missing_api_key_is_not_retried():
    fake = FakeModel(REQUIREMENTS_REPLY)
    service = AIService(
        base_url="https://llm.test/v1",
        api_key=None,
        model="test-model",
        transport=httpx.MockTransport(fake.handler),
    )

    with pytest.raises(AIConfigurationError):
        await service.extract_requirements("USER: login")

    assert fake.requests == []


@pytest.mark.asyncio
async def test_chat_maps_roles_and_does_not_retry():
    fake = FakeModel(httpx.Response(500))
    service = make_ai_service(fake)
    history = [ChatMessage(role=ChatRole.MODEL, text="Hello")]

    with pytest.raises(AIServiceError):
        await service.chat(history, "I need a login page")

    assert len(fake.requests) == 1
    roles = [m["role"] for m in fake.requests[0]["messages"]]
    assert roles == ["system", "assistant", "user"]


@pytest.mark.asyncio
async def test_fix_proposal():
    project = make_project(case_count=1)
    failed = project.test_cases[0].model_copy(update={
        "status": TestCaseStatus.FAILED,
        "failed_step_number": 2,
        "failure_reason": "Button is not clickable",
    })
    fake = FakeModel({
        "steps": [
            {"stepNumber": 1, "action": "Open login page", "expectedResult": "Form is shown"},
            {"stepNumber": 2, "action": "Wait for submit button", "expectedResult": "Button enabled"},
            {"stepNumber": 3, "action": "Submit credentials", "expectedResult": "Dashboard is shown"},
        ],
        "explanation": "Added a wait before submitting.",
    })

    proposal = await make_ai_service(fake).analyze_and_fix_test_case(failed)

    assert len(proposal.steps) == 3
    assert proposal.explanation.startswith("Added a wait")
    prompt = fake.requests[0]["messages"][0]["content"]
    assert "Failed Step #2: Submit credentials" in prompt
    assert "Button is not clickable" in prompt


@pytest.mark.asyncio
async def test_refine_result():
    project = make_project(case_count=1)
    fake = FakeModel({
        "title": "Login with remember me",
        "steps": [{"stepNumber": 1, "action": "Tick remember me", "expectedResult": "Checkbox ticked"}],
    })

    result = await make_ai_service(fake).refine_test_case(project.test_cases[0], "add remember me")

    assert result.title == "Login with remember me"
    assert 'User Instruction: "add remember me"' in fake.requests[0]["messages"][0]["content"]


@pytest.mark.asyncio
async def test_generate_code_strips_fences_and_includes_env():
    project = make_project(case_count=1)
    fake = FakeModel("```python\nimport pytest\n```")

    code = await make_ai_service(fake).generate_test_suite_code(
        project.test_cases, Framework.SELENIUM_PY, "BASE_URL=https://staging.example.com"
    )

    assert code == "import pytest"
    prompt = fake.requests[0]["messages"][0]["content"]
    assert "Selenium (Python)" in prompt
    assert "BASE_URL=https://staging.example.com" in prompt
    assert "response_format" not in fake.requests[0]


@pytest.mark.asyncio
async def test_fix_prompt_without_failed_step():
    project = make_project(case_count=1)
    failed = project.test_cases[0].model_copy(update={"status": TestCaseStatus.FAILED})
    fake = FakeModel({
        "steps": [
            {"stepNumber": 0, "action": "Open login page", "expectedResult": "Form is shown"},
            {"stepNumber": 0, "action": "Submit credentials", "expectedResult": "Dashboard is shown"},
        ],
        "explanation": "Nothing to change.",
    })

    proposal = await make_ai_service(fake).analyze_and_fix_test_case(failed)

    prompt = fake.requests[0]["messages"][0]["content"]
    assert "Failed Step #Unknown: Unknown" in prompt
    assert "#None" not in prompt
    assert [s.step_number for s in proposal.steps] == [1, 2]
