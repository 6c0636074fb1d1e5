"""
ValidAI 测试配置

统一管理测试数据库初始化、模型网关替身和模拟执行器依赖覆盖。
"""
import json

import httpx
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from validai.api.deps.workspace_deps import get_ai_service, get_simulator, get_view_controller
from validai.database import models  # noqa: F401 - 注册模型
from validai.database.config import Base, get_db
from validai.main import app
from validai.models.project_schemas import (
    Requirement,
    TestCase,
    TestCaseStatus,
    TestStep,
    ValidationProject,
)
from validai.services.ai_service import AIService
from validai.services.execution.simulator import (
    ExecutionSimulator,
    ScriptedOutcomeSource,
    SimulationConfig,
)
from validai.services.retry import RetryPolicy
from validai.services.workflow import ViewController

# 使用文件数据库进行测试（内存数据库有连接隔离问题）
SQLALCHEMY_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db():
    """覆盖数据库依赖"""
    try:
        db = TestingSessionLocal()
        yield db
    finally:
        db.close()


async def no_sleep(_delay: float) -> None:
    return None


def completion(content: str) -> dict:
    """OpenAI 兼容的 /chat/completions 响应体"""
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


class FakeModel:
    """按顺序回放预置回复的模型替身，并记录收到的请求体

    回复可以是字符串、dict/list（序列化为 JSON 文本）或 httpx.Response（原样返回）。
    回复用尽后返回空文本。
    """

    def __init__(self, *replies):
        self.replies = list(replies)
        self.requests: list[dict] = []

    def queue(self, *replies) -> None:
        self.replies.extend(replies)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(json.loads(request.content))
        reply = self.replies.pop(0) if self.replies else ""
        if isinstance(reply, httpx.Response):
            return reply
        if isinstance(reply, (dict, list)):
            reply = json.dumps(reply)
        return httpx.Response(200, json=completion(reply))


def make_ai_service(fake_model: FakeModel, retry_policy: RetryPolicy = None, sleep=no_sleep) -> AIService:
    return AIService(
        base_url="https://llm.test/v1",
        api_key="test-key",
        model="test-model",
        retry_policy=retry_policy or RetryPolicy(),
        transport=httpx.MockTransport(fake_model.handler),
        sleep=sleep,
    )


def make_simulator(outcomes=(), **kwargs) -> ExecutionSimulator:
    """零延迟、结果可控的模拟执行器"""
    return ExecutionSimulator(
        outcome_source=ScriptedOutcomeSource(outcomes, **kwargs),
        config=SimulationConfig(step_delay=0, case_delay=0, setup_delay=0),
        sleep=no_sleep,
    )


def make_project(case_count: int = 2, status: TestCaseStatus = TestCaseStatus.PENDING, **kwargs) -> ValidationProject:
    """构造带需求和用例的项目"""
    requirements = [
        Requirement(id="REQ-1-0", description="User can log in with email and password"),
        Requirement(id="REQ-1-1", description="Locked accounts see an error"),
    ]
    test_cases = [
        TestCase(
            id=f"TC-1-{i}",
            requirement_id=requirements[i % 2].id,
            title=f"Login case {i}",
            status=status,
            steps=[
                TestStep(step_number=1, action="Open login page", expected_result="Form is shown"),
                TestStep(step_number=2, action="Submit credentials", expected_result="Dashboard is shown"),
            ],
        )
        for i in range(case_count)
    ]
    defaults = {"id": "PROJ-1", "name": "Login Flow", "requirements": requirements, "test_cases": test_cases}
    defaults.update(kwargs)
    return ValidationProject(**defaults)


@pytest.fixture(autouse=True)
def setup_database():
    """每个测试前创建所有表，测试后清理"""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    """提供数据库会话"""
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def fake_model():
    return FakeModel()


@pytest.fixture
def ai_service(fake_model):
    return make_ai_service(fake_model)


@pytest.fixture
def simulator():
    """默认全部通过；测试可替换 simulator.outcome_source"""
    return make_simulator()


@pytest.fixture
def controller():
    return ViewController(session_factory=TestingSessionLocal)


@pytest.fixture(autouse=True)
def apply_overrides(controller, ai_service, simulator):
    """每个测试自动应用依赖覆盖，并在结束后恢复"""
    old_overrides = app.dependency_overrides.copy()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_view_controller] = lambda: controller
    app.dependency_overrides[get_ai_service] = lambda: ai_service
    app.dependency_overrides[get_simulator] = lambda: simulator

    yield

    app.dependency_overrides = old_overrides


@pytest.fixture
def client():
    """提供测试客户端"""
    from fastapi.testclient import TestClient
    return TestClient(app)
