"""ValidAI - Execution Simulator

模拟执行器

设计原则：
- 不驱动真实浏览器/网络，结果由随机源决定
- 随机源抽象为 OutcomeSource，测试可注入确定性结果
- 用例严格按列表顺序逐个执行，已通过的用例跳过
"""
from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, Iterable, List, Optional, Protocol, Sequence

from validai.models.project_schemas import (
    Evidence,
    ProjectStatus,
    TestCase,
    TestCaseStatus,
    ValidationProject,
)
from validai.models.project_status import aggregate_project_status
from validai.services.evidence import render_placeholder

logger = logging.getLogger(__name__)

FAILURE_REASONS = (
    "Element not found within timeout",
    "Expected text 'Submit' but found 'Save'",
    "API returned 500 Internal Server Error",
    "Button is not clickable",
    "Input validation failed unexpectedly",
)

# 每个用例保留的控制台尾部日志条数
TRAILING_LOG_LINES = 5


class OutcomeSource(Protocol):
    """执行结果决策接口"""

    def case_passes(self, pass_probability: float) -> bool:
        """单次阈值抽样决定用例是否通过"""
        ...

    def failure_step(self, step_count: int) -> int:
        """失败步骤编号（1..step_count 均匀选择）"""
        ...

    def failure_reason(self, reasons: Sequence[str]) -> str:
        ...

    def capture_pass_evidence(self, probability: float) -> bool:
        """通过的用例是否截图"""
        ...


class RandomOutcomeSource:
    """基于 random.Random 的随机源（可设种子）"""

    def __init__(self, seed: Optional[int] = None):
        self._rng = random.Random(seed)

    def case_passes(self, pass_probability: float) -> bool:
        return self._rng.random() < pass_probability

    def failure_step(self, step_count: int) -> int:
        return self._rng.randint(1, step_count)

    def failure_reason(self, reasons: Sequence[str]) -> str:
        return self._rng.choice(list(reasons))

    def capture_pass_evidence(self, probability: float) -> bool:
        return self._rng.random() < probability


class ScriptedOutcomeSource:
    """按给定序列回放结果（用尽后视为通过）"""

    def __init__(
        self,
        outcomes: Iterable[bool],
        failure_step: int = 1,
        reason_index: int = 0,
        pass_evidence: bool = False,
    ):
        self._outcomes = list(outcomes)
        self._failure_step = failure_step
        self._reason_index = reason_index
        self._pass_evidence = pass_evidence

    def case_passes(self, pass_probability: float) -> bool:
        return self._outcomes.pop(0) if self._outcomes else True

    def failure_step(self, step_count: int) -> int:
        return min(self._failure_step, step_count)

    def failure_reason(self, reasons: Sequence[str]) -> str:
        return reasons[self._reason_index % len(reasons)]

    def capture_pass_evidence(self, probability: float) -> bool:
        return self._pass_evidence


@dataclass
class SimulationConfig:
    """模拟参数"""
    pass_probability: float = 0.7
    pass_evidence_probability: float = 0.2
    step_delay: float = 0.8
    case_delay: float = 0.5
    setup_delay: float = 1.0

    @classmethod
    def from_settings(cls, settings) -> "SimulationConfig":
        return cls(
            pass_probability=settings.SIM_PASS_PROBABILITY,
            pass_evidence_probability=settings.SIM_PASS_EVIDENCE_PROBABILITY,
            step_delay=settings.SIM_STEP_DELAY,
            case_delay=settings.SIM_CASE_DELAY,
            setup_delay=settings.SIM_SETUP_DELAY,
        )


@dataclass
class ExecutionResult:
    """一次完整执行的结果"""
    project: ValidationProject
    console: List[str] = field(default_factory=list)
    executed_count: int = 0
    failed_count: int = 0


ProjectUpdateCallback = Callable[[ValidationProject], Optional[Awaitable[None]]]


class ExecutionSimulator:
    """模拟执行器"""

    def __init__(
        self,
        outcome_source: Optional[OutcomeSource] = None,
        config: Optional[SimulationConfig] = None,
        evidence_renderer: Callable[..., Evidence] = render_placeholder,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        self.outcome_source = outcome_source or RandomOutcomeSource()
        self.config = config or SimulationConfig()
        self.evidence_renderer = evidence_renderer
        self._sleep = sleep or asyncio.sleep
        self._console: List[str] = []

    def _log(self, message: str) -> None:
        line = f"[{datetime.now().strftime('%H:%M:%S')}] {message}"
        self._console.append(line)
        logger.info(message)

    async def _notify(self, callback: Optional[ProjectUpdateCallback], project: ValidationProject) -> None:
        if callback is None:
            return
        result = callback(project)
        if asyncio.iscoroutine(result):
            await result

    async def run(
        self,
        project: ValidationProject,
        on_update: Optional[ProjectUpdateCallback] = None,
    ) -> ExecutionResult:
        """
        执行项目中所有未通过的用例

        Args:
            project: 当前项目（不修改入参）
            on_update: 每次用例状态变化后回调（用于持久化）

        Returns:
            ExecutionResult（项目状态已聚合）
        """
        self._console = []
        cases = list(project.test_cases)

        self._log("Initializing Cloud Execution Environment...")
        await self._sleep(self.config.setup_delay)

        queue = [i for i, tc in enumerate(cases) if tc.status != TestCaseStatus.PASSED]
        if not queue:
            self._log("No pending tests found. Redirecting to report...")
            final = project.model_copy(update={"status": self._final_status(project, cases)})
            return ExecutionResult(project=final, console=list(self._console))

        self._log(f"Environment Ready. Starting {len(queue)} Tests.")

        executed = 0
        for index in queue:
            tc = cases[index]

            cases[index] = tc.model_copy(update={"status": TestCaseStatus.RUNNING})
            self._log(f"Starting Test Case: {tc.title} ({tc.id})")
            await self._notify(on_update, project.model_copy(update={"test_cases": list(cases)}))

            cases[index] = await self._run_case(tc)
            executed += 1
            self._log(f"Test Case Finished: {cases[index].status.value}")
            await self._notify(on_update, project.model_copy(update={"test_cases": list(cases)}))

            await self._sleep(self.config.case_delay)

        self._log("All tests completed. Generating Report...")

        status = aggregate_project_status(tc.status for tc in cases)
        failed = sum(1 for tc in cases if tc.status == TestCaseStatus.FAILED)
        logger.info(f"项目 {project.id} 执行完成: {status.value} ({failed}/{len(cases)} 失败)")

        final = project.model_copy(update={"test_cases": cases, "status": status})
        return ExecutionResult(
            project=final,
            console=list(self._console),
            executed_count=executed,
            failed_count=failed,
        )

    async def _run_case(self, tc: TestCase) -> TestCase:
        """执行单个用例：先决定结果，再逐步模拟"""
        source = self.outcome_source
        passed = source.case_passes(self.config.pass_probability)
        fail_at = source.failure_step(len(tc.steps)) if not passed and tc.steps else None

        failed_step_number: Optional[int] = None
        failure_reason: Optional[str] = None

        for step in tc.steps:
            self._log(f"  Running Step {step.step_number}: {step.action}")
            await self._sleep(self.config.step_delay)

            if fail_at is not None and step.step_number == fail_at:
                failed_step_number = step.step_number
                failure_reason = source.failure_reason(FAILURE_REASONS)
                self._log(f"  Failed Step {step.step_number}: {failure_reason}")
                break

        status = TestCaseStatus.PASSED if passed else TestCaseStatus.FAILED

        evidence = None
        if not passed or source.capture_pass_evidence(self.config.pass_evidence_probability):
            self._log("  Capturing evidence screenshot...")
            evidence = self.evidence_renderer(status, tc.title, failed_step_number, failure_reason)

        if passed:
            result_line = "Result: Success"
        elif failed_step_number is None:
            result_line = "Result: Failed"
        else:
            result_line = f"Result: Failed at Step {failed_step_number}"

        return tc.model_copy(update={
            "status": status,
            "logs": [result_line] + self._console[-TRAILING_LOG_LINES:],
            "evidence": evidence,
            "failed_step_number": failed_step_number,
            "failure_reason": failure_reason,
        })

    @staticmethod
    def _final_status(project: ValidationProject, cases: Sequence[TestCase]) -> ProjectStatus:
        # 无用例可执行：有用例则按现状聚合，空项目保持原状态
        if not cases:
            return project.status
        return aggregate_project_status(tc.status for tc in cases)
