"""ValidAI - 工作区依赖

提供视图控制器、模型网关和模拟执行器（测试中通过 dependency_overrides 替换）
"""
from typing import Optional

from validai.core.config import settings
from validai.services.ai_service import AIService
from validai.services.execution.simulator import (
    ExecutionSimulator,
    RandomOutcomeSource,
    SimulationConfig,
)
from validai.services.workflow import ViewController

_controller: Optional[ViewController] = None


def get_view_controller() -> ViewController:
    """进程内唯一的视图控制器"""
    global _controller
    if _controller is None:
        _controller = ViewController()
    return _controller


def get_ai_service() -> AIService:
    return AIService.from_settings(settings)


def get_simulator() -> ExecutionSimulator:
    return ExecutionSimulator(
        outcome_source=RandomOutcomeSource(settings.SIM_SEED),
        config=SimulationConfig.from_settings(settings),
    )
