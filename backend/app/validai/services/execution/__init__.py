"""Execution package"""
from validai.services.execution.simulator import (
    ExecutionResult,
    ExecutionSimulator,
    OutcomeSource,
    RandomOutcomeSource,
    ScriptedOutcomeSource,
    SimulationConfig,
)

__all__ = [
    "ExecutionResult",
    "ExecutionSimulator",
    "OutcomeSource",
    "RandomOutcomeSource",
    "ScriptedOutcomeSource",
    "SimulationConfig",
]
