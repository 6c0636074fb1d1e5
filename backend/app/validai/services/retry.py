"""ValidAI - Retry Policy

可复用的重试策略（指数退避），按外部调用单独配置
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """重试策略

    max_retries 为首次调用之外的额外尝试次数；
    第 n 次重试前等待 base_delay * multiplier ** (n - 1) 秒。
    """
    max_retries: int = 2
    base_delay: float = 1.0
    multiplier: float = 1.5

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def delay_for(self, retry_number: int) -> float:
        """第 retry_number 次重试（从 1 开始）前的等待时间"""
        return self.base_delay * (self.multiplier ** (retry_number - 1))

    @classmethod
    def from_settings(cls, settings) -> "RetryPolicy":
        return cls(
            max_retries=settings.AI_MAX_RETRIES,
            base_delay=settings.AI_RETRY_BASE_DELAY,
            multiplier=settings.AI_RETRY_MULTIPLIER,
        )


async def run_with_retry(
    policy: RetryPolicy,
    func: Callable[[], Awaitable[T]],
    *,
    label: str = "call",
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    sleep: Optional[Callable[[float], Awaitable[None]]] = None,
) -> T:
    """
    按策略执行异步调用，最后一次失败的异常原样抛出

    Args:
        policy: 重试策略
        func: 无参异步调用
        label: 日志标签
        retry_on: 需要重试的异常类型，其余异常立即抛出
        sleep: 等待函数（测试可注入）

    Returns:
        调用结果
    """
    sleep = sleep or asyncio.sleep

    for attempt in range(1, policy.max_attempts + 1):
        try:
            return await func()
        except retry_on as e:
            if attempt >= policy.max_attempts:
                logger.error(f"{label} 失败 (已尝试 {attempt}/{policy.max_attempts} 次): {e}")
                raise
            delay = policy.delay_for(attempt)
            logger.warning(f"{label} 失败，{delay:.2f}s 后重试 (尝试 {attempt}/{policy.max_attempts}): {e}")
            await sleep(delay)

    raise RuntimeError("unreachable")  # pragma: no cover
