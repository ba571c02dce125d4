"""重试机制实现，包括指数退避重试."""

import asyncio
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, TypeVar

from loomsync.core.exceptions import RemoteStoreError

T = TypeVar("T")


class RetryState(Enum):
    """重试状态."""

    READY = "ready"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class RetryConfig:
    """重试配置."""

    max_attempts: int = 3  # 最大尝试次数
    base_delay: float = 1.0  # 基础延迟时间(秒)
    max_delay: float = 30.0  # 最大延迟时间(秒)
    exponential_base: float = 2.0
    jitter: bool = True
    retry_on_exceptions: list[type[BaseException]] = field(default_factory=lambda: [RemoteStoreError])
    skip_on_exceptions: list[type[BaseException]] = field(default_factory=list)


class ExponentialBackoffRetry:
    """指数退避重试实现.

    Only used for replaying pending writes on request; the engine never
    retries a failed call by itself.
    """

    def __init__(self, config: RetryConfig | None = None):
        self.config = config or RetryConfig()
        self.attempt_count = 0
        self.total_delay = 0.0
        self.state = RetryState.READY
        self.last_exception: Exception | None = None

    async def execute(self, func: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """执行函数，应用重试逻辑.

        Args:
            func: 每次尝试都会重新调用的协程函数
            *args: 函数参数
            **kwargs: 函数关键字参数

        Raises:
            Exception: 所有尝试都失败时抛出最后的异常
        """
        self.state = RetryState.RUNNING
        self.attempt_count = 0
        self.total_delay = 0.0

        while True:
            self.attempt_count += 1
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                self.last_exception = e
                if any(isinstance(e, exc_type) for exc_type in self.config.skip_on_exceptions):
                    self.state = RetryState.FAILED
                    raise

                should_retry = any(isinstance(e, exc_type) for exc_type in self.config.retry_on_exceptions)
                if not should_retry or self.attempt_count >= self.config.max_attempts:
                    self.state = RetryState.FAILED
                    raise

                delay = self._calculate_delay(self.attempt_count - 1)
                await asyncio.sleep(delay)
                self.total_delay += delay
            else:
                self.state = RetryState.COMPLETED
                return result

    def _calculate_delay(self, attempt_number: int) -> float:
        """计算第 ``attempt_number`` 次重试(从0开始)前的等待时间."""
        if attempt_number < 0:
            return 0.0

        delay = self.config.base_delay * (self.config.exponential_base**attempt_number)

        if self.config.jitter:
            jitter_range = min(delay * 0.1, 1.0)  # 最多10%的抖动
            delay += random.uniform(-jitter_range, jitter_range)

        return max(0.0, min(delay, self.config.max_delay))

    def get_stats(self) -> dict[str, Any]:
        """获取重试统计信息."""
        return {
            "attempts": self.attempt_count,
            "max_attempts": self.config.max_attempts,
            "total_delay": self.total_delay,
            "state": self.state.value,
            "last_exception": str(self.last_exception) if self.last_exception else None,
        }

    def reset(self) -> None:
        self.attempt_count = 0
        self.total_delay = 0.0
        self.state = RetryState.READY
        self.last_exception = None
