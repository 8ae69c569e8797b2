"""
重试策略（synthesis / analysis / segment 下载共用）

职责：
- 统一的指数退避：delay = base_delay * 2 ** attempt，再叠加随机抖动
- 通过 retry_on 判定哪些异常可重试，其余异常立即抛出
- 最后一次失败时原样抛出最后的异常（调用方负责包装成领域错误）
"""
import random
import time
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

from dialogcast.utils.logger import get_logger

T = TypeVar("T")

logger = get_logger("retry")


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 1.0  # 秒
    jitter: float = 0.1  # 退避时间的相对抖动（0.1 = ±10%）
    max_delay: float = 30.0

    def delay_for(self, attempt: int, rng: Optional[random.Random] = None) -> float:
        """第 attempt 次失败（从 0 开始）之后的等待时间"""
        delay = min(self.base_delay * (2 ** attempt), self.max_delay)
        if self.jitter > 0:
            r = (rng or random).uniform(-self.jitter, self.jitter)
            delay *= 1.0 + r
        return max(0.0, delay)


def call_with_retry(
    fn: Callable[[], T],
    policy: RetryPolicy,
    *,
    retry_on: Callable[[BaseException], bool] = lambda e: True,
    description: str = "call",
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    执行 fn，按 policy 重试。

    Args:
        fn: 无参调用
        policy: 重试策略
        retry_on: 判断异常是否可重试
        description: 日志中使用的描述
        sleep: 注入的 sleep（测试用）

    Raises:
        最后一次失败的异常；不可重试的异常立即抛出
    """
    attempts = max(1, policy.max_attempts)
    for attempt in range(attempts):
        try:
            return fn()
        except Exception as e:
            if not retry_on(e):
                raise
            if attempt >= attempts - 1:
                logger.error(f"{description} failed after {attempts} attempts: {e}")
                raise
            delay = policy.delay_for(attempt)
            logger.warning(
                f"{description} failed (attempt {attempt + 1}/{attempts}): {e}. Retrying in {delay:.2f}s..."
            )
            sleep(delay)
    raise RuntimeError("unreachable")
