"""재시도 로직 — 연결 계층 오류에만 지수 백오프 재시도 (기본 비활성)

벌크 요청은 일부 성공 후 재전송하면 중복 생성이 생길 수 있으므로
엔진에 도달하지 못한 오류(ConnectionError, ConnectionTimeout)만 재시도한다.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from functools import wraps
from typing import Callable

from elasticsearch import ConnectionError as ESConnectionError, ConnectionTimeout

from .log import get_logger

logger = get_logger("retry")

RETRYABLE_ERRORS: tuple[type[Exception], ...] = (ESConnectionError, ConnectionTimeout)


@dataclass
class RetryConfig:
    """재시도 설정 (max_retries = 최초 시도 이후 추가 시도 횟수)"""

    max_retries: int = 0
    initial_backoff: float = 1.0
    exponential: bool = True
    max_backoff: float = 30.0

    def __post_init__(self):
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {self.max_retries}")

    def backoff(self, attempt: int) -> float:
        """attempt번째 실패 후 대기 시간 (초)"""
        if not self.exponential:
            return self.initial_backoff
        return min(self.initial_backoff * (2 ** (attempt - 1)), self.max_backoff)


def async_with_retry(
    retry_config: RetryConfig,
    retry_on: tuple[type[Exception], ...] = RETRYABLE_ERRORS,
    sleep: Callable = asyncio.sleep,
):
    """
    비동기 재시도 데코레이터.

    사용 예:
        @async_with_retry(RetryConfig(max_retries=3))
        async def send(lines):
            return await client.bulk(operations=lines)
    """

    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            attempts = retry_config.max_retries + 1
            for attempt in range(1, attempts + 1):
                try:
                    return await func(*args, **kwargs)
                except retry_on as e:
                    if attempt >= attempts:
                        if retry_config.max_retries:
                            logger.error(
                                f"[bold red]최종 실패[/bold red] (시도 {attempt}/{attempts}): {e}"
                            )
                        raise
                    delay = retry_config.backoff(attempt)
                    logger.warning(
                        f"[yellow]재시도 대기[/yellow] ({attempt}/{attempts}) "
                        f"{delay:.1f}초 후 재시도... error: {e}"
                    )
                    await sleep(delay)

        return wrapper

    return decorator
