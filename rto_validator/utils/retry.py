from __future__ import annotations

import time
from typing import Callable, TypeVar

from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

T = TypeVar("T")

RetryHook = Callable[[int, float, BaseException], None]


def transient_retry_policy(
    *,
    should_retry: Callable[[Exception], bool],
    max_retries: int = 0,
    base_delay_seconds: float = 0.5,
    sleep_fn: Callable[[float], None] = time.sleep,
    on_retry: RetryHook | None = None,
) -> Retrying:
    """Tenacity policy allowing ``max_retries`` extra attempts.

    The delay doubles from ``base_delay_seconds``. With ``max_retries=0`` the
    operation runs exactly once and its error propagates unchanged.
    """

    def _before_sleep(state: RetryCallState) -> None:
        if on_retry is None or state.outcome is None or state.next_action is None:
            return
        error = state.outcome.exception()
        if error is not None:
            on_retry(state.attempt_number, state.next_action.sleep, error)

    return Retrying(
        stop=stop_after_attempt(max(max_retries, 0) + 1),
        wait=wait_exponential(multiplier=base_delay_seconds),
        retry=retry_if_exception(
            lambda error: isinstance(error, Exception) and should_retry(error)
        ),
        sleep=sleep_fn,
        before_sleep=_before_sleep,
        reraise=True,
    )


def call_with_retry(
    operation: Callable[[], T],
    *,
    should_retry: Callable[[Exception], bool],
    max_retries: int = 0,
    base_delay_seconds: float = 0.5,
    sleep_fn: Callable[[float], None] = time.sleep,
    on_retry: RetryHook | None = None,
) -> T:
    policy = transient_retry_policy(
        should_retry=should_retry,
        max_retries=max_retries,
        base_delay_seconds=base_delay_seconds,
        sleep_fn=sleep_fn,
        on_retry=on_retry,
    )
    return policy(operation)
