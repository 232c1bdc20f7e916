"""Retry-with-backoff policies for storage, queue and reasoning-engine calls."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable
from typing import Any, TypeVar

from sqlalchemy.exc import OperationalError
from tenacity import (
    RetryCallState,
    RetryError,
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential_jitter,
)

from core.errors import ReasoningEngineError, StorageError, TransientError

logger = logging.getLogger("autoloop.resilience")

T = TypeVar("T")

STORAGE_TRANSIENT_STATUS = frozenset({408, 429, 503, 504})
LLM_TRANSIENT_STATUS = frozenset({429, 500, 503, 504})


def status_code_of(exc: BaseException) -> int | None:
    """Best-effort HTTP status extraction from SDK exceptions."""
    for attr in ("status_code", "status"):
        value = getattr(exc, attr, None)
        if isinstance(value, int):
            return value
    response = getattr(exc, "response", None)
    value = getattr(response, "status_code", None)
    return value if isinstance(value, int) else None


def transient_predicate(statuses: Iterable[int]) -> Callable[[BaseException], bool]:
    """Build a predicate classifying exceptions as retryable."""
    allowed = frozenset(statuses)

    def is_transient(exc: BaseException) -> bool:
        if isinstance(exc, TransientError):
            return exc.status_code is None or exc.status_code in allowed
        if isinstance(exc, (TimeoutError, ConnectionError, OperationalError)):
            return True
        code = status_code_of(exc)
        return code is not None and code in allowed

    return is_transient


class RetryPolicy:
    """Exponential backoff with jitter and a bounded number of retries.

    Non-transient exceptions propagate immediately. When every attempt fails
    the last failure is wrapped in ``wrap_error`` and raised once.
    """

    def __init__(
        self,
        name: str,
        max_retries: int = 3,
        initial_delay: float = 1.0,
        max_delay: float = 30.0,
        is_transient: Callable[[BaseException], bool] | None = None,
        wrap_error: type[Exception] = StorageError,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.name = name
        self.max_retries = max(0, int(max_retries))
        self.initial_delay = float(initial_delay)
        self.max_delay = float(max_delay)
        self.is_transient = is_transient or transient_predicate(STORAGE_TRANSIENT_STATUS)
        self.wrap_error = wrap_error
        self.sleep = sleep

    def _log_retry(self, state: RetryCallState) -> None:
        exc = state.outcome.exception() if state.outcome else None
        delay = state.next_action.sleep if state.next_action else 0.0
        logger.warning(
            "%s: retry %d/%d after %.2fs due to %s",
            self.name,
            state.attempt_number,
            self.max_retries,
            delay,
            exc,
        )

    def call(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Run fn under the policy."""
        retrying = Retrying(
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_exponential_jitter(
                initial=self.initial_delay, max=self.max_delay, jitter=self.initial_delay
            ),
            retry=retry_if_exception(self.is_transient),
            before_sleep=self._log_retry,
            sleep=self.sleep,
        )
        try:
            return retrying(fn, *args, **kwargs)
        except RetryError as exc:
            last = exc.last_attempt.exception()
            raise self.wrap_error(
                f"{self.name} failed after {self.max_retries + 1} attempts: {last}"
            ) from last


def storage_policy(
    config: dict[str, Any] | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> RetryPolicy:
    """Retry policy for object-store and queue adapters."""
    cfg = (config or {}).get("resilience", {}).get("storage", {})
    return RetryPolicy(
        name="storage",
        max_retries=int(cfg.get("max_retries", 3)),
        initial_delay=float(cfg.get("initial_delay_seconds", 1.0)),
        max_delay=float(cfg.get("max_delay_seconds", 30.0)),
        is_transient=transient_predicate(STORAGE_TRANSIENT_STATUS),
        wrap_error=StorageError,
        sleep=sleep,
    )


def reasoning_policy(
    config: dict[str, Any] | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> RetryPolicy:
    """Retry policy for reasoning-engine completions."""
    cfg = (config or {}).get("resilience", {}).get("llm", {})
    return RetryPolicy(
        name="reasoning-engine",
        max_retries=int(cfg.get("max_retries", 5)),
        initial_delay=float(cfg.get("initial_delay_seconds", 2.0)),
        max_delay=float(cfg.get("max_delay_seconds", 60.0)),
        is_transient=transient_predicate(LLM_TRANSIENT_STATUS),
        wrap_error=ReasoningEngineError,
        sleep=sleep,
    )
