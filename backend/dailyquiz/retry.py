"""Retry-with-backoff policy shared by every durable profile operation."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple, Type, TypeVar

from .config import Settings, get_settings
from .telemetry import emit_event

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryExhaustedError(RuntimeError):
    def __init__(self, operation: str, attempts: int, last_error: BaseException) -> None:
        super().__init__(f"{operation} failed after {attempts} attempt(s): {last_error}")
        self.operation = operation
        self.attempts = attempts
        self.last_error = last_error


@dataclass(frozen=True)
class RetryPolicy:
    """``max_attempts`` tries in total, sleeping ``base_delay * multiplier**n`` between them."""

    max_attempts: int = 3
    base_delay: float = 1.0
    multiplier: float = 2.0
    retry_on: Tuple[Type[BaseException], ...] = (Exception,)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {self.max_attempts}.")

    def delay_after(self, attempt: int) -> float:
        """Delay to wait after the given 1-based failed attempt."""
        return self.base_delay * (self.multiplier ** (attempt - 1))

    def delays(self) -> List[float]:
        return [self.delay_after(attempt) for attempt in range(1, self.max_attempts)]

    def call(
        self,
        operation: Callable[[], T],
        *,
        name: str,
        sleep: Optional[Callable[[float], None]] = None,
    ) -> T:
        """Run ``operation`` until it succeeds or attempts run out.

        Exhaustion is reported through the ``retry_exhausted`` telemetry event
        and re-raised as :class:`RetryExhaustedError`.
        """
        pause = sleep or time.sleep
        attempt = 0
        while True:
            attempt += 1
            try:
                return operation()
            except self.retry_on as exc:
                if attempt >= self.max_attempts:
                    emit_event("retry_exhausted", operation=name, attempts=attempt, error=exc)
                    raise RetryExhaustedError(name, attempt, exc) from exc
                delay = self.delay_after(attempt)
                logger.warning(
                    "%s attempt %s/%s failed, retrying in %.1fs: %s",
                    name,
                    attempt,
                    self.max_attempts,
                    delay,
                    exc,
                )
                pause(delay)


def policy_from_settings(
    settings: Optional[Settings] = None,
    *,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
) -> RetryPolicy:
    settings = settings or get_settings()
    return RetryPolicy(
        max_attempts=settings.sync_max_attempts,
        base_delay=settings.sync_base_delay_seconds,
        retry_on=retry_on,
    )


__all__ = ["RetryExhaustedError", "RetryPolicy", "policy_from_settings"]
