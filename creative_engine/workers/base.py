"""
Base Worker Utilities
Retry decorator and the base class for pipeline workers (timing, structured logging).
"""

import logging
import time
import traceback
from abc import ABC, abstractmethod
from datetime import datetime
from functools import wraps
from typing import Any, Callable, Optional, TypeVar

from creative_engine.core.errors import PipelineError, ProviderTransientError

logger = logging.getLogger(__name__)

T = TypeVar('T')


def with_retry(
    max_retries: int = 3,
    retry_delay: float = 1.0,
    exponential_backoff: bool = True,
    retryable_exceptions: tuple = (ProviderTransientError, TimeoutError, ConnectionError),
    sleep: Callable[[float], None] = time.sleep,
):
    """
    Decorator to retry a call on transient errors.

    Args:
        max_retries: Maximum number of retry attempts after the first call
        retry_delay: Base delay between retries (seconds)
        exponential_backoff: Whether to use exponential backoff
        retryable_exceptions: Tuple of exception types that should trigger retry
        sleep: Sleep function, replaceable in tests
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(*args, **kwargs) -> T:
            last_exception = None

            for attempt in range(max_retries + 1):
                try:
                    return func(*args, **kwargs)

                except retryable_exceptions as e:
                    last_exception = e

                    if attempt < max_retries:
                        delay = retry_delay * (2 ** attempt if exponential_backoff else 1)
                        logger.warning(
                            f"[Retry {attempt + 1}/{max_retries}] {func.__name__} failed: {e}. "
                            f"Retrying in {delay:.1f}s..."
                        )
                        sleep(delay)
                    else:
                        logger.error(
                            f"[Failed] {func.__name__} exhausted all {max_retries} retries: {e}"
                        )

                except PipelineError as e:
                    logger.error(f"[Non-Retryable] {func.__name__}: {e}")
                    raise

            raise last_exception

        return wrapper

    return decorator


class BaseWorker(ABC):
    """
    Abstract base class for pipeline workers.

    Provides start/complete/error logging with durations. Subclasses implement `execute`.
    """

    TASK_NAME = "task"

    def __init__(self):
        self.start_time: Optional[datetime] = None

    def _elapsed(self) -> float:
        return (datetime.utcnow() - self.start_time).total_seconds() if self.start_time else 0

    def _log_start(self, task_name: str, **context):
        """Log task start with context."""
        self.start_time = datetime.utcnow()
        logger.info(f"[START] {task_name} | Context: {context}")

    def _log_complete(self, task_name: str, result_summary: str = ""):
        """Log task completion with timing."""
        logger.info(f"[COMPLETE] {task_name} | Duration: {self._elapsed():.2f}s | {result_summary}")

    def _log_error(self, task_name: str, error: Exception):
        """Log task error with details."""
        if isinstance(error, PipelineError):
            logger.error(f"[ERROR] {task_name} | Duration: {self._elapsed():.2f}s | Error: {error}")
        else:
            logger.error(
                f"[ERROR] {task_name} | Duration: {self._elapsed():.2f}s | Error: {error}\n"
                f"{traceback.format_exc()}"
            )

    @abstractmethod
    def execute(self, *args, **kwargs) -> Any:
        """Execute the worker task. Must be implemented by subclasses."""
        pass


__all__ = ["with_retry", "BaseWorker"]
