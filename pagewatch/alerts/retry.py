import time
from typing import Callable, TypeVar

from pagewatch.core import logger
from pagewatch.errors import DeliveryFailure

T = TypeVar("T")


class RetryPolicy:
    """
    Bounded exponential backoff around one delivery.
    The default (max_attempts=1) delivers exactly once.
    """

    def __init__(self, max_attempts: int = 1, backoff_seconds: float = 1.0,
                 sleep: Callable[[float], None] = time.sleep):
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds
        self._sleep = sleep

    def run(self, deliver: Callable[[], T]) -> T:
        for attempt in range(self.max_attempts):
            try:
                return deliver()
            except DeliveryFailure as e:
                if attempt == self.max_attempts - 1:
                    raise
                delay = self.backoff_seconds * (2 ** attempt)
                logger.warning(
                    f"[ALERT] Delivery to {e.endpoint_id} failed "
                    f"(attempt {attempt + 1}/{self.max_attempts}), retrying in {delay:.1f}s: {e.reason}"
                )
                self._sleep(delay)
