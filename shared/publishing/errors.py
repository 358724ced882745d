from typing import Optional


class DeliveryError(Exception):
    """
    Base class for failures raised by a tally sink.

    These never leave the publisher; they decide whether the same snapshot
    is retried, deferred or dropped.
    """


class TransientDeliveryError(DeliveryError):
    """
    Timeout, connection failure or 5xx-class response.
    Retried with backoff up to the configured retry budget.
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RateLimited(DeliveryError):
    """
    Explicit throttling signal from the sink.
    The next attempt must wait at least `retry_after` seconds.
    """

    def __init__(self, retry_after: float, message: Optional[str] = None):
        self.retry_after = max(0.0, float(retry_after))
        super().__init__(message or f"Rate limited, retry after {self.retry_after:.2f}s")


class PermanentDeliveryError(DeliveryError):
    """
    Rejection that will not succeed on retry (bad credential, 4xx).
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
