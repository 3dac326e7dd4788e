"""
Error taxonomy for the competitor monitor.

FetchError never travels past the per-target boundary: the Monitor turns it
into a FAILED outcome. ClassifierError only ever skips a single field.
An empty extraction is an outcome (NO_DATA), not an exception.
"""

from typing import Optional


class MonitorError(Exception):
    """Base class for every error raised by the monitoring core."""


class FetchError(MonitorError):
    """Network failure, timeout or non-2xx answer for a single URL."""

    def __init__(self, url: str, error_type: str, status: Optional[int] = None, message: str = ""):
        self.url = url
        self.error_type = error_type
        self.status = status
        detail = f" ({message})" if message else ""
        status_part = f" status={status}" if status is not None else ""
        super().__init__(f"{error_type} fetching {url}{status_part}{detail}")


class ClassifierError(MonitorError, ValueError):
    """A field of the Facts has a shape the classifier cannot compare."""

    def __init__(self, field: str, reason: str):
        self.field = field
        super().__init__(f"Cannot classify field '{field}': {reason}")
