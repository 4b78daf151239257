"""Timing spans for order operations."""

import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Generator

from fulfillment.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class Span:
    """One timed step of an operation."""

    name: str
    duration_ms: float
    metadata: dict[str, Any] = field(default_factory=dict)


class OperationTracer:
    """Collects timed spans for a single engine operation."""

    def __init__(self, operation: str, **context: Any):
        self.operation = operation
        self.context = context
        self.spans: list[Span] = []
        self.start_time = time.perf_counter()

    @contextmanager
    def span(self, name: str, **metadata: Any) -> Generator[None, None, None]:
        """Time the enclosed block and record it as a span."""
        start = time.perf_counter()
        try:
            yield
        finally:
            duration_ms = (time.perf_counter() - start) * 1000
            self.spans.append(Span(name=name, duration_ms=duration_ms, metadata=metadata))

    @property
    def total_ms(self) -> float:
        return (time.perf_counter() - self.start_time) * 1000

    def summary(self) -> dict[str, Any]:
        """Get a summary of the recorded spans."""
        return {
            "operation": self.operation,
            "total_duration_ms": round(self.total_ms, 3),
            "spans": {span.name: round(span.duration_ms, 3) for span in self.spans},
            **self.context,
        }

    def finish(self, **extra: Any) -> None:
        """Log the summary once the operation has completed."""
        logger.debug("operation_trace", **{**self.summary(), **extra})
