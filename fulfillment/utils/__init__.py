"""Utility modules."""

from fulfillment.utils.logging import get_logger, setup_logging
from fulfillment.utils.tracing import OperationTracer

__all__ = ["setup_logging", "get_logger", "OperationTracer"]
