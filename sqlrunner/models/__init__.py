"""Value objects shared by the execution engine."""

from sqlrunner.models.capabilities import DbCapabilities, EndReadOnlyTransaction, capabilities_for
from sqlrunner.models.result import ErrorDescriptor, ExecutionResult, MessageKind, ResultMessage
from sqlrunner.models.table import ResultTable

__all__ = [
    "DbCapabilities",
    "EndReadOnlyTransaction",
    "ErrorDescriptor",
    "ExecutionResult",
    "MessageKind",
    "ResultMessage",
    "ResultTable",
    "capabilities_for",
]
