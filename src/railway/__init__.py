"""
Railway-Oriented Programming (ROP) toolkit.

Explicit, composable error handling for the reconciliation pipeline:

    from railway import Result, ErrorCode

    def require_header(lines: list[str]) -> Result[list[str]]:
        if not lines:
            return Result.failure(ErrorCode.SCHEMA_ERROR, "ACL table is empty")
        return Result.success(lines)
"""

from railway.assertions import ResultAssertions
from railway.execution import (
    ExecutionContext,
    LoggingExecutionContext,
    NoOpExecutionContext,
)
from railway.failure import ErrorCode, FailureDescription
from railway.result import Failure, Result, Success

__all__ = [
    "Result",
    "Success",
    "Failure",
    "ErrorCode",
    "FailureDescription",
    "ExecutionContext",
    "NoOpExecutionContext",
    "LoggingExecutionContext",
    "ResultAssertions",
]

__version__ = "1.0.0"
