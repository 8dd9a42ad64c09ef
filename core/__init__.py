# Core module - Error taxonomy shared by every layer
# Every failure leaving the registry is a {code, message, details} triple

from .errors import (
    ErrorCode, ErrorCategory, ErrorHandler, RetryPolicy,
    ToolError, ToolErrorBase,
    ToolValidationError, ToolPermissionError, ToolNotFoundError,
    ToolRateLimitError, ToolTimeoutError, ToolExecutionError,
    ToolConfigurationError, to_tool_error_base,
)

__all__ = [
    "ErrorCode", "ErrorCategory", "ErrorHandler", "RetryPolicy",
    "ToolError", "ToolErrorBase",
    "ToolValidationError", "ToolPermissionError", "ToolNotFoundError",
    "ToolRateLimitError", "ToolTimeoutError", "ToolExecutionError",
    "ToolConfigurationError", "to_tool_error_base",
]
