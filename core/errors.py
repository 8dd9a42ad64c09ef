"""
Error Handling Module
---------------------
Typed tool errors with stable protocol codes and retry classification.

Every failure crossing the registry boundary is normalized into a
ToolError triple {code, message, details}. Raw exceptions never reach
the caller.
"""

from dataclasses import dataclass
from enum import Enum, IntEnum, auto
from typing import Any, Dict, List, Optional
import asyncio
import logging
import traceback


class ErrorCode(IntEnum):
    """Numeric codes reported at the protocol level."""
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603
    TOOL_NOT_FOUND = -32001
    TOOL_EXECUTION_ERROR = -32002
    AUTHORIZATION_ERROR = -32006
    RATE_LIMIT_ERROR = -32007
    TIMEOUT_ERROR = -32008


class ErrorCategory(Enum):
    """Categories of errors for handling decisions."""
    VALIDATION_ERROR = auto()   # Bad input shape, caller must fix arguments
    PERMISSION_ERROR = auto()   # Caller lacks capability
    NOT_FOUND = auto()          # Unknown tool name
    RATE_LIMIT_ERROR = auto()   # Transient, retry after reset
    TIMEOUT_ERROR = auto()      # External deadline exceeded
    EXECUTION_ERROR = auto()    # Handler fault
    CONFIGURATION_ERROR = auto()


# Error tag -> protocol code
_CODE_BY_TAG: Dict[str, ErrorCode] = {
    "VALIDATION_ERROR": ErrorCode.INVALID_PARAMS,
    "PERMISSION_ERROR": ErrorCode.AUTHORIZATION_ERROR,
    "EXECUTION_ERROR": ErrorCode.TOOL_EXECUTION_ERROR,
    "NOT_FOUND": ErrorCode.TOOL_NOT_FOUND,
    "RATE_LIMIT_ERROR": ErrorCode.RATE_LIMIT_ERROR,
    "TIMEOUT_ERROR": ErrorCode.TIMEOUT_ERROR,
}


@dataclass
class ToolError:
    """
    Structured error handed back to callers.

    This is the only error shape that crosses the registry boundary.
    """
    code: int
    message: str
    details: Optional[Any] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"code": int(self.code), "message": self.message}
        if self.details is not None:
            data["details"] = self.details
        return data

    @classmethod
    def from_value(cls, value: Any) -> "ToolError":
        """Coerce a handler-supplied error (ToolError, mapping or text)."""
        if isinstance(value, ToolError):
            return value
        if isinstance(value, dict):
            return cls(
                code=int(value.get("code", ErrorCode.TOOL_EXECUTION_ERROR)),
                message=str(value.get("message", "Tool reported an error")),
                details=value.get("details"),
            )
        return cls(code=ErrorCode.TOOL_EXECUTION_ERROR, message=str(value))


class ToolErrorBase(Exception):
    """Base class for all tool-related errors."""

    category: ErrorCategory = ErrorCategory.EXECUTION_ERROR

    def __init__(
        self,
        message: str,
        tool_name: str,
        error_code: str,
        details: Optional[Any] = None
    ):
        super().__init__(message)
        self.message = message
        self.tool_name = tool_name
        self.error_code = error_code
        self.details = details

    @property
    def code(self) -> ErrorCode:
        """Numeric protocol code for this error."""
        return _CODE_BY_TAG.get(self.error_code, ErrorCode.INTERNAL_ERROR)

    def to_tool_error(self) -> ToolError:
        """Convert to the structured {code, message, details} triple."""
        return ToolError(code=self.code, message=self.message, details=self.details)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.tool_name}: {self.message})"


class ToolValidationError(ToolErrorBase):
    """Input (or registration) failed validation."""

    category = ErrorCategory.VALIDATION_ERROR

    def __init__(self, tool_name: str, validation_errors: List[Any]):
        self.validation_errors = list(validation_errors)
        messages = ", ".join(_issue_message(e) for e in self.validation_errors)
        super().__init__(
            f"Input validation failed: {messages}",
            tool_name,
            "VALIDATION_ERROR",
            [_issue_dict(e) for e in self.validation_errors],
        )

    def has_field_error(self, field_name: str) -> bool:
        """Check if error is for a specific field."""
        return any(_issue_dict(e).get("field") == field_name for e in self.validation_errors)

    def get_field_errors(self, field_name: str) -> List[Any]:
        """Get errors for a specific field."""
        return [e for e in self.validation_errors if _issue_dict(e).get("field") == field_name]


class ToolPermissionError(ToolErrorBase):
    """Caller lacks the capability the tool requires."""

    category = ErrorCategory.PERMISSION_ERROR

    def __init__(self, tool_name: str, required_permissions: List[str], reason: Optional[str] = None):
        self.required_permissions = list(required_permissions)
        self.reason = reason
        details: Dict[str, Any] = {"requiredPermissions": self.required_permissions}
        if reason:
            details["reason"] = reason
        super().__init__(
            f"Insufficient permissions. Required: {', '.join(self.required_permissions)}",
            tool_name,
            "PERMISSION_ERROR",
            details,
        )

    def has_any_permission(self, permissions: List[str]) -> bool:
        """Check whether a permission list would have satisfied this error."""
        from security.permissions import has_admin_override

        if has_admin_override(permissions):
            return True
        return any(p in permissions for p in self.required_permissions)


class ToolNotFoundError(ToolErrorBase):
    category = ErrorCategory.NOT_FOUND

    def __init__(self, tool_name: str):
        super().__init__(f"Tool '{tool_name}' not found", tool_name, "NOT_FOUND")


class ToolRateLimitError(ToolErrorBase):
    """Per-tool request budget exhausted for the current window."""

    category = ErrorCategory.RATE_LIMIT_ERROR

    def __init__(self, tool_name: str, retry_after: Optional[float] = None):
        self.retry_after = retry_after
        super().__init__(
            f"Rate limit exceeded for tool '{tool_name}'",
            tool_name,
            "RATE_LIMIT_ERROR",
            {"retryAfter": retry_after},
        )


class ToolTimeoutError(ToolErrorBase):
    category = ErrorCategory.TIMEOUT_ERROR

    def __init__(self, tool_name: str, timeout_seconds: Optional[float] = None):
        self.timeout_seconds = timeout_seconds
        if timeout_seconds is not None:
            message = f"Tool '{tool_name}' execution timed out after {timeout_seconds}s"
        else:
            message = f"Tool '{tool_name}' execution timed out"
        super().__init__(message, tool_name, "TIMEOUT_ERROR", {"timeoutSeconds": timeout_seconds})


class ToolExecutionError(ToolErrorBase):
    """Wraps an unexpected fault raised while executing a tool."""

    category = ErrorCategory.EXECUTION_ERROR

    def __init__(self, tool_name: str, original_error: BaseException):
        self.original_error = original_error
        stack = "".join(
            traceback.format_exception(type(original_error), original_error, original_error.__traceback__)
        )
        super().__init__(
            f"Tool execution failed: {original_error}",
            tool_name,
            "EXECUTION_ERROR",
            {"originalError": str(original_error), "stack": stack},
        )


class ToolConfigurationError(ToolErrorBase):
    category = ErrorCategory.CONFIGURATION_ERROR

    def __init__(self, tool_name: str, config_error: str):
        self.config_error = config_error
        super().__init__(
            f"Configuration error for tool '{tool_name}': {config_error}",
            tool_name,
            "CONFIGURATION_ERROR",
            {"configError": config_error},
        )


def to_tool_error_base(error: BaseException, tool_name: str) -> ToolErrorBase:
    """Normalize any exception into a ToolErrorBase."""
    if isinstance(error, ToolErrorBase):
        return error
    if isinstance(error, (TimeoutError, asyncio.TimeoutError)):
        return ToolTimeoutError(tool_name)
    return ToolExecutionError(tool_name, error)


class RetryPolicy:
    """
    Retry classification for normalized tool errors.

    Validation and permission failures are never retried.
    """

    RETRYABLE_MARKERS = ("network", "timeout", "connection", "temporarily")

    @classmethod
    def should_retry(cls, error: BaseException) -> bool:
        """Check if the failed call may be retried unchanged."""
        if isinstance(error, (ToolRateLimitError, ToolTimeoutError)):
            return True

        if isinstance(error, ToolExecutionError):
            original = error.original_error
            if isinstance(original, (ConnectionError, TimeoutError, asyncio.TimeoutError)):
                return True
            if type(original).__name__ == "NetworkError":
                return True
            text = str(original).lower()
            return any(marker in text for marker in cls.RETRYABLE_MARKERS)

        return False

    @classmethod
    def get_delay(cls, error: BaseException) -> float:
        """Get delay before retry in seconds."""
        if isinstance(error, ToolRateLimitError):
            return error.retry_after if error.retry_after else 60.0
        if isinstance(error, ToolTimeoutError):
            return 1.0
        return 5.0


class ErrorHandler:
    """Logs normalized errors with a severity matching their category."""

    LEVELS: Dict[ErrorCategory, int] = {
        ErrorCategory.VALIDATION_ERROR: logging.INFO,
        ErrorCategory.NOT_FOUND: logging.INFO,
        ErrorCategory.PERMISSION_ERROR: logging.WARNING,
        ErrorCategory.RATE_LIMIT_ERROR: logging.WARNING,
        ErrorCategory.TIMEOUT_ERROR: logging.ERROR,
        ErrorCategory.EXECUTION_ERROR: logging.ERROR,
        ErrorCategory.CONFIGURATION_ERROR: logging.CRITICAL,
    }

    def __init__(self, logger: Optional[logging.Logger] = None):
        self._logger = logger or logging.getLogger("bridge.errors")

    def handle(self, error: ToolErrorBase) -> ToolError:
        """Log an error and return its structured form."""
        level = self.LEVELS.get(error.category, logging.ERROR)
        self._logger.log(
            level,
            f"{error.category.name}: {error.message}",
            extra={"tool_name": error.tool_name},
        )
        if isinstance(error, ToolExecutionError) and level >= logging.ERROR:
            self._logger.debug(f"Stack trace:\n{error.details.get('stack', '')}")
        return error.to_tool_error()


def _issue_dict(issue: Any) -> Dict[str, Any]:
    if isinstance(issue, dict):
        return issue
    to_dict = getattr(issue, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    return {"field": "", "message": str(issue), "code": "VALIDATION_ERROR"}


def _issue_message(issue: Any) -> str:
    return str(_issue_dict(issue).get("message", issue))
