"""
Base Tools
----------
Plumbing shared by concrete tool implementations.

A BaseTool knows its own definition, metadata and how to turn
outcomes into protocol content blocks. Register one with
ToolRegistry.register_tool().
"""

from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Union
import copy
import inspect
import json
import logging

from core.errors import ErrorCode, ToolError
from security.permissions import CallerContext, OperationKind, has_admin_override
from tools.execution import HandlerResult
from tools.registry import ToolDefinition, ToolMetadata
from tools.validation import (
    ValidationIssue,
    ValidationResult,
    sanitize_tool_input,
    validate_input,
    validate_schema,
)


SENSITIVE_FIELDS = ("password", "token", "key", "secret", "auth")
REDACTED = "[REDACTED]"

ToolHandler = Callable[[Dict[str, Any], CallerContext], Union[HandlerResult, Awaitable[HandlerResult]]]


class BaseTool(ABC):
    """
    Abstract base class for tool implementations.

    Subclasses set name, description and input_schema and implement
    execute().
    """

    name: str = ""
    description: str = ""
    input_schema: Dict[str, Any] = {"type": "object", "properties": {}}
    title: Optional[str] = None
    operation: Optional[str] = None
    operation_kind: Optional[OperationKind] = None

    def __init__(
        self,
        metadata: Union[ToolMetadata, Mapping[str, Any], None] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.metadata = ToolMetadata().merged(metadata)
        self._logger = logger or logging.getLogger(f"bridge.tools.{self.name or 'tool'}")

    @abstractmethod
    async def execute(self, input: Dict[str, Any], context: CallerContext) -> HandlerResult:
        """Run the tool."""

    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name=self.name,
            description=self.description,
            input_schema=copy.deepcopy(self.input_schema),
            title=self.title,
            operation=self.operation,
            operation_kind=self.operation_kind,
        )

    def get_metadata(self) -> ToolMetadata:
        return self.metadata

    def set_metadata(self, changes: Union[ToolMetadata, Mapping[str, Any]]) -> None:
        self.metadata = self.metadata.merged(changes)

    def validate_input(self, input: Any) -> ValidationResult:
        return validate_input(input, self.input_schema)

    def validate_schema(self) -> ValidationResult:
        return validate_schema(self.input_schema)

    def validate_permissions(self, context: Any, required_permissions: List[str]) -> bool:
        """Every required permission must be held, unless the caller is admin."""
        if not isinstance(context, CallerContext):
            return False
        if has_admin_override(context.permissions):
            return True
        return all(p in context.permissions for p in required_permissions)

    def create_success_result(self, data: Any) -> Dict[str, Any]:
        return ToolUtils.json_result(data) if not isinstance(data, str) else ToolUtils.text_result(data)

    def create_error_result(self, error: Union[ToolError, Mapping[str, Any], str]) -> Dict[str, Any]:
        return ToolUtils.error_result(ToolError.from_value(error).message)

    def handle_error(self, error: BaseException, context: CallerContext) -> HandlerResult:
        """Log a fault raised inside execute() and turn it into a failed result."""
        self._logger.error(
            f"Tool execution error: {error}",
            exc_info=error,
            extra={"tool_name": self.name, "request_id": context.request_id},
        )
        return HandlerResult(
            success=False,
            error=ToolError(
                code=ErrorCode.TOOL_EXECUTION_ERROR,
                message=str(error),
                details=type(error).__name__,
            ),
        )

    def log_execution(self, input: Dict[str, Any], context: CallerContext, success: bool) -> None:
        self._logger.info(
            f"Tool executed: {self.name} success={success} "
            f"user={context.user_id or '-'} input={self.sanitize_for_logging(input)}",
            extra={"tool_name": self.name, "success": success},
        )

    @staticmethod
    def sanitize_for_logging(input: Any) -> Any:
        """Strip markup and redact sensitive top-level fields."""
        cleaned = sanitize_tool_input(input)
        if not isinstance(cleaned, dict):
            return cleaned
        return {k: (REDACTED if k in SENSITIVE_FIELDS else v) for k, v in cleaned.items()}

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name})"


class FunctionTool(BaseTool):
    """A tool backed by a plain (sync or async) function."""

    def __init__(
        self,
        name: str,
        description: str,
        input_schema: Dict[str, Any],
        handler: ToolHandler,
        metadata: Union[ToolMetadata, Mapping[str, Any], None] = None,
        logger: Optional[logging.Logger] = None,
        title: Optional[str] = None,
        operation: Optional[str] = None,
        operation_kind: Optional[OperationKind] = None,
    ):
        self.name = name
        self.description = description
        self.input_schema = input_schema
        self.title = title
        self.operation = operation
        self.operation_kind = operation_kind
        self._handler = handler
        super().__init__(metadata, logger)

    async def execute(self, input: Dict[str, Any], context: CallerContext) -> HandlerResult:
        outcome = self._handler(input, context)
        if inspect.isawaitable(outcome):
            outcome = await outcome
        return outcome


class ToolBuilder:
    """
    Fluent construction of FunctionTools.

    Usage:
        tool = (ToolBuilder()
                .with_name("echo")
                .with_description("Echo a message")
                .with_input_schema(schema)
                .with_handler(echo)
                .build())
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self._logger = logger
        self._name = ""
        self._description = ""
        self._input_schema: Dict[str, Any] = {"type": "object", "properties": {}}
        self._handler: Optional[ToolHandler] = None
        self._metadata: Dict[str, Any] = {}
        self._title: Optional[str] = None
        self._operation: Optional[str] = None
        self._operation_kind: Optional[OperationKind] = None

    def with_name(self, name: str) -> "ToolBuilder":
        self._name = name
        return self

    def with_description(self, description: str) -> "ToolBuilder":
        self._description = description
        return self

    def with_title(self, title: str) -> "ToolBuilder":
        self._title = title
        return self

    def with_input_schema(self, schema: Dict[str, Any]) -> "ToolBuilder":
        self._input_schema = schema
        return self

    def with_handler(self, handler: ToolHandler) -> "ToolBuilder":
        self._handler = handler
        return self

    def with_operation(self, operation: str, kind: Optional[OperationKind] = None) -> "ToolBuilder":
        self._operation = operation
        self._operation_kind = kind
        return self

    def with_metadata(self, **metadata: Any) -> "ToolBuilder":
        self._metadata.update(metadata)
        return self

    def build(self) -> FunctionTool:
        if self._handler is None:
            raise ValueError("Handler is required to build a tool")

        return FunctionTool(
            self._name,
            self._description,
            self._input_schema,
            self._handler,
            metadata=self._metadata,
            logger=self._logger,
            title=self._title,
            operation=self._operation,
            operation_kind=self._operation_kind,
        )


class ToolUtils:
    """Helpers for building protocol content and checking inputs."""

    @staticmethod
    def text_result(text: str) -> Dict[str, Any]:
        return {"content": [{"type": "text", "text": text}]}

    @staticmethod
    def json_result(data: Any) -> Dict[str, Any]:
        return {"content": [{"type": "text", "text": json.dumps(data, indent=2, default=str)}]}

    @staticmethod
    def error_result(message: str) -> Dict[str, Any]:
        return {"content": [{"type": "text", "text": message}], "isError": True}

    @staticmethod
    def validate_required_fields(input: Mapping[str, Any], required_fields: List[str]) -> ValidationResult:
        errors = [
            ValidationIssue(name, f"Required field '{name}' is missing", "MISSING_REQUIRED_FIELD")
            for name in required_fields
            if input.get(name) is None
        ]
        return ValidationResult.from_issues(errors)

    @staticmethod
    def has_permission(context: CallerContext, permission: str) -> bool:
        return permission in context.permissions or has_admin_override(context.permissions)

    @staticmethod
    def has_any_permission(context: CallerContext, permissions: List[str]) -> bool:
        return any(ToolUtils.has_permission(context, p) for p in permissions)

    @staticmethod
    def has_all_permissions(context: CallerContext, permissions: List[str]) -> bool:
        return all(ToolUtils.has_permission(context, p) for p in permissions)
