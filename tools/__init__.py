# Tools module - Tool registry and execution core
# Each tool: name, input schema, metadata, handler
# The registry is the only dispatch path: limit, authorize, validate, cache

from .registry import (
    ToolRegistry, ToolDefinition, ToolMetadata, ToolCategory, ToolCapabilities
)
from .execution import Execution, ExecutionResult, ExecutionStatus, HandlerResult
from .validation import ValidationResult, ValidationIssue, validate_input, validate_schema
from .base import BaseTool, FunctionTool, ToolBuilder, ToolUtils

__all__ = [
    "ToolRegistry",
    "ToolDefinition",
    "ToolMetadata",
    "ToolCategory",
    "ToolCapabilities",
    "Execution",
    "ExecutionResult",
    "ExecutionStatus",
    "HandlerResult",
    "ValidationResult",
    "ValidationIssue",
    "validate_input",
    "validate_schema",
    "BaseTool",
    "FunctionTool",
    "ToolBuilder",
    "ToolUtils",
]
