"""
Tool Registry
-------------
Catalog of tool definitions and the single dispatch path for calls.

Every call goes through:
    resolve -> context -> rate limit -> authorize -> validate
    -> cache -> handler -> cache store -> monitor + audit

execute() never raises: every failure comes back as an ExecutionResult
carrying a {code, message, details} error.
"""

from dataclasses import dataclass, field, fields, replace
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Union
import asyncio
import inspect
import logging

import yaml
from pydantic import ValidationError

from core.errors import (
    ErrorHandler,
    ToolConfigurationError,
    ToolError,
    ToolExecutionError,
    ToolNotFoundError,
    ToolPermissionError,
    ToolRateLimitError,
    ToolValidationError,
    to_tool_error_base,
)
from infra.audit import Actor, AuditLog, EventType, record_audit_event
from infra.config import BridgeConfig
from infra.logging import RequestContext
from security.permissions import (
    CallerContext,
    OperationKind,
    PermissionEvaluator,
    has_admin_override,
)
from tools.cache import ResultCache, make_cache_key
from tools.execution import Execution, ExecutionResult, ExecutionStatus, HandlerResult
from tools.monitoring import ExecutionMonitor, ToolMetrics
from tools.rate_limiter import FixedWindowRateLimiter, RateLimitConfig, RateLimitWindow
from tools.validation import ValidationIssue, validate_input, validate_schema


class ToolCategory(str, Enum):
    DOMAIN = "domain"
    MAILBOX = "mailbox"
    ALIAS = "alias"
    SYSTEM = "system"
    SPAM = "spam"
    LOGS = "logs"
    BACKUP = "backup"
    UTILITY = "utility"


@dataclass(frozen=True)
class ToolDefinition:
    """
    Immutable description of a tool.

    operation ("action.resource") opts the tool into policy evaluation;
    operation_kind pins its classification instead of inferring it.
    """
    name: str
    description: str
    input_schema: Dict[str, Any] = field(
        default_factory=lambda: {"type": "object", "properties": {}}
    )
    title: Optional[str] = None
    operation: Optional[str] = None
    operation_kind: Optional[OperationKind] = None

    def to_schema(self) -> Dict[str, Any]:
        """Protocol-facing tool listing entry."""
        schema: Dict[str, Any] = {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_schema,
        }
        if self.title:
            schema["title"] = self.title
        return schema


@dataclass
class ToolMetadata:
    """Operational settings for a registered tool."""
    category: ToolCategory = ToolCategory.UTILITY
    version: str = "1.0.0"
    requires_auth: bool = True
    rate_limited: bool = False
    author: Optional[str] = None
    description: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    timeout: Optional[float] = None
    retries: Optional[int] = None
    cacheable: bool = True

    def merged(self, changes: Union["ToolMetadata", Mapping[str, Any], None]) -> "ToolMetadata":
        """Return a copy with the given fields replaced."""
        if changes is None:
            return replace(self)
        if isinstance(changes, ToolMetadata):
            return replace(changes)

        known = {f.name for f in fields(ToolMetadata)}
        unknown = set(changes) - known
        if unknown:
            raise ValueError(f"Unknown metadata fields: {', '.join(sorted(unknown))}")

        values = dict(changes)
        if "category" in values:
            values["category"] = ToolCategory(values["category"])
        return replace(self, **values)


@dataclass
class ToolCapabilities:
    tools: List[ToolDefinition]
    count: int
    categories: List[str]
    permissions: List[str]


Handler = Callable[[Dict[str, Any], CallerContext], Union[HandlerResult, Mapping[str, Any], Awaitable[Any]]]


def _refusal(tool_name: str, code: str, message: str, field_name: str = "") -> ToolValidationError:
    return ToolValidationError(tool_name, [ValidationIssue(field_name, message, code)])


class ToolRegistry:
    """
    Registry for all available tools.

    Owns its catalog, cache, limiter and metrics. Nothing is global:
    build one per process (or per test) and pass it around.
    """

    def __init__(
        self,
        cache: Optional[ResultCache] = None,
        rate_limiter: Optional[FixedWindowRateLimiter] = None,
        monitor: Optional[ExecutionMonitor] = None,
        evaluator: Optional[PermissionEvaluator] = None,
        audit_log: Optional[AuditLog] = None,
        default_rate_limit: Optional[RateLimitConfig] = None,
        cache_enabled: bool = True,
    ):
        self._tools: Dict[str, ToolDefinition] = {}
        self._handlers: Dict[str, Handler] = {}
        self._metadata: Dict[str, ToolMetadata] = {}

        # ResultCache defines __len__, so an empty one is falsy
        self._cache = cache if cache is not None else ResultCache()
        self._rate_limiter = rate_limiter if rate_limiter is not None else FixedWindowRateLimiter()
        self._monitor = monitor if monitor is not None else ExecutionMonitor()
        self._audit_log = audit_log
        self._evaluator = evaluator if evaluator is not None else PermissionEvaluator(audit_log)
        self._default_rate_limit = default_rate_limit if default_rate_limit is not None else RateLimitConfig()
        self._cache_enabled = cache_enabled

        self._error_handler = ErrorHandler(logging.getLogger("bridge.tools.errors"))
        self._logger = logging.getLogger("bridge.tools.registry")

    @classmethod
    def from_config(cls, config: BridgeConfig) -> "ToolRegistry":
        """Build a registry wired from runtime settings."""
        audit_log = AuditLog(config.audit_db) if config.audit_enabled else None
        return cls(
            cache=ResultCache(default_ttl=config.cache_ttl, max_entries=config.cache_max_entries),
            audit_log=audit_log,
            default_rate_limit=RateLimitConfig(
                max_requests=config.rate_limit_max_requests,
                window_seconds=config.rate_limit_window,
            ),
            cache_enabled=config.cache_enabled,
        )

    @property
    def cache(self) -> ResultCache:
        return self._cache

    @property
    def rate_limiter(self) -> FixedWindowRateLimiter:
        return self._rate_limiter

    @property
    def monitor(self) -> ExecutionMonitor:
        return self._monitor

    # =========================================================================
    # Catalog
    # =========================================================================

    def register(self, definition: ToolDefinition) -> None:
        """Add a tool definition to the catalog."""
        if not isinstance(definition, ToolDefinition) or not isinstance(definition.name, str) \
                or not definition.name:
            raise _refusal(
                getattr(definition, "name", "") or "<unknown>",
                "INVALID_TOOL",
                "Tool must be a ToolDefinition with a non-empty name",
            )

        if definition.name in self._tools:
            raise _refusal(
                definition.name,
                "TOOL_ALREADY_REGISTERED",
                f"Tool '{definition.name}' is already registered",
                "name",
            )

        schema_check = validate_schema(definition.input_schema)
        if not schema_check.valid:
            raise ToolValidationError(definition.name, schema_check.errors)
        for warning in schema_check.warnings:
            self._logger.debug(f"{definition.name}: {warning.field}: {warning.message}")

        self._tools[definition.name] = definition
        self._metadata[definition.name] = ToolMetadata()
        self._logger.info(f"Registered tool: {definition.name}")
        self._audit(EventType.TOOL_REGISTERED, "register", definition.name)

    def register_handler(
        self,
        name: str,
        handler: Handler,
        metadata: Union[ToolMetadata, Mapping[str, Any], None] = None,
    ) -> None:
        """Bind the handler (and metadata) for a registered tool."""
        if name not in self._tools:
            raise _refusal(name, "TOOL_NOT_FOUND", f"Tool '{name}' is not registered", "name")
        if not callable(handler):
            raise _refusal(name, "INVALID_HANDLER", "Handler must be callable", "handler")
        if name in self._handlers:
            raise _refusal(
                name, "HANDLER_ALREADY_REGISTERED", f"Tool '{name}' already has a handler", "handler"
            )

        try:
            merged = ToolMetadata().merged(metadata)
        except ValueError as e:
            raise _refusal(name, "INVALID_METADATA", str(e), "metadata") from e

        self._handlers[name] = handler
        self._metadata[name] = merged
        self._apply_default_rate_limit(name, merged)
        self._logger.debug(f"Handler bound: {name} ({merged.category.value})")

    def register_tool(self, tool: Any) -> ToolDefinition:
        """Register a BaseTool instance: definition, handler and metadata."""
        definition = tool.definition()
        self.register(definition)
        try:
            self.register_handler(definition.name, tool.execute, tool.get_metadata())
        except ToolValidationError:
            self._drop(definition.name)
            raise
        return definition

    def load_from_yaml(self, path: Union[str, Path]) -> int:
        """
        Register tool definitions from a YAML file.

        Handlers are bound separately. Returns number of tools loaded.
        """
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        count = 0
        for entry in data.get("tools", []):
            kind = entry.get("operation_kind")
            definition = ToolDefinition(
                name=entry["name"],
                description=entry.get("description", ""),
                input_schema=entry.get("input_schema") or {"type": "object", "properties": {}},
                title=entry.get("title"),
                operation=entry.get("operation"),
                operation_kind=OperationKind(kind) if kind else None,
            )
            self.register(definition)
            count += 1

        self._logger.info(f"Loaded {count} tool definitions from {path}")
        return count

    def unregister(self, name: str) -> bool:
        """Remove a tool with its handler, metadata, rate window and cached results."""
        if name not in self._tools:
            return False

        self._drop(name)
        self._cache.invalidate_tool(name)
        self._logger.info(f"Unregistered tool: {name}")
        self._audit(EventType.TOOL_UNREGISTERED, "unregister", name)
        return True

    def _drop(self, name: str) -> None:
        self._tools.pop(name, None)
        self._handlers.pop(name, None)
        self._metadata.pop(name, None)
        self._rate_limiter.remove(name)

    def get(self, name: str) -> Optional[ToolDefinition]:
        return self._tools.get(name)

    def get_handler(self, name: str) -> Optional[Handler]:
        return self._handlers.get(name)

    def get_metadata(self, name: str) -> Optional[ToolMetadata]:
        return self._metadata.get(name)

    def update_metadata(self, name: str, **changes: Any) -> ToolMetadata:
        """Replace metadata fields for a registered tool."""
        if name not in self._tools:
            raise ToolNotFoundError(name)

        try:
            updated = self._metadata[name].merged(changes)
        except ValueError as e:
            raise _refusal(name, "INVALID_METADATA", str(e), "metadata") from e

        self._metadata[name] = updated
        self._apply_default_rate_limit(name, updated)
        return updated

    def has(self, name: str) -> bool:
        return name in self._tools

    def list(self) -> List[ToolDefinition]:
        return list(self._tools.values())

    def list_by_category(self, category: Union[ToolCategory, str]) -> List[ToolDefinition]:
        category = ToolCategory(category)
        return [
            definition for name, definition in self._tools.items()
            if self._metadata[name].category == category
        ]

    def clear(self) -> None:
        """Drop every tool, rate window and cached result."""
        for name in list(self._tools):
            self._rate_limiter.remove(name)
        self._tools.clear()
        self._handlers.clear()
        self._metadata.clear()
        self._cache.clear()
        self._logger.info("Tool registry cleared")

    def get_tool_schemas(self) -> List[Dict[str, Any]]:
        return [definition.to_schema() for definition in self._tools.values()]

    def get_capabilities(self) -> ToolCapabilities:
        tools = self.list()
        categories: List[str] = []
        permissions: List[str] = []
        for definition in tools:
            metadata = self._metadata[definition.name]
            if metadata.category.value not in categories:
                categories.append(metadata.category.value)
            if metadata.requires_auth and "authenticated" not in permissions:
                permissions.append("authenticated")

        return ToolCapabilities(
            tools=tools,
            count=len(tools),
            categories=categories,
            permissions=permissions,
        )

    # =========================================================================
    # Limits, metrics, cache
    # =========================================================================

    def set_rate_limit(self, name: str, max_requests: int, window_seconds: float) -> RateLimitWindow:
        return self._rate_limiter.configure(name, max_requests, window_seconds)

    def _apply_default_rate_limit(self, name: str, metadata: ToolMetadata) -> None:
        if metadata.rate_limited and name not in self._rate_limiter:
            self._rate_limiter.configure(
                name,
                self._default_rate_limit.max_requests,
                self._default_rate_limit.window_seconds,
            )

    def get_metrics(self, name: str) -> ToolMetrics:
        return self._monitor.get_metrics(name)

    def get_all_metrics(self) -> Dict[str, ToolMetrics]:
        return self._monitor.get_all_metrics()

    def reset_metrics(self, name: Optional[str] = None) -> None:
        self._monitor.reset_metrics(name)

    def invalidate_cache(self, name: Optional[str] = None) -> int:
        """Drop cached results for one tool, or all of them."""
        if name is None:
            count = len(self._cache)
            self._cache.clear()
            return count
        return self._cache.invalidate_tool(name)

    # =========================================================================
    # Execution
    # =========================================================================

    async def execute(self, name: str, input: Any, context: Any) -> ExecutionResult:
        """
        Dispatch one tool call.

        Returns an ExecutionResult; never raises for tool or caller faults.
        """
        definition = self._tools.get(name)
        if definition is None:
            execution = Execution(tool_name=name, input=input)
            execution.fail(self._error_handler.handle(ToolNotFoundError(name)))
            return ExecutionResult(execution=execution, success=False, error=execution.error)

        ctx = _coerce_context(context)
        request_id = ctx.request_id if ctx is not None else None

        with RequestContext(request_id):
            execution = Execution(tool_name=name, input=input, context=ctx)
            execution.transition(ExecutionStatus.RUNNING)

            try:
                await self._run(definition, execution, input, ctx)
            except asyncio.CancelledError:
                execution.transition(ExecutionStatus.CANCELLED)
                self._record(execution)
                raise
            except Exception as e:
                error = to_tool_error_base(e, name)
                execution.fail(self._error_handler.handle(error))

            self._record(execution)

        return ExecutionResult(
            execution=execution,
            success=execution.status == ExecutionStatus.COMPLETED,
            result=execution.result,
            error=execution.error,
        )

    async def _run(
        self,
        definition: ToolDefinition,
        execution: Execution,
        input: Any,
        ctx: Optional[CallerContext],
    ) -> None:
        name = definition.name

        if ctx is None:
            raise ToolExecutionError(name, ValueError("Invalid tool context"))

        handler = self._handlers.get(name)
        if handler is None:
            raise ToolConfigurationError(name, "no handler registered")
        metadata = self._metadata[name]

        if not self._rate_limiter.allow(name):
            raise ToolRateLimitError(name, self._rate_limiter.retry_after(name))

        self._authorize(definition, metadata, ctx)

        validation = validate_input(input, definition.input_schema)
        if not validation.valid:
            raise ToolValidationError(name, validation.errors)

        cache_key = make_cache_key(name, input, ctx) if self._cache_enabled and metadata.cacheable else None
        if cache_key is not None:
            cached = self._cache.get(cache_key)
            if cached is not None:
                execution.complete(cached, cache_hit=True)
                return

        outcome = HandlerResult.coerce(await _call_handler(handler, input, ctx))

        if outcome.success:
            execution.metadata.update(outcome.metadata)
            execution.complete(outcome.result)
            if cache_key is not None and outcome.result is not None:
                self._cache.set(cache_key, outcome.result)
        else:
            error = ToolError.from_value(outcome.error or "Tool reported failure without an error")
            self._logger.info(f"{name} reported failure: {error.message}")
            execution.fail(error)

    def _authorize(self, definition: ToolDefinition, metadata: ToolMetadata, ctx: CallerContext) -> None:
        name = definition.name

        if metadata.requires_auth:
            required = ["execute", f"{name}:execute"]
            if not ctx.user_id:
                raise ToolPermissionError(name, required, reason="missing_user_id")
            if not (has_admin_override(ctx.permissions) or any(p in ctx.permissions for p in required)):
                raise ToolPermissionError(name, required, reason="insufficient_permissions")

        if definition.operation:
            decision = self._evaluator.evaluate(
                ctx.access_level,
                definition.operation,
                ctx.policies,
                kind=definition.operation_kind,
                request_id=ctx.request_id,
            )
            if not decision.granted:
                raise ToolPermissionError(name, [definition.operation], reason=decision.reason)

    def _record(self, execution: Execution) -> None:
        self._monitor.record_execution(execution)

        details: Dict[str, Any] = {
            "execution_id": execution.id,
            "status": execution.status.value,
            "duration_ms": execution.duration_ms,
            "cache_hit": execution.cache_hit,
        }
        if execution.error is not None:
            details["error_code"] = int(execution.error.code)

        request_id = execution.context.request_id if execution.context is not None else None
        record_audit_event(
            self._audit_log,
            EventType.TOOL_EXECUTE,
            Actor.REGISTRY,
            "execute",
            request_id,
            target=execution.tool_name,
            details=details,
        )
        self._logger.info(
            f"{execution.tool_name}: {execution.status.value} "
            f"({execution.duration_ms or 0.0:.1f}ms{', cached' if execution.cache_hit else ''})",
            extra={
                "tool_name": execution.tool_name,
                "execution_id": execution.id,
                "duration_ms": execution.duration_ms,
                "success": execution.status == ExecutionStatus.COMPLETED,
                "cache_hit": execution.cache_hit,
            },
        )

    def _audit(self, event_type: EventType, action: str, target: str) -> None:
        record_audit_event(self._audit_log, event_type, Actor.REGISTRY, action, None, target=target)

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: str) -> bool:
        return name in self._tools


def _coerce_context(context: Any) -> Optional[CallerContext]:
    if isinstance(context, CallerContext):
        return context
    try:
        return CallerContext.model_validate(context)
    except ValidationError:
        return None


async def _call_handler(handler: Handler, input: Any, ctx: CallerContext) -> Any:
    outcome = handler(input, ctx)
    if inspect.isawaitable(outcome):
        outcome = await outcome
    return outcome
