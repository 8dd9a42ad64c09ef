"""
Built-in Tools
--------------
Utility tools that ship with the bridge. They need no mail-server
connection and are used by the CLI to exercise the dispatch path.
"""

from typing import Any, Dict, Optional

from infra.config import BridgeConfig
from security.permissions import CallerContext, OperationKind
from tools.base import BaseTool, ToolUtils
from tools.execution import HandlerResult
from tools.registry import ToolCategory, ToolRegistry


class EchoTool(BaseTool):
    """Returns the message it was given."""

    name = "echo"
    title = "Echo"
    description = "Echo a message back to the caller"
    input_schema = {
        "type": "object",
        "properties": {
            "msg": {"type": "string", "description": "Message to echo"},
            "uppercase": {"type": "boolean", "description": "Upper-case the message"},
        },
        "required": ["msg"],
    }

    def __init__(self, **kwargs: Any):
        kwargs.setdefault("metadata", {"category": ToolCategory.UTILITY, "requires_auth": False})
        super().__init__(**kwargs)

    async def execute(self, input: Dict[str, Any], context: CallerContext) -> HandlerResult:
        msg = input["msg"].upper() if input.get("uppercase") else input["msg"]
        self.log_execution(input, context, success=True)
        return HandlerResult(success=True, result=ToolUtils.text_result(msg))


class StatusTool(BaseTool):
    """Reports catalog size and execution metrics of a registry."""

    name = "status"
    title = "Bridge status"
    description = "Show registered tools and execution metrics"
    operation = "status.system"
    operation_kind = OperationKind.READ
    input_schema = {
        "type": "object",
        "properties": {
            "tool": {"type": "string", "description": "Limit metrics to one tool"},
        },
    }

    def __init__(self, registry: ToolRegistry, **kwargs: Any):
        kwargs.setdefault(
            "metadata", {"category": ToolCategory.SYSTEM, "requires_auth": False, "cacheable": False}
        )
        super().__init__(**kwargs)
        self._registry = registry

    async def execute(self, input: Dict[str, Any], context: CallerContext) -> HandlerResult:
        tool = input.get("tool")
        if tool is not None and not self._registry.has(tool):
            return HandlerResult(success=False, error=f"Unknown tool: {tool}")

        capabilities = self._registry.get_capabilities()
        if tool is not None:
            metrics = {tool: self._registry.get_metrics(tool).to_dict()}
        else:
            metrics = {name: m.to_dict() for name, m in self._registry.get_all_metrics().items()}

        self.log_execution(input, context, success=True)
        return HandlerResult(
            success=True,
            result=ToolUtils.json_result({
                "tools": capabilities.count,
                "categories": capabilities.categories,
                "metrics": metrics,
                "summary": self._registry.monitor.get_summary(),
            }),
            metadata={"tools": capabilities.count},
        )


def create_default_registry(config: Optional[BridgeConfig] = None) -> ToolRegistry:
    """Registry populated with the built-in tools."""
    registry = ToolRegistry.from_config(config) if config is not None else ToolRegistry()
    registry.register_tool(EchoTool())
    registry.register_tool(StatusTool(registry))
    return registry
