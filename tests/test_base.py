"""
Base Tool Tests
---------------
BaseTool plumbing, FunctionTool, ToolBuilder and ToolUtils.
"""

import pytest
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).parent.parent))

from core.errors import ErrorCode, ToolValidationError
from security.permissions import OperationKind
from tools.base import REDACTED, BaseTool, FunctionTool, ToolBuilder, ToolUtils
from tools.execution import HandlerResult
from tools.registry import ToolCategory, ToolRegistry


class GreetTool(BaseTool):
    name = "greet"
    description = "Greet someone"
    input_schema = {
        "type": "object",
        "properties": {"who": {"type": "string", "description": "Name to greet"}},
        "required": ["who"],
    }

    async def execute(self, input, context):
        return HandlerResult(success=True, result=self.create_success_result(f"hello {input['who']}"))


class TestBaseTool:
    def test_cannot_instantiate_abstract(self):
        with pytest.raises(TypeError):
            BaseTool()

    def test_definition(self):
        definition = GreetTool().definition()

        assert definition.name == "greet"
        assert definition.input_schema["required"] == ["who"]

    def test_definition_schema_is_a_copy(self):
        class PingTool(BaseTool):
            name = "ping"

            async def execute(self, input, context):
                return HandlerResult(success=True)

        definition = PingTool().definition()
        definition.input_schema["properties"]["injected"] = {"type": "string"}

        assert BaseTool.input_schema["properties"] == {}
        assert "injected" not in PingTool().definition().input_schema["properties"]

    def test_metadata_merge(self):
        tool = GreetTool(metadata={"category": "domain", "version": "2.0.0"})
        tool.set_metadata({"requires_auth": False})

        metadata = tool.get_metadata()
        assert metadata.category == ToolCategory.DOMAIN
        assert metadata.version == "2.0.0"
        assert metadata.requires_auth is False

    def test_validation_helpers(self):
        tool = GreetTool()

        assert tool.validate_schema().valid
        assert tool.validate_input({"who": "bob"}).valid
        assert not tool.validate_input({}).valid

    def test_validate_permissions(self, make_context):
        tool = GreetTool()

        assert tool.validate_permissions(make_context(permissions=["a", "b"]), ["a", "b"])
        assert not tool.validate_permissions(make_context(permissions=["a"]), ["a", "b"])
        assert tool.validate_permissions(make_context(permissions=["admin"]), ["a", "b"])
        assert not tool.validate_permissions({"permissions": ["a"]}, ["a"])

    def test_results(self):
        tool = GreetTool()

        assert tool.create_success_result("hi") == {"content": [{"type": "text", "text": "hi"}]}
        assert '"a": 1' in tool.create_success_result({"a": 1})["content"][0]["text"]
        assert tool.create_error_result("nope")["isError"] is True

    def test_handle_error(self, ctx):
        result = GreetTool().handle_error(RuntimeError("boom"), ctx)

        assert not result.success
        assert result.error.code == ErrorCode.TOOL_EXECUTION_ERROR
        assert result.error.details == "RuntimeError"

    def test_sanitize_for_logging(self):
        cleaned = BaseTool.sanitize_for_logging({"user": "<b>bob</b>", "password": "hunter2", "token": "t"})

        assert cleaned == {"user": "bob", "password": REDACTED, "token": REDACTED}

    def test_repr(self):
        assert repr(GreetTool()) == "GreetTool(greet)"


class TestFunctionTool:
    @pytest.mark.asyncio
    async def test_sync_handler(self, ctx):
        tool = FunctionTool(
            "add", "Add numbers", {"type": "object", "properties": {}},
            lambda input, context: HandlerResult(success=True, result=input["a"] + input["b"]),
        )

        result = await tool.execute({"a": 1, "b": 2}, ctx)

        assert result.result == 3

    @pytest.mark.asyncio
    async def test_async_handler(self, ctx):
        async def handler(input, context):
            return HandlerResult(success=True, result=context.user_id)

        tool = FunctionTool("whoami", "Caller id", {"type": "object", "properties": {}}, handler)

        assert (await tool.execute({}, ctx)).result == "alice"


class TestToolBuilder:
    def test_build_requires_handler(self):
        with pytest.raises(ValueError, match="Handler is required"):
            ToolBuilder().with_name("x").build()

    def test_build(self):
        tool = (ToolBuilder()
                .with_name("list_domains")
                .with_title("List domains")
                .with_description("List mail domains")
                .with_operation("list.domains", OperationKind.READ)
                .with_metadata(category="domain", rate_limited=True)
                .with_handler(lambda input, context: HandlerResult(success=True, result=[]))
                .build())

        definition = tool.definition()
        assert definition.title == "List domains"
        assert definition.operation == "list.domains"
        assert definition.operation_kind == OperationKind.READ
        assert tool.get_metadata().category == ToolCategory.DOMAIN
        assert tool.get_metadata().rate_limited


class TestRegisterTool:
    @pytest.mark.asyncio
    async def test_register_and_execute(self, registry, ctx):
        registry.register_tool(GreetTool())

        result = await registry.execute("greet", {"who": "bob"}, ctx)

        assert result.success
        assert result.result["content"][0]["text"] == "hello bob"

    def test_failed_handler_binding_rolls_back(self, registry):
        tool = GreetTool()
        tool.metadata = {"colour": "red"}

        with pytest.raises(ToolValidationError):
            registry.register_tool(tool)

        assert not registry.has("greet")

    def test_metadata_applied(self):
        registry = ToolRegistry()
        registry.register_tool(GreetTool(metadata={"category": "alias", "rate_limited": True}))

        assert registry.get_metadata("greet").category == ToolCategory.ALIAS
        assert "greet" in registry.rate_limiter


class TestToolUtils:
    def test_text_and_json(self):
        assert ToolUtils.text_result("x")["content"][0] == {"type": "text", "text": "x"}
        assert ToolUtils.json_result([1, 2])["content"][0]["type"] == "text"

    def test_error_result(self):
        assert ToolUtils.error_result("bad") == {
            "content": [{"type": "text", "text": "bad"}],
            "isError": True,
        }

    def test_required_fields(self):
        result = ToolUtils.validate_required_fields({"a": 1, "b": None}, ["a", "b", "c"])

        assert not result.valid
        assert [e.field for e in result.errors] == ["b", "c"]

    def test_permission_helpers(self, make_context):
        ctx = make_context(permissions=["read", "write"])

        assert ToolUtils.has_permission(ctx, "read")
        assert ToolUtils.has_any_permission(ctx, ["delete", "write"])
        assert not ToolUtils.has_all_permissions(ctx, ["read", "delete"])
        assert ToolUtils.has_all_permissions(make_context(permissions=["admin"]), ["read", "delete"])
