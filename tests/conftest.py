"""
Bridge Test Configuration
-------------------------
Shared fixtures for all tests.

Every test gets a fresh registry; nothing is shared between tests.
"""

import sys
from pathlib import Path
import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from infra.audit import AuditLog
from security.permissions import CallerContext
from tools.cache import ResultCache
from tools.rate_limiter import FixedWindowRateLimiter
from tools.registry import ToolDefinition, ToolRegistry


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


ECHO_SCHEMA = {
    "type": "object",
    "properties": {
        "msg": {"type": "string", "description": "Message to echo"},
    },
    "required": ["msg"],
}


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def audit_log(tmp_path):
    """Audit log in a temporary database with a fixed key."""
    return AuditLog(str(tmp_path / "audit.db"), key=b"test-key-do-not-use")


@pytest.fixture
def registry(clock):
    """Registry whose cache and limiter share the fake clock."""
    return ToolRegistry(
        cache=ResultCache(clock=clock),
        rate_limiter=FixedWindowRateLimiter(clock=clock),
    )


@pytest.fixture
def make_context():
    """Factory for caller contexts with sensible defaults."""
    def _make(**overrides):
        values = {
            "request_id": "req-test",
            "user_id": "alice",
            "permissions": ["execute"],
        }
        values.update(overrides)
        return CallerContext(**values)
    return _make


@pytest.fixture
def ctx(make_context):
    return make_context()


@pytest.fixture
def echo_calls():
    """Records every call made to the echo handler."""
    return []


@pytest.fixture
def echo_registry(registry, echo_calls):
    """Registry with an 'echo' tool whose handler counts its calls."""
    async def echo(input, context):
        echo_calls.append(dict(input))
        return {"success": True, "result": {"echo": input["msg"]}}

    registry.register(ToolDefinition(
        name="echo",
        description="Echo a message",
        input_schema=ECHO_SCHEMA,
    ))
    registry.register_handler("echo", echo)
    return registry
