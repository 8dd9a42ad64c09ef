"""
Execution Records
-----------------
One record per tool invocation, plus the handler result contract.

Status lifecycle:
    PENDING -> RUNNING -> COMPLETED | FAILED | CANCELLED
Any other transition raises ValueError.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Set
import secrets
import time

from core.errors import ToolError


class ExecutionStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


VALID_TRANSITIONS: Dict[ExecutionStatus, Set[ExecutionStatus]] = {
    ExecutionStatus.PENDING: {ExecutionStatus.RUNNING, ExecutionStatus.FAILED, ExecutionStatus.CANCELLED},
    ExecutionStatus.RUNNING: {ExecutionStatus.COMPLETED, ExecutionStatus.FAILED, ExecutionStatus.CANCELLED},
    ExecutionStatus.COMPLETED: set(),
    ExecutionStatus.FAILED: set(),
    ExecutionStatus.CANCELLED: set(),
}


def generate_execution_id() -> str:
    """exec_<epoch ms>_<random suffix>"""
    return f"exec_{int(time.time() * 1000)}_{secrets.token_hex(5)}"


@dataclass
class Execution:
    """
    Record of a single tool invocation.

    Written only by the registry; read by the monitor and the caller.
    """
    tool_name: str
    input: Any = None
    context: Any = None
    id: str = field(default_factory=generate_execution_id)
    start_time: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    end_time: Optional[datetime] = None
    duration_ms: Optional[float] = None
    status: ExecutionStatus = ExecutionStatus.PENDING
    result: Any = None
    error: Optional[ToolError] = None
    cache_hit: bool = False
    metadata: Dict[str, Any] = field(default_factory=dict)
    _started: float = field(default_factory=time.perf_counter, repr=False)

    def transition(self, to_status: ExecutionStatus) -> None:
        """Move to a new status, enforcing the lifecycle."""
        valid = VALID_TRANSITIONS.get(self.status, set())
        if to_status not in valid:
            raise ValueError(
                f"Invalid transition: {self.status.name} -> {to_status.name}. "
                f"Valid targets: {[s.name for s in valid]}"
            )
        self.status = to_status
        if to_status in (ExecutionStatus.COMPLETED, ExecutionStatus.FAILED, ExecutionStatus.CANCELLED):
            self.end_time = datetime.now(timezone.utc)
            self.duration_ms = (time.perf_counter() - self._started) * 1000

    def complete(self, result: Any, cache_hit: bool = False) -> None:
        self.result = result
        self.cache_hit = cache_hit
        self.transition(ExecutionStatus.COMPLETED)

    def fail(self, error: ToolError) -> None:
        self.error = error
        self.transition(ExecutionStatus.FAILED)

    @property
    def is_finished(self) -> bool:
        return not VALID_TRANSITIONS[self.status]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "tool_name": self.tool_name,
            "status": self.status.value,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "duration_ms": self.duration_ms,
            "cache_hit": self.cache_hit,
            "error": self.error.to_dict() if self.error else None,
        }


@dataclass
class HandlerResult:
    """What a handler returns; a mapping with the same keys is also accepted."""
    success: bool
    result: Any = None
    error: Optional[Any] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def coerce(cls, value: Any) -> "HandlerResult":
        if isinstance(value, HandlerResult):
            return value
        if isinstance(value, dict) and "success" in value:
            return cls(
                success=bool(value["success"]),
                result=value.get("result"),
                error=value.get("error"),
                metadata=dict(value.get("metadata") or {}),
            )
        raise TypeError(
            f"Handler must return HandlerResult or a mapping with 'success', got {type(value).__name__}"
        )


@dataclass
class ExecutionResult:
    """What the caller receives from ToolRegistry.execute()."""
    execution: Execution
    success: bool
    result: Any = None
    error: Optional[ToolError] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "success": self.success,
            "execution": self.execution.to_dict(),
        }
        if self.result is not None:
            data["result"] = self.result
        if self.error is not None:
            data["error"] = self.error.to_dict()
        return data
