"""
Execution Monitoring
--------------------
Per-tool execution metrics.

Design:
- Passive observability only
- Incremental mean for execution time (no sample buffer)
- Unknown tools report zeroed metrics
"""

from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Dict, Optional
import logging

from tools.execution import Execution, ExecutionStatus


@dataclass
class ToolMetrics:
    """Aggregate metrics for one tool."""
    total_executions: int = 0
    successful_executions: int = 0
    failed_executions: int = 0
    average_execution_time: float = 0.0   # ms
    last_execution_time: Optional[datetime] = None
    error_rate: float = 0.0
    cache_hits: int = 0

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        if self.last_execution_time is not None:
            data["last_execution_time"] = self.last_execution_time.isoformat()
        return data


class ExecutionMonitor:
    """Records finished executions into per-tool metrics."""

    def __init__(self):
        self._metrics: Dict[str, ToolMetrics] = {}
        self._logger = logging.getLogger("bridge.tools.monitoring")

    def record_execution(self, execution: Execution) -> ToolMetrics:
        metrics = self._metrics.setdefault(execution.tool_name, ToolMetrics())

        metrics.total_executions += 1
        if execution.status == ExecutionStatus.COMPLETED:
            metrics.successful_executions += 1
        else:
            metrics.failed_executions += 1
        if execution.cache_hit:
            metrics.cache_hits += 1

        duration = execution.duration_ms or 0.0
        n = metrics.total_executions
        metrics.average_execution_time += (duration - metrics.average_execution_time) / n

        metrics.last_execution_time = execution.end_time or execution.start_time
        metrics.error_rate = metrics.failed_executions / n

        self._logger.debug(
            f"{execution.tool_name}: {execution.status.value} in {duration:.1f}ms "
            f"(total={n}, error_rate={metrics.error_rate:.2f})"
        )
        return metrics

    def get_metrics(self, tool_name: str) -> ToolMetrics:
        return self._metrics.get(tool_name) or ToolMetrics()

    def get_all_metrics(self) -> Dict[str, ToolMetrics]:
        return dict(self._metrics)

    def reset_metrics(self, tool_name: Optional[str] = None) -> None:
        if tool_name is None:
            self._metrics.clear()
        else:
            self._metrics.pop(tool_name, None)

    def get_summary(self) -> Dict[str, Any]:
        """Aggregate across all tools."""
        total = sum(m.total_executions for m in self._metrics.values())
        failed = sum(m.failed_executions for m in self._metrics.values())
        weighted = sum(m.average_execution_time * m.total_executions for m in self._metrics.values())

        return {
            "tools": len(self._metrics),
            "total_executions": total,
            "failed_executions": failed,
            "cache_hits": sum(m.cache_hits for m in self._metrics.values()),
            "error_rate": failed / total if total else 0.0,
            "average_execution_time": weighted / total if total else 0.0,
        }
