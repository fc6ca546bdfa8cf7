"""
Performance Tracer

Records start/end timestamps per named task. Concurrent executions of the
same task get their own instance id (``module#1``, ``module#2``...) and are
folded into the base task's statistics when they end.

Purely observational: a disabled tracer, an unknown id or a double end never
raise, they only log.
"""

import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Any

from pagecraft.core.logging_config import logger


class TraceName:
    """Task names used by the document pipeline"""
    TOTAL = "total"
    PLANNER = "planner"
    PARSE_HEADER = "parseHeader"
    PARSE_MODULE = "parseModule"
    MODULE = "module"


@dataclass
class Invocation:
    start_ms: float                       # relative to tracer creation
    end_ms: Optional[float] = None        # relative to tracer creation
    duration_ms: Optional[float] = None


@dataclass
class TaskTiming:
    start_time: float
    end_time: Optional[float] = None
    duration_ms: Optional[float] = None
    count: int = 0
    total_duration_ms: float = 0.0
    invocations: List[Invocation] = field(default_factory=list)


class PerformanceTracer:
    """Start/end timer keyed by task name with support for concurrent instances"""

    def __init__(self, enabled: bool = True):
        self.enabled = enabled
        self._timings: Dict[str, TaskTiming] = {}
        self._instance_counters: Dict[str, int] = {}
        self._creation_time = self._now()

    @staticmethod
    def _now() -> float:
        return time.perf_counter() * 1000

    def _next_instance_id(self, task_name: str) -> str:
        count = self._instance_counters.get(task_name, 0) + 1
        self._instance_counters[task_name] = count
        return f"{task_name}#{count}"

    @staticmethod
    def base_task_name(instance_id: str) -> str:
        name, sep, suffix = instance_id.rpartition("#")
        if sep and name and suffix.isdigit():
            return name
        return instance_id

    def start(self, task_name: str, instance_id: Optional[str] = None) -> str:
        """
        Start timing a task.

        Returns the id to pass to end(). Without an explicit instance_id a
        unique ``name#n`` id is generated. A disabled tracer returns the task
        name unchanged.
        """
        if not self.enabled:
            return task_name

        unique_id = instance_id or self._next_instance_id(task_name)
        now = self._now()
        invocation = Invocation(start_ms=now - self._creation_time)

        base = self._timings.get(task_name)
        if base is None:
            base = TaskTiming(start_time=now)
            self._timings[task_name] = base

        if unique_id == task_name:
            if any(inv.end_ms is None for inv in base.invocations):
                logger.warning(f"[Perf] Task '{unique_id}' was already started, restarting timer")
            base.invocations.append(invocation)
            base.start_time = now
            base.end_time = None
        else:
            if unique_id in self._timings:
                logger.warning(f"[Perf] Task instance '{unique_id}' was already started, restarting timer")
            self._timings[unique_id] = TaskTiming(start_time=now, count=1, invocations=[invocation])

        return unique_id

    def end(self, instance_id: str) -> None:
        """Stop timing the task instance returned by start()"""
        if not self.enabled:
            return

        now = self._now()
        entry = self._timings.get(instance_id)
        if entry is None or entry.end_time is not None:
            logger.warning(f"[Perf] Task '{instance_id}' was not started or already ended")
            return

        entry.end_time = now - self._creation_time
        entry.duration_ms = now - entry.start_time

        open_invocation = next((inv for inv in entry.invocations if inv.end_ms is None), None)
        if open_invocation is not None:
            open_invocation.end_ms = now - self._creation_time
            open_invocation.duration_ms = open_invocation.end_ms - open_invocation.start_ms

        base_name = self.base_task_name(instance_id)
        if base_name != instance_id:
            base = self._timings.get(base_name)
            if base is not None:
                base.count += 1
                base.total_duration_ms += entry.duration_ms
                base.invocations.extend(entry.invocations)
        else:
            entry.count += 1
            entry.total_duration_ms += entry.duration_ms

        logger.log_performance(instance_id, entry.duration_ms, threshold_ms=30000)

    def report(self) -> Dict[str, Any]:
        """
        Log a summary per base task and return it.

        Returns:
            {task_name: {"count", "total_ms", "average_ms", "invocations"}}
            Tasks that were started but never ended report count 0.
        """
        if not self.enabled:
            logger.info("[Perf] PerformanceTracer is disabled")
            return {}

        summary: Dict[str, Any] = {}
        for name, timing in self._timings.items():
            base_name = self.base_task_name(name)
            if base_name != name and base_name in self._timings:
                continue  # folded into the base task

            average = timing.total_duration_ms / timing.count if timing.count else 0.0
            summary[name] = {
                "count": timing.count,
                "total_ms": round(timing.total_duration_ms, 2),
                "average_ms": round(average, 2),
                "invocations": [
                    {
                        "start_ms": round(inv.start_ms, 2),
                        "end_ms": round(inv.end_ms, 2) if inv.end_ms is not None else None,
                        "duration_ms": round(inv.duration_ms, 2) if inv.duration_ms is not None else None,
                    }
                    for inv in timing.invocations
                ],
            }

            if timing.count:
                logger.info(
                    f"[Perf] Task: {name} | Count: {timing.count} | "
                    f"Total: {timing.total_duration_ms:.2f}ms | Avg: {average:.2f}ms"
                )
            elif timing.invocations:
                logger.info(
                    f"[Perf] Task: {name} | Started but not ended "
                    f"(started at {timing.invocations[0].start_ms:.2f}ms)"
                )

        if not summary:
            logger.info("[Perf] No tasks were timed")
        return summary

    def reset(self) -> None:
        self._timings.clear()
        self._instance_counters.clear()
        self._creation_time = self._now()
        logger.debug("[Perf] PerformanceTracer has been reset")

    def enable(self) -> None:
        self.enabled = True
        logger.debug("[Perf] PerformanceTracer enabled")

    def disable(self) -> None:
        """Disable tracer; start/end become no-ops"""
        self.enabled = False
        logger.debug("[Perf] PerformanceTracer disabled")
