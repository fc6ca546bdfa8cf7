"""
Request Flow Manager

Drives one page generation request:

    planner stream ─► planner parser ─► header / module events
                                            │
                              task decomposer (per module)
                                            │
              one asyncio.Task per module ─► fragment generator
                                            │
                     single asyncio.Queue ─► applier ─► on_fragment()

Module flows start the moment their module is parsed and run concurrently.
Fragment application is serialized through one queue drained by one
coroutine. The request completes when the plan ended AND every started
module flow settled (completed, failed, timed out or cancelled).

A planner protocol violation aborts the request: in-flight module flows
are cancelled and the error propagates. A failing module flow only marks
that module as failed.
"""

import asyncio
import inspect
import re
from typing import Any, AsyncIterator, Callable, Dict, List, Optional

from pagecraft.core.config import GenerationConfig, settings
from pagecraft.core.exceptions import (
    GenerationError,
    GenerationTimeoutError,
    PageCraftError,
    RecordValidationError,
)
from pagecraft.core.logging_config import logger, set_module_id
from pagecraft.modules.generate_document.fragment_generator import generate_fragment_stream
from pagecraft.modules.generate_document.interfaces import (
    FlowStatus,
    FlowSummary,
    Fragment,
    FragmentTask,
    HeaderFragment,
    ModuleFlowResult,
    ModuleFragment,
    ParsedHeader,
    ParsedModule,
    PlannerSink,
)
from pagecraft.modules.generate_document.parsers.planner_parser import StreamPlannerParser
from pagecraft.modules.generate_document.prompts import build_planner_prompt
from pagecraft.modules.generate_document.task_decomposer import create_module_task
from pagecraft.utils.llm_client import get_llm_client, iterate_with_timeout
from pagecraft.utils.performance_tracer import PerformanceTracer, TraceName


FragmentCallback = Callable[[Fragment], Any]

_CHANNEL_CLOSED = object()
_HEIGHT_RE = re.compile(r"(?<![-\w])height(?=\s*:)")


def relax_root_height(layout: str) -> str:
    """Turn fixed heights of the root container into min-heights"""
    return _HEIGHT_RE.sub("min-height", layout)


class _PlannerHandler(PlannerSink):
    """Reacts to planner events on behalf of one request"""

    def __init__(self, manager: "RequestFlowManager", queue: asyncio.Queue, summary: FlowSummary):
        self.manager = manager
        self.queue = queue
        self.summary = summary
        self.design_system_info = ""
        self._header_span: Optional[str] = None
        self._module_span: Optional[str] = None

    def begin(self) -> None:
        self._header_span = self.manager.tracer.start(TraceName.PARSE_HEADER)

    def on_header(self, header: ParsedHeader) -> None:
        tracer = self.manager.tracer
        if self._header_span:
            tracer.end(self._header_span)
            self._header_span = None

        self.summary.header = header
        self.design_system_info = header.overall_theme
        layout = header.layout
        if self.manager.config.relax_root_height:
            layout = relax_root_height(layout)

        logger.info(f"[Flow Manager] Header parsed: {header.app_name} ({layout})")
        self.queue.put_nowait(HeaderFragment(content=layout))
        self._module_span = tracer.start(TraceName.PARSE_MODULE)

    def on_module(self, module: ParsedModule) -> None:
        tracer = self.manager.tracer
        if self._module_span:
            tracer.end(self._module_span)

        task = create_module_task(module, self.design_system_info, len(self.summary.modules))
        self.queue.put_nowait(ModuleFragment(id=task.id, content=module.layout))
        self.manager._start_module_flow(task, self.queue, self.summary)
        self._module_span = tracer.start(TraceName.PARSE_MODULE)

    def on_plan_end(self) -> None:
        if self._module_span:
            self.manager.tracer.end(self._module_span)
            self._module_span = None
        logger.log_flow_event("planner", "plan complete", modules=len(self.summary.modules))

    def on_record_error(self, error: RecordValidationError) -> None:
        self.summary.record_errors += 1


class RequestFlowManager:
    """
    Orchestrates planner and module flows for page generation requests.

    One manager runs one request at a time; create a manager per concurrent
    request.
    """

    def __init__(
        self,
        llm_client=None,
        config: Optional[GenerationConfig] = None,
        tracer: Optional[PerformanceTracer] = None,
    ):
        self.config = config or GenerationConfig.from_settings(settings)
        self._llm_client = llm_client
        self.tracer = tracer or PerformanceTracer(enabled=self.config.trace_performance)
        self._module_tasks: Dict[str, asyncio.Task] = {}
        self.last_summary: Optional[FlowSummary] = None

    @property
    def llm_client(self):
        if self._llm_client is None:
            self._llm_client = get_llm_client()
        return self._llm_client

    @property
    def in_flight(self) -> List[str]:
        """Ids of module flows that have not settled yet"""
        return [module_id for module_id, task in self._module_tasks.items() if not task.done()]

    async def execute_flow(self, input_text: str, on_fragment: FragmentCallback) -> FlowSummary:
        """
        Run the whole request, handing every fragment to on_fragment in order.

        on_fragment may be a plain function or a coroutine function. It is
        called from a single coroutine, never concurrently.

        Raises:
            ProtocolViolationError: the plan stream broke the framing contract
            GenerationError: the planner model call failed or stalled
        """
        self._module_tasks = {}
        summary = FlowSummary()
        queue: asyncio.Queue = asyncio.Queue()
        applier = asyncio.create_task(self._apply_fragments(queue, on_fragment))
        total_span = self.tracer.start(TraceName.TOTAL)

        logger.log_flow_event("request", "started", input_length=len(input_text))
        try:
            await self._run_planner(input_text, queue, summary)

            # Join: every started module flow must settle
            if self._module_tasks:
                await asyncio.gather(*self._module_tasks.values(), return_exceptions=True)
        except BaseException as e:
            if self.in_flight:
                logger.warning(f"[Flow Manager] Aborting request, cancelling {len(self.in_flight)} module flow(s): {e!r}")
            self.cancel_all()
            if self._module_tasks:
                await asyncio.gather(*self._module_tasks.values(), return_exceptions=True)
            raise
        finally:
            self._settle_unstarted(summary)
            await queue.put(_CHANNEL_CLOSED)
            summary.fragment_count = await applier
            self.tracer.end(total_span)
            self.last_summary = summary

        logger.log_flow_event(
            "request", "completed",
            fragments=summary.fragment_count,
            modules=len(summary.modules),
            failed=len(summary.failed_modules),
        )
        return summary

    async def stream_fragments(self, input_text: str) -> AsyncIterator[Fragment]:
        """
        Same flow as execute_flow, exposed as an async generator.

        The summary is available as last_summary once the generator is
        exhausted. Closing the generator early cancels the request.
        """
        queue: asyncio.Queue = asyncio.Queue()
        flow = asyncio.create_task(self.execute_flow(input_text, queue.put_nowait))
        getter: Optional[asyncio.Task] = None
        try:
            while True:
                getter = asyncio.create_task(queue.get())
                done, _ = await asyncio.wait({getter, flow}, return_when=asyncio.FIRST_COMPLETED)
                if getter in done:
                    yield getter.result()
                    continue

                getter.cancel()
                while not queue.empty():
                    yield queue.get_nowait()
                flow.result()  # re-raise a failed request
                return
        finally:
            if getter is not None and not getter.done():
                getter.cancel()
            if not flow.done():
                flow.cancel()
                await asyncio.gather(flow, return_exceptions=True)

    def cancel_module(self, module_id: str) -> bool:
        """Cancel one module flow; False if unknown or already settled"""
        task = self._module_tasks.get(module_id)
        if task is None or task.done():
            return False
        logger.info(f"[Flow Manager] Cancelling module flow {module_id}")
        task.cancel()
        return True

    def cancel_all(self) -> int:
        """Cancel every in-flight module flow, returns how many were cancelled"""
        cancelled = 0
        for module_id in list(self._module_tasks):
            if self.cancel_module(module_id):
                cancelled += 1
        return cancelled

    def _settle_unstarted(self, summary: FlowSummary) -> None:
        # A flow cancelled before its first step never recorded a status
        for result in summary.modules:
            if result.status == FlowStatus.RUNNING:
                result.status = FlowStatus.CANCELLED

    async def _run_planner(self, input_text: str, queue: asyncio.Queue, summary: FlowSummary) -> None:
        config = self.config
        handler = _PlannerHandler(self, queue, summary)
        parser = StreamPlannerParser(handler, protocol=config.protocol, max_buffer_size=config.max_buffer_size)

        planner_span = self.tracer.start(TraceName.PLANNER)
        handler.begin()
        stream = self.llm_client.stream(
            input_text,
            system_prompt=build_planner_prompt(config.protocol),
            model=config.planner_model,
            max_tokens=config.max_tokens,
            temperature=config.temperature,
        )
        try:
            async for chunk in iterate_with_timeout(stream, config.chunk_timeout, "planner"):
                if chunk.is_text:
                    parser.feed(chunk.text)
            parser.finish()
        except PageCraftError:
            raise
        except Exception as e:
            logger.log_error_with_context(e, context="planner stream")
            raise GenerationError(f"Planner stream failed: {e}") from e
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()
            self.tracer.end(planner_span)

    def _start_module_flow(self, task: FragmentTask, queue: asyncio.Queue, summary: FlowSummary) -> None:
        result = ModuleFlowResult(module_id=task.id, name=task.module.name)
        summary.modules.append(result)
        self._module_tasks[task.id] = asyncio.create_task(self._run_module_flow(task, queue, result))
        logger.log_flow_event(task.id, f"started ({task.module.name})")

    async def _run_module_flow(self, task: FragmentTask, queue: asyncio.Queue, result: ModuleFlowResult) -> None:
        set_module_id(task.id)
        span = self.tracer.start(TraceName.MODULE)
        try:
            if self.config.module_timeout:
                await asyncio.wait_for(self._pump_fragments(task, queue, result), self.config.module_timeout)
            else:
                await self._pump_fragments(task, queue, result)
            result.status = FlowStatus.COMPLETED
        except asyncio.CancelledError:
            result.status = FlowStatus.CANCELLED
            logger.warning(f"[Flow Manager] Module flow {task.id} cancelled")
            raise
        except (asyncio.TimeoutError, GenerationTimeoutError) as e:
            result.status = FlowStatus.TIMED_OUT
            result.error = str(e) or f"Module flow exceeded {self.config.module_timeout}s"
            logger.error(f"[Flow Manager] Module flow {task.id} timed out: {result.error}")
        except Exception as e:
            result.status = FlowStatus.FAILED
            result.error = f"{type(e).__name__}: {e}"
            logger.log_error_with_context(e, context=f"module flow {task.id}")
        finally:
            self.tracer.end(span)
            logger.log_flow_event(task.id, result.status.value, fragments=result.fragment_count)

    async def _pump_fragments(self, task: FragmentTask, queue: asyncio.Queue, result: ModuleFlowResult) -> None:
        async for fragment in generate_fragment_stream(task, self.llm_client, self.config):
            await queue.put(fragment)
            result.fragment_count += 1

    async def _apply_fragments(self, queue: asyncio.Queue, on_fragment: FragmentCallback) -> int:
        applied = 0
        while True:
            fragment = await queue.get()
            if fragment is _CHANNEL_CLOSED:
                return applied
            applied += 1
            try:
                outcome = on_fragment(fragment)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as e:
                logger.log_error_with_context(e, context="fragment application")
