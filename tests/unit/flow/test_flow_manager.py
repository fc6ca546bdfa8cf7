"""
Unit Tests for the Request Flow Manager
Tests for: fan-out and join, failure isolation, timeouts, cancellation, aborts
"""
import asyncio
import json

import pytest

from pagecraft.core.config import WireProtocol
from pagecraft.core.exceptions import GenerationError, ProtocolViolationError
from pagecraft.modules.generate_document.flow_manager import RequestFlowManager, relax_root_height
from pagecraft.modules.generate_document.interfaces import (
    CssFragment,
    FlowStatus,
    HeaderFragment,
    HtmlFragment,
    ModuleFragment,
)
from pagecraft.utils.performance_tracer import PerformanceTracer

from mocks.mock_llm import MockLLMClient
from mocks.scripts import MARKER_DISPLAY, MARKER_PLAN


async def run_flow(manager: RequestFlowManager, input_text: str = "a calculator"):
    fragments = []
    summary = await manager.execute_flow(input_text, fragments.append)
    return fragments, summary


def statuses(summary):
    return {m.module_id: m.status for m in summary.modules}


async def wait_until_in_flight(manager: RequestFlowManager, module_id: str):
    for _ in range(300):
        if module_id in manager.in_flight:
            return
        await asyncio.sleep(0.01)
    raise AssertionError(f"{module_id} never started")


class TestFanOutAndJoin:
    """Test the happy path in both framings"""

    @pytest.mark.asyncio
    async def test_marker_flow(self, marker_llm, make_config):
        """Test that every fragment of the plan and both modules is delivered"""
        manager = RequestFlowManager(llm_client=marker_llm, config=make_config())
        fragments, summary = await run_flow(manager)

        assert len(fragments) == 9
        assert summary.fragment_count == 9
        assert summary.header.app_name == "calc"
        assert statuses(summary) == {"module0": FlowStatus.COMPLETED, "module1": FlowStatus.COMPLETED}
        assert summary.failed_modules == []
        assert summary.record_errors == 0

    @pytest.mark.asyncio
    async def test_jsonl_flow(self, jsonl_llm, make_config):
        """Test the same page in the line-delimited record framing"""
        manager = RequestFlowManager(llm_client=jsonl_llm, config=make_config(protocol=WireProtocol.JSONL))
        fragments, summary = await run_flow(manager)

        assert len(fragments) == 9
        assert statuses(summary) == {"module0": FlowStatus.COMPLETED, "module1": FlowStatus.COMPLETED}

    @pytest.mark.asyncio
    async def test_header_first_and_modules_before_their_nodes(self, marker_llm, make_config):
        """Test emission order guarantees"""
        manager = RequestFlowManager(llm_client=marker_llm, config=make_config())
        fragments, _ = await run_flow(manager)

        assert fragments[0] == HeaderFragment(content="width:400px;height:600px;background:#000;")
        module_index = {f.id: i for i, f in enumerate(fragments) if isinstance(f, ModuleFragment)}
        assert list(module_index) == ["module0", "module1"]
        assert fragments[module_index["module0"]].content == "height:80px;"

        for i, fragment in enumerate(fragments):
            if isinstance(fragment, HtmlFragment) and fragment.parent_id in module_index:
                assert i > module_index[fragment.parent_id]

    @pytest.mark.asyncio
    async def test_depth_first_order_within_module(self, marker_llm, make_config):
        """Test that one module's nodes keep their order"""
        manager = RequestFlowManager(llm_client=marker_llm, config=make_config())
        fragments, _ = await run_flow(manager)

        keypad = [f.content for f in fragments if isinstance(f, HtmlFragment) and f.parent_id in ("module1", "keys")]
        assert keypad == [
            '<div id="keys"></div>',
            '<button class="btn">1</button>',
            '<button class="btn">2</button>',
        ]
        assert sum(isinstance(f, CssFragment) for f in fragments) == 2

    @pytest.mark.asyncio
    async def test_worker_receives_bound_module(self, marker_llm, make_config):
        """Test that each worker call gets its module with the container id"""
        manager = RequestFlowManager(llm_client=marker_llm, config=make_config())
        await run_flow(manager)

        worker_inputs = [json.loads(call["prompt"]) for call in marker_llm.calls[1:]]
        assert sorted(w["parentId"] for w in worker_inputs) == ["module0", "module1"]
        assert marker_llm.call_count == 3

    @pytest.mark.asyncio
    async def test_async_callback(self, marker_llm, make_config):
        """Test that coroutine callbacks are awaited in order"""
        seen = []

        async def on_fragment(fragment):
            await asyncio.sleep(0)
            seen.append(fragment)

        manager = RequestFlowManager(llm_client=marker_llm, config=make_config())
        summary = await manager.execute_flow("a calculator", on_fragment)

        assert len(seen) == summary.fragment_count == 9

    @pytest.mark.asyncio
    async def test_callback_errors_do_not_stop_the_flow(self, marker_llm, make_config):
        """Test that a failing consumer only loses that fragment"""
        def on_fragment(fragment):
            raise ValueError("consumer broke")

        manager = RequestFlowManager(llm_client=marker_llm, config=make_config())
        summary = await manager.execute_flow("a calculator", on_fragment)

        assert summary.fragment_count == 9
        assert summary.failed_modules == []

    @pytest.mark.asyncio
    async def test_plan_without_modules(self, make_config):
        """Test that a header-only plan completes immediately"""
        llm = MockLLMClient(planner='H:{"Name":"x","Theme":"y","Layout":"z:1"}\nE:')
        manager = RequestFlowManager(llm_client=llm, config=make_config())
        fragments, summary = await run_flow(manager)

        assert fragments == [HeaderFragment(content="z:1")]
        assert summary.modules == []

    @pytest.mark.asyncio
    async def test_stream_fragments(self, marker_llm, make_config):
        """Test the async generator form of the flow"""
        manager = RequestFlowManager(llm_client=marker_llm, config=make_config())

        fragments = [fragment async for fragment in manager.stream_fragments("a calculator")]

        assert len(fragments) == 9
        assert isinstance(fragments[0], HeaderFragment)
        assert manager.last_summary.fragment_count == 9


class TestFailureIsolation:
    """Test that one module cannot take down its siblings"""

    @pytest.mark.asyncio
    async def test_failing_module(self, marker_llm, make_config):
        """Test that a model error marks only that module as failed"""
        marker_llm.fail_module("Keypad", RuntimeError("boom"), after_chunks=2)
        manager = RequestFlowManager(llm_client=marker_llm, config=make_config())
        fragments, summary = await run_flow(manager)

        result = statuses(summary)
        assert result["module0"] == FlowStatus.COMPLETED
        assert result["module1"] == FlowStatus.FAILED
        failed = summary.failed_modules[0]
        assert "boom" in failed.error
        assert any(isinstance(f, HtmlFragment) and f.parent_id == "module0" for f in fragments)

    @pytest.mark.slow
    @pytest.mark.asyncio
    async def test_module_timeout(self, marker_llm, make_config):
        """Test that a stalled module settles as timed out"""
        marker_llm.stall_module("Keypad")
        manager = RequestFlowManager(llm_client=marker_llm, config=make_config(module_timeout=0.2, chunk_timeout=None))
        _, summary = await run_flow(manager)

        assert statuses(summary) == {"module0": FlowStatus.COMPLETED, "module1": FlowStatus.TIMED_OUT}

    @pytest.mark.slow
    @pytest.mark.asyncio
    async def test_chunk_stall_timeout(self, marker_llm, make_config):
        """Test that a stream without chunks is abandoned after chunk_timeout"""
        marker_llm.stall_module("Display")
        manager = RequestFlowManager(llm_client=marker_llm, config=make_config(module_timeout=None, chunk_timeout=0.1))
        _, summary = await run_flow(manager)

        assert statuses(summary)["module0"] == FlowStatus.TIMED_OUT
        assert statuses(summary)["module1"] == FlowStatus.COMPLETED
        assert "timed out" in summary.modules[0].error

    @pytest.mark.asyncio
    async def test_oversized_module_stream(self, make_config):
        """Test that a module overflowing its parser buffer fails alone"""
        llm = MockLLMClient(
            planner=MARKER_PLAN,
            modules={"Display": MARKER_DISPLAY, "Keypad": "SH#\nN:NULL_PARENT:<p>" + "x" * 3000},
            chunk_size=500,
        )
        manager = RequestFlowManager(llm_client=llm, config=make_config(max_buffer_size=1024))
        _, summary = await run_flow(manager)

        assert statuses(summary) == {"module0": FlowStatus.COMPLETED, "module1": FlowStatus.FAILED}
        assert "OversizedRecordError" in summary.modules[1].error


class TestAbortAndCancellation:
    """Test request aborts and explicit cancellation"""

    @pytest.mark.asyncio
    async def test_module_before_header_aborts(self, make_config):
        """Test that a planner protocol violation propagates"""
        llm = MockLLMClient(planner='M:{"Name":"X","Layout":"a","Description":"b"}\nE:')
        manager = RequestFlowManager(llm_client=llm, config=make_config())
        fragments = []

        with pytest.raises(ProtocolViolationError):
            await manager.execute_flow("x", fragments.append)

        assert fragments == []
        assert llm.call_count == 1

    @pytest.mark.asyncio
    async def test_abort_cancels_in_flight_modules(self, make_config):
        """Test that started module flows are cancelled when the plan breaks"""
        llm = MockLLMClient(
            planner=MARKER_PLAN.replace("E:", 'M:{"Name":"Broken"'),
            modules={"Display": MARKER_DISPLAY},
        )
        llm.stall_module("Display")
        llm.stall_module("Keypad")
        manager = RequestFlowManager(llm_client=llm, config=make_config(module_timeout=None, chunk_timeout=None))

        with pytest.raises(ProtocolViolationError):
            await manager.execute_flow("x", lambda f: None)

        assert manager.in_flight == []
        assert all(m.status == FlowStatus.CANCELLED for m in manager.last_summary.modules)
        assert len(manager.last_summary.modules) == 2

    @pytest.mark.asyncio
    async def test_planner_transport_error(self, make_config):
        """Test that a planner stream failure becomes a GenerationError"""
        llm = MockLLMClient()

        async def broken_stream(*args, **kwargs):
            raise RuntimeError("connection refused")
            yield  # pragma: no cover

        llm.stream = broken_stream
        manager = RequestFlowManager(llm_client=llm, config=make_config())

        with pytest.raises(GenerationError) as exc_info:
            await manager.execute_flow("x", lambda f: None)

        assert exc_info.value.code == "GENERATION_FAILED"

    @pytest.mark.asyncio
    async def test_cancel_module(self, marker_llm, make_config):
        """Test cancelling one module flow while the request runs"""
        marker_llm.stall_module("Keypad")
        manager = RequestFlowManager(llm_client=marker_llm, config=make_config(module_timeout=None, chunk_timeout=None))
        flow = asyncio.create_task(manager.execute_flow("a calculator", lambda f: None))

        await wait_until_in_flight(manager, "module1")
        assert manager.cancel_module("module1") is True
        assert manager.cancel_module("module9") is False

        summary = await flow
        assert statuses(summary) == {"module0": FlowStatus.COMPLETED, "module1": FlowStatus.CANCELLED}
        assert manager.cancel_module("module0") is False

    @pytest.mark.asyncio
    async def test_cancel_all(self, marker_llm, make_config):
        """Test cancelling every in-flight module flow"""
        marker_llm.stall_module("Display")
        marker_llm.stall_module("Keypad")
        manager = RequestFlowManager(llm_client=marker_llm, config=make_config(module_timeout=None, chunk_timeout=None))
        flow = asyncio.create_task(manager.execute_flow("a calculator", lambda f: None))

        await wait_until_in_flight(manager, "module1")
        assert manager.cancel_all() == 2

        summary = await flow
        assert all(m.status == FlowStatus.CANCELLED for m in summary.modules)

    @pytest.mark.asyncio
    async def test_closing_stream_cancels_request(self, marker_llm, make_config):
        """Test that abandoning stream_fragments cancels the module flows"""
        marker_llm.stall_module("Keypad")
        manager = RequestFlowManager(llm_client=marker_llm, config=make_config(module_timeout=None, chunk_timeout=None))

        stream = manager.stream_fragments("a calculator")
        first = await stream.__anext__()
        await wait_until_in_flight(manager, "module1")
        await stream.aclose()

        assert isinstance(first, HeaderFragment)
        assert manager.in_flight == []


class TestRootHeight:
    """Test the optional root height relaxation"""

    def test_relax_root_height(self):
        assert relax_root_height("width:400px;height:600px;") == "width:400px;min-height:600px;"
        assert relax_root_height("line-height: 2; max-height:10px") == "line-height: 2; max-height:10px"
        assert relax_root_height("height : 5px") == "min-height : 5px"

    @pytest.mark.asyncio
    async def test_header_layout_relaxed_when_enabled(self, marker_llm, make_config):
        manager = RequestFlowManager(llm_client=marker_llm, config=make_config(relax_root_height=True))
        fragments, _ = await run_flow(manager)

        assert fragments[0].content == "width:400px;min-height:600px;background:#000;"


class TestTracing:
    """Test that the flow reports its timings"""

    @pytest.mark.asyncio
    async def test_trace_names(self, marker_llm, make_config):
        tracer = PerformanceTracer(enabled=True)
        manager = RequestFlowManager(llm_client=marker_llm, config=make_config(), tracer=tracer)
        await run_flow(manager)

        report = tracer.report()
        assert report["total"]["count"] == 1
        assert report["planner"]["count"] == 1
        assert report["parseHeader"]["count"] == 1
        assert report["module"]["count"] == 2
