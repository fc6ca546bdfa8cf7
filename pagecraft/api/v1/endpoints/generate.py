"""
Page generation endpoints

- POST /generate/stream - Server-Sent Events, one event per fragment as it is parsed
- POST /generate        - run the whole request and return the finished page
"""

import json
from dataclasses import replace

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse, StreamingResponse

from pagecraft.core.config import GenerationConfig, settings
from pagecraft.core.exceptions import PageCraftError, error_response
from pagecraft.core.logging_config import generate_request_id, logger, set_request_id
from pagecraft.modules.generate_document import GenerateDocumentCapability, RequestFlowManager
from pagecraft.modules.generate_document.interfaces import fragment_to_dict
from pagecraft.schemas.generate import GenerateRequest, GenerateResponse
from pagecraft.utils.llm_client import get_llm_client
from pagecraft.utils.performance_tracer import PerformanceTracer


router = APIRouter(prefix="/generate", tags=["Generate"])


def build_config(request: GenerateRequest) -> GenerationConfig:
    """Settings-derived config with the per-request overrides applied"""
    config = GenerationConfig.from_settings(settings)
    overrides = {}
    if request.protocol is not None:
        overrides["protocol"] = request.protocol
    if request.relax_root_height is not None:
        overrides["relax_root_height"] = request.relax_root_height
    return replace(config, **overrides) if overrides else config


def _sse(payload: dict) -> str:
    return f"data: {json.dumps(payload)}\n\n"


@router.post("/stream")
async def generate_stream(request: GenerateRequest, llm_client=Depends(get_llm_client)):
    """
    Stream page fragments as they are produced

    Events (each a JSON object in the data field):
        {"type": "fragment", "fragment": {...}}  per parsed fragment, in apply order
        {"type": "complete", "summary": {...}}   once every module flow settled
        {"type": "error", "error": {...}}        the request was aborted
    """
    config = build_config(request)
    manager = RequestFlowManager(
        llm_client=llm_client,
        config=config,
        tracer=PerformanceTracer(enabled=config.trace_performance),
    )

    async def event_generator():
        set_request_id(generate_request_id())
        logger.info(f"[Generate API] Streaming request: {request.input[:80]}")
        try:
            async for fragment in manager.stream_fragments(request.input):
                yield _sse({"type": "fragment", "fragment": fragment_to_dict(fragment)})

            yield _sse({"type": "complete", "summary": manager.last_summary.to_dict()})

        except PageCraftError as e:
            logger.error(f"[Generate API] Request aborted: {e.code}: {e.message}")
            yield _sse({"type": "error", **error_response(e)})
        except Exception as e:
            logger.error(f"[Generate API] Unexpected error: {e}", exc_info=True)
            yield _sse({"type": "error", "success": False, "error": {"code": "INTERNAL_ERROR", "message": str(e)}})
        finally:
            manager.tracer.report()

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no"
        }
    )


@router.post("", response_model=GenerateResponse)
async def generate_page(request: GenerateRequest, llm_client=Depends(get_llm_client)):
    """Generate a page into a fresh document and return the serialized HTML"""
    capability = GenerateDocumentCapability(llm_client=llm_client, config=build_config(request))

    try:
        await capability.request(request.input)
    except PageCraftError as e:
        return JSONResponse(status_code=502, content=error_response(e))

    return GenerateResponse(
        html=capability.document.serialize(),
        summary=capability.last_summary.to_dict(),
        placeholders=capability.operator.placeholders,
    )
