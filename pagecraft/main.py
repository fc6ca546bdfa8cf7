from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager

from pagecraft.core.config import settings
from pagecraft.core.exceptions import PageCraftError, error_response
from pagecraft.core.logging_config import logger
from pagecraft.api.v1.router import api_router


async def validate_critical_config():
    """Validate configuration at startup; generation needs model credentials"""
    warnings = []

    if not settings.ANTHROPIC_API_KEY:
        warnings.append("ANTHROPIC_API_KEY is not set - page generation will NOT work!")

    if settings.SAVE_OUTPUT:
        logger.info(f"[Startup] HTML snapshots enabled: {settings.OUTPUT_CACHE_DIR}")

    for warn in warnings:
        logger.warning(f"[Startup] WARNING: {warn}")

    logger.info(
        f"[Startup] Wire protocol: {settings.WIRE_PROTOCOL.value}, "
        f"planner: {settings.CLAUDE_PLANNER_MODEL}, worker: {settings.CLAUDE_WORKER_MODEL}"
    )
    return not warnings


async def validate_claude_api():
    """Test Claude API connection at startup"""
    try:
        from pagecraft.utils.llm_client import get_llm_client
        client = get_llm_client()

        logger.info("[Startup] Testing Claude API connection...")
        response = await client.generate(
            prompt="Say OK",
            system_prompt="Respond with only: OK",
            model="haiku",
            max_tokens=10,
            temperature=0
        )

        if response.get("content", ""):
            logger.info(f"[Startup] ✓ Claude API connection verified (model: {settings.CLAUDE_WORKER_MODEL})")
            return True
        logger.error("[Startup] ✗ Claude API returned empty response")
        return False

    except Exception as e:
        error_msg = str(e).lower()
        if "authentication" in error_msg or "api key" in error_msg or "401" in error_msg:
            logger.critical(f"[Startup] ✗ Claude API key is INVALID: {e}")
            raise RuntimeError("ANTHROPIC_API_KEY is invalid - page generation will not work!")
        elif "rate" in error_msg or "429" in error_msg:
            logger.warning(f"[Startup] Claude API rate limited (will retry later): {e}")
            return True
        else:
            logger.error(f"[Startup] ✗ Claude API connection failed: {e}")
            return False


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan event handler for startup and shutdown"""
    logger.info("=" * 60)
    logger.info(f"Starting {settings.APP_NAME}...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"API Version: {settings.API_VERSION}")
    logger.info("=" * 60)

    await validate_critical_config()

    if settings.VALIDATE_CLAUDE_ON_STARTUP:
        claude_ready = await validate_claude_api()
        if not claude_ready:
            logger.warning("[Startup] Claude API not ready - page generation may fail")

    yield

    logger.info(f"Shutting down {settings.APP_NAME}...")


# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    description="Streams LLM-generated pages into a live document, fragment by fragment",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
    redirect_slashes=False
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Exception handlers
@app.exception_handler(PageCraftError)
async def pagecraft_exception_handler(request: Request, exc: PageCraftError):
    logger.error(f"[API] {exc.code}: {exc.message}")
    return JSONResponse(status_code=500, content=error_response(exc))


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Global exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "detail": "Internal server error",
            "message": str(exc) if settings.DEBUG else "An error occurred"
        }
    )


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "app_name": settings.APP_NAME,
        "version": "1.0.0",
        "environment": settings.ENVIRONMENT
    }


@app.get("/", tags=["Root"])
async def root():
    """Root endpoint"""
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health"
    }


# Include API router
app.include_router(api_router, prefix=f"/api/{settings.API_VERSION}")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "pagecraft.main:app",
        host=settings.SERVER_HOST,
        port=settings.SERVER_PORT,
        reload=settings.DEBUG,
    )
