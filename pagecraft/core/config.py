from pydantic_settings import BaseSettings
from pydantic import field_validator
from typing import List, Any, Optional
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
import json


class WireProtocol(str, Enum):
    """Framing the model is asked to produce"""
    MARKER = "marker"   # H:/M:/E: and SH#/N:/CS:/EH# tokens
    JSONL = "jsonl"     # one typed JSON record per line


def parse_cors_origins(v: Any) -> List[str]:
    """Parse CORS origins from string or list"""
    if isinstance(v, list):
        return v
    if isinstance(v, str):
        # Try JSON parsing first
        if v.startswith('['):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                pass
        # Fall back to comma-separated
        return [origin.strip() for origin in v.split(',') if origin.strip()]
    return []


class Settings(BaseSettings):
    """Application settings - all configurable via environment variables"""

    # ==========================================
    # Application
    # ==========================================
    APP_NAME: str = "PageCraft"
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    API_VERSION: str = "v1"

    # Server Configuration
    SERVER_HOST: str = "0.0.0.0"
    SERVER_PORT: int = 8000

    # ==========================================
    # Claude AI
    # ==========================================
    ANTHROPIC_API_KEY: str = ""
    ANTHROPIC_BASE_URL: str = ""  # Empty means use default Anthropic URL
    CLAUDE_PLANNER_MODEL: str = "claude-sonnet-4-20250514"
    CLAUDE_WORKER_MODEL: str = "claude-3-5-haiku-20241022"
    CLAUDE_MAX_TOKENS: int = 4096
    CLAUDE_TEMPERATURE: float = 0.7
    CLAUDE_REQUEST_TIMEOUT: int = 300  # seconds
    CLAUDE_CONNECT_TIMEOUT: int = 60  # seconds
    CLAUDE_MAX_RETRIES: int = 3
    CLAUDE_RETRY_BASE_DELAY: float = 2.0  # seconds
    CLAUDE_RETRY_MAX_DELAY: float = 30.0  # seconds

    # ==========================================
    # Document generation
    # ==========================================
    WIRE_PROTOCOL: WireProtocol = WireProtocol.JSONL
    MODULE_FLOW_TIMEOUT: Optional[float] = 180.0  # seconds, None disables
    STREAM_CHUNK_TIMEOUT: Optional[float] = 60.0  # seconds without a chunk
    MAX_PARSER_BUFFER: int = 1048576  # 1MB of unparsed text per stream
    RELAX_ROOT_HEIGHT: bool = False
    TRACE_PERFORMANCE: bool = True
    SAVE_OUTPUT: bool = False
    OUTPUT_CACHE_DIR: str = ".cache/tmp"
    VALIDATE_CLAUDE_ON_STARTUP: bool = False  # one small model call at boot

    # ==========================================
    # CORS (stored as comma-separated string, parsed to list)
    # ==========================================
    CORS_ORIGINS_STR: str = "http://localhost:3000,http://127.0.0.1:3000"

    @property
    def CORS_ORIGINS(self) -> List[str]:
        """Parse CORS origins from comma-separated string"""
        return parse_cors_origins(self.CORS_ORIGINS_STR)

    # ==========================================
    # Logging
    # ==========================================
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = ""

    @field_validator("MAX_PARSER_BUFFER")
    @classmethod
    def validate_parser_buffer(cls, v: int) -> int:
        if v < 1024:
            raise ValueError("MAX_PARSER_BUFFER must be at least 1024 characters")
        return v

    @property
    def BASE_DIR(self) -> Path:
        return Path(__file__).resolve().parent.parent.parent

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"  # Ignore extra fields in .env that aren't defined in Settings


@dataclass
class GenerationConfig:
    """
    Explicit configuration handed to the request flow manager.

    Environment lookups stay in Settings; everything the pipeline needs
    at runtime travels in this struct.
    """
    protocol: WireProtocol = WireProtocol.JSONL
    planner_model: str = "sonnet"
    worker_model: str = "haiku"
    max_tokens: int = 4096
    temperature: float = 0.7
    module_timeout: Optional[float] = 180.0
    chunk_timeout: Optional[float] = 60.0
    max_buffer_size: int = 1048576
    relax_root_height: bool = False
    trace_performance: bool = True
    save_output: bool = False
    output_dir: str = ".cache/tmp"

    @classmethod
    def from_settings(cls, source: "Settings") -> "GenerationConfig":
        return cls(
            protocol=source.WIRE_PROTOCOL,
            planner_model=source.CLAUDE_PLANNER_MODEL,
            worker_model=source.CLAUDE_WORKER_MODEL,
            max_tokens=source.CLAUDE_MAX_TOKENS,
            temperature=source.CLAUDE_TEMPERATURE,
            module_timeout=source.MODULE_FLOW_TIMEOUT,
            chunk_timeout=source.STREAM_CHUNK_TIMEOUT,
            max_buffer_size=source.MAX_PARSER_BUFFER,
            relax_root_height=source.RELAX_ROOT_HEIGHT,
            trace_performance=source.TRACE_PERFORMANCE,
            save_output=source.SAVE_OUTPUT,
            output_dir=source.OUTPUT_CACHE_DIR,
        )


# Create settings instance
settings = Settings()
