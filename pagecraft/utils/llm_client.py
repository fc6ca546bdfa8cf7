from anthropic import AsyncAnthropic, APIStatusError, APIError, APIConnectionError, APITimeoutError
from dataclasses import dataclass
from typing import Optional, Dict, List, Any, AsyncIterator
import asyncio
import random
import httpx
from pagecraft.core.config import settings
from pagecraft.core.exceptions import GenerationTimeoutError
from pagecraft.core.logging_config import logger

# Retry configuration - loaded from settings
MAX_RETRIES = settings.CLAUDE_MAX_RETRIES
BASE_DELAY = settings.CLAUDE_RETRY_BASE_DELAY
MAX_DELAY = settings.CLAUDE_RETRY_MAX_DELAY
REQUEST_TIMEOUT = float(settings.CLAUDE_REQUEST_TIMEOUT)
CONNECT_TIMEOUT = float(settings.CLAUDE_CONNECT_TIMEOUT)
RETRYABLE_ERRORS = ['overloaded_error', 'rate_limit_error', 'server_error']


@dataclass
class StreamChunk:
    """One item of a model stream: a text delta or the closing usage report"""
    kind: str  # "text" | "usage"
    text: str = ""
    input_tokens: int = 0
    output_tokens: int = 0
    model: str = ""

    @classmethod
    def of_text(cls, text: str) -> "StreamChunk":
        return cls(kind="text", text=text)

    @property
    def is_text(self) -> bool:
        return self.kind == "text"


class LLMClient:
    """Claude API client wrapper for both streaming and non-streaming requests"""

    def __init__(self, api_key: Optional[str] = None, base_url: Optional[str] = None):
        client_kwargs: Dict[str, Any] = {"api_key": api_key or settings.ANTHROPIC_API_KEY}

        # Only set base_url if it's a non-empty string with actual content
        base_url = base_url or settings.ANTHROPIC_BASE_URL
        if base_url and base_url.strip():
            client_kwargs["base_url"] = base_url.strip()
            logger.info(f"Using custom Claude API base URL: {base_url}")

        client_kwargs["timeout"] = httpx.Timeout(
            connect=CONNECT_TIMEOUT,
            read=REQUEST_TIMEOUT,
            write=REQUEST_TIMEOUT,
            pool=REQUEST_TIMEOUT
        )

        self.async_client = AsyncAnthropic(**client_kwargs)
        self.planner_model = settings.CLAUDE_PLANNER_MODEL
        self.worker_model = settings.CLAUDE_WORKER_MODEL

        logger.info(f"LLM client initialized: timeout={REQUEST_TIMEOUT}s, models=[{self.planner_model}, {self.worker_model}]")

    def _resolve_model(self, model: str) -> str:
        """Map the "sonnet"/"haiku" aliases to configured models; anything else is a model id"""
        if model == "sonnet":
            return self.planner_model
        if model == "haiku":
            return self.worker_model
        return model

    def _is_retryable_error(self, error: Exception) -> bool:
        """Check if an error is retryable (overload, rate limit, network issues, etc.)"""
        error_str = str(error).lower()

        if isinstance(error, (APIConnectionError, APITimeoutError)):
            logger.warning(f"Network error detected (retryable): {type(error).__name__}")
            return True

        if isinstance(error, (httpx.ConnectError, httpx.TimeoutException, httpx.NetworkError)):
            logger.warning(f"HTTPX network error detected (retryable): {type(error).__name__}")
            return True

        if isinstance(error, (APIStatusError, APIError)):
            if hasattr(error, 'body') and isinstance(error.body, dict):
                error_type = error.body.get('error', {}).get('type', '')
                return error_type in RETRYABLE_ERRORS
            if hasattr(error, 'status_code'):
                return error.status_code in [429, 500, 502, 503, 529]

        network_errors = ['overload', 'rate_limit', '529', '503', 'capacity',
                          'connection', 'timeout', 'network', 'dns', 'socket']
        return any(err in error_str for err in network_errors)

    def _calculate_retry_delay(self, attempt: int) -> float:
        """Calculate delay with exponential backoff and jitter"""
        delay = min(BASE_DELAY * (2 ** attempt), MAX_DELAY)
        # Add jitter (0-25% of delay)
        jitter = delay * random.uniform(0, 0.25)
        return delay + jitter

    async def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        model: str = "haiku",
        max_tokens: int = None,
        temperature: float = None,
    ) -> Dict[str, Any]:
        """
        Generate response from Claude (non-streaming)

        Returns:
            Dict with content and token usage
        """
        model_name = self._resolve_model(model)
        messages: List[Dict[str, str]] = [{"role": "user", "content": prompt}]

        if max_tokens is None:
            max_tokens = settings.CLAUDE_MAX_TOKENS
        if temperature is None:
            temperature = settings.CLAUDE_TEMPERATURE

        logger.info(f"Claude API: model={model_name}, max_tokens={max_tokens}, prompt_len={len(prompt)}")

        for attempt in range(MAX_RETRIES + 1):
            try:
                response = await self.async_client.messages.create(
                    model=model_name,
                    max_tokens=max_tokens,
                    temperature=temperature,
                    system=system_prompt if system_prompt else "",
                    messages=messages
                )

                content = response.content[0].text if response.content else ""
                result = {
                    "content": content,
                    "model": model_name,
                    "input_tokens": response.usage.input_tokens,
                    "output_tokens": response.usage.output_tokens,
                    "total_tokens": response.usage.input_tokens + response.usage.output_tokens,
                    "stop_reason": response.stop_reason,
                }

                logger.info(f"Claude API response: id={response.id}, tokens={result['total_tokens']}, stop={response.stop_reason}")
                return result

            except Exception as e:
                error_type = type(e).__name__
                if self._is_retryable_error(e) and attempt < MAX_RETRIES:
                    delay = self._calculate_retry_delay(attempt)
                    logger.warning(
                        f"Claude API error [{error_type}] (attempt {attempt + 1}/{MAX_RETRIES + 1}), retrying in {delay:.1f}s...",
                        extra={
                            "event_type": "claude_api_retry",
                            "error_type": error_type,
                            "attempt": attempt + 1,
                            "retry_delay": delay
                        }
                    )
                    await asyncio.sleep(delay)
                else:
                    logger.error(
                        f"Claude API error (non-retryable or max retries exceeded): {error_type}: {e}",
                        extra={
                            "event_type": "claude_api_error",
                            "error_type": error_type,
                            "error_message": str(e),
                            "attempt": attempt + 1
                        }
                    )
                    raise

    async def stream(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        model: str = "haiku",
        max_tokens: int = None,
        temperature: float = None,
    ) -> AsyncIterator[StreamChunk]:
        """
        Stream a response from Claude

        Yields:
            StreamChunk(kind="text") per text delta, then one
            StreamChunk(kind="usage") carrying the token counts.

        A failed connection is retried only while nothing has been yielded;
        once text went out the error propagates to the consumer.
        """
        model_name = self._resolve_model(model)
        messages: List[Dict[str, str]] = [{"role": "user", "content": prompt}]

        if max_tokens is None:
            max_tokens = settings.CLAUDE_MAX_TOKENS
        if temperature is None:
            temperature = settings.CLAUDE_TEMPERATURE

        logger.info(f"Claude Streaming: model={model_name}, max_tokens={max_tokens}, prompt_len={len(prompt)}")

        for attempt in range(MAX_RETRIES + 1):
            has_yielded = False
            try:
                async with self.async_client.messages.stream(
                    model=model_name,
                    max_tokens=max_tokens,
                    temperature=temperature,
                    system=system_prompt if system_prompt else "",
                    messages=messages
                ) as stream:
                    async for text in stream.text_stream:
                        has_yielded = True
                        yield StreamChunk.of_text(text)

                    final_message = await stream.get_final_message()

                total_tokens = final_message.usage.input_tokens + final_message.usage.output_tokens
                logger.info(f"Claude Streaming response: id={final_message.id}, tokens={total_tokens}, stop={final_message.stop_reason}")

                yield StreamChunk(
                    kind="usage",
                    input_tokens=final_message.usage.input_tokens,
                    output_tokens=final_message.usage.output_tokens,
                    model=model_name,
                )
                return

            except Exception as e:
                error_type = type(e).__name__
                if not has_yielded and self._is_retryable_error(e) and attempt < MAX_RETRIES:
                    delay = self._calculate_retry_delay(attempt)
                    logger.warning(
                        f"Claude Streaming API error [{error_type}] (attempt {attempt + 1}/{MAX_RETRIES + 1}), retrying in {delay:.1f}s...",
                        extra={
                            "event_type": "claude_stream_retry",
                            "error_type": error_type,
                            "attempt": attempt + 1,
                            "retry_delay": delay
                        }
                    )
                    await asyncio.sleep(delay)
                else:
                    logger.error(
                        f"Claude Streaming API error (non-retryable): {error_type}: {e}",
                        extra={
                            "event_type": "claude_stream_error",
                            "error_type": error_type,
                            "error_message": str(e),
                            "has_yielded": has_yielded,
                            "attempt": attempt + 1
                        }
                    )
                    raise


_llm_client: Optional[LLMClient] = None


def get_llm_client() -> LLMClient:
    """Get the shared client, created on first use so imports never need credentials"""
    global _llm_client
    if _llm_client is None:
        _llm_client = LLMClient()
    return _llm_client


async def iterate_with_timeout(
    stream: AsyncIterator[StreamChunk],
    timeout: Optional[float],
    label: str = "",
) -> AsyncIterator[StreamChunk]:
    """
    Re-yield a model stream, failing with GenerationTimeoutError when no
    chunk arrives within `timeout` seconds (None waits forever).
    """
    iterator = stream.__aiter__()
    while True:
        try:
            if timeout:
                chunk = await asyncio.wait_for(iterator.__anext__(), timeout)
            else:
                chunk = await iterator.__anext__()
        except StopAsyncIteration:
            return
        except asyncio.TimeoutError:
            logger.warning(f"[LLM Stream] No chunk for {timeout}s ({label or 'stream'}), giving up")
            raise GenerationTimeoutError(timeout, module_id=label or None)
        yield chunk
