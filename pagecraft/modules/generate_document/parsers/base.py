from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from pagecraft.core.config import WireProtocol
from pagecraft.core.exceptions import OversizedRecordError, RecordValidationError
from pagecraft.core.logging_config import logger
from pagecraft.modules.generate_document.parsers.framing import (
    Framing,
    RawRecord,
    detect_protocol,
)

DEFAULT_MAX_BUFFER_SIZE = 1024 * 1024  # 1MB

ModelT = TypeVar("ModelT", bound=BaseModel)


class StreamParser(ABC):
    """
    Incremental parser over an arbitrarily chunked text stream.

    buffer += chunk
    while a complete record sits at the head of the buffer:
        cut it with the framing strategy
        validate and emit it
        drop it from the buffer

    The framing is chosen up front or detected from the first
    non-whitespace character of the stream.
    """

    log_prefix = "[Stream Parser]"

    def __init__(
        self,
        protocol: Optional[WireProtocol] = None,
        max_buffer_size: int = DEFAULT_MAX_BUFFER_SIZE,
    ):
        self.buffer = ""
        self.max_buffer_size = max_buffer_size
        self.framing: Optional[Framing] = self._create_framing(protocol) if protocol else None
        self._closed = False

    @abstractmethod
    def _create_framing(self, protocol: WireProtocol) -> Framing:
        ...

    @abstractmethod
    def _handle_record(self, record: RawRecord) -> None:
        ...

    @abstractmethod
    def _close(self, remainder: str) -> None:
        """Called once by finish() with whatever could not be parsed"""

    @property
    @abstractmethod
    def is_finished(self) -> bool:
        ...

    @property
    def protocol(self) -> Optional[WireProtocol]:
        return self.framing.protocol if self.framing else None

    def feed(self, chunk: str) -> None:
        """Append a chunk and emit every record it completes"""
        if not chunk:
            return
        if self._closed or self.is_finished:
            if chunk.strip():
                logger.warning(f"{self.log_prefix} Ignoring text after end of stream: {chunk[:80]!r}")
            return

        self.buffer += chunk
        self._drain(final=False)

        if len(self.buffer) > self.max_buffer_size:
            raise OversizedRecordError(len(self.buffer), self.max_buffer_size, stream=self.log_prefix)

    def finish(self) -> None:
        """Signal that the transport closed; idempotent"""
        if self._closed:
            return
        self._closed = True
        if not self.is_finished:
            self._drain(final=True)
        remainder, self.buffer = self.buffer, ""
        self._close(remainder)

    def _drain(self, final: bool) -> None:
        if self.framing is None:
            detected = detect_protocol(self.buffer)
            if detected is None:
                return
            self.framing = self._create_framing(detected)
            logger.debug(f"{self.log_prefix} Detected {detected.value} framing")

        while self.buffer and not self.is_finished:
            result = self.framing.next_record(self.buffer, final=final)
            if result is None:
                break
            record, consumed = result
            self.buffer = self.buffer[consumed:]
            self._handle_record(record)

        if self.is_finished and self.buffer.strip():
            logger.warning(f"{self.log_prefix} Ignoring text after end of stream: {self.buffer[:80]!r}")
            self.buffer = ""

    @staticmethod
    def _validate(model: Type[ModelT], payload: Dict[str, Any], record_kind: str, raw: str) -> ModelT:
        """Validate a decoded payload, turning pydantic errors into RecordValidationError"""
        try:
            return model.model_validate(payload)
        except ValidationError as e:
            missing = [".".join(str(p) for p in err["loc"]) for err in e.errors()]
            raise RecordValidationError(
                f"Invalid {record_kind} record: {', '.join(missing) or 'bad value'}",
                record_kind=record_kind,
                missing_fields=missing,
                raw=raw,
            ) from e
