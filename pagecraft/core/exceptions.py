"""
Custom Exceptions for PageCraft
===============================

Three failure classes exist in the pipeline and are handled at different
levels:

1. Protocol violations abort the whole request and propagate to the caller.
2. Record validation errors drop a single record; parsing continues.
3. Document mutation errors skip a single fragment; application continues.

Generation errors are scoped to one module flow and never affect siblings.

Usage:
    from pagecraft.core.exceptions import ProtocolViolationError

    if self.state is PlannerState.AWAITING_HEADER:
        raise ProtocolViolationError("Module received before header")
"""

from typing import Optional, Any, Dict, List


class PageCraftError(Exception):
    """Base exception for all PageCraft errors"""

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details
        }


# ============================================
# Stream Protocol Errors
# ============================================

class ProtocolViolationError(PageCraftError):
    """The model stream broke the framing contract; the request is aborted"""

    def __init__(self, message: str, stream: Optional[str] = None, remainder: Optional[str] = None):
        super().__init__(message, code="PROTOCOL_VIOLATION")
        if stream:
            self.details["stream"] = stream
        if remainder is not None:
            self.details["remainder"] = remainder[:200]  # Truncate long buffers


class OversizedRecordError(ProtocolViolationError):
    """Unparsed text grew past the configured buffer bound"""

    def __init__(self, buffer_size: int, max_size: int, stream: Optional[str] = None):
        super().__init__(
            f"Parser buffer holds {buffer_size} characters without a complete record (limit {max_size})",
            stream=stream,
        )
        self.code = "OVERSIZED_RECORD"
        self.details["buffer_size"] = buffer_size
        self.details["max_size"] = max_size


class RecordValidationError(PageCraftError):
    """A single record could not be decoded or is missing required fields"""

    def __init__(
        self,
        message: str,
        record_kind: Optional[str] = None,
        missing_fields: Optional[List[str]] = None,
        raw: Optional[str] = None,
    ):
        super().__init__(message, code="INVALID_RECORD")
        if record_kind:
            self.details["record_kind"] = record_kind
        if missing_fields:
            self.details["missing_fields"] = missing_fields
        if raw is not None:
            self.details["raw"] = raw[:200]


# ============================================
# Document Errors
# ============================================

class DocumentMutationError(PageCraftError):
    """A fragment could not be applied to the document tree"""

    def __init__(self, message: str, fragment_type: Optional[str] = None):
        super().__init__(message, code="DOCUMENT_MUTATION_FAILED")
        if fragment_type:
            self.details["fragment_type"] = fragment_type


# ============================================
# Generation Errors
# ============================================

class GenerationError(PageCraftError):
    """A model call backing one flow failed"""

    def __init__(self, message: str, module_id: Optional[str] = None):
        super().__init__(message, code="GENERATION_FAILED")
        if module_id:
            self.details["module_id"] = module_id


class GenerationTimeoutError(GenerationError):
    """A flow or its model stream exceeded its time budget"""

    def __init__(self, timeout_seconds: float, module_id: Optional[str] = None):
        super().__init__(f"Generation timed out after {timeout_seconds}s", module_id)
        self.code = "GENERATION_TIMEOUT"
        self.details["timeout_seconds"] = timeout_seconds


# ============================================
# Helper function for API responses
# ============================================

def error_response(error: PageCraftError) -> Dict[str, Any]:
    """Convert exception to API error response format"""
    return {
        "success": False,
        "error": error.to_dict()
    }
