from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any

from pagecraft.core.config import WireProtocol


# ==================== Generate Schemas ====================

class GenerateRequest(BaseModel):
    """Free-text page request"""
    input: str = Field(..., min_length=1, max_length=4000, description="What the page should be")
    protocol: Optional[WireProtocol] = Field(None, description="Wire protocol override for this request")
    relax_root_height: Optional[bool] = None


class ModuleResult(BaseModel):
    """Outcome of one module flow"""
    module_id: str
    name: str
    status: str
    fragment_count: int = 0
    error: Optional[str] = None


class GenerateSummary(BaseModel):
    header: Optional[Dict[str, Any]] = None
    modules: List[ModuleResult] = []
    fragment_count: int = 0
    record_errors: int = 0


class GenerateResponse(BaseModel):
    """Finished page plus how it was built"""
    success: bool = True
    html: str
    summary: GenerateSummary
    placeholders: List[str] = []
