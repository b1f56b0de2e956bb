"""
Translation Memory API Schemas
Pydantic models for the HTTP layer.
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .models import Suggestion


# ==================== SUGGESTIONS ====================

class SuggestionResponse(BaseModel):
    """One suggestion as returned to editors and remote services."""
    source: str
    target: str
    quality: float = Field(..., ge=0.0, le=1.0)
    wiki: str = ""
    location: str = ""
    context: str = ""
    uri: str = ""
    local: bool = False
    service: str = ""
    source_language: str = ""

    @classmethod
    def from_suggestion(cls, suggestion: Suggestion) -> "SuggestionResponse":
        data = suggestion.to_dict()
        # Index scores can exceed 1 by rounding
        data["quality"] = min(max(data["quality"], 0.0), 1.0)
        return cls(**data)


class SuggestionListResponse(BaseModel):
    """Suggestions for one source text, best first."""
    suggestions: List[SuggestionResponse]
    total: int


class PublicQueryResponse(BaseModel):
    """Wire format of the public query endpoint, read by remote backends."""
    ttmserver: List[SuggestionResponse]


# ==================== WRITES ====================

class TranslationChange(BaseModel):
    """A saved edit. ``text`` null removes the translation."""
    location: str = Field(..., min_length=1)
    language: str = Field(..., min_length=1)
    text: Optional[str] = None
    fuzzy: bool = False
    definition: bool = False  # text is the source-language definition
    groups: List[str] = []


class JobResponse(BaseModel):
    """The fan-out job queued for a change."""
    location: str
    language: str
    command: str
    queued: int


# ==================== HEALTH ====================

class ServiceHealth(BaseModel):
    name: str
    status: str
    error: Optional[str] = None


class HealthResponse(BaseModel):
    status: str
    default_service: Optional[str] = None
    services: List[ServiceHealth]
    queue_length: int = 0


class ServiceInfo(BaseModel):
    name: str
    type: Optional[str] = None
    capabilities: List[str] = []
    mirrors: List[str] = []
    public: bool = False
    default: bool = False
    writable: Optional[bool] = None
    error: Optional[str] = None


class ServiceListResponse(BaseModel):
    services: List[ServiceInfo]
    writable_set: List[str]
    queryable: Dict[str, str]


# ==================== SEARCH ====================

class SearchResponse(BaseModel):
    """Full-text search over one searchable service."""
    service: str
    total: int
    documents: List[Dict[str, Any]]
    facets: Dict[str, Dict[str, int]]
