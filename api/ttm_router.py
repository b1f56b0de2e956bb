"""
Translation Memory API Router
FastAPI endpoints for suggestions, the public query endpoint, writes and health.
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from api.deps import get_aggregator, get_coordinator, get_queue, get_registry, get_source
from ttmserver.aggregator import SuggestionAggregator
from ttmserver.exceptions import ConfigurationError, PermanentQueryError, TransientBackendError, TTMServerError
from ttmserver.health import check_services, overall_status
from ttmserver.protocol import SearchableTTMServer
from ttmserver.registry import BackendRegistry
from ttmserver.replication import InMemoryJobQueue, InMemoryTranslationSource, ReplicationCoordinator
from ttmserver.schemas import (
    HealthResponse, JobResponse, PublicQueryResponse, SearchResponse,
    ServiceHealth, ServiceInfo, ServiceListResponse,
    SuggestionListResponse, SuggestionResponse, TranslationChange,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/ttm", tags=["Translation Memory"])


def _http_error(e: TTMServerError) -> HTTPException:
    """Map a backend error to its HTTP status."""
    if isinstance(e, ConfigurationError):
        return HTTPException(status_code=500, detail=str(e))
    if isinstance(e, PermanentQueryError):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, TransientBackendError):
        return HTTPException(status_code=503, detail=str(e))
    return HTTPException(status_code=500, detail=str(e))


# =============================================================================
# SUGGESTIONS
# =============================================================================

@router.get("/suggestions", response_model=SuggestionListResponse)
async def get_suggestions(
    source: str = Query(..., min_length=1, description="Source language code"),
    target: str = Query(..., min_length=1, description="Target language code"),
    text: str = Query(..., description="Source text"),
    service: Optional[List[str]] = Query(None, description="Restrict to these services"),
    aggregator: SuggestionAggregator = Depends(get_aggregator),
):
    """
    Translation memory suggestions from every queryable service.

    - **source**: Language of the text
    - **target**: Language of the wanted translations
    - **text**: Message definition
    """
    try:
        suggestions = await aggregator.get_suggestions(source, target, text, services=service)
    except ConfigurationError as e:
        logger.error(f"TTM configuration error: {e}")
        raise _http_error(e)

    items = [SuggestionResponse.from_suggestion(s) for s in suggestions]
    return SuggestionListResponse(suggestions=items, total=len(items))


@router.get("/query", response_model=PublicQueryResponse)
async def public_query(
    source: str = Query(..., min_length=1),
    target: str = Query(..., min_length=1),
    text: str = Query(...),
    aggregator: SuggestionAggregator = Depends(get_aggregator),
):
    """
    Public translation memory query, consumed by remote installations.
    """
    suggestions = await aggregator.query_public(source, target, text)
    return PublicQueryResponse(ttmserver=[SuggestionResponse.from_suggestion(s) for s in suggestions])


# =============================================================================
# SEARCH
# =============================================================================

@router.get("/search", response_model=SearchResponse)
async def search(
    q: str = Query(..., min_length=1, description="Search terms; foo* for prefix"),
    service: Optional[str] = Query(None, description="Service to search (default service if omitted)"),
    language: Optional[str] = None,
    group: Optional[str] = None,
    match: str = Query("all", pattern="^(all|any)$"),
    case: bool = False,
    limit: int = Query(25, ge=1, le=500),
    offset: int = Query(0, ge=0),
    registry: BackendRegistry = Depends(get_registry),
):
    """
    Full-text search in a searchable service.
    """
    name = service or registry.default
    if name is None:
        raise HTTPException(status_code=404, detail="No default TTM service configured")

    try:
        backend = registry.get(name)
        if not isinstance(backend, SearchableTTMServer):
            raise HTTPException(status_code=400, detail=f"Service '{name}' does not support search")

        opts = {
            "language": language or "",
            "group": group or "",
            "match": match,
            "case": "1" if case else "0",
            "limit": limit,
            "offset": offset,
        }
        resultset = backend.search(q, opts, ["<em>", "</em>"])
        return SearchResponse(
            service=name,
            total=backend.get_total_hits(resultset),
            documents=backend.get_documents(resultset),
            facets=backend.get_facets(resultset),
        )
    except TTMServerError as e:
        logger.warning(f"Search in {name} failed: {e}")
        raise _http_error(e)


# =============================================================================
# WRITES
# =============================================================================

@router.post("/translations", response_model=JobResponse, status_code=202)
async def translation_changed(
    change: TranslationChange,
    source: InMemoryTranslationSource = Depends(get_source),
    coordinator: ReplicationCoordinator = Depends(get_coordinator),
    queue: InMemoryJobQueue = Depends(get_queue),
):
    """
    Record a saved edit and queue its replication.

    - **definition**: true when ``text`` is the source-language message
    - **text**: null removes the translation
    - **fuzzy**: the translation is outdated and must not be suggested
    """
    try:
        if change.text is None:
            source.remove_translation(change.location, change.language)
        elif change.definition:
            source.set_definition(change.location, change.language, change.text, tuple(change.groups))
        else:
            source.set_translation(change.location, change.language, change.text, fuzzy=change.fuzzy)
    except KeyError as e:
        raise HTTPException(status_code=404, detail=str(e.args[0]) if e.args else str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    job = coordinator.on_translation_changed(change.location, change.language, change.text)
    return JobResponse(
        location=job.location,
        language=job.language,
        command=job.command.value,
        queued=len(queue),
    )


# =============================================================================
# ADMINISTRATION
# =============================================================================

@router.get("/health", response_model=HealthResponse)
async def health(
    registry: BackendRegistry = Depends(get_registry),
    queue: InMemoryJobQueue = Depends(get_queue),
):
    """Status of every configured translation memory service."""
    rows = check_services(registry)
    return HealthResponse(
        status=overall_status(rows),
        default_service=registry.default,
        services=[ServiceHealth(**row) for row in rows],
        queue_length=len(queue),
    )


@router.get("/services", response_model=ServiceListResponse)
async def list_services(
    registry: BackendRegistry = Depends(get_registry),
    aggregator: SuggestionAggregator = Depends(get_aggregator),
):
    """Configured services, the writable set and how each is queried."""
    try:
        writable = list(registry.get_writable_set())
    except ConfigurationError as e:
        raise _http_error(e)

    return ServiceListResponse(
        services=[ServiceInfo(**row) for row in registry.describe()],
        writable_set=writable,
        queryable={name: method for name, (_, method) in aggregator.get_queryable_services().items()},
    )
