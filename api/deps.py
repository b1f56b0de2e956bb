"""
Shared state and dependency getters for API route modules.

Module-level singletons, created on first use so tests can swap them with
the setters below (or with ``app.dependency_overrides``).
"""

import time
from typing import Optional

from config.logging_config import get_logger
from config.settings import settings
from ttmserver.aggregator import SuggestionAggregator
from ttmserver.registry import BackendRegistry
from ttmserver.replication import (
    InMemoryJobQueue,
    InMemoryTranslationSource,
    ReplicationCoordinator,
)

logger = get_logger(__name__)

start_time = time.time()

# --- Singletons ---

_registry: Optional[BackendRegistry] = None
_source: Optional[InMemoryTranslationSource] = None
_queue: Optional[InMemoryJobQueue] = None
_coordinator: Optional[ReplicationCoordinator] = None
_aggregator: Optional[SuggestionAggregator] = None


def get_registry() -> BackendRegistry:
    global _registry
    if _registry is None:
        _registry = BackendRegistry.get_instance()
        logger.info("TTM registry loaded: %s", ", ".join(_registry.list_names()) or "no services")
    return _registry


def get_source() -> InMemoryTranslationSource:
    global _source
    if _source is None:
        _source = InMemoryTranslationSource(wiki=settings.wiki_id)
    return _source


def get_queue() -> InMemoryJobQueue:
    global _queue
    if _queue is None:
        _queue = InMemoryJobQueue()
    return _queue


def get_coordinator() -> ReplicationCoordinator:
    global _coordinator
    if _coordinator is None:
        _coordinator = ReplicationCoordinator(
            get_registry(),
            get_source(),
            get_queue(),
            max_error_retry=settings.ttm_max_error_retry,
        )
    return _coordinator


def get_aggregator() -> SuggestionAggregator:
    global _aggregator
    if _aggregator is None:
        _aggregator = SuggestionAggregator(get_registry(), timeout=settings.ttm_query_timeout)
    return _aggregator


# --- Setters (tests, embedding) ---

def set_registry(registry: Optional[BackendRegistry]):
    """Replace the registry; everything built on it is rebuilt lazily."""
    global _registry, _coordinator, _aggregator
    _registry = registry
    _coordinator = None
    _aggregator = None


def set_source(source: Optional[InMemoryTranslationSource]):
    global _source, _coordinator
    _source = source
    _coordinator = None


def reset_state():
    """Drop every singleton."""
    global _registry, _source, _queue, _coordinator, _aggregator
    _registry = None
    _source = None
    _queue = None
    _coordinator = None
    _aggregator = None
