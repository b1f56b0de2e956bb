"""
Translation memory service layer.

Usage:
    from ttmserver import BackendRegistry, SuggestionAggregator

    registry = BackendRegistry.from_settings(settings)
    suggestions = await SuggestionAggregator(registry).get_suggestions("en", "de", "Hello")
"""

from .aggregator import SuggestionAggregator
from .base import TTMServer, sort_suggestions
from .bootstrap import BootstrapRunner, BootstrapStats
from .exceptions import (
    ConfigurationError,
    PermanentQueryError,
    QueryTimeoutError,
    TransientBackendError,
    TTMServerError,
)
from .fuzzy import FuzzyMatchEngine
from .models import BackendConfig, Suggestion, TranslationUnit, UpdateResult, UpdateStatus
from .protocol import ReadableTTMServer, SearchableTTMServer, WritableTTMServer
from .registry import BackendRegistry, register_backend
from .replication import (
    InMemoryJobQueue,
    InMemoryTranslationSource,
    JobCommand,
    ReplicationCoordinator,
    ReplicationOutcome,
    UpdateJob,
)

__all__ = [
    "SuggestionAggregator",
    "TTMServer",
    "sort_suggestions",
    "BootstrapRunner",
    "BootstrapStats",
    "ConfigurationError",
    "PermanentQueryError",
    "QueryTimeoutError",
    "TransientBackendError",
    "TTMServerError",
    "FuzzyMatchEngine",
    "BackendConfig",
    "Suggestion",
    "TranslationUnit",
    "UpdateResult",
    "UpdateStatus",
    "ReadableTTMServer",
    "SearchableTTMServer",
    "WritableTTMServer",
    "BackendRegistry",
    "register_backend",
    "InMemoryJobQueue",
    "InMemoryTranslationSource",
    "JobCommand",
    "ReplicationCoordinator",
    "ReplicationOutcome",
    "UpdateJob",
]
