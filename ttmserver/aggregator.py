"""
Suggestion Aggregator
Queries every eligible translation memory concurrently and merges the results.

Usage:
    aggregator = SuggestionAggregator(registry)
    suggestions = await aggregator.get_suggestions("en", "de", "Hello world")
"""

import asyncio
import logging
from typing import Dict, List, Optional, Tuple

from .base import TTMServer, sort_suggestions
from .exceptions import ConfigurationError, TTMServerError
from .models import TTM_TYPES, BackendConfig, Suggestion
from .protocol import AsyncReadableTTMServer, ReadableTTMServer, WritableTTMServer
from .registry import BackendRegistry

logger = logging.getLogger(__name__)

INTERNAL = "internal"
REMOTE = "remote"


class SuggestionAggregator:
    """
    Fan-out over the queryable services.

    Mirrors of the default service hold the same data and write-only
    services are not meant for reading, so neither is queried. Internal
    services run in a worker thread; remote and public services go over
    HTTP without blocking the event loop.
    """

    def __init__(self, registry: BackendRegistry, timeout: float = 10.0):
        """
        Initialize aggregator.

        Args:
            registry: Source of backend instances
            timeout: Seconds allowed to each backend per request
        """
        self.registry = registry
        self.timeout = timeout
        self._public_clients: Dict[str, TTMServer] = {}

    # ==================== SERVICE SELECTION ====================

    def get_queryable_services(self) -> Dict[str, Tuple[BackendConfig, str]]:
        """name -> (config, INTERNAL | REMOTE), in configuration order."""
        excluded = set()

        primary = self.registry.get_default_for_querying()
        if isinstance(primary, WritableTTMServer):
            excluded.update(primary.get_mirrors())

        excluded.update(self.registry.write_only_names())

        services: Dict[str, Tuple[BackendConfig, str]] = {}
        for name in self.registry.list_names():
            if name in excluded:
                continue
            try:
                config = self.registry.get_config(name)
            except ConfigurationError as e:
                logger.error("TTM service %s is misconfigured: %s", name, e)
                continue
            if config.type not in TTM_TYPES:
                continue

            if config.type == "remote-ttmserver":
                services[name] = (config, REMOTE)
            elif config.public and config.url:
                # Public services answer over HTTP, which runs in parallel
                services[name] = (config, REMOTE)
            else:
                services[name] = (config, INTERNAL)
        return services

    def _backend(self, name: str, config: BackendConfig, method: str) -> TTMServer:
        if method == REMOTE and config.type == "ttmserver":
            if name not in self._public_clients:
                self._public_clients[name] = self.registry.create_public_client(name)
            return self._public_clients[name]
        return self.registry.get(name)

    # ==================== QUERY ====================

    async def _query_one(
        self,
        name: str,
        config: BackendConfig,
        method: str,
        source_language: str,
        target_language: str,
        text: str,
    ) -> List[Suggestion]:
        try:
            backend = self._backend(name, config, method)
            if not isinstance(backend, ReadableTTMServer):
                logger.debug("Skipping %s: not readable", name)
                return []

            if method == REMOTE and isinstance(backend, AsyncReadableTTMServer):
                call = backend.query_async(source_language, target_language, text)
            else:
                call = asyncio.to_thread(backend.query, source_language, target_language, text)
            suggestions = await asyncio.wait_for(call, timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning("TTM service %s timed out after %ss", name, self.timeout)
            return []
        except ConfigurationError as e:
            logger.error("TTM service %s is misconfigured: %s", name, e)
            return []
        except TTMServerError as e:
            logger.warning("TTM service %s failed: %s", name, e)
            return []
        except Exception:
            logger.exception("TTM service %s raised an unexpected error", name)
            return []

        return [self._tag(s, backend, name, source_language, text, method) for s in suggestions]

    @staticmethod
    def _tag(
        suggestion: Suggestion,
        backend: TTMServer,
        name: str,
        source_language: str,
        text: str,
        method: str,
    ) -> Suggestion:
        suggestion.service = name
        suggestion.source_language = source_language
        suggestion.local = backend.is_local_suggestion(suggestion)
        if not suggestion.uri:
            suggestion.uri = backend.expand_location(suggestion)
        if method == REMOTE and not suggestion.source:
            suggestion.source = text
        return suggestion

    async def get_suggestions(
        self,
        source_language: str,
        target_language: str,
        text: str,
        services: Optional[List[str]] = None,
    ) -> List[Suggestion]:
        """
        Suggestions from all queryable services, best first.

        Args:
            source_language: Language of ``text``
            target_language: Language wanted
            text: Source text
            services: Restrict to these service names

        Returns:
            Merged suggestions; failing services contribute nothing
        """
        if not text or not text.strip():
            return []

        eligible = self.get_queryable_services()
        if services is not None:
            eligible = {n: v for n, v in eligible.items() if n in services}

        results = await asyncio.gather(*(
            self._query_one(name, config, method, source_language, target_language, text)
            for name, (config, method) in eligible.items()
        ))

        merged = [s for batch in results for s in batch]
        logger.debug("%d suggestions from %d service(s)", len(merged), len(eligible))
        return sort_suggestions(merged)

    async def query_public(self, source_language: str, target_language: str, text: str) -> List[Suggestion]:
        """
        Results of this installation's public services, for remote callers.

        Public services are always queried directly here so a service never
        calls itself over HTTP.
        """
        if not text or not text.strip():
            return []

        names = [
            name for name in self.registry.list_names()
            if self.registry.get_config(name).public
            and self.registry.get_config(name).type == "ttmserver"
        ]
        results = await asyncio.gather(*(
            self._query_one(
                name, self.registry.get_config(name), INTERNAL, source_language, target_language, text
            )
            for name in names
        ))
        return sort_suggestions(s for batch in results for s in batch)
