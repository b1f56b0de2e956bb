"""
Bootstrap Runner
Rebuilds every writable translation memory from the translation source.
"""

import logging
from dataclasses import dataclass
from itertools import islice
from typing import Dict, Iterable, Iterator, List, Optional, Sequence

from .models import TranslationUnit
from .registry import BackendRegistry
from .replication.source import TranslationSource

logger = logging.getLogger(__name__)


@dataclass
class BootstrapStats:
    """Counters for one backend."""
    definitions: int = 0
    translations: int = 0
    skipped: int = 0
    batches: int = 0


def chunked(units: Iterable[TranslationUnit], size: int) -> Iterator[List[TranslationUnit]]:
    iterator = iter(units)
    while True:
        batch = list(islice(iterator, size))
        if not batch:
            return
        yield batch


class BootstrapRunner:
    """
    Full reindex.

    Each backend is built fresh with the long administrative timeout, so the
    cached instances serving queries keep their short one.
    """

    def __init__(
        self,
        registry: BackendRegistry,
        source: TranslationSource,
        batch_size: int = 500,
        timeout: float = 3600.0,
    ):
        self.registry = registry
        self.source = source
        self.batch_size = batch_size
        self.timeout = timeout

    def run(self, reindex: bool = False, services: Optional[Sequence[str]] = None) -> Dict[str, BootstrapStats]:
        """
        Bootstrap the writable set, or only ``services`` of it.

        Args:
            reindex: Recreate indexes/tables before loading
            services: Restrict to these names

        Returns:
            Stats per backend name
        """
        backends = self.registry.get_writable_set(fresh=True, timeout=self.timeout, admin_timeout=self.timeout)
        if services:
            unknown = set(services) - set(backends)
            if unknown:
                logger.warning("Not in the writable set, ignored: %s", ", ".join(sorted(unknown)))
            backends = {name: b for name, b in backends.items() if name in services}

        if not backends:
            logger.warning("No writable TTM service configured, nothing to bootstrap")
            return {}

        results: Dict[str, BootstrapStats] = {}
        for name, backend in backends.items():
            logger.info("Bootstrapping %s...", name)
            if reindex:
                backend.set_do_reindex()
            backend.begin_bootstrap()

            stats = BootstrapStats()
            for batch in chunked(self.source.iter_units(), self.batch_size):
                definitions = [u for u in batch if u.text is not None and u.is_definition]
                translations = [u for u in batch if u.text is not None and not u.is_definition]
                stats.skipped += len(batch) - len(definitions) - len(translations)

                backend.begin_batch()
                if definitions:
                    backend.batch_insert_definitions(definitions)
                if translations:
                    backend.batch_insert_translations(translations)
                backend.end_batch()

                stats.definitions += len(definitions)
                stats.translations += len(translations)
                stats.batches += 1
                logger.info(
                    "%s: batch %d done (%d definitions, %d translations so far)",
                    name, stats.batches, stats.definitions, stats.translations,
                )

            backend.end_bootstrap()
            logger.info("Bootstrap of %s complete", name)
            results[name] = stats

        return results
