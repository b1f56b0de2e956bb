"""
Replication Coordinator
Propagates translation changes to every writable backend.

A fan-out job writes to the default backend and its mirrors (or to the
explicitly writable services). Each backend that fails gets its own
narrowed retry job, so one slow replica never holds back the others and
never causes the healthy ones to be rewritten.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from ..exceptions import ConfigurationError, TTMServerError
from ..models import TranslationUnit
from ..protocol import WritableTTMServer
from ..registry import BackendRegistry
from .jobs import JobCommand, UpdateJob
from .queue import JobQueue
from .source import TranslationSource

logger = logging.getLogger(__name__)


@dataclass
class ReplicationOutcome:
    """What one job run did, per backend."""
    succeeded: List[str] = field(default_factory=list)
    resent: List[UpdateJob] = field(default_factory=list)
    abandoned: List[str] = field(default_factory=list)


class ReplicationCoordinator:
    """
    Runs UpdateJobs against the registry's backends.

    Usage:
        coordinator = ReplicationCoordinator(registry, source, queue)
        coordinator.on_translation_changed("Main_Page", "de", "Hauptseite")
        queue.drain(coordinator)
    """

    def __init__(
        self,
        registry: BackendRegistry,
        source: TranslationSource,
        queue: JobQueue,
        max_error_retry: int = 4,
    ):
        """
        Initialize coordinator.

        Args:
            registry: Resolves the writable set and single services
            source: Current message texts
            queue: Where retries are submitted
            max_error_retry: A narrowed job that fails with this many
                previous failures is abandoned
        """
        if max_error_retry < 1:
            raise ConfigurationError("max_error_retry must be at least 1")
        self.registry = registry
        self.source = source
        self.queue = queue
        self.max_error_retry = max_error_retry

    # ==================== TRIGGER ====================

    def on_translation_changed(self, location: str, language: str, text: Optional[str]) -> UpdateJob:
        """
        Queue the fan-out job for a saved edit.

        ``text`` None means the translation was removed.
        """
        if text is None:
            command = JobCommand.DELETE
        elif language == self.source.get_source_language(location):
            command = JobCommand.REBUILD
        else:
            command = JobCommand.REFRESH

        job = UpdateJob(location=location, language=language, command=command)
        self.queue.submit(job)
        return job

    # ==================== RUN ====================

    def run(self, job: UpdateJob) -> ReplicationOutcome:
        outcome = ReplicationOutcome()
        units = self.units_for(job)

        if job.is_fan_out:
            for name, backend in self.registry.get_writable_set().items():
                if self._attempt(name, backend, units):
                    outcome.succeeded.append(name)
                else:
                    retry = job.narrowed(name)
                    self.queue.submit(retry)
                    outcome.resent.append(retry)
            return outcome

        backend = self.registry.get(job.service)
        if not isinstance(backend, WritableTTMServer):
            raise ConfigurationError(f"Service '{job.service}' is not writable", service=job.service)

        if self._attempt(job.service, backend, units):
            outcome.succeeded.append(job.service)
        elif job.error_count < self.max_error_retry:
            retry = job.retried()
            self.queue.submit(retry)
            outcome.resent.append(retry)
        else:
            logger.error(
                "Abandoning %s on %s after %d failed attempts; it stays stale until the next bootstrap",
                job.title, job.service, job.error_count + 1,
            )
            outcome.abandoned.append(job.service)
        return outcome

    def units_for(self, job: UpdateJob) -> List[TranslationUnit]:
        """The units a job writes, read fresh from the source."""
        source_language = self.source.get_source_language(job.location)
        removed = TranslationUnit(
            location=job.location,
            language=job.language,
            text=None,
            source_language=source_language,
        )

        if job.command == JobCommand.DELETE:
            return [removed]

        if job.command == JobCommand.REBUILD:
            return list(self.source.get_units(job.location))

        unit = self.source.get_unit(job.location, job.language)
        return [unit if unit is not None else removed]

    def _attempt(self, name: str, backend: WritableTTMServer, units: List[TranslationUnit]) -> bool:
        """Write every unit; the first failure ends the attempt."""
        if backend.is_frozen():
            logger.warning("%s is frozen, postponing the write", name)
            return False

        for unit in units:
            try:
                result = backend.update(unit)
            except ConfigurationError:
                raise
            except TTMServerError as e:
                logger.warning("Update of %s on %s failed: %s", unit.title, name, e)
                return False
            if result.failed:
                logger.warning("Update of %s on %s failed: %s", unit.title, name, result.error)
                return False
        return True
