"""
Write path: update jobs, the job queue and the replication coordinator.
"""

from .coordinator import ReplicationCoordinator, ReplicationOutcome
from .jobs import JobCommand, UpdateJob
from .queue import InMemoryJobQueue, JobQueue
from .source import InMemoryTranslationSource, TranslationSource

__all__ = [
    "ReplicationCoordinator",
    "ReplicationOutcome",
    "JobCommand",
    "UpdateJob",
    "InMemoryJobQueue",
    "JobQueue",
    "InMemoryTranslationSource",
    "TranslationSource",
]
