"""
Job queue abstraction.

Production deployments plug in their own scheduler by implementing
``submit``; InMemoryJobQueue runs jobs in-process.
"""

import logging
import threading
from collections import deque
from typing import TYPE_CHECKING, Deque, List, Optional, Protocol, runtime_checkable

from .jobs import UpdateJob

if TYPE_CHECKING:
    from .coordinator import ReplicationCoordinator

logger = logging.getLogger(__name__)


@runtime_checkable
class JobQueue(Protocol):
    def submit(self, job: UpdateJob) -> None: ...


class InMemoryJobQueue:
    """FIFO queue, safe to share between the API and a worker task."""

    def __init__(self):
        self._jobs: Deque[UpdateJob] = deque()
        self._lock = threading.Lock()
        # Every job ever submitted, in order
        self.history: List[UpdateJob] = []

    def submit(self, job: UpdateJob) -> None:
        with self._lock:
            self._jobs.append(job)
            self.history.append(job)
        logger.debug("Queued %r", job)

    def pop(self) -> Optional[UpdateJob]:
        with self._lock:
            return self._jobs.popleft() if self._jobs else None

    def drain(self, coordinator: "ReplicationCoordinator", limit: Optional[int] = None) -> int:
        """
        Run queued jobs, including the retries they enqueue.

        Args:
            coordinator: Runs each job
            limit: Stop after this many jobs

        Returns:
            Number of jobs run
        """
        processed = 0
        while limit is None or processed < limit:
            job = self.pop()
            if job is None:
                break
            coordinator.run(job)
            processed += 1
        return processed

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)
