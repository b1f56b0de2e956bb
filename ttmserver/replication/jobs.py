"""
Update jobs: one (location, language) change to propagate to backends.
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from ..exceptions import ConfigurationError


class JobCommand(str, Enum):
    REFRESH = "refresh"  # translation text or fuzzy state changed
    REBUILD = "rebuild"  # definition changed: definition and every translation
    DELETE = "delete"  # translation removed


@dataclass(frozen=True)
class UpdateJob:
    """
    A queued write.

    Without ``service`` the job fans out to the whole writable set; with
    ``service`` it retries that one backend.
    """
    location: str
    language: str
    command: JobCommand = JobCommand.REFRESH
    service: Optional[str] = None
    error_count: int = 0

    @property
    def title(self) -> str:
        return f"{self.location}/{self.language}"

    @property
    def is_fan_out(self) -> bool:
        return self.service is None

    def narrowed(self, service: str) -> "UpdateJob":
        """First retry of a fan-out job on one backend."""
        return replace(self, service=service, error_count=1)

    def retried(self) -> "UpdateJob":
        return replace(self, error_count=self.error_count + 1)

    def to_params(self) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "location": self.location,
            "language": self.language,
            "command": self.command.value,
            "errorCount": self.error_count,
        }
        if self.service is not None:
            params["service"] = self.service
        return params

    @classmethod
    def from_params(cls, params: Mapping[str, Any]) -> "UpdateJob":
        try:
            command = JobCommand(params.get("command", JobCommand.REFRESH.value))
        except ValueError:
            raise ConfigurationError(f"Unknown job command: {params.get('command')}")
        return cls(
            location=params["location"],
            language=params["language"],
            command=command,
            service=params.get("service"),
            error_count=int(params.get("errorCount", 0)),
        )

    def __repr__(self):
        target = self.service or "*"
        return f"<UpdateJob {self.command.value} {self.title} -> {target} (errors: {self.error_count})>"
