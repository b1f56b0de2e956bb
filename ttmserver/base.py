"""
Base class shared by translation memory backends.
"""

from functools import cmp_to_key
from typing import Any, Dict, Iterable, List, Optional

from .models import BackendConfig, Suggestion


def compare_quality(a: Suggestion, b: Suggestion) -> int:
    """Three-way comparison putting higher quality first."""
    if a.quality == b.quality:
        return 0
    return 1 if a.quality < b.quality else -1


def sort_suggestions(suggestions: Iterable[Suggestion]) -> List[Suggestion]:
    """Descending quality; equal quality keeps discovery order."""
    return sorted(suggestions, key=cmp_to_key(compare_quality))


class TTMServer:
    """
    Common plumbing for all backends: configuration access, mirrors and
    suggestion location helpers.

    Concrete classes add capabilities by implementing the methods of
    ReadableTTMServer, WritableTTMServer and/or SearchableTTMServer.
    """

    def __init__(self, config: BackendConfig, wiki_id: str = "default"):
        self.config = config
        self.wiki_id = wiki_id

    @property
    def name(self) -> str:
        return self.config.name

    def get_mirrors(self) -> List[str]:
        """Names of backends that must receive every write this one receives."""
        return list(self.config.mirrors or ())

    def is_frozen(self) -> bool:
        return False

    def is_local_suggestion(self, suggestion: Suggestion) -> bool:
        return suggestion.wiki == self.wiki_id

    def expand_location(self, suggestion: Suggestion) -> str:
        return suggestion.uri or suggestion.location

    def get_info(self) -> Dict[str, Any]:
        """Backend information for the API/CLI"""
        from .protocol import capability_names

        return {
            "name": self.name,
            "type": self.config.type,
            "class": self.config.class_name or self.__class__.__name__,
            "capabilities": capability_names(self),
            "mirrors": self.get_mirrors(),
            "public": self.config.public,
        }

    def __repr__(self):
        return f"<{self.__class__.__name__} {self.name}>"
