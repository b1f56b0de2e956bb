"""
Capability protocols for translation memory backends.

A backend implements any subset of Readable / Writable / Searchable.
Callers check capabilities with isinstance() or issubclass():

    if isinstance(backend, WritableTTMServer):
        backend.update(unit)
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Protocol, Sequence, runtime_checkable

from .models import Suggestion, TranslationUnit, UpdateResult


@runtime_checkable
class ReadableTTMServer(Protocol):
    """Serves fuzzy suggestions."""

    def query(self, source_language: str, target_language: str, text: str) -> List[Suggestion]: ...
    def is_local_suggestion(self, suggestion: Suggestion) -> bool: ...
    def expand_location(self, suggestion: Suggestion) -> str: ...


@runtime_checkable
class AsyncReadableTTMServer(Protocol):
    """Readable backend that can be queried without a worker thread."""

    async def query_async(
        self, source_language: str, target_language: str, text: str
    ) -> List[Suggestion]: ...


@runtime_checkable
class WritableTTMServer(Protocol):
    """
    Receives translation updates and full rebuilds.

    ``update`` reports its outcome as an UpdateResult instead of raising.
    Batches are sequences of TranslationUnit with non-null text.
    """

    def update(self, unit: TranslationUnit) -> UpdateResult: ...
    def begin_bootstrap(self) -> None: ...
    def begin_batch(self) -> None: ...
    def batch_insert_definitions(self, batch: Sequence[TranslationUnit]) -> None: ...
    def batch_insert_translations(self, batch: Sequence[TranslationUnit]) -> None: ...
    def end_batch(self) -> None: ...
    def end_bootstrap(self) -> None: ...
    def get_mirrors(self) -> List[str]: ...
    def is_frozen(self) -> bool: ...
    def set_do_reindex(self) -> None: ...


@runtime_checkable
class SearchableTTMServer(Protocol):
    """Full-text search over stored translations."""

    def search(self, query_string: str, opts: Mapping[str, Any], highlight: Sequence[str]) -> Any: ...
    def get_facets(self, resultset: Any) -> Dict[str, Dict[str, int]]: ...
    def get_total_hits(self, resultset: Any) -> int: ...
    def get_documents(self, resultset: Any) -> List[Dict[str, Any]]: ...


CAPABILITIES = (ReadableTTMServer, WritableTTMServer, SearchableTTMServer)


def has_capability(cls_or_obj: Any) -> bool:
    """True when a class or instance implements at least one TTM capability."""
    if isinstance(cls_or_obj, type):
        return any(issubclass(cls_or_obj, cap) for cap in CAPABILITIES)
    return any(isinstance(cls_or_obj, cap) for cap in CAPABILITIES)


def capability_names(cls_or_obj: Any) -> List[str]:
    names = []
    for cap, label in zip(CAPABILITIES, ("readable", "writable", "searchable")):
        check = issubclass if isinstance(cls_or_obj, type) else isinstance
        if check(cls_or_obj, cap):
            names.append(label)
    return names

