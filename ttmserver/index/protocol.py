"""
IndexClient protocol: the contract every search index client must satisfy.

The client hides the wire protocol of the search engine. Backends only use
these operations:

    page = client.fuzzy_search("Hello", language="en", min_score=0.65, offset=0, size=100)
    hits = client.get_by_ids(["wiki-Foo-1/de"], size=25, fields=["content"])
    client.bulk_index(docs)
    client.delete_by_terms({"wiki": "w", "language": "de", "localid": "Foo"})

Every call accepts an optional ``timeout`` in seconds.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence, runtime_checkable

from ..models import Document, Hit, SearchPage, TextSearchQuery, TextSearchResult


@runtime_checkable
class IndexClient(Protocol):
    """Search/bulk-write/cluster-health operations on one index."""

    # -- read ---------------------------------------------------------------

    def fuzzy_search(
        self,
        text: str,
        language: str,
        min_score: float,
        offset: int,
        size: int,
        timeout: Optional[float] = None,
    ) -> SearchPage: ...

    def get_by_ids(
        self,
        ids: Sequence[str],
        size: int,
        fields: Sequence[str],
        timeout: Optional[float] = None,
    ) -> List[Hit]: ...

    def text_search(self, query: TextSearchQuery, timeout: Optional[float] = None) -> TextSearchResult: ...

    # -- write --------------------------------------------------------------

    def bulk_index(self, documents: Sequence[Document], timeout: Optional[float] = None) -> None: ...

    def delete_by_terms(self, terms: Mapping[str, Any], timeout: Optional[float] = None) -> int: ...

    # -- administration -----------------------------------------------------

    def exists(self, timeout: Optional[float] = None) -> bool: ...
    def create_index(self, settings: Dict[str, Any], rebuild: bool = False, timeout: Optional[float] = None) -> None: ...
    def put_mapping(self, properties: Dict[str, Any], timeout: Optional[float] = None) -> None: ...
    def set_refresh_interval(self, interval: str, timeout: Optional[float] = None) -> None: ...
    def refresh(self, timeout: Optional[float] = None) -> None: ...
    def force_merge(self, timeout: Optional[float] = None) -> None: ...
    def cluster_health(self, timeout: Optional[float] = None) -> Dict[str, Any]: ...
    def version(self, timeout: Optional[float] = None) -> str: ...
    def close(self) -> None: ...
