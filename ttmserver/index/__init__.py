"""
Search index clients.

Usage:
    from ttmserver.index import create_index_client

    client = create_index_client(url="http://localhost:9200", index="ttmserver")
    client = create_index_client(url="memory://")  # process-local index
"""

from typing import Dict, Optional

from .protocol import IndexClient
from .memory import InMemoryIndexClient
from .http_client import ElasticsearchHttpClient

# memory:// indexes are shared per name so every backend instance of a
# service sees the same documents.
_memory_indexes: Dict[str, InMemoryIndexClient] = {}


def create_index_client(
    url: Optional[str] = None,
    index: str = "ttmserver",
    timeout: float = 10.0,
    use_wikimedia_extra: bool = False,
) -> IndexClient:
    """Factory: memory:// gives a shared in-process index, anything else HTTP."""
    if url and url.startswith("memory://"):
        key = f"{url}/{index}"
        if key not in _memory_indexes:
            _memory_indexes[key] = InMemoryIndexClient(name=index)
        return _memory_indexes[key]
    return ElasticsearchHttpClient(
        url=url or "http://localhost:9200",
        index=index,
        timeout=timeout,
        use_wikimedia_extra=use_wikimedia_extra,
    )


def reset_memory_indexes() -> None:
    """Drop all memory:// indexes (used by tests)."""
    _memory_indexes.clear()


__all__ = [
    "IndexClient",
    "InMemoryIndexClient",
    "ElasticsearchHttpClient",
    "create_index_client",
    "reset_memory_indexes",
]
