"""
In-memory IndexClient (single process only).

Mimics the subset of search engine behaviour the translation memory needs,
so that development setups and tests run without a cluster. Fuzzy scores
come from difflib.SequenceMatcher on normalized text.
"""

from __future__ import annotations

import logging
import re
import threading
from collections import Counter
from difflib import SequenceMatcher
from typing import Any, Dict, List, Mapping, Optional, Sequence

from ..models import Document, Hit, SearchPage, TextSearchQuery, TextSearchResult

logger = logging.getLogger(__name__)

_WORD = re.compile(r"\w+", re.UNICODE)


def normalize_text(text: str) -> str:
    """Lowercase and collapse whitespace."""
    return re.sub(r"\s+", " ", text.lower().strip())


def similarity(a: str, b: str) -> float:
    """Ratcliff/Obershelp ratio of two normalized strings, in [0, 1]."""
    return SequenceMatcher(None, normalize_text(a), normalize_text(b)).ratio()


class InMemoryIndexClient:
    """Dict-based index. Documents are stored by id, newest write wins."""

    def __init__(self, name: str = "ttmserver"):
        self.name = name
        self._docs: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()
        self._exists = False
        self.settings: Dict[str, Any] = {}
        self.mapping: Dict[str, Any] = {}
        self.refresh_interval = "1s"
        # Administrative calls in order, for inspection
        self.operations: List[str] = []
        # Last timeout seen per administrative call
        self.admin_timeouts: Dict[str, Optional[float]] = {}

    # -- read ---------------------------------------------------------------

    def fuzzy_search(
        self,
        text: str,
        language: str,
        min_score: float,
        offset: int,
        size: int,
        timeout: Optional[float] = None,
    ) -> SearchPage:
        with self._lock:
            snapshot = dict(self._docs)

        scored = []
        for doc_id, source in snapshot.items():
            if source.get("language") != language:
                continue
            score = similarity(text, source.get("content", ""))
            if score >= min_score:
                scored.append(Hit(id=doc_id, score=score, source={"content": source.get("content", "")}))

        # Same ordering as the real query: score, then wiki, then localid
        scored.sort(key=lambda h: (
            -h.score,
            snapshot[h.id].get("wiki", ""),
            snapshot[h.id].get("localid", ""),
        ))
        return SearchPage(hits=scored[offset:offset + size], total=len(scored))

    def get_by_ids(
        self,
        ids: Sequence[str],
        size: int,
        fields: Sequence[str],
        timeout: Optional[float] = None,
    ) -> List[Hit]:
        wanted = set(ids)
        hits = []
        with self._lock:
            for doc_id, source in self._docs.items():
                if doc_id in wanted:
                    hits.append(Hit(
                        id=doc_id,
                        score=1.0,
                        source={f: source.get(f) for f in fields},
                    ))
                    if len(hits) >= size:
                        break
        return hits

    def text_search(self, query: TextSearchQuery, timeout: Optional[float] = None) -> TextSearchResult:
        with self._lock:
            docs = list(self._docs.items())

        matched = []
        for doc_id, source in docs:
            results = [
                self._word_matches(analyzer, word, source)
                for analyzer, words in query.fields.items()
                for word in words
            ]
            by_location = source.get("localid") in query.locations
            if query.match == "all":
                ok = (bool(results) and all(results)) or (not results and by_location)
            else:
                ok = any(results) or by_location
            if ok:
                matched.append((doc_id, source))

        # Facets are computed before the post filter, like aggregations
        facets: Dict[str, Dict[str, int]] = {
            "language": dict(Counter(s.get("language", "") for _, s in matched)),
            "group": dict(Counter(g for _, s in matched for g in s.get("group", []))),
        }

        filtered = [
            (doc_id, source) for doc_id, source in matched
            if (not query.language or source.get("language") == query.language)
            and (not query.group or query.group in source.get("group", []))
        ]

        page = filtered[query.offset:query.offset + query.limit]
        hits = [
            Hit(id=doc_id, score=1.0, source=dict(source), highlights=self._highlight(query, source))
            for doc_id, source in page
        ]
        return TextSearchResult(hits=hits, total=len(filtered), facets=facets)

    @staticmethod
    def _word_matches(analyzer: str, word: str, source: Mapping[str, Any]) -> bool:
        if source.get("localid") == word:
            return True
        content = source.get("content", "")
        if analyzer == "content.case_sensitive":
            return word in _WORD.findall(content)
        tokens = [t.lower() for t in _WORD.findall(content)]
        if analyzer == "content.prefix_complete":
            return any(t.startswith(word.lower()) for t in tokens)
        return word.lower() in tokens

    @staticmethod
    def _highlight(query: TextSearchQuery, source: Mapping[str, Any]) -> Dict[str, List[str]]:
        pre, post = query.highlight
        if not pre and not post:
            return {}
        highlights = {}
        content = source.get("content", "")
        for analyzer, words in query.fields.items():
            flags = 0 if analyzer == "content.case_sensitive" else re.IGNORECASE
            marked = content
            for word in words:
                suffix = r"\w*" if analyzer == "content.prefix_complete" else r"\b"
                marked = re.sub(
                    r"\b(" + re.escape(word) + suffix + ")",
                    lambda m: f"{pre}{m.group(1)}{post}",
                    marked,
                    flags=flags,
                )
            if marked != content:
                highlights[analyzer] = [marked]
        return highlights

    # -- write --------------------------------------------------------------

    def bulk_index(self, documents: Sequence[Document], timeout: Optional[float] = None) -> None:
        with self._lock:
            for doc in documents:
                self._docs[doc.id] = dict(doc.source)
        self._exists = True

    def delete_by_terms(self, terms: Mapping[str, Any], timeout: Optional[float] = None) -> int:
        with self._lock:
            doomed = [
                doc_id for doc_id, source in self._docs.items()
                if all(source.get(k) == v for k, v in terms.items())
            ]
            for doc_id in doomed:
                del self._docs[doc_id]
        return len(doomed)

    # -- administration -----------------------------------------------------

    def _admin(self, operation: str, timeout: Optional[float]) -> None:
        self.operations.append(operation)
        self.admin_timeouts[operation.split(":", 1)[0]] = timeout

    def exists(self, timeout: Optional[float] = None) -> bool:
        return self._exists

    def create_index(self, settings: Dict[str, Any], rebuild: bool = False, timeout: Optional[float] = None) -> None:
        self._admin("create_index:rebuild" if rebuild else "create_index", timeout)
        if rebuild:
            with self._lock:
                self._docs.clear()
        self.settings = settings
        self._exists = True

    def put_mapping(self, properties: Dict[str, Any], timeout: Optional[float] = None) -> None:
        self._admin("put_mapping", timeout)
        self.mapping = properties

    def set_refresh_interval(self, interval: str, timeout: Optional[float] = None) -> None:
        self._admin(f"refresh_interval:{interval}", timeout)
        self.refresh_interval = interval

    def refresh(self, timeout: Optional[float] = None) -> None:
        self._admin("refresh", timeout)

    def force_merge(self, timeout: Optional[float] = None) -> None:
        self._admin("force_merge", timeout)

    def cluster_health(self, timeout: Optional[float] = None) -> Dict[str, Any]:
        return {"status": "green" if self._exists else "yellow", "index": self.name}

    def version(self, timeout: Optional[float] = None) -> str:
        return "7.10.2"

    def close(self) -> None:
        pass

    # -- inspection ---------------------------------------------------------

    def get(self, doc_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            source = self._docs.get(doc_id)
            return dict(source) if source is not None else None

    def all_documents(self) -> Dict[str, Dict[str, Any]]:
        with self._lock:
            return {k: dict(v) for k, v in self._docs.items()}

    def __len__(self) -> int:
        return len(self._docs)
