"""
Elasticsearch IndexClient over the REST API, using httpx.

Fuzzy candidate discovery relies on the wikimedia "extra" plugin
(fuzzy_like_this filter + levenshtein_distance_score function).
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

import httpx

from ..exceptions import PermanentQueryError, QueryTimeoutError, TransientBackendError
from ..models import Document, Hit, SearchPage, TextSearchQuery, TextSearchResult

logger = logging.getLogger(__name__)

DEFAULT_URL = "http://localhost:9200"


class ElasticsearchHttpClient:
    """
    Talks to one index of an Elasticsearch 6.8 / 7.x cluster.

    The underlying httpx.Client is created lazily and reused.
    """

    def __init__(
        self,
        url: str = DEFAULT_URL,
        index: str = "ttmserver",
        timeout: float = 10.0,
        use_wikimedia_extra: bool = False,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.url = url.rstrip("/")
        self.index = index
        self.timeout = timeout
        self.use_wikimedia_extra = use_wikimedia_extra
        self._transport = transport
        self._client: Optional[httpx.Client] = None

    @property
    def client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(
                base_url=self.url,
                timeout=httpx.Timeout(self.timeout),
                transport=self._transport,
            )
        return self._client

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    # -- transport ----------------------------------------------------------

    def _request(
        self,
        method: str,
        path: str,
        *,
        json_body: Any = None,
        content: Optional[str] = None,
        params: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {"params": params, "headers": headers}
        if json_body is not None:
            kwargs["json"] = json_body
        if content is not None:
            kwargs["content"] = content
        if timeout is not None:
            kwargs["timeout"] = timeout

        try:
            response = self.client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            raise QueryTimeoutError(f"{method} {path} timed out: {e}") from e
        except httpx.RequestError as e:
            raise TransientBackendError(f"{method} {path} failed: {e}") from e

        if response.status_code >= 500 or response.status_code == 429:
            raise TransientBackendError(
                f"{method} {path}: HTTP {response.status_code} {response.text[:200]}"
            )
        if response.status_code >= 400:
            raise PermanentQueryError(
                f"{method} {path}: HTTP {response.status_code} {response.text[:200]}"
            )
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise TransientBackendError(f"{method} {path}: invalid JSON in response") from e

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
        if not self.use_wikimedia_extra:
            raise PermanentQueryError("The wikimedia extra plugin is mandatory.")

        body = {
            "query": {
                "bool": {
                    # Used as filter so the cluster can skip scoring it
                    "filter": [
                        {"fuzzy_like_this": {"like_text": text, "fields": ["content"]}},
                        {"term": {"language": language}},
                    ],
                    "must": [{
                        "function_score": {
                            "functions": [{
                                "levenshtein_distance_score": {"text": text, "field": "content"},
                            }],
                            "boost_mode": "replace",
                        },
                    }],
                },
            },
            "from": offset,
            "size": size,
            "_source": ["content"],
            "min_score": min_score,
            "sort": ["_score", "wiki", "localid"],
        }
        data = self._request("POST", f"/{self.index}/_search", json_body=body, timeout=timeout)
        return SearchPage(hits=self._hits(data), total=self._total(data))

    def get_by_ids(
        self,
        ids: Sequence[str],
        size: int,
        fields: Sequence[str],
        timeout: Optional[float] = None,
    ) -> List[Hit]:
        body = {
            "query": {"terms": {"_id": list(ids)}},
            "size": size,
            "_source": list(fields),
        }
        data = self._request("POST", f"/{self.index}/_search", json_body=body, timeout=timeout)
        return self._hits(data)

    def text_search(self, query: TextSearchQuery, timeout: Optional[float] = None) -> TextSearchResult:
        data = self._request(
            "POST", f"/{self.index}/_search", json_body=self.build_text_search(query), timeout=timeout
        )
        facets: Dict[str, Dict[str, int]] = {"language": {}, "group": {}}
        for facet, info in data.get("aggregations", {}).items():
            for bucket in info.get("buckets", []):
                facets.setdefault(facet, {})[bucket["key"]] = bucket["doc_count"]
        return TextSearchResult(hits=self._hits(data), total=self._total(data), facets=facets)

    @staticmethod
    def build_text_search(query: TextSearchQuery) -> Dict[str, Any]:
        """Translate a parsed search into a bool query with facets and highlighting."""
        occur = "must" if query.match == "all" else "should"
        clauses: Dict[str, List[Any]] = {"must": [], "should": []}
        highlights: Dict[str, Any] = {}

        for analyzer, words in query.fields.items():
            for word in words:
                clauses[occur].append({
                    "bool": {"should": [
                        {"match": {analyzer: word}},
                        {"term": {"localid": word}},
                    ]},
                })
                highlights[analyzer] = {"number_of_fragments": 0}

        for location in query.locations:
            clauses["should"].append({"bool": {"must": [{"term": {"localid": location}}]}})

        body: Dict[str, Any] = {
            "query": {"bool": {k: v for k, v in clauses.items() if v}},
            "aggs": {
                "language": {"terms": {"field": "language", "size": 500}},
                "group": {"terms": {"field": "group", "size": 500}},
            },
            "size": query.limit,
            "from": query.offset,
        }

        filters = []
        if query.language:
            filters.append({"term": {"language": query.language}})
        if query.group:
            filters.append({"term": {"group": query.group}})
        if filters:
            body["post_filter"] = {"bool": {"filter": filters}}

        pre, post = query.highlight
        body["highlight"] = {"pre_tags": [pre], "post_tags": [post], "fields": highlights}
        return body

    @staticmethod
    def _hits(data: Mapping[str, Any]) -> List[Hit]:
        return [
            Hit(
                id=h["_id"],
                score=float(h.get("_score") or 0.0),
                source=h.get("_source", {}),
                highlights=h.get("highlight", {}),
            )
            for h in data.get("hits", {}).get("hits", [])
        ]

    @staticmethod
    def _total(data: Mapping[str, Any]) -> int:
        total = data.get("hits", {}).get("total", 0)
        # 7.x reports {"value": n, "relation": "eq"}
        if isinstance(total, dict):
            return int(total.get("value", 0))
        return int(total)

    # -- write --------------------------------------------------------------

    def bulk_index(self, documents: Sequence[Document], timeout: Optional[float] = None) -> None:
        if not documents:
            return
        lines = []
        for doc in documents:
            lines.append(json.dumps({"index": {"_index": self.index, "_id": doc.id}}))
            lines.append(json.dumps(doc.source, ensure_ascii=False))
        payload = "\n".join(lines) + "\n"

        data = self._request(
            "POST", "/_bulk",
            content=payload,
            headers={"Content-Type": "application/x-ndjson"},
            timeout=timeout,
        )
        if data.get("errors"):
            failed = [
                item.get("index", {}).get("error")
                for item in data.get("items", [])
                if item.get("index", {}).get("error")
            ]
            raise TransientBackendError(f"Bulk index rejected {len(failed)} document(s): {failed[:3]}")

    def delete_by_terms(self, terms: Mapping[str, Any], timeout: Optional[float] = None) -> int:
        body = {"query": {"bool": {"filter": [{"term": {k: v}} for k, v in terms.items()]}}}
        data = self._request(
            "POST", f"/{self.index}/_delete_by_query",
            json_body=body,
            params={"conflicts": "proceed"},
            timeout=timeout,
        )
        return int(data.get("deleted", 0))

    # -- administration -----------------------------------------------------

    def exists(self, timeout: Optional[float] = None) -> bool:
        kwargs: Dict[str, Any] = {} if timeout is None else {"timeout": timeout}
        try:
            response = self.client.head(f"/{self.index}", **kwargs)
        except httpx.TimeoutException as e:
            raise QueryTimeoutError(f"HEAD /{self.index} timed out: {e}") from e
        except httpx.RequestError as e:
            raise TransientBackendError(f"HEAD /{self.index} failed: {e}") from e
        return response.status_code == 200

    def create_index(self, settings: Dict[str, Any], rebuild: bool = False, timeout: Optional[float] = None) -> None:
        if rebuild and self.exists(timeout=timeout):
            self._request("DELETE", f"/{self.index}", timeout=timeout)
        self._request("PUT", f"/{self.index}", json_body=settings, timeout=timeout)

    def put_mapping(self, properties: Dict[str, Any], timeout: Optional[float] = None) -> None:
        self._request(
            "PUT", f"/{self.index}/_mapping", json_body={"properties": properties}, timeout=timeout
        )

    def set_refresh_interval(self, interval: str, timeout: Optional[float] = None) -> None:
        self._request(
            "PUT", f"/{self.index}/_settings",
            json_body={"index": {"refresh_interval": interval}},
            timeout=timeout,
        )

    def refresh(self, timeout: Optional[float] = None) -> None:
        self._request("POST", f"/{self.index}/_refresh", timeout=timeout)

    def force_merge(self, timeout: Optional[float] = None) -> None:
        self._request("POST", f"/{self.index}/_forcemerge", timeout=timeout)

    def cluster_health(self, timeout: Optional[float] = None) -> Dict[str, Any]:
        params = None
        if timeout:
            params = {"wait_for_status": "green", "timeout": f"{int(timeout)}s"}
        return self._request(
            "GET", f"/_cluster/health/{self.index}",
            params=params,
            timeout=(timeout + 10) if timeout else None,
        )

    def version(self, timeout: Optional[float] = None) -> str:
        data = self._request("GET", "/", timeout=timeout)
        try:
            return data["version"]["number"]
        except (KeyError, TypeError):
            raise TransientBackendError("Unable to determine elasticsearch version")
