"""
Search-index translation memory backend.

Readable, writable and searchable. Suggestions come from FuzzyMatchEngine;
writes keep one document per (wiki, language, location).
"""

import logging
import re
import time
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from ..base import TTMServer
from ..exceptions import PermanentQueryError, TransientBackendError
from ..fuzzy import FuzzyMatchEngine
from ..index import create_index_client
from ..index.protocol import IndexClient
from ..models import (
    BackendConfig, Document, Suggestion, TextSearchQuery, TextSearchResult,
    TranslationUnit, UpdateResult,
)
from ..retry import with_retry

logger = logging.getLogger(__name__)

SUPPORTED_VERSIONS = ("6.8", "7.")

INDEX_PROPERTIES = {
    "wiki": {"type": "keyword"},
    "localid": {"type": "keyword"},
    "uri": {"type": "keyword"},
    "language": {"type": "keyword"},
    "group": {"type": "keyword"},
    "content": {
        "type": "text",
        "fields": {
            "content": {"type": "text", "term_vector": "yes"},
            "prefix_complete": {
                "type": "text",
                "analyzer": "prefix",
                "search_analyzer": "standard",
                "term_vector": "yes",
            },
            "case_sensitive": {"type": "text", "analyzer": "casesensitive", "term_vector": "yes"},
        },
    },
}


class ElasticTTMServer(TTMServer):
    """
    Translation memory stored in a search index.

    Document ids are ``<wiki>-<location>-<revision>/<language>``; deletes go
    by the (wiki, language, localid) triple so that stale revisions never
    accumulate.
    """

    def __init__(
        self,
        config: BackendConfig,
        wiki_id: str = "default",
        client: Optional[IndexClient] = None,
        timeout: float = 10.0,
        admin_timeout: float = 3600.0,
        bulk_retry_attempts: int = 5,
        bulk_retry_delay: float = 10.0,
        first_page_size: int = 100,
        escalation_factor: int = 5,
        distinct_scores: int = 6,
        lookup_size: int = 25,
        sleep: Callable[[float], None] = time.sleep,
    ):
        super().__init__(config, wiki_id)
        self._client = client
        self.timeout = config.timeout or timeout
        self.admin_timeout = admin_timeout
        self.bulk_retry_attempts = bulk_retry_attempts
        self.bulk_retry_delay = bulk_retry_delay
        self._engine_options = {
            "first_page_size": first_page_size,
            "escalation_factor": escalation_factor,
            "distinct_scores": distinct_scores,
            "lookup_size": lookup_size,
        }
        self._engine: Optional[FuzzyMatchEngine] = None
        self._sleep = sleep
        self.update_mapping = False

    @property
    def client(self) -> IndexClient:
        """Get or create the index client."""
        if self._client is None:
            self._client = create_index_client(
                url=self.config.url,
                index=self.config.index,
                timeout=self.timeout,
                use_wikimedia_extra=self.config.use_wikimedia_extra,
            )
        return self._client

    @property
    def engine(self) -> FuzzyMatchEngine:
        if self._engine is None:
            self._engine = FuzzyMatchEngine(
                self.client,
                cutoff=self.config.cutoff,
                timeout=self.timeout,
                **self._engine_options,
            )
        return self._engine

    # ==================== READ ====================

    def query(self, source_language: str, target_language: str, text: str) -> List[Suggestion]:
        return self.engine.query(source_language, target_language, text)

    def expand_location(self, suggestion: Suggestion) -> str:
        return suggestion.uri

    # ==================== WRITE ====================

    def update(self, unit: TranslationUnit) -> UpdateResult:
        """
        Apply one translation change.

        A new, updated or fuzzied translation first removes the stored one;
        the definition is never deleted because translations hang off it.
        """
        if not unit.is_valid:
            return UpdateResult.skipped("invalid unit")

        try:
            if not unit.is_definition:
                self.client.delete_by_terms(
                    {"wiki": self.wiki_id, "language": unit.language, "localid": unit.location},
                    timeout=self.timeout,
                )

            # Fuzzy translation: nothing more to add
            if unit.text is None:
                return UpdateResult.applied()

            if unit.source_language is None:
                return UpdateResult.applied()

            doc = self.create_document(unit)
            self._with_retry(lambda: self.client.bulk_index([doc], timeout=self.timeout), "update")
        except TransientBackendError as e:
            logger.warning("%s: update of %s failed: %s", self.name, unit.title, e)
            return UpdateResult.failure(str(e))

        return UpdateResult.applied()

    def create_document(self, unit: TranslationUnit) -> Document:
        source = {
            "wiki": self.wiki_id,
            "uri": unit.uri,
            "localid": unit.location,
            "language": unit.language,
            "content": unit.text,
            "group": list(unit.groups),
        }
        doc_unit = unit if unit.wiki == self.wiki_id else TranslationUnit(
            location=unit.location,
            language=unit.language,
            text=unit.text,
            source_language=unit.source_language,
            revision_id=unit.revision_id,
            wiki=self.wiki_id,
            uri=unit.uri,
            groups=unit.groups,
        )
        return Document(id=doc_unit.document_id(), source=source)

    def _with_retry(self, func: Callable[[], Any], what: str) -> Any:
        def on_error(error: TransientBackendError, attempt: int) -> None:
            logger.warning(
                "%s: %s failed (%s: %s), attempt %d/%d",
                self.name, what, error.__class__.__name__, error, attempt, self.bulk_retry_attempts,
            )

        return with_retry(
            func,
            attempts=self.bulk_retry_attempts,
            delay=self.bulk_retry_delay,
            on_error=on_error,
            sleep=self._sleep,
        )

    # ==================== BOOTSTRAP ====================

    def create_index(self, rebuild: bool) -> None:
        """Create the index, deleting it first when ``rebuild``."""
        index_settings: Dict[str, Any] = {
            "settings": {
                "index": {
                    "number_of_shards": self.config.shards,
                    "analysis": {
                        "filter": {
                            "prefix_filter": {"type": "edge_ngram", "min_gram": 2, "max_gram": 20},
                        },
                        "analyzer": {
                            "prefix": {
                                "type": "custom",
                                "tokenizer": "standard",
                                "filter": ["lowercase", "prefix_filter"],
                            },
                            "casesensitive": {"tokenizer": "standard"},
                        },
                    },
                },
            },
        }
        replicas = self.config.replicas
        if "-" in replicas:
            index_settings["settings"]["index"]["auto_expand_replicas"] = replicas
        else:
            index_settings["settings"]["index"]["number_of_replicas"] = int(replicas)

        self.client.create_index(index_settings, rebuild=rebuild, timeout=self.admin_timeout)

    def check_version(self) -> str:
        version = self.client.version(timeout=self.admin_timeout)
        if not version.startswith(SUPPORTED_VERSIONS):
            raise PermanentQueryError(
                f"Only Elasticsearch 6.8.x and 7.x are supported. Your version: {version}."
            )
        return version

    def begin_bootstrap(self) -> None:
        self.check_version()
        if self.update_mapping:
            logger.info("%s: updating the index mappings...", self.name)
            self.create_index(True)
        elif not self.client.exists(timeout=self.admin_timeout):
            self.create_index(False)

        # Refresh stays off for the whole bulk load
        self.client.set_refresh_interval("-1", timeout=self.admin_timeout)
        deleted = self.client.delete_by_terms({"wiki": self.wiki_id}, timeout=self.admin_timeout)
        logger.info("%s: removed %d documents of %s", self.name, deleted, self.wiki_id)
        self.client.put_mapping(INDEX_PROPERTIES, timeout=self.admin_timeout)
        self.wait_until_ready()

    def begin_batch(self) -> None:
        pass

    def batch_insert_definitions(self, batch: Sequence[TranslationUnit]) -> None:
        self.batch_insert_translations(batch)

    def batch_insert_translations(self, batch: Sequence[TranslationUnit]) -> None:
        docs = [self.create_document(unit) for unit in batch if unit.text is not None]
        if not docs:
            return
        self._with_retry(
            lambda: self.client.bulk_index(docs, timeout=self.admin_timeout),
            f"batch of {len(docs)}",
        )

    def end_batch(self) -> None:
        pass

    def end_bootstrap(self) -> None:
        self.client.refresh(timeout=self.admin_timeout)
        self.client.force_merge(timeout=self.admin_timeout)
        self.client.set_refresh_interval("5s", timeout=self.admin_timeout)

    def set_do_reindex(self) -> None:
        self.update_mapping = True

    def wait_until_ready(self) -> None:
        """Block until the index is green or the admin timeout expires."""
        logger.info("%s: waiting for the index to go green...", self.name)
        deadline = time.monotonic() + self.admin_timeout
        while True:
            try:
                status = self.client.cluster_health(timeout=self.admin_timeout).get("status", "unknown")
            except TransientBackendError as e:
                logger.warning("%s: error while waiting for green (%s), retrying...", self.name, e)
                status = "unknown"
            if status == "green":
                logger.info("%s: green!", self.name)
                return
            if time.monotonic() >= deadline:
                raise TransientBackendError(
                    f"Timeout! Index {self.config.index} did not go green", service=self.name
                )
            logger.info("%s: index is %s, retrying...", self.name, status)
            self._sleep(5)

    def health(self) -> Dict[str, Any]:
        """Index health without waiting."""
        try:
            data = self.client.cluster_health()
        except TransientBackendError as e:
            return {"status": "unknown", "error": str(e)}
        return {"status": data.get("status", "unknown")}

    # ==================== SEARCH ====================

    def parse_query_string(self, query_string: str, opts: Mapping[str, Any]) -> TextSearchQuery:
        """Map each word to the field that should match it."""
        fields: Dict[str, List[str]] = {}
        locations: List[str] = []
        case_sensitive = str(opts.get("case", "0")) == "1"

        for term in query_string.split():
            prefix = term.split("*", 1)[0] if "*" in term else None
            if prefix:
                fields.setdefault("content.prefix_complete", []).append(prefix)
            elif case_sensitive:
                fields.setdefault("content.case_sensitive", []).append(term)
            else:
                fields.setdefault("content", []).append(term)

            # Exact message title, e.g. "MediaWiki:Foo/de"
            match = re.match(r"^(.+)/([a-z][a-z0-9-]*)$", term)
            if match:
                locations.append(match.group(1))

        return TextSearchQuery(
            fields=fields,
            match=opts.get("match", "all"),
            language=opts.get("language", "") or "",
            group=opts.get("group", "") or "",
            limit=int(opts.get("limit", 25)),
            offset=int(opts.get("offset", 0)),
            locations=locations,
        )

    def search(self, query_string: str, opts: Mapping[str, Any], highlight: Sequence[str]) -> TextSearchResult:
        query = self.parse_query_string(query_string, opts)
        pre, post = (list(highlight) + ["", ""])[:2]
        query.highlight = (pre, post)
        return self.client.text_search(query, timeout=self.timeout)

    def get_facets(self, resultset: TextSearchResult) -> Dict[str, Dict[str, int]]:
        self._assert_resultset(resultset)
        facets = {"language": {}, "group": {}}
        facets.update(resultset.facets)
        return facets

    def get_total_hits(self, resultset: TextSearchResult) -> int:
        self._assert_resultset(resultset)
        return resultset.total

    def get_documents(self, resultset: TextSearchResult) -> List[Dict[str, Any]]:
        """Stored fields, with content replaced by the best highlight."""
        self._assert_resultset(resultset)
        documents = []
        for hit in resultset.hits:
            data = dict(hit.source)
            for analyzer in ("content.prefix_complete", "content.case_sensitive", "content"):
                if hit.highlights.get(analyzer):
                    data["content"] = hit.highlights[analyzer][0]
                    break
            documents.append(data)
        return documents

    @staticmethod
    def _assert_resultset(resultset: Any) -> None:
        if not isinstance(resultset, TextSearchResult):
            raise PermanentQueryError(f"Expected a TextSearchResult, got {type(resultset).__name__}")
