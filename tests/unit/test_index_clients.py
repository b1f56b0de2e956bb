"""
Unit tests for ttmserver/index: the in-memory index and the Elasticsearch
HTTP client (against httpx.MockTransport).
"""

import json

import httpx
import pytest

from ttmserver.exceptions import PermanentQueryError, QueryTimeoutError, TransientBackendError
from ttmserver.index import (
    ElasticsearchHttpClient,
    InMemoryIndexClient,
    create_index_client,
    reset_memory_indexes,
)
from ttmserver.index.memory import normalize_text, similarity
from ttmserver.models import Document, TextSearchQuery


DOCS = [
    Document("w-Foo-1/en", {"wiki": "w", "localid": "Foo", "language": "en", "content": "Hello world", "group": ["g1"]}),
    Document("w-Foo-1/de", {"wiki": "w", "localid": "Foo", "language": "de", "content": "Hallo Welt", "group": ["g1"]}),
    Document("w-Bar-1/en", {"wiki": "w", "localid": "Bar", "language": "en", "content": "Goodbye world", "group": ["g2"]}),
    Document("x-Baz-1/en", {"wiki": "x", "localid": "Baz", "language": "en", "content": "Nothing alike", "group": []}),
]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def index():
    client = InMemoryIndexClient()
    client.bulk_index(DOCS)
    return client


class Recorder:
    """MockTransport handler replaying one response and keeping the requests."""

    def __init__(self, status_code=200, body=None, raises=None):
        self.status_code = status_code
        self.body = body if body is not None else {}
        self.raises = raises
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.raises is not None:
            raise self.raises(request)
        return httpx.Response(self.status_code, json=self.body)

    @property
    def last_json(self):
        return json.loads(self.requests[-1].content)


def _es(handler, use_wikimedia_extra=True) -> ElasticsearchHttpClient:
    return ElasticsearchHttpClient(
        url="http://es.example:9200",
        index="ttm",
        use_wikimedia_extra=use_wikimedia_extra,
        transport=httpx.MockTransport(handler),
    )


# ---------------------------------------------------------------------------
# In-memory index
# ---------------------------------------------------------------------------

class TestSimilarity:
    def test_normalize(self):
        assert normalize_text("  Hello \n  World ") == "hello world"

    def test_identical_after_normalization(self):
        assert similarity("Hello  World", "hello world") == 1.0

    def test_range(self):
        assert 0.0 <= similarity("abc", "xyz") < 0.5


class TestMemoryFuzzySearch:
    def test_filters_language_and_score(self, index):
        page = index.fuzzy_search("Hello world", language="en", min_score=0.9, offset=0, size=10)
        assert [h.id for h in page.hits] == ["w-Foo-1/en"]
        assert page.total == 1
        assert page.hits[0].score == 1.0
        assert page.hits[0].source == {"content": "Hello world"}

    def test_sorted_by_score(self, index):
        page = index.fuzzy_search("Hello world", language="en", min_score=0.3, offset=0, size=10)
        scores = [h.score for h in page.hits]
        assert scores == sorted(scores, reverse=True)
        assert page.hits[0].id == "w-Foo-1/en"

    def test_offset_and_size(self, index):
        full = index.fuzzy_search("world", language="en", min_score=0.0, offset=0, size=10)
        page = index.fuzzy_search("world", language="en", min_score=0.0, offset=1, size=1)
        assert len(page) == 1
        assert page.hits[0].id == full.hits[1].id
        assert page.total == full.total


class TestMemoryLookupAndWrites:
    def test_get_by_ids(self, index):
        hits = index.get_by_ids(["w-Foo-1/de", "missing"], size=25, fields=["content", "localid"])
        assert len(hits) == 1
        assert hits[0].source == {"content": "Hallo Welt", "localid": "Foo"}

    def test_get_by_ids_capped(self, index):
        hits = index.get_by_ids([d.id for d in DOCS], size=2, fields=["content"])
        assert len(hits) == 2

    def test_newest_write_wins(self, index):
        index.bulk_index([Document("w-Foo-1/de", {"language": "de", "content": "Servus Welt"})])
        assert index.get("w-Foo-1/de")["content"] == "Servus Welt"
        assert len(index) == 4

    def test_delete_by_terms(self, index):
        assert index.delete_by_terms({"wiki": "w", "language": "de", "localid": "Foo"}) == 1
        assert index.get("w-Foo-1/de") is None
        assert index.delete_by_terms({"wiki": "w"}) == 2
        assert list(index.all_documents()) == ["x-Baz-1/en"]

    def test_exists_and_health(self):
        client = InMemoryIndexClient()
        assert not client.exists()
        assert client.cluster_health()["status"] == "yellow"
        client.create_index({}, rebuild=False)
        assert client.exists()
        assert client.cluster_health()["status"] == "green"

    def test_rebuild_drops_documents(self, index):
        index.create_index({"settings": {}}, rebuild=True)
        assert len(index) == 0
        assert index.operations == ["create_index:rebuild"]


class TestMemoryTextSearch:
    def test_match_all(self, index):
        result = index.text_search(TextSearchQuery(fields={"content": ["world"]}))
        assert sorted(h.id for h in result.hits) == ["w-Bar-1/en", "w-Foo-1/en"]
        assert result.total == 2
        assert result.facets["language"] == {"en": 2}
        assert result.facets["group"] == {"g1": 1, "g2": 1}

    def test_post_filters_keep_facets(self, index):
        result = index.text_search(TextSearchQuery(fields={"content": ["world"]}, group="g2"))
        assert result.total == 1
        assert result.hits[0].id == "w-Bar-1/en"
        assert result.facets["group"] == {"g1": 1, "g2": 1}

    def test_match_any(self, index):
        query = TextSearchQuery(fields={"content": ["hallo", "goodbye"]}, match="any")
        assert index.text_search(query).total == 2

    def test_prefix_and_highlight(self, index):
        query = TextSearchQuery(fields={"content.prefix_complete": ["Good"]}, highlight=("<b>", "</b>"))
        result = index.text_search(query)
        assert result.total == 1
        assert result.hits[0].highlights["content.prefix_complete"] == ["<b>Goodbye</b> world"]

    def test_case_sensitive(self, index):
        assert index.text_search(TextSearchQuery(fields={"content.case_sensitive": ["hello"]})).total == 0
        assert index.text_search(TextSearchQuery(fields={"content.case_sensitive": ["Hello"]})).total == 1

    def test_location_match(self, index):
        query = TextSearchQuery(fields={}, locations=["Foo"])
        assert index.text_search(query).total == 2

    def test_limit_offset(self, index):
        query = TextSearchQuery(fields={"content": ["world"]}, limit=1, offset=1)
        result = index.text_search(query)
        assert len(result.hits) == 1
        assert result.total == 2


class TestCreateIndexClient:
    def test_memory_indexes_shared_by_name(self):
        a = create_index_client(url="memory://", index="ttm")
        b = create_index_client(url="memory://", index="ttm")
        c = create_index_client(url="memory://", index="other")
        assert a is b
        assert a is not c

    def test_reset(self):
        a = create_index_client(url="memory://")
        reset_memory_indexes()
        assert create_index_client(url="memory://") is not a

    def test_http_client(self):
        client = create_index_client(url="http://es.example:9200", index="ttm", use_wikimedia_extra=True)
        assert isinstance(client, ElasticsearchHttpClient)
        assert client.use_wikimedia_extra


# ---------------------------------------------------------------------------
# Elasticsearch HTTP client
# ---------------------------------------------------------------------------

SEARCH_RESPONSE = {
    "hits": {
        "total": {"value": 2, "relation": "eq"},
        "hits": [
            {"_id": "w-Foo-1/en", "_score": 0.9, "_source": {"content": "Hello world"}},
            {"_id": "w-Bar-1/en", "_score": 0.7, "_source": {"content": "Hello"}},
        ],
    },
}


class TestHttpFuzzySearch:
    def test_requires_wikimedia_extra(self):
        recorder = Recorder()
        client = _es(recorder, use_wikimedia_extra=False)
        with pytest.raises(PermanentQueryError, match="extra plugin"):
            client.fuzzy_search("Hello", language="en", min_score=0.65, offset=0, size=100)
        assert recorder.requests == []

    def test_request_body(self):
        recorder = Recorder(body=SEARCH_RESPONSE)
        page = _es(recorder).fuzzy_search("Hello", language="en", min_score=0.65, offset=100, size=500)

        request = recorder.requests[0]
        assert request.method == "POST"
        assert request.url.path == "/ttm/_search"
        body = recorder.last_json
        assert body["min_score"] == 0.65
        assert body["from"] == 100
        assert body["size"] == 500
        assert {"term": {"language": "en"}} in body["query"]["bool"]["filter"]
        assert body["sort"] == ["_score", "wiki", "localid"]

        assert page.total == 2
        assert [h.score for h in page.hits] == [0.9, 0.7]

    def test_integer_total(self):
        body = {"hits": {"total": 5, "hits": []}}
        page = _es(Recorder(body=body)).fuzzy_search("x", language="en", min_score=0.5, offset=0, size=1)
        assert page.total == 5


class TestHttpWrites:
    def test_get_by_ids(self):
        recorder = Recorder(body=SEARCH_RESPONSE)
        hits = _es(recorder).get_by_ids(["w-Foo-1/de"], size=25, fields=["content"])
        assert recorder.last_json["query"] == {"terms": {"_id": ["w-Foo-1/de"]}}
        assert recorder.last_json["_source"] == ["content"]
        assert len(hits) == 2

    def test_bulk_index_ndjson(self):
        recorder = Recorder(body={"errors": False, "items": []})
        _es(recorder).bulk_index([Document("w-Foo-1/de", {"content": "Hallo"})])

        request = recorder.requests[0]
        assert request.url.path == "/_bulk"
        assert request.headers["content-type"] == "application/x-ndjson"
        lines = request.content.decode("utf-8").strip().split("\n")
        assert json.loads(lines[0]) == {"index": {"_index": "ttm", "_id": "w-Foo-1/de"}}
        assert json.loads(lines[1]) == {"content": "Hallo"}

    def test_bulk_index_empty_is_noop(self):
        recorder = Recorder()
        _es(recorder).bulk_index([])
        assert recorder.requests == []

    def test_bulk_item_errors(self):
        body = {"errors": True, "items": [{"index": {"error": {"type": "mapper_parsing_exception"}}}]}
        with pytest.raises(TransientBackendError, match="rejected 1 document"):
            _es(Recorder(body=body)).bulk_index([Document("a/de", {"content": "x"})])

    def test_delete_by_terms(self):
        recorder = Recorder(body={"deleted": 3})
        deleted = _es(recorder).delete_by_terms({"wiki": "w", "language": "de"})
        assert deleted == 3
        assert recorder.requests[0].url.params["conflicts"] == "proceed"
        assert recorder.last_json["query"]["bool"]["filter"] == [
            {"term": {"wiki": "w"}},
            {"term": {"language": "de"}},
        ]


class TestHttpErrors:
    @pytest.mark.parametrize("status", [500, 503, 429])
    def test_server_errors_are_transient(self, status):
        with pytest.raises(TransientBackendError):
            _es(Recorder(status_code=status)).get_by_ids(["a"], size=1, fields=["content"])

    def test_client_errors_are_permanent(self):
        with pytest.raises(PermanentQueryError):
            _es(Recorder(status_code=400)).get_by_ids(["a"], size=1, fields=["content"])

    def test_invalid_json_is_transient(self):
        es = _es(lambda request: httpx.Response(200, text="<html>proxy login</html>"))
        with pytest.raises(TransientBackendError, match="invalid JSON"):
            es.get_by_ids(["a"], size=1, fields=["content"])

    def test_timeout(self):
        recorder = Recorder(raises=lambda request: httpx.ReadTimeout("slow", request=request))
        with pytest.raises(QueryTimeoutError):
            _es(recorder).get_by_ids(["a"], size=1, fields=["content"])

    def test_connection_error(self):
        recorder = Recorder(raises=lambda request: httpx.ConnectError("refused", request=request))
        with pytest.raises(TransientBackendError):
            _es(recorder).refresh()


class TestHttpAdministration:
    def test_version(self):
        assert _es(Recorder(body={"version": {"number": "7.10.2"}})).version() == "7.10.2"

    def test_version_missing(self):
        with pytest.raises(TransientBackendError):
            _es(Recorder(body={"name": "node"})).version()

    def test_refresh_interval(self):
        recorder = Recorder(body={"acknowledged": True})
        _es(recorder).set_refresh_interval("-1")
        assert recorder.requests[0].method == "PUT"
        assert recorder.requests[0].url.path == "/ttm/_settings"
        assert recorder.last_json == {"index": {"refresh_interval": "-1"}}

    @pytest.mark.parametrize("call", [
        lambda es: es.refresh(timeout=3600),
        lambda es: es.force_merge(timeout=3600),
        lambda es: es.put_mapping({}, timeout=3600),
        lambda es: es.set_refresh_interval("5s", timeout=3600),
        lambda es: es.create_index({}, timeout=3600),
    ])
    def test_admin_timeout_reaches_request(self, call):
        recorder = Recorder(body={"acknowledged": True})
        call(_es(recorder))
        assert recorder.requests[-1].extensions["timeout"]["read"] == 3600

    def test_admin_default_timeout(self):
        recorder = Recorder(body={"acknowledged": True})
        _es(recorder).refresh()
        assert recorder.requests[0].extensions["timeout"]["read"] == 10.0

    def test_cluster_health_waits_for_green(self):
        recorder = Recorder(body={"status": "green"})
        assert _es(recorder).cluster_health(timeout=60)["status"] == "green"
        params = recorder.requests[0].url.params
        assert params["wait_for_status"] == "green"
        assert params["timeout"] == "60s"

    def test_text_search_facets(self):
        body = {
            "hits": {"total": {"value": 1}, "hits": [{"_id": "a/en", "_score": 1.0, "_source": {"content": "x"}}]},
            "aggregations": {"language": {"buckets": [{"key": "en", "doc_count": 1}]}},
        }
        recorder = Recorder(body=body)
        result = _es(recorder).text_search(TextSearchQuery(fields={"content": ["x"]}, language="en"))
        assert result.total == 1
        assert result.facets == {"language": {"en": 1}, "group": {}}
        assert recorder.last_json["post_filter"] == {"bool": {"filter": [{"term": {"language": "en"}}]}}
