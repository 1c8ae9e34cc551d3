"""Tests for vector_store.client - ChromaHttpClient against a mocked transport."""

import pytest
from unittest.mock import patch

from vector_store.client import ChromaHttpClient, build_where, create_client, ChromaLocalClient, parse_query_response
from vector_store.exceptions import (
    CollectionUnavailableError,
    DimensionMismatchError,
    RecordValidationError,
    VectorStoreError,
)
from vector_store.models import CollectionState, StoreConfig, TrackerMetadata

BASE = "http://chroma:8000/api/v1"
VECTOR = [0.1, 0.2, 0.3]

QUERY_RESPONSE = {
    "ids": [["X-1", "confluence-7"]],
    "documents": [["[id] X-1\n", "[id] confluence-7\n"]],
    "metadatas": [[{"source": "youtrack"}, {"source": "confluence", "title": None}]],
    "distances": [[0.12, 0.34]],
}


class FakeBackend:
    """Routes post_json/get_json calls by URL and records them."""

    def __init__(self):
        self.posts: list[tuple[str, dict]] = []
        self.gets: list[str] = []
        self.existing_ids: list[str] = []
        self.fail_on: set[str] = set()

    def post(self, url, payload, timeout=30):
        self.posts.append((url, payload))
        operation = url.rsplit("/", 1)[-1]
        if operation in self.fail_on:
            raise ConnectionError(f"Cannot reach {url}")
        if operation == "collections":
            return {"id": "col-1", "name": payload["name"]}
        if operation == "get":
            return {"ids": [i for i in payload["ids"] if i in self.existing_ids]}
        if operation == "query":
            return QUERY_RESPONSE
        return {}

    def get(self, url, timeout=30):
        self.gets.append(url)
        if "count" in self.fail_on:
            raise ConnectionError("down")
        return 7

    def calls(self, operation):
        return [payload for url, payload in self.posts if url.rsplit("/", 1)[-1] == operation]


@pytest.fixture
def backend():
    fake = FakeBackend()
    with patch("vector_store.client.post_json", side_effect=fake.post), \
            patch("vector_store.client.get_json", side_effect=fake.get):
        yield fake


@pytest.fixture
def client(backend):
    return ChromaHttpClient(base_url="http://chroma:8000", collection_name="kb", timeout=5.0)


# ---------------------------------------------------------------------------
# Collection lifecycle
# ---------------------------------------------------------------------------

class TestCollectionLifecycle:
    def test_get_or_create_body(self, client, backend):
        handle = client.ensure_collection()

        url, body = backend.posts[0]
        assert url == f"{BASE}/collections"
        assert body == {
            "name": "kb",
            "get_or_create": True,
            "metadata": {"distance_metric": "cosine", "hnsw:space": "cosine"},
        }
        assert handle.id == "col-1"
        assert client.state == CollectionState.READY

    def test_handle_is_cached(self, client, backend):
        client.initialize()
        client.upsert(["X-1"], [VECTOR], ["doc"], [{"source": "youtrack"}])
        client.query(VECTOR, 2)
        assert len(backend.calls("collections")) == 1

    def test_startup_failure_is_deferred(self, client, backend):
        backend.fail_on.add("collections")
        assert client.initialize() is False
        assert client.state == CollectionState.UNINITIALIZED

        backend.fail_on.clear()
        client.upsert(["X-1"], [VECTOR], ["doc"], [{"source": "youtrack"}])
        assert client.state == CollectionState.READY
        assert len(backend.calls("upsert")) == 1

    def test_unavailable_collection_on_mutation(self, client, backend):
        backend.fail_on.add("collections")
        with pytest.raises(CollectionUnavailableError) as exc_info:
            client.upsert(["X-1"], [VECTOR], ["doc"], [{"source": "youtrack"}])
        assert exc_info.value.operation == "upsert"


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------

class TestWrites:
    def test_upsert_body(self, client, backend):
        client.upsert(
            ["X-1"],
            [VECTOR],
            ["[id] X-1\n"],
            [TrackerMetadata(issue_id="X-1", title="Banner fix")],
        )
        body = backend.calls("upsert")[0]
        assert body["ids"] == ["X-1"]
        assert body["embeddings"] == [VECTOR]
        assert body["documents"] == ["[id] X-1\n"]
        assert body["metadatas"][0]["issueId"] == "X-1"
        assert body["metadatas"][0]["assignee"] == ""
        assert backend.posts[-1][0] == f"{BASE}/collections/col-1/upsert"

    def test_add_checks_existing_ids_first(self, client, backend):
        client.add(["conv_1"], [VECTOR], ["[user] hi"], [{"source": "conversation"}])
        assert backend.calls("get") == [{"ids": ["conv_1"], "include": []}]
        assert len(backend.calls("add")) == 1

    def test_add_existing_id_fails_whole_batch(self, client, backend):
        backend.existing_ids = ["b"]
        with pytest.raises(VectorStoreError) as exc_info:
            client.add(["a", "b"], [VECTOR, VECTOR], ["a", "b"], [{"source": "manual"}] * 2)
        assert exc_info.value.ids == ["b"]
        assert backend.calls("add") == []

    def test_mutation_failure_raises(self, client, backend):
        client.initialize()
        backend.fail_on.add("upsert")
        with pytest.raises(VectorStoreError) as exc_info:
            client.upsert(["X-1", "X-2"], [VECTOR, VECTOR], ["a", "b"])
        assert exc_info.value.operation == "upsert"
        assert exc_info.value.ids == ["X-1", "X-2"]
        assert isinstance(exc_info.value.original_error, ConnectionError)

    def test_handle_re_resolved_after_failure(self, client, backend):
        client.initialize()
        backend.fail_on.add("upsert")
        with pytest.raises(VectorStoreError):
            client.upsert(["X-1"], [VECTOR], ["a"])
        backend.fail_on.clear()
        client.upsert(["X-1"], [VECTOR], ["a"])
        assert len(backend.calls("collections")) == 2

    def test_delete_by_ids(self, client, backend):
        client.delete_by_ids(["a", "b"])
        assert backend.calls("delete") == [{"ids": ["a", "b"]}]

    def test_delete_by_empty_id_list_is_noop(self, client, backend):
        client.delete_by_ids([])
        assert backend.posts == []

    def test_delete_by_filter(self, client, backend):
        client.delete_by_filter({"source": "youtrack"})
        assert backend.calls("delete") == [{"where": {"source": "youtrack"}}]

    def test_delete_by_empty_filter_rejected(self, client, backend):
        with pytest.raises(RecordValidationError):
            client.delete_by_filter({})
        assert backend.posts == []

    def test_count(self, client, backend):
        assert client.count() == 7
        assert backend.gets == [f"{BASE}/collections/col-1/count"]


class TestValidation:
    def test_length_mismatch(self, client, backend):
        with pytest.raises(RecordValidationError, match="same length"):
            client.upsert(["a", "b"], [VECTOR], ["a", "b"])
        assert backend.posts == []

    def test_blank_id(self, client, backend):
        with pytest.raises(RecordValidationError, match="blank"):
            client.upsert([" "], [VECTOR], ["a"])
        assert backend.posts == []

    def test_duplicate_ids_in_one_call(self, client, backend):
        with pytest.raises(RecordValidationError, match="Duplicate"):
            client.upsert(["a", "a"], [VECTOR, VECTOR], ["a", "b"])

    def test_dimension_mismatch_within_call(self, client, backend):
        with pytest.raises(DimensionMismatchError) as exc_info:
            client.upsert(["a", "b"], [VECTOR, [0.1, 0.2]], ["a", "b"])
        assert exc_info.value.record_id == "b"
        assert backend.posts == []

    def test_dimension_learned_from_first_write(self, client, backend):
        client.upsert(["a"], [VECTOR], ["a"])
        assert client.dimension == 3
        with pytest.raises(DimensionMismatchError):
            client.upsert(["b"], [[0.1] * 4], ["b"])

    def test_configured_dimension(self, backend):
        client = ChromaHttpClient(base_url="http://chroma:8000", embedding_dimension=4)
        with pytest.raises(DimensionMismatchError) as exc_info:
            client.upsert(["a"], [VECTOR], ["a"])
        assert exc_info.value.expected == 4


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

class TestQuery:
    def test_query_body_and_parsing(self, client, backend):
        results = client.query(VECTOR, 5, where={"source": "youtrack"})

        body = backend.calls("query")[0]
        assert body == {
            "query_embeddings": [VECTOR],
            "n_results": 5,
            "include": ["documents", "metadatas", "distances"],
            "where": {"source": "youtrack"},
        }
        assert [r.id for r in results] == ["X-1", "confluence-7"]
        assert results[0].distance == pytest.approx(0.12)
        assert results[1].metadata == {"source": "confluence", "title": ""}

    def test_query_without_filter_has_no_where(self, client, backend):
        client.query(VECTOR, 2)
        assert "where" not in backend.calls("query")[0]

    def test_query_truncates_to_k(self, client, backend):
        assert len(client.query(VECTOR, 1)) == 1

    def test_query_failure_returns_empty(self, client, backend):
        backend.fail_on.add("query")
        assert client.query(VECTOR, 3) == []

    def test_query_with_unavailable_collection_returns_empty(self, client, backend):
        backend.fail_on.add("collections")
        assert client.query(VECTOR, 3) == []

    def test_query_dimension_mismatch_returns_empty(self, client, backend):
        client.upsert(["a"], [VECTOR], ["a"])
        assert client.query([0.1], 3) == []
        assert backend.calls("query") == []

    def test_non_positive_k(self, client, backend):
        assert client.query(VECTOR, 0) == []
        assert backend.posts == []

    def test_get_failure_returns_empty(self, client, backend):
        backend.fail_on.add("get")
        assert client.get(["a"]) == []

    def test_hit_without_distance_is_dropped(self):
        raw = {
            "ids": [["X-1", "X-2", "X-3"]],
            "documents": [["a", "b", "c"]],
            "distances": [[None, 0.4]],
        }
        results = parse_query_response(raw)
        assert [(r.id, r.distance) for r in results] == [("X-2", 0.4)]


class TestHealthCheck:
    def test_healthy(self, client, backend):
        health = client.health_check()
        assert health["vector_store_ok"] is True
        assert health["records_stored"] == 7
        assert health["backend"] == "http"

    def test_unhealthy(self, client, backend):
        backend.fail_on.add("collections")
        health = client.health_check()
        assert health["vector_store_ok"] is False
        assert "unavailable" in health["error"]


class TestBuildWhere:
    def test_empty(self):
        assert build_where(None) is None
        assert build_where({}) is None

    def test_single_pair_is_flat(self):
        assert build_where({"userId": "u-1"}) == {"userId": "u-1"}

    def test_several_pairs_are_and_ed(self):
        assert build_where({"source": "conversation", "sessionId": "s-1"}) == {
            "$and": [{"source": "conversation"}, {"sessionId": "s-1"}]
        }

    def test_values_coerced_to_strings(self):
        assert build_where({"source": None}) == {"source": ""}


class TestCreateClient:
    def test_http_backend(self):
        client = create_client(StoreConfig(chroma_host="db", chroma_port=1234, collection_name="kb"))
        assert isinstance(client, ChromaHttpClient)
        assert client.base_url == "http://db:1234"
        assert client.collection_name == "kb"

    def test_persistent_backend(self, tmp_path):
        client = create_client(StoreConfig(backend="persistent", persist_directory=str(tmp_path)))
        assert isinstance(client, ChromaLocalClient)
        assert client.persist_directory == str(tmp_path)

    def test_ephemeral_backend(self):
        client = create_client(StoreConfig(backend="ephemeral"))
        assert isinstance(client, ChromaLocalClient)
        assert client.persist_directory is None
