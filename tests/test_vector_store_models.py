"""Tests for vector_store.models."""

import pytest
from pydantic import ValidationError

from vector_store.models import (
    ConversationMetadata,
    ManualMetadata,
    SearchResult,
    SourceType,
    StoreConfig,
    TrackerMetadata,
    VectorRecord,
    WikiMetadata,
    flatten_metadata,
    to_metadata_value,
)


class TestStoreConfig:
    def test_defaults(self):
        config = StoreConfig()
        assert config.backend == "http"
        assert config.collection_name == "knowledge"
        assert config.distance_metric == "cosine"
        assert config.embedding_model == "bge-m3"
        assert config.embedding_dimension is None
        assert config.base_url == "http://localhost:8000"

    def test_custom_values(self):
        config = StoreConfig(chroma_host="chroma", chroma_port=9000, backend="ephemeral")
        assert config.base_url == "http://chroma:9000"
        assert config.backend == "ephemeral"

    def test_invalid_backend(self):
        with pytest.raises(ValidationError):
            StoreConfig(backend="redis")

    def test_timeout_must_be_positive(self):
        with pytest.raises(ValidationError):
            StoreConfig(request_timeout_seconds=0)


class TestMetadataValues:
    @pytest.mark.parametrize("value, expected", [
        (None, ""),
        ("abc", "abc"),
        (True, "true"),
        (False, "false"),
        (3, "3"),
        (2.5, "2.5"),
        (["a", "b"], "a,b"),
        ({"b": 1, "a": 2}, '{"a": 2, "b": 1}'),
        (SourceType.CONFLUENCE, "confluence"),
    ])
    def test_coercion(self, value, expected):
        assert to_metadata_value(value) == expected

    def test_flatten_mapping(self):
        assert flatten_metadata({"userId": None, "page": 3}) == {"userId": "", "page": "3"}

    def test_flatten_none(self):
        assert flatten_metadata(None) == {}


class TestTypedMetadata:
    def test_tracker_wire_keys(self):
        wire = TrackerMetadata(issue_id="X-1", title="Banner fix").to_wire()
        assert wire == {
            "source": "youtrack",
            "issueId": "X-1",
            "title": "Banner fix",
            "priority": "",
            "stage": "",
            "requester": "",
            "assignee": "",
            "createdDate": "",
        }

    def test_tracker_accepts_aliases(self):
        meta = TrackerMetadata(issueId="X-2", createdDate="2024-05-01")
        assert meta.issue_id == "X-2"
        assert meta.created_date == "2024-05-01"

    def test_wiki_wire_keys(self):
        wire = WikiMetadata(document_id="confluence-1", file_name="1.html").to_wire()
        assert wire["source"] == "confluence"
        assert wire["documentId"] == "confluence-1"
        assert wire["fileName"] == "1.html"
        assert wire["lastModified"] == ""

    def test_conversation_wire_keys(self):
        wire = ConversationMetadata(user_id="u-1", session_id="s-1", role="user").to_wire()
        assert wire == {"source": "conversation", "userId": "u-1", "sessionId": "s-1", "role": "user"}

    def test_source_is_fixed_per_type(self):
        with pytest.raises(ValidationError):
            TrackerMetadata(source="confluence", issue_id="X-1")

    def test_manual_extras_cannot_override_identity(self):
        meta = ManualMetadata(
            source="upload",
            user_id="u-1",
            extra={"source": "youtrack", "userId": "intruder", "fileName": "notes.txt"},
        )
        wire = meta.to_wire()
        assert wire["source"] == "upload"
        assert wire["userId"] == "u-1"
        assert wire["fileName"] == "notes.txt"

    def test_manual_defaults(self):
        wire = ManualMetadata().to_wire()
        assert wire == {"source": "manual", "userId": ""}

    def test_all_values_are_strings(self):
        wire = ManualMetadata(extra={"pages": [1, 2], "draft": True}).to_wire()
        assert all(isinstance(v, str) for v in wire.values())


class TestRecords:
    def test_vector_record_requires_id(self):
        with pytest.raises(ValidationError):
            VectorRecord(id="", embedding=[0.1], document="x")

    def test_search_result_similarity(self):
        result = SearchResult(id="a", distance=0.25, metadata={"source": "confluence"})
        assert result.similarity == pytest.approx(0.75)
        assert result.source == "confluence"

    def test_search_result_without_source(self):
        assert SearchResult(id="a").source == ""
