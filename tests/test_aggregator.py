"""Tests for retrieval.aggregator - multi-source merging and scoping."""

import pytest
from unittest.mock import MagicMock, call

from retrieval.aggregator import RetrievalAggregator, merge_ranked
from retrieval.cache import SearchCache

from conftest import make_result

EMBEDDING = [0.1, 0.2, 0.3]


@pytest.fixture
def embedder():
    embedder = MagicMock()
    embedder.embed.return_value = EMBEDDING
    return embedder


@pytest.fixture
def client():
    return MagicMock()


def route_queries(client, broad, owned):
    """Answer unfiltered queries with `broad` and owner-filtered ones with `owned`."""
    def query(embedding, n, where=None):
        return list(owned if where else broad)
    client.query.side_effect = query


class TestMergeRanked:
    def test_orders_by_distance(self):
        a = [make_result("A1", 0.1), make_result("A2", 0.5)]
        b = [make_result("B1", 0.3)]
        assert [r.id for r in merge_ranked([a, b], 10)] == ["A1", "B1", "A2"]

    def test_dedupes_keeping_best_distance(self):
        a = [make_result("X-1", 0.4)]
        b = [make_result("X-1", 0.2), make_result("B", 0.3)]
        merged = merge_ranked([a, b], 10)
        assert [r.id for r in merged] == ["X-1", "B"]
        assert merged[0].distance == pytest.approx(0.2)

    def test_ties_keep_input_order(self):
        a = [make_result("A", 0.2)]
        b = [make_result("B", 0.2)]
        assert [r.id for r in merge_ranked([a, b], 10)] == ["A", "B"]

    def test_truncates(self):
        a = [make_result(f"A{i}", i / 10) for i in range(5)]
        assert len(merge_ranked([a], 3)) == 3


class TestSearchMultiSource:
    def test_merge_and_limit(self, client, embedder):
        broad = [
            make_result("X-1", 0.10),
            make_result("confluence-7", 0.30),
            make_result("doc-u", 0.05, source="manual", userId="u-2"),
            make_result("X-2", 0.50),
        ]
        owned = [
            make_result("doc-1", 0.20, source="manual", userId="u-1"),
            make_result("conv_1", 0.40, source="conversation", userId="u-1"),
            make_result("doc-2", 0.60, source="manual", userId="u-1"),
        ]
        route_queries(client, broad, owned)
        aggregator = RetrievalAggregator(client, embedder)

        results = aggregator.search_multi_source("banner", "u-1", 2)

        assert [r.id for r in results] == ["X-1", "doc-1", "confluence-7", "conv_1"]
        distances = [r.distance for r in results]
        assert distances == sorted(distances)

    def test_length_is_min_of_union_and_twice_n(self, client, embedder):
        route_queries(client, [make_result("X-1", 0.1)], [make_result("doc-1", 0.2, source="manual")])
        results = RetrievalAggregator(client, embedder).search_multi_source("q", "u-1", 5)
        assert len(results) == 2

    def test_embeds_once_and_issues_two_queries(self, client, embedder):
        route_queries(client, [], [])
        RetrievalAggregator(client, embedder).search_multi_source("banner fix", "u-1", 3)

        embedder.embed.assert_called_once_with("banner fix")
        assert client.query.call_args_list == [
            call(EMBEDDING, 3),
            call(EMBEDDING, 3, {"userId": "u-1"}),
        ]

    def test_no_owner_skips_owner_query(self, client, embedder):
        route_queries(client, [make_result("X-1", 0.1)], [])
        results = RetrievalAggregator(client, embedder).search_multi_source("q", None, 3)
        assert [r.id for r in results] == ["X-1"]
        assert client.query.call_count == 1

    def test_same_record_in_both_lists_kept_once(self, client, embedder):
        shared = make_result("X-1", 0.1, userId="u-1")
        route_queries(client, [shared], [shared])
        results = RetrievalAggregator(client, embedder).search_multi_source("q", "u-1", 3)
        assert [r.id for r in results] == ["X-1"]

    def test_embedding_failure_returns_empty(self, client, embedder):
        embedder.embed.side_effect = ConnectionError("ollama down")
        assert RetrievalAggregator(client, embedder).search_multi_source("q", "u-1", 3) == []
        client.query.assert_not_called()

    def test_non_positive_n(self, client, embedder):
        assert RetrievalAggregator(client, embedder).search_multi_source("q", "u-1", 0) == []
        embedder.embed.assert_not_called()

    def test_parallel_mode_matches_sequential(self, client, embedder):
        broad = [make_result("X-1", 0.3), make_result("confluence-1", 0.1)]
        owned = [make_result("doc-1", 0.2, source="manual")]
        route_queries(client, broad, owned)

        sequential = RetrievalAggregator(client, embedder).search_multi_source("q", "u-1", 2)
        parallel = RetrievalAggregator(client, embedder, parallel_queries=True).search_multi_source("q", "u-1", 2)

        assert [r.id for r in parallel] == [r.id for r in sequential] == ["confluence-1", "doc-1", "X-1"]


class TestCaching:
    def test_second_call_served_from_cache(self, client, embedder):
        route_queries(client, [make_result("X-1", 0.1)], [])
        aggregator = RetrievalAggregator(client, embedder, cache=SearchCache())

        first = aggregator.search_multi_source("q", "u-1", 3)
        second = aggregator.search_multi_source("q", "u-1", 3)

        assert [r.id for r in second] == [r.id for r in first]
        assert embedder.embed.call_count == 1

    def test_key_includes_owner_and_n(self, client, embedder):
        route_queries(client, [make_result("X-1", 0.1)], [])
        aggregator = RetrievalAggregator(client, embedder, cache=SearchCache())

        aggregator.search_multi_source("q", "u-1", 3)
        aggregator.search_multi_source("q", "u-2", 3)
        aggregator.search_multi_source("q", "u-1", 4)

        assert embedder.embed.call_count == 3

    def test_empty_results_not_cached(self, client, embedder):
        route_queries(client, [], [])
        cache = SearchCache()
        aggregator = RetrievalAggregator(client, embedder, cache=cache)

        aggregator.search_multi_source("q", "u-1", 3)
        aggregator.search_multi_source("q", "u-1", 3)

        assert len(cache) == 0
        assert embedder.embed.call_count == 2

    def test_results_from_before_invalidation_not_stored(self, client, embedder):
        cache = SearchCache()

        def query(embedding, n, where=None):
            cache.invalidate_all()
            return [make_result("X-1", 0.1)]
        client.query.side_effect = query

        RetrievalAggregator(client, embedder, cache=cache).search_multi_source("q", None, 3)
        assert len(cache) == 0


class TestScopedSearches:
    def test_relevant_context_filters_by_owner(self, client, embedder):
        client.query.return_value = [make_result("doc-1", 0.1, source="manual")]
        results = RetrievalAggregator(client, embedder).search_relevant_context("q", "u-1", 4)
        client.query.assert_called_once_with(EMBEDDING, 4, {"userId": "u-1"})
        assert [r.id for r in results] == ["doc-1"]

    @pytest.mark.parametrize("owner", ["", "   "])
    def test_relevant_context_without_owner(self, client, embedder, owner):
        assert RetrievalAggregator(client, embedder).search_relevant_context("q", owner, 4) == []
        client.query.assert_not_called()

    def test_knowledge_base_with_filter(self, client, embedder):
        client.query.return_value = []
        RetrievalAggregator(client, embedder).search_knowledge_base("q", 5, source_filter="youtrack")
        client.query.assert_called_once_with(EMBEDDING, 5, {"source": "youtrack"})

    def test_knowledge_base_without_filter_queries_each_source(self, client, embedder):
        def query(embedding, n, where=None):
            if where == {"source": "confluence"}:
                return [make_result("confluence-1", 0.2, source="confluence")]
            return [make_result("X-1", 0.1), make_result("X-2", 0.3)]
        client.query.side_effect = query

        results = RetrievalAggregator(client, embedder).search_knowledge_base("q", 2)

        assert [r.id for r in results] == ["X-1", "confluence-1"]
        wheres = [c.args[2] for c in client.query.call_args_list]
        assert wheres == [{"source": "confluence"}, {"source": "youtrack"}]
        embedder.embed.assert_called_once()

    def test_blank_query_returns_empty(self, client, embedder):
        assert RetrievalAggregator(client, embedder).search_single_source("  ", 3) == []
        embedder.embed.assert_not_called()

    def test_invalid_merge_factor(self, client, embedder):
        with pytest.raises(ValueError):
            RetrievalAggregator(client, embedder, merge_factor=0)
