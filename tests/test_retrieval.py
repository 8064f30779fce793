"""Tests for HybridRetriever post-filtering and source formatting."""

from vault_copilot.chains import document_title, format_sources
from vault_copilot.retrieval import HybridRetriever

from conftest import make_node


class StaticFusion:
    def __init__(self, results):
        self.results = results
        self.queries = []

    def retrieve(self, query):
        self.queries.append(query)
        return list(self.results)


class TestHybridRetriever:
    def test_drops_below_floor(self):
        fusion = StaticFusion([
            make_node("a", "A", 0.5),
            make_node("b", "B", 0.001),
        ])
        results = HybridRetriever(fusion, min_similarity_score=0.01).retrieve("q")
        assert [document_title(r) for r in results] == ["A"]

    def test_sorted_and_limited(self):
        fusion = StaticFusion([
            make_node("a", "A", 0.2),
            make_node("b", "B", 0.9),
            make_node("c", "C", 0.5),
        ])
        results = HybridRetriever(fusion, max_k=2).retrieve("q")
        assert [document_title(r) for r in results] == ["B", "C"]

    def test_missing_score_treated_as_zero(self):
        fusion = StaticFusion([make_node("a", "A", None)])
        assert HybridRetriever(fusion).retrieve("q") == []

    def test_query_passed_through(self):
        fusion = StaticFusion([])
        HybridRetriever(fusion).retrieve("bananas")
        assert fusion.queries == ["bananas"]


class TestFormatSources:
    def test_lists_titles(self):
        docs = [make_node("a", "Fruit", 0.9), make_node("b", "Vegetables", 0.5)]
        assert format_sources(docs) == "\n\n#### Sources:\n\n- [[Fruit]]\n- [[Vegetables]]"

    def test_no_documents(self):
        assert format_sources([]) == ""
