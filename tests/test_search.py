"""Tests for search.py — hybrid search, degradation and document selection.

Documents are ingested through RulebookPipeline into a temporary Chroma store.
``KeywordEmbedder`` puts every text mentioning a 7 Wonders keyword on one axis
and everything else on the other, so dense similarity is either 1 or 0.
"""
from __future__ import annotations

import logging

import numpy as np
import pytest
from conftest import CATAN_RULES, WONDERS_RULES, FailingEmbedder, make_scored

from rulebook_rag.errors import DocumentNotFoundError, DocumentSelectionError, SearchUnavailableError
from rulebook_rag.pipeline import RulebookPipeline
from rulebook_rag.retrieval import tokenize
from rulebook_rag.schema import IndexedDocument, RetrievalStatus, ScoreStage
from rulebook_rag.search import RetrievalEngine, aggregate_score, name_in_query


class KeywordEmbedder:
    model_name = "keyword-test"
    keywords = frozenset({"antiquite", "age", "voisin", "gagner"})

    def embed(self, texts: list[str]) -> np.ndarray:
        rows = [[1.0, 0.0] if self.keywords.intersection(tokenize(text)) else [0.0, 1.0] for text in texts]
        return np.array(rows, dtype=np.float32)


def _broken_lexical_index():
    raise RuntimeError("index corrupted")


@pytest.fixture()
def two_games(store):
    pipeline = RulebookPipeline(store, KeywordEmbedder())
    pipeline.ingest(CATAN_RULES, "Catan", source="catan.txt")
    pipeline.ingest(WONDERS_RULES, "7 Wonders", source="7wonders.txt")
    return RetrievalEngine(store, KeywordEmbedder())


@pytest.fixture()
def catan_only(store, embedder):
    RulebookPipeline(store, embedder).ingest(CATAN_RULES, "Catan")
    return RetrievalEngine(store, embedder)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

class TestNameInQuery:
    def test_long_name_word_found(self):
        assert name_in_query("7 Wonders", "Les règles de 7 Wonders ?")

    def test_accents_ignored(self):
        assert name_in_query("Les Aventuriers du Rail", "aventuriers : combien de wagons ?")

    def test_short_words_ignored(self):
        assert not name_in_query("Go", "comment jouer au go")

    def test_absent(self):
        assert not name_in_query("Dixit", "dix joueurs")


class TestAggregateScore:
    def test_sums_best_three(self):
        chunks = [make_scored(str(index), score) for index, score in enumerate([0.6, 0.9, 0.7, 0.8])]
        assert aggregate_score(chunks) == pytest.approx(2.4)


# ---------------------------------------------------------------------------
# Document selection
# ---------------------------------------------------------------------------

class TestRetrieve:
    def test_single_document_always_selected(self, catan_only):
        selection = catan_only.retrieve("?!")
        assert selection is not None
        assert selection.document_id == "catan"
        assert selection.matched_by_name is False
        assert selection.chunks

    def test_name_in_query_beats_higher_aggregate(self, two_games):
        query = "Comment gagner à Catan ?"
        by_score = two_games.select_document(query)
        assert by_score.document_name == "7 Wonders"

        selection = two_games.retrieve(query)
        assert selection.document_name == "Catan"
        assert selection.matched_by_name is True
        assert {scored.document_id for scored in selection.chunks} == {"catan"}

    def test_highest_aggregate_without_name(self, two_games):
        selection = two_games.retrieve("Que fait-on avec son voisin ?")
        assert selection.document_id == "7-wonders"
        assert selection.matched_by_name is False
        assert all(scored.stage is ScoreStage.FUSED for scored in selection.chunks)

    def test_dense_only_aggregate_is_sum_of_similarities(self, two_games):
        selection = two_games.retrieve("Que fait-on avec son voisin ?", use_hybrid=False)
        assert selection.document_id == "7-wonders"
        assert selection.aggregate_score == pytest.approx(2.0, abs=1e-3)

    def test_document_filter_by_name_fragment(self, two_games):
        selection = two_games.retrieve("Comment gagner ?", document_filter="catan")
        assert selection.document_id == "catan"
        assert selection.matched_by_name is False

    def test_unknown_filter_raises(self, two_games):
        with pytest.raises(DocumentNotFoundError):
            two_games.retrieve("Comment gagner ?", document_filter="Dixit")

    def test_top_k_limits_chunks(self, catan_only):
        assert len(catan_only.retrieve("colonies", top_k=2).chunks) == 2

    def test_empty_store(self, store, embedder):
        assert RetrievalEngine(store, embedder).retrieve("Comment gagner ?") is None

    def test_uncatalogued_winner_raises(self, two_games, monkeypatch):
        monkeypatch.setattr(
            two_games, "documents", lambda: [IndexedDocument(document_id="catan", name="Catan")]
        )
        with pytest.raises(DocumentSelectionError):
            two_games.select_document("Que fait-on avec son voisin ?")


# ---------------------------------------------------------------------------
# Hybrid search and degradation
# ---------------------------------------------------------------------------

class TestHybridSearch:
    def test_results_are_fused(self, catan_only):
        results = catan_only.hybrid_search("colonies routes")
        assert results
        assert all(result.stage is ScoreStage.FUSED for result in results)

    def test_dense_failure_degrades_to_sparse(self, store, embedder, caplog):
        RulebookPipeline(store, embedder).ingest(CATAN_RULES, "Catan")
        engine = RetrievalEngine(store, FailingEmbedder())
        with caplog.at_level(logging.WARNING, logger="rulebook_rag.search"):
            results = engine.hybrid_search("colonies routes")
        assert {result.chunk.section_title for result in results} == {"PRÉSENTATION", "TOUR DE JEU"}
        assert "dense search unavailable" in caplog.text

    def test_sparse_failure_degrades_to_dense(self, catan_only, monkeypatch, caplog):
        monkeypatch.setattr(catan_only, "lexical_index", _broken_lexical_index)
        with caplog.at_level(logging.WARNING, logger="rulebook_rag.search"):
            results = catan_only.hybrid_search("colonies routes")
        assert len(results) == 4
        assert "sparse search unavailable" in caplog.text

    def test_both_sides_failing_raises(self, store, embedder, monkeypatch):
        RulebookPipeline(store, embedder).ingest(CATAN_RULES, "Catan")
        engine = RetrievalEngine(store, FailingEmbedder())
        monkeypatch.setattr(engine, "lexical_index", _broken_lexical_index)
        with pytest.raises(SearchUnavailableError) as excinfo:
            engine.hybrid_search("colonies routes")
        assert isinstance(excinfo.value.dense_error, Exception)
        assert isinstance(excinfo.value.sparse_error, Exception)

    def test_lexical_index_follows_store_writes(self, store, embedder):
        pipeline = RulebookPipeline(store, embedder)
        pipeline.ingest(CATAN_RULES, "Catan")
        engine = RetrievalEngine(store, embedder)
        assert len(engine.lexical_index()) == 4
        pipeline.ingest(WONDERS_RULES, "7 Wonders")
        assert len(engine.lexical_index()) == 6


# ---------------------------------------------------------------------------
# search outcomes
# ---------------------------------------------------------------------------

class TestSearchOutcome:
    def test_no_documents(self, store, embedder):
        outcome = RetrievalEngine(store, embedder).search("Comment se joue Catan ?")
        assert outcome.status is RetrievalStatus.NO_DOCUMENTS
        assert outcome.selection is None

    def test_no_results(self, store, embedder):
        pipeline = RulebookPipeline(store, embedder)
        pipeline.ingest(CATAN_RULES, "Catan")
        pipeline.ingest(WONDERS_RULES, "7 Wonders")
        outcome = RetrievalEngine(store, FailingEmbedder()).search("?!")
        assert outcome.status is RetrievalStatus.NO_RESULTS

    def test_overview_question_puts_key_sections_first(self, catan_only):
        outcome = catan_only.search("Comment se joue Catan ?")
        assert outcome.status is RetrievalStatus.OK
        assert outcome.intent.intent == "overview"
        assert [scored.chunk.section_type for scored in outcome.selection.chunks] == [
            "presentation",
            "turn_structure",
            "victory",
            "components",
        ]
