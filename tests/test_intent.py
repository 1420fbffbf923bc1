"""Tests for intent.py — overview vs specific questions and category ordering."""
from __future__ import annotations

from conftest import make_scored

from rulebook_rag.intent import OVERVIEW_K, SPECIFIC_K, detect_intent, is_overview_question, prioritize


class TestDetectIntent:
    def test_how_to_play_is_overview(self):
        analysis = detect_intent("Comment se joue Catan ?")
        assert analysis.intent == "overview"
        assert analysis.confidence == 1.0
        assert analysis.recommended_k == OVERVIEW_K
        assert analysis.priority_categories[0] == "presentation"

    def test_what_happens_if_is_specific(self):
        analysis = detect_intent("Que se passe-t-il si je n'ai plus de cartes ?")
        assert analysis.intent == "specific"
        assert analysis.recommended_k == SPECIFIC_K
        assert analysis.priority_categories == []

    def test_where_is_specific(self):
        assert detect_intent("Où placer le voleur ?").intent == "specific"

    def test_plain_or_is_not_where(self):
        analysis = detect_intent("faut-il payer bois ou pierre pour construire une route")
        assert analysis.intent == "specific"
        assert analysis.confidence == 0.0

    def test_short_bare_question_leans_overview(self):
        analysis = detect_intent("Catan ?")
        assert analysis.intent == "overview"
        assert analysis.confidence == 0.5

    def test_comment_gagner_is_overview(self):
        assert detect_intent("Comment gagne-t-on une partie ?").intent == "overview"


class TestIsOverviewQuestion:
    def test_threshold(self):
        assert is_overview_question("Catan ?")
        assert not is_overview_question("Catan ?", min_confidence=0.6)
        assert not is_overview_question("Combien de cartes en main ?")


class TestPrioritize:
    def test_priority_categories_first_and_stable(self):
        chunks = [
            make_scored("a", 0.9, section_type="victory"),
            make_scored("b", 0.8, section_type="other"),
            make_scored("c", 0.7, section_type="presentation"),
            make_scored("d", 0.6, section_type="other"),
        ]
        result = prioritize(chunks, ["presentation", "victory"])
        assert [scored.chunk.id for scored in result] == ["c", "a", "b", "d"]

    def test_no_categories_keeps_order(self):
        chunks = [make_scored("a", 0.9), make_scored("b", 0.8)]
        assert prioritize(chunks, []) == chunks
