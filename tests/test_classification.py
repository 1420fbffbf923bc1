"""Tests for classification.py — section categories from titles and content."""
from __future__ import annotations

import pytest

from rulebook_rag.classification import SECTION_TYPES, classify_section


class TestClassifySection:
    @pytest.mark.parametrize(
        ("title", "expected"),
        [
            ("PRÉSENTATION", "presentation"),
            ("But du jeu", "objective"),
            ("Matériel", "components"),
            ("Mise en place", "setup"),
            ("Tour de jeu", "turn_structure"),
            ("Cartes Événement", "event_cards"),
            ("Règles spéciales", "special_rules"),
            ("Fin de la partie", "victory"),
            ("Variantes", "variant"),
            ("Conseils stratégiques", "tips"),
        ],
    )
    def test_title_patterns(self, title, expected):
        assert classify_section(title) == expected

    def test_title_wins_over_content(self):
        assert classify_section("Matériel", "La partie se termine quand la pioche est vide.") == "components"

    def test_content_fallback(self):
        assert classify_section("Section 4", "Chaque joueur reçoit trois cartes.") == "setup"

    def test_only_leading_content_is_read(self):
        content = "x " * 250 + "la partie se termine"
        assert classify_section("Divers", content) == "other"

    def test_unknown_is_other(self):
        assert classify_section("Divers", "Texte sans indice particulier.") == "other"

    def test_every_result_is_a_known_type(self):
        for title in ("Tour", "Cartes", "Annexe", "Score final"):
            assert classify_section(title) in SECTION_TYPES
