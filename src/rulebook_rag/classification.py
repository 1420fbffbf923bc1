from __future__ import annotations

import re

from .text_utils import normalize

SECTION_TYPES = (
    "presentation",
    "objective",
    "components",
    "setup",
    "turn_structure",
    "event_cards",
    "special_rules",
    "victory",
    "variant",
    "tips",
    "other",
)

# Patterns run against lowercased, accent-stripped text.
_TITLE_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("presentation", re.compile(r"presentation|introduction|bienvenue|histoire|contexte|a propos|apercu")),
    ("objective", re.compile(r"but du jeu|objectif|\bbut\b|comment gagner")),
    ("components", re.compile(r"materiel|contenu|composants?|elements de jeu|la boite")),
    ("setup", re.compile(r"preparation|mise en place|installation|avant de commencer|debut de partie")),
    ("turn_structure", re.compile(r"tour de jeu|deroulement|phases?|\btours?\b|actions?|sequence de jeu")),
    ("event_cards", re.compile(r"cartes? evenements?|evenements?")),
    ("special_rules", re.compile(r"regles? speciales?|cas particuliers?|exceptions?|precisions?")),
    ("victory", re.compile(r"victoire|fin de (la )?partie|gagner|decompte|score final|points de victoire")),
    ("variant", re.compile(r"variantes?|mode (solo|expert|cooperatif)|regles? avancees?")),
    ("tips", re.compile(r"conseils?|astuces?|strategies?|aide de jeu")),
)

# Body text mentions these themes much more loosely than titles do, so the
# content patterns only accept phrases that rarely occur in passing.
_CONTENT_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("presentation", re.compile(r"bienvenue|dans ce jeu|vous incarnez")),
    ("objective", re.compile(r"le but du jeu|l'objectif du jeu|pour gagner la partie")),
    ("components", re.compile(r"la boite contient|contenu de la boite")),
    ("setup", re.compile(r"mise en place|avant de commencer|chaque joueur recoit")),
    ("turn_structure", re.compile(r"a son tour|chaque tour se deroule|dans le sens des aiguilles")),
    ("event_cards", re.compile(r"cartes? evenements?")),
    ("special_rules", re.compile(r"cas particulier|par exception")),
    ("victory", re.compile(r"la partie se termine|fin de la partie|remporte la partie")),
    ("variant", re.compile(r"\bvariante\b")),
    ("tips", re.compile(r"\bconseil|\bastuce")),
)


def classify_section(title: str, content: str = "") -> str:
    """Return the section category for a title and its leading content.

    The title is tried against every group first; the first 400 characters
    of content are only consulted when no title pattern matches.
    """
    normalized_title = normalize(title)
    for category, pattern in _TITLE_PATTERNS:
        if pattern.search(normalized_title):
            return category
    head = normalize(content[:400])
    for category, pattern in _CONTENT_PATTERNS:
        if pattern.search(head):
            return category
    return "other"
