"""Lightweight French text analysis for rulebook chunks.

Everything here is pattern based: a board-game lexicon for entities, suffix
rules for verbs, a fixed mechanic table and an extractive summary.
"""
from __future__ import annotations

import re
from collections import Counter

from .text_utils import split_sentences

STOPWORDS_FR = frozenset(
    """
    le la les l un une des du de d et ou mais donc or ni car que qui qu se si en
    y il elle ils elles on nous vous je tu ce cet cette ces son sa ses mon ma mes
    ton ta tes leur leurs notre votre vos nos à au aux par pour sur sous dans avec
    sans est sont être avoir fait font peut peuvent tout tous toutes toute chaque
    chacun chacune plus moins très bien aussi alors ainsi dont lors dès après avant
    pendant quand lorsque même autre autres entre vers soit doit doivent celui
    celle ceux celles aucun aucune selon afin comme sinon encore voici voilà pas
    non oui ne n c j
    """.split()
)

GAME_NOUNS = frozenset(
    """
    plateau carte cartes dé dés pion pions jeton jetons tuile tuiles marqueur
    marqueurs deck pioche défausse main rivière sac ressource ressources cube
    cubes token territoire territoires citadelle bâtiment bâtiments forteresse
    marché entrepôt temple tour joueur joueurs adversaire allié partenaire
    gardien gardiens ombre ombres créature bois pierre or nourriture magie point
    points victoire score manche phase action actions combat attaque défense
    alliance objectif règle effet capacité sort événement production réserve
    coût bonus pénalité
    """.split()
)

MECHANIC_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("placement", re.compile(r"pla[cç]er?|pos(?:er|itionner)|déposer", re.IGNORECASE)),
    ("draw", re.compile(r"pioch(?:er|ez)|tirer? (?:une? carte|du deck)", re.IGNORECASE)),
    ("resource_management", re.compile(r"ressource|collect(?:er|ez)|produi(?:t|re|sez)", re.IGNORECASE)),
    (
        "dice_combat",
        re.compile(r"d[eé]s? de combat|lanc(?:er|ez) (?:le|un) d[eé]|face [ée]p[eé]e", re.IGNORECASE),
    ),
    ("area_control", re.compile(r"terr?itoire|contrôl(?:er|ez)|occup(?:er|ez)", re.IGNORECASE)),
    ("trade", re.compile(r"commerc(?:er|ez)|[eé]chang(?:er|ez)|march[eé]", re.IGNORECASE)),
    ("card_draft", re.compile(r"rivi[eè]re|draft|choisir (?:une?|parmi)", re.IGNORECASE)),
    ("victory_points", re.compile(r"points? de victoire|score|vp\b", re.IGNORECASE)),
    ("cooperation", re.compile(r"coop[eé]r|ensemble|alliés? gagnent|mode coop", re.IGNORECASE)),
    ("events", re.compile(r"carte [eé]v[eé]nement|[eé]v[eé]nement|catastroph", re.IGNORECASE)),
)

_TOKEN = re.compile(r"[a-zàâäçéèêëîïôöùûüÿœæ]+")
_PROPER_NOUN = re.compile(r"(?<=[,;:.!?\s])([A-ZÀÂÉÈÊËÎÏÔÙÛÜ][a-zàâéèêëîïôùûü]{2,})")
_INFINITIVE = re.compile(r"(?:er|ir|oir|re)$")


def _tokens(text: str) -> list[str]:
    return _TOKEN.findall(text.lower())


def _is_infinitive(word: str) -> bool:
    return len(word) >= 4 and bool(_INFINITIVE.search(word))


def imperative_to_infinitive(word: str) -> str:
    """Map a ``-ez`` imperative to an approximate infinitive (``placez`` -> ``placer``)."""
    word = word.lower()
    if not word.endswith("ez") or len(word) < 5:
        return word
    stem = word[:-2]
    if stem.endswith("aiss"):
        return stem[:-4] + "aître"
    if stem.endswith("iss"):
        return stem[:-3] + "ir"
    if stem.endswith(("d", "t")):
        return stem + "re"
    return stem + "er"


def detect_mechanics(text: str) -> list[str]:
    return [name for name, pattern in MECHANIC_PATTERNS if pattern.search(text)]


def extract_actions(text: str) -> list[str]:
    verbs: set[str] = set()
    for token in _tokens(text):
        if len(token) <= 3 or token in STOPWORDS_FR:
            continue
        if token.endswith("ez") and len(token) >= 5:
            verbs.add(imperative_to_infinitive(token))
        elif _is_infinitive(token):
            verbs.add(token)
    return sorted(verbs)


def _light_stem(word: str) -> str:
    for suffix in ("ements", "ement", "ations", "ation", "es", "s", "x", "e"):
        if word.endswith(suffix) and len(word) - len(suffix) >= 4:
            return word[: -len(suffix)]
    return word


def extract_entities(text: str) -> list[str]:
    """Lexicon nouns, mid-sentence capitalised words and repeated content words."""
    entities: set[str] = set()
    tokens = _tokens(text)
    token_set = set(tokens)
    entities.update(noun for noun in GAME_NOUNS if noun in token_set)

    for match in _PROPER_NOUN.finditer(text):
        word = match.group(1).lower()
        if len(word) > 3 and word not in STOPWORDS_FR:
            entities.add(word)

    frequencies: Counter[str] = Counter()
    for token in tokens:
        if len(token) <= 3 or token in STOPWORDS_FR or _is_infinitive(token):
            continue
        stem = _light_stem(token)
        frequencies[stem] += 1
        if frequencies[stem] >= 2:
            entities.add(token)
    return sorted(entities)


def extract_summary(text: str, max_sentences: int = 2) -> str:
    """First ``max_sentences`` sentences having at least eight words."""
    sentences = [sentence for sentence in split_sentences(text) if len(sentence.split()) >= 8]
    return " ".join(sentences[:max_sentences])
