"""Normalisation helpers and closed French word sets shared by the heuristics."""
from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass

CONTENT_STARTERS = frozenset(
    """
    le la les l un une des du de d au aux en dans à a pour par avec sans vers chez
    depuis lors après avant pendant il elle ils elles on ce cet cette ces son sa ses
    mon ma mes ton ta tes leur leurs et ou mais donc or ni car si que qui lorsque
    quand comme puisque ne pas non c j y voici voilà notamment
    """.split()
)

FRENCH_STOPWORDS = frozenset(
    """
    le la les l un une des du de d au aux et ou en dans sur sous pour par avec sans
    ce cet cette ces se sa son ses il elle ils elles on nous vous je tu me te lui
    leur leurs y ne pas plus que qui quoi dont est sont etre avoir a ont fait
    peut doit mon ma mes ton ta tes notre nos votre vos si comme mais donc or ni car
    tout tous toute toutes aussi alors quand comment pourquoi quel quelle quels
    quelles combien est-ce ca cela ceci c j qu s n m t
    """.split()
)

ABBREVIATIONS = frozenset({"m", "mme", "dr", "sr", "jr", "etc", "ex", "vs", "p", "vol", "n°"})

_VERB_STARTER = re.compile(r"^[A-ZÀÂÉÈÊËÎÏÔÙÛÜ][a-zàâéèêëîïôùûüç]{2,}(ez|er|ir|oir|re)$")
_VERB_EXCEPTIONS = ("oire", "aire", "ière")
_SENTENCE_BOUNDARY = re.compile(r"(?<=[.!?])\s+")
_PARAGRAPH_BOUNDARY = re.compile(r"\n\s*\n+")
_LEADING_PUNCTUATION = "\"'«»“”‘’([-–—•*"


def strip_accents(text: str) -> str:
    decomposed = unicodedata.normalize("NFD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize(text: str) -> str:
    """Lowercase and strip accents."""
    return strip_accents(text.lower())


def word_count(text: str) -> int:
    return len(text.split())


def first_word(text: str) -> str:
    """First word of ``text`` with leading punctuation and elision removed."""
    words = text.strip().split()
    if not words:
        return ""
    word = words[0].lstrip(_LEADING_PUNCTUATION)
    # l'équipe, d'abord, qu'il
    for apostrophe in ("'", "’"):
        if apostrophe in word:
            word = word.split(apostrophe, 1)[0]
            break
    return word.rstrip(",;:.!?")


def is_content_starter(text: str) -> bool:
    """True when ``text`` opens with a French function word."""
    return first_word(text).lower() in CONTENT_STARTERS


def is_verb_starter(text: str) -> bool:
    """True when ``text`` opens with a capitalised imperative or infinitive."""
    word = first_word(text)
    if not _VERB_STARTER.match(word):
        return False
    return not word.lower().endswith(_VERB_EXCEPTIONS)


def split_sentences(text: str) -> list[str]:
    """Split on terminal punctuation, never after a known abbreviation."""
    sentences: list[str] = []
    for piece in _SENTENCE_BOUNDARY.split(text.strip()):
        piece = " ".join(piece.split())
        if not piece:
            continue
        if sentences and _ends_with_abbreviation(sentences[-1]):
            sentences[-1] = f"{sentences[-1]} {piece}"
        else:
            sentences.append(piece)
    return sentences


def _ends_with_abbreviation(sentence: str) -> bool:
    last = sentence.split()[-1].rstrip(".!?").lower()
    return last in ABBREVIATIONS


def split_paragraphs(text: str) -> list[str]:
    return [paragraph.strip() for paragraph in _PARAGRAPH_BOUNDARY.split(text) if paragraph.strip()]


@dataclass(slots=True)
class TextUnit:
    text: str
    words: int
    new_paragraph: bool


def _window(words: list[str], size: int) -> list[str]:
    return [" ".join(words[start : start + size]) for start in range(0, len(words), size)]


def split_units(body: str, cap: int) -> list[TextUnit]:
    """Paragraphs, with any paragraph over ``cap`` words broken into sentences.

    Sentences still over ``cap`` are cut into ``cap``-word windows, so no
    unit is longer than ``cap``.
    """
    units: list[TextUnit] = []
    for paragraph in split_paragraphs(body):
        words = paragraph.split()
        if len(words) <= cap:
            units.append(TextUnit(" ".join(words), len(words), True))
            continue
        first = True
        for sentence in split_sentences(paragraph):
            sentence_words = sentence.split()
            pieces = [sentence] if len(sentence_words) <= cap else _window(sentence_words, cap)
            for piece in pieces:
                units.append(TextUnit(piece, len(piece.split()), first))
                first = False
    return units


def join_units(parts: list[TextUnit]) -> str:
    """Blank line before a unit that opens a paragraph, a space otherwise."""
    text = ""
    for position, part in enumerate(parts):
        if position == 0:
            text = part.text
        else:
            text += ("\n\n" if part.new_paragraph else " ") + part.text
    return text


def slugify(name: str) -> str:
    """Lowercase ASCII slug with single dashes, e.g. ``"Les Aventuriers du Rail"`` -> ``"les-aventuriers-du-rail"``."""
    slug = re.sub(r"[^a-z0-9]+", "-", normalize(name))
    return slug.strip("-")
