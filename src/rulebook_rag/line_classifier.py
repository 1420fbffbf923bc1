"""Classify raw rulebook lines as noise, headings or content.

Rules run in a fixed order and the first one that returns a verdict wins.
Each rule sees the stripped line and a :class:`LineContext`; returning
``None`` passes the line to the next rule. Lines no rule claims are content.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Iterable, Iterator

from .schema import LineClass, LineKind, RawLine
from .settings import SectionSettings
from .text_utils import is_content_starter, is_verb_starter, word_count

_NOISE_PATTERN = re.compile(r"^([=\-*#~_]{3,}|Page\s+\d+|[hH\d\s]{1,6}|[^\w]{1,3})$", re.IGNORECASE)
_MARKDOWN = re.compile(r"^(#{1,3})(?!#)\s*(.*)$")
_CAPS_STRIP = re.compile(r"[\s\d\-:/()'\"«».,!?_’–—]+")
_STEP = re.compile(r"^((?:[ÉE]tape|Step)\s+\d+\s*[—–\-]\s*[^:]+?)\s*:?\s*$", re.IGNORECASE)
_TRAILING_COLON = re.compile(r"^([A-ZÀÂÉÈÊËÎÏÔÙÛÜ][^.!?\n]{2,60}?)\s*:\s*$")
_NUMBERED = re.compile(r"^(\d+(?:\.\d+)*)[.)]\s+(.{3,60})$")
_INLINE_TITLE = re.compile(r"^([^:]{2,60}?)\s*:\s+(.+)$")
_TERMINAL_PUNCTUATION = (".", "!", "?", ";", "…")


@dataclass(slots=True)
class LineContext:
    prev_was_blank: bool
    settings: SectionSettings


Rule = Callable[[str, LineContext], "LineClass | None"]


def _heading(title: str, level: int) -> LineClass:
    return LineClass(kind=LineKind.HEADING, title=normalize_title(title), level=level)


def normalize_title(title: str) -> str:
    title = " ".join(title.split())
    return title.rstrip(":").rstrip()


def is_all_caps(text: str) -> bool:
    letters = _CAPS_STRIP.sub("", text)
    if len(letters) < 3:
        return False
    return letters == letters.upper() and letters != letters.lower()


def _noise(text: str, context: LineContext) -> LineClass | None:
    visible = "".join(text.split())
    if len(visible) <= 2 or _NOISE_PATTERN.match(text):
        return LineClass(kind=LineKind.NOISE, text=text)
    if len(visible) >= 4:
        alpha = sum(1 for ch in visible if ch.isalpha())
        if alpha / len(visible) < context.settings.noise_alpha_ratio:
            return LineClass(kind=LineKind.NOISE, text=text)
    return None


def _markdown(text: str, context: LineContext) -> LineClass | None:
    match = _MARKDOWN.match(text)
    if not match:
        return None
    title = normalize_title(match.group(2).rstrip("#"))
    if sum(1 for ch in title if ch.isalnum()) < 2:
        return None
    return _heading(title, len(match.group(1)))


def _all_caps(text: str, context: LineContext) -> LineClass | None:
    if not is_all_caps(text):
        return None
    words = word_count(text)
    if words > 9:
        return None
    # a lone capitalised word after a blank line opens a top-level block
    level = 1 if words >= 2 or context.prev_was_blank else 2
    return _heading(text, level)


def _step(text: str, context: LineContext) -> LineClass | None:
    match = _STEP.match(text)
    return _heading(match.group(1), 2) if match else None


def _trailing_colon(text: str, context: LineContext) -> LineClass | None:
    match = _TRAILING_COLON.match(text)
    if not match:
        return None
    title = match.group(1)
    if word_count(title) > 6 or "," in title:
        return None
    if is_content_starter(title) or is_verb_starter(title):
        return None
    return _heading(title, 2)


def _numbered(text: str, context: LineContext) -> LineClass | None:
    match = _NUMBERED.match(text)
    if not match:
        return None
    phrase = match.group(2).strip()
    if word_count(phrase) > 7 or phrase.endswith(_TERMINAL_PUNCTUATION):
        return None
    if is_content_starter(phrase) or is_verb_starter(phrase):
        return None
    return _heading(phrase, 2)


def _looks_like_title(text: str) -> bool:
    if not text[0].isupper() or text.endswith(_TERMINAL_PUNCTUATION) or "," in text:
        return False
    return not (is_content_starter(text) or is_verb_starter(text))


def _blank_preceded(text: str, context: LineContext) -> LineClass | None:
    if not context.prev_was_blank:
        return None
    words = word_count(text)
    if not 1 <= words <= 8 or not _looks_like_title(text):
        return None
    return _heading(text, 3 if words == 1 else 2)


def _isolated_title(text: str, context: LineContext) -> LineClass | None:
    words = text.split()
    if not 1 <= len(words) <= 3 or len(text) < 4 or not _looks_like_title(text):
        return None
    # Title-Case: every word longer than three letters is capitalised
    if any(len(word) > 3 and not word[0].isupper() for word in words):
        return None
    if any(ch.isdigit() for ch in text):
        return None
    return _heading(text, 3)


RULES: tuple[tuple[str, Rule], ...] = (
    ("noise", _noise),
    ("markdown", _markdown),
    ("all_caps", _all_caps),
    ("step", _step),
    ("trailing_colon", _trailing_colon),
    ("numbered", _numbered),
    ("blank_preceded", _blank_preceded),
    ("isolated_title", _isolated_title),
)


def classify_line(
    text: str,
    prev_was_blank: bool = False,
    settings: SectionSettings | None = None,
) -> LineClass:
    """Classify one line; never raises on odd input."""
    stripped = text.strip()
    if not stripped:
        return LineClass(kind=LineKind.BLANK)
    context = LineContext(prev_was_blank=prev_was_blank, settings=settings or SectionSettings())
    for _, rule in RULES:
        verdict = rule(stripped, context)
        if verdict is not None:
            return verdict
    return LineClass(kind=LineKind.CONTENT, text=stripped)


def split_inline_title(text: str) -> tuple[str, str] | None:
    """Split ``"Title : long description"`` into its two halves.

    The left side must be at most six words, start with an uppercase letter
    and not open with a function word; the right side must be at least five
    words long.
    """
    match = _INLINE_TITLE.match(text.strip())
    if not match:
        return None
    title, description = match.group(1).strip(), match.group(2).strip()
    if not title or not title[0].isupper() or word_count(title) > 6:
        return None
    if is_content_starter(title) or word_count(description) < 5:
        return None
    return normalize_title(title), description


def classify_lines(
    lines: Iterable[RawLine],
    settings: SectionSettings | None = None,
) -> Iterator[LineClass]:
    """Classify a stream of lines, tracking blank-line context and inline titles.

    Noise lines are yielded but do not reset the blank-line context.
    """
    settings = settings or SectionSettings()
    prev_was_blank = True
    for raw in lines:
        verdict = classify_line(raw.text, prev_was_blank=prev_was_blank, settings=settings)
        if verdict.kind is LineKind.CONTENT:
            inline = split_inline_title(verdict.text)
            if inline is not None:
                title, description = inline
                yield LineClass(kind=LineKind.HEADING, title=title, level=3, page=raw.page)
                yield LineClass(kind=LineKind.CONTENT, text=description, page=raw.page)
                prev_was_blank = False
                continue
        verdict.page = raw.page
        yield verdict
        if verdict.kind is not LineKind.NOISE:
            prev_was_blank = verdict.kind is LineKind.BLANK
