"""Build titled sections from raw rulebook text.

The builder folds the classified line stream into a first list of sections,
then runs four passes over it: prune headings with almost no body, merge
sections that are still short, split sections that are too long, and drop
whatever is left below the minimum size.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field, replace
from functools import reduce
from typing import Iterable, Iterator

from .line_classifier import classify_lines
from .schema import LineClass, LineKind, RawLine, Section
from .settings import SectionSettings
from .text_utils import TextUnit, join_units, split_units

logger = logging.getLogger(__name__)

PAGE_MARKER = "%%PAGE:{page}%%"
PAGE_MARKER_RE = re.compile(r"^\s*%%PAGE:(\d+)%%\s*$")


def join_pages(pages: Iterable[tuple[int, str]]) -> str:
    """Concatenate ``(page_number, text)`` pairs with page markers between them."""
    return "\n".join(f"{PAGE_MARKER.format(page=number)}\n{text}" for number, text in pages)


def iter_raw_lines(raw_text: str) -> Iterator[RawLine]:
    """Yield text lines tagged with their page; markers themselves are consumed."""
    page: int | None = None
    for line in raw_text.splitlines():
        marker = PAGE_MARKER_RE.match(line)
        if marker:
            page = int(marker.group(1))
            continue
        yield RawLine(text=line, page=page)


@dataclass(slots=True)
class _BuilderState:
    title: str
    level: int = 1
    buffer: list[str] = field(default_factory=list)
    page_start: int | None = None
    page_end: int | None = None
    heading_page: int | None = None
    from_heading: bool = False
    sections: list[Section] = field(default_factory=list)


def _flush(state: _BuilderState) -> None:
    body = "\n".join(state.buffer).strip()
    body = re.sub(r"\n{3,}", "\n\n", body)
    if body or state.from_heading:
        page_start = state.page_start if state.page_start is not None else state.heading_page
        page_end = state.page_end if state.page_end is not None else page_start
        state.sections.append(
            Section(
                title=state.title,
                level=state.level,
                body=body,
                page_start=page_start,
                page_end=page_end,
            )
        )


def _step(state: _BuilderState, line: LineClass) -> _BuilderState:
    if line.kind is LineKind.HEADING:
        _flush(state)
        return _BuilderState(
            title=line.title,
            level=line.level,
            heading_page=line.page,
            from_heading=True,
            sections=state.sections,
        )
    if line.kind is LineKind.CONTENT:
        state.buffer.append(line.text)
        if line.page is not None:
            if state.page_start is None:
                state.page_start = line.page
            state.page_end = line.page
    elif line.kind is LineKind.BLANK and state.buffer and state.buffer[-1]:
        state.buffer.append("")
    return state


def _join(*parts: str) -> str:
    return "\n\n".join(part for part in parts if part)


def _max_page(first: int | None, second: int | None) -> int | None:
    pages = [page for page in (first, second) if page is not None]
    return max(pages) if pages else None


def prune_short_headings(sections: list[Section], min_words: int = 10) -> list[Section]:
    """Demote headings whose body is shorter than ``min_words``."""
    result: list[Section] = []
    for section in sections:
        if section.word_count >= min_words:
            result.append(section)
        elif result:
            previous = result[-1]
            result[-1] = replace(
                previous,
                body=_join(previous.body, f"{section.title}\n{section.body}".strip()),
                page_end=_max_page(previous.page_end, section.page_end),
            )
        else:
            result.append(replace(section, body=f"{section.title}\n{section.body}".strip()))
    return result


def merge_short_sections(sections: list[Section], min_words: int = 25) -> list[Section]:
    """Append sections below ``min_words`` (title and body) onto the previous one."""
    result: list[Section] = []
    for section in sections:
        if section.word_count < min_words and result:
            previous = result[-1]
            result[-1] = replace(
                previous,
                body=_join(previous.body, f"{section.title}\n{section.body}".strip()),
                page_end=_max_page(previous.page_end, section.page_end),
            )
        else:
            result.append(section)
    return result


def split_long_sections(
    sections: list[Section],
    max_words: int = 350,
    target_words: int = 200,
) -> list[Section]:
    """Split sections over ``max_words`` at paragraph boundaries.

    Paragraphs longer than ``target_words`` are broken into sentences first.
    Each piece aims at ``target_words`` and repeats the last unit of the
    previous piece when the result stays within ``max_words``.
    """
    result: list[Section] = []
    for section in sections:
        if section.word_count <= max_words:
            result.append(section)
            continue
        pieces: list[list[TextUnit]] = []
        current: list[TextUnit] = []
        current_words = 0
        fresh = 0
        for unit in split_units(section.body, target_words):
            if fresh and current_words + unit.words > target_words:
                pieces.append(current)
                overlap = current[-1]
                current = [overlap] if overlap.words + unit.words <= max_words else []
                current_words = sum(part.words for part in current)
                fresh = 0
            current.append(unit)
            current_words += unit.words
            fresh += 1
        if fresh:
            pieces.append(current)
        for number, piece in enumerate(pieces):
            title = section.title if number == 0 else f"{section.title} (cont. {number})"
            result.append(replace(section, title=title, body=join_units(piece)))
    return result


def filter_sections(sections: list[Section], min_words: int = 10) -> list[Section]:
    return [section for section in sections if section.word_count >= min_words]


def build_sections(
    raw_text: str,
    document_name: str,
    settings: SectionSettings | None = None,
) -> list[Section]:
    """Turn extracted text (optionally carrying page markers) into sections.

    Args:
        raw_text: Full document text; ``%%PAGE:N%%`` lines set the page.
        document_name: Title used for text that precedes any heading.
        settings: Classification and pass thresholds.

    Returns:
        Sections in document order. Empty input yields an empty list.
    """
    settings = settings or SectionSettings()
    if not raw_text or not raw_text.strip():
        return []

    lines = classify_lines(iter_raw_lines(raw_text), settings)
    state = reduce(_step, lines, _BuilderState(title=document_name))
    _flush(state)
    initial = state.sections

    pruned = prune_short_headings(initial, settings.heading_min_body_words)
    merged = merge_short_sections(pruned, settings.merge_min_words)
    split = split_long_sections(merged, settings.split_max_words, settings.split_target_words)
    sections = filter_sections(split, settings.filter_min_words)
    logger.debug(
        "built sections for %s: initial=%d pruned=%d merged=%d split=%d final=%d",
        document_name,
        len(initial),
        len(pruned),
        len(merged),
        len(split),
        len(sections),
    )
    return sections
