from __future__ import annotations

from .classification import classify_section
from .schema import Chunk, Section
from .settings import ChunkingSettings
from .text_utils import TextUnit, join_units, split_paragraphs, split_sentences, split_units

__all__ = [
    "build_hierarchy_path",
    "chunk_section",
    "chunk_sections",
    "chunking_stats",
    "enrich_chunk_content",
    "split_paragraphs",
    "split_sentences",
]


def build_hierarchy_path(sections: list[Section], index: int, separator: str = " > ") -> str:
    """Join ancestor titles down to ``sections[index]``.

    Walks backwards and keeps each section whose level is lower than the last
    one kept, stopping at a level-1 ancestor.
    """
    current = sections[index]
    path = [current.title]
    level = current.level
    for earlier in reversed(sections[:index]):
        if level <= 1:
            break
        if earlier.level < level:
            path.insert(0, earlier.title)
            level = earlier.level
    return separator.join(path)


def chunk_section(
    section: Section,
    hierarchy_path: str = "",
    settings: ChunkingSettings | None = None,
    section_type: str = "other",
) -> list[Chunk]:
    """Split one section into overlapping chunks.

    Args:
        section: Section to split.
        hierarchy_path: Ancestor path for the section.
        settings: Chunk size and overlap settings.
        section_type: Category stored on every chunk.

    Returns:
        Chunks in reading order with ``chunk_count`` filled in.
    """
    settings = settings or ChunkingSettings()
    path = hierarchy_path or section.title
    if section.word_count <= settings.max_words:
        contents = [section.body.strip()]
    else:
        contents = _accumulate(section.body, settings)

    return [
        Chunk(
            content=content,
            section_title=section.title,
            hierarchy_path=path,
            chunk_index=index,
            chunk_count=len(contents),
            source_section=section,
            page_start=section.page_start,
            page_end=section.page_end,
            section_type=section_type,
        )
        for index, content in enumerate(contents)
    ]


def _accumulate(body: str, settings: ChunkingSettings) -> list[str]:
    # no single unit may push a chunk that is still below min_words past max_words
    cap = max(1, settings.max_words - max(settings.min_words, settings.overlap_words))
    flushed: list[list[TextUnit]] = []
    current: list[TextUnit] = []
    current_words = 0
    fresh_words = 0

    for unit in split_units(body, cap):
        if (
            fresh_words
            and current_words + unit.words > settings.target_words
            and current_words >= settings.min_words
        ):
            flushed.append(current)
            tail = " ".join(join_units(current).split()[-settings.overlap_words :])
            current = [TextUnit(tail, len(tail.split()), True)]
            current_words = len(tail.split())
            fresh_words = 0
        current.append(unit)
        current_words += unit.words
        fresh_words += unit.words

    if fresh_words:
        fresh = current[1:] if flushed else current
        if current_words >= settings.min_words or not flushed:
            flushed.append(current)
        elif sum(part.words for part in flushed[-1]) + fresh_words <= settings.max_words:
            flushed[-1] = flushed[-1] + fresh
        else:
            flushed.append(current)
    return [join_units(parts) for parts in flushed]


def chunk_sections(sections: list[Section], settings: ChunkingSettings | None = None) -> list[Chunk]:
    """Chunk every section, tagging hierarchy path and section type."""
    settings = settings or ChunkingSettings()
    chunks: list[Chunk] = []
    for index, section in enumerate(sections):
        path = build_hierarchy_path(sections, index, settings.path_separator)
        section_type = classify_section(section.title, section.body)
        chunks.extend(chunk_section(section, path, settings, section_type))
    return chunks


def enrich_chunk_content(chunk: Chunk) -> str:
    """Text sent to the embedder: hierarchy prefix, part marker, then content."""
    prefix = f"[{chunk.hierarchy_path}]"
    if chunk.chunk_count > 1:
        prefix += f" (Partie {chunk.chunk_index + 1}/{chunk.chunk_count})"
    return f"{prefix}\n{chunk.content}"


def chunking_stats(chunks: list[Chunk]) -> dict[str, float | int]:
    if not chunks:
        return {
            "total_chunks": 0,
            "total_words": 0,
            "avg_words": 0.0,
            "min_words": 0,
            "max_words": 0,
            "chunks_with_overlap": 0,
        }
    counts = [chunk.word_count for chunk in chunks]
    return {
        "total_chunks": len(chunks),
        "total_words": sum(counts),
        "avg_words": round(sum(counts) / len(counts), 1),
        "min_words": min(counts),
        "max_words": max(counts),
        "chunks_with_overlap": sum(1 for chunk in chunks if chunk.chunk_index > 0),
    }
