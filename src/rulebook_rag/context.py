from __future__ import annotations

from .schema import DocumentMetadata, DocumentSelection, ScoredChunk

DEFAULT_MAX_CHARS = 6000
MAX_ACTIONS = 6


def truncate_at_sentence(text: str, max_chars: int) -> str:
    """Cut ``text`` to ``max_chars``, backing up to the last sentence end when one is near."""
    if len(text) <= max_chars:
        return text
    cut = text[:max_chars]
    end = max(cut.rfind(". "), cut.rfind("! "), cut.rfind("? "), cut.rfind("\n"))
    if end >= max_chars // 2:
        return cut[: end + 1].rstrip()
    return cut.rstrip() + "…"


def _span(low: int | None, high: int | None) -> str:
    low = low if low is not None else high
    high = high if high is not None else low
    return str(low) if low == high else f"{low}-{high}"


def describe_metadata(metadata: DocumentMetadata | None) -> str:
    """Known game facts on one line, e.g. ``Catan : 3-4 joueurs • 10 ans et plus • 60-90 min``."""
    if metadata is None:
        return ""
    facts: list[str] = []
    if metadata.min_players or metadata.max_players:
        players = _span(metadata.min_players, metadata.max_players)
        facts.append(f"{players} joueur" if players == "1" else f"{players} joueurs")
    if metadata.min_age:
        facts.append(f"{metadata.min_age} ans et plus")
    if metadata.min_duration or metadata.max_duration:
        facts.append(f"{_span(metadata.min_duration, metadata.max_duration)} min")
    if not facts:
        return ""
    return f"{metadata.name} : " + " • ".join(facts)


def format_chunk(position: int, scored: ScoredChunk, use_summary: bool = False) -> str:
    chunk = scored.chunk
    body = chunk.summary if use_summary and chunk.summary else chunk.content
    header = f"Chunk {position}"
    if chunk.hierarchy_path:
        header += f" [{chunk.hierarchy_path}]"
    text = f"{header}: {body}"
    if chunk.actions and not use_summary:
        text += "\nActions : " + ", ".join(chunk.actions[:MAX_ACTIONS])
    return text


def build_context(
    chunks: list[ScoredChunk],
    max_chars: int = DEFAULT_MAX_CHARS,
    use_summaries: bool = False,
    metadata: DocumentMetadata | None = None,
) -> str:
    """Number the chunks and join them, stopping once ``max_chars`` is reached.

    ``use_summaries`` swaps each chunk body for its stored extractive summary
    when there is one, which lets overview answers cover more sections. Known
    game facts from ``metadata`` open the context.
    """
    if not chunks:
        return ""
    blocks: list[str] = []
    used = 0
    facts = describe_metadata(metadata)
    if facts:
        blocks.append(facts)
        used = len(facts) + 2
    for position, scored in enumerate(chunks, start=1):
        block = format_chunk(position, scored, use_summaries)
        remaining = max_chars - used
        if remaining <= 0:
            break
        if len(block) > remaining:
            blocks.append(truncate_at_sentence(block, remaining))
            break
        blocks.append(block)
        used += len(block) + 2
    return "\n\n".join(blocks)


def selection_context(selection: DocumentSelection | None, **kwargs) -> str:
    if selection is None:
        return ""
    return build_context(selection.chunks, metadata=selection.metadata, **kwargs)
