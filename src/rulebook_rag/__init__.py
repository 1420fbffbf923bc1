"""Rulebook structuring and hybrid retrieval for board-game question answering."""

from .schema import (
    Answer,
    Chunk,
    DocumentSelection,
    IndexedChunk,
    RetrievalOutcome,
    RetrievalStatus,
    ScoredChunk,
    ScoreStage,
    Section,
)

__all__ = [
    "Answer",
    "Chunk",
    "DocumentSelection",
    "IndexedChunk",
    "RetrievalOutcome",
    "RetrievalStatus",
    "ScoreStage",
    "ScoredChunk",
    "Section",
]
