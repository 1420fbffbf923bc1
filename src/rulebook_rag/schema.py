from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

import numpy as np


class LineKind(str, Enum):
    NOISE = "noise"
    HEADING = "heading"
    CONTENT = "content"
    BLANK = "blank"
    PAGE_MARKER = "page_marker"


class ScoreStage(str, Enum):
    """Pipeline stage that produced a score; scores of different stages never compare."""

    DENSE = "dense"
    SPARSE = "sparse"
    FUSED = "fused"


class RetrievalStatus(str, Enum):
    OK = "ok"
    NO_DOCUMENTS = "no_documents"
    NO_RESULTS = "no_results"


@dataclass(slots=True)
class RawLine:
    """One physical line of extracted text with the page it was read from."""

    text: str
    page: int | None = None


@dataclass(slots=True)
class LineClass:
    """Classifier verdict for one line: noise, heading(title, level), content or blank."""

    kind: LineKind
    title: str = ""
    level: int = 2
    page: int | None = None
    text: str = ""

    @property
    def is_heading(self) -> bool:
        return self.kind is LineKind.HEADING


@dataclass(slots=True, frozen=True)
class Section:
    """Contiguous region of a rulebook under one heading."""

    title: str
    level: int
    body: str
    page_start: int | None = None
    page_end: int | None = None

    @property
    def word_count(self) -> int:
        return len(self.body.split())


@dataclass(slots=True)
class Chunk:
    """Retrieval-sized piece of a section, before persistence."""

    content: str
    section_title: str
    hierarchy_path: str
    chunk_index: int
    chunk_count: int
    source_section: Section
    page_start: int | None = None
    page_end: int | None = None
    section_type: str = "other"

    def __post_init__(self) -> None:
        if not 0 <= self.chunk_index < self.chunk_count:
            raise ValueError(
                f"chunk_index {self.chunk_index} out of range for chunk_count {self.chunk_count}"
            )

    @property
    def word_count(self) -> int:
        return len(self.content.split())


@dataclass(slots=True)
class ChunkAnnotations:
    """Ingest-time enrichment stored beside each chunk."""

    mechanics: list[str] = field(default_factory=list)
    entities: list[str] = field(default_factory=list)
    actions: list[str] = field(default_factory=list)
    summary: str = ""


@dataclass(slots=True)
class IndexedChunk:
    """A chunk as persisted in the store, with its document identity."""

    id: str
    document_id: str
    document_name: str
    content: str
    section_title: str
    hierarchy_path: str
    chunk_index: int
    chunk_count: int
    level: int = 2
    section_type: str = "other"
    dense_vector: np.ndarray | None = None
    mechanics: list[str] = field(default_factory=list)
    entities: list[str] = field(default_factory=list)
    actions: list[str] = field(default_factory=list)
    summary: str = ""
    page_start: int | None = None
    page_end: int | None = None
    source: str = ""


@dataclass(slots=True)
class ScoredChunk:
    """An indexed chunk carrying the score of one retrieval stage."""

    chunk: IndexedChunk
    score: float
    stage: ScoreStage

    @property
    def document_id(self) -> str:
        return self.chunk.document_id

    @property
    def document_name(self) -> str:
        return self.chunk.document_name

    @property
    def chunk_id(self) -> str:
        return self.chunk.id


def rank_scored(chunks: list[ScoredChunk]) -> list[ScoredChunk]:
    """Sort by descending score, keeping input order on ties.

    Raises:
        ValueError: when the list mixes scores from different stages.
    """
    stages = {scored.stage for scored in chunks}
    if len(stages) > 1:
        raise ValueError(f"cannot rank scores from different stages: {sorted(s.value for s in stages)}")
    return sorted(chunks, key=lambda scored: scored.score, reverse=True)


@dataclass(slots=True)
class DocumentMetadata:
    """Game facts read from the rulebook text; durations are in minutes."""

    name: str
    min_players: int | None = None
    max_players: int | None = None
    min_age: int | None = None
    min_duration: int | None = None
    max_duration: int | None = None


@dataclass(slots=True)
class DocumentSelection:
    document_id: str
    document_name: str
    aggregate_score: float
    matched_by_name: bool
    chunks: list[ScoredChunk]
    metadata: DocumentMetadata | None = None


@dataclass(slots=True)
class IndexedDocument:
    document_id: str
    name: str
    sources: list[str] = field(default_factory=list)
    chunk_count: int = 0
    metadata: DocumentMetadata | None = None


@dataclass(slots=True)
class IntentAnalysis:
    intent: str
    confidence: float
    recommended_k: int
    priority_categories: list[str] = field(default_factory=list)


@dataclass(slots=True)
class RetrievalOutcome:
    """Result of a search: selection found, nothing indexed, or nothing relevant."""

    status: RetrievalStatus
    selection: DocumentSelection | None = None
    intent: IntentAnalysis | None = None


@dataclass(slots=True)
class Answer:
    answer: str
    model: str
    used_generation: bool
    selection: DocumentSelection | None = None
