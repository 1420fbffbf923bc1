from __future__ import annotations

import os
from dataclasses import dataclass, field

from dotenv import load_dotenv


@dataclass(slots=True)
class ModelSettings:
    """Runtime model configuration for embedding and generation calls."""

    embedding_backend: str = "openai"
    embedding_model: str = "text-embedding-3-small"
    local_embedding_model: str = "paraphrase-multilingual-MiniLM-L12-v2"
    chat_model: str = "gpt-4.1-mini"
    temperature: float = 0.2
    max_output_tokens: int = 700


@dataclass(slots=True)
class SectionSettings:
    """Thresholds for line classification and the section-building passes."""

    noise_alpha_ratio: float = 0.30
    heading_min_body_words: int = 10
    merge_min_words: int = 25
    split_max_words: int = 350
    split_target_words: int = 200
    filter_min_words: int = 10


@dataclass(slots=True)
class ChunkingSettings:
    target_words: int = 300
    max_words: int = 450
    min_words: int = 100
    overlap_words: int = 75
    path_separator: str = " > "

    def __post_init__(self) -> None:
        if not 0 < self.min_words <= self.target_words <= self.max_words:
            raise ValueError("chunk sizes must satisfy 0 < min_words <= target_words <= max_words")
        if self.overlap_words >= self.min_words:
            raise ValueError("overlap_words must be smaller than min_words")


@dataclass(slots=True)
class RetrievalSettings:
    top_n: int = 20
    dense_weight: float = 0.6
    sparse_weight: float = 0.4
    rrf_k: int = 60
    min_score: float = 0.05
    default_top_k: int = 4
    fusion: str = "rrf"
    aggregate_top: int = 3
    name_min_length: int = 5


@dataclass(slots=True)
class Paths:
    """Common project paths."""

    data_dir: str = "data"
    artifacts_dir: str = "artifacts"
    chroma_dir: str = "artifacts/chroma"
    collection_name: str = "rulebook_chunks"


@dataclass(slots=True)
class Settings:
    models: ModelSettings = field(default_factory=ModelSettings)
    sections: SectionSettings = field(default_factory=SectionSettings)
    chunking: ChunkingSettings = field(default_factory=ChunkingSettings)
    retrieval: RetrievalSettings = field(default_factory=RetrievalSettings)
    paths: Paths = field(default_factory=Paths)


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value else default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value else default


def load_settings() -> Settings:
    """Load environment-backed settings and return typed config objects.

    Reads a local ``.env`` first, then ``OPENAI_*`` and ``RULEBOOK_*``
    variables. Unset variables keep the dataclass defaults.
    """
    load_dotenv()
    models = ModelSettings(
        embedding_backend=os.getenv("RULEBOOK_EMBEDDING_BACKEND", "openai"),
        embedding_model=os.getenv("OPENAI_EMBEDDING_MODEL", "text-embedding-3-small"),
        local_embedding_model=os.getenv(
            "RULEBOOK_LOCAL_EMBEDDING_MODEL", "paraphrase-multilingual-MiniLM-L12-v2"
        ),
        chat_model=os.getenv("OPENAI_CHAT_MODEL", "gpt-4.1-mini"),
    )
    chunking = ChunkingSettings(
        target_words=_env_int("RULEBOOK_CHUNK_TARGET_WORDS", 300),
        max_words=_env_int("RULEBOOK_CHUNK_MAX_WORDS", 450),
        min_words=_env_int("RULEBOOK_CHUNK_MIN_WORDS", 100),
        overlap_words=_env_int("RULEBOOK_CHUNK_OVERLAP_WORDS", 75),
    )
    retrieval = RetrievalSettings(
        top_n=_env_int("RULEBOOK_TOP_N", 20),
        dense_weight=_env_float("RULEBOOK_DENSE_WEIGHT", 0.6),
        sparse_weight=_env_float("RULEBOOK_SPARSE_WEIGHT", 0.4),
        rrf_k=_env_int("RULEBOOK_RRF_K", 60),
        min_score=_env_float("RULEBOOK_MIN_SCORE", 0.05),
        default_top_k=_env_int("RULEBOOK_TOP_K", 4),
        fusion=os.getenv("RULEBOOK_FUSION", "rrf"),
    )
    artifacts_dir = os.getenv("RULEBOOK_ARTIFACTS_DIR", "artifacts")
    paths = Paths(
        data_dir=os.getenv("RULEBOOK_DATA_DIR", "data"),
        artifacts_dir=artifacts_dir,
        chroma_dir=os.getenv("RULEBOOK_CHROMA_DIR", f"{artifacts_dir}/chroma"),
        collection_name=os.getenv("RULEBOOK_COLLECTION", "rulebook_chunks"),
    )
    return Settings(
        models=models,
        sections=SectionSettings(),
        chunking=chunking,
        retrieval=retrieval,
        paths=paths,
    )
