from __future__ import annotations

from functools import lru_cache
from typing import Protocol

import numpy as np
from openai import OpenAI

from .settings import ModelSettings


class Embedder(Protocol):
    model_name: str

    def embed(self, texts: list[str]) -> np.ndarray:
        """Return a ``(len(texts), dim)`` float32 matrix of unit vectors."""


def normalize_rows(matrix: np.ndarray) -> np.ndarray:
    """L2-normalise each row, leaving all-zero rows at zero."""
    matrix = np.asarray(matrix, dtype=np.float32)
    if matrix.ndim == 1:
        matrix = matrix.reshape(1, -1)
    norms = np.linalg.norm(matrix, axis=1, keepdims=True)
    return matrix / np.maximum(norms, 1e-12)


def embed_texts(texts: list[str], model: str = "text-embedding-3-small") -> np.ndarray:
    """Generate embedding vectors for input texts using OpenAI embeddings API.

    Args:
        texts: Input strings to embed.
        model: Embedding model name.

    Returns:
        A `float32` NumPy matrix shaped `(len(texts), embedding_dim)` with unit rows.
    """
    client = OpenAI()
    response = client.embeddings.create(model=model, input=texts)
    vectors = [row.embedding for row in response.data]
    return normalize_rows(np.array(vectors, dtype=np.float32))


class OpenAIEmbedder:
    """Embedder backed by the OpenAI embeddings endpoint."""

    def __init__(self, model_name: str = "text-embedding-3-small"):
        self.model_name = model_name

    def embed(self, texts: list[str]) -> np.ndarray:
        if not texts:
            return np.zeros((0, 0), dtype=np.float32)
        return embed_texts(texts, model=self.model_name)


@lru_cache(maxsize=4)
def _load_sentence_transformer(model_name: str):
    from sentence_transformers import SentenceTransformer

    return SentenceTransformer(model_name)


class LocalEmbedder:
    """Embedder running a sentence-transformers model in-process.

    The model is loaded on first use and shared by every instance with the
    same name.
    """

    def __init__(self, model_name: str = "paraphrase-multilingual-MiniLM-L12-v2"):
        self.model_name = model_name

    def embed(self, texts: list[str]) -> np.ndarray:
        if not texts:
            return np.zeros((0, 0), dtype=np.float32)
        model = _load_sentence_transformer(self.model_name)
        vectors = model.encode(texts, normalize_embeddings=True, convert_to_numpy=True)
        return normalize_rows(vectors)


def build_embedder(settings: ModelSettings | None = None) -> Embedder:
    """Create the embedder named by ``settings.embedding_backend`` (``openai`` or ``local``)."""
    settings = settings or ModelSettings()
    if settings.embedding_backend == "local":
        return LocalEmbedder(settings.local_embedding_model)
    if settings.embedding_backend == "openai":
        return OpenAIEmbedder(settings.embedding_model)
    raise ValueError(f"unknown embedding backend: {settings.embedding_backend!r}")
