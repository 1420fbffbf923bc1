"""Shared pytest fixtures for rulebook_rag unit tests."""
from __future__ import annotations

import zlib

import numpy as np
import pytest

from rulebook_rag.embeddings import normalize_rows
from rulebook_rag.retrieval import tokenize
from rulebook_rag.schema import IndexedChunk, ScoredChunk, ScoreStage, Section
from rulebook_rag.settings import Settings
from rulebook_rag.vector_store import ChunkStore

CATAN_RULES = """Catan

PRÉSENTATION
Bienvenue sur l'île de Catan. Vous incarnez des colons qui construisent des routes, des colonies et des villes en exploitant les ressources de l'île. Chaque joueur essaie de développer sa colonie plus vite que ses adversaires.

MATÉRIEL
Le jeu contient un plateau modulaire composé de tuiles hexagonales, des cartes ressources, des cartes développement, deux dés et des pions de couleur pour chaque joueur. Vérifiez le contenu de la boîte avant la première partie.

TOUR DE JEU
À son tour, le joueur lance les deux dés pour déterminer la production de ressources. Ensuite il peut commercer avec les autres joueurs et construire des routes, des colonies ou des villes en payant les ressources indiquées.

VICTOIRE
La partie se termine dès qu'un joueur atteint dix points de victoire pendant son tour. Les colonies rapportent un point, les villes deux points, et certaines cartes développement rapportent aussi des points de victoire.
"""

WONDERS_RULES = """7 Wonders

PRÉSENTATION
Dans 7 Wonders, vous dirigez une grande cité de l'Antiquité. Vous développez votre civilisation à travers trois âges en jouant des cartes qui représentent des bâtiments, des merveilles et des découvertes scientifiques.

DÉROULEMENT
Chaque âge se joue en six tours. À chaque tour, les joueurs choisissent simultanément une carte de leur main, la jouent, puis passent le reste de la main au voisin. Les cartes militaires provoquent des conflits entre voisins à la fin de chaque âge.
"""


class HashingEmbedder:
    """Deterministic bag-of-words embedder; a constant first component keeps vectors non-zero."""

    model_name = "hashing-test"

    def __init__(self, dim: int = 64):
        self.dim = dim
        self.calls: list[list[str]] = []

    def embed(self, texts: list[str]) -> np.ndarray:
        self.calls.append(list(texts))
        rows = []
        for text in texts:
            vector = np.zeros(self.dim, dtype=np.float32)
            vector[0] = 1.0
            for token in tokenize(text):
                vector[1 + zlib.crc32(token.encode("utf-8")) % (self.dim - 1)] += 1.0
            rows.append(vector)
        return normalize_rows(np.array(rows, dtype=np.float32))


class FailingEmbedder:
    model_name = "failing"

    def embed(self, texts: list[str]) -> np.ndarray:
        raise ConnectionError("embedding service down")


def make_indexed_chunk(
    chunk_id: str,
    content: str = "texte de règle",
    document_id: str = "catan",
    document_name: str = "Catan",
    section_title: str = "Règles",
    section_type: str = "other",
) -> IndexedChunk:
    return IndexedChunk(
        id=chunk_id,
        document_id=document_id,
        document_name=document_name,
        content=content,
        section_title=section_title,
        hierarchy_path=section_title,
        chunk_index=0,
        chunk_count=1,
        section_type=section_type,
    )


def make_scored(chunk_id: str, score: float, stage: ScoreStage = ScoreStage.DENSE, **kwargs) -> ScoredChunk:
    return ScoredChunk(chunk=make_indexed_chunk(chunk_id, **kwargs), score=score, stage=stage)


def words(count: int, prefix: str = "mot") -> str:
    return " ".join(f"{prefix}{index}" for index in range(count))


@pytest.fixture()
def settings() -> Settings:
    return Settings()


@pytest.fixture()
def embedder() -> HashingEmbedder:
    return HashingEmbedder()


@pytest.fixture()
def store(tmp_path) -> ChunkStore:
    return ChunkStore(persist_dir=str(tmp_path / "chroma"), collection_name="test_rulebooks")


@pytest.fixture()
def sample_section() -> Section:
    return Section(
        title="Mise en place",
        level=2,
        body="Placez le plateau au centre de la table. Chaque joueur reçoit cinq cartes et deux pions.",
        page_start=2,
        page_end=2,
    )


@pytest.fixture()
def sample_sections() -> list[Section]:
    return [
        Section(title="RÈGLES DU JEU", level=1, body=words(30, "intro")),
        Section(title="Mise en place", level=2, body=words(30, "prep")),
        Section(title="Cartes", level=3, body=words(30, "carte")),
        Section(title="Tour de jeu", level=2, body=words(30, "tour")),
        Section(title="FIN DE PARTIE", level=1, body=words(30, "fin")),
    ]
