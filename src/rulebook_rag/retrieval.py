from __future__ import annotations

import re
from collections import defaultdict

from rank_bm25 import BM25Plus

from .errors import LexicalQueryError
from .schema import IndexedChunk, ScoredChunk, ScoreStage
from .text_utils import FRENCH_STOPWORDS, normalize

FIELD_WEIGHTS = {"title": 1.0, "hierarchy_path": 0.4, "content": 0.2}

_QUERY_TOKEN = re.compile(r"^[^\W_]+$")
_INDEX_TOKEN = re.compile(r"[^\W_]+")


def build_lexical_query(query: str) -> str:
    """Normalise a question into an AND expression, e.g. ``"gagner & catan"``.

    Accents and punctuation are removed and tokens shorter than two
    characters dropped. An empty string means there is nothing to search.
    """
    text = re.sub(r"[^\w\s]|_", " ", normalize(query))
    tokens = [token for token in text.split() if len(token) >= 2]
    return " & ".join(tokens)


def parse_lexical_query(expression: str) -> list[str]:
    """Split an AND expression into its terms.

    Raises:
        LexicalQueryError: on an empty operand or a term that is not a bare word.
    """
    if not expression.strip():
        return []
    terms = [term.strip() for term in expression.split("&")]
    for term in terms:
        if not term or not _QUERY_TOKEN.match(term):
            raise LexicalQueryError(f"malformed lexical query: {expression!r}")
    return terms


def _stem(token: str) -> str:
    if len(token) > 3 and token.endswith(("s", "x")):
        return token[:-1]
    return token


def tokenize(text: str) -> list[str]:
    """Index-side tokens: normalised, stop words removed, plural endings folded."""
    return [
        _stem(token)
        for token in _INDEX_TOKEN.findall(normalize(text))
        if len(token) >= 2 and token not in FRENCH_STOPWORDS
    ]


class LexicalIndex:
    """Field-weighted BM25 over chunk title, hierarchy path and body.

    Every query term must occur in at least one field of a chunk for it to
    match. Scores are divided by the best score of the batch.
    """

    def __init__(self, chunks: list[IndexedChunk], weights: dict[str, float] | None = None):
        self.chunks = chunks
        self.weights = weights or FIELD_WEIGHTS
        self._fields: dict[str, list[list[str]]] = {
            "title": [tokenize(chunk.section_title) for chunk in chunks],
            "hierarchy_path": [tokenize(chunk.hierarchy_path) for chunk in chunks],
            "content": [tokenize(chunk.content) for chunk in chunks],
        }
        self._vocabulary = [
            set().union(*(self._fields[name][position] for name in self._fields)) for position in range(len(chunks))
        ]
        # BM25 divides by the mean field length, so all-empty fields get no index
        self._indexes = {
            name: BM25Plus(corpus)
            for name, corpus in self._fields.items()
            if any(corpus) and self.weights.get(name, 0.0) > 0
        }

    def __len__(self) -> int:
        return len(self.chunks)

    def search(self, expression: str, document_id: str | None = None, top_n: int = 20) -> list[ScoredChunk]:
        """Rank chunks matching every term of ``expression``.

        Raises:
            LexicalQueryError: when ``expression`` is malformed.
        """
        terms = [_stem(term) for term in parse_lexical_query(expression) if term not in FRENCH_STOPWORDS]
        if not terms or not self.chunks:
            return []

        candidates = [
            position
            for position, chunk in enumerate(self.chunks)
            if (document_id is None or chunk.document_id == document_id)
            and all(term in self._vocabulary[position] for term in terms)
        ]
        if not candidates:
            return []

        scores = {position: 0.0 for position in candidates}
        for name, index in self._indexes.items():
            field_scores = index.get_batch_scores(terms, candidates)
            for position, value in zip(candidates, field_scores, strict=True):
                scores[position] += self.weights[name] * max(float(value), 0.0)

        ranked = sorted(candidates, key=lambda position: scores[position], reverse=True)[:top_n]
        best = max(max(scores[position] for position in ranked), 0.001)
        return [
            ScoredChunk(chunk=self.chunks[position], score=scores[position] / best, stage=ScoreStage.SPARSE)
            for position in ranked
        ]


def _check_stage(results: list[ScoredChunk], stage: ScoreStage) -> None:
    for result in results:
        if result.stage is not stage:
            raise ValueError(f"expected {stage.value} results, got {result.stage.value}")


def reciprocal_rank_fusion(
    dense: list[ScoredChunk],
    sparse: list[ScoredChunk],
    dense_weight: float = 0.6,
    sparse_weight: float = 0.4,
    k: int = 60,
    top_k: int | None = None,
) -> list[ScoredChunk]:
    """Fuse dense and sparse rankings via weighted Reciprocal Rank Fusion (RRF).

    Each list contributes ``weight / (k + rank + 1)`` for a zero-based rank.
    Only positions matter, so the two score scales never need calibrating.

    Args:
        dense: Ranked dense results.
        sparse: Ranked sparse results.
        dense_weight: Weight of the dense ranking.
        sparse_weight: Weight of the sparse ranking.
        k: RRF smoothing constant controlling rank contribution decay.
        top_k: Optional cut-off.

    Returns:
        Fused ranking sorted by combined score; ties keep first-seen order.
    """
    _check_stage(dense, ScoreStage.DENSE)
    _check_stage(sparse, ScoreStage.SPARSE)
    fused: dict[str, float] = defaultdict(float)
    lookup: dict[str, IndexedChunk] = {}

    for weight, results in ((dense_weight, dense), (sparse_weight, sparse)):
        for rank, result in enumerate(results):
            fused[result.chunk_id] += weight / (k + rank + 1)
            lookup.setdefault(result.chunk_id, result.chunk)

    ordered = sorted(fused.items(), key=lambda item: item[1], reverse=True)
    if top_k is not None:
        ordered = ordered[:top_k]
    return [ScoredChunk(chunk=lookup[chunk_id], score=score, stage=ScoreStage.FUSED) for chunk_id, score in ordered]


def weighted_score_fusion(
    dense: list[ScoredChunk],
    sparse: list[ScoredChunk],
    dense_weight: float = 0.6,
    sparse_weight: float = 0.4,
    top_k: int | None = None,
) -> list[ScoredChunk]:
    """Weighted sum of dense and sparse scores; a missing side counts as zero."""
    _check_stage(dense, ScoreStage.DENSE)
    _check_stage(sparse, ScoreStage.SPARSE)
    fused: dict[str, float] = defaultdict(float)
    lookup: dict[str, IndexedChunk] = {}
    for weight, results in ((dense_weight, dense), (sparse_weight, sparse)):
        for result in results:
            fused[result.chunk_id] += weight * result.score
            lookup.setdefault(result.chunk_id, result.chunk)

    ordered = sorted(fused.items(), key=lambda item: item[1], reverse=True)
    if top_k is not None:
        ordered = ordered[:top_k]
    return [ScoredChunk(chunk=lookup[chunk_id], score=score, stage=ScoreStage.FUSED) for chunk_id, score in ordered]
