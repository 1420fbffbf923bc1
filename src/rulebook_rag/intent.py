"""Tell overview questions ("comment se joue ...") from specific rule questions."""
from __future__ import annotations

import re

from .schema import IntentAnalysis, ScoredChunk

OVERVIEW_K = 8
SPECIFIC_K = 4
OVERVIEW_PRIORITY = ["presentation", "objective", "turn_structure", "victory", "setup", "components"]

# Matched against the lowercased question; accents stay so "où" differs from "ou".
OVERVIEW_PATTERNS = tuple(
    re.compile(pattern)
    for pattern in (
        r"r[ée]sum[ée]",
        r"\bvue\s+d'ensemble\b",
        r"\bvue\s+g[ée]n[ée]rale\b",
        r"\bcomment\s+(se\s+)?joue",
        r"\bcomment\s+[çc]a\s+(se\s+)?joue",
        r"\bexplique[-\s]?(moi|nous)",
        r"\bc'est\s+quoi\b",
        r"\bqu'?est[-\s]ce\s+(que\s+)?c'?est\b",
        r"\bprincipe\s+(du\s+)?jeu",
        r"\bfonctionne\s+le\s+jeu",
        r"\bd[ée]roul(?:e|ement)",
        r"\bgrand(?:e)?s?\s+lignes?\b",
        r"\bbase\b",
        r"\bpr[ée]sentation\b",
        r"\bintroduction\b",
        r"\bg[ée]n[ée]ral(?:e|ement)?\b",
        r"\baper[çc]u\b",
        r"\bcomment\s+gagne",
        r"\bbut\s+du\s+jeu",
        r"\bobj?ectif",
    )
)

SPECIFIC_PATTERNS = tuple(
    re.compile(pattern)
    for pattern in (
        r"\bque\s+se\s+passe",
        r"\bsi\s+je\b",
        r"\bsi\s+on\b",
        r"\bpuis[-\s]?je\b",
        r"\bpeut[-\s]on\b",
        r"\best[-\s]ce\s+que",
        r"\bcombien\s+de\b",
        r"\bquand\b",
        r"\boù\b",
        r"\bpourquoi\b",
        r"\bcomment\s+(?!joue)(?!se\s+joue)(?!gagne)",
    )
)


def detect_intent(query: str) -> IntentAnalysis:
    """Classify a question and recommend how many chunks to retrieve.

    A question shorter than eight words that matches neither pattern set is
    nudged toward ``overview``. Confidence is ``|o - s| / max(o + s, 1)``.
    """
    text = query.lower()
    overview = float(sum(1 for pattern in OVERVIEW_PATTERNS if pattern.search(text)))
    specific = float(sum(1 for pattern in SPECIFIC_PATTERNS if pattern.search(text)))
    if len(text.split()) < 8 and overview == 0 and specific == 0:
        overview += 0.5

    confidence = abs(overview - specific) / max(overview + specific, 1.0)
    if overview > specific:
        return IntentAnalysis(
            intent="overview",
            confidence=confidence,
            recommended_k=OVERVIEW_K,
            priority_categories=list(OVERVIEW_PRIORITY),
        )
    return IntentAnalysis(intent="specific", confidence=confidence, recommended_k=SPECIFIC_K)


def is_overview_question(query: str, min_confidence: float = 0.3) -> bool:
    analysis = detect_intent(query)
    return analysis.intent == "overview" and analysis.confidence >= min_confidence


def prioritize(chunks: list[ScoredChunk], categories: list[str]) -> list[ScoredChunk]:
    """Stable reorder: chunks of earlier priority categories first, others after."""
    if not categories:
        return list(chunks)
    rank = {category: position for position, category in enumerate(categories)}
    return sorted(chunks, key=lambda scored: rank.get(scored.chunk.section_type, len(rank)))
