"""Tests for chunking.py — hierarchy paths, sentence splitting and chunk bounds."""
from __future__ import annotations

import pytest
from conftest import words

from rulebook_rag.chunking import (
    build_hierarchy_path,
    chunk_section,
    chunk_sections,
    chunking_stats,
    enrich_chunk_content,
    split_paragraphs,
    split_sentences,
)
from rulebook_rag.schema import Chunk, Section
from rulebook_rag.settings import ChunkingSettings


def _section(body: str, title: str = "Règles", level: int = 2) -> Section:
    return Section(title=title, level=level, body=body)


def _reconstruct(chunks: list[Chunk], overlap: int) -> list[str]:
    sequence = chunks[0].content.split()
    for chunk in chunks[1:]:
        sequence.extend(chunk.content.split()[overlap:])
    return sequence


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

class TestSplitSentences:
    def test_splits_on_terminal_punctuation(self):
        assert split_sentences("Un. Deux ! Trois ?") == ["Un.", "Deux !", "Trois ?"]

    def test_abbreviations_do_not_split(self):
        text = "Voir p. 12 pour les détails. Ensuite jouez."
        assert split_sentences(text) == ["Voir p. 12 pour les détails.", "Ensuite jouez."]

    def test_etc_does_not_split(self):
        assert len(split_sentences("Bois, pierre, etc. sont des ressources.")) == 1

    def test_empty(self):
        assert split_sentences("   ") == []


class TestSplitParagraphs:
    def test_blank_lines_delimit(self):
        assert split_paragraphs("a b\n\n\nc d\n  \ne") == ["a b", "c d", "e"]


class TestBuildHierarchyPath:
    def test_walks_up_to_level_one(self, sample_sections):
        assert build_hierarchy_path(sample_sections, 2) == "RÈGLES DU JEU > Mise en place > Cartes"

    def test_sibling_is_skipped(self, sample_sections):
        assert build_hierarchy_path(sample_sections, 3) == "RÈGLES DU JEU > Tour de jeu"

    def test_top_level_is_alone(self, sample_sections):
        assert build_hierarchy_path(sample_sections, 4) == "FIN DE PARTIE"

    def test_custom_separator(self, sample_sections):
        assert build_hierarchy_path(sample_sections, 1, " / ") == "RÈGLES DU JEU / Mise en place"


# ---------------------------------------------------------------------------
# chunk_section
# ---------------------------------------------------------------------------

class TestChunkSection:
    def test_small_section_is_one_chunk(self, sample_section):
        chunks = chunk_section(sample_section, "Jeu > Mise en place")
        assert len(chunks) == 1
        assert chunks[0].chunk_index == 0
        assert chunks[0].chunk_count == 1
        assert chunks[0].content == sample_section.body
        assert chunks[0].hierarchy_path == "Jeu > Mise en place"
        assert chunks[0].page_start == 2

    def test_five_hundred_words_make_two_overlapping_chunks(self):
        body = "\n\n".join(words(100, f"p{index}_") for index in range(5))
        chunks = chunk_section(_section(body), settings=ChunkingSettings())
        assert len(chunks) == 2
        first, second = chunks[0].content.split(), chunks[1].content.split()
        assert second[:75] == first[-75:]
        assert [chunk.chunk_count for chunk in chunks] == [2, 2]

    def test_coverage_and_bounds_for_long_paragraphs(self):
        sentences = [words(40, f"s{index}_") + "." for index in range(30)]
        body = " ".join(sentences[:15]) + "\n\n" + " ".join(sentences[15:])
        settings = ChunkingSettings()
        chunks = chunk_section(_section(body), settings=settings)
        assert len(chunks) > 2
        assert _reconstruct(chunks, settings.overlap_words) == body.split()
        for chunk in chunks:
            assert chunk.word_count <= settings.max_words
        for chunk in chunks[:-1]:
            assert chunk.word_count >= settings.min_words

    def test_sentence_without_punctuation_is_windowed(self):
        settings = ChunkingSettings()
        body = words(1200, "w")
        chunks = chunk_section(_section(body), settings=settings)
        assert _reconstruct(chunks, settings.overlap_words) == body.split()
        assert all(chunk.word_count <= settings.max_words for chunk in chunks)

    def test_short_tail_merges_into_previous(self):
        settings = ChunkingSettings()
        paragraphs = [words(150, "a"), words(150, "b"), words(100, "c"), words(110, "d"), words(20, "e")]
        body = "\n\n".join(paragraphs)
        chunks = chunk_section(_section(body), settings=settings)
        assert len(chunks) == 2
        assert chunks[-1].content.endswith(paragraphs[-1])
        assert chunks[-1].word_count == 305
        assert _reconstruct(chunks, settings.overlap_words) == body.split()

    def test_deterministic(self):
        body = "\n\n".join(words(120, f"p{index}_") for index in range(6))
        assert chunk_section(_section(body)) == chunk_section(_section(body))

    def test_invalid_settings_rejected(self):
        with pytest.raises(ValueError):
            ChunkingSettings(min_words=50, overlap_words=75)


# ---------------------------------------------------------------------------
# chunk_sections / enrichment / stats
# ---------------------------------------------------------------------------

class TestChunkSections:
    def test_tags_path_and_type(self, sample_sections):
        chunks = chunk_sections(sample_sections)
        assert len(chunks) == len(sample_sections)
        assert chunks[1].hierarchy_path == "RÈGLES DU JEU > Mise en place"
        assert chunks[1].section_type == "setup"
        assert chunks[3].section_type == "turn_structure"
        assert chunks[4].section_type == "victory"


class TestEnrichChunkContent:
    def test_single_chunk_prefix(self, sample_section):
        chunk = chunk_section(sample_section, "Jeu > Mise en place")[0]
        assert enrich_chunk_content(chunk) == f"[Jeu > Mise en place]\n{sample_section.body}"

    def test_part_marker_for_multi_chunk(self):
        body = "\n\n".join(words(100, f"p{index}_") for index in range(5))
        chunks = chunk_section(_section(body), "Règles")
        assert enrich_chunk_content(chunks[1]).startswith("[Règles] (Partie 2/2)\n")


class TestChunkingStats:
    def test_empty(self):
        assert chunking_stats([])["total_chunks"] == 0

    def test_counts(self):
        body = "\n\n".join(words(100, f"p{index}_") for index in range(5))
        stats = chunking_stats(chunk_section(_section(body)))
        assert stats["total_chunks"] == 2
        assert stats["max_words"] == 300
        assert stats["chunks_with_overlap"] == 1
