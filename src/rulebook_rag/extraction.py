from __future__ import annotations

import logging
from pathlib import Path

import fitz

from .errors import UnsupportedFileTypeError
from .sections import join_pages

logger = logging.getLogger(__name__)

TEXT_SUFFIXES = {".txt", ".md", ".markdown"}
PDF_SUFFIXES = {".pdf"}


def extract_pdf_pages(path: str | Path) -> list[tuple[int, str]]:
    """Text of every page of a PDF as ``(page_number, text)``, numbered from 1."""
    pages: list[tuple[int, str]] = []
    with fitz.open(str(path)) as document:
        for number, page in enumerate(document, start=1):
            pages.append((number, page.get_text("text")))
    logger.debug("extracted %d pages from %s", len(pages), path)
    return pages


def extract_pages(path: str | Path) -> list[tuple[int, str]]:
    """Ordered ``(page_number, text)`` pairs for a supported file.

    Plain text and Markdown files are a single page.

    Raises:
        UnsupportedFileTypeError: for any other extension.
    """
    path = Path(path)
    suffix = path.suffix.lower()
    if suffix in TEXT_SUFFIXES:
        return [(1, path.read_text(encoding="utf-8"))]
    if suffix in PDF_SUFFIXES:
        return extract_pdf_pages(path)
    raise UnsupportedFileTypeError(f"cannot extract text from {path.name!r}")


def extract_text(path: str | Path) -> str:
    """File text with page markers between pages."""
    return join_pages(extract_pages(path))
