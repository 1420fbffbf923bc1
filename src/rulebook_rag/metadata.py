from __future__ import annotations

import re

from .schema import DocumentMetadata
from .sections import PAGE_MARKER_RE

UNKNOWN_DOCUMENT_NAME = "Jeu inconnu"

_PLAYER_RANGE = re.compile(
    r"(\d+)\s*(?:à|au?|[-–])\s*(\d+)\s*(?:joueurs?|participants?|personnes?)", re.IGNORECASE
)
_PLAYER_SINGLE = re.compile(r"(?:pour|de|avec)\s+(\d+)\s+(?:joueurs?|participants?|personnes?)", re.IGNORECASE)
_AGE_PATTERNS = (
    re.compile(r"(?:à partir de|dès|age\s*:?\s*|pour les?|convient dès)\s*(\d+)\s*ans", re.IGNORECASE),
    re.compile(r"(\d+)\s*ans\s+(?:et plus|minimum|et\+|/\+)", re.IGNORECASE),
    re.compile(r"(\d+)\s*\+\s*ans", re.IGNORECASE),
)
_MINUTE_RANGE = re.compile(r"(\d+)\s*(?:à|[-–])\s*(\d+)\s*min(?:utes?)?", re.IGNORECASE)
_HOUR_RANGE = re.compile(r"(\d+)h\s*(?:à|[-–])\s*(\d+)h", re.IGNORECASE)
_MINUTES = re.compile(r"(\d+)\s*min(?:utes?)?", re.IGNORECASE)
_HOURS = re.compile(r"(\d+)h(\d+)?", re.IGNORECASE)


def extract_document_name(text: str) -> str:
    """First meaningful line: at least 3 characters, not numeric, not a URL."""
    for line in text.splitlines():
        line = line.strip()
        if not line or PAGE_MARKER_RE.match(line):
            continue
        if len(line) >= 3 and not re.fullmatch(r"[\d.]+", line) and not re.search(r"https?://", line):
            return line.lstrip("#").strip()
    return UNKNOWN_DOCUMENT_NAME


def extract_player_count(text: str) -> tuple[int | None, int | None]:
    match = _PLAYER_RANGE.search(text)
    if match:
        return int(match.group(1)), int(match.group(2))
    match = _PLAYER_SINGLE.search(text)
    if match:
        count = int(match.group(1))
        return count, count
    return None, None


def extract_min_age(text: str) -> int | None:
    for pattern in _AGE_PATTERNS:
        match = pattern.search(text)
        if match:
            return int(match.group(1))
    return None


def extract_duration(text: str) -> tuple[int | None, int | None]:
    """Play time in minutes as ``(min, max)``."""
    match = _MINUTE_RANGE.search(text)
    if match:
        return int(match.group(1)), int(match.group(2))
    match = _HOUR_RANGE.search(text)
    if match:
        return int(match.group(1)) * 60, int(match.group(2)) * 60
    match = _MINUTES.search(text)
    if match:
        minutes = int(match.group(1))
        return minutes, minutes
    match = _HOURS.search(text)
    if match:
        minutes = int(match.group(1)) * 60 + int(match.group(2) or 0)
        return minutes, minutes
    return None, None


def extract_metadata(text: str, name: str | None = None) -> DocumentMetadata:
    min_players, max_players = extract_player_count(text)
    min_duration, max_duration = extract_duration(text)
    return DocumentMetadata(
        name=name or extract_document_name(text),
        min_players=min_players,
        max_players=max_players,
        min_age=extract_min_age(text),
        min_duration=min_duration,
        max_duration=max_duration,
    )
