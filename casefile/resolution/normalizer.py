"""
Name Normalization

Canonicalizes raw name strings into comparison keys and splits keys into
first/middle/last parts. Also carries the clean-up applied to OCR-derived
names before they are treated as mentions.
"""

import re
from typing import NamedTuple, Optional

HONORIFIC_TITLES = (
    "mr",
    "mrs",
    "ms",
    "dr",
    "prof",
    "sir",
    "lady",
    "lord",
    "prince",
    "princess",
    "duke",
    "duchess",
)

_PUNCTUATION = re.compile(r"[.,\-'\"`]")
_WHITESPACE = re.compile(r"\s+")
_TITLES = re.compile(r"\b(?:" + "|".join(HONORIFIC_TITLES) + r")\b\.?\s*")


class NamePartition(NamedTuple):
    """First, last and interior parts of a normalized name."""

    first: str = ""
    last: str = ""
    middle: str = ""


def normalize(raw: Optional[str]) -> str:
    """Canonicalize a raw name into a comparable key.

    Lowercases, trims, strips ``. , - ' " ` ``, collapses whitespace and
    removes honorific titles as whole words. The result may be empty when
    the input was only punctuation or titles.
    """
    if not raw:
        return ""

    key = raw.lower().strip()
    key = _PUNCTUATION.sub("", key)
    key = _WHITESPACE.sub(" ", key)
    key = _TITLES.sub("", key)

    return _WHITESPACE.sub(" ", key).strip()


def partition(key: str) -> NamePartition:
    """Split a normalized key into first/last/middle parts."""
    tokens = key.split()

    if not tokens:
        return NamePartition()
    if len(tokens) == 1:
        return NamePartition(first=tokens[0])
    if len(tokens) == 2:
        return NamePartition(first=tokens[0], last=tokens[1])

    return NamePartition(
        first=tokens[0], last=tokens[-1], middle=" ".join(tokens[1:-1])
    )


def split_name(raw: Optional[str]) -> NamePartition:
    """Normalize then partition a raw name."""
    return partition(normalize(raw))


# OCR clean-up

_OCR_SPECIAL = re.compile(r"[^\w\s\-'.]")
_LEADING_NON_LETTERS = re.compile(r"^[^a-zA-Z]+")
_TRAILING_NON_LETTERS = re.compile(r"[^a-zA-Z]+$")

_OCR_GARBAGE = (
    re.compile(r"^[A-Z]{1,2}\s+[A-Z]{1,2}$"),
    re.compile(r"^\d+$"),
    re.compile(r"^[^a-zA-Z]*$"),
    re.compile(
        r"aircraft|model|flight|page|total|forward|endorsement|procedure"
        r"|arrival|departure|landing|redact",
        re.IGNORECASE,
    ),
)


def clean_ocr_name(raw: Optional[str]) -> str:
    """Strip OCR artefacts (newlines, stray symbols, non-letter edges)."""
    if not raw:
        return ""

    name = _WHITESPACE.sub(" ", raw.replace("\n", " "))
    name = _OCR_SPECIAL.sub("", name).strip()
    name = _LEADING_NON_LETTERS.sub("", name)
    name = _TRAILING_NON_LETTERS.sub("", name)
    return name.strip()


def is_plausible_person_name(raw: Optional[str]) -> bool:
    """Reject OCR fragments that cannot be a person's name."""
    cleaned = clean_ocr_name(raw)

    if len(cleaned) < 3 or len(cleaned) > 50:
        return False
    if not re.search(r"[a-zA-Z]", cleaned):
        return False

    for pattern in _OCR_GARBAGE:
        if pattern.search(cleaned):
            return False

    return any(len(word) > 1 for word in cleaned.split())
