"""Deterministic text clean-up applied before speech synthesis.

``normalize`` runs its steps to a fixed point, so running it twice
yields the same string as running it once.
"""

from __future__ import annotations

import re
from typing import Dict, List

ABBREVIATIONS: Dict[str, str] = {
    "Dr.": "Doctor",
    "Mr.": "Mister",
    "Mrs.": "Missus",
    "Ms.": "Miss",
    "Prof.": "Professor",
    "etc.": "etcetera",
    "vs.": "versus",
    "e.g.": "for example",
    "i.e.": "that is",
    "AI": "A I",
    "API": "A P I",
    "URL": "U R L",
    "HTTP": "H T T P",
    "HTTPS": "H T T P S",
}

NUMBER_WORDS = (
    "zero", "one", "two", "three", "four", "five", "six", "seven", "eight", "nine", "ten",
    "eleven", "twelve", "thirteen", "fourteen", "fifteen", "sixteen", "seventeen", "eighteen",
    "nineteen", "twenty",
)

_WHITESPACE = re.compile(r"\s+")
# Standalone integers only: no digits glued to letters, no decimals or thousands separators.
_INTEGER = re.compile(r"(?<![\w.,])\d+(?!\w|[.,]\d)")


def _abbreviation_pattern(keys: List[str]) -> re.Pattern[str]:
    # Longest key first so overlapping keys never leave a partial match behind.
    # One group per key: IGNORECASE also folds characters such as "ſ", so the
    # matched text is not always a lower-cased key.
    alternation = "|".join(f"({re.escape(k)})" for k in keys)
    return re.compile(rf"(?<!\w)(?:{alternation})(?!\w)", re.IGNORECASE)


_ABBREV_KEYS = sorted(ABBREVIATIONS, key=len, reverse=True)
_ABBREV_RE = _abbreviation_pattern(_ABBREV_KEYS)


def _expand_abbreviation(match: re.Match[str]) -> str:
    return ABBREVIATIONS[_ABBREV_KEYS[match.lastindex - 1]]


def _number_to_word(match: re.Match[str]) -> str:
    digits = match.group(0)
    significant = digits.lstrip("0") or "0"
    # larger numbers stay as digits
    if len(significant) > 2 or int(significant) > 20:
        return digits
    return NUMBER_WORDS[int(significant)]


def _single_pass(text: str) -> str:
    text = _ABBREV_RE.sub(_expand_abbreviation, text)
    text = _INTEGER.sub(_number_to_word, text)
    if not text.endswith((".", "!", "?")):
        text += "."
    return text


def normalize(raw_text: object) -> str:
    """Return ``raw_text`` prepared for text-to-speech.

    Non-string input is treated as an empty string.

    A single pass is not a fixed point: the terminal period can complete an
    abbreviation ("Dr" -> "Dr."), and an expansion can expose a new match
    ("AI.e.g" -> "A I.e.g."). Passes repeat until the text stops changing.
    Replacements never contain dots, digits or multi-letter tokens from the
    table, so the loop settles after a few passes.
    """

    if not isinstance(raw_text, str):
        return ""
    text = _WHITESPACE.sub(" ", raw_text).strip()
    if not text:
        return ""
    while True:
        updated = _single_pass(text)
        if updated == text:
            return text
        text = updated
