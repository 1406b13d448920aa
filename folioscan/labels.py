"""
Page number detection and normalization.

Book pages print their folio in many ways: a bare "42" in the margin,
"- 42 -", "Page 42", Roman numerals in the front matter, "[42]". This
module finds the folio in a label or in the full page text and resolves it
to an integer that can be sorted.
"""

import logging
import re
from dataclasses import dataclass

logger = logging.getLogger(__name__)

ROMAN_VALUES = {
    "I": 1,
    "V": 5,
    "X": 10,
    "L": 50,
    "C": 100,
    "D": 500,
    "M": 1000,
}

# Exclusive upper bound for Arabic page numbers; five-digit runs are
# almost always scanner artifacts (catalogue numbers, years with noise)
MAX_PAGE_NUMBER = 10000

# Tried in order, first valid hit wins
PAGE_NUMBER_PATTERNS = [
    # Line with only digits
    re.compile(r'^[ \t]*([0-9]+)[ \t]*$', re.MULTILINE),
    # Dashed folio: "- 56 -", "– 56 –", "—56—"
    re.compile(r'^[ \t]*[-–—][ \t]*([0-9]+)[ \t]*[-–—][ \t]*$', re.MULTILINE),
    # "Page 12", "pg. 12", "p. 12" anywhere
    re.compile(r'(?:page|pg\.?|p\.?)\s*([0-9]+)', re.IGNORECASE),
    # Line with only Roman numeral letters
    re.compile(r'^[ \t]*([ivxlcdm]+)[ \t]*$', re.MULTILINE | re.IGNORECASE),
    # "[78]" or "(78)" anywhere
    re.compile(r'[\[(]([0-9]+)[\])]'),
]

ROMAN_ALPHABET = re.compile(r'^[ivxlcdm]+$', re.IGNORECASE)


@dataclass(frozen=True)
class PageLabel:
    """A detected page number.

    Both fields are None when the page carries no visible number
    (covers, blank pages, plates).
    """

    label: str | None = None
    sort_key: int | None = None

    @property
    def found(self) -> bool:
        return self.sort_key is not None


def roman_to_int(numeral: str) -> int | None:
    """Convert a Roman numeral to an integer.

    Symbols are summed; a symbol followed by a larger one is subtracted.
    Case is ignored.

    Returns:
        The integer value, or None if the string holds a non-Roman symbol
    """
    if not numeral:
        return None

    total = 0
    prev_value = 0
    for char in reversed(numeral.upper()):
        value = ROMAN_VALUES.get(char)
        if value is None:
            return None
        if value < prev_value:
            total -= value
        else:
            total += value
        prev_value = value

    return total


def _interpret(captured: str) -> PageLabel | None:
    """Resolve a captured token to a label, or None if it is not a page number."""
    if ROMAN_ALPHABET.match(captured):
        value = roman_to_int(captured)
        if value is not None:
            return PageLabel(label=captured, sort_key=value)

    if captured.isdigit():
        number = int(captured)
        if 0 < number < MAX_PAGE_NUMBER:
            return PageLabel(label=captured, sort_key=number)

    return None


def extract_page_label(text: str | None) -> PageLabel:
    """Find the page number in a label or a full page of text.

    Args:
        text: Raw label from the recognizer, or the full extracted text

    Returns:
        PageLabel; empty when nothing usable was found
    """
    if not text:
        return PageLabel()

    # Line patterns anchor on "\n" only; CRLF and bare CR pages are common
    text = text.replace("\r\n", "\n").replace("\r", "\n")

    for pattern in PAGE_NUMBER_PATTERNS:
        match = pattern.search(text)
        if not match:
            continue

        result = _interpret(match.group(1).strip())
        if result is not None:
            return result

        logger.debug(f"Rejected page number candidate {match.group(1)!r}")

    return PageLabel()
