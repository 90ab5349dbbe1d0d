"""
Meter reading extraction.
Finds the most plausible numeric meter reading in noisy OCR text using an
ordered chain of pattern rules.
"""
import logging
import re
from functools import lru_cache
from typing import Iterable, Optional, Sequence, Tuple

from ..models.detection import Candidate, CandidateKind
from .rules import RuleChain, is_adjacent_to_rejected

logger = logging.getLogger(__name__)

# Digital displays: digits, decimal point, digits
DECIMAL_PATTERN = re.compile(r"\b\d+\.\d+\b", re.ASCII)
# Odometer-style analog meters
INTEGER_PATTERN = re.compile(r"\b\d{5,9}\b", re.ASCII)
# Decimal point misread as a space; never spans a line break
RECONSTRUCTED_PATTERN = re.compile(r"\b(\d+)[^\S\n]+(\d{1,3})\b", re.ASCII)
GENERIC_PATTERN = re.compile(r"\d+(?:\.\d+)?", re.ASCII)

PRIORITIES = {
    CandidateKind.DECIMAL_READING: 1,
    CandidateKind.INTEGER_READING: 2,
    CandidateKind.RECONSTRUCTED_DECIMAL: 3,
    CandidateKind.UNIT_READING: 4,
    CandidateKind.GENERIC_NUMERIC: 5,
}


def _candidate(value: str, kind: CandidateKind) -> Candidate:
    return Candidate(value=value, kind=kind, priority=PRIORITIES[kind])


def _follows_digit_group(text: str, start: int) -> bool:
    """Whether text[start:] continues a thousands-grouped number such as "12,345.67"."""
    return start >= 2 and text[start - 1] == "," and text[start - 2].isdigit()


def _first_clean_match(
    pattern: re.Pattern, text: str, skip_grouped: bool = False
) -> Optional[re.Match]:
    """First match of pattern not touching a rejection-set character."""
    for match in pattern.finditer(text):
        if is_adjacent_to_rejected(text, match.start(), match.end()):
            logger.info(f"Rejected {match.group(0)!r}: adjacent special character in {text[:50]!r}")
            continue
        if skip_grouped and _follows_digit_group(text, match.start()):
            logger.debug(f"Skipped {match.group(0)!r}: tail of a thousands-grouped number")
            continue
        return match
    return None


def decimal_rule(text: str) -> Optional[Candidate]:
    match = _first_clean_match(DECIMAL_PATTERN, text, skip_grouped=True)
    if match:
        return _candidate(match.group(0), CandidateKind.DECIMAL_READING)
    return None


def integer_rule(text: str) -> Optional[Candidate]:
    match = _first_clean_match(INTEGER_PATTERN, text)
    if match:
        return _candidate(match.group(0), CandidateKind.INTEGER_READING)
    return None


def reconstructed_decimal_rule(text: str) -> Optional[Candidate]:
    """Rejoin "1234 56" as "1234.56"."""
    match = _first_clean_match(RECONSTRUCTED_PATTERN, text)
    if match:
        whole, fraction = match.group(1), match.group(2)
        return _candidate(f"{whole}.{fraction}", CandidateKind.RECONSTRUCTED_DECIMAL)
    return None


def generic_numeric_rule(text: str) -> Optional[Candidate]:
    match = GENERIC_PATTERN.search(text)
    if match:
        return _candidate(match.group(0), CandidateKind.GENERIC_NUMERIC)
    return None


def make_unit_rule(unit_keywords: Sequence[str]):
    """
    Build a rule extracting the number immediately before a unit keyword.

    Thousands separators are stripped, so "12,345 gal" yields "12345".

    Args:
        unit_keywords: Unit labels such as ("gal", "gallon", "gallons")

    Returns:
        Rule function for the reading chain
    """
    # Longest first so "gallons" is not cut short by "gal"
    keywords = sorted({k.strip() for k in unit_keywords if k.strip()}, key=len, reverse=True)
    pattern = re.compile(
        r"(?<![\d,.])((?:\d{1,3}(?:,\d{3})+|\d+)(?:\.\d+)?)(?=\s*(?:"
        + "|".join(re.escape(k) for k in keywords)
        + r")\b)",
        re.IGNORECASE | re.ASCII,
    )

    def unit_rule(text: str) -> Optional[Candidate]:
        match = pattern.search(text)
        if match:
            normalized = match.group(1).replace(",", "")
            logger.info(f"Found numeric preceding unit: {match.group(1)} normalized to {normalized}")
            return _candidate(normalized, CandidateKind.UNIT_READING)
        return None

    return unit_rule


@lru_cache(maxsize=16)
def build_reading_chain(unit_keywords: Tuple[str, ...] = ()) -> RuleChain:
    """Reading rules in priority order; the unit rule is present only with a unit context."""
    rules = [decimal_rule, integer_rule, reconstructed_decimal_rule]
    if unit_keywords:
        rules.append(make_unit_rule(unit_keywords))
    rules.append(generic_numeric_rule)
    return RuleChain("reading", rules)


def extract_candidate(text: str, unit_keywords: Sequence[str] = ()) -> Optional[Candidate]:
    """Best reading candidate for a single fragment, or None."""
    return build_reading_chain(tuple(unit_keywords)).first(text)


def extract_numeric_value(text: str, unit_keywords: Sequence[str] = ()) -> Optional[str]:
    """
    Extract a meter reading string from ad-hoc text.

    Args:
        text: Raw OCR text
        unit_keywords: Unit labels enabling the unit rule (empty disables it)

    Returns:
        Reading string (e.g. "012345.678") or None
    """
    candidate = extract_candidate(text, unit_keywords)
    return candidate.value if candidate else None


def extract_reading(
    fragments: Iterable[str], unit_keywords: Sequence[str] = ()
) -> Optional[Candidate]:
    """
    Evaluate fragments in order and keep the first one yielding a candidate.

    Fragments are not re-ranked against each other: a generic match in an
    earlier fragment wins over a decimal match in a later one.

    Args:
        fragments: Text fragments in line order
        unit_keywords: Unit labels enabling the unit rule

    Returns:
        Winning candidate or None
    """
    chain = build_reading_chain(tuple(unit_keywords))
    for fragment in fragments:
        candidate = chain.first(fragment)
        if candidate is not None:
            logger.info(f"Selected reading {candidate.value} ({candidate.kind.value}) from {fragment[:50]!r}")
            return candidate
    return None
