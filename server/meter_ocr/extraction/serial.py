"""
Serial number extraction.
Serial numbers are assumed to appear as clean standalone tokens, so any
fragment carrying special punctuation is rejected outright.
"""
import logging
import re
from typing import Iterable, Optional

from .rules import REJECTION_CHARS, RuleChain, contains_rejected_char, context_window

logger = logging.getLogger(__name__)

SERIAL_REJECTION_CHARS = REJECTION_CHARS | frozenset("/")

LETTERS_DIGITS_PATTERN = re.compile(r"[A-Z]{1,3}\d{5,10}", re.ASCII)
HYPHENATED_PATTERN = re.compile(r"\d{2,3}-\d{5,7}", re.ASCII)
PREFIX_SUFFIX_PATTERN = re.compile(r"[A-Z]{2}\d{6,8}[A-Z]{0,2}", re.ASCII)
ALNUM_RUN_PATTERN = re.compile(r"(?<![A-Za-z0-9])[A-Za-z0-9]{6,15}(?![A-Za-z0-9])", re.ASCII)


def _has_clean_context(text: str, match: re.Match) -> bool:
    context = context_window(text, match.start(), match.end())
    if contains_rejected_char(context, SERIAL_REJECTION_CHARS):
        logger.info(f"Rejected serial number due to adjacent special characters: {context!r}")
        return False
    return True


def _pattern_rule(pattern: re.Pattern, name: str):
    def rule(text: str) -> Optional[str]:
        match = pattern.search(text)
        if match and _has_clean_context(text, match):
            return match.group(0)
        return None

    rule.__name__ = name
    return rule


letters_digits_rule = _pattern_rule(LETTERS_DIGITS_PATTERN, "letters_digits_rule")
hyphenated_rule = _pattern_rule(HYPHENATED_PATTERN, "hyphenated_rule")
prefix_suffix_rule = _pattern_rule(PREFIX_SUFFIX_PATTERN, "prefix_suffix_rule")


def alphanumeric_rule(text: str) -> Optional[str]:
    """Any 6-15 character alphanumeric run mixing letters and digits."""
    for match in ALNUM_RUN_PATTERN.finditer(text):
        token = match.group(0)
        has_letters = any(ch.isalpha() for ch in token)
        has_digits = any(ch.isdigit() for ch in token)
        if has_letters and has_digits:
            return token if _has_clean_context(text, match) else None
    return None


SERIAL_CHAIN = RuleChain(
    "serial",
    [letters_digits_rule, hyphenated_rule, prefix_suffix_rule, alphanumeric_rule],
)


def extract_serial_number(text: str) -> Optional[str]:
    """
    Extract a plausible serial/identification number from a text fragment.

    Args:
        text: Raw OCR text fragment

    Returns:
        Serial number string or None
    """
    if not text:
        return None
    if contains_rejected_char(text, SERIAL_REJECTION_CHARS):
        logger.info(f"Rejected text with special characters for serial number: {text[:50]!r}")
        return None
    serial = SERIAL_CHAIN.first(text)
    if serial:
        logger.info(f"Found clean serial number: {serial}")
    return serial


def find_serial_number(fragments: Iterable[str]) -> Optional[str]:
    """First serial number found across fragments, in order."""
    for fragment in fragments:
        serial = extract_serial_number(fragment)
        if serial:
            return serial
    return None
