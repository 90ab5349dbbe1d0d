"""
Ordered rule chains.
A chain is a list of pure functions ``text -> Optional[result]`` evaluated in
priority order; the first rule that returns a result wins.
"""
import logging
from typing import Callable, Generic, Optional, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
Rule = Callable[[str], Optional[T]]

# Punctuation that marks a match as part of a larger non-numeric token
REJECTION_CHARS = frozenset("#@$%^&*=<>{}[]|\\:;")


def contains_rejected_char(text: str, rejected: frozenset = REJECTION_CHARS) -> bool:
    """Whether any character of text is in the rejection set."""
    return any(ch in rejected for ch in text)


def context_window(text: str, start: int, end: int, padding: int = 1) -> str:
    """Return text[start:end] widened by padding characters on each side."""
    return text[max(0, start - padding):min(len(text), end + padding)]


def is_adjacent_to_rejected(
    text: str, start: int, end: int, rejected: frozenset = REJECTION_CHARS
) -> bool:
    """Whether the character just before or just after text[start:end] is rejected."""
    if start > 0 and text[start - 1] in rejected:
        return True
    return end < len(text) and text[end] in rejected


class RuleChain(Generic[T]):
    """First-success-wins evaluation over an ordered list of rules."""

    def __init__(self, name: str, rules: Sequence[Rule]):
        self.name = name
        self.rules = tuple(rules)

    def __len__(self) -> int:
        return len(self.rules)

    def first(self, text: str) -> Optional[T]:
        """
        Run the rules against text in priority order.

        Args:
            text: Text fragment to evaluate

        Returns:
            Result of the first rule that matched, or None
        """
        if not text:
            return None
        for rule in self.rules:
            result = rule(text)
            if result is not None:
                logger.debug(f"[{self.name}] {rule.__name__} matched {result!r} in {text[:50]!r}")
                return result
        return None
