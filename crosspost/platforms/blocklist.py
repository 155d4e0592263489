"""
Forbidden-term matcher applied to every post before it is scheduled.

The term list is built once at import into a ``frozenset`` and compiled
into a single regular expression.  Matching is case-insensitive, tolerant
of common leetspeak substitutions, and anchored at a word start, so
"Votes" and "v0te" match ``vote`` while "devote" does not.
"""

import re
from typing import FrozenSet, Pattern

BASE_TERMS = (
    "election",
    "vote",
    "party",
    "hate",
    "terror",
    "extremism",
    "scam",
    "fraud",
    "violence",
    "abuse",
    "politics",
    "political",
    "weapon",
    "drugs",
    "gambling",
    "adult",
)

GENERATED_TERM_COUNT = 1000

FORBIDDEN_TERMS: FrozenSet[str] = frozenset(
    BASE_TERMS + tuple(f"forbidden-{i}" for i in range(GENERATED_TERM_COUNT))
)

LEET_CLASSES = {
    "o": "[o0]",
    "i": "[i1!]",
    "a": "[a@4]",
    "e": "[e3]",
    "t": "[t7]",
    "s": "[s5$]",
}


def _term_pattern(term: str) -> str:
    return "".join(LEET_CLASSES.get(ch, re.escape(ch)) for ch in term)


def _compile(terms: FrozenSet[str]) -> Pattern[str]:
    # Longest first so the alternation is deterministic
    ordered = sorted(terms, key=lambda t: (-len(t), t))
    alternation = "|".join(_term_pattern(term) for term in ordered)
    return re.compile(rf"\b(?:{alternation})", re.IGNORECASE)


FORBIDDEN_PATTERN: Pattern[str] = _compile(FORBIDDEN_TERMS)


def matches_forbidden_term(text: str) -> bool:
    """Return ``True`` if *text* contains a forbidden term."""
    if not text:
        return False
    return FORBIDDEN_PATTERN.search(text) is not None


FORBIDDEN_WORD_PATTERN: Pattern[str] = re.compile(
    rf"{FORBIDDEN_PATTERN.pattern}\w*", re.IGNORECASE
)


def strip_forbidden_terms(text: str) -> str:
    """Remove every word that starts with a forbidden term."""
    cleaned = text
    while True:
        stripped = FORBIDDEN_WORD_PATTERN.sub("", cleaned)
        if stripped == cleaned:
            break
        cleaned = stripped
    return re.sub(r"[ \t]{2,}", " ", cleaned)
