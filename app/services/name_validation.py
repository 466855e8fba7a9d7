"""
Child name and age validation for the ordering dialog.

Pure functions; nothing here touches the database or the network.
"""

import re
from dataclasses import dataclass
from typing import Optional

MIN_NAME_LENGTH = 2
MAX_NAME_LENGTH = 50

MIN_CHILD_AGE = 1
MAX_CHILD_AGE = 18

AGE_RE = re.compile(r"^[0-9]{1,3}$")

# Cyrillic block, Latin letters, whitespace and hyphen
VALID_NAME_RE = re.compile(r"^[\u0400-\u04FFa-zA-Z\s-]+$")

# Matched as substrings of the lowercased name, with ё folded to е
PROFANITY_ROOTS = frozenset({
    "хуй",
    "хуе",
    "хуё",
    "пизд",
    "ебан",
    "ебат",
    "ебал",
    "ёба",
    "бляд",
    "блят",
    "сука",
    "мудак",
    "мудил",
    "залуп",
    "пидор",
    "пидар",
    "гандон",
    "шлюх",
    "fuck",
    "shit",
    "cunt",
    "bitch",
    "whore",
    "slut",
    "nigger",
    "faggot",
})


class NameRejection:
    """Reasons a child name is rejected."""
    TOO_SHORT = "too_short"
    TOO_LONG = "too_long"
    INVALID_CHARS = "invalid_chars"
    MULTIPLE_WORDS = "multiple_words"
    INAPPROPRIATE = "inappropriate"


@dataclass(frozen=True)
class NameValidationResult:
    is_valid: bool
    error_key: Optional[str] = None


def normalize_name(name: str) -> str:
    """Deduplication key of a name: trimmed and lowercased."""
    return name.strip().lower()


def contains_profanity(text: str) -> bool:
    folded = text.lower().replace("ё", "е")
    return any(root.replace("ё", "е") in folded for root in PROFANITY_ROOTS)


def validate_child_name(name: str) -> NameValidationResult:
    """
    Check a child name before it is ordered.

    Checks run in order (length, characters, single word, denylist) and the
    first failing check decides the error key.
    """
    trimmed = name.strip()

    if len(trimmed) < MIN_NAME_LENGTH:
        return NameValidationResult(False, NameRejection.TOO_SHORT)
    if len(trimmed) > MAX_NAME_LENGTH:
        return NameValidationResult(False, NameRejection.TOO_LONG)

    if not VALID_NAME_RE.match(trimmed):
        return NameValidationResult(False, NameRejection.INVALID_CHARS)

    if len(trimmed.split()) > 1:
        return NameValidationResult(False, NameRejection.MULTIPLE_WORDS)

    if contains_profanity(trimmed):
        return NameValidationResult(False, NameRejection.INAPPROPRIATE)

    return NameValidationResult(True)


def parse_child_age(text: str) -> Optional[int]:
    """Parse an age reply; None unless it is a whole number within 1..18."""
    value = (text or "").strip()
    if not AGE_RE.match(value):
        return None
    age = int(value)
    if age < MIN_CHILD_AGE or age > MAX_CHILD_AGE:
        return None
    return age
