"""
Unit tests for child name and age validation.
"""

import pytest

from app.services.name_validation import (
    NameRejection,
    contains_profanity,
    normalize_name,
    parse_child_age,
    validate_child_name,
)


@pytest.mark.unit
def test_normalize_name():
    assert normalize_name("  Default ") == "default"
    assert normalize_name("МАША") == "маша"
    assert normalize_name("Default") == normalize_name("default")


@pytest.mark.unit
@pytest.mark.parametrize("name", ["Маша", "Anna", "Анна-Мария", "Ёжик", "  Ivan  "])
def test_valid_names(name):
    result = validate_child_name(name)
    assert result.is_valid
    assert result.error_key is None


@pytest.mark.unit
@pytest.mark.parametrize(
    "name,error_key",
    [
        ("A", NameRejection.TOO_SHORT),
        ("   ", NameRejection.TOO_SHORT),
        ("a" * 51, NameRejection.TOO_LONG),
        ("Anna1", NameRejection.INVALID_CHARS),
        ("<b>Anna</b>", NameRejection.INVALID_CHARS),
        ("Anna Maria", NameRejection.MULTIPLE_WORDS),
        ("Сука", NameRejection.INAPPROPRIATE),
        ("Fucker", NameRejection.INAPPROPRIATE),
    ],
)
def test_rejected_names(name, error_key):
    result = validate_child_name(name)
    assert not result.is_valid
    assert result.error_key == error_key


@pytest.mark.unit
def test_profanity_folds_yo():
    assert contains_profanity("ЁБАНЫЙ")
    assert contains_profanity("ебаный")
    assert not contains_profanity("Алёна")


@pytest.mark.unit
@pytest.mark.parametrize("text,age", [("1", 1), ("18", 18), (" 7 ", 7)])
def test_valid_ages(text, age):
    assert parse_child_age(text) == age


@pytest.mark.unit
@pytest.mark.parametrize("text", ["0", "19", "-3", "5.5", "five", "", "1000"])
def test_invalid_ages(text):
    assert parse_child_age(text) is None
