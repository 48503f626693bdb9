"""Regression tests for Vietnamese text folding and tokenization."""

import re

from hypothesis import given
from hypothesis import strategies as st

from market_search.text import (
    MAX_PATTERN_LENGTH,
    MAX_TOKENIZE_LENGTH,
    build_search_tokens,
    folding_pattern,
    normalize_text,
)

VIETNAMESE_LETTERS = (
    "aàáảãạăằắẳẵặâầấẩẫậbcdđeèéẻẽẹêềếểễệghiìíỉĩịklmnoòóỏõọôồốổỗộơờớởỡợpqrstuùúủũụưừứửữựvxyỳýỷỹỵ"
)
vietnamese_text = st.text(alphabet=VIETNAMESE_LETTERS + VIETNAMESE_LETTERS.upper() + " \t-,.0123456789", max_size=60)


def test_normalize_folds_accents_and_case():
    """Typing without accents must land on the same text as the accented name."""

    assert normalize_text("Cà chua") == "ca chua"
    assert normalize_text("Ca chua") == "ca chua"
    assert normalize_text("CÀ CHUA") == "ca chua"


def test_normalize_folds_d_with_stroke():
    """NFD does not decompose đ, it still has to fold to d."""

    assert normalize_text("Cà chua đen") == "ca chua den"
    assert normalize_text("Đà Lạt") == "da lat"


def test_normalize_collapses_whitespace():
    assert normalize_text("  Rau \t  Củ\nQuả  ") == "rau cu qua"


def test_normalize_empty_inputs():
    assert normalize_text("") == ""
    assert normalize_text(None) == ""
    assert normalize_text("   ") == ""


@given(vietnamese_text)
def test_normalize_is_idempotent(text):
    once = normalize_text(text)
    assert normalize_text(once) == once


@given(vietnamese_text)
def test_normalize_output_is_ascii_for_vietnamese(text):
    assert normalize_text(text).isascii()


def test_tokens_keep_raw_then_folded_forms():
    assert build_search_tokens("Cà chua bi") == ["cà", "chua", "bi", "ca"]


def test_tokens_are_deduplicated_across_values():
    tokens = build_search_tokens("Rau sạch", "rau", None, "", "Sạch")
    assert tokens == ["rau", "sạch", "sach"]


def test_tokens_split_on_punctuation_and_underscore():
    assert build_search_tokens("rau-củ_quả") == ["rau", "củ", "quả", "cu", "qua"]


def test_tokens_cap_long_values():
    """Only the leading part of a very long value is tokenized."""

    tokens = build_search_tokens("a" * 200)
    assert tokens == ["a" * MAX_TOKENIZE_LENGTH]

    tokens = build_search_tokens("x" * MAX_TOKENIZE_LENGTH + " tail")
    assert "tail" not in tokens


def test_folding_pattern_matches_accented_text():
    pattern = folding_pattern("ca chua")

    assert re.search(pattern, "Cà chua bi", re.IGNORECASE)
    assert re.search(pattern, "ca chua den", re.IGNORECASE)
    assert not re.search(pattern, "cải xanh", re.IGNORECASE)


def test_folding_pattern_matches_d_with_stroke():
    assert re.search(folding_pattern("den"), "Cà chua đen")
    assert re.search(folding_pattern("Đen"), "cà chua den")


def test_folding_pattern_escapes_regex_characters():
    pattern = folding_pattern("c++ (1.5)")

    assert re.search(pattern, "sách c++ (1.5) mới")
    assert not re.search(pattern, "cxx 105")


def test_folding_pattern_is_bounded_for_long_keywords():
    """A pasted paragraph must not turn into a regex the datastore rejects."""

    for letter, accented in (("a", "à"), ("o", "ộ"), ("u", "ữ")):
        pattern = folding_pattern(letter * 300)
        assert len(pattern.encode("utf-8")) < 32 * 1024
        assert re.fullmatch(pattern, accented * MAX_PATTERN_LENGTH)
        assert not re.fullmatch(pattern, accented * (MAX_PATTERN_LENGTH + 1))
