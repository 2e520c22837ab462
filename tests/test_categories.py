import pytest

from licitahub.services.categories import (
    DEFAULT_CATEGORY_CODES,
    normalize_category,
    resolve_category_codes,
)


@pytest.mark.parametrize("category, code", [
    ("auction", 1),
    ("open-bid", 4),
    ("competitive-bid", 6),
    ("direct-award", 8),
    ("single-source", 9),
])
def test_known_category_maps_to_single_code(category, code):
    assert resolve_category_codes(category) == [code]


@pytest.mark.parametrize("category", [None, "", "   ", "tomada-de-precos", "42"])
def test_missing_or_unknown_category_uses_defaults(category):
    assert resolve_category_codes(category) == [6, 8, 4]


def test_default_order_is_competitive_direct_open():
    assert DEFAULT_CATEGORY_CODES == (6, 8, 4)


@pytest.mark.parametrize("raw, expected", [
    ("Competitive_Bid", "competitive-bid"),
    ("  DIRECT AWARD ", "direct-award"),
    ("Pregão", "competitive-bid"),
    ("dispensa", "direct-award"),
    ("Concorrência", "open-bid"),
    ("Leilão", "auction"),
    ("inexigibilidade", "single-source"),
])
def test_normalize_accepts_variants_and_portuguese_names(raw, expected):
    assert normalize_category(raw) == expected


def test_normalize_unknown_is_none():
    assert normalize_category("convite") is None
    assert normalize_category(None) is None


def test_resolved_list_is_a_fresh_copy():
    codes = resolve_category_codes(None)
    codes.append(99)
    assert resolve_category_codes(None) == [6, 8, 4]
