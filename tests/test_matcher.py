import pytest

from nfe_ingest.core.matcher import CatalogCandidate, ProductMatcher, levenshtein, similarity
from nfe_ingest.core.models import NormalizedProduct


def make_product(name, **overrides):
    data = {"normalized_name": name, "original_name": name}
    data.update(overrides)
    return NormalizedProduct(**data)


@pytest.mark.parametrize(
    "a, b, expected",
    [
        ("", "", 0),
        ("abc", "", 3),
        ("kitten", "sitting", 3),
        ("flaw", "lawn", 2),
        ("leite", "leite", 0),
    ],
)
def test_levenshtein(a, b, expected):
    assert levenshtein(a, b) == expected


@pytest.mark.parametrize(
    "a, b",
    [
        ("Leite Integral", "Leite Desnatado"),
        ("Arroz", "Arroz Branco"),
        ("", "Feijao"),
        ("Cafe", "Chá"),
    ],
)
def test_similarity_is_symmetric_and_bounded(a, b):
    score = similarity(a, b)

    assert score == similarity(b, a)
    assert 0.0 <= score <= 1.0


def test_similarity_edge_values():
    assert similarity("Leite", "Leite") == 1.0
    assert similarity("", "Leite") == 0.0
    assert similarity("", "") == 0.0
    assert similarity("abcd", "abcf") == pytest.approx(0.75)


def test_equal_product_codes_match_regardless_of_name():
    matcher = ProductMatcher()
    a = make_product("Leite Integral", product_code="7891000100103")
    b = make_product("Sabonete", product_code="7891000100103")

    result = matcher.match(a, b)

    assert result.is_match is True
    assert result.confidence == 1.0


def test_same_ncm_lowers_the_name_threshold():
    matcher = ProductMatcher()
    a = make_product("Biscoito Recheado", ncm_code="19053100")
    b = make_product("Biscoito Rechead", ncm_code="19053100")
    c = make_product("Biscoito Maizena", ncm_code="19053100")

    assert matcher.match(a, b).confidence == 0.9
    assert matcher.match(a, c).is_match is (similarity(a.normalized_name, c.normalized_name) >= 0.6)


def test_fuzzy_name_match_uses_similarity_as_confidence():
    matcher = ProductMatcher()
    a = make_product("Leite Integral")
    b = make_product("Leite Integrall")

    result = matcher.match(a, b)

    assert result.is_match is True
    assert result.confidence == pytest.approx(similarity("Leite Integral", "Leite Integrall"))


def test_dissimilar_names_do_not_match():
    result = ProductMatcher().match(make_product("Detergente"), make_product("Leite Integral"))

    assert result.is_match is False
    assert result.confidence < 0.75


def test_find_best_match_prefers_highest_confidence():
    matcher = ProductMatcher()
    candidate = make_product("Leite Integral")
    existing = [
        CatalogCandidate("p1", make_product("Leite Integrall")),
        CatalogCandidate("p2", make_product("Leite Integral")),
        CatalogCandidate("p3", make_product("Detergente")),
    ]

    entry, result = matcher.find_best_match(candidate, existing)

    assert entry.product_id == "p2"
    assert result.confidence == 1.0


def test_find_best_match_stops_at_exact_code():
    matcher = ProductMatcher()
    candidate = make_product("Leite", product_code="123")
    existing = [
        CatalogCandidate("p1", make_product("Outro", product_code="123")),
        CatalogCandidate("p2", make_product("Leite", product_code="123")),
    ]

    entry, _ = matcher.find_best_match(candidate, existing)

    assert entry.product_id == "p1"


def test_identical_name_does_not_shadow_a_later_code_match():
    matcher = ProductMatcher()
    candidate = make_product("Leite", product_code="123")
    existing = [
        CatalogCandidate("p1", make_product("Leite")),
        CatalogCandidate("p2", make_product("Outro", product_code="123")),
    ]

    entry, result = matcher.find_best_match(candidate, existing)

    assert entry.product_id == "p2"
    assert result.confidence == 1.0


def test_find_best_match_returns_none_without_matches():
    matcher = ProductMatcher()

    assert matcher.find_best_match(make_product("Leite"), []) is None
    assert matcher.find_best_match(make_product("Leite"), [CatalogCandidate("p", make_product("Sabão"))]) is None


def test_custom_threshold():
    strict = ProductMatcher(similarity_threshold=1.0)

    assert strict.match(make_product("Leite Integral"), make_product("Leite Integrall")).is_match is False
