import pytest

from app.utils.slug import FALLBACK_SLUG, SLUG_MAX_LENGTH, generate_slug, is_valid_slug, with_random_suffix


@pytest.mark.parametrize(
    "text, expected",
    [
        ("Electronics", "electronics"),
        ("Home & Garden", "home-garden"),
        ("  Kids'   Toys  ", "kids-toys"),
        ("Café Crème", "cafe-creme"),
        ("snake_case_name", "snake-case-name"),
        ("--Sale--", "sale"),
        ("!!!", FALLBACK_SLUG),
    ],
)
def test_generate_slug(text, expected):
    assert generate_slug(text) == expected


def test_generated_slugs_are_valid():
    for text in ["Electronics", "Home & Garden", "Café Crème", "x" * 300, "$$$"]:
        assert is_valid_slug(generate_slug(text))


def test_random_suffix_stays_within_column_limit():
    slug = with_random_suffix("a" * SLUG_MAX_LENGTH, 6)

    assert len(slug) == SLUG_MAX_LENGTH
    assert is_valid_slug(slug)


def test_random_suffix_differs_between_calls():
    assert with_random_suffix("shoes") != with_random_suffix("shoes")


def test_is_valid_slug():
    assert is_valid_slug("phones-and-tablets")
    assert not is_valid_slug("Phones")
    assert not is_valid_slug("double--hyphen")
    assert not is_valid_slug("-leading")
