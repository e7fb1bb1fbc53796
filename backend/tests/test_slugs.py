import pytest

from linkvault.services.slugs import DEFAULT_SLUG_LENGTH, SLUG_ALPHABET, generate_slug


def test_alphabet_is_url_safe_and_64_symbols():
    assert len(set(SLUG_ALPHABET)) == 64
    assert all(c.isalnum() or c in "_-" for c in SLUG_ALPHABET)


def test_default_length_and_symbols():
    slug = generate_slug()
    assert len(slug) == DEFAULT_SLUG_LENGTH
    assert set(slug) <= set(SLUG_ALPHABET)


def test_longer_slugs_allowed():
    assert len(generate_slug(20)) == 20


def test_short_slugs_rejected():
    with pytest.raises(ValueError):
        generate_slug(8)


def test_no_repeats_in_a_large_sample():
    sample = {generate_slug() for _ in range(5000)}
    assert len(sample) == 5000
