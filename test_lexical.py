import pytest

from threatlens.core.lexical import levenshtein_distance, shannon_entropy


@pytest.mark.parametrize("a,b,expected", [
    ("kitten", "sitting", 3),
    ("paypal", "paypai", 1),
    ("google", "gooogle", 1),
    ("", "amazon", 6),
    ("apple", "apple", 0),
])
def test_levenshtein_distance(a, b, expected):
    assert levenshtein_distance(a, b) == expected
    assert levenshtein_distance(b, a) == expected


@pytest.mark.parametrize("a,b,c", [
    ("paypal", "paypai", "paypa1"),
    ("google", "gooogle", "goggle"),
    ("amazon", "", "amazn"),
    ("kitten", "sitting", "mitten"),
    ("microsoft", "rnicrosoft", "micros0ft"),
])
def test_levenshtein_triangle_inequality(a, b, c):
    assert levenshtein_distance(a, c) <= levenshtein_distance(a, b) + levenshtein_distance(b, c)


def test_levenshtein_treats_none_as_empty():
    assert levenshtein_distance(None, "abc") == 3


def test_entropy_of_empty_string():
    assert shannon_entropy("") == 0.0


def test_entropy_single_symbol_is_zero():
    assert shannon_entropy("aaaa") == 0.0


def test_entropy_uniform_alphabet():
    assert shannon_entropy("abcd") == pytest.approx(2.0)


def test_random_label_has_higher_entropy():
    assert shannon_entropy("x7k2q9vz4m1p8w3r") > shannon_entropy("paypal")
