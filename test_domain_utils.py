import pytest

from threatlens.core.domain_utils import (
    domain_tokens, get_tld, is_ip_address, matches_domain, normalize_domain,
    parse_url, registrable_label, strip_suffix,
)


def test_parse_url_lowercases_hostname():
    parsed = parse_url("https://Login.PayPal.com/signin?x=1")
    assert parsed.hostname == "login.paypal.com"
    assert parsed.parts.path == "/signin"


@pytest.mark.parametrize("url", ["", "not a url", "example.com/path", "http://", "https:///nohost"])
def test_parse_url_rejects_unanalysable_input(url):
    assert parse_url(url) is None


def test_parse_url_opaque_scheme_has_empty_host():
    parsed = parse_url("javascript:alert(1)")
    assert parsed is not None
    assert parsed.hostname == ""


def test_parse_url_decodes_punycode():
    lookalike = "pаypal.com"
    parsed = parse_url("https://" + lookalike.encode("idna").decode("ascii") + "/")
    assert parsed.hostname == lookalike


def test_get_tld():
    assert get_tld("secure.example.co.uk") == ".uk"
    assert get_tld("localhost") == ""


def test_strip_suffix_uses_public_suffix_list():
    assert strip_suffix("login.paypal.co.uk") == "login.paypal"
    assert strip_suffix("paypai.tk") == "paypai"
    assert strip_suffix("10.0.0.1") == "10.0.0.1"


def test_registrable_label():
    assert registrable_label("www.amazon.co.uk") == "amazon"
    assert registrable_label("localhost") == ""


def test_domain_tokens_split_on_dots_and_hyphens():
    assert domain_tokens("secure-paypa1.login.com") == ["secure", "paypa1", "login"]


def test_is_ip_address():
    assert is_ip_address("192.168.1.1")
    assert is_ip_address("[::1]")
    assert not is_ip_address("example.com")


@pytest.mark.parametrize("raw,expected", [
    ("https://www.Example.com/path", "example.com"),
    ("  sub.example.org ", "sub.example.org"),
    ("*.example.net", "*.example.net"),
    ("", ""),
])
def test_normalize_domain(raw, expected):
    assert normalize_domain(raw) == expected


def test_matches_domain_is_label_aware():
    assert matches_domain("mail.google.com", "google.com")
    assert matches_domain("google.com", "google.com")
    assert not matches_domain("notgoogle.com", "google.com")
