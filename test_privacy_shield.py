import pytest

from threatlens.core.privacy_shield import PrivacyShield
from threatlens.schemas import PrivacySettings, TrackerCategorySettings


@pytest.fixture
def shield(reputation):
    return PrivacyShield(reputation)


def test_tracker_subdomain_matches_parent(shield):
    result = shield.is_tracker_domain("static.hotjar.com", PrivacySettings())
    assert result == {'is_tracker': True, 'categories': ['analytics'], 'should_block': True}


def test_unknown_domain_is_not_tracker(shield):
    assert not shield.is_tracker_domain("example.com", PrivacySettings())['is_tracker']


def test_social_trackers_off_by_default(shield):
    assert not shield.is_tracker_domain("connect.facebook.net", PrivacySettings())['is_tracker']

    social_on = PrivacySettings(tracker_categories=TrackerCategorySettings(social=True))
    result = shield.is_tracker_domain("connect.facebook.net", social_on)
    assert result['categories'] == ['social']


def test_tracker_blocking_disabled(shield):
    privacy = PrivacySettings(block_trackers=False)
    assert not shield.is_tracker_domain("doubleclick.net", privacy)['is_tracker']


def test_clean_url_removes_tracking_params(shield):
    url = "https://shop.example.com/item?id=42&utm_source=news&fbclid=abc&utm_source=dup"
    result = shield.clean_url(url, PrivacySettings())
    assert result['modified']
    assert result['cleaned_url'] == "https://shop.example.com/item?id=42"
    assert result['removed_params'] == ['utm_source', 'fbclid']


def test_clean_url_keeps_preserved_params(shield):
    result = shield.clean_url("https://example.com/post?ref_src=twsrc&gclid=1", PrivacySettings())
    assert result['cleaned_url'] == "https://example.com/post?ref_src=twsrc"
    assert result['preserved_params'] == ['ref_src']


def test_clean_url_skips_preserved_domains(shield):
    url = "https://accounts.google.com/signin?utm_source=mail"
    result = shield.clean_url(url, PrivacySettings())
    assert not result['modified']
    assert result['cleaned_url'] == url


def test_clean_url_without_tracking_params(shield):
    url = "https://example.com/?page=2"
    assert shield.clean_url(url, PrivacySettings())['cleaned_url'] == url


def test_clean_url_disabled(shield):
    url = "https://example.com/?utm_source=x"
    assert not shield.clean_url(url, PrivacySettings(clean_urls=False))['modified']
