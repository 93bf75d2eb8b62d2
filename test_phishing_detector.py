import pytest

from threatlens.core.phishing_detector import PhishingDetector
from threatlens.core.risk_scorer import RiskScorer
from threatlens.schemas import PageData


@pytest.fixture
def detector(reputation):
    return PhishingDetector(reputation)


def login_form(action):
    return {
        "action": action,
        "method": "POST",
        "inputs": [{"type": "email", "name": "email"}, {"type": "password", "name": "pass"}],
    }


def test_login_form_detection(detector):
    page = PageData(url="https://example.com/", forms=[
        login_form("/session"),
        {"action": "/search", "inputs": [{"type": "text", "name": "q"}]},
    ])
    result = detector.detect_login_forms(page)
    assert result['has_login_form']
    assert len(result['forms']) == 1
    assert result['forms'][0]['has_email_field']
    assert result['score'] == 10


def test_form_posting_to_ip_over_http(detector):
    page = PageData(
        url="http://account-review.net/signin",
        domain="account-review.net",
        forms=[login_form("http://192.168.1.50/collect.php")],
    )
    indicators = detector.analyze(page, "account-review.net")

    types = [a['type'] for a in indicators['form_actions']['suspicious_actions']]
    assert types == ['cross_domain_submit', 'ip_submit', 'insecure_submit']
    assert indicators['form_actions']['score'] == 75

    phishing = RiskScorer().calculate_phishing_score(indicators)
    assert phishing['score'] >= 50


def test_same_site_relative_action_is_clean(detector):
    forms = [{"action": "/login", "has_password_field": True}]
    result = detector.analyze_form_actions(forms, "example.com")
    assert result['suspicious_actions'] == []


def test_javascript_action(detector):
    forms = [{"action": "javascript:void(0)", "has_password_field": True}]
    result = detector.analyze_form_actions(forms, "example.com")
    assert [a['type'] for a in result['suspicious_actions']] == ['suspicious_protocol']
    assert result['score'] == 35


def test_no_login_form_skips_action_analysis(detector):
    page = PageData(url="https://example.com/", forms=[{"action": "http://other.com/"}])
    assert detector.analyze(page, "example.com")['form_actions'] is None


def test_brand_impersonation_with_external_logo(detector):
    page = PageData(
        url="https://paypal-help.xyz/",
        title="PayPal - Log in",
        images=[{"src": "https://cdn.imagehost.net/paypal-logo.png", "alt": "logo"}],
    )
    result = detector.detect_brand_impersonation(page, "paypal-help.xyz")
    assert result['is_impersonating']
    assert result['impersonated_brand'] == "PayPal"
    # one keyword * 10 * critical multiplier, plus the logo
    assert result['score'] == 35


def test_legitimate_brand_domain_not_flagged(detector):
    page = PageData(url="https://www.paypal.com/", title="PayPal")
    assert not detector.detect_brand_impersonation(page, "www.paypal.com")['is_impersonating']


def test_trusted_domains_are_skipped(detector):
    page = PageData(url="https://www.google.de/search", text_content="paypal login help")
    assert not detector.detect_brand_impersonation(page, "www.google.de")['is_impersonating']


def test_urgency_language(detector):
    result = detector.detect_urgency_language("Your account has been suspended. Verify now to restore access.")
    assert result['has_urgency_language']
    assert result['score'] == 25
    assert {m['category'] for m in result['matches']} == {'urgency'}


def test_impersonation_phrase_alone_is_not_urgency(detector):
    result = detector.detect_urgency_language("Dear customer, here is your monthly newsletter.")
    assert not result['has_urgency_language']
    assert result['score'] == 5


def test_empty_text(detector):
    assert detector.detect_urgency_language("")['score'] == 0


def test_page_characteristics(detector):
    page = PageData(
        url="http://example.com/",
        has_popup_login=True,
        right_click_disabled=True,
        domain_age=0,
        hidden_fields=[{"name": "user_password"}, {"name": "csrf_token"}],
    )
    result = detector.analyze_page_characteristics(page)
    types = [c['type'] for c in result['suspicious_characteristics']]
    assert types == ['popup_login', 'right_click_disabled', 'no_https', 'new_domain', 'suspicious_hidden_field']
    assert result['score'] == 10 + 15 + 25 + 20 + 15


def test_old_domain_not_flagged(detector):
    page = PageData(url="https://example.com/", domain_age=400)
    assert detector.analyze_page_characteristics(page)['suspicious_characteristics'] == []


def test_password_form_to_documentation_ip(detector):
    page = PageData(url="https://shop.example.com/", forms=[login_form("http://203.0.113.5/collect")])
    indicators = detector.analyze(page, "shop.example.com")

    types = {a['type'] for a in indicators['form_actions']['suspicious_actions']}
    assert {'ip_submit', 'insecure_submit'} <= types
    assert RiskScorer().calculate_phishing_score(indicators)['score'] >= 50
