import logging
from typing import Dict, List, Optional
from urllib.parse import urljoin, urlsplit

from threatlens.core.domain_utils import is_ip_address, matches_domain, registrable_label
from threatlens.core.reputation import PHISHING_PATTERN_GROUPS, ReputationData
from threatlens.schemas import FormData, PageData

logger = logging.getLogger(__name__)

# Sites that routinely mention other brands and are never flagged for impersonation
TRUSTED_DOMAINS = [
    'bing.com', 'yahoo.com', 'duckduckgo.com', 'baidu.com',
    'youtube.com', 'wikipedia.org', 'reddit.com', 'twitter.com', 'x.com',
    'facebook.com', 'instagram.com', 'linkedin.com', 'github.com',
    'stackoverflow.com', 'ebay.com', 'cnn.com', 'bbc.com', 'bbc.co.uk',
    'nytimes.com', 'medium.com', 'quora.com',
]

# Trusted under any public suffix (google.de, amazon.co.uk, yandex.ru)
TRUSTED_LABELS = {'google', 'amazon', 'yandex'}

SUSPICIOUS_HIDDEN_NAMES = ['password', 'pass', 'pwd', 'creditcard', 'cc', 'ssn']

SUSPICIOUS_ACTION_SCHEMES = ('data:', 'javascript:')


class PhishingDetector:
    """Page-level phishing indicators built from collected PageData"""

    def __init__(self, reputation: ReputationData):
        self.data = reputation

    def analyze(self, page: PageData, current_domain: str) -> Dict:
        indicators = {
            'login_forms': self.detect_login_forms(page),
            'form_actions': None,
            'brand_impersonation': self.detect_brand_impersonation(page, current_domain),
            'urgency_language': self.detect_urgency_language(page.text_content),
            'page_characteristics': self.analyze_page_characteristics(page),
        }

        if indicators['login_forms']['has_login_form']:
            indicators['form_actions'] = self.analyze_form_actions(
                indicators['login_forms']['forms'], current_domain
            )

        return indicators

    def detect_login_forms(self, page: PageData) -> Dict:
        result = {
            'has_login_form': False,
            'forms': [],
            'score': 0
        }

        for form in page.forms:
            analysis = self._describe_form(form)
            if analysis['has_password_field']:
                result['has_login_form'] = True
                result['forms'].append(analysis)

        if result['has_login_form']:
            result['score'] = 10

        return result

    def _describe_form(self, form: FormData) -> Dict:
        analysis = {
            'has_password_field': False,
            'has_username_field': False,
            'has_email_field': False,
            'action': (form.action or '').strip(),
            'method': (form.method or 'GET').upper(),
            'input_count': len(form.inputs),
        }

        for field in form.inputs:
            field_type = (field.type or '').lower()
            name = (field.name or '').lower()

            if field_type == 'password':
                analysis['has_password_field'] = True
            if field_type == 'email' or 'email' in name:
                analysis['has_email_field'] = True
            if field_type == 'text' and any(k in name for k in ('user', 'login', 'name')):
                analysis['has_username_field'] = True

        return analysis

    def analyze_form_actions(self, forms: List[Dict], current_domain: str) -> Dict:
        """
        Inspect where login forms submit to.

        Args:
            forms: Form descriptions from detect_login_forms
            current_domain: Hostname of the page the forms live on

        Returns:
            Dict with suspicious_actions (each carrying its own score) and total score
        """
        result = {
            'suspicious_actions': [],
            'score': 0
        }

        current_domain = (current_domain or '').lower()
        base = f"https://{current_domain}/"

        for form in forms:
            action = form.get('action', '')
            if not action or action == '#':
                continue

            found = []
            try:
                action_url = urlsplit(urljoin(base, action))
                action_domain = (action_url.hostname or '').lower()
                action_scheme = action_url.scheme.lower()
            except ValueError:
                found.append(('invalid_action', 'Form has invalid action URL', 10))
            else:
                if action_domain and not matches_domain(action_domain, current_domain):
                    found.append(('cross_domain_submit', f"Form submits to external domain: {action_domain}", 25))

                if action_domain and is_ip_address(action_domain):
                    found.append(('ip_submit', 'Form submits to IP address', 30))

                if form.get('has_password_field') and action_scheme == 'http':
                    found.append(('insecure_submit', 'Password submitted over insecure HTTP', 20))

                if action.lower().startswith(SUSPICIOUS_ACTION_SCHEMES):
                    found.append(('suspicious_protocol', 'Form uses suspicious protocol', 35))

            for action_type, detail, score in found:
                result['suspicious_actions'].append({
                    'type': action_type,
                    'detail': detail,
                    'action_url': action,
                    'score': score
                })
                result['score'] += score

        return result

    def _is_trusted(self, domain: str) -> bool:
        if any(matches_domain(domain, trusted) for trusted in TRUSTED_DOMAINS):
            return True
        return registrable_label(domain) in TRUSTED_LABELS

    def detect_brand_impersonation(self, page: PageData, current_domain: str) -> Dict:
        result = {
            'is_impersonating': False,
            'impersonated_brand': None,
            'indicators': [],
            'score': 0
        }

        if not self.data.brands or not current_domain:
            return result

        domain = current_domain.lower()
        if self._is_trusted(domain):
            return result

        page_text = f"{page.title} {page.text_content}".lower()
        base = f"https://{domain}/"
        strongest = 0

        for brand in self.data.brands:
            found_keywords = [k for k in brand.keywords if k in page_text]
            if not found_keywords or brand.is_legitimate(domain):
                continue

            brand_score = int(min(len(found_keywords) * 10 * brand.priority_multiplier, 40))
            result['is_impersonating'] = True
            result['indicators'].append({
                'type': 'brand_keywords',
                'brand': brand.name,
                'detail': f"Page mentions {brand.name} keywords: {', '.join(found_keywords)}",
                'keywords': found_keywords,
                'score': brand_score
            })

            for image in page.images:
                src = (image.src or '').lower()
                alt = (image.alt or '').lower()
                if not any(k in src or k in alt for k in brand.keywords):
                    continue
                if self._image_host_is_legitimate(src, base, brand):
                    continue
                result['indicators'].append({
                    'type': 'brand_logo',
                    'brand': brand.name,
                    'detail': f"Possible {brand.name} logo from external source",
                    'score': 15
                })
                brand_score += 15

            result['score'] += brand_score
            if brand_score > strongest:
                strongest = brand_score
                result['impersonated_brand'] = brand.name

        return result

    def _image_host_is_legitimate(self, src: str, base: str, brand) -> bool:
        try:
            host = urlsplit(urljoin(base, src)).hostname or ''
        except ValueError:
            return False
        return brand.is_legitimate(host)

    def detect_urgency_language(self, text_content: Optional[str]) -> Dict:
        """Pressure, credential, reward and impersonation phrasing in page text"""
        result = {
            'has_urgency_language': False,
            'matches': [],
            'score': 0
        }

        if not self.data.phishing_patterns or not text_content:
            return result

        text = text_content.lower()

        for group in PHISHING_PATTERN_GROUPS:
            for pattern in self.data.phishing_patterns.get(group, []):
                match_count = sum(1 for _ in pattern.regex.finditer(text))
                if not match_count:
                    continue

                # Impersonation phrasing adds score but is not urgency on its own
                if group != 'impersonationPatterns':
                    result['has_urgency_language'] = True

                result['matches'].append({
                    'pattern': pattern.source,
                    'category': pattern.category,
                    'match_count': match_count,
                    'score': pattern.score
                })
                result['score'] += pattern.score

        return result

    def analyze_page_characteristics(self, page: PageData) -> Dict:
        result = {
            'suspicious_characteristics': [],
            'score': 0
        }
        found = result['suspicious_characteristics']

        if page.has_popup_login:
            found.append({'type': 'popup_login', 'detail': 'Login form in popup/modal', 'score': 10})

        if page.right_click_disabled:
            found.append({'type': 'right_click_disabled', 'detail': 'Right-click is disabled on page', 'score': 15})

        if page.has_iframe_login:
            found.append({'type': 'iframe_login', 'detail': 'Login form in iframe', 'score': 20})

        if page.url and page.url.lower().startswith('http://'):
            found.append({'type': 'no_https', 'detail': 'Page not using HTTPS', 'score': 25})

        if page.domain_age is not None and page.domain_age < 30:
            found.append({
                'type': 'new_domain',
                'detail': f"Domain is only {page.domain_age} days old",
                'score': 20
            })

        for hidden in page.hidden_fields:
            name = (hidden.name or '').lower()
            for suspicious in SUSPICIOUS_HIDDEN_NAMES:
                if suspicious in name:
                    found.append({
                        'type': 'suspicious_hidden_field',
                        'detail': f'Hidden field with name containing "{suspicious}"',
                        'score': 15
                    })
                    break

        result['score'] = sum(c['score'] for c in found)
        return result
