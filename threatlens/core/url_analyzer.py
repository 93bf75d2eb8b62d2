import re
import logging
from typing import Dict, List, Optional

from threatlens.config import settings
from threatlens.core.domain_utils import (
    ParsedUrl, domain_tokens, get_tld, is_ip_address, matches_domain, strip_suffix,
)
from threatlens.core.lexical import levenshtein_distance, shannon_entropy
from threatlens.core.reputation import ReputationData

logger = logging.getLogger(__name__)

URL_SHORTENERS = [
    'bit.ly', 'bitly.com', 'tinyurl.com', 't.co', 'goo.gl',
    'ow.ly', 'is.gd', 'buff.ly', 'adf.ly', 'tiny.cc',
    'lnkd.in', 'db.tt', 'qr.ae', 'cur.lv', 'ity.im',
    'q.gs', 'po.st', 'bc.vc', 'u.to', 'j.mp',
    'v.gd', 'x.co', 'shorte.st', 'tr.im', 'link.zip.net',
    'cutt.ly', 'rb.gy', 'shorturl.at', 'trib.al', 'clicky.me',
    'bl.ink', 's.id', 't.ly', 'rebrand.ly', 'short.io',
]

SHORTENER_SCORE = 15

# (type, regex over the lowercased URL, score, detail)
SUSPICIOUS_PATTERNS = [
    ('ip_address', re.compile(r'^[a-z][a-z0-9+.-]*://\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3}(?:[:/?#]|$)'), 25,
     'Direct IP address access'),
    ('multiple_hyphens', re.compile(r'-{2,}'), 10, 'Multiple consecutive hyphens'),
    ('executable', re.compile(r'\.(?:exe|msi|bat|cmd|ps1|vbs|js|jar|scr|pif)$'), 35, 'Executable file extension'),
    ('sensitive_keywords', re.compile(r'login|signin|account|secure|verify|update|confirm'), 10,
     'Contains sensitive keywords'),
    ('subdomain_depth', re.compile(r'\..*\.'), 5, 'Deep subdomain structure'),
    ('at_symbol', re.compile(r'@'), 20, 'Contains @ symbol in URL'),
    ('free_tld', re.compile(r'\.(?:tk|ml|ga|cf|gq)(?=[:/?#]|$)'), 25, 'Free TLD often used for phishing'),
    ('encoded_chars', re.compile(r'%[0-9a-f]{2}'), 5, 'URL-encoded characters'),
    ('data_uri', re.compile(r'data:'), 40, 'Data URI scheme'),
    ('javascript_uri', re.compile(r'javascript:'), 45, 'JavaScript URI scheme'),
]


class UrlAnalyzer:
    """
    Lexical URL detectors: homograph, typosquatting, suspicious patterns,
    TLD risk, URL shorteners and known malicious domains.

    Every detector returns its zero result when the dataset it needs
    is not loaded.
    """

    def __init__(self, reputation: ReputationData):
        self.data = reputation

    def analyze(self, parsed: ParsedUrl, features) -> Dict:
        """
        Run every URL detector enabled in the feature flags.

        Args:
            parsed: Result of domain_utils.parse_url
            features: FeatureFlags from the runtime settings

        Returns:
            Dict of detector name -> detector result (None when disabled)
        """
        hostname = parsed.hostname
        return {
            'homograph': self.detect_homograph(hostname) if features.homograph_detection else None,
            'typosquatting': self.detect_typosquatting(hostname) if features.typosquatting_detection else None,
            'patterns': self.analyze_suspicious_patterns(parsed.url, hostname),
            'tld': self.assess_tld_risk(get_tld(hostname)),
            'shortener': self.is_url_shortener(hostname),
            'malicious': self.check_malicious_domain(hostname),
        }

    # ---------------------------------------------------------------- homograph

    def detect_homograph(self, domain: str) -> Dict:
        result = {
            'has_homograph': False,
            'homoglyphs': [],
            'normalized_domain': domain,
            'score': 0
        }

        if not self.data.homoglyphs or not domain:
            return result

        normalized = domain
        found = []

        for script in ('cyrillic', 'greek'):
            for char, info in self.data.homoglyphs[script].items():
                if char in domain:
                    found.append({
                        'original': char,
                        'replacement': info['latin'],
                        'type': script,
                        'unicode': info.get('unicode'),
                        'name': info.get('name'),
                    })
                    normalized = normalized.replace(char, info['latin'])

        for char, info in self.data.homoglyphs['special'].items():
            if char in domain:
                found.append({
                    'original': char,
                    'replacement': info['lookalike'],
                    'type': 'special',
                    'unicode': info.get('unicode'),
                    'name': info.get('name', 'Special character'),
                })
                normalized = normalized.replace(char, info['lookalike'])

        # Digits only count when swapping them back yields a real brand domain
        if self.data.brands:
            for digit, info in self.data.homoglyphs['number_substitution'].items():
                if digit not in domain:
                    continue
                letter_variant = domain.replace(digit, info['lookalike'].lower())
                if any(b.is_legitimate(letter_variant) and not b.is_legitimate(domain) for b in self.data.brands):
                    found.append({
                        'original': digit,
                        'replacement': info['lookalike'],
                        'type': 'number_substitution',
                    })
                    normalized = normalized.replace(digit, info['lookalike'].lower())

        if found:
            result['has_homograph'] = True
            result['homoglyphs'] = found
            result['normalized_domain'] = normalized
            result['score'] = min(len(found) * 15, 45)

        return result

    # ------------------------------------------------------------ typosquatting

    def detect_typosquatting(self, domain: str) -> Dict:
        """
        Closest brand keyword within edit distance of the domain or one of
        its labels / hyphen tokens. Domains that already contain the keyword
        verbatim are left to the brand_keyword_misuse check.
        """
        result = {
            'is_typosquatting': False,
            'target_brand': None,
            'distance': None,
            'matched_keyword': None,
            'priority': None,
            'score': 0
        }

        if not self.data.brands or not domain or is_ip_address(domain):
            return result

        threshold = settings.TYPOSQUATTING_THRESHOLD
        base = strip_suffix(domain)
        candidates = [base] + [t for t in domain_tokens(domain) if t != base]
        best = threshold + 1

        for brand in self.data.brands:
            legitimate = None
            for keyword in brand.keywords:
                if keyword in base:
                    continue

                distance = min(levenshtein_distance(c, keyword) for c in candidates)
                # Short keywords need proportionally closer matches
                if distance > threshold or 2 * distance >= len(keyword) or distance >= best:
                    continue

                if legitimate is None:
                    legitimate = brand.is_legitimate(domain)
                if legitimate:
                    continue

                best = distance
                result.update({
                    'is_typosquatting': True,
                    'target_brand': brand.name,
                    'distance': distance,
                    'matched_keyword': keyword,
                    'priority': brand.priority,
                    'score': (threshold - distance + 1) * 20,
                })

        return result

    # ------------------------------------------------------- suspicious patterns

    def analyze_suspicious_patterns(self, url: str, hostname: Optional[str] = None) -> Dict:
        result = {
            'suspicious_patterns': [],
            'total_score': 0
        }

        if not url:
            return result

        full_url = url.lower()
        hostname = (hostname or '').lower()
        patterns: List[Dict] = result['suspicious_patterns']

        for pattern_type, regex, score, detail in SUSPICIOUS_PATTERNS:
            if regex.search(full_url):
                patterns.append({'type': pattern_type, 'detail': detail, 'score': score})

        if hostname:
            if len(hostname) > settings.MAX_DOMAIN_LENGTH:
                patterns.append({
                    'type': 'long_domain',
                    'detail': f"Domain exceeds {settings.MAX_DOMAIN_LENGTH} characters",
                    'score': 15
                })

            subdomain_count = len(hostname.split('.')) - 2
            if subdomain_count > 3:
                patterns.append({
                    'type': 'excessive_subdomains',
                    'detail': f"{subdomain_count} subdomains detected",
                    'score': subdomain_count * 5
                })

            entropy = shannon_entropy(hostname.replace('.', ''))
            if entropy > settings.ENTROPY_THRESHOLD:
                patterns.append({
                    'type': 'high_entropy',
                    'detail': f"High randomness in domain (entropy: {entropy:.2f})",
                    'score': 10
                })

            for brand in self.data.brands or []:
                for keyword in brand.keywords:
                    if keyword in hostname and not brand.is_legitimate(hostname):
                        patterns.append({
                            'type': 'brand_keyword_misuse',
                            'detail': f'Contains "{keyword}" but is not a legitimate {brand.name} domain',
                            'score': 30 if brand.priority == 'critical' else 20
                        })

        result['total_score'] = sum(p['score'] for p in patterns)
        return result

    # ------------------------------------------------------------------ TLD risk

    def assess_tld_risk(self, tld: str) -> Dict:
        result = {
            'tld': tld,
            'risk_level': 'low',
            'score': 0,
            'reason': 'Standard TLD'
        }

        if not self.data.tld_risk or not tld:
            return result

        tld = tld.lower()
        table = self.data.tld_risk

        for tier, level in (('highRisk', 'high'), ('mediumRisk', 'medium')):
            if tld in table[tier]['tlds']:
                result.update(risk_level=level, score=table[tier]['score'], reason=table[tier]['reason'])
                return result

        for special in table.get('specialPurpose', {}).values():
            if tld == special['tld']:
                result.update(risk_level='special', score=special['score'], reason=special['reason'])
                return result

        for level, tier in table.get('countryTlds', {}).items():
            if tld in tier['tlds']:
                result.update(risk_level=level, score=tier['score'],
                              reason=f"{level.capitalize()} trust country TLD")
                return result

        if tld in table['lowRisk']['tlds']:
            result.update(score=table['lowRisk']['score'], reason=table['lowRisk']['reason'])

        return result

    # ---------------------------------------------------------------- shortener

    def is_url_shortener(self, domain: str) -> Dict:
        result = {
            'is_shortener': False,
            'service': None,
            'score': 0
        }

        if not domain:
            return result

        domain = domain.lower()
        for shortener in URL_SHORTENERS:
            if matches_domain(domain, shortener):
                result.update(is_shortener=True, service=shortener, score=SHORTENER_SCORE)
                break

        return result

    # -------------------------------------------------------- malicious domain

    def check_malicious_domain(self, domain: str) -> Dict:
        result = {
            'is_malicious': False,
            'type': None,
            'score': 0
        }

        if not self.data.malicious_domains or not domain:
            return result

        domain = domain.lower()

        for kind in ('phishing', 'malware', 'scam'):
            if domain in self.data.malicious_domains.get(kind, []):
                result.update(is_malicious=True, type=kind, score=100)
                return result

        for pattern in self.data.malicious_patterns:
            if pattern.regex.search(domain):
                result.update(is_malicious=True, type=pattern.category, score=pattern.score)
                return result

        return result
