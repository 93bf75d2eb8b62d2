from typing import Dict, List, Optional

from threatlens.config import settings
from threatlens.core.privacy_shield import TRACKER_SCORE
from threatlens.schemas import Recommendation, ThreatLevel

MAX_SCORE = 100
URGENCY_FLAG_LIMIT = 5


def _clamp(score) -> int:
    return max(0, min(int(round(score)), MAX_SCORE))


class RiskScorer:
    def __init__(self):
        """
        Merge detector outputs into one bounded score.

        URL path sums detector scores (cumulative evidence). Page path sums
        the in-page phishing signals but combines them with the URL and
        content scores by max, so the worst single dimension dominates.
        """
        self.thresholds = {
            'critical': settings.THREAT_CRITICAL,
            'high': settings.THREAT_HIGH,
            'medium': settings.THREAT_MEDIUM,
            'low': settings.THREAT_LOW
        }

    def classify_threat_level(self, score: int) -> ThreatLevel:
        if score >= self.thresholds['critical']:
            return ThreatLevel.CRITICAL
        elif score >= self.thresholds['high']:
            return ThreatLevel.HIGH
        elif score >= self.thresholds['medium']:
            return ThreatLevel.MEDIUM
        elif score >= self.thresholds['low']:
            return ThreatLevel.LOW
        return ThreatLevel.NONE

    def determine_recommendation(self, score: int) -> Recommendation:
        # CRITICAL and HIGH share the same action
        if score >= self.thresholds['high']:
            return Recommendation.BLOCK
        elif score >= self.thresholds['medium']:
            return Recommendation.WARN
        return Recommendation.ALLOW

    def aggregate_url(self, analysis: Dict, tracker: Optional[Dict] = None,
                      content: Optional[Dict] = None) -> Dict:
        """
        Score the URL detectors.

        Args:
            analysis: UrlAnalyzer.analyze output (disabled detectors are None)
            tracker: PrivacyShield.is_tracker_domain result
            content: ContentFilter.check_url result

        Returns:
            Dict with clamped score, ordered flags and a per-source breakdown
        """
        flags: List[Dict] = []
        detector_score = 0

        homograph = analysis.get('homograph')
        if homograph and homograph['has_homograph']:
            chars = ', '.join(h['original'] for h in homograph['homoglyphs'])
            flags.append({'type': 'homograph', 'detail': f"Lookalike characters detected: {chars}",
                          'score': homograph['score']})
            detector_score += homograph['score']

        typo = analysis.get('typosquatting')
        if typo and typo['is_typosquatting']:
            flags.append({'type': 'typosquatting', 'detail': f"Possible impersonation of {typo['target_brand']}",
                          'score': typo['score']})
            detector_score += typo['score']

        patterns = analysis.get('patterns')
        if patterns and patterns['suspicious_patterns']:
            flags.extend(dict(p) for p in patterns['suspicious_patterns'])
            detector_score += patterns['total_score']

        tld = analysis.get('tld')
        if tld and tld['score'] > 0:
            flags.append({'type': 'risky_tld', 'detail': f"{tld['tld']}: {tld['reason']}", 'score': tld['score']})
            detector_score += tld['score']

        shortener = analysis.get('shortener')
        if shortener and shortener['is_shortener']:
            flags.append({'type': 'url_shortener', 'detail': f"URL shortener detected: {shortener['service']}",
                          'score': shortener['score']})
            detector_score += shortener['score']

        malicious = analysis.get('malicious')
        if malicious and malicious['is_malicious']:
            flags.append({'type': 'malicious_domain', 'detail': f"Known {malicious['type']} domain",
                          'score': malicious['score']})
            detector_score += malicious['score']

        content_score = 0
        if content and content['is_blocked']:
            content_score = content['score']
            flags.append({'type': 'content_blocked', 'detail': content['reason'], 'score': content_score})

        tracker_score = 0
        if tracker and tracker['is_tracker']:
            tracker_score = TRACKER_SCORE
            flags.append({'type': 'tracker_detected',
                          'detail': f"Tracker categories: {', '.join(tracker['categories'])}",
                          'score': tracker_score})

        url_score = _clamp(detector_score + tracker_score)

        return {
            'score': max(url_score, _clamp(content_score)),
            'flags': flags,
            'breakdown': {
                'url_detectors': _clamp(detector_score),
                'tracker': tracker_score,
                'content': content_score
            }
        }

    def calculate_phishing_score(self, indicators: Dict) -> Dict:
        """Sum in-page phishing signals, capped at 100"""
        total = 0
        flags: List[Dict] = []

        login = indicators.get('login_forms')
        if login and login['has_login_form']:
            total += login['score']
            flags.append({'type': 'login_form_present',
                          'detail': f"{len(login['forms'])} login form(s) detected",
                          'score': login['score']})

        actions = indicators.get('form_actions')
        if actions and actions['suspicious_actions']:
            total += actions['score']
            for action in actions['suspicious_actions']:
                flags.append({'type': action['type'], 'detail': action['detail'], 'score': action['score']})

        brand = indicators.get('brand_impersonation')
        if brand and brand['is_impersonating']:
            total += brand['score']
            flags.append({'type': 'brand_impersonation',
                          'detail': f"Possible impersonation of {brand['impersonated_brand']}",
                          'score': brand['score']})

        urgency = indicators.get('urgency_language')
        if urgency and urgency['has_urgency_language']:
            total += urgency['score']
            for match in urgency['matches'][:URGENCY_FLAG_LIMIT]:
                flags.append({'type': f"urgency_{match['category']}",
                              'detail': f"Detected {match['category']} pattern",
                              'score': match['score']})

        characteristics = indicators.get('page_characteristics')
        if characteristics and characteristics['suspicious_characteristics']:
            total += characteristics['score']
            for item in characteristics['suspicious_characteristics']:
                flags.append({'type': item['type'], 'detail': item['detail'], 'score': item['score']})

        return {'score': _clamp(total), 'flags': flags}

    def aggregate_page(self, url_result: Optional[Dict], phishing: Optional[Dict],
                       content: Optional[Dict]) -> Dict:
        """
        Combine URL, phishing and page-content results.

        Final score is max(url score, phishing score, content score when the
        content verdict blocks). is_phishing follows the phishing score alone.
        """
        flags: List[Dict] = []
        url_score = phishing_score = content_score = 0

        if url_result:
            url_score = url_result['score']
            flags.extend(url_result['flags'])

        if phishing:
            phishing_score = phishing['score']
            flags.extend(phishing['flags'])

        if content and content['should_block']:
            content_score = content['score']
            flags.append({'type': 'content_violation',
                          'detail': f"Blocked categories: {', '.join(content['matched_categories'])}",
                          'score': content_score})

        return {
            'score': _clamp(max(url_score, phishing_score, content_score)),
            'flags': flags,
            'is_phishing': phishing_score >= self.thresholds['medium'],
            'breakdown': {
                'url': url_score,
                'phishing': phishing_score,
                'content': content_score
            }
        }
