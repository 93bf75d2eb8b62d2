import logging
from typing import Dict
from urllib.parse import parse_qsl, urlencode, urlunsplit

from threatlens.core.domain_utils import matches_domain, parse_url
from threatlens.core.reputation import ReputationData
from threatlens.schemas import PrivacySettings

logger = logging.getLogger(__name__)

TRACKER_SCORE = 10


class PrivacyShield:
    def __init__(self, reputation: ReputationData):
        self.data = reputation

    def is_tracker_domain(self, domain: str, privacy: PrivacySettings) -> Dict:
        """
        Classify a hostname against the tracker lists.

        The Bloom filter rules out most hosts before the per-category scan;
        parent domains are tried so cdn.hotjar.com matches hotjar.com.
        Only categories enabled in the privacy settings can match.
        """
        result = {
            'is_tracker': False,
            'categories': [],
            'should_block': False
        }

        if not self.data.trackers or not domain or not privacy.block_trackers:
            return result

        domain = domain.lower().rstrip('.')

        bloom = self.data.tracker_filter
        if bloom is not None:
            labels = domain.split('.')
            candidates = ('.'.join(labels[i:]) for i in range(len(labels)))
            if not any(bloom.contains(c) for c in candidates):
                return result

        enabled = privacy.tracker_categories
        for category, domains in self.data.trackers.items():
            if not getattr(enabled, category, False):
                continue
            if any(matches_domain(domain, tracker) for tracker in domains):
                result['categories'].append(category)

        if result['categories']:
            result['is_tracker'] = True
            result['should_block'] = True

        return result

    def clean_url(self, url: str, privacy: PrivacySettings) -> Dict:
        """Strip tracking query parameters unless the host or parameter is preserved"""
        result = {
            'modified': False,
            'original_url': url,
            'cleaned_url': url,
            'removed_params': [],
            'preserved_params': []
        }

        params = self.data.tracking_params
        if not params or not url or not privacy.clean_urls:
            return result

        parsed = parse_url(url)
        if parsed is None:
            return result

        if any(matches_domain(parsed.hostname, d) for d in params['preserve_domains']):
            return result

        tracking = set(params['parameters'])
        preserve = set(params['preserve_params'])
        kept = []

        for key, value in parse_qsl(parsed.parts.query, keep_blank_values=True):
            if key in tracking and key not in preserve:
                if key not in result['removed_params']:
                    result['removed_params'].append(key)
                continue
            if key in tracking and key not in result['preserved_params']:
                result['preserved_params'].append(key)
            kept.append((key, value))

        if result['removed_params']:
            result['modified'] = True
            result['cleaned_url'] = urlunsplit(parsed.parts._replace(query=urlencode(kept)))
            logger.debug(f"Removed {len(result['removed_params'])} tracking params from {parsed.hostname}")

        return result
