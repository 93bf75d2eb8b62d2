import time
import logging
import threading
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError

from threatlens.config import settings
from threatlens.core.content_filter import ContentFilter
from threatlens.core.domain_utils import ParsedUrl, matches_domain, normalize_domain, parse_url
from threatlens.core.phishing_detector import PhishingDetector
from threatlens.core.privacy_shield import PrivacyShield
from threatlens.core.reputation import ReputationData
from threatlens.core.result_cache import ResultCache
from threatlens.core.risk_scorer import RiskScorer
from threatlens.core.url_analyzer import UrlAnalyzer
from threatlens.schemas import PageData, Recommendation, SecuritySettings
from threatlens.services.storage import SecurityStorage

logger = logging.getLogger(__name__)


def deep_merge(base: Dict, override: Dict) -> Dict:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class SecurityCore:
    """
    Entry point for URL and page analysis.

    Owns the detectors, both result caches, the whitelist, the counters and
    the runtime settings. Whitelisted domains short-circuit to an ALLOW/0
    result that is never cached; whitelist and settings changes clear both
    caches so a stale verdict is never served.
    """

    def __init__(self, reputation: ReputationData, storage: Optional[SecurityStorage] = None,
                 clock: Callable[[], float] = time.time):
        self.reputation = reputation
        self.storage = storage
        self._clock = clock

        self.url_analyzer = UrlAnalyzer(reputation)
        self.phishing_detector = PhishingDetector(reputation)
        self.content_filter = ContentFilter(reputation)
        self.privacy_shield = PrivacyShield(reputation)
        self.risk_scorer = RiskScorer()

        self.url_cache = ResultCache(settings.URL_CACHE_EXPIRY, settings.URL_CACHE_SWEEP_SIZE, clock)
        self.page_cache = ResultCache(settings.PAGE_CACHE_EXPIRY, settings.PAGE_CACHE_SWEEP_SIZE, clock)

        self._lock = threading.Lock()
        self._whitelist: List[str] = []
        self._stats = self._empty_stats()
        self._settings = SecuritySettings()

    # ------------------------------------------------------------------ state

    def load_state(self) -> None:
        """Restore whitelist, counters and settings from storage"""
        if self.storage is None:
            return

        whitelist = self.storage.load_whitelist()
        stats = self.storage.load_stats()
        stored_settings = self.storage.load_settings()

        with self._lock:
            self._whitelist = list(whitelist)
            if stats:
                self._stats.update(stats)
            if stored_settings:
                try:
                    self._settings = SecuritySettings.model_validate(
                        deep_merge(SecuritySettings().model_dump(), stored_settings)
                    )
                except ValidationError as e:
                    logger.warning(f"⚠️ Stored settings invalid, using defaults: {e}")

        logger.info(f"✓ Restored {len(whitelist)} whitelisted domains")

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _empty_stats(self) -> Dict:
        return {
            'urls_analyzed': 0,
            'threats_blocked': 0,
            'phishing_detected': 0,
            'content_blocked': 0,
            'urls_cleaned': 0,
            'trackers_blocked': {},
            'last_updated': self._now_ms()
        }

    @property
    def readiness(self) -> Dict[str, bool]:
        return dict(self.reputation.readiness)

    @property
    def diagnostics(self) -> List[Dict]:
        return [
            {'dataset': d.dataset, 'pattern': d.pattern, 'error': d.error}
            for d in self.reputation.diagnostics
        ]

    def clear_caches(self) -> None:
        self.url_cache.clear()
        self.page_cache.clear()

    # -------------------------------------------------------------- analysis

    def _build_result(self, url: str, domain: str, score: int, flags: List[Dict],
                      analysis: Dict, is_phishing: bool = False) -> Dict:
        return {
            'url': url,
            'domain': domain,
            'threat_score': score,
            'threat_level': self.risk_scorer.classify_threat_level(score),
            'recommendation': self.risk_scorer.determine_recommendation(score),
            'flags': flags,
            'analysis': analysis,
            'is_whitelisted': False,
            'is_phishing': is_phishing,
            'timestamp': self._now_ms()
        }

    def _whitelisted_result(self, url: str, domain: str) -> Dict:
        result = self._build_result(url, domain, 0, [], {})
        result['is_whitelisted'] = True
        return result

    def _error_result(self, url: str) -> Dict:
        flag = {'type': 'analysis_error', 'detail': 'Failed to analyze URL', 'score': 0}
        return self._build_result(url or '', '', 0, [flag], {'error': True})

    def analyze_url(self, url: str) -> Dict:
        """
        Full URL assessment: cache, parse, whitelist, detectors, aggregation.

        Never raises on bad input; an unparsable URL yields a zero score with
        an analysis_error flag.
        """
        cached = self.url_cache.get(url)
        if cached is not None:
            self._record_url_stats(cached)
            return cached

        parsed = parse_url(url)
        if parsed is None:
            logger.debug(f"Unparsable URL: {url!r}")
            result = self._error_result(url)
            self.url_cache.set(url, result)
            return result

        if self.is_whitelisted(parsed.hostname):
            return self._whitelisted_result(url, parsed.hostname)

        result = self._assess_url(parsed)
        self.url_cache.set(url, result)
        self._record_url_stats(result)
        return result

    def _assess_url(self, parsed: ParsedUrl) -> Dict:
        current = self.get_settings()
        features = current.features

        url_analysis = self.url_analyzer.analyze(parsed, features) if features.url_analysis else {}

        content = None
        if features.content_filtering:
            content = self.content_filter.check_url(
                parsed.url, current.content_categories, features.safe_search_enforcement
            )

        tracker = None
        if features.privacy_protection and features.tracker_blocking:
            tracker = self.privacy_shield.is_tracker_domain(parsed.hostname, current.privacy)

        aggregate = self.risk_scorer.aggregate_url(url_analysis, tracker, content)

        analysis = {
            'url': url_analysis or None,
            'content': content,
            'privacy': tracker,
            'breakdown': aggregate['breakdown']
        }
        return self._build_result(parsed.url, parsed.hostname, aggregate['score'], aggregate['flags'], analysis)

    def _url_assessment_for_page(self, parsed: ParsedUrl) -> Dict:
        cached = self.url_cache.get(parsed.url)
        if cached is not None:
            return cached
        result = self._assess_url(parsed)
        self.url_cache.set(parsed.url, result)
        return result

    def analyze_page(self, page: PageData) -> Dict:
        """
        Page assessment combining the URL verdict with in-page phishing
        signals and page-content categories.
        """
        parsed = parse_url(page.url)
        domain = parsed.hostname if parsed and parsed.hostname else (page.domain or '').lower()

        if self.is_whitelisted(domain):
            return self._whitelisted_result(page.url, domain)

        cache_key = f"{page.url}:{page.timestamp or self._now_ms()}"
        cached = self.page_cache.get(cache_key)
        if cached is not None:
            return cached

        current = self.get_settings()
        features = current.features

        url_result = None
        url_assessment = None
        if parsed is not None:
            url_assessment = self._url_assessment_for_page(parsed)
            url_result = {'score': url_assessment['threat_score'], 'flags': url_assessment['flags']}

        indicators = None
        phishing = None
        if features.phishing_detection:
            indicators = self.phishing_detector.analyze(page, domain)
            phishing = self.risk_scorer.calculate_phishing_score(indicators)

        content = None
        if features.content_filtering:
            content = self.content_filter.analyze_page_content(page, current.content_categories)

        aggregate = self.risk_scorer.aggregate_page(url_result, phishing, content)

        analysis = {
            'url': url_assessment['analysis'] if url_assessment else None,
            'phishing': indicators,
            'content': content,
            'breakdown': aggregate['breakdown']
        }
        result = self._build_result(page.url, domain, aggregate['score'], aggregate['flags'],
                                    analysis, is_phishing=aggregate['is_phishing'])

        self.page_cache.set(cache_key, result)
        self._record_page_stats(result['is_phishing'], bool(content and content['should_block']))
        return result

    # ----------------------------------------------------------------- stats

    def _record_url_stats(self, result: Dict) -> None:
        if result['analysis'].get('error'):
            return

        snapshot = None
        with self._lock:
            self._stats['urls_analyzed'] += 1
            if result['recommendation'] == Recommendation.BLOCK:
                self._stats['threats_blocked'] += 1
            tracker = result['analysis'].get('privacy')
            if tracker and tracker['should_block']:
                blocked = self._stats['trackers_blocked']
                for category in tracker['categories']:
                    blocked[category] = blocked.get(category, 0) + 1
            if self._stats['urls_analyzed'] % settings.STATS_FLUSH_INTERVAL == 0:
                self._stats['last_updated'] = self._now_ms()
                snapshot = self._snapshot()

        if snapshot is not None:
            self._persist_stats(snapshot)

    def _record_page_stats(self, is_phishing: bool, content_blocked: bool) -> None:
        with self._lock:
            if is_phishing:
                self._stats['phishing_detected'] += 1
            if content_blocked:
                self._stats['content_blocked'] += 1

    def _persist_stats(self, snapshot: Dict) -> None:
        if self.storage is not None:
            self.storage.save_stats(snapshot)

    def flush_stats(self) -> None:
        self._persist_stats(self.get_stats())

    def _snapshot(self) -> Dict:
        snapshot = dict(self._stats)
        snapshot['trackers_blocked'] = dict(self._stats['trackers_blocked'])
        return snapshot

    def get_stats(self) -> Dict:
        with self._lock:
            stats = self._snapshot()
            stats['whitelist_count'] = len(self._whitelist)
        return stats

    def reset_stats(self) -> Dict:
        with self._lock:
            self._stats = self._empty_stats()
            snapshot = self._snapshot()
        self._persist_stats(snapshot)
        logger.info("✓ Security stats reset")
        return self.get_stats()

    # ------------------------------------------------------------- whitelist

    def is_whitelisted(self, domain: str) -> bool:
        if not domain:
            return False
        domain = domain.lower()

        with self._lock:
            entries = list(self._whitelist)

        for entry in entries:
            base = entry[2:] if entry.startswith('*.') else entry
            if matches_domain(domain, base):
                return True
        return False

    def add_to_whitelist(self, domain: str) -> bool:
        normalized = normalize_domain(domain)
        if not normalized:
            return False

        with self._lock:
            if normalized in self._whitelist:
                return True
            self._whitelist.append(normalized)
            snapshot = list(self._whitelist)

        self._persist_whitelist(snapshot)
        self.clear_caches()
        logger.info(f"✓ Whitelisted {normalized}")
        return True

    def remove_from_whitelist(self, domain: str) -> bool:
        normalized = normalize_domain(domain)

        with self._lock:
            if normalized not in self._whitelist:
                return False
            self._whitelist.remove(normalized)
            snapshot = list(self._whitelist)

        self._persist_whitelist(snapshot)
        self.clear_caches()
        logger.info(f"✓ Removed {normalized} from whitelist")
        return True

    def get_whitelist(self) -> List[str]:
        with self._lock:
            return list(self._whitelist)

    def _persist_whitelist(self, snapshot: List[str]) -> None:
        if self.storage is not None:
            self.storage.save_whitelist(snapshot)

    # -------------------------------------------------------------- settings

    def get_settings(self) -> SecuritySettings:
        with self._lock:
            return self._settings

    def update_settings(self, partial: Dict[str, Any]) -> SecuritySettings:
        """
        Deep-merge a partial settings document into the current settings.

        Raises:
            pydantic.ValidationError: merged settings are invalid; nothing changes
        """
        with self._lock:
            merged = deep_merge(self._settings.model_dump(), partial or {})
            updated = SecuritySettings.model_validate(merged)
            self._settings = updated

        if self.storage is not None:
            self.storage.save_settings(updated.model_dump())
        self.clear_caches()
        logger.info("✓ Security settings updated")
        return updated

    # ------------------------------------------------------- backup/restore

    def export_data(self) -> Dict:
        return {
            'export_date': datetime.now(timezone.utc).isoformat(),
            'version': settings.VERSION,
            'stats': self.get_stats(),
            'settings': self.get_settings().model_dump(),
            'whitelist': self.get_whitelist()
        }

    def import_data(self, data: Dict) -> Dict:
        """
        Restore a backup produced by export_data. Settings are validated
        before anything is replaced.
        """
        imported = []

        if data.get('settings'):
            self.update_settings(data['settings'])
            imported.append('settings')

        whitelist = data.get('whitelist')
        if whitelist is not None:
            domains = []
            for domain in whitelist:
                normalized = normalize_domain(domain)
                if normalized and normalized not in domains:
                    domains.append(normalized)
            with self._lock:
                self._whitelist = domains
            self._persist_whitelist(list(domains))
            imported.append('whitelist')

        stats = data.get('stats')
        if stats:
            with self._lock:
                self._stats.update({
                    k: dict(v) if isinstance(v, dict) else v
                    for k, v in stats.items() if k in self._stats and v is not None
                })
                snapshot = self._snapshot()
            self._persist_stats(snapshot)
            imported.append('stats')

        self.clear_caches()
        logger.info(f"✓ Imported {', '.join(imported) or 'nothing'}")
        return {'imported': imported}

    # --------------------------------------------------------- url utilities

    def clean_url(self, url: str) -> Dict:
        current = self.get_settings()
        if not current.features.privacy_protection:
            return {'modified': False, 'original_url': url, 'cleaned_url': url,
                    'removed_params': [], 'preserved_params': []}
        result = self.privacy_shield.clean_url(url, current.privacy)
        if result['modified']:
            with self._lock:
                self._stats['urls_cleaned'] += 1
        return result

    def enforce_safe_search(self, url: str) -> Dict:
        current = self.get_settings()
        if not (current.features.safe_search_enforcement and current.content_categories.adult.enabled):
            return {'modified': False, 'original_url': url, 'safe_url': url}
        return self.content_filter.enforce_safe_search(url)
