import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, NamedTuple, Optional, Pattern

import requests

from threatlens.core.bloom_filter import BloomFilter
from threatlens.core.domain_utils import matches_domain, registrable_label

logger = logging.getLogger(__name__)

PACKAGE_DATA_DIR = Path(__file__).resolve().parents[1] / 'data'

DATASET_FILES = {
    'homoglyphs': 'homoglyph_map.json',
    'brands': 'brand_database.json',
    'tld_risk': 'tld_risk_scores.json',
    'malicious_domains': 'malicious_domains.json',
    'phishing_patterns': 'phishing_patterns.json',
    'trackers': 'tracker_domains.json',
    'tracking_params': 'tracking_params.json',
    'content_categories': 'content_categories.json',
}

PHISHING_PATTERN_GROUPS = (
    'urgencyPatterns',
    'credentialPatterns',
    'rewardPatterns',
    'impersonationPatterns',
)

TRACKER_CATEGORIES = ('analytics', 'advertising', 'social', 'fingerprinting')

PRIORITY_MULTIPLIERS = {'critical': 2.0, 'high': 1.5}


class CompiledPattern(NamedTuple):
    regex: Pattern
    category: str
    score: int
    source: str


@dataclass
class PatternDiagnostic:
    dataset: str
    pattern: str
    error: str


@dataclass
class Brand:
    name: str
    keywords: List[str]
    legitimate_domains: List[str]
    priority: str = 'medium'

    def __post_init__(self):
        self.keywords = [k.lower() for k in self.keywords]
        self.legitimate_domains = [d.lower() for d in self.legitimate_domains]
        self._wildcards = [
            self._compile_wildcard(d) for d in self.legitimate_domains
            if '*' in d and not d.endswith('.*')
        ]

    @staticmethod
    def _compile_wildcard(pattern: str) -> Pattern:
        body = re.escape(pattern).replace(r'\*', r'[a-z0-9-]*')
        return re.compile(r'(?:[a-z0-9-]+\.)*' + body)

    @property
    def priority_multiplier(self) -> float:
        return PRIORITY_MULTIPLIERS.get(self.priority, 1.0)

    def is_legitimate(self, domain: str) -> bool:
        """
        Exact or subdomain match against the brand's legitimate domains.

        A trailing '.*' means "under any public suffix" ('paypal.*' accepts
        paypal.de and www.paypal.co.uk but not paypal.evil.com). Other
        wildcards match within a single label and are anchored.
        """
        if not domain:
            return False
        domain = domain.lower().rstrip('.')

        for legit in self.legitimate_domains:
            if legit.endswith('.*') and '*' not in legit[:-2]:
                if registrable_label(domain) == legit[:-2]:
                    return True
            elif '*' not in legit and matches_domain(domain, legit):
                return True

        return any(w.fullmatch(domain) for w in self._wildcards)


@dataclass
class ReputationData:
    """
    Reference datasets used by the detectors.

    Loaded once and treated as read-only afterwards. A dataset that failed
    to load stays None and its readiness flag stays False; detectors check
    for this and return their zero result.
    """
    homoglyphs: Optional[Dict[str, Dict]] = None
    brands: Optional[List[Brand]] = None
    tld_risk: Optional[Dict[str, Any]] = None
    malicious_domains: Optional[Dict[str, List[str]]] = None
    malicious_patterns: List[CompiledPattern] = field(default_factory=list)
    phishing_patterns: Optional[Dict[str, List[CompiledPattern]]] = None
    trackers: Optional[Dict[str, List[str]]] = None
    tracker_filter: Optional[BloomFilter] = None
    tracking_params: Optional[Dict[str, List[str]]] = None
    content_categories: Optional[Dict[str, Any]] = None
    content_keyword_patterns: Dict[str, Pattern] = field(default_factory=dict)
    readiness: Dict[str, bool] = field(
        default_factory=lambda: {name: False for name in DATASET_FILES}
    )
    diagnostics: List[PatternDiagnostic] = field(default_factory=list)

    @property
    def is_ready(self) -> bool:
        return all(self.readiness.values())


class ReputationLoader:
    """
    Loads the reference datasets from a remote mirror, a configured
    directory, or the JSON files bundled with the package, in that order.
    """

    def __init__(self, data_dir: Optional[str] = None, remote_url: Optional[str] = None,
                 timeout: float = 5.0):
        self.data_dir = Path(data_dir) if data_dir else None
        self.remote_url = remote_url.rstrip('/') if remote_url else None
        self.timeout = timeout

        self.http_session = requests.Session()
        self.http_session.headers.update({'User-Agent': 'ThreatLens/1.0'})

    def load(self) -> ReputationData:
        data = ReputationData()
        builders = {
            'homoglyphs': self._build_homoglyphs,
            'brands': self._build_brands,
            'tld_risk': self._build_tld_risk,
            'malicious_domains': self._build_malicious_domains,
            'phishing_patterns': self._build_phishing_patterns,
            'trackers': self._build_trackers,
            'tracking_params': self._build_tracking_params,
            'content_categories': self._build_content_categories,
        }

        for name, filename in DATASET_FILES.items():
            raw = self._read_dataset(filename)
            if raw is None:
                continue
            try:
                builders[name](raw, data)
                data.readiness[name] = True
            except (KeyError, TypeError, AttributeError, ValueError) as e:
                logger.error(f"❌ Malformed dataset {filename}: {e}")

        loaded = sum(data.readiness.values())
        if data.is_ready:
            logger.info(f"✓ Loaded all {loaded} reference datasets")
        else:
            missing = [n for n, ok in data.readiness.items() if not ok]
            logger.warning(f"⚠️ Loaded {loaded}/{len(DATASET_FILES)} reference datasets, missing: {missing}")

        for diag in data.diagnostics:
            logger.warning(f"⚠️ Skipped invalid pattern in {diag.dataset}: {diag.pattern!r} ({diag.error})")

        return data

    def _read_dataset(self, filename: str) -> Optional[Dict]:
        if self.remote_url:
            remote = self._fetch_remote(filename)
            if remote is not None:
                return remote

        possible_paths = [PACKAGE_DATA_DIR / filename]
        if self.data_dir:
            possible_paths.insert(0, self.data_dir / filename)

        for file_path in possible_paths:
            if not file_path.exists():
                continue
            try:
                with open(file_path, 'r', encoding='utf-8') as f:
                    raw = json.load(f)
                logger.debug(f"Loaded {filename} from {file_path}")
                return raw
            except json.JSONDecodeError as e:
                logger.error(f"❌ JSON decode error in {file_path}: {e}")
                return None
            except IOError as e:
                logger.error(f"❌ IO error loading {file_path}: {e}")
                return None

        logger.warning(f"⚠️ Dataset {filename} not found")
        return None

    def _fetch_remote(self, filename: str) -> Optional[Dict]:
        url = f"{self.remote_url}/{filename}"
        try:
            response = self.http_session.get(url, timeout=self.timeout)
            response.raise_for_status()
            return response.json()
        except requests.RequestException as e:
            logger.warning(f"⚠️ Could not fetch {url}, falling back to local copy: {e}")
        except ValueError as e:
            logger.warning(f"⚠️ Invalid JSON from {url}, falling back to local copy: {e}")
        return None

    def _compile(self, data: ReputationData, dataset: str, pattern: str) -> Optional[Pattern]:
        try:
            return re.compile(pattern, re.IGNORECASE)
        except (re.error, TypeError) as e:
            data.diagnostics.append(PatternDiagnostic(dataset=dataset, pattern=str(pattern), error=str(e)))
            return None

    def _compile_rule(self, data: ReputationData, dataset: str, entry: Dict,
                      label_key: str) -> Optional[CompiledPattern]:
        """One pattern rule; a malformed rule is recorded and skipped, never fatal"""
        try:
            source = entry['pattern']
            label = entry[label_key]
            score = int(entry['score'])
        except (KeyError, TypeError, ValueError) as e:
            data.diagnostics.append(PatternDiagnostic(
                dataset=dataset,
                pattern=str(entry.get('pattern', entry) if isinstance(entry, dict) else entry),
                error=f"malformed rule: {e!r}"
            ))
            return None

        regex = self._compile(data, dataset, source)
        if regex is None:
            return None
        return CompiledPattern(regex, label, score, source)

    def _build_homoglyphs(self, raw: Dict, data: ReputationData) -> None:
        data.homoglyphs = {
            'cyrillic': raw['cyrillicToLatin'],
            'greek': raw['greekToLatin'],
            'special': raw.get('specialCharacters', {}),
            'number_substitution': raw.get('numberLetterSubstitutions', {}),
        }

    def _build_brands(self, raw: Dict, data: ReputationData) -> None:
        data.brands = [
            Brand(
                name=b['name'],
                keywords=b['keywords'],
                legitimate_domains=b.get('legitimateDomains', []),
                priority=b.get('priority', 'medium'),
            )
            for b in raw['brands']
        ]

    def _build_tld_risk(self, raw: Dict, data: ReputationData) -> None:
        for tier in ('highRisk', 'mediumRisk', 'lowRisk'):
            raw[tier]['tlds'] = [t.lower() for t in raw[tier]['tlds']]
        data.tld_risk = raw

    def _build_malicious_domains(self, raw: Dict, data: ReputationData) -> None:
        data.malicious_domains = {
            kind: [d.lower() for d in raw.get(kind, [])]
            for kind in ('phishing', 'malware', 'scam')
        }
        compiled = [self._compile_rule(data, 'malicious_domains', entry, 'type') for entry in raw.get('patterns', [])]
        data.malicious_patterns = [p for p in compiled if p]

    def _build_phishing_patterns(self, raw: Dict, data: ReputationData) -> None:
        groups = {}
        for group in PHISHING_PATTERN_GROUPS:
            compiled = [self._compile_rule(data, 'phishing_patterns', entry, 'category') for entry in raw.get(group, [])]
            groups[group] = [p for p in compiled if p]
        data.phishing_patterns = groups

    def _build_trackers(self, raw: Dict, data: ReputationData) -> None:
        trackers = {
            category: [d.lower() for d in domains]
            for category, domains in raw.items()
            if isinstance(domains, list)
        }
        all_domains = [d for domains in trackers.values() for d in domains]

        bloom = BloomFilter.create_optimal(len(all_domains), 0.01)
        bloom.add_all(all_domains)

        data.trackers = trackers
        data.tracker_filter = bloom

    def _build_tracking_params(self, raw: Dict, data: ReputationData) -> None:
        data.tracking_params = {
            'parameters': list(raw['parameters']),
            'preserve_params': list(raw.get('preserveParams', [])),
            'preserve_domains': [d.lower() for d in raw.get('preserveDomains', [])],
        }

    def _build_content_categories(self, raw: Dict, data: ReputationData) -> None:
        categories = raw['categories']
        patterns = {}
        for category in categories.values():
            for key in ('explicit', 'moderate', 'keywords'):
                for keyword in category.get(key, []):
                    keyword = keyword.lower()
                    if keyword not in patterns:
                        patterns[keyword] = re.compile(rf'\b{re.escape(keyword)}\b', re.IGNORECASE)

        data.content_categories = {
            'categories': categories,
            'safe_mode_params': raw.get('safeModeParams', {}),
        }
        data.content_keyword_patterns = patterns


def load_reputation_data(settings) -> ReputationData:
    loader = ReputationLoader(
        data_dir=settings.REFERENCE_DATA_DIR,
        remote_url=settings.REFERENCE_DATA_URL,
        timeout=settings.REFERENCE_FETCH_TIMEOUT,
    )
    return loader.load()
