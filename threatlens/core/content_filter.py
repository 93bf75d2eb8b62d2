import logging
from typing import Dict, List
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from threatlens.core.domain_utils import parse_url, registrable_label
from threatlens.core.reputation import ReputationData
from threatlens.schemas import ContentCategorySettings, PageData

logger = logging.getLogger(__name__)

URL_KEYWORD_SCORES = {
    'gambling': 50,
    'violence': 50,
    'drugs': 40,
    'piracy': 40,
}

BLOCKLIST_TLD_CATEGORIES = ('adult', 'gambling')

SEARCH_ENGINES = ('google', 'bing', 'duckduckgo', 'yahoo', 'yandex')
SEARCH_QUERY_PARAMS = ('q', 'query', 'search', 'p', 'text')

PAGE_MATCH_THRESHOLD = 3
BLOCK_SCORE = 50


class ContentFilter:
    """
    Objectionable-content classification for URLs and page text, plus
    safe-search enforcement on search engine result pages.
    """

    def __init__(self, reputation: ReputationData):
        self.data = reputation

    def _categories(self) -> Dict:
        return self.data.content_categories['categories']

    def _keywords_for(self, category: str, config) -> List[str]:
        category_data = self._categories().get(category) or {}
        if category == 'adult':
            keywords = list(category_data.get('explicit', []))
            if config.strictness == 'high':
                keywords += category_data.get('moderate', [])
            return [k.lower() for k in keywords]
        return [k.lower() for k in category_data.get('keywords', [])]

    def _enabled(self, content_settings: ContentCategorySettings):
        for category, config in content_settings:
            if config.enabled:
                yield category, config

    def check_domain_blocklist(self, domain: str, content_settings: ContentCategorySettings) -> Dict:
        result = {
            'is_blocked': False,
            'categories': [],
            'score': 0
        }

        if not self.data.content_categories or not domain:
            return result

        domain = domain.lower()
        for category in BLOCKLIST_TLD_CATEGORIES:
            if not getattr(content_settings, category).enabled:
                continue
            for tld in self._categories().get(category, {}).get('blockTlds', []):
                if domain.endswith(tld):
                    result.update(is_blocked=True, categories=[category], score=100)
                    return result

        return result

    def analyze_url_keywords(self, url: str, content_settings: ContentCategorySettings) -> Dict:
        result = {
            'matched_categories': [],
            'matches': [],
            'score': 0
        }

        if not self.data.content_categories or not url:
            return result

        url_lower = url.lower()
        total = 0

        for category, config in self._enabled(content_settings):
            if category == 'adult':
                per_match = 80 if config.strictness == 'high' else 60
            else:
                per_match = URL_KEYWORD_SCORES.get(category, 40)

            for keyword in self._keywords_for(category, config):
                if keyword in url_lower:
                    if category not in result['matched_categories']:
                        result['matched_categories'].append(category)
                    result['matches'].append({'category': category, 'keyword': keyword})
                    total += per_match

        result['score'] = min(total, 100)
        return result

    def get_category_for_url(self, url: str, content_settings: ContentCategorySettings) -> Dict:
        result = {
            'categories': [],
            'primary_category': None,
            'should_block': False,
            'score': 0,
            'reason': None
        }

        parsed = parse_url(url)
        if parsed is None:
            return result

        blocklist = self.check_domain_blocklist(parsed.hostname, content_settings)
        if blocklist['is_blocked']:
            result.update(
                categories=blocklist['categories'],
                primary_category=blocklist['categories'][0],
                should_block=True,
                score=blocklist['score'],
                reason=f"Domain blocked for {', '.join(blocklist['categories'])} content",
            )
            return result

        keywords = self.analyze_url_keywords(url, content_settings)
        if keywords['matched_categories']:
            result.update(
                categories=keywords['matched_categories'],
                primary_category=keywords['matched_categories'][0],
                score=keywords['score'],
                should_block=keywords['score'] >= BLOCK_SCORE,
                reason=f"URL contains {', '.join(m['keyword'] for m in keywords['matches'])}",
            )

        return result

    def check_url(self, url: str, content_settings: ContentCategorySettings,
                  safe_search: bool = True) -> Dict:
        """
        Category verdict for a URL and, when adult filtering is on, the
        safe-search rewrite of search engine URLs.
        """
        result = {
            'url': url,
            'is_blocked': False,
            'categories': [],
            'reason': None,
            'score': 0,
            'safe_search_applied': False,
            'modified_url': None
        }

        category = self.get_category_for_url(url, content_settings)
        if category['should_block']:
            result.update(
                is_blocked=True,
                categories=category['categories'],
                reason=category['reason'],
                score=category['score'],
            )

        if safe_search and content_settings.adult.enabled:
            rewrite = self.enforce_safe_search(url)
            if rewrite['modified']:
                result['safe_search_applied'] = True
                result['modified_url'] = rewrite['safe_url']

        return result

    def is_search_engine(self, url: str) -> Dict:
        result = {
            'is_search_engine': False,
            'engine': None,
            'has_query': False
        }

        parsed = parse_url(url)
        if parsed is None or not parsed.hostname:
            return result

        label = registrable_label(parsed.hostname)
        if label in SEARCH_ENGINES:
            params = dict(parse_qsl(parsed.parts.query, keep_blank_values=True))
            result.update(
                is_search_engine=True,
                engine=label,
                has_query=any(p in params for p in SEARCH_QUERY_PARAMS),
            )

        return result

    def enforce_safe_search(self, url: str) -> Dict:
        result = {
            'modified': False,
            'original_url': url,
            'safe_url': url
        }

        if not self.data.content_categories:
            return result

        search = self.is_search_engine(url)
        if not search['is_search_engine'] or not search['has_query']:
            return result

        safe_params = self.data.content_categories['safe_mode_params'].get(search['engine'])
        if not safe_params:
            return result

        parts = urlsplit(url)
        query = parse_qsl(parts.query, keep_blank_values=True)
        if dict(query).get(safe_params['param']) == safe_params['value']:
            return result

        query = [(k, v) for k, v in query if k != safe_params['param']]
        query.append((safe_params['param'], safe_params['value']))

        result['modified'] = True
        result['safe_url'] = urlunsplit(parts._replace(query=urlencode(query)))
        return result

    def analyze_page_content(self, page: PageData, content_settings: ContentCategorySettings) -> Dict:
        """
        Keyword density over title and text. A category counts only after
        PAGE_MATCH_THRESHOLD whole-word occurrences and then scores
        min(count * 10, 50); category scores are summed and capped at 100.
        """
        result = {
            'matched_categories': [],
            'matches': [],
            'score': 0,
            'should_block': False
        }

        if not self.data.content_categories:
            return result

        combined = f"{page.title} {page.text_content}".lower()
        patterns = self.data.content_keyword_patterns
        total = 0

        for category, config in self._enabled(content_settings):
            category_count = 0
            for keyword in self._keywords_for(category, config):
                regex = patterns.get(keyword)
                if regex is None:
                    continue
                count = sum(1 for _ in regex.finditer(combined))
                if count:
                    category_count += count
                    result['matches'].append({'category': category, 'keyword': keyword, 'count': count})

            if category_count >= PAGE_MATCH_THRESHOLD:
                result['matched_categories'].append(category)
                total += min(category_count * 10, 50)

        result['score'] = min(total, 100)
        result['should_block'] = result['score'] >= BLOCK_SCORE
        return result
