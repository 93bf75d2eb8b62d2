import ipaddress
import logging
import re
from typing import List, NamedTuple, Optional
from urllib.parse import SplitResult, urlsplit

import tldextract

logger = logging.getLogger(__name__)

# Bundled public suffix snapshot only, never fetched at request time
_extractor = tldextract.TLDExtract(suffix_list_urls=())

HOST_SCHEMES = {'http', 'https', 'ftp', 'ftps', 'ws', 'wss'}

_SCHEME_WWW_RE = re.compile(r'^(?:[a-z][a-z0-9+.-]*://)?(?:www\.)?', re.IGNORECASE)


class ParsedUrl(NamedTuple):
    url: str
    parts: SplitResult
    hostname: str


def parse_url(url: str) -> Optional[ParsedUrl]:
    """
    Parse a URL into its parts and a lowercase, punycode-decoded hostname.

    Returns None when the URL cannot be analysed: no scheme, a hierarchical
    scheme without a host, or a malformed authority. Opaque schemes such as
    data: and javascript: parse with an empty hostname.
    """
    if not url or not isinstance(url, str):
        return None

    try:
        parts = urlsplit(url.strip())
        hostname = parts.hostname or ''
    except ValueError as e:
        logger.debug(f"Unparsable URL {url!r}: {e}")
        return None

    scheme = parts.scheme.lower()
    if not scheme:
        return None
    if scheme in HOST_SCHEMES and not hostname:
        return None

    return ParsedUrl(url=url, parts=parts, hostname=decode_punycode(hostname))


def extract_hostname(url: str) -> str:
    parsed = parse_url(url)
    return parsed.hostname if parsed else ''


def decode_punycode(hostname: str) -> str:
    """Decode xn-- labels to unicode so lookalike characters become visible"""
    if 'xn--' not in hostname:
        return hostname

    labels = []
    for label in hostname.split('.'):
        if label.startswith('xn--'):
            try:
                label = label.encode('ascii').decode('idna')
            except UnicodeError:
                logger.debug(f"Could not decode punycode label {label}")
        labels.append(label)
    return '.'.join(labels)


def get_tld(hostname: str) -> str:
    """Final label of the hostname with a leading dot, e.g. '.com'"""
    if not hostname or '.' not in hostname:
        return ''
    return '.' + hostname.rstrip('.').rsplit('.', 1)[-1].lower()


def strip_suffix(hostname: str) -> str:
    """
    Hostname without its public suffix: 'login.paypal.co.uk' -> 'login.paypal'.
    Falls back to dropping the last label when the suffix is unknown.
    """
    if not hostname:
        return ''
    if is_ip_address(hostname):
        return hostname

    extracted = _extractor(hostname)
    if extracted.suffix:
        return '.'.join(p for p in (extracted.subdomain, extracted.domain) if p)

    labels = hostname.split('.')
    return '.'.join(labels[:-1]) if len(labels) > 1 else hostname


def registered_domain(hostname: str) -> str:
    extracted = _extractor(hostname)
    if extracted.domain and extracted.suffix:
        return f"{extracted.domain}.{extracted.suffix}".lower()
    return hostname.lower()


def registrable_label(hostname: str) -> str:
    """Second-level label under a known suffix: 'www.paypal.co.uk' -> 'paypal'"""
    extracted = _extractor(hostname)
    return extracted.domain.lower() if extracted.suffix else ''


def domain_tokens(hostname: str) -> List[str]:
    """Labels and hyphen-separated words of the hostname minus its suffix"""
    return [t for t in re.split(r'[.\-]', strip_suffix(hostname)) if t]


def is_ip_address(host: str) -> bool:
    try:
        ipaddress.ip_address(host.strip('[]'))
        return True
    except ValueError:
        return False


def normalize_domain(domain: str) -> str:
    """Whitelist form: lowercase, no scheme, no leading www., no path"""
    domain = (domain or '').strip().lower()
    domain = _SCHEME_WWW_RE.sub('', domain, count=1)
    return domain.split('/')[0]


def matches_domain(domain: str, candidate: str) -> bool:
    """Exact match or subdomain of candidate"""
    return domain == candidate or domain.endswith('.' + candidate)
