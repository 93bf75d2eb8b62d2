import re
import time
import logging
from typing import Dict, List, Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from threatlens.config import settings
from threatlens.core.domain_utils import extract_hostname
from threatlens.schemas import PageData

logger = logging.getLogger(__name__)

MODAL_CLASS_RE = re.compile(r'modal|popup', re.IGNORECASE)


class PageCollector:
    """
    Build PageData from raw HTML, mirroring what the in-browser collector
    reports: forms and inputs, hidden fields, images, visible text and a
    few login-related page traits.
    """

    def collect(self, url: str, html: str, timestamp: Optional[int] = None) -> PageData:
        soup = BeautifulSoup(html or '', 'lxml')

        forms, hidden_fields = self._extract_forms(soup, url)
        right_click_disabled = self._is_right_click_disabled(soup)

        # Text extraction strips <script>, so it runs last
        return PageData(
            url=url,
            domain=extract_hostname(url) or None,
            title=self._extract_title(soup),
            forms=forms,
            images=self._extract_images(soup, url),
            hidden_fields=hidden_fields,
            has_popup_login=self._has_popup_login(soup),
            has_iframe_login=self._has_iframe_login(soup),
            right_click_disabled=right_click_disabled,
            text_content=self._extract_text(soup),
            timestamp=timestamp if timestamp is not None else int(time.time() * 1000),
        )

    def _extract_title(self, soup: BeautifulSoup) -> str:
        if soup.title and soup.title.string:
            return soup.title.string.strip()
        return ''

    def _extract_text(self, soup: BeautifulSoup) -> str:
        body = soup.body or soup
        for tag in body.find_all(['script', 'style', 'noscript']):
            tag.extract()
        text = body.get_text(separator=' ')
        text = re.sub(r'\s+', ' ', text).strip()
        return text[:settings.MAX_TEXT_LENGTH]

    def _extract_forms(self, soup: BeautifulSoup, url: str):
        forms: List[Dict] = []
        hidden_fields: List[Dict] = []

        for form in soup.find_all('form'):
            action = (form.get('action') or '').strip()
            if action and action != '#':
                action = urljoin(url, action)

            inputs = []
            for field in form.find_all('input'):
                field_type = (field.get('type') or 'text').lower()
                inputs.append({
                    'type': field_type,
                    'name': field.get('name', ''),
                    'id': field.get('id', ''),
                    'placeholder': field.get('placeholder', '')
                })
                if field_type == 'hidden':
                    hidden_fields.append({'name': field.get('name', ''), 'id': field.get('id', '')})

            forms.append({
                'action': action,
                'method': (form.get('method') or 'GET').upper(),
                'inputs': inputs
            })

        return forms, hidden_fields

    def _extract_images(self, soup: BeautifulSoup, url: str) -> List[Dict]:
        images = []
        for img in soup.find_all('img', limit=settings.MAX_IMAGES):
            src = img.get('src') or ''
            images.append({
                'src': urljoin(url, src) if src else '',
                'alt': img.get('alt') or ''
            })
        return images

    @staticmethod
    def _has_password_input(node) -> bool:
        return node.find('input', attrs={'type': re.compile(r'^password$', re.IGNORECASE)}) is not None

    def _has_popup_login(self, soup: BeautifulSoup) -> bool:
        containers = soup.find_all(attrs={'role': 'dialog'}) + soup.find_all(class_=MODAL_CLASS_RE)
        return any(self._has_password_input(c) for c in containers)

    def _has_iframe_login(self, soup: BeautifulSoup) -> bool:
        # Only inline documents are inspectable; remote frames are cross-origin
        for iframe in soup.find_all('iframe'):
            srcdoc = iframe.get('srcdoc')
            if srcdoc and self._has_password_input(BeautifulSoup(srcdoc, 'lxml')):
                return True
        return False

    def _is_right_click_disabled(self, soup: BeautifulSoup) -> bool:
        for tag in (soup.body, soup.html):
            if tag is not None and 'return false' in (tag.get('oncontextmenu') or ''):
                return True

        for script in soup.find_all('script'):
            content = script.string or ''
            if 'contextmenu' in content and 'preventDefault' in content:
                return True

        return False
