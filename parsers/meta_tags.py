"""
Image lookup from page meta tags.
"""

import logging
from typing import Awaitable, Callable, Optional

from selectolax.parser import HTMLParser

from utils.urls import resolve_url

logger = logging.getLogger(__name__)

# Checked in order; first usable value wins.
IMAGE_META_SELECTORS = [
    'meta[property="og:image"]',
    'meta[property="og:image:url"]',
    'meta[name="twitter:image"]',
    'meta[property="twitter:image"]',
    'meta[name="twitter:image:src"]',
]


def parse_meta_image(html: str, url: str) -> Optional[str]:
    """Absolute image URL from og/twitter meta tags or ``link rel=image_src``."""
    if not html:
        return None
    tree = HTMLParser(html)

    for selector in IMAGE_META_SELECTORS:
        for node in tree.css(selector):
            content = node.attributes.get("content") or ""
            resolved = resolve_url(content, url)
            if resolved:
                return resolved

    link = tree.css_first('link[rel="image_src"]')
    if link is not None:
        return resolve_url(link.attributes.get("href") or "", url)
    return None


class MetaTagImageResolver:
    """
    ImageResolver backed by a page fetcher.

    Never raises: a missing image is not a reason to drop a record.
    """

    def __init__(self, page_fetcher: Callable[[str], Awaitable[str]]):
        self._fetch = page_fetcher

    async def resolve_image(self, url: str) -> Optional[str]:
        try:
            html = await self._fetch(url)
        except Exception as exc:
            logger.debug("Image lookup fetch failed for %s: %s", url, exc)
            return None
        return parse_meta_image(html, url)
