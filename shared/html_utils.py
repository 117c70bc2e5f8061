"""
HTML utilities for the Snarkifier.

Turns fetched pages into plain text for the prompt and pulls the small bits
of metadata (title, description, outbound links) used for context notes.
Nothing in here raises on malformed HTML; bad markup just yields less text.
"""

import re
from typing import List

from bs4 import BeautifulSoup

# Characters of sanitized page text sent to the model
MAX_PAGE_TEXT_LENGTH = 30000

# Raw <a href> values scanned per page when harvesting context
MAX_SCANNED_HREFS = 30

_SCRIPT_RE = re.compile(r'<script[\s\S]*?</script>', re.I)
_STYLE_RE = re.compile(r'<style[\s\S]*?</style>', re.I)
_TAG_RE = re.compile(r'<[^>]+>')
_WHITESPACE_RE = re.compile(r'\s+')
_HREF_RE = re.compile(r'''<a[^>]+href=["']([^"']+)["'][^>]*>''', re.I)


def strip_html(html: str) -> str:
    """
    Strip scripts, styles and tags from HTML, leaving single-spaced text.

    Examples:
        >>> strip_html('<p>Hello <b>there</b></p><script>x()</script>')
        'Hello there'
    """
    if not html:
        return ''

    text = _SCRIPT_RE.sub(' ', html)
    text = _STYLE_RE.sub(' ', text)
    text = _TAG_RE.sub(' ', text)
    return _WHITESPACE_RE.sub(' ', text).strip()


def extract_anchor_hrefs(html: str, limit: int = MAX_SCANNED_HREFS) -> List[str]:
    """Return up to `limit` quoted anchor href values in document order."""
    hrefs = []
    if not html:
        return hrefs

    for match in _HREF_RE.finditer(html):
        if len(hrefs) >= limit:
            break
        hrefs.append(match.group(1))

    return hrefs


def _meta_content(tag) -> str:
    if not tag:
        return ''
    return (tag.get('content') or '').strip()


def extract_link_metadata(html: str) -> dict:
    """
    Extract the title and description of a linked page.

    og:title wins over <title>, og:description wins over
    <meta name="description">. Missing values come back as ''.
    """
    metadata = {'title': '', 'description': ''}

    if not html:
        return metadata

    soup = BeautifulSoup(html, 'html.parser')

    og_title = soup.find('meta', property='og:title')
    title_tag = soup.find('title')

    metadata['title'] = (
        _meta_content(og_title) or
        (title_tag.get_text(strip=True) if title_tag else '')
    )

    og_desc = soup.find('meta', property='og:description')
    meta_desc = soup.find('meta', attrs={'name': 'description'})

    metadata['description'] = _meta_content(og_desc) or _meta_content(meta_desc)

    return metadata
