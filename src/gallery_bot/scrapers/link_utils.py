"""
Link Utils - Scrapers

Shared attribute-to-URL logic for the static and dynamic scrapers, plus
filesystem-safe naming helpers.
"""

import re
from typing import Iterable, List, Sequence
from urllib.parse import unquote, urljoin, urlparse

UNSAFE_NAME_CHARS = re.compile(r'[^A-Za-z0-9._-]+')
PAGE_SUFFIXES = ('.html', '.htm', '.php', '.aspx', '.asp', '.shtml')
IGNORED_SEGMENTS = {'index', 'index.html', 'index.htm', 'index.php', 'default.aspx'}


def get_origin(url: str) -> str:
    parsed = urlparse(url)
    return f"{parsed.scheme}://{parsed.netloc}"


def resolve_links(values: Iterable[str], page_url: str,
                  filter_patterns: Sequence[str] = ()) -> List[str]:
    """
    Turn raw attribute values into a clean list of absolute URLs.

    Relative values are resolved against the page's origin, values that
    contain any filter pattern (case-sensitive) are dropped, and duplicates
    are removed keeping first-seen order.

    Args:
        values: Attribute values as read from the DOM
        page_url: URL of the page the values came from
        filter_patterns: Substrings marking unwanted variants (thumbnails)

    Returns:
        Ordered list of unique http(s) URLs
    """
    base = get_origin(page_url) + '/'
    seen = set()
    links = []

    for value in values:
        if not value:
            continue
        value = value.strip()
        if not value:
            continue

        if value.startswith(('http://', 'https://')):
            link = value
        else:
            link = urljoin(base, value)

        if urlparse(link).scheme not in ('http', 'https'):
            continue
        if any(pattern in link for pattern in filter_patterns):
            continue
        if link in seen:
            continue

        seen.add(link)
        links.append(link)

    return links


def sanitize_name(name: str, fallback: str = 'file', max_length: int = 80) -> str:
    """
    Clean a string for use as a file or folder name.

    Keeps letters, digits, dots, hyphens and underscores; every other run of
    characters becomes a single underscore.
    """
    if not name:
        return fallback

    cleaned = UNSAFE_NAME_CHARS.sub('_', name)
    cleaned = re.sub(r'_+', '_', cleaned).strip('._-')

    if len(cleaned) > max_length:
        cleaned = cleaned[:max_length].rstrip('._-')

    return cleaned or fallback


def extract_gallery_name(url: str) -> str:
    """
    Derive a folder/archive name from a gallery URL.

    Uses the last meaningful path segment ("/gallery/summer-set/" ->
    "summer-set"), falling back to the domain. Same input, same output.
    """
    parsed = urlparse(url.strip())
    segments = [unquote(s) for s in parsed.path.split('/') if s]

    for segment in reversed(segments):
        if segment.lower() in IGNORED_SEGMENTS:
            continue
        lowered = segment.lower()
        for suffix in PAGE_SUFFIXES:
            if lowered.endswith(suffix):
                segment = segment[:-len(suffix)]
                break
        name = sanitize_name(segment, fallback='')
        if name:
            return name

    host = (parsed.hostname or '').lower()
    if host.startswith('www.'):
        host = host[4:]
    return sanitize_name(host.replace('.', '_'), fallback='gallery')
