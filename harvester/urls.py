"""
URL Canonicalizer
=================
Normalizes asset URLs into the canonical form used as the deduplication key.

- Surrounding quotes / whitespace trimmed, empty input rejected
- ``data:`` URIs passed through (unless disallowed)
- Protocol-relative URLs expanded with the page's scheme
- Relative URLs resolved against the page's base URL
- Optional: http→https upgrade, query removal or key sorting, fragment
  removal, single trailing-slash removal (never the root ``/``)

Invalid input yields ``None``; callers skip the record and carry on.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple
from urllib.parse import parse_qsl, quote, urlencode, urljoin, urlsplit, urlunsplit

logger = logging.getLogger(__name__)

DEFAULT_FORMATS: Tuple[str, ...] = ('jpg', 'jpeg', 'png', 'gif', 'webp', 'svg')

# Path fragments that mark a URL as an asset even without a known extension
ASSET_PATH_PATTERNS = [
    re.compile(r'/images?/', re.I),
    re.compile(r'/img/', re.I),
    re.compile(r'/photos?/', re.I),
    re.compile(r'/gallery/', re.I),
    re.compile(r'/media/', re.I),
    re.compile(r'\.(jpg|jpeg|png|gif|webp|svg)(\?|$)', re.I),
]

_CSS_URL_RE = re.compile(r'url\(\s*([\'"]?)(.*?)\1\s*\)', re.I | re.S)
_HTTP_RE = re.compile(r'^https?:', re.I)
_SCHEME_RE = re.compile(r'^[a-z][a-z0-9+.-]*:', re.I)

# Characters left untouched when re-quoting a path
_PATH_SAFE = "/%:@!$&'()*+,;=~-._"


@dataclass(frozen=True)
class CanonicalizeOptions:
    """Switches for the optional normalization steps."""
    allow_data_urls: bool = True
    force_https: bool = False
    strip_query: bool = False
    sort_query: bool = False
    strip_fragment: bool = False
    strip_trailing_slash: bool = False


def canonicalize(
    raw_url: Optional[str],
    base_url: Optional[str] = None,
    options: Optional[CanonicalizeOptions] = None,
) -> Optional[str]:
    """
    Canonicalize an asset URL.

    Args:
        raw_url:  URL as found in the page (attribute value, CSS token, ...)
        base_url: Page base URL, used for relative and protocol-relative URLs
        options:  Optional normalization steps

    Returns:
        Canonical absolute URL, the untouched ``data:`` URI, or ``None`` if
        the input is empty or malformed.
    """
    if not raw_url or not isinstance(raw_url, str):
        return None
    options = options or CanonicalizeOptions()

    url = raw_url.strip()
    url = re.sub(r'^[\'"]|[\'"]$', '', url).strip()
    if not url:
        return None

    if url[:5].lower() == 'data:':
        return url if options.allow_data_urls else None

    if url.startswith('//'):
        scheme = _base_scheme(base_url)
        url = f"{scheme}:{url}"

    if not _HTTP_RE.match(url):
        if _SCHEME_RE.match(url):
            # javascript:, mailto:, blob:, ftp: ... are never assets we can fetch
            return None
        if not base_url:
            return None
        try:
            url = urljoin(base_url, url)
        except ValueError:
            return None

    try:
        parts = urlsplit(url)
        hostname = parts.hostname
        port = parts.port
    except ValueError:
        logger.debug(f"URL normalization failed: {raw_url!r}")
        return None

    scheme = parts.scheme.lower()
    if scheme not in ('http', 'https') or not hostname:
        return None
    if options.force_https and scheme == 'http':
        scheme = 'https'
        if port == 80:
            port = None

    netloc = hostname.lower()
    if ':' in netloc:
        netloc = f"[{netloc}]"
    if parts.username or parts.password:
        userinfo = parts.username or ''
        if parts.password:
            userinfo += f":{parts.password}"
        netloc = f"{userinfo}@{netloc}"
    default_port = 443 if scheme == 'https' else 80
    if port is not None and port != default_port:
        netloc = f"{netloc}:{port}"

    path = quote(parts.path, safe=_PATH_SAFE) or '/'
    if options.strip_trailing_slash and path != '/' and path.endswith('/'):
        path = path[:-1]

    query = parts.query
    if options.strip_query:
        query = ''
    elif options.sort_query and query:
        params = parse_qsl(query, keep_blank_values=True)
        query = urlencode(sorted(params, key=lambda kv: kv[0]))

    fragment = '' if options.strip_fragment else parts.fragment

    return urlunsplit((scheme, netloc, path, query, fragment))


def _base_scheme(base_url: Optional[str]) -> str:
    if base_url:
        try:
            scheme = urlsplit(base_url).scheme.lower()
        except ValueError:
            scheme = ''
        if scheme in ('http', 'https'):
            return scheme
    return 'https'


def asset_format(url: Optional[str]) -> str:
    """
    Format of an asset URL: the path extension, or the MIME subtype for
    ``data:`` URIs.  ``'unknown'`` when neither is available.
    """
    if not url:
        return 'unknown'
    if url[:5].lower() == 'data:':
        mime = url[5:].split(',', 1)[0].split(';', 1)[0].strip().lower()
        if '/' not in mime:
            return 'unknown'
        subtype = mime.split('/', 1)[1]
        subtype = subtype.split('+', 1)[0]
        return subtype or 'unknown'
    try:
        path = urlsplit(url).path
    except ValueError:
        return 'unknown'
    last = path.rsplit('/', 1)[-1]
    if '.' not in last:
        return 'unknown'
    return last.rsplit('.', 1)[-1].lower() or 'unknown'


def is_likely_asset(url: Optional[str], allowed_formats: Optional[Iterable[str]] = None) -> bool:
    """
    True if ``url`` plausibly points at an image asset.

    - ``data:`` URIs: MIME type starts with ``image/``
    - otherwise: extension in ``allowed_formats``, or a known asset path
      pattern (``/images/``, ``/media/``, ``/gallery/`` ...)
    """
    if not url:
        return False
    if url[:5].lower() == 'data:':
        return url[5:].lstrip().lower().startswith('image/')

    formats = {f.lower() for f in (allowed_formats or DEFAULT_FORMATS)}
    try:
        path = urlsplit(url).path.lower()
    except ValueError:
        return False
    last = path.rsplit('/', 1)[-1]
    if '.' in last and last.rsplit('.', 1)[-1] in formats:
        return True
    return any(pattern.search(url) for pattern in ASSET_PATH_PATTERNS)


def extract_css_urls(css_value: Optional[str]) -> List[str]:
    """Return every ``url(...)`` reference of a CSS value, in order."""
    if not css_value or css_value.strip().lower() == 'none':
        return []
    return [m.group(2).strip() for m in _CSS_URL_RE.finditer(css_value) if m.group(2).strip()]


def parse_srcset(srcset: Optional[str]) -> List[Tuple[str, Optional[str]]]:
    """
    Parse a ``srcset`` value into ``(url, descriptor)`` pairs.

    ``"a.jpg 480w, b.jpg 1080w"`` → ``[("a.jpg", "480w"), ("b.jpg", "1080w")]``
    """
    candidates: List[Tuple[str, Optional[str]]] = []
    if not srcset:
        return candidates

    for entry in srcset.split(','):
        entry = entry.strip()
        if not entry:
            continue
        parts = entry.split()
        url = parts[0]
        descriptor = parts[1].lower() if len(parts) > 1 else None
        candidates.append((url, descriptor))
    return candidates


def best_srcset_url(srcset: Optional[str]) -> Optional[str]:
    """
    Pick the highest-quality candidate of a ``srcset``.

    Widest ``w`` descriptor first, then highest ``x`` density, else the
    first entry.
    """
    candidates = parse_srcset(srcset)
    if not candidates:
        return None

    widths = []
    densities = []
    for url, descriptor in candidates:
        if not descriptor:
            continue
        try:
            if descriptor.endswith('w'):
                widths.append((int(descriptor[:-1]), url))
            elif descriptor.endswith('x'):
                densities.append((float(descriptor[:-1]), url))
        except ValueError:
            logger.debug(f"Invalid srcset descriptor: {descriptor}")

    if widths:
        return max(widths, key=lambda c: c[0])[1]
    if densities:
        return max(densities, key=lambda c: c[0])[1]
    return candidates[0][0]
