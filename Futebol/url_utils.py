import re
from urllib.parse import urlsplit, urlunsplit, parse_qsl, urlencode, urljoin, urldefrag


TRACKING_PARAM = re.compile(r'^utm_|^gclid$|^fbclid$', re.IGNORECASE)

BLOCKED_HOSTS = [re.compile(p, re.IGNORECASE) for p in (
    r'doubleclick\.',
    r'google(adservices|analytics|syndication)\.',
    r'googletagmanager\.',
    r'googletagservices\.',
    r'(^|\.)facebook\.',
    r'(^|\.)instagram\.',
    r'tiktokcdn\.',
    r'taboola\.',
    r'outbrain\.',
    r'scorecardresearch\.',
    r'quantserve\.',
    r'zedo\.',
    r'advertising\.com',
    r'(^|\.)twitter\.',
    r'(^|\.)pinterest\.',
    r'(^|\.)snapchat\.',
    r'bet365\.',
    r'1xbet\.',
    r'betano\.',
    r'pixbet\.',
    r'leonbet\.',
)]

BLOCKED_PATHS = [re.compile(p, re.IGNORECASE) for p in (
    r'/ads?/',
    r'/advertising/',
    r'/sponsored/',
    r'/promo/',
    r'/tracking/',
    r'/analytics/',
    r'/pixel/',
    r'/tag/manager/',
    r'/consent/',
)]

BLOCKED_EXTENSIONS = ('.gif', '.jpg', '.jpeg', '.png', '.svg', '.ico', '.webp',
                      '.mp4', '.mp3', '.avi', '.mov', '.pdf', '.zip')

DEFAULT_PORTS = {'http': 80, 'https': 443}


def canonicalize_url(url):
    """
    Normalize a URL into the key used for crawl deduplication.

    Lowercases scheme and host, drops default ports and the fragment, removes
    tracking parameters, sorts the remaining query parameters and strips a
    trailing slash (except for the root path). Applying it twice gives the same
    result as applying it once.

    Raises:
        ValueError: if the URL is not an absolute http(s) URL.
    """
    parts = urlsplit(url.strip())
    scheme = parts.scheme.lower()
    if scheme not in ('http', 'https') or not parts.hostname:
        raise ValueError(f"not an absolute http(s) URL: {url!r}")

    host = parts.hostname.lower()
    port = parts.port
    netloc = host if port is None or port == DEFAULT_PORTS[scheme] else f"{host}:{port}"

    path = parts.path or '/'
    if len(path) > 1 and path.endswith('/'):
        path = path.rstrip('/') or '/'

    params = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True)
              if not TRACKING_PARAM.search(k)]
    query = urlencode(sorted(params))

    return urlunsplit((scheme, netloc, path, query, ''))


def get_host(url):
    host = urlsplit(url).hostname or ''
    return host.lower()


def get_domain(url):
    """Host without a leading 'www.'."""
    host = get_host(url)
    return host[4:] if host.startswith('www.') else host


def get_origin(url):
    parts = urlsplit(url)
    scheme = parts.scheme.lower()
    host = (parts.hostname or '').lower()
    port = parts.port or DEFAULT_PORTS.get(scheme)
    return f"{scheme}://{host}:{port}"


def is_http_url(url):
    try:
        parts = urlsplit(url)
    except ValueError:
        return False
    return parts.scheme in ('http', 'https') and bool(parts.netloc)


def is_blocked_url(url):
    """True when the URL matches the static deny-list or cannot be parsed."""
    try:
        parts = urlsplit(url)
        host = (parts.hostname or '').lower()
    except ValueError:
        return True
    if not host:
        return True

    if any(pattern.search(host) for pattern in BLOCKED_HOSTS):
        return True

    path = parts.path.lower()
    if any(pattern.search(path) for pattern in BLOCKED_PATHS):
        return True

    return path.endswith(BLOCKED_EXTENSIONS)


def resolve_link(base_url, href):
    """Absolute, fragment-free link or None for non-navigational hrefs."""
    href = (href or '').strip()
    if not href or href.startswith(('javascript:', 'mailto:', 'tel:', '#')):
        return None
    try:
        absolute, _ = urldefrag(urljoin(base_url, href))
    except ValueError:
        return None
    return absolute
