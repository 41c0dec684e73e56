import logging
import re
import threading
from dataclasses import dataclass

import requests

from Futebol.url_utils import is_http_url


logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "Accept": "text/html,application/xhtml+xml",
    "Accept-Language": "pt-BR,pt;q=0.9,en-US;q=0.8,en;q=0.7",
    "Accept-Encoding": "gzip, deflate",
}

SOFT_404_PHRASES = (
    "erro 404",
    "página não encontrada",
    "pagina não encontrada",
    "pagina nao encontrada",
    "not found",
    "404 -",
    "404 –",
    "error 404",
)

MAX_BODY_BYTES = 5 * 1024 * 1024
CHUNK_BYTES = 16 * 1024
CANCEL_POLL_SECONDS = 0.05

TITLE_RE = re.compile(r"<title[^>]*>(.*?)</title>", re.IGNORECASE | re.DOTALL)
H1_RE = re.compile(r"<h1[^>]*>(.*?)</h1>", re.IGNORECASE | re.DOTALL)
TAG_RE = re.compile(r"<[^>]+>")


@dataclass
class FetchResult:
    url: str
    final_url: str
    status: int
    html: str
    content_type: str = ""


def looks_like_soft_404(html):
    """
    True when the page title or main heading says "not found" even though the
    server answered 2xx.
    """
    fragments = TITLE_RE.findall(html[:200000]) + H1_RE.findall(html[:200000])[:1]
    for fragment in fragments:
        text = TAG_RE.sub(" ", fragment).lower()
        if any(phrase in text for phrase in SOFT_404_PHRASES):
            return True
    return False


class Fetcher:
    """
    Single-GET page fetcher gated by a PolitenessGate.

    fetch_html() never raises for transport problems: errors, timeouts and
    malformed URLs are logged, counted in `error_count` and turned into None.
    """

    def __init__(self, gate, user_agent, timeout=15.0, session=None):
        self.gate = gate
        self.user_agent = user_agent
        self.timeout = timeout
        self.session = session or requests.Session()
        self.headers = dict(DEFAULT_HEADERS, **{"User-Agent": user_agent})

        self._stats_lock = threading.Lock()
        self.error_count = 0
        self.rejected_count = 0

    def _count(self, attr):
        with self._stats_lock:
            setattr(self, attr, getattr(self, attr) + 1)

    def fetch_html(self, url, cancel_event=None):
        """
        Fetch a page through the politeness gate.

        Args:
            url: absolute http(s) URL
            cancel_event: threading.Event; when set the fetch gives up at its next wait
                point and returns None

        Returns:
            FetchResult or None
        """
        if not is_http_url(url):
            logger.warning(f"[FETCH] malformed URL skipped: {url}")
            self._count("error_count")
            return None

        try:
            allowed = self.gate.is_allowed(url)
        except ValueError as e:
            logger.warning(f"[FETCH] could not evaluate robots for {url}: {e}")
            self._count("error_count")
            return None
        if not allowed:
            logger.debug(f"[ROBOTS] disallowed: {url}")
            self._count("rejected_count")
            return None

        limiter = self.gate.limiter_for(url)
        with limiter.slot(cancel_event) as acquired:
            if not acquired:
                logger.debug(f"[FETCH] cancelled before request: {url}")
                return None
            return self._get(url, cancel_event)

    def _send(self, url, cancel_event):
        """
        Issue the GET on a helper thread and wait for it in short slices so a
        set cancel_event abandons the request without waiting out the timeout.

        Returns:
            requests.Response, or None when cancelled
        """
        if cancel_event is None:
            return self.session.get(url, headers=self.headers, timeout=self.timeout,
                                    allow_redirects=True, stream=True)

        outcome = {}
        done = threading.Event()
        abandoned = threading.Event()

        def request():
            try:
                outcome["response"] = self.session.get(url, headers=self.headers, timeout=self.timeout,
                                                       allow_redirects=True, stream=True)
            except Exception as e:
                outcome["error"] = e
            finally:
                done.set()
                if abandoned.is_set() and "response" in outcome:
                    outcome["response"].close()

        threading.Thread(target=request, name="fetch-request", daemon=True).start()
        while not done.wait(CANCEL_POLL_SECONDS):
            if cancel_event.is_set():
                abandoned.set()
                # the request may have finished between the wait and the flag
                if done.is_set() and "response" in outcome:
                    outcome["response"].close()
                return None

        if "error" in outcome:
            raise outcome["error"]
        return outcome["response"]

    def _get(self, url, cancel_event):
        try:
            response = self._send(url, cancel_event)
        except requests.exceptions.RequestException as e:
            logger.warning(f"[FETCH] {url}: {e}")
            self._count("error_count")
            return None
        if response is None:
            logger.info(f"[FETCH] cancelled during request: {url}")
            return None

        try:
            if response.status_code >= 400:
                logger.info(f"[FETCH] {url} returned HTTP {response.status_code}")
                self._count("rejected_count")
                return None

            content_type = response.headers.get("Content-Type", "")
            if content_type and "html" not in content_type.lower():
                logger.info(f"[FETCH] {url} is not HTML ({content_type})")
                self._count("rejected_count")
                return None

            body = bytearray()
            for chunk in response.iter_content(chunk_size=CHUNK_BYTES):
                if cancel_event is not None and cancel_event.is_set():
                    logger.info(f"[FETCH] cancelled while reading {url}")
                    return None
                body.extend(chunk)
                if len(body) >= MAX_BODY_BYTES:
                    logger.info(f"[FETCH] {url} truncated at {MAX_BODY_BYTES} bytes")
                    break

            # requests assumes ISO-8859-1 for text/* without a charset
            encoding = (response.encoding or "utf-8") if "charset" in content_type.lower() else "utf-8"
            try:
                html = body.decode(encoding, errors="replace")
            except LookupError:
                html = body.decode("utf-8", errors="replace")
        except requests.exceptions.RequestException as e:
            logger.warning(f"[FETCH] {url}: error while reading body: {e}")
            self._count("error_count")
            return None
        finally:
            response.close()

        if looks_like_soft_404(html):
            logger.info(f"[SOFT404] {url}")
            self._count("rejected_count")
            return None

        return FetchResult(
            url=url,
            final_url=response.url or url,
            status=response.status_code,
            html=html,
            content_type=content_type,
        )
