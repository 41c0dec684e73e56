import logging
import threading
import time
import urllib.robotparser
from contextlib import contextmanager

import requests

from Futebol.url_utils import get_host, get_origin


logger = logging.getLogger(__name__)

ROBOTS_TIMEOUT = 5
WAIT_SLICE = 0.05   # how often a waiting worker re-checks the stop flag


class HostRateLimiter:
    """
    Token bucket for a single host.

    The bucket is refilled to `requests_per_second` tokens once per second and at
    most one request holds the host slot at any time, whatever the quota.
    """

    def __init__(self, host, requests_per_second=1, clock=time.monotonic):
        self.host = host
        self.quota = max(1, int(requests_per_second))
        self._clock = clock
        self._tokens = self.quota
        self._last_refill = clock()
        self._busy = False
        self._cond = threading.Condition()
        self.consumed = 0

    def _refill(self):
        now = self._clock()
        if now - self._last_refill >= 1.0:
            self._tokens = self.quota
            self._last_refill = now

    def _seconds_to_refill(self):
        return max(0.0, 1.0 - (self._clock() - self._last_refill))

    def acquire(self, cancel_event=None):
        """
        Block until a token and the host slot are available.

        Returns:
            bool: False if cancel_event was set while waiting
        """
        with self._cond:
            while True:
                if cancel_event is not None and cancel_event.is_set():
                    return False
                self._refill()
                if not self._busy and self._tokens > 0:
                    self._tokens -= 1
                    self._busy = True
                    self.consumed += 1
                    return True
                timeout = WAIT_SLICE if self._busy else min(WAIT_SLICE, self._seconds_to_refill())
                self._cond.wait(timeout=max(timeout, 0.001))

    def release(self):
        with self._cond:
            self._busy = False
            self._cond.notify_all()

    @contextmanager
    def slot(self, cancel_event=None):
        acquired = self.acquire(cancel_event)
        try:
            yield acquired
        finally:
            if acquired:
                self.release()


class PolitenessGate:
    """
    Robots policy per origin plus a rate limiter per host.

    One gate is created per process and shared by all crawl workers. Both
    caches are filled lazily and live for the whole run.
    """

    def __init__(self, user_agent, requests_per_second=1, respect_robots=True, session=None):
        self.user_agent = user_agent
        self.requests_per_second = requests_per_second
        self.respect_robots = respect_robots
        self.session = session or requests.Session()

        self.robot_parsers = {}
        self.robot_lock = threading.Lock()
        self._origin_locks = {}

        self.limiters = {}
        self.limiter_lock = threading.Lock()

    def _origin_lock(self, origin):
        with self.robot_lock:
            if origin not in self._origin_locks:
                self._origin_locks[origin] = threading.Lock()
            return self._origin_locks[origin]

    def _get_robot_parser(self, url):
        """
        Retrieve or fetch the RobotFileParser for the URL's origin.
        robots.txt is fetched at most once per origin; concurrent callers for the
        same origin wait for the first fetch.
        """
        origin = get_origin(url)
        parser = self.robot_parsers.get(origin)
        if parser is not None:
            return parser

        with self._origin_lock(origin):
            parser = self.robot_parsers.get(origin)
            if parser is not None:
                return parser

            scheme, rest = origin.split("://", 1)
            host, port = rest.rsplit(":", 1)
            default_port = "443" if scheme == "https" else "80"
            base = f"{scheme}://{host}" if port == default_port else f"{scheme}://{host}:{port}"
            robots_url = f"{base}/robots.txt"

            rp = urllib.robotparser.RobotFileParser()
            rp.set_url(robots_url)
            try:
                resp = self.session.get(robots_url, headers={"User-Agent": self.user_agent},
                                        timeout=ROBOTS_TIMEOUT)
                if resp.status_code >= 400:
                    rp.allow_all = True
                    logger.info(f"[ROBOTS] {robots_url} returned {resp.status_code}. Allowing all.")
                else:
                    rp.parse(resp.text.splitlines())
                    logger.info(f"[ROBOTS] parsed {robots_url}")
            except requests.exceptions.RequestException as e:
                rp.allow_all = True
                logger.warning(f"[ROBOTS] failed to fetch {robots_url}: {e}. Allowing all.")

            self.robot_parsers[origin] = rp
            return rp

    def is_allowed(self, url):
        if not self.respect_robots:
            return True
        return self._get_robot_parser(url).can_fetch(self.user_agent, url)

    def limiter_for(self, url_or_host):
        host = get_host(url_or_host) if "://" in url_or_host else url_or_host.lower()
        with self.limiter_lock:
            limiter = self.limiters.get(host)
            if limiter is None:
                limiter = HostRateLimiter(host, self.requests_per_second)
                self.limiters[host] = limiter
            return limiter

    def consumed(self, host):
        limiter = self.limiters.get(host)
        return limiter.consumed if limiter else 0
