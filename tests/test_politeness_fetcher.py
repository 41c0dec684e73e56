import threading
import time

import pytest

from Futebol.fetcher import Fetcher, looks_like_soft_404
from Futebol.politeness import HostRateLimiter, PolitenessGate


UA = "CrawlerBrasileirao/0.1"
PAGE = "<html lang='pt-BR'><head><title>Agenda do Flamengo</title></head><body><p>Jogos</p></body></html>"


class FakeClock:
    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def make_fetcher(fake_session):
    def build(routes, respect_robots=True):
        session = fake_session(routes)
        gate = PolitenessGate(UA, requests_per_second=5, respect_robots=respect_robots, session=session)
        return Fetcher(gate, UA, timeout=1.0, session=session), gate, session
    return build


def test_robots_disallow_blocks_without_spending_quota(make_fetcher, fake_response):
    """A disallowed URL is never requested and consumes no rate-limit token."""
    fetcher, gate, session = make_fetcher({
        "https://example.com.br/robots.txt": fake_response(
            text="User-agent: *\nDisallow: /", headers={"Content-Type": "text/plain"}),
        "https://example.com.br/tabela": fake_response(text=PAGE),
    })

    assert fetcher.fetch_html("https://example.com.br/tabela") is None
    assert gate.consumed("example.com.br") == 0, "limiter was touched for a disallowed URL"
    assert session.calls == ["https://example.com.br/robots.txt"]
    assert fetcher.rejected_count == 1


def test_robots_fetched_once_per_origin(make_fetcher, fake_response):
    fetcher, gate, session = make_fetcher({
        "https://example.com.br/robots.txt": fake_response(
            text="User-agent: *\nDisallow: /privado/", headers={"Content-Type": "text/plain"}),
        "https://example.com.br/a": fake_response(text=PAGE),
        "https://example.com.br/b": fake_response(text=PAGE),
    })
    assert fetcher.fetch_html("https://example.com.br/a") is not None
    assert fetcher.fetch_html("https://example.com.br/b") is not None
    assert fetcher.fetch_html("https://example.com.br/privado/x") is None
    assert session.calls.count("https://example.com.br/robots.txt") == 1
    assert gate.consumed("example.com.br") == 2


def test_missing_or_failing_robots_allows_all(make_fetcher, fake_response, connection_error):
    """robots.txt answering 4xx or failing to load means everything is allowed."""
    fetcher, gate, _ = make_fetcher({
        "https://semrobots.com.br/pagina": fake_response(text=PAGE),
        "https://quebrado.com.br/robots.txt": connection_error,
        "https://quebrado.com.br/pagina": fake_response(text=PAGE),
    })
    assert gate.is_allowed("https://semrobots.com.br/pagina")
    assert gate.is_allowed("https://quebrado.com.br/pagina")
    assert fetcher.fetch_html("https://quebrado.com.br/pagina") is not None


def test_robots_ignored_when_disabled(make_fetcher, fake_response):
    fetcher, gate, session = make_fetcher({
        "https://example.com.br/robots.txt": fake_response(
            text="User-agent: *\nDisallow: /", headers={"Content-Type": "text/plain"}),
        "https://example.com.br/tabela": fake_response(text=PAGE),
    }, respect_robots=False)
    result = fetcher.fetch_html("https://example.com.br/tabela")
    assert result is not None and result.status == 200
    assert "https://example.com.br/robots.txt" not in session.calls


def test_successful_fetch(make_fetcher, fake_response):
    fetcher, _, _ = make_fetcher({
        "https://example.com.br/agenda": fake_response(
            text=PAGE, url="https://www.example.com.br/agenda-2024"),
    }, respect_robots=False)
    result = fetcher.fetch_html("https://example.com.br/agenda")
    assert result.url == "https://example.com.br/agenda"
    assert result.final_url == "https://www.example.com.br/agenda-2024", "redirect target lost"
    assert "Agenda do Flamengo" in result.html
    assert fetcher.error_count == 0


def test_http_errors_and_non_html_are_rejected(make_fetcher, fake_response):
    fetcher, _, _ = make_fetcher({
        "https://example.com.br/sumiu": fake_response(status_code=404, text="nope"),
        "https://example.com.br/quebrou": fake_response(status_code=503, text="down"),
        "https://example.com.br/dados.json": fake_response(
            text="{}", headers={"Content-Type": "application/json"}),
    }, respect_robots=False)
    for url in ["https://example.com.br/sumiu", "https://example.com.br/quebrou",
                "https://example.com.br/dados.json"]:
        assert fetcher.fetch_html(url) is None, f"{url} should be rejected"
    assert fetcher.rejected_count == 3
    assert fetcher.error_count == 0


def test_network_error_and_malformed_url_are_counted(make_fetcher, connection_error):
    """Transport failures never raise; they are counted as errors."""
    fetcher, _, _ = make_fetcher({"https://fora.com.br/": connection_error}, respect_robots=False)
    assert fetcher.fetch_html("https://fora.com.br/") is None
    assert fetcher.fetch_html("nao-e-url") is None
    assert fetcher.error_count == 2


def test_soft_404_detection(make_fetcher, fake_response):
    soft = "<html><head><title>Página não encontrada | ge</title></head><body>...</body></html>"
    heading = "<html><body><h1>Erro 404</h1><p>Ops</p></body></html>"
    assert looks_like_soft_404(soft)
    assert looks_like_soft_404(heading)
    assert not looks_like_soft_404(PAGE)
    # a "not found" phrase in the body text alone is not a soft 404
    assert not looks_like_soft_404("<html><title>Notícia</title><body>jogador not found in team</body></html>")

    fetcher, _, _ = make_fetcher({"https://example.com.br/x": fake_response(text=soft)},
                                 respect_robots=False)
    assert fetcher.fetch_html("https://example.com.br/x") is None


def test_cancelled_fetch_returns_none(make_fetcher, fake_response):
    fetcher, gate, session = make_fetcher({"https://example.com.br/x": fake_response(text=PAGE)},
                                          respect_robots=False)
    cancel = threading.Event()
    cancel.set()
    assert fetcher.fetch_html("https://example.com.br/x", cancel_event=cancel) is None
    assert session.calls == []
    assert gate.consumed("example.com.br") == 0


class SlowSession:
    """Answers every GET after a fixed delay."""

    def __init__(self, delay, fake_response):
        self.delay = delay
        self.fake_response = fake_response
        self.calls = []

    def get(self, url, **kwargs):
        self.calls.append(url)
        time.sleep(self.delay)
        return self.fake_response(text=PAGE, url=url)


def test_stop_aborts_request_in_flight(fake_response):
    """Setting the cancel event returns promptly even while the GET is blocked."""
    session = SlowSession(2.0, fake_response)
    gate = PolitenessGate(UA, requests_per_second=5, respect_robots=False, session=session)
    fetcher = Fetcher(gate, UA, timeout=15.0, session=session)

    cancel = threading.Event()
    timer = threading.Timer(0.1, cancel.set)
    timer.start()
    started = time.monotonic()
    assert fetcher.fetch_html("https://example.com.br/lento", cancel_event=cancel) is None
    elapsed = time.monotonic() - started
    timer.join()

    assert elapsed < 1.0, f"fetch took {elapsed:.2f}s after cancel"
    assert session.calls == ["https://example.com.br/lento"]
    assert fetcher.error_count == 0
    assert gate.consumed("example.com.br") == 1


def test_limiter_quota_refills_each_second():
    clock = FakeClock()
    limiter = HostRateLimiter("example.com.br", requests_per_second=2, clock=clock)
    for _ in range(2):
        assert limiter.acquire()
        limiter.release()

    cancel = threading.Event()
    timer = threading.Timer(0.2, cancel.set)
    timer.start()
    assert not limiter.acquire(cancel), "quota exhausted but acquire succeeded"
    timer.join()

    clock.now = 1.0
    assert limiter.acquire()
    limiter.release()
    assert limiter.consumed == 3


def test_limiter_allows_one_request_at_a_time():
    """A second caller waits until the slot holder releases, even with quota left."""
    limiter = HostRateLimiter("example.com.br", requests_per_second=5, clock=FakeClock())
    assert limiter.acquire()

    result = {}
    waiter = threading.Thread(target=lambda: result.setdefault("acquired", limiter.acquire()))
    waiter.start()
    time.sleep(0.2)
    assert waiter.is_alive(), "second request entered while the slot was held"

    limiter.release()
    waiter.join(timeout=2)
    assert result.get("acquired") is True
    limiter.release()


def test_limiter_per_host():
    gate = PolitenessGate(UA, requests_per_second=1, respect_robots=False)
    assert gate.limiter_for("https://ge.globo.com/a") is gate.limiter_for("ge.globo.com")
    assert gate.limiter_for("https://ge.globo.com/a") is not gate.limiter_for("https://lance.com.br/")
