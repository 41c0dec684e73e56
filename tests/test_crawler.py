import json
import os
import pickle

import pytest

from Futebol.adapters import CRAWL_PAGE_TYPE_BOOSTS
from Futebol.crawler import INITIAL_PRIORITY, CrawlDriver, child_priority
from Futebol.fetcher import FetchResult
from Futebol.frontier import CrawlTask, Frontier
from Futebol.indexer import InvertedIndexBuilder
from Futebol.pipeline import DocumentPipeline


GE_TEAM_PAGE = "https://ge.globo.com/futebol/times/flamengo/"
GE_HTML = """
<html lang="pt-BR"><head><title>Flamengo | ge</title></head><body>
<p>Agenda do Flamengo no Brasileirão</p>
<a href="/futebol/brasileirao-serie-a/">Tabela</a>
<a href="/futebol/brasileirao-serie-a/rodada/12">Rodada 12</a>
<a href="/futebol/times/flamengo/agenda-de-jogos-do-flamengo/">Agenda</a>
<a href="https://www.facebook.com/ge">Facebook</a>
<a href="https://ad.doubleclick.net/click">Anúncio</a>
</body></html>
"""

SITE = {
    "https://example.com.br/": '<html lang="pt"><title>Inicio</title><body>Futebol brasileiro'
                               '<a href="/agenda">agenda</a><a href="/tabela">tabela</a></body></html>',
    "https://example.com.br/agenda": '<html lang="pt"><title>Agenda</title><body>Jogos da rodada'
                                     '<a href="/">home</a><a href="/tabela">tabela</a>'
                                     '<a href="/longe">longe</a></body></html>',
    "https://example.com.br/tabela": '<html lang="pt"><title>Tabela</title><body>Classificacao'
                                     '</body></html>',
}


class StubFetcher:
    """Serves pages from a dict; unknown URLs behave like failed fetches."""

    def __init__(self, pages, fail_with=None):
        self.pages = pages
        self.fail_with = fail_with
        self.error_count = 0
        self.requested = []

    def fetch_html(self, url, cancel_event=None):
        self.requested.append(url)
        if self.fail_with is not None:
            raise self.fail_with
        html = self.pages.get(url)
        if html is None:
            self.error_count += 1
            return None
        return FetchResult(url=url, final_url=url, status=200, html=html,
                           content_type="text/html")


class RecordingPipeline:
    def __init__(self):
        self.documents = []

    def submit(self, document, analysis):
        self.documents.append(document)


class FakeClock:
    """Returns 0 on the first call and a large value afterwards."""

    def __init__(self):
        self.calls = 0

    def __call__(self):
        self.calls += 1
        return 0.0 if self.calls == 1 else 1000.0


@pytest.fixture
def make_driver(crawler_config, index_config, analyzer):
    def build(pages, frontier=None, fetcher=None, clock=None, **overrides):
        for key, value in overrides.items():
            setattr(crawler_config, key, value)
        frontier = frontier or Frontier(strategy=crawler_config.frontier_strategy,
                                        max_depth=crawler_config.max_depth)
        builder = InvertedIndexBuilder(index_config)
        pipeline = DocumentPipeline(crawler_config.documents_path, builder)
        kwargs = {"clock": clock} if clock else {}
        driver = CrawlDriver(crawler_config, frontier, fetcher or StubFetcher(pages), pipeline,
                             analyzer, **kwargs)
        return driver
    return build


def test_child_priority_never_increases():
    """Children never outrank their parent, whatever their page type."""
    for parent in [100, 50, 3, 0]:
        for page_type in CRAWL_PAGE_TYPE_BOOSTS:
            assert child_priority(parent, page_type) <= parent
            assert child_priority(parent, page_type) < parent, "boost must stay below the decay"
    assert child_priority(100, "agenda") > child_priority(100, "outro")


def test_adapter_links_are_whitelisted(crawler_config, analyzer):
    """The ge team page yields exactly the three whitelisted links as depth-1 tasks."""
    frontier = Frontier(max_depth=1)
    driver = CrawlDriver(crawler_config, frontier, StubFetcher({GE_TEAM_PAGE: GE_HTML}),
                         RecordingPipeline(), analyzer)
    driver.seed([GE_TEAM_PAGE])

    added = driver.process_task(frontier.pop())
    assert added == 3
    assert len(frontier) == 3

    children = []
    while not frontier.is_empty():
        children.append(frontier.pop())
    assert sorted(t.url for t in children) == [
        "https://ge.globo.com/futebol/brasileirao-serie-a",
        "https://ge.globo.com/futebol/brasileirao-serie-a/rodada/12",
        "https://ge.globo.com/futebol/times/flamengo/agenda-de-jogos-do-flamengo",
    ]
    for child in children:
        assert child.depth == 1
        assert child.priority < INITIAL_PRIORITY
        assert child.source_page_type == "outro"
    assert driver.source_breakdown["ge.globo.com"] == 1


def test_no_links_followed_at_max_depth(crawler_config, analyzer):
    pipeline = RecordingPipeline()
    frontier = Frontier(max_depth=1)
    driver = CrawlDriver(crawler_config, frontier, StubFetcher({GE_TEAM_PAGE: GE_HTML}),
                         pipeline, analyzer)

    task = CrawlTask(url=GE_TEAM_PAGE, depth=1, priority=50)
    assert driver.process_task(task) == 0
    assert len(frontier) == 0
    assert len(pipeline.documents) == 1, "the page itself must still be stored"


def test_generic_links_are_capped(crawler_config, analyzer):
    html = "<html><body>" + "".join(f'<a href="/p{i}">p{i}</a>' for i in range(10)) + "</body></html>"
    crawler_config.fallback_link_limit = 4
    driver = CrawlDriver(crawler_config, Frontier(), StubFetcher({}), RecordingPipeline(), analyzer)
    links = driver.discover_links(html, "https://blog.com.br/")
    assert links == [f"https://blog.com.br/p{i}" for i in range(4)]


def test_full_crawl_until_frontier_is_empty(make_driver, crawler_config, index_config):
    """A small site is crawled once per page and every artifact is written."""
    driver = make_driver(SITE, max_depth=1, max_pages=50)
    driver.seed([("https://example.com.br/", "portal")])
    metrics = driver.run()

    assert metrics.stop_reason == "frontier_empty"
    # /longe is depth 2 and never queued
    assert sorted(driver.fetcher.requested) == sorted(SITE)
    assert metrics.pages_processed == 3
    assert metrics.documents_created == 3
    assert metrics.source_breakdown == {"example.com.br": 3}

    with open(crawler_config.documents_path, encoding="utf-8") as f:
        records = [json.loads(line) for line in f]
    assert len(records) == 3
    assert {r["source"] for r in records} == {"portal"}

    with open(crawler_config.metrics_path, encoding="utf-8") as f:
        saved = json.load(f)
    assert saved["stopReason"] == "frontier_empty"
    assert saved["pagesProcessed"] == 3

    assert os.path.exists(index_config.index_path(10))
    assert os.path.exists(index_config.metadata_path)
    with open(crawler_config.frontier_path, "rb") as f:
        snapshot = pickle.load(f)
    assert snapshot["queue"] == []
    assert len(snapshot["visited"]) == 3


def test_page_budget_stops_the_crawl(make_driver):
    driver = make_driver(SITE, max_pages=1)
    driver.seed(["https://example.com.br/"])
    metrics = driver.run()
    assert metrics.stop_reason == "max_pages"
    assert metrics.pages_processed == 1
    assert len(driver.fetcher.requested) == 1


def test_runtime_budget_stops_the_crawl(make_driver):
    driver = make_driver(SITE, clock=FakeClock(), max_runtime_ms=1000)
    driver.seed(["https://example.com.br/"])
    metrics = driver.run()
    assert metrics.stop_reason == "runtime_limit"
    assert metrics.pages_processed == 0


def test_failed_fetches_and_task_errors_are_counted(make_driver):
    """A task that raises is logged and counted; the crawl still ends normally."""
    driver = make_driver({}, fetcher=StubFetcher({}, fail_with=RuntimeError("boom")))
    driver.seed(["https://example.com.br/"])
    metrics = driver.run()
    assert metrics.stop_reason == "frontier_empty"
    assert metrics.error_count == 1
    assert metrics.documents_created == 0

    missing = make_driver({})
    missing.seed(["https://example.com.br/nada"])
    assert missing.run().error_count == 1


def test_stop_keeps_first_reason(make_driver):
    driver = make_driver(SITE)
    driver.stop("interrupted")
    driver.stop("max_pages")
    assert driver.stop_reason == "interrupted"
    assert driver.stop_event.is_set()


def test_seed_skips_duplicates_and_blocked(make_driver):
    driver = make_driver(SITE)
    added = driver.seed([
        "https://example.com.br/",
        "https://example.com.br/#topo",
        "https://www.facebook.com/ge",
    ])
    assert added == 1
    task = driver.frontier.pop()
    assert task.depth == 0 and task.priority == INITIAL_PRIORITY
