import hashlib

import pytest
import requests

from Futebol.config import CrawlerConfig, IndexConfig
from Futebol.extractor import Document
from Futebol.text_preprocessor import LexicalAnalyzer


class FakeResponse:
    def __init__(self, status_code=200, text="", headers=None, url=None, encoding="utf-8"):
        self.status_code = status_code
        self.text = text
        self.headers = headers if headers is not None else {"Content-Type": "text/html; charset=utf-8"}
        self.url = url
        self.encoding = encoding
        self.closed = False

    def iter_content(self, chunk_size=1):
        body = self.text.encode("utf-8")
        for i in range(0, len(body), chunk_size):
            yield body[i:i + chunk_size]

    def close(self):
        self.closed = True


class FakeSession:
    """Routes GET requests to canned responses; an Exception value is raised instead."""

    def __init__(self, routes=None, default=None):
        self.routes = dict(routes or {})
        self.default = default
        self.calls = []

    def get(self, url, **kwargs):
        self.calls.append(url)
        response = self.routes.get(url, self.default)
        if response is None:
            return FakeResponse(status_code=404, text="", url=url)
        if isinstance(response, Exception):
            raise response
        if response.url is None:
            response.url = url
        return response


@pytest.fixture
def fake_session():
    return FakeSession


@pytest.fixture
def fake_response():
    return FakeResponse


@pytest.fixture
def connection_error():
    return requests.exceptions.ConnectionError("connection refused")


@pytest.fixture(scope="module")
def analyzer():
    return LexicalAnalyzer(min_token_length=3, top_terms_limit=10)


@pytest.fixture
def make_document(analyzer):
    def build(text, url, title="", page_type="outro", description=""):
        analysis = analyzer.analyze(text)
        document = Document(
            docId=hashlib.sha256(f"{url}\n{text}".encode("utf-8")).hexdigest(),
            url=url,
            fetchedAt="2024-05-01T12:00:00+00:00",
            httpStatus=200,
            title=title,
            language="pt",
            pageType=page_type,
            contentLength=len(text),
            cleanedContentLength=len(text),
            lexical=analysis.metrics,
            description=description,
        )
        return document, analysis
    return build


@pytest.fixture
def index_config(tmp_path):
    return IndexConfig(chunk_sizes=[10], output_dir=str(tmp_path / "index"))


@pytest.fixture
def crawler_config(tmp_path):
    return CrawlerConfig(
        concurrency=2,
        max_depth=1,
        max_pages=5,
        respect_robots=False,
        data_dir=str(tmp_path / "data"),
    )
