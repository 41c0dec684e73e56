import hashlib
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from bs4 import BeautifulSoup
from langdetect import DetectorFactory, detect_langs
from langdetect.lang_detect_exception import LangDetectException

from Futebol.text_preprocessor import LexicalSummary
from Futebol.url_utils import canonicalize_url, get_domain, resolve_link


logger = logging.getLogger(__name__)

DetectorFactory.seed = 0

WHITESPACE = re.compile(r"\s+")
NOISE_TAGS = ["script", "style", "noscript", "iframe", "template", "svg"]
DESCRIPTION_MAX_CHARS = 300


@dataclass(frozen=True)
class Document:
    docId: str
    url: str
    fetchedAt: str
    httpStatus: int
    title: str
    language: Optional[str]
    pageType: str
    contentLength: int
    cleanedContentLength: int
    lexical: LexicalSummary = field(default_factory=LexicalSummary)
    description: str = ""
    source: Optional[str] = None

    def to_dict(self):
        return {
            "docId": self.docId,
            "url": self.url,
            "fetchedAt": self.fetchedAt,
            "httpStatus": self.httpStatus,
            "title": self.title,
            "description": self.description,
            "language": self.language,
            "pageType": self.pageType,
            "source": self.source,
            "contentLength": self.contentLength,
            "cleanedContentLength": self.cleanedContentLength,
            "lexical": self.lexical.to_dict(),
        }


def extract_title_from_soup(soup):
    """
    Extracts a meaningful title from a BeautifulSoup object.
    Prefers <title>, then Open Graph / Twitter card titles, then the first <h1>.
    """
    if soup.title and soup.title.string and soup.title.string.strip():
        return WHITESPACE.sub(" ", soup.title.string).strip()

    for attrs in ({"property": "og:title"}, {"name": "twitter:title"}):
        tag = soup.find("meta", attrs=attrs)
        if tag and tag.get("content"):
            return tag["content"].strip()

    h1 = soup.find("h1")
    return WHITESPACE.sub(" ", h1.get_text(" ")).strip() if h1 else ""


def extract_description_from_soup(soup):
    for attrs in ({"name": "description"}, {"property": "og:description"},
                  {"name": "twitter:description"}):
        tag = soup.find("meta", attrs=attrs)
        if tag and tag.get("content"):
            return tag["content"].strip()[:DESCRIPTION_MAX_CHARS]
    return ""


def detect_language(soup, text):
    html_tag = soup.find("html")
    if html_tag and html_tag.get("lang"):
        return html_tag["lang"].strip().lower()
    if not text:
        return None
    try:
        langs = detect_langs(text[:5000])
    except LangDetectException:
        return None
    return langs[0].lang if langs else None


def clean_text(soup):
    """Visible body text with noise tags removed and whitespace collapsed. Mutates soup."""
    for tag in soup(NOISE_TAGS):
        tag.decompose()
    root = soup.body or soup
    return WHITESPACE.sub(" ", root.get_text(separator=" ")).strip()


def parse_document(html, url, status, page_type, analyzer, source=None):
    """
    Build an immutable Document and its lexical analysis from fetched HTML.

    Args:
        html: raw page HTML
        url: final URL of the page
        status: HTTP status of the response
        page_type: page classification from the adapter table
        analyzer: LexicalAnalyzer
        source: seed category the crawl branch came from, if known

    Returns:
        tuple (Document, LexicalAnalysis)
    """
    soup = BeautifulSoup(html, "html.parser")
    title = extract_title_from_soup(soup)
    description = extract_description_from_soup(soup)
    text = clean_text(soup)
    language = detect_language(soup, text)

    # The title is indexed together with the body
    analysis = analyzer.analyze(f"{title} {text}")

    document = Document(
        docId=hashlib.sha256(html.encode("utf-8", errors="replace")).hexdigest(),
        url=url,
        fetchedAt=datetime.now(timezone.utc).isoformat(),
        httpStatus=status,
        title=title,
        language=language,
        pageType=page_type,
        contentLength=len(html),
        cleanedContentLength=len(text),
        lexical=analysis.metrics,
        description=description,
        source=source or get_domain(url),
    )
    return document, analysis


def extract_links(html, base_url):
    """
    Generic outbound link extraction: absolute http(s) links in page order,
    canonicalized and deduplicated.
    """
    soup = BeautifulSoup(html, "html.parser")
    links = []
    seen = set()
    for a in soup.find_all("a", href=True):
        href = resolve_link(base_url, a["href"])
        if not href or not href.startswith(("http://", "https://")):
            continue
        try:
            canonical = canonicalize_url(href)
        except ValueError:
            continue
        if canonical in seen:
            continue
        seen.add(canonical)
        links.append(canonical)
    return links
