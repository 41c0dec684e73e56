import logging
import re
from dataclasses import dataclass, field
from typing import List, Pattern, Tuple

from bs4 import BeautifulSoup

from Futebol.url_utils import canonicalize_url, resolve_link


logger = logging.getLogger(__name__)

PAGE_TYPES = ("agenda", "onde-assistir", "match", "team", "noticia", "outro")

# Added to a child's priority on top of the decay; kept below PRIORITY_DECAY so
# priority never grows along a discovery chain.
CRAWL_PAGE_TYPE_BOOSTS = {
    "agenda": 4,
    "onde-assistir": 3,
    "match": 3,
    "team": 2,
    "noticia": 1,
    "outro": 0,
}


def classify_page_type(url):
    lower = url.lower()
    if "onde-assistir" in lower:
        return "onde-assistir"
    if "/noticia" in lower or "/noticias/" in lower:
        return "noticia"
    if any(key in lower for key in ("agenda", "calend", "tabela", "rodada")):
        return "agenda"
    return "outro"


def _compile(*patterns):
    return [re.compile(p, re.IGNORECASE) for p in patterns]


@dataclass
class SiteAdapter:
    """
    A site-specific link policy, selected by matching `url_pattern` against the
    page URL. `link_patterns` whitelist the outbound links worth following and
    `page_types` refine the generic classification.
    """
    name: str
    url_pattern: Pattern
    link_patterns: List[Pattern]
    page_types: List[Tuple[Pattern, str]] = field(default_factory=list)

    def matches(self, url):
        return bool(self.url_pattern.search(url))

    def classify(self, url):
        for pattern, page_type in self.page_types:
            if pattern.search(url):
                return page_type
        return classify_page_type(url)

    def extract(self, html, url):
        """
        Returns:
            dict with "matches" (structured records, not produced here) and
            "nextLinks" (canonical whitelisted links, page order, no duplicates)
        """
        soup = BeautifulSoup(html, "html.parser")
        try:
            own = canonicalize_url(url)
        except ValueError:
            own = None

        next_links = []
        seen = set()
        for a in soup.find_all("a", href=True):
            href = resolve_link(url, a["href"])
            if not href or not any(p.search(href) for p in self.link_patterns):
                continue
            try:
                canonical = canonicalize_url(href)
            except ValueError:
                continue
            if canonical == own or canonical in seen:
                continue
            seen.add(canonical)
            next_links.append(canonical)

        return {"matches": [], "nextLinks": next_links}


GENERIC_NEWS_DOMAINS = (
    "trivela.com.br", "placar.com.br", "superesportes.com.br", "esportelandia.com.br",
    "futebolnaveia.com.br", "sofascore.com", "flashscore.com.br", "footystats.org",
    "torcedores.com", "goal.com", "terra.com.br", "gazetaesportiva.com",
    "meutimao.com.br", "colunadofla.com", "netvasco.com.br", "fogaonet.com",
    "gremistas.net", "colorados.com.br",
)


def _domain_pattern(domains):
    alternatives = "|".join(re.escape(d) for d in domains)
    return re.compile(rf"^https?://(www\.)?({alternatives})/", re.IGNORECASE)


DEFAULT_ADAPTERS = [
    SiteAdapter(
        name="ge-team-agenda",
        url_pattern=re.compile(r"^https?://ge\.globo\.com/", re.IGNORECASE),
        link_patterns=_compile(
            r"^https?://ge\.globo\.com/futebol/brasileirao-serie-a/?$",
            r"^https?://ge\.globo\.com/futebol/brasileirao-serie-a/rodada/[0-9]+/?$",
            r"^https?://ge\.globo\.com/futebol/times/[a-z0-9\-]+/agenda-de-jogos-do-[a-z0-9\-]+/?$",
        ),
        page_types=[
            (re.compile(r"brasileirao-serie-a(/rodada/[0-9]+)?/?$", re.IGNORECASE), "agenda"),
        ],
    ),
    SiteAdapter(
        name="lance-agenda",
        url_pattern=re.compile(r"^https?://(www\.)?lance\.com\.br/", re.IGNORECASE),
        link_patterns=_compile(
            r"^https?://(www\.)?lance\.com\.br/futebol/brasileirao-serie-a",
            r"^https?://(www\.)?lance\.com\.br/clubes/[a-z0-9\-]+",
            r"^https?://(www\.)?lance\.com\.br/futebol/agenda",
            r"^https?://(www\.)?lance\.com\.br/futebol/tabela",
        ),
        page_types=[
            (re.compile(r"lance\.com\.br/clubes/", re.IGNORECASE), "team"),
        ],
    ),
    SiteAdapter(
        name="uol-onde-assistir",
        url_pattern=re.compile(r"^https?://(www\.)?uol\.com\.br/", re.IGNORECASE),
        link_patterns=_compile(
            r"^https?://(www\.)?uol\.com\.br/esporte/futebol/?$",
            r"^https?://(www\.)?uol\.com\.br/esporte/futebol/onde-assistir",
            r"^https?://(www\.)?uol\.com\.br/esporte/futebol/campeonatos/brasileirao",
        ),
    ),
    SiteAdapter(
        name="cbf",
        url_pattern=re.compile(r"^https?://(www\.)?cbf\.com\.br/", re.IGNORECASE),
        link_patterns=_compile(
            r"^https?://(www\.)?cbf\.com\.br/futebol-brasileiro/tabelas/",
            r"^https?://(www\.)?cbf\.com\.br/futebol-brasileiro/times/",
            r"^https?://(www\.)?cbf\.com\.br/futebol-brasileiro/jogos/",
        ),
        page_types=[
            (re.compile(r"/futebol-brasileiro/jogos/", re.IGNORECASE), "match"),
            (re.compile(r"/futebol-brasileiro/times/", re.IGNORECASE), "team"),
        ],
    ),
    SiteAdapter(
        name="generic-sports-news",
        url_pattern=_domain_pattern(GENERIC_NEWS_DOMAINS),
        link_patterns=[_domain_pattern(GENERIC_NEWS_DOMAINS)],
    ),
]


class AdapterRegistry:
    """Linear first-match dispatch over the adapter table."""

    def __init__(self, adapters=None):
        self.adapters = list(DEFAULT_ADAPTERS if adapters is None else adapters)

    def select(self, url):
        for adapter in self.adapters:
            if adapter.matches(url):
                return adapter
        return None

    def classify(self, url):
        adapter = self.select(url)
        return adapter.classify(url) if adapter else classify_page_type(url)

    def extract(self, html, url):
        """
        Run the matching adapter, if any.

        Returns:
            the adapter result dict, or None when no adapter applies or it failed
        """
        adapter = self.select(url)
        if adapter is None:
            return None
        try:
            return adapter.extract(html, url)
        except Exception:
            logger.exception(f"[ADAPTER] {adapter.name} failed on {url}")
            return None
