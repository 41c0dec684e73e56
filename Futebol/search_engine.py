import json
import logging
import os
import time

from Futebol.bm25 import BM25
from Futebol.indexer import load_index
from Futebol.query_expander import QueryExpander
from Futebol.teams import find_teams, mentions_team
from Futebol.text_preprocessor import LexicalAnalyzer, normalize_text
from Futebol.url_utils import get_domain


logger = logging.getLogger(__name__)

DOMAIN_BOOSTS = {
    "ge.globo.com": 1.3,
    "globoesporte.globo.com": 1.3,
    "gremio.net": 1.08,
    "cruzeiro.org": 1.08,
    "vasco.com.br": 1.08,
    "palmeiras.com.br": 1.15,
    "lance.com.br": 1.08,
    "uol.com.br": 1.08,
    "gazetaesportiva.com": 1.12,
    "futebolnaveia.com.br": 1.1,
    "verdazzo.com.br": 1.06,
}

FOOTBALL_KEYWORDS = frozenset([
    "america", "athletico", "atletico", "bahia", "botafogo", "bragantino", "cruzeiro",
    "corinthians", "coritiba", "ceara", "flamengo", "fluminense", "fortaleza", "gremio",
    "goias", "inter", "internacional", "palmeiras", "santos", "sao", "tricolor", "vasco", "verdao",
])

PAGE_TYPE_BOOSTS = {
    "agenda": 2.2,
    "onde-assistir": 2.0,
    "match": 1.8,
    "team": 1.5,
    "noticia": 1.2,
    "outro": 1.0,
}

TITLE_COVERAGE_WEIGHT = 2.0
URL_COVERAGE_WEIGHT = 0.7
TITLE_EXACT_MATCH_BOOST = 1.5
FOOTBALL_KEYWORD_BOOST = 1.1
TEAM_MATCH_BOOST = 1.2
TEAM_MISS_PENALTY = 0.2

DEFAULT_LIMIT = 10
DEFAULT_MIN_SCORE = 0.05
SNIPPET_WORDS = 15


def coverage(query_tokens, field_tokens):
    """Fraction of query tokens present in the field."""
    if not query_tokens or not field_tokens:
        return 0.0
    field_set = set(field_tokens)
    return sum(1 for token in query_tokens if token in field_set) / len(query_tokens)


def domain_boost(domain):
    for known, boost in DOMAIN_BOOSTS.items():
        if domain == known or domain.endswith("." + known):
            return boost
    return 1.0


def make_snippet(doc, query_tokens):
    description = (doc.get("description") or "").strip()
    if description:
        return description

    words = (doc.get("title") or "").split()
    if not words:
        return " ".join(doc.get("topTerms", [])[:SNIPPET_WORDS])
    if len(words) <= SNIPPET_WORDS:
        return " ".join(words)

    # window of the title that contains the most query tokens
    best_start, best_hits = 0, -1
    for start in range(len(words) - SNIPPET_WORDS + 1):
        window = set(normalize_text(" ".join(words[start:start + SNIPPET_WORDS])).split())
        hits = sum(1 for token in query_tokens if token in window)
        if hits > best_hits:
            best_start, best_hits = start, hits
    prefix = "..." if best_start > 0 else ""
    suffix = "..." if best_start + SNIPPET_WORDS < len(words) else ""
    return prefix + " ".join(words[best_start:best_start + SNIPPET_WORDS]) + suffix


class SearchEngine:
    """
    Read-only ranked search over one persisted chunk-size index.

    Nothing is mutated after construction, so one engine can serve concurrent
    search() calls.
    """

    def __init__(self, index_path, documents_path=None, analyzer=None, expander=None):
        self.index = load_index(index_path)
        self.documents = {doc_id: dict(doc) for doc_id, doc in self.index["documents"].items()}
        if documents_path and os.path.exists(documents_path):
            self._merge_documents(documents_path)

        self.bm25 = BM25(self.index)
        self.analyzer = analyzer or LexicalAnalyzer()
        self.expander = expander or QueryExpander()
        logger.info(f"[SEARCH] loaded {index_path}: {len(self.documents)} documents, "
                    f"{len(self.index['terms'])} terms, chunk size {self.index['chunkSize']}")

    @classmethod
    def from_config(cls, config, analyzer=None):
        return cls(config.index_path, config.documents_path, analyzer=analyzer)

    def _merge_documents(self, path):
        """Fill missing summary fields from documents.jsonl; unreadable lines are skipped."""
        with open(path, "r", encoding="utf-8") as f:
            for line_number, line in enumerate(f, 1):
                if not line.strip():
                    continue
                try:
                    record = json.loads(line)
                except json.JSONDecodeError:
                    logger.warning(f"[SEARCH] {path}:{line_number} is not valid JSON, skipped")
                    continue
                doc = self.documents.get(record.get("docId"))
                if doc is None:
                    continue
                for key in ("title", "description", "fetchedAt", "pageType", "language"):
                    if not doc.get(key) and record.get(key):
                        doc[key] = record[key]

    def parse_query(self, query):
        """
        Tokenize like the indexer, expand with synonyms, drop stopwords and stem.

        Returns:
            tuple (expanded tokens, list of (stem, weight))
        """
        tokens = self.analyzer.tokenize(query)
        expanded = self.expander.expand(tokens)

        query_tokens = []
        weighted_stems = {}
        for token, weight in expanded:
            if self.analyzer.is_stopword(token) or len(token) < self.analyzer.min_token_length:
                continue
            query_tokens.append(token)
            stem = self.analyzer.stem(token)
            weighted_stems[stem] = max(weighted_stems.get(stem, 0.0), weight)
        return query_tokens, list(weighted_stems.items())

    def _boost(self, doc, query_tokens, normalized_query, teams):
        title = doc.get("title") or ""
        url = doc.get("url") or ""
        domain = get_domain(url)
        normalized_title = normalize_text(title)
        title_words = normalized_title.split()

        factor = (1 + TITLE_COVERAGE_WEIGHT * coverage(query_tokens, title_words)
                  + URL_COVERAGE_WEIGHT * coverage(query_tokens, normalize_text(url).split()))

        if normalized_query and f" {normalized_query} " in f" {normalized_title} ":
            factor *= TITLE_EXACT_MATCH_BOOST

        factor *= domain_boost(domain)

        if any(token in FOOTBALL_KEYWORDS and token in title_words for token in query_tokens):
            factor *= FOOTBALL_KEYWORD_BOOST

        if teams:
            if mentions_team(teams, title, url, domain):
                factor *= TEAM_MATCH_BOOST
            else:
                factor *= 1 - TEAM_MISS_PENALTY

        factor *= PAGE_TYPE_BOOSTS.get(doc.get("pageType") or "outro", 1.0)
        return factor

    def _empty(self, query, started):
        return {
            "query": query,
            "total": 0,
            "processingTimeMs": round((time.perf_counter() - started) * 1000, 3),
            "results": [],
        }

    def search(self, query, limit=DEFAULT_LIMIT, min_score=DEFAULT_MIN_SCORE, offset=0, page_types=None):
        """
        Rank documents for a free-text query.

        Args:
            query: user query
            limit: page size
            min_score: results scoring below this are dropped
            offset: number of ranked results to skip (pagination)
            page_types: optional collection of page types to keep

        Returns:
            dict {query, total, processingTimeMs, results}; each result carries
            docId, url, title, score, termsMatched, snippet, fetchedAt, pageType
        """
        started = time.perf_counter()
        if not query or not query.strip():
            return self._empty(query, started)

        query_tokens, weighted_stems = self.parse_query(query)
        if not weighted_stems:
            return self._empty(query, started)

        base_scores, matched = self.bm25.score(weighted_stems)
        teams = find_teams(query)
        normalized_query = normalize_text(query)

        ranked = []
        for doc_id, base in base_scores.items():
            doc = self.documents.get(doc_id)
            if doc is None:
                continue
            page_type = doc.get("pageType") or "outro"
            if page_types and page_type not in page_types:
                continue
            score = base * self._boost(doc, query_tokens, normalized_query, teams)
            if score < min_score:
                continue
            ranked.append((score, doc_id, doc, page_type))

        # stable: equal scores keep posting order
        ranked.sort(key=lambda item: item[0], reverse=True)

        results = [
            {
                "docId": doc_id,
                "url": doc.get("url"),
                "title": doc.get("title") or "",
                "score": round(score, 4),
                "termsMatched": matched.get(doc_id, []),
                "snippet": make_snippet(doc, query_tokens),
                "fetchedAt": doc.get("fetchedAt"),
                "pageType": page_type,
            }
            for score, doc_id, doc, page_type in ranked[offset:offset + limit]
        ]

        response = {
            "query": query,
            "total": len(ranked),
            "processingTimeMs": round((time.perf_counter() - started) * 1000, 3),
            "results": results,
        }
        logger.debug(f"[SEARCH] '{query}' -> {len(ranked)} results")
        return response
