import re

from Futebol.adapters import AdapterRegistry, SiteAdapter, classify_page_type
from Futebol.extractor import extract_links, parse_document


GE_TEAM_PAGE = "https://ge.globo.com/futebol/times/flamengo/"

GE_HTML = """
<html lang="pt-BR"><head><title>Flamengo | ge</title></head><body>
<a href="/futebol/brasileirao-serie-a/">Tabela</a>
<a href="/futebol/brasileirao-serie-a/rodada/12">Rodada 12</a>
<a href="/futebol/times/flamengo/agenda-de-jogos-do-flamengo/">Agenda</a>
<a href="/futebol/times/flamengo/agenda-de-jogos-do-flamengo/#topo">Agenda (topo)</a>
<a href="/futebol/noticia/2024/05/01/flamengo-vence.ghtml">Notícia</a>
<a href="https://www.facebook.com/ge">Facebook</a>
<a href="https://ad.doubleclick.net/click">Anúncio</a>
</body></html>
"""

ARTICLE_HTML = """
<html lang="pt-BR">
<head>
  <title>Flamengo vence o Vasco no Maracanã</title>
  <meta name="description" content="Rubro-negro vence o clássico pela 12ª rodada.">
  <script>var tracking = "nao indexar";</script>
  <style>.x { color: red }</style>
</head>
<body>
  <h1>Flamengo vence o Vasco</h1>
  <p>O Flamengo venceu o Vasco por dois a zero no Maracanã.</p>
  <a href="/futebol/agenda">Agenda</a>
  <a href="mailto:redacao@example.com">Contato</a>
  <a href="https://www.example.com.br/futebol/agenda/">Agenda de novo</a>
</body></html>
"""


def test_ge_adapter_whitelists_next_links():
    """Only the whitelisted ge URLs survive, canonical and without duplicates."""
    result = AdapterRegistry().extract(GE_HTML, GE_TEAM_PAGE)
    assert result["matches"] == []
    assert result["nextLinks"] == [
        "https://ge.globo.com/futebol/brasileirao-serie-a",
        "https://ge.globo.com/futebol/brasileirao-serie-a/rodada/12",
        "https://ge.globo.com/futebol/times/flamengo/agenda-de-jogos-do-flamengo",
    ]


def test_registry_selection_and_classification():
    registry = AdapterRegistry()
    assert registry.select(GE_TEAM_PAGE).name == "ge-team-agenda"
    assert registry.select("https://www.lance.com.br/clubes/palmeiras").name == "lance-agenda"
    assert registry.select("https://blog-desconhecido.com/") is None
    assert registry.extract(GE_HTML, "https://blog-desconhecido.com/") is None

    assert registry.classify("https://ge.globo.com/futebol/brasileirao-serie-a/rodada/3") == "agenda"
    assert registry.classify("https://www.cbf.com.br/futebol-brasileiro/jogos/123") == "match"
    assert registry.classify("https://www.lance.com.br/clubes/santos") == "team"


def test_generic_classification():
    assert classify_page_type("https://uol.com.br/esporte/futebol/onde-assistir/flamengo") == "onde-assistir"
    assert classify_page_type("https://ge.globo.com/futebol/noticia/2024/x.ghtml") == "noticia"
    assert classify_page_type("https://site.com/calendario-do-brasileirao") == "agenda"
    assert classify_page_type("https://site.com/sobre") == "outro"


class BrokenAdapter(SiteAdapter):
    def extract(self, html, url):
        raise RuntimeError("layout changed")


def test_failing_adapter_returns_none():
    """An adapter error is contained; the caller falls back to generic links."""
    broken = BrokenAdapter(name="broken", url_pattern=re.compile(r"^https://quebrado\.com/"),
                           link_patterns=[])
    registry = AdapterRegistry([broken])
    assert registry.extract("<html></html>", "https://quebrado.com/x") is None


def test_parse_document(analyzer):
    document, analysis = parse_document(ARTICLE_HTML, "https://www.example.com.br/futebol/jogo",
                                        200, "match", analyzer)
    assert document.title == "Flamengo vence o Vasco no Maracanã"
    assert document.description.startswith("Rubro-negro vence")
    assert document.language == "pt-br"
    assert document.pageType == "match"
    assert document.httpStatus == 200
    assert document.source == "example.com.br"
    assert document.contentLength == len(ARTICLE_HTML)
    assert 0 < document.cleanedContentLength < document.contentLength
    assert "tracking" not in analysis.tokens, "script content leaked into the text"
    assert "flamengo" in analysis.tokens
    assert document.lexical.tokenCount == len(analysis.tokens)


def test_document_id_is_content_hash(analyzer):
    """Same HTML gives the same id, whatever URL it was fetched from."""
    first, _ = parse_document(ARTICLE_HTML, "https://a.com/1", 200, "outro", analyzer)
    second, _ = parse_document(ARTICLE_HTML, "https://b.com/2", 200, "outro", analyzer)
    third, _ = parse_document(ARTICLE_HTML + " ", "https://a.com/1", 200, "outro", analyzer)
    assert first.docId == second.docId
    assert first.docId != third.docId
    assert len(first.docId) == 64


def test_document_record_is_camel_case(analyzer):
    document, _ = parse_document(ARTICLE_HTML, "https://a.com/1", 200, "outro", analyzer)
    record = document.to_dict()
    for key in ["docId", "url", "fetchedAt", "httpStatus", "title", "language", "pageType",
                "contentLength", "cleanedContentLength", "lexical"]:
        assert key in record, f"{key} missing from the document record"
    assert set(record["lexical"]) >= {"tokenCount", "uniqueTokenCount", "stopwordCount",
                                      "averageTokenLength", "lexicalDensity", "topTerms"}


def test_extract_links():
    links = extract_links(ARTICLE_HTML, "https://www.example.com.br/futebol/jogo")
    assert links == ["https://www.example.com.br/futebol/agenda"]
