import pytest

from Futebol.text_preprocessor import LexicalAnalyzer, normalize_text, strip_diacritics, tokenize


@pytest.fixture(scope="module")
def lexer():
    return LexicalAnalyzer(min_token_length=3, top_terms_limit=3)


def test_normalization():
    """Diacritics are stripped and punctuation collapses to single spaces."""
    assert strip_diacritics("São Paulo x Grêmio") == "Sao Paulo x Gremio"
    assert normalize_text("São Paulo x Grêmio: Ação!") == "sao paulo x gremio acao"
    assert normalize_text(None) == ""


def test_tokenize_drops_short_tokens():
    assert tokenize("O Flamengo vence o jogo e o Vasco perde", 3) == [
        "flamengo", "vence", "jogo", "vasco", "perde"]
    assert tokenize("gol do tri", 4) == []


def test_stopwords_and_density(lexer):
    """Stopwords are counted but not kept; density is kept / (kept + stopwords)."""
    analysis = lexer.analyze("Flamengo vence com gols para a torcida")
    assert analysis.tokens == ["flamengo", "vence", "gols", "torcida"]
    metrics = analysis.metrics
    assert metrics.tokenCount == 4
    assert metrics.stopwordCount == 2
    assert metrics.uniqueTokenCount == 4
    assert metrics.averageTokenLength == 6.0
    assert metrics.lexicalDensity == pytest.approx(0.666667)


def test_stemming_groups_inflections(lexer):
    assert lexer.stem("jogos") == lexer.stem("jogo") == "jog"
    assert lexer.stem("vence") == "venc"
    assert lexer.stem("terminou") == "termin"
    assert lexer.stem("empatado") == "empat"


def test_top_terms(lexer):
    """Top terms are ordered by frequency with weight = frequency / kept tokens."""
    analysis = lexer.analyze("gol gol gol flamengo flamengo vasco agenda")
    top = analysis.top_terms
    assert [t.term for t in top] == ["gol", "flamengo", "vasco"], "limit or order is wrong"
    assert top[0].frequency == 3
    assert top[0].weight == pytest.approx(3 / 7, abs=1e-6)
    assert analysis.stem_frequencies[lexer.stem("flamengo")] == 2


def test_empty_text(lexer):
    analysis = lexer.analyze("")
    assert analysis.tokens == [] and analysis.stemmed_tokens == []
    assert analysis.metrics.tokenCount == 0
    assert analysis.metrics.lexicalDensity == 0.0
    assert analysis.top_terms == []


def test_analyzer_is_deterministic(lexer):
    text = "Próximos jogos do Palmeiras no Brasileirão: agenda e onde assistir"
    first, second = lexer.analyze(text), lexer.analyze(text)
    assert first.stemmed_tokens == second.stemmed_tokens
    assert first.frequencies == second.frequencies
