import re
import time
import unicodedata
from collections import Counter
from dataclasses import dataclass, field, asdict
from typing import Dict, List

from nltk.stem.snowball import SnowballStemmer


NON_ALNUM = re.compile(r"[^a-z0-9]+")

# Portuguese function words plus navigation/boilerplate words common on sports portals.
# Stored without diacritics because tokens are compared after diacritic stripping.
PORTUGUESE_STOPWORDS = frozenset("""
a ao aos aquela aquelas aquele aqueles aquilo as ate com como da das de dela delas dele deles
depois do dos e ela elas ele eles em entre era eram essa essas esse esses esta estas este estes
eu foi foram ha isso isto ja lhe lhes mas me mesmo meu meus minha minhas muito muita muitos
muitas na nas nao nem no nos nossa nossas nosso nossos num numa numas o os ou para pela pelas
pelo pelos por qual quando quanto que quem se sem ser sera serao seu seus sob sobre sua suas
tambem te tem tendo ter teu tinha tinham todo toda todos todas tu um uma umas uns vai vao voce
voces pra pro porque pois onde assim entao pouco pouca poucos poucas cada algum alguns algumas
nenhum nenhuma sendo sao seja sejam ainda sempre nunca estao esta estava estavam
mais ver clique aqui saiba veja leia acesse confira acompanhe assista pagina site link menu
principal home inicio voltar proximo anterior compartilhar curtir seguir inscrever comentar
publicado atualizado editado
""".split())


def strip_diacritics(text):
    decomposed = unicodedata.normalize("NFD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_text(text):
    """Lowercase, diacritic-free text with runs of non-alphanumerics collapsed to a space."""
    return NON_ALNUM.sub(" ", strip_diacritics(text or "").lower()).strip()


def tokenize(text, min_token_length=3):
    return [tok for tok in NON_ALNUM.split(strip_diacritics(text or "").lower())
            if len(tok) >= min_token_length]


@dataclass
class TopTerm:
    term: str
    frequency: int
    weight: float


@dataclass
class LexicalSummary:
    tokenCount: int = 0
    uniqueTokenCount: int = 0
    stopwordCount: int = 0
    averageTokenLength: float = 0.0
    lexicalDensity: float = 0.0
    topTerms: List[TopTerm] = field(default_factory=list)
    processingMs: float = 0.0

    def to_dict(self):
        return asdict(self)


@dataclass
class LexicalAnalysis:
    tokens: List[str]
    stemmed_tokens: List[str]
    frequencies: Dict[str, int]
    top_terms: List[TopTerm]
    metrics: LexicalSummary
    stem_frequencies: Dict[str, int] = field(default_factory=dict)


class LexicalAnalyzer:
    """
    Portuguese text pipeline: strip diacritics, lowercase, split on
    non-alphanumeric runs, drop short tokens and stopwords, then apply the
    Snowball (Porter) Portuguese stemmer.

    analyze() keeps no state between calls, so one analyzer can be shared by
    every crawl worker.
    """

    def __init__(self, min_token_length=3, top_terms_limit=20, stopwords=PORTUGUESE_STOPWORDS):
        self.min_token_length = min_token_length
        self.top_terms_limit = top_terms_limit
        self.stopwords = frozenset(stopwords)
        self.stemmer = SnowballStemmer("portuguese")

    def tokenize(self, text):
        return tokenize(text, self.min_token_length)

    def is_stopword(self, token):
        return token in self.stopwords

    def stem(self, token):
        return self.stemmer.stem(token)

    def filter_and_stem(self, tokens):
        return [self.stem(tok) for tok in tokens if tok not in self.stopwords]

    def analyze(self, text):
        start = time.perf_counter()
        raw_tokens = self.tokenize(text)
        kept = [tok for tok in raw_tokens if tok not in self.stopwords]
        stopword_count = len(raw_tokens) - len(kept)
        stemmed = [self.stem(tok) for tok in kept]

        frequencies = Counter(kept)
        top_terms = self._top_terms(frequencies, len(kept))

        total = len(kept) + stopword_count
        metrics = LexicalSummary(
            tokenCount=len(kept),
            uniqueTokenCount=len(frequencies),
            stopwordCount=stopword_count,
            averageTokenLength=round(sum(map(len, kept)) / len(kept), 4) if kept else 0.0,
            lexicalDensity=round(len(kept) / total, 6) if total else 0.0,
            topTerms=top_terms,
            processingMs=round((time.perf_counter() - start) * 1000, 3),
        )

        return LexicalAnalysis(
            tokens=kept,
            stemmed_tokens=stemmed,
            frequencies=dict(frequencies),
            top_terms=top_terms,
            metrics=metrics,
            stem_frequencies=dict(Counter(stemmed)),
        )

    def _top_terms(self, frequencies, total):
        if not total:
            return []
        # most_common keeps first-seen order among equal counts
        return [TopTerm(term=term, frequency=freq, weight=round(freq / total, 6))
                for term, freq in frequencies.most_common(self.top_terms_limit)]
