import math

from Futebol.indexer import compute_idf


K1 = 1.5
B = 0.75


def bm25_idf(document_count, doc_frequency):
    """Smoothed BM25 idf: ln(1 + (N - df + 0.5) / (df + 0.5))."""
    if document_count <= 0 or doc_frequency <= 0:
        return 0.0
    return math.log(1 + (document_count - doc_frequency + 0.5) / (doc_frequency + 0.5))


def bm25_term_score(tf, doc_len, avgdl, idf, k1=K1, b=B):
    """
    Contribution of one query term to one document.

    Terms with non-positive idf contribute nothing.
    """
    if tf <= 0 or idf <= 0:
        return 0.0
    avgdl = avgdl if avgdl > 0 else 1.0
    doc_len = doc_len if doc_len > 0 else avgdl

    denom = tf + k1 * (1 - b + b * doc_len / avgdl)
    if denom <= 0:
        return 0.0
    return idf * (tf * (k1 + 1)) / denom


class BM25:
    """BM25 over one loaded chunk-size index, aggregating chunk postings per document."""

    def __init__(self, index, k1=K1, b=B):
        self.terms = index["terms"]
        self.documents = index["documents"]
        self.document_count = index["documentCount"]
        self.avgdl = index["averageDocumentLength"]
        self.k1 = k1
        self.b = b

    def term_frequencies(self, term):
        """Document -> summed term frequency over all chunks, in posting order."""
        entry = self.terms.get(term)
        if not entry:
            return {}
        tfs = {}
        for posting in entry["postings"]:
            tfs[posting.docId] = tfs.get(posting.docId, 0) + posting.termFrequency
        return tfs

    def idf(self, term):
        """
        Smoothed idf used for scoring, or 0 when plain ln(N / df) is not
        positive, so a term found in every document adds nothing.
        """
        entry = self.terms.get(term)
        if not entry:
            return 0.0
        if compute_idf(self.document_count, entry["docFrequency"]) <= 0:
            return 0.0
        return bm25_idf(self.document_count, entry["docFrequency"])

    def score(self, weighted_terms):
        """
        Args:
            weighted_terms: list of distinct (stemmed term, weight) pairs

        Returns:
            tuple (scores, matched): doc id -> BM25 score and doc id -> matched
            terms, both in first-seen order
        """
        scores = {}
        matched = {}
        for term, weight in weighted_terms:
            idf = self.idf(term)
            if idf <= 0:
                continue
            for doc_id, tf in self.term_frequencies(term).items():
                doc_len = self.documents.get(doc_id, {}).get("tokenCount", 0)
                contribution = bm25_term_score(tf, doc_len, self.avgdl, idf, self.k1, self.b)
                if contribution <= 0:
                    continue
                scores[doc_id] = scores.get(doc_id, 0.0) + weight * contribution
                matched.setdefault(doc_id, []).append(term)
        return scores, matched
