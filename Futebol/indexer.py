import json
import logging
import math
import os
import pickle
import threading
import time
from collections import Counter
from datetime import datetime, timezone
from typing import NamedTuple

import psutil

from Futebol.diagnostics import analyze_chunk_sizes


logger = logging.getLogger(__name__)

INDEX_FORMAT_VERSION = 1
# Errors that make a snapshot impossible without breaking the crawl
SERIALIZATION_ERRORS = (pickle.PicklingError, OverflowError, MemoryError, OSError, TypeError)


class Posting(NamedTuple):
    docId: str
    chunkId: int
    termFrequency: int


def chunk_tokens(tokens, chunk_size):
    """Split tokens into consecutive slices of chunk_size (the last one may be shorter)."""
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    return [tokens[i:i + chunk_size] for i in range(0, len(tokens), chunk_size)]


def compute_idf(document_count, doc_frequency):
    """ln(N / df); 0 for a term in every document, negative never happens for df <= N."""
    if document_count <= 0 or doc_frequency <= 0:
        return 0.0
    return math.log(document_count / doc_frequency)


def save_atomic(path, write):
    """Write through a temporary file and os.replace so readers never see a partial file."""
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    tmp_path = path + ".tmp"
    try:
        write(tmp_path)
        os.replace(tmp_path, path)
    finally:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)


def save_pickle(path, obj):
    def write(tmp_path):
        with open(tmp_path, "wb") as f:
            pickle.dump(obj, f, protocol=pickle.HIGHEST_PROTOCOL)
    save_atomic(path, write)


def save_json(path, obj):
    def write(tmp_path):
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(obj, f, ensure_ascii=False, indent=2)
    save_atomic(path, write)


def load_index(path):
    with open(path, "rb") as f:
        payload = pickle.load(f)
    if payload.get("version") != INDEX_FORMAT_VERSION:
        raise ValueError(f"{path}: unsupported index format {payload.get('version')}")
    return payload


class ChunkIndex:
    """Postings and document frequencies for one chunk size."""

    def __init__(self, chunk_size):
        self.chunk_size = chunk_size
        self.terms = {}
        self.total_chunks = 0
        self.chunk_fill_sum = 0.0
        self.total_postings = 0

    def add(self, doc_id, tokens):
        chunks = chunk_tokens(tokens, self.chunk_size)
        seen_terms = set()
        for chunk_id, chunk in enumerate(chunks):
            counts = Counter(chunk)
            self.total_postings += len(counts)
            for term, tf in counts.items():
                entry = self.terms.get(term)
                if entry is None:
                    entry = self.terms[term] = {"docFrequency": 0, "totalFrequency": 0,
                                                "idf": 0.0, "postings": []}
                entry["postings"].append(Posting(doc_id, chunk_id, tf))
                entry["totalFrequency"] += tf
                seen_terms.add(term)
            self.chunk_fill_sum += len(chunk) / self.chunk_size
        # document frequency counts documents, not chunks
        for term in seen_terms:
            self.terms[term]["docFrequency"] += 1

        self.total_chunks += len(chunks)
        return len(chunks)

    def update_idf(self, document_count):
        for entry in self.terms.values():
            entry["idf"] = compute_idf(document_count, entry["docFrequency"])

    @property
    def vocabulary_size(self):
        return len(self.terms)

    @property
    def average_chunk_utilization(self):
        return self.chunk_fill_sum / self.total_chunks if self.total_chunks else 0.0

    def to_payload(self, documents, total_tokens, final):
        document_count = len(documents)
        return {
            "version": INDEX_FORMAT_VERSION,
            "chunkSize": self.chunk_size,
            "generatedAt": datetime.now(timezone.utc).isoformat(),
            "final": final,
            "documentCount": document_count,
            "totalTokens": total_tokens,
            "averageDocumentLength": total_tokens / document_count if document_count else 0.0,
            "totalChunks": self.total_chunks,
            "chunkFillSum": self.chunk_fill_sum,
            "totalPostings": self.total_postings,
            "documents": documents,
            "terms": self.terms,
        }

    @classmethod
    def from_payload(cls, payload):
        index = cls(payload["chunkSize"])
        index.terms = payload["terms"]
        index.total_chunks = payload["totalChunks"]
        index.chunk_fill_sum = payload["chunkFillSum"]
        index.total_postings = payload["totalPostings"]
        return index


class InvertedIndexBuilder:
    """
    Builds one inverted index per configured chunk size from analyzed documents.

    Documents are added one at a time (from the persistence thread during a
    crawl); every `snapshot_interval` documents the partial index is written
    so a crash loses at most that many documents of work. finalize() computes
    IDF, writes every chunk-size index, the metadata record and the
    hyperparameter diagnostics.
    """

    def __init__(self, config):
        self.config = config
        self.indexes = {size: ChunkIndex(size) for size in config.chunk_sizes}
        self.documents = {}
        self.tokens_indexed = 0
        self.truncated_documents = 0
        self.vocabulary_growth = []
        self.raw_token_count = 0
        self.stopword_count = 0
        self.token_lengths = Counter()

        self._lock = threading.Lock()
        self._started = time.perf_counter()
        self._since_snapshot = 0

    @property
    def document_count(self):
        return len(self.documents)

    def resume(self):
        """
        Load previously persisted chunk-size indexes so an interrupted crawl keeps
        its indexing work. Returns the number of documents restored.
        """
        with self._lock:
            for size in list(self.indexes):
                path = self.config.index_path(size)
                if not os.path.exists(path):
                    continue
                try:
                    payload = load_index(path)
                except (OSError, pickle.UnpicklingError, EOFError, ValueError) as e:
                    logger.error(f"[INDEX] could not resume from {path}: {e}")
                    continue
                self.indexes[size] = ChunkIndex.from_payload(payload)
                self.documents.update(payload["documents"])
                self.tokens_indexed = max(self.tokens_indexed, payload["totalTokens"])
        if self.documents:
            logger.info(f"[INDEX] resumed {len(self.documents)} documents")
        return len(self.documents)

    def add_document(self, document, analysis):
        """
        Index the stemmed tokens of one document under every chunk size.

        Returns:
            bool: False if the document id was already indexed
        """
        with self._lock:
            if document.docId in self.documents:
                logger.debug(f"[INDEX] duplicate content skipped: {document.url}")
                return False

            tokens = analysis.stemmed_tokens
            if len(tokens) > self.config.max_tokens_per_document:
                tokens = tokens[:self.config.max_tokens_per_document]
                self.truncated_documents += 1

            chunk_counts = {size: index.add(document.docId, tokens)
                            for size, index in self.indexes.items()}

            self.documents[document.docId] = {
                "docId": document.docId,
                "url": document.url,
                "title": document.title,
                "description": document.description,
                "fetchedAt": document.fetchedAt,
                "pageType": document.pageType,
                "language": document.language,
                "tokenCount": len(tokens),
                "chunkCounts": chunk_counts,
                "topTerms": [t.term for t in analysis.top_terms],
            }
            self.tokens_indexed += len(tokens)
            self.raw_token_count += document.lexical.tokenCount + document.lexical.stopwordCount
            self.stopword_count += document.lexical.stopwordCount
            self.token_lengths.update(len(tok) for tok in analysis.tokens)
            primary = self.indexes[self.config.primary_chunk_size]
            self.vocabulary_growth.append((self.tokens_indexed, primary.vocabulary_size))

            self._since_snapshot += 1
            due = self._since_snapshot >= self.config.snapshot_interval

        if due:
            self.snapshot()
        return True

    def _write_indexes(self, final):
        for size, index in self.indexes.items():
            index.update_idf(len(self.documents))
            payload = index.to_payload(self.documents, self.tokens_indexed, final)
            save_pickle(self.config.index_path(size), payload)

    def snapshot(self):
        """Persist the partial index. Failures are logged and the crawl goes on."""
        with self._lock:
            self._since_snapshot = 0
            try:
                self._write_indexes(final=False)
            except SERIALIZATION_ERRORS as e:
                logger.error(f"[SNAPSHOT] FAILED at {len(self.documents)} documents, "
                             f"snapshot skipped: {type(e).__name__}: {e}")
                return False
        logger.info(f"[SNAPSHOT] index persisted with {len(self.documents)} documents")
        return True

    def finalize(self):
        """
        Compute IDF, write every chunk-size index plus metadata and diagnostics.

        Returns:
            dict: the metadata record
        """
        with self._lock:
            self._write_indexes(final=True)
            diagnostics = analyze_chunk_sizes(
                self.indexes.values(),
                vocabulary_growth=self.vocabulary_growth,
                token_lengths=self.token_lengths,
                raw_token_count=self.raw_token_count,
                stopword_count=self.stopword_count,
            )
            metadata = self._metadata()
            save_json(self.config.metadata_path, metadata)
            save_json(self.config.diagnostics_path, diagnostics)

        logger.info(f"[INDEX] finalized {metadata['documentsIndexed']} documents, "
                    f"{metadata['tokensIndexed']} tokens in {metadata['buildTimeMs']:.0f} ms; "
                    f"recommended chunk size {diagnostics.get('optimalChunkSize')}")
        return metadata

    def _metadata(self):
        memory = psutil.Process(os.getpid()).memory_info()
        return {
            "generatedAt": datetime.now(timezone.utc).isoformat(),
            "documentsIndexed": len(self.documents),
            "tokensIndexed": self.tokens_indexed,
            "truncatedDocuments": self.truncated_documents,
            "buildTimeMs": round((time.perf_counter() - self._started) * 1000, 3),
            "chunkSizeStats": {
                str(size): {
                    "vocabularySize": index.vocabulary_size,
                    "totalChunks": index.total_chunks,
                    "totalPostings": index.total_postings,
                    "file": os.path.basename(self.config.index_path(size)),
                }
                for size, index in self.indexes.items()
            },
            "memory": {"rssBytes": memory.rss, "vmsBytes": memory.vms},
            "indexingConfig": self.config.to_dict(),
        }
