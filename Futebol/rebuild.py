import json
import logging

from Futebol.extractor import Document
from Futebol.indexer import InvertedIndexBuilder
from Futebol.text_preprocessor import LexicalAnalysis, LexicalSummary, TopTerm


logger = logging.getLogger(__name__)


def document_from_record(record):
    lexical = dict(record.get("lexical") or {})
    lexical["topTerms"] = [TopTerm(**term) for term in lexical.get("topTerms", [])]
    summary = LexicalSummary(**lexical)
    return Document(
        docId=record["docId"],
        url=record["url"],
        fetchedAt=record.get("fetchedAt"),
        httpStatus=record.get("httpStatus", 200),
        title=record.get("title") or "",
        language=record.get("language"),
        pageType=record.get("pageType") or "outro",
        contentLength=record.get("contentLength", 0),
        cleanedContentLength=record.get("cleanedContentLength", 0),
        lexical=summary,
        description=record.get("description") or "",
        source=record.get("source"),
    )


def analysis_from_summary(document, analyzer):
    """
    Approximate token stream for a stored document: each top term repeated by
    its frequency, plus the title. The full text is not kept in documents.jsonl.
    """
    tokens = []
    for term in document.lexical.topTerms:
        tokens.extend([term.term] * term.frequency)
    title_analysis = analyzer.analyze(document.title)
    tokens = title_analysis.tokens + tokens

    return LexicalAnalysis(
        tokens=tokens,
        stemmed_tokens=[analyzer.stem(tok) for tok in tokens],
        frequencies={},
        top_terms=list(document.lexical.topTerms),
        metrics=document.lexical,
    )


def rebuild_index(documents_path, index_config, analyzer):
    """
    Rebuild every chunk-size index from documents.jsonl.

    Returns:
        dict: the metadata record written by finalize()
    """
    builder = InvertedIndexBuilder(index_config)
    skipped = 0
    with open(documents_path, "r", encoding="utf-8") as f:
        for line_number, line in enumerate(f, 1):
            if not line.strip():
                continue
            try:
                document = document_from_record(json.loads(line))
            except (json.JSONDecodeError, KeyError, TypeError) as e:
                skipped += 1
                logger.warning(f"[REBUILD] line {line_number} skipped: {e}")
                continue
            builder.add_document(document, analysis_from_summary(document, analyzer))

    logger.info(f"[REBUILD] {builder.document_count} documents replayed, {skipped} lines skipped")
    return builder.finalize()
