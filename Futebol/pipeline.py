import json
import logging
import os
import queue
import threading


logger = logging.getLogger(__name__)

_STOP = object()


class DocumentPipeline:
    """
    Decouples persistence from crawling: workers submit (Document, LexicalAnalysis)
    pairs to a bounded queue and a single writer thread feeds the index builder
    and appends each newly indexed document to documents.jsonl.

    submit() blocks when the queue is full, which slows the crawl down instead
    of growing memory.
    """

    def __init__(self, documents_path, index_builder, maxsize=1000):
        self.documents_path = documents_path
        self.index_builder = index_builder
        self._queue = queue.Queue(maxsize=maxsize)
        self._thread = None
        self._file = None
        self.documents_written = 0
        self.documents_indexed = 0
        self.failures = 0
        self.duplicates = 0

    def start(self):
        if self._thread is not None:
            return self
        os.makedirs(os.path.dirname(self.documents_path) or ".", exist_ok=True)
        self._file = open(self.documents_path, "a", encoding="utf-8")
        self._thread = threading.Thread(target=self._run, name="document-writer", daemon=True)
        self._thread.start()
        return self

    def submit(self, document, analysis):
        if self._thread is None:
            raise RuntimeError("pipeline not started")
        self._queue.put((document, analysis))

    def flush(self):
        """Block until every submitted document has been written and indexed."""
        if self._thread is not None:
            self._queue.join()

    def close(self, finalize=True):
        """
        Drain the queue, stop the writer and optionally finalize the index.

        Returns:
            the index metadata record when finalized, else None
        """
        if self._thread is not None:
            self.flush()
            self._queue.put(_STOP)
            self._thread.join()
            self._thread = None
            self._file.close()
            self._file = None
            logger.info(f"[PIPELINE] closed: {self.documents_written} documents written, "
                        f"{self.documents_indexed} indexed, {self.duplicates} duplicates, {self.failures} failures")
        if finalize:
            return self.index_builder.finalize()
        return None

    def _run(self):
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                document, analysis = item
                # same content under another URL: neither stored nor indexed again
                if not self.index_builder.add_document(document, analysis):
                    self.duplicates += 1
                    continue
                self.documents_indexed += 1
                self._write(document)
            except Exception:
                # one bad record must not stop the writer thread
                self.failures += 1
                logger.exception("[PIPELINE] failed to persist document")
            finally:
                self._queue.task_done()

    def _write(self, document):
        self._file.write(json.dumps(document.to_dict(), ensure_ascii=False) + "\n")
        self._file.flush()
        self.documents_written += 1
