import logging
import threading
import time
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Optional

from Futebol.adapters import AdapterRegistry, CRAWL_PAGE_TYPE_BOOSTS
from Futebol.extractor import extract_links, parse_document
from Futebol.frontier import CrawlTask
from Futebol.indexer import save_json, save_pickle, SERIALIZATION_ERRORS
from Futebol.url_utils import get_domain, is_blocked_url, is_http_url


logger = logging.getLogger(__name__)

INITIAL_PRIORITY = 100
PRIORITY_DECAY = 5
IDLE_SLEEP = 0.025      # seconds a worker waits when the frontier is empty
JOIN_INTERVAL = 0.5
STATS_INTERVAL = 50     # log crawl stats every N pages


def child_priority(parent_priority, page_type):
    """Parent priority minus the decay plus the page-type boost, never above the parent."""
    boosted = parent_priority - PRIORITY_DECAY + CRAWL_PAGE_TYPE_BOOSTS.get(page_type, 0)
    return min(parent_priority, boosted)


@dataclass
class CrawlMetrics:
    start_time: str
    end_time: Optional[str] = None
    pages_processed: int = 0
    documents_created: int = 0
    matches_found: int = 0
    error_count: int = 0
    pages_per_second: float = 0.0
    source_breakdown: Dict[str, int] = field(default_factory=dict)
    stop_reason: Optional[str] = None

    def to_dict(self):
        return {
            "startTime": self.start_time,
            "endTime": self.end_time,
            "pagesProcessed": self.pages_processed,
            "documentsCreated": self.documents_created,
            "matchesFound": self.matches_found,
            "errorCount": self.error_count,
            "pagesPerSecond": self.pages_per_second,
            "sourceBreakdown": self.source_breakdown,
            "stopReason": self.stop_reason,
        }


class CrawlDriver:
    """
    Fixed pool of worker threads closing the crawl loop:
    pop task -> fetch -> build document -> persist/index -> discover links -> push.

    The pool stops when the page budget is spent, the wall-clock budget runs
    out, the frontier is empty with nothing in flight, or stop() is called
    (e.g. on SIGINT). Shutdown always drains the persistence queue, finalizes
    the index and writes the frontier snapshot and the crawl metrics.
    """

    def __init__(self, config, frontier, fetcher, pipeline, analyzer, adapters=None,
                 clock=time.monotonic):
        self.config = config
        self.frontier = frontier
        self.fetcher = fetcher
        self.pipeline = pipeline
        self.analyzer = analyzer
        self.adapters = adapters or AdapterRegistry()
        self._clock = clock

        self.stop_event = threading.Event()
        self.stats_lock = threading.Lock()
        self._stop_lock = threading.Lock()

        self.stop_reason = None
        self.in_flight = 0
        self.pages_processed = 0
        self.documents_created = 0
        self.matches_found = 0
        self.errors = 0
        self.source_breakdown = Counter()

        self._started_at = None
        self._start_time = None

    def seed(self, seeds):
        """
        Push seeds as depth-0 tasks at maximum priority.

        Args:
            seeds: iterable of (url, category) pairs or plain URLs
        """
        added = 0
        for entry in seeds:
            url, category = entry if isinstance(entry, tuple) else (entry, None)
            task = CrawlTask(url=url, depth=0, priority=INITIAL_PRIORITY, source=category)
            if self.frontier.push(task):
                added += 1
                logger.info(f"[SEED_ADD] {url}")
            else:
                logger.info(f"[SEED_SKIP] {url} (deny-listed, duplicate or already visited)")
        return added

    def stop(self, reason):
        with self._stop_lock:
            if self.stop_reason is None:
                self.stop_reason = reason
                logger.info(f"[STOP] {reason}")
        self.stop_event.set()

    def handle_interrupt(self, signum, frame):
        logger.warning("[STOP] interrupt received, finishing current tasks")
        self.stop("interrupted")

    def _elapsed(self):
        return self._clock() - self._started_at if self._started_at is not None else 0.0

    def _runtime_exceeded(self):
        limit = self.config.max_runtime
        return limit is not None and self._elapsed() >= limit

    def _next_task(self):
        """Pop the next task and account for it atomically, or return None."""
        if self._runtime_exceeded():
            self.stop("runtime_limit")
            return None

        with self.stats_lock:
            if self.pages_processed >= self.config.max_pages:
                if self.in_flight == 0:
                    self.stop("max_pages")
                return None

            task = self.frontier.pop()
            if task is None:
                if self.in_flight == 0:
                    self.stop("frontier_empty")
                return None

            self.in_flight += 1
            self.pages_processed += 1
            processed = self.pages_processed

        if processed % STATS_INTERVAL == 0:
            logger.info(f"[STATS] Pages={processed} | Documents={self.documents_created} | "
                        f"Errors={self.errors + self.fetcher.error_count} | "
                        f"Frontier={len(self.frontier)} | Visited={self.frontier.visited_count}")
        return task

    def _worker(self):
        while not self.stop_event.is_set():
            task = self._next_task()
            if task is None:
                time.sleep(IDLE_SLEEP)
                continue
            try:
                self.process_task(task)
            except Exception:
                logger.exception(f"[CRAWL] task failed: {task.url}")
                with self.stats_lock:
                    self.errors += 1
            finally:
                with self.stats_lock:
                    self.in_flight -= 1

    def process_task(self, task):
        """
        Fetch one task, hand the document to the pipeline and push its children.

        Returns:
            int: number of child tasks added to the frontier
        """
        logger.info(f"[CRAWL] {task.url} (depth {task.depth}, priority {task.priority:.1f})")
        result = self.fetcher.fetch_html(task.url, cancel_event=self.stop_event)
        if result is None:
            return 0

        page_type = self.adapters.classify(result.final_url)
        document, analysis = parse_document(result.html, result.final_url, result.status,
                                            page_type, self.analyzer, source=task.source)
        self.pipeline.submit(document, analysis)

        with self.stats_lock:
            self.documents_created += 1
            self.source_breakdown[get_domain(task.url)] += 1

        if task.depth >= self.frontier.max_depth:
            return 0

        added = 0
        for link in self.discover_links(result.html, result.final_url):
            child_type = self.adapters.classify(link)
            child = CrawlTask(
                url=link,
                depth=task.depth + 1,
                priority=child_priority(task.priority, child_type),
                source_page_type=page_type,
                source=task.source,
            )
            if self.frontier.push(child):
                added += 1
        logger.info(f"[LINKS] {added} new links from {result.final_url}. Frontier size: {len(self.frontier)}")
        return added

    def discover_links(self, html, url):
        """
        Outbound links worth crawling: the adapter's nextLinks when it has any,
        otherwise generic extraction capped at fallback_link_limit.
        """
        adapted = self.adapters.extract(html, url)
        links = []
        if adapted:
            with self.stats_lock:
                self.matches_found += len(adapted.get("matches") or [])
            links = adapted.get("nextLinks") or []

        capped = not links
        if capped:
            links = extract_links(html, url)

        links = [link for link in links if is_http_url(link) and not is_blocked_url(link)]
        limit = self.config.fallback_link_limit
        if capped and limit > 0:
            links = links[:limit]
        return links

    def run(self):
        """
        Crawl until a stop condition holds, then shut down cleanly.

        Returns:
            CrawlMetrics
        """
        self._started_at = self._clock()
        self._start_time = datetime.now(timezone.utc).isoformat()
        logger.info(f"[START CRAWL] {len(self.frontier)} tasks queued, "
                    f"{self.config.concurrency} workers, strategy={self.frontier.strategy}, "
                    f"max depth {self.frontier.max_depth}, max pages {self.config.max_pages}")

        self.pipeline.start()
        workers = [threading.Thread(target=self._worker, name=f"crawl-worker-{i}", daemon=True)
                   for i in range(self.config.concurrency)]
        try:
            for worker in workers:
                worker.start()
            while any(worker.is_alive() for worker in workers):
                for worker in workers:
                    worker.join(timeout=JOIN_INTERVAL)
                if self._runtime_exceeded():
                    self.stop("runtime_limit")
        finally:
            self.stop_event.set()
            for worker in workers:
                if worker.is_alive():
                    worker.join()
            metrics = self.shutdown()
        return metrics

    def shutdown(self):
        try:
            self.pipeline.close(finalize=True)
        finally:
            self.save_frontier()
            metrics = self.metrics()
            save_json(self.config.metrics_path, metrics.to_dict())
            logger.info(f"[METRICS] {metrics.to_dict()}")
        return metrics

    def save_frontier(self):
        try:
            save_pickle(self.config.frontier_path, self.frontier.serialize())
        except SERIALIZATION_ERRORS as e:
            logger.error(f"[FRONTIER] snapshot failed: {type(e).__name__}: {e}")

    def metrics(self):
        elapsed = self._elapsed()
        with self.stats_lock:
            return CrawlMetrics(
                start_time=self._start_time or datetime.now(timezone.utc).isoformat(),
                end_time=datetime.now(timezone.utc).isoformat(),
                pages_processed=self.pages_processed,
                documents_created=self.documents_created,
                matches_found=self.matches_found,
                error_count=self.errors + self.fetcher.error_count,
                pages_per_second=round(self.pages_processed / elapsed, 4) if elapsed > 0 else 0.0,
                source_breakdown=dict(self.source_breakdown),
                stop_reason=self.stop_reason,
            )
