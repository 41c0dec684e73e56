import heapq
import itertools
import logging
import threading
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from typing import Optional

from Futebol.url_utils import canonicalize_url, is_blocked_url


logger = logging.getLogger(__name__)

# Consumed prefix of the BFS list is dropped once it grows past this size
BFS_COMPACT_THRESHOLD = 1024


@dataclass
class CrawlTask:
    url: str
    depth: int
    priority: float
    source_page_type: Optional[str] = None
    source: Optional[str] = None

    def to_dict(self):
        return asdict(self)

    @classmethod
    def from_dict(cls, data):
        return cls(
            url=data["url"],
            depth=int(data["depth"]),
            priority=float(data["priority"]),
            source_page_type=data.get("source_page_type"),
            source=data.get("source"),
        )


class Frontier:
    """
    Thread-safe crawl frontier.

    Tasks are deduplicated by canonical URL across the queued and visited sets,
    so a canonical URL is handed out by pop() at most once for the lifetime of
    the frontier (including after restore()).

    Strategies:
        priority: max-heap on task.priority, ties broken by insertion order
        dfs: LIFO
        bfs: FIFO
    """

    def __init__(self, strategy="priority", max_depth=3):
        if strategy not in ("priority", "dfs", "bfs"):
            raise ValueError(f"unknown frontier strategy: {strategy}")
        self.strategy = strategy
        self.max_depth = max_depth

        self._lock = threading.Lock()
        self._heap = []          # priority: (-priority, seq, canonical, task)
        self._items = []         # dfs/bfs: (canonical, task)
        self._head = 0           # bfs read position
        self._seq = itertools.count()

        self.queued = set()
        self.visited = set()

    def __len__(self):
        with self._lock:
            return self._size()

    def _size(self):
        if self.strategy == "priority":
            return len(self._heap)
        return len(self._items) - self._head

    @property
    def visited_count(self):
        with self._lock:
            return len(self.visited)

    def is_empty(self):
        return len(self) == 0

    def push(self, task):
        """
        Enqueue a task unless it is too deep, deny-listed or already known.

        Returns:
            bool: True if the task was added
        """
        if task.depth > self.max_depth:
            logger.debug(f"[FRONTIER] depth {task.depth} > {self.max_depth}, rejected {task.url}")
            return False
        try:
            canonical = canonicalize_url(task.url)
        except ValueError:
            logger.debug(f"[FRONTIER] malformed URL rejected: {task.url}")
            return False
        if is_blocked_url(canonical):
            logger.debug(f"[FRONTIER] deny-listed URL rejected: {task.url}")
            return False

        with self._lock:
            if canonical in self.queued or canonical in self.visited:
                return False
            self.queued.add(canonical)
            self._insert(canonical, task)
        return True

    def _insert(self, canonical, task):
        if self.strategy == "priority":
            heapq.heappush(self._heap, (-task.priority, next(self._seq), canonical, task))
        else:
            self._items.append((canonical, task))

    def pop(self):
        """Remove and return the next task (marking it visited), or None when empty."""
        with self._lock:
            if self._size() == 0:
                return None

            if self.strategy == "priority":
                _, _, canonical, task = heapq.heappop(self._heap)
            elif self.strategy == "dfs":
                canonical, task = self._items.pop()
            else:
                canonical, task = self._items[self._head]
                self._items[self._head] = None
                self._head += 1
                self._compact()

            self.queued.discard(canonical)
            self.visited.add(canonical)
            return task

    def _compact(self):
        if self._head >= BFS_COMPACT_THRESHOLD and self._head * 2 >= len(self._items):
            del self._items[:self._head]
            self._head = 0

    def has(self, url):
        try:
            canonical = canonicalize_url(url)
        except ValueError:
            return False
        with self._lock:
            return canonical in self.queued or canonical in self.visited

    def _pending_tasks(self):
        if self.strategy == "priority":
            return [entry[3] for entry in sorted(self._heap)]
        pending = [task for _, task in self._items[self._head:]]
        return pending[::-1] if self.strategy == "dfs" else pending

    def serialize(self):
        """Snapshot of the pending queue (in pop order) and the visited set."""
        with self._lock:
            return {
                "strategy": self.strategy,
                "queue": [task.to_dict() for task in self._pending_tasks()],
                "visited": sorted(self.visited),
                "createdAt": datetime.now(timezone.utc).isoformat(),
            }

    def restore(self, snapshot):
        """
        Replace the frontier state with a snapshot produced by serialize().

        The deny-list and max depth are applied again, so entries blocked by a
        newer policy are dropped.
        """
        with self._lock:
            self._heap = []
            self._items = []
            self._head = 0
            self.queued = set()
            self.visited = {url for url in snapshot.get("visited", []) if not is_blocked_url(url)}

        tasks = [CrawlTask.from_dict(item) for item in snapshot.get("queue", [])]
        if self.strategy == "dfs":
            # serialize() lists dfs tasks top of stack first
            tasks.reverse()

        restored = sum(1 for task in tasks if self.push(task))
        dropped = len(tasks) - restored
        logger.info(f"[FRONTIER] restored {restored} queued / {len(self.visited)} visited URLs "
                    f"({dropped} dropped by policy)")
        return restored
