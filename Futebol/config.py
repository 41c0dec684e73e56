import os
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv


DEFAULT_USER_AGENT = "CrawlerBrasileirao/0.1"
DEFAULT_CONCURRENCY = 6
DEFAULT_PER_HOST_RPS = 1
DEFAULT_TIMEOUT_MS = 15000
DEFAULT_MAX_DEPTH = 3
DEFAULT_MAX_PAGES = 60000
DEFAULT_FALLBACK_LINK_LIMIT = 50
DEFAULT_CHUNK_SIZES = (100, 250, 500)
DEFAULT_MIN_TOKEN_LENGTH = 3
DEFAULT_TOP_TERMS_LIMIT = 20
DEFAULT_MAX_TOKENS_PER_DOCUMENT = 20000
DEFAULT_SNAPSHOT_INTERVAL = 500
MIN_SNAPSHOT_INTERVAL = 50
DEFAULT_QUEUE_SIZE = 1000

FRONTIER_STRATEGIES = ("priority", "dfs", "bfs")


class ConfigError(Exception):
    """Raised for invalid or missing configuration (fatal at startup)."""


@dataclass
class CrawlerConfig:
    user_agent: str = DEFAULT_USER_AGENT
    concurrency: int = DEFAULT_CONCURRENCY
    per_host_rps: int = DEFAULT_PER_HOST_RPS
    request_timeout_ms: int = DEFAULT_TIMEOUT_MS
    max_depth: int = DEFAULT_MAX_DEPTH
    max_pages: int = DEFAULT_MAX_PAGES
    max_runtime_ms: int = 0          # 0 means no wall-clock budget
    frontier_strategy: str = "priority"
    fallback_link_limit: int = DEFAULT_FALLBACK_LINK_LIMIT
    respect_robots: bool = True
    seeds: List[str] = field(default_factory=list)
    seeds_file: Optional[str] = None
    data_dir: str = "data"
    queue_size: int = DEFAULT_QUEUE_SIZE

    @property
    def request_timeout(self):
        return self.request_timeout_ms / 1000.0

    @property
    def max_runtime(self):
        return self.max_runtime_ms / 1000.0 if self.max_runtime_ms > 0 else None

    @property
    def documents_path(self):
        return os.path.join(self.data_dir, "documents.jsonl")

    @property
    def metrics_path(self):
        return os.path.join(self.data_dir, "crawl_metrics.json")

    @property
    def frontier_path(self):
        return os.path.join(self.data_dir, "frontier.pkl")

    def validate(self):
        if self.frontier_strategy not in FRONTIER_STRATEGIES:
            raise ConfigError(f"Unknown frontier strategy '{self.frontier_strategy}', "
                              f"expected one of {', '.join(FRONTIER_STRATEGIES)}")
        for name in ("concurrency", "per_host_rps", "request_timeout_ms", "max_pages"):
            if getattr(self, name) <= 0:
                raise ConfigError(f"{name} must be positive")
        if self.max_depth < 0:
            raise ConfigError("max_depth must not be negative")
        return self


@dataclass
class IndexConfig:
    chunk_sizes: List[int] = field(default_factory=lambda: list(DEFAULT_CHUNK_SIZES))
    primary_chunk_size: Optional[int] = None
    min_token_length: int = DEFAULT_MIN_TOKEN_LENGTH
    top_terms_limit: int = DEFAULT_TOP_TERMS_LIMIT
    max_tokens_per_document: int = DEFAULT_MAX_TOKENS_PER_DOCUMENT
    snapshot_interval: int = DEFAULT_SNAPSHOT_INTERVAL
    output_dir: str = os.path.join("data", "index")

    def __post_init__(self):
        self.chunk_sizes = sorted(set(self.chunk_sizes))
        if self.primary_chunk_size is None and self.chunk_sizes:
            self.primary_chunk_size = self.chunk_sizes[0]
        self.snapshot_interval = max(MIN_SNAPSHOT_INTERVAL, self.snapshot_interval)

    def index_path(self, chunk_size=None):
        size = chunk_size or self.primary_chunk_size
        return os.path.join(self.output_dir, f"inverted_index_{size}.pkl")

    @property
    def metadata_path(self):
        return os.path.join(self.output_dir, "index_metadata.json")

    @property
    def diagnostics_path(self):
        return os.path.join(self.output_dir, "hyperparameter_analysis.json")

    def validate(self):
        if not self.chunk_sizes or any(size <= 0 for size in self.chunk_sizes):
            raise ConfigError("chunk sizes must be a non-empty list of positive integers")
        if self.primary_chunk_size not in self.chunk_sizes:
            raise ConfigError(f"primary chunk size {self.primary_chunk_size} is not one of {self.chunk_sizes}")
        if self.min_token_length < 1:
            raise ConfigError("min_token_length must be at least 1")
        if self.top_terms_limit < 0 or self.max_tokens_per_document <= 0:
            raise ConfigError("top_terms_limit and max_tokens_per_document must be positive")
        return self

    def to_dict(self):
        return {
            "chunkSizes": list(self.chunk_sizes),
            "primaryChunkSize": self.primary_chunk_size,
            "minTokenLength": self.min_token_length,
            "topTermsLimit": self.top_terms_limit,
            "maxTokensPerDocument": self.max_tokens_per_document,
            "snapshotInterval": self.snapshot_interval,
        }


@dataclass
class SearchConfig:
    limit: int = 10
    min_score: float = 0.05
    index_dir: str = os.path.join("data", "index")
    chunk_size: int = DEFAULT_CHUNK_SIZES[0]
    documents_path: Optional[str] = os.path.join("data", "documents.jsonl")

    @property
    def index_path(self):
        return os.path.join(self.index_dir, f"inverted_index_{self.chunk_size}.pkl")


def _env_int(name, default):
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got '{raw}'")


def _env_bool(name, default):
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_list(name):
    raw = os.environ.get(name, "")
    return [item.strip() for item in raw.split(",") if item.strip()]


def parse_chunk_sizes(raw):
    try:
        return [int(part) for part in raw.split(",") if part.strip()]
    except ValueError:
        raise ConfigError(f"chunk sizes must be comma separated integers, got '{raw}'")


def load_config(env_file=None):
    """
    Build the crawler, index and search configuration from the environment.

    Args:
        env_file: optional path to a .env file; when omitted python-dotenv searches
            the working directory.

    Returns:
        tuple (CrawlerConfig, IndexConfig, SearchConfig)
    """
    load_dotenv(env_file)

    data_dir = os.environ.get("DATA_DIR", "data")
    crawler = CrawlerConfig(
        user_agent=os.environ.get("CRAWLER_USER_AGENT", DEFAULT_USER_AGENT),
        concurrency=_env_int("GLOBAL_MAX_CONCURRENCY", DEFAULT_CONCURRENCY),
        per_host_rps=_env_int("PER_DOMAIN_RPS", DEFAULT_PER_HOST_RPS),
        request_timeout_ms=_env_int("REQUEST_TIMEOUT_MS", DEFAULT_TIMEOUT_MS),
        max_depth=_env_int("MAX_DEPTH", DEFAULT_MAX_DEPTH),
        max_pages=_env_int("MAX_PAGES", DEFAULT_MAX_PAGES),
        max_runtime_ms=_env_int("MAX_RUNTIME_MS", 0),
        frontier_strategy=os.environ.get("FRONTIER_STRATEGY", "priority").strip().lower(),
        fallback_link_limit=_env_int("FALLBACK_LINK_LIMIT", DEFAULT_FALLBACK_LINK_LIMIT),
        respect_robots=_env_bool("RESPECT_ROBOTS", True),
        seeds=_env_list("SEEDS"),
        seeds_file=os.environ.get("SEEDS_FILE") or None,
        data_dir=data_dir,
        queue_size=_env_int("PERSISTENCE_QUEUE_SIZE", DEFAULT_QUEUE_SIZE),
    )

    chunk_sizes = os.environ.get("INDEX_CHUNK_SIZES")
    index = IndexConfig(
        chunk_sizes=parse_chunk_sizes(chunk_sizes) if chunk_sizes else list(DEFAULT_CHUNK_SIZES),
        primary_chunk_size=_env_int("INDEX_PRIMARY_CHUNK_SIZE", None),
        min_token_length=_env_int("MIN_TOKEN_LENGTH", DEFAULT_MIN_TOKEN_LENGTH),
        top_terms_limit=_env_int("TOP_TERMS_LIMIT", DEFAULT_TOP_TERMS_LIMIT),
        max_tokens_per_document=_env_int("MAX_TOKENS_PER_DOCUMENT", DEFAULT_MAX_TOKENS_PER_DOCUMENT),
        snapshot_interval=_env_int("INDEX_SNAPSHOT_INTERVAL", DEFAULT_SNAPSHOT_INTERVAL),
        output_dir=os.path.join(data_dir, "index"),
    )

    search = SearchConfig(
        index_dir=index.output_dir,
        chunk_size=index.primary_chunk_size,
        documents_path=crawler.documents_path,
    )

    return crawler.validate(), index.validate(), search
