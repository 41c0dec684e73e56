import argparse
import json
import logging
import pickle
import signal
import sys

from Futebol.adapters import AdapterRegistry
from Futebol.config import ConfigError, load_config, parse_chunk_sizes
from Futebol.crawler import CrawlDriver
from Futebol.fetcher import Fetcher
from Futebol.frontier import Frontier
from Futebol.indexer import InvertedIndexBuilder
from Futebol.logger import setup_logging
from Futebol.pipeline import DocumentPipeline
from Futebol.politeness import PolitenessGate
from Futebol.rebuild import rebuild_index
from Futebol.search_engine import SearchEngine
from Futebol.seeds import load_seeds
from Futebol.text_preprocessor import LexicalAnalyzer


logger = logging.getLogger(__name__)


def init_search(search_config, index_config):
    analyzer = LexicalAnalyzer(min_token_length=index_config.min_token_length,
                               top_terms_limit=index_config.top_terms_limit)
    return SearchEngine.from_config(search_config, analyzer=analyzer)


def search(query_text, engine, limit=10, min_score=0.05, offset=0, page_types=None):
    return engine.search(query_text, limit=limit, min_score=min_score, offset=offset,
                         page_types=page_types)


def restore_frontier(frontier, path):
    try:
        with open(path, "rb") as f:
            snapshot = pickle.load(f)
    except FileNotFoundError:
        logger.info(f"[FRONTIER] no snapshot at {path}, starting fresh")
        return 0
    except (OSError, pickle.UnpicklingError, EOFError) as e:
        logger.error(f"[FRONTIER] could not read {path}: {e}")
        return 0
    return frontier.restore(snapshot)


def initialize_crawling(crawler_config, index_config, resume=False):
    """
    Wire the crawl components together and run the crawl.

    Raises:
        ConfigError: when no seeds are configured
    """
    seeds = load_seeds(crawler_config)

    analyzer = LexicalAnalyzer(min_token_length=index_config.min_token_length,
                               top_terms_limit=index_config.top_terms_limit)
    frontier = Frontier(strategy=crawler_config.frontier_strategy, max_depth=crawler_config.max_depth)
    gate = PolitenessGate(crawler_config.user_agent,
                          requests_per_second=crawler_config.per_host_rps,
                          respect_robots=crawler_config.respect_robots)
    fetcher = Fetcher(gate, crawler_config.user_agent, timeout=crawler_config.request_timeout)
    builder = InvertedIndexBuilder(index_config)
    pipeline = DocumentPipeline(crawler_config.documents_path, builder, maxsize=crawler_config.queue_size)

    if resume:
        restore_frontier(frontier, crawler_config.frontier_path)
        builder.resume()

    driver = CrawlDriver(crawler_config, frontier, fetcher, pipeline, analyzer, AdapterRegistry())
    driver.seed(seeds)
    signal.signal(signal.SIGINT, driver.handle_interrupt)
    return driver.run()


def print_results(response):
    print(f"\nQuery: {response['query']}  ({response['total']} results, "
          f"{response['processingTimeMs']:.1f} ms)")
    print(f"{'SCORE':>8}  {'TYPE':<14} URL")
    print("-" * 100)
    for result in response["results"]:
        print(f"{result['score']:>8.4f}  {result['pageType']:<14} {result['url']}")
        if result["title"]:
            print(f"{'':>24}{result['title']}")


def build_parser():
    parser = argparse.ArgumentParser(
        prog="main.py",
        description="Crawl Brazilian football pages, build the inverted index and search it.")
    parser.add_argument("--env-file", default=None, help="Path to a .env file.")
    parser.add_argument("--log-file", default="log/crawler.log", help="Log file (appended).")
    parser.add_argument("--verbose", action="store_true", help="Log at DEBUG level.")
    sub = parser.add_subparsers(dest="command", required=True)

    crawl = sub.add_parser("crawl", help="Run the crawler and build the index.")
    crawl.add_argument("--seed", action="append", default=[], help="Seed URL (repeatable).")
    crawl.add_argument("--seeds-file", help="JSON seed file grouped by category.")
    crawl.add_argument("--max-pages", type=int)
    crawl.add_argument("--max-depth", type=int)
    crawl.add_argument("--max-runtime", type=int, help="Wall-clock budget in seconds.")
    crawl.add_argument("--concurrency", type=int)
    crawl.add_argument("--strategy", choices=["priority", "dfs", "bfs"])
    crawl.add_argument("--no-robots", action="store_true", help="Ignore robots.txt.")
    crawl.add_argument("--chunk-sizes", help="Comma separated chunk sizes, e.g. 100,250,500.")
    crawl.add_argument("--resume", action="store_true", help="Restore the frontier and index snapshots.")

    query = sub.add_parser("search", help="Query the persisted index.")
    query.add_argument("query", help="Query text.")
    query.add_argument("--limit", type=int, default=10)
    query.add_argument("--offset", type=int, default=0)
    query.add_argument("--min-score", type=float, default=0.05)
    query.add_argument("--page-type", action="append", default=None, help="Keep only this page type (repeatable).")
    query.add_argument("--json", action="store_true", help="Print the raw JSON response.")

    sub.add_parser("rebuild-index", help="Rebuild the index from documents.jsonl.")
    return parser


def apply_crawl_overrides(args, crawler_config, index_config):
    if args.seed:
        crawler_config.seeds = crawler_config.seeds + args.seed
    if args.seeds_file:
        crawler_config.seeds_file = args.seeds_file
    if args.max_pages is not None:
        crawler_config.max_pages = args.max_pages
    if args.max_depth is not None:
        crawler_config.max_depth = args.max_depth
    if args.max_runtime is not None:
        crawler_config.max_runtime_ms = args.max_runtime * 1000
    if args.concurrency is not None:
        crawler_config.concurrency = args.concurrency
    if args.strategy:
        crawler_config.frontier_strategy = args.strategy
    if args.no_robots:
        crawler_config.respect_robots = False
    if args.chunk_sizes:
        index_config.chunk_sizes = sorted(set(parse_chunk_sizes(args.chunk_sizes)))
        if index_config.primary_chunk_size not in index_config.chunk_sizes:
            index_config.primary_chunk_size = index_config.chunk_sizes[0]
    crawler_config.validate()
    index_config.validate()


def main(argv=None):
    args = build_parser().parse_args(argv)
    setup_logging(args.log_file, level=logging.DEBUG if args.verbose else logging.INFO)

    try:
        crawler_config, index_config, search_config = load_config(args.env_file)

        if args.command == "crawl":
            apply_crawl_overrides(args, crawler_config, index_config)
            metrics = initialize_crawling(crawler_config, index_config, resume=args.resume)
            print(json.dumps(metrics.to_dict(), indent=2, ensure_ascii=False))

        elif args.command == "search":
            engine = init_search(search_config, index_config)
            response = search(args.query, engine, limit=args.limit, min_score=args.min_score,
                              offset=args.offset, page_types=args.page_type)
            if args.json:
                print(json.dumps(response, indent=2, ensure_ascii=False))
            else:
                print_results(response)

        elif args.command == "rebuild-index":
            analyzer = LexicalAnalyzer(min_token_length=index_config.min_token_length,
                                       top_terms_limit=index_config.top_terms_limit)
            metadata = rebuild_index(crawler_config.documents_path, index_config, analyzer)
            print(json.dumps(metadata, indent=2))

    except ConfigError as e:
        logger.error(f"[FATAL] {e}")
        return 1
    except FileNotFoundError as e:
        logger.error(f"[FATAL] missing file: {e.filename}. Run a crawl first.")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
