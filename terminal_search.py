# Runs every query of a tab-separated file (id<TAB>query) against the index and prints the top results.
import argparse
import time

from Futebol.config import load_config
from Futebol.logger import setup_logging
from main import init_search, search


def load_queries(filename):
    queries = []
    with open(filename, "r", encoding="utf-8") as f:
        for line in f:
            parts = line.strip().split('\t')
            if len(parts) > 1:
                queries.append(parts[1])
            elif parts[0]:
                queries.append(parts[0])
    return queries


def main():
    parser = argparse.ArgumentParser(
        prog="terminal_search.py",
        description="Test the search functionality with multiple queries from a text file.")
    parser.add_argument("--filename", type=str, required=True, help="Path to the text file containing queries.")
    parser.add_argument("--limit", type=int, default=10, help="Results per query.")
    parser.add_argument("--env-file", default=None)
    args = parser.parse_args()

    setup_logging(log_file=None)
    start = time.time()
    _, index_config, search_config = load_config(args.env_file)
    engine = init_search(search_config, index_config)
    queries = load_queries(args.filename)
    print(f"Loaded {len(queries)} queries in {time.time() - start:.2f} seconds")

    for query in queries:
        response = search(query, engine, limit=args.limit)
        print("\n============================================================")
        print(f"Query: {response['query']} ({response['total']} results, {response['processingTimeMs']:.1f} ms)")
        print(f"{'URL':<100} {'SCORE':>10}")
        print("-" * 111)
        for result in response['results']:
            print(f"{result['url']:<100} {result['score']:>10.4f}")
    print("\n============================================================")


if __name__ == "__main__":
    main()
