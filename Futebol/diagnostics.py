import math


HIGH_SPARSITY = 0.7
LOW_UTILIZATION = 0.8
PROJECTION_FACTOR = 10


def chunk_size_metrics(index):
    """Utilization, sparsity and efficiency of one ChunkIndex."""
    vocabulary = index.vocabulary_size
    total_frequency = sum(entry["totalFrequency"] for entry in index.terms.values())
    cells = index.total_chunks * vocabulary
    sparsity = (cells - index.total_postings) / cells if cells else 0.0
    utilization = index.average_chunk_utilization

    return {
        "chunkSize": index.chunk_size,
        "totalChunks": index.total_chunks,
        "averageChunkUtilization": round(utilization, 6),
        "vocabularySize": vocabulary,
        "totalPostings": index.total_postings,
        "averageTermFrequency": round(total_frequency / vocabulary, 6) if vocabulary else 0.0,
        "sparsityRatio": round(sparsity, 6),
        "indexEfficiency": round(utilization * (1 - sparsity), 6),
    }


def fit_heaps_law(growth):
    """
    Least-squares fit of V = K * N^beta on log-log scale.

    Args:
        growth: list of (tokens seen, vocabulary size) pairs

    Returns:
        dict with k, beta and the projected vocabulary at PROJECTION_FACTOR times
        the current token count, or None with fewer than two usable points
    """
    points = [(math.log(n), math.log(v)) for n, v in growth if n > 0 and v > 0]
    if len({x for x, _ in points}) < 2:
        return None

    mean_x = sum(x for x, _ in points) / len(points)
    mean_y = sum(y for _, y in points) / len(points)
    sxx = sum((x - mean_x) ** 2 for x, _ in points)
    sxy = sum((x - mean_x) * (y - mean_y) for x, y in points)
    beta = sxy / sxx
    k = math.exp(mean_y - beta * mean_x)

    tokens_now = growth[-1][0]
    projected_tokens = tokens_now * PROJECTION_FACTOR
    return {
        "k": round(k, 6),
        "beta": round(beta, 6),
        "tokens": tokens_now,
        "projectedTokens": projected_tokens,
        "projectedVocabulary": int(round(k * projected_tokens ** beta)),
    }


def recommendations_for(metrics):
    notes = []
    size = metrics["chunkSize"]
    if metrics["sparsityRatio"] > HIGH_SPARSITY:
        notes.append(f"chunk size {size}: high sparsity ({metrics['sparsityRatio']:.2f}), "
                     f"consider smaller chunks")
    if metrics["totalChunks"] and metrics["averageChunkUtilization"] < LOW_UTILIZATION:
        notes.append(f"chunk size {size}: low utilization ({metrics['averageChunkUtilization']:.2f}), "
                     f"consider adjusting the chunk size to typical document length")
    return notes


def analyze_chunk_sizes(indexes, vocabulary_growth=(), token_lengths=None,
                        raw_token_count=0, stopword_count=0):
    """
    Compare chunk sizes and pick the one with the best index efficiency
    (ties go to the smaller size).
    """
    per_size = sorted((chunk_size_metrics(index) for index in indexes),
                      key=lambda m: m["chunkSize"])

    optimal = None
    for metrics in per_size:
        if optimal is None or metrics["indexEfficiency"] > optimal["indexEfficiency"]:
            optimal = metrics

    recommendations = []
    for metrics in per_size:
        recommendations.extend(recommendations_for(metrics))
    if optimal is not None:
        recommendations.append(f"recommended chunk size: {optimal['chunkSize']} "
                               f"(efficiency {optimal['indexEfficiency']:.4f})")

    heaps = fit_heaps_law(list(vocabulary_growth))
    if heaps is not None:
        recommendations.append(f"Heaps' law beta={heaps['beta']:.3f}: about "
                               f"{heaps['projectedVocabulary']} terms expected at "
                               f"{heaps['projectedTokens']} tokens")

    token_lengths = token_lengths or {}
    return {
        "chunkSizes": per_size,
        "optimalChunkSize": optimal["chunkSize"] if optimal else None,
        "recommendations": recommendations,
        "heapsLaw": heaps,
        "lexical": {
            "rawTokenCount": raw_token_count,
            "stopwordCount": stopword_count,
            "stopwordFilteringRate": round(stopword_count / raw_token_count, 6) if raw_token_count else 0.0,
            "tokenLengthDistribution": {str(length): count for length, count in sorted(token_lengths.items())},
        },
    }
