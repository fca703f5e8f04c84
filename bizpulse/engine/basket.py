"""
Market basket association mining.

Counts how often each unordered pair of products is bought together. Callers
bound the input to a lookback window so the pair counter stays small.
"""

from collections import Counter
from itertools import combinations
from typing import Iterable, Optional


def count_pairs(baskets: Iterable[Iterable[str]]) -> Counter:
    """Co-occurrence count per (a, b) pair, a < b, each basket deduplicated."""
    counts: Counter = Counter()
    for basket in baskets:
        items = sorted({item for item in basket if item})
        counts.update(combinations(items, 2))
    return counts


def frequent_pairs(
    baskets: Iterable[Iterable[str]],
    min_support: int = 2,
    top_k: int = 10,
) -> list[tuple[tuple[str, str], int]]:
    """
    Pairs bought together at least `min_support` times.

    Returns:
        Up to `top_k` ((a, b), count) tuples, most frequent first, ties
        broken by product ids
    """
    counts = count_pairs(baskets)
    kept = [(pair, n) for pair, n in counts.items() if n >= min_support]
    kept.sort(key=lambda entry: (-entry[1], entry[0]))
    return kept[:top_k]


def enrich_pairs(
    pairs: list[tuple[tuple[str, str], int]],
    names: Optional[dict[str, str]] = None,
) -> list[dict]:
    names = names or {}
    return [
        {
            "product_a_id": a,
            "product_b_id": b,
            "product_a": names.get(a, a),
            "product_b": names.get(b, b),
            "times_bought_together": count,
        }
        for (a, b), count in pairs
    ]
