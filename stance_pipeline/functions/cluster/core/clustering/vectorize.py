"""Hashed bag-of-words vectors for item titles and summaries."""

from __future__ import annotations

import hashlib
import re
from collections import Counter
from typing import Iterable, List, Optional

import numpy as np

VECTOR_DIMENSIONS = 512
MIN_TOKEN_LENGTH = 3

_TOKEN_RE = re.compile(r"[a-z0-9][a-z0-9'\-]+")

STOPWORDS = frozenset(
    """
    about after again against all also and any are around because been before
    being between both but can could did does doing down during each few for
    from further had has have having her here hers him his how into its just
    more most new news not now off once only other our out over own said same
    says she should some such than that the their them then there these they
    this those through too under until very was were what when where which
    while who whom why will with would you your
    """.split()
)


def tokenize(text: Optional[str]) -> List[str]:
    """Lowercase word tokens without stopwords or very short words."""
    if not text:
        return []
    tokens = []
    for raw in _TOKEN_RE.findall(text.lower()):
        token = raw.strip("'-")
        if len(token) >= MIN_TOKEN_LENGTH and token not in STOPWORDS:
            tokens.append(token)
    return tokens


def _bucket(token: str, dimensions: int) -> int:
    digest = hashlib.md5(token.encode("utf-8")).digest()
    return int.from_bytes(digest[:4], "big") % dimensions


def vectorize(tokens: Iterable[str], dimensions: int = VECTOR_DIMENSIONS) -> List[float]:
    """
    Build an L2-normalized term-frequency vector using the hashing trick.

    Hashing is stable across processes, so centroids stored by one
    invocation stay comparable with vectors built by the next.
    """
    vector = np.zeros(dimensions, dtype=np.float32)
    for token in tokens:
        vector[_bucket(token, dimensions)] += 1.0
    norm = np.linalg.norm(vector)
    if norm > 0:
        vector = vector / norm
    return vector.tolist()


def top_keywords(token_lists: Iterable[Iterable[str]], limit: int = 5) -> List[str]:
    """Most frequent tokens across a group's members."""
    counts: Counter = Counter()
    for tokens in token_lists:
        counts.update(set(tokens))
    return [token for token, _ in counts.most_common(limit)]
