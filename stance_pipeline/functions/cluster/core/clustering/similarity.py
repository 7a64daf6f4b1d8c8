"""Similarity calculations and centroid updates."""

import logging
from typing import List, Sequence, Tuple

import numpy as np

logger = logging.getLogger(__name__)


def calculate_cosine_similarity(vector_a: Sequence[float], vector_b: Sequence[float]) -> float:
    """
    Calculate cosine similarity between two vectors.

    Args:
        vector_a: First vector
        vector_b: Second vector

    Returns:
        Cosine similarity clamped to [0, 1]

    Raises:
        ValueError: If vectors have different dimensions or are empty
    """
    if len(vector_a) == 0 or len(vector_b) == 0:
        raise ValueError("Vectors cannot be empty")

    if len(vector_a) != len(vector_b):
        raise ValueError(
            f"Vectors must have same dimension "
            f"({len(vector_a)} vs {len(vector_b)})"
        )

    a = np.asarray(vector_a, dtype=np.float32)
    b = np.asarray(vector_b, dtype=np.float32)

    magnitude_a = np.linalg.norm(a)
    magnitude_b = np.linalg.norm(b)

    # Avoid division by zero
    if magnitude_a == 0 or magnitude_b == 0:
        return 0.0

    similarity = np.dot(a, b) / (magnitude_a * magnitude_b)

    # Clamp to [0, 1] range (handles floating point errors)
    return float(max(0.0, min(1.0, similarity)))


def update_centroid(
    centroid: Sequence[float],
    member_count: int,
    vector: Sequence[float],
) -> List[float]:
    """
    Fold one vector into a running-mean centroid and re-normalize it.

    Args:
        centroid: Current centroid
        member_count: Members already represented by ``centroid``
        vector: New member vector

    Returns:
        Updated, L2-normalized centroid
    """
    current = np.asarray(centroid, dtype=np.float32)
    new = np.asarray(vector, dtype=np.float32)
    if current.shape != new.shape:
        raise ValueError(
            f"Centroid and vector dimensions differ ({current.shape[0]} vs {new.shape[0]})"
        )

    merged = (current * member_count + new) / (member_count + 1)
    norm = np.linalg.norm(merged)
    if norm > 0:
        merged = merged / norm
    return merged.tolist()


def find_most_similar(
    query_vector: Sequence[float],
    candidate_vectors: Sequence[Sequence[float]],
    threshold: float = 0.0,
) -> Tuple[int, float]:
    """
    Find the most similar vector from candidates.

    Returns:
        Tuple of (index, similarity) for the most similar candidate at or
        above ``threshold``, or (-1, 0.0) if none qualifies
    """
    best_idx = -1
    best_similarity = 0.0

    for idx, candidate in enumerate(candidate_vectors):
        if len(candidate) != len(query_vector):
            logger.debug("Skipping candidate %d with mismatched dimension", idx)
            continue
        similarity = calculate_cosine_similarity(query_vector, candidate)
        if similarity >= threshold and similarity > best_similarity:
            best_similarity = similarity
            best_idx = idx

    return (best_idx, best_similarity)
