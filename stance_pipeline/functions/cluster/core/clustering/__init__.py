"""Clustering utilities for grouping ingested items into topics."""

from .grouper import TopicGroup, TopicGrouper
from .similarity import calculate_cosine_similarity, find_most_similar, update_centroid
from .vectorize import tokenize, top_keywords, vectorize

__all__ = [
    "TopicGroup",
    "TopicGrouper",
    "calculate_cosine_similarity",
    "find_most_similar",
    "update_centroid",
    "tokenize",
    "top_keywords",
    "vectorize",
]
