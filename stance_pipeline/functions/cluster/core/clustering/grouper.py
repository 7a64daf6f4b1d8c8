"""Topic grouping using similarity-based clustering."""

import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .similarity import calculate_cosine_similarity, find_most_similar, update_centroid
from .vectorize import top_keywords

logger = logging.getLogger(__name__)


class TopicGroup:
    """A topic draft, either loaded from the database or opened this run."""

    def __init__(
        self,
        topic_id: Optional[str] = None,
        title: Optional[str] = None,
        centroid: Optional[List[float]] = None,
        item_count: int = 0,
    ):
        """
        Initialize a topic group.

        Args:
            topic_id: Existing ``topic_drafts`` id (None for new groups)
            title: Representative title
            centroid: Centroid vector (None until the first member arrives)
            item_count: Members already stored for an existing draft
        """
        self.topic_id = topic_id
        self.title = title
        self.centroid = centroid
        self.stored_count = item_count
        self.members: List[Dict[str, Any]] = []

    @property
    def is_new(self) -> bool:
        return self.topic_id is None

    @property
    def item_count(self) -> int:
        return self.stored_count + len(self.members)

    def add_member(
        self,
        item_id: str,
        vector: List[float],
        title: Optional[str] = None,
        tokens: Sequence[str] = (),
    ) -> float:
        """
        Add an item and fold it into the centroid.

        Returns:
            Similarity with the centroid before the update (1.0 for the first member)
        """
        if self.centroid is None:
            similarity = 1.0
            self.centroid = list(vector)
        else:
            similarity = calculate_cosine_similarity(vector, self.centroid)
            self.centroid = update_centroid(self.centroid, self.item_count, vector)

        if not self.title and title:
            self.title = title

        self.members.append({"id": item_id, "title": title, "tokens": list(tokens)})
        return similarity

    @property
    def member_ids(self) -> List[str]:
        return [m["id"] for m in self.members]

    def keywords(self, limit: int = 5) -> List[str]:
        return top_keywords((m["tokens"] for m in self.members), limit=limit)


class TopicGrouper:
    """Assigns items to the most similar topic or opens a new one."""

    def __init__(self, similarity_threshold: float = 0.35):
        """
        Args:
            similarity_threshold: Minimum similarity for an item to join an
                existing topic (0.0 to 1.0)
        """
        if not 0.0 <= similarity_threshold <= 1.0:
            raise ValueError("Similarity threshold must be between 0 and 1")

        self.similarity_threshold = similarity_threshold
        self.groups: List[TopicGroup] = []

    def load_existing_groups(self, rows: Sequence[Dict[str, Any]]) -> None:
        """
        Load pending topic drafts so new items can join them.

        Args:
            rows: ``topic_drafts`` rows with id, title, centroid, item_count
        """
        self.groups = []
        for row in rows:
            centroid = row.get("centroid")
            if not centroid:
                continue
            self.groups.append(
                TopicGroup(
                    topic_id=str(row["id"]),
                    title=row.get("title"),
                    centroid=list(centroid),
                    item_count=int(row.get("item_count") or 0),
                )
            )
        logger.info(f"Loaded {len(self.groups)} existing topic drafts")

    def assign(
        self,
        item_id: str,
        vector: List[float],
        title: Optional[str] = None,
        tokens: Sequence[str] = (),
    ) -> Tuple[TopicGroup, float]:
        """
        Assign an item to the best matching topic or create a new one.

        Returns:
            Tuple of (group, similarity_score)
        """
        centroids = [g.centroid for g in self.groups]
        best_idx, best_similarity = find_most_similar(
            vector, centroids, threshold=self.similarity_threshold
        )

        if best_idx >= 0:
            group = self.groups[best_idx]
            similarity = group.add_member(item_id, vector, title, tokens)
            logger.debug(f"Added item {item_id} to topic (similarity: {similarity:.4f})")
            return (group, similarity)

        group = TopicGroup()
        similarity = group.add_member(item_id, vector, title, tokens)
        self.groups.append(group)
        logger.debug(
            f"Opened new topic for item {item_id} "
            f"(max similarity: {best_similarity:.4f} below threshold)"
        )
        return (group, similarity)

    def touched_groups(self) -> List[TopicGroup]:
        """Groups that received members during this run."""
        return [g for g in self.groups if g.members]
