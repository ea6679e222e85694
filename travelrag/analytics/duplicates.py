"""Near-duplicate clustering over stored embeddings"""
import asyncio
import logging
from typing import Dict, Iterable, List, Optional, Tuple

from ..config import settings
from ..rag.vector_store import VectorStore, get_vector_store
from ..schemas.analytics import DuplicateGroup
from ..schemas.corpus import NeighborPair, SourceType

logger = logging.getLogger(__name__)


class UnionFind:
    """Disjoint sets over string ids, with path compression and union by size"""

    def __init__(self):
        self._parent: Dict[str, str] = {}
        self._size: Dict[str, int] = {}

    def add(self, item: str) -> None:
        if item not in self._parent:
            self._parent[item] = item
            self._size[item] = 1

    def find(self, item: str) -> str:
        self.add(item)
        root = item
        while self._parent[root] != root:
            root = self._parent[root]
        while self._parent[item] != root:
            self._parent[item], item = root, self._parent[item]
        return root

    def union(self, a: str, b: str) -> str:
        root_a, root_b = self.find(a), self.find(b)
        if root_a == root_b:
            return root_a
        if self._size[root_a] < self._size[root_b]:
            root_a, root_b = root_b, root_a
        self._parent[root_b] = root_a
        self._size[root_a] += self._size[root_b]
        return root_a

    def groups(self) -> Dict[str, List[str]]:
        """Members keyed by root, including singletons"""
        result: Dict[str, List[str]] = {}
        for item in self._parent:
            result.setdefault(self.find(item), []).append(item)
        return result


def cluster_pairs(pairs: Iterable[NeighborPair], threshold: float) -> List[DuplicateGroup]:
    """
    Group documents connected by pairs at or above threshold.

    Each group reports the highest similarity among its pairs; groups are
    sorted by that value, highest first.
    """
    uf = UnionFind()
    kept: List[Tuple[str, str, float]] = []
    for pair in pairs:
        if pair.left_id == pair.right_id or pair.similarity < threshold:
            continue
        uf.union(pair.left_id, pair.right_id)
        kept.append((pair.left_id, pair.right_id, pair.similarity))

    max_by_root: Dict[str, float] = {}
    for left, _, similarity in kept:
        root = uf.find(left)
        max_by_root[root] = max(max_by_root.get(root, 0.0), similarity)

    groups = [
        DuplicateGroup(member_ids=set(members), max_similarity=max_by_root[root])
        for root, members in uf.groups().items()
        if len(members) >= 2
    ]
    groups.sort(key=lambda group: group.max_similarity, reverse=True)
    return groups


class DuplicateDetector:
    """
    Finds clusters of near-duplicate documents.

    Every embedded document is compared against its top-N nearest neighbours
    (queried in bounded windows); similar pairs are merged transitively.
    """

    def __init__(self, store: Optional[VectorStore] = None, sleep=asyncio.sleep):
        self.store = store or get_vector_store()
        self._sleep = sleep

    async def find_groups(
        self,
        source_types: Iterable[SourceType],
        threshold: Optional[float] = None,
        top_n: Optional[int] = None
    ) -> List[DuplicateGroup]:
        """
        Args:
            source_types: Corpora to scan
            threshold: Minimum pair similarity, defaults to DUPLICATE_THRESHOLD (0.92)
            top_n: Neighbours per document, defaults to DUPLICATE_NEIGHBORS (5)

        Returns:
            Groups with at least two members, highest max_similarity first
        """
        threshold = settings.duplicate_threshold if threshold is None else threshold
        top_n = top_n or settings.duplicate_neighbors
        window = max(1, settings.concurrency_window)

        document_ids = await self.store.list_document_ids(source_types)
        logger.info(f"[duplicates] Scanning {len(document_ids)} documents (threshold={threshold}, top_n={top_n})")

        pairs: List[NeighborPair] = []
        failed = 0
        for start in range(0, len(document_ids), window):
            chunk = document_ids[start:start + window]
            results = await asyncio.gather(
                *(self.store.nearest_neighbors(doc_id, top_n) for doc_id in chunk),
                return_exceptions=True
            )
            for doc_id, result in zip(chunk, results):
                if isinstance(result, Exception):
                    failed += 1
                    logger.warning(f"[duplicates] Neighbour query failed for {doc_id}: {result}")
                    continue
                pairs.extend(result)
            if start + window < len(document_ids):
                await self._sleep(settings.inter_batch_delay_seconds)

        groups = cluster_pairs(pairs, threshold)
        logger.info(
            f"[duplicates] {len(groups)} groups from {len(pairs)} neighbour pairs "
            f"({failed} failed queries)"
        )
        return groups
