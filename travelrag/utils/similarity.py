"""Vector and string similarity helpers for the in-process store and analytics"""
import re
from typing import FrozenSet, List, Sequence

import numpy as np

_WORD_RE = re.compile(r"[^\W_]+", re.UNICODE)


def _as_array(vector: Sequence[float]) -> np.ndarray:
    return np.asarray(vector, dtype=np.float64)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity of two vectors (1 - cosine distance).

    Raises:
        ValueError: If the vectors have different dimensions
    """
    va, vb = _as_array(a), _as_array(b)
    if va.shape != vb.shape:
        raise ValueError(f"Embedding dimension mismatch: {va.shape[0]} vs {vb.shape[0]}")
    denom = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if denom == 0.0:
        return 0.0
    return float(np.dot(va, vb) / denom)


def mean_vector(vectors: Sequence[Sequence[float]]) -> List[float]:
    """
    Element-wise mean of equally sized vectors (a category centroid).

    Raises:
        ValueError: If vectors is empty or dimensions differ
    """
    if not vectors:
        raise ValueError("Cannot average an empty set of vectors")
    dims = {len(v) for v in vectors}
    if len(dims) != 1:
        raise ValueError(f"Embedding dimension mismatch in centroid input: {sorted(dims)}")
    return np.mean(np.asarray(vectors, dtype=np.float64), axis=0).tolist()


def trigrams(text: str) -> FrozenSet[str]:
    """
    Trigram set with pg_trgm semantics.

    Each alphanumeric word is lower-cased and padded with two leading
    spaces and one trailing space before being cut into 3-grams.
    """
    grams = set()
    for word in _WORD_RE.findall((text or "").lower()):
        padded = f"  {word} "
        for i in range(len(padded) - 2):
            grams.add(padded[i:i + 3])
    return frozenset(grams)


def trigram_similarity(a: str, b: str) -> float:
    """Shared trigrams over all trigrams (pg_trgm `similarity()`)"""
    ta, tb = trigrams(a), trigrams(b)
    if not ta or not tb:
        return 0.0
    return len(ta & tb) / len(ta | tb)
