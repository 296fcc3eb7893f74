"""Brute-force cosine ranking over a batch of description embeddings."""

import logging
import math
from dataclasses import dataclass
from typing import Sequence

import numpy as np

from errors import DimensionMismatchError

logger = logging.getLogger(__name__)


@dataclass
class SimilarityCandidate:
    id: str
    vector: Sequence[float]


@dataclass
class RankedItem:
    id: str
    score: float

    @property
    def comparable(self) -> bool:
        return math.isfinite(self.score)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """dot(a, b) / (|a| |b|). NaN when either vector has zero norm."""
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.shape != vb.shape:
        raise DimensionMismatchError(va.size, vb.size)
    with np.errstate(divide="ignore", invalid="ignore"):
        return float(np.dot(va, vb) / (np.linalg.norm(va) * np.linalg.norm(vb)))


def cosine_scores(query: Sequence[float], matrix: np.ndarray) -> np.ndarray:
    """Cosine similarity of ``query`` against each row of ``matrix``."""
    q = np.asarray(query, dtype=np.float64)
    if matrix.ndim != 2 or matrix.shape[1] != q.size:
        raise DimensionMismatchError(q.size, matrix.shape[-1] if matrix.ndim else 0)
    with np.errstate(divide="ignore", invalid="ignore"):
        norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(q)
        return (matrix @ q) / norms


def rank(
    query: Sequence[float],
    candidates: Sequence[SimilarityCandidate | tuple[str, Sequence[float]]],
    limit: int | None = None,
) -> list[RankedItem]:
    """Rank candidates by cosine similarity to ``query``, best first.

    Ties keep input order. Non-finite scores (zero-norm vectors) sort last,
    also in input order. ``limit`` truncates after sorting.

    Raises:
        DimensionMismatchError: a candidate vector differs in length from the query.
    """
    if limit is not None and limit < 0:
        raise ValueError("limit must be non-negative")

    pairs = [
        (c.id, c.vector) if isinstance(c, SimilarityCandidate) else (c[0], c[1])
        for c in candidates
    ]
    if not pairs:
        return []

    dim = len(query)
    for cid, vec in pairs:
        if len(vec) != dim:
            raise DimensionMismatchError(dim, len(vec), cid)

    matrix = np.asarray([vec for _, vec in pairs], dtype=np.float64).reshape(len(pairs), dim)
    scores = cosine_scores(query, matrix)

    finite = np.isfinite(scores)
    # Sort key: non-finite last, then score descending; sorted() is stable
    order = sorted(
        range(len(pairs)),
        key=lambda i: (0, -scores[i]) if finite[i] else (1, 0.0),
    )
    ranked = [RankedItem(pairs[i][0], float(scores[i])) for i in order]
    if limit is not None:
        ranked = ranked[:limit]
    return ranked
