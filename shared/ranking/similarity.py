"""Cosine similarity and stable score ranking over embedding vectors."""

from __future__ import annotations

from collections.abc import Sequence
from typing import TypeVar

import numpy as np

from shared.errors import DimensionMismatch

T = TypeVar("T")

Vector = Sequence[float] | np.ndarray


def _to_numpy(vector: Vector) -> np.ndarray:
    if isinstance(vector, np.ndarray):
        return vector.astype(float)
    return np.asarray(list(vector), dtype=float)


def cosine_similarity(a: Vector, b: Vector) -> float:
    """
    dot(a, b) / (|a| * |b|), in [-1, 1] for non-zero vectors.

    Raises DimensionMismatch when the lengths differ. A zero vector has no
    direction, so its similarity to anything is 0.0.
    """
    left = _to_numpy(a)
    right = _to_numpy(b)
    if left.shape != right.shape:
        raise DimensionMismatch(left.size, right.size)

    denom = float(np.linalg.norm(left) * np.linalg.norm(right))
    if denom == 0.0:
        return 0.0
    score = float(np.dot(left, right)) / denom
    return max(-1.0, min(1.0, score))


def rank(
    query: Vector,
    candidates: Sequence[tuple[T, Vector | None]],
) -> list[tuple[T, float]]:
    """
    Score every candidate against ``query`` and sort by score, descending.

    Candidates whose vector is None score 0.0 and are kept. Equal scores
    keep their input order. Nothing is filtered here; call sites that only
    want positive matches filter the result themselves.
    """
    scored: list[tuple[T, float]] = []
    for item, vector in candidates:
        score = 0.0 if vector is None else cosine_similarity(query, vector)
        scored.append((item, score))
    # list.sort is stable, so ties stay in input order
    scored.sort(key=lambda pair: pair[1], reverse=True)
    return scored
