from typing import Iterable, List, Sequence, Tuple, TypeVar
import numpy as np

T = TypeVar("T")

def _to_vec(raw) -> np.ndarray:
    if raw is None:
        raw = []
    return np.asarray([float(x) for x in raw], dtype=np.float32).reshape(-1)

def cosine_similarity(query: Sequence[float], vector: Sequence[float]) -> float:
    """``1 - cosine_distance``: 1.0 same direction, 0.0 orthogonal, -1.0 opposite."""
    q = _to_vec(query)
    e = _to_vec(vector)
    if q.size == 0 or e.size == 0 or q.size != e.size:
        return 0.0
    denom = float(np.linalg.norm(q) * np.linalg.norm(e))
    if denom == 0.0:
        return 0.0
    return float(np.dot(q, e) / denom)

def rank_by_similarity(
    query: Sequence[float],
    candidates: Iterable[Tuple[T, Sequence[float]]],
    top_k: int,
    score_threshold: float,
) -> List[Tuple[float, T]]:
    """Score (item, vector) pairs, drop those under the threshold, best first, at most top_k."""
    scored: List[Tuple[float, T]] = []
    for item, vector in candidates:
        score = cosine_similarity(query, vector)
        if score >= score_threshold:
            scored.append((score, item))
    scored.sort(key=lambda x: x[0], reverse=True)
    return scored[:top_k]
