"""
Vector similarity helpers
"""

import numpy as np


def cosine_similarity(a: list[float], b: list[float]) -> float:
    """코사인 유사도 (어느 한쪽 norm이 0이면 0.0)"""
    a_np = np.asarray(a, dtype=float)
    b_np = np.asarray(b, dtype=float)

    if a_np.shape != b_np.shape:
        raise ValueError(f"Vector dimensions differ: {a_np.shape[0]} != {b_np.shape[0]}")

    norm_a = np.linalg.norm(a_np)
    norm_b = np.linalg.norm(b_np)

    if norm_a == 0 or norm_b == 0:
        return 0.0

    return float(np.dot(a_np, b_np) / (norm_a * norm_b))
