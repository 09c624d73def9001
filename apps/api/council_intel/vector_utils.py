from __future__ import annotations

import math


def _vector_literal(vec: list[float]) -> str:
    """pgvector text form, e.g. `[0.10000000,0.20000000]`. Non-finite components are rejected."""
    values = [float(x) for x in vec]
    if not all(math.isfinite(x) for x in values):
        raise ValueError("vector contains non-finite values")
    return "[" + ",".join(f"{x:.8f}" for x in values) + "]"
