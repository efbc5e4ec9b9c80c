"""Seedable random generators.

Every stochastic operation takes an explicit numpy Generator; nothing in
the engine touches the ``random`` module or numpy's global state.
"""

from __future__ import annotations

import numpy as np


def make_rng(seed: int | None = None) -> np.random.Generator:
    """Create a PCG64 generator. ``None`` draws fresh OS entropy."""
    return np.random.default_rng(seed)
