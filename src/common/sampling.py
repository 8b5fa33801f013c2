# ABOUTME: Generates Normal, Gamma, and Beta variates from a seedable uniform source.
# ABOUTME: Supplies the posterior draws used by Thompson Sampling.

from __future__ import annotations

import math
from typing import Optional

import numpy as np


class RandomVariateSampler:
    """
    Random variate generator built on a single uniform stream.

    Algorithms:
    - normal: Box-Muller transform on two independent uniforms
    - gamma: Marsaglia-Tsang squeeze method for shape >= 1; for shape < 1 the
      boost identity gamma(shape + 1) * U^(1/shape)
    - beta: ratio of two unit-scale gammas

    Parameters must be positive; behavior for shape/alpha/beta <= 0 is undefined.
    """

    def __init__(self, seed: Optional[int] = None, rng: Optional[np.random.Generator] = None):
        self.rng = rng if rng is not None else np.random.default_rng(seed)

    def uniform(self) -> float:
        """Uniform draw in [0, 1)."""
        return float(self.rng.random())

    def normal(self, mean: float = 0.0, stddev: float = 1.0) -> float:
        # 1 - U lies in (0, 1] so the log is always finite.
        u1 = 1.0 - self.uniform()
        u2 = self.uniform()
        z0 = math.sqrt(-2.0 * math.log(u1)) * math.cos(2.0 * math.pi * u2)
        return z0 * stddev + mean

    def gamma(self, shape: float, scale: float = 1.0) -> float:
        if shape < 1.0:
            u = 1.0 - self.uniform()
            return self.gamma(shape + 1.0, scale) * u ** (1.0 / shape)

        d = shape - 1.0 / 3.0
        c = 1.0 / math.sqrt(9.0 * d)
        while True:
            x = self.normal(0.0, 1.0)
            v = 1.0 + c * x
            while v <= 0.0:
                x = self.normal(0.0, 1.0)
                v = 1.0 + c * x

            v = v * v * v
            u = self.uniform()

            if u < 1.0 - 0.331 * x ** 4:
                return d * v * scale
            if u > 0.0 and math.log(u) < 0.5 * x * x + d * (1.0 - v + math.log(v)):
                return d * v * scale

    def beta(self, alpha: float, beta: float) -> float:
        g1 = self.gamma(alpha, 1.0)
        g2 = self.gamma(beta, 1.0)
        total = g1 + g2
        if total == 0.0:
            # Both draws underflowed; fall back to the distribution mean.
            return alpha / (alpha + beta)
        return g1 / total
