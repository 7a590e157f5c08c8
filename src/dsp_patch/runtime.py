"""Runtime node library used by generated code.

A node is either a plain function whose parameters and results are all
``float``, or a class exposing ``init(self, config: Config) -> None`` and a
``process`` method with the same all-``float`` signature. ``Delay`` is the one
exception: it is wired in by the code generator as a write/read pair and has
no ``process`` method.
"""

from __future__ import annotations

import math
from typing import NamedTuple

import numpy as np
from pydantic import BaseModel, PrivateAttr


class Config(BaseModel):
    """Configuration forwarded to every stateful node on ``init``."""

    sample_rate: float = 44100.0
    seed: int = 1

    _rand: np.random.Generator | None = PrivateAttr(default=None)

    def get_rand(self) -> np.random.Generator:
        """Return the shared random generator, seeding it on first use."""
        if self._rand is None:
            self._rand = np.random.default_rng(self.seed)
        return self._rand


# ---------------------------------------------------------------------------
# Delay
# ---------------------------------------------------------------------------


class Delay:
    """Ring-buffer delay line with cubic interpolation.

    ``write`` advances the write position. ``read(t)`` taken after the write
    returns the sample written ``t`` seconds ago. ``feedback_read(t)`` is meant
    to be taken *before* the write of the current sample: it reads one slot
    closer, so both calls observe the same delay. The shortest feedback delay
    is one sample.
    """

    def __init__(self) -> None:
        self.init(Config())

    def init(self, config: Config) -> None:
        self.sample_rate = config.sample_rate
        self._x = np.zeros(4, dtype=np.float32)
        self._i = 0

    def write(self, x: float) -> None:
        self._i += 1
        if self._i == len(self._x):
            self._i = 0
        self._x[self._i] = x

    def read(self, t: float) -> float:
        f, i = self._split(t)
        return self._read(i, f)

    def feedback_read(self, t: float) -> float:
        f, i = self._split(t)
        return self._read(i - 1, f)

    def _split(self, t: float) -> tuple[float, int]:
        """Delay time in samples as (fraction, whole); non-finite times read as 0."""
        samples = t * self.sample_rate
        if not math.isfinite(samples):
            samples = 0.0
        f, i = math.modf(samples)
        return f, int(i)

    def _read(self, i: int, f: float) -> float:
        if i < 0:
            return self.read_sample(0)
        if i == 0:
            s0 = self.read_sample(0)
            return _interp3(f, s0, s0, self.read_sample(1), self.read_sample(2))
        return _interp3(
            f,
            self.read_sample(i - 1),
            self.read_sample(i),
            self.read_sample(i + 1),
            self.read_sample(i + 2),
        )

    def read_sample(self, i: int) -> float:
        """Return the sample written ``i`` writes ago (0 = most recent)."""
        # Doubling keeps every existing offset from the write position valid.
        while 2 * i >= len(self._x):
            self._x = np.concatenate((self._x, self._x))
        j = self._i - i
        if j < 0:
            j += len(self._x)
        return float(self._x[j])


def _interp3(t: float, x0: float, x1: float, x2: float, x3: float) -> float:
    """Hermite cubic interpolation between x1 and x2 (t=0..1)."""
    c0 = x1
    c1 = (x2 - x0) / 2
    c2 = x0 - 2.5 * x1 + 2 * x2 - x3 / 2
    c3 = 1.5 * (x1 - x2) + (x3 - x0) / 2
    return c0 + t * (c1 + t * (c2 + t * c3))


# ---------------------------------------------------------------------------
# Generators and utilities
# ---------------------------------------------------------------------------


class WhiteNoise:
    """Uniform white noise in [-1, 1)."""

    def __init__(self) -> None:
        self.init(Config())

    def init(self, config: Config) -> None:
        self._rand = config.get_rand()

    def process(self) -> float:
        return 2.0 * float(self._rand.random(dtype=np.float32)) - 1.0


class Stereo(NamedTuple):
    left: float
    right: float


def mix(a: float, b: float, t: float) -> float:
    """Crossfade from a (t=0) to b (t=1)."""
    return a + (b - a) * t


def pan(x: float, p: float) -> Stereo:
    """Equal-power pan, p in [-1, 1]."""
    theta = (p + 1.0) * math.pi / 4.0
    return Stereo(x * math.cos(theta), x * math.sin(theta))
