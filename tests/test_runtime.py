from __future__ import annotations

import math

import numpy as np
import pytest

from dsp_patch.runtime import Config, Delay, Stereo, WhiteNoise, mix, pan


def _delay(sample_rate: float) -> Delay:
    d = Delay()
    d.init(Config(sample_rate=sample_rate))
    # Grow the buffer while it is still silent.
    d.read_sample(64)
    return d


class TestDelay:
    def test_defaults(self) -> None:
        assert Delay().sample_rate == 44100.0

    def test_integer_delay(self) -> None:
        d = _delay(1.0)
        out = []
        for x in [1.0, 2.0, 3.0, 4.0, 5.0]:
            d.write(x)
            out.append(d.read(2.0))
        assert out == [0.0, 0.0, 1.0, 2.0, 3.0]

    def test_zero_delay_reads_latest(self) -> None:
        d = _delay(1.0)
        d.write(0.25)
        assert d.read(0.0) == 0.25

    def test_interpolates_ramp(self) -> None:
        d = _delay(2.0)
        for x in range(16):
            d.write(float(x))
        assert d.read(3.75) == pytest.approx(7.5)

    def test_feedback_read_matches_read(self) -> None:
        rng = np.random.default_rng(0)
        signal = rng.uniform(-1.0, 1.0, 40)
        before, after = _delay(4.0), _delay(4.0)
        early, late = [], []
        for x in signal:
            early.append(before.feedback_read(0.8125))
            before.write(float(x))
            after.write(float(x))
            late.append(after.read(0.8125))
        assert early == pytest.approx(late)

    def test_feedback_read_minimum_is_one_sample(self) -> None:
        d = _delay(1.0)
        d.write(0.5)
        assert d.feedback_read(0.0) == 0.5

    @pytest.mark.parametrize("t", [math.nan, math.inf, -math.inf])
    def test_non_finite_time_reads_latest(self, t: float) -> None:
        d = _delay(1.0)
        d.write(0.5)
        d.write(0.75)
        assert d.read(t) == 0.75
        assert d.feedback_read(t) == 0.75

    def test_read_sample_grows_buffer(self) -> None:
        d = Delay()
        d.write(1.0)
        d.read_sample(10)
        assert len(d._x) > 20
        assert d.read_sample(0) == 1.0

    def test_stores_float32(self) -> None:
        d = _delay(1.0)
        d.write(0.1)
        assert d.read_sample(0) == float(np.float32(0.1))

    def test_init_clears_state(self) -> None:
        d = _delay(1.0)
        d.write(1.0)
        d.init(Config(sample_rate=1.0))
        assert d.read_sample(0) == 0.0


class TestWhiteNoise:
    def test_range(self) -> None:
        noise = WhiteNoise()
        values = [noise.process() for _ in range(1000)]
        assert all(-1.0 <= v < 1.0 for v in values)
        assert min(values) < -0.5 < 0.5 < max(values)

    def test_seeded(self) -> None:
        a, b = WhiteNoise(), WhiteNoise()
        a.init(Config(seed=42))
        b.init(Config(seed=42))
        assert [a.process() for _ in range(5)] == [b.process() for _ in range(5)]

    def test_nodes_share_config_generator(self) -> None:
        config = Config(seed=42)
        a, b = WhiteNoise(), WhiteNoise()
        a.init(config)
        b.init(config)
        interleaved = [a.process(), b.process(), a.process()]

        solo = WhiteNoise()
        solo.init(Config(seed=42))
        assert interleaved == [solo.process() for _ in range(3)]


class TestConfig:
    def test_defaults(self) -> None:
        config = Config()
        assert config.sample_rate == 44100.0
        assert config.seed == 1

    def test_generator_cached(self) -> None:
        config = Config(seed=5)
        assert config.get_rand() is config.get_rand()


class TestUtilities:
    @pytest.mark.parametrize(
        ("t", "expected"),
        [(0.0, 2.0), (1.0, 6.0), (0.5, 4.0), (0.25, 3.0)],
    )
    def test_mix(self, t: float, expected: float) -> None:
        assert mix(2.0, 6.0, t) == expected

    def test_pan_hard_left(self) -> None:
        out = pan(1.0, -1.0)
        assert isinstance(out, Stereo)
        assert out.left == pytest.approx(1.0)
        assert out.right == pytest.approx(0.0)

    def test_pan_equal_power(self) -> None:
        for p in (-0.5, 0.0, 0.3, 1.0):
            left, right = pan(2.0, p)
            assert math.hypot(left, right) == pytest.approx(2.0)
