"""Tests for engine.timing -- deadline arithmetic and the shared byte counter."""

import unittest

from engine.models import Phase
from engine.timing import ByteCounter, Deadline


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, now: float = 100.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class TestDeadline(unittest.TestCase):
    def test_remaining_and_expiry(self):
        clock = FakeClock()
        d = Deadline(8.0, clock=clock)
        self.assertEqual(d.remaining(), 8.0)
        self.assertFalse(d.expired)

        clock.advance(5.0)
        self.assertAlmostEqual(d.remaining(), 3.0)
        self.assertAlmostEqual(d.elapsed(), 5.0)

        clock.advance(3.0)
        self.assertTrue(d.expired)
        self.assertEqual(d.remaining(), 0.0)

    def test_remaining_never_negative(self):
        clock = FakeClock()
        d = Deadline(1.0, clock=clock)
        clock.advance(10.0)
        self.assertEqual(d.remaining(), 0.0)

    def test_negative_duration_is_already_expired(self):
        d = Deadline(-5.0, clock=FakeClock())
        self.assertEqual(d.duration, 0.0)
        self.assertTrue(d.expired)


class TestByteCounter(unittest.TestCase):
    def _counter(self, clock, interval=0.2, duration=8.0):
        samples = []
        deadline = Deadline(duration, clock=clock)
        counter = ByteCounter(
            Phase.DOWNLOAD, deadline, samples.append, interval=interval, clock=clock
        )
        return counter, samples

    def test_sums_every_add(self):
        clock = FakeClock()
        counter, _ = self._counter(clock)
        for n in (100, 200, 300):
            counter.add(n)
        self.assertEqual(counter.total, 600)

    def test_ignores_non_positive(self):
        clock = FakeClock()
        counter, _ = self._counter(clock)
        counter.add(0)
        counter.add(-10)
        self.assertEqual(counter.total, 0)

    def test_no_sample_before_interval(self):
        clock = FakeClock()
        counter, samples = self._counter(clock)
        clock.advance(0.1)
        counter.add(1000)
        self.assertEqual(samples, [])

    def test_sample_speed(self):
        clock = FakeClock()
        counter, samples = self._counter(clock)
        clock.advance(1.0)
        counter.add(1_250_000)  # 10 Mbit in 1 s
        self.assertEqual(len(samples), 1)
        s = samples[0]
        self.assertEqual(s.phase, Phase.DOWNLOAD)
        self.assertAlmostEqual(s.speed_mbps, 10.0)
        self.assertEqual(s.bytes_total, 1_250_000)
        self.assertAlmostEqual(s.elapsed_s, 1.0)
        self.assertAlmostEqual(s.progress, 1.0 / 8.0)

    def test_cadence(self):
        clock = FakeClock()
        counter, samples = self._counter(clock, interval=0.2)
        # Bytes arrive every 50 ms for 2 s
        for _ in range(40):
            clock.advance(0.05)
            counter.add(10_000)

        self.assertGreater(len(samples), 1)
        stamps = [s.timestamp for s in samples]
        for a, b in zip(stamps, stamps[1:]):
            self.assertGreaterEqual(b - a, 0.2 - 1e-9)

    def test_bytes_monotonic_across_samples(self):
        clock = FakeClock()
        counter, samples = self._counter(clock, interval=0.1)
        for n in (5, 0, 7, 3, 0, 11, 2, 9):
            clock.advance(0.15)
            counter.add(n)
        totals = [s.bytes_total for s in samples]
        self.assertEqual(totals, sorted(totals))
        self.assertEqual(counter.total, 37)

    def test_progress_capped(self):
        clock = FakeClock()
        counter, samples = self._counter(clock, duration=1.0)
        clock.advance(3.0)
        counter.add(1)
        self.assertEqual(samples[-1].progress, 1.0)

    def test_without_callback(self):
        clock = FakeClock()
        counter = ByteCounter(Phase.UPLOAD, Deadline(1.0, clock=clock), clock=clock)
        clock.advance(0.5)
        counter.add(10)
        self.assertEqual(counter.total, 10)
        self.assertEqual(counter.samples_emitted, 0)


if __name__ == "__main__":
    unittest.main()
