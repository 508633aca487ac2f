"""Tests for the progress counter and rate tracking."""

import asyncio
import threading

import pytest

from asyncrmtree.progress import ProgressCounter, RateTracker


def test_counter_starts_at_zero():
    counter = ProgressCounter()

    assert counter.value == 0


def test_counter_increment_returns_total():
    counter = ProgressCounter()

    assert counter.increment() == 1
    assert counter.increment(4) == 5
    assert counter.value == 5


def test_counter_never_decreases():
    counter = ProgressCounter()

    with pytest.raises(ValueError):
        counter.increment(-1)
    assert counter.value == 0


def test_counter_concurrent_threads():
    counter = ProgressCounter()

    def bump():
        for _ in range(10000):
            counter.increment()

    threads = [threading.Thread(target=bump) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert counter.value == 80000


@pytest.mark.asyncio
async def test_counter_concurrent_tasks():
    counter = ProgressCounter()

    async def bump():
        for _ in range(100):
            counter.increment()
            await asyncio.sleep(0)

    await asyncio.gather(*(bump() for _ in range(50)))

    assert counter.value == 5000


def test_rate_window():
    tracker = RateTracker()
    tracker.record(0, timestamp=100.0)
    tracker.record(50, timestamp=105.0)
    tracker.record(150, timestamp=110.0)

    assert tracker.get_rate(10.0, now=110.0) == pytest.approx(15.0)
    assert tracker.get_rate(5.0, now=110.0) == pytest.approx(20.0)


def test_rate_needs_two_samples():
    tracker = RateTracker()
    tracker.record(10, timestamp=100.0)

    assert tracker.get_rate(10.0, now=100.0) == 0.0
    assert tracker.get_rate(0, now=100.0) == 0.0


def test_overall_rate():
    tracker = RateTracker()
    tracker.start_time = 100.0

    assert tracker.get_overall_rate(50, now=110.0) == pytest.approx(5.0)
    assert tracker.get_overall_rate(50, now=100.0) == 0.0


def test_peak_rate_only_grows():
    tracker = RateTracker()

    tracker.update_peak_rate(10.0)
    tracker.update_peak_rate(4.0)
    tracker.update_peak_rate(12.5)

    assert tracker.peak_rate["value"] == 12.5
    assert tracker.peak_rate["timestamp"] is not None
