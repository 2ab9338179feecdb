"""Sampling policies that decide from a trace id whether a trace is recorded."""

from __future__ import annotations

import math
import random
import threading
import time
from typing import Callable

Sampler = Callable[[int], bool]

_MASK64 = (1 << 64) - 1


def never_sample(trace_id: int) -> bool:
    """Never start traces; still take part in traces started upstream."""
    return False


def always_sample(trace_id: int) -> bool:
    """Always start traces when none was propagated."""
    return True


def modulo_sampler(mod: int) -> Sampler:
    """Sample ids divisible by ``mod``; values below 2 sample everything."""
    if mod < 2:
        return always_sample

    def sampler(trace_id: int) -> bool:
        return trace_id % mod == 0

    return sampler


def boundary_sampler(rate: float, salt: int) -> Sampler:
    """Idempotent sampler for randomly provisioned trace ids."""
    if rate == 0.0:
        return never_sample
    if rate == 1.0:
        return always_sample
    if rate < 0.0001 or rate > 1:
        raise ValueError(f"rate should be 0.0 or between 0.0001 and 1: was {rate:f}")

    boundary = int(rate * (1 << 63))
    usalt = salt & _MASK64

    def sampler(trace_id: int) -> bool:
        return (((trace_id & _MASK64) ^ usalt) >> 1) < boundary

    return sampler


def counting_sampler(rate: float) -> Sampler:
    """Sampler that hits exactly ``rate`` of every 100 decisions."""
    if rate == 0.0:
        return never_sample
    if rate == 1.0:
        return always_sample
    if rate < 0.01 or rate > 1:
        raise ValueError(f"rate should be 0.0 or between 0.01 and 1: was {rate:f}")

    out_of_100 = int(rate * 100 + math.copysign(0.5, rate * 100))
    decisions = _random_bit_set(100, out_of_100, random.Random(time.time_ns()))
    lock = threading.Lock()
    position = 0

    def sampler(trace_id: int) -> bool:
        nonlocal position
        with lock:
            result = decisions[position]
            position = (position + 1) % len(decisions)
        return result

    return sampler


def _random_bit_set(size: int, cardinality: int, rnd: random.Random) -> list[bool]:
    chosen = set(rnd.sample(range(size), cardinality))
    return [i in chosen for i in range(size)]