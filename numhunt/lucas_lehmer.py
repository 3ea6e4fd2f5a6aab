"""Lucas-Lehmer primality test for Mersenne numbers."""

from __future__ import annotations

import math
import threading
import time
from dataclasses import dataclass
from typing import Optional


@dataclass
class LLResult:
    """Outcome of a Lucas-Lehmer run for the exponent ``p``."""

    p: int
    is_prime: bool = False
    residue: int = 0
    iterations: int = 0
    elapsed_ms: int = 0
    cancelled: bool = False

    @property
    def residue_is_zero(self) -> bool:
        return not self.cancelled and self.residue == 0


def is_prime_exponent(n: int) -> bool:
    """Trial-division primality check for a candidate exponent."""
    if n < 2:
        return False
    return all(n % i for i in range(2, math.isqrt(n) + 1))


def lucas_lehmer(p: int, stop_event: Optional[threading.Event] = None) -> LLResult:
    """Test whether ``2**p - 1`` is prime; stops early if ``stop_event`` is set."""
    if p < 2:
        raise ValueError(f"exponent must be at least 2, got {p}")
    if p == 2:
        return LLResult(p=2, is_prime=True, residue=0)
    modulus = (1 << p) - 1
    start = time.monotonic()
    s = 4
    iterations = 0
    for _ in range(p - 2):
        if stop_event is not None and stop_event.is_set():
            return LLResult(p=p, residue=s, iterations=iterations, cancelled=True,
                            elapsed_ms=int((time.monotonic() - start) * 1000))
        s = (s * s - 2) % modulus
        iterations += 1
    return LLResult(
        p=p,
        is_prime=s == 0,
        residue=s,
        iterations=iterations,
        elapsed_ms=int((time.monotonic() - start) * 1000),
    )