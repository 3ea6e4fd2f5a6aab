"""Aliquot sequence exploration: divisor sums, sequence runs, catalog filters and scoring."""

from __future__ import annotations

import math
import re
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Iterable, Optional

UINT64_MAX = (1 << 64) - 1

LONG_RUN_MAX_STEPS = 25000
SCOUT_PREVIEW_STEPS = 256
SCOUT_SCORE_GATE = 120.0
SCAN_STEP_CAP = 64
SCAN_TIMECAP_MS = 25
CATALOG_MAX_EXACT = 512
CATALOG_MAX_MOD_RULE = 256
CATALOG_FILTER_FILE = "catalog_filters.txt"

CATALOG_SEEDS: tuple[int, ...] = (
    276, 552, 564, 660, 966, 1080, 1128, 1320, 1476, 1596, 1776, 1830,
    1968, 1980, 2208, 2268, 2310, 2514, 2760, 3000, 3192, 3276, 3468,
    3570, 3660, 3774, 4140, 4308, 4788, 5256, 5628, 5880, 6600, 7950,
    8280, 8910, 9660, 10584, 11088, 11844, 13068, 13260, 14880, 17640,
    18540, 18954, 21120, 21660, 23040, 27600, 31944, 35670, 38940,
    41256, 43032, 48828, 50976, 51480, 55440, 59280, 60120, 63504,
    66000, 72600, 79560, 83736, 90600, 100128, 111546, 114960,
    117936, 118260, 123660,
)

_EXACT_RE = re.compile(r"exact[:=]\s*\+?(\d+)")
_MOD_RE = re.compile(r"mod[:=]\s*\+?(\d+):\s*\+?(\d+)")

ProbeCallback = Optional[Callable[[], None]]


def _now_ms() -> int:
    return int(time.monotonic() * 1000)


@dataclass
class Outcome:
    """Result of following one aliquot sequence."""

    seed: int
    steps: int = 0
    max_value: int = 0
    final_value: int = 0
    cycle_length: int = 0
    terminated: bool = False
    entered_cycle: bool = False
    amicable: bool = False
    perfect: bool = False
    overflow: bool = False
    hit_limit: bool = False
    time_budget_hit: bool = False
    catalog_hit: bool = False
    wall_time_ms: int = 0

    def status(self) -> str:
        """Short classification used in the found ledger."""
        if self.overflow:
            return "overflow"
        if self.catalog_hit:
            return "catalog"
        if self.perfect:
            return "perfect"
        if self.amicable:
            return "amicable"
        if self.terminated:
            return "terminated"
        if self.entered_cycle:
            return "cycle"
        if self.hit_limit:
            return "open-limit"
        return "open"

    def end_reason(self) -> str:
        """Why tracking stopped, as recorded in the track ledger."""
        if self.overflow:
            return "overflow"
        if self.catalog_hit:
            return "catalog"
        if self.perfect:
            return "perfect"
        if self.amicable:
            return "amicable"
        if self.entered_cycle:
            return "cycle"
        if self.terminated:
            return "terminated"
        if self.time_budget_hit:
            return "time-budget"
        if self.hit_limit:
            return "step-limit"
        return "open"

    def end_detail(self) -> str:
        """Detailed end marker, e.g. ``cycle_2`` or ``reached_1``."""
        if self.overflow:
            return "overflow"
        if self.catalog_hit:
            return "catalog_hit"
        if self.time_budget_hit:
            return "time_budget"
        if self.entered_cycle:
            return f"cycle_{self.cycle_length}" if self.cycle_length > 0 else "cycle"
        if self.terminated:
            return f"reached_{self.final_value}"
        if self.hit_limit:
            return "step_limit"
        return "open"


class ScanEnd(Enum):
    CATALOG = 0
    OVERFLOW = 1
    TIMECAP = 2


@dataclass
class ScanResult:
    """Outcome of a quick frontier scan of a candidate seed."""

    seed: int
    steps: int = 0
    max_u64: int = 0
    ended_by: ScanEnd = ScanEnd.CATALOG

    @property
    def accepted(self) -> bool:
        return self.ended_by is not ScanEnd.CATALOG


@dataclass
class Catalog:
    """Known seeds and residue rules whose sequences need no further work."""

    exact: list[int] = field(default_factory=list)
    mod_rules: list[tuple[int, int]] = field(default_factory=list)

    def add_exact(self, seed: int) -> bool:
        """Record an exact value; False when the table is full."""
        if seed in self.exact:
            return True
        if len(self.exact) >= CATALOG_MAX_EXACT:
            return False
        self.exact.append(seed)
        return True

    def add_mod(self, modulus: int, remainder: int) -> bool:
        """Record a ``value % modulus == remainder`` rule; False if invalid or full."""
        if modulus == 0:
            return False
        rule = (modulus, remainder)
        if rule in self.mod_rules:
            return True
        if len(self.mod_rules) >= CATALOG_MAX_MOD_RULE:
            return False
        self.mod_rules.append(rule)
        return True

    def contains(self, value: int) -> bool:
        if value in self.exact:
            return True
        return any(value % modulus == remainder for modulus, remainder in self.mod_rules)

    def load_file(self, path) -> None:
        """Merge ``exact:N`` / ``mod:M:R`` lines from a filter file, if it exists."""
        try:
            with open(path, "r", encoding="utf-8", errors="replace") as fp:
                lines = fp.readlines()
        except OSError:
            return
        for raw in lines:
            line = raw.lstrip()
            if not line or line.startswith("#"):
                continue
            match = _EXACT_RE.match(line)
            if match:
                self.add_exact(int(match.group(1)))
                continue
            match = _MOD_RE.match(line)
            if match:
                modulus, remainder = int(match.group(1)), int(match.group(2))
                if modulus:
                    self.add_mod(modulus, remainder % modulus)


def default_catalog(state_dir=None) -> Catalog:
    """Catalog of built-in seeds, extended by the state directory's filter file."""
    catalog = Catalog()
    for seed in CATALOG_SEEDS:
        catalog.add_exact(seed)
    if state_dir is not None:
        catalog.load_file(Path(state_dir) / CATALOG_FILTER_FILE)
    return catalog


def _odd_candidates() -> Iterable[int]:
    yield 2
    p = 3
    while True:
        yield p
        p += 2


def sum_proper_divisors(n: int) -> int:
    """Sum of the proper divisors of n, saturating at ``UINT64_MAX``."""
    if n <= 1:
        return 0
    remaining = n
    total = 1
    for p in _odd_candidates():
        if p > remaining // p:
            break
        if remaining % p:
            continue
        power = 1
        term = 1
        while remaining % p == 0:
            remaining //= p
            power *= p
            term += power
        total *= term
        if total > UINT64_MAX:
            return UINT64_MAX
    if remaining > 1:
        total *= remaining + 1
        if total > UINT64_MAX:
            return UINT64_MAX
    return total - n if total > n else 0


def run_aliquot_sequence(
    seed: int,
    max_steps: int = LONG_RUN_MAX_STEPS,
    time_budget_ms: int = 0,
    catalog: Optional[Catalog] = None,
    stop_event: Optional[threading.Event] = None,
    on_probe: ProbeCallback = None,
) -> Outcome:
    """Follow the aliquot sequence of ``seed`` until it ends or a limit is hit.

    A ``max_steps`` or ``time_budget_ms`` of 0 means no limit; without a
    catalog no values are filtered.
    """
    catalog = catalog if catalog is not None else Catalog()
    out = Outcome(seed=seed, max_value=seed, final_value=seed)
    start_ms = _now_ms()
    history = {seed: 0}
    current = seed
    steps = 0
    while True:
        if steps == 0 and catalog.contains(current):
            out.catalog_hit = True
            out.final_value = current
            break
        if max_steps > 0 and steps >= max_steps:
            out.hit_limit = True
            break
        if time_budget_ms > 0 and _now_ms() - start_ms >= time_budget_ms:
            out.hit_limit = True
            out.time_budget_hit = True
            break
        if stop_event is not None and stop_event.is_set():
            break
        nxt = sum_proper_divisors(current)
        if on_probe is not None:
            on_probe()
        out.max_value = max(out.max_value, nxt)
        steps += 1
        if nxt == UINT64_MAX:
            out.overflow = True
            out.final_value = UINT64_MAX
            break
        if nxt <= 1:
            out.terminated = True
            out.final_value = nxt
            break
        prev_step = history.get(nxt)
        if prev_step is not None:
            out.entered_cycle = True
            out.cycle_length = steps - prev_step
            out.final_value = nxt
            if out.cycle_length <= 2:
                if out.cycle_length == 1 and nxt == seed:
                    out.perfect = True
                else:
                    out.amicable = True
            break
        if catalog.contains(nxt):
            out.catalog_hit = True
            out.final_value = nxt
            break
        history[nxt] = steps
        current = nxt
    if not (out.terminated or out.entered_cycle or out.overflow):
        out.final_value = current
    out.steps = steps
    out.wall_time_ms = _now_ms() - start_ms
    return out


def compute_overflow_pressure(outcome: Optional[Outcome]) -> float:
    """How close the sequence came to the 64-bit ceiling, on a 0..60 scale."""
    if outcome is None:
        return 0.0
    if outcome.overflow:
        return 60.0
    ratio = min(max(outcome.max_value / UINT64_MAX, 0.0), 1.0)
    return ratio * 60.0


def compute_probe_score(outcome: Outcome) -> float:
    """Heuristic score of how promising a preview run looks."""
    span = outcome.max_value / outcome.seed if outcome.seed > 0 else 1.0
    span = max(span, 1.0)
    base = outcome.steps * 0.75 + math.log(span) * 8.0
    if outcome.hit_limit:
        base += 30.0
    if outcome.max_value > 1_000_000_000:
        base += 25.0
    return base + compute_overflow_pressure(outcome)


def looks_long(outcome: Outcome) -> tuple[bool, float]:
    """Return whether a preview run deserves a long run, and its score."""
    score = compute_probe_score(outcome)
    if outcome.terminated or outcome.entered_cycle or outcome.overflow:
        return False, score
    return score >= SCOUT_SCORE_GATE, score


def frontier_accept_seed(
    seed: int,
    catalog: Optional[Catalog] = None,
    on_probe: ProbeCallback = None,
) -> ScanResult:
    """Quickly scan a seed; it is accepted unless it runs into the catalog."""
    catalog = catalog if catalog is not None else Catalog()
    result = ScanResult(seed=seed)
    if catalog.contains(seed):
        result.ended_by = ScanEnd.CATALOG
        return result
    start_ms = _now_ms()
    current = seed
    max_value = seed
    steps = 0
    while steps < SCAN_STEP_CAP:
        if SCAN_TIMECAP_MS > 0 and _now_ms() - start_ms >= SCAN_TIMECAP_MS:
            break
        nxt = sum_proper_divisors(current)
        if on_probe is not None:
            on_probe()
        steps += 1
        max_value = max(max_value, nxt)
        if nxt == UINT64_MAX:
            result.ended_by = ScanEnd.OVERFLOW
            result.steps = steps
            result.max_u64 = max_value
            return result
        if catalog.contains(nxt):
            result.ended_by = ScanEnd.CATALOG
            result.steps = steps
            result.max_u64 = max_value
            return result
        current = nxt
    result.ended_by = ScanEnd.TIMECAP
    result.steps = steps
    result.max_u64 = max_value
    return result