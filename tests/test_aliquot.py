import threading

import pytest

from numhunt.aliquot import (
    CATALOG_FILTER_FILE,
    CATALOG_MAX_EXACT,
    CATALOG_SEEDS,
    SCAN_STEP_CAP,
    SCOUT_SCORE_GATE,
    UINT64_MAX,
    Catalog,
    Outcome,
    ScanEnd,
    compute_overflow_pressure,
    compute_probe_score,
    default_catalog,
    frontier_accept_seed,
    looks_long,
    run_aliquot_sequence,
    sum_proper_divisors,
)

OVERFLOW_SEED = 3 * (1 << 62)


@pytest.mark.parametrize("n", [0, 1])
def test_sum_proper_divisors_trivial(n):
    assert sum_proper_divisors(n) == 0


@pytest.mark.parametrize("n", [6, 28, 496])
def test_sum_proper_divisors_perfect(n):
    assert sum_proper_divisors(n) == n


def test_sum_proper_divisors_amicable_pair():
    assert sum_proper_divisors(sum_proper_divisors(220)) == 220
    assert sum_proper_divisors(220) > 220


@pytest.mark.parametrize("p", [2, 3, 13, 97, 7919])
def test_sum_proper_divisors_prime_is_one(p):
    assert sum_proper_divisors(p) == 1


def test_sum_proper_divisors_saturates():
    assert sum_proper_divisors(OVERFLOW_SEED) == UINT64_MAX


def test_perfect_sequence():
    out = run_aliquot_sequence(6, catalog=Catalog())
    assert out.perfect
    assert out.cycle_length == 1
    assert out.status() == "perfect"
    assert out.end_detail() == "cycle_1"


def test_amicable_sequence():
    out = run_aliquot_sequence(220, catalog=Catalog())
    assert out.amicable
    assert out.cycle_length == 2
    assert out.final_value == 220
    assert out.status() == "amicable"
    assert out.max_value == sum_proper_divisors(220)


def test_terminating_sequence():
    out = run_aliquot_sequence(12, catalog=Catalog())
    assert out.terminated
    assert out.final_value == 1
    assert out.end_reason() == "terminated"
    assert out.end_detail() == "reached_1"
    assert out.max_value >= 12


def test_catalog_seed_stops_immediately():
    out = run_aliquot_sequence(276, catalog=default_catalog())
    assert out.catalog_hit
    assert out.steps == 0
    assert out.status() == "catalog"
    assert out.end_detail() == "catalog_hit"


def test_catalog_hit_midway_keeps_current_value():
    catalog = Catalog()
    catalog.add_exact(sum_proper_divisors(12))
    out = run_aliquot_sequence(12, catalog=catalog)
    assert out.catalog_hit
    assert out.steps == 1
    assert out.final_value == 12


def test_step_limit():
    out = run_aliquot_sequence(276, max_steps=5, catalog=Catalog())
    assert out.hit_limit
    assert out.steps == 5
    assert out.status() == "open-limit"
    assert out.end_reason() == "step-limit"
    assert out.end_detail() == "step_limit"


def test_stop_event_halts_before_work():
    stop = threading.Event()
    stop.set()
    out = run_aliquot_sequence(276, catalog=Catalog(), stop_event=stop)
    assert out.steps == 0
    assert out.status() == "open"
    assert out.final_value == 276


def test_probe_callback_counts_steps():
    calls = []
    out = run_aliquot_sequence(12, catalog=Catalog(), on_probe=lambda: calls.append(1))
    assert len(calls) == out.steps


def test_overflow_sequence():
    out = run_aliquot_sequence(OVERFLOW_SEED, catalog=Catalog())
    assert out.overflow
    assert out.final_value == UINT64_MAX
    assert out.status() == "overflow"
    assert compute_overflow_pressure(out) == 60.0


def test_time_budget_markers():
    out = Outcome(seed=10, hit_limit=True, time_budget_hit=True)
    assert out.end_reason() == "time-budget"
    assert out.end_detail() == "time_budget"
    assert out.status() == "open-limit"


def test_catalog_add_exact_dedup_and_cap():
    catalog = Catalog()
    assert catalog.add_exact(5)
    assert catalog.add_exact(5)
    assert catalog.exact == [5]
    for value in range(100, 100 + CATALOG_MAX_EXACT - 1):
        assert catalog.add_exact(value)
    assert not catalog.add_exact(10**9)
    assert not catalog.contains(10**9)


def test_catalog_mod_rules():
    catalog = Catalog()
    assert not catalog.add_mod(0, 3)
    assert catalog.add_mod(7, 1)
    assert catalog.contains(8)
    assert not catalog.contains(9)


def test_catalog_load_file(tmp_path):
    path = tmp_path / "filters.txt"
    path.write_text("# comment\n\n  exact:100\nexact=200\nmod:7:15\nbogus\n")
    catalog = Catalog()
    catalog.load_file(path)
    assert catalog.contains(100)
    assert catalog.contains(200)
    assert catalog.mod_rules == [(7, 15 % 7)]
    assert not catalog.contains(300)


def test_catalog_load_missing_file(tmp_path):
    catalog = Catalog()
    catalog.load_file(tmp_path / "absent.txt")
    assert catalog.exact == []
    assert catalog.mod_rules == []


def test_default_catalog_reads_state_dir(tmp_path):
    (tmp_path / CATALOG_FILTER_FILE).write_text("exact:424242\n")
    catalog = default_catalog(tmp_path)
    assert catalog.contains(424242)
    assert all(catalog.contains(seed) for seed in CATALOG_SEEDS)


def test_frontier_rejects_catalog_seed():
    result = frontier_accept_seed(276, default_catalog())
    assert result.ended_by is ScanEnd.CATALOG
    assert not result.accepted
    assert result.steps == 0


def test_frontier_accepts_overflow():
    result = frontier_accept_seed(OVERFLOW_SEED, Catalog())
    assert result.ended_by is ScanEnd.OVERFLOW
    assert result.accepted
    assert result.max_u64 == UINT64_MAX


def test_frontier_runs_until_cap():
    result = frontier_accept_seed(12, Catalog())
    assert result.ended_by is ScanEnd.TIMECAP
    assert result.accepted
    assert result.steps <= SCAN_STEP_CAP


def test_frontier_catalog_in_sequence():
    catalog = Catalog()
    catalog.add_exact(sum_proper_divisors(12))
    result = frontier_accept_seed(12, catalog)
    assert result.ended_by is ScanEnd.CATALOG
    assert result.steps == 1


def test_overflow_pressure_bounds():
    assert compute_overflow_pressure(Outcome(seed=1, max_value=0)) == 0.0
    assert compute_overflow_pressure(Outcome(seed=1, max_value=UINT64_MAX)) == pytest.approx(60.0)
    assert compute_overflow_pressure(None) == 0.0


def test_probe_score_hit_limit_bonus():
    base = Outcome(seed=10, max_value=10, steps=50)
    limited = Outcome(seed=10, max_value=10, steps=50, hit_limit=True)
    assert compute_probe_score(limited) - compute_probe_score(base) == pytest.approx(30.0)


def test_looks_long_gate():
    long_run = Outcome(seed=10, max_value=10, steps=400, hit_limit=True)
    accepted, score = looks_long(long_run)
    assert accepted
    assert score >= SCOUT_SCORE_GATE
    ended = Outcome(seed=10, max_value=10, steps=400, terminated=True)
    accepted, score = looks_long(ended)
    assert not accepted
    assert score >= SCOUT_SCORE_GATE