"""Mersenne prime searcher: workers test exponents, report results and checkpoint progress."""

from __future__ import annotations

import argparse
import os
import re
import signal
import sys
import threading
import time
from pathlib import Path
from typing import Callable, Optional

from numhunt.gimps import (
    AppState,
    GimpsResult,
    ReportError,
    generate_computer_id,
    report_to_gimps,
)
from numhunt.hwinfo import NodeTelemetry, collect_hw_spec
from numhunt.lucas_lehmer import is_prime_exponent, lucas_lehmer

STATE_ENV_VAR = "NUMHUNT_MERSENNE_DIR"
CHECKPOINT_NAME = "mersenne_checkpoint.json"
LAST_FINISHED_NAME = "mersenne_last.json"
MAX_WORKERS = 12
DEFAULT_WORKERS = 4
DEFAULT_START = 3
SAVE_INTERVAL_S = 60.0

_MASK32 = (1 << 32) - 1
_MASK64 = (1 << 64) - 1
_NUMBER_START = re.compile(r"[0-9-]")
_NUMBER = re.compile(r"(-?)([0-9]*)")

Reporter = Callable[[AppState, GimpsResult, NodeTelemetry], object]


def _now_ms() -> int:
    return int(time.monotonic() * 1000)


def load_uint_from_file(path, key: str) -> Optional[int]:
    """First unsigned 32-bit number following ``key`` and a colon in the file, if any."""
    try:
        with open(path, "r", encoding="utf-8", errors="replace") as fp:
            lines = fp.readlines()
    except OSError:
        return None
    for line in lines:
        found = line.find(key)
        if found < 0:
            continue
        rest = line[found + len(key):]
        colon = rest.find(":")
        if colon < 0:
            continue
        tail = rest[colon + 1:]
        start = _NUMBER_START.search(tail)
        if start is None:
            continue
        sign, digits = _NUMBER.match(tail, start.start()).groups()
        value = min(int(digits), _MASK64) if digits else 0
        if sign:
            value = (-value) & _MASK64
        return value & _MASK32
    return None


def load_checkpoint_value(path, primary_key: Optional[str], fallback_key: Optional[str],
                          default: int) -> int:
    """Value under the primary key, else the fallback key, else ``default``."""
    for key in (primary_key, fallback_key):
        if key:
            value = load_uint_from_file(path, key)
            if value is not None:
                return value
    return default


def resolve_start(resume_p: int, persisted_max: Optional[int] = None) -> tuple[int, int]:
    """Next exponent to dispatch and the highest verified one, from saved checkpoints."""
    start_p = resume_p + 1 if resume_p % 2 == 0 else resume_p
    if persisted_max is None:
        persisted_max = start_p
    persisted_max = min(persisted_max, start_p)
    if start_p <= persisted_max:
        start_p = persisted_max + 1 if persisted_max % 2 == 0 else persisted_max + 2
    return start_p & _MASK32, persisted_max


def checkpoint_json(last_p: int, total_ops: int) -> str:
    """Dispatcher checkpoint document."""
    return f'{{\n    "last_p": {last_p},\n    "total_ops": {total_ops}\n}}\n'


class VerificationLog:
    """Thread-safe record of every finished exponent."""

    def __init__(self) -> None:
        self._entries: list[tuple[int, int, bool]] = []
        self._lock = threading.Lock()

    def append(self, p: int, residue: int, is_prime: bool) -> None:
        with self._lock:
            self._entries.append((p, residue & _MASK64, bool(is_prime)))

    def entries(self) -> list[tuple[int, int, bool]]:
        with self._lock:
            return list(self._entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def to_json(self, max_finished_p: int, total_ops: int) -> str:
        """Document listing every result together with the highest verified exponent."""
        entries = self.entries()
        parts = [
            "{\n",
            f'    "max_finished_p": {max_finished_p},\n',
            f'    "total_ops": {total_ops},\n',
            '    "results": [\n',
        ]
        for index, (p, residue, is_prime) in enumerate(entries):
            separator = "" if index + 1 == len(entries) else ","
            parts.append(
                f'        {{"p": {p}, "residue": "0x{residue:016x}", '
                f'"is_prime": {"true" if is_prime else "false"}}}{separator}\n'
            )
        parts.append("    ]\n}\n")
        return "".join(parts)


def _write_atomic(path: Path, text: str) -> None:
    tmp = path.with_name(path.name + ".tmp")
    try:
        with open(tmp, "w", encoding="utf-8") as fp:
            fp.write(text)
            fp.flush()
            os.fsync(fp.fileno())
        os.replace(tmp, path)
    except OSError as exc:
        print(f"[SYSTEM] Failed to write {path}: {exc.strerror or exc}", file=sys.stderr)


def _default_state_dir() -> Path:
    override = os.environ.get(STATE_ENV_VAR)
    return Path(override) if override else Path.home() / "Documents"


class Searcher:
    """Dispatches odd exponents to workers and keeps resumable checkpoints."""

    def __init__(self, state_dir=None, workers: int = DEFAULT_WORKERS,
                 reporter: Optional[Reporter] = None) -> None:
        if not 1 <= workers <= MAX_WORKERS:
            raise ValueError(f"workers must be between 1 and {MAX_WORKERS}, got {workers}")
        self.state_dir = Path(state_dir) if state_dir is not None else _default_state_dir()
        self.checkpoint_path = self.state_dir / CHECKPOINT_NAME
        self.last_finished_path = self.state_dir / LAST_FINISHED_NAME
        self.workers = workers
        self.reporter: Reporter = reporter if reporter is not None else report_to_gimps
        self.app_state = AppState(computer_id=generate_computer_id())
        self.log = VerificationLog()
        self.stop_event = threading.Event()
        self._ops = [0] * workers
        self._lock = threading.Lock()
        self._start_ms = _now_ms()

        resume_p = load_checkpoint_value(self.checkpoint_path, '"last_p"', None, DEFAULT_START)
        start_p, _ = resolve_start(resume_p)
        persisted = load_checkpoint_value(
            self.last_finished_path, '"max_finished_p"', '"last_p"', start_p
        )
        start_p, persisted = resolve_start(resume_p, persisted)
        self._next_p = start_p
        self.max_finished_p = persisted

    @property
    def dispatch_p(self) -> int:
        """The exponent the next worker request will receive."""
        with self._lock:
            return self._next_p

    def next_exponent(self) -> int:
        """Claim the next odd exponent for testing."""
        with self._lock:
            p = self._next_p
            self._next_p = (p + 2) & _MASK32
            return p

    def _record_finished(self, p: int) -> None:
        with self._lock:
            if p > self.max_finished_p:
                self.max_finished_p = p

    def worker_loop(self, worker_id: int) -> None:
        """Test exponents until stopped, reporting and logging every finished one."""
        while not self.stop_event.is_set():
            p = self.next_exponent()
            if not is_prime_exponent(p):
                continue
            print(f"[WORKER {worker_id}] Starting LL Test for p: {p}")
            started = _now_ms()
            outcome = lucas_lehmer(p, self.stop_event)
            finished = _now_ms()
            if not outcome.cancelled:
                residue = outcome.residue & _MASK64
                result = GimpsResult(p=p, residue=residue, is_prime=outcome.is_prime)
                telemetry = NodeTelemetry(
                    spec=collect_hw_spec(),
                    exponent_in_progress=p,
                    iteration_time_ms=finished - started,
                    uptime_seconds=(finished - self._start_ms) / 1000.0,
                    active_workers=self.workers,
                    total_ops=self._ops[worker_id],
                    latest_residue=residue,
                    residue_is_zero=residue == 0,
                    residual_snapshot=f"{residue:016x}",
                )
                try:
                    self.reporter(self.app_state, result, telemetry)
                except ReportError as exc:
                    print(exc, file=sys.stderr)
                self._record_finished(p)
                self.log.append(p, residue, outcome.is_prime)
            self._ops[worker_id] += 1

    def total_ops(self) -> int:
        """Exponents processed by all workers."""
        return sum(self._ops)

    def save(self) -> tuple[Path, Path]:
        """Write the dispatch checkpoint and the verification log; return both paths."""
        total = self.total_ops()
        with self._lock:
            dispatch, finished = self._next_p, self.max_finished_p
        _write_atomic(self.checkpoint_path, checkpoint_json(dispatch, total))
        _write_atomic(self.last_finished_path, self.log.to_json(finished, total))
        return self.checkpoint_path, self.last_finished_path

    def run(self) -> None:
        """Run the workers, checkpointing every minute, until stopped."""
        try:
            self.state_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            print(f"[SYSTEM] Failed to create {self.state_dir}: {exc.strerror or exc}",
                  file=sys.stderr)
        print(f"[SYSTEM] Initializing Engine. Next dispatch p: {self.dispatch_p} | "
              f"Last verified p: {self.max_finished_p}")
        threads = [
            threading.Thread(target=self.worker_loop, args=(i,), name=f"worker-{i}", daemon=True)
            for i in range(self.workers)
        ]
        for thread in threads:
            thread.start()

        while not self.stop_event.is_set():
            self.stop_event.wait(SAVE_INTERVAL_S)
            if self.stop_event.is_set():
                break
            print(f"[SYSTEM] Dispatching: {self.dispatch_p} | Max Verified: "
                  f"{self.max_finished_p} | Total Ops: {self.total_ops()}", flush=True)
            self.save()

        for thread in threads:
            thread.join()
        self.save()

    def stop(self) -> None:
        """Ask every worker to finish."""
        self.stop_event.set()


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Search for Mersenne primes.")
    parser.add_argument("workers", nargs="?", type=int, default=DEFAULT_WORKERS,
                        help=f"worker threads (1..{MAX_WORKERS})")
    parser.add_argument("--state-dir", default=None,
                        help=f"checkpoint directory (default: ${STATE_ENV_VAR} or ~/Documents)")
    args = parser.parse_args(argv)

    try:
        searcher = Searcher(args.state_dir, args.workers)
    except ValueError as exc:
        parser.error(str(exc))

    def _handle(signum, frame):
        searcher.stop()

    signal.signal(signal.SIGINT, _handle)
    signal.signal(signal.SIGTERM, _handle)
    searcher.run()
    return 0


if __name__ == "__main__":
    sys.exit(main())