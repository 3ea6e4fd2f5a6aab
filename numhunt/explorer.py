"""Mersenne exponent explorer: producer, Lucas-Lehmer workers and a result logger."""

from __future__ import annotations

import argparse
import os
import queue
import signal
import sys
import threading
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional

from numhunt.lucas_lehmer import is_prime_exponent, lucas_lehmer

QUEUE_SIZE = 1024
DEFAULT_WORKERS = 4
SLOW_DOWN_ABOVE = 500
PRODUCER_PAUSE_S = 0.010
WORKER_IDLE_S = 0.001
LOGGER_IDLE_S = 0.010
SAVE_EVERY = 10
SAVE_INTERVAL_MS = 5000
STATUS_INTERVAL_S = 1.0
RESULT_FILE = "found_mersenne.json"

SELF_TEST_PRIMES = (2, 3, 5, 7, 13, 17, 19, 31, 61, 89, 107, 127)
SELF_TEST_COMPOSITES = (11, 23, 29)


def _now_ms() -> int:
    return int(time.monotonic() * 1000)


class TaskState(Enum):
    IDLE = 0
    RUNNING = 1
    DONE = 2
    CANCELLED = 3


class MersenneStatus(Enum):
    UNKNOWN = 0
    PRIME = 1
    COMPOSITE = 2
    ERROR = 3


@dataclass
class MersenneTask:
    """One exponent to test and what the test found."""

    p: int
    state: TaskState = TaskState.IDLE
    iterations_done: int = 0
    elapsed_ms: int = 0
    residue_is_zero: bool = False
    error_code: int = 0
    status: MersenneStatus = MersenneStatus.UNKNOWN


def run_task(task: MersenneTask, stop_event: Optional[threading.Event] = None) -> MersenneTask:
    """Run the Lucas-Lehmer test for ``task.p`` and record the outcome on the task."""
    result = lucas_lehmer(task.p, stop_event)
    task.iterations_done = result.iterations
    if result.cancelled:
        task.state = TaskState.CANCELLED
        return task
    task.residue_is_zero = result.residue_is_zero
    task.status = MersenneStatus.PRIME if task.residue_is_zero else MersenneStatus.COMPOSITE
    task.elapsed_ms = result.elapsed_ms
    task.state = TaskState.DONE
    return task


class Explorer:
    """Tests exponents in order with a pool of workers and logs the findings."""

    def __init__(self, output_dir=".", workers: int = DEFAULT_WORKERS) -> None:
        if workers < 1:
            raise ValueError("at least one worker is required")
        self.output_dir = Path(output_dir)
        self.workers = workers
        self.task_queue: queue.Queue[MersenneTask] = queue.Queue(maxsize=QUEUE_SIZE - 1)
        self.result_queue: queue.Queue[MersenneTask] = queue.Queue(maxsize=QUEUE_SIZE - 1)
        self.stop_event = threading.Event()
        self.results: list[MersenneTask] = []
        self.highest_started = 0
        self.highest_finished = 0
        self.total_ops = 0
        self._counter_lock = threading.Lock()

    @property
    def result_path(self) -> Path:
        return self.output_dir / RESULT_FILE

    def producer_loop(self) -> None:
        """Queue every prime exponent from 2 upwards until stopped."""
        p = 2
        while not self.stop_event.is_set():
            if is_prime_exponent(p):
                task = MersenneTask(p=p)
                while True:
                    try:
                        self.task_queue.put_nowait(task)
                        break
                    except queue.Full:
                        if self.stop_event.is_set():
                            return
                        time.sleep(0)
                with self._counter_lock:
                    self.highest_started = p
            p += 1
            if p > SLOW_DOWN_ABOVE:
                self.stop_event.wait(PRODUCER_PAUSE_S)

    def worker_loop(self) -> None:
        """Take tasks, test them and hand them to the logger."""
        while not self.stop_event.is_set():
            try:
                task = self.task_queue.get_nowait()
            except queue.Empty:
                self.stop_event.wait(WORKER_IDLE_S)
                continue
            task.state = TaskState.RUNNING
            run_task(task, self.stop_event)
            if task.state is TaskState.DONE:
                with self._counter_lock:
                    self.total_ops += task.iterations_done
            while True:
                try:
                    self.result_queue.put_nowait(task)
                    break
                except queue.Full:
                    if self.stop_event.is_set():
                        break
                    time.sleep(0)

    def logger_loop(self) -> None:
        """Collect finished tasks, announce primes and save the results periodically."""
        last_save = _now_ms()
        while not self.stop_event.is_set() or self.results:
            try:
                task: Optional[MersenneTask] = self.result_queue.get_nowait()
            except queue.Empty:
                task = None
            if task is not None:
                if task.status is MersenneStatus.PRIME:
                    print(f"\n[FOUND] M{task.p} is prime!", flush=True)
                with self._counter_lock:
                    if task.p > self.highest_finished:
                        self.highest_finished = task.p
                self.results.append(task)

            now = _now_ms()
            count = len(self.results)
            stopping = self.stop_event.is_set()
            if count > 0 and (count % SAVE_EVERY == 0 or now - last_save > SAVE_INTERVAL_MS or stopping):
                self.save_state(self.results)
                last_save = now
                if stopping and self.result_queue.empty():
                    break
            if task is None:
                self.stop_event.wait(LOGGER_IDLE_S) if not stopping else time.sleep(LOGGER_IDLE_S)

    def save_state(self, results) -> Path:
        """Write the results to the JSON result file atomically; return its path."""
        with self._counter_lock:
            started, finished = self.highest_started, self.highest_finished
        results = list(results)
        lines = [
            "{\n",
            f'  "last_p_started": {started},\n',
            f'  "last_p_finished": {finished},\n',
            '  "results": [\n',
        ]
        for index, task in enumerate(results):
            separator = "" if index == len(results) - 1 else ","
            status = "PRIME" if task.status is MersenneStatus.PRIME else "COMPOSITE"
            lines.append(
                f'    {{"p": {task.p}, "is_prime": {"true" if task.residue_is_zero else "false"}, '
                f'"iterations": {task.iterations_done}, "elapsed_ms": {task.elapsed_ms}, '
                f'"status": "{status}"}}{separator}\n'
            )
        lines.append("  ]\n}\n")
        target = self.result_path
        tmp = target.with_name(target.name + ".tmp")
        with open(tmp, "w", encoding="utf-8") as fp:
            fp.write("".join(lines))
            fp.flush()
            os.fsync(fp.fileno())
        os.replace(tmp, target)
        return target

    def run(self) -> None:
        """Run all threads and print status once a second until stopped."""
        print("Mersenne Explorer\nPress Ctrl+C to stop.")
        threads = [
            threading.Thread(target=self.worker_loop, name=f"worker-{i}", daemon=True)
            for i in range(self.workers)
        ]
        producer = threading.Thread(target=self.producer_loop, name="producer", daemon=True)
        logger = threading.Thread(target=self.logger_loop, name="logger", daemon=True)
        for thread in (*threads, producer, logger):
            thread.start()

        while not self.stop_event.is_set():
            self.stop_event.wait(STATUS_INTERVAL_S)
            with self._counter_lock:
                ops, finished, started = self.total_ops, self.highest_finished, self.highest_started
            print(f"\r[STATUS] Ops: {ops} | Finished: M{finished} | Started: M{started}   ",
                  end="", flush=True)

        print("\nShutting down...")
        producer.join()
        for thread in threads:
            thread.join()
        logger.join()

    def stop(self) -> None:
        """Ask every thread to finish."""
        self.stop_event.set()


def self_test() -> list[tuple[int, bool]]:
    """Check the Lucas-Lehmer test against known exponents; return (p, passed) pairs."""
    print("[SELFTEST] Running Lucas-Lehmer verification...")
    outcomes = []
    for p in SELF_TEST_PRIMES:
        task = run_task(MersenneTask(p=p))
        passed = task.status is MersenneStatus.PRIME
        print(f" M{p}: {'PASSED (PRIME)' if passed else 'FAILED'}")
        outcomes.append((p, passed))
    for p in SELF_TEST_COMPOSITES:
        task = run_task(MersenneTask(p=p))
        passed = task.status is MersenneStatus.COMPOSITE
        print(f" M{p}: {'PASSED (COMPOSITE)' if passed else 'FAILED'}")
        outcomes.append((p, passed))
    return outcomes


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Explore Mersenne exponents with the Lucas-Lehmer test.")
    parser.add_argument("--self-test", action="store_true", help="verify known exponents and exit")
    parser.add_argument("--workers", type=int, default=DEFAULT_WORKERS, help="number of worker threads")
    parser.add_argument("--output-dir", default=".", help=f"directory for {RESULT_FILE}")
    args = parser.parse_args(argv)

    if args.self_test:
        return 0 if all(passed for _, passed in self_test()) else 1

    explorer = Explorer(args.output_dir, args.workers)

    def _handle(signum, frame):
        explorer.stop()

    signal.signal(signal.SIGINT, _handle)
    explorer.run()
    return 0


if __name__ == "__main__":
    sys.exit(main())