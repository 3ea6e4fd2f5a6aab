"""Node identity and result reporting to a Mersenne search coordination server."""

from __future__ import annotations

import os
import subprocess
import sys
from dataclasses import dataclass, field
from enum import IntEnum
from pathlib import Path
from typing import Optional

from numhunt.hwinfo import NodeTelemetry

REPORT_URL_ENV = "NUMHUNT_REPORT_URL"
DEFAULT_REPORT_URL = "http://127.0.0.1/api/v1/report"
SOFTWARE_NAME = "numhunt-1.0"
COMPUTER_ID_PREFIX = "numhunt-node"
ANONYMOUS_COMPUTER_ID = "numhunt-anonymous"
DEFAULT_USER_ID = "anonymous"
MACHINE_ID_PATH = "/etc/machine-id"
CONNECT_TIMEOUT_S = 10

_ID_BUFFER = 64
_MACHINE_ID_CHARS = 8
_MASK64 = (1 << 64) - 1


class ReportError(RuntimeError):
    """A result could not be delivered to the server."""


class ReportStatus(IntEnum):
    PENDING = 0
    REPORTED = 1


@dataclass
class GimpsResult:
    """Outcome of one Lucas-Lehmer test, ready to be reported."""

    p: int
    residue: int = 0
    is_prime: bool = False
    status: ReportStatus = ReportStatus.PENDING


@dataclass
class AppState:
    """Identity of this node and the results it holds."""

    computer_id: str = ""
    user_id: str = DEFAULT_USER_ID
    last_p: int = 0
    results: list[GimpsResult] = field(default_factory=list)

    @property
    def result_count(self) -> int:
        return len(self.results)


def generate_computer_id(machine_id_path=None) -> str:
    """Identifier for this node derived from the first characters of the machine id."""
    path = Path(machine_id_path) if machine_id_path is not None else Path(MACHINE_ID_PATH)
    try:
        with open(path, "rb") as fp:
            head = fp.read(_MACHINE_ID_CHARS)
    except OSError:
        return COMPUTER_ID_PREFIX
    if not head:
        return ANONYMOUS_COMPUTER_ID
    text = head.decode("ascii", errors="replace")
    return f"{COMPUTER_ID_PREFIX}-{text}"[: _ID_BUFFER - 1]


def build_report_payload(state: AppState, result: GimpsResult) -> str:
    """JSON body announcing one result."""
    return (
        f'{{"User":"{state.user_id}","ComputerID":"{state.computer_id}",'
        f'"Software":"{SOFTWARE_NAME}",'
        f'"Result":{{"p":{result.p},"Residue":"0x{result.residue & _MASK64:016x}",'
        f'"is_prime":{"true" if result.is_prime else "false"}}}}}'
    )


def _report_url() -> str:
    return os.environ.get(REPORT_URL_ENV) or DEFAULT_REPORT_URL


def report_to_gimps(state: AppState, result: GimpsResult,
                    telemetry: Optional[NodeTelemetry] = None) -> str:
    """POST a result with curl over plain HTTP; return the payload sent.

    Raises ``ReportError`` when curl cannot be run or reports a failure.
    """
    if state is None or result is None:
        raise ValueError("state and result are required")
    payload = build_report_payload(state, result)
    command = [
        "curl", "--silent", "--http1.1",
        "-X", "POST", _report_url(),
        "-H", "Content-Type: application/json",
        "-d", payload,
        "--connect-timeout", str(CONNECT_TIMEOUT_S),
    ]
    try:
        completed = subprocess.run(command, check=False)
    except OSError as exc:
        raise ReportError(f"[NETWORK ERROR] p:{result.p} -> Request failed ({exc})") from exc
    if completed.returncode != 0:
        raise ReportError(
            f"[NETWORK ERROR] p:{result.p} -> Request failed (Status: {completed.returncode})"
        )
    print(f"[NETWORK] p:{result.p} reported successfully via HTTP.")
    sys.stdout.flush()
    return payload