"""Host hardware description and node telemetry for a search node."""

from __future__ import annotations

import dataclasses
import os
import platform
import re
import socket
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

UNKNOWN_OS = "Unknown Linux"
VENDOR_STRING = "numhunt/python"
OPTIMIZED_FEATURES = "arbitrary-precision integers"

_LEADING_INT = re.compile(r"\s*\+?(\d+)")
_LEADING_FLOAT = re.compile(r"\s*([-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?)")


def _fit(text: str, size: int) -> str:
    """Trim text to what a buffer of ``size`` bytes (with terminator) would hold."""
    return text[: size - 1]


def _leading_int(text: str) -> int:
    match = _LEADING_INT.match(text)
    return int(match.group(1)) if match else 0


def _leading_float(text: str) -> float:
    match = _LEADING_FLOAT.match(text)
    return float(match.group(1)) if match else 0.0


def _read_text(path: Path) -> Optional[str]:
    try:
        return path.read_text(encoding="utf-8", errors="replace")
    except OSError:
        return None


@dataclass
class HwSpec:
    """Static description of the host."""

    hostname: str = ""
    os_name: str = ""
    kernel: str = ""
    architecture: str = ""
    cpu_model: str = ""
    cpu_flags: str = ""
    vendor_string: str = ""
    optimized_features: str = ""
    environment: str = ""
    logical_cores: int = 0
    physical_cores: int = 0
    cpu_freq_khz: int = 0
    cache_l1_kb: int = 0
    cache_l2_kb: int = 0
    cache_l3_kb: int = 0
    total_mem_kb: int = 0
    avail_mem_kb: int = 0
    load_avg: tuple[float, float, float] = (0.0, 0.0, 0.0)


@dataclass
class NodeTelemetry:
    """Snapshot of the node's progress, sent along with results."""

    spec: HwSpec = field(default_factory=HwSpec)
    uptime_seconds: float = 0.0
    ops_per_second: float = 0.0
    total_ops: int = 0
    active_workers: int = 0
    exponent_in_progress: int = 0
    latest_residue: int = 0
    residue_is_zero: bool = False
    residual_snapshot: str = ""
    iteration_time_ms: int = 0


def parse_os_release(text: Optional[str]) -> str:
    """Value of ``PRETTY_NAME`` in an os-release file, unquoted."""
    if text:
        for line in text.splitlines():
            if line.startswith("PRETTY_NAME="):
                value = line.split("=", 1)[1].rstrip("\r\n")
                if len(value) >= 2 and value[0] == '"' and value[-1] == '"':
                    value = value[1:-1]
                return _fit(value, 128)
    return UNKNOWN_OS


def parse_cache_size(text: str) -> int:
    """Cache size in KiB from a sysfs value such as ``48K`` or ``2M``."""
    value = _leading_int(text)
    unit = next((ch for ch in text if ch.isalpha()), "")
    if unit in ("M", "m"):
        value *= 1024
    return value


def parse_cpuinfo(text: str, spec: Optional[HwSpec] = None) -> HwSpec:
    """Fill CPU fields of ``spec`` from /proc/cpuinfo text; return the spec."""
    spec = spec if spec is not None else HwSpec()
    logical = 0
    for line in text.splitlines():
        _, colon, rest = line.partition(":")
        if line.startswith("processor"):
            logical += 1
        elif line.startswith("model name") and not spec.cpu_model:
            if colon:
                spec.cpu_model = _fit(rest.lstrip(" \t").rstrip("\r\n"), 128)
        elif line.startswith("cpu MHz"):
            if colon:
                spec.cpu_freq_khz = int(_leading_float(rest) * 1000.0)
        elif line.startswith("cpu cores"):
            if colon:
                spec.physical_cores = _leading_int(rest)
        elif line.startswith("flags") and not spec.cpu_flags:
            if colon:
                spec.cpu_flags = _fit(rest.strip(), 256)
    if spec.logical_cores == 0:
        spec.logical_cores = logical
    return spec


def parse_meminfo(text: str, spec: Optional[HwSpec] = None) -> HwSpec:
    """Fill memory totals of ``spec`` from /proc/meminfo text; return the spec."""
    spec = spec if spec is not None else HwSpec()
    for line in text.splitlines():
        if line.startswith("MemTotal:"):
            spec.total_mem_kb = _leading_int(line[len("MemTotal:"):])
        elif line.startswith("MemAvailable:"):
            spec.avail_mem_kb = _leading_int(line[len("MemAvailable:"):])
    return spec


def _read_cache(root: Path, index: int) -> int:
    text = _read_text(root / f"sys/devices/system/cpu/cpu0/cache/index{index}/size")
    if not text:
        return 0
    return parse_cache_size(text.splitlines()[0] if text.splitlines() else "")


def collect_hw_spec(root=None) -> HwSpec:
    """Describe the host, reading system files below ``root`` (default ``/``)."""
    base = Path(root) if root is not None else Path("/")
    spec = HwSpec()

    try:
        spec.hostname = _fit(socket.gethostname(), 64) or "unknown-host"
    except OSError:
        spec.hostname = "unknown-host"

    spec.os_name = parse_os_release(_read_text(base / "etc/os-release"))

    uname = platform.uname()
    if uname.system:
        spec.kernel = _fit(f"{uname.system[:63]} {uname.release[:63]}", 128)
        spec.architecture = uname.machine[:31] or "unknown"
    else:
        spec.kernel = "unknown"
        spec.architecture = "unknown"

    spec.vendor_string = VENDOR_STRING

    cpuinfo = _read_text(base / "proc/cpuinfo")
    if cpuinfo is not None:
        parse_cpuinfo(cpuinfo, spec)
        if spec.cache_l1_kb == 0:
            spec.cache_l1_kb = _read_cache(base, 0) + _read_cache(base, 1)
        if spec.cache_l2_kb == 0:
            spec.cache_l2_kb = _read_cache(base, 2)
        if spec.cache_l3_kb == 0:
            spec.cache_l3_kb = _read_cache(base, 3)

    meminfo = _read_text(base / "proc/meminfo")
    if meminfo is not None:
        parse_meminfo(meminfo, spec)

    if spec.logical_cores == 0:
        spec.logical_cores = os.cpu_count() or 1
    if spec.physical_cores == 0:
        spec.physical_cores = spec.logical_cores

    try:
        spec.load_avg = tuple(os.getloadavg())  # type: ignore[assignment]
    except (OSError, AttributeError):
        pass

    spec.optimized_features = OPTIMIZED_FEATURES
    spec.environment = _fit(f"{spec.os_name[:80]} / {spec.kernel[:80]}", 192)
    return spec


def query_uptime_seconds(path=None) -> float:
    """System uptime in seconds from /proc/uptime; 0.0 if unavailable."""
    text = _read_text(Path(path) if path is not None else Path("/proc/uptime"))
    if not text:
        return 0.0
    tokens = text.split()
    if not tokens:
        return 0.0
    try:
        return float(tokens[0])
    except ValueError:
        return 0.0


def build_node_telemetry(
    spec: HwSpec,
    ops_per_sec: float,
    interval_ms: float,
    total_ops: int,
    active_workers: int,
    exponent: int,
    residue: int,
    residue_is_zero: bool,
) -> NodeTelemetry:
    """Bundle a copy of the host spec with the current progress figures."""
    return NodeTelemetry(
        spec=dataclasses.replace(spec),
        uptime_seconds=query_uptime_seconds(),
        ops_per_second=ops_per_sec,
        total_ops=total_ops,
        active_workers=active_workers,
        exponent_in_progress=exponent,
        latest_residue=residue,
        residue_is_zero=residue_is_zero,
        iteration_time_ms=int(interval_ms) if interval_ms > 0.0 else 0,
        residual_snapshot=_fit(f"p={exponent} ops={total_ops} residue=0x{residue:016x}", 128),
    )