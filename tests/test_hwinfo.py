from pathlib import Path

from numhunt.hwinfo import (
    UNKNOWN_OS,
    HwSpec,
    build_node_telemetry,
    collect_hw_spec,
    parse_cache_size,
    parse_cpuinfo,
    parse_meminfo,
    parse_os_release,
    query_uptime_seconds,
)

CPUINFO = (
    "processor\t: 0\n"
    "model name\t: Example CPU Model X\n"
    "cpu MHz\t\t: 2400.000\n"
    "cpu cores\t: 4\n"
    "flags\t\t: fpu vme sse2\n"
    "\n"
    "processor\t: 1\n"
    "model name\t: Other Model\n"
    "cpu MHz\t\t: 2400.000\n"
    "cpu cores\t: 4\n"
    "flags\t\t: other\n"
)

MEMINFO = "MemTotal:       16384000 kB\nMemFree:         100 kB\nMemAvailable:    8192000 kB\n"


def _write(root: Path, rel: str, text: str) -> None:
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)


def test_parse_os_release_quoted():
    text = 'NAME="Example"\nPRETTY_NAME="Example OS 1.0"\nID=example\n'
    assert parse_os_release(text) == "Example OS 1.0"


def test_parse_os_release_unquoted():
    assert parse_os_release("PRETTY_NAME=Plain\n") == "Plain"


def test_parse_os_release_missing():
    assert parse_os_release("NAME=x\n") == UNKNOWN_OS
    assert parse_os_release(None) == UNKNOWN_OS


def test_parse_cache_size_kilobytes():
    assert parse_cache_size("48K\n") == 48


def test_parse_cache_size_megabytes_scale():
    assert parse_cache_size("3M") == parse_cache_size("3072K")


def test_parse_cache_size_garbage():
    assert parse_cache_size("none") == 0


def test_parse_cpuinfo_fields():
    spec = parse_cpuinfo(CPUINFO, HwSpec())
    assert spec.cpu_model == "Example CPU Model X"
    assert spec.logical_cores == 2
    assert spec.physical_cores == 4
    assert spec.cpu_flags == "fpu vme sse2"
    assert spec.cpu_freq_khz == 2_400_000


def test_parse_cpuinfo_keeps_preset_logical_cores():
    spec = parse_cpuinfo(CPUINFO, HwSpec(logical_cores=16))
    assert spec.logical_cores == 16


def test_parse_meminfo():
    spec = parse_meminfo(MEMINFO, HwSpec())
    assert spec.total_mem_kb == 16384000
    assert spec.avail_mem_kb == 8192000


def test_collect_hw_spec_from_root(tmp_path):
    _write(tmp_path, "etc/os-release", 'PRETTY_NAME="Example OS 1.0"\n')
    _write(tmp_path, "proc/cpuinfo", CPUINFO)
    _write(tmp_path, "proc/meminfo", MEMINFO)
    cache = "sys/devices/system/cpu/cpu0/cache"
    _write(tmp_path, f"{cache}/index0/size", "32K\n")
    _write(tmp_path, f"{cache}/index1/size", "32K\n")
    _write(tmp_path, f"{cache}/index2/size", "1280K\n")
    spec = collect_hw_spec(tmp_path)
    assert spec.os_name == "Example OS 1.0"
    assert spec.cpu_model == "Example CPU Model X"
    assert spec.total_mem_kb == 16384000
    assert spec.cache_l1_kb == parse_cache_size("32K") * 2
    assert spec.cache_l2_kb == 1280
    assert spec.cache_l3_kb == 0
    assert spec.environment == f"{spec.os_name} / {spec.kernel}"
    assert spec.hostname


def test_collect_hw_spec_empty_root(tmp_path):
    spec = collect_hw_spec(tmp_path)
    assert spec.os_name == UNKNOWN_OS
    assert spec.logical_cores >= 1
    assert spec.physical_cores == spec.logical_cores
    assert spec.cache_l1_kb == 0
    assert spec.total_mem_kb == 0


def test_query_uptime_seconds(tmp_path):
    path = tmp_path / "uptime"
    path.write_text("1234.56 789.0\n")
    assert query_uptime_seconds(path) == 1234.56


def test_query_uptime_seconds_missing(tmp_path):
    assert query_uptime_seconds(tmp_path / "absent") == 0.0


def test_build_node_telemetry():
    spec = HwSpec(hostname="node-a", logical_cores=2)
    tel = build_node_telemetry(spec, 3.5, 12.7, 7, 2, 31, 255, False)
    assert tel.spec == spec
    assert tel.spec is not spec
    assert tel.ops_per_second == 3.5
    assert tel.iteration_time_ms == 12
    assert tel.total_ops == 7
    assert tel.exponent_in_progress == 31
    assert tel.latest_residue == 255
    prefix, hex_part = tel.residual_snapshot.split("residue=0x")
    assert prefix == "p=31 ops=7 "
    assert len(hex_part) == 16
    assert int(hex_part, 16) == 255


def test_build_node_telemetry_negative_interval():
    tel = build_node_telemetry(HwSpec(), 0.0, -5.0, 0, 0, 3, 0, True)
    assert tel.iteration_time_ms == 0
    assert tel.residue_is_zero is True