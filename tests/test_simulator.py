import pytest

from mesisim.simulator import Simulator
from mesisim.types import CacheLineState


def write_traces(tmp_path, traces):
    for core_id in range(4):
        (tmp_path / f"app_proc{core_id}.trace").write_text(traces.get(core_id, ""))
    return str(tmp_path / "app")


def test_derived_parameters():
    sim = Simulator("x", 4, 4, 6)
    assert sim.block_size == 64
    assert sim.num_sets == 16
    assert sim.cache_size == sim.num_sets * sim.associativity * sim.block_size
    assert sim.trace_path(3) == "x_proc3.trace"


def test_single_read(tmp_path):
    prefix = write_traces(tmp_path, {0: "R 0x0\n"})
    sim = Simulator(prefix, 4, 2, 5)
    sim.run()
    assert all(core.finished for core in sim.cores)
    assert sim.cores[0].instruction_count == 1
    assert sim.caches[0].stats.misses == 1
    assert sim.caches[0].miss_rate() == 1.0
    assert sim.bus.total_bus_transactions == 1
    assert sim.bus.total_data_traffic_bytes == sim.block_size
    for core in sim.cores:
        assert core.total_cycles + core.idle_cycles == sim.current_cycle
    for core in sim.cores[1:]:
        assert core.instruction_count == 0
        assert core.total_cycles == sim.current_cycle


def test_shared_read(tmp_path):
    prefix = write_traces(tmp_path, {0: "R 0x0\n", 1: "R 0x0\n"})
    sim = Simulator(prefix, 4, 2, 5)
    sim.run()
    assert sim.caches[0].find_block(0).state is CacheLineState.SHARED
    assert sim.caches[1].find_block(0).state is CacheLineState.SHARED
    assert sim.bus.total_data_traffic_bytes == 2 * sim.block_size


def test_write_to_shared_invalidates_other(tmp_path):
    prefix = write_traces(tmp_path, {0: "R 0x0\nW 0x0\n", 1: "R 0x0\n"})
    sim = Simulator(prefix, 4, 2, 5)
    sim.run()
    assert sim.caches[0].find_block(0).state is CacheLineState.MODIFIED
    assert sim.caches[1].find_block(0) is None
    assert sim.caches[1].stats.invalidations_received == 1
    assert sim.caches[0].stats.hits == 1


def test_missing_traces(tmp_path):
    sim = Simulator(str(tmp_path / "nothing"), 4, 2, 5)
    sim.run()
    assert all(core.finished for core in sim.cores)
    assert all(core.instruction_count == 0 for core in sim.cores)
    assert sim.current_cycle == 1


def test_cycle_limit(tmp_path, capsys):
    prefix = write_traces(tmp_path, {0: "R 0x0\nR 0x1000\n"})
    sim = Simulator(prefix, 4, 2, 5)
    sim.max_cycles = 5
    sim.run()
    assert sim.current_cycle == sim.max_cycles
    assert not sim.cores[0].finished
    assert "WARNING: Simulation stopped" in capsys.readouterr().out


def test_format_stats(tmp_path):
    prefix = write_traces(tmp_path, {0: "R 0x0\n"})
    sim = Simulator(prefix, 4, 4, 6)
    sim.run()
    text = sim.format_stats()
    lines = text.splitlines()
    assert lines[0] == "Simulation Parameters:"
    assert f"Trace Prefix: {prefix}" in lines
    assert "Cache Size (KB per core): 4" in lines
    assert "Cache Miss Rate: 100.00%" in lines
    assert "Memory Latency: 100 cycles" in lines
    assert lines.count("Cache Miss Rate: 0.00%") == 3
    assert lines[-1] == f"Total Bus Traffic (Bytes): {sim.bus.total_data_traffic_bytes}"
    assert "===== DEBUG INFORMATION =====" not in text
    assert text.endswith("\n")


def test_debug_stats_section(tmp_path, capsys):
    prefix = write_traces(tmp_path, {0: "R 0x0\n"})
    sim = Simulator(prefix, 4, 2, 5, debug=True)
    sim.run()
    lines = sim.format_stats().splitlines()
    assert "===== DEBUG INFORMATION =====" in lines
    assert "Core 2 has 0 invalidations." in lines
    assert "Average invalidations per core: 0.00" in lines
    assert lines[-1] == "===== END DEBUG INFORMATION ====="


def test_write_stats_to_file_and_stdout(tmp_path, capsys):
    prefix = write_traces(tmp_path, {1: "W 0x20\n"})
    sim = Simulator(prefix, 4, 2, 5)
    sim.run()
    capsys.readouterr()
    out_path = tmp_path / "stats.txt"
    sim.write_stats(str(out_path))
    assert out_path.read_text() == sim.format_stats()
    sim.write_stats()
    assert capsys.readouterr().out == sim.format_stats()


def test_write_stats_unopenable_file_falls_back(tmp_path, capsys):
    prefix = write_traces(tmp_path, {})
    sim = Simulator(prefix, 4, 2, 5)
    sim.run()
    capsys.readouterr()
    sim.write_stats(str(tmp_path / "missing_dir" / "stats.txt"))
    captured = capsys.readouterr()
    assert "Error opening output file" in captured.err
    assert captured.out == sim.format_stats()


def test_format_stats_before_run():
    sim = Simulator("x", 4, 2, 5)
    with pytest.raises(RuntimeError):
        sim.format_stats()