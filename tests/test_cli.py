import logging

import pytest

from mesisim.cli import main, usage


@pytest.fixture
def traces(tmp_path):
    prefix = tmp_path / "app"
    (tmp_path / "app_proc0.trace").write_text("R 0x0\nW 0x40\n")
    for core_id in (1, 2, 3):
        (tmp_path / f"app_proc{core_id}.trace").write_text("")
    return str(prefix)


def test_usage_names_program_and_options():
    text = usage("L1simulate")
    assert text.startswith("Usage: L1simulate -t <tracefile>")
    assert "-d, --debug: Enable debug output" in text
    assert "-h, --help: Print this help message" in text


def test_help_prints_usage_and_succeeds(capsys):
    assert main(["-h"]) == 0
    out = capsys.readouterr().out
    assert "-t <tracefile>" in out
    assert "-o <outfile>: Output file for statistics (default: stdout)" in out


def test_missing_trace_prefix_is_an_error(capsys):
    assert main([]) == 1
    captured = capsys.readouterr()
    assert "Error: Trace file name (-t) is required" in captured.err
    assert "Usage:" in captured.out


@pytest.mark.parametrize(
    "flag, message",
    [
        ("-t", "Error: -t requires a trace name argument"),
        ("-s", "Error: -s requires a set index bits argument"),
        ("-E", "Error: -E requires an associativity argument"),
        ("-b", "Error: -b requires a block bits argument"),
        ("-o", "Error: -o requires an output file name argument"),
    ],
)
def test_option_without_value(capsys, flag, message):
    assert main([flag]) == 1
    assert message in capsys.readouterr().err


def test_unknown_argument(capsys):
    assert main(["--frobnicate"]) == 1
    captured = capsys.readouterr()
    assert "Unknown argument: --frobnicate" in captured.err
    assert "Usage:" in captured.out


@pytest.mark.parametrize("flag", ["-s", "-E", "-b"])
def test_non_positive_parameters_rejected(capsys, traces, flag):
    assert main(["-t", traces, flag, "0"]) == 1
    assert "Error: s, E, and b must be positive integers." in capsys.readouterr().err


def test_non_numeric_parameter_rejected(capsys, traces):
    assert main(["-t", traces, "-s", "abc"]) == 1
    assert "abc" in capsys.readouterr().err


def test_report_written_to_file_with_defaults(tmp_path, traces):
    outfile = tmp_path / "stats.txt"
    assert main(["-t", traces, "-o", str(outfile)]) == 0
    report = outfile.read_text()
    assert f"Trace Prefix: {traces}" in report
    assert "Set Index Bits: 4" in report
    assert "Associativity: 4" in report
    assert "Block Bits: 6" in report
    assert "Core 0 Statistics:\nTotal Instructions: 2\nTotal Reads: 1\nTotal Writes: 1" in report


def test_explicit_parameters_reach_report(tmp_path, traces):
    outfile = tmp_path / "stats.txt"
    assert main(["-t", traces, "-s", "2", "-E", "1", "-b", "5", "-o", str(outfile)]) == 0
    report = outfile.read_text()
    assert "Set Index Bits: 2" in report
    assert "Associativity: 1" in report
    assert "Block Bits: 5" in report


def test_report_goes_to_stdout_without_outfile(capsys, traces):
    assert main(["-t", traces]) == 0
    out = capsys.readouterr().out
    assert "Overall Bus Summary:" in out
    assert out.count("Statistics:") == 4


def test_missing_trace_files_still_run(capsys, tmp_path):
    prefix = str(tmp_path / "absent")
    assert main(["-t", prefix]) == 0
    captured = capsys.readouterr()
    assert f"Error opening trace file: {prefix}_proc0.trace" in captured.err
    assert "Total Instructions: 0" in captured.out


def test_debug_mode_prints_and_cleans_up(capsys, tmp_path, traces):
    package_logger = logging.getLogger("mesisim")
    handlers_before = list(package_logger.handlers)
    outfile = tmp_path / "stats.txt"
    assert main(["-t", traces, "-d", "-o", str(outfile)]) == 0
    out = capsys.readouterr().out
    assert out.startswith("Debug mode enabled\n")
    assert "DEBUG: " in out
    assert "===== DEBUG INFORMATION =====" in outfile.read_text()
    assert package_logger.handlers == handlers_before


def test_without_debug_no_debug_lines(capsys, traces):
    assert main(["-t", traces]) == 0
    out = capsys.readouterr().out
    assert "DEBUG: " not in out
    assert "===== DEBUG INFORMATION =====" not in out