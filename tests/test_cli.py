#!/usr/bin/env python3
"""Tests for the promprogress command-line interface."""

import json

import pytest

from promprogress import MultiSink, cli
from promprogress.client import TransferClient


@pytest.fixture
def segments(tmp_path):
    first = tmp_path / "first.bin"
    second = tmp_path / "second.bin"
    first.write_bytes(b"hello ")
    second.write_bytes(b"world")
    return [str(first), str(second)]


def test_parse_arguments_defaults(monkeypatch):
    monkeypatch.delenv("PROMPROGRESS_OWNER_ID", raising=False)
    monkeypatch.delenv("PROMPROGRESS_INTERVAL", raising=False)
    monkeypatch.delenv("PROMPROGRESS_METRICS_PORT", raising=False)

    args = cli.parse_arguments(["a.bin", "b.bin", "-o", "out.img"])

    assert args.sources == ["a.bin", "b.bin"]
    assert args.output == "out.img"
    assert args.owner_id is None
    assert args.interval == 1.0
    assert args.metrics_port is None
    assert not args.json


def test_parse_arguments_reads_environment(monkeypatch):
    monkeypatch.setenv("PROMPROGRESS_OWNER_ID", "pvc-1234")
    monkeypatch.setenv("PROMPROGRESS_INTERVAL", "0.5")
    monkeypatch.setenv("PROMPROGRESS_METRICS_PORT", "8443")

    args = cli.parse_arguments(["a.bin", "-o", "out.img"])

    assert args.owner_id == "pvc-1234"
    assert args.interval == 0.5
    assert args.metrics_port == 8443


def test_parse_arguments_ignores_invalid_environment(monkeypatch):
    monkeypatch.setenv("PROMPROGRESS_INTERVAL", "soon")
    monkeypatch.setenv("PROMPROGRESS_METRICS_PORT", "http")

    args = cli.parse_arguments(["a.bin", "-o", "out.img"])

    assert args.interval == 1.0
    assert args.metrics_port is None


def test_build_sink_quiet_mode_has_only_gauge(registry):
    sink = cli.build_sink(True, registry)

    assert isinstance(sink, MultiSink)
    assert len(sink.sinks) == 1


def test_run_transfer_success(tmp_path, segments, sink):
    args = cli.parse_arguments([*segments, "-o", str(tmp_path / "out.img"), "--owner-id", "job-1"])

    with TransferClient() as client:
        result = cli.run_transfer(args, client, sink)

    assert result["status"] == "success"
    assert result["bytesWritten"] == 11
    assert (tmp_path / "out.img").read_bytes() == b"hello world"
    assert sink.value("job-1") == pytest.approx(100.0)


def test_run_transfer_generates_owner_id(tmp_path, segments, sink):
    args = cli.parse_arguments([*segments, "-o", str(tmp_path / "out.img")])
    args.owner_id = None

    with TransferClient() as client:
        result = cli.run_transfer(args, client, sink)

    assert result["ownerId"]
    assert sink.value(result["ownerId"]) == pytest.approx(100.0)


def test_run_transfer_reports_error(tmp_path, sink):
    args = cli.parse_arguments(
        [str(tmp_path / "missing.bin"), "-o", str(tmp_path / "out.img"), "--owner-id", "job-2"]
    )

    with TransferClient() as client:
        result = cli.run_transfer(args, client, sink)

    assert result["status"] == "error"
    assert result["errorType"] == "TransferError"
    assert result["ownerId"] == "job-2"


def test_main_json_output(tmp_path, segments, monkeypatch, registry, capsys):
    monkeypatch.delenv("PROMPROGRESS_METRICS_PORT", raising=False)
    monkeypatch.setattr(cli, "load_dotenv", lambda: False)
    monkeypatch.setattr(
        cli, "build_sink", lambda json_mode: MultiSink([cli.GaugeSink(registry=registry)])
    )
    output = tmp_path / "out.img"

    cli.main([*segments, "-o", str(output), "--owner-id", "job-3", "--json"])

    result = json.loads(capsys.readouterr().out)
    assert result["status"] == "success"
    assert result["output"] == str(output)
    assert result["segments"] == 2
    assert registry.get_sample_value(
        "promprogress_transfer_progress", {"ownerUID": "job-3"}
    ) == pytest.approx(100.0)


def test_main_failure_exits_non_zero(tmp_path, monkeypatch, registry, capsys):
    monkeypatch.delenv("PROMPROGRESS_METRICS_PORT", raising=False)
    monkeypatch.setattr(cli, "load_dotenv", lambda: False)
    monkeypatch.setattr(
        cli, "build_sink", lambda json_mode: MultiSink([cli.GaugeSink(registry=registry)])
    )

    with pytest.raises(SystemExit) as excinfo:
        cli.main([str(tmp_path / "missing.bin"), "-o", str(tmp_path / "out.img"), "--json"])

    assert excinfo.value.code == 1
    assert json.loads(capsys.readouterr().out)["status"] == "error"


def test_main_without_sources_exits(monkeypatch):
    monkeypatch.setattr(cli, "load_dotenv", lambda: False)

    with pytest.raises(SystemExit) as excinfo:
        cli.main([])

    assert excinfo.value.code == 1


def test_output_result_human_summary(capsys):
    cli.output_result(
        {
            "status": "success",
            "ownerId": "job-4",
            "output": "out.img",
            "bytesWritten": 11,
            "segments": 2,
        },
        json_mode=False,
    )

    out = capsys.readouterr().out
    assert "--- Summary ---" in out
    assert "job-4 -> out.img" in out
