"""Command-line interface for multi-segment transfers with progress metrics."""

from __future__ import annotations

import argparse
import json
import logging
import os
import uuid
from typing import Dict, List, Optional, Sequence

import httpx
from dotenv import load_dotenv
from prometheus_client import CollectorRegistry, start_http_server

from .client import TransferClient
from .metrics import GaugeSink, MetricSink, MultiSink, TqdmSink
from .progress import DEFAULT_UPDATE_INTERVAL, ProgressError

LOG_FORMAT = "[%(levelname)s] %(message)s"
logger = logging.getLogger("promprogress")


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Ignoring invalid %s=%r", name, raw)
        return default


def _env_int(name: str) -> Optional[int]:
    raw = os.environ.get(name)
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring invalid %s=%r", name, raw)
        return None


def parse_arguments(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Return parsed CLI arguments, with defaults taken from the environment."""

    parser = argparse.ArgumentParser(
        description="Transfer one or more segments into a single file, exporting progress.",
    )
    parser.add_argument(
        "sources",
        nargs="*",
        help="Segments to transfer, in order (local paths or http(s) URLs).",
    )
    parser.add_argument(
        "-o",
        "--output",
        type=str,
        default=None,
        help="Output file the segments are written to.",
    )
    parser.add_argument(
        "--owner-id",
        type=str,
        default=os.environ.get("PROMPROGRESS_OWNER_ID"),
        help="Label value identifying this transfer in the progress metric (default: random UUID).",
    )
    parser.add_argument(
        "-i",
        "--interval",
        type=float,
        default=_env_float("PROMPROGRESS_INTERVAL", DEFAULT_UPDATE_INTERVAL),
        help="Seconds between timed progress updates (default: 1.0).",
    )
    parser.add_argument(
        "-p",
        "--metrics-port",
        type=int,
        default=_env_int("PROMPROGRESS_METRICS_PORT"),
        help="Serve Prometheus metrics on this port while transferring.",
    )
    parser.add_argument(
        "-vv",
        "--verbose",
        action="store_true",
        help="Show detailed debug info.",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Output result as JSON for scripts.",
    )
    return parser.parse_args(argv)


def configure_logging(verbose: bool) -> None:
    """Configure logging for the CLI session."""

    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format=LOG_FORMAT)
    logger.setLevel(level)
    httpx_logger = logging.getLogger("httpx")
    httpx_logger.setLevel(logging.DEBUG if verbose else logging.WARNING)


def _log_token_state(token: Optional[str], json_mode: bool) -> None:
    """Log whether a token was discovered for informational output."""

    if json_mode:
        return
    if token:
        logger.info("🔑 Token loaded: %s...", token[:4])
    else:
        logger.debug("No PROMPROGRESS_TOKEN found; remote segments fetched anonymously.")


def build_sink(json_mode: bool, registry: Optional[CollectorRegistry] = None) -> MultiSink:
    """Return the sinks for this session: the Prometheus gauge, plus bars unless quiet."""

    sinks: List[MetricSink] = [GaugeSink(registry=registry)]
    if not json_mode:
        sinks.append(TqdmSink())
    return MultiSink(sinks)


def _handle_transfer_error(owner_id: str, error: Exception) -> Dict[str, object]:
    """Normalize the error payload for presentation."""

    return {
        "ownerId": owner_id,
        "status": "error",
        "message": str(error),
        "errorType": error.__class__.__name__,
    }


def run_transfer(
    args: argparse.Namespace, client: TransferClient, sink: MetricSink
) -> Dict[str, object]:
    """Run the transfer described by ``args`` and return a result record."""

    owner_id = args.owner_id or str(uuid.uuid4())
    try:
        result = client.transfer(
            args.sources,
            args.output,
            owner_id=owner_id,
            sink=sink,
            interval=args.interval,
        )
    except (ProgressError, httpx.HTTPError, OSError) as error:
        if logger.isEnabledFor(logging.DEBUG):
            logger.exception("Transfer failed for %s", owner_id)
        else:
            logger.error("Transfer failed for %s: %s", owner_id, error)
        return _handle_transfer_error(owner_id, error)

    return {"status": "success", **result.to_dict()}


def output_result(result: Dict[str, object], json_mode: bool) -> None:
    """Display the result in either JSON or human readable form."""

    if json_mode:
        print(json.dumps(result, indent=2))
        return

    print("\n--- Summary ---")
    if result["status"] == "success":
        print(
            f"✅ {result['ownerId']} -> {result['output']} "
            f"({result['bytesWritten']} bytes, {result['segments']} segment(s))"
        )
    else:
        print(f"❌ {result['ownerId']} -> {result.get('message')}")


def main(argv: Optional[Sequence[str]] = None) -> None:
    """Entrypoint for the CLI."""

    load_dotenv()
    args = parse_arguments(argv)
    configure_logging(args.verbose)

    if not args.sources or not args.output:
        logger.error("No segments or no output file specified.")
        logger.error("Usage: promprogress SOURCE [SOURCE ...] -o OUTPUT")
        raise SystemExit(1)

    if args.metrics_port is not None:
        start_http_server(args.metrics_port)
        logger.info("Serving metrics on port %s", args.metrics_port)

    token = os.environ.get("PROMPROGRESS_TOKEN")
    _log_token_state(token, args.json)

    sink = build_sink(args.json)
    try:
        with TransferClient(token=token) as client:
            result = run_transfer(args, client, sink)
    finally:
        sink.close()

    output_result(result, args.json)
    if result["status"] != "success":
        raise SystemExit(1)


if __name__ == "__main__":
    main()
