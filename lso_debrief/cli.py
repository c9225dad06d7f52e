"""Command line: replay recorded telemetry or record a live feed, and write the recovery reports."""

from __future__ import annotations

import argparse
import json
import logging
import sys
import threading
from pathlib import Path
from typing import List, Optional

from .acmi import TrackBuffer
from .attempt import grade_trace
from .domain import EngineConfig, TelemetrySample
from .engine import Engine
from .errors import LsoError
from .live import Connect, run_live, tcp_source
from .logging_config import setup_logging
from .replay import load_events
from .report import ReportDispatcher, load_user_map
from .stream import dispatch
from .units import carrier_by_type

logger = logging.getLogger(__name__)


def load_config(path: Optional[str]) -> EngineConfig:
    if path is None:
        return EngineConfig()
    with open(path, "r", encoding="utf-8") as f:
        return EngineConfig.from_mapping(json.load(f))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="lso_debrief", description="Carrier recovery debrief")
    parser.add_argument("--log-level", default="INFO", help="Console log level")
    parser.add_argument("--log-file", default=None, help="Also log (at DEBUG) to this file")
    sub = parser.add_subparsers(dest="command", required=True)

    replay = sub.add_parser("replay", help="Replay a telemetry CSV or Tacview ACMI through the engine")
    replay.add_argument("input", type=str, help="Path to telemetry CSV or .acmi/.zip.acmi recording")
    _add_report_options(replay)

    run = sub.add_parser("run", help="Record a live telemetry feed and report each attempt")
    run.add_argument("--host", type=str, default="127.0.0.1", help="Telemetry feed host")
    run.add_argument("--port", type=int, required=True, help="Telemetry feed TCP port")
    run.add_argument("--timeout", type=float, default=30.0, help="Reconnect after this many silent seconds")
    _add_report_options(run)
    return parser


def _add_report_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--out", type=str, required=True, help="Output directory for charts and ACMI files")
    parser.add_argument("--webhook", type=str, default=None, help="Webhook URL to post each attempt to")
    parser.add_argument("--users", type=str, default=None, help="JSON file mapping player names to user ids")
    parser.add_argument("--config", type=str, default=None, help="JSON file with engine threshold overrides")
    parser.add_argument("--min-points", type=int, default=2, help="Skip reports for attempts with fewer points")


def _make_dispatcher(args: argparse.Namespace, engine: Engine) -> ReportDispatcher:
    users = load_user_map(args.users) if args.users else {}
    return ReportDispatcher(
        engine.handoff,
        args.out,
        tracks=TrackBuffer(),
        webhook_url=args.webhook,
        users=users,
        min_points=args.min_points,
    )


def run_replay(args: argparse.Namespace) -> int:
    config = load_config(args.config)
    events = load_events(Path(args.input))
    samples = sum(1 for e in events if isinstance(e, TelemetrySample))
    logger.info("loaded %d samples from %s", samples, args.input)

    engine = Engine(config)
    dispatcher = _make_dispatcher(args, engine)

    finalized = []
    for event in events:
        if isinstance(event, TelemetrySample):
            dispatcher.tracks.record(event)
        finalized.extend(dispatch(engine, event))
        dispatcher.process_pending()
        engine.flush()
    finalized.extend(engine.close())
    while engine.overflow_count or not engine.handoff.empty():
        dispatcher.process_pending()
        engine.flush()

    if not finalized:
        print("No recovery attempts found.")
        return 0

    for attempt in finalized:
        print(_summary_line(attempt))

    print("Done.")
    _print_outputs(dispatcher)
    return 0


def _summary_line(attempt) -> str:
    metrics = grade_trace(attempt.trace, carrier_by_type(attempt.carrier_type))
    line = (
        f"{attempt.pilot_name:<20} {attempt.aircraft_type:<14} {attempt.carrier_id:<10} "
        f"{str(attempt.outcome):<14} points={len(attempt.trace):<4}"
    )
    if metrics["points"] > 0:
        line += (
            f" lineup={metrics['pct_on_lineup']:.0f}%"
            f" glideslope={metrics['pct_on_glide_slope']:.0f}%"
            f" onspeed={metrics['pct_aoa_OnSpeed']:.0f}%"
        )
    return line


def _print_outputs(dispatcher: ReportDispatcher) -> None:
    for result in dispatcher.results:
        print(f"Chart: {result.chart}")
        if result.acmi is not None:
            print(f"ACMI:  {result.acmi}")


def run_recorder(args: argparse.Namespace, connect: Optional[Connect] = None) -> int:
    """Live mode: runs until the feed is stopped with Ctrl+C."""
    config = load_config(args.config)
    engine = Engine(config)
    dispatcher = _make_dispatcher(args, engine)
    connect = connect or tcp_source(args.host, args.port, args.timeout)

    logger.info("recording from %s:%d into %s (Ctrl+C to stop)", args.host, args.port, args.out)
    try:
        run_live(connect, engine, dispatcher, threading.Event())
    except KeyboardInterrupt:
        logger.info("interrupted, shut down")

    for result in dispatcher.results:
        print(_summary_line(result.attempt))
    print(f"Done. {len(dispatcher.results)} report(s).")
    _print_outputs(dispatcher)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.log_level, args.log_file)

    try:
        if args.command == "replay":
            return run_replay(args)
        if args.command == "run":
            return run_recorder(args)
    except (LsoError, ValueError, OSError) as e:
        logger.error("%s", e)
        return 1
    parser.error(f"unknown command {args.command}")
    return 2


if __name__ == "__main__":
    sys.exit(main())
