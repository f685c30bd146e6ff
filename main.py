from __future__ import annotations

import argparse
import logging
import sys
from collections.abc import Sequence
from pathlib import Path

# Make sure the 'src' directory is on sys.path so 'livetrace' can be imported
REPO_ROOT = Path(__file__).resolve().parent
SRC_DIR = REPO_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from livetrace.config import StreamConfig, load_config
from livetrace.core import LoggingSink, StaticSelection, StreamSession
from livetrace.protocol import StreamProtocolError
from livetrace.remote import WebSocketFeed
from livetrace.tools import debug_enabled

logger = logging.getLogger("livetrace")


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Live trace feed viewer")
    parser.add_argument(
        "--config",
        type=Path,
        help="YAML file with StreamConfig settings",
    )
    parser.add_argument("--url", help="Override the websocket URL from the config")
    parser.add_argument(
        "--select",
        action="append",
        default=[],
        metavar="DATASET,FIELD",
        help="Subscribe to a field (repeatable); replaces the config selection",
    )
    parser.add_argument(
        "--headless",
        action="store_true",
        help="Log samples instead of opening the plot window",
    )
    parser.add_argument("--log-level", help="Logging level (default from config)")
    parser.add_argument(
        "--log-every",
        type=int,
        default=1,
        help="In headless mode, log every Nth live sample",
    )
    return parser


def _selection_for(cfg: StreamConfig, pairs: Sequence[str]) -> StaticSelection:
    if pairs:
        return StaticSelection.from_pairs(pairs)
    return StaticSelection(cfg.selection)


def run_headless(cfg: StreamConfig, selection: StaticSelection, log_every: int = 1) -> int:
    session = StreamSession(
        selection,
        sink=LoggingSink(every=log_every),
        start_ts=cfg.start_ts,
        stop_ts=cfg.stop_ts,
        max_plot_points=cfg.max_plot_points,
    )
    feed = WebSocketFeed(cfg.url, session, verify_tls=cfg.verify_tls)
    try:
        error = feed.run()
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 130
    if isinstance(error, StreamProtocolError):
        return 1
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    args = _build_arg_parser().parse_args(argv)
    cfg = load_config(args.config)
    if args.url:
        cfg.url = args.url

    logging.basicConfig(
        level=(args.log_level or cfg.log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if debug_enabled():
        logger.info("LIVETRACE_DEBUG is set; chunk writes are timed at DEBUG level")

    try:
        selection = _selection_for(cfg, args.select)
    except ValueError as exc:
        logger.error("%s", exc)
        return 2
    if not selection:
        logger.error("No fields selected; use --select DATASET,FIELD or a config 'selection' block")
        return 2

    if args.headless:
        return run_headless(cfg, selection, args.log_every)

    from livetrace.gui.application import run_gui

    return run_gui(cfg, selection, sys.argv[:1])


if __name__ == "__main__":
    sys.exit(main())
