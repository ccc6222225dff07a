#!/usr/bin/env python3
"""
CLI entrypoint for running text or a candidate dataset through the gatekeeper.

Exit codes: 0 renderable, 2 renderable after user confirmation, 1 blocked.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Iterable

from config import GateConfig
from exceptions import GatekeeperError
from gatekeeper import Gatekeeper
from logging_utils import RUN_LOGGER_NAME, get_error_info, log_decision, log_exception, setup_run_logging
from models import InsightContext

EXIT_RENDER = 0
EXIT_BLOCKED = 1
EXIT_CONFIRM = 2


def enable_debug_logging() -> None:
    logging.getLogger().setLevel(logging.DEBUG)
    for logger_name in logging.Logger.manager.loggerDict:
        logging.getLogger(logger_name).setLevel(logging.DEBUG)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Validate model output before it is rendered.")
    parser.add_argument("text", nargs="?", default="", help='Free text, e.g. "Januari 500jt, Februari 600jt".')
    parser.add_argument("--dataset", type=str, help="Path to a JSON candidate dataset (used instead of text).")
    parser.add_argument("--narrative", type=str, default=None, help="Narrative to check against the data.")
    parser.add_argument(
        "--module",
        type=str,
        default="data-visualization",
        choices=GateConfig.MODULES,
        help="Active module.",
    )
    parser.add_argument(
        "--context",
        type=str,
        default=InsightContext.GENERAL.value,
        choices=[context.value for context in InsightContext],
        help="Business context of the series.",
    )
    parser.add_argument("--currency", type=str, default="IDR", help="Currency for insight text.")
    parser.add_argument("--log-dir", type=str, default=None, help="Write a run log into this directory.")
    parser.add_argument("--debug", action="store_true", help="Enable verbose logging.")
    return parser


def exit_code_for(decision) -> int:
    if decision.can_render:
        return EXIT_RENDER
    if decision.requires_confirmation and not decision.killed:
        return EXIT_CONFIRM
    return EXIT_BLOCKED


def main(argv: Iterable[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    if not args.text and not args.dataset:
        print("Provide input text or --dataset.", file=sys.stderr)
        return EXIT_BLOCKED

    if args.log_dir:
        run_logger, _ = setup_run_logging(args.log_dir, args.text[:60] or args.dataset)
    else:
        logging.basicConfig(level=logging.WARNING, stream=sys.stderr)
        run_logger = logging.getLogger(RUN_LOGGER_NAME)
    if args.debug:
        enable_debug_logging()
        run_logger.debug("Debug logging enabled.")

    gatekeeper = Gatekeeper()
    context = InsightContext(args.context)
    try:
        if args.dataset:
            candidate = json.loads(Path(args.dataset).read_text(encoding="utf-8"))
            decision = gatekeeper.process_dataset(
                args.module, args.text, candidate, args.narrative, context, args.currency
            )
        else:
            decision = gatekeeper.process_text(
                args.module, args.text, narrative=args.narrative, context=context, currency=args.currency
            )
    except (OSError, ValueError, GatekeeperError) as exc:
        log_exception(run_logger, exc, context="run_gate", module=args.module)
        print(json.dumps({"error": get_error_info(exc, {"module": args.module})}, indent=2, default=str))
        return EXIT_BLOCKED

    payload = decision.to_dict()
    log_decision(run_logger, payload)
    print(json.dumps(payload, indent=2, ensure_ascii=False, default=str))
    return exit_code_for(decision)


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main(sys.argv[1:]))
