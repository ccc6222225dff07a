"""
Logging Utilities for the AI Output Gatekeeper

Run-scoped log files for the CLI plus structured capture of gatekeeper
failures, so every gate decision, cache fallback and kill switch transition
lands in one audit trail.
"""

import logging
import sys
import traceback
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

from exceptions import GatekeeperError, UpstreamFetchError

RUN_LOGGER_NAME = "gate_run"
FILE_FORMAT = "%(asctime)s | %(levelname)-7s | %(name)s | %(message)s"


def setup_run_logging(log_dir: str, label: str, console_level: int = logging.INFO) -> Tuple[logging.Logger, str]:
    """
    Route every module logger into a per-run log file.

    The root logger gets a DEBUG file handler and a console handler on stderr;
    stdout stays reserved for the decision JSON.

    Args:
        log_dir: Directory for the log file (created if missing)
        label: Short description of the run, usually an input preview
        console_level: Threshold for the stderr handler

    Returns:
        Tuple of (run logger, log file path)
    """
    directory = Path(log_dir)
    directory.mkdir(parents=True, exist_ok=True)
    started = datetime.now(timezone.utc)
    log_file_path = str(directory / f"gate_{started.strftime('%Y%m%dT%H%M%S')}.log")

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)

    file_handler = logging.FileHandler(log_file_path, mode="w", encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt="%Y-%m-%dT%H:%M:%S"))
    root_logger.addHandler(file_handler)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
    root_logger.addHandler(console_handler)

    run_logger = logging.getLogger(RUN_LOGGER_NAME)
    run_logger.setLevel(logging.DEBUG)
    run_logger.info("Gatekeeper run started at %s (%s)", started.isoformat(), label)
    run_logger.debug("Writing run log to %s", log_file_path)

    return run_logger, log_file_path


def _error_details(exc: BaseException) -> Dict[str, Any]:
    details: Dict[str, Any] = {}
    if isinstance(exc, GatekeeperError) and exc.issues:
        details["issues"] = list(exc.issues)
    if isinstance(exc, UpstreamFetchError):
        details["cache_key"] = exc.key
    if exc.__cause__ is not None:
        details["cause"] = f"{type(exc.__cause__).__name__}: {exc.__cause__}"
    return details


def log_exception(logger: logging.Logger, exc: BaseException, context: str = "", **kwargs: Any) -> None:
    """
    Log an exception with its traceback, gate issues and caller context.

    Args:
        logger: Logger instance to use
        exc: Exception that was raised
        context: Where the failure happened (command, stage, module)
        **kwargs: Extra key-value pairs worth keeping in the audit trail
    """
    prefix = f"{context}: " if context else ""
    logger.error("%s%s: %s", prefix, type(exc).__name__, exc)
    details = {**_error_details(exc), **kwargs}
    if details:
        logger.error("Details: %s", details)
    logger.debug("Traceback:\n%s", "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)))


def get_error_info(exc: BaseException, context: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
    """Structured, JSON-ready description of a failure."""
    return {
        "error_type": type(exc).__name__,
        "error_message": str(exc),
        "details": _error_details(exc),
        "context": dict(context or {}),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


def log_decision(logger: logging.Logger, decision: Mapping[str, Any]) -> None:
    """One summary line per gate decision, warnings and errors at DEBUG."""
    verdict = decision.get("verdict") or {}
    logger.info(
        "module=%s render=%s confirm=%s killed=%s stage=%s",
        decision.get("module"),
        decision.get("canRender"),
        decision.get("requiresConfirmation"),
        decision.get("killed"),
        verdict.get("stage", "guard"),
    )
    for warning in verdict.get("warnings", []):
        logger.debug("warning: %s", warning)
    for error in verdict.get("errors", []):
        logger.debug("error: %s", error)
