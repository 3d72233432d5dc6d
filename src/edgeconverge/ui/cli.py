from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from dotenv import load_dotenv

from edgeconverge.app import DEFAULT_MAX_PASSES, apply_declared_state, watch_declared_state
from edgeconverge.config import (
    ConfigurationError,
    RuntimeConfig,
    configure_logging,
    get_profile_server_config,
    get_runtime_config,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

log = logging.getLogger(__name__)


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"not an integer: {value}") from exc
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1: {value}")
    return number


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Converge edge node state to its declaration")
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Log at DEBUG level",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    apply = subparsers.add_parser("apply", help="Converge once and exit")
    apply.add_argument(
        "--state",
        type=Path,
        required=True,
        help="JSON document declaring interfaces and radvd instances",
    )
    apply.add_argument(
        "--max-passes",
        type=_positive_int,
        default=DEFAULT_MAX_PASSES,
        help="Maximum number of reconciliation passes (default: %(default)s)",
    )

    watch = subparsers.add_parser("watch", help="Keep converging until interrupted")
    watch.add_argument(
        "--state",
        type=Path,
        required=True,
        help="JSON document declaring interfaces and radvd instances",
    )
    watch.add_argument(
        "--interval",
        type=float,
        help="Upper bound in seconds of the jittered reconcile tick (defaults to config)",
    )

    return parser.parse_args(list(argv))


def _runtime_for(args: argparse.Namespace) -> RuntimeConfig:
    runtime = get_runtime_config()
    interval = getattr(args, "interval", None)
    if interval is None:
        return runtime
    if interval < 1:
        raise ValueError("Interval must be at least one second")
    return RuntimeConfig(run_dir=runtime.run_dir, reconcile_interval_seconds=interval)


def main(argv: Sequence[str] | None = None) -> None:
    """Main application entry point."""
    load_dotenv()
    args_list = list(argv) if argv is not None else list(sys.argv[1:])
    parsed_args = _parse_args(args_list)
    configure_logging(level=logging.DEBUG if parsed_args.verbose else logging.INFO)
    try:
        runtime = _runtime_for(parsed_args)
        profile = get_profile_server_config() if parsed_args.command == "watch" else None
    except (ValueError, ConfigurationError):
        log.exception("CLI validation error")
        sys.exit(2)

    try:
        if parsed_args.command == "apply":
            report = apply_declared_state(
                parsed_args.state,
                runtime=runtime,
                max_passes=parsed_args.max_passes,
            )
            if not report.converged:
                log.error("Declared state not reached: %s", dict(report.summary()))
                sys.exit(1)
        elif parsed_args.command == "watch":
            watch_declared_state(parsed_args.state, runtime=runtime, profile=profile)
        else:
            raise ValueError(f"Unsupported command: {parsed_args.command}")  # noqa: TRY301
    except KeyboardInterrupt:
        log.info("Closed by user (Ctrl+C)")
    except Exception:
        log.exception("Fatal error during reconciliation")
        sys.exit(1)


if __name__ == "__main__":
    main()
