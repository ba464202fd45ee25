"""
crashnotifier - Main Entry Point

Waits for the next crash report matching the given criteria and prints it
as JSON.

    python3 -m crashnotifier.main --process-name Foo --timeout 60

Exit codes: 0 crash found, 1 timeout or interrupted, 2 setup/config error.
"""

import argparse
import json
import sys
from concurrent.futures import TimeoutError as FuturesTimeout
from pathlib import Path
from typing import List, Optional

from loguru import logger

from .core import (
    NotifierConfig,
    WatchSetupError,
    add_component_log,
    setup_console_only,
    setup_logging,
)
from .notifier import CrashLogNotifier, CrashPredicate
from .notifier import predicates as P


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="crashnotifier",
        description="Wait for the next crash report matching the given criteria.",
    )

    parser.add_argument(
        "--dir", dest="report_dirs", action="append", metavar="DIR",
        help="Crash report directory to watch (repeatable, default: platform directory)",
    )
    parser.add_argument("--config", help="JSON configuration file")
    parser.add_argument("--process-name", help="Match this process name")
    parser.add_argument("--pid", type=int, help="Match this process identifier")
    parser.add_argument("--parent-pid", type=int, help="Match this parent process identifier")
    parser.add_argument("--signal", help="Match this signal, e.g. SIGSEGV")
    parser.add_argument("--bundle-id", help="Match this bundle identifier")
    parser.add_argument(
        "--timeout", type=float, default=None,
        help="Give up after this many seconds (default: wait forever)",
    )
    parser.add_argument(
        "--polling", action="store_true",
        help="Use a polling observer (network filesystems, containers)",
    )
    parser.add_argument("--log-dir", help="Also write logs to this directory")
    parser.add_argument(
        "-v", "--verbose", dest="log_level", default=None,
        action="store_const", const="DEBUG",
    )

    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> NotifierConfig:
    """Config file / environment, overridden by command line options."""
    config = NotifierConfig.from_json(args.config) if args.config else NotifierConfig.from_env()

    overrides = NotifierConfig(
        report_dirs=args.report_dirs or config.report_dirs,
        use_polling=args.polling or config.use_polling,
        log_level=args.log_level or config.log_level,
    )
    return config.merge(overrides)


def build_predicate(args: argparse.Namespace) -> CrashPredicate:
    """Combine the matching options; no options matches any crash."""
    parts = []
    if args.process_name:
        parts.append(P.process_name(args.process_name))
    if args.pid is not None:
        parts.append(P.pid(args.pid))
    if args.parent_pid is not None:
        parts.append(P.parent_pid(args.parent_pid))
    if args.signal:
        parts.append(P.signal(args.signal.upper()))
    if args.bundle_id:
        parts.append(P.bundle_id(args.bundle_id))

    if not parts:
        return P.any_crash()
    if len(parts) == 1:
        return parts[0]
    return P.AllOf(tuple(parts))


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)

    try:
        config = build_config(args)
    except (OSError, ValueError) as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 2

    errors = config.validate()
    if errors:
        for error in errors:
            print(f"Invalid configuration: {error}", file=sys.stderr)
        return 2

    if args.log_dir:
        setup_logging(Path(args.log_dir), console_level=config.log_level)
        add_component_log("watcher")
    else:
        setup_console_only(config.log_level)

    predicate = build_predicate(args)
    notifier = CrashLogNotifier(config)

    try:
        notifier.start_listening()
    except WatchSetupError as e:
        logger.error(f"Unable to watch crash reports: {e}")
        return 2

    handle = notifier.next_crash_log(predicate)
    logger.info(f"Waiting for crash matching {predicate!r}")

    try:
        record = handle.result(timeout=args.timeout)
    except FuturesTimeout:
        handle.cancel()
        logger.warning(f"No matching crash within {args.timeout}s")
        return 1
    except KeyboardInterrupt:
        handle.cancel()
        logger.warning("Interrupted")
        return 1
    finally:
        notifier.stop()

    print(json.dumps(record.to_dict(), indent=2, default=str))
    return 0


def cli() -> None:
    sys.exit(main())


if __name__ == "__main__":
    cli()
