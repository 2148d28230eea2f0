from __future__ import annotations

import argparse
import os
import signal
import sys
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

from croniter import croniter
from zoneinfo import ZoneInfo

from .archive import render_report
from .config import BackupConfig, ConfigurationError, SchedulerConfig, load_config
from .logger import configure_logging, get_logger
from .orchestrator import BackupOrchestrator, RunState

CONFIG_ENV = "GITHUB_SNAPSHOT_CONFIG"
EXIT_CONFIG_ERROR = 2
MAX_SLEEP_SECONDS = 60

LOG = get_logger(__name__)


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Clone all repositories of GitHub organizations and a personal account into a dated backup.",
    )
    parser.add_argument(
        "--config",
        default=os.getenv(CONFIG_ENV),
        help=f"Path to configuration YAML file (default ${CONFIG_ENV}; optional).",
    )
    parser.add_argument(
        "--org",
        action="append",
        dest="orgs",
        help="Organization to back up (can be specified multiple times). Replaces the configured list.",
    )
    parser.add_argument("--user", dest="username", help="Personal account whose repositories are backed up.")
    parser.add_argument(
        "--no-orgs",
        dest="clone_orgs",
        action="store_const",
        const=False,
        help="Skip organization repositories.",
    )
    parser.add_argument(
        "--no-personal",
        dest="clone_personal",
        action="store_const",
        const=False,
        help="Skip personal repositories.",
    )
    parser.add_argument("--output-dir", help="Directory that receives the dated folder and archive.")
    parser.add_argument(
        "--debug",
        action="store_const",
        const=True,
        help="Log API requests and response previews to stderr.",
    )
    parser.add_argument("--log-level", help="Log level (default INFO).")
    return parser.parse_args(argv)


def _overrides(args: argparse.Namespace) -> Dict[str, Any]:
    return {
        "orgs": args.orgs,
        "username": args.username,
        "clone_orgs": args.clone_orgs,
        "clone_personal": args.clone_personal,
        "output_dir": args.output_dir,
        "debug": args.debug,
        "log_level": args.log_level,
    }


def load_configuration(args: argparse.Namespace) -> BackupConfig:
    path = Path(args.config).expanduser() if args.config else None
    return load_config(path, overrides=_overrides(args))


def _mask(token: str) -> str:
    return f"{token[:8]}..."


def run_once(config: BackupConfig) -> int:
    orchestrator = BackupOrchestrator(config)
    result = orchestrator.run()
    if result.state is RunState.DONE and result.archive is not None:
        print(render_report(result.run, result.archive, result.completed_at))
    return result.exit_code


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging(args.log_level or os.getenv("LOG_LEVEL", "INFO"), debug=bool(args.debug))

    try:
        config = load_configuration(args)
        token = config.require_token()
    except ConfigurationError as exc:
        LOG.error("Configuration error: %s", exc)
        return EXIT_CONFIG_ERROR

    configure_logging(config.log_level, debug=config.debug)
    LOG.info("Using GitHub token: %s", _mask(token))
    if not config.accounts_enabled:
        LOG.warning("No organizations or personal account enabled; the backup will be empty")

    if config.scheduler:
        return run_with_scheduler(args, config)
    return run_once(config)


def run_with_scheduler(args: argparse.Namespace, config: BackupConfig) -> int:
    """Back up on the configured cron schedule until SIGINT or SIGTERM.

    The configuration is re-read before every run; dropping its ``scheduler`` block ends the loop.
    """
    stopped = threading.Event()

    def _stop(signum: int, _frame: Optional[object]) -> None:
        LOG.info("Received signal %s; stopping after the current backup", signum)
        stopped.set()

    for signum in (signal.SIGTERM, signal.SIGINT):
        signal.signal(signum, _stop)

    if config.scheduler is None:
        raise ValueError("Scheduler configuration is required")
    due = _first_run(config.scheduler)

    while not stopped.is_set():
        remaining = (due - datetime.now(due.tzinfo)).total_seconds()
        if remaining > 0:
            stopped.wait(min(remaining, MAX_SLEEP_SECONDS))
            continue

        config = _reload_configuration(args, config)
        schedule = config.scheduler
        if schedule is None:
            LOG.info("Scheduler removed from configuration; stopping")
            break

        exit_code = run_once(config)
        if exit_code != 0:
            LOG.warning("Scheduled backup finished with exit code %s", exit_code)
        due = _next_run(schedule.cron, datetime.now(ZoneInfo(schedule.timezone)))
        LOG.info("Next backup at %s", due.isoformat())

    LOG.info("Scheduler stopped")
    return 0


def _first_run(schedule: SchedulerConfig) -> datetime:
    now = datetime.now(ZoneInfo(schedule.timezone))
    if schedule.run_on_startup:
        LOG.info("Running the first backup immediately")
        return now
    due = _next_run(schedule.cron, now)
    LOG.info("First backup at %s", due.isoformat())
    return due


def _reload_configuration(args: argparse.Namespace, current: BackupConfig) -> BackupConfig:
    try:
        reloaded = load_configuration(args)
        reloaded.require_token()
    except ConfigurationError as exc:
        LOG.error("Failed to reload configuration: %s; keeping previous settings", exc)
        return current
    return reloaded


def _next_run(cron_expression: str, reference: datetime) -> datetime:
    return croniter(cron_expression, reference).get_next(datetime)


if __name__ == "__main__":
    sys.exit(main())
