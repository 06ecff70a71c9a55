"""CLI entry point for the batched load generator.

Usage:
    webtest --total-requests 5000 --batch-size 1000
    webtest 10000 500 --template calculator --base-url https://calc.example.test/calculated
    webtest -n 200 -b 50 --url https://api.example.test/items --token-file .token
    python -m webtest -n 100 -b 10 --output-file output/run.json
"""

import argparse
import json
import sys
from pathlib import Path

import structlog
from pydantic import ValidationError

from webtest import __version__
from webtest.config import Settings
from webtest.load.driver import run_load
from webtest.load.errors import ConfigurationError, WebTestError
from webtest.load.models import RunConfig
from webtest.load.parameters import TEMPLATES, get_template
from webtest.load.tokens import resolve_token
from webtest.shared.logging import setup_logging

logger = structlog.get_logger()

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]


def build_parser(defaults: Settings) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="webtest",
        description="Send batched concurrent GET requests and report timing",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "total", nargs="?", type=int, default=None, help="Total requests (same as -n)"
    )
    parser.add_argument(
        "batch", nargs="?", type=int, default=None, help="Batch size (same as -b)"
    )
    parser.add_argument(
        "-n",
        "--total-requests",
        type=int,
        default=None,
        help=f"Total number of requests to send (default {defaults.total_requests})",
    )
    parser.add_argument(
        "-b",
        "--batch-size",
        type=int,
        default=None,
        help=f"Requests sent concurrently per batch (default {defaults.batch_size})",
    )

    target = parser.add_mutually_exclusive_group()
    target.add_argument("--url", type=str, default=None, help="Literal URL hit by every request")
    target.add_argument(
        "--template",
        choices=sorted(TEMPLATES),
        default="calculator",
        help="Query template with random parameters per request",
    )
    parser.add_argument(
        "--base-url",
        type=str,
        default=defaults.template_base_url,
        help="Base URL the template's query string is appended to",
    )

    auth = parser.add_mutually_exclusive_group()
    auth.add_argument("--token", type=str, default=None, help="Bearer token")
    auth.add_argument(
        "--token-file",
        type=str,
        default=None,
        help=f"Read the bearer token from a file (default: {defaults.token_file} if present)",
    )

    parser.add_argument(
        "--timeout", type=float, default=defaults.timeout_seconds, help="Per-request timeout (s)"
    )
    parser.add_argument(
        "--max-idle-per-host",
        type=int,
        default=defaults.max_idle_per_host,
        help="Idle keep-alive connections kept in the pool",
    )
    parser.add_argument(
        "--max-failure-rate",
        type=float,
        default=None,
        help="Stop launching batches once the cumulative failure rate reaches this (0-1]",
    )
    parser.add_argument("--seed", type=int, default=None, help="Random seed for templated mode")
    parser.add_argument(
        "--log-level",
        choices=LOG_LEVELS,
        type=str.upper,
        default=defaults.log_level.upper(),
        help="Log level",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        default=defaults.json_logs,
        help="Emit JSON log lines instead of console output",
    )
    parser.add_argument(
        "--output-file", type=str, default=None, help="Write the JSON run report here"
    )
    return parser


def _pick(flag: int | None, positional: int | None, default: int) -> int:
    if flag is not None:
        return flag
    if positional is not None:
        return positional
    return default


def build_run_config(args: argparse.Namespace, defaults: Settings) -> RunConfig:
    """Translate parsed arguments into a validated ``RunConfig``."""
    total_requests = _pick(args.total_requests, args.total, defaults.total_requests)
    batch_size = _pick(args.batch_size, args.batch, defaults.batch_size)

    if args.url is not None:
        target = args.url
    else:
        try:
            target = get_template(args.template, args.base_url)
        except KeyError as exc:
            raise ConfigurationError(str(exc)) from exc

    token = resolve_token(
        token=args.token,
        token_file=args.token_file,
        default_file=defaults.token_file,
    )
    return RunConfig(
        total_requests=total_requests,
        batch_size=batch_size,
        target=target,
        auth_token=token,
        timeout_seconds=args.timeout,
        max_idle_per_host=args.max_idle_per_host,
        user_agent=defaults.user_agent,
        max_failure_rate=args.max_failure_rate,
        seed=args.seed,
    )


def _write_report(path: str, report: dict) -> None:
    output_path = Path(path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(json.dumps(report, indent=2, default=str))


def main(argv: list[str] | None = None) -> int:
    try:
        defaults = Settings()
    except ValidationError as exc:
        print(f"Invalid WEBTEST_* environment settings:\n{exc}", file=sys.stderr)
        return 1

    args = build_parser(defaults).parse_args(argv)
    setup_logging(args.log_level, json_output=args.json_logs)

    try:
        config = build_run_config(args, defaults)
        driver = run_load(config)
    except WebTestError as exc:
        logger.error("setup_failed", error=str(exc))
        print(f"error: {exc}", file=sys.stderr)
        return 1

    if args.output_file:
        try:
            _write_report(args.output_file, driver.collect_results())
        except OSError as exc:
            logger.error("report_write_failed", path=args.output_file, error=str(exc))
            return 1
        logger.info("report_written", path=args.output_file)
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
