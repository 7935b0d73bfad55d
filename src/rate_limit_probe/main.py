"""
Rate limit probe command line entry point.

Sends HTTP requests to a URL until a 429 (Too Many Requests) response comes
back, the time limit is reached, or the request limit is reached, then reports
how long it took and how many requests were made.
"""

import argparse
import logging
import sys
from http import HTTPStatus
from pathlib import Path
from typing import Callable, List, Optional
from uuid import uuid4

from dotenv import load_dotenv

from rate_limit_probe.core.errors import ConfigurationError, ProbeError, TransportError
from rate_limit_probe.core.utils.logging import ProbeLogger, setup_logging
from rate_limit_probe.core.utils.run_summary import RunSummaryWriter
from rate_limit_probe.io.schema import RequestDescriptor, ResponseObservation, RunResult, StopReason
from rate_limit_probe.io.transport import create_transport
from rate_limit_probe.pipeline.config import ProbeSettings, create_config_loader
from rate_limit_probe.pipeline.dispatcher import Transport, run
from rate_limit_probe.pipeline.source import RequestSource

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_TRANSPORT_ERROR = 1
EXIT_CONFIG_ERROR = 2

LONG_ABOUT = (
    "rate-limit-probe - HTTP rate limit checker\n"
    "Spams HTTP requests on a given URL until the time limit is reached "
    "or a 429 (Too Many Requests) status code is returned."
)

TransportFactory = Callable[[int, Optional[float]], Transport]


def _load_environment() -> None:
    """Load a .env file from the working directory or the project root, if present."""
    env_paths = [
        Path.cwd() / ".env",
        Path(__file__).parent.parent.parent / ".env",  # project root in a src checkout
    ]
    for env_path in env_paths:
        if env_path.exists():
            load_dotenv(env_path)
            logger.debug(f"Loaded environment variables from: {env_path}")
            return


def _non_negative_int(value: str) -> int:
    number = int(value)
    if number < 0:
        raise argparse.ArgumentTypeError(f"must be >= 0, got {number}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rate-limit-probe",
        description=LONG_ABOUT,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("url", help="Target URL")
    parser.add_argument(
        "duration", type=_non_negative_int, help="For how long to spam requests in seconds"
    )
    parser.add_argument("method", type=str.upper, choices=["GET", "POST"], help="HTTP method")
    parser.add_argument(
        "-m",
        "--max-requests",
        type=int,
        help="After what number of requests program will stop (default: 1000)",
    )
    parser.add_argument(
        "-c",
        "--concurrent-requests-count",
        type=int,
        help="How many requests are in flight at the same time (default: 15)",
    )
    parser.add_argument(
        "-q", "--quiet", action="store_true", help="Disable progress output and console logging"
    )
    parser.add_argument("--config", help="Configuration file path (default: config/config.yaml)")
    parser.add_argument("--timeout", type=float, help="Per-request timeout in seconds (default: 30)")
    parser.add_argument("--summary-dir", help="Write run summary artifacts under this directory")
    return parser


def format_status(status_code: int) -> str:
    try:
        return f"{status_code} {HTTPStatus(status_code).phrase}"
    except ValueError:
        return str(status_code)


def print_report(result: RunResult) -> None:
    """Print the final report for a run that ended normally."""
    if result.stop_reason is StopReason.RATE_LIMITED:
        print("Response 429")
        for name, value in (result.rate_limit_headers or {}).items():
            print(f"{name}: {value}")
    else:
        print("Time or request limit reached.")
    print(f"Took {result.elapsed_ms}ms")
    print(f"Requests made = {result.requests_completed}.")


def _make_observer(probe_logger: ProbeLogger, quiet: bool):
    def on_completion(observation: ResponseObservation, requests_completed: int) -> None:
        probe_logger.log_completion(observation.status_code, requests_completed)
        if not quiet:
            print(format_status(observation.status_code), flush=True)

    return on_completion


def _create_summary_writer(summary_dir: Optional[str], summary_config: dict) -> Optional[RunSummaryWriter]:
    if summary_dir:
        return RunSummaryWriter(run_id=str(uuid4()), base_dir=summary_dir)
    if summary_config.get("enabled"):
        return RunSummaryWriter(run_id=str(uuid4()), base_dir=summary_config.get("base_dir", "var/logs/runs"))
    return None


def execute_probe(
    settings: ProbeSettings,
    probe_logger: ProbeLogger,
    transport_factory: TransportFactory = create_transport,
    summary_writer: Optional[RunSummaryWriter] = None,
) -> int:
    """Run one probe with resolved settings, print the report and return the exit code."""
    descriptor = RequestDescriptor(method=settings.method, url=settings.url)
    source = RequestSource(descriptor, settings.max_requests)
    transport = transport_factory(settings.concurrency_limit, settings.request_timeout)

    probe_logger.log_run_banner(
        settings.url,
        settings.method.value,
        settings.concurrency_limit,
        settings.duration,
        settings.max_requests,
    )
    if summary_writer:
        summary_writer.append_event(
            {"event": "run_started", "settings": settings.model_dump(mode="json")}
        )

    try:
        result = run(
            source,
            transport,
            concurrency_limit=settings.concurrency_limit,
            time_budget=settings.duration,
            max_requests=settings.max_requests,
            on_completion=_make_observer(probe_logger, settings.quiet),
        )
    except TransportError as e:
        probe_logger.log_transport_error(e)
        print(f"Error: {e}", file=sys.stderr)
        if summary_writer:
            summary_writer.append_event({"event": "run_failed", "error": str(e)})
            summary_writer.write_final_summary(
                {
                    "error_type": "transport_error",
                    "error": str(e),
                    "elapsed_ms": int((e.elapsed or 0) * 1000),
                    "requests_completed": e.requests_completed,
                    **probe_logger.metrics.snapshot(),
                }
            )
        return EXIT_TRANSPORT_ERROR
    finally:
        # Stragglers still in flight fail against the closed pool and are ignored.
        transport.close()

    print_report(result)
    logger.info(f"Status breakdown: {probe_logger.metrics.format_breakdown()}")
    if summary_writer:
        summary_writer.append_event({"event": "run_stopped", **result.to_summary()})
        summary_writer.write_final_summary({**result.to_summary(), **probe_logger.metrics.snapshot()})
    return EXIT_OK


def main(argv: Optional[List[str]] = None, transport_factory: TransportFactory = create_transport) -> int:
    """Main entry point for the probe."""
    _load_environment()
    args = build_parser().parse_args(argv)

    config_loader = create_config_loader(args.config)
    probe_logger = setup_logging(config_loader.get_logging_config(), quiet=args.quiet)

    validation = config_loader.validate_configuration()
    for warning in validation["warnings"]:
        logger.warning(f"Config: {warning}")
    for issue in validation["issues"]:
        logger.error(f"Config: {issue}")

    try:
        settings = config_loader.resolve_probe_settings(
            {
                "url": args.url,
                "duration": args.duration,
                "method": args.method,
                "max_requests": args.max_requests,
                "concurrency_limit": args.concurrent_requests_count,
                "request_timeout": args.timeout,
                "quiet": args.quiet,
            }
        )
        try:
            RequestDescriptor(method=settings.method, url=settings.url)
        except ValueError as e:
            raise ConfigurationError(f"Invalid target: {e}") from e

        summary_writer = _create_summary_writer(args.summary_dir, config_loader.get_summary_config())
        return execute_probe(settings, probe_logger, transport_factory, summary_writer)

    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR
    except ProbeError as e:
        logger.error(f"Probe failed: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_TRANSPORT_ERROR
    finally:
        probe_logger.close()


if __name__ == "__main__":
    sys.exit(main())
