"""
Logging setup for the rate limit probe.
Provides colored console output, rotating log files, and per-run status metrics.
"""

import logging
import logging.handlers
import sys
import threading
from collections import Counter
from pathlib import Path
from typing import Any, Dict, Optional

import colorlog

ROOT_LOGGER_NAME = "rate_limit_probe"

CONSOLE_FORMAT = "%(log_color)s%(asctime)s - %(name)s - %(levelname)s%(reset)s - %(message)s"
FILE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s"

LOG_COLORS = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "purple",
}


class ProbeMetrics:
    """Tracks status-code counts and transport errors for one run"""

    def __init__(self):
        self.status_counts: Counter = Counter()
        self.transport_errors = 0
        self.lock = threading.Lock()

    def record_status(self, status_code: int):
        with self.lock:
            self.status_counts[status_code] += 1

    def record_transport_error(self):
        with self.lock:
            self.transport_errors += 1

    def snapshot(self) -> Dict[str, Any]:
        """Current counts, keyed by status code"""
        with self.lock:
            return {
                "status_counts": dict(sorted(self.status_counts.items())),
                "total_responses": sum(self.status_counts.values()),
                "transport_errors": self.transport_errors,
            }

    def format_breakdown(self) -> str:
        counts = self.snapshot()["status_counts"]
        if not counts:
            return "none"
        return ", ".join(f"{code}={count}" for code, count in counts.items())


class ProbeLogger:
    """Configures the package logger from the 'logging' config section"""

    def __init__(self, config: Dict[str, Any], quiet: bool = False):
        self.config = config
        self.quiet = quiet
        self.file_enabled = bool(config.get("file_enabled", True))
        self.log_dir = Path(config.get("log_dir", "var/logs"))
        self.metrics = ProbeMetrics()
        self._setup_loggers()

    def _setup_loggers(self):
        self.logger = logging.getLogger(ROOT_LOGGER_NAME)
        level_name = str(self.config.get("level", "INFO")).upper()
        self.logger.setLevel(getattr(logging, level_name, logging.INFO))

        # Clear handlers from any previous run in this process
        for handler in list(self.logger.handlers):
            self.logger.removeHandler(handler)
            handler.close()

        if not self.quiet:
            console_handler = logging.StreamHandler(sys.stderr)
            console_handler.setFormatter(
                colorlog.ColoredFormatter(CONSOLE_FORMAT, datefmt="%H:%M:%S", log_colors=LOG_COLORS)
            )
            self.logger.addHandler(console_handler)

        if self.file_enabled:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            file_formatter = logging.Formatter(FILE_FORMAT)

            main_handler = logging.handlers.RotatingFileHandler(
                self.log_dir / "rate_limit_probe.log",
                maxBytes=10 * 1024 * 1024,  # 10MB
                backupCount=5,
            )
            main_handler.setLevel(logging.DEBUG)
            main_handler.setFormatter(file_formatter)
            self.logger.addHandler(main_handler)

            error_handler = logging.handlers.RotatingFileHandler(
                self.log_dir / "errors.log",
                maxBytes=5 * 1024 * 1024,  # 5MB
                backupCount=3,
            )
            error_handler.setLevel(logging.ERROR)
            error_handler.setFormatter(file_formatter)
            self.logger.addHandler(error_handler)

        if not self.logger.handlers:
            self.logger.addHandler(logging.NullHandler())

    def log_run_banner(self, url: str, method: str, concurrency: int, duration: float, max_requests: int):
        self.logger.info(
            f"PROBE {method} {url} | concurrency={concurrency} duration={duration}s max_requests={max_requests}"
        )

    def log_completion(self, status_code: int, requests_completed: int):
        self.metrics.record_status(status_code)
        self.logger.debug(f"Completion #{requests_completed}: status {status_code}")

    def log_transport_error(self, error: Exception):
        self.metrics.record_transport_error()
        self.logger.error(f"Run aborted by transport error: {error}")

    def get_log_files(self) -> Dict[str, Optional[str]]:
        if not self.file_enabled:
            return {"main_log": None, "error_log": None}
        return {
            "main_log": str(self.log_dir / "rate_limit_probe.log"),
            "error_log": str(self.log_dir / "errors.log"),
        }

    def close(self):
        for handler in list(self.logger.handlers):
            self.logger.removeHandler(handler)
            handler.close()


def setup_logging(config: Dict[str, Any], quiet: bool = False) -> ProbeLogger:
    """Factory function to create the probe logger"""
    return ProbeLogger(config, quiet=quiet)
