"""
Structured logging and error reporting for the Foundation Models Benchmark.

Log events go through structlog on top of the stdlib logging module, rendered
either as JSON lines (``structured``) or as plain console lines (``simple``).
Console logs go to stderr so that reports printed on stdout stay clean.
"""

import sys
import logging
import logging.handlers
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Optional, Union

import structlog
from structlog.stdlib import LoggerFactory

if TYPE_CHECKING:
    from .config import BenchmarkConfig


LOG_FILE_MAX_BYTES = 10 * 1024 * 1024
LOG_FILE_BACKUPS = 5


class BenchmarkLogger:
    """
    Owns the process-wide logging setup for one CLI invocation.
    """

    def __init__(self, config: "BenchmarkConfig"):
        """
        Args:
            config: BenchmarkConfig carrying log level, format and optional file
        """
        self.config = config
        self._configured = False

    def configure_logging(self):
        """
        Install structlog processors and the stdlib handlers.

        Calling this again on the same instance is a no-op; a new instance
        replaces the handlers installed by a previous one.
        """
        if self._configured:
            return

        level = getattr(logging, self.config.log_level)
        logging.basicConfig(level=level, format='%(message)s', handlers=[])

        processors = [
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="ISO"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
        ]

        if self.config.log_format == "structured":
            processors.append(structlog.processors.JSONRenderer())
        else:
            processors.append(structlog.dev.ConsoleRenderer(colors=False))

        structlog.configure(
            processors=processors,
            wrapper_class=structlog.stdlib.BoundLogger,
            logger_factory=LoggerFactory(),
            cache_logger_on_first_use=True,
        )

        self._install_handlers(level)
        self._configured = True

        structlog.get_logger(__name__).debug(
            "Logging configured",
            log_level=self.config.log_level,
            log_format=self.config.log_format,
            log_file=self.config.log_file
        )

    def _install_handlers(self, level: int):
        root = logging.getLogger()
        root.setLevel(level)
        root.handlers.clear()

        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setLevel(level)
        root.addHandler(stderr_handler)

        if self.config.log_file:
            path = Path(self.config.log_file)
            path.parent.mkdir(parents=True, exist_ok=True)

            # The file keeps debug detail regardless of the console level.
            file_handler = logging.handlers.RotatingFileHandler(
                path,
                maxBytes=LOG_FILE_MAX_BYTES,
                backupCount=LOG_FILE_BACKUPS
            )
            file_handler.setLevel(logging.DEBUG)
            root.addHandler(file_handler)

    def get_logger(self, name: str) -> structlog.BoundLogger:
        if not self._configured:
            self.configure_logging()
        return structlog.get_logger(name)

    def get_error_reporter(self) -> "ErrorReporter":
        """Error reporter writing to the ``errors`` logger."""
        return ErrorReporter(self.get_logger("errors"))


class ErrorReporter:
    """
    Logs failures with a category and the context needed to diagnose them.

    Categories:
        generation_error: a benchmark run failed
        import_error: a trace export or saved report could not be read
        storage_error: a report or export could not be written
    """

    def __init__(self, logger: structlog.BoundLogger):
        self.logger = logger

    def report_generation_error(
        self,
        error: Exception,
        operation: str,
        model_id: Optional[str] = None,
        **context
    ):
        if model_id:
            context["model_id"] = model_id
        self._report("generation_error", "Generation error occurred", error,
                     operation=operation, **context)

    def report_import_error(
        self,
        error: Exception,
        file_path: Optional[Union[str, Path]] = None,
        **context
    ):
        if file_path:
            context["file_path"] = str(file_path)
        self._report("import_error", "Import error occurred", error, **context)

    def report_storage_error(
        self,
        error: Exception,
        operation: str,
        file_path: Optional[Union[str, Path]] = None,
        **context
    ):
        if file_path:
            context["file_path"] = str(file_path)
        self._report("storage_error", "Storage error occurred", error,
                     operation=operation, **context)

    def _report(self, category: str, event: str, error: Exception, **context):
        error_context: Dict[str, Any] = {
            "error_category": category,
            "error_type": type(error).__name__,
            "error_message": str(error),
            **context
        }
        self.logger.error(event, **error_context)


def setup_logging(config: "BenchmarkConfig") -> BenchmarkLogger:
    """
    Configure logging for the application.

    Returns:
        The configured BenchmarkLogger
    """
    benchmark_logger = BenchmarkLogger(config)
    benchmark_logger.configure_logging()
    return benchmark_logger


def get_logger(name: str) -> structlog.BoundLogger:
    return structlog.get_logger(name)
