"""
Exception hierarchy for the Foundation Models Benchmark.

Every error is terminal for the run or import that raised it; nothing in this
package retries automatically.
"""

from typing import Optional


class BenchmarkError(Exception):
    """Base class for all benchmark errors."""
    pass


class RunError(BenchmarkError):
    """Raised when a benchmark run cannot produce a result."""
    pass


class ModelUnavailableError(RunError):
    """Raised when the language model reports itself unavailable."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Language model is unavailable: {reason}")


class EmptyResponseError(RunError):
    """Raised when generation finished without any usable text."""

    def __init__(self):
        super().__init__("The model did not return a response.")


class RunInProgressError(RunError):
    """Raised when a runner is asked to start while a run is still in flight."""

    def __init__(self):
        super().__init__("A benchmark run is already in progress on this runner.")


class ImportParseError(BenchmarkError):
    """Raised when a ground-truth export or saved report cannot be read."""

    def __init__(self, message: str, path: Optional[str] = None):
        self.path = path
        super().__init__(message)


class ExportWriteError(BenchmarkError):
    """Raised when a report could not be serialized or written."""

    def __init__(self, message: str, path: Optional[str] = None):
        self.path = path
        super().__init__(message)
