"""
Report rendering and export for benchmark results.
"""

import json
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .exceptions import ExportWriteError, ImportParseError
from .logging import get_logger
from .models import (
    BenchmarkMetrics,
    BenchmarkResult,
    ComparisonResult,
    EnvironmentSnapshot,
    TokenComparison,
)


logger = get_logger(__name__)


def metrics_to_dict(metrics: BenchmarkMetrics) -> Dict[str, Any]:
    """Serialize metrics with their stable report field names."""
    return {
        "start": metrics.start.isoformat(),
        "end": metrics.end.isoformat(),
        "duration": metrics.duration,
        "timeToFirstToken": metrics.time_to_first_token,
        "promptTokenEstimate": metrics.prompt_token_estimate,
        "responseTokenEstimate": metrics.response_token_estimate,
        "totalTokenEstimate": metrics.total_token_estimate,
        "tokensPerSecond": metrics.tokens_per_second,
    }


def environment_to_dict(environment: EnvironmentSnapshot) -> Dict[str, Any]:
    return {
        "deviceName": environment.device_name,
        "systemName": environment.system_name,
        "systemVersion": environment.system_version,
        "localeIdentifier": environment.locale_identifier,
        "appVersion": environment.app_version,
        "hardwareModel": environment.hardware_model,
        "cpuModel": environment.cpu_model,
        "cpuCores": environment.cpu_cores,
        "gpuModel": environment.gpu_model,
        "totalMemory": environment.total_memory,
        "timestamp": environment.timestamp.isoformat(),
    }


def metrics_from_dict(data: Dict[str, Any]) -> BenchmarkMetrics:
    """
    Rebuild metrics from a serialized ``metrics`` block.

    Only the token estimates and duration are required; missing timestamps are
    reconstructed from the duration.

    Raises:
        ImportParseError: If required fields are missing or have the wrong type
    """
    try:
        duration = float(data["duration"])
        prompt_tokens = int(data["promptTokenEstimate"])
        response_tokens = int(data["responseTokenEstimate"])
        total_tokens = int(data.get("totalTokenEstimate", prompt_tokens + response_tokens))

        if "end" in data:
            end = datetime.fromisoformat(data["end"])
        else:
            end = datetime.now()
        if "start" in data:
            start = datetime.fromisoformat(data["start"])
        else:
            start = end - timedelta(seconds=duration)

        ttft = data.get("timeToFirstToken")
        time_to_first_token = float(ttft) if ttft is not None else None
        tps = data.get("tokensPerSecond")
        tokens_per_second = float(tps) if tps is not None else None
    except (KeyError, TypeError, ValueError) as e:
        raise ImportParseError(f"Invalid metrics in report: {e}") from e

    return BenchmarkMetrics(
        start=start,
        end=end,
        duration=duration,
        time_to_first_token=time_to_first_token,
        prompt_token_estimate=prompt_tokens,
        response_token_estimate=response_tokens,
        total_token_estimate=total_tokens,
        tokens_per_second=tokens_per_second
    )


def load_report_metrics(path: Union[str, Path]) -> BenchmarkMetrics:
    """
    Read the metrics of a persisted JSON report.

    Raises:
        ImportParseError: If the file is unreadable, not JSON, or has no valid metrics
    """
    path = Path(path)
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except OSError as e:
        raise ImportParseError(f"Failed to read report {path}: {e}", path=str(path)) from e
    except ValueError as e:
        raise ImportParseError(f"Malformed report {path}: {e}", path=str(path)) from e

    if not isinstance(data, dict) or not isinstance(data.get("metrics"), dict):
        raise ImportParseError(f"Report {path} has no metrics section", path=str(path))

    try:
        return metrics_from_dict(data["metrics"])
    except ImportParseError as e:
        raise ImportParseError(f"{e} ({path})", path=str(path)) from e


class BenchmarkReport:
    """Renders a benchmark result as JSON or a markdown summary."""

    def __init__(self, result: BenchmarkResult):
        self.result = result

    def to_dict(self) -> Dict[str, Any]:
        result = self.result
        return {
            "prompt": {
                "instructions": result.prompt.instructions,
                "userPrompt": result.prompt.user_prompt,
            },
            "metrics": metrics_to_dict(result.metrics),
            "environment": environment_to_dict(result.environment),
            "responseText": result.response_text,
        }

    def json(self, pretty_printed: bool = True) -> str:
        """Serialize the result as JSON with sorted keys."""
        if pretty_printed:
            return json.dumps(self.to_dict(), indent=2, sort_keys=True, ensure_ascii=False)
        return json.dumps(self.to_dict(), sort_keys=True, ensure_ascii=False)

    def markdown_summary(self) -> str:
        """Render a human-readable summary of the run."""
        environment = self.result.environment
        metrics = self.result.metrics

        lines = [
            "# Foundation Models Benchmark",
            "",
            f"**Timestamp:** {environment.timestamp.isoformat()}",
            f"**Device:** {environment.device_name} • "
            f"{environment.system_name} {environment.system_version}",
            f"**Locale:** {environment.locale_identifier}",
            "",
            "## Metrics",
            f"- Duration: {metrics.duration:.2f}s",
            f"- Time to First Token: {format_interval(metrics.time_to_first_token)}",
            f"- Prompt Tokens (est.): {metrics.prompt_token_estimate}",
            f"- Response Tokens (est.): {metrics.response_token_estimate}",
            f"- Total Tokens (est.): {metrics.total_token_estimate}",
            f"- Tokens / sec: {format_rate(metrics.tokens_per_second)}",
            "",
            "## Response",
            self.result.response_text,
        ]
        return "\n".join(lines)

    def save(self, output_path: Union[str, Path], format: str = "json") -> Path:
        """
        Write the report to a file.

        Args:
            output_path: Destination file
            format: 'json' or 'markdown'

        Returns:
            Path that was written

        Raises:
            ExportWriteError: If the format is unsupported or the file cannot be written
        """
        output_path = Path(output_path)

        if format == "json":
            content = self.json()
        elif format == "markdown":
            content = self.markdown_summary()
        else:
            raise ExportWriteError(f"Unsupported report format: {format}", path=str(output_path))

        try:
            output_path.parent.mkdir(parents=True, exist_ok=True)
            with open(output_path, 'w', encoding='utf-8') as f:
                f.write(content + "\n")
        except OSError as e:
            raise ExportWriteError(
                f"Failed to write report to {output_path}: {e}", path=str(output_path)
            ) from e

        logger.info("Report saved", path=str(output_path), format=format)
        return output_path


def format_interval(interval: Optional[float]) -> str:
    if interval is None:
        return "n/a"
    return f"{interval:.2f}s"


def format_rate(value: Optional[float]) -> str:
    if value is None:
        return "n/a"
    return f"{value:.2f}"


def format_signed(value: float, precision: int = 0) -> str:
    """Format a number with an explicit sign for non-negative values."""
    sign = "+" if value >= 0 else ""
    if precision == 0:
        return f"{sign}{int(value)}"
    return f"{sign}{value:.{precision}f}"


def _comparison_lines(name: str, comparison: TokenComparison) -> List[str]:
    return [
        f"{name}:",
        f"  Estimated:  {comparison.estimated}",
        f"  Actual:     {comparison.actual}",
        f"  Difference: {format_signed(comparison.difference)} "
        f"({comparison.percent_difference:.1f}%)",
        "",
    ]


def render_comparison(comparison: ComparisonResult) -> str:
    """Render a reconciliation as plain text."""
    rule = "=" * 80
    lines = ["COMPARISON (Estimated vs Actual):", rule, ""]
    lines += _comparison_lines("Prompt Tokens", comparison.prompt)
    lines += _comparison_lines("Response Tokens", comparison.response)
    lines += _comparison_lines("Total Tokens", comparison.total)

    lines += [
        "Performance:",
        f"  Duration:              {comparison.duration:.2f}s",
        f"  Tokens/sec (est.):     {format_rate(comparison.estimated_tokens_per_second)}",
        f"  Tokens/sec (actual):   {format_rate(comparison.actual_tokens_per_second)}",
    ]

    tps_difference = comparison.tokens_per_second_difference
    if tps_difference is not None and comparison.actual_tokens_per_second:
        estimated_tps = comparison.estimated_tokens_per_second or 0.0
        tps_percent = tps_difference / estimated_tps * 100 if estimated_tps > 0 else 0.0
        lines.append(
            f"  TPS Difference:        {format_signed(tps_difference, 2)} ({tps_percent:.1f}%)"
        )

    lines += [
        "",
        rule,
        f"Accuracy: {comparison.accuracy:.1f}% ({comparison.tier.value})",
        comparison.tier.verdict,
    ]
    return "\n".join(lines)
