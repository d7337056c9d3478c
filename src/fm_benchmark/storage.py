"""
Storage management for benchmark results.
"""

import json
import re
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import pandas as pd

from .exceptions import ExportWriteError, ImportParseError
from .logging import get_logger
from .models import BenchmarkResult
from .report import BenchmarkReport, metrics_from_dict


logger = get_logger(__name__)


RESULT_FILE = "result.json"
MARKDOWN_FILE = "report.md"

EXPORT_COLUMNS = [
    'run_id', 'created_at', 'device_name', 'system_name', 'system_version',
    'duration', 'time_to_first_token', 'prompt_token_estimate',
    'response_token_estimate', 'total_token_estimate', 'tokens_per_second',
    'response_chars'
]


def make_path_safe(name: str, max_length: int = 30) -> str:
    """Convert name to filesystem-safe string."""
    if not name:
        return "unnamed"

    safe_name = re.sub(r'[^\w\s-]', '', name.lower())
    safe_name = re.sub(r'[\s_]+', '-', safe_name)
    safe_name = safe_name.strip('-')

    if len(safe_name) > max_length:
        safe_name = safe_name[:max_length].rstrip('-')

    return safe_name or "unnamed"


def generate_timestamp() -> str:
    """Generate compact timestamp: YYYYMMDD-HHMMSS."""
    return datetime.now().strftime("%Y%m%d-%H%M%S")


def generate_short_uuid(length: int = 4) -> str:
    """Generate short UUID suffix."""
    return str(uuid.uuid4()).replace('-', '')[:length]


def create_folder_name(human_name: str) -> str:
    """Create folder name: name_timestamp_uuid."""
    return f"{make_path_safe(human_name)}_{generate_timestamp()}_{generate_short_uuid()}"


class ResultStore:
    """Persists benchmark results as one folder per run."""

    def __init__(self, storage_path: str = "./benchmarks"):
        """Initialize the store with its base storage path."""
        self.storage_path = Path(storage_path)
        self.runs_path = self.storage_path / "runs"

    def save_result(self, result: BenchmarkResult, run_name: Optional[str] = None) -> str:
        """
        Save a result and return its run ID.

        Raises:
            ExportWriteError: If the run folder or its files cannot be written
        """
        run_id = create_folder_name(run_name or "benchmark")
        run_path = self.runs_path / run_id

        try:
            run_path.mkdir(parents=True, exist_ok=False)
        except OSError as e:
            raise ExportWriteError(
                f"Failed to create run folder {run_path}: {e}", path=str(run_path)
            ) from e

        report = BenchmarkReport(result)
        report.save(run_path / RESULT_FILE, format="json")
        report.save(run_path / MARKDOWN_FILE, format="markdown")

        logger.info("Benchmark result stored", run_id=run_id, path=str(run_path))
        return run_id

    def list_runs(self) -> List[str]:
        """List stored run IDs, oldest first."""
        if not self.runs_path.exists():
            return []
        return sorted(
            run_dir.name
            for run_dir in self.runs_path.iterdir()
            if (run_dir / RESULT_FILE).exists()
        )

    def result_path(self, run_id: str) -> Path:
        """
        Path of a stored run's JSON report.

        Raises:
            ValueError: If the run does not exist
        """
        path = self.runs_path / run_id / RESULT_FILE
        if not path.exists():
            raise ValueError(f"Run {run_id} not found")
        return path

    def load_report(self, run_id: str) -> Dict[str, Any]:
        """
        Load a stored report as a dictionary.

        Raises:
            ValueError: If the run does not exist
            ImportParseError: If the stored report cannot be read or is not a JSON object
        """
        path = self.result_path(run_id)
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except OSError as e:
            raise ImportParseError(f"Failed to read stored report {path}: {e}", path=str(path)) from e
        except ValueError as e:
            raise ImportParseError(f"Malformed stored report {path}: {e}", path=str(path)) from e

        if not isinstance(data, dict):
            raise ImportParseError(f"Stored report {path} is not a JSON object", path=str(path))
        return data

    def get_run_summary(self, run_id: str) -> Dict[str, Any]:
        """
        Get summary fields for a run.

        Raises:
            ValueError: If the run does not exist
            ImportParseError: If the stored report is unreadable or its metrics are invalid
        """
        data = self.load_report(run_id)
        metrics = metrics_from_dict(data.get("metrics", {}))
        environment = data.get("environment")
        if not isinstance(environment, dict):
            environment = {}
        response_text = data.get("responseText")

        return {
            'run_id': run_id,
            'created_at': environment.get('timestamp'),
            'device_name': environment.get('deviceName'),
            'system_name': environment.get('systemName'),
            'system_version': environment.get('systemVersion'),
            'duration': round(metrics.duration, 3),
            'time_to_first_token': metrics.time_to_first_token,
            'prompt_token_estimate': metrics.prompt_token_estimate,
            'response_token_estimate': metrics.response_token_estimate,
            'total_token_estimate': metrics.total_token_estimate,
            'tokens_per_second': metrics.tokens_per_second,
            'response_chars': len(response_text) if isinstance(response_text, str) else 0,
        }

    def export_runs_to_dataframe(self, run_ids: Optional[List[str]] = None) -> pd.DataFrame:
        """
        Export stored runs to a DataFrame, one row per run.

        Args:
            run_ids: Runs to export (all stored runs when None)

        Returns:
            pandas DataFrame sorted by creation time
        """
        if run_ids is None:
            run_ids = self.list_runs()

        rows = []
        for run_id in run_ids:
            try:
                rows.append(self.get_run_summary(run_id))
            except (ValueError, ImportParseError) as e:
                logger.warning("Skipping run during export", run_id=run_id, error=str(e))

        if not rows:
            return pd.DataFrame(columns=EXPORT_COLUMNS)

        df = pd.DataFrame(rows, columns=EXPORT_COLUMNS)
        return df.sort_values(['created_at', 'run_id']).reset_index(drop=True)
