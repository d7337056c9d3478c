"""Tests for the result store and DataFrame export."""

import json
from datetime import datetime, timedelta

import pytest

from fm_benchmark.exceptions import ImportParseError
from fm_benchmark.models import BenchmarkMetrics, BenchmarkPrompt, BenchmarkResult
from fm_benchmark.storage import (
    EXPORT_COLUMNS,
    MARKDOWN_FILE,
    RESULT_FILE,
    ResultStore,
    create_folder_name,
    make_path_safe,
)


def make_result(environment, duration=2.0, response="Hello, world"):
    start = datetime(2025, 1, 1, 12, 0, 0)
    metrics = BenchmarkMetrics.measure(
        start=start,
        end=start + timedelta(seconds=duration),
        time_to_first_token=0.3,
        prompt_token_estimate=20,
        response_token_estimate=30
    )
    return BenchmarkResult(
        prompt=BenchmarkPrompt(instructions="Be brief.", user_prompt="Say hi."),
        metrics=metrics,
        environment=environment,
        response_text=response
    )


class TestNaming:
    """Tests for run folder naming."""

    def test_make_path_safe(self):
        assert make_path_safe("Nova Lite v1:0") == "nova-lite-v10"
        assert make_path_safe("") == "unnamed"
        assert make_path_safe("!!!") == "unnamed"
        assert len(make_path_safe("x" * 100)) == 30

    def test_folder_name_shape(self):
        name, timestamp, suffix = create_folder_name("My Run").split("_")
        assert name == "my-run"
        assert len(timestamp) == 15
        assert len(suffix) == 4


class TestResultStore:
    """Tests for saving and reading runs."""

    def test_save_writes_json_and_markdown(self, tmp_path, environment):
        store = ResultStore(str(tmp_path))

        run_id = store.save_result(make_result(environment), run_name="nova")

        run_path = tmp_path / "runs" / run_id
        assert (run_path / RESULT_FILE).exists()
        assert (run_path / MARKDOWN_FILE).read_text(encoding="utf-8").startswith("# Foundation")
        assert json.loads((run_path / RESULT_FILE).read_text())["responseText"] == "Hello, world"
        assert store.list_runs() == [run_id]

    def test_list_runs_empty(self, tmp_path):
        assert ResultStore(str(tmp_path / "nothing")).list_runs() == []

    def test_unknown_run(self, tmp_path):
        with pytest.raises(ValueError, match="not found"):
            ResultStore(str(tmp_path)).result_path("missing")

    def test_run_summary(self, tmp_path, environment):
        store = ResultStore(str(tmp_path))
        run_id = store.save_result(make_result(environment))

        summary = store.get_run_summary(run_id)

        assert set(summary) == set(EXPORT_COLUMNS)
        assert summary["device_name"] == "bench-host"
        assert summary["duration"] == pytest.approx(2.0)
        assert summary["total_token_estimate"] == 50
        assert summary["tokens_per_second"] == pytest.approx(25.0)
        assert summary["response_chars"] == len("Hello, world")

    def test_report_that_is_not_an_object(self, tmp_path, environment):
        store = ResultStore(str(tmp_path))
        run_id = store.save_result(make_result(environment))
        (tmp_path / "runs" / run_id / RESULT_FILE).write_text("[1, 2]")

        with pytest.raises(ImportParseError, match="not a JSON object"):
            store.get_run_summary(run_id)

    def test_unreadable_report(self, tmp_path):
        (tmp_path / "runs" / "odd" / RESULT_FILE).mkdir(parents=True)

        with pytest.raises(ImportParseError, match="Failed to read"):
            ResultStore(str(tmp_path)).load_report("odd")

    def test_invalid_metrics_in_summary(self, tmp_path, environment):
        store = ResultStore(str(tmp_path))
        run_id = store.save_result(make_result(environment))
        path = tmp_path / "runs" / run_id / RESULT_FILE
        data = json.loads(path.read_text())
        data["metrics"]["timeToFirstToken"] = "n/a"
        path.write_text(json.dumps(data))

        with pytest.raises(ImportParseError):
            store.get_run_summary(run_id)


class TestDataFrameExport:
    """Tests for exporting runs with pandas."""

    def test_one_row_per_run(self, tmp_path, environment):
        store = ResultStore(str(tmp_path))
        first = store.save_result(make_result(environment, duration=1.0), run_name="a")
        second = store.save_result(make_result(environment, duration=4.0), run_name="b")

        df = store.export_runs_to_dataframe()

        assert list(df.columns) == EXPORT_COLUMNS
        assert len(df) == 2
        assert set(df["run_id"]) == {first, second}

    def test_selected_runs_only(self, tmp_path, environment):
        store = ResultStore(str(tmp_path))
        first = store.save_result(make_result(environment), run_name="a")
        store.save_result(make_result(environment), run_name="b")

        df = store.export_runs_to_dataframe([first])

        assert list(df["run_id"]) == [first]

    def test_broken_runs_are_skipped(self, tmp_path, environment):
        store = ResultStore(str(tmp_path))
        good = store.save_result(make_result(environment), run_name="good")
        bad = store.save_result(make_result(environment), run_name="bad")
        (tmp_path / "runs" / bad / RESULT_FILE).write_text("{broken")

        df = store.export_runs_to_dataframe()

        assert list(df["run_id"]) == [good]

    def test_no_runs(self, tmp_path):
        df = ResultStore(str(tmp_path)).export_runs_to_dataframe()
        assert df.empty
        assert list(df.columns) == EXPORT_COLUMNS
