"""Tests for configuration loading."""

import json
import os

import pytest
import yaml

from fm_benchmark.config import BenchmarkConfig, ConfigManager, load_config_with_auto_discovery
from fm_benchmark.estimator import EstimationRole
from fm_benchmark.models import SamplingMode
from fm_benchmark.transcript import ToolAttribution


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    for name in list(os.environ):
        if name.startswith("FM_BENCHMARK_") or name in ("AWS_REGION", "AWS_DEFAULT_REGION"):
            monkeypatch.delenv(name, raising=False)


class TestBenchmarkConfig:
    """Tests for defaults and validation."""

    def test_defaults(self):
        config = BenchmarkConfig()
        assert config.sampling is SamplingMode.GREEDY
        assert config.temperature == pytest.approx(0.1)
        assert config.max_tokens is None
        assert config.include_tool_entries is False
        assert config.log_level == "INFO"

    def test_storage_path_is_resolved(self, tmp_path):
        config = BenchmarkConfig(storage_path=str(tmp_path / "a" / ".." / "b"))
        assert config.storage_path == str((tmp_path / "b").resolve())

    def test_log_level_is_normalized(self):
        assert BenchmarkConfig(log_level="debug").log_level == "DEBUG"

    @pytest.mark.parametrize("overrides", [
        {"log_level": "LOUD"},
        {"log_format": "xml"},
        {"temperature": 1.5},
        {"model_id": "   "},
        {"input_calibration_characters": 0},
        {"unknown_field": 1},
    ])
    def test_invalid_values_rejected(self, overrides):
        with pytest.raises(ValueError):
            BenchmarkConfig(**overrides)

    def test_generation_options(self):
        options = BenchmarkConfig(sampling="random", temperature=0.7, max_tokens=512).generation_options()
        assert options.sampling is SamplingMode.RANDOM
        assert options.temperature == pytest.approx(0.7)
        assert options.maximum_response_tokens == 512

    def test_calibration(self):
        config = BenchmarkConfig(
            input_calibration_tokens=1, input_calibration_characters=4,
            generic_characters_per_token=3
        )
        calibration = config.calibration()
        assert calibration.ratio_for(EstimationRole.INPUT).tokens_per_character == pytest.approx(0.25)
        assert calibration.ratio_for(EstimationRole.GENERIC).tokens_per_character == pytest.approx(1 / 3)

    def test_transcript_accumulator(self):
        accumulator = BenchmarkConfig(
            include_tool_entries=True, tool_call_overhead=7
        ).transcript_accumulator()
        assert accumulator.tool_attribution is ToolAttribution.INCLUDE
        assert accumulator.tool_call_overhead == 7
        assert accumulator.tool_output_overhead == 3


class TestConfigManager:
    """Tests for source precedence."""

    def test_yaml_file(self, tmp_path):
        path = tmp_path / "fm-benchmark.yaml"
        path.write_text(yaml.safe_dump({"model_id": "amazon.nova-pro-v1:0", "preview_chars": 50}))

        config = ConfigManager(path).load_config()

        assert config.model_id == "amazon.nova-pro-v1:0"
        assert config.preview_chars == 50

    def test_json_file(self, tmp_path):
        path = tmp_path / "fm-benchmark.json"
        path.write_text(json.dumps({"temperature": 0.3}))
        assert ConfigManager(path).load_config().temperature == pytest.approx(0.3)

    def test_environment_overrides_file(self, tmp_path, monkeypatch):
        path = tmp_path / "config.yaml"
        path.write_text(yaml.safe_dump({"temperature": 0.3, "aws_region": "eu-west-1"}))
        monkeypatch.setenv("FM_BENCHMARK_TEMPERATURE", "0.9")
        monkeypatch.setenv("FM_BENCHMARK_INCLUDE_TOOL_ENTRIES", "yes")

        config = ConfigManager(path).load_config()

        assert config.temperature == pytest.approx(0.9)
        assert config.include_tool_entries is True
        assert config.aws_region == "eu-west-1"

    def test_load_config_returns_fresh_config(self):
        manager = ConfigManager()
        assert manager.load_config() is not manager.load_config()
        assert not hasattr(manager, "get_config")

    def test_overrides_win(self, monkeypatch):
        monkeypatch.setenv("FM_BENCHMARK_MODEL_ID", "from-env")
        config = ConfigManager().load_config({"model_id": "from-cli"})
        assert config.model_id == "from-cli"

    def test_aws_region_fallback(self, monkeypatch):
        monkeypatch.setenv("AWS_DEFAULT_REGION", "ap-southeast-2")
        assert ConfigManager().load_config().aws_region == "ap-southeast-2"

    def test_invalid_environment_number_is_ignored(self, monkeypatch):
        monkeypatch.setenv("FM_BENCHMARK_PREVIEW_CHARS", "many")
        assert ConfigManager().load_config().preview_chars == 200

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            ConfigManager(tmp_path / "missing.yaml").load_config()

    def test_unsupported_suffix(self, tmp_path):
        path = tmp_path / "config.toml"
        path.write_text("model_id = 'x'")
        with pytest.raises(ValueError, match="Unsupported"):
            ConfigManager(path).load_config()

    def test_invalid_value_in_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(yaml.safe_dump({"log_format": "xml"}))
        with pytest.raises(ValueError, match="Invalid configuration"):
            ConfigManager(path).load_config()


def test_auto_discovery(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    (tmp_path / "fm-benchmark.yml").write_text(yaml.safe_dump({"preview_chars": 80}))

    config = load_config_with_auto_discovery()

    assert config.preview_chars == 80
