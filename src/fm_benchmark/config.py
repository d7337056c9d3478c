"""
Configuration for the Foundation Models Benchmark.

Settings come from an optional YAML/JSON file, `FM_BENCHMARK_*` environment
variables and command-line overrides, validated by a pydantic model. The model
also builds the calibration, generation options and transcript accumulator a
run needs.
"""

import os
import json
import yaml
from pathlib import Path
from typing import Dict, Optional, Any, Union
import logging

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .estimator import Calibration, CalibrationRatio, TokenEstimator
from .models import GenerationOptions, SamplingMode
from .transcript import ToolAttribution, TranscriptAccumulator


logger = logging.getLogger(__name__)


ENV_PREFIX = "FM_BENCHMARK_"


class BenchmarkConfig(BaseModel):
    """Validated settings for model access, estimation, storage and logging."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True, protected_namespaces=())

    # Model Configuration
    model_id: str = Field(
        default="us.amazon.nova-lite-v1:0",
        description="Identifier of the model to benchmark"
    )
    aws_region: str = Field(default="us-east-1", description="AWS region for Bedrock service")
    aws_profile: Optional[str] = Field(default=None, description="AWS profile name")

    # Generation Configuration
    sampling: SamplingMode = Field(default=SamplingMode.GREEDY, description="Sampling strategy")
    temperature: float = Field(default=0.1, ge=0.0, le=1.0, description="Sampling temperature")
    max_tokens: Optional[int] = Field(default=None, ge=1, description="Maximum response tokens")

    # Calibration Configuration
    input_calibration_tokens: float = Field(default=235.0, gt=0)
    input_calibration_characters: float = Field(default=1057.0, gt=0)
    output_calibration_tokens: float = Field(default=2276.0, gt=0)
    output_calibration_characters: float = Field(default=13680.0, gt=0)
    generic_characters_per_token: float = Field(default=6.0, gt=0)
    tool_call_overhead: int = Field(default=5, ge=0, description="Fixed tokens per tool call")
    tool_output_overhead: int = Field(default=3, ge=0, description="Fixed tokens per tool output")
    include_tool_entries: bool = Field(
        default=False,
        description="Attribute tool calls/outputs to the response/prompt totals"
    )

    # Storage Configuration
    storage_path: str = Field(default="./benchmarks", description="Path to store benchmark results")

    # Output Configuration
    preview_chars: int = Field(default=200, ge=0, description="Length of the response preview")

    # Logging Configuration
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="simple", description="Log format: 'structured' or 'simple'")
    log_file: Optional[str] = Field(default=None, description="Optional log file path")

    @field_validator('aws_region')
    @classmethod
    def validate_aws_region(cls, v):
        """Validate AWS region format."""
        if not v or len(v) < 3:
            raise ValueError("AWS region must be a valid region identifier")
        return v

    @field_validator('model_id')
    @classmethod
    def validate_model_id(cls, v):
        """Validate model identifier."""
        if not v or not v.strip():
            raise ValueError("Model identifier must not be empty")
        return v.strip()

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        return v.upper()

    @field_validator('log_format')
    @classmethod
    def validate_log_format(cls, v):
        """Validate log format."""
        valid_formats = ['structured', 'simple']
        if v not in valid_formats:
            raise ValueError(f"Log format must be one of: {valid_formats}")
        return v

    @field_validator('storage_path')
    @classmethod
    def validate_storage_path(cls, v):
        """Validate and normalize storage path."""
        path = Path(v).expanduser().resolve()
        return str(path)

    def calibration(self) -> Calibration:
        """Token estimation ratios described by this configuration."""
        return Calibration(
            input=CalibrationRatio(
                tokens=self.input_calibration_tokens,
                characters=self.input_calibration_characters
            ),
            output=CalibrationRatio(
                tokens=self.output_calibration_tokens,
                characters=self.output_calibration_characters
            ),
            generic=CalibrationRatio(tokens=1.0, characters=self.generic_characters_per_token),
        )

    def generation_options(self) -> GenerationOptions:
        return GenerationOptions(
            sampling=self.sampling,
            temperature=self.temperature,
            maximum_response_tokens=self.max_tokens
        )

    def transcript_accumulator(self) -> TranscriptAccumulator:
        return TranscriptAccumulator(
            estimator=TokenEstimator(self.calibration()),
            tool_call_overhead=self.tool_call_overhead,
            tool_output_overhead=self.tool_output_overhead,
            tool_attribution=(
                ToolAttribution.INCLUDE if self.include_tool_entries else ToolAttribution.EXCLUDE
            )
        )


class ConfigManager:
    """
    Merges configuration sources; later sources win:
    defaults, configuration file, environment, command-line overrides.
    """

    _INT_FIELDS = {"max_tokens", "tool_call_overhead", "tool_output_overhead", "preview_chars"}
    _FLOAT_FIELDS = {
        "temperature",
        "input_calibration_tokens",
        "input_calibration_characters",
        "output_calibration_tokens",
        "output_calibration_characters",
        "generic_characters_per_token",
    }
    _BOOL_FIELDS = {"include_tool_entries"}

    def __init__(self, config_file: Optional[Union[str, Path]] = None):
        """
        Initialize configuration manager.

        Args:
            config_file: Optional path to configuration file
        """
        self.config_file = Path(config_file) if config_file else None

    def load_config(self, config_overrides: Optional[Dict[str, Any]] = None) -> BenchmarkConfig:
        """
        Load configuration from all sources with proper precedence.

        Args:
            config_overrides: Dictionary of configuration overrides (highest priority)

        Returns:
            BenchmarkConfig instance

        Raises:
            ValueError: If configuration is invalid
            FileNotFoundError: If specified config file doesn't exist
        """
        config_data = {}

        if self.config_file:
            config_data.update(self._load_config_file(self.config_file))

        config_data.update(self._load_from_environment())

        if config_overrides:
            config_data.update(config_overrides)

        try:
            config = BenchmarkConfig(**config_data)
        except ValidationError as e:
            logger.error(f"Configuration validation failed: {e}")
            raise ValueError(f"Invalid configuration: {e}") from e

        logger.debug(f"Config: {config.model_dump()}")
        return config

    def _load_config_file(self, config_file: Path) -> Dict[str, Any]:
        """
        Load configuration from a file (JSON or YAML).

        Raises:
            FileNotFoundError: If file doesn't exist
            ValueError: If file format is unsupported or invalid
        """
        if not config_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_file}")

        suffix = config_file.suffix.lower()
        if suffix not in ['.yaml', '.yml', '.json']:
            raise ValueError(f"Unsupported config file format: {config_file.suffix}")

        try:
            with open(config_file, 'r') as f:
                if suffix in ['.yaml', '.yml']:
                    data = yaml.safe_load(f) or {}
                else:
                    data = json.load(f) or {}
        except (yaml.YAMLError, json.JSONDecodeError) as e:
            raise ValueError(f"Invalid configuration file format: {e}") from e
        except OSError as e:
            raise ValueError(f"Error reading configuration file: {e}") from e

        if not isinstance(data, dict):
            raise ValueError(f"Configuration file must contain a mapping: {config_file}")
        return data

    def _load_from_environment(self) -> Dict[str, Any]:
        """
        Load configuration from environment variables.

        Environment variables are named ``FM_BENCHMARK_<FIELD>`` in uppercase,
        e.g. ``FM_BENCHMARK_MODEL_ID``.
        """
        env_config = {}

        for config_key in BenchmarkConfig.model_fields:
            env_var = f"{ENV_PREFIX}{config_key.upper()}"
            value = os.getenv(env_var)
            if value is None:
                continue

            if config_key in self._INT_FIELDS:
                try:
                    env_config[config_key] = int(value)
                except ValueError:
                    logger.warning(f"Invalid integer value for {env_var}: {value}")
            elif config_key in self._FLOAT_FIELDS:
                try:
                    env_config[config_key] = float(value)
                except ValueError:
                    logger.warning(f"Invalid float value for {env_var}: {value}")
            elif config_key in self._BOOL_FIELDS:
                env_config[config_key] = value.strip().lower() in ("1", "true", "yes", "on")
            else:
                env_config[config_key] = value

        # Handle AWS region from standard AWS environment variable
        if "aws_region" not in env_config:
            aws_region = os.getenv("AWS_DEFAULT_REGION") or os.getenv("AWS_REGION")
            if aws_region:
                env_config["aws_region"] = aws_region

        return env_config


def find_config_file() -> Optional[Path]:
    """
    Find configuration file in standard locations.

    Searches for configuration files in the following order:
    1. ./fm-benchmark.yaml
    2. ./fm-benchmark.yml
    3. ./fm-benchmark.json
    4. ~/.fm-benchmark.yaml
    5. ~/.fm-benchmark.yml
    6. ~/.fm-benchmark.json
    """
    search_paths = [
        Path("./fm-benchmark.yaml"),
        Path("./fm-benchmark.yml"),
        Path("./fm-benchmark.json"),
        Path("~/.fm-benchmark.yaml").expanduser(),
        Path("~/.fm-benchmark.yml").expanduser(),
        Path("~/.fm-benchmark.json").expanduser(),
    ]

    for path in search_paths:
        if path.exists():
            logger.info(f"Found configuration file: {path}")
            return path

    return None


def load_config_with_auto_discovery(
    config_file: Optional[Union[str, Path]] = None,
    config_overrides: Optional[Dict[str, Any]] = None
) -> BenchmarkConfig:
    """
    Load configuration with automatic file discovery.

    Args:
        config_file: Explicit config file path (overrides auto-discovery)
        config_overrides: Configuration overrides

    Returns:
        BenchmarkConfig instance
    """
    if config_file:
        config_path = Path(config_file)
    else:
        config_path = find_config_file()

    config_manager = ConfigManager(config_path)
    return config_manager.load_config(config_overrides)
