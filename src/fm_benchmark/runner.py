"""
Benchmark execution: timing a streamed generation and deriving metrics.
"""

import asyncio
import inspect
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Union

from .environment import capture_environment
from .exceptions import EmptyResponseError, ModelUnavailableError, RunInProgressError
from .logging import get_logger
from .models import (
    BenchmarkMetrics,
    BenchmarkPrompt,
    BenchmarkResult,
    EnvironmentSnapshot,
    GenerationOptions,
    SamplingMode,
)
from .prompts import PRODUCT_DESIGN
from .session import GenerationSession, LanguageModel, render_partial_text
from .transcript import TranscriptAccumulator


logger = get_logger(__name__)


# Greedy sampling at a low temperature keeps repeated runs comparable.
DEFAULT_GENERATION_OPTIONS = GenerationOptions(
    sampling=SamplingMode.GREEDY,
    temperature=0.1
)

PartialObserver = Callable[[str], Union[None, Awaitable[Any]]]


class RunState(str, Enum):
    """Lifecycle of a runner."""
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class RunnerConfiguration:
    """Prompt and generation options used for every run of a runner."""
    prompt: BenchmarkPrompt = PRODUCT_DESIGN
    options: GenerationOptions = field(default=DEFAULT_GENERATION_OPTIONS)


class BenchmarkRunner:
    """
    Runs a benchmark against a language model.

    A run checks availability, streams one response while recording the start,
    first-snapshot and end times, then estimates token counts from the session
    transcript. One runner executes one run at a time; use separate runners for
    concurrent runs against independent sessions.
    """

    def __init__(
        self,
        language_model: LanguageModel,
        configuration: Optional[RunnerConfiguration] = None,
        accumulator: Optional[TranscriptAccumulator] = None,
        clock: Callable[[], datetime] = datetime.now,
        environment_provider: Callable[[], EnvironmentSnapshot] = capture_environment
    ):
        """
        Initialize the runner.

        Args:
            language_model: Model to benchmark
            configuration: Prompt and options (defaults to the product design prompt)
            accumulator: Transcript accumulator used for token estimates
            clock: Source of timestamps
            environment_provider: Captures the environment attached to results
        """
        self.language_model = language_model
        self.configuration = configuration or RunnerConfiguration()
        self.accumulator = accumulator or TranscriptAccumulator()
        self.clock = clock
        self.environment_provider = environment_provider
        self.state = RunState.IDLE
        self.last_session: Optional[GenerationSession] = None

    async def run(self, on_partial: Optional[PartialObserver] = None) -> BenchmarkResult:
        """
        Run one benchmark.

        Args:
            on_partial: Optional observer called with the latest response text
                after each snapshot; may be a plain function or a coroutine function

        Returns:
            BenchmarkResult with metrics, environment and the response text

        Raises:
            ModelUnavailableError: If the model reports itself unavailable
            EmptyResponseError: If the streamed response is empty or whitespace
            RunInProgressError: If this runner is already running
        """
        if self.state is RunState.RUNNING:
            raise RunInProgressError()

        self.state = RunState.RUNNING
        try:
            result = await self._execute(on_partial)
        except BaseException:
            self.state = RunState.FAILED
            raise

        self.state = RunState.COMPLETED
        return result

    async def _execute(self, on_partial: Optional[PartialObserver]) -> BenchmarkResult:
        prompt = self.configuration.prompt

        availability = await self.language_model.availability()
        if not availability.is_available:
            logger.warning("Language model unavailable", reason=availability.reason)
            raise ModelUnavailableError(availability.reason or "unknown reason")

        session = self.language_model.create_session(prompt.instructions)
        self.last_session = session

        start = self.clock()
        first_token: Optional[datetime] = None
        response_text = ""
        snapshot_count = 0

        logger.info(
            "Benchmark run started",
            sampling=self.configuration.options.sampling.value,
            temperature=self.configuration.options.temperature
        )

        async for snapshot in session.stream_response(prompt.user_prompt, self.configuration.options):
            if first_token is None:
                first_token = self.clock()
            snapshot_count += 1
            response_text = render_partial_text(snapshot)

            if on_partial is not None:
                outcome = on_partial(response_text)
                if inspect.isawaitable(outcome):
                    await outcome

        if not response_text.strip():
            logger.warning("Benchmark produced an empty response", snapshot_count=snapshot_count)
            raise EmptyResponseError()

        end = self.clock()
        transcript = list(session.transcript)

        metrics = BenchmarkMetrics.measure(
            start=start,
            end=end,
            time_to_first_token=(
                (first_token - start).total_seconds() if first_token is not None else None
            ),
            prompt_token_estimate=self.accumulator.prompt_tokens(transcript),
            response_token_estimate=self.accumulator.response_tokens(transcript)
        )

        logger.info(
            "Benchmark run completed",
            snapshot_count=snapshot_count,
            duration=round(metrics.duration, 3),
            total_token_estimate=metrics.total_token_estimate,
            tokens_per_second=(
                round(metrics.tokens_per_second, 2) if metrics.tokens_per_second else None
            )
        )

        # Environment probes may shell out; keep them off the event loop.
        environment = await asyncio.to_thread(self.environment_provider)

        return BenchmarkResult(
            prompt=prompt,
            metrics=metrics,
            environment=environment,
            response_text=response_text
        )
