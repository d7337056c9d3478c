"""
Data models for the Foundation Models Benchmark.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Tuple, Union


def canonical_json(content: Any) -> str:
    """Serialize structured content to its canonical compact JSON form."""
    return json.dumps(content, ensure_ascii=False, separators=(",", ":"))


@dataclass(frozen=True)
class BenchmarkPrompt:
    """Instructions and user prompt sent to the model for one benchmark run."""
    instructions: str
    user_prompt: str

    def __post_init__(self):
        object.__setattr__(self, "instructions", self.instructions.strip())
        object.__setattr__(self, "user_prompt", self.user_prompt.strip())


class SamplingMode(str, Enum):
    """Sampling strategy used during generation."""
    GREEDY = "greedy"
    RANDOM = "random"


@dataclass(frozen=True)
class GenerationOptions:
    """Generation settings passed by value into a run."""
    sampling: SamplingMode = SamplingMode.GREEDY
    temperature: float = 0.1
    maximum_response_tokens: Optional[int] = None
    top_p: Optional[float] = None


class EntryKind(str, Enum):
    """Roles a transcript entry can take."""
    INSTRUCTIONS = "instructions"
    PROMPT = "prompt"
    RESPONSE = "response"
    TOOL_CALLS = "tool_calls"
    TOOL_OUTPUT = "tool_output"


@dataclass(frozen=True)
class TextSegment:
    """Plain text segment."""
    content: str

    def as_text(self) -> str:
        return self.content


@dataclass(frozen=True)
class StructuredSegment:
    """Structured segment; estimated through its serialized JSON form."""
    content: Any

    def as_text(self) -> str:
        return canonical_json(self.content)


Segment = Union[TextSegment, StructuredSegment]


@dataclass(frozen=True)
class ToolCall:
    """A single tool invocation requested by the model."""
    tool_name: str
    arguments: Any = field(default_factory=dict)


@dataclass(frozen=True)
class TranscriptEntry:
    """
    One entry of a session transcript.

    ``kind`` is normally an :class:`EntryKind`; any other value is kept as-is so
    that entries from newer sessions can pass through the accumulator.
    """
    kind: Union[EntryKind, str]
    segments: Tuple[Segment, ...] = ()
    tool_calls: Tuple[ToolCall, ...] = ()

    @classmethod
    def text(cls, kind: Union[EntryKind, str], *contents: str) -> "TranscriptEntry":
        """Build an entry made of plain text segments."""
        return cls(kind=kind, segments=tuple(TextSegment(c) for c in contents))


@dataclass(frozen=True)
class EnvironmentSnapshot:
    """Snapshot of the machine a benchmark ran on."""
    device_name: str
    system_name: str
    system_version: str
    locale_identifier: str
    app_version: Optional[str] = None
    hardware_model: Optional[str] = None
    cpu_model: Optional[str] = None
    cpu_cores: Optional[int] = None
    gpu_model: Optional[str] = None
    total_memory: Optional[int] = None
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class BenchmarkMetrics:
    """Timing and token estimates derived from one run."""
    start: datetime
    end: datetime
    duration: float
    time_to_first_token: Optional[float]
    prompt_token_estimate: int
    response_token_estimate: int
    total_token_estimate: int
    tokens_per_second: Optional[float]

    @classmethod
    def measure(
        cls,
        start: datetime,
        end: datetime,
        time_to_first_token: Optional[float],
        prompt_token_estimate: int,
        response_token_estimate: int
    ) -> "BenchmarkMetrics":
        """
        Derive duration, total tokens and throughput from raw measurements.

        Raises:
            ValueError: If ``end`` precedes ``start``
        """
        duration = (end - start).total_seconds()
        if duration < 0:
            raise ValueError("end must not precede start")

        total = prompt_token_estimate + response_token_estimate
        tokens_per_second = total / duration if duration > 0 else None

        return cls(
            start=start,
            end=end,
            duration=duration,
            time_to_first_token=time_to_first_token,
            prompt_token_estimate=prompt_token_estimate,
            response_token_estimate=response_token_estimate,
            total_token_estimate=total,
            tokens_per_second=tokens_per_second
        )


@dataclass(frozen=True)
class BenchmarkResult:
    """Outcome of one successful benchmark run."""
    prompt: BenchmarkPrompt
    metrics: BenchmarkMetrics
    environment: EnvironmentSnapshot
    response_text: str


@dataclass(frozen=True)
class ActualTokenCounts:
    """Ground-truth token counts taken from an external trace."""
    prompt_tokens: int = 0
    response_tokens: int = 0
    total_tokens: int = 0


@dataclass(frozen=True)
class TokenComparison:
    """Estimated versus actual count for one token category."""
    estimated: int
    actual: int
    difference: int
    percent_difference: float


class AccuracyTier(str, Enum):
    """Qualitative bucket for estimation accuracy."""
    EXCELLENT = "excellent"
    GOOD = "good"
    NEEDS_IMPROVEMENT = "needs_improvement"
    POOR = "poor"

    @property
    def verdict(self) -> str:
        return _TIER_VERDICTS[self]


_TIER_VERDICTS = {
    AccuracyTier.EXCELLENT: "Excellent! Estimation is within 5% of actual token count.",
    AccuracyTier.GOOD: "Good! Estimation is within 10% of actual token count.",
    AccuracyTier.NEEDS_IMPROVEMENT: (
        "Estimation is off by more than 10%. Consider improving token estimation."
    ),
    AccuracyTier.POOR: (
        "Significant difference! Actual tokenization differs greatly from estimation."
    ),
}


@dataclass(frozen=True)
class ComparisonResult:
    """Reconciliation of a run's estimates against ground truth."""
    prompt: TokenComparison
    response: TokenComparison
    total: TokenComparison
    duration: float
    estimated_tokens_per_second: Optional[float]
    actual_tokens_per_second: Optional[float]
    accuracy: float
    tier: AccuracyTier

    @property
    def tokens_per_second_difference(self) -> Optional[float]:
        """Actual minus estimated throughput, when both are known."""
        if self.actual_tokens_per_second is None or self.estimated_tokens_per_second is None:
            return None
        return self.actual_tokens_per_second - self.estimated_tokens_per_second
