"""
Token accounting over session transcripts.
"""

from enum import Enum
from typing import Callable, Dict, Iterable, Optional

from .estimator import EstimationRole, TokenEstimator
from .logging import get_logger
from .models import EntryKind, TranscriptEntry


logger = get_logger(__name__)


TOOL_CALL_OVERHEAD = 5
TOOL_OUTPUT_OVERHEAD = 3

PROMPT_KINDS = frozenset({EntryKind.INSTRUCTIONS, EntryKind.PROMPT})
RESPONSE_KINDS = frozenset({EntryKind.RESPONSE})


class ToolAttribution(str, Enum):
    """
    How tool entries are attributed to the prompt/response totals.

    EXCLUDE leaves tool calls and tool outputs out of both totals. INCLUDE
    counts tool outputs as prompt tokens (they are fed back to the model) and
    tool calls as response tokens (the model generates them).
    """
    EXCLUDE = "exclude"
    INCLUDE = "include"


EntryEstimator = Callable[[TranscriptEntry], int]


class TranscriptAccumulator:
    """
    Sums estimated token counts over transcript entries.

    Each entry kind maps to an estimation strategy; kinds without a strategy
    contribute nothing.
    """

    def __init__(
        self,
        estimator: Optional[TokenEstimator] = None,
        tool_call_overhead: int = TOOL_CALL_OVERHEAD,
        tool_output_overhead: int = TOOL_OUTPUT_OVERHEAD,
        tool_attribution: ToolAttribution = ToolAttribution.EXCLUDE
    ):
        self.estimator = estimator or TokenEstimator()
        self.tool_call_overhead = tool_call_overhead
        self.tool_output_overhead = tool_output_overhead
        self.tool_attribution = tool_attribution

        self._strategies: Dict[EntryKind, EntryEstimator] = {
            EntryKind.INSTRUCTIONS: self._estimate_input_entry,
            EntryKind.PROMPT: self._estimate_input_entry,
            EntryKind.RESPONSE: self._estimate_output_entry,
            EntryKind.TOOL_CALLS: self._estimate_tool_calls,
            EntryKind.TOOL_OUTPUT: self._estimate_tool_output,
        }

    def estimate_entry(self, entry: TranscriptEntry) -> int:
        """Estimate a single entry using the strategy for its kind."""
        strategy = self._strategies.get(entry.kind)
        if strategy is None:
            logger.debug("Skipping unrecognized transcript entry", kind=str(entry.kind))
            return 0
        return strategy(entry)

    def estimated_token_count(
        self,
        entries: Iterable[TranscriptEntry],
        predicate: Callable[[TranscriptEntry], bool]
    ) -> int:
        """Sum the estimates of every entry matching ``predicate``."""
        return sum(self.estimate_entry(entry) for entry in entries if predicate(entry))

    def prompt_tokens(self, entries: Iterable[TranscriptEntry]) -> int:
        """Estimated tokens for instructions and prompts."""
        kinds = set(PROMPT_KINDS)
        if self.tool_attribution is ToolAttribution.INCLUDE:
            kinds.add(EntryKind.TOOL_OUTPUT)
        return self.estimated_token_count(entries, lambda entry: entry.kind in kinds)

    def response_tokens(self, entries: Iterable[TranscriptEntry]) -> int:
        """Estimated tokens for responses."""
        kinds = set(RESPONSE_KINDS)
        if self.tool_attribution is ToolAttribution.INCLUDE:
            kinds.add(EntryKind.TOOL_CALLS)
        return self.estimated_token_count(entries, lambda entry: entry.kind in kinds)

    def _estimate_input_entry(self, entry: TranscriptEntry) -> int:
        return sum(
            self.estimator.estimate_segment(segment, EstimationRole.INPUT)
            for segment in entry.segments
        )

    def _estimate_output_entry(self, entry: TranscriptEntry) -> int:
        return sum(
            self.estimator.estimate_segment(segment, EstimationRole.OUTPUT)
            for segment in entry.segments
        )

    def _estimate_tool_calls(self, entry: TranscriptEntry) -> int:
        total = 0
        for call in entry.tool_calls:
            total += self.estimator.estimate(call.tool_name, EstimationRole.INPUT)
            total += self.estimator.estimate_structured(call.arguments, EstimationRole.GENERIC)
            total += self.tool_call_overhead
        return total

    def _estimate_tool_output(self, entry: TranscriptEntry) -> int:
        return self._estimate_output_entry(entry) + self.tool_output_overhead
