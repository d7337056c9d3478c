"""
Interfaces for the language model being benchmarked.

The runner only depends on these shapes; `client.BedrockLanguageModel` is the
shipped implementation and tests use scripted fakes.
"""

import json
from dataclasses import dataclass
from typing import AsyncIterator, List, Optional, Protocol

from .models import GenerationOptions, TranscriptEntry


@dataclass(frozen=True)
class Availability:
    """Whether a language model can serve requests."""
    is_available: bool
    reason: Optional[str] = None

    @classmethod
    def available(cls) -> "Availability":
        return cls(is_available=True)

    @classmethod
    def unavailable(cls, reason: str) -> "Availability":
        return cls(is_available=False, reason=reason)


@dataclass(frozen=True)
class Snapshot:
    """
    One state of a streaming response.

    Each snapshot supersedes the previous ones for the same response.
    ``value`` is the typed text when the model provides it; ``raw_content`` is
    the serialized JSON form of the partial content.
    """
    raw_content: str
    value: Optional[str] = None


def render_partial_text(snapshot: Snapshot) -> str:
    """
    Decode a snapshot into text.

    Prefers the typed value, then the JSON-decoded serialized form when it is a
    string, then the serialized form verbatim.
    """
    if isinstance(snapshot.value, str):
        return snapshot.value

    try:
        decoded = json.loads(snapshot.raw_content)
    except (TypeError, ValueError):
        return snapshot.raw_content

    if isinstance(decoded, str):
        return decoded
    return snapshot.raw_content


class GenerationSession(Protocol):
    """A conversation with the model that records a transcript."""

    @property
    def transcript(self) -> List[TranscriptEntry]:
        ...

    def stream_response(
        self,
        prompt: str,
        options: GenerationOptions
    ) -> AsyncIterator[Snapshot]:
        ...


class LanguageModel(Protocol):
    """A model that can report availability and open sessions."""

    async def availability(self) -> Availability:
        ...

    def create_session(self, instructions: str) -> GenerationSession:
        ...
