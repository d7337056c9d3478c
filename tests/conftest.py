"""Shared fixtures: scripted language models, a stepping clock, a fixed environment."""

import json
from datetime import datetime, timedelta
from typing import List, Optional

import pytest

from fm_benchmark.models import EntryKind, EnvironmentSnapshot, TextSegment, TranscriptEntry
from fm_benchmark.session import Availability, Snapshot


START_TIME = datetime(2025, 1, 1, 12, 0, 0)


class SteppingClock:
    """Clock that advances by a fixed step on every call."""

    def __init__(self, start: datetime = START_TIME, step: float = 0.5):
        self.current = start
        self.step = timedelta(seconds=step)
        self.calls = 0

    def __call__(self) -> datetime:
        value = self.current
        self.current += self.step
        self.calls += 1
        return value


class ScriptedSession:
    """Session that replays a fixed list of partial texts."""

    def __init__(self, instructions: str, partials: List[str], error: Optional[Exception] = None):
        self.instructions = instructions
        self.partials = partials
        self.error = error
        self.reported_usage = None
        self.received_options = None
        self._transcript = []
        if instructions:
            self._transcript.append(TranscriptEntry.text(EntryKind.INSTRUCTIONS, instructions))

    @property
    def transcript(self):
        return list(self._transcript)

    async def stream_response(self, prompt, options):
        self.received_options = options
        self._transcript.append(TranscriptEntry.text(EntryKind.PROMPT, prompt))
        text = ""
        for partial in self.partials:
            text = partial
            yield Snapshot(raw_content=json.dumps(partial), value=partial)
        if self.error is not None:
            raise self.error
        if text:
            self._transcript.append(
                TranscriptEntry(kind=EntryKind.RESPONSE, segments=(TextSegment(text),))
            )


class ScriptedLanguageModel:
    """Language model whose availability and responses are fixed up front."""

    def __init__(
        self,
        partials: Optional[List[str]] = None,
        availability: Optional[Availability] = None,
        error: Optional[Exception] = None
    ):
        self.partials = partials if partials is not None else ["Hello", "Hello, world"]
        self._availability = availability or Availability.available()
        self.error = error
        self.sessions: List[ScriptedSession] = []

    async def availability(self) -> Availability:
        return self._availability

    def create_session(self, instructions: str) -> ScriptedSession:
        session = ScriptedSession(instructions, self.partials, self.error)
        self.sessions.append(session)
        return session


@pytest.fixture
def clock():
    return SteppingClock()


@pytest.fixture
def environment():
    return EnvironmentSnapshot(
        device_name="bench-host",
        system_name="macOS",
        system_version="15.1",
        locale_identifier="en_US",
        app_version="0.3.0",
        hardware_model="arm64",
        cpu_model="arm",
        cpu_cores=10,
        gpu_model="Apple M4",
        total_memory=16 * 1024 ** 3,
        timestamp=START_TIME
    )


@pytest.fixture
def language_model():
    return ScriptedLanguageModel()
