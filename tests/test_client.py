"""Tests for the Bedrock language model with a mocked aioboto3 session."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from fm_benchmark.client import BedrockLanguageModel, foundation_model_id, inference_config
from fm_benchmark.exceptions import RunError
from fm_benchmark.models import (
    ActualTokenCounts,
    EntryKind,
    GenerationOptions,
    SamplingMode,
)
from fm_benchmark.transcript import TranscriptAccumulator


class FakeClientContext:
    """Async context manager standing in for ``session.client(...)``."""

    def __init__(self, client):
        self.client = client

    async def __aenter__(self):
        return self.client

    async def __aexit__(self, exc_type, exc, tb):
        return False


async def event_stream(events):
    for event in events:
        yield event


def make_session(control=None, runtime=None):
    clients = {"bedrock": control or AsyncMock(), "bedrock-runtime": runtime or AsyncMock()}
    session = MagicMock()
    session.client.side_effect = lambda name, region_name=None: FakeClientContext(clients[name])
    return session


def model_details(**overrides):
    details = {
        "modelLifecycle": {"status": "ACTIVE"},
        "outputModalities": ["TEXT"],
        "responseStreamingSupported": True,
    }
    details.update(overrides)
    return {"modelDetails": details}


def runtime_with_events(events):
    runtime = AsyncMock()
    runtime.converse_stream.return_value = {"stream": event_stream(events)}
    return runtime


async def collect(stream):
    return [snapshot async for snapshot in stream]


class TestHelpers:
    """Tests for request helpers."""

    @pytest.mark.parametrize("model_id,expected", [
        ("us.amazon.nova-lite-v1:0", "amazon.nova-lite-v1:0"),
        ("global.anthropic.claude-sonnet-4-v1:0", "anthropic.claude-sonnet-4-v1:0"),
        ("amazon.nova-lite-v1:0", "amazon.nova-lite-v1:0"),
        ("custom-model", "custom-model"),
    ])
    def test_foundation_model_id(self, model_id, expected):
        assert foundation_model_id(model_id) == expected

    def test_greedy_sends_temperature_only(self):
        options = GenerationOptions(sampling=SamplingMode.GREEDY, temperature=0.1, top_p=0.9)
        assert inference_config(options) == {"temperature": 0.1}

    def test_random_sampling_with_limits(self):
        options = GenerationOptions(
            sampling=SamplingMode.RANDOM, temperature=0.8, maximum_response_tokens=256, top_p=0.9
        )
        assert inference_config(options) == {"temperature": 0.8, "maxTokens": 256, "topP": 0.9}


class TestAvailability:
    """Tests for BedrockLanguageModel.availability."""

    @pytest.mark.asyncio
    async def test_active_text_model_is_available(self):
        control = AsyncMock()
        control.get_foundation_model.return_value = model_details()
        model = BedrockLanguageModel("us.amazon.nova-lite-v1:0", session=make_session(control=control))

        availability = await model.availability()

        assert availability.is_available
        control.get_foundation_model.assert_awaited_once_with(modelIdentifier="amazon.nova-lite-v1:0")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("details,reason", [
        (model_details(modelLifecycle={"status": "LEGACY"}), "LEGACY"),
        (model_details(outputModalities=["EMBEDDING"]), "text output"),
        (model_details(responseStreamingSupported=False), "streaming"),
    ])
    async def test_unsuitable_model(self, details, reason):
        control = AsyncMock()
        control.get_foundation_model.return_value = details
        model = BedrockLanguageModel("amazon.titan-embed", session=make_session(control=control))

        availability = await model.availability()

        assert not availability.is_available
        assert reason in availability.reason

    @pytest.mark.asyncio
    async def test_client_error_is_unavailable(self):
        control = AsyncMock()
        control.get_foundation_model.side_effect = ClientError(
            {"Error": {"Code": "AccessDeniedException", "Message": "not allowed"}},
            "GetFoundationModel"
        )
        model = BedrockLanguageModel("amazon.nova-lite-v1:0", session=make_session(control=control))

        availability = await model.availability()

        assert not availability.is_available
        assert availability.reason == "AccessDeniedException: not allowed"

    @pytest.mark.asyncio
    async def test_connection_error_is_unavailable(self):
        control = AsyncMock()
        control.get_foundation_model.side_effect = EndpointConnectionError(endpoint_url="https://bedrock")
        model = BedrockLanguageModel("amazon.nova-lite-v1:0", session=make_session(control=control))

        availability = await model.availability()

        assert not availability.is_available
        assert "https://bedrock" in availability.reason


class TestStreaming:
    """Tests for BedrockSession.stream_response."""

    @pytest.mark.asyncio
    async def test_text_deltas_become_cumulative_snapshots(self):
        runtime = runtime_with_events([
            {"messageStart": {"role": "assistant"}},
            {"contentBlockDelta": {"contentBlockIndex": 0, "delta": {"text": "Hello"}}},
            {"contentBlockDelta": {"contentBlockIndex": 0, "delta": {"text": ", world"}}},
            {"contentBlockStop": {"contentBlockIndex": 0}},
            {"messageStop": {"stopReason": "end_turn"}},
            {"metadata": {"usage": {"inputTokens": 12, "outputTokens": 3, "totalTokens": 15}}},
        ])
        model = BedrockLanguageModel("amazon.nova-lite-v1:0", session=make_session(runtime=runtime))
        session = model.create_session("Be brief.")

        snapshots = await collect(session.stream_response("Say hi.", GenerationOptions()))

        assert [snapshot.value for snapshot in snapshots] == ["Hello", "Hello, world"]
        assert snapshots[-1].raw_content == '"Hello, world"'
        assert session.stop_reason == "end_turn"
        assert session.reported_usage == ActualTokenCounts(12, 3, 15)
        assert [entry.kind for entry in session.transcript] == [
            EntryKind.INSTRUCTIONS, EntryKind.PROMPT, EntryKind.RESPONSE
        ]

    @pytest.mark.asyncio
    async def test_request_shape(self):
        runtime = runtime_with_events([])
        model = BedrockLanguageModel("amazon.nova-lite-v1:0", session=make_session(runtime=runtime))

        await collect(model.create_session("Be brief.").stream_response(
            "Say hi.", GenerationOptions(maximum_response_tokens=64)
        ))

        runtime.converse_stream.assert_awaited_once_with(
            modelId="amazon.nova-lite-v1:0",
            messages=[{"role": "user", "content": [{"text": "Say hi."}]}],
            inferenceConfig={"temperature": 0.1, "maxTokens": 64},
            system=[{"text": "Be brief."}]
        )

    @pytest.mark.asyncio
    async def test_tool_use_is_recorded(self):
        runtime = runtime_with_events([
            {"contentBlockStart": {"contentBlockIndex": 0,
                                   "start": {"toolUse": {"toolUseId": "t1", "name": "search"}}}},
            {"contentBlockDelta": {"contentBlockIndex": 0, "delta": {"toolUse": {"input": '{"q": '}}}},
            {"contentBlockDelta": {"contentBlockIndex": 0, "delta": {"toolUse": {"input": '"tokens"}'}}}},
            {"contentBlockDelta": {"contentBlockIndex": 1, "delta": {"text": "Searching."}}},
        ])
        model = BedrockLanguageModel("amazon.nova-lite-v1:0", session=make_session(runtime=runtime))
        session = model.create_session("")

        await collect(session.stream_response("Find tokens.", GenerationOptions()))

        transcript = session.transcript
        assert [entry.kind for entry in transcript] == [
            EntryKind.PROMPT, EntryKind.TOOL_CALLS, EntryKind.RESPONSE
        ]
        call = transcript[1].tool_calls[0]
        assert call.tool_name == "search"
        assert call.arguments == {"q": "tokens"}
        assert TranscriptAccumulator().response_tokens(transcript) > 0

    @pytest.mark.asyncio
    async def test_request_error_raises_run_error(self):
        runtime = AsyncMock()
        runtime.converse_stream.side_effect = ClientError(
            {"Error": {"Code": "ValidationException", "Message": "bad request"}},
            "ConverseStream"
        )
        model = BedrockLanguageModel("amazon.nova-lite-v1:0", session=make_session(runtime=runtime))

        with pytest.raises(RunError, match="ConverseStream"):
            await collect(model.create_session("x").stream_response("y", GenerationOptions()))

    @pytest.mark.asyncio
    async def test_stream_error_event_raises_run_error(self):
        runtime = runtime_with_events([
            {"contentBlockDelta": {"contentBlockIndex": 0, "delta": {"text": "Par"}}},
            {"throttlingException": {"message": "slow down"}},
        ])
        model = BedrockLanguageModel("amazon.nova-lite-v1:0", session=make_session(runtime=runtime))
        session = model.create_session("x")

        with pytest.raises(RunError, match="slow down"):
            await collect(session.stream_response("y", GenerationOptions()))

        assert session.transcript[-1].kind is EntryKind.RESPONSE
