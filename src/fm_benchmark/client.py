"""
Amazon Bedrock language model implementation using the ConverseStream API.
"""

import json
from typing import Any, AsyncIterator, Dict, List, Optional

import aioboto3
from botocore.exceptions import BotoCoreError, ClientError

from .exceptions import RunError
from .logging import get_logger
from .models import (
    ActualTokenCounts,
    EntryKind,
    GenerationOptions,
    SamplingMode,
    TextSegment,
    ToolCall,
    TranscriptEntry,
)
from .session import Availability, Snapshot


logger = get_logger(__name__)


# Geography prefixes used by cross-region inference profile identifiers.
INFERENCE_PROFILE_PREFIXES = {"us", "eu", "apac", "global", "us-gov", "jp", "au", "ca"}

STREAM_ERROR_EVENTS = (
    "internalServerException",
    "modelStreamErrorException",
    "validationException",
    "throttlingException",
    "serviceUnavailableException",
)


def foundation_model_id(model_id: str) -> str:
    """Strip an inference-profile geography prefix to get the foundation model ID."""
    prefix, _, rest = model_id.partition(".")
    if rest and prefix in INFERENCE_PROFILE_PREFIXES:
        return rest
    return model_id


def inference_config(options: GenerationOptions) -> Dict[str, Any]:
    """
    Map generation options onto a Bedrock ``inferenceConfig``.

    Greedy sampling sends only the temperature; random sampling also forwards
    ``top_p`` when set.
    """
    config: Dict[str, Any] = {"temperature": options.temperature}
    if options.maximum_response_tokens is not None:
        config["maxTokens"] = options.maximum_response_tokens
    if options.sampling is SamplingMode.RANDOM and options.top_p is not None:
        config["topP"] = options.top_p
    return config


class BedrockLanguageModel:
    """
    Language model backed by Amazon Bedrock.

    Availability is read from the control-plane GetFoundationModel call;
    sessions stream responses through ConverseStream.
    """

    def __init__(
        self,
        model_id: str,
        region: str = "us-east-1",
        aws_profile: Optional[str] = None,
        session: Optional[aioboto3.Session] = None
    ):
        """
        Initialize the Bedrock language model.

        Args:
            model_id: The Bedrock model or inference profile identifier
            region: AWS region for Bedrock service
            aws_profile: AWS profile name (optional)
            session: Existing aioboto3 session (optional)
        """
        self.model_id = model_id
        self.region = region
        self.aws_profile = aws_profile

        if session:
            self.session = session
        else:
            self.session = aioboto3.Session(profile_name=aws_profile)

    async def availability(self) -> Availability:
        """Check that the model exists, is active, and can stream text."""
        lookup_id = foundation_model_id(self.model_id)

        try:
            async with self.session.client('bedrock', region_name=self.region) as client:
                response = await client.get_foundation_model(modelIdentifier=lookup_id)
        except ClientError as e:
            error = e.response.get('Error', {})
            code = error.get('Code', 'ClientError')
            logger.warning(
                "Model availability check failed",
                model_id=self.model_id,
                error_code=code,
                error_message=error.get('Message', str(e))
            )
            return Availability.unavailable(f"{code}: {error.get('Message', str(e))}")
        except BotoCoreError as e:
            logger.warning("Model availability check failed", model_id=self.model_id, error=str(e))
            return Availability.unavailable(str(e))

        details = response.get('modelDetails', {})

        status = details.get('modelLifecycle', {}).get('status')
        if status and status != 'ACTIVE':
            return Availability.unavailable(f"model lifecycle status is {status}")

        if 'TEXT' not in details.get('outputModalities', ['TEXT']):
            return Availability.unavailable("model does not produce text output")

        if details.get('responseStreamingSupported') is False:
            return Availability.unavailable("model does not support streaming responses")

        return Availability.available()

    def create_session(self, instructions: str) -> "BedrockSession":
        return BedrockSession(self, instructions)


class BedrockSession:
    """
    One exchange with a Bedrock model.

    The transcript records the instructions, the prompt, any tool calls and the
    response text; ``reported_usage`` holds the token usage Bedrock reports in
    the stream metadata, when present.
    """

    def __init__(self, model: BedrockLanguageModel, instructions: str):
        self.model = model
        self.instructions = instructions
        self.reported_usage: Optional[ActualTokenCounts] = None
        self.stop_reason: Optional[str] = None
        self._transcript: List[TranscriptEntry] = []

        if instructions:
            self._transcript.append(TranscriptEntry.text(EntryKind.INSTRUCTIONS, instructions))

    @property
    def transcript(self) -> List[TranscriptEntry]:
        return list(self._transcript)

    def _request(self, prompt: str, options: GenerationOptions) -> Dict[str, Any]:
        request: Dict[str, Any] = {
            "modelId": self.model.model_id,
            "messages": [
                {
                    "role": "user",
                    "content": [{"text": prompt}]
                }
            ],
            "inferenceConfig": inference_config(options),
        }
        if self.instructions:
            request["system"] = [{"text": self.instructions}]
        return request

    async def stream_response(
        self,
        prompt: str,
        options: GenerationOptions
    ) -> AsyncIterator[Snapshot]:
        """
        Stream the response to ``prompt``.

        Yields one snapshot per text delta, each carrying the full text so far.

        Raises:
            RunError: If Bedrock rejects the request or reports a stream error
        """
        self._transcript.append(TranscriptEntry.text(EntryKind.PROMPT, prompt))

        text = ""
        tool_blocks: Dict[int, Dict[str, str]] = {}

        try:
            async with self.model.session.client(
                'bedrock-runtime',
                region_name=self.model.region
            ) as client:
                response = await client.converse_stream(**self._request(prompt, options))

                async for event in response["stream"]:
                    self._raise_for_stream_error(event)

                    if "contentBlockStart" in event:
                        block = event["contentBlockStart"]
                        tool_use = block.get("start", {}).get("toolUse")
                        if tool_use:
                            tool_blocks[block.get("contentBlockIndex", 0)] = {
                                "name": tool_use.get("name", ""),
                                "input": "",
                            }

                    elif "contentBlockDelta" in event:
                        block = event["contentBlockDelta"]
                        delta = block.get("delta", {})
                        if "text" in delta:
                            text += delta["text"]
                            yield Snapshot(raw_content=json.dumps(text), value=text)
                        elif "toolUse" in delta:
                            index = block.get("contentBlockIndex", 0)
                            tool_block = tool_blocks.setdefault(index, {"name": "", "input": ""})
                            tool_block["input"] += delta["toolUse"].get("input", "")

                    elif "messageStop" in event:
                        self.stop_reason = event["messageStop"].get("stopReason")

                    elif "metadata" in event:
                        usage = event["metadata"].get("usage", {})
                        self.reported_usage = ActualTokenCounts(
                            prompt_tokens=usage.get("inputTokens", 0),
                            response_tokens=usage.get("outputTokens", 0),
                            total_tokens=usage.get("totalTokens", 0)
                        )
        except ClientError as e:
            logger.error(
                "Bedrock API error",
                model_id=self.model.model_id,
                error_code=e.response.get('Error', {}).get('Code'),
                error_message=str(e)
            )
            raise RunError(f"Bedrock ConverseStream request failed: {e}") from e
        except BotoCoreError as e:
            logger.error("Bedrock connection error", model_id=self.model.model_id, error=str(e))
            raise RunError(f"Bedrock ConverseStream request failed: {e}") from e
        finally:
            self._record_response(text, tool_blocks)

    def _raise_for_stream_error(self, event: Dict[str, Any]):
        for name in STREAM_ERROR_EVENTS:
            if name in event:
                message = event[name].get("message", name)
                logger.error("Bedrock stream error", model_id=self.model.model_id, error=name)
                raise RunError(f"Bedrock stream error ({name}): {message}")

    def _record_response(self, text: str, tool_blocks: Dict[int, Dict[str, str]]):
        if tool_blocks:
            calls = tuple(
                ToolCall(tool_name=block["name"], arguments=_decode_tool_input(block["input"]))
                for _, block in sorted(tool_blocks.items())
            )
            self._transcript.append(TranscriptEntry(kind=EntryKind.TOOL_CALLS, tool_calls=calls))

        if text:
            self._transcript.append(
                TranscriptEntry(kind=EntryKind.RESPONSE, segments=(TextSegment(text),))
            )


def _decode_tool_input(raw: str) -> Any:
    if not raw:
        return {}
    try:
        return json.loads(raw)
    except ValueError:
        return raw
