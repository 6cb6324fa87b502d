"""Model client for LLM routing mode, backed by the Anthropic Messages API."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import anthropic
from anthropic import AsyncAnthropic

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-sonnet-4-5-20250929"
DEFAULT_MAX_TOKENS = 4096


class ModelProviderError(Exception):
    """Raised when the model provider call fails or returns an unusable reply."""

    pass


@dataclass
class ToolCall:
    """One tool invocation requested by the model."""

    id: str
    name: str
    arguments: Any


@dataclass
class ModelTurn:
    """One assistant reply: text plus any requested tool calls."""

    text: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    stop_reason: str | None = None
    content: list[dict[str, Any]] = field(default_factory=list)


class ModelClient:
    """Thin wrapper around ``AsyncAnthropic.messages.create``."""

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        timeout: float = 120.0,
        client: Any = None,
    ):
        """Initialize the client.

        Args:
            api_key: Provider API key supplied with the request
            model: Model identifier
            max_tokens: Output token limit per turn
            timeout: Request timeout in seconds
            client: Pre-built SDK client (tests pass a fake here)
        """
        self.model = model
        self.max_tokens = max_tokens
        self._client = client or AsyncAnthropic(api_key=api_key, timeout=timeout)

    async def complete(
        self,
        system: str,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]],
    ) -> ModelTurn:
        """Request the next assistant turn.

        Raises:
            ModelProviderError: On any provider failure
        """
        params: dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "system": system,
            "messages": messages,
        }
        if tools:
            params["tools"] = tools

        try:
            response = await self._client.messages.create(**params)
        except anthropic.APIStatusError as e:
            logger.error(f"Model provider returned HTTP {e.status_code}")
            raise ModelProviderError(f"Model provider error ({e.status_code}): {_status_message(e)}") from e
        except anthropic.APITimeoutError as e:
            raise ModelProviderError("Model provider request timed out") from e
        except anthropic.APIError as e:
            logger.error(f"Model provider call failed: {e}")
            raise ModelProviderError(f"Model provider unavailable: {e}") from e

        return _convert_response(response)


def _status_message(error: anthropic.APIStatusError) -> str:
    body = error.body
    if isinstance(body, dict):
        detail = body.get("error")
        if isinstance(detail, dict) and detail.get("message"):
            return str(detail["message"])
    return str(error.message)


def _convert_response(response: Any) -> ModelTurn:
    """Convert an SDK message into a ``ModelTurn``."""
    blocks = getattr(response, "content", None)
    if blocks is None:
        raise ModelProviderError("Model response has no content")

    turn = ModelTurn(stop_reason=getattr(response, "stop_reason", None))
    texts = []
    for block in blocks:
        block_type = getattr(block, "type", None)
        if block_type == "text":
            texts.append(block.text)
            turn.content.append({"type": "text", "text": block.text})
        elif block_type == "tool_use":
            call = ToolCall(id=block.id, name=block.name, arguments=block.input)
            turn.tool_calls.append(call)
            turn.content.append(
                {"type": "tool_use", "id": call.id, "name": call.name, "input": call.arguments}
            )
        else:
            logger.debug(f"Ignoring model content block of type {block_type}")

    turn.text = "\n".join(text for text in texts if text).strip()
    return turn
