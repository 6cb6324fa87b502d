"""Desktop delegate: drives the VNC-controlled virtual desktop sandbox."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from agentflare.delegates.base import (
    MISSING_API_KEY,
    DelegateError,
    SandboxClient,
    upstream_error,
)
from agentflare.schemas import (
    ClickPointAction,
    DelegateResult,
    DesktopAction,
    DesktopScreenshotAction,
    KeyAction,
    MoveAction,
    ScrollAction,
    TypeTextAction,
)
from agentflare.session import SandboxSession

logger = logging.getLogger(__name__)

AGENT_FAILURE_MESSAGE = "Failed to process computer task"
SCREENSHOT_PREFIX = "Screenshot:"


class DesktopClient(SandboxClient):
    """Client for the virtual desktop sandbox."""

    capability = "computer"

    def __init__(
        self,
        session: SandboxSession,
        api_key: str | None = None,
        action_timeout: float | None = None,
    ):
        super().__init__(session, api_key)
        self.action_timeout = action_timeout

    async def run_agent(self, prompt: str) -> DelegateResult:
        """Hand a free-text instruction to the desktop sandbox's agent loop."""
        if not self.api_key:
            return DelegateResult.failure(
                MISSING_API_KEY,
                message="API key required for LLM functionality",
            )

        try:
            response = await self._request(
                "GET",
                "/agent",
                params={"apiKey": self.api_key, "prompt": prompt},
            )
            body = self._decode_json(response)
        except DelegateError as e:
            return DelegateResult.failure(str(e), message=AGENT_FAILURE_MESSAGE)

        if body.get("success") and not response.is_error:
            return DelegateResult.ok(
                str(body.get("message") or "Computer task completed"),
                payload={"result": body},
            )

        error = upstream_error(body, response)
        logger.warning(f"Computer agent failed: {error}")
        return DelegateResult.failure(error, message=AGENT_FAILURE_MESSAGE, payload={"result": body})

    async def execute_action(self, action: DesktopAction) -> DelegateResult:
        """Perform one low-level desktop action."""
        failure_message = f"Desktop action '{action.type}' failed"
        try:
            response = await self._send_action(action)
        except DelegateError as e:
            return DelegateResult.failure(str(e), message=failure_message)

        if isinstance(action, DesktopScreenshotAction):
            return self._screenshot_result(response)

        if response.is_error:
            return DelegateResult.failure(
                _error_text(response),
                message=failure_message,
            )

        body = _maybe_json(response)
        if body is not None:
            if not body.get("success", True):
                return DelegateResult.failure(upstream_error(body, response), message=failure_message)
            message = body.get("message") or f"Desktop action '{action.type}' completed"
            return DelegateResult.ok(str(message))

        text = response.text.strip()
        return DelegateResult.ok(text or f"Desktop action '{action.type}' completed")

    async def screenshot(self) -> str | None:
        """Return the desktop frame as an image data URL, or None when unavailable."""
        result = await self.execute_action(DesktopScreenshotAction())
        if result.success and result.payload:
            return result.payload.get("screenshot")
        return None

    async def _send_action(self, action: DesktopAction) -> httpx.Response:
        timeout = self.action_timeout
        if isinstance(action, DesktopScreenshotAction):
            return await self._request("GET", "/screenshot", timeout=timeout)
        if isinstance(action, KeyAction):
            return await self._request("GET", "/enter", params={"text": action.keys}, timeout=timeout)
        if isinstance(action, ClickPointAction):
            return await self._request(
                "POST",
                "/click",
                json={"x": action.x, "y": action.y, "button": action.button},
                timeout=timeout,
            )
        if isinstance(action, TypeTextAction):
            return await self._request("POST", "/type", json={"text": action.text}, timeout=timeout)
        if isinstance(action, ScrollAction):
            return await self._request(
                "POST",
                "/scroll",
                json={"direction": action.direction, "amount": action.amount},
                timeout=timeout,
            )
        if isinstance(action, MoveAction):
            return await self._request("POST", "/move", json={"x": action.x, "y": action.y}, timeout=timeout)
        raise ValueError(f"Unknown desktop action: {action!r}")

    def _screenshot_result(self, response: httpx.Response) -> DelegateResult:
        if response.is_error:
            return DelegateResult.failure(_error_text(response), message="Desktop screenshot failed")

        body = _maybe_json(response)
        if body is not None:
            screenshot = body.get("screenshot")
        else:
            text = response.text.strip()
            screenshot = text[len(SCREENSHOT_PREFIX):] if text.startswith(SCREENSHOT_PREFIX) else None

        if not screenshot:
            return DelegateResult.failure(
                "Desktop sandbox returned no screenshot",
                message="Desktop screenshot failed",
            )
        return DelegateResult.ok("Captured desktop screenshot", payload={"screenshot": screenshot})


def _maybe_json(response: httpx.Response) -> dict[str, Any] | None:
    if "application/json" not in response.headers.get("content-type", ""):
        return None
    try:
        body = response.json()
    except ValueError:
        return None
    return body if isinstance(body, dict) else None


def _error_text(response: httpx.Response) -> str:
    body = _maybe_json(response)
    if body is not None:
        return upstream_error(body, response)
    text = response.text.strip()
    return text or f"HTTP {response.status_code}"
