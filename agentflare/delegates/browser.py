"""Browser delegate: drives the headless-browser sandbox."""

from __future__ import annotations

import logging
from typing import Any

from agentflare.delegates.base import (
    MISSING_API_KEY,
    DelegateError,
    SandboxClient,
    upstream_error,
)
from agentflare.schemas import (
    BrowserAction,
    BrowserScreenshotAction,
    ClickSelectorAction,
    DelegateResult,
    EvaluateAction,
    NavigateAction,
    TypeSelectorAction,
    WaitAction,
)
from agentflare.session import SandboxSession

logger = logging.getLogger(__name__)

AGENT_FAILURE_MESSAGE = "Failed to process browser task"


class BrowserClient(SandboxClient):
    """Client for the browser sandbox's action and agent endpoints."""

    capability = "browser"

    def __init__(
        self,
        session: SandboxSession,
        api_key: str | None = None,
        action_timeout: float | None = None,
    ):
        super().__init__(session, api_key)
        self.action_timeout = action_timeout

    async def run_agent(self, prompt: str) -> DelegateResult:
        """Hand a free-text instruction to the sandbox's own agent loop.

        Args:
            prompt: Instruction such as "open example.com and read the title"

        Returns:
            DelegateResult with the agent's narrative as message; the remote
            tool-call trace, when present, is kept as payload
        """
        if not self.api_key:
            return DelegateResult.failure(
                MISSING_API_KEY,
                message="API key required for LLM functionality",
            )

        try:
            response = await self._request(
                "POST",
                "/agent",
                json={"prompt": prompt, "apiKey": self.api_key},
            )
            body = self._decode_json(response)
        except DelegateError as e:
            return DelegateResult.failure(str(e), message=AGENT_FAILURE_MESSAGE)

        if body.get("success") and not response.is_error:
            payload = {
                key: body[key]
                for key in ("toolCalls", "toolResults")
                if key in body
            }
            return DelegateResult.ok(
                str(body.get("message") or "Browser task completed"),
                payload=payload or None,
            )

        error = upstream_error(body, response)
        logger.warning(f"Browser agent failed: {error}")
        return DelegateResult.failure(error, message=AGENT_FAILURE_MESSAGE)

    async def execute_action(self, action: BrowserAction) -> DelegateResult:
        """Perform one low-level browser action."""
        try:
            response = await self._send_action(action)
            body = self._decode_json(response)
        except DelegateError as e:
            return DelegateResult.failure(str(e), message=f"Browser action '{action.type}' failed")

        if not body.get("success") or response.is_error:
            return DelegateResult.failure(
                upstream_error(body, response),
                message=f"Browser action '{action.type}' failed",
            )

        return DelegateResult.ok(
            _describe_action(action, body),
            payload=_action_payload(body),
        )

    async def screenshot(self) -> str | None:
        """Return the current page as a base64 PNG, or None when unavailable."""
        result = await self.execute_action(BrowserScreenshotAction())
        if result.success and result.payload:
            return result.payload.get("screenshot")
        return None

    async def _send_action(self, action: BrowserAction):
        timeout = self.action_timeout
        if isinstance(action, NavigateAction):
            return await self._request("GET", "/navigate", params={"url": action.url}, timeout=timeout)
        if isinstance(action, ClickSelectorAction):
            return await self._request("POST", "/click", json={"selector": action.selector}, timeout=timeout)
        if isinstance(action, TypeSelectorAction):
            return await self._request(
                "POST",
                "/type",
                json={"selector": action.selector, "text": action.text},
                timeout=timeout,
            )
        if isinstance(action, BrowserScreenshotAction):
            return await self._request("GET", "/screenshot", timeout=timeout)
        if isinstance(action, EvaluateAction):
            return await self._request("POST", "/evaluate", json={"script": action.script}, timeout=timeout)
        if isinstance(action, WaitAction):
            # The sandbox sleeps for the full duration before answering
            wait_timeout = None if timeout is None else timeout + action.timeout / 1000
            return await self._request("POST", "/wait", json={"timeout": action.timeout}, timeout=wait_timeout)
        raise ValueError(f"Unknown browser action: {action!r}")


def _describe_action(action: BrowserAction, body: dict[str, Any]) -> str:
    message = body.get("message")
    if isinstance(message, str) and message:
        return message
    if isinstance(action, BrowserScreenshotAction):
        return "Captured browser screenshot"
    if isinstance(action, EvaluateAction):
        return f"Script result: {body.get('result')!r}"
    return f"Browser action '{action.type}' completed"


def _action_payload(body: dict[str, Any]) -> dict[str, Any] | None:
    payload = {key: body[key] for key in ("screenshot", "result") if key in body}
    return payload or None
