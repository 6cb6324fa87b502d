"""Shared transport for the sandbox-backed delegate clients."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from agentflare.session import SandboxSession, SessionClosedError

logger = logging.getLogger(__name__)

MISSING_API_KEY = "Missing API key"


class DelegateError(Exception):
    """Base class for faults inside a delegate client."""

    pass


class DelegateTimeoutError(DelegateError):
    """Raised when a delegate call exceeds its timeout."""

    pass


class DelegateUnavailableError(DelegateError):
    """Raised when the delegate cannot be reached or answers with an error status."""

    pass


class DelegateProtocolError(DelegateError):
    """Raised when the delegate answers with something we cannot decode."""

    pass


class SandboxClient:
    """Base for clients that talk to a sandbox through a ``SandboxSession``.

    Subclasses call ``_request`` and convert any ``DelegateError`` into a
    failed ``DelegateResult`` at their public method boundary.
    """

    capability = "sandbox"

    def __init__(self, session: SandboxSession, api_key: str | None = None):
        self.session = session
        self.api_key = api_key or ""

    async def _request(
        self,
        method: str,
        path: str,
        *,
        timeout: float | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        """Send one request to the sandbox while holding its lock."""
        if timeout is None:
            timeout = self.session.timeout

        # Waiting for the sandbox counts against the same timeout as the call itself
        try:
            await asyncio.wait_for(self.session.lock.acquire(), timeout)
        except asyncio.TimeoutError as e:
            logger.warning(f"{self.capability} sandbox busy; gave up after {timeout}s")
            raise DelegateTimeoutError(
                f"{self.capability.capitalize()} sandbox busy: no turn within {timeout:g}s"
            ) from e

        try:
            client = await self.session.connect()
            response = await client.request(method, path, timeout=timeout, **kwargs)
        except SessionClosedError as e:
            raise DelegateUnavailableError(str(e)) from e
        except httpx.TimeoutException as e:
            logger.warning(f"{self.capability} request {method} {path} timed out after {timeout}s")
            raise DelegateTimeoutError(
                f"{self.capability.capitalize()} request timed out after {timeout:g}s"
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"Failed to reach {self.capability} sandbox: {e}")
            raise DelegateUnavailableError(
                f"{self.capability.capitalize()} sandbox unavailable: {e}"
            ) from e
        finally:
            self.session.lock.release()

        return response

    def _decode_json(self, response: httpx.Response) -> dict[str, Any]:
        """Decode a JSON object body, surfacing the upstream error when present."""
        try:
            body = response.json()
        except ValueError as e:
            if response.is_error:
                raise DelegateUnavailableError(
                    f"{self.capability.capitalize()} sandbox returned HTTP {response.status_code}"
                ) from e
            raise DelegateProtocolError(
                f"{self.capability.capitalize()} sandbox returned a non-JSON response"
            ) from e

        if not isinstance(body, dict):
            raise DelegateProtocolError(
                f"{self.capability.capitalize()} sandbox returned unexpected JSON: {type(body).__name__}"
            )
        return body


def upstream_error(body: dict[str, Any], response: httpx.Response) -> str:
    """Pick the most useful error string from a failed sandbox reply."""
    error = body.get("error")
    if isinstance(error, str) and error:
        return error
    if response.is_error:
        return f"HTTP {response.status_code}"
    return "Unknown error"
