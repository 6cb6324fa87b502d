"""Long-lived sandbox session handles.

A ``SandboxSession`` owns the HTTP connection to one remote sandbox (the
browser container or the virtual desktop container). Sessions are created
once per process, handed to the router per request, and serialize access
to their sandbox through ``lock`` so that only one request drives the
remote browser tab or desktop at a time.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum

import httpx

from agentflare.config import Settings

logger = logging.getLogger(__name__)

HEALTH_TIMEOUT = 5.0  # seconds


class SessionState(str, Enum):
    """Lifecycle of a sandbox session."""

    UNINITIALIZED = "uninitialized"
    CONNECTING = "connecting"
    READY = "ready"
    CLOSED = "closed"


class SessionClosedError(Exception):
    """Raised when a closed session is used."""

    pass


class SandboxSession:
    """Explicitly owned connection to one sandbox."""

    def __init__(
        self,
        name: str,
        base_url: str,
        timeout: float,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the session.

        Args:
            name: Sandbox name used in logs and errors ("browser", "computer")
            base_url: Root URL of the sandbox control server
            timeout: Default per-request timeout in seconds
            transport: Optional httpx transport (tests inject a mock here)
        """
        self.name = name
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.lock = asyncio.Lock()
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._state = SessionState.UNINITIALIZED

    @property
    def state(self) -> SessionState:
        return self._state

    async def connect(self) -> httpx.AsyncClient:
        """Open the HTTP client if needed and return it."""
        if self._state == SessionState.CLOSED:
            raise SessionClosedError(f"{self.name} session is closed")
        if self._state == SessionState.READY and self._client is not None:
            return self._client

        self._state = SessionState.CONNECTING
        try:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
            )
        except Exception:
            self._state = SessionState.UNINITIALIZED
            raise
        self._state = SessionState.READY
        logger.info(f"{self.name} session ready at {self.base_url}")
        return self._client

    async def close(self) -> None:
        """Close the session. Further use raises ``SessionClosedError``."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        self._state = SessionState.CLOSED
        logger.info(f"{self.name} session closed")

    async def check_health(self) -> bool:
        """Return True when the sandbox answers ``GET /health`` with 200."""
        if self._state == SessionState.CLOSED:
            return False
        try:
            client = await self.connect()
            response = await client.get("/health", timeout=HEALTH_TIMEOUT)
            return response.status_code == 200
        except httpx.HTTPError as e:
            logger.debug(f"{self.name} health check failed: {e}")
            return False


@dataclass
class SandboxSessions:
    """The pair of sandbox sessions owned by one server process."""

    browser: SandboxSession
    computer: SandboxSession

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> SandboxSessions:
        return cls(
            browser=SandboxSession(
                "browser",
                settings.sandbox.browser_url,
                settings.sandbox.agent_timeout,
                transport=transport,
            ),
            computer=SandboxSession(
                "computer",
                settings.sandbox.computer_url,
                settings.sandbox.agent_timeout,
                transport=transport,
            ),
        )

    async def aclose(self) -> None:
        await self.browser.close()
        await self.computer.close()
