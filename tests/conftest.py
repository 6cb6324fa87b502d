"""Pytest configuration and fixtures for Agentflare tests."""

import copy
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from agentflare.config import Settings
from agentflare.delegates import BrowserClient, DesktopClient, SearchClient
from agentflare.schemas import DelegateResult, SearchResponse, SearchResult
from agentflare.session import SandboxSession


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeMessages:
    """Stand-in for ``AsyncAnthropic().messages`` replaying scripted replies."""

    def __init__(self, replies, on_call=None):
        self._replies = list(replies)
        self.calls = []
        self._on_call = on_call

    async def create(self, **kwargs):
        self.calls.append(copy.deepcopy(kwargs))
        if self._on_call:
            self._on_call(kwargs)
        reply = self._replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


def text_reply(text: str):
    return SimpleNamespace(
        content=[SimpleNamespace(type="text", text=text)],
        stop_reason="end_turn",
    )


def tool_reply(*calls, text: str = ""):
    """Build a reply requesting tools; each call is ``(id, name, input)``."""
    blocks = []
    if text:
        blocks.append(SimpleNamespace(type="text", text=text))
    for call_id, name, arguments in calls:
        blocks.append(SimpleNamespace(type="tool_use", id=call_id, name=name, input=arguments))
    return SimpleNamespace(content=blocks, stop_reason="tool_use")


def fake_anthropic(replies, on_call=None):
    return SimpleNamespace(messages=FakeMessages(replies, on_call=on_call))


@pytest.fixture
def settings() -> Settings:
    """Default settings, independent of the test environment."""
    return Settings.from_env({})


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sample_search_response() -> SearchResponse:
    return SearchResponse(
        success=True,
        query="current weather in Paris",
        results=[
            SearchResult(
                title="Paris weather",
                url="https://weather.example/paris",
                snippet="Paris weather - 18°C and cloudy",
                position=1,
            ),
            SearchResult(
                title="Paris forecast",
                url="https://forecast.example/paris",
                snippet="10 day forecast for Paris",
                position=2,
            ),
        ],
        total_results=2,
    )


@pytest.fixture
def fake_delegates(sample_search_response):
    """Delegate clients whose calls are recorded instead of sent."""
    browser = MagicMock(spec=BrowserClient)
    browser.run_agent = AsyncMock(return_value=DelegateResult.ok("Opened the page and read the title"))

    desktop = MagicMock(spec=DesktopClient)
    desktop.run_agent = AsyncMock(return_value=DelegateResult.ok("Opened the file manager"))

    search = MagicMock(spec=SearchClient)
    search.invoke = AsyncMock(
        return_value=DelegateResult.ok(
            'Found 2 search results for "current weather in Paris":\n\n'
            "Paris weather: Paris weather - 18°C and cloudy (https://weather.example/paris)\n"
            "Paris forecast: 10 day forecast for Paris (https://forecast.example/paris)",
            payload=sample_search_response.model_dump(),
        )
    )

    return SimpleNamespace(browser=browser, desktop=desktop, search=search)


@pytest.fixture
def duckduckgo_payload() -> dict:
    """Mock DuckDuckGo instant-answer API response."""
    return {
        "Heading": "",
        "AbstractText": "",
        "AbstractURL": "",
        "RelatedTopics": [
            {
                "FirstURL": "https://duckduckgo.com/Paris",
                "Text": "Paris - Capital and largest city of France.",
            },
            {
                "Name": "Climate",
                "Topics": [
                    {
                        "FirstURL": "https://duckduckgo.com/Climate_of_Paris",
                        "Text": "Climate of Paris - Oceanic climate with mild summers.",
                    },
                    {"FirstURL": "", "Text": "Entry without a link"},
                ],
            },
        ],
    }


def make_session(handler, name: str = "browser", timeout: float = 30.0) -> SandboxSession:
    """Sandbox session whose HTTP traffic goes to ``handler``."""
    return SandboxSession(
        name,
        f"http://{name}.test",
        timeout,
        transport=httpx.MockTransport(handler),
    )


def make_search_client(handler, **kwargs) -> SearchClient:
    return SearchClient(
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        **kwargs,
    )
