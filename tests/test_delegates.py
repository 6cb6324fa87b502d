"""Tests for the delegate capability clients."""

import json

import httpx
import pytest

from agentflare.delegates import BrowserClient, DesktopClient
from agentflare.schemas import (
    BrowserScreenshotAction,
    ClickPointAction,
    ClickSelectorAction,
    DesktopScreenshotAction,
    KeyAction,
    NavigateAction,
    SearchEngine,
    TypeTextAction,
    WaitAction,
)

from conftest import make_search_client, make_session


class TestBrowserAgent:
    """BrowserClient.run_agent."""

    @pytest.mark.asyncio
    async def test_success_returns_message(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={
                "success": True,
                "message": "The title is Example Domain",
                "toolCalls": [{"name": "navigate"}],
                "toolResults": [{"success": True}],
            })

        client = BrowserClient(make_session(handler), api_key="sk-test")
        result = await client.run_agent("read the title of example.com")

        assert result.success is True
        assert result.message == "The title is Example Domain"
        assert result.payload["toolCalls"] == [{"name": "navigate"}]

        assert len(seen) == 1
        assert seen[0].method == "POST"
        assert seen[0].url.path == "/agent"
        assert json.loads(seen[0].content) == {
            "prompt": "read the title of example.com",
            "apiKey": "sk-test",
        }

    @pytest.mark.asyncio
    async def test_missing_api_key_makes_no_request(self):
        def handler(request):
            raise AssertionError("no request expected")

        client = BrowserClient(make_session(handler))
        result = await client.run_agent("anything")

        assert result.success is False
        assert result.error == "Missing API key"

    @pytest.mark.asyncio
    async def test_upstream_failure_surfaces_error(self):
        def handler(request):
            return httpx.Response(500, json={"success": False, "error": "Selector not found"})

        client = BrowserClient(make_session(handler), api_key="sk-test")
        result = await client.run_agent("click the missing button")

        assert result.success is False
        assert result.error == "Selector not found"
        assert result.message == "Failed to process browser task"

    @pytest.mark.asyncio
    async def test_timeout_is_absorbed(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        client = BrowserClient(make_session(handler, timeout=12.0), api_key="sk-test")
        result = await client.run_agent("slow task")

        assert result.success is False
        assert "timed out after 12s" in result.error

    @pytest.mark.asyncio
    async def test_connection_refused_is_absorbed(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = BrowserClient(make_session(handler), api_key="sk-test")
        result = await client.run_agent("anything")

        assert result.success is False
        assert "unavailable" in result.error

    @pytest.mark.asyncio
    async def test_non_json_reply_is_absorbed(self):
        def handler(request):
            return httpx.Response(200, text="<html>proxy error</html>")

        client = BrowserClient(make_session(handler), api_key="sk-test")
        result = await client.run_agent("anything")

        assert result.success is False
        assert "non-JSON" in result.error

    @pytest.mark.asyncio
    async def test_busy_sandbox_wait_is_bounded(self):
        def handler(request):
            raise AssertionError("no request expected")

        session = make_session(handler, timeout=0.05)
        await session.lock.acquire()
        try:
            client = BrowserClient(session, api_key="sk-test")
            result = await client.run_agent("anything")
        finally:
            session.lock.release()

        assert result.success is False
        assert "busy" in result.error
        assert not session.lock.locked()

    @pytest.mark.asyncio
    async def test_lock_released_after_failure(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        session = make_session(handler)
        client = BrowserClient(session, api_key="sk-test")
        await client.run_agent("anything")

        assert not session.lock.locked()

    @pytest.mark.asyncio
    async def test_closed_session_is_absorbed(self):
        session = make_session(lambda request: httpx.Response(200, json={"success": True}))
        await session.close()

        client = BrowserClient(session, api_key="sk-test")
        result = await client.run_agent("anything")

        assert result.success is False
        assert "closed" in result.error


class TestBrowserActions:
    """BrowserClient.execute_action."""

    @pytest.mark.asyncio
    async def test_navigate_uses_query_parameter(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"success": True, "message": "Navigated to https://example.com"})

        client = BrowserClient(make_session(handler))
        result = await client.execute_action(NavigateAction(url="https://example.com"))

        assert result.success is True
        assert result.message == "Navigated to https://example.com"
        assert seen[0].method == "GET"
        assert seen[0].url.path == "/navigate"
        assert seen[0].url.params["url"] == "https://example.com"

    @pytest.mark.asyncio
    async def test_click_posts_selector(self):
        seen = []

        def handler(request):
            seen.append(json.loads(request.content))
            return httpx.Response(200, json={"success": True, "message": "Clicked on #go"})

        client = BrowserClient(make_session(handler))
        result = await client.execute_action(ClickSelectorAction(selector="#go"))

        assert result.success is True
        assert seen == [{"selector": "#go"}]

    @pytest.mark.asyncio
    async def test_wait_sends_default_timeout(self):
        seen = []

        def handler(request):
            seen.append(json.loads(request.content))
            return httpx.Response(200, json={"success": True, "message": "Waited 1000ms"})

        client = BrowserClient(make_session(handler))
        result = await client.execute_action(WaitAction())

        assert result.success is True
        assert seen == [{"timeout": 1000}]

    @pytest.mark.asyncio
    async def test_failed_action(self):
        def handler(request):
            return httpx.Response(400, json={"success": False, "error": "Selector required"})

        client = BrowserClient(make_session(handler))
        result = await client.execute_action(ClickSelectorAction(selector=""))

        assert result.success is False
        assert result.error == "Selector required"

    @pytest.mark.asyncio
    async def test_screenshot_returns_base64(self):
        def handler(request):
            assert request.url.path == "/screenshot"
            return httpx.Response(200, json={"success": True, "screenshot": "iVBORw0KGgo="})

        client = BrowserClient(make_session(handler))

        assert await client.screenshot() == "iVBORw0KGgo="

        result = await client.execute_action(BrowserScreenshotAction())
        assert result.message == "Captured browser screenshot"

    @pytest.mark.asyncio
    async def test_screenshot_none_on_failure(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        client = BrowserClient(make_session(handler))
        assert await client.screenshot() is None


class TestDesktopClient:
    """DesktopClient agent and actions."""

    @pytest.mark.asyncio
    async def test_agent_uses_query_parameters(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"success": True, "message": "Opened the terminal"})

        client = DesktopClient(make_session(handler, name="computer"), api_key="sk-test")
        result = await client.run_agent("open a terminal")

        assert result.success is True
        assert result.message == "Opened the terminal"
        assert seen[0].method == "GET"
        assert seen[0].url.path == "/agent"
        assert seen[0].url.params["prompt"] == "open a terminal"
        assert seen[0].url.params["apiKey"] == "sk-test"

    @pytest.mark.asyncio
    async def test_agent_missing_api_key(self):
        client = DesktopClient(make_session(lambda r: httpx.Response(500), name="computer"))
        result = await client.run_agent("open a terminal")

        assert result.success is False
        assert result.error == "Missing API key"

    @pytest.mark.asyncio
    async def test_agent_failure(self):
        def handler(request):
            return httpx.Response(200, json={"success": False, "error": "VNC client not ready"})

        client = DesktopClient(make_session(handler, name="computer"), api_key="sk-test")
        result = await client.run_agent("open a terminal")

        assert result.success is False
        assert result.error == "VNC client not ready"
        assert result.message == "Failed to process computer task"

    @pytest.mark.asyncio
    async def test_text_screenshot_is_parsed(self):
        def handler(request):
            return httpx.Response(200, text="Screenshot:data:image/jpeg;base64,/9j/4AAQ")

        client = DesktopClient(make_session(handler, name="computer"))
        assert await client.screenshot() == "data:image/jpeg;base64,/9j/4AAQ"

    @pytest.mark.asyncio
    async def test_screenshot_missing_prefix_fails(self):
        client = DesktopClient(make_session(lambda r: httpx.Response(200, text="nothing"), name="computer"))
        result = await client.execute_action(DesktopScreenshotAction())

        assert result.success is False

    @pytest.mark.asyncio
    async def test_key_action_uses_enter_endpoint(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, text="Key combination sent: Control c")

        client = DesktopClient(make_session(handler, name="computer"))
        result = await client.execute_action(KeyAction(keys="Control c"))

        assert result.success is True
        assert result.message == "Key combination sent: Control c"
        assert seen[0].url.path == "/enter"
        assert seen[0].url.params["text"] == "Control c"

    @pytest.mark.asyncio
    async def test_click_posts_coordinates(self):
        seen = []

        def handler(request):
            seen.append(json.loads(request.content))
            return httpx.Response(200, json={"success": True, "message": "Clicked at 10,20"})

        client = DesktopClient(make_session(handler, name="computer"))
        result = await client.execute_action(ClickPointAction(x=10, y=20))

        assert result.success is True
        assert seen == [{"x": 10, "y": 20, "button": "left"}]

    @pytest.mark.asyncio
    async def test_plain_text_error(self):
        def handler(request):
            return httpx.Response(500, text="VNC client not ready")

        client = DesktopClient(make_session(handler, name="computer"))
        result = await client.execute_action(TypeTextAction(text="hello"))

        assert result.success is False
        assert result.error == "VNC client not ready"


class TestSearchClient:
    """SearchClient against mocked search APIs."""

    @pytest.mark.asyncio
    async def test_duckduckgo_results_ranked(self, duckduckgo_payload):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json=duckduckgo_payload)

        client = make_search_client(handler)
        response = await client.search("Paris", max_results=10)

        assert response.success is True
        assert [r.position for r in response.results] == [1, 2]
        assert response.results[0].title == "Paris"
        assert response.results[0].url == "https://duckduckgo.com/Paris"
        assert response.results[1].url == "https://duckduckgo.com/Climate_of_Paris"
        assert response.total_results == 2
        assert seen[0].url.params["q"] == "Paris"
        assert seen[0].url.params["format"] == "json"

    @pytest.mark.asyncio
    async def test_abstract_becomes_first_result(self, duckduckgo_payload):
        duckduckgo_payload.update({
            "Heading": "Paris",
            "AbstractText": "Paris is the capital of France.",
            "AbstractURL": "https://en.wikipedia.org/wiki/Paris",
        })
        client = make_search_client(lambda r: httpx.Response(200, json=duckduckgo_payload))

        response = await client.search("Paris", max_results=2)

        assert len(response.results) == 2
        assert response.results[0].url == "https://en.wikipedia.org/wiki/Paris"
        assert response.results[0].position == 1

    @pytest.mark.asyncio
    async def test_max_results_respected(self, duckduckgo_payload):
        client = make_search_client(lambda r: httpx.Response(200, json=duckduckgo_payload))

        response = await client.search("Paris", max_results=1)

        assert len(response.results) == 1

    @pytest.mark.asyncio
    async def test_http_error_reported(self):
        client = make_search_client(lambda r: httpx.Response(503))

        response = await client.search("Paris")

        assert response.success is False
        assert "503" in response.error

    @pytest.mark.asyncio
    async def test_brave_requires_api_key(self):
        def handler(request):
            raise AssertionError("no request expected")

        client = make_search_client(handler, engine=SearchEngine.BRAVE)
        response = await client.search("Paris")

        assert response.success is False
        assert response.error == "Brave Search API key required"

    @pytest.mark.asyncio
    async def test_brave_results(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"web": {"results": [
                {"title": "Paris", "url": "https://paris.fr", "description": "Official site"},
                {"title": "No link", "url": "", "description": "skipped"},
            ]}})

        client = make_search_client(handler, engine=SearchEngine.BRAVE, api_key="brave-key")
        response = await client.search("Paris", max_results=5)

        assert response.success is True
        assert len(response.results) == 1
        assert response.results[0].snippet == "Official site"
        assert seen[0].headers["X-Subscription-Token"] == "brave-key"
        assert seen[0].url.params["count"] == "5"

    @pytest.mark.asyncio
    async def test_invoke_formats_message(self, duckduckgo_payload):
        client = make_search_client(lambda r: httpx.Response(200, json=duckduckgo_payload))

        result = await client.invoke("Paris", 10)

        assert result.success is True
        assert result.message.startswith('Found 2 search results for "Paris"')
        assert result.payload["total_results"] == 2

    @pytest.mark.asyncio
    async def test_invoke_empty_query(self):
        def handler(request):
            raise AssertionError("no request expected")

        result = await make_search_client(handler).invoke("   ")

        assert result.success is False
        assert result.error == "Search query is required"

    @pytest.mark.asyncio
    async def test_invoke_timeout(self):
        def handler(request):
            raise httpx.ConnectTimeout("timed out", request=request)

        result = await make_search_client(handler, timeout=3.0).invoke("Paris")

        assert result.success is False
        assert "timed out after 3s" in result.error

    @pytest.mark.asyncio
    async def test_suggestions(self):
        client = make_search_client(lambda r: httpx.Response(200, json=["par", ["paris", "parrot"]]))

        assert await client.suggestions("par") == ["paris", "parrot"]

    @pytest.mark.asyncio
    async def test_suggestions_empty_on_failure(self):
        client = make_search_client(lambda r: httpx.Response(500))

        assert await client.suggestions("par") == []
