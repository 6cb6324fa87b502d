"""Tests for prompt analysis and text generation."""

import pytest

from agentflare.prompt_engine import (
    analyze_prompt,
    build_delegate_prompt,
    build_system_prompt,
    build_user_message,
    classify_prompt,
    format_search_results,
)
from agentflare.schemas import AgentTask, SearchResult, TaskType


class TestClassifyPrompt:
    """Keyword routing for auto tasks."""

    @pytest.mark.parametrize(
        "prompt",
        [
            "Navigate to example.com",
            "click the login button",
            "Open the browser and check my order",
            "Fill the form on the signup page",
            "I navigated to example.com, now read the title",
            "doubleclick the icon",
        ],
    )
    def test_browser_terms(self, prompt):
        assert classify_prompt(prompt) == TaskType.BROWSER

    @pytest.mark.parametrize(
        "prompt",
        [
            "Take a look at my desktop",
            "press ctrl+c on the keyboard",
            "open the Documents folder",
            "move the mouse to the top corner",
        ],
    )
    def test_desktop_terms(self, prompt):
        assert classify_prompt(prompt) == TaskType.COMPUTER

    @pytest.mark.parametrize(
        "prompt",
        [
            "search for current weather in Paris",
            "What is the speed of light?",
            "how to bake sourdough",
            "research recent papers on protein folding",
        ],
    )
    def test_search_terms(self, prompt):
        assert classify_prompt(prompt) == TaskType.SEARCH

    def test_no_match_defaults_to_search(self):
        assert classify_prompt("tell me a joke about penguins") == TaskType.SEARCH

    def test_browser_wins_over_desktop(self):
        assert classify_prompt("click the file link on the website") == TaskType.BROWSER

    def test_matches_whole_words_only(self):
        """'information' must not trigger the 'form' browser keyword."""
        signals = analyze_prompt("I need information about tides")
        assert signals.mentions_web is False
        assert signals.mentions_search is True
        assert classify_prompt("I need information about tides") == TaskType.SEARCH

    def test_inflections_match(self):
        assert analyze_prompt("clicking around").mentions_web is True
        assert analyze_prompt("list my files").mentions_desktop is True
        assert analyze_prompt("the page I browsed yesterday").mentions_web is False
        assert analyze_prompt("the forms I filled in").mentions_web is True

    @pytest.mark.parametrize(
        "prompt, expected",
        [
            ("I navigated to the page", TaskType.BROWSER),
            ("right-click the link", TaskType.BROWSER),
            ("switch to the other desktops", TaskType.COMPUTER),
            ("use the onscreen keyboard", TaskType.COMPUTER),
            ("websearch for tide tables", TaskType.SEARCH),
            ("so what is next", TaskType.SEARCH),
        ],
    )
    def test_core_terms_match_inside_words(self, prompt, expected):
        assert classify_prompt(prompt) == expected


class TestPromptText:
    """Prompt construction."""

    def test_delegate_prompt_without_context(self):
        task = AgentTask(type=TaskType.BROWSER, prompt="Open example.com")
        assert build_delegate_prompt(task) == "Open example.com"

    def test_delegate_prompt_with_context(self):
        task = AgentTask(type=TaskType.BROWSER, prompt="Open example.com", context="logged in as bob")
        assert build_delegate_prompt(task) == "Open example.com\n\nContext: logged in as bob"

    def test_user_message_includes_context(self):
        task = AgentTask(type=TaskType.AUTO, prompt="Find flights", context="from Lisbon")
        message = build_user_message(task)
        assert message.startswith("Find flights")
        assert "from Lisbon" in message

    def test_system_prompt_lists_tools(self):
        prompt = build_system_prompt({"search_web": "Search the web", "call_browser_agent": "Browse"})
        assert "- search_web: Search the web" in prompt
        assert "- call_browser_agent: Browse" in prompt


class TestFormatSearchResults:
    """Search result rendering."""

    def test_formats_each_result(self):
        results = [
            SearchResult(title="One", url="https://one.example", snippet="first", position=1),
            SearchResult(title="Two", url="https://two.example", snippet="second", position=2),
        ]
        text = format_search_results("numbers", results)
        assert text.startswith('Found 2 search results for "numbers"')
        assert "One: first (https://one.example)" in text
        assert "Two: second (https://two.example)" in text

    def test_singular_result(self):
        results = [SearchResult(title="One", url="https://one.example", snippet="first", position=1)]
        assert format_search_results("q", results).startswith('Found 1 search result for "q"')

    def test_empty_results(self):
        assert format_search_results("nothing", []) == 'No search results found for "nothing".'

    def test_long_snippets_truncated(self):
        results = [SearchResult(title="Long", url="https://long.example", snippet="x" * 1000, position=1)]
        text = format_search_results("q", results)
        assert "..." in text
        assert len(text) < 500
