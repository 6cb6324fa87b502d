"""Prompt analysis and prompt/answer text generation for the router."""

from __future__ import annotations

import re
from dataclasses import dataclass

from agentflare.schemas import AgentTask, SearchResult, TaskType

WEB_KEYWORDS = ("website", "browser", "web page", "url", "navigate", "click", "form", "login")
DESKTOP_KEYWORDS = ("desktop", "application", "window", "file", "folder", "mouse", "keyboard")
SEARCH_KEYWORDS = ("search", "find", "look up", "research", "information", "what is", "how to")

# Unambiguous terms matched anywhere in the prompt ("navigated", "doubleclick")
SUBSTRING_KEYWORDS = frozenset({"navigate", "click", "desktop", "keyboard", "search", "what is"})

MAX_SNIPPET_CHARS = 300


@dataclass
class PromptSignals:
    """Capability keywords detected in a prompt."""

    mentions_web: bool = False
    mentions_desktop: bool = False
    mentions_search: bool = False


def _alternatives(keywords: list[str]) -> str:
    return "|".join(re.escape(k).replace(r"\ ", r"\s+") for k in keywords)


def _keyword_pattern(keywords: tuple[str, ...]) -> re.Pattern[str]:
    # Other terms match whole words only, with simple inflections
    # ("files", "logged", "forms"), so "form" stays out of "information"
    whole = [k for k in keywords if k not in SUBSTRING_KEYWORDS]
    loose = [k for k in keywords if k in SUBSTRING_KEYWORDS]

    parts = []
    if whole:
        parts.append(rf"\b(?:{_alternatives(whole)})(?:s|es|d|ed|ing)?\b")
    if loose:
        parts.append(rf"(?:{_alternatives(loose)})")
    return re.compile("|".join(parts))


_WEB_PATTERN = _keyword_pattern(WEB_KEYWORDS)
_DESKTOP_PATTERN = _keyword_pattern(DESKTOP_KEYWORDS)
_SEARCH_PATTERN = _keyword_pattern(SEARCH_KEYWORDS)


def _detect_web_keywords(prompt: str) -> bool:
    """Detect website/browser interaction terms."""
    return _WEB_PATTERN.search(prompt) is not None


def _detect_desktop_keywords(prompt: str) -> bool:
    """Detect desktop/file/window terms."""
    return _DESKTOP_PATTERN.search(prompt) is not None


def _detect_search_keywords(prompt: str) -> bool:
    """Detect question/research terms."""
    return _SEARCH_PATTERN.search(prompt) is not None


def analyze_prompt(prompt: str) -> PromptSignals:
    """Scan the lower-cased prompt for capability-indicative terms."""
    text = prompt.lower()
    return PromptSignals(
        mentions_web=_detect_web_keywords(text),
        mentions_desktop=_detect_desktop_keywords(text),
        mentions_search=_detect_search_keywords(text),
    )


def classify_prompt(prompt: str) -> TaskType:
    """Pick a concrete capability for an ``auto`` task by keyword matching.

    Browser terms win over desktop terms, which win over search terms.
    Prompts that match nothing fall back to search.
    """
    signals = analyze_prompt(prompt)
    if signals.mentions_web:
        return TaskType.BROWSER
    if signals.mentions_desktop:
        return TaskType.COMPUTER
    return TaskType.SEARCH


def build_delegate_prompt(task: AgentTask) -> str:
    """Prompt text handed to a sandbox agent for a manual task."""
    if task.context:
        return f"{task.prompt}\n\nContext: {task.context}"
    return task.prompt


def build_system_prompt(tool_descriptions: dict[str, str]) -> str:
    """System instruction for LLM routing mode."""
    parts = [
        "You are the coordinator of three automation capabilities.",
        "Complete the user's request by calling tools, then reply with a short plain-text answer for the user.",
        "",
        "Available tools:",
    ]
    for name, description in tool_descriptions.items():
        parts.append(f"- {name}: {description}")
    parts.append("")
    parts.append("Guidelines:")
    parts.append("- Use search_web for questions that only need information from the web.")
    parts.append("- Use call_browser_agent for tasks that must interact with a specific website.")
    parts.append("- Use call_computer_agent for tasks on the virtual desktop (applications, files, windows).")
    parts.append("- Tool calls run one at a time in the order you request them; later calls see the effects of earlier ones.")
    parts.append("- If a tool fails, explain the failure instead of inventing a result.")
    return "\n".join(parts)


def build_user_message(task: AgentTask) -> str:
    """First user turn for LLM routing mode."""
    if task.context:
        return f"{task.prompt}\n\nAdditional context:\n{task.context}"
    return task.prompt


def _truncate(text: str, max_chars: int = MAX_SNIPPET_CHARS) -> str:
    if len(text) <= max_chars:
        return text
    return text[: max_chars - 3].rstrip() + "..."


def format_search_results(query: str, results: list[SearchResult]) -> str:
    """Render search hits as the user-facing message."""
    if not results:
        return f'No search results found for "{query}".'

    lines = [
        f"{result.title}: {_truncate(result.snippet)} ({result.url})"
        for result in results
    ]
    noun = "result" if len(results) == 1 else "results"
    return f'Found {len(results)} search {noun} for "{query}":\n\n' + "\n".join(lines)
