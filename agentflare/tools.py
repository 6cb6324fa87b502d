"""Tool catalog exposed to the model in LLM routing mode."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterator
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ValidationError

from agentflare.delegates import BrowserClient, DesktopClient, SearchClient
from agentflare.schemas import AgentToolParams, DelegateResult, SearchToolParams, TaskType

logger = logging.getLogger(__name__)

BROWSER_TOOL = "call_browser_agent"
COMPUTER_TOOL = "call_computer_agent"
SEARCH_TOOL = "search_web"

# Capability behind each built-in tool, used to label LLM-mode responses
TOOL_TASK_TYPES: dict[str, TaskType] = {
    BROWSER_TOOL: TaskType.BROWSER,
    COMPUTER_TOOL: TaskType.COMPUTER,
    SEARCH_TOOL: TaskType.SEARCH,
}


@dataclass(frozen=True)
class ToolDescriptor:
    """A named, schema-typed function the model may call."""

    name: str
    description: str
    parameters: type[BaseModel]
    invoke: Callable[[Any], Awaitable[DelegateResult]]

    @property
    def input_schema(self) -> dict[str, Any]:
        return self.parameters.model_json_schema()

    def to_anthropic(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.input_schema,
        }


class ToolCatalog:
    """Ordered set of tools with unique names."""

    def __init__(self, tools: list[ToolDescriptor] | None = None):
        self._tools: dict[str, ToolDescriptor] = {}
        for tool in tools or []:
            self.register(tool)

    def register(self, tool: ToolDescriptor) -> None:
        """Add a tool.

        Raises:
            ValueError: If a tool with the same name is already registered
        """
        if tool.name in self._tools:
            raise ValueError(f"Duplicate tool name: {tool.name}")
        self._tools[tool.name] = tool

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __iter__(self) -> Iterator[ToolDescriptor]:
        return iter(self._tools.values())

    def __len__(self) -> int:
        return len(self._tools)

    @property
    def names(self) -> list[str]:
        return list(self._tools)

    def get(self, name: str) -> ToolDescriptor | None:
        return self._tools.get(name)

    def descriptions(self) -> dict[str, str]:
        return {tool.name: tool.description for tool in self}

    def to_anthropic(self) -> list[dict[str, Any]]:
        """Render every tool as an Anthropic tool definition."""
        return [tool.to_anthropic() for tool in self]

    async def invoke(self, name: str, arguments: Any) -> DelegateResult:
        """Validate arguments and run one tool.

        Unknown tools and invalid arguments produce a failed result rather
        than an exception, so one bad call does not end the agent loop.
        """
        tool = self._tools.get(name)
        if tool is None:
            return DelegateResult.failure(
                f"Unknown tool: {name}",
                message=f"Available tools: {', '.join(self._tools)}",
            )

        if not isinstance(arguments, dict):
            return DelegateResult.failure(
                f"Invalid arguments for tool '{name}': expected an object, got {type(arguments).__name__}"
            )

        try:
            params = tool.parameters.model_validate(arguments)
        except ValidationError as e:
            logger.warning(f"Rejected {name} call with invalid arguments: {e.error_count()} error(s)")
            return DelegateResult.failure(f"Invalid arguments for tool '{name}': {_format_errors(e)}")

        logger.info(f"Invoking tool {name}")
        return await tool.invoke(params)


def _format_errors(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ())) or "arguments"
        parts.append(f"{location}: {item.get('msg', 'invalid value')}")
    return "; ".join(parts)


def build_catalog(
    browser: BrowserClient,
    desktop: DesktopClient,
    search: SearchClient,
) -> ToolCatalog:
    """Build the catalog of delegate tools for one request."""

    async def call_browser_agent(params: AgentToolParams) -> DelegateResult:
        return await browser.run_agent(params.prompt)

    async def call_computer_agent(params: AgentToolParams) -> DelegateResult:
        return await desktop.run_agent(params.prompt)

    async def search_web(params: SearchToolParams) -> DelegateResult:
        return await search.invoke(params.query, params.max_results)

    return ToolCatalog(
        [
            ToolDescriptor(
                name=BROWSER_TOOL,
                description=(
                    "Run a task in a live Chromium browser. The browser agent can navigate to URLs, "
                    "click, type into forms, run JavaScript and take screenshots. Browser state "
                    "persists between calls."
                ),
                parameters=AgentToolParams,
                invoke=call_browser_agent,
            ),
            ToolDescriptor(
                name=COMPUTER_TOOL,
                description=(
                    "Run a task on a virtual Linux desktop. The computer agent can take screenshots, "
                    "move and click the mouse, type and press key combinations. Desktop state persists "
                    "between calls."
                ),
                parameters=AgentToolParams,
                invoke=call_computer_agent,
            ),
            ToolDescriptor(
                name=SEARCH_TOOL,
                description="Search the web and return ranked results with titles, URLs and snippets.",
                parameters=SearchToolParams,
                invoke=search_web,
            ),
        ]
    )
