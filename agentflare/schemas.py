"""Pydantic schemas for Agentflare request/response contracts."""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


class TaskType(str, Enum):
    """Kinds of task the router accepts."""

    BROWSER = "browser"
    COMPUTER = "computer"
    SEARCH = "search"
    AUTO = "auto"


class RoutingPolicy(str, Enum):
    """How ``auto`` tasks are classified."""

    HEURISTIC = "heuristic"
    LLM = "llm"


class SearchEngine(str, Enum):
    """Supported search backends."""

    DUCKDUCKGO = "duckduckgo"
    BRAVE = "brave"


# --- Core Domain Types ---


class AgentTask(BaseModel):
    """One unit of work submitted to the router."""

    model_config = ConfigDict(frozen=True)

    type: TaskType
    prompt: str
    context: str | None = None


class DelegateResult(BaseModel):
    """Uniform result returned by every delegate capability client.

    ``payload`` is capability-specific and opaque to the router.
    """

    success: bool
    message: str = ""
    error: str | None = None
    payload: Any = None

    @classmethod
    def ok(cls, message: str, payload: Any = None) -> DelegateResult:
        return cls(success=True, message=message, payload=payload)

    @classmethod
    def failure(cls, error: str, message: str = "", payload: Any = None) -> DelegateResult:
        return cls(success=False, message=message, error=error or "Unknown error", payload=payload)


class AgentResponse(BaseModel):
    """Normalized result of one routed task."""

    success: bool
    message: str
    task_type: str
    data: Any = None
    error: str | None = None
    execution_time_ms: int = Field(..., ge=0)

    @model_validator(mode="after")
    def _check_outcome(self) -> AgentResponse:
        if self.success and not self.message:
            raise ValueError("successful responses require a message")
        if not self.success and not self.error:
            raise ValueError("failed responses require an error")
        return self


class SearchResult(BaseModel):
    """A single ranked web search hit."""

    title: str
    url: str
    snippet: str
    position: int = Field(..., ge=1)


class SearchResponse(BaseModel):
    """Full response from the search client."""

    success: bool
    query: str
    results: list[SearchResult] = Field(default_factory=list)
    total_results: int = 0
    error: str | None = None


# --- Sandbox Actions ---


class NavigateAction(BaseModel):
    type: Literal["navigate"] = "navigate"
    url: str


class ClickSelectorAction(BaseModel):
    type: Literal["click"] = "click"
    selector: str


class TypeSelectorAction(BaseModel):
    type: Literal["type"] = "type"
    selector: str
    text: str


class BrowserScreenshotAction(BaseModel):
    type: Literal["screenshot"] = "screenshot"


class EvaluateAction(BaseModel):
    type: Literal["evaluate"] = "evaluate"
    script: str


class WaitAction(BaseModel):
    type: Literal["wait"] = "wait"
    timeout: int = Field(default=1000, ge=0, le=60000, description="Milliseconds to wait")


BrowserAction = Annotated[
    Union[
        NavigateAction,
        ClickSelectorAction,
        TypeSelectorAction,
        BrowserScreenshotAction,
        EvaluateAction,
        WaitAction,
    ],
    Field(discriminator="type"),
]


class DesktopScreenshotAction(BaseModel):
    type: Literal["screenshot"] = "screenshot"


class ClickPointAction(BaseModel):
    type: Literal["click"] = "click"
    x: int = Field(..., ge=0)
    y: int = Field(..., ge=0)
    button: Literal["left", "middle", "right"] = "left"


class TypeTextAction(BaseModel):
    type: Literal["type"] = "type"
    text: str = Field(..., min_length=1)


class KeyAction(BaseModel):
    """Key combination, space separated, e.g. ``"Control c"``."""

    type: Literal["key"] = "key"
    keys: str = Field(..., min_length=1)


class ScrollAction(BaseModel):
    type: Literal["scroll"] = "scroll"
    direction: Literal["up", "down", "left", "right"] = "down"
    amount: int = Field(default=3, ge=1, le=50)


class MoveAction(BaseModel):
    type: Literal["move"] = "move"
    x: int = Field(..., ge=0)
    y: int = Field(..., ge=0)


DesktopAction = Annotated[
    Union[
        DesktopScreenshotAction,
        ClickPointAction,
        TypeTextAction,
        KeyAction,
        ScrollAction,
        MoveAction,
    ],
    Field(discriminator="type"),
]


# --- Tool Parameters ---


class AgentToolParams(BaseModel):
    """Parameters for the sandbox agent tools."""

    model_config = ConfigDict(extra="forbid")

    prompt: str = Field(..., min_length=1, description="Natural-language instruction for the sandbox agent")


class SearchToolParams(BaseModel):
    """Parameters for the web search tool."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    query: str = Field(..., min_length=1, description="Search query")
    max_results: int = Field(
        default=10,
        ge=1,
        le=20,
        alias="maxResults",
        description="Maximum number of results to return",
    )


# --- HTTP Contracts ---


class ChatResponse(BaseModel):
    """Envelope returned by ``POST /chat`` and ``POST /task``."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool
    message: str | None = None
    task_type: str | None = Field(default=None, alias="taskType")
    data: Any = None
    error: str | None = None
    execution_time: int | None = Field(default=None, alias="executionTime")

    @classmethod
    def from_agent_response(cls, response: AgentResponse) -> ChatResponse:
        return cls(
            success=response.success,
            message=response.message,
            task_type=response.task_type,
            data=response.data,
            error=response.error,
            execution_time=response.execution_time_ms,
        )

    @classmethod
    def rejected(cls, error: str) -> ChatResponse:
        return cls(success=False, error=error)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class TaskRequest(BaseModel):
    """Body of ``POST /task``."""

    model_config = ConfigDict(populate_by_name=True)

    type: str = TaskType.AUTO.value
    prompt: str = ""
    context: str | None = None
    api_key: str | None = Field(default=None, alias="apiKey")


class SuggestionsResponse(BaseModel):
    """Search autocomplete suggestions."""

    query: str
    suggestions: list[str] = Field(default_factory=list)


class SandboxHealth(BaseModel):
    """Health of one sandbox session."""

    state: str
    reachable: bool


class HealthResponse(BaseModel):
    """Health check response."""

    broker: Literal["healthy", "unhealthy"] = "healthy"
    routing: RoutingPolicy = RoutingPolicy.HEURISTIC
    browser: SandboxHealth
    computer: SandboxHealth
