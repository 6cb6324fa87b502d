"""Task router: dispatches tasks to delegates and normalizes the results.

Each task runs through ``received -> classified -> executing -> normalized
-> done``; any fault moves it to ``failed`` and is returned as a failed
``AgentResponse``, never raised.

``auto`` tasks are classified according to the router's routing policy:

- ``heuristic``: keyword matching on the prompt, then one delegate call.
- ``llm``: the model receives the tool catalog and decides which tools to
  call, in which order; the router runs them serially and feeds each result
  back before asking for the next turn.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import ValidationError

from agentflare.config import Settings, get_settings
from agentflare.delegates import BrowserClient, DesktopClient, SearchClient
from agentflare.llm import ModelClient
from agentflare.prompt_engine import (
    build_delegate_prompt,
    build_system_prompt,
    build_user_message,
    classify_prompt,
)
from agentflare.schemas import (
    AgentResponse,
    AgentTask,
    DelegateResult,
    RoutingPolicy,
    TaskType,
)
from agentflare.session import SandboxSessions
from agentflare.tools import TOOL_TASK_TYPES, ToolCatalog, build_catalog

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS = 8

MISSING_PROMPT_ERROR = "Prompt is required"
MISSING_API_KEY_ERROR = "API key is required for LLM routing"
INVALID_TASK_TYPE_ERROR = "Invalid task type specified"


class TaskState(str, Enum):
    """States of one task execution."""

    RECEIVED = "received"
    CLASSIFIED = "classified"
    EXECUTING = "executing"
    NORMALIZED = "normalized"
    DONE = "done"
    FAILED = "failed"


class TaskFailed(Exception):
    """Raised inside the router to abort a task with a user-facing error."""

    def __init__(self, error: str, message: str = "Task execution failed", data: Any = None):
        super().__init__(error)
        self.error = error
        self.message = message
        self.data = data


@dataclass
class ToolCallRecord:
    """One executed tool call in LLM mode."""

    name: str
    arguments: Any
    success: bool
    message: str
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "arguments": self.arguments,
            "success": self.success,
            "message": self.message,
            "error": self.error,
        }


@dataclass
class TaskRun:
    """Bookkeeping for one task as it moves through the state machine."""

    task_type: str
    started_at: float
    state: TaskState = TaskState.RECEIVED
    transitions: list[TaskState] = field(default_factory=lambda: [TaskState.RECEIVED])

    def advance(self, state: TaskState) -> None:
        logger.debug(f"Task ({self.task_type}): {self.state.value} -> {state.value}")
        self.state = state
        self.transitions.append(state)


class TaskRouter:
    """Routes one request's tasks to the delegate capability clients."""

    def __init__(
        self,
        browser: BrowserClient,
        desktop: DesktopClient,
        search: SearchClient,
        *,
        api_key: str | None = None,
        routing: RoutingPolicy = RoutingPolicy.HEURISTIC,
        model: ModelClient | None = None,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        search_max_results: int = 10,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the router.

        Args:
            browser: Browser delegate client
            desktop: Desktop delegate client
            search: Search delegate client
            api_key: Model provider key supplied with the request
            routing: Classification policy for ``auto`` tasks
            model: Model client for LLM routing (built from ``api_key`` if omitted)
            max_iterations: Cap on model turns in LLM mode
            search_max_results: Result count for manual search tasks
            clock: Monotonic clock in seconds
        """
        self.browser = browser
        self.desktop = desktop
        self.search = search
        self.api_key = api_key
        self.routing = RoutingPolicy(routing)
        self.max_iterations = max_iterations
        self.search_max_results = search_max_results
        self.catalog: ToolCatalog = build_catalog(browser, desktop, search)
        self._model = model
        self._clock = clock
        self.last_run: TaskRun | None = None

    async def execute_task(self, task: AgentTask | dict[str, Any]) -> AgentResponse:
        """Run one task and return its normalized response. Never raises."""
        run = TaskRun(task_type=_raw_task_type(task), started_at=self._clock())
        self.last_run = run

        try:
            if not isinstance(task, AgentTask):
                task = _parse_task(task)
            run.task_type = task.type.value

            if not task.prompt or not task.prompt.strip():
                raise TaskFailed(MISSING_PROMPT_ERROR, message="No prompt provided")

            if task.type == TaskType.AUTO and self.routing == RoutingPolicy.LLM:
                return await self._run_llm(task, run)

            target = task.type
            if target == TaskType.AUTO:
                target = classify_prompt(task.prompt)
                logger.info(f"Auto task classified as {target.value}")
            run.task_type = target.value
            run.advance(TaskState.CLASSIFIED)

            run.advance(TaskState.EXECUTING)
            result = await self._dispatch(target, task)
            return self._finish(run, self._normalize(run, target, task, result))

        except TaskFailed as e:
            return self._fail(run, e.error, e.message, e.data)
        except Exception as e:
            logger.error(f"Task execution failed: {e}", exc_info=True)
            return self._fail(run, str(e) or type(e).__name__)

    async def process_natural_language_request(self, request: str) -> AgentResponse:
        """Route a free-text request as an ``auto`` task."""
        return await self.execute_task(AgentTask(type=TaskType.AUTO, prompt=request))

    # --- Manual mode ---

    async def _dispatch(self, target: TaskType, task: AgentTask) -> DelegateResult:
        """Call exactly one delegate for a classified task."""
        if target == TaskType.BROWSER:
            return await self.browser.run_agent(build_delegate_prompt(task))
        if target == TaskType.COMPUTER:
            return await self.desktop.run_agent(build_delegate_prompt(task))
        if target == TaskType.SEARCH:
            return await self.search.invoke(task.prompt, self.search_max_results)
        raise TaskFailed(INVALID_TASK_TYPE_ERROR, message=f"Unknown task type: {target}")

    def _normalize(
        self,
        run: TaskRun,
        target: TaskType,
        task: AgentTask,
        result: DelegateResult,
    ) -> AgentResponse:
        run.advance(TaskState.NORMALIZED)
        if result.success:
            message = result.message or f"{target.value.capitalize()} task completed"
            return self._response(run, True, message, data=result.payload)

        message = result.message or f"{target.value.capitalize()} task failed"
        return self._response(
            run,
            False,
            message,
            data=result.payload,
            error=result.error or "Unknown error",
        )

    # --- LLM mode ---

    def _model_client(self) -> ModelClient:
        if self._model is None:
            self._model = ModelClient(api_key=self.api_key or "")
        return self._model

    async def _run_llm(self, task: AgentTask, run: TaskRun) -> AgentResponse:
        if not self.api_key:
            raise TaskFailed(MISSING_API_KEY_ERROR, message="LLM routing requires an API key")

        model = self._model_client()
        run.advance(TaskState.CLASSIFIED)
        run.advance(TaskState.EXECUTING)

        system = build_system_prompt(self.catalog.descriptions())
        tools = self.catalog.to_anthropic()
        messages: list[dict[str, Any]] = [{"role": "user", "content": build_user_message(task)}]
        trace: list[ToolCallRecord] = []

        for iteration in range(1, self.max_iterations + 1):
            turn = await model.complete(system, messages, tools)
            logger.info(f"Model turn {iteration}: {len(turn.tool_calls)} tool call(s)")

            if not turn.tool_calls:
                data = _llm_data(trace, iteration)
                if not turn.text:
                    raise TaskFailed(
                        "Model returned an empty response",
                        message="The model did not produce an answer",
                        data=data,
                    )
                run.task_type = _llm_task_type(trace)
                run.advance(TaskState.NORMALIZED)
                return self._finish(run, self._response(run, True, turn.text, data=data))

            messages.append({"role": "assistant", "content": turn.content})
            tool_results = []
            for call in turn.tool_calls:
                result = await self.catalog.invoke(call.name, call.arguments)
                trace.append(
                    ToolCallRecord(
                        name=call.name,
                        arguments=call.arguments,
                        success=result.success,
                        message=result.message,
                        error=result.error,
                    )
                )
                tool_results.append(
                    {
                        "type": "tool_result",
                        "tool_use_id": call.id,
                        "content": _tool_result_content(result),
                        "is_error": not result.success,
                    }
                )
            messages.append({"role": "user", "content": tool_results})

        run.task_type = _llm_task_type(trace)
        raise TaskFailed(
            f"Iteration limit reached ({self.max_iterations}) before the model produced an answer",
            message="The task did not finish within the allowed number of steps",
            data=_llm_data(trace, self.max_iterations),
        )

    # --- Envelope helpers ---

    def _elapsed_ms(self, run: TaskRun) -> int:
        return max(0, int((self._clock() - run.started_at) * 1000))

    def _response(
        self,
        run: TaskRun,
        success: bool,
        message: str,
        data: Any = None,
        error: str | None = None,
    ) -> AgentResponse:
        return AgentResponse(
            success=success,
            message=message,
            task_type=run.task_type,
            data=data,
            error=error,
            execution_time_ms=self._elapsed_ms(run),
        )

    def _finish(self, run: TaskRun, response: AgentResponse) -> AgentResponse:
        run.advance(TaskState.DONE if response.success else TaskState.FAILED)
        logger.info(
            f"Task finished: type={response.task_type}, success={response.success}, "
            f"time={response.execution_time_ms}ms"
        )
        return response

    def _fail(
        self,
        run: TaskRun,
        error: str,
        message: str = "Task execution failed",
        data: Any = None,
    ) -> AgentResponse:
        run.advance(TaskState.FAILED)
        logger.warning(f"Task failed: type={run.task_type}, error={error}")
        return self._response(run, False, message, data=data, error=error)


def _raw_task_type(task: AgentTask | dict[str, Any]) -> str:
    if isinstance(task, AgentTask):
        return task.type.value
    return str(task.get("type", "unknown"))


def _parse_task(raw: dict[str, Any]) -> AgentTask:
    try:
        return AgentTask.model_validate(raw)
    except ValidationError as e:
        fields = {str(err["loc"][0]) for err in e.errors() if err.get("loc")}
        if "type" in fields:
            raise TaskFailed(
                INVALID_TASK_TYPE_ERROR,
                message=f"Unknown task type: {raw.get('type')}",
            ) from e
        if "prompt" in fields:
            raise TaskFailed(MISSING_PROMPT_ERROR, message="No prompt provided") from e
        raise TaskFailed(f"Invalid task: {e.error_count()} validation error(s)") from e


def _tool_result_content(result: DelegateResult) -> str:
    return json.dumps(result.model_dump(exclude={"payload"}, exclude_none=True))


def _llm_task_type(trace: list[ToolCallRecord]) -> str:
    used = {TOOL_TASK_TYPES[record.name] for record in trace if record.name in TOOL_TASK_TYPES}
    if len(used) == 1:
        return used.pop().value
    return TaskType.AUTO.value


def _llm_data(trace: list[ToolCallRecord], iterations: int) -> dict[str, Any]:
    return {
        "toolCalls": [record.to_dict() for record in trace],
        "iterations": iterations,
    }


def create_router(
    sessions: SandboxSessions,
    api_key: str | None = None,
    settings: Settings | None = None,
) -> TaskRouter:
    """Build a router for one request from the process-wide sessions and settings."""
    settings = settings or get_settings()
    model = None
    if settings.routing == RoutingPolicy.LLM and api_key:
        model = ModelClient(
            api_key=api_key,
            model=settings.model.model,
            max_tokens=settings.model.max_tokens,
            timeout=settings.model.timeout,
        )
    return TaskRouter(
        BrowserClient(sessions.browser, api_key, action_timeout=settings.sandbox.action_timeout),
        DesktopClient(sessions.computer, api_key, action_timeout=settings.sandbox.action_timeout),
        SearchClient(
            engine=settings.search.engine,
            api_key=settings.search.brave_api_key,
            timeout=settings.search.timeout,
        ),
        api_key=api_key,
        routing=settings.routing,
        model=model,
        max_iterations=settings.model.max_iterations,
        search_max_results=settings.search.max_results,
    )
