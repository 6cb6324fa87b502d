"""HTTP server for Agentflare task routing."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse

from agentflare import __version__
from agentflare.config import get_settings
from agentflare.delegates import BrowserClient, DesktopClient, SearchClient
from agentflare.router import TaskRouter
from agentflare.router import create_router as build_task_router
from agentflare.schemas import (
    BrowserAction,
    ChatResponse,
    DelegateResult,
    DesktopAction,
    HealthResponse,
    SandboxHealth,
    SuggestionsResponse,
    TaskRequest,
)
from agentflare.session import SandboxSessions

logger = logging.getLogger(__name__)

# Configure logging
logging.basicConfig(
    level=get_settings().log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

# httpx logs full request URLs at INFO; the desktop agent carries apiKey in its query string
for _name in ("httpx", "httpcore"):
    logging.getLogger(_name).setLevel(logging.WARNING)

ENDPOINTS_TEXT = (
    "Available endpoints:\n"
    "POST /chat - Route a natural-language message {message, apiKey}\n"
    "POST /task - Run a typed task {type, prompt, context?, apiKey?}\n"
    "POST /browser/action - Run one low-level browser action\n"
    "POST /computer/action - Run one low-level desktop action\n"
    "GET /search/suggest?q= - Search autocomplete suggestions\n"
    "GET /health - Broker and sandbox health\n"
)


# --- Sandbox Sessions ---

_sessions: SandboxSessions | None = None


def get_sessions() -> SandboxSessions:
    """Get or create the process-wide sandbox sessions."""
    global _sessions
    if _sessions is None:
        _sessions = SandboxSessions.from_settings(get_settings())
    return _sessions


async def close_sessions() -> None:
    global _sessions
    if _sessions is not None:
        await _sessions.aclose()
        _sessions = None


def create_router(api_key: str | None) -> TaskRouter:
    """Build the task router for one request."""
    return build_task_router(get_sessions(), api_key=api_key, settings=get_settings())


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    logger.info(
        f"Agentflare starting: routing={settings.routing.value}, "
        f"browser={settings.sandbox.browser_url}, computer={settings.sandbox.computer_url}"
    )
    yield
    await close_sessions()


app = FastAPI(
    title="Agentflare",
    description="Routes natural-language tasks to browser, desktop and search delegates",
    version=__version__,
    lifespan=lifespan,
)


async def _read_json(request: Request) -> dict[str, Any] | None:
    try:
        body = await request.json()
    except ValueError:
        return None
    return body if isinstance(body, dict) else None


# --- HTTP Endpoints ---


@app.get("/", response_class=PlainTextResponse)
async def index() -> str:
    """List the available endpoints."""
    return ENDPOINTS_TEXT


@app.post("/chat")
async def chat(request: Request) -> JSONResponse:
    """Route a chat message through the task router.

    Validation failures are answered with ``{success: false, error}`` and
    never reach a delegate.
    """
    body = await _read_json(request)
    if body is None:
        return JSONResponse(ChatResponse.rejected("Request body must be a JSON object").to_wire())

    message = body.get("message")
    api_key = body.get("apiKey")

    if not isinstance(message, str) or not message.strip():
        return JSONResponse(ChatResponse.rejected("Message is required").to_wire())

    if not isinstance(api_key, str) or not api_key.strip():
        return JSONResponse(ChatResponse.rejected("API key is required").to_wire())

    logger.info(f"Received chat message ({len(message)} chars)")

    router = create_router(api_key.strip())
    response = await router.process_natural_language_request(message)

    return JSONResponse(ChatResponse.from_agent_response(response).to_wire())


@app.post("/task")
async def run_task(request: TaskRequest) -> JSONResponse:
    """Run a typed task (browser, computer, search or auto)."""
    logger.info(f"Received task: type={request.type}")

    router = create_router(request.api_key)
    response = await router.execute_task(
        {"type": request.type, "prompt": request.prompt, "context": request.context}
    )

    return JSONResponse(ChatResponse.from_agent_response(response).to_wire())


@app.post("/browser/action", response_model=DelegateResult)
async def browser_action(action: BrowserAction) -> DelegateResult:
    """Run one low-level action in the browser sandbox."""
    settings = get_settings()
    client = BrowserClient(get_sessions().browser, action_timeout=settings.sandbox.action_timeout)
    return await client.execute_action(action)


@app.post("/computer/action", response_model=DelegateResult)
async def computer_action(action: DesktopAction) -> DelegateResult:
    """Run one low-level action on the virtual desktop."""
    settings = get_settings()
    client = DesktopClient(get_sessions().computer, action_timeout=settings.sandbox.action_timeout)
    return await client.execute_action(action)


@app.get("/search/suggest", response_model=SuggestionsResponse)
async def search_suggest(q: str) -> SuggestionsResponse:
    """Return search autocomplete suggestions."""
    settings = get_settings()
    client = SearchClient(timeout=settings.search.timeout)
    return SuggestionsResponse(query=q, suggestions=await client.suggestions(q))


@app.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """Check broker and sandbox health."""
    sessions = get_sessions()
    browser_ok = await sessions.browser.check_health()
    computer_ok = await sessions.computer.check_health()

    return HealthResponse(
        broker="healthy",
        routing=get_settings().routing,
        browser=SandboxHealth(state=sessions.browser.state.value, reachable=browser_ok),
        computer=SandboxHealth(state=sessions.computer.state.value, reachable=computer_ok),
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle uncaught exceptions."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content=ChatResponse.rejected(str(exc) or "Internal error").to_wire(),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Answer malformed request bodies with the standard failure envelope."""
    logger.warning(f"Rejected {request.method} {request.url.path}: {len(exc.errors())} validation error(s)")
    return JSONResponse(
        status_code=422,
        content=ChatResponse.rejected(f"Invalid request: {_format_validation_errors(exc)}").to_wire(),
    )


def _format_validation_errors(exc: RequestValidationError) -> str:
    parts = []
    for item in exc.errors():
        location = ".".join(str(part) for part in item.get("loc", ()) if part != "body") or "body"
        parts.append(f"{location}: {item.get('msg', 'invalid value')}")
    return "; ".join(parts)
