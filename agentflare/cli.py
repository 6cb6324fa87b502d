"""CLI for Agentflare - task routing server and local task runner."""

from __future__ import annotations

import asyncio
import json

import click

from agentflare import __version__


@click.group()
@click.version_option(version=__version__, prog_name="agentflare")
def main() -> None:
    """Agentflare - route natural-language tasks to browser, desktop and search agents.

    Run the HTTP server, or send a task straight to the router from the shell.
    """
    pass


@main.command()
@click.option("--port", default=8000, help="Port to run the server on")
@click.option("--host", default="127.0.0.1", help="Host to bind to")
@click.option("--reload", is_flag=True, help="Enable auto-reload for development")
def serve(port: int, host: str, reload: bool) -> None:
    """Start the Agentflare HTTP server."""
    import uvicorn

    click.echo(f"Starting Agentflare on {host}:{port}")
    uvicorn.run(
        "agentflare.server:app",
        host=host,
        port=port,
        reload=reload,
    )


@main.command()
@click.argument("prompt")
@click.option(
    "--type", "-t",
    "task_type",
    type=click.Choice(["browser", "computer", "search", "auto"]),
    default="auto",
    help="Task type (auto lets the router decide)",
)
@click.option(
    "--context", "-c",
    default=None,
    help="Extra context passed along with the prompt",
)
@click.option(
    "--api-key",
    envvar="ANTHROPIC_API_KEY",
    default=None,
    help="Model provider API key (defaults to $ANTHROPIC_API_KEY)",
)
@click.option(
    "--raw",
    is_flag=True,
    help="Output raw JSON instead of formatted text",
)
def ask(prompt: str, task_type: str, context: str | None, api_key: str | None, raw: bool) -> None:
    """Run one task through the router and print the result.

    \b
    Example:
        agentflare ask "what is the tallest mountain in Europe"
        agentflare ask "open example.com and read the heading" --type browser
    """
    from agentflare.config import get_settings
    from agentflare.router import create_router
    from agentflare.session import SandboxSessions

    async def _run():
        settings = get_settings()
        sessions = SandboxSessions.from_settings(settings)
        try:
            router = create_router(sessions, api_key=api_key, settings=settings)
            return await router.execute_task(
                {"type": task_type, "prompt": prompt, "context": context}
            )
        finally:
            await sessions.aclose()

    response = asyncio.run(_run())

    if raw:
        click.echo(json.dumps(response.model_dump(), indent=2))
    elif response.success:
        click.echo(f"[{response.task_type}] {response.message}")
        click.echo(f"\n({response.execution_time_ms} ms)")
    else:
        click.echo(f"[{response.task_type}] Error: {response.error}", err=True)

    if not response.success:
        raise SystemExit(1)


@main.command()
@click.argument("query")
@click.option(
    "--max-results", "-k",
    default=10,
    type=click.IntRange(1, 20),
    help="Number of results to return",
)
@click.option(
    "--engine", "-e",
    type=click.Choice(["duckduckgo", "brave"]),
    default=None,
    help="Search engine (defaults to configured engine)",
)
@click.option(
    "--raw",
    is_flag=True,
    help="Output raw JSON instead of formatted text",
)
def search(query: str, max_results: int, engine: str | None, raw: bool) -> None:
    """Search the web with the search delegate.

    \b
    Example:
        agentflare search "current weather in Paris"
        agentflare search "fastapi lifespan" --engine brave -k 5
    """
    from agentflare.config import get_settings
    from agentflare.delegates import SearchClient

    settings = get_settings()
    client = SearchClient(
        engine=engine or settings.search.engine,
        api_key=settings.search.brave_api_key,
        timeout=settings.search.timeout,
    )
    result = asyncio.run(client.search(query, max_results))

    if raw:
        click.echo(json.dumps(result.model_dump(), indent=2))
        return

    if not result.success:
        click.echo(f"Search failed: {result.error}", err=True)
        raise SystemExit(1)

    click.echo(f"\n{'=' * 60}")
    click.echo(f"Search: {query}")
    click.echo(f"{'=' * 60}\n")

    if result.results:
        for item in result.results:
            click.echo(f"  {item.position}. {item.title}")
            click.echo(f"     {item.url}")
            if item.snippet:
                click.echo(f"     {item.snippet[:200]}")
        click.echo()
    else:
        click.echo("No results found.")


@main.command()
@click.argument("query")
def suggest(query: str) -> None:
    """Print search autocomplete suggestions."""
    from agentflare.config import get_settings
    from agentflare.delegates import SearchClient

    client = SearchClient(timeout=get_settings().search.timeout)
    suggestions = asyncio.run(client.suggestions(query))

    if suggestions:
        for item in suggestions:
            click.echo(f"  - {item}")
    else:
        click.echo("No suggestions.")


@main.command()
def mcp() -> None:
    """Run the MCP server exposing the delegate tools.

    The MCP tools forward to a running Agentflare server (see `serve`).

    \b
    Configure in .mcp.json:
        {
            "mcpServers": {
                "agentflare": {
                    "command": "agentflare",
                    "args": ["mcp"]
                }
            }
        }
    """
    from mcp_agentflare.server import mcp as mcp_server
    mcp_server.run()


if __name__ == "__main__":
    main()
