"""MCP server exposing the Agentflare delegates as tools."""

import os

import httpx
from mcp.server.fastmcp import FastMCP

mcp = FastMCP("agentflare")
BROKER = os.environ.get("AGENTFLARE_SERVER_URL", "http://localhost:8000")


async def _run_task(task_type: str, prompt: str, api_key: str | None, timeout: float) -> dict:
    async with httpx.AsyncClient(timeout=timeout) as client:
        r = await client.post(f"{BROKER}/task", json={
            "type": task_type,
            "prompt": prompt,
            "apiKey": api_key or os.environ.get("ANTHROPIC_API_KEY"),
        })
        return r.json()


@mcp.tool()
async def call_browser_agent(prompt: str, api_key: str | None = None) -> dict:
    """Run a task in the sandboxed Chromium browser (navigate, click, type, read pages).

    Browser state persists between calls.
    """
    return await _run_task("browser", prompt, api_key, timeout=180.0)


@mcp.tool()
async def call_computer_agent(prompt: str, api_key: str | None = None) -> dict:
    """Run a task on the virtual Linux desktop (mouse, keyboard, applications)."""
    return await _run_task("computer", prompt, api_key, timeout=180.0)


@mcp.tool()
async def search_web(query: str) -> dict:
    """Search the web. Returns ranked results with titles, URLs and snippets."""
    return await _run_task("search", query, None, timeout=30.0)


if __name__ == "__main__":
    mcp.run()
