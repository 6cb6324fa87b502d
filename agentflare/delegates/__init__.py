"""Delegate capability clients for Agentflare routing."""

from agentflare.delegates.browser import BrowserClient
from agentflare.delegates.desktop import DesktopClient
from agentflare.delegates.search import SearchClient

__all__ = ["BrowserClient", "DesktopClient", "SearchClient"]
