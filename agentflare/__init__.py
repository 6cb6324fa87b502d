"""Agentflare task router.

Routes natural-language requests to a browser sandbox, a virtual desktop
sandbox or web search, optionally letting an LLM choose and sequence the
calls, and returns one normalized response envelope.
"""

__version__ = "0.1.0"
