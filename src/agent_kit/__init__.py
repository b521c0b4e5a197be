"""Dual-protocol agent server.

Serves a single task handler over the A2A JSON-RPC/SSE protocol and a
LangGraph Platform-compatible REST/SSE API from one Robyn application.

Version is read from ``pyproject.toml`` via ``importlib.metadata``.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__: str = version("agent-kit")
except PackageNotFoundError:
    # Running from source before the package is installed.
    __version__ = "0.0.0-dev"

__all__ = [
    "__version__",
]
