"""HTTP streaming server for the agent loop."""

from agentbridge.server.app import SSE_HEADERS, create_app, run_server

__all__ = ["SSE_HEADERS", "create_app", "run_server"]
