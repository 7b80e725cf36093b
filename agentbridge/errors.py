"""
Exception hierarchy.

Only LLMError is fatal to an agent loop. Tool server and tool invocation
errors are caught at the connector boundary and turned into failed-server
entries or is_error tool results.
"""


class AgentBridgeError(Exception):
    """Base class for all agentbridge errors."""


class ConfigError(AgentBridgeError):
    """The tool server map or an overlay could not be interpreted."""


class LLMError(AgentBridgeError):
    """
    The inference endpoint call failed, timed out, or returned something unusable.

    Args:
        message: Human-readable error description
        cause: The underlying exception, if any
    """

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(message)
        self.cause = cause


class ToolServerError(AgentBridgeError):
    """A tool server could not be connected to or could not list its tools."""

    def __init__(self, server_id: str, message: str):
        super().__init__(f"{server_id}: {message}")
        self.server_id = server_id


class UnsupportedTransportError(ToolServerError):
    """The server declares a transport this runtime does not attempt (local process)."""
