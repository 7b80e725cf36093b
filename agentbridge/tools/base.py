"""
Base classes for tool adapters.

Provides the abstract interface the connector uses to talk to one tool server,
independent of the transport underneath.
"""

from abc import ABC, abstractmethod
from typing import Any


class ToolAdapter(ABC):
    """
    Abstract base class for tool adapters.

    One adapter wraps one live connection to one tool server. The connector
    owns its adapters and is responsible for shutting every one of them down.
    """

    server_id: str

    @abstractmethod
    async def initialize(self) -> None:
        """
        Open the transport and perform the protocol handshake.

        Raises:
            ToolServerError: If the server cannot be reached or rejects the handshake
        """
        pass

    @abstractmethod
    async def shutdown(self) -> None:
        """
        Close the connection and release transport resources.

        Safe to call more than once and on an adapter that never initialized.
        """
        pass

    @abstractmethod
    async def call(self, tool_name: str, arguments: dict[str, Any]) -> dict[str, Any]:
        """
        Call a tool with the given arguments.

        Args:
            tool_name: Tool name as the server knows it (no server prefix)
            arguments: Tool-specific arguments

        Returns:
            {"text": <joined text content>, "is_error": <server-reported error flag>}

        Raises:
            RuntimeError: If the adapter is not initialized
            Exception: Transport or protocol failures propagate to the caller
        """
        pass

    @abstractmethod
    async def list_tools(self) -> list[dict[str, Any]]:
        """
        List all tools exposed by the server.

        Returns:
            List of {"name", "description", "input_schema"} dictionaries, e.g.

            [
                {
                    "name": "search_logs",
                    "description": "Search logs with a DataPrime query",
                    "input_schema": {
                        "type": "object",
                        "properties": {"query": {"type": "string"}},
                        "required": ["query"]
                    }
                }
            ]
        """
        pass

    async def __aenter__(self):
        """Context manager entry - initialize the adapter."""
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit - shutdown the adapter."""
        await self.shutdown()
        return False
