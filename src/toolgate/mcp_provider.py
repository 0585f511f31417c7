"""
MCP capability provider.

Launches a Model Context Protocol server over stdio with the official MCP
Python SDK and keeps one session open until disconnect(). connect() and
disconnect() must be awaited from the same task: the stdio transport is an
anyio task group underneath.
"""

import logging
import os
from contextlib import AsyncExitStack
from typing import Any

from toolgate.capabilities import EMPTY_OBJECT_SCHEMA, CapabilityInfo
from toolgate.config import CapabilityServerConfig

logger = logging.getLogger(__name__)


class McpCapabilityProvider:
    """CapabilityProvider backed by a stdio MCP server."""

    def __init__(self, config: CapabilityServerConfig):
        self.config = config
        self.name = config.name
        self._stack: AsyncExitStack | None = None
        self._session: Any = None

    @property
    def connected(self) -> bool:
        return self._session is not None

    async def connect(self) -> None:
        if self._session is not None:
            return

        from mcp import ClientSession, StdioServerParameters
        from mcp.client.stdio import stdio_client

        server_params = StdioServerParameters(
            command=self.config.command,
            args=self.config.args,
            env={**os.environ, **self.config.env},
        )

        stack = AsyncExitStack()
        try:
            read, write = await stack.enter_async_context(stdio_client(server_params))
            session = await stack.enter_async_context(ClientSession(read, write))
            await session.initialize()
        except BaseException:
            await stack.aclose()
            raise

        self._stack = stack
        self._session = session
        logger.info(f"Connected to MCP server '{self.name}' ({self.config.command})")

    def _require_session(self) -> Any:
        if self._session is None:
            raise RuntimeError(f"MCP server '{self.name}' is not connected")
        return self._session

    async def list_capabilities(self) -> list[CapabilityInfo]:
        response = await self._require_session().list_tools()
        return [
            CapabilityInfo(
                name=tool.name,
                description=tool.description or "",
                input_schema=tool.inputSchema or dict(EMPTY_OBJECT_SCHEMA),
            )
            for tool in response.tools
        ]

    async def call_capability(self, name: str, args: dict[str, Any]) -> Any:
        return await self._require_session().call_tool(name, args)

    async def disconnect(self) -> None:
        stack, self._stack = self._stack, None
        self._session = None
        if stack is not None:
            await stack.aclose()
            logger.info(f"Disconnected from MCP server '{self.name}'")
