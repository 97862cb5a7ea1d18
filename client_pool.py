"""
Pool of per-user MCP clients, each connected to its own server.py subprocess.

The chat web app identifies a user by their YNAB access token. The first
request for a token launches `python server.py` over stdio with the token in
YNAB_ACCESS_TOKEN and keeps the connected client around; later requests reuse
it. A background sweep shuts down clients nobody has used for a while.

Everything here runs on one asyncio event loop, so the maps need no locks.
Concurrent first use of a token is funnelled through a single launch task so
that only one subprocess is ever spawned per token.
"""

import asyncio
import logging
import os
import time
from collections.abc import Callable
from contextlib import AsyncExitStack
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import anyio
import mcp.types
from fastmcp import Client
from fastmcp.client.client import CallToolResult
from fastmcp.client.transports import PythonStdioTransport
from mcp import MCPError

from errors import InvalidCredentialError

logger = logging.getLogger(__name__)

SERVER_SCRIPT = Path(__file__).parent / "server.py"

IDLE_TIMEOUT_SECONDS = 15 * 60
SWEEP_INTERVAL_SECONDS = 5 * 60
LAUNCH_TIMEOUT_SECONDS = 30.0

ClientFactory = Callable[[str], Client[Any]]

# Raised when the connection to a server subprocess is broken, e.g. it exited
SESSION_ERRORS = (
    MCPError,
    anyio.ClosedResourceError,
    anyio.BrokenResourceError,
    OSError,
)


def token_hint(credential: str) -> str:
    """Identify a token in logs without revealing it."""
    if len(credential) <= 8:
        return "...****"
    return f"...{credential[-4:]}"


def stdio_client_factory(server_script: Path = SERVER_SCRIPT) -> ClientFactory:
    """Build clients that launch server_script with the token in the environment."""

    def create_client(credential: str) -> Client[Any]:
        transport = PythonStdioTransport(
            script_path=server_script,
            env={**os.environ, "YNAB_ACCESS_TOKEN": credential},
            keep_alive=False,
        )
        return Client(transport)

    return create_client


@dataclass
class PooledClient:
    client: Client[Any]
    stack: AsyncExitStack
    last_used: float


class MCPClientPool:
    """At most one connected MCP client per access token, evicted when idle.

    Args:
        client_factory: Creates an unconnected client for a token; connecting it
            (entering its async context) performs the MCP handshake
        clock: Monotonic time source in seconds
        idle_timeout: Seconds without use after which a client is evicted
        sweep_interval: Seconds between background sweeps
        launch_timeout: Seconds to wait for a new client's handshake
    """

    def __init__(
        self,
        client_factory: ClientFactory | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        idle_timeout: float = IDLE_TIMEOUT_SECONDS,
        sweep_interval: float = SWEEP_INTERVAL_SECONDS,
        launch_timeout: float = LAUNCH_TIMEOUT_SECONDS,
    ):
        self._client_factory = client_factory or stdio_client_factory()
        self._clock = clock
        self._idle_timeout = idle_timeout
        self._sweep_interval = sweep_interval
        self._launch_timeout = launch_timeout

        self._entries: dict[str, PooledClient] = {}
        self._launching: dict[str, asyncio.Task[PooledClient]] = {}
        self._sweeper: asyncio.Task[None] | None = None

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, credential: object) -> bool:
        return credential in self._entries

    async def __aenter__(self) -> "MCPClientPool":
        self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def acquire(self, credential: str) -> Client[Any]:
        """Return the connected client for credential, launching one if needed."""
        if not isinstance(credential, str) or not credential.strip():
            raise InvalidCredentialError("A non-empty YNAB access token is required")

        entry = self._entries.get(credential)
        if entry is not None:
            entry.last_used = self._clock()
            logger.info(f"Reusing MCP client for token {token_hint(credential)}")
            return entry.client

        launch = self._launching.get(credential)
        if launch is None:
            launch = asyncio.create_task(self._launch(credential))
            self._launching[credential] = launch

        # A cancelled caller must not cancel the launch other callers wait on
        entry = await asyncio.shield(launch)
        entry.last_used = self._clock()
        return entry.client

    async def _launch(self, credential: str) -> PooledClient:
        try:
            logger.info(f"Launching MCP server for token {token_hint(credential)}")
            client = self._client_factory(credential)
            stack = AsyncExitStack()
            try:
                await asyncio.wait_for(
                    stack.enter_async_context(client), self._launch_timeout
                )
            except BaseException as e:
                logger.error(
                    f"Failed to launch MCP server for token "
                    f"{token_hint(credential)}: {e!r}"
                )
                await stack.aclose()
                raise

            entry = PooledClient(client=client, stack=stack, last_used=self._clock())
            self._entries[credential] = entry
            logger.info(f"MCP client ready for token {token_hint(credential)}")
            return entry
        finally:
            self._launching.pop(credential, None)

    async def _close_entry(self, credential: str, entry: PooledClient) -> None:
        try:
            await entry.stack.aclose()
        except Exception as e:
            logger.error(
                f"Error closing MCP client for token {token_hint(credential)}: {e!r}"
            )

    async def release(self, credential: str) -> bool:
        """Close and forget the client for credential, e.g. after a token is revoked."""
        entry = self._entries.pop(credential, None)
        if entry is None:
            return False

        logger.info(f"Releasing MCP client for token {token_hint(credential)}")
        await self._close_entry(credential, entry)
        return True

    async def sweep(self) -> int:
        """Close every client idle longer than the idle timeout."""
        now = self._clock()
        idle = [
            credential
            for credential, entry in self._entries.items()
            if now - entry.last_used > self._idle_timeout
        ]

        evicted = 0
        for credential in idle:
            entry = self._entries.get(credential)
            # Used again while an earlier client was being closed
            if entry is None or self._clock() - entry.last_used <= self._idle_timeout:
                continue

            del self._entries[credential]
            logger.info(f"Evicting idle MCP client for token {token_hint(credential)}")
            await self._close_entry(credential, entry)
            evicted += 1

        return evicted

    async def _sweep_periodically(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval)
            evicted = await self.sweep()
            if evicted:
                logger.info(f"Idle sweep closed {evicted} MCP clients")

    def start(self) -> None:
        """Start the background idle sweep on the running event loop."""
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.create_task(self._sweep_periodically())

    async def close(self) -> None:
        """Stop the idle sweep and close every pooled client."""
        if self._sweeper is not None:
            self._sweeper.cancel()
            try:
                await self._sweeper
            except asyncio.CancelledError:
                pass
            self._sweeper = None

        launches = list(self._launching.values())
        for launch in launches:
            launch.cancel()
        await asyncio.gather(*launches, return_exceptions=True)

        entries = list(self._entries.items())
        self._entries.clear()
        for credential, entry in entries:
            await self._close_entry(credential, entry)
        logger.info(f"Closed {len(entries)} pooled MCP clients")

    async def _discard(
        self, credential: str, client: Client[Any], error: BaseException
    ) -> None:
        """Drop a client whose session broke so the next acquire launches anew."""
        entry = self._entries.get(credential)
        # Already replaced or released by another caller
        if entry is None or entry.client is not client:
            return

        del self._entries[credential]
        logger.error(
            f"MCP client for token {token_hint(credential)} failed, discarding it: "
            f"{error!r}"
        )
        await self._close_entry(credential, entry)

    async def call_tool(
        self, credential: str, name: str, arguments: dict[str, Any] | None = None
    ) -> CallToolResult:
        client = await self.acquire(credential)
        try:
            return await client.call_tool(name, arguments or {})
        except SESSION_ERRORS as e:
            await self._discard(credential, client, e)
            raise

    async def list_tools(self, credential: str) -> list[mcp.types.Tool]:
        client = await self.acquire(credential)
        try:
            return await client.list_tools()
        except SESSION_ERRORS as e:
            await self._discard(credential, client, e)
            raise
