"""
Glue between an LLM's function calls and the pooled MCP clients.

The chat endpoint advertises the MCP tools to the model with completion_tools()
and, when the model answers with tool calls, runs them through the pool with
run_tool_calls() to get the "tool" messages for the follow-up completion.
"""

import json
import logging
from typing import Any

import mcp.types
from fastmcp.exceptions import ToolError

from client_pool import SESSION_ERRORS, MCPClientPool, token_hint
from errors import ErrorKind, error_payload

logger = logging.getLogger(__name__)


def completion_tools(tools: list[mcp.types.Tool]) -> list[dict[str, Any]]:
    """Describe MCP tools as OpenAI-style function definitions."""
    return [
        {
            "type": "function",
            "function": {
                "name": tool.name,
                "description": tool.description or "",
                "parameters": tool.inputSchema,
            },
        }
        for tool in tools
    ]


def _result_text(result: Any) -> str:
    return "\n".join(
        content.text
        for content in result.content
        if isinstance(content, mcp.types.TextContent)
    )


def _tool_error_text(error: ToolError) -> str:
    """Pass structured tool errors through; wrap anything else."""
    message = str(error)
    try:
        payload = json.loads(message)
    except json.JSONDecodeError:
        payload = None
    if isinstance(payload, dict) and "kind" in payload:
        return message
    return json.dumps(error_payload(ErrorKind.UPSTREAM, message))


def _parse_arguments(raw: Any) -> dict[str, Any]:
    if isinstance(raw, dict):
        return dict(raw)
    arguments = json.loads(raw or "{}")
    if not isinstance(arguments, dict):
        raise ValueError("tool arguments must be a JSON object")
    return arguments


async def run_tool_calls(
    pool: MCPClientPool,
    credential: str,
    tool_calls: list[dict[str, Any]],
    budget_id: str | None = None,
) -> list[dict[str, Any]]:
    """Execute the model's tool calls and return one tool message per call.

    A failing tool produces an error payload as that call's content so the model
    can see what went wrong; the remaining calls still run. Failing to get a
    client at all (bad token, server won't start) raises.

    Args:
        pool: Pool holding the user's MCP client
        credential: The user's YNAB access token
        tool_calls: Tool calls from the assistant message, each with an id and a
            function name and JSON-encoded arguments
        budget_id: Budget the user selected; passed to every tool that takes a
            budget_id when the model didn't supply one
    """
    takes_budget: set[str] = set()
    if budget_id:
        try:
            tools = await pool.list_tools(credential)
        except SESSION_ERRORS as e:
            logger.warning(f"Relaunching MCP server after failure: {e!r}")
            tools = await pool.list_tools(credential)
        takes_budget = {
            tool.name
            for tool in tools
            if "budget_id" in tool.inputSchema.get("properties", {})
        }
    else:
        await pool.acquire(credential)

    messages = []
    for call in tool_calls:
        name = call["function"]["name"]
        try:
            arguments = _parse_arguments(call["function"].get("arguments"))
        except ValueError as e:
            logger.error(f"Malformed arguments for tool {name}: {e}")
            content = json.dumps(
                error_payload(
                    ErrorKind.VALIDATION, f"Invalid arguments for {name}: {e}"
                )
            )
        else:
            if name in takes_budget and not arguments.get("budget_id"):
                arguments["budget_id"] = budget_id

            logger.info(f"Calling tool {name} for token {token_hint(credential)}")
            try:
                result = await pool.call_tool(credential, name, arguments)
            except ToolError as e:
                logger.error(f"Tool {name} failed: {e}")
                content = _tool_error_text(e)
            except SESSION_ERRORS as e:
                # The pool has dropped the broken client; later calls relaunch
                logger.error(f"MCP server failed during tool {name}: {e!r}")
                content = json.dumps(
                    error_payload(
                        ErrorKind.UPSTREAM, f"MCP server failed during {name}: {e}"
                    )
                )
            else:
                content = _result_text(result)

        messages.append({"role": "tool", "tool_call_id": call["id"], "content": content})

    return messages
