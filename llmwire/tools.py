"""
Tool execution helpers.

The library never decides when to call tools. These helpers only run the
calls a model asked for and turn the outcome into :class:`ToolResult`
values ready for a continuation request.

Tools come from two places:

- **Native handlers**: plain Python callables (sync or async) keyed by tool
  name, called with the tool arguments as keyword arguments.
- **MCP**: an initialized ``mcp.ClientSession``; any tool without a native
  handler is forwarded to it.

Example Usage:
-------------
```python
async with ClientSession(read, write) as session:
    await session.initialize()
    executor = ToolExecutor({"add": lambda a, b: a + b}, mcp_session=session)
    tools = await executor.mcp_tool_definitions()
    ...
    results = await executor.execute(response.tool_calls)
```
"""
import inspect
import json
import logging
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from mcp import ClientSession
from mcp.types import TextContent as MCPTextContent

from .types import ToolCall, ToolDefinition, ToolResult

logger = logging.getLogger(__name__)

ToolHandler = Callable[..., Any]


class ToolExecutor:
    """
    Execute tool calls with native handlers first, then an MCP session.

    Args:
        handlers (Dict[str, Callable], optional): Native tool implementations.
        mcp_session (ClientSession, optional): Initialized MCP session used
            for tools without a native handler.
    """

    def __init__(
        self,
        handlers: Optional[Mapping[str, ToolHandler]] = None,
        mcp_session: Optional[ClientSession] = None,
    ):
        self.handlers: Dict[str, ToolHandler] = dict(handlers or {})
        self.mcp_session = mcp_session

    def register(self, name: str, handler: ToolHandler) -> None:
        self.handlers[name] = handler

    async def call_tool(self, name: str, arguments: Mapping[str, Any]) -> str:
        """
        Execute one tool and return its output as text.

        Non-string handler results are JSON encoded.

        Raises:
            ValueError: If no handler exists and no MCP session is attached.
        """
        handler = self.handlers.get(name)
        if handler is not None:
            result = handler(**dict(arguments))
            if inspect.isawaitable(result):
                result = await result
            if isinstance(result, str):
                return result
            return json.dumps(result, default=str)

        if self.mcp_session is None:
            raise ValueError(f"Tool '{name}' not found")

        result = await self.mcp_session.call_tool(name, dict(arguments))
        text = mcp_result_text(result)
        if result.isError:
            return f"Error: {text}"
        return text

    async def execute(self, tool_calls: Iterable[ToolCall]) -> List[ToolResult]:
        """
        Execute tool calls in order.

        On error, the error message is returned as the tool result so the
        model can see what went wrong.

        Returns:
            List[ToolResult]: One result per call, in call order.
        """
        results = []
        for tc in tool_calls:
            try:
                output = await self.call_tool(tc.name, tc.arguments)
            except Exception as e:
                logger.warning("Tool %s (%s) failed: %s", tc.name, tc.call_id, e)
                output = f"Error: {e}"
            results.append(ToolResult(tool_call_id=tc.call_id, output=output, name=tc.name))
        return results

    async def mcp_tool_definitions(self) -> List[ToolDefinition]:
        """List the attached MCP session's tools as ToolDefinitions."""
        if self.mcp_session is None:
            return []
        listing = await self.mcp_session.list_tools()
        return tool_definitions_from_mcp(listing.tools)


def mcp_result_text(result: Any) -> str:
    """
    Extract text content from an MCP ``CallToolResult``.

    MCP tools can return multiple content blocks (text, images, etc.);
    text blocks are joined with newlines.
    """
    texts = []
    for content in getattr(result, "content", None) or []:
        if isinstance(content, MCPTextContent):
            texts.append(content.text)
        # Fallback for other content types with text attribute
        elif hasattr(content, "text"):
            texts.append(content.text)
        else:
            texts.append(str(content))
    return "\n".join(texts)


def tool_definitions_from_mcp(tools: Iterable[Any]) -> List[ToolDefinition]:
    """
    Convert MCP tool listings to ToolDefinitions.

    MCP describes arguments with ``inputSchema``; tools without one get an
    empty object schema.
    """
    return [
        ToolDefinition(
            name=tool.name,
            description=tool.description or "",
            parameters=tool.inputSchema or {"type": "object", "properties": {}},
        )
        for tool in tools
    ]
