# =============================================================================
# Tool Registry — Typed Dispatch for Knowledge and Action Tools
# =============================================================================
#
# Every operation the reasoning service may call is a `ToolHandler`: an
# object exposing its `descriptor` (name, description, JSON schema) and an
# async `execute(arguments) -> str`. The registry maps tool names to
# handlers and is the single place tool calls are executed.
#
# CONTRACT (shared with every research worker):
#   - unknown tool name  → "Unknown tool: <name>"
#   - handler raises     → "Tool error: <message>"
#   Neither case raises; the text goes back to the model as the tool result.
#
# DESIGN DECISION: Menus are explicit subsets. `registry.menu(names)`
# resolves a fixed tuple of tool names to the descriptors that are actually
# registered. Connectors without credentials are never registered, so their
# tools drop out of every menu.
# =============================================================================

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from typing import Any, Protocol

from atlas.services.llm import ToolDescriptor
from atlas.services.text import first_n_words

logger = logging.getLogger(__name__)


class ToolHandler(Protocol):
    """One callable operation."""

    descriptor: ToolDescriptor

    async def execute(self, arguments: dict[str, Any]) -> str:
        ...


@dataclass
class FunctionTool:
    """
    ToolHandler backed by an async callable.

    The callable receives the model's arguments as keyword arguments; keys
    the callable does not accept are dropped so a model that invents an
    extra parameter doesn't break the call.
    """

    descriptor: ToolDescriptor
    func: Callable[..., Awaitable[str]]

    async def execute(self, arguments: dict[str, Any]) -> str:
        allowed = set(self.descriptor.parameters.get("properties", {}))
        kwargs = {k: v for k, v in (arguments or {}).items() if k in allowed}
        return await self.func(**kwargs)


class ToolRegistry:
    """Name → handler mapping with the error-to-text execution contract."""

    def __init__(self, handlers: Iterable[ToolHandler] = ()) -> None:
        self._handlers: dict[str, ToolHandler] = {}
        for handler in handlers:
            self.register(handler)

    def register(self, handler: ToolHandler) -> None:
        name = handler.descriptor.name
        if name in self._handlers:
            raise ValueError(f"Tool '{name}' is already registered")
        self._handlers[name] = handler

    def __contains__(self, name: object) -> bool:
        return name in self._handlers

    def __len__(self) -> int:
        return len(self._handlers)

    @property
    def names(self) -> list[str]:
        return list(self._handlers)

    def menu(self, names: Iterable[str]) -> list[ToolDescriptor]:
        """Descriptors for `names` that are registered, in the given order."""
        return [
            self._handlers[name].descriptor
            for name in names
            if name in self._handlers
        ]

    async def execute(self, name: str, arguments: dict[str, Any] | None) -> str:
        handler = self._handlers.get(name)
        if handler is None:
            logger.warning("Unknown tool requested: %s", name)
            return f"Unknown tool: {name}"

        logger.info(
            "tool_call: %s args=%s",
            name, first_n_words(str(arguments or {}), 15),
        )
        try:
            result = await handler.execute(arguments or {})
        except Exception as e:
            logger.error("Tool %s failed: %s", name, e)
            return f"Tool error: {e}"

        result = result or ""
        logger.info(
            "tool_result: %s length=%d preview='%s'",
            name, len(result), first_n_words(result, 15),
        )
        return result
