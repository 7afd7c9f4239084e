"""
Tool registry: the authoritative name -> tool mapping of one app.

Architecture:
- Tools are registered while the app is being built, then the registry is
  frozen for the lifetime of the run loop
- Lookups are plain dict reads and take no lock; the write lock only orders
  registrations against freeze()
- Listing preserves registration order so introspection output is stable
"""

from __future__ import annotations

import logging
import threading
from typing import Iterator

from ..errors import ConfigurationError, DuplicateToolError, RegistryFrozenError
from .base import ToolDescriptor, ToolHandler, describe

logger = logging.getLogger("toolhost.registry")


class ToolRegistry:
    """
    Central registry for tool handlers.

    Provides:
    - Registration with duplicate rejection (no silent overwrite)
    - Lookup by name
    - Ordered listing of descriptors for platform introspection
    - Freezing once the app starts running
    """

    def __init__(self) -> None:
        self._tools: dict[str, ToolHandler] = {}
        self._frozen: bool = False
        self._write_lock: threading.Lock = threading.Lock()

    def register(self, handler: ToolHandler) -> None:
        """
        Register a tool handler.

        Raises:
            TypeError: handler does not expose name/description/schema/execute
            ConfigurationError: empty tool name
            DuplicateToolError: a tool with this name is already registered
            RegistryFrozenError: the registry has been frozen
        """
        if not isinstance(handler, ToolHandler):
            raise TypeError(
                f"Not a tool handler: {handler!r} "
                "(needs name, description, schema and execute)"
            )
        name = handler.name
        if not isinstance(name, str) or not name:
            raise ConfigurationError(f"Tool name must be a non-empty string, got {name!r}")

        with self._write_lock:
            if self._frozen:
                raise RegistryFrozenError(name)
            if name in self._tools:
                raise DuplicateToolError(name)
            self._tools[name] = handler
        logger.debug(f"Registered tool: {name}")

    def lookup(self, name: str) -> ToolHandler | None:
        """Get a tool by name."""
        return self._tools.get(name)

    def list(self) -> list[ToolDescriptor]:
        """Descriptors of all tools, in registration order."""
        return [describe(handler) for handler in self._tools.values()]

    def freeze(self) -> None:
        """Make the registry read-only. Idempotent."""
        with self._write_lock:
            if not self._frozen:
                self._frozen = True
                logger.debug(f"Registry frozen with {len(self._tools)} tool(s)")

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def names(self) -> list[str]:
        """All registered tool names, in registration order."""
        return list(self._tools)

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __iter__(self) -> Iterator[ToolHandler]:
        return iter(list(self._tools.values()))
