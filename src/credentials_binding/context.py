"""Shared context types for MCP server.

This module contains context types used across server and tools modules,
separated to avoid circular imports.
"""

from dataclasses import dataclass

from mcp.server.fastmcp import Context
from mcp.server.session import ServerSession

from .engine import BindingRegistry, Launcher
from .engine.secrets import BindingAuditLog, SecretProvider


@dataclass
class AppContext:
    """Application context containing shared resources for MCP tools.

    Created during server startup and made available to all tools via
    dependency injection through the Context parameter.
    """

    secret_provider: SecretProvider
    binding_registry: BindingRegistry
    audit_log: BindingAuditLog
    launcher: Launcher
    command_timeout: int = 120  # Default timeout for with_credentials commands


# Type alias for MCP tool context parameter
AppContextType = Context[ServerSession, AppContext]


__all__ = ["AppContext", "AppContextType"]
