"""FastMCP server initialization for credentials-binding.

This module initializes the MCP server and manages shared resources via lifespan context.
All tool implementations are in the tools module.

Following the official Anthropic Python SDK patterns:
- Lifespan context manager for resource initialization and cleanup
- Context injection for tool access to shared resources
- FastMCP server with stdio transport
"""

import logging
import os
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from mcp.server.fastmcp import FastMCP

from .context import AppContext, AppContextType
from .engine import Launcher, create_default_registry
from .engine.secrets import BindingAuditLog, EnvVarSecretProvider, get_default_cipher

logger = logging.getLogger(__name__)

# =============================================================================
# Shared Resources and Lifespan Management
# =============================================================================


def get_command_timeout() -> int:
    """Get default command timeout from environment.

    Reads CREDENTIALS_COMMAND_TIMEOUT environment variable.
    Default: 120, Valid range: 1-3600 (clamped automatically)

    Returns:
        Command timeout in seconds (1-3600)
    """
    try:
        timeout = int(os.getenv("CREDENTIALS_COMMAND_TIMEOUT", "120"))
        return max(1, min(3600, timeout))
    except ValueError:
        return 120


@asynccontextmanager
async def app_lifespan(_server: FastMCP) -> AsyncIterator[AppContext]:
    """Manage application lifecycle with resource initialization and cleanup.

    This lifespan context manager:
    1. Initializes the secret provider and reports configured secret keys
    2. Loads the master key used to wrap persisted secrets
    3. Creates the binding registry, audit log and launcher
    4. Yields context to make resources available to tools

    Environment Variables:
        CREDENTIALS_SECRET_PREFIX: Prefix of secret environment variables
        CREDENTIALS_MASTER_KEY: Base64 master key (default: key file in state dir)
        CREDENTIALS_COMMAND_TIMEOUT: Default command timeout (default: 120)

    Args:
        _server: FastMCP server instance (unused, required by FastMCP signature)

    Yields:
        AppContext with initialized resources
    """
    logger.info("Initializing MCP server resources...")

    secret_provider = EnvVarSecretProvider()
    secret_keys = await secret_provider.list_secret_keys()

    logger.info(f"Secret provider: {secret_provider.__class__.__name__}")
    logger.info(f"Available secrets: {len(secret_keys)}")

    if len(secret_keys) == 0:
        logger.warning(
            f"No secrets configured. Use {secret_provider.prefix}* environment variables "
            "to provide secrets."
        )
    else:
        # Log secret keys (not values!) for debugging
        logger.debug(f"Secret keys: {', '.join(sorted(secret_keys))}")

    # Fail at startup rather than on first use if the master key is unusable
    get_default_cipher()

    command_timeout = get_command_timeout()
    if command_timeout != 120:
        logger.info(f"Using command timeout: {command_timeout}s")

    binding_registry = create_default_registry()
    logger.info(f"Binding types: {', '.join(binding_registry.list_types())}")

    audit_log = BindingAuditLog()

    app_context = AppContext(
        secret_provider=secret_provider,
        binding_registry=binding_registry,
        audit_log=audit_log,
        launcher=Launcher(),
        command_timeout=command_timeout,
    )

    try:
        yield app_context
    finally:
        logger.info("Shutting down MCP server...")
        summary = audit_log.get_summary()
        if summary["failed"]:
            logger.warning(f"Audit summary at shutdown: {summary}")


# Initialize MCP server with lifespan management
mcp = FastMCP("credentials_binding", lifespan=app_lifespan)


# =============================================================================
# Server Entry Point
# =============================================================================


def main() -> None:
    """Entry point for running the MCP server.

    This function is called when the server is run via:
    - python -m credentials_binding
    - credentials-binding (console script)

    Defaults to stdio transport for MCP protocol communication.
    """
    valid_log_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
    log_level_str = os.getenv("CREDENTIALS_LOG_LEVEL", "INFO").upper()

    if log_level_str not in valid_log_levels:
        print(
            f"Warning: Invalid CREDENTIALS_LOG_LEVEL '{log_level_str}'. "
            f"Valid levels: {', '.join(sorted(valid_log_levels))}. "
            "Using INFO.",
            file=sys.stderr,
        )
        log_level_str = "INFO"

    log_level = getattr(logging, log_level_str)

    # Configure logging to stderr (MCP requirement)
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )

    logger.info("Starting MCP server (press Ctrl+C to stop)...")

    try:
        mcp.run()
    except KeyboardInterrupt:
        logger.info("Received interrupt signal, shutting down gracefully...")
    except Exception as e:
        logger.exception(f"Server error: {e}")
        sys.exit(1)

    logger.info("Server shutdown complete")


__all__ = [
    "mcp",
    "main",
    "AppContext",
    "AppContextType",
    "get_command_timeout",
]
