"""State directory configuration and management.

Provides the location of on-disk state owned by credentials-binding.

Architecture:
    ~/.credentials-binding/       (or $CREDENTIALS_STATE_DIR)
      master.key                  # AES-256 key wrapping persisted secrets
"""

from __future__ import annotations

import os
from pathlib import Path


class StateConfig:
    """State directory configuration for credentials-binding.

    Example:
        state_dir = StateConfig.get_state_dir()
        # Returns: ~/.credentials-binding/

        # With CREDENTIALS_STATE_DIR=/var/lib/creds
        state_dir = StateConfig.get_state_dir()
        # Returns: /var/lib/creds/
    """

    @staticmethod
    def get_state_dir() -> Path:
        """Get state directory, creating it if it doesn't exist.

        Reads CREDENTIALS_STATE_DIR environment variable (~ is expanded).
        Default: ~/.credentials-binding/

        Returns:
            Path to state directory
        """
        override = os.getenv("CREDENTIALS_STATE_DIR", "").strip()
        if override:
            state_dir = Path(override).expanduser()
        else:
            state_dir = Path.home() / ".credentials-binding"

        state_dir.mkdir(parents=True, exist_ok=True, mode=0o700)
        return state_dir

    @staticmethod
    def get_master_key_path() -> Path:
        """Get path of the master key file used to wrap persisted secrets.

        Returns:
            Path to key file: <state dir>/master.key
        """
        return StateConfig.get_state_dir() / "master.key"


__all__ = ["StateConfig"]
