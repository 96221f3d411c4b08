"""Credential binding audit logging.

Records every bind, unbind and rollback performed by a binding step, with the
run, binding type, variable names and outcome. Secret values and exception
messages are never recorded, only exception type names.

Features:
    - Structured event logging with Pydantic models
    - Filtering by run, binding type or action
    - Export to JSON format for external analysis
    - Logging to stderr only (MCP-safe)

Example:
    >>> audit_log = BindingAuditLog()
    >>> await audit_log.log_event(
    ...     run_id="build-42",
    ...     binding_type="string",
    ...     variables=["API_TOKEN"],
    ...     action="bind",
    ...     success=True,
    ... )
    >>> events = audit_log.get_events(run_id="build-42")
"""

import json
import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)

BindingAction = Literal["bind", "unbind", "rollback"]


class BindingEvent(BaseModel):
    """A single bind/unbind event in the audit log.

    Attributes:
        timestamp: ISO 8601 timestamp of the event
        run_id: Run the binding step belongs to
        binding_type: Type name of the binding (e.g. "string", "file")
        variables: Environment variable names involved
        action: "bind", "unbind" or "rollback"
        success: Whether the operation succeeded
        error_type: Exception type name if the operation failed
    """

    model_config = ConfigDict(frozen=True)

    timestamp: str = Field(description="ISO 8601 timestamp of the event")
    run_id: str = Field(description="Run the binding step belongs to")
    binding_type: str = Field(description="Type name of the binding")
    variables: list[str] = Field(default_factory=list, description="Variable names involved")
    action: BindingAction = Field(description="Operation performed")
    success: bool = Field(description="Whether the operation succeeded")
    error_type: str | None = Field(
        default=None,
        description="Exception type name if the operation failed",
    )


class BindingAuditLog:
    """In-memory audit log of credential bind/unbind operations.

    Attributes:
        events: List of all recorded events
    """

    def __init__(self) -> None:
        self.events: list[BindingEvent] = []

    async def log_event(
        self,
        run_id: str,
        binding_type: str,
        variables: list[str],
        action: BindingAction,
        success: bool,
        error_type: str | None = None,
    ) -> None:
        """Record one bind/unbind/rollback event and log it to stderr."""
        event = BindingEvent(
            timestamp=datetime.now(UTC).isoformat().replace("+00:00", "Z"),
            run_id=run_id,
            binding_type=binding_type,
            variables=variables,
            action=action,
            success=success,
            error_type=error_type,
        )
        self.events.append(event)

        log_level = logging.INFO if success else logging.WARNING
        status = "SUCCESS" if success else "FAILED"

        log_message = (
            f"Credential {action} [{status}]: run={run_id}, "
            f"type={binding_type}, variables={','.join(variables)}"
        )
        if error_type:
            log_message += f", error={error_type}"

        logger.log(log_level, log_message)

    def get_events(
        self,
        run_id: str | None = None,
        binding_type: str | None = None,
        action: BindingAction | None = None,
    ) -> list[BindingEvent]:
        """Query audit events; filters are combined with AND logic."""
        filtered_events = self.events

        if run_id is not None:
            filtered_events = [e for e in filtered_events if e.run_id == run_id]

        if binding_type is not None:
            filtered_events = [e for e in filtered_events if e.binding_type == binding_type]

        if action is not None:
            filtered_events = [e for e in filtered_events if e.action == action]

        return filtered_events

    async def export_to_file(self, file_path: str | Path) -> None:
        """Export audit events to a JSON file.

        Raises:
            IOError: If the file cannot be written
        """
        file_path = Path(file_path)
        file_path.parent.mkdir(parents=True, exist_ok=True)

        events_data: list[dict[str, Any]] = [event.model_dump() for event in self.events]

        with file_path.open("w") as f:
            json.dump(
                {
                    "audit_log_version": "1.0",
                    "total_events": len(events_data),
                    "events": events_data,
                },
                f,
                indent=2,
            )

        logger.info(f"Exported {len(events_data)} audit events to {file_path}")

    def clear(self) -> None:
        """Clear all audit events from memory."""
        event_count = len(self.events)
        self.events.clear()
        logger.info(f"Cleared {event_count} audit events from memory")

    def get_summary(self) -> dict[str, Any]:
        """Get aggregate statistics about recorded events.

        Example:
            >>> audit_log.get_summary()
            {
              "total_events": 6,
              "successful": 5,
              "failed": 1,
              "unique_runs": 2,
              "binding_types": ["file", "string"],
              "failed_unbinds": 1
            }
        """
        if not self.events:
            return {
                "total_events": 0,
                "successful": 0,
                "failed": 0,
                "unique_runs": 0,
                "binding_types": [],
                "failed_unbinds": 0,
            }

        successful = sum(1 for e in self.events if e.success)

        return {
            "total_events": len(self.events),
            "successful": successful,
            "failed": len(self.events) - successful,
            "unique_runs": len({e.run_id for e in self.events}),
            "binding_types": sorted({e.binding_type for e in self.events}),
            "failed_unbinds": sum(
                1 for e in self.events if e.action == "unbind" and not e.success
            ),
        }
