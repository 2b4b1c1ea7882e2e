"""Error types for the governance core.

Gates never raise for expected outcomes: they return structured decisions.
The exceptions below signal programmer errors only, such as appending a ledger
entry without a required field or executing a governed tool directly.
"""

from __future__ import annotations


class GovernanceError(Exception):
    """Base error for all governance core exceptions."""


class LedgerValidationError(GovernanceError, ValueError):
    """Raised when a ledger append is missing a required field or carries an invalid value."""

    def __init__(self, message: str, *, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class ToolGuardError(GovernanceError, RuntimeError):
    """Raised when a governed tool is executed outside of ``invoke_tool``."""

    def __init__(self, tool_name: str, reason: str) -> None:
        super().__init__(f"Tool '{tool_name}' refused to execute: {reason}")
        self.tool_name = tool_name
        self.reason = reason


class PolicyConfigurationError(GovernanceError, ValueError):
    """Raised when a governance policy or registry is configured inconsistently."""
