"""Append-only, logically clocked ledgers."""

from .clock import (
    advance_clock as advance_logical_clock,
    compare_logical_time,
    format_logical_time,
    parse_logical_time,
    sort_by_logical_time,
    stamp_entry,
)
from .decisions import DecisionLogEntry, DecisionLogState, append_decision_entry, get_decision_log
from .execution import (
    EXECUTION_CLOCK_PREFIX,
    AppendResult,
    advance_clock,
    ExecutionLedgerState,
    ExecutionRecord,
    ExecutionRecordInput,
    append_execution_record,
    create_execution_ledger_state,
    get_execution_ledger,
    restore_execution_ledger,
)
from .governance import (
    GOVERNANCE_CLOCK_PREFIX,
    GovernanceAppendResult,
    GovernanceConflict,
    GovernanceDecisionInput,
    GovernanceDecisionRecord,
    GovernanceInitiator,
    GovernanceLedgerState,
    GovernanceMode,
    GovernanceStateEvaluation,
    append_governance_decision,
    can_execute_decision,
    detect_governance_conflicts,
    evaluate_governance_state,
    get_governance_ledger,
)

__all__ = [
    "advance_logical_clock",
    "compare_logical_time",
    "format_logical_time",
    "parse_logical_time",
    "sort_by_logical_time",
    "stamp_entry",
    "DecisionLogEntry",
    "DecisionLogState",
    "append_decision_entry",
    "get_decision_log",
    "EXECUTION_CLOCK_PREFIX",
    "AppendResult",
    "advance_clock",
    "ExecutionLedgerState",
    "ExecutionRecord",
    "ExecutionRecordInput",
    "append_execution_record",
    "create_execution_ledger_state",
    "get_execution_ledger",
    "restore_execution_ledger",
    "GOVERNANCE_CLOCK_PREFIX",
    "GovernanceAppendResult",
    "GovernanceConflict",
    "GovernanceDecisionInput",
    "GovernanceDecisionRecord",
    "GovernanceInitiator",
    "GovernanceLedgerState",
    "GovernanceMode",
    "GovernanceStateEvaluation",
    "append_governance_decision",
    "can_execute_decision",
    "detect_governance_conflicts",
    "evaluate_governance_state",
    "get_governance_ledger",
]
