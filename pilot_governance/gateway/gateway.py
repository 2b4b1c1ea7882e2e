"""Governance gateway: the single entry point composing every gate.

``enforce_runtime_governance`` runs the safety gate, the economic gate, then
execution classification together with the stewardship guard, in that fixed
order, stopping at the first refusal. Every outcome lands in the identity's
decision log; allowed actions that name an action key also land in the
identity's execution ledger.

All identity-scoped state (safety budget, ledgers, stewardship state) lives in
maps keyed by identity and guarded by one re-entrant lock. Ledger "updates"
replace the stored state with the new value returned by the ledger functions.
"""

from __future__ import annotations

import logging
import threading
from functools import partial
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from ..cache.store import CacheStore
from ..core import monitoring
from ..core.config import Settings, get_settings
from ..core.logging_config import setup_logging
from ..economics.budget_state import EconomicAuditRecord, EconomicStateStore
from ..economics.gate import enforce_economic_gate
from ..errors import LedgerValidationError
from ..evaluation.harness import EvaluationLedger, check_regression_guard, run_evaluation_suite
from ..evaluation.models import EvaluationTask
from ..evaluation.tasks import EVALUATION_TASKS
from ..irreversibility.classification import evaluate_execution_decision
from ..irreversibility.models import ExecutionDecisionInput
from ..ledger.decisions import DecisionLogEntry, DecisionLogState, append_decision_entry, get_decision_log
from ..ledger.execution import (
    ExecutionLedgerState,
    ExecutionRecord,
    append_execution_record,
    get_execution_ledger,
    restore_execution_ledger,
)
from ..ledger.governance import (
    GovernanceDecisionInput,
    GovernanceDecisionRecord,
    GovernanceInitiator,
    GovernanceLedgerState,
    GovernanceStateEvaluation,
    append_governance_decision,
    evaluate_governance_state,
    get_governance_ledger,
)
from ..policy.kernel_lock import KERNEL_LOCKED, KernelLockState, get_kernel_lock_state
from ..policy.models import GovernancePolicy
from ..safety.budget import BudgetTracker
from ..safety.gate import evaluate_safety_gate
from ..schemas.domain import (
    AgentRuntimeContext,
    ApprovalGate,
    ExecutionScope,
    Initiator,
    IrreversibilityEvidence,
)
from ..stewardship.models import (
    EmergencyAction,
    EmergencyRecord,
    LaunchReadinessInput,
    StewardshipGuardDecision,
    StewardshipLogEntry,
    StewardshipRole,
    StewardshipState,
    StewardshipTransition,
)
from ..stewardship.state_machine import (
    apply_stewardship_handoff,
    apply_stewardship_reset,
    create_stewardship_state,
    evaluate_stewardship_guard,
    get_stewardship_ledger,
    record_emergency_action,
    restore_stewardship_state,
)
from ..tooling.adaptation import ToolRecommendation, ToolUsageStore, recommend_tool
from ..tooling.definition import ToolDefinition
from ..tooling.models import FailureType, ToolCall, ToolFailure, ToolResult, ToolStatus, ToolUsageEvent
from ..tooling.registry import ToolRegistry
from ..tooling.runtime import ToolInvokeContext, ToolUsageRecorder, invoke_tool
from .models import (
    GOVERNANCE_CONTEXT_REQUIRED,
    GOVERNANCE_OK,
    POLICY_ADOPTED,
    GovernanceDecision,
    GovernanceDetails,
    GovernanceStage,
    PolicyChangeOutcome,
)
from .registry import AgentRegistry, RolePolicyRegistry

logger = logging.getLogger(__name__)

TOOL_NOT_REGISTERED = "tool_not_registered"


class GovernanceGateway:
    """
    Composes the safety, economic, irreversibility and stewardship gates.

    Every collaborator is injected; nothing is looked up from module globals.

    Args:
        policy: The policy the gates run under; defaults to ``GovernancePolicy()``.
        tools: Registry used when ``invoke_tool`` is given a tool name.
        agents: Agent profiles; the economic gate resolves roles through it.
        role_policies: Role policies per identity. When omitted, a registry
            seeded with ``policy.economics.role_policies`` is created.
        kernel_lock: Lock state; while locked, policy changes are refused.
        economic_store / cache_store / usage_store: Shared stores, created when omitted.
        evaluation_tasks: Scenario battery used to vet policy changes.
        monitoring_enabled: Forward decisions to Logfire.
    """

    def __init__(
        self,
        policy: Optional[GovernancePolicy] = None,
        *,
        tools: Optional[ToolRegistry] = None,
        agents: Optional[AgentRegistry] = None,
        role_policies: Optional[RolePolicyRegistry] = None,
        kernel_lock: Optional[KernelLockState] = None,
        economic_store: Optional[EconomicStateStore] = None,
        cache_store: Optional[CacheStore] = None,
        usage_store: Optional[ToolUsageStore] = None,
        evaluation_tasks: Sequence[EvaluationTask] = EVALUATION_TASKS,
        monitoring_enabled: bool = False,
    ) -> None:
        self._lock = threading.RLock()
        self._policy = policy or GovernancePolicy()
        self.tools = tools or ToolRegistry()
        self.agents = agents or AgentRegistry()
        self.role_policies = role_policies or RolePolicyRegistry(self._policy.economics.role_policies)
        self.kernel_lock = kernel_lock or get_kernel_lock_state(is_production=False)
        self.economic_store = economic_store or EconomicStateStore(self._policy.economics)
        self.cache_store = cache_store or CacheStore()
        self.usage_store = usage_store or ToolUsageStore()
        self.evaluation_ledger = EvaluationLedger()
        self._evaluation_tasks = list(evaluation_tasks)
        self._monitoring = monitoring_enabled

        self._budgets: Dict[str, BudgetTracker] = {}
        self._execution: Dict[str, ExecutionLedgerState] = {}
        self._decisions: Dict[str, DecisionLogState] = {}
        self._stewardship: Dict[str, StewardshipState] = {}
        self._governance = GovernanceLedgerState()

    # ------------------------------------------------------------------
    # Identity-scoped state
    # ------------------------------------------------------------------

    @property
    def policy(self) -> GovernancePolicy:
        with self._lock:
            return self._policy

    def budget_for(self, identity_key: str) -> BudgetTracker:
        """Return the identity's safety budget tracker, creating it under the current limits."""
        with self._lock:
            tracker = self._budgets.get(identity_key)
            if tracker is None:
                tracker = BudgetTracker(self._policy.safety.limits, scope=identity_key)
                self._budgets[identity_key] = tracker
            return tracker

    def stewardship_state(self, identity_key: str) -> StewardshipState:
        with self._lock:
            return self._stewardship.get(identity_key) or create_stewardship_state()

    def execution_ledger(self, identity_key: str) -> List[ExecutionRecord]:
        with self._lock:
            state = self._execution.get(identity_key)
        return get_execution_ledger(state.records) if state else []

    def decision_log(self, identity_key: str) -> List[DecisionLogEntry]:
        with self._lock:
            state = self._decisions.get(identity_key)
        return get_decision_log(state.entries) if state else []

    def stewardship_ledger(self, identity_key: str) -> List[StewardshipLogEntry]:
        return get_stewardship_ledger(self.stewardship_state(identity_key).log)

    def governance_ledger(self) -> List[GovernanceDecisionRecord]:
        with self._lock:
            decisions = self._governance.decisions
        return get_governance_ledger(decisions)

    def governance_state(self) -> GovernanceStateEvaluation:
        return evaluate_governance_state(self.governance_ledger())

    def economic_audits(self, identity_key: str) -> List[EconomicAuditRecord]:
        return self.economic_store.audits(identity_key)

    def recommend_tool(self, tool: str) -> ToolRecommendation:
        return recommend_tool(tool, self.usage_store)

    def append_execution_record(
        self, identity_key: str, record_input: Union[Mapping[str, Any], Any]
    ) -> ExecutionRecord:
        """
        Append a record to the identity's execution ledger directly.

        Raises:
            LedgerValidationError: A required field is missing.
        """
        with self._lock:
            appended = append_execution_record(self._execution.get(identity_key), record_input)
            self._execution[identity_key] = appended.state
        return appended.record

    def restore_identity_ledgers(
        self,
        identity_key: str,
        execution_records: Sequence[ExecutionRecord] = (),
        stewardship_entries: Sequence[StewardshipLogEntry] = (),
    ) -> Tuple[int, int]:
        """
        Merge persisted ledger entries into the identity's state.

        Both clocks move past the restored stamps, so the next append gets a
        fresh stamp and record id. Stewardship activation is replayed from the
        merged log.

        Returns:
            How many execution records and stewardship entries were new.

        Raises:
            LedgerValidationError: A persisted entry conflicts with one this
                gateway already appended under the same id.
        """
        with self._lock:
            execution_before = self._execution.get(identity_key)
            stewardship_before = self._stewardship.get(identity_key)
            execution = restore_execution_ledger(execution_records, execution_before)
            stewardship = restore_stewardship_state(stewardship_entries, stewardship_before)
            self._execution[identity_key] = execution
            self._stewardship[identity_key] = stewardship
        new_records = len(execution.records) - (len(execution_before.records) if execution_before else 0)
        new_entries = len(stewardship.log) - (len(stewardship_before.log) if stewardship_before else 0)
        logger.debug(
            "Restored %d execution record(s) and %d stewardship entries for %s", new_records, new_entries, identity_key
        )
        return new_records, new_entries

    # ------------------------------------------------------------------
    # Aggregate governance
    # ------------------------------------------------------------------

    def enforce_runtime_governance(
        self,
        identity_key: str,
        context: Optional[AgentRuntimeContext],
        initiator: Union[Initiator, str] = Initiator.agent,
        *,
        record_usage: bool = True,
    ) -> GovernanceDecision:
        """
        Run every gate for one proposed action.

        Args:
            identity_key: The identity whose budgets and ledgers are used.
            context: The decision context. Missing context is refused.
            initiator: Who asked; a human retry of a blocked charge still
                replays the stored economic decision.
            record_usage: Debit the action's estimates from the safety budget
                when every gate passes. The debit re-checks the limits under
                the tracker's lock, so a concurrent decision that spent the
                remaining budget first turns this one into a safety refusal.
                ``invoke_tool`` turns this off because the tool runtime makes
                its own debit right before the tool runs.

        Returns:
            A ``GovernanceDecision``; this method does not raise for refusals.
        """
        who = Initiator(initiator)
        if context is None:
            logger.warning("Governance context missing for identity %s", identity_key)
            return self._finish(
                identity_key,
                None,
                who,
                allowed=False,
                stage=GovernanceStage.context,
                reason=GOVERNANCE_CONTEXT_REQUIRED,
                requires_human_review=True,
                details=GovernanceDetails(),
            )

        policy = self.policy
        budget = self.budget_for(identity_key)

        safety = evaluate_safety_gate(
            permission_tier=context.permission_tier,
            impact=context.resolved_impact,
            estimated_cost_cents=context.estimated_cost_cents,
            estimated_tokens=context.estimated_tokens,
            side_effect_count=context.side_effect_count,
            budget=budget,
            approval=context.approval,
            require_approval_for_irreversible=policy.safety.require_approval_for_irreversible,
        )
        details = GovernanceDetails(safety=safety)
        if not safety.allowed:
            return self._finish(
                identity_key,
                context,
                who,
                allowed=False,
                stage=GovernanceStage.safety,
                reason=safety.reason,
                requires_human_review=safety.required_approval,
                details=details,
            )

        economic = enforce_economic_gate(
            identity_key,
            context,
            who,
            store=self.economic_store,
            agents=self.agents,
            role_policies=self.role_policies,
        )
        priced = economic.context
        details = details.model_copy(update={"economic": economic})
        if not economic.allowed:
            return self._finish(
                identity_key,
                priced,
                who,
                allowed=False,
                stage=GovernanceStage.economic,
                reason=economic.reason,
                requires_human_review=economic.requires_human_review,
                details=details,
            )

        evidence = priced.irreversibility or IrreversibilityEvidence()
        human_approval, actor_role = _approval_evidence(evidence, priced.approval)
        execution = evaluate_execution_decision(
            ExecutionDecisionInput(
                action_key=evidence.action_key or priced.decision_type,
                action_impact=priced.resolved_impact,
                scope=evidence.scope,
                invariants_passed=evidence.invariants_passed,
                constitution_passed=evidence.constitution_passed,
                auto_execute_requested=evidence.auto_execute_requested,
                evidence=list(evidence.evidence),
                staged_rollout=evidence.staged_rollout,
                human_approval=human_approval,
                rationale=evidence.rationale,
                cooling_off_window=evidence.cooling_off_window,
                time_delay=evidence.time_delay,
                time_delay_elapsed=evidence.time_delay_elapsed,
                drift_score=evidence.drift_score,
                drift_score_threshold=policy.irreversibility.drift_score_threshold,
                mock_mode=policy.irreversibility.mock_mode,
                declared_optimization_targets=list(evidence.declared_optimization_targets),
                irreversibility_map=policy.irreversibility.irreversibility_map,
            )
        )
        details = details.model_copy(update={"execution": execution})
        if not execution.allowed:
            return self._finish(
                identity_key,
                priced,
                who,
                allowed=False,
                stage=GovernanceStage.irreversibility,
                reason=execution.reasons[0],
                reasons=execution.reasons,
                requires_human_review=True,
                details=details,
            )

        guard = evaluate_stewardship_guard(
            stewardship_active=self.stewardship_state(identity_key).stewardship_active,
            action_impact=priced.resolved_impact,
            human_approval=human_approval,
            actor_role=actor_role,
            invariants_passed=evidence.invariants_passed,
            constitution_passed=evidence.constitution_passed,
        )
        details = details.model_copy(update={"stewardship_guard": guard})
        if not guard.ok:
            return self._finish(
                identity_key,
                priced,
                who,
                allowed=False,
                stage=GovernanceStage.stewardship,
                reason=guard.reasons[0],
                reasons=guard.reasons,
                requires_human_review=True,
                details=details,
            )

        if record_usage:
            exceeded = budget.reserve(
                cost_cents=priced.estimated_cost_cents,
                tokens=priced.estimated_tokens,
                side_effects=priced.side_effect_count,
            )
            if exceeded is not None:
                return self._finish(
                    identity_key,
                    priced,
                    who,
                    allowed=False,
                    stage=GovernanceStage.safety,
                    reason=exceeded,
                    details=details,
                )

        record: Optional[ExecutionRecord] = None
        if evidence.action_key:
            record = self.append_execution_record(
                identity_key,
                {
                    "action_key": evidence.action_key,
                    "action_impact": priced.resolved_impact.value,
                    "intent_id": evidence.intent_id or priced.goal_id or f"intent:{priced.task_id or priced.decision_type}",
                    "scope": evidence.scope.value,
                    "actor_role": actor_role,
                    "human_approval": human_approval,
                    "rationale": evidence.rationale,
                    "cooling_off_window": evidence.cooling_off_window,
                    "evidence": list(evidence.evidence),
                },
            )

        return self._finish(
            identity_key,
            priced,
            who,
            allowed=True,
            stage=GovernanceStage.complete,
            reason=GOVERNANCE_OK,
            details=details,
            execution_record=record,
        )

    def _finish(
        self,
        identity_key: str,
        context: Optional[AgentRuntimeContext],
        initiator: Initiator,
        *,
        allowed: bool,
        stage: GovernanceStage,
        reason: str,
        details: GovernanceDetails,
        requires_human_review: bool = False,
        reasons: Sequence[str] = (),
        execution_record: Optional[ExecutionRecord] = None,
    ) -> GovernanceDecision:
        all_reasons = tuple(reasons) or (reason,)
        with self._lock:
            state, entry = append_decision_entry(
                self._decisions.get(identity_key),
                identity_key=identity_key,
                agent_id=context.agent_id if context else "unknown",
                initiator=initiator,
                allowed=allowed,
                stage=stage.value,
                reason=reason,
                requires_human_review=requires_human_review,
                reasons=all_reasons,
                decision_type=context.decision_type if context else "",
                action_domain=context.action_domain if context else "",
                impact=context.impact if context else None,
                charge_id=details.economic.audit.charge_id if details.economic else None,
                execution_record_id=execution_record.record_id if execution_record else None,
            )
            self._decisions[identity_key] = state

        if allowed:
            logger.debug("Governance allowed %s for %s", entry.decision_type or "<action>", identity_key)
        else:
            logger.info("Governance blocked at %s for %s: %s", stage.value, identity_key, reason)
        if self._monitoring:
            monitoring.log_governance_decision(
                identity_key, entry.agent_id, allowed, stage.value, reason, requires_human_review
            )
        return GovernanceDecision(
            allowed=allowed,
            reason=reason,
            stage=stage,
            requires_human_review=requires_human_review,
            reasons=all_reasons,
            details=details,
            context=context,
            decision_entry=entry,
            execution_record=execution_record,
        )

    # ------------------------------------------------------------------
    # Tools
    # ------------------------------------------------------------------

    async def invoke_tool(
        self,
        tool: Union[ToolDefinition, str],
        call: Union[ToolCall, Mapping[str, Any]],
        context: Optional[AgentRuntimeContext],
        *,
        identity_key: str,
        initiator: Union[Initiator, str] = Initiator.agent,
        approval: Optional[ApprovalGate] = None,
        record_usage: Optional[ToolUsageRecorder] = None,
        enforce_governance: bool = True,
    ) -> ToolResult:
        """
        Invoke a tool through the runtime with this gateway's gates and stores.

        Args:
            tool: A definition, or the name of a registered tool.
            call: The tool call.
            context: The caller's runtime context.
            identity_key: The identity the call is charged to.
            initiator: Who asked.
            approval: Human approval for the safety gate.
            record_usage: Extra usage recorder; the gateway's usage store is always fed.
            enforce_governance: Run ``enforce_runtime_governance`` as the
                runtime's governance callback.

        Returns:
            A terminal ``ToolResult``; this method does not raise.
        """
        definition = tool if isinstance(tool, ToolDefinition) else None
        if definition is None:
            if not self.tools.has(str(tool)):
                return _unregistered_tool_result(str(tool), call)
            definition = self.tools.get(str(tool))

        if approval is not None and context is not None and context.approval is None:
            context = context.model_copy(update={"approval": approval})
        policy = self.policy
        recorder = self.usage_store.record if record_usage is None else _fan_out(self.usage_store.record, record_usage)
        result = await invoke_tool(
            definition,
            call,
            ToolInvokeContext(
                identity_key=identity_key,
                agent_context=context,
                budget=self.budget_for(identity_key),
                agents=self.agents,
                initiator=Initiator(initiator),
                approval=approval,
                timeout_seconds=policy.tool_timeout_seconds,
                enforce_governance=partial(self.enforce_runtime_governance, record_usage=False)
                if enforce_governance
                else None,
                cache_store=self.cache_store,
                cache_policy=policy.cache,
                require_approval_for_irreversible=policy.safety.require_approval_for_irreversible,
            ),
            record_usage=recorder,
        )
        if self._monitoring:
            monitoring.log_tool_invocation(
                result.tool,
                result.request_id,
                result.ok,
                result.metrics.latency_ms,
                result.failure.type.value if result.failure else None,
            )
            if result.failure is not None and result.failure.type == FailureType.tool_runtime_error:
                monitoring.log_error(
                    "ToolRuntimeError",
                    result.failure.message,
                    {"tool": result.tool, "request_id": result.request_id, "identity_key": identity_key},
                )
        return result

    # ------------------------------------------------------------------
    # Policy changes
    # ------------------------------------------------------------------

    async def propose_policy_change(
        self,
        candidate: GovernancePolicy,
        *,
        justification: str,
        intent_id: str,
        initiator: Union[GovernanceInitiator, str] = GovernanceInitiator.human,
        affected_invariants: Sequence[str] = (),
    ) -> PolicyChangeOutcome:
        """
        Adopt ``candidate`` only if the scenario battery does not regress under it.

        While the kernel lock is held the call is a no-op returning
        ``kernel_locked``. Otherwise the battery runs under the current and
        the candidate policy; a regression refuses the change. An adopted
        change is recorded in the governance ledger as a system-scope decision.

        Raises:
            LedgerValidationError: ``justification`` or ``intent_id`` is empty,
                or an invariant id is unknown.
        """
        current = self.policy
        if self.kernel_lock.locked:
            logger.info("Policy change to %s refused: kernel locked", candidate.version)
            return PolicyChangeOutcome(adopted=False, reason=KERNEL_LOCKED, policy_version=current.version)

        if not (justification or "").strip():
            raise LedgerValidationError("justification is required for policy changes.", field="justification")
        if not (intent_id or "").strip():
            raise LedgerValidationError("intent_id is required for policy changes.", field="intent_id")
        decision_input = GovernanceDecisionInput(
            scope=ExecutionScope.system.value,
            initiator=GovernanceInitiator(initiator).value,
            justification=justification,
            intent_id=intent_id,
            requires_human_approval=True,
            affected_invariants=list(affected_invariants),
            decision_key=f"policy:{candidate.version}",
            payload={"from_version": current.version, "to_version": candidate.version},
        )
        baseline = await run_evaluation_suite(self._evaluation_tasks, current)
        proposed = await run_evaluation_suite(self._evaluation_tasks, candidate)
        self.evaluation_ledger.record(baseline)
        self.evaluation_ledger.record(proposed)
        guard = check_regression_guard(baseline, proposed)

        if not guard.allowed:
            logger.info(
                "Policy change to %s refused: %s (regressed=%s)",
                candidate.version,
                guard.reason,
                ", ".join(guard.diff.regressed) or "-",
            )
            outcome = PolicyChangeOutcome(
                adopted=False,
                reason=guard.reason,
                policy_version=current.version,
                guard=guard,
                baseline=baseline,
                candidate=proposed,
            )
        else:
            with self._lock:
                appended = append_governance_decision(self._governance, decision_input)
                self._governance = appended.state
                self._apply_policy(candidate)
            logger.info("Policy %s adopted (was %s)", candidate.version, current.version)
            outcome = PolicyChangeOutcome(
                adopted=True,
                reason=POLICY_ADOPTED,
                policy_version=candidate.version,
                guard=guard,
                baseline=baseline,
                candidate=proposed,
                governance_record=appended.decision,
            )

        if self._monitoring:
            monitoring.log_policy_change(candidate.version, outcome.adopted, outcome.reason, guard.pass_rate_delta)
        return outcome

    def _apply_policy(self, policy: GovernancePolicy) -> None:
        self._policy = policy
        self.economic_store.set_policy(policy.economics)
        self.role_policies.set_defaults(policy.economics.role_policies)
        for identity_key, tracker in list(self._budgets.items()):
            self._budgets[identity_key] = BudgetTracker(policy.safety.limits, scope=identity_key, state=tracker.state)

    # ------------------------------------------------------------------
    # Stewardship
    # ------------------------------------------------------------------

    def apply_stewardship_handoff(
        self, identity_key: str, handoff_input: Union[LaunchReadinessInput, Mapping[str, Any]]
    ) -> StewardshipTransition:
        data = (
            dict(handoff_input)
            if not isinstance(handoff_input, LaunchReadinessInput)
            else handoff_input.model_dump()
        )
        policy = self.policy
        data.setdefault("drift_warning_threshold", policy.stewardship.drift_warning_threshold)
        data.setdefault("mock_mode", policy.irreversibility.mock_mode)
        with self._lock:
            transition = apply_stewardship_handoff(self._stewardship.get(identity_key), data)
            self._stewardship[identity_key] = transition.state
        return transition

    def apply_stewardship_reset(
        self,
        identity_key: str,
        *,
        explanation: str,
        human_approval: bool = False,
        actor_role: Union[StewardshipRole, str] = StewardshipRole.founder_steward,
    ) -> StewardshipTransition:
        with self._lock:
            transition = apply_stewardship_reset(
                self._stewardship.get(identity_key),
                explanation=explanation,
                human_approval=human_approval,
                actor_role=actor_role,
            )
            self._stewardship[identity_key] = transition.state
        return transition

    def record_emergency_action(
        self,
        identity_key: str,
        *,
        actor_role: Union[StewardshipRole, str],
        emergency_action: Union[EmergencyAction, str],
        explanation: str,
    ) -> EmergencyRecord:
        with self._lock:
            record = record_emergency_action(
                self._stewardship.get(identity_key),
                actor_role=actor_role,
                emergency_action=emergency_action,
                explanation=explanation,
            )
            self._stewardship[identity_key] = record.state
        return record

    def evaluate_stewardship_guard(
        self, identity_key: str, *, action_impact: Any, **kwargs: Any
    ) -> StewardshipGuardDecision:
        return evaluate_stewardship_guard(
            stewardship_active=self.stewardship_state(identity_key).stewardship_active,
            action_impact=action_impact,
            **kwargs,
        )


def _approval_evidence(
    evidence: IrreversibilityEvidence, approval: Optional[ApprovalGate]
) -> tuple[bool, Optional[str]]:
    """Human approval counts when either the evidence or an approved gate says so."""
    approved_gate = approval is not None and approval.approved
    human_approval = evidence.human_approval or approved_gate
    actor_role = evidence.actor_role or (approval.approver_role if approved_gate and approval else None)
    return human_approval, actor_role


def _fan_out(*recorders: ToolUsageRecorder) -> ToolUsageRecorder:
    def _record(event: ToolUsageEvent) -> None:
        for recorder in recorders:
            recorder(event)

    return _record


def _unregistered_tool_result(name: str, call: Union[ToolCall, Mapping[str, Any]]) -> ToolResult:
    logger.info("Tool %s is not registered", name)
    request_id = call.request_id if isinstance(call, ToolCall) else str(call.get("request_id") or "unknown")
    return ToolResult(
        request_id=request_id,
        tool=name,
        status=ToolStatus.failure,
        failure=ToolFailure(type=FailureType.policy_blocked, message=TOOL_NOT_REGISTERED, retryable=False),
    )


def build_gateway_from_settings(
    settings: Optional[Settings] = None,
    *,
    tools: Optional[ToolRegistry] = None,
    agents: Optional[AgentRegistry] = None,
    role_policies: Optional[RolePolicyRegistry] = None,
    configure_logging: bool = True,
) -> GovernanceGateway:
    """
    Build a gateway from environment settings.

    Configures logging and Logfire, resolves the kernel lock and builds the
    default policy.
    """
    settings = settings or get_settings()
    if configure_logging:
        log = settings.logging
        setup_logging(log.level, log.format, enable_file=log.enable_file, log_file_dir=log.file_dir)
    monitoring_enabled = monitoring.initialize_logfire(settings.logfire)
    return GovernanceGateway(
        settings.to_policy(),
        tools=tools,
        agents=agents,
        role_policies=role_policies,
        kernel_lock=get_kernel_lock_state(is_production=settings.is_production, override=settings.kernel_lock),
        monitoring_enabled=monitoring_enabled,
    )
