"""
Monitoring and Tracing Configuration Module.

Integrates Pydantic Logfire with the governance pipeline:
- Aggregate governance decisions (allowed / blocked, stage, reason)
- Tool invocations with latency and failure classification
- Policy change proposals and their regression guard outcome
- Error tracking

Every ``log_*`` helper is best effort: a Logfire failure is logged at DEBUG
and never reaches the caller.
"""

import logging
from typing import Any, Optional

import logfire
from logfire import SamplingOptions

from .config import LogfireConfig, get_settings

logger = logging.getLogger(__name__)


def initialize_logfire(config: Optional[LogfireConfig] = None) -> bool:
    """
    Initialize Pydantic Logfire for monitoring and tracing.

    Args:
        config: Logfire settings; read from the environment when omitted.

    Returns:
        True when Logfire was configured.
    """
    config = config or get_settings().logfire
    if not config.enabled:
        logger.info("Logfire monitoring is disabled. Set LOGFIRE_ENABLED=true to enable.")
        return False

    if not config.token:
        logger.warning(
            "Logfire is enabled but LOGFIRE_TOKEN is not set. "
            "Monitoring will not work. Set LOGFIRE_TOKEN to enable Logfire."
        )
        return False

    try:
        logfire.configure(
            token=config.token,
            service_name=config.service_name,
            service_version=config.service_version,
            environment=config.environment,
            sampling=SamplingOptions(head=config.sample_rate),
        )
    except Exception as e:
        logger.error(f"Failed to initialize Logfire: {e}", exc_info=True)
        return False

    if config.trace_sqlalchemy:
        try:
            logfire.instrument_sqlalchemy()
            logger.info("Logfire: SQLAlchemy instrumentation enabled")
        except Exception as e:
            logger.warning(f"Failed to instrument SQLAlchemy: {e}")

    logger.info(
        f"Logfire monitoring initialized: environment={config.environment}, service={config.service_name}"
    )
    return True


def log_governance_decision(
    identity_key: str,
    agent_id: str,
    allowed: bool,
    stage: str,
    reason: str,
    requires_human_review: bool = False,
) -> None:
    """
    Log one aggregate governance decision.

    Args:
        identity_key: The identity the decision was made for
        agent_id: The requesting agent
        allowed: Whether the action may proceed
        stage: The gate that decided (safety, economic, irreversibility, ...)
        reason: The stable reason code
        requires_human_review: Whether a human must look at it
    """
    try:
        logfire.info(
            "Governance decision",
            identity_key=identity_key,
            agent_id=agent_id,
            allowed=allowed,
            stage=stage,
            reason=reason,
            requires_human_review=requires_human_review,
        )
    except Exception:
        logger.debug(f"Could not log governance decision to Logfire: identity={identity_key}")


def log_tool_invocation(tool: str, request_id: str, ok: bool, latency_ms: int, failure_type: Optional[str] = None) -> None:
    """
    Log a tool invocation outcome.

    Args:
        tool: Tool name
        request_id: The call's request id
        ok: Whether the call succeeded
        latency_ms: Wall time of the invocation
        failure_type: Failure classification when the call failed
    """
    try:
        logfire.info(
            "Tool invocation completed",
            tool=tool,
            request_id=request_id,
            ok=ok,
            latency_ms=latency_ms,
            failure_type=failure_type,
        )
    except Exception:
        logger.debug(f"Could not log tool invocation to Logfire: tool={tool}")


def log_policy_change(version: str, adopted: bool, reason: str, pass_rate_delta: Optional[float] = None) -> None:
    try:
        logfire.info(
            "Policy change proposed",
            version=version,
            adopted=adopted,
            reason=reason,
            pass_rate_delta=pass_rate_delta,
        )
    except Exception:
        logger.debug(f"Could not log policy change to Logfire: version={version}")


def log_error(error_type: str, error_message: str, context: Optional[dict[str, Any]] = None) -> None:
    """
    Log an error with context for debugging.

    Args:
        error_type: Type of error
        error_message: Error message
        context: Additional context dictionary
    """
    try:
        logfire.error(
            f"{error_type}: {error_message}",
            **(context or {}),
        )
    except Exception:
        logger.debug(f"Could not log error to Logfire: {error_type}")
