from __future__ import annotations

"""Agent and role-policy registries.

Both are plain objects handed to ``GovernanceGateway`` at construction time.
The economic gate resolves an agent's role through ``AgentRegistry.role_for``
and the identity's role policies through ``RolePolicyRegistry.policies_for``;
the tool runtime checks ``AgentRegistry.has`` before any tool runs.
"""

import threading
from typing import Dict, Iterable, List, Optional

from ..errors import PolicyConfigurationError
from ..policy.models import RolePolicy
from ..schemas.base import FrozenSchema


class AgentProfile(FrozenSchema):
    agent_id: str
    role: str
    display_name: Optional[str] = None


class AgentRegistry:
    """
    In-memory mapping of agent ids to profiles.

    Notes:
        - ``register`` overwrites any existing profile for the agent id.
        - ``get`` will raise ``KeyError`` if the agent is missing.
    """

    def __init__(self, profiles: Optional[Iterable[AgentProfile]] = None) -> None:
        self._lock = threading.Lock()
        self._agents: Dict[str, AgentProfile] = {}
        for profile in profiles or ():
            self.register(profile)

    def register(self, profile: AgentProfile) -> None:
        with self._lock:
            self._agents[profile.agent_id] = profile

    def get(self, agent_id: str) -> AgentProfile:
        """
        Retrieve a registered agent by id.

        Raises:
            KeyError: If no agent is registered with the given id.
        """
        with self._lock:
            profile = self._agents.get(agent_id)
        if profile is None:
            raise KeyError(f"unknown agent: {agent_id}")
        return profile

    def has(self, agent_id: str) -> bool:
        with self._lock:
            return agent_id in self._agents

    def role_for(self, agent_id: str) -> Optional[str]:
        """Return the agent's role, or None for an unregistered agent."""
        with self._lock:
            profile = self._agents.get(agent_id)
        return profile.role if profile else None

    def list(self) -> List[AgentProfile]:
        with self._lock:
            return list(self._agents.values())


class RolePolicyRegistry:
    """
    Role policies per identity, with a default set for identities that have none.

    An identity's own policies replace the defaults entirely; they are not merged.

    Raises:
        PolicyConfigurationError: A policy set names the same role twice.
    """

    def __init__(self, defaults: Optional[Iterable[RolePolicy]] = None) -> None:
        self._lock = threading.Lock()
        self._defaults: List[RolePolicy] = _unique_roles(defaults or ())
        self._by_identity: Dict[str, List[RolePolicy]] = {}

    def set_defaults(self, policies: Iterable[RolePolicy]) -> None:
        with self._lock:
            self._defaults = _unique_roles(policies)

    def set_policies(self, identity_key: str, policies: Iterable[RolePolicy]) -> None:
        with self._lock:
            self._by_identity[identity_key] = _unique_roles(policies)

    def clear_policies(self, identity_key: str) -> None:
        with self._lock:
            self._by_identity.pop(identity_key, None)

    def policies_for(self, identity_key: str) -> List[RolePolicy]:
        with self._lock:
            policies = self._by_identity.get(identity_key)
            return list(policies if policies is not None else self._defaults)


def _unique_roles(policies: Iterable[RolePolicy]) -> List[RolePolicy]:
    result = list(policies)
    seen: set[str] = set()
    for policy in result:
        if policy.role_id in seen:
            raise PolicyConfigurationError(f"duplicate role policy: {policy.role_id}")
        seen.add(policy.role_id)
    return result
