"""
Field mutation policy.
"""

from frontdoor.policy.engine import (
    DecisionReason,
    MutationPolicyEngine,
    MutationRequest,
    PolicyDecision,
)

__all__ = ["DecisionReason", "MutationPolicyEngine", "MutationRequest", "PolicyDecision"]
