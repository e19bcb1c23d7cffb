"""
Mutation policy engine.

Decides whether a user data field may be written. Rules are checked in a
fixed order and the first decisive one wins:

1. Shared secret equal to the tenant's mutation key: allow, no identity
   needed.
2. No valid session: deny (unauthorized).
3. Field in the system tier: deny. This check is terminal, so a field that
   is also listed in the user or subscriber tier is still denied.
4. Field in the user tier: allow.
5. Field in the subscriber tier: the first matching rule decides. Allow
   only if the principal holds an active subscription to its product.
6. Anything else: deny.

Provider failures while checking a subscription propagate as
UpstreamFailureError rather than being folded into a deny.
"""

import enum
import hmac
import logging
from dataclasses import dataclass
from typing import Optional

from frontdoor.auth.principal import Principal
from frontdoor.auth.session import SessionResolver
from frontdoor.entitlements.service import EntitlementService
from frontdoor.tenants.models import FieldRule, TenantApp

logger = logging.getLogger(__name__)


class DecisionReason(str, enum.Enum):
    SHARED_SECRET = "shared_secret"
    UNAUTHENTICATED = "unauthenticated"
    SYSTEM_FIELD = "system_field"
    USER_FIELD = "user_field"
    SUBSCRIBED = "subscribed"
    NOT_SUBSCRIBED = "not_subscribed"
    NO_MATCHING_RULE = "no_matching_rule"


@dataclass(frozen=True)
class MutationRequest:
    """One requested field write, discarded after the decision."""

    tenant: TenantApp
    field: str
    value: str = ""
    shared_secret: Optional[str] = None
    session_token: Optional[str] = None
    target_user_id: Optional[str] = None


@dataclass(frozen=True)
class PolicyDecision:
    allowed: bool
    reason: DecisionReason
    principal: Optional[Principal] = None
    rule: Optional[FieldRule] = None

    @property
    def unauthenticated(self) -> bool:
        return self.reason == DecisionReason.UNAUTHENTICATED


def shared_secret_matches(tenant: TenantApp, secret: Optional[str]) -> bool:
    """Constant-time comparison; a tenant without a mutation key never matches."""
    if not secret or not tenant.mutation_key:
        return False
    return hmac.compare_digest(tenant.mutation_key.encode(), secret.encode())


class MutationPolicyEngine:
    """Evaluates MutationRequests against a tenant's field permission tiers."""

    def __init__(self, sessions: SessionResolver, entitlements: EntitlementService):
        self._sessions = sessions
        self._entitlements = entitlements

    def evaluate(self, request: MutationRequest) -> PolicyDecision:
        """
        Decide a mutation.

        Raises:
            UpstreamFailureError: If a subscription check cannot be completed
        """
        decision = self._evaluate(request)
        logger.info("Mutation decision", extra={
            "tenant_id": request.tenant.id,
            "field": request.field,
            "allowed": decision.allowed,
            "reason": decision.reason.value,
            "user_id": decision.principal.user_id if decision.principal else None,
        })
        return decision

    def _evaluate(self, request: MutationRequest) -> PolicyDecision:
        tenant = request.tenant

        if shared_secret_matches(tenant, request.shared_secret):
            return PolicyDecision(True, DecisionReason.SHARED_SECRET)

        principal = self._sessions.resolve_token(tenant, request.session_token)
        if principal is None:
            return PolicyDecision(False, DecisionReason.UNAUTHENTICATED)

        rules = tenant.mutable_fields

        for rule in rules.system:
            if rule.matches(request.field):
                return PolicyDecision(False, DecisionReason.SYSTEM_FIELD, principal, rule)

        for rule in rules.user:
            if rule.matches(request.field):
                return PolicyDecision(True, DecisionReason.USER_FIELD, principal, rule)

        for rule in rules.subscriber_only:
            if rule.matches(request.field):
                if self._entitlements.is_subscribed(tenant, principal, rule.product_id):
                    return PolicyDecision(True, DecisionReason.SUBSCRIBED, principal, rule)
                return PolicyDecision(False, DecisionReason.NOT_SUBSCRIBED, principal, rule)

        return PolicyDecision(False, DecisionReason.NO_MATCHING_RULE, principal)
