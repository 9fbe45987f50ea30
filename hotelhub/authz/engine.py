"""Authorization engine.

Evaluates (resource, action, scope) requests for a principal inside a
resolved tenant context, combining role grants (RBAC) with grant
conditions (ABAC) and a tenant-boundary check on the target resource.
"""

from __future__ import annotations

import fnmatch
import hashlib
import json
import logging
from datetime import datetime, UTC
from typing import Callable, Iterable, NamedTuple

from fastapi import Request
from pydantic import BaseModel

from hotelhub.audit import AuditEventType, AuditLog, AuditSeverity
from hotelhub.auth.models import AuthenticatedUser
from hotelhub.authz.cache import PermissionCache
from hotelhub.authz.conditions import ConditionEngine, is_time_dependent
from hotelhub.authz.models import (
    AuthzDecision,
    DenyReason,
    Permission,
    ResourceAttributes,
    Scope,
    SystemRole,
    scope_covers,
)
from hotelhub.authz.registry import RoleRegistry
from hotelhub.errors import PermissionDenied
from hotelhub.tenancy.context import TenantContext

logger = logging.getLogger(__name__)


class PermissionCheck(BaseModel):
    """One entry of a bulk permission check."""

    resource: str
    action: str
    scope: Scope
    target: ResourceAttributes | None = None


class _Evaluation(NamedTuple):
    decision: AuthzDecision
    cacheable: bool
    max_age: float | None


class AuthzEngine:
    """Permission evaluator.

    Evaluation order:
    1. Platform administrators are allowed, unless the action is non-bypassable
    2. Grants matching resource/action at a scope at least as broad as required
    3. Expired grants dropped, grant conditions evaluated
    4. Target resource compared with the tenant context at the required scope
    5. Default deny

    Usage:
        engine = AuthzEngine(registry, cache=PermissionCache())
        decision = await engine.evaluate(user, "payslip", "read", Scope.DEPARTMENT, target)
        if not decision.allowed:
            ...
    """

    def __init__(
        self,
        registry: RoleRegistry,
        conditions: ConditionEngine | None = None,
        cache: PermissionCache | None = None,
        non_bypassable: Iterable[str] = (),
        audit: AuditLog | None = None,
        audit_denials: bool = True,
        clock: Callable[[], datetime] | None = None,
    ):
        self.registry = registry
        self.conditions = conditions or ConditionEngine()
        self.cache = cache
        self.non_bypassable = tuple(non_bypassable)
        self.audit = audit
        self.audit_denials = audit_denials
        self._clock = clock or (lambda: datetime.now(UTC))

        logger.info(
            "AuthzEngine initialized (cache=%s, non-bypassable=%s)",
            "on" if cache is not None and cache.enabled else "off",
            ",".join(self.non_bypassable) or "none",
        )

    def is_non_bypassable(self, resource: str, action: str) -> bool:
        """Match `resource.action` against the configured patterns (`*` allowed)."""
        name = f"{resource}.{action}"
        return any(fnmatch.fnmatchcase(name, pattern) for pattern in self.non_bypassable)

    async def evaluate(
        self,
        principal: AuthenticatedUser,
        resource: str,
        action: str,
        required_scope: Scope,
        target: ResourceAttributes | None = None,
        *,
        context: TenantContext | None = None,
    ) -> AuthzDecision:
        """Evaluate a request and return Allow or Deny(reason).

        `context` should be the request's resolved TenantContext; without one
        the principal's own context is built.
        """
        if context is None:
            context = TenantContext.for_principal(principal)

        permission = Permission(resource=resource, action=action, scope=required_scope)

        key = None
        if self.cache is not None:
            key = self.cache.make_key(
                context.user_id,
                resource,
                action,
                required_scope.value,
                self._fingerprint(context, target),
            )
            cached = await self.cache.get(key)
            if cached is not None:
                return cached.model_copy(update={"cached": True})

        result = self._decide(context, permission, target, self._clock())

        if key is not None and result.cacheable:
            await self.cache.set(key, context.user_id, result.decision, result.max_age)

        return result.decision

    async def authorize(
        self,
        principal: AuthenticatedUser,
        resource: str,
        action: str,
        required_scope: Scope,
        target: ResourceAttributes | None = None,
        *,
        context: TenantContext | None = None,
        correlation_id: str | None = None,
    ) -> AuthzDecision:
        """Evaluate and record the outcome.

        Denials are logged with their specific reason and audit-logged; the
        caller is expected to surface only a generic "forbidden".
        """
        if context is None:
            context = TenantContext.for_principal(principal)

        decision = await self.evaluate(
            principal, resource, action, required_scope, target, context=context
        )

        if decision.allowed:
            logger.debug(
                "Authorization granted: user=%s permission=%s role=%s bypass=%s",
                context.user_id,
                decision.permission.key,
                decision.matched_role,
                decision.bypass,
            )
            return decision

        logger.info(
            "Authorization denied: user=%s org=%s permission=%s reason=%s",
            context.user_id,
            context.organization_id,
            decision.permission.key,
            decision.reason.value,
        )
        if self.audit is not None and self.audit_denials:
            await self.audit.record(
                organization_id=context.organization_id,
                property_id=context.property_id,
                event_type=AuditEventType.AUTHZ_DENIED,
                severity=AuditSeverity.WARNING,
                actor_id=context.user_id,
                action=f"Denied {decision.permission.key}",
                entity_type=resource,
                entity_id=target.resource_id if target else None,
                source="authz.engine",
                payload={"reason": decision.reason.value},
                correlation_id=correlation_id,
            )
        return decision

    async def enforce(
        self,
        principal: AuthenticatedUser,
        resource: str,
        action: str,
        required_scope: Scope,
        target: ResourceAttributes | None = None,
        *,
        context: TenantContext | None = None,
        correlation_id: str | None = None,
    ) -> AuthzDecision:
        """Authorize, raising PermissionDenied on deny."""
        decision = await self.authorize(
            principal,
            resource,
            action,
            required_scope,
            target,
            context=context,
            correlation_id=correlation_id,
        )
        if not decision.allowed:
            raise PermissionDenied(decision.reason, decision.permission.key)
        return decision

    async def check_many(
        self,
        principal: AuthenticatedUser,
        checks: Iterable[PermissionCheck],
        *,
        context: TenantContext | None = None,
    ) -> list[AuthzDecision]:
        """Evaluate several requests for one principal, in order."""
        if context is None:
            context = TenantContext.for_principal(principal)
        return [
            await self.evaluate(
                principal, c.resource, c.action, c.scope, c.target, context=context
            )
            for c in checks
        ]

    # =========================================================================
    # Decision
    # =========================================================================

    def _decide(
        self,
        context: TenantContext,
        permission: Permission,
        target: ResourceAttributes | None,
        now: datetime,
    ) -> _Evaluation:
        if context.effective_role == SystemRole.PLATFORM_ADMIN and not self.is_non_bypassable(
            permission.resource, permission.action
        ):
            # Acting as a tenant keeps the bypass inside that tenant only
            if context.acting_as and not self._within_acting_tenant(context, target):
                return _Evaluation(
                    AuthzDecision.deny(permission, DenyReason.TENANT_BOUNDARY_VIOLATION),
                    cacheable=True,
                    max_age=None,
                )
            return _Evaluation(
                AuthzDecision.allow(permission, matched_role=SystemRole.PLATFORM_ADMIN.value, bypass=True),
                cacheable=True,
                max_age=None,
            )

        candidates = [
            (role, grant)
            for role, grant in self.registry.grants_for(context)
            if grant.permission.matches(permission.resource, permission.action)
            and scope_covers(grant.permission.scope, permission.scope)
        ]
        if not candidates:
            return _Evaluation(
                AuthzDecision.deny(permission, DenyReason.NO_MATCHING_PERMISSION),
                cacheable=True,
                max_age=None,
            )

        # Decisions that depend on the clock are recomputed every time; others
        # must not outlive the earliest pending expiry among the candidates.
        cacheable = not any(is_time_dependent(g.condition) for _, g in candidates)
        pending = [
            (g.expires_at - now).total_seconds()
            for _, g in candidates
            if g.expires_at is not None and g.expires_at > now
        ]
        max_age = min(pending) if pending else None

        live = [(r, g) for r, g in candidates if not g.is_expired(now)]
        if not live:
            return _Evaluation(
                AuthzDecision.deny(permission, DenyReason.EXPIRED), cacheable, max_age
            )

        passing = [
            (r, g) for r, g in live
            if self.conditions.evaluate(g.condition, target, context, now)
        ]
        if not passing:
            return _Evaluation(
                AuthzDecision.deny(permission, DenyReason.CONDITION_FAILED), cacheable, max_age
            )

        boundary = self._check_boundary(context, target, permission.scope)
        if boundary is not None:
            return _Evaluation(AuthzDecision.deny(permission, boundary), cacheable, max_age)

        role, grant = max(passing, key=lambda p: p[0].priority)
        return _Evaluation(
            AuthzDecision.allow(permission, matched_role=role.role_id, matched_grant=grant.grant_id),
            cacheable,
            max_age,
        )

    @staticmethod
    def _within_acting_tenant(context: TenantContext, target: ResourceAttributes | None) -> bool:
        if target is None:
            return True
        if target.organization_id != context.organization_id:
            return False
        return context.property_id is None or target.property_id == context.property_id

    @staticmethod
    def _check_boundary(
        context: TenantContext,
        target: ResourceAttributes | None,
        scope: Scope,
    ) -> DenyReason | None:
        """Compare the target's tenancy with the context at the required breadth.

        Missing tenancy on the target counts as a mismatch.
        """
        if target is None or context.unscoped or scope == Scope.PLATFORM:
            return None

        if target.organization_id != context.organization_id:
            return DenyReason.TENANT_BOUNDARY_VIOLATION

        if scope == Scope.OWN:
            # An own-scope grant simply does not cover someone else's record
            if target.owner_id != context.user_id:
                return DenyReason.NO_MATCHING_PERMISSION
            return None

        if scope in (Scope.PROPERTY, Scope.DEPARTMENT):
            if context.property_id is None or target.property_id != context.property_id:
                return DenyReason.TENANT_BOUNDARY_VIOLATION

        if scope == Scope.DEPARTMENT:
            if context.department_id is None or target.department_id != context.department_id:
                return DenyReason.TENANT_BOUNDARY_VIOLATION

        return None

    @staticmethod
    def _fingerprint(context: TenantContext, target: ResourceAttributes | None) -> str:
        content = {
            "context": context.fingerprint(),
            "target": target.model_dump(mode="json") if target is not None else None,
        }
        digest = hashlib.sha256(json.dumps(content, sort_keys=True, default=str).encode())
        return digest.hexdigest()[:32]


# =============================================================================
# FastAPI integration
# =============================================================================


def require_permission(resource: str, action: str, scope: Scope):
    """FastAPI dependency enforcing a permission for the current request.

    Returns the request's TenantContext so handlers can pass it on.

    Usage:
        @router.get("/staff")
        async def list_staff(
            context: TenantContext = Depends(require_permission("user", "read", Scope.DEPARTMENT)),
        ):
            ...
    """
    async def dependency(request: Request) -> TenantContext:
        from hotelhub.auth.middleware import get_current_user
        from hotelhub.tenancy.middleware import get_tenant_context

        user = get_current_user(request)
        context = get_tenant_context(request)
        engine: AuthzEngine = request.app.state.services.engine
        await engine.enforce(
            user,
            resource,
            action,
            scope,
            context=context,
            correlation_id=request.headers.get("X-Request-ID"),
        )
        return context

    return dependency
