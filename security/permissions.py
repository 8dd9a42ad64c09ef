"""
Permission System
-----------------
Operation classification and policy evaluation for tool calls.
Default deny for unrecognized operations. No role inference.

Every decision is emitted as an audit event with its reason.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union
import logging
import re

from pydantic import BaseModel, Field, ValidationError

from infra.audit import Actor, AuditLog, EventType, record_audit_event
from security.patterns import match_pattern, normalize_resource


ADMIN_PERMISSION = "admin"


class OperationKind(str, Enum):
    """Coarse classes of operations."""
    READ = "read"       # No side effects
    WRITE = "write"     # Modifies mail-server state
    ADMIN = "admin"     # Server-level changes


READ_OPERATIONS = ("get", "list", "read", "view", "status")
WRITE_OPERATIONS = ("create", "add", "update", "edit", "delete", "remove", "post", "put")
ADMIN_OPERATIONS = ("restart", "backup", "restore", "config", "system")

# Checked in order; first vocabulary with a hit wins
_VOCABULARIES = (
    (OperationKind.WRITE, WRITE_OPERATIONS),
    (OperationKind.ADMIN, ADMIN_OPERATIONS),
    (OperationKind.READ, READ_OPERATIONS),
)


class AccessLevel(str, Enum):
    READ_ONLY = "read-only"
    READ_WRITE = "read-write"


class ConditionType(str, Enum):
    DOMAIN = "domain"
    MAILBOX = "mailbox"
    ALIAS = "alias"
    SYSTEM = "system"


class ConditionOperator(str, Enum):
    EQUALS = "equals"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"
    CONTAINS = "contains"
    REGEX = "regex"


# Condition type -> resources it applies to
_CONDITION_RESOURCES: Dict[ConditionType, tuple] = {
    ConditionType.DOMAIN: ("domain", "domains"),
    ConditionType.MAILBOX: ("mailbox", "mailboxes"),
    ConditionType.ALIAS: ("alias", "aliases"),
    ConditionType.SYSTEM: ("system", "admin"),
}


class PermissionCondition(BaseModel):
    """Restricts a permission to matching actions or resources."""
    type: ConditionType
    value: str
    operator: ConditionOperator = ConditionOperator.EQUALS


class Permission(BaseModel):
    """Declarative access rule supplied by the authentication layer."""
    resource: str = Field(..., description="Resource pattern, '*' for any")
    actions: List[str] = Field(default_factory=list)
    conditions: List[PermissionCondition] = Field(default_factory=list)


class CallerContext(BaseModel):
    """Identity and capabilities of the entity invoking a tool."""
    request_id: str = Field(..., min_length=1)
    user_id: Optional[str] = None
    session_id: Optional[str] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    permissions: List[str] = Field(default_factory=list)
    access_level: AccessLevel = AccessLevel.READ_WRITE
    policies: List[Permission] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)


@dataclass
class AuthorizationDecision:
    """Outcome of a permission check."""
    granted: bool
    operation: str
    access_level: Optional[AccessLevel]
    kind: Optional[OperationKind] = None
    reason: Optional[str] = None

    def __bool__(self) -> bool:
        return self.granted


_logger = logging.getLogger("bridge.security")


def has_admin_override(permissions: Iterable[str]) -> bool:
    """The 'admin' capability satisfies every permission requirement."""
    return ADMIN_PERMISSION in permissions


def classify_operation(operation: str) -> Optional[OperationKind]:
    """
    Classify an operation name by substring match against the vocabularies.

    Returns None when no vocabulary matches.
    """
    lowered = operation.lower()
    matches = [
        kind for kind, words in _VOCABULARIES
        if any(word in lowered for word in words)
    ]
    if not matches:
        return None
    if len(matches) > 1:
        _logger.warning(
            f"Operation '{operation}' matches several kinds "
            f"({', '.join(k.value for k in matches)}); classified as {matches[0].value}"
        )
    return matches[0]


def split_operation(operation: str) -> tuple:
    """Split 'action.resource' into its parts; resource defaults to 'general'."""
    parts = operation.lower().split(".")
    action = parts[0] or operation.lower()
    resource = parts[1] if len(parts) > 1 and parts[1] else "general"
    return action, resource


class PermissionEvaluator:
    """
    Decides whether a caller may perform an operation.

    Rules:
    - Unrecognized operation: deny
    - Read-only caller: only read operations
    - Explicit permissions supplied: at least one must match
    """

    def __init__(self, audit_log: Optional[AuditLog] = None):
        self._audit_log = audit_log
        self._logger = _logger

    def check_permission(
        self,
        access_level: Union[AccessLevel, str],
        operation: str,
        permissions: Sequence[Permission] = (),
        kind: Optional[OperationKind] = None,
        request_id: Optional[str] = None,
    ) -> bool:
        """Check whether the operation is allowed."""
        return self.evaluate(access_level, operation, permissions, kind, request_id).granted

    def evaluate(
        self,
        access_level: Union[AccessLevel, str],
        operation: str,
        permissions: Sequence[Permission] = (),
        kind: Optional[OperationKind] = None,
        request_id: Optional[str] = None,
    ) -> AuthorizationDecision:
        """Evaluate a permission check and return the full decision."""
        try:
            level = AccessLevel(access_level)
        except ValueError:
            decision = AuthorizationDecision(False, operation, None, kind, "invalid_access_level")
            self._emit(decision, request_id, raw_level=access_level)
            return decision

        kind = kind or classify_operation(operation)

        if kind is None:
            decision = AuthorizationDecision(False, operation, level, None, "unknown_operation")
        elif level == AccessLevel.READ_ONLY and kind != OperationKind.READ:
            decision = AuthorizationDecision(False, operation, level, kind, "read-only_access_level")
        elif permissions and not self.check_specific_permissions(operation, permissions, kind):
            decision = AuthorizationDecision(False, operation, level, kind, "insufficient_permissions")
        else:
            decision = AuthorizationDecision(True, operation, level, kind)

        self._emit(decision, request_id)
        return decision

    def check_specific_permissions(
        self,
        operation: str,
        permissions: Sequence[Permission],
        kind: Optional[OperationKind] = None,
    ) -> bool:
        """Check an 'action.resource' operation against explicit permissions."""
        action, resource = split_operation(operation)
        kind = kind or classify_operation(operation)

        for permission in permissions:
            permission = _coerce_permission(permission)
            if permission is None:
                continue

            if permission.resource == "*" or "*" in permission.actions:
                return True

            resource_match = (
                match_pattern(resource, permission.resource.lower())
                or match_pattern(normalize_resource(resource), normalize_resource(permission.resource))
            )
            if not resource_match:
                continue

            if not any(self._action_matches(action, a, kind) for a in permission.actions):
                continue

            if all(self._evaluate_condition(c, resource, action) for c in permission.conditions):
                return True

        return False

    def _action_matches(self, action: str, allowed: str, kind: Optional[OperationKind]) -> bool:
        # A kind name ("read", "write", "admin") grants every action of that kind
        if kind is not None and allowed.lower() == kind.value:
            return True
        return match_pattern(action, allowed.lower())

    def _evaluate_condition(self, condition: PermissionCondition, resource: str, action: str) -> bool:
        applicable = _CONDITION_RESOURCES.get(condition.type)
        if applicable and resource not in applicable:
            return False

        value = condition.value
        operator = condition.operator
        if operator == ConditionOperator.EQUALS:
            return action == value or resource == value
        if operator == ConditionOperator.STARTS_WITH:
            return action.startswith(value) or resource.startswith(value)
        if operator == ConditionOperator.ENDS_WITH:
            return action.endswith(value) or resource.endswith(value)
        if operator == ConditionOperator.CONTAINS:
            return value in action or value in resource
        if operator == ConditionOperator.REGEX:
            try:
                regex = re.compile(value)
            except re.error:
                self._logger.debug(f"Invalid condition regex '{value}', using contains")
                return value in action or value in resource
            return bool(regex.search(action) or regex.search(resource))
        return True

    def _emit(self, decision: AuthorizationDecision, request_id: Optional[str], raw_level: Any = None) -> None:
        details: Dict[str, Any] = {
            "access_level": decision.access_level.value if decision.access_level else str(raw_level),
            "operation": decision.operation,
        }
        if decision.kind is not None:
            details["kind"] = decision.kind.value
        if decision.reason:
            details["reason"] = decision.reason

        record_audit_event(
            self._audit_log,
            EventType.ACCESS_GRANTED if decision.granted else EventType.ACCESS_DENIED,
            Actor.EVALUATOR,
            "access_granted" if decision.granted else "access_denied",
            request_id,
            target=decision.operation,
            details=details,
        )


def _coerce_permission(permission: Union[Permission, Dict[str, Any]]) -> Optional[Permission]:
    if isinstance(permission, Permission):
        return permission
    try:
        return Permission.model_validate(permission)
    except ValidationError as e:
        _logger.warning(f"Ignoring malformed permission {permission!r}: {e.error_count()} error(s)")
        return None
