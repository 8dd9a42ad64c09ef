# Security module - Operation classification and policy evaluation
# Default deny for unrecognized operations

from .permissions import (
    PermissionEvaluator, AuthorizationDecision, OperationKind, AccessLevel,
    CallerContext, Permission, PermissionCondition,
    classify_operation, has_admin_override,
)
from .patterns import match_pattern, normalize_resource

__all__ = [
    "PermissionEvaluator",
    "AuthorizationDecision",
    "OperationKind",
    "AccessLevel",
    "CallerContext",
    "Permission",
    "PermissionCondition",
    "classify_operation",
    "has_admin_override",
    "match_pattern",
    "normalize_resource",
]
