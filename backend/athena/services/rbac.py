"""
Role-based access control.

Four-tier hierarchy, each role inheriting from the one below:
client -> marketer -> admin -> organizer.

Two permission models live here:
- AI permissions: (resource, action) pairs with inheritance, approval chains
  and ownership checks.
- App permissions: flat permission names per role, page access and account
  status checks used by the API guard.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

ROLES = ("client", "marketer", "admin", "organizer")
ROLE_LEVELS = {"client": 1, "marketer": 2, "admin": 3, "organizer": 4}
ROLE_DESCRIPTIONS = {
    "organizer": "Super admin with full access",
    "admin": "Organization admin with governance access",
    "marketer": "Full campaign management access",
    "client": "Read-only access to reports",
}


@dataclass(frozen=True)
class Permission:
    resource: str
    action: str

    def as_dict(self) -> Dict[str, str]:
        return {"resource": self.resource, "action": self.action}


AI_PERMISSIONS: Dict[str, Permission] = {
    # Recommendations
    "VIEW_RECOMMENDATIONS": Permission("recommendations", "read"),
    "CREATE_RECOMMENDATIONS": Permission("recommendations", "create"),
    "APPROVE_RECOMMENDATIONS": Permission("recommendations", "approve"),
    "EXECUTE_RECOMMENDATIONS": Permission("recommendations", "execute"),
    # Automation
    "VIEW_AUTOMATIONS": Permission("automations", "read"),
    "CREATE_AUTOMATIONS": Permission("automations", "create"),
    "TOGGLE_AUTOMATIONS": Permission("automations", "update"),
    # Governance
    "VIEW_GOVERNANCE": Permission("governance", "read"),
    "EDIT_GOVERNANCE": Permission("governance", "update"),
    # Audit
    "VIEW_AUDIT_LOGS": Permission("audit_logs", "read"),
    # Agents
    "RUN_AGENTS": Permission("agents", "execute"),
    "VIEW_AGENT_RUNS": Permission("agents", "read"),
    # Forecasting
    "VIEW_FORECASTS": Permission("forecasts", "read"),
    "CREATE_SIMULATIONS": Permission("simulations", "create"),
    # Patterns
    "VIEW_PATTERNS": Permission("patterns", "read"),
    "MANAGE_PATTERNS": Permission("patterns", "update"),
}

# (role, inherits_from, own permissions), lowest role first
ROLE_HIERARCHY: List[Tuple[str, Optional[str], List[Permission]]] = [
    ("client", None, [
        AI_PERMISSIONS["VIEW_RECOMMENDATIONS"],
        AI_PERMISSIONS["VIEW_FORECASTS"],
        AI_PERMISSIONS["VIEW_PATTERNS"],
    ]),
    ("marketer", "client", [
        AI_PERMISSIONS["CREATE_RECOMMENDATIONS"],
        AI_PERMISSIONS["APPROVE_RECOMMENDATIONS"],
        AI_PERMISSIONS["VIEW_AUTOMATIONS"],
        AI_PERMISSIONS["CREATE_AUTOMATIONS"],
        AI_PERMISSIONS["TOGGLE_AUTOMATIONS"],
        AI_PERMISSIONS["RUN_AGENTS"],
        AI_PERMISSIONS["VIEW_AGENT_RUNS"],
        AI_PERMISSIONS["CREATE_SIMULATIONS"],
        AI_PERMISSIONS["VIEW_GOVERNANCE"],
    ]),
    ("admin", "marketer", [
        AI_PERMISSIONS["EXECUTE_RECOMMENDATIONS"],
        AI_PERMISSIONS["EDIT_GOVERNANCE"],
        AI_PERMISSIONS["VIEW_AUDIT_LOGS"],
        AI_PERMISSIONS["MANAGE_PATTERNS"],
    ]),
    # Organizer inherits everything and adds nothing
    ("organizer", "admin", []),
]


def _as_permission(permission: Any) -> Permission:
    if isinstance(permission, Permission):
        return permission
    if isinstance(permission, dict):
        return Permission(str(permission.get("resource", "")), str(permission.get("action", "")))
    raise ValueError("permission must have 'resource' and 'action'")


def get_role_permissions(role: str) -> List[Permission]:
    """All permissions of a role, inherited ones included."""
    config = next((c for c in ROLE_HIERARCHY if c[0] == role), None)
    if config is None:
        return []

    _, inherits_from, own = config
    permissions = list(own)
    if inherits_from:
        for perm in get_role_permissions(inherits_from):
            if perm not in permissions:
                permissions.append(perm)
    return permissions


def has_permission(role: str, permission: Any) -> bool:
    return _as_permission(permission) in get_role_permissions(role)


def can_approve(role: str, action_type: str) -> bool:
    # High risk actions need admin or organizer
    if action_type in ("budget_increase", "automation_enable"):
        return role in ("admin", "organizer")
    return role in ("marketer", "admin", "organizer")


def get_minimum_role(permission: Any) -> str:
    perm = _as_permission(permission)
    for role, _, _ in ROLE_HIERARCHY:
        if has_permission(role, perm):
            return role
    return "organizer"


@dataclass(frozen=True)
class ApprovalChain:
    action_type: str
    risk_threshold: int
    approver_roles: Tuple[str, ...]
    required_approvals: int
    escalation_path: Tuple[str, ...]
    timeout_hours: int

    def as_dict(self) -> Dict[str, Any]:
        return {
            "action_type": self.action_type,
            "risk_threshold": self.risk_threshold,
            "approver_roles": list(self.approver_roles),
            "required_approvals": self.required_approvals,
            "escalation_path": list(self.escalation_path),
            "timeout_hours": self.timeout_hours,
        }


DEFAULT_APPROVAL_CHAINS: List[ApprovalChain] = [
    ApprovalChain("budget_increase", 50, ("admin", "organizer"), 1, ("organizer",), 24),
    ApprovalChain("automation_enable", 60, ("admin", "organizer"), 1, ("organizer",), 48),
    ApprovalChain("creative_pause", 40, ("marketer", "admin", "organizer"), 1, ("admin",), 24),
    ApprovalChain("audience_change", 70, ("admin", "organizer"), 2, ("organizer",), 24),
]


def get_approval_requirements(action_type: str, risk_score: float) -> Optional[ApprovalChain]:
    """Approval chain for an action, or None when the risk is below its threshold."""
    chain = next((c for c in DEFAULT_APPROVAL_CHAINS if c.action_type == action_type), None)
    if chain is None or risk_score < chain.risk_threshold:
        return None
    return chain


def can_user_approve(
    user_role: str,
    requester_id: str,
    approver_id: str,
    chain: ApprovalChain,
) -> Dict[str, Any]:
    if requester_id == approver_id:
        return {"can_approve": False, "reason": "Cannot approve your own request"}

    if user_role not in chain.approver_roles:
        return {
            "can_approve": False,
            "reason": f"Requires role: {' or '.join(chain.approver_roles)}",
        }

    return {"can_approve": True}


def check_access(
    user_role: str,
    permission: Any,
    resource_owner_id: Optional[str] = None,
    user_id: Optional[str] = None,
) -> Dict[str, Any]:
    perm = _as_permission(permission)
    if not has_permission(user_role, perm):
        return {
            "allowed": False,
            "reason": f"Missing permission: {perm.resource}.{perm.action}",
            "required_role": get_minimum_role(perm),
            "missing_permission": perm.as_dict(),
        }

    # Non-admin roles only touch their own resources
    if resource_owner_id and user_id and user_role not in ("admin", "organizer"):
        if resource_owner_id != user_id:
            return {"allowed": False, "reason": "Can only access your own resources"}

    return {"allowed": True}


# ===== App permissions ===== #

ROLE_APP_PERMISSIONS: Dict[str, List[str]] = {
    "marketer": [
        "upload_ads",
        "view_ads",
        "delete_ads",
        "run_predictions",
        "view_predictions",
        "manage_pipelines",
        "view_pipelines",
        "control_pipeline_items",
        "view_analytics",
        "export_analytics",
        "manage_settings",
        "view_settings",
        "connect_meta",
        "manage_capi",
        "manage_collective_intelligence",
    ],
    "client": [
        "view_predictions",
        "view_pipelines",
        "control_pipeline_items",
        "view_analytics",
    ],
    "admin": [
        "view_ads",
        "view_predictions",
        "view_pipelines",
        "view_analytics",
        "view_settings",
        "manage_users",
        "view_audit_logs",
        "approve_access_requests",
        "suspend_users",
    ],
    "organizer": [
        "view_ads",
        "view_predictions",
        "view_pipelines",
        "view_analytics",
        "view_settings",
        "view_audit_logs",
        "impersonate_users",
        "view_all_organizations",
    ],
}

ROUTE_PERMISSIONS: Dict[str, List[str]] = {
    "/": ["view_predictions"],
    "/upload": ["upload_ads"],
    "/import": ["upload_ads"],
    "/myads": ["view_ads"],
    "/predict": ["run_predictions"],
    "/results": ["view_predictions"],
    "/analytics": ["view_analytics"],
    "/pipeline": ["view_pipelines"],
    "/mindmap": ["view_predictions"],
    "/settings": ["view_settings"],
    "/settings/collective": ["manage_collective_intelligence"],
    "/admin": ["manage_users"],
    "/admin/users": ["manage_users"],
    "/admin/requests": ["approve_access_requests"],
    "/admin/logs": ["view_audit_logs"],
    "/organizer": ["view_all_organizations"],
    "/organizer/impersonate": ["impersonate_users"],
}

DEFAULT_ROUTES = {
    "marketer": "/",
    "client": "/pipeline",
    "admin": "/admin",
    "organizer": "/organizer",
}


def role_has_app_permission(role: str, permission: str) -> bool:
    return permission in ROLE_APP_PERMISSIONS.get(role, [])


def is_user_active(profile: Optional[Dict[str, Any]]) -> bool:
    return bool(profile) and profile.get("status") == "active"


def user_has_permission(profile: Optional[Dict[str, Any]], permission: str) -> bool:
    if not is_user_active(profile):
        return False
    return role_has_app_permission(profile.get("role", ""), permission)


def user_has_any_permission(profile: Optional[Dict[str, Any]], permissions: List[str]) -> bool:
    return any(user_has_permission(profile, p) for p in permissions)


def user_has_all_permissions(profile: Optional[Dict[str, Any]], permissions: List[str]) -> bool:
    return all(user_has_permission(profile, p) for p in permissions)


def can_access_route(profile: Optional[Dict[str, Any]], route: str) -> bool:
    if not is_user_active(profile):
        return False

    route_key = None
    for key in ROUTE_PERMISSIONS:
        if route == key or (key.endswith("/*") and route.startswith(key[:-2])):
            route_key = key
            break

    # Routes without requirements are open to any active user
    if route_key is None:
        return True
    return user_has_any_permission(profile, ROUTE_PERMISSIONS[route_key])


def get_default_route_for_role(role: str) -> str:
    return DEFAULT_ROUTES.get(role, "/")


def has_role(profile: Optional[Dict[str, Any]], role: str) -> bool:
    return is_user_active(profile) and profile.get("role") == role


def can_manage_user(actor: Optional[Dict[str, Any]], target: Optional[Dict[str, Any]]) -> bool:
    if not actor or not target:
        return False

    if has_role(actor, "organizer"):
        return True

    # Admins manage non-admin users of their own org
    if has_role(actor, "admin"):
        if actor.get("org_id") != target.get("org_id"):
            return False
        return target.get("role") not in ("admin", "organizer")

    return False


@dataclass
class GuardResult:
    allowed: bool
    status_code: int = 200
    error: Optional[str] = None
    profile: Optional[Dict[str, Any]] = field(default=None)


def evaluate_guard(
    user_id: Optional[str],
    profile: Optional[Dict[str, Any]],
    required_permissions: List[str],
    require_all: bool = False,
) -> GuardResult:
    """Decides whether a caller may use an API route."""
    if not user_id:
        return GuardResult(False, 401, "Unauthorized")
    if not profile:
        return GuardResult(False, 403, "Profile not found")
    if profile.get("status") != "active":
        return GuardResult(False, 403, f"Account is {profile.get('status')}")

    if require_all:
        allowed = user_has_all_permissions(profile, required_permissions)
    else:
        allowed = user_has_any_permission(profile, required_permissions)
    if not allowed:
        return GuardResult(False, 403, "Insufficient permissions", profile)

    return GuardResult(True, 200, None, profile)
