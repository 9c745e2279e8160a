from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from athena.core.supabase_client import get_supabase_anon, get_supabase_for_user, get_supabase_service


logger = logging.getLogger(__name__)

RECOMMENDATION_TTL_DAYS = 7
EVALUATION_WINDOW_DAYS = 7

DEFAULT_PREFERENCES = {
    "primary_kpi": "roas",
    "secondary_kpis": ["cpa", "ctr"],
    "kpi_targets": {"roas": 3.0, "cpa": 30.0},
    "min_budget": None,
    "max_budget": None,
    "never_pause_entities": [],
    "never_recommend_actions": [],
    "alert_thresholds": {},
    "notification_channels": ["in_app"],
}


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")


def _in_days_iso(days: int) -> str:
    return (datetime.now(timezone.utc) + timedelta(days=days)).isoformat(timespec="seconds").replace("+00:00", "Z")


def _first(res) -> Optional[Dict[str, Any]]:
    return res.data[0] if res.data else None


def _fetch_all_paginated(sb, table_name: str, select_fields: str, filters_func, max_per_page: int = 1000) -> List[Dict[str, Any]]:
    """Reads every matching row, paging past the 1000-row PostgREST limit.

    Args:
        sb: Supabase client
        table_name: Table to read
        select_fields: Columns to select (e.g. "id, ad_data")
        filters_func: Receives the query builder and returns it with filters applied
        max_per_page: Page size (default 1000, the Supabase maximum)
    """
    all_rows: List[Dict[str, Any]] = []
    offset = 0

    while True:
        q = sb.table(table_name).select(select_fields)
        q = filters_func(q)
        q = q.range(offset, offset + max_per_page - 1)

        page_data = q.execute().data or []
        if not page_data:
            break

        all_rows.extend(page_data)
        if len(page_data) < max_per_page:
            break
        offset += max_per_page

    return all_rows


# ===== Profiles =====

def get_user_profile(user_jwt: str, user_id: str) -> Optional[Dict[str, Any]]:
    """user_profiles row (role, status, org_id) for the caller, None when missing."""
    if not user_id:
        return None
    sb = get_supabase_for_user(user_jwt)
    res = sb.table("user_profiles").select("*").eq("id", user_id).limit(1).execute()
    return _first(res)


# ===== Data health =====

def list_health_scores(org_id: str, entity_type: Optional[str] = None, entity_id: Optional[str] = None) -> List[Dict[str, Any]]:
    sb = get_supabase_service()
    q = sb.table("data_health_scores").select("*").eq("org_id", org_id)
    if entity_type:
        q = q.eq("entity_type", entity_type)
    if entity_id:
        q = q.eq("entity_id", entity_id)
    return q.order("overall_score", desc=False).execute().data or []


def list_user_ads(org_id: str) -> List[Dict[str, Any]]:
    sb = get_supabase_service()
    return _fetch_all_paginated(sb, "user_ads", "ad_data", lambda q: q.eq("user_id", org_id))


def upsert_health_scores(org_id: str, scores: List[Dict[str, Any]]) -> None:
    if not scores:
        return
    calculated_at = _now_iso()
    rows = [
        {
            "org_id": org_id,
            "entity_type": s["entity_type"],
            "entity_id": s["entity_id"],
            "overall_score": s["overall_score"],
            "completeness_score": s["completeness_score"],
            "freshness_score": s["freshness_score"],
            "attribution_score": s["attribution_score"],
            "schema_score": s["schema_score"],
            "issues_json": s["issues"],
            "calculated_at": calculated_at,
        }
        for s in scores
    ]
    sb = get_supabase_service()
    sb.table("data_health_scores").upsert(rows, on_conflict="org_id,entity_type,entity_id").execute()
    logger.info(f"[HEALTH] Upserted {len(rows)} health scores for org {org_id}")


# ===== Recommendations =====

def list_recommendations(
    org_id: Optional[str] = None,
    status: Optional[str] = None,
    entity_type: Optional[str] = None,
    limit: int = 20,
    offset: int = 0,
) -> List[Dict[str, Any]]:
    sb = get_supabase_service()
    q = sb.table("athena_recommendations").select("*")
    if org_id:
        q = q.eq("org_id", org_id)
    if status:
        q = q.eq("status", status)
    if entity_type:
        q = q.eq("entity_type", entity_type)
    q = q.order("created_at", desc=True).range(offset, offset + limit - 1)
    return q.execute().data or []


def log_recommendation_event(
    recommendation_id: str,
    event_type: str,
    event_data: Optional[Dict[str, Any]] = None,
    user_id: Optional[str] = None,
) -> None:
    sb = get_supabase_service()
    sb.table("recommendation_events").insert({
        "recommendation_id": recommendation_id,
        "event_type": event_type,
        "event_data": event_data or {},
        "user_id": user_id,
    }).execute()


def create_recommendation(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Inserts a recommendation (expires in 7 days unless given) and logs a 'created' event."""
    row = dict(payload)
    row.setdefault("status", "pending")
    if not row.get("expires_at"):
        row["expires_at"] = _in_days_iso(RECOMMENDATION_TTL_DAYS)

    sb = get_supabase_service()
    rec = _first(sb.table("athena_recommendations").insert(row).execute())
    if not rec:
        raise RuntimeError("Insert into athena_recommendations returned no row")

    log_recommendation_event(
        rec["id"],
        "created",
        {"confidence_score": row.get("confidence_score")},
        row.get("user_id"),
    )
    return rec


def update_recommendation(recommendation_id: str, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    sb = get_supabase_service()
    res = sb.table("athena_recommendations").update(updates).eq("id", recommendation_id).execute()
    return _first(res)


def get_recommendation(recommendation_id: str) -> Optional[Dict[str, Any]]:
    sb = get_supabase_service()
    res = sb.table("athena_recommendations").select("*").eq("id", recommendation_id).limit(1).execute()
    return _first(res)


def list_recommendation_events(recommendation_id: str) -> List[Dict[str, Any]]:
    sb = get_supabase_service()
    res = (
        sb.table("recommendation_events")
        .select("*")
        .eq("recommendation_id", recommendation_id)
        .order("created_at", desc=False)
        .execute()
    )
    return res.data or []


def get_latest_evaluation(recommendation_id: str) -> Optional[Dict[str, Any]]:
    sb = get_supabase_service()
    res = (
        sb.table("evaluation_runs")
        .select("*")
        .eq("recommendation_id", recommendation_id)
        .order("created_at", desc=True)
        .limit(1)
        .execute()
    )
    return _first(res)


RECOMMENDATION_ACTIONS = {
    "accept": "accepted",
    "reject": "rejected",
    "apply": "applied",
}


def act_on_recommendation(
    recommendation_id: str,
    action: str,
    feedback: Optional[str] = None,
    user_id: Optional[str] = None,
) -> Optional[Dict[str, Any]]:
    """Accept, reject or apply. Applying opens a 7-day evaluation window."""
    status = RECOMMENDATION_ACTIONS[action]
    updates: Dict[str, Any] = {"status": status}
    if feedback:
        updates["user_feedback"] = feedback
    if action == "apply":
        now = _now_iso()
        updates["applied_at"] = now
        updates["evaluation_window_start"] = now
        updates["evaluation_window_end"] = _in_days_iso(EVALUATION_WINDOW_DAYS)

    rec = update_recommendation(recommendation_id, updates)
    if rec is None:
        return None
    log_recommendation_event(recommendation_id, status, {"feedback": feedback, "action": action}, user_id)
    return rec


# ===== Prompt versions =====

def list_prompt_versions(prompt_name: Optional[str] = None, active_only: bool = False) -> List[Dict[str, Any]]:
    sb = get_supabase_service()
    q = sb.table("prompt_versions").select("*")
    if prompt_name:
        q = q.eq("prompt_name", prompt_name)
    if active_only:
        q = q.eq("is_active", True)
    return q.order("created_at", desc=True).execute().data or []


def create_prompt_version(
    prompt_name: str,
    version: str,
    prompt_text: str,
    tool_definitions: Optional[Any] = None,
    created_by: Optional[str] = None,
    set_as_default: bool = False,
) -> Dict[str, Any]:
    sb = get_supabase_service()
    if set_as_default:
        # Only one default per prompt name
        sb.table("prompt_versions").update({"is_default": False}).eq("prompt_name", prompt_name).execute()

    res = sb.table("prompt_versions").insert({
        "prompt_name": prompt_name,
        "version": version,
        "prompt_text": prompt_text,
        "tool_definitions": tool_definitions,
        "is_active": True,
        "is_default": bool(set_as_default),
        "created_by": created_by,
    }).execute()
    row = _first(res)
    if not row:
        raise RuntimeError("Insert into prompt_versions returned no row")
    return row


def update_prompt_version(prompt_id: str, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    sb = get_supabase_service()
    if updates.get("is_default") is True:
        current = _first(sb.table("prompt_versions").select("prompt_name").eq("id", prompt_id).limit(1).execute())
        if current:
            (
                sb.table("prompt_versions")
                .update({"is_default": False})
                .eq("prompt_name", current["prompt_name"])
                .neq("id", prompt_id)
                .execute()
            )
    res = sb.table("prompt_versions").update(updates).eq("id", prompt_id).execute()
    return _first(res)


# ===== AI preferences =====

def get_ai_preferences(user_jwt: str, user_id: str) -> Dict[str, Any]:
    """Stored preferences, or the defaults when the user has none yet."""
    sb = get_supabase_for_user(user_jwt)
    row = _first(sb.table("user_ai_preferences").select("*").eq("user_id", user_id).limit(1).execute())
    if row:
        return row
    return {"user_id": user_id, **DEFAULT_PREFERENCES, "kpi_targets": dict(DEFAULT_PREFERENCES["kpi_targets"])}


def upsert_ai_preferences(user_jwt: str, user_id: str, org_id: str, prefs: Dict[str, Any]) -> Dict[str, Any]:
    row = {
        "user_id": user_id,
        "org_id": org_id,
        "primary_kpi": prefs.get("primary_kpi") or "roas",
        "secondary_kpis": prefs.get("secondary_kpis") or ["cpa", "ctr"],
        "kpi_targets": prefs.get("kpi_targets") or {},
        "min_budget": prefs.get("min_budget"),
        "max_budget": prefs.get("max_budget"),
        "never_pause_entities": prefs.get("never_pause_entities") or [],
        "never_recommend_actions": prefs.get("never_recommend_actions") or [],
        "alert_thresholds": prefs.get("alert_thresholds") or {},
        "notification_channels": prefs.get("notification_channels") or ["in_app"],
        "updated_at": _now_iso(),
    }
    sb = get_supabase_for_user(user_jwt)
    res = sb.table("user_ai_preferences").upsert(row, on_conflict="user_id").execute()
    return _first(res) or row


# ===== Learned traits =====

def list_learned_traits(business_type: Optional[str] = None) -> List[Dict[str, Any]]:
    """Most used first. A business type matches loosely (either string contains the other)."""
    sb = get_supabase_service()
    rows = sb.table("learned_traits").select("*").order("usage_count", desc=True).execute().data or []
    if not business_type:
        return rows

    needle = business_type.lower()

    def _matches(row: Dict[str, Any]) -> bool:
        value = (row.get("business_type") or "").lower()
        return not value or needle in value or value in needle

    return [r for r in rows if _matches(r)]


def add_learned_trait(
    trait_name: str,
    definition: str,
    trait_category: Optional[str] = None,
    business_type: Optional[str] = None,
    added_by: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Inserts a learned trait, or bumps usage_count when the name already exists
    (case-insensitive).

    Returns:
        {"trait": row, "created": bool}
    """
    sb = get_supabase_service()
    name = trait_name.strip()
    existing = _first(sb.table("learned_traits").select("*").ilike("trait_name", name).limit(1).execute())
    if existing:
        usage = int(existing.get("usage_count") or 0) + 1
        res = sb.table("learned_traits").update({"usage_count": usage}).eq("id", existing["id"]).execute()
        return {"trait": _first(res) or {**existing, "usage_count": usage}, "created": False}

    res = sb.table("learned_traits").insert({
        "trait_name": name,
        "trait_category": trait_category or "Custom",
        "definition": definition.strip(),
        "business_type": business_type,
        "added_by": added_by or "anonymous",
        "added_at": _now_iso(),
        "usage_count": 1,
    }).execute()
    row = _first(res)
    if not row:
        raise RuntimeError("Insert into learned_traits returned no row")
    return {"trait": row, "created": True}


def delete_learned_trait(trait_id: str) -> bool:
    sb = get_supabase_service()
    res = sb.table("learned_traits").delete().eq("id", trait_id).execute()
    return bool(res.data)


# ===== Public traits =====

def list_public_traits(status: str = "approved", include_all: bool = False) -> List[Dict[str, Any]]:
    sb = get_supabase_service()
    q = sb.table("public_traits").select("*")
    if not include_all:
        q = q.eq("status", status)
    return q.order("created_at", desc=True).execute().data or []


def find_public_trait_by_name(name: str) -> Optional[Dict[str, Any]]:
    sb = get_supabase_service()
    return _first(sb.table("public_traits").select("id").ilike("name", name).limit(1).execute())


def create_public_trait(
    name: str,
    group: Optional[str] = None,
    emoji: Optional[str] = None,
    description: Optional[str] = None,
    created_by: Optional[str] = None,
    created_by_ai: bool = False,
) -> Dict[str, Any]:
    """New traits start 'pending' until an organizer reviews them."""
    sb = get_supabase_service()
    res = sb.table("public_traits").insert({
        "name": name,
        "group_name": group or "Custom",
        "emoji": emoji or "✨",
        "description": description or f"Custom trait: {name}",
        "created_by": created_by,
        "created_by_ai": created_by_ai,
        "status": "pending",
    }).execute()
    row = _first(res)
    if not row:
        raise RuntimeError("Insert into public_traits returned no row")
    return row


def update_public_trait(trait_id: str, updates: Dict[str, Any], reviewed_by: Optional[str] = None) -> Optional[Dict[str, Any]]:
    data = {k: v for k, v in updates.items() if v}
    if "group" in data:
        data["group_name"] = data.pop("group")
    if "status" in data:
        data["reviewed_by"] = reviewed_by
        data["reviewed_at"] = _now_iso()
    sb = get_supabase_service()
    return _first(sb.table("public_traits").update(data).eq("id", trait_id).execute())


def delete_public_trait(trait_id: str) -> None:
    sb = get_supabase_service()
    sb.table("public_traits").delete().eq("id", trait_id).execute()


# ===== Direct messages =====

def list_messages(user_id: str, box: str = "inbox", unread_only: bool = False, limit: int = 50) -> List[Dict[str, Any]]:
    sb = get_supabase_service()
    column = "to_user_id" if box == "inbox" else "from_user_id"
    q = sb.table("direct_messages").select("*").eq(column, user_id)
    if unread_only:
        q = q.eq("is_read", False)
    return q.order("created_at", desc=True).limit(limit).execute().data or []


def count_unread_messages(user_id: str) -> int:
    sb = get_supabase_service()
    res = (
        sb.table("direct_messages")
        .select("id", count="exact")
        .eq("to_user_id", user_id)
        .eq("is_read", False)
        .execute()
    )
    return res.count or 0


def send_message(
    from_user_id: str,
    to_user_id: str,
    content: str,
    subject: Optional[str] = None,
    parent_message_id: Optional[str] = None,
) -> Dict[str, Any]:
    sb = get_supabase_service()
    res = sb.table("direct_messages").insert({
        "from_user_id": from_user_id,
        "to_user_id": to_user_id,
        "subject": subject,
        "content": content,
        "parent_message_id": parent_message_id,
        "is_read": False,
    }).execute()
    row = _first(res)
    if not row:
        raise RuntimeError("Insert into direct_messages returned no row")
    return row


def set_message_read(message_id: str, user_id: str, is_read: bool = True) -> Optional[Dict[str, Any]]:
    """Only the recipient can change the read flag."""
    updates: Dict[str, Any] = {"is_read": is_read, "read_at": _now_iso() if is_read else None}
    sb = get_supabase_service()
    res = sb.table("direct_messages").update(updates).eq("id", message_id).eq("to_user_id", user_id).execute()
    return _first(res)


def mark_all_messages_read(user_id: str) -> int:
    sb = get_supabase_service()
    res = (
        sb.table("direct_messages")
        .update({"is_read": True, "read_at": _now_iso()})
        .eq("to_user_id", user_id)
        .eq("is_read", False)
        .execute()
    )
    return len(res.data or [])


def delete_message(message_id: str, user_id: str) -> bool:
    """Deletes a message the user sent or received. False when nothing matched."""
    sb = get_supabase_service()
    res = (
        sb.table("direct_messages")
        .delete()
        .eq("id", message_id)
        .or_(f"from_user_id.eq.{user_id},to_user_id.eq.{user_id}")
        .execute()
    )
    return bool(res.data)


# ===== Data pools =====

def list_data_pools(
    user_id: Optional[str] = None,
    industry: Optional[str] = None,
    platform: Optional[str] = None,
    audience: Optional[str] = None,
    creative_format: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """Public pools with the caller's access status (none/pending/approved/...)."""
    sb = get_supabase_service()
    q = sb.table("data_pools").select("*").eq("is_public", True)
    for column, value in (
        ("industry", industry),
        ("platform", platform),
        ("target_audience", audience),
        ("creative_format", creative_format),
    ):
        if value:
            q = q.eq(column, value)
    pools = q.order("data_points", desc=True).execute().data or []

    access: Dict[str, Dict[str, Any]] = {}
    if user_id:
        requests = (
            sb.table("data_access_requests")
            .select("pool_id, status, expires_at")
            .eq("user_id", user_id)
            .execute()
            .data
            or []
        )
        access = {r["pool_id"]: r for r in requests}

    return [
        {
            **pool,
            "access_status": (access.get(pool.get("id")) or {}).get("status") or "none",
            "access_expires_at": (access.get(pool.get("id")) or {}).get("expires_at"),
        }
        for pool in pools
    ]


def create_data_pool(payload: Dict[str, Any]) -> Dict[str, Any]:
    sb = get_supabase_service()
    row = _first(sb.table("data_pools").insert(payload).execute())
    if not row:
        raise RuntimeError("Insert into data_pools returned no row")
    return row


def get_data_pool(pool_id: str) -> Optional[Dict[str, Any]]:
    sb = get_supabase_service()
    res = sb.table("data_pools").select("id, name, requires_approval").eq("id", pool_id).limit(1).execute()
    return _first(res)


def get_access_request(user_id: str, pool_id: str) -> Optional[Dict[str, Any]]:
    sb = get_supabase_service()
    res = (
        sb.table("data_access_requests")
        .select("id, status")
        .eq("user_id", user_id)
        .eq("pool_id", pool_id)
        .limit(1)
        .execute()
    )
    return _first(res)


def resubmit_access_request(request_id: str, reason: Optional[str], intended_use: Optional[str]) -> Optional[Dict[str, Any]]:
    sb = get_supabase_service()
    res = sb.table("data_access_requests").update({
        "status": "pending",
        "reason": reason,
        "intended_use": intended_use,
        "reviewed_by": None,
        "reviewed_at": None,
        "denial_reason": None,
        "created_at": _now_iso(),
    }).eq("id", request_id).execute()
    return _first(res)


def create_access_request(
    user_id: str,
    pool_id: str,
    requires_approval: bool,
    user_email: Optional[str] = None,
    reason: Optional[str] = None,
    intended_use: Optional[str] = None,
) -> Dict[str, Any]:
    """Pools without approval are granted immediately."""
    sb = get_supabase_service()
    res = sb.table("data_access_requests").insert({
        "user_id": user_id,
        "user_email": user_email,
        "pool_id": pool_id,
        "reason": reason,
        "intended_use": intended_use,
        "status": "pending" if requires_approval else "approved",
        "approved_at": None if requires_approval else _now_iso(),
    }).execute()
    row = _first(res)
    if not row:
        raise RuntimeError("Insert into data_access_requests returned no row")
    return row


def list_access_requests(user_id: str) -> List[Dict[str, Any]]:
    sb = get_supabase_service()
    res = (
        sb.table("data_access_requests")
        .select("*, data_pools(id, name, slug, description, industry, platform, data_points)")
        .eq("user_id", user_id)
        .order("created_at", desc=True)
        .execute()
    )
    return res.data or []


# ===== Public pool =====

def insert_contributions(records: List[Dict[str, Any]]) -> int:
    if not records:
        return 0
    sb = get_supabase_service()
    res = sb.table("user_contributions").insert(records).execute()
    return len(res.data or records)


def query_collective_priors(
    industry: Optional[str] = None,
    min_sample_size: int = 10,
    min_confidence: float = 0.3,
    traits: Optional[List[str]] = None,
    sort_column: str = "avg_weight",
    ascending: bool = False,
    limit: int = 20,
    offset: int = 0,
) -> Dict[str, Any]:
    """Rows of collective_priors plus the exact total for pagination."""
    sb = get_supabase_anon()
    q = (
        sb.table("collective_priors")
        .select("*", count="exact")
        .gte("contribution_count", min_sample_size)
        .gte("confidence", min_confidence)
    )
    if industry:
        q = q.eq("category", industry)
    if traits:
        q = q.or_(",".join(f"feature_name.ilike.%{t.strip()}%" for t in traits if t.strip()))
    res = q.order(sort_column, desc=not ascending).range(offset, offset + limit - 1).execute()
    return {"rows": res.data or [], "total": res.count or 0}
