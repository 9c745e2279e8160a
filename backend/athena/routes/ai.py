from fastapi import APIRouter, Body, Depends, HTTPException, Query
from typing import Any, Dict, Optional
import logging

from athena.core.auth import get_current_profile, get_current_user, get_user_role
from athena.core.config import DEFAULT_AUDIENCE_SIZE
from athena.core.errors import raise_validation_error
from athena.schemas import ExplainRequest, FatigueRequest, PatternsRequest, QueryRequest, RbacCheckRequest
from athena.services import ad_quality, creative_fatigue, explainability, nl_query, pattern_mining, rbac

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ai", tags=["ai"])


@router.post("/fatigue")
def analyze_fatigue(req: FatigueRequest, user=Depends(get_current_user)):
    """Creative fatigue: full analysis ("analyze") or alert detection ("detect")."""
    try:
        action = req.action or "analyze"
        if action not in ("analyze", "detect"):
            raise_validation_error(f"Unknown action: {action}")
        if req.daily_metrics is None:
            raise_validation_error("daily_metrics array is required")

        if action == "detect":
            alerts = creative_fatigue.detect_fatigue_alerts(
                req.daily_metrics,
                peak_ctr=req.peak_ctr or 2.0,
                current_ctr=req.current_ctr or 1.5,
                current_frequency=req.current_frequency or 2.5,
                saturation_index=req.saturation_index or 0.5,
                days_running=req.days_running or 14,
            )
            return {"success": True, "data": {"alerts": alerts}}

        analysis = creative_fatigue.analyze_creative_fatigue(
            req.creative_id,
            req.daily_metrics,
            estimated_audience_size=req.estimated_audience_size or DEFAULT_AUDIENCE_SIZE,
        )
        return {"success": True, "data": analysis}
    except HTTPException:
        raise
    except ValueError as e:
        raise_validation_error(str(e))
    except Exception:
        logger.exception("Creative fatigue analysis failed")
        raise HTTPException(status_code=500, detail="Failed to analyze creative fatigue")


@router.post("/patterns")
def mine_patterns(req: PatternsRequest, user=Depends(get_current_user)):
    try:
        if req.action in ("mine_success", "mine_failure"):
            if not req.metric or req.threshold is None:
                raise_validation_error("metric and threshold are required")
            miner = (
                pattern_mining.mine_success_patterns
                if req.action == "mine_success"
                else pattern_mining.mine_failure_patterns
            )
            patterns = miner(req.records, req.metric, req.threshold, req.min_occurrences)
            return {"success": True, "data": {"patterns": patterns, "count": len(patterns)}}

        if req.action == "detect_seasonal":
            if not req.metric:
                raise_validation_error("metric is required")
            seasonal = pattern_mining.detect_seasonal_patterns(req.records, req.metric, req.period)
            return {"success": True, "data": {"pattern": seasonal, "detected": seasonal is not None}}

        if req.action == "match":
            matches = pattern_mining.match_patterns(req.patterns, req.context)
            return {"success": True, "data": {"matches": matches, "count": len(matches)}}

        if req.action == "cross_campaign":
            if not req.metric:
                raise_validation_error("metric is required")
            patterns = pattern_mining.find_cross_campaign_patterns(req.campaigns, req.metric)
            return {"success": True, "data": {"patterns": patterns, "count": len(patterns)}}

        raise_validation_error(f"Unknown action: {req.action}")
    except HTTPException:
        raise
    except ValueError as e:
        raise_validation_error(str(e))
    except Exception:
        logger.exception("Pattern mining failed")
        raise HTTPException(status_code=500, detail="Failed to mine patterns")


@router.post("/explain")
def explain_recommendation(req: ExplainRequest, user=Depends(get_current_user)):
    try:
        explanation = explainability.generate_full_explanation(
            recommendation_type=req.recommendation_type,
            target_metric=req.target_metric,
            current_metrics=req.current_metrics,
            historical_metrics=req.historical_metrics,
            expected_impact=req.expected_impact,
            confidence=req.confidence,
            industry_benchmarks=req.industry_benchmarks,
            patterns=req.patterns,
            similar_cases=req.similar_cases,
            attribution_window=req.attribution_window,
            is_learning_phase=req.is_learning_phase,
        )
        return {"success": True, "data": explanation}
    except ValueError as e:
        raise_validation_error(str(e))
    except Exception:
        logger.exception("Explanation failed")
        raise HTTPException(status_code=500, detail="Failed to generate explanation")


@router.post("/query")
def natural_language_query(req: QueryRequest, user=Depends(get_current_user)):
    try:
        if not req.query.strip():
            raise_validation_error("query is required")

        parsed = nl_query.parse_query(req.query)
        data: Dict[str, Any] = {
            "parsed": parsed,
            "filters": nl_query.query_to_filters(parsed),
            "time_range": nl_query.resolve_time_range(parsed["time_range"]),
            "followups": nl_query.suggest_followups(parsed),
        }
        if req.results is not None:
            data["summary"] = nl_query.generate_summary(parsed, req.results, req.aggregates)
        return {"success": True, "data": data}
    except HTTPException:
        raise
    except Exception:
        logger.exception("Query parsing failed")
        raise HTTPException(status_code=500, detail="Failed to parse query")


@router.post("/ad-quality-score")
def score_ad_quality(body: Dict[str, Any] = Body(...), user=Depends(get_current_user)):
    """Accepts {"extracted_data": {...}} or the attributes as a flat body."""
    try:
        ad = body.get("extracted_data") if isinstance(body.get("extracted_data"), dict) else body
        if not ad:
            raise_validation_error("Ad attributes are required")
        return {"success": True, "data": ad_quality.analyze_ad_quality(ad)}
    except HTTPException:
        raise
    except Exception:
        logger.exception("Ad quality scoring failed")
        raise HTTPException(status_code=500, detail="Failed to score ad quality")


@router.get("/rbac")
def get_rbac(
    action: str = Query("permissions", description="permissions | approval_chains | roles"),
    current=Depends(get_current_profile),
):
    """Caller's role with its AI permissions or the approval chains it can sign off."""
    role = get_user_role(current)

    if action == "roles" or not role:
        return {
            "success": True,
            "data": {
                "roles": [
                    {"role": r, "description": rbac.ROLE_DESCRIPTIONS[r], "level": rbac.ROLE_LEVELS[r]}
                    for r in reversed(rbac.ROLES)
                ],
                "permissions": list(rbac.AI_PERMISSIONS.keys()),
                "approval_chains": [c.as_dict() for c in rbac.DEFAULT_APPROVAL_CHAINS],
            },
        }

    if action == "permissions":
        permissions = [p.as_dict() for p in rbac.get_role_permissions(role)]
        return {
            "success": True,
            "data": {
                "role": role,
                "permissions": permissions,
                "count": len(permissions),
                "app_permissions": rbac.ROLE_APP_PERMISSIONS.get(role, []),
                "default_route": rbac.get_default_route_for_role(role),
            },
        }

    if action == "approval_chains":
        chains = [c for c in rbac.DEFAULT_APPROVAL_CHAINS if role in c.approver_roles]
        return {
            "success": True,
            "data": {
                "role": role,
                "can_approve": [c.action_type for c in chains],
                "chains": [c.as_dict() for c in chains],
            },
        }

    raise_validation_error(f"Unknown action: {action}")


@router.post("/rbac/check")
def check_rbac(req: RbacCheckRequest, current=Depends(get_current_profile)):
    try:
        role: Optional[str] = req.role or get_user_role(current)
        if not role:
            raise_validation_error("role is required")

        if req.action in ("check_permission", "check_access"):
            if not req.permission:
                raise_validation_error("permission object is required")
            if req.action == "check_permission":
                allowed = rbac.has_permission(role, req.permission)
                return {"success": True, "data": {"has_permission": allowed, "role": role, "permission": req.permission}}
            result = rbac.check_access(role, req.permission, req.resource_owner_id, current.get("user_id"))
            return {"success": True, "data": result}

        if req.action in ("can_approve", "approval_required"):
            if not req.action_type:
                raise_validation_error("action_type is required")
            if req.action == "can_approve":
                can = rbac.can_approve(role, req.action_type)
                return {"success": True, "data": {"can_approve": can, "role": role, "action_type": req.action_type}}
            chain = rbac.get_approval_requirements(req.action_type, req.risk_score)
            return {
                "success": True,
                "data": {
                    "requires_approval": chain is not None,
                    "requirements": chain.as_dict() if chain else None,
                },
            }

        raise_validation_error(f"Unknown action: {req.action}")
    except HTTPException:
        raise
    except ValueError as e:
        raise_validation_error(str(e))
    except Exception:
        logger.exception("RBAC check failed")
        raise HTTPException(status_code=500, detail="Failed to check access")
