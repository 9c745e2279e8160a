from fastapi import APIRouter, Depends, HTTPException, Query
from typing import Any, Dict, Optional
import logging

from athena.core.auth import require_ai_permission, resolve_org_id
from athena.core.errors import raise_not_found, raise_validation_error
from athena.schemas import RecommendationActionRequest, RecommendationCreateRequest, RecommendationStatusUpdate
from athena.services import supabase_repo

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ai/recommendations", tags=["recommendations"])


def _get_scoped_recommendation(recommendation_id: str, current: Dict[str, Any]) -> Dict[str, Any]:
    rec = supabase_repo.get_recommendation(recommendation_id)
    if rec is None:
        raise_not_found("Recommendation not found")
    resolve_org_id(rec.get("org_id"), current)
    return rec


@router.get("")
def list_recommendations(
    org_id: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    entity_type: Optional[str] = Query(None),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    current=Depends(require_ai_permission("VIEW_RECOMMENDATIONS")),
):
    try:
        org = resolve_org_id(org_id, current)
        if not org:
            raise_validation_error("org_id is required")
        recs = supabase_repo.list_recommendations(org, status, entity_type, limit, offset)
        return {
            "success": True,
            "recommendations": recs,
            "pagination": {"limit": limit, "offset": offset, "count": len(recs)},
        }
    except HTTPException:
        raise
    except Exception:
        logger.exception("Failed to fetch recommendations")
        raise HTTPException(status_code=500, detail="Failed to fetch recommendations")


@router.post("")
def create_recommendation(
    req: RecommendationCreateRequest,
    current=Depends(require_ai_permission("CREATE_RECOMMENDATIONS")),
):
    try:
        org = resolve_org_id(req.org_id, current)
        rec = supabase_repo.create_recommendation({
            "org_id": org,
            "user_id": current["user_id"],
            "recommendation_type": req.recommendation_type,
            "entity_type": req.entity_type,
            "entity_id": req.entity_id,
            "title": req.title,
            "description": req.description,
            "action_json": req.action,
            "confidence_score": req.confidence_score,
            "evidence_json": req.evidence,
            "reasoning_steps": req.reasoning_steps,
            "baseline_metrics": req.baseline_metrics,
            "agent_run_id": req.agent_run_id,
            "prompt_version": req.prompt_version,
            "expires_at": req.expires_at,
        })
        return {"success": True, "recommendation": rec}
    except HTTPException:
        raise
    except Exception:
        logger.exception("Failed to create recommendation")
        raise HTTPException(status_code=500, detail="Failed to create recommendation")


@router.patch("")
def update_recommendation(
    req: RecommendationStatusUpdate,
    current=Depends(require_ai_permission("APPROVE_RECOMMENDATIONS")),
):
    """Partial update; a status change is recorded as a recommendation event."""
    try:
        updates: Dict[str, Any] = req.model_dump(exclude={"id"}, exclude_none=True)
        if not updates:
            raise_validation_error("Nothing to update")

        _get_scoped_recommendation(req.id, current)
        rec = supabase_repo.update_recommendation(req.id, updates)
        if rec is None:
            raise_not_found("Recommendation not found")

        if req.status:
            supabase_repo.log_recommendation_event(
                req.id,
                req.status,
                {"user_feedback": req.user_feedback},
                current["user_id"],
            )
        return {"success": True, "recommendation": rec}
    except HTTPException:
        raise
    except Exception:
        logger.exception("Failed to update recommendation")
        raise HTTPException(status_code=500, detail="Failed to update recommendation")


@router.get("/{recommendation_id}")
def get_recommendation(
    recommendation_id: str,
    current=Depends(require_ai_permission("VIEW_RECOMMENDATIONS")),
):
    """One recommendation with its event history and latest evaluation run. Logs a 'viewed' event."""
    try:
        rec = _get_scoped_recommendation(recommendation_id, current)

        events = supabase_repo.list_recommendation_events(recommendation_id)
        evaluation = supabase_repo.get_latest_evaluation(recommendation_id)
        supabase_repo.log_recommendation_event(recommendation_id, "viewed", {}, current["user_id"])

        return {
            "success": True,
            "recommendation": rec,
            "events": events,
            "evaluation": evaluation,
        }
    except HTTPException:
        raise
    except Exception:
        logger.exception("Failed to get recommendation")
        raise HTTPException(status_code=500, detail="Failed to get recommendation")


@router.post("/{recommendation_id}")
def act_on_recommendation(
    recommendation_id: str,
    req: RecommendationActionRequest,
    current=Depends(require_ai_permission("APPROVE_RECOMMENDATIONS")),
):
    try:
        if req.action not in supabase_repo.RECOMMENDATION_ACTIONS:
            raise_validation_error("Invalid action. Must be: accept, reject, or apply")

        _get_scoped_recommendation(recommendation_id, current)
        rec = supabase_repo.act_on_recommendation(recommendation_id, req.action, req.feedback, current["user_id"])
        if rec is None:
            raise_not_found("Recommendation not found")

        status = supabase_repo.RECOMMENDATION_ACTIONS[req.action]
        return {"success": True, "recommendation": rec, "message": f"Recommendation {status}"}
    except HTTPException:
        raise
    except Exception:
        logger.exception("Failed to submit recommendation feedback")
        raise HTTPException(status_code=500, detail="Failed to submit feedback")
