from fastapi import APIRouter, Depends, HTTPException, Query
from typing import Any, Dict, Optional
import logging

from athena.core.auth import require_permission, resolve_org_id
from athena.core.errors import raise_validation_error
from athena.schemas import HealthRecalculateRequest
from athena.services import data_health, supabase_repo

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ai", tags=["data-health"])


def _require_org_id(org_id: Optional[str], current: Dict[str, Any]) -> str:
    resolved = resolve_org_id(org_id, current)
    if not resolved:
        raise_validation_error("org_id is required")
    return resolved


@router.get("/health")
def get_health_scores(
    org_id: Optional[str] = Query(None),
    entity_type: Optional[str] = Query(None),
    entity_id: Optional[str] = Query(None),
    current=Depends(require_permission("view_analytics")),
):
    """Stored data health scores, worst first, with a summary."""
    try:
        org = _require_org_id(org_id, current)
        scores = supabase_repo.list_health_scores(org, entity_type, entity_id)
        return {
            "success": True,
            "data": scores,
            "summary": data_health.summarize_health_scores(scores),
        }
    except HTTPException:
        raise
    except Exception:
        logger.exception("Failed to fetch data health scores")
        raise HTTPException(status_code=500, detail="Failed to fetch data health scores")


@router.post("/health")
def recalculate_health_scores(
    req: HealthRecalculateRequest,
    current=Depends(require_permission("view_analytics")),
):
    """Recomputes campaign health from the org's ads and upserts the scores."""
    try:
        org = _require_org_id(req.org_id, current)
        if req.entity_type != "campaign":
            raise_validation_error("Only campaign health can be recalculated")

        ads = supabase_repo.list_user_ads(org)
        scores = data_health.calculate_campaign_health(ads, entity_id=req.entity_id)
        supabase_repo.upsert_health_scores(org, scores)

        summary = data_health.summarize_health_scores(scores)
        logger.info(f"[HEALTH] Recalculated {len(scores)} campaigns for org {org}")
        return {
            "success": True,
            "message": f"Recalculated health for {len(scores)} campaigns",
            "recalculated": len(scores),
            "ads_analyzed": len(ads),
            "summary": summary,
        }
    except HTTPException:
        raise
    except Exception:
        logger.exception("Failed to recalculate data health")
        raise HTTPException(status_code=500, detail="Failed to recalculate data health")
