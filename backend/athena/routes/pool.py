from fastapi import APIRouter, Depends, HTTPException, Query
from typing import Any, Dict, List, Optional
import logging

from athena.core.auth import get_current_user
from athena.core.config import POOL_RATE_LIMIT_PER_HOUR
from athena.core.errors import RATE_LIMITED, raise_api_error, raise_validation_error
from athena.schemas import PoolAnonymizeRequest, PoolContributeRequest, PoolSearchRequest
from athena.services import pool, supabase_repo

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/pool", tags=["pool"])


def fetch_community_patterns(
    industry: Optional[str] = None,
    min_sample_size: int = 10,
    min_confidence: float = 0.3,
    traits: Optional[List[str]] = None,
    sort_by: str = "avgZScore",
    sort_order: str = "desc",
    limit: int = 20,
    offset: int = 0,
) -> Dict[str, Any]:
    sort_column = pool.PATTERN_SORT_COLUMNS.get(sort_by, "avg_weight")
    result = supabase_repo.query_collective_priors(
        industry=industry,
        min_sample_size=min_sample_size,
        min_confidence=min_confidence,
        traits=traits,
        sort_column=sort_column,
        ascending=sort_order == "asc",
        limit=limit,
        offset=offset,
    )
    patterns = [pool.pattern_from_prior(row) for row in result["rows"]]
    return {
        "patterns": patterns,
        "total": result["total"],
        "has_more": offset + limit < result["total"],
    }


def fetch_preset_patterns(preset: str, limit: int) -> List[Dict[str, Any]]:
    """Well-established patterns only: "top" performers or "worst" ones to avoid."""
    options = pool.PATTERN_PRESETS[preset]
    return fetch_community_patterns(
        min_sample_size=options["min_sample_size"],
        min_confidence=options["min_confidence"],
        sort_by="avgZScore",
        sort_order=options["sort_order"],
        limit=limit,
    )["patterns"]


@router.post("/contribute")
def contribute(req: PoolContributeRequest):
    """Stores anonymized insights (traits + Z-score) in user_contributions."""
    try:
        if not req.insights:
            raise_validation_error("Insights array is required")
        if not req.contributor_hash:
            raise_validation_error("Contributor hash is required")

        if not pool.check_rate_limit(req.contributor_hash):
            raise_api_error(
                RATE_LIMITED,
                f"Rate limit exceeded. Max {POOL_RATE_LIMIT_PER_HOUR} contributions per hour.",
                status_code=429,
            )

        for insight in req.insights:
            if abs(insight.z_score) > pool.MAX_ABS_ZSCORE:
                raise_validation_error(f"Z-score must be between -{pool.MAX_ABS_ZSCORE:g} and {pool.MAX_ABS_ZSCORE:g}")
            check = pool.validate_anonymization({
                "traits": insight.traits,
                "contributor_hash": req.contributor_hash,
            })
            if not check["is_valid"]:
                raise_validation_error("Insight is not anonymized", details={"issues": check["issues"]})

        records = [pool.contribution_record(i.model_dump(), req.contributor_hash) for i in req.insights]
        count = supabase_repo.insert_contributions(records)
        logger.info(f"[POOL] Stored {count} contributions from {req.contributor_hash[:12]}...")
        return {"success": True, "message": "Contributions saved successfully", "count": count}
    except HTTPException:
        raise
    except Exception:
        logger.exception("Failed to save pool contributions")
        raise HTTPException(status_code=500, detail="Failed to save contributions")


@router.post("/anonymize")
def anonymize(req: PoolAnonymizeRequest, user=Depends(get_current_user)):
    """Preview of what would be shared for one ad, with the caller's rotating hash."""
    try:
        result = pool.anonymize_contribution(
            content=req.content,
            success_score=req.success_score,
            user_id=user["user_id"],
            baseline=req.baseline,
            ad_spend=req.ad_spend,
            include_industry=req.include_industry,
            include_platform=req.include_platform,
            include_spend_tier=req.include_spend_tier,
        )
        result["validation"] = pool.validate_anonymization(result["insight"])
        return {"success": True, "data": result}
    except Exception:
        logger.exception("Failed to anonymize contribution")
        raise HTTPException(status_code=500, detail="Failed to anonymize contribution")


@router.get("/patterns")
def get_patterns(
    industry: Optional[str] = Query(None),
    min_sample_size: int = Query(10, ge=0),
    min_confidence: float = Query(0.3, ge=0, le=1),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    sort_by: str = Query("avg_weight"),
    sort_order: str = Query("desc"),
    traits: Optional[str] = Query(None, description="Comma separated traits"),
    preset: Optional[str] = Query(None, description="top | worst"),
):
    try:
        if preset:
            if preset not in pool.PATTERN_PRESETS:
                raise_validation_error("preset must be 'top' or 'worst'")
            patterns = fetch_preset_patterns(preset, limit)
            return {"success": True, "patterns": patterns, "total": len(patterns), "has_more": False}

        trait_list = [t.strip() for t in traits.split(",") if t.strip()] if traits else None
        result = fetch_community_patterns(
            industry=industry,
            min_sample_size=min_sample_size,
            min_confidence=min_confidence,
            traits=trait_list,
            sort_by=sort_by,
            sort_order=sort_order,
            limit=limit,
            offset=offset,
        )
        return {"success": True, **result}
    except HTTPException:
        raise
    except Exception:
        logger.exception("Failed to fetch community patterns")
        raise HTTPException(status_code=500, detail="Failed to fetch patterns")


@router.get("/public")
def get_public_patterns(
    industry: Optional[str] = Query(None),
    min_sample_size: int = Query(5, ge=0),
    limit: int = Query(50, ge=1, le=200),
    sort_by: str = Query("avgZScore"),
    sort_order: str = Query("desc"),
):
    """Community patterns for every user, with top performers and patterns to avoid."""
    try:
        result = fetch_community_patterns(
            industry=industry,
            min_sample_size=min_sample_size,
            sort_by=sort_by,
            sort_order=sort_order,
            limit=limit,
        )
        return {
            "success": True,
            **result,
            "insights": {
                "top_patterns": fetch_preset_patterns("top", 10),
                "patterns_to_avoid": fetch_preset_patterns("worst", 5),
                "summary": pool.summarize_patterns(result["patterns"], result["total"]),
            },
        }
    except Exception:
        logger.exception("[POOL] Public patterns unavailable")
        return {
            "success": True,
            "patterns": [],
            "total": 0,
            "has_more": False,
            "insights": {
                "top_patterns": [],
                "patterns_to_avoid": [],
                "summary": pool.summarize_patterns([], 0),
            },
            "warning": "Unable to fetch live data.",
        }


@router.post("/public")
def search_public_patterns(req: PoolSearchRequest):
    try:
        result = fetch_community_patterns(
            industry=req.industry,
            min_sample_size=5,
            limit=100,
            sort_by="avgZScore",
            sort_order="desc",
        )
        patterns = pool.filter_patterns(result["patterns"], req.traits, req.platform, req.audience)
        return {
            "success": True,
            "patterns": patterns,
            "total": len(patterns),
            "search_criteria": req.model_dump(),
        }
    except Exception:
        logger.exception("Failed to search community patterns")
        raise HTTPException(status_code=500, detail="Failed to search patterns")
