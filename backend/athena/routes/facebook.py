from fastapi import APIRouter, Depends, HTTPException, Query
from typing import Any, Dict, Optional
import logging

from athena.core.auth import require_permission
from athena.core.config import META_ACCESS_TOKEN, META_AD_ACCOUNT_ID, META_PAGE_ID
from athena.core.errors import (
    META_API_ERROR,
    META_NOT_CONFIGURED,
    META_TOKEN_EXPIRED,
    raise_api_error,
    raise_validation_error,
)
from athena.schemas import AdSetCreateRequest, CampaignCreateRequest
from athena.services.graph_api import (
    BILLING_EVENTS,
    CAMPAIGN_STATUSES,
    OPTIMIZATION_GOALS,
    MarketingAPI,
    build_targeting_spec,
    normalize_objective,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/facebook", tags=["facebook"])

OBJECTIVE_HELP = "Valid options: awareness, engagement, leads, sales, traffic, app"


def get_marketing_api(ad_account_id: Optional[str] = None) -> MarketingAPI:
    token = META_ACCESS_TOKEN
    account = ad_account_id or META_AD_ACCOUNT_ID
    if not token:
        raise_api_error(META_NOT_CONFIGURED, "Missing Meta access token. Set META_ACCESS_TOKEN.")
    if not account:
        raise_api_error(META_NOT_CONFIGURED, "Missing ad account. Set META_AD_ACCOUNT_ID or pass ad_account_id.")
    return MarketingAPI(token, account)


def raise_for_result(result: Dict[str, Any]) -> None:
    """Maps a failed Graph API result dict to an HTTP error."""
    if result.get("status") == "success":
        return
    if result.get("status") == "auth_error":
        raise_api_error(
            META_TOKEN_EXPIRED,
            "Meta access token expired or invalid. Reconnect your account.",
            status_code=401,
        )
    details = {
        k: result.get(k)
        for k in ("error_code", "error_subcode")
        if result.get(k) is not None
    }
    raise_api_error(META_API_ERROR, result.get("message") or "Facebook API error", details=details or None)


@router.get("/campaigns")
def list_campaigns(
    status: str = Query("all", description="all | ACTIVE | PAUSED ..."),
    ad_account_id: Optional[str] = Query(None),
    current=Depends(require_permission("connect_meta")),
):
    try:
        result = get_marketing_api(ad_account_id).list_campaigns(status)
        raise_for_result(result)
        return {
            "success": True,
            "campaigns": result["campaigns"],
            "total": len(result["campaigns"]),
            "paging": result.get("paging"),
        }
    except HTTPException:
        raise
    except Exception:
        logger.exception("Failed to list campaigns")
        raise HTTPException(status_code=500, detail="Failed to fetch campaigns")


@router.post("/campaigns")
def create_campaign(req: CampaignCreateRequest, current=Depends(require_permission("connect_meta"))):
    try:
        if not req.name.strip():
            raise_validation_error("Missing campaign name")
        objective = normalize_objective(req.objective)
        if objective is None:
            raise_validation_error(f'Invalid objective "{req.objective}". {OBJECTIVE_HELP}')
        status = req.status.upper()
        if status not in CAMPAIGN_STATUSES:
            raise_validation_error("Invalid status. Must be ACTIVE or PAUSED")

        api = get_marketing_api(req.ad_account_id)
        result = api.create_campaign(req.name.strip(), objective, status, req.special_ad_categories)
        raise_for_result(result)
        return {
            "success": True,
            "campaign_id": result["campaign_id"],
            "name": req.name.strip(),
            "objective": objective,
            "status": status,
            "optimization_goals": OPTIMIZATION_GOALS.get(objective, []),
        }
    except HTTPException:
        raise
    except Exception:
        logger.exception("Failed to create campaign")
        raise HTTPException(status_code=500, detail="Failed to create campaign")


@router.get("/adsets")
def list_adsets(
    campaign_id: Optional[str] = Query(None),
    ad_account_id: Optional[str] = Query(None),
    current=Depends(require_permission("connect_meta")),
):
    """Ad sets of a campaign, or of the whole account. Budgets are returned in currency units."""
    try:
        result = get_marketing_api(ad_account_id).list_adsets(campaign_id)
        raise_for_result(result)
        return {
            "success": True,
            "adsets": result["adsets"],
            "total": len(result["adsets"]),
            "paging": result.get("paging"),
        }
    except HTTPException:
        raise
    except Exception:
        logger.exception("Failed to list ad sets")
        raise HTTPException(status_code=500, detail="Failed to fetch ad sets")


@router.post("/adsets")
def create_adset(req: AdSetCreateRequest, current=Depends(require_permission("connect_meta"))):
    try:
        if not req.name.strip():
            raise_validation_error("Missing ad set name")
        if not req.daily_budget and not req.lifetime_budget:
            raise_validation_error("Must provide either daily_budget or lifetime_budget")
        if req.lifetime_budget and not req.end_time:
            raise_validation_error("end_time is required when using lifetime budget")
        billing_event = req.billing_event.upper()
        if billing_event not in BILLING_EVENTS:
            raise_validation_error(f"Invalid billing_event. Must be one of {', '.join(BILLING_EVENTS)}")

        # Full specs (with geo_locations) pass through untouched
        targeting = req.targeting if "geo_locations" in req.targeting else build_targeting_spec(req.targeting)

        api = get_marketing_api(req.ad_account_id)
        result = api.create_adset(
            name=req.name.strip(),
            campaign_id=req.campaign_id,
            targeting=targeting,
            daily_budget=req.daily_budget,
            lifetime_budget=req.lifetime_budget,
            start_time=req.start_time,
            end_time=req.end_time,
            optimization_goal=req.optimization_goal,
            billing_event=billing_event,
            bid_amount=req.bid_amount,
            status=req.status,
            destination_type=req.destination_type,
            page_id=req.page_id or META_PAGE_ID,
        )
        raise_for_result(result)
        return {
            "success": True,
            "adset_id": result["adset_id"],
            "name": req.name.strip(),
            "campaign_id": req.campaign_id,
            "targeting": targeting,
        }
    except HTTPException:
        raise
    except Exception:
        logger.exception("Failed to create ad set")
        raise HTTPException(status_code=500, detail="Failed to create ad set")


@router.get("/insights")
def get_insights(
    object_id: str = Query(..., description="Campaign, ad set or ad id"),
    date_preset: Optional[str] = Query("last_7d"),
    since: Optional[str] = Query(None, description="YYYY-MM-DD"),
    until: Optional[str] = Query(None, description="YYYY-MM-DD"),
    breakdowns: Optional[str] = Query(None),
    current=Depends(require_permission("view_analytics")),
):
    try:
        if bool(since) != bool(until):
            raise_validation_error("since and until must be provided together")
        time_range = {"since": since, "until": until} if since and until else None
        result = get_marketing_api().get_insights(
            object_id,
            date_preset=date_preset,
            time_range=time_range,
            breakdowns=breakdowns,
        )
        raise_for_result(result)
        return {"success": True, "insights": result["insights"]}
    except HTTPException:
        raise
    except Exception:
        logger.exception("Failed to fetch insights")
        raise HTTPException(status_code=500, detail="Failed to fetch insights")
