from fastapi import APIRouter, Depends, HTTPException, Query
from typing import Optional
import logging

from athena.core.auth import get_current_user, require_permission
from athena.core.errors import CONFLICT, raise_api_error, raise_not_found, raise_validation_error
from athena.schemas import DataAccessRequest, DataPoolCreateRequest
from athena.services import supabase_repo

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/data-pools", tags=["data-pools"])

# Previous requests in these states may be submitted again
RESUBMITTABLE_STATUSES = ("denied", "revoked")


@router.get("")
def list_data_pools(
    industry: Optional[str] = Query(None),
    platform: Optional[str] = Query(None),
    audience: Optional[str] = Query(None),
    format: Optional[str] = Query(None),
    user=Depends(get_current_user),
):
    """Public pools plus the caller's access status on each."""
    try:
        pools = supabase_repo.list_data_pools(
            user_id=user["user_id"],
            industry=industry,
            platform=platform,
            audience=audience,
            creative_format=format,
        )
        return {"success": True, "data": pools, "total": len(pools)}
    except Exception:
        logger.exception("Failed to fetch data pools")
        raise HTTPException(status_code=500, detail="Failed to fetch data pools")


@router.post("")
def create_data_pool(
    req: DataPoolCreateRequest,
    current=Depends(require_permission("manage_users", "view_all_organizations")),
):
    try:
        if not req.name.strip() or not req.slug.strip():
            raise_validation_error("Name and slug are required")
        pool = supabase_repo.create_data_pool(req.model_dump())
        logger.info(f"[DATA_POOLS] Created pool {req.slug}")
        return {"success": True, "data": pool}
    except HTTPException:
        raise
    except Exception:
        logger.exception("Failed to create data pool")
        raise HTTPException(status_code=500, detail="Failed to create data pool")


@router.post("/request")
def request_access(req: DataAccessRequest, user=Depends(get_current_user)):
    """
    Requests access to a pool. Pools without approval grant access at once;
    denied or revoked requests can be resubmitted, anything else is a conflict.
    """
    try:
        pool = supabase_repo.get_data_pool(req.pool_id)
        if pool is None:
            raise_not_found("Data pool not found")

        existing = supabase_repo.get_access_request(user["user_id"], req.pool_id)
        if existing:
            if existing.get("status") not in RESUBMITTABLE_STATUSES:
                raise_api_error(
                    CONFLICT,
                    f"You already have a {existing.get('status')} request for this pool",
                    status_code=409,
                )
            updated = supabase_repo.resubmit_access_request(existing["id"], req.reason, req.intended_use)
            return {"success": True, "message": "Access request resubmitted", "data": updated}

        requires_approval = bool(pool.get("requires_approval", True))
        created = supabase_repo.create_access_request(
            user_id=user["user_id"],
            pool_id=req.pool_id,
            requires_approval=requires_approval,
            user_email=(user.get("claims") or {}).get("email"),
            reason=req.reason,
            intended_use=req.intended_use,
        )
        message = (
            "Access request submitted. Awaiting admin approval."
            if requires_approval
            else "Access granted automatically."
        )
        return {"success": True, "message": message, "data": created}
    except HTTPException:
        raise
    except Exception:
        logger.exception("Failed to request data pool access")
        raise HTTPException(status_code=500, detail="Failed to submit request")


@router.get("/request")
def list_my_requests(user=Depends(get_current_user)):
    try:
        return {"success": True, "data": supabase_repo.list_access_requests(user["user_id"])}
    except Exception:
        logger.exception("Failed to fetch access requests")
        raise HTTPException(status_code=500, detail="Failed to fetch requests")
