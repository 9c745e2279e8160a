from fastapi import APIRouter, Depends, HTTPException, Query
from typing import Optional
import logging

from athena.core.auth import get_current_user, require_permission
from athena.core.errors import CONFLICT, raise_api_error, raise_not_found, raise_validation_error
from athena.schemas import LearnedTraitRequest, PublicTraitCreateRequest, PublicTraitReviewRequest
from athena.services import supabase_repo

logger = logging.getLogger(__name__)

router = APIRouter(tags=["traits"])

PUBLIC_TRAIT_STATUSES = ("pending", "approved", "rejected")


# ===== Learned traits ===== #

@router.get("/ai/learned-traits")
def list_learned_traits(
    business_type: Optional[str] = Query(None),
    user=Depends(get_current_user),
):
    """Traits taught by users, most used first. Traits with no business type always match."""
    try:
        traits = supabase_repo.list_learned_traits(business_type)
        return {"success": True, "traits": traits, "total": len(traits)}
    except Exception:
        logger.exception("Failed to fetch learned traits")
        raise HTTPException(status_code=500, detail="Failed to fetch traits")


@router.post("/ai/learned-traits")
def add_learned_trait(req: LearnedTraitRequest, user=Depends(get_current_user)):
    try:
        if not req.trait_name.strip() or not req.definition.strip():
            raise_validation_error("Trait name and definition are required")

        result = supabase_repo.add_learned_trait(
            trait_name=req.trait_name,
            definition=req.definition,
            trait_category=req.trait_category,
            business_type=req.business_type,
            added_by=user["user_id"],
        )
        message = (
            "Trait added successfully"
            if result["created"]
            else "Trait already exists, incremented usage count"
        )
        return {"success": True, "trait": result["trait"], "message": message}
    except HTTPException:
        raise
    except Exception:
        logger.exception("Failed to add learned trait")
        raise HTTPException(status_code=500, detail="Failed to add trait")


@router.delete("/ai/learned-traits")
def delete_learned_trait(id: str = Query(..., description="Trait id"), user=Depends(get_current_user)):
    try:
        if not supabase_repo.delete_learned_trait(id):
            raise_not_found("Trait not found")
        return {"success": True, "message": "Trait deleted"}
    except HTTPException:
        raise
    except Exception:
        logger.exception("Failed to delete learned trait")
        raise HTTPException(status_code=500, detail="Failed to delete trait")


# ===== Public traits ===== #

@router.get("/traits")
def list_public_traits(
    status: str = Query("approved"),
    include_all: bool = Query(False),
    user=Depends(get_current_user),
):
    try:
        return {"success": True, "traits": supabase_repo.list_public_traits(status, include_all)}
    except Exception:
        logger.exception("Failed to fetch public traits")
        raise HTTPException(status_code=500, detail="Failed to fetch traits")


@router.post("/traits")
def create_public_trait(req: PublicTraitCreateRequest, user=Depends(get_current_user)):
    """Suggests a trait; it stays pending until reviewed."""
    try:
        name = req.name.strip()
        if not name:
            raise_validation_error("Name is required")

        existing = supabase_repo.find_public_trait_by_name(name)
        if existing:
            raise_api_error(
                CONFLICT,
                "Trait already exists",
                status_code=409,
                details={"existing_id": existing["id"]},
            )

        trait = supabase_repo.create_public_trait(
            name=name,
            group=req.group,
            emoji=req.emoji,
            description=req.description,
            created_by=user["user_id"],
            created_by_ai=req.created_by_ai,
        )
        return {"success": True, "trait": trait}
    except HTTPException:
        raise
    except Exception:
        logger.exception("Failed to create public trait")
        raise HTTPException(status_code=500, detail="Failed to create trait")


@router.patch("/traits")
def review_public_trait(
    req: PublicTraitReviewRequest,
    current=Depends(require_permission("view_all_organizations", "manage_users")),
):
    try:
        if req.status and req.status not in PUBLIC_TRAIT_STATUSES:
            raise_validation_error(f"status must be one of {', '.join(PUBLIC_TRAIT_STATUSES)}")

        updates = req.model_dump(exclude={"id"}, exclude_none=True)
        trait = supabase_repo.update_public_trait(req.id, updates, reviewed_by=current["user_id"])
        if trait is None:
            raise_not_found("Trait not found")
        return {"success": True, "trait": trait}
    except HTTPException:
        raise
    except Exception:
        logger.exception("Failed to update public trait")
        raise HTTPException(status_code=500, detail="Failed to update trait")


@router.delete("/traits")
def delete_public_trait(
    id: str = Query(..., description="Trait id"),
    current=Depends(require_permission("view_all_organizations", "manage_users")),
):
    try:
        supabase_repo.delete_public_trait(id)
        return {"success": True}
    except Exception:
        logger.exception("Failed to delete public trait")
        raise HTTPException(status_code=500, detail="Failed to delete trait")
