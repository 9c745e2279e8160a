from fastapi import APIRouter, Depends, HTTPException
import logging

from athena.core.auth import get_current_user
from athena.schemas import AIPreferencesRequest
from athena.services import supabase_repo

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ai/preferences", tags=["preferences"])


@router.get("")
def get_preferences(user=Depends(get_current_user)):
    """Caller's AI preferences; defaults when nothing is stored yet."""
    try:
        return {
            "success": True,
            "preferences": supabase_repo.get_ai_preferences(user["token"], user["user_id"]),
        }
    except Exception:
        logger.exception("Failed to fetch AI preferences")
        raise HTTPException(status_code=500, detail="Failed to fetch preferences")


@router.post("")
def save_preferences(req: AIPreferencesRequest, user=Depends(get_current_user)):
    try:
        prefs = supabase_repo.upsert_ai_preferences(
            user["token"],
            user["user_id"],
            req.org_id,
            req.model_dump(exclude={"org_id"}),
        )
        return {"success": True, "preferences": prefs}
    except Exception:
        logger.exception("Failed to save AI preferences")
        raise HTTPException(status_code=500, detail="Failed to save preferences")
