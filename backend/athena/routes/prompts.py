from fastapi import APIRouter, Depends, HTTPException, Query
from typing import Optional
import logging

from athena.core.auth import require_ai_permission
from athena.core.errors import raise_not_found, raise_validation_error
from athena.schemas import PromptVersionCreateRequest, PromptVersionUpdateRequest
from athena.services import supabase_repo

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ai/prompts", tags=["prompts"])


@router.get("")
def list_prompts(
    prompt_name: Optional[str] = Query(None),
    active_only: bool = Query(False),
    current=Depends(require_ai_permission("VIEW_GOVERNANCE")),
):
    try:
        return {"success": True, "prompts": supabase_repo.list_prompt_versions(prompt_name, active_only)}
    except Exception:
        logger.exception("Failed to fetch prompt versions")
        raise HTTPException(status_code=500, detail="Failed to fetch prompts")


@router.post("")
def create_prompt(
    req: PromptVersionCreateRequest,
    current=Depends(require_ai_permission("EDIT_GOVERNANCE")),
):
    try:
        prompt = supabase_repo.create_prompt_version(
            prompt_name=req.prompt_name,
            version=req.version,
            prompt_text=req.prompt_text,
            tool_definitions=req.tool_definitions,
            created_by=current["user_id"],
            set_as_default=req.set_as_default,
        )
        logger.info(f"[PROMPTS] Created {req.prompt_name} v{req.version} (default={req.set_as_default})")
        return {"success": True, "prompt": prompt}
    except Exception:
        logger.exception("Failed to create prompt version")
        raise HTTPException(status_code=500, detail="Failed to create prompt")


@router.patch("")
def update_prompt(
    req: PromptVersionUpdateRequest,
    current=Depends(require_ai_permission("EDIT_GOVERNANCE")),
):
    """Toggles is_active/is_default or records run stats."""
    try:
        updates = req.model_dump(exclude={"id"}, exclude_none=True)
        if not updates:
            raise_validation_error("Nothing to update")
        prompt = supabase_repo.update_prompt_version(req.id, updates)
        if prompt is None:
            raise_not_found("Prompt version not found")
        return {"success": True, "prompt": prompt}
    except HTTPException:
        raise
    except Exception:
        logger.exception("Failed to update prompt version")
        raise HTTPException(status_code=500, detail="Failed to update prompt")
