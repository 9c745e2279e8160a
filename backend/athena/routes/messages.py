from fastapi import APIRouter, Depends, HTTPException, Query
import logging

from athena.core.auth import get_current_user
from athena.core.errors import raise_not_found, raise_validation_error
from athena.schemas import MessageSendRequest, MessageUpdateRequest
from athena.services import supabase_repo

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/organizer/messages", tags=["messages"])


@router.get("")
def list_messages(
    type: str = Query("inbox", description="inbox | sent"),
    unread_only: bool = Query(False),
    limit: int = Query(50, ge=1, le=200),
    user=Depends(get_current_user),
):
    try:
        if type not in ("inbox", "sent"):
            raise_validation_error("type must be 'inbox' or 'sent'")

        messages = supabase_repo.list_messages(user["user_id"], type, unread_only, limit)
        unread_count = supabase_repo.count_unread_messages(user["user_id"]) if type == "inbox" else 0
        return {"success": True, "messages": messages, "unread_count": unread_count}
    except HTTPException:
        raise
    except Exception:
        logger.exception("Failed to fetch messages")
        raise HTTPException(status_code=500, detail="Failed to fetch messages")


@router.post("")
def send_message(req: MessageSendRequest, user=Depends(get_current_user)):
    try:
        if not req.content.strip():
            raise_validation_error("Message content is required")

        message = supabase_repo.send_message(
            from_user_id=user["user_id"],
            to_user_id=req.to_user_id,
            content=req.content,
            subject=req.subject,
            parent_message_id=req.parent_message_id,
        )
        return {"success": True, "message": message}
    except HTTPException:
        raise
    except Exception:
        logger.exception("Failed to send message")
        raise HTTPException(status_code=500, detail="Failed to send message")


@router.patch("")
def update_message(req: MessageUpdateRequest, user=Depends(get_current_user)):
    """Marks one message (or the whole inbox) read or unread."""
    try:
        if req.mark_all_read:
            updated = supabase_repo.mark_all_messages_read(user["user_id"])
            return {"success": True, "message": "All messages marked as read", "updated": updated}

        if not req.message_id:
            raise_validation_error("Message ID required")

        message = supabase_repo.set_message_read(req.message_id, user["user_id"], req.is_read)
        if message is None:
            raise_not_found("Message not found")
        return {"success": True, "message": message}
    except HTTPException:
        raise
    except Exception:
        logger.exception("Failed to update message")
        raise HTTPException(status_code=500, detail="Failed to update message")


@router.delete("")
def delete_message(id: str = Query(..., description="Message id"), user=Depends(get_current_user)):
    try:
        if not supabase_repo.delete_message(id, user["user_id"]):
            raise_not_found("Message not found")
        return {"success": True, "message": "Message deleted"}
    except HTTPException:
        raise
    except Exception:
        logger.exception("Failed to delete message")
        raise HTTPException(status_code=500, detail="Failed to delete message")
