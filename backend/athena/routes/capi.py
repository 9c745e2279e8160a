from fastapi import APIRouter, Depends, HTTPException
import logging

from athena.core.auth import require_permission
from athena.core.config import META_CAPI_ACCESS_TOKEN, META_DATASET_ID
from athena.core.errors import META_API_ERROR, META_TOKEN_EXPIRED, raise_api_error, raise_validation_error
from athena.schemas import CapiSendRequest
from athena.services import capi

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/capi", tags=["capi"])


@router.post("/send")
def send_conversion(req: CapiSendRequest, current=Depends(require_permission("manage_capi"))):
    """Sends one conversion event to the Conversions API."""
    try:
        dataset_id = req.dataset_id or META_DATASET_ID
        access_token = req.access_token or META_CAPI_ACCESS_TOKEN
        if not dataset_id:
            raise_validation_error("Dataset ID is required")
        if not access_token:
            raise_validation_error("CAPI Access Token is required")
        if not req.event_name.strip():
            raise_validation_error("Event name is required")
        if not req.event_id:
            raise_validation_error("event_id is required for deduplication (use unique conversion ID)")
        if not req.event_time:
            raise_validation_error("event_time is required (Unix timestamp of when action occurred)")
        if not (req.lead_id or req.email or req.phone):
            raise_validation_error("At least one identifier required: lead_id, email, or phone")

        user_data = capi.build_user_data(
            lead_id=req.lead_id,
            email=req.email,
            phone=req.phone,
            first_name=req.first_name,
            last_name=req.last_name,
            client_ip_address=req.client_ip_address,
            client_user_agent=req.client_user_agent,
        )
        event = capi.build_event(
            event_name=capi.CAPI_EVENT_NAMES.get(req.event_name.upper(), req.event_name),
            event_id=req.event_id,
            user_data=user_data,
            event_time=req.event_time,
            value=req.value,
            currency=req.currency,
            custom_data=req.custom_data,
        )
        result = capi.send_event(dataset_id, access_token, event)

        if result["status"] == "auth_error":
            raise_api_error(META_TOKEN_EXPIRED, result["message"], status_code=401)
        if result["status"] != "success":
            raise_api_error(META_API_ERROR, result.get("message") or "Failed to send event")

        return {
            "success": True,
            "message": "Conversion event sent successfully",
            "events_received": result.get("events_received"),
            "fbtrace_id": result.get("fbtrace_id"),
        }
    except HTTPException:
        raise
    except Exception:
        logger.exception("Failed to send CAPI event")
        raise HTTPException(status_code=500, detail="Failed to send conversion event")
