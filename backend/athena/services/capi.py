"""
Facebook Conversions API (CAPI) client.

PII (email, phone, names) is normalized and SHA-256 hashed before it leaves
the server. A Facebook lead_id, when known, is sent as-is and is the best
match key.
"""
import hashlib
import logging
import re
import time
from typing import Any, Dict, Optional

import requests

from athena.core.config import CAPI_API_VERSION
from athena.core.logging_config import mask_access_token

logger = logging.getLogger(__name__)

CAPI_EVENT_NAMES = {
    # Standard events
    "PURCHASE": "Purchase",
    "LEAD": "Lead",
    "COMPLETE_REGISTRATION": "CompleteRegistration",
    "SUBSCRIBE": "Subscribe",
    "START_TRIAL": "StartTrial",
    "SCHEDULE": "Schedule",
    "CONTACT": "Contact",
    "SUBMIT_APPLICATION": "SubmitApplication",
    "INITIATE_CHECKOUT": "InitiateCheckout",
    "ADD_TO_CART": "AddToCart",
    "VIEW_CONTENT": "ViewContent",
    "SEARCH": "Search",
    "CUSTOM": "Custom",
    # Lead lifecycle
    "INQUIRY": "inquiry",
    "INTERESTED": "interested",
    "SCHEDULED": "scheduled",
    "COMPLETED": "completed",
    "LOST": "lost",
}

_PHONE_STRIP = re.compile(r"[\s\-()+]")


def hash_value(value: Optional[str]) -> str:
    if not value:
        return ""
    return hashlib.sha256(value.strip().lower().encode("utf-8")).hexdigest()


def normalize_phone(phone: Optional[str]) -> str:
    if not phone:
        return ""
    return _PHONE_STRIP.sub("", phone)


def normalize_email(email: Optional[str]) -> str:
    if not email:
        return ""
    return email.strip().lower()


def build_user_data(
    lead_id: Optional[str] = None,
    email: Optional[str] = None,
    phone: Optional[str] = None,
    first_name: Optional[str] = None,
    last_name: Optional[str] = None,
    client_ip_address: Optional[str] = None,
    client_user_agent: Optional[str] = None,
) -> Dict[str, str]:
    user_data: Dict[str, str] = {}
    if lead_id:
        user_data["lead_id"] = lead_id
    if email:
        user_data["em"] = hash_value(normalize_email(email))
    if phone:
        user_data["ph"] = hash_value(normalize_phone(phone))
    if first_name:
        user_data["fn"] = hash_value(first_name)
    if last_name:
        user_data["ln"] = hash_value(last_name)
    if client_ip_address:
        user_data["client_ip_address"] = client_ip_address
    if client_user_agent:
        user_data["client_user_agent"] = client_user_agent
    return user_data


def build_event(
    event_name: str,
    event_id: str,
    user_data: Dict[str, str],
    event_time: Optional[int] = None,
    value: Optional[float] = None,
    currency: Optional[str] = None,
    custom_data: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    return {
        "event_name": event_name,
        "event_time": event_time or int(time.time()),
        # event_id deduplicates browser and server events
        "event_id": event_id,
        "action_source": "system_generated",
        "user_data": user_data,
        "custom_data": {
            "value": value or 0,
            "currency": currency or "USD",
            **(custom_data or {}),
        },
    }


def send_event(dataset_id: str, access_token: str, event: Dict[str, Any]) -> Dict[str, Any]:
    """
    POSTs one event to /{dataset_id}/events.

    Returns:
        {'status': 'success', 'events_received', 'fbtrace_id'} or
        {'status': 'auth_error'|'http_error'|'error', 'message'}
    """
    if not dataset_id or not access_token:
        return {"status": "error", "message": "Missing Dataset ID or Access Token"}

    url = f"https://graph.facebook.com/{CAPI_API_VERSION}/{dataset_id}/events"
    try:
        logger.debug("send_event url=%s event=%s", url, event.get("event_name"))
        response = requests.post(
            url,
            params={"access_token": access_token},
            json={"data": [event]},
            timeout=15,
        )
        response.raise_for_status()
        body = response.json()
        logger.info("[CAPI] Event %s sent (received=%s)", event.get("event_name"), body.get("events_received"))
        return {
            "status": "success",
            "events_received": body.get("events_received"),
            "fbtrace_id": body.get("fbtrace_id"),
        }
    except requests.exceptions.HTTPError as http_err:
        try:
            error = http_err.response.json().get("error", {})
        except ValueError:
            error = {}
        message = error.get("message") or http_err.response.text or "Facebook API error"
        logger.error("send_event http_error: %s %s", http_err.response.status_code, message)
        if error.get("code") == 190:
            return {"status": "auth_error", "message": message}
        return {"status": "http_error", "message": message}
    except Exception as err:
        message = mask_access_token(str(err))
        logger.exception("send_event error: %s", message)
        return {"status": "error", "message": message}
