import json
import logging
import math
import urllib.parse
from typing import Any, Dict, List, Optional

import requests

from athena.core.config import GRAPH_API_VERSION
from athena.core.logging_config import mask_access_token

logger = logging.getLogger(__name__)

VALID_OBJECTIVES = [
    "OUTCOME_AWARENESS",
    "OUTCOME_ENGAGEMENT",
    "OUTCOME_LEADS",
    "OUTCOME_SALES",
    "OUTCOME_TRAFFIC",
    "OUTCOME_APP_PROMOTION",
]

OBJECTIVE_ALIASES = {
    # Awareness
    "awareness": "OUTCOME_AWARENESS",
    "brand": "OUTCOME_AWARENESS",
    "reach": "OUTCOME_AWARENESS",
    "brand_awareness": "OUTCOME_AWARENESS",
    # Engagement
    "engagement": "OUTCOME_ENGAGEMENT",
    "likes": "OUTCOME_ENGAGEMENT",
    "page_likes": "OUTCOME_ENGAGEMENT",
    "post_engagement": "OUTCOME_ENGAGEMENT",
    "messages": "OUTCOME_ENGAGEMENT",
    # Leads
    "leads": "OUTCOME_LEADS",
    "lead_generation": "OUTCOME_LEADS",
    "lead": "OUTCOME_LEADS",
    # Sales
    "sales": "OUTCOME_SALES",
    "conversions": "OUTCOME_SALES",
    "purchase": "OUTCOME_SALES",
    "purchases": "OUTCOME_SALES",
    "catalog": "OUTCOME_SALES",
    # Traffic
    "traffic": "OUTCOME_TRAFFIC",
    "clicks": "OUTCOME_TRAFFIC",
    "link_clicks": "OUTCOME_TRAFFIC",
    "website": "OUTCOME_TRAFFIC",
    "website_traffic": "OUTCOME_TRAFFIC",
    # App
    "app": "OUTCOME_APP_PROMOTION",
    "app_install": "OUTCOME_APP_PROMOTION",
    "app_installs": "OUTCOME_APP_PROMOTION",
    "app_promotion": "OUTCOME_APP_PROMOTION",
}

OPTIMIZATION_GOALS = {
    "OUTCOME_AWARENESS": ["REACH", "IMPRESSIONS", "AD_RECALL_LIFT", "THRUPLAY"],
    "OUTCOME_ENGAGEMENT": ["ENGAGED_USERS", "POST_ENGAGEMENT", "PAGE_LIKES", "CONVERSATIONS"],
    "OUTCOME_LEADS": ["LEAD_GENERATION", "QUALITY_LEAD", "CONVERSATIONS", "LANDING_PAGE_VIEWS"],
    "OUTCOME_SALES": ["OFFSITE_CONVERSIONS", "VALUE", "CONVERSATIONS"],
    "OUTCOME_TRAFFIC": ["LINK_CLICKS", "LANDING_PAGE_VIEWS", "REACH"],
    "OUTCOME_APP_PROMOTION": ["APP_INSTALLS", "OFFSITE_CONVERSIONS", "VALUE"],
}

BILLING_EVENTS = ["IMPRESSIONS", "LINK_CLICKS", "APP_INSTALLS", "THRUPLAY"]
CAMPAIGN_STATUSES = ["ACTIVE", "PAUSED"]

CAMPAIGN_FIELDS = "id,name,objective,status,effective_status,created_time,daily_budget,lifetime_budget"
CAMPAIGN_ADSET_FIELDS = (
    "id,name,status,effective_status,daily_budget,lifetime_budget,start_time,end_time,"
    "targeting,optimization_goal,billing_event,bid_amount"
)
ACCOUNT_ADSET_FIELDS = (
    "id,name,status,effective_status,daily_budget,lifetime_budget,start_time,end_time,"
    "campaign_id,optimization_goal"
)
INSIGHT_FIELDS = "impressions,reach,frequency,clicks,ctr,cpc,cpm,spend,actions,inline_link_clicks"


def normalize_objective(objective: str) -> Optional[str]:
    """Alias ('leads', 'Website Traffic') or OUTCOME_* value -> OUTCOME_* objective, None if unknown."""
    if not objective:
        return None
    key = "".join(ch for ch in objective.lower().replace(" ", "_") if ch.isalpha() or ch == "_")
    if key in OBJECTIVE_ALIASES:
        return OBJECTIVE_ALIASES[key]
    upper = objective.upper()
    return upper if upper in VALID_OBJECTIVES else None


def to_cents(amount: Optional[float]) -> Optional[int]:
    if not amount:
        return None
    return int(math.floor(float(amount) * 100 + 0.5))


def from_cents(value: Any) -> Optional[float]:
    if not value:
        return None
    return float(value) / 100


def build_targeting_spec(targeting: Dict[str, Any]) -> Dict[str, Any]:
    """
    Builds a Marketing API targeting spec from simplified parameters.

    Keys: countries, cities, regions, age_min, age_max, genders (1=male, 2=female),
    interests, custom_audiences, excluded_custom_audiences, publisher_platforms,
    device_platforms, locales. Location defaults to the Philippines.
    """
    spec: Dict[str, Any] = {}

    geo: Dict[str, Any] = {}
    if targeting.get("countries"):
        geo["countries"] = [c.upper() for c in targeting["countries"]]
    if targeting.get("cities"):
        geo["cities"] = [{"key": city} for city in targeting["cities"]]
    if targeting.get("regions"):
        geo["regions"] = [{"key": region} for region in targeting["regions"]]
    if not geo:
        geo["countries"] = ["PH"]
    spec["geo_locations"] = geo

    # Meta accepts 18-65 (65 means 65+)
    if targeting.get("age_min"):
        spec["age_min"] = max(18, min(65, int(targeting["age_min"])))
    if targeting.get("age_max"):
        spec["age_max"] = max(18, min(65, int(targeting["age_max"])))

    if targeting.get("genders"):
        spec["genders"] = list(targeting["genders"])

    if targeting.get("interests"):
        spec["flexible_spec"] = [{"interests": [{"name": i} for i in targeting["interests"]]}]

    if targeting.get("custom_audiences"):
        spec["custom_audiences"] = [{"id": a} for a in targeting["custom_audiences"]]
    if targeting.get("excluded_custom_audiences"):
        spec["excluded_custom_audiences"] = [{"id": a} for a in targeting["excluded_custom_audiences"]]

    for key in ("publisher_platforms", "device_platforms", "locales"):
        if targeting.get(key):
            spec[key] = list(targeting[key])

    return spec


def friendly_error_message(error: Dict[str, Any]) -> str:
    """Rewrites common code-100 (invalid parameter) errors into actionable text."""
    message = error.get("message") or "Facebook API error"
    if error.get("code") == 100:
        if "daily_budget" in message:
            return "Daily budget must be at least ₱200 (or currency equivalent minimum)"
        if "targeting" in message:
            return "Invalid targeting configuration. Check countries, ages, or interests."
    return message


def _budgets_from_cents(item: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(item)
    for key in ("daily_budget", "lifetime_budget", "bid_amount"):
        out[key] = from_cents(out.get(key))
    return out


class MarketingAPI:
    def __init__(self, access_token: str, ad_account_id: Optional[str] = None):
        self.base_url = f"https://graph.facebook.com/{GRAPH_API_VERSION}/"
        self.access_token = access_token
        self.ad_account_id = (ad_account_id or "").replace("act_", "") or None
        self.limit = 50

    @property
    def account_path(self) -> str:
        return f"act_{self.ad_account_id}"

    def _error_result(self, http_err: requests.exceptions.HTTPError, context: str) -> Dict[str, Any]:
        raw_url = http_err.request.url if http_err.request is not None else ""
        decoded_url = mask_access_token(urllib.parse.unquote(raw_url))
        decoded_text = urllib.parse.unquote(http_err.response.text)
        logger.error("%s http_error: %s %s for %s", context, http_err.response.status_code, decoded_text, decoded_url)
        try:
            error = http_err.response.json().get("error", {})
        except ValueError:
            error = {}
        if error.get("code") == 190:
            return {"status": "auth_error", "message": error.get("message") or decoded_text}
        return {
            "status": "http_error",
            "message": friendly_error_message(error) if error else decoded_text,
            "error_code": error.get("code"),
            "error_subcode": error.get("error_subcode"),
            "facebook_error": error or None,
        }

    def _get(self, path: str, params: Dict[str, Any], context: str) -> Dict[str, Any]:
        url = self.base_url + path
        try:
            logger.debug("%s url=%s params=%s", context, url, params)
            response = requests.get(url, params={**params, "access_token": self.access_token}, timeout=30)
            response.raise_for_status()
            return {"status": "success", "data": response.json()}
        except requests.exceptions.HTTPError as http_err:
            return self._error_result(http_err, context)
        except Exception as err:
            message = mask_access_token(str(err))
            logger.exception("%s error: %s", context, message)
            return {"status": "error", "message": message}

    def _post(self, path: str, data: Dict[str, Any], context: str) -> Dict[str, Any]:
        url = self.base_url + path
        try:
            logger.debug("%s url=%s", context, url)
            response = requests.post(url, data={**data, "access_token": self.access_token}, timeout=30)
            response.raise_for_status()
            return {"status": "success", "data": response.json()}
        except requests.exceptions.HTTPError as http_err:
            return self._error_result(http_err, context)
        except Exception as err:
            message = mask_access_token(str(err))
            logger.exception("%s error: %s", context, message)
            return {"status": "error", "message": message}

    def list_campaigns(self, status: str = "all") -> Dict[str, Any]:
        params: Dict[str, Any] = {"fields": CAMPAIGN_FIELDS, "limit": self.limit}
        if status and status.lower() != "all":
            params["filtering"] = json.dumps([
                {"field": "effective_status", "operator": "IN", "value": [status.upper()]}
            ])
        result = self._get(f"{self.account_path}/campaigns", params, "list_campaigns")
        if result["status"] != "success":
            return result
        body = result["data"]
        return {"status": "success", "campaigns": body.get("data", []), "paging": body.get("paging")}

    def create_campaign(
        self,
        name: str,
        objective: str,
        status: str = "PAUSED",
        special_ad_categories: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        """Creates a campaign; objective must already be normalized to OUTCOME_*."""
        payload = {
            "name": name,
            "objective": objective,
            "status": status.upper(),
            # Required by the API even when empty
            "special_ad_categories": json.dumps(special_ad_categories or []),
        }
        result = self._post(f"{self.account_path}/campaigns", payload, "create_campaign")
        if result["status"] != "success":
            return result
        logger.info("[MARKETING] Campaign created: %s (%s)", result["data"].get("id"), name)
        return {"status": "success", "campaign_id": result["data"].get("id")}

    def list_adsets(self, campaign_id: Optional[str] = None) -> Dict[str, Any]:
        if campaign_id:
            path = f"{campaign_id}/adsets"
            params: Dict[str, Any] = {"fields": CAMPAIGN_ADSET_FIELDS}
        else:
            path = f"{self.account_path}/adsets"
            params = {"fields": ACCOUNT_ADSET_FIELDS, "limit": self.limit}
        result = self._get(path, params, "list_adsets")
        if result["status"] != "success":
            return result
        body = result["data"]
        return {
            "status": "success",
            "adsets": [_budgets_from_cents(a) for a in body.get("data", [])],
            "paging": body.get("paging"),
        }

    def create_adset(
        self,
        name: str,
        campaign_id: str,
        targeting: Dict[str, Any],
        daily_budget: Optional[float] = None,
        lifetime_budget: Optional[float] = None,
        start_time: Optional[str] = None,
        end_time: Optional[str] = None,
        optimization_goal: Optional[str] = None,
        billing_event: str = "IMPRESSIONS",
        bid_amount: Optional[float] = None,
        status: str = "PAUSED",
        destination_type: Optional[str] = None,
        page_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Creates an ad set. Budgets and bids are given in currency units and sent as cents."""
        payload: Dict[str, Any] = {
            "name": name,
            "campaign_id": campaign_id,
            "status": status.upper(),
            "targeting": json.dumps(targeting),
            "optimization_goal": optimization_goal or "LINK_CLICKS",
            "billing_event": (billing_event or "IMPRESSIONS").upper(),
        }
        if daily_budget:
            payload["daily_budget"] = to_cents(daily_budget)
        if lifetime_budget:
            payload["lifetime_budget"] = to_cents(lifetime_budget)
        if start_time:
            payload["start_time"] = start_time
        if end_time:
            payload["end_time"] = end_time
        if bid_amount:
            payload["bid_amount"] = to_cents(bid_amount)
        if destination_type:
            payload["destination_type"] = destination_type
        if page_id:
            payload["promoted_object"] = json.dumps({"page_id": page_id})

        result = self._post(f"{self.account_path}/adsets", payload, "create_adset")
        if result["status"] != "success":
            return result
        logger.info("[MARKETING] Ad set created: %s (%s)", result["data"].get("id"), name)
        return {"status": "success", "adset_id": result["data"].get("id")}

    def get_insights(
        self,
        object_id: str,
        fields: str = INSIGHT_FIELDS,
        date_preset: Optional[str] = None,
        time_range: Optional[Dict[str, str]] = None,
        breakdowns: Optional[str] = None,
    ) -> Dict[str, Any]:
        params: Dict[str, Any] = {"fields": fields}
        if time_range:
            params["time_range"] = json.dumps({"since": time_range["since"], "until": time_range["until"]})
        elif date_preset:
            params["date_preset"] = date_preset
        if breakdowns:
            params["breakdowns"] = breakdowns
        result = self._get(f"{object_id}/insights", params, "get_insights")
        if result["status"] != "success":
            return result
        return {"status": "success", "insights": result["data"].get("data", [])}
