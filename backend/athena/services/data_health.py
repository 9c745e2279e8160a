"""
Data health scoring.

Scores the quality of synced ad data on six components (0-100 each):
freshness, completeness, lag, attribution, API stability and consistency.
The weighted overall score drives a status and a confidence modifier that
downstream recommendations multiply into their own confidence.

Also scores raw ad rows grouped by campaign for the persisted
data_health_scores table.
"""
from __future__ import annotations

import logging
import math
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

HEALTH_WEIGHTS = {
    "freshness": 0.20,
    "completeness": 0.25,
    "lag": 0.15,
    "attribution": 0.15,
    "api_stability": 0.15,
    "consistency": 0.10,
}

REQUIRED_FIELDS = ["impressions", "spend", "clicks"]
IMPORTANT_FIELDS = ["reach", "ctr", "cpc", "cpm"]
OPTIONAL_FIELDS = ["frequency", "video_views", "conversions"]

# Campaign-level scoring over raw ad rows
CAMPAIGN_REQUIRED_FIELDS = ["name", "status", "spend", "impressions", "clicks"]
CAMPAIGN_WEIGHTS = {
    "completeness": 0.35,
    "freshness": 0.25,
    "attribution": 0.25,
    "schema": 0.15,
}


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def calculate_freshness_score(hours_since_update: float) -> float:
    if hours_since_update <= 4:
        return 100
    if hours_since_update <= 12:
        return 80
    if hours_since_update <= 24:
        return 60
    if hours_since_update <= 48:
        return 40
    # Linear decay past 48h, floored at 10
    return max(10, 40 - (hours_since_update - 48) * 0.5)


def calculate_completeness_score(available_fields: List[str], field_values: Dict[str, Any]) -> int:
    score = 0
    total_weight = 0
    for fields, weight in ((REQUIRED_FIELDS, 3), (IMPORTANT_FIELDS, 2), (OPTIONAL_FIELDS, 1)):
        for f in fields:
            total_weight += weight
            if f in available_fields and field_values.get(f) is not None:
                score += weight
    return _round_half_up(score / total_weight * 100)


def calculate_lag_score(reporting_delay_hours: float) -> int:
    if reporting_delay_hours <= 2:
        return 100
    if reporting_delay_hours <= 6:
        return 70
    if reporting_delay_hours <= 12:
        return 40
    return 20


def calculate_attribution_score(
    attribution_window: float,
    has_all_conversions: bool,
    conversion_lag: float,
) -> int:
    score = 100
    if attribution_window < 7:
        score -= 20
    if attribution_window < 1:
        score -= 30
    if not has_all_conversions:
        score -= 30
    if conversion_lag > 24:
        score -= 10
    if conversion_lag > 48:
        score -= 20
    return max(0, score)


def calculate_api_stability_score(success_count: int, total_count: int) -> int:
    if total_count == 0:
        return 50  # unknown
    success_rate = success_count / total_count
    if success_rate >= 0.99:
        return 100
    if success_rate >= 0.95:
        return 80
    if success_rate >= 0.90:
        return 60
    return max(20, _round_half_up(success_rate * 100))


def calculate_consistency_score(
    daily_values: List[float],
    expected_range: Optional[Dict[str, float]] = None,
) -> float:
    n = len(daily_values)
    if n < 3:
        return 70  # not enough data

    missing_penalty = sum(1 for v in daily_values if v == 0) / n * 50

    mean = sum(daily_values) / n
    std_dev = math.sqrt(sum((v - mean) ** 2 for v in daily_values) / n)
    outliers = sum(1 for v in daily_values if abs(v - mean) > 3 * std_dev)
    outlier_penalty = outliers * 10

    range_penalty = 0.0
    if expected_range:
        low = expected_range.get("min", float("-inf"))
        high = expected_range.get("max", float("inf"))
        outside = sum(1 for v in daily_values if v < low or v > high)
        range_penalty = outside / n * 30

    return max(0.0, 100 - missing_penalty - outlier_penalty - range_penalty)


def calculate_overall_health_score(scores: Dict[str, float]) -> int:
    return _round_half_up(sum(scores[k] * w for k, w in HEALTH_WEIGHTS.items()))


def get_health_status(score: float) -> str:
    if score >= 80:
        return "healthy"
    if score >= 50:
        return "degraded"
    return "unhealthy"


def detect_health_issues(scores: Dict[str, float]) -> List[Dict[str, Any]]:
    issues: List[Dict[str, Any]] = []

    def issue(issue_type: str, severity: str, message: str, metric: str) -> None:
        issues.append({
            "type": issue_type,
            "severity": severity,
            "message": message,
            "metric": metric,
            "value": scores[metric],
        })

    if scores["freshness"] < 40:
        issue("stale_data", "critical", "Data is significantly outdated", "freshness")
    elif scores["freshness"] < 60:
        issue("stale_data", "warning", "Data may be outdated", "freshness")

    if scores["completeness"] < 50:
        issue("incomplete_data", "critical", "Required metrics are missing", "completeness")

    if scores["api_stability"] < 60:
        issue("api_instability", "warning", "API connection has been unstable", "api_stability")

    if scores["attribution"] < 50:
        issue("attribution_issue", "warning", "Conversion attribution may be incomplete", "attribution")

    if scores["consistency"] < 40:
        issue("inconsistent_data", "info", "Data shows unexpected patterns", "consistency")

    return issues


def calculate_data_health(
    hours_since_update: float,
    available_fields: List[str],
    field_values: Dict[str, Any],
    reporting_delay_hours: float,
    attribution_window: float,
    has_all_conversions: bool,
    conversion_lag: float,
    api_success_count: int,
    api_total_count: int,
    daily_values: List[float],
) -> Dict[str, Any]:
    """Full health calculation: component scores, status, issues, confidence modifier and advice."""
    scores = {
        "freshness": calculate_freshness_score(hours_since_update),
        "completeness": calculate_completeness_score(available_fields, field_values),
        "lag": calculate_lag_score(reporting_delay_hours),
        "attribution": calculate_attribution_score(attribution_window, has_all_conversions, conversion_lag),
        "api_stability": calculate_api_stability_score(api_success_count, api_total_count),
        "consistency": calculate_consistency_score(daily_values),
    }
    overall = calculate_overall_health_score(scores)
    status = get_health_status(overall)

    confidence_modifier = {"healthy": 1.0, "degraded": 0.75, "unhealthy": 0.5}[status]

    recommendations: List[str] = []
    if scores["freshness"] < 60:
        recommendations.append("Sync data more frequently to improve freshness")
    if scores["completeness"] < 70:
        recommendations.append("Ensure all required metrics are being tracked")
    if scores["api_stability"] < 80:
        recommendations.append("Check API connection and error logs")

    return {
        "scores": scores,
        "overall_score": overall,
        "status": status,
        "issues": detect_health_issues(scores),
        "confidence_modifier": confidence_modifier,
        "recommendations": recommendations,
    }


def _parse_ts(value: Any) -> Optional[datetime]:
    """Parses ISO timestamps including Graph API's '+0000' offsets."""
    if not value or not isinstance(value, str):
        return None
    text = value.strip().replace("Z", "+00:00")
    text = re.sub(r"([+-]\d{2})(\d{2})$", r"\1:\2", text)
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _score_campaign(campaign_id: str, ads: List[Dict[str, Any]], now: datetime) -> Dict[str, Any]:
    issues: List[Dict[str, str]] = []

    completeness = 100
    for f in CAMPAIGN_REQUIRED_FIELDS:
        if not all(ad.get(f) is not None for ad in ads):
            completeness -= 15
            issues.append({
                "type": "missing_field",
                "severity": "medium",
                "description": f"Missing {f} data in some ads",
            })
    completeness = max(0, completeness)

    timestamps = [_parse_ts(ad.get("updated_time") or ad.get("created_time")) for ad in ads]
    timestamps = [t for t in timestamps if t is not None]
    if timestamps:
        days_since_update = (now - max(timestamps)).total_seconds() / 86400
        if days_since_update > 7:
            freshness = 50
            issues.append({
                "type": "stale_data",
                "severity": "medium",
                "description": f"Data not updated in {_round_half_up(days_since_update)} days",
            })
        elif days_since_update > 1:
            freshness = 80
        else:
            freshness = 100
    else:
        freshness = 60

    def _has_conversions(ad: Dict[str, Any]) -> bool:
        try:
            if float(ad.get("conversions") or 0) > 0:
                return True
        except (TypeError, ValueError):
            pass
        return bool(ad.get("actions"))

    attribution = 100
    if not any(_has_conversions(ad) for ad in ads):
        attribution = 70
        issues.append({
            "type": "no_conversions",
            "severity": "low",
            "description": "No conversion data available",
        })

    schema = 100 if any(ad.get("insights") or ad.get("metrics") for ad in ads) else 80

    overall = _round_half_up(
        completeness * CAMPAIGN_WEIGHTS["completeness"]
        + freshness * CAMPAIGN_WEIGHTS["freshness"]
        + attribution * CAMPAIGN_WEIGHTS["attribution"]
        + schema * CAMPAIGN_WEIGHTS["schema"]
    )

    return {
        "entity_type": "campaign",
        "entity_id": campaign_id,
        "overall_score": overall,
        "completeness_score": completeness,
        "freshness_score": freshness,
        "attribution_score": attribution,
        "schema_score": schema,
        "issues": issues,
    }


def calculate_campaign_health(
    ad_rows: List[Dict[str, Any]],
    entity_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> List[Dict[str, Any]]:
    """
    Scores raw ad rows ({"ad_data": {...}}) grouped by campaign_id.

    Args:
        ad_rows: Rows from user_ads
        entity_id: Only score this campaign when given
        now: Reference time (defaults to current UTC time)
    """
    now = now or datetime.now(timezone.utc)
    campaigns: Dict[str, List[Dict[str, Any]]] = {}
    for row in ad_rows:
        data = row.get("ad_data") or {}
        campaign_id = data.get("campaign_id") or "unknown"
        if entity_id and campaign_id != entity_id:
            continue
        campaigns.setdefault(campaign_id, []).append(data)

    return [_score_campaign(cid, ads, now) for cid, ads in campaigns.items()]


def summarize_health_scores(scores: List[Dict[str, Any]]) -> Dict[str, int]:
    values = [s.get("overall_score") or 0 for s in scores]
    return {
        "total_entities": len(values),
        "healthy": sum(1 for v in values if v >= 80),
        "warning": sum(1 for v in values if 50 <= v < 80),
        "critical": sum(1 for v in values if v < 50),
        "average_score": _round_half_up(sum(values) / len(values)) if values else 0,
    }
