"""
Creative fatigue detection.

Combines three signals:
- CTR decay curve (linear regression over daily CTR)
- exposure saturation (frequency, audience coverage, time running)
- slope analysis on the regression fit
"""
from __future__ import annotations

import logging
import math
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

FATIGUE_THRESHOLDS = {
    "ctr_decline_warning": 0.15,
    "ctr_decline_critical": 0.30,
    "frequency_high": 3.0,
    "frequency_critical": 5.0,
    "saturation_warning": 0.7,
    "saturation_critical": 0.9,
    "min_days_for_analysis": 3,
    "slope_threshold": -0.02,
}

DEFAULT_AUDIENCE_SIZE = 100000


def _to_float(value: Any) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def _ctr_values(daily_metrics: List[Dict[str, Any]]) -> List[float]:
    return [_to_float(m.get("ctr")) for m in daily_metrics]


def calculate_ctr_decay_rate(daily_metrics: List[Dict[str, Any]]) -> Dict[str, float]:
    """Least-squares slope of CTR per day and the R² of the fit."""
    if len(daily_metrics) < 3:
        return {"slope": 0.0, "r_squared": 0.0, "decline_per_day": 0.0}

    y_values = _ctr_values(daily_metrics)
    n = len(y_values)
    x_values = list(range(n))

    sum_x = sum(x_values)
    sum_y = sum(y_values)
    sum_xy = sum(x * y for x, y in zip(x_values, y_values))
    sum_xx = sum(x * x for x in x_values)

    slope = (n * sum_xy - sum_x * sum_y) / (n * sum_xx - sum_x * sum_x)

    mean_y = sum_y / n
    ss_total = sum((y - mean_y) ** 2 for y in y_values)
    ss_residual = sum(
        (y - (mean_y + slope * (i - (n - 1) / 2))) ** 2
        for i, y in enumerate(y_values)
    )
    # A flat series carries no trend to explain
    r_squared = 1 - (ss_residual / ss_total) if ss_total > 0 else 0.0

    return {
        "slope": slope,
        "r_squared": max(0.0, r_squared),
        "decline_per_day": slope,
    }


def calculate_saturation_index(
    current_frequency: float,
    total_impressions: float,
    estimated_audience_size: float,
    days_running: int,
) -> float:
    """Weighted 0-1 index: 50% frequency, 30% audience coverage, 20% time running."""
    frequency_saturation = min(1.0, current_frequency / FATIGUE_THRESHOLDS["frequency_critical"])
    # 3x the audience counts as full coverage
    coverage = total_impressions / (estimated_audience_size * 3) if estimated_audience_size > 0 else 1.0
    coverage_saturation = min(1.0, coverage)
    time_decay = min(1.0, days_running / 30)
    return frequency_saturation * 0.5 + coverage_saturation * 0.3 + time_decay * 0.2


def _alert(
    alert_type: str,
    severity: float,
    method: str,
    message: str,
    snapshot: Dict[str, float],
    recommendations: List[str],
) -> Dict[str, Any]:
    return {
        "alert_type": alert_type,
        "severity": severity,
        "detection_method": method,
        "message": message,
        "metrics": dict(snapshot),
        "recommendations": recommendations,
    }


def detect_fatigue_alerts(
    daily_metrics: List[Dict[str, Any]],
    peak_ctr: float,
    current_ctr: float,
    current_frequency: float,
    saturation_index: float,
    days_running: int,
) -> List[Dict[str, Any]]:
    alerts: List[Dict[str, Any]] = []
    t = FATIGUE_THRESHOLDS

    ctr_decline = (peak_ctr - current_ctr) / peak_ctr if peak_ctr > 0 else 0.0
    snapshot = {
        "ctr_decline_pct": ctr_decline * 100,
        "frequency_at_detection": current_frequency,
        "days_running": days_running,
        "saturation_index": saturation_index,
    }

    if ctr_decline >= t["ctr_decline_critical"]:
        alerts.append(_alert(
            "fatigue_critical", 0.9, "decay_curve",
            f"CTR has declined {ctr_decline * 100:.1f}% from peak - creative fatigue is severe",
            snapshot,
            [
                "Replace creative immediately",
                "Consider pausing ad to preserve budget",
                "Test new creative variations",
            ],
        ))
    elif ctr_decline >= t["ctr_decline_warning"]:
        alerts.append(_alert(
            "fatigue_warning", 0.6, "decay_curve",
            f"CTR has declined {ctr_decline * 100:.1f}% from peak - early fatigue signs",
            snapshot,
            [
                "Prepare replacement creative",
                "Consider audience expansion",
                "Monitor performance closely",
            ],
        ))

    if current_frequency >= t["frequency_critical"]:
        alerts.append(_alert(
            "fatigue_critical", 0.85, "exposure_saturation",
            f"Frequency is {current_frequency:.1f} - audience is over-exposed",
            snapshot,
            [
                "Expand audience targeting",
                "Reduce budget to lower frequency",
                "Rotate to fresh creative",
            ],
        ))
    elif current_frequency >= t["frequency_high"]:
        alerts.append(_alert(
            "fatigue_warning", 0.5, "exposure_saturation",
            f"Frequency is {current_frequency:.1f} - approaching saturation",
            snapshot,
            [
                "Consider audience expansion",
                "Monitor for engagement drops",
            ],
        ))

    if saturation_index >= t["saturation_critical"]:
        alerts.append(_alert(
            "saturation_risk", 0.8, "saturation_analysis",
            f"Saturation index at {saturation_index * 100:.0f}% - audience exhausted",
            snapshot,
            [
                "Expand to new audiences",
                "Create fresh creative angles",
                "Consider lookalike expansion",
            ],
        ))

    decay = calculate_ctr_decay_rate(daily_metrics)
    if decay["slope"] < t["slope_threshold"] and decay["r_squared"] > 0.5:
        alerts.append(_alert(
            "refresh_needed", 0.7, "slope_analysis",
            f"Consistent CTR decline of {abs(decay['slope']) * 100:.2f}% per day",
            snapshot,
            [
                "Refresh creative within 3-5 days",
                "Test new hook variations",
                "A/B test creative elements",
            ],
        ))

    return alerts


def analyze_creative_fatigue(
    creative_id: str,
    daily_metrics: List[Dict[str, Any]],
    estimated_audience_size: Optional[float] = None,
) -> Dict[str, Any]:
    """Full fatigue analysis for one creative from its daily metrics (oldest first)."""
    audience = estimated_audience_size or DEFAULT_AUDIENCE_SIZE
    days_running = len(daily_metrics)
    total_impressions = sum(_to_float(m.get("impressions")) for m in daily_metrics)
    last = daily_metrics[-1] if daily_metrics else {}

    if days_running < FATIGUE_THRESHOLDS["min_days_for_analysis"]:
        return {
            "creative_id": creative_id,
            "is_fatigued": False,
            "fatigue_score": 0.0,
            "alerts": [],
            "metrics": {
                "current_ctr": _to_float(last.get("ctr")),
                "peak_ctr": 0.0,
                "ctr_decline": 0.0,
                "current_frequency": _to_float(last.get("frequency")),
                "saturation_index": 0.0,
                "days_running": days_running,
                "total_impressions": total_impressions,
            },
            "trend": "stable",
            "days_until_critical": None,
        }

    ctrs = _ctr_values(daily_metrics)
    peak_ctr = max(ctrs)
    current_ctr = ctrs[-1]
    current_frequency = _to_float(last.get("frequency"))

    saturation_index = calculate_saturation_index(
        current_frequency, total_impressions, audience, days_running
    )
    ctr_decline = (peak_ctr - current_ctr) / peak_ctr if peak_ctr > 0 else 0.0

    alerts = detect_fatigue_alerts(
        daily_metrics, peak_ctr, current_ctr, current_frequency, saturation_index, days_running
    )

    fatigue_score = min(1.0, (
        ctr_decline * 0.4
        + saturation_index * 0.3
        + min(1.0, current_frequency / FATIGUE_THRESHOLDS["frequency_critical"]) * 0.3
    ))

    decay = calculate_ctr_decay_rate(daily_metrics)
    if decay["slope"] < -0.01:
        trend = "declining"
    elif decay["slope"] > 0.01:
        trend = "improving"
    else:
        trend = "stable"

    days_until_critical = None
    if trend == "declining":
        ctr_to_lose = current_ctr * (FATIGUE_THRESHOLDS["ctr_decline_critical"] - ctr_decline)
        days_until_critical = math.ceil(abs(ctr_to_lose / decay["slope"]))

    is_fatigued = fatigue_score > 0.5 or any(a["alert_type"] == "fatigue_critical" for a in alerts)
    if is_fatigued:
        logger.info("[FATIGUE] Creative %s fatigued (score=%.2f, alerts=%d)", creative_id, fatigue_score, len(alerts))

    return {
        "creative_id": creative_id,
        "is_fatigued": is_fatigued,
        "fatigue_score": fatigue_score,
        "alerts": alerts,
        "metrics": {
            "current_ctr": current_ctr,
            "peak_ctr": peak_ctr,
            "ctr_decline": ctr_decline,
            "current_frequency": current_frequency,
            "saturation_index": saturation_index,
            "days_running": days_running,
            "total_impressions": total_impressions,
        },
        "trend": trend,
        "days_until_critical": days_until_critical,
    }
