"""
Recommendation explainability.

Every recommendation carries evidence (data points against benchmarks),
assumptions, decision thresholds and the conditions that invalidate it.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional


def generate_data_point_evidence(
    metric: str,
    current_value: float,
    historical_avg: float,
    industry_benchmark: Optional[float] = None,
    recent_trend: Optional[str] = None,
) -> Dict[str, Any]:
    """Compares a metric against the industry benchmark (or the historical average)."""
    benchmark = industry_benchmark or historical_avg
    percent_diff = (current_value - benchmark) / benchmark * 100 if benchmark else 0.0

    if abs(percent_diff) < 5:
        comparison = "at"
    elif percent_diff > 0:
        comparison = "above"
    else:
        comparison = "below"

    if abs(percent_diff) > 25:
        significance = "high"
    elif abs(percent_diff) > 10:
        significance = "medium"
    else:
        significance = "low"

    return {
        "metric": metric,
        "value": current_value,
        "benchmark": benchmark,
        "comparison": comparison,
        "trend": recent_trend,
        "significance": significance,
    }


_TYPE_ASSUMPTIONS = {
    "budget": [
        "Increasing budget will maintain similar CPM",
        "Audience pool is not saturated",
    ],
    "bid": [
        "Auction dynamics remain stable",
        "Competition level stays consistent",
    ],
    "creative": [
        "Creative performance patterns are consistent",
        "Audience preferences have not shifted",
    ],
    "audience": [
        "Lookalike quality remains stable",
        "Targeting expansion will find similar users",
    ],
}

_TYPE_INVALIDATIONS = {
    "budget": [
        "If CPM increases by more than 20%",
        "If frequency exceeds 3.0",
    ],
    "creative": [
        "If engagement rate drops by 30%",
        "If video completion rate significantly decreases",
    ],
    "audience": [
        "If audience overlap exceeds 50%",
    ],
}


def generate_assumptions(
    recommendation_type: str,
    attribution_window: int = 7,
    is_learning_phase: bool = False,
) -> List[str]:
    assumptions = [
        f"Attribution window is {attribution_window} days",
        "No major external events (holidays, news) affecting performance",
        "Audience targeting remains unchanged",
        "Creative content is not experiencing fatigue",
    ]
    if is_learning_phase:
        assumptions.append("Campaign is in learning phase - results may be volatile")
    assumptions.extend(_TYPE_ASSUMPTIONS.get(recommendation_type, []))
    return assumptions


def generate_invalidation_conditions(
    recommendation_type: str,
    target_metric: str,
    current_value: float,
    confidence: float,
) -> List[str]:
    conditions = [
        "If learning phase resets",
        "If there are significant algorithm changes",
    ]

    if target_metric == "roas":
        conditions.append(f"If ROAS drops below {max(0.5, current_value * 0.5):.2f}")
    elif target_metric == "cpa":
        conditions.append(f"If CPA increases above {current_value * 1.5:.2f}")
    elif target_metric == "ctr":
        conditions.append(f"If CTR drops below {current_value * 0.7:.4f}")

    conditions.extend(_TYPE_INVALIDATIONS.get(recommendation_type, []))

    if confidence < 0.6:
        conditions.append("Low confidence - validate results after 3 days")
    return conditions


def _threshold(value: float, kind: str, source: str, confidence: float) -> Dict[str, Any]:
    return {"value": value, "type": kind, "source": source, "confidence": confidence}


def generate_thresholds(
    current_value: float,
    historical_avg: float,
    industry_benchmark: Optional[float] = None,
    user_defined_target: Optional[float] = None,
) -> Dict[str, Dict[str, Any]]:
    thresholds = {
        "baseline": _threshold(current_value, "target", "historical_avg", 0.9),
        "historical_avg": _threshold(historical_avg, "target", "historical_avg", 0.85),
    }
    if industry_benchmark:
        thresholds["industry"] = _threshold(industry_benchmark, "target", "industry_benchmark", 0.7)
    if user_defined_target:
        thresholds["user_target"] = _threshold(user_defined_target, "target", "user_defined", 1.0)
    thresholds["minimum"] = _threshold(current_value * 0.7, "min", "statistical", 0.8)
    return thresholds


def generate_explanation_summary(
    recommendation_type: str,
    target_metric: str,
    expected_impact: float,
    confidence: float,
    key_factors: List[str],
) -> str:
    if confidence >= 0.7:
        confidence_text = "high"
    elif confidence >= 0.5:
        confidence_text = "medium"
    else:
        confidence_text = "low"
    direction = "improve" if expected_impact >= 0 else "decrease"

    summary = (
        f"This {recommendation_type} recommendation is expected to {direction} "
        f"{target_metric} by approximately {abs(expected_impact):.1f}% "
        f"with {confidence_text} confidence. "
    )
    if key_factors:
        summary += f"Key factors: {', '.join(key_factors[:3])}."
    return summary


def generate_full_explanation(
    recommendation_type: str,
    target_metric: str,
    current_metrics: Dict[str, float],
    historical_metrics: Dict[str, float],
    expected_impact: float,
    confidence: float,
    industry_benchmarks: Optional[Dict[str, float]] = None,
    patterns: Optional[List[Dict[str, Any]]] = None,
    similar_cases: Optional[List[Dict[str, Any]]] = None,
    attribution_window: Optional[int] = None,
    is_learning_phase: bool = False,
) -> Dict[str, Any]:
    benchmarks = industry_benchmarks or {}

    data_points = [
        generate_data_point_evidence(
            metric,
            value,
            historical_metrics[metric],
            industry_benchmark=benchmarks.get(metric),
        )
        for metric, value in current_metrics.items()
        if metric in historical_metrics
    ]

    key_insights = [
        f"{p['metric']} is {p['comparison']} benchmark ({p['value']:.2f} vs {p['benchmark']:.2f})"
        for p in data_points
        if p["significance"] == "high"
    ][:3]

    current_value = current_metrics.get(target_metric) or 0
    summary = generate_explanation_summary(
        recommendation_type, target_metric, expected_impact, confidence, key_insights
    )

    return {
        "evidence": {
            "data_points": data_points,
            "patterns": patterns or [],
            "similar_cases": similar_cases or [],
            "key_insights": key_insights,
        },
        "assumptions": generate_assumptions(
            recommendation_type,
            attribution_window=attribution_window or 7,
            is_learning_phase=is_learning_phase,
        ),
        "thresholds": generate_thresholds(
            current_value,
            historical_metrics.get(target_metric) or 0,
            industry_benchmark=benchmarks.get(target_metric),
        ),
        "invalidation_conditions": generate_invalidation_conditions(
            recommendation_type, target_metric, current_value, confidence
        ),
        "summary": summary,
        "reasoning": summary,
    }
