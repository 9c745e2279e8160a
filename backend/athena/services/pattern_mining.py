"""
Pattern mining over historical ad records.

Discovers:
- success patterns (attribute values common among high performers)
- failure patterns (attribute values common among low performers)
- seasonal patterns (day of week, week of month, month)
- cross-campaign patterns (values used by top performers only)

Historical record shape:
    {"id", "entity_id", "entity_type", "date", "metrics": {...}, "attributes": {...}}
"""
from __future__ import annotations

import math
import re
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

WEEKDAY_LABELS = ["Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat"]
MONTH_LABELS = ["Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]
SEASONAL_PERIODS = ("daily", "weekly", "monthly")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")


def _metric(record: Dict[str, Any], name: str) -> float:
    try:
        return float((record.get("metrics") or {}).get(name) or 0)
    except (TypeError, ValueError):
        return 0.0


def _value_key(value: Any) -> str:
    """String form used to group attribute values (true/false, 5 rather than 5.0)."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if value is None:
        return "null"
    return str(value)


def _coerce_value(value: str) -> Any:
    """Inverse of _value_key: booleans and numbers come back typed for condition matching."""
    if value in ("true", "false"):
        return value == "true"
    if value == "null":
        return None
    try:
        number = float(value)
    except ValueError:
        return value
    if math.isnan(number) or math.isinf(number):
        return value
    return int(number) if number.is_integer() else number


def _pattern_id(prefix: str, attr: str, value: str) -> str:
    return re.sub(r"\s+", "_", f"{prefix}_{attr}_{value}").lower()


def _mine(
    records: List[Dict[str, Any]],
    metric: str,
    selected: List[Dict[str, Any]],
    min_occurrences: int,
    min_frequency: float,
    pattern_type: str,
) -> List[Dict[str, Any]]:
    patterns: List[Dict[str, Any]] = []
    if len(selected) < min_occurrences:
        return patterns

    frequency_table: Dict[str, Dict[str, int]] = {}
    for record in selected:
        for attr, value in (record.get("attributes") or {}).items():
            counts = frequency_table.setdefault(attr, {})
            key = _value_key(value)
            counts[key] = counts.get(key, 0) + 1

    total = len(selected)
    for attr, counts in frequency_table.items():
        for value, count in counts.items():
            frequency = count / total
            if frequency < min_frequency or count < min_occurrences:
                continue

            avg_with = sum(
                _metric(r, metric) for r in selected
                if _value_key((r.get("attributes") or {}).get(attr)) == value
            ) / count
            without = [r for r in records if _value_key((r.get("attributes") or {}).get(attr)) != value]
            avg_without = sum(_metric(r, metric) for r in without) / max(1, len(without))

            if avg_without <= 0:
                effect = 0.0
            elif pattern_type == "success":
                effect = (avg_with - avg_without) / avg_without
            else:
                effect = (avg_without - avg_with) / avg_without

            # At least a 10% difference
            if effect <= 0.1:
                continue

            if pattern_type == "success":
                name = f"High {metric} with {attr}={value}"
                description = f'Records with {attr} set to "{value}" show {effect * 100:.1f}% higher {metric}'
                direction = "increase"
                confidence = min(0.95, frequency * (count / 10))
            else:
                name = f"Low {metric} with {attr}={value}"
                description = f'Records with {attr} set to "{value}" show {effect * 100:.1f}% lower {metric}'
                direction = "decrease"
                confidence = min(0.9, frequency * (count / 10))

            patterns.append({
                "id": _pattern_id(pattern_type, attr, value),
                "type": pattern_type,
                "name": name,
                "description": description,
                "conditions": [{"variable": attr, "operator": "eq", "value": _coerce_value(value)}],
                "effect": {
                    "metric": metric,
                    "direction": direction,
                    "magnitude": effect * 100,
                    "confidence": confidence,
                },
                "occurrences": count,
                "last_seen": selected[0].get("date") or _now_iso(),
                "applicability": {},
            })

    return sorted(patterns, key=lambda p: p["effect"]["magnitude"], reverse=True)


def mine_success_patterns(
    records: List[Dict[str, Any]],
    success_metric: str,
    success_threshold: float,
    min_occurrences: int = 5,
) -> List[Dict[str, Any]]:
    """Attribute values present in at least 60% of records at or above the threshold."""
    selected = [r for r in records if _metric(r, success_metric) >= success_threshold]
    return _mine(records, success_metric, selected, min_occurrences, 0.6, "success")


def mine_failure_patterns(
    records: List[Dict[str, Any]],
    failure_metric: str,
    failure_threshold: float,
    min_occurrences: int = 5,
) -> List[Dict[str, Any]]:
    """Attribute values present in at least 50% of records at or below the threshold."""
    selected = [r for r in records if _metric(r, failure_metric) <= failure_threshold]
    return _mine(records, failure_metric, selected, min_occurrences, 0.5, "failure")


def _parse_date(value: Any) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not value:
        return None
    text = str(value).strip().replace("Z", "+00:00")
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        try:
            return date.fromisoformat(text[:10])
        except ValueError:
            return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc)
    return parsed.date()


def _period_label(d: date, period: str) -> str:
    if period == "daily":
        return WEEKDAY_LABELS[d.isoweekday() % 7]
    if period == "weekly":
        return f"Week {math.ceil(d.day / 7)}"
    return MONTH_LABELS[d.month - 1]


def detect_seasonal_patterns(
    records: List[Dict[str, Any]],
    metric: str,
    period: str = "weekly",
) -> Optional[Dict[str, Any]]:
    """
    Groups a metric by day of week, week of month or month and reports
    groups 10% above (peaks) or below (troughs) the overall average.

    Returns None with fewer than 14 records or no significant seasonality.
    """
    if period not in SEASONAL_PERIODS:
        raise ValueError(f"period must be one of {', '.join(SEASONAL_PERIODS)}")
    if len(records) < 14:
        return None

    grouped: Dict[str, List[float]] = {}
    for record in records:
        d = _parse_date(record.get("date"))
        if d is None:
            continue
        grouped.setdefault(_period_label(d, period), []).append(_metric(record, metric))

    all_values = [v for values in grouped.values() for v in values]
    if not all_values:
        return None
    overall_avg = sum(all_values) / len(all_values)
    if overall_avg == 0:
        return None

    peaks: List[Dict[str, Any]] = []
    troughs: List[Dict[str, Any]] = []
    for label, values in grouped.items():
        multiplier = (sum(values) / len(values)) / overall_avg
        entry = {
            "label": label,
            "multiplier": multiplier,
            "confidence": min(0.95, len(values) / 10),
        }
        if multiplier >= 1.1:
            peaks.append(entry)
        elif multiplier <= 0.9:
            troughs.append(entry)

    if not peaks and not troughs:
        return None

    return {
        "period": period,
        "metric": metric,
        "peaks": sorted(peaks, key=lambda p: p["multiplier"], reverse=True),
        "troughs": sorted(troughs, key=lambda p: p["multiplier"]),
    }


def _to_number(value: Any) -> float:
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return math.nan


def _condition_matches(operator: str, current: Any, expected: Any) -> bool:
    if operator == "eq":
        return current == expected
    if operator == "gt":
        return _to_number(current) > _to_number(expected)
    if operator == "lt":
        return _to_number(current) < _to_number(expected)
    if operator == "gte":
        return _to_number(current) >= _to_number(expected)
    if operator == "lte":
        return _to_number(current) <= _to_number(expected)
    if operator == "in":
        return isinstance(expected, list) and current in expected
    if operator == "contains":
        return _value_key(expected) in _value_key(current)
    return False


def match_patterns(patterns: List[Dict[str, Any]], context: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Scores each pattern by the share of its conditions the context satisfies (kept when >= 0.5)."""
    insights: List[Dict[str, Any]] = []
    for pattern in patterns:
        conditions = pattern.get("conditions") or []
        matched = 0
        for condition in conditions:
            variable = condition.get("variable")
            if variable not in context:
                continue
            if _condition_matches(condition.get("operator"), context[variable], condition.get("value")):
                matched += 1

        match_score = matched / len(conditions) if conditions else 0.0
        if match_score < 0.5:
            continue

        effect = pattern.get("effect") or {}
        magnitude = float(effect.get("magnitude") or 0)
        effect_metric = effect.get("metric", "")
        if pattern.get("type") == "success":
            recommendation = (
                f"Continue using this approach - historical data shows {magnitude:.1f}% "
                f"improvement in {effect_metric}"
            )
        else:
            recommendation = (
                f"Consider changing approach - historical data shows {magnitude:.1f}% "
                f"decline in {effect_metric}"
            )
        sign = "+" if effect.get("direction") == "increase" else "-"

        insights.append({
            "pattern": pattern,
            "match_score": match_score,
            "recommendation": recommendation,
            "expected_outcome": f"{sign}{magnitude:.1f}% {effect_metric}",
            "evidence": [],
        })

    return sorted(insights, key=lambda i: i["match_score"], reverse=True)


def find_cross_campaign_patterns(
    campaigns: List[Dict[str, Any]],
    target_metric: str,
) -> List[Dict[str, Any]]:
    """Attribute values used by the top quartile of campaigns but never by the bottom quartile."""
    if len(campaigns) < 3:
        return []

    ranked = sorted(campaigns, key=lambda c: _metric(c, target_metric), reverse=True)
    quartile = math.ceil(len(ranked) * 0.25)
    top = ranked[:quartile]
    bottom = ranked[-quartile:]

    def _values(group: List[Dict[str, Any]]) -> Dict[str, List[str]]:
        out: Dict[str, List[str]] = {}
        for campaign in group:
            for attr, value in (campaign.get("attributes") or {}).items():
                values = out.setdefault(attr, [])
                key = _value_key(value)
                if key not in values:
                    values.append(key)
        return out

    top_values = _values(top)
    bottom_values = _values(bottom)

    avg_top = sum(_metric(c, target_metric) for c in top) / len(top)
    avg_bottom = sum(_metric(c, target_metric) for c in bottom) / len(bottom)
    lift = (avg_top - avg_bottom) / avg_bottom if avg_bottom > 0 else 0.0
    if lift <= 0.2:
        return []

    patterns: List[Dict[str, Any]] = []
    for attr, values in top_values.items():
        for value in values:
            if value in bottom_values.get(attr, []):
                continue
            patterns.append({
                "id": _pattern_id("cross", attr, value),
                "type": "cross_campaign",
                "name": f"Top performers use {attr}={value}",
                "description": (
                    f'High-performing campaigns commonly use {attr}="{value}" while low performers don\'t'
                ),
                "conditions": [{"variable": attr, "operator": "eq", "value": _coerce_value(value)}],
                "effect": {
                    "metric": target_metric,
                    "direction": "increase",
                    "magnitude": lift * 100,
                    "confidence": min(0.8, len(top) / 5),
                },
                "occurrences": len(top),
                "last_seen": _now_iso(),
                "applicability": {},
            })
    return patterns
