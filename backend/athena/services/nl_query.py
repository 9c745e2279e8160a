"""
Natural language query parsing.

Turns questions like "top 5 campaigns by ROAS last month" into a structured
query (intent, entities, time range, metrics, filters) and back into
filter conditions and readable summaries.
"""
from __future__ import annotations

import re
from datetime import date, timedelta
from typing import Any, Dict, List, Optional, Pattern, Tuple

INTENT_PATTERNS: List[Tuple[Pattern[str], str]] = [
    (re.compile(r"how (is|are|was|were).*(performing|doing)", re.I), "performance_summary"),
    (re.compile(r"compare|vs|versus|difference between", re.I), "comparison"),
    (re.compile(r"trend|trending|over time|progression", re.I), "trend_analysis"),
    (re.compile(r"unusual|anomal|spike|drop|sudden", re.I), "anomaly_detection"),
    (re.compile(r"recommend|suggest|should I|what should", re.I), "recommendation_request"),
    (re.compile(r"what if|if I|simulate|would happen", re.I), "what_if"),
    (re.compile(r"why|explain|reason|cause", re.I), "explanation"),
    (re.compile(r"top \d+|best|highest|most", re.I), "top_n"),
    (re.compile(r"bottom \d+|worst|lowest|least", re.I), "bottom_n"),
    (re.compile(r"health|status|issue|problem", re.I), "health_check"),
]

METRIC_KEYWORDS: Dict[str, List[str]] = {
    "spend": ["spend", "spending", "cost", "budget", "spent"],
    "impressions": ["impressions", "views", "eyeballs"],
    "clicks": ["clicks", "click"],
    "conversions": ["conversions", "conversion", "converts", "purchases", "sales", "leads"],
    "ctr": ["ctr", "click rate", "click-through", "clickthrough"],
    "cpm": ["cpm", "cost per thousand", "cost per mille"],
    "cpc": ["cpc", "cost per click"],
    "cpa": ["cpa", "cost per acquisition", "cost per conversion", "cost per lead", "cost per purchase"],
    "roas": ["roas", "return on ad spend", "return on spend"],
    "reach": ["reach", "people reached"],
    "frequency": ["frequency", "times shown"],
}

TIME_PATTERNS: List[Tuple[Pattern[str], str]] = [
    (re.compile(r"today", re.I), "today"),
    (re.compile(r"yesterday", re.I), "yesterday"),
    (re.compile(r"last 7 days|past week|this week", re.I), "last_7_days"),
    (re.compile(r"last 30 days|past month", re.I), "last_30_days"),
    (re.compile(r"this month", re.I), "this_month"),
    (re.compile(r"last month", re.I), "last_month"),
    (re.compile(r"this quarter", re.I), "this_quarter"),
    (re.compile(r"last quarter", re.I), "last_quarter"),
]

DEFAULT_SUMMARY_METRICS = ["spend", "impressions", "clicks", "conversions", "ctr", "cpa"]

_DATE_PATTERN = re.compile(r"(\d{4}-\d{2}-\d{2}|\d{1,2}/\d{1,2}/\d{4})")
_QUOTED_PATTERN = re.compile(r"\"([^\"]+)\"|'([^']+)'")
_GREATER_THAN = re.compile(
    r"(spend|cpa|cpm|cpc|roas).*(greater than|above|more than|over|>)\s*(\$?\d+(?:\.\d+)?)", re.I
)
_LESS_THAN = re.compile(
    r"(spend|cpa|cpm|cpc|roas).*(less than|below|under|<)\s*(\$?\d+(?:\.\d+)?)", re.I
)
_LIMIT_PATTERN = re.compile(r"(top|bottom)\s+(\d+)", re.I)


def detect_intent(query: str) -> str:
    for pattern, intent in INTENT_PATTERNS:
        if pattern.search(query):
            return intent
    return "unknown"


def extract_entities(query: str) -> Dict[str, Any]:
    entities: Dict[str, Any] = {}
    if re.search(r"campaigns?", query, re.I):
        entities["entity_type"] = "campaign"
    elif re.search(r"ad ?sets?", query, re.I):
        entities["entity_type"] = "adset"
    elif re.search(r"\bads?\b", query, re.I):
        entities["entity_type"] = "ad"
    elif re.search(r"account", query, re.I):
        entities["entity_type"] = "account"

    names = [double or single for double, single in _QUOTED_PATTERN.findall(query)]
    if names:
        key = {"campaign": "campaigns", "adset": "adsets", "ad": "ads"}.get(entities.get("entity_type"))
        if key:
            entities[key] = names
    return entities


def extract_time_range(query: str) -> Dict[str, Any]:
    for pattern, period in TIME_PATTERNS:
        if pattern.search(query):
            return {"type": "relative", "relative_period": period}

    dates = _DATE_PATTERN.findall(query)
    if len(dates) >= 2:
        return {"type": "absolute", "start": dates[0], "end": dates[1]}
    if len(dates) == 1:
        return {"type": "absolute", "start": dates[0], "end": dates[0]}

    return {"type": "relative", "relative_period": "last_7_days"}


def extract_metrics(query: str) -> List[str]:
    lower = query.lower()
    found = [
        metric for metric, keywords in METRIC_KEYWORDS.items()
        if any(k in lower for k in keywords)
    ]
    if not found and detect_intent(query) == "performance_summary":
        return list(DEFAULT_SUMMARY_METRICS)
    return found


def extract_filters(query: str) -> List[Dict[str, Any]]:
    filters: List[Dict[str, Any]] = []

    for pattern, operator in ((_GREATER_THAN, "gt"), (_LESS_THAN, "lt")):
        match = pattern.search(query)
        if match:
            filters.append({
                "field": match.group(1).lower(),
                "operator": operator,
                "value": float(match.group(3).replace("$", "")),
            })

    lower = query.lower()
    if "active" in lower:
        filters.append({"field": "status", "operator": "eq", "value": "ACTIVE"})
    elif "paused" in lower:
        filters.append({"field": "status", "operator": "eq", "value": "PAUSED"})
    return filters


def parse_query(query: str) -> Dict[str, Any]:
    """Parses a natural language question into a structured query with a 0-0.95 confidence."""
    intent = detect_intent(query)
    entities = extract_entities(query)
    time_range = extract_time_range(query)
    metrics = extract_metrics(query)
    filters = extract_filters(query)

    confidence = 0.5
    if intent != "unknown":
        confidence += 0.2
    if metrics:
        confidence += 0.15
    if time_range.get("relative_period") or time_range.get("start"):
        confidence += 0.1
    if any(v for v in entities.values()):
        confidence += 0.05

    return {
        "original": query,
        "intent": intent,
        "entities": entities,
        "time_range": time_range,
        "metrics": metrics,
        "filters": filters,
        "confidence": min(0.95, confidence),
    }


def _format_number(value: float) -> str:
    if float(value).is_integer():
        return f"{int(value):,}"
    return f"{value:,.3f}".rstrip("0").rstrip(".")


def generate_summary(
    parsed: Dict[str, Any],
    results: List[Dict[str, Any]],
    aggregates: Optional[Dict[str, float]] = None,
) -> str:
    entity_type = parsed.get("entities", {}).get("entity_type")
    period = parsed.get("time_range", {}).get("relative_period")
    metrics = parsed.get("metrics") or []
    intent = parsed.get("intent")

    if not results:
        return (
            f"No data found for your query about {entity_type or 'ads'} "
            f"in the {period or 'specified period'}."
        )

    if intent == "performance_summary":
        if not aggregates:
            return ""
        parts = []
        if aggregates.get("spend"):
            parts.append(f"spent ${_format_number(aggregates['spend'])}")
        for key in ("impressions", "clicks", "conversions"):
            if aggregates.get(key):
                parts.append(f"{_format_number(aggregates[key])} {key}")
        return f"In the {period or 'selected period'}, your {entity_type or 'account'} {', '.join(parts)}."

    if intent in ("top_n", "bottom_n"):
        direction = "top" if intent == "top_n" else "bottom"
        return (
            f"Here are the {direction} {len(results)} {entity_type or 'items'} "
            f"by {metrics[0] if metrics else 'performance'}:"
        )

    if intent == "trend_analysis":
        return (
            f"Here's the {metrics[0] if metrics else 'performance'} trend "
            f"for the {period or 'selected period'}:"
        )

    if intent == "comparison":
        return f"Comparison results for the requested {entity_type or 'entities'}:"

    return f"Found {len(results)} {entity_type or 'items'} matching your query."


def suggest_followups(parsed: Dict[str, Any]) -> List[str]:
    entity_type = parsed.get("entities", {}).get("entity_type") or "campaigns"
    intent = parsed.get("intent")

    if intent == "performance_summary":
        suggestions = [
            f"What are the top performing {entity_type}?",
            "Are there any anomalies in the data?",
            "What recommendations do you have?",
        ]
    elif intent == "top_n":
        suggestions = [
            "Why is this the top performer?",
            "What can I do to improve the others?",
        ]
    elif intent == "anomaly_detection":
        suggestions = [
            "What caused this anomaly?",
            "How can I fix this issue?",
        ]
    else:
        suggestions = [
            "Show me performance summary",
            "What needs my attention?",
        ]
    return suggestions[:3]


def _quarter_start(d: date) -> date:
    return date(d.year, 3 * ((d.month - 1) // 3) + 1, 1)


def resolve_time_range(time_range: Dict[str, Any], today: Optional[date] = None) -> Dict[str, str]:
    """Concrete start/end dates (YYYY-MM-DD) for a parsed time range."""
    if time_range.get("type") == "absolute":
        return {"start": time_range.get("start"), "end": time_range.get("end")}

    today = today or date.today()
    period = time_range.get("relative_period") or "last_7_days"

    if period == "today":
        start, end = today, today
    elif period == "yesterday":
        start = end = today - timedelta(days=1)
    elif period == "last_30_days":
        start, end = today - timedelta(days=29), today
    elif period == "this_month":
        start, end = today.replace(day=1), today
    elif period == "last_month":
        end = today.replace(day=1) - timedelta(days=1)
        start = end.replace(day=1)
    elif period == "this_quarter":
        start, end = _quarter_start(today), today
    elif period == "last_quarter":
        end = _quarter_start(today) - timedelta(days=1)
        start = _quarter_start(end)
    else:
        start, end = today - timedelta(days=6), today

    return {"start": start.isoformat(), "end": end.isoformat()}


def query_to_filters(parsed: Dict[str, Any]) -> Dict[str, Any]:
    """Structured query -> where conditions, ordering and limit."""
    entities = parsed.get("entities", {})
    where: Dict[str, Any] = {}

    for key, column in (("campaigns", "campaign_name"), ("adsets", "adset_name"), ("ads", "ad_name")):
        if entities.get(key):
            where[column] = {"in": entities[key]}

    for f in parsed.get("filters", []):
        where.setdefault(f["field"], {})[f["operator"]] = f["value"]

    order_by = None
    metrics = parsed.get("metrics") or []
    if parsed.get("intent") == "top_n" and metrics:
        order_by = {"field": metrics[0], "direction": "desc"}
    elif parsed.get("intent") == "bottom_n" and metrics:
        order_by = {"field": metrics[0], "direction": "asc"}

    limit = None
    match = _LIMIT_PATTERN.search(parsed.get("original", ""))
    if match:
        limit = int(match.group(2))

    return {"where": where, "order_by": order_by, "limit": limit}
