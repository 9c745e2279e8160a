"""
Public pool: anonymized contributions and community patterns.

Ads are shared as categorical traits ("hook:curiosity", "ugc:yes") plus a
Z-score relative to the contributor's own baseline, never raw metrics.
Community patterns aggregate those contributions in collective_priors.
"""
from __future__ import annotations

import hashlib
import logging
import math
import threading
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from athena.core.config import POOL_RATE_LIMIT_PER_HOUR

logger = logging.getLogger(__name__)

# Success score baseline (0-100 scale) used when the account has none
DEFAULT_BASELINE = {"avg_success_rating": 50.0, "std_success_rating": 20.0}

MAX_ABS_ZSCORE = 5.0
SURPRISE_ZSCORE = 1.5
MAX_TRAIT_LENGTH = 50

STRIPPED_FIELDS = [
    "Ad copy/text",
    "URLs",
    "Exact spend amounts",
    "Revenue figures",
    "User identifiers",
    "Timestamps (time portion)",
]

# Categorical attributes shared as "<category>:<value>"
_CATEGORICAL_TRAITS = [
    ("hook_type", "hook"),
    ("platform", "platform"),
    ("content_category", "content"),
    ("editing_style", "editing"),
    ("color_scheme", "color"),
    ("music_type", "music"),
    ("media_type", "media"),
]
_BOOLEAN_TRAITS = [
    ("has_subtitles", "subtitles"),
    ("has_text_overlays", "textOverlays"),
    ("has_voiceover", "voiceover"),
    ("is_ugc_style", "ugc"),
]

CATEGORY_LABELS = {
    "hook": "Hook Type",
    "platform": "Platform",
    "content": "Content Type",
    "editing": "Editing Style",
    "color": "Color Scheme",
    "music": "Music",
    "media": "Media Type",
    "subtitles": "Subtitles",
    "textOverlays": "Text Overlays",
    "voiceover": "Voiceover",
    "ugc": "UGC Style",
    "cta": "Call to Action",
}

VALUE_LABELS = {
    "yes": "Enabled",
    "no": "Disabled",
    "curiosity": "Curiosity Hook",
    "shock": "Shock Hook",
    "question": "Question Hook",
    "fast_cuts": "Fast Cuts",
    "cinematic": "Cinematic",
    "raw_authentic": "Raw/Authentic",
}

# Public sort keys -> collective_priors columns
PATTERN_SORT_COLUMNS = {
    "avgZScore": "avg_weight",
    "sampleSize": "contribution_count",
    "confidence": "confidence",
    "lastUpdated": "last_updated_at",
    "avg_weight": "avg_weight",
    "contribution_count": "contribution_count",
    "last_updated_at": "last_updated_at",
}

# top = best average, worst = patterns to avoid
PATTERN_PRESETS = {
    "top": {"sort_order": "desc", "min_sample_size": 20, "min_confidence": 0.5},
    "worst": {"sort_order": "asc", "min_sample_size": 20, "min_confidence": 0.5},
}


# ===== Z-scores =====

def calculate_zscore(value: float, mean: float, std_dev: float) -> float:
    if std_dev == 0:
        return 0.0
    return (value - mean) / std_dev


def zscore_to_percentile(z: float) -> float:
    percentile = 50 * (1 + math.erf(z / math.sqrt(2)))
    return max(0.0, min(100.0, percentile))


def explain_zscore(z: float) -> str:
    if z > 1:
        return f"This ad performed {z:.2f} standard deviations ABOVE your average."
    if z < -1:
        return f"This ad performed {abs(z):.2f} standard deviations BELOW your average."
    return f"This ad performed close to your average (Z-score: {z:.2f})."


# ===== Anonymization =====

def generate_contributor_hash(user_id: str, now: Optional[datetime] = None) -> str:
    """Hash of user id + month; rotates monthly so contributors can't be tracked long-term."""
    now = now or datetime.now(timezone.utc)
    digest = hashlib.sha256(f"{user_id}-{now.year}-{now.month:02d}".encode("utf-8")).hexdigest()
    return f"anon-{digest[:16]}"


def get_spend_tier(spend: Optional[float]) -> str:
    if not spend or spend < 100:
        return "low"
    if spend < 1000:
        return "medium"
    return "high"


def extract_traits(content: Dict[str, Any]) -> List[str]:
    traits: List[str] = []
    for field_name, category in _CATEGORICAL_TRAITS:
        if content.get(field_name):
            traits.append(f"{category}:{content[field_name]}")
    for field_name, category in _BOOLEAN_TRAITS:
        if content.get(field_name):
            traits.append(f"{category}:yes")
    cta = content.get("cta") or content.get("cta_type")
    if cta:
        traits.append(f"cta:{cta}")
    return traits


def anonymize_contribution(
    content: Dict[str, Any],
    success_score: float,
    user_id: str,
    baseline: Optional[Dict[str, float]] = None,
    ad_spend: Optional[float] = None,
    include_industry: bool = False,
    include_platform: bool = False,
    include_spend_tier: bool = False,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Builds an anonymized insight from an ad's extracted content.

    Args:
        content: Extracted creative attributes (hook_type, platform, is_ugc_style...)
        success_score: The ad's 0-100 success score
        user_id: Contributor id, only used for the rotating hash
        baseline: {"avg_success_rating", "std_success_rating"} of the account
        ad_spend: Raw spend, reduced to a tier when include_spend_tier

    Returns:
        {"insight": {...}, "stripped_fields": [...], "zscore_explanation": str}
    """
    baseline = baseline or DEFAULT_BASELINE
    now = now or datetime.now(timezone.utc)
    z = calculate_zscore(
        success_score,
        baseline["avg_success_rating"],
        baseline["std_success_rating"],
    )

    insight: Dict[str, Any] = {
        "traits": extract_traits(content),
        "z_score": round(z, 2),
        "contributor_hash": generate_contributor_hash(user_id, now),
        "contributed_date": now.date().isoformat(),
    }
    if include_platform and content.get("platform"):
        insight["platform"] = content["platform"]
    if include_spend_tier:
        insight["spend_tier"] = get_spend_tier(ad_spend)
    if include_industry:
        insight["industry"] = content.get("industry_vertical")

    return {
        "insight": insight,
        "stripped_fields": list(STRIPPED_FIELDS),
        "zscore_explanation": explain_zscore(z),
    }


def validate_anonymization(insight: Dict[str, Any]) -> Dict[str, Any]:
    issues: List[str] = []

    contributor_hash = insight.get("contributor_hash")
    if contributor_hash and not contributor_hash.startswith("anon-"):
        issues.append("Contributor hash does not appear to be anonymized")

    for trait in insight.get("traits") or []:
        if len(trait) > MAX_TRAIT_LENGTH:
            issues.append(f'Trait "{trait[:20]}..." appears to be free text')
        if ":" not in trait:
            issues.append(f'Trait "{trait}" should be in category:value format')

    contributed_date = insight.get("contributed_date")
    if contributed_date and "T" in contributed_date:
        issues.append("Contributed date should not include time")

    return {"is_valid": not issues, "issues": issues}


def contribution_record(insight: Dict[str, Any], contributor_hash: str, today: Optional[str] = None) -> Dict[str, Any]:
    """user_contributions row for one submitted insight."""
    z = float(insight["z_score"])
    surprise = abs(z) > SURPRISE_ZSCORE
    return {
        "contributor_hash": contributor_hash,
        "feature_name": ",".join(insight["traits"]),
        "weight_delta": z,
        "outcome_positive": z > 0,
        "confidence": min(1.0, abs(z) / 2),
        "category": insight.get("industry") or "general",
        "is_surprise": surprise,
        "surprise_magnitude": z if surprise else None,
        "contributed_at": today or datetime.now(timezone.utc).date().isoformat(),
    }


# ===== Rate limiting =====

_rate_lock = threading.RLock()
_contribution_counts: Dict[str, tuple[int, float]] = {}  # {contributor_hash: (count, reset_at)}
RATE_WINDOW_SECONDS = 3600


def check_rate_limit(
    contributor_hash: str,
    limit: int = POOL_RATE_LIMIT_PER_HOUR,
    now: Optional[float] = None,
) -> bool:
    """
    Counts one contribution batch; False once the hourly limit is reached.

    Each hash gets a fixed window starting at its first batch. Expired windows
    are dropped on every call.
    """
    now = time.time() if now is None else now
    with _rate_lock:
        for expired in [h for h, (_, reset_at) in _contribution_counts.items() if reset_at < now]:
            del _contribution_counts[expired]

        record = _contribution_counts.get(contributor_hash)
        if record is None:
            _contribution_counts[contributor_hash] = (1, now + RATE_WINDOW_SECONDS)
            return True
        count, reset_at = record
        if count >= limit:
            logger.info(f"[POOL] Rate limit reached for {contributor_hash[:12]}...")
            return False
        _contribution_counts[contributor_hash] = (count + 1, reset_at)
        return True


def reset_rate_limits() -> None:
    with _rate_lock:
        _contribution_counts.clear()


# ===== Community patterns =====

def trait_to_label(trait: str) -> str:
    category, _, value = trait.partition(":")
    category_label = CATEGORY_LABELS.get(category, category)
    value_label = VALUE_LABELS.get(value, value.replace("_", " "))
    return f"{category_label}: {value_label}"


def convert_zscore_to_local_scale(z: float, baseline: Optional[Dict[str, float]] = None) -> Dict[str, Any]:
    """Projects a community Z-score onto the caller's own success score scale."""
    baseline = baseline or DEFAULT_BASELINE
    score = baseline["avg_success_rating"] + z * baseline["std_success_rating"]
    bounded = max(0, min(100, int(math.floor(score + 0.5))))
    percentile = int(math.floor(zscore_to_percentile(z) + 0.5))

    if z > 1.5:
        interpretation = "Significantly above average - Top performer"
    elif z > 0.5:
        interpretation = "Above average - Good performer"
    elif z > -0.5:
        interpretation = "Around average - Typical performance"
    elif z > -1.5:
        interpretation = "Below average - Underperformer"
    else:
        interpretation = "Significantly below average - Poor performer"

    return {"score": bounded, "percentile": percentile, "interpretation": interpretation}


def detect_trend(positive_outcomes: int, negative_outcomes: int) -> str:
    total = (positive_outcomes or 0) + (negative_outcomes or 0)
    if total < 10:
        return "stable"
    ratio = positive_outcomes / total
    if ratio > 0.6:
        return "rising"
    if ratio < 0.4:
        return "falling"
    return "stable"


def pattern_from_prior(row: Dict[str, Any], baseline: Optional[Dict[str, float]] = None) -> Dict[str, Any]:
    """collective_priors row -> community pattern."""
    traits = [t for t in (row.get("feature_name") or "").split(",") if t]
    avg = float(row.get("avg_weight") or 0)
    converted = convert_zscore_to_local_scale(avg, baseline)
    return {
        "traits": traits,
        "trait_labels": [trait_to_label(t) for t in traits],
        "avg_z_score": avg,
        "sample_size": row.get("contribution_count") or 0,
        "confidence": row.get("confidence") or 0,
        "positive_outcomes": row.get("positive_outcomes") or 0,
        "negative_outcomes": row.get("negative_outcomes") or 0,
        "converted_score": converted["score"],
        "converted_percentile": converted["percentile"],
        "trend_direction": detect_trend(row.get("positive_outcomes") or 0, row.get("negative_outcomes") or 0),
        "category": row.get("category"),
        "last_updated": row.get("last_updated_at"),
    }


def filter_patterns(
    patterns: List[Dict[str, Any]],
    traits: Optional[List[str]] = None,
    platform: Optional[str] = None,
    audience: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """Case-insensitive substring search over trait labels, platform traits and audience."""
    result = patterns
    if traits:
        wanted = [t.lower() for t in traits]
        result = [
            p for p in result
            if any(w in label.lower() for w in wanted for label in p["trait_labels"])
        ]
    if platform:
        needle = platform.lower()
        result = [p for p in result if any(needle in t.lower() for t in p["traits"])]
    if audience:
        needle = audience.lower()
        result = [
            p for p in result
            if any(needle in t.lower() for t in p["traits"])
            or any(needle in label.lower() for label in p["trait_labels"])
        ]
    return result


def summarize_patterns(patterns: List[Dict[str, Any]], total: int) -> Dict[str, Any]:
    if patterns:
        avg_confidence = int(math.floor(sum(p["confidence"] for p in patterns) / len(patterns) * 100 + 0.5))
    else:
        avg_confidence = 0
    return {
        "total_patterns": total,
        "avg_confidence": avg_confidence,
        "total_sample_size": sum(p["sample_size"] for p in patterns),
    }
