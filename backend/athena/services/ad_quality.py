"""
Chess-style ad quality grading.

Every ad starts at 70 points. Problems are annotated like chess moves
(blunder, mistake, inaccuracy) and subtract points; good choices (brilliant,
excellent, good, book move) add points. The result is a 0-100 score, a letter
grade and a "victory chance" pulled toward 50% when little data is known.
"""
from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

ANALYSIS_VERSION = "1.0.0"
BASE_SCORE = 70

ISSUE_PENALTIES = {
    "blunder": -50,
    "mistake": -25,
    "inaccuracy": -10,
}

POSITIVE_BONUSES = {
    "brilliant": 30,
    "excellent": 20,
    "good": 10,
    "book_move": 5,
}

GRADE_THRESHOLDS = [
    ("S", 95, "Exceptional"),
    ("A", 85, "Excellent"),
    ("B", 70, "Good"),
    ("C", 55, "Average"),
    ("D", 40, "Below Average"),
    ("F", 0, "Poor"),
]

STRONG_HOOKS = ("curiosity", "shock", "transformation", "question")
MEDIUM_HOOKS = ("story", "problem_solution", "benefit")
DYNAMIC_EDITING = ("fast_cuts", "dynamic", "cinematic")
STRONG_CTAS = ("shop_now", "get_offer", "sign_up", "learn_more")

# Fields whose presence raises confidence
CONFIDENCE_FIELDS = (
    "has_subtitles",
    "aspect_ratio",
    "hook_type",
    "has_cta",
    "is_ugc_style",
    "has_voiceover",
    "media_type",
    "placement",
    "platform",
    "editing_style",
)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def calculate_grade(score: float) -> str:
    for grade, minimum, _ in GRADE_THRESHOLDS:
        if score >= minimum:
            return grade
    return "F"


def calculate_victory_chance(score: float, confidence: float) -> int:
    """Low confidence pulls the chance toward 50%."""
    uncertainty = (100 - confidence) / 100
    pull_to_middle = (50 - score) * uncertainty * 0.5
    return _round_half_up(max(0, min(100, score + pull_to_middle)))


class _Scorecard:
    def __init__(self) -> None:
        self.issues: List[Dict[str, Any]] = []
        self.positives: List[Dict[str, Any]] = []

    def issue(self, severity: str, category: str, title: str, description: str, impact: str, fix: str) -> None:
        self.issues.append({
            "id": f"issue_{len(self.issues) + 1}",
            "severity": severity,
            "category": category,
            "title": title,
            "description": description,
            "impact": impact,
            "fix": fix,
            "penalty_applied": ISSUE_PENALTIES[severity],
        })

    def positive(self, rating: str, category: str, title: str, description: str, impact: str) -> None:
        self.positives.append({
            "id": f"positive_{len(self.positives) + 1}",
            "rating": rating,
            "category": category,
            "title": title,
            "description": description,
            "impact": impact,
            "bonus_applied": POSITIVE_BONUSES[rating],
        })


def _check_accessibility(ad: Dict[str, Any], card: _Scorecard) -> None:
    if ad.get("has_subtitles") is False and ad.get("media_type") == "video":
        card.issue(
            "mistake", "accessibility", "No Subtitles Detected",
            "Video ads without subtitles lose viewers who watch with sound off (85% of Facebook users)",
            "-12% avg watch time",
            "Add closed captions or burned-in subtitles",
        )
    elif ad.get("has_subtitles") is True:
        card.positive(
            "excellent", "accessibility", "Subtitles Present",
            "Subtitles ensure message reaches viewers watching without sound",
            "+12% watch time",
        )


def _check_technical(ad: Dict[str, Any], card: _Scorecard) -> None:
    placement = ad.get("placement")
    aspect_ratio = ad.get("aspect_ratio")

    if placement in ("reels", "stories"):
        if aspect_ratio and aspect_ratio not in ("9:16", "4:5"):
            card.issue(
                "mistake", "technical", "Wrong Aspect Ratio for Vertical Placement",
                f"{aspect_ratio} format on {placement} placement loses screen real estate",
                "-15% engagement",
                "Use 9:16 vertical format for Stories/Reels",
            )
        elif aspect_ratio == "9:16":
            card.positive(
                "good", "technical", "Optimal Vertical Format",
                "Full-screen 9:16 format maximizes impact on Stories/Reels",
                "+15% engagement",
            )
    elif placement == "feed":
        if aspect_ratio == "16:9":
            card.issue(
                "inaccuracy", "technical", "Horizontal Format in Feed",
                "Landscape videos take up less screen space in mobile feed",
                "-8% visibility",
                "Consider 4:5 or 1:1 for better feed presence",
            )
        elif aspect_ratio in ("4:5", "1:1"):
            card.positive(
                "book_move", "technical", "Feed-Optimized Format",
                f"{aspect_ratio} format works well for feed placement",
                "+8% visibility",
            )

    duration = ad.get("duration")
    if ad.get("media_type") == "video" and duration:
        if duration > 60 and placement == "reels":
            card.issue(
                "inaccuracy", "technical", "Long Video for Reels",
                "Reels over 60 seconds have lower completion rates",
                "-10% completion rate",
                "Keep Reels under 30 seconds for best performance",
            )
        elif 0 < duration <= 15:
            card.positive(
                "good", "technical", "Concise Duration",
                "Short-form content maintains viewer attention",
                "+5% completion rate",
            )


def _check_creative(ad: Dict[str, Any], card: _Scorecard) -> None:
    hook_type = ad.get("hook_type")
    if hook_type:
        if hook_type.lower() in STRONG_HOOKS:
            card.positive(
                "excellent", "creative", "Strong Hook Type",
                f"{hook_type} hooks are proven to capture attention quickly",
                "+18% hook rate",
            )
        elif hook_type.lower() in MEDIUM_HOOKS:
            card.positive(
                "good", "creative", "Effective Hook",
                f"{hook_type} hook engages viewers effectively",
                "+10% hook rate",
            )
    else:
        card.issue(
            "inaccuracy", "creative", "No Clear Hook Identified",
            "Ads without a strong hook in the first 3 seconds lose viewers",
            "-15% hook rate",
            "Start with a curiosity gap, question, or bold statement",
        )

    if ad.get("is_ugc_style") is True:
        card.positive(
            "excellent", "creative", "UGC-Style Content",
            "User-generated style content feels authentic and trustworthy",
            "+25% engagement, +15% trust",
        )

    if ad.get("has_human_face") is True:
        card.positive(
            "good", "creative", "Human Presence",
            "Faces increase emotional connection and stop-scroll rate",
            "+10% stop-scroll rate",
        )

    editing_style = ad.get("editing_style")
    if editing_style and editing_style.lower() in DYNAMIC_EDITING:
        card.positive(
            "good", "creative", "Dynamic Editing",
            f"{editing_style} maintains visual interest",
            "+8% watch time",
        )


def _check_copy(ad: Dict[str, Any], card: _Scorecard) -> None:
    if ad.get("has_cta") is False:
        card.issue(
            "blunder", "copy", "No Call-to-Action",
            "Ads without a clear CTA fail to convert interested viewers",
            "-40% conversion rate",
            "Add a clear CTA: Shop Now, Learn More, Sign Up, etc.",
        )
    elif ad.get("has_cta") is True:
        card.positive(
            "book_move", "copy", "CTA Present",
            "Clear call-to-action guides viewers to next step",
            "+15% click-through",
        )
        cta_type = ad.get("cta_type")
        if cta_type and cta_type.lower().replace(" ", "_", 1) in STRONG_CTAS:
            card.positive(
                "good", "copy", "Action-Oriented CTA",
                f'"{cta_type}" creates urgency and clear action',
                "+8% CTR",
            )

    if ad.get("media_type") == "video":
        if ad.get("has_voiceover") is True:
            card.positive(
                "good", "copy", "Voiceover Present",
                "Narration reinforces message for viewers with sound on",
                "+10% message retention",
            )
        elif ad.get("has_voiceover") is False and ad.get("has_subtitles") is False:
            card.issue(
                "mistake", "copy", "No Audio Communication",
                "Video lacks both voiceover and subtitles for message delivery",
                "-20% message clarity",
                "Add either voiceover or text overlays to communicate message",
            )

    if ad.get("has_text_overlays") is True:
        card.positive(
            "book_move", "creative", "Text Overlays",
            "On-screen text reinforces key messages",
            "+5% comprehension",
        )


def _check_platform(ad: Dict[str, Any], card: _Scorecard) -> None:
    if ad.get("platform") != "tiktok":
        return
    if ad.get("is_ugc_style") is not True:
        card.issue(
            "inaccuracy", "targeting", "Non-Native TikTok Style",
            "Polished ads stand out negatively on TikTok",
            "-20% engagement",
            "Use raw, authentic UGC-style content for TikTok",
        )
    if ad.get("music_type") == "trending":
        card.positive(
            "excellent", "targeting", "Trending Audio",
            "Trending sounds boost discoverability on TikTok",
            "+30% reach",
        )


def analyze_ad_quality(ad: Dict[str, Any], now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Grades an ad from its extracted creative attributes.

    Args:
        ad: Attributes such as media_type, aspect_ratio, placement, hook_type,
            has_subtitles, has_cta, is_ugc_style (unknown attributes may be None)
        now: Timestamp recorded as analyzed_at

    Returns:
        Dict with overall_score, grade, victory_chance, issues, positives,
        per-severity counts, up to 5 recommendations and confidence (0-100)
    """
    card = _Scorecard()
    _check_accessibility(ad, card)
    _check_technical(ad, card)
    _check_creative(ad, card)
    _check_copy(ad, card)
    _check_platform(ad, card)

    raw = BASE_SCORE
    raw += sum(i["penalty_applied"] for i in card.issues)
    raw += sum(p["bonus_applied"] for p in card.positives)
    score = max(0, min(100, _round_half_up(raw)))

    known = sum(1 for f in CONFIDENCE_FIELDS if ad.get(f) is not None)
    confidence = min(95, 40 + known * 5.5)

    # Most severe first; sort is stable so ties keep detection order
    ranked = sorted(card.issues, key=lambda i: ISSUE_PENALTIES[i["severity"]])
    recommendations = [i["fix"] for i in ranked[:5]]

    def _count(severity: str) -> int:
        return sum(1 for i in card.issues if i["severity"] == severity)

    return {
        "overall_score": score,
        "victory_chance": calculate_victory_chance(score, confidence),
        "grade": calculate_grade(score),
        "issues": card.issues,
        "positives": card.positives,
        "blunder_count": _count("blunder"),
        "mistake_count": _count("mistake"),
        "inaccuracy_count": _count("inaccuracy"),
        "recommendations": recommendations,
        "analyzed_at": (now or datetime.now(timezone.utc)).isoformat(),
        "analysis_version": ANALYSIS_VERSION,
        "confidence": _round_half_up(confidence),
    }
