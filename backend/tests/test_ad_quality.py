from datetime import datetime, timezone

import pytest

from athena.services import ad_quality


@pytest.mark.parametrize(
    "score, grade",
    [(100, "S"), (95, "S"), (94, "A"), (85, "A"), (70, "B"), (55, "C"), (40, "D"), (39, "F"), (0, "F")],
)
def test_calculate_grade(score, grade):
    assert ad_quality.calculate_grade(score) == grade


def test_victory_chance_pulls_toward_fifty_with_low_confidence():
    assert ad_quality.calculate_victory_chance(100, 100) == 100
    assert ad_quality.calculate_victory_chance(100, 0) == 75
    assert ad_quality.calculate_victory_chance(0, 0) == 25


def test_strong_vertical_video():
    ad = {
        "media_type": "video",
        "has_subtitles": True,
        "placement": "reels",
        "aspect_ratio": "9:16",
        "duration": 12,
        "hook_type": "Curiosity",
        "is_ugc_style": True,
        "has_human_face": True,
        "editing_style": "fast_cuts",
        "has_cta": True,
        "cta_type": "Shop Now",
        "has_voiceover": True,
    }
    now = datetime(2026, 1, 1, tzinfo=timezone.utc)
    result = ad_quality.analyze_ad_quality(ad, now=now)

    assert result["overall_score"] == 100
    assert result["grade"] == "S"
    assert result["issues"] == []
    assert {p["title"] for p in result["positives"]} >= {"Strong Hook Type", "Action-Oriented CTA", "Optimal Vertical Format"}
    assert result["confidence"] == 90
    assert result["victory_chance"] == 97
    assert result["analyzed_at"] == now.isoformat()
    assert result["analysis_version"] == ad_quality.ANALYSIS_VERSION


def test_weak_video_is_graded_f_with_blunder_first():
    ad = {
        "media_type": "video",
        "has_subtitles": False,
        "placement": "reels",
        "aspect_ratio": "16:9",
        "duration": 90,
        "has_cta": False,
        "has_voiceover": False,
    }
    result = ad_quality.analyze_ad_quality(ad)

    assert result["overall_score"] == 0
    assert result["grade"] == "F"
    assert result["blunder_count"] == 1
    assert result["mistake_count"] == 3
    assert result["inaccuracy_count"] == 2
    assert len(result["recommendations"]) == 5
    assert result["recommendations"][0] == "Add a clear CTA: Shop Now, Learn More, Sign Up, etc."
    assert [i["id"] for i in result["issues"]] == [f"issue_{n}" for n in range(1, 7)]


def test_unknown_ad_only_misses_the_hook():
    result = ad_quality.analyze_ad_quality({})
    assert result["overall_score"] == 60
    assert result["grade"] == "C"
    assert result["confidence"] == 40
    assert result["victory_chance"] == 57
    assert [i["title"] for i in result["issues"]] == ["No Clear Hook Identified"]


def test_tiktok_rules():
    polished = ad_quality.analyze_ad_quality({"platform": "tiktok", "hook_type": "story"})
    assert "Non-Native TikTok Style" in [i["title"] for i in polished["issues"]]

    trending = ad_quality.analyze_ad_quality(
        {"platform": "tiktok", "hook_type": "story", "is_ugc_style": True, "music_type": "trending"}
    )
    assert trending["issues"] == []
    assert "Trending Audio" in [p["title"] for p in trending["positives"]]


def test_feed_placement_formats():
    landscape = ad_quality.analyze_ad_quality({"placement": "feed", "aspect_ratio": "16:9", "hook_type": "benefit"})
    assert [i["title"] for i in landscape["issues"]] == ["Horizontal Format in Feed"]

    square = ad_quality.analyze_ad_quality({"placement": "feed", "aspect_ratio": "1:1", "hook_type": "benefit"})
    assert "Feed-Optimized Format" in [p["title"] for p in square["positives"]]
    # 70 + good hook (10) + book move (5)
    assert square["overall_score"] == 85
