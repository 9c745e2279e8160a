import pytest

from athena.services import pool, supabase_repo
from conftest import ORG_ID


# ===== Public pool ===== #

def _contribution(**overrides):
    body = {
        "insights": [{"traits": ["hook:curiosity", "ugc:yes"], "z_score": 1.8}],
        "contributor_hash": "anon-0123456789abcdef",
    }
    body.update(overrides)
    return body


def test_contribute_stores_records(anon_client, fake_db):
    resp = anon_client.post("/pool/contribute", json=_contribution())
    assert resp.status_code == 200
    assert resp.json() == {"success": True, "message": "Contributions saved successfully", "count": 1}

    row = fake_db.tables["user_contributions"][0]
    assert row["feature_name"] == "hook:curiosity,ugc:yes"
    assert row["is_surprise"] is True
    assert row["outcome_positive"] is True


@pytest.mark.parametrize(
    "body, message",
    [
        ({"insights": []}, "Insights array is required"),
        ({"contributor_hash": None}, "Contributor hash is required"),
        ({"insights": [{"traits": ["hook:curiosity"], "z_score": 6.2}]}, "Z-score must be between -5 and 5"),
        ({"insights": [{"traits": ["curiosity"], "z_score": 1.0}]}, "Insight is not anonymized"),
        ({"contributor_hash": "user-42"}, "Insight is not anonymized"),
    ],
)
def test_contribute_validation(anon_client, fake_db, body, message):
    resp = anon_client.post("/pool/contribute", json=_contribution(**body))
    assert resp.status_code == 400
    assert resp.json()["detail"]["message"] == message
    assert fake_db.tables.get("user_contributions", []) == []


def test_contribute_is_rate_limited(anon_client, fake_db, monkeypatch):
    monkeypatch.setattr(pool, "check_rate_limit", lambda contributor_hash: False)
    resp = anon_client.post("/pool/contribute", json=_contribution())
    assert resp.status_code == 429
    assert resp.json()["detail"]["code"] == "RATE_LIMITED"


def test_anonymize_requires_auth(anon_client):
    resp = anon_client.post("/pool/anonymize", json={"content": {}, "success_score": 50})
    assert resp.status_code == 401


def test_anonymize_preview(client):
    resp = client.post(
        "/pool/anonymize",
        json={"content": {"hook_type": "question", "platform": "tiktok"}, "success_score": 90},
    )
    data = resp.json()["data"]
    assert data["insight"]["z_score"] == 2.0
    assert data["insight"]["contributor_hash"].startswith("anon-")
    assert data["validation"] == {"is_valid": True, "issues": []}


@pytest.fixture
def priors(fake_db):
    fake_db.seed("collective_priors", [
        {"feature_name": "hook:curiosity,ugc:yes", "avg_weight": 1.2, "contribution_count": 40,
         "confidence": 0.8, "positive_outcomes": 30, "negative_outcomes": 10, "category": "beauty"},
        {"feature_name": "hook:statement", "avg_weight": -0.9, "contribution_count": 25,
         "confidence": 0.6, "positive_outcomes": 5, "negative_outcomes": 20, "category": "saas"},
        {"feature_name": "hook:story", "avg_weight": 0.3, "contribution_count": 5,
         "confidence": 0.2, "positive_outcomes": 3, "negative_outcomes": 2, "category": "saas"},
    ])
    return fake_db


def _features(patterns):
    return [",".join(p["traits"]) for p in patterns]


def test_patterns_filters_and_sorting(anon_client, priors):
    body = anon_client.get("/pool/patterns").json()
    assert _features(body["patterns"]) == ["hook:curiosity,ugc:yes", "hook:statement"]
    assert body["total"] == 2
    assert body["has_more"] is False

    by_trait = anon_client.get("/pool/patterns", params={"traits": "curiosity"}).json()
    assert _features(by_trait["patterns"]) == ["hook:curiosity,ugc:yes"]

    by_industry = anon_client.get("/pool/patterns", params={"industry": "saas"}).json()
    assert _features(by_industry["patterns"]) == ["hook:statement"]

    paged = anon_client.get("/pool/patterns", params={"limit": 1}).json()
    assert paged["total"] == 2
    assert paged["has_more"] is True


def test_patterns_presets(anon_client, priors):
    worst = anon_client.get("/pool/patterns", params={"preset": "worst"}).json()
    assert _features(worst["patterns"]) == ["hook:statement", "hook:curiosity,ugc:yes"]
    assert worst["has_more"] is False

    assert anon_client.get("/pool/patterns", params={"preset": "random"}).status_code == 400


def test_public_patterns_insights(anon_client, priors):
    body = anon_client.get("/pool/public").json()
    assert body["total"] == 2
    assert _features(body["insights"]["top_patterns"]) == ["hook:curiosity,ugc:yes", "hook:statement"]
    assert _features(body["insights"]["patterns_to_avoid"]) == ["hook:statement", "hook:curiosity,ugc:yes"]
    assert body["insights"]["summary"] == {"total_patterns": 2, "avg_confidence": 70, "total_sample_size": 65}
    assert "warning" not in body


def test_public_patterns_degrade_when_store_fails(anon_client, fake_db, monkeypatch):
    def boom(**kwargs):
        raise RuntimeError("connection refused")

    monkeypatch.setattr(supabase_repo, "query_collective_priors", boom)
    body = anon_client.get("/pool/public").json()
    assert body["patterns"] == []
    assert body["warning"] == "Unable to fetch live data."
    assert body["insights"]["summary"]["total_patterns"] == 0


def test_search_public_patterns(anon_client, priors):
    body = anon_client.post("/pool/public", json={"traits": ["curiosity"]}).json()
    assert _features(body["patterns"]) == ["hook:curiosity,ugc:yes"]
    assert body["search_criteria"]["traits"] == ["curiosity"]


# ===== Data health ===== #

def _seed_ads(fake_db):
    fake_db.seed("user_ads", [
        {"user_id": ORG_ID, "ad_data": {
            "campaign_id": "c1", "name": "Ad A", "status": "ACTIVE", "spend": 120,
            "impressions": 5000, "clicks": 80, "conversions": 4, "insights": {"ctr": 1.6},
        }},
        {"user_id": ORG_ID, "ad_data": {"campaign_id": "c2", "name": "Ad B"}},
        {"user_id": "org-2", "ad_data": {"campaign_id": "c9", "name": "Other org"}},
    ])


def test_recalculate_health(client, fake_db):
    _seed_ads(fake_db)

    resp = client.post("/ai/health", json={})
    body = resp.json()
    assert resp.status_code == 200
    assert body["recalculated"] == 2
    assert body["ads_analyzed"] == 2
    assert body["summary"] == {
        "total_entities": 2,
        "healthy": 1,
        "warning": 1,
        "critical": 0,
        "average_score": 75,
    }

    stored = {r["entity_id"]: r for r in fake_db.tables["data_health_scores"]}
    assert stored["c1"]["overall_score"] == 90
    assert stored["c2"]["overall_score"] == 59
    assert stored["c2"]["org_id"] == ORG_ID

    # Recalculating replaces rows instead of duplicating them
    client.post("/ai/health", json={"entity_id": "c1"})
    assert len(fake_db.tables["data_health_scores"]) == 2

    listed = client.get("/ai/health").json()
    assert [s["entity_id"] for s in listed["data"]] == ["c2", "c1"]
    assert listed["summary"]["average_score"] == 75


def test_recalculate_health_validation(client, fake_db):
    resp = client.post("/ai/health", json={"entity_type": "adset"})
    assert resp.status_code == 400
    assert resp.json()["detail"]["message"] == "Only campaign health can be recalculated"

    fake_db.tables["user_profiles"][0]["org_id"] = None
    assert client.get("/ai/health").status_code == 400


def test_health_requires_analytics_permission(make_client):
    client = make_client("marketer", status="pending")
    resp = client.get("/ai/health")
    assert resp.status_code == 403
    assert resp.json()["detail"] == "Account is pending"


def test_health_is_scoped_to_own_org(client, fake_db):
    fake_db.seed("data_health_scores", [
        {"org_id": "other-org", "entity_type": "campaign", "entity_id": "c7", "overall_score": 12}
    ])
    resp = client.get("/ai/health", params={"org_id": "other-org"})
    assert resp.status_code == 403
    assert resp.json()["detail"] == "Access denied to this organization"

    assert client.post("/ai/health", json={"org_id": "other-org"}).status_code == 403
    assert client.get("/ai/health", params={"org_id": ORG_ID}).json()["data"] == []
