import hashlib
import json

import pytest
import requests

from athena.routes import capi as capi_routes
from athena.routes import facebook as facebook_routes
from athena.services import capi, graph_api


class FakeResponse:
    def __init__(self, status_code=200, body=None):
        self.status_code = status_code
        self._body = body
        self.text = json.dumps(body or {})

    def json(self):
        return self._body

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(f"{self.status_code} Error", response=self)


@pytest.fixture
def meta_configured(monkeypatch):
    monkeypatch.setattr(facebook_routes, "META_ACCESS_TOKEN", "meta-token")
    monkeypatch.setattr(facebook_routes, "META_AD_ACCOUNT_ID", "act_42")
    monkeypatch.setattr(facebook_routes, "META_PAGE_ID", None)


@pytest.fixture
def graph_posts(monkeypatch):
    calls = []

    def fake_post(url, data=None, timeout=None):
        calls.append({"url": url, "data": data})
        return FakeResponse(body={"id": "new-1"})

    monkeypatch.setattr(graph_api.requests, "post", fake_post)
    return calls


# ===== Facebook Marketing API ===== #

def test_missing_meta_token(client, monkeypatch):
    monkeypatch.setattr(facebook_routes, "META_ACCESS_TOKEN", None)
    resp = client.get("/facebook/campaigns")
    assert resp.status_code == 400
    assert resp.json()["detail"]["code"] == "META_NOT_CONFIGURED"


def test_client_cannot_manage_campaigns(make_client, meta_configured):
    client = make_client("client")
    resp = client.post("/facebook/campaigns", json={"name": "Launch", "objective": "leads"})
    assert resp.status_code == 403
    assert resp.json()["detail"] == "Insufficient permissions"


def test_create_campaign(client, meta_configured, graph_posts):
    resp = client.post("/facebook/campaigns", json={"name": " Launch ", "objective": "leads"})
    body = resp.json()
    assert resp.status_code == 200
    assert body["campaign_id"] == "new-1"
    assert body["name"] == "Launch"
    assert body["objective"] == "OUTCOME_LEADS"
    assert body["status"] == "PAUSED"
    assert "LEAD_GENERATION" in body["optimization_goals"]

    assert graph_posts[0]["url"].endswith("/act_42/campaigns")
    assert graph_posts[0]["data"]["access_token"] == "meta-token"


def test_create_campaign_validation(client, meta_configured, graph_posts):
    bad_objective = client.post("/facebook/campaigns", json={"name": "Launch", "objective": "fame"})
    assert bad_objective.status_code == 400
    assert bad_objective.json()["detail"]["message"].startswith('Invalid objective "fame"')

    bad_status = client.post("/facebook/campaigns", json={"name": "Launch", "objective": "sales", "status": "archived"})
    assert bad_status.status_code == 400
    assert graph_posts == []


def test_expired_meta_token(client, meta_configured, monkeypatch):
    body = {"error": {"code": 190, "message": "Error validating access token"}}
    monkeypatch.setattr(graph_api.requests, "get", lambda *a, **kw: FakeResponse(400, body=body))

    resp = client.get("/facebook/campaigns")
    assert resp.status_code == 401
    assert resp.json()["detail"]["code"] == "META_TOKEN_EXPIRED"


def test_graph_error_details(client, meta_configured, monkeypatch):
    body = {"error": {"code": 100, "error_subcode": 1885272, "message": "Invalid parameter daily_budget"}}
    monkeypatch.setattr(graph_api.requests, "post", lambda *a, **kw: FakeResponse(400, body=body))

    resp = client.post("/facebook/adsets", json={"name": "Set", "campaign_id": "cmp-1", "daily_budget": 1})
    detail = resp.json()["detail"]
    assert resp.status_code == 400
    assert detail["code"] == "META_API_ERROR"
    assert detail["details"] == {"error_code": 100, "error_subcode": 1885272}


def test_list_campaigns(client, meta_configured, monkeypatch):
    monkeypatch.setattr(
        graph_api.requests,
        "get",
        lambda url, params=None, timeout=None: FakeResponse(body={"data": [{"id": "c1"}, {"id": "c2"}]}),
    )
    body = client.get("/facebook/campaigns", params={"status": "ACTIVE"}).json()
    assert body["total"] == 2
    assert body["paging"] is None


def test_create_adset_builds_targeting(client, meta_configured, graph_posts):
    resp = client.post(
        "/facebook/adsets",
        json={
            "name": "Women 25-40",
            "campaign_id": "cmp-1",
            "daily_budget": 500,
            "targeting": {"countries": ["ph"], "age_min": 25, "age_max": 40, "genders": [2]},
        },
    )
    body = resp.json()
    assert resp.status_code == 200
    assert body["adset_id"] == "new-1"
    assert body["targeting"]["geo_locations"] == {"countries": ["PH"]}

    sent = graph_posts[0]["data"]
    assert sent["daily_budget"] == 50000
    assert sent["billing_event"] == "IMPRESSIONS"
    assert json.loads(sent["targeting"])["age_min"] == 25


@pytest.mark.parametrize(
    "overrides, message",
    [
        ({"daily_budget": None}, "Must provide either daily_budget or lifetime_budget"),
        ({"daily_budget": None, "lifetime_budget": 1000}, "end_time is required when using lifetime budget"),
        ({"billing_event": "views"}, "Invalid billing_event. Must be one of IMPRESSIONS, LINK_CLICKS, APP_INSTALLS, THRUPLAY"),
    ],
)
def test_create_adset_validation(client, meta_configured, graph_posts, overrides, message):
    body = {"name": "Set", "campaign_id": "cmp-1", "daily_budget": 100, **overrides}
    resp = client.post("/facebook/adsets", json=body)
    assert resp.status_code == 400
    assert resp.json()["detail"]["message"] == message
    assert graph_posts == []


def test_insights_need_full_range(client, meta_configured):
    resp = client.get("/facebook/insights", params={"object_id": "cmp-1", "since": "2026-01-01"})
    assert resp.status_code == 400


def test_client_can_read_insights(make_client, meta_configured, monkeypatch):
    monkeypatch.setattr(
        graph_api.requests,
        "get",
        lambda url, params=None, timeout=None: FakeResponse(body={"data": [{"spend": "10.00"}]}),
    )
    client = make_client("client")
    body = client.get("/facebook/insights", params={"object_id": "cmp-1"}).json()
    assert body == {"success": True, "insights": [{"spend": "10.00"}]}


# ===== Conversions API ===== #

@pytest.fixture
def capi_unconfigured(monkeypatch):
    monkeypatch.setattr(capi_routes, "META_DATASET_ID", None)
    monkeypatch.setattr(capi_routes, "META_CAPI_ACCESS_TOKEN", None)


def _event(**overrides):
    body = {
        "dataset_id": "ds-1",
        "access_token": "capi-token",
        "event_name": "lead",
        "event_id": "conv-123",
        "event_time": 1767225600,
        "email": " Jane@Example.com ",
    }
    body.update(overrides)
    return body


@pytest.mark.parametrize(
    "overrides, message",
    [
        ({"dataset_id": None}, "Dataset ID is required"),
        ({"access_token": None}, "CAPI Access Token is required"),
        ({"event_name": " "}, "Event name is required"),
        ({"event_id": None}, "event_id is required for deduplication (use unique conversion ID)"),
        ({"event_time": None}, "event_time is required (Unix timestamp of when action occurred)"),
        ({"email": None}, "At least one identifier required: lead_id, email, or phone"),
    ],
)
def test_capi_validation(client, capi_unconfigured, overrides, message):
    resp = client.post("/capi/send", json=_event(**overrides))
    assert resp.status_code == 400
    assert resp.json()["detail"]["message"] == message


def test_capi_send(client, capi_unconfigured, monkeypatch):
    calls = {}

    def fake_post(url, params=None, json=None, timeout=None):
        calls.update(url=url, params=params, json=json)
        return FakeResponse(body={"events_received": 1, "fbtrace_id": "trace-1"})

    monkeypatch.setattr(capi.requests, "post", fake_post)
    resp = client.post("/capi/send", json=_event(value=150, currency="PHP"))

    assert resp.json() == {
        "success": True,
        "message": "Conversion event sent successfully",
        "events_received": 1,
        "fbtrace_id": "trace-1",
    }
    event = calls["json"]["data"][0]
    assert calls["url"].endswith("/ds-1/events")
    assert calls["params"] == {"access_token": "capi-token"}
    assert event["event_name"] == "Lead"
    assert event["event_id"] == "conv-123"
    assert event["user_data"]["em"] == hashlib.sha256(b"jane@example.com").hexdigest()
    assert event["custom_data"]["value"] == 150
    assert event["custom_data"]["currency"] == "PHP"


def test_capi_uses_configured_credentials(client, monkeypatch):
    monkeypatch.setattr(capi_routes, "META_DATASET_ID", "ds-env")
    monkeypatch.setattr(capi_routes, "META_CAPI_ACCESS_TOKEN", "env-token")
    calls = {}

    def fake_post(url, params=None, json=None, timeout=None):
        calls.update(url=url, params=params)
        return FakeResponse(body={"events_received": 1})

    monkeypatch.setattr(capi.requests, "post", fake_post)
    resp = client.post("/capi/send", json=_event(dataset_id=None, access_token=None))
    assert resp.status_code == 200
    assert calls["url"].endswith("/ds-env/events")
    assert calls["params"] == {"access_token": "env-token"}


@pytest.mark.parametrize(
    "error, status_code, code",
    [
        ({"code": 190, "message": "Session has expired"}, 401, "META_TOKEN_EXPIRED"),
        ({"code": 100, "message": "Invalid parameter"}, 400, "META_API_ERROR"),
    ],
)
def test_capi_errors(client, capi_unconfigured, monkeypatch, error, status_code, code):
    monkeypatch.setattr(capi.requests, "post", lambda *a, **kw: FakeResponse(400, body={"error": error}))
    resp = client.post("/capi/send", json=_event())
    assert resp.status_code == status_code
    assert resp.json()["detail"] == {"code": code, "message": error["message"]}


def test_client_cannot_send_conversions(make_client, capi_unconfigured):
    resp = make_client("client").post("/capi/send", json=_event())
    assert resp.status_code == 403
