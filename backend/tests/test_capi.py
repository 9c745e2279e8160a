import hashlib

import pytest
import requests

from athena.services import capi


class FakeResponse:
    def __init__(self, status_code=200, body=None, text=""):
        self.status_code = status_code
        self._body = body
        self.text = text

    def json(self):
        if self._body is None:
            raise ValueError("No JSON body")
        return self._body

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(f"{self.status_code} Error", response=self)


def _sha(value):
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def test_hash_value_normalizes_case_and_whitespace():
    assert capi.hash_value(" Test@Example.com ") == _sha("test@example.com")
    assert capi.hash_value(None) == ""


def test_normalizers():
    assert capi.normalize_phone("+1 (555) 123-4567") == "15551234567"
    assert capi.normalize_email("  Jane@Example.COM ") == "jane@example.com"
    assert capi.normalize_phone("") == ""


def test_build_user_data_hashes_pii_only():
    user_data = capi.build_user_data(
        lead_id="123456",
        email="Jane@Example.com",
        phone="+63 917 555 0000",
        first_name="Jane",
        client_ip_address="10.0.0.1",
    )
    assert user_data == {
        "lead_id": "123456",
        "em": _sha("jane@example.com"),
        "ph": _sha("639175550000"),
        "fn": _sha("jane"),
        "client_ip_address": "10.0.0.1",
    }


def test_build_event_defaults():
    event = capi.build_event("Lead", "evt-1", {"lead_id": "1"}, event_time=1700000000, custom_data={"stage": "new"})
    assert event == {
        "event_name": "Lead",
        "event_time": 1700000000,
        "event_id": "evt-1",
        "action_source": "system_generated",
        "user_data": {"lead_id": "1"},
        "custom_data": {"value": 0, "currency": "USD", "stage": "new"},
    }


def test_send_event_requires_credentials():
    assert capi.send_event("", "token", {})["status"] == "error"


def test_send_event_success(monkeypatch):
    calls = {}

    def fake_post(url, params=None, json=None, timeout=None):
        calls.update(url=url, params=params, json=json)
        return FakeResponse(body={"events_received": 1, "fbtrace_id": "trace"})

    monkeypatch.setattr(capi.requests, "post", fake_post)
    result = capi.send_event("ds-1", "tok", {"event_name": "Lead"})

    assert result == {"status": "success", "events_received": 1, "fbtrace_id": "trace"}
    assert calls["url"].endswith("/ds-1/events")
    assert calls["params"] == {"access_token": "tok"}
    assert calls["json"] == {"data": [{"event_name": "Lead"}]}


@pytest.mark.parametrize(
    "error, status",
    [
        ({"code": 190, "message": "Session expired"}, "auth_error"),
        ({"code": 100, "message": "Invalid parameter"}, "http_error"),
    ],
)
def test_send_event_http_errors(monkeypatch, error, status):
    monkeypatch.setattr(
        capi.requests,
        "post",
        lambda *a, **kw: FakeResponse(400, body={"error": error}, text="bad"),
    )
    result = capi.send_event("ds-1", "tok", {"event_name": "Lead"})
    assert result == {"status": status, "message": error["message"]}


def test_send_event_network_error(monkeypatch):
    def boom(*a, **kw):
        raise requests.exceptions.ConnectionError("unreachable")

    monkeypatch.setattr(capi.requests, "post", boom)
    result = capi.send_event("ds-1", "tok", {"event_name": "Lead"})
    assert result == {"status": "error", "message": "unreachable"}
