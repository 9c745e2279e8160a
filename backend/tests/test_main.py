import logging

from athena.core.logging_config import URLLoggingFilter, mask_access_token, setup_http_logging_filter


def test_root(anon_client):
    assert anon_client.get("/").json() == {"message": "Athena Backend API is running", "version": "0.1.0"}


def test_health_check(anon_client):
    assert anon_client.get("/health").json() == {
        "status": "healthy",
        "service": "athena-backend",
        "version": "0.1.0",
    }


def test_protected_route_needs_bearer_token(anon_client):
    resp = anon_client.get("/ai/preferences")
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Missing Bearer token"

    resp = anon_client.get("/ai/preferences", headers={"Authorization": "Token abc"})
    assert resp.status_code == 401


def test_mask_access_token():
    assert mask_access_token("GET /me?access_token=EAAB123&fields=id") == "GET /me?access_token=***&fields=id"


def _record(msg, args=()):
    return logging.LogRecord("httpx", logging.INFO, __file__, 1, msg, args, None)


def test_url_filter_masks_and_truncates():
    base = "https://graph.facebook.com/v20.0/act_1/insights"
    url = f"{base}?access_token=secret&fields={'x' * 400}"

    record = _record("HTTP Request: GET %s", (url,))
    assert URLLoggingFilter(max_url_length=100).filter(record) is True

    cleaned = record.args[0]
    assert "secret" not in cleaned
    assert cleaned.startswith(f"{base}?access_token=***")
    assert cleaned.endswith("...[truncated]")


def test_url_filter_leaves_short_messages():
    record = _record("connection closed")
    URLLoggingFilter().filter(record)
    assert record.msg == "connection closed"


def test_setup_installs_single_filter():
    setup_http_logging_filter()
    setup_http_logging_filter()
    filters = [f for f in logging.getLogger("httpx").filters if isinstance(f, URLLoggingFilter)]
    assert len(filters) == 1
