from datetime import date

import pytest

from athena.services import nl_query


@pytest.mark.parametrize(
    "query, intent",
    [
        ("How are my campaigns performing?", "performance_summary"),
        ("Compare campaign A vs campaign B", "comparison"),
        ("Show the CTR trend", "trend_analysis"),
        ("Any unusual spikes in spend?", "anomaly_detection"),
        ("What should I do next?", "recommendation_request"),
        ("Explain the cost increase", "explanation"),
        ("top 5 campaigns by ROAS last month", "top_n"),
        ("worst ads by CPA", "bottom_n"),
        ("hello there", "unknown"),
    ],
)
def test_detect_intent(query, intent):
    assert nl_query.detect_intent(query) == intent


def test_extract_entities_with_quoted_names():
    entities = nl_query.extract_entities('How is campaign "Summer Sale" doing?')
    assert entities == {"entity_type": "campaign", "campaigns": ["Summer Sale"]}

    assert nl_query.extract_entities("list my ad sets")["entity_type"] == "adset"
    assert nl_query.extract_entities("show my ads")["entity_type"] == "ad"
    assert nl_query.extract_entities("account overview")["entity_type"] == "account"


def test_extract_time_range():
    assert nl_query.extract_time_range("spend last month") == {"type": "relative", "relative_period": "last_month"}
    assert nl_query.extract_time_range("spend from 2026-01-01 to 2026-01-31") == {
        "type": "absolute",
        "start": "2026-01-01",
        "end": "2026-01-31",
    }
    assert nl_query.extract_time_range("spend on 2026-02-14")["end"] == "2026-02-14"
    assert nl_query.extract_time_range("spend") == {"type": "relative", "relative_period": "last_7_days"}


def test_extract_metrics():
    assert nl_query.extract_metrics("top 5 campaigns by ROAS") == ["roas"]
    assert nl_query.extract_metrics("How are my campaigns performing?") == nl_query.DEFAULT_SUMMARY_METRICS
    assert nl_query.extract_metrics("hello") == []


def test_extract_filters():
    filters = nl_query.extract_filters("active campaigns with CPA below 20")
    assert filters == [
        {"field": "cpa", "operator": "lt", "value": 20.0},
        {"field": "status", "operator": "eq", "value": "ACTIVE"},
    ]
    assert nl_query.extract_filters("campaigns with spend greater than $100") == [
        {"field": "spend", "operator": "gt", "value": 100.0},
    ]
    assert nl_query.extract_filters("paused ads") == [{"field": "status", "operator": "eq", "value": "PAUSED"}]


def test_parse_query_confidence_is_capped():
    parsed = nl_query.parse_query("top 5 campaigns by ROAS last month")
    assert parsed["original"] == "top 5 campaigns by ROAS last month"
    assert parsed["intent"] == "top_n"
    assert parsed["metrics"] == ["roas"]
    assert parsed["confidence"] == 0.95


def test_parse_unknown_query_keeps_base_confidence():
    parsed = nl_query.parse_query("hello there")
    # Default time range still counts
    assert parsed["confidence"] == pytest.approx(0.6)


def test_summary_without_results():
    parsed = nl_query.parse_query("top 5 campaigns by ROAS last month")
    assert nl_query.generate_summary(parsed, []) == (
        "No data found for your query about campaign in the last_month."
    )


def test_summary_for_top_n():
    parsed = nl_query.parse_query("top 5 campaigns by ROAS last month")
    summary = nl_query.generate_summary(parsed, [{"id": 1}, {"id": 2}, {"id": 3}])
    assert summary == "Here are the top 3 campaign by roas:"


def test_summary_for_performance():
    parsed = nl_query.parse_query("How is my account performing?")
    summary = nl_query.generate_summary(
        parsed,
        [{"id": "act"}],
        {"spend": 1234.5, "impressions": 10000, "clicks": 250},
    )
    assert summary == "In the last_7_days, your account spent $1,234.5, 10,000 impressions, 250 clicks."


def test_suggest_followups():
    assert len(nl_query.suggest_followups(nl_query.parse_query("top 5 campaigns by ROAS"))) == 2
    followups = nl_query.suggest_followups(nl_query.parse_query("How are my campaigns performing?"))
    assert followups[0] == "What are the top performing campaign?"


@pytest.mark.parametrize(
    "period, start, end",
    [
        ("today", "2026-05-15", "2026-05-15"),
        ("yesterday", "2026-05-14", "2026-05-14"),
        ("last_7_days", "2026-05-09", "2026-05-15"),
        ("last_30_days", "2026-04-16", "2026-05-15"),
        ("this_month", "2026-05-01", "2026-05-15"),
        ("last_month", "2026-04-01", "2026-04-30"),
        ("this_quarter", "2026-04-01", "2026-05-15"),
        ("last_quarter", "2026-01-01", "2026-03-31"),
    ],
)
def test_resolve_time_range(period, start, end):
    resolved = nl_query.resolve_time_range(
        {"type": "relative", "relative_period": period},
        today=date(2026, 5, 15),
    )
    assert resolved == {"start": start, "end": end}


def test_query_to_filters():
    parsed = nl_query.parse_query('top 5 campaigns by ROAS in "Summer Sale"')
    filters = nl_query.query_to_filters(parsed)

    assert filters["order_by"] == {"field": "roas", "direction": "desc"}
    assert filters["limit"] == 5
    assert filters["where"] == {"campaign_name": {"in": ["Summer Sale"]}}

    filters = nl_query.query_to_filters(nl_query.parse_query("paused campaigns with spend over 100"))
    assert filters == {
        "where": {"spend": {"gt": 100.0}, "status": {"eq": "PAUSED"}},
        "order_by": None,
        "limit": None,
    }


def test_query_to_filters_keeps_both_bounds():
    parsed = nl_query.parse_query("campaigns with spend over 100 and under 500")
    assert nl_query.query_to_filters(parsed)["where"] == {"spend": {"gt": 100.0, "lt": 500.0}}
