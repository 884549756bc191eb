"""
Line Item Router Tests
======================

WHAT: HTTP contract of the read-only line item endpoints.
WHY: Domain errors must map to 404 / 422 instead of empty reports.

REFERENCES:
- leadreport/routers/line_items.py
- leadreport/main.py (exception handlers)
"""

import uuid
from datetime import datetime


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_qualification(client, scenario):
    response = client.get(f"/line-items/{scenario.line_item.id}/qualification")

    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 3
    assert body["qualified"] == 2
    assert body["scrubbed"] == 1
    assert body["required_leads"] == 2


def test_active_and_inactive_identities(client, scenario):
    active = client.get(f"/line-items/{scenario.line_item.id}/active-identities").json()
    inactive = client.get(f"/line-items/{scenario.line_item.id}/inactive-identities").json()

    assert set(active["identity_ids"]) == {str(scenario.alice.id), str(scenario.bob.id)}
    assert active["count"] == 2
    assert inactive["identity_ids"] == [str(scenario.carol.id)]


def test_deployment_urls_flag_excluded_pairs(client, seed, scenario):
    row = seed.line_item(
        scenario.order, datetime(2024, 1, 1), datetime(2024, 1, 31),
        tag_ids=[scenario.news.id],
        excluded_tag_ids=[scenario.promo.id],
        excluded_urls=[{"url_id": str(scenario.url_child.id), "deployment_entity": "dep-1"}],
    )

    response = client.get(f"/line-items/{row.id}/deployment-urls")

    assert response.status_code == 200
    rows = response.json()
    assert len(rows) == 3
    excluded = [r for r in rows if r["excluded"]]
    assert [(r["url_id"], r["deployment_entity"]) for r in excluded] == [(str(scenario.url_child.id), "dep-1")]
    assert rows[-1]["deployment_name"] == "dep-2"


def test_click_identifiers(client, scenario):
    body = client.get(f"/line-items/{scenario.line_item.id}/click-identifiers").json()

    assert set(body["identity_ids"]) == {str(scenario.alice.id), str(scenario.bob.id)}
    assert len(body["url_ids"]) == len(body["deployment_entities"]) == 3


def test_email_metrics_sorting(client, seed, scenario):
    seed.click(scenario.bob, scenario.url_root, scenario.dep2, datetime(2024, 1, 11), n=3)

    desc = client.get(f"/line-items/{scenario.line_item.id}/email-metrics").json()
    asc = client.get(
        f"/line-items/{scenario.line_item.id}/email-metrics",
        params={"sort": "clicks", "order": "asc"},
    ).json()

    assert [r["identity_id"] for r in desc["rows"]] == [str(scenario.bob.id), str(scenario.alice.id)]
    assert [r["identity_id"] for r in asc["rows"]] == [str(scenario.alice.id), str(scenario.bob.id)]
    assert desc["totals"]["clicks"] == 5
    assert desc["sort"] == "clicks"
    assert desc["order"] == "desc"


def test_email_metrics_unknown_sort_is_422(client, scenario):
    response = client.get(
        f"/line-items/{scenario.line_item.id}/email-metrics",
        params={"sort": "revenue"},
    )

    assert response.status_code == 422
    assert "revenue" in response.json()["detail"]


def test_scrub_reasons(client, scenario):
    response = client.get(
        f"/line-items/{scenario.line_item.id}/identities/{scenario.carol.id}/scrub-reasons"
    )

    assert response.status_code == 200
    body = response.json()
    assert body["qualified"] is False
    assert body["reasons"] == ["inactive"]


def test_unknown_line_item_is_404(client, scenario):
    response = client.get(f"/line-items/{uuid.uuid4()}/qualification")

    assert response.status_code == 404
    assert "line_item" in response.json()["detail"]


def test_line_item_with_missing_order_is_404(client, seed, scenario):
    row = seed.line_item(scenario.order, datetime(2024, 1, 1), datetime(2024, 1, 31))
    row.order_id = uuid.uuid4()
    seed.session.commit()

    response = client.get(f"/line-items/{row.id}/qualification")

    assert response.status_code == 404
    assert "missing order" in response.json()["detail"]


def test_invalid_filter_is_422(client, seed, scenario):
    row = seed.line_item(
        scenario.order, datetime(2024, 1, 1), datetime(2024, 1, 31),
        identity_filters=[{"key": "password", "match_type": "contains", "terms": ["x"]}],
    )

    response = client.get(f"/line-items/{row.id}/qualification")

    assert response.status_code == 422


def test_export_leaves_out_excluded_fields(client, seed, scenario):
    row = seed.line_item(
        scenario.order, datetime(2024, 1, 1), datetime(2024, 1, 31),
        tag_ids=[scenario.news.id],
        excluded_tag_ids=[scenario.promo.id],
        excluded_fields=["email_address"],
    )

    response = client.get(f"/line-items/{row.id}/export")

    assert response.status_code == 200
    body = response.json()
    assert "email_address" not in body["fields"]
    assert "email_domain" in body["fields"]
    assert body["count"] == 2
    assert {r["identity_id"] for r in body["rows"]} == {str(scenario.alice.id), str(scenario.bob.id)}
    for exported in body["rows"]:
        assert "email_address" not in exported
        assert exported["clicks"] == 1
