"""
Email Metrics Report Tests (Unit)
=================================

WHAT: Row shaping, sorting and totals of the per-identity click report.

REFERENCES:
- backend/leadreport/services/email_report.py
- backend/leadreport/services/clicks.py::fold_click_rows
"""

import uuid

import pytest

from leadreport.exceptions import InvalidFilterError
from leadreport.services.clicks import IdentityClickMetrics, fold_click_rows
from leadreport.services.email_report import EmailMetricsSort, SortOrder, build_email_metrics


def metrics(clicks, urls=1, deployments=("dep1",)):
    return IdentityClickMetrics(
        identity_id=uuid.uuid4(),
        url_ids={uuid.uuid4() for _ in range(urls)},
        deployment_entities=set(deployments),
        clicks=clicks,
    )


def test_default_sort_is_clicks_descending() -> None:
    low, high = metrics(1), metrics(5)

    report = build_email_metrics([low, high])

    assert [row.identity_id for row in report.rows] == [high.identity_id, low.identity_id]
    assert report.sort.field == "clicks"


def test_ascending_sort_by_url_count() -> None:
    one, three = metrics(9, urls=1), metrics(1, urls=3)

    report = build_email_metrics([three, one], EmailMetricsSort(field="url_count", order=SortOrder.ASC))

    assert [row.url_count for row in report.rows] == [1, 3]


def test_ties_keep_ascending_identity_order() -> None:
    rows = [metrics(2) for _ in range(4)]

    report = build_email_metrics(rows)

    ids = [str(row.identity_id) for row in report.rows]
    assert ids == sorted(ids)


def test_totals() -> None:
    shared_url = uuid.uuid4()
    a = IdentityClickMetrics(uuid.uuid4(), {shared_url}, {"dep1"}, 3)
    b = IdentityClickMetrics(uuid.uuid4(), {shared_url, uuid.uuid4()}, {"dep1", "dep2"}, 4)

    report = build_email_metrics([a, b], deployment_entities=["dep1", "dep2", "dep3", "dep1"])

    assert report.totals.identities == 2
    assert report.totals.clicks == 7
    assert report.totals.deployments == 3
    assert report.totals.clicked_deployments == 2
    assert report.totals.unique_urls == 2


def test_empty_results() -> None:
    report = build_email_metrics([])

    assert report.rows == []
    assert report.totals.clicks == 0


def test_unknown_sort_field_raises() -> None:
    with pytest.raises(InvalidFilterError):
        build_email_metrics([], EmailMetricsSort(field="revenue"))


def test_fold_click_rows_unions_ids_and_sums_clicks() -> None:
    identity, url1, url2 = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()
    other = uuid.uuid4()

    results = fold_click_rows([
        (identity, url1, "dep1", 2),
        (other, url1, "dep1", 1),
        (identity, url2, "dep1", 3),
        (identity, url1, "dep2", None),
    ])

    assert [r.identity_id for r in results] == [identity, other]
    assert results[0].url_ids == {url1, url2}
    assert results[0].deployment_entities == {"dep1", "dep2"}
    assert results[0].clicks == 5
