"""
Email Metrics Report
====================

WHAT:
    Shapes per-identity click aggregates into sorted report rows and totals.

WHY:
    The qualification core stops at "clicks per identity"; this formatter
    is the default rendering used by the API and exports.

TOTALS:
    - identities: number of rows
    - clicks: sum of row clicks
    - deployments: distinct eligible deployments of the line item
    - clicked_deployments: distinct deployments with at least one click
    - unique_urls: distinct clicked urls

REFERENCES:
    - leadreport/services/clicks.py::IdentityClickMetrics (input)
    - leadreport/schemas.py::EmailMetricsResponse (API contract)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional
from uuid import UUID

from leadreport.exceptions import InvalidFilterError
from leadreport.services.clicks import IdentityClickMetrics


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


@dataclass
class EmailMetricsRow:
    identity_id: UUID
    clicks: int
    url_count: int
    deployment_count: int
    deployment_entities: List[str] = field(default_factory=list)


@dataclass
class EmailMetricsTotals:
    identities: int = 0
    clicks: int = 0
    deployments: int = 0
    clicked_deployments: int = 0
    unique_urls: int = 0


@dataclass
class EmailMetricsSort:
    field: str = "clicks"
    order: SortOrder = SortOrder.DESC


@dataclass
class EmailMetricsReport:
    rows: List[EmailMetricsRow]
    totals: EmailMetricsTotals
    sort: EmailMetricsSort


SORT_KEYS: Dict[str, Callable[[EmailMetricsRow], object]] = {
    "clicks": lambda row: row.clicks,
    "url_count": lambda row: row.url_count,
    "deployment_count": lambda row: row.deployment_count,
    "identity_id": lambda row: str(row.identity_id),
}


def build_email_metrics(
    results: Iterable[IdentityClickMetrics],
    sort: Optional[EmailMetricsSort] = None,
    deployment_entities: Iterable[str] = (),
) -> EmailMetricsReport:
    """
    Build the report for a line item.

    Rows are ordered by `sort` (clicks, descending by default). Ties keep
    ascending identity id order.

    Raises:
        InvalidFilterError: unknown sort field
    """
    sort = sort or EmailMetricsSort()
    key = SORT_KEYS.get(sort.field)
    if key is None:
        raise InvalidFilterError(
            f"Cannot sort email metrics by '{sort.field}'. Allowed: {', '.join(sorted(SORT_KEYS))}",
            field_name=sort.field,
        )

    rows: List[EmailMetricsRow] = []
    clicked_deployments = set()
    clicked_urls = set()
    for result in results:
        clicked_deployments.update(result.deployment_entities)
        clicked_urls.update(str(u) for u in result.url_ids)
        rows.append(EmailMetricsRow(
            identity_id=result.identity_id,
            clicks=result.clicks,
            url_count=len(result.url_ids),
            deployment_count=len(result.deployment_entities),
            deployment_entities=sorted(result.deployment_entities),
        ))

    rows.sort(key=lambda row: str(row.identity_id))
    rows.sort(key=key, reverse=SortOrder(sort.order) == SortOrder.DESC)

    totals = EmailMetricsTotals(
        identities=len(rows),
        clicks=sum(row.clicks for row in rows),
        deployments=len(set(deployment_entities)),
        clicked_deployments=len(clicked_deployments),
        unique_urls=len(clicked_urls),
    )
    return EmailMetricsReport(rows=rows, totals=totals, sort=sort)
