"""
Line Item Reporting Router
==========================

WHAT:
    Read-only endpoints exposing the qualification figures of an email
    line item, and the export of its active identities.

WHY:
    Account managers need to see, per line item, how many identities
    engaged, how many qualify as leads and why others were scrubbed.

ERRORS:
    Domain exceptions propagate to the handlers registered in
    leadreport/main.py (NotFoundError -> 404, InvalidFilterError /
    InvalidLineItemError -> 422).

REFERENCES:
    - leadreport/services/qualification_service.py (all figures)
    - leadreport/schemas.py (response contracts)
"""

from __future__ import annotations

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from leadreport.criteria.schema import LineItemTargeting
from leadreport.deps import get_qualification_service
from leadreport.schemas import (
    ClickIdentifiersOut,
    DeploymentUrlOut,
    EmailMetricsOut,
    EmailMetricsRowOut,
    EmailMetricsTotalsOut,
    IdentityExportOut,
    IdentityIdsOut,
    QualificationOut,
    ScrubReasonsOut,
)
from leadreport.services.email_report import EmailMetricsSort, SortOrder
from leadreport.services.qualification_service import QualificationService

router = APIRouter(
    prefix="/line-items",
    tags=["Line Items"],
    responses={
        404: {"description": "Line item, order, customer or identity not found"},
        422: {"description": "Invalid line item targeting configuration"},
    },
)


async def get_line_item(
    line_item_id: UUID,
    service: QualificationService = Depends(get_qualification_service),
) -> LineItemTargeting:
    return await service.load_line_item(line_item_id)


@router.get("/{line_item_id}/qualification", response_model=QualificationOut)
async def get_qualification(
    line_item: LineItemTargeting = Depends(get_line_item),
    service: QualificationService = Depends(get_qualification_service),
):
    """Total / qualified / scrubbed identity counts."""
    counts = await service.get_qualified_identity_count(line_item)
    return QualificationOut(
        line_item_id=line_item.id,
        total=counts.total,
        qualified=counts.qualified,
        scrubbed=counts.scrubbed,
        required_leads=line_item.required_leads,
    )


@router.get("/{line_item_id}/active-identities", response_model=IdentityIdsOut)
async def get_active_identities(
    line_item: LineItemTargeting = Depends(get_line_item),
    service: QualificationService = Depends(get_qualification_service),
):
    """Qualified identities, capped at the line item's required leads. Order is not guaranteed."""
    identity_ids = await service.get_active_identity_entities(line_item)
    return IdentityIdsOut(line_item_id=line_item.id, identity_ids=identity_ids, count=len(identity_ids))


@router.get("/{line_item_id}/inactive-identities", response_model=IdentityIdsOut)
async def get_inactive_identities(
    line_item: LineItemTargeting = Depends(get_line_item),
    service: QualificationService = Depends(get_qualification_service),
):
    identity_ids = await service.get_inactive_identities(line_item)
    return IdentityIdsOut(line_item_id=line_item.id, identity_ids=identity_ids, count=len(identity_ids))


@router.get("/{line_item_id}/deployment-urls", response_model=List[DeploymentUrlOut])
async def list_deployment_urls(
    line_item: LineItemTargeting = Depends(get_line_item),
    service: QualificationService = Depends(get_qualification_service),
):
    """
    Every deployment url matching the targeting, oldest send first.

    Excluded pairs are included and flagged, so the exclusion list can be
    reviewed against the full set.
    """
    rows = await service.resolver.find_all_deployment_urls_for_line_item(line_item)
    excluded = {(str(e.url_id), e.deployment_entity) for e in line_item.excluded_urls}
    return [
        DeploymentUrlOut(
            url_id=row.url_id,
            url=row.url.original if row.url else None,
            deployment_entity=row.deployment_entity,
            deployment_name=row.deployment.name if row.deployment else None,
            sent_date=row.sent_date,
            link_type=row.link_type,
            excluded=(str(row.url_id), row.deployment_entity) in excluded,
        )
        for row in rows
    ]


@router.get("/{line_item_id}/click-identifiers", response_model=ClickIdentifiersOut)
async def get_click_identifiers(
    line_item: LineItemTargeting = Depends(get_line_item),
    service: QualificationService = Depends(get_qualification_service),
):
    identifiers = await service.get_click_event_identifiers(line_item)
    return ClickIdentifiersOut(
        line_item_id=line_item.id,
        identity_ids=identifiers.identity_ids,
        url_ids=identifiers.url_ids,
        deployment_entities=identifiers.deployment_entities,
    )


@router.get("/{line_item_id}/email-metrics", response_model=EmailMetricsOut)
async def get_email_metrics(
    line_item: LineItemTargeting = Depends(get_line_item),
    service: QualificationService = Depends(get_qualification_service),
    sort: str = Query(default="clicks", description="clicks, url_count, deployment_count or identity_id"),
    order: SortOrder = Query(default=SortOrder.DESC),
):
    """Clicks per active identity, sorted, with report totals."""
    report = await service.get_email_metrics(line_item, EmailMetricsSort(field=sort, order=order))
    return EmailMetricsOut(
        line_item_id=line_item.id,
        sort=report.sort.field,
        order=report.sort.order,
        rows=[
            EmailMetricsRowOut(
                identity_id=row.identity_id,
                clicks=row.clicks,
                url_count=row.url_count,
                deployment_count=row.deployment_count,
                deployment_entities=row.deployment_entities,
            )
            for row in report.rows
        ],
        totals=EmailMetricsTotalsOut(
            identities=report.totals.identities,
            clicks=report.totals.clicks,
            deployments=report.totals.deployments,
            clicked_deployments=report.totals.clicked_deployments,
            unique_urls=report.totals.unique_urls,
        ),
    )


@router.get("/{line_item_id}/identities/{identity_id}/scrub-reasons", response_model=ScrubReasonsOut)
async def get_scrub_reasons(
    identity_id: UUID,
    line_item: LineItemTargeting = Depends(get_line_item),
    service: QualificationService = Depends(get_qualification_service),
):
    """Reasons the identity is scrubbed for this line item (empty when it qualifies)."""
    explanation = await service.explain_identity(line_item, identity_id)
    return ScrubReasonsOut(
        line_item_id=line_item.id,
        identity_id=explanation.identity_id,
        qualified=explanation.qualified,
        reasons=explanation.reasons,
    )


@router.get("/{line_item_id}/export", response_model=IdentityExportOut)
async def export_identities(
    line_item: LineItemTargeting = Depends(get_line_item),
    service: QualificationService = Depends(get_qualification_service),
):
    """
    Active identities with their click metrics.

    Identity fields listed in the line item's excluded fields are left out.
    """
    rows = await service.export_identities(line_item)
    return IdentityExportOut(
        line_item_id=line_item.id,
        fields=service.exclusion.identity_field_projection(line_item),
        rows=rows,
        count=len(rows),
    )
