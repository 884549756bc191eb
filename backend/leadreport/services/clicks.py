"""
Click Aggregator
================

Turns eligible (url, deployment) pairs into identities and click metrics.

WHAT:
- get_eligible_identity_entities: who clicked an eligible url in the window
- eligible_identity_query: the same set as a subquery, so identity ids are
  never bound one parameter each
- build_export_pipeline / run_export_pipeline: clicks per identity

WHY group in SQL and fold in Python?
- Portable: `array_agg` has no SQLite equivalent, so SQL groups per
  (identity, url, deployment) and the fold unions the id sets per identity
- Fold rule: union for url and deployment id sets, sum for clicks

Click count per event:
    n + len(guids)

Related files:
- leadreport/services/eligibility.py: Produces EligibleUrls
- leadreport/services/email_report.py: Renders IdentityClickMetrics
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Sequence, Set, Union
from uuid import UUID

from sqlalchemy import Select, func, select

from leadreport import models
from leadreport.criteria.builder import END_DATE_GRACE_DAYS, get_end_date, get_start_date
from leadreport.criteria.schema import LineItemTargeting
from leadreport.services.eligibility import EligibleUrls
from leadreport.services.store import ReportStore, distinct_values

logger = logging.getLogger(__name__)


@dataclass
class IdentityClickMetrics:
    """Click totals of one identity across the eligible urls/deployments."""
    identity_id: UUID
    url_ids: Set[UUID] = field(default_factory=set)
    deployment_entities: Set[str] = field(default_factory=set)
    clicks: int = 0


@dataclass
class ExportPipeline:
    """
    Grouped click query for a line item, ready to run.

    `statement` yields one row per (identity, url, deployment) with the summed
    clicks; `run_export_pipeline` folds the rows per identity.

    `identities` is either a list of identity ids or a select of identity ids
    that the statement embeds as a subquery.
    """
    statement: Any
    identities: Union[List[UUID], Select]
    url_ids: List[UUID]
    deployment_entities: List[str]
    start: datetime
    end: datetime

    def is_empty(self) -> bool:
        if not self.url_ids:
            return True
        return isinstance(self.identities, list) and not self.identities


def fold_click_rows(rows: Iterable[Sequence[Any]]) -> List[IdentityClickMetrics]:
    """
    Fold (identity_id, url_id, deployment_entity, clicks) rows per identity.

    Identities keep the order they first appear in.
    """
    merged: Dict[UUID, IdentityClickMetrics] = {}
    for identity_id, url_id, deployment_entity, clicks in rows:
        metrics = merged.get(identity_id)
        if metrics is None:
            metrics = merged[identity_id] = IdentityClickMetrics(identity_id=identity_id)
        metrics.url_ids.add(url_id)
        metrics.deployment_entities.add(deployment_entity)
        metrics.clicks += int(clicks or 0)
    return list(merged.values())


class ClickAggregator:
    """Reads click events within a line item's date window."""

    def __init__(self, store: ReportStore, grace_days: int = END_DATE_GRACE_DAYS):
        self.store = store
        self.grace_days = grace_days

    async def get_eligible_identity_entities(
        self, line_item: LineItemTargeting, urls: EligibleUrls
    ) -> List[UUID]:
        """
        Distinct identities with a click on an eligible url/deployment.

        Membership only; click counts are ignored at this stage.
        """
        if urls.is_empty():
            logger.info(f"[CLICKS] Line item {line_item.id}: no eligible urls, no identities")
            return []

        identity_ids = await self.store.distinct_click_identity_ids(
            urls.url_ids,
            urls.deployment_entities,
            get_start_date(line_item),
            get_end_date(line_item, self.grace_days),
        )
        logger.info(f"[CLICKS] Line item {line_item.id}: {len(identity_ids)} eligible identities")
        return identity_ids

    def eligible_identity_query(self, line_item: LineItemTargeting, urls: EligibleUrls) -> Select:
        """Select of the eligible identity ids, for use as an `IN` subquery."""
        return self.store.click_identity_query(
            urls.url_ids,
            urls.deployment_entities,
            get_start_date(line_item),
            get_end_date(line_item, self.grace_days),
        )

    def build_export_pipeline(
        self,
        line_item: LineItemTargeting,
        identities: Union[Sequence[UUID], Select],
        url_ids: Sequence[UUID],
        deployment_entities: Sequence[str],
    ) -> ExportPipeline:
        """
        Grouped click statement for the given identities.

        `identities` may be a select of identity ids; it is then embedded as a
        subquery instead of being bound id by id.
        """
        click = models.EmailClick
        start = get_start_date(line_item)
        end = get_end_date(line_item, self.grace_days)
        event_clicks = click.n + func.coalesce(func.json_array_length(click.guids), 0)
        if not isinstance(identities, Select):
            identities = distinct_values(identities)
        url_ids = distinct_values(url_ids)
        deployment_entities = distinct_values(deployment_entities)

        statement = (
            select(
                click.identity_id,
                click.url_id,
                click.deployment_entity,
                func.sum(event_clicks).label("clicks"),
            )
            .where(
                click.identity_id.in_(identities),
                click.url_id.in_(url_ids),
                click.deployment_entity.in_(deployment_entities),
                click.date >= start,
                click.date <= end,
            )
            .group_by(click.identity_id, click.url_id, click.deployment_entity)
        )
        return ExportPipeline(
            statement=statement,
            identities=identities,
            url_ids=url_ids,
            deployment_entities=deployment_entities,
            start=start,
            end=end,
        )

    async def run_export_pipeline(self, pipeline: ExportPipeline) -> List[IdentityClickMetrics]:
        if pipeline.is_empty():
            return []
        rows = await self.store.aggregate(pipeline.statement)
        results = fold_click_rows(rows)
        logger.info(f"[CLICKS] Export pipeline: {len(rows)} grouped rows, {len(results)} identities")
        return results
