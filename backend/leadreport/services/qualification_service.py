"""
Qualification Service
=====================

WHAT:
    Orchestrates eligibility, click aggregation and exclusion into the
    qualification figures of an email line item.

WHY:
    A line item promises a number of leads (`required_leads`). Reporting
    needs to know how many identities engaged (total), how many of those
    may be delivered (qualified) and how many were removed (scrubbed).

FLOW:
    ┌─────────────────────┐   ┌──────────────────────┐
    │ EligibilityResolver │   │ ExclusionEngine      │
    │ eligible url pairs  │   │ identity criteria    │
    └─────────┬───────────┘   └──────────┬───────────┘
              │                          │
    ┌─────────▼───────────┐              │
    │ ClickAggregator     │              │
    │ eligible identities │              │
    └─────────┬───────────┘              │
              └─────────────┬────────────┘
                  ┌─────────▼─────────┐
                  │ identities query  │
                  └───────────────────┘

    The two branches are independent and awaited together with
    asyncio.gather. If either fails, the operation fails.

STATE:
    None. Every call is a computation over the current data snapshot.

REFERENCES:
    - leadreport/services/eligibility.py
    - leadreport/services/clicks.py
    - leadreport/services/exclusion.py
    - leadreport/services/email_report.py
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import and_, select

from leadreport import models
from leadreport.criteria.builder import END_DATE_GRACE_DAYS
from leadreport.criteria.executor import IDENTITY_FIELDS, compile_criteria, evaluate_predicate, identity_record
from leadreport.criteria.schema import AllOf, AnyOf, Criteria, FieldPredicate, LineItemTargeting, Operator
from leadreport.exceptions import NotFoundError
from leadreport.services.clicks import ClickAggregator, ExportPipeline, IdentityClickMetrics
from leadreport.services.eligibility import EligibilityResolver, EligibleUrls
from leadreport.services.email_report import EmailMetricsReport, EmailMetricsSort, build_email_metrics
from leadreport.services.exclusion import ExclusionEngine
from leadreport.services.store import ReportStore

logger = logging.getLogger(__name__)


@dataclass
class QualifiedCount:
    total: int
    qualified: int
    scrubbed: int


@dataclass
class ClickEventIdentifiers:
    """Active identities together with the eligible url/deployment lists."""
    identity_ids: List[UUID] = field(default_factory=list)
    url_ids: List[UUID] = field(default_factory=list)
    deployment_entities: List[str] = field(default_factory=list)


@dataclass
class ScrubExplanation:
    identity_id: UUID
    qualified: bool
    reasons: List[str] = field(default_factory=list)


# Scrub reason per (field, operator) of the activity and domain predicates.
ACTIVITY_REASONS = {
    ("inactive", Operator.EQ): "inactive",
    ("inactive_customer_ids", Operator.NOT_INTERSECTS): "inactive_customer",
    ("inactive_line_item_ids", Operator.NOT_INTERSECTS): "inactive_line_item",
    ("email_domain", Operator.NOT_IN): "excluded_domain",
}


def scrub_reason(predicate: FieldPredicate) -> str:
    reason = ACTIVITY_REASONS.get((predicate.field, predicate.op))
    if reason:
        return reason
    if predicate.op == Operator.NOT_EMPTY:
        return f"missing:{predicate.field}"
    return f"filtered:{predicate.field}"


def iter_predicates(criteria: Criteria) -> Iterable[FieldPredicate]:
    """Leaf predicates of a criteria tree, depth first."""
    if isinstance(criteria, (AllOf, AnyOf)):
        for child in criteria.predicates:
            yield from iter_predicates(child)
    else:
        yield criteria


class QualificationService:
    """
    Public entry point of the reporting core.

    USAGE:
        service = QualificationService(ReportStore(get_session_factory()))
        line_item = await service.load_line_item(line_item_id)
        counts = await service.get_qualified_identity_count(line_item)
    """

    def __init__(self, store: ReportStore, grace_days: int = END_DATE_GRACE_DAYS):
        self.store = store
        self.resolver = EligibilityResolver(store, grace_days)
        self.clicks = ClickAggregator(store, grace_days)
        self.exclusion = ExclusionEngine(store, self.resolver)

    async def load_line_item(self, line_item_id: UUID) -> LineItemTargeting:
        """
        Raises:
            NotFoundError: no line item with that id
            InvalidLineItemError: stored targeting does not validate
        """
        row = await self.store.find_line_item(line_item_id)
        if row is None:
            raise NotFoundError("line_item", line_item_id)
        return LineItemTargeting.from_model(row)

    async def get_eligible_identity_entities(
        self, line_item: LineItemTargeting, urls: Optional[EligibleUrls] = None
    ) -> List[UUID]:
        if urls is None:
            urls = await self.resolver.get_eligible_urls_and_deployments(line_item)
        return await self.clicks.get_eligible_identity_entities(line_item, urls)

    def eligible_identity_filter(self, line_item: LineItemTargeting, urls: EligibleUrls, criteria: Criteria):
        """
        Identity clause: clicked an eligible url in the window AND matches `criteria`.

        Eligible identities are embedded as an `IN (SELECT ...)` over the
        clicks, so the bound parameters do not grow with the number of
        clickers.
        """
        return and_(
            models.Identity.id.in_(self.clicks.eligible_identity_query(line_item, urls)),
            compile_criteria(criteria, IDENTITY_FIELDS),
        )

    async def get_qualified_identity_count(
        self, line_item: LineItemTargeting, urls: Optional[EligibleUrls] = None
    ) -> QualifiedCount:
        """total = eligible identities, qualified = those passing exclusion, scrubbed = the rest."""
        urls, criteria = await self._resolve(line_item, urls, self.exclusion.build_identity_exclusion_criteria)
        total, qualified = 0, 0
        if not urls.is_empty():
            identity_ids, qualified = await asyncio.gather(
                self.clicks.get_eligible_identity_entities(line_item, urls),
                self.store.count_identities(self.eligible_identity_filter(line_item, urls, criteria)),
            )
            total = len(identity_ids)

        logger.info(
            f"[QUALIFICATION] Line item {line_item.id}: total={total} "
            f"qualified={qualified} scrubbed={total - qualified}"
        )
        return QualifiedCount(total=total, qualified=qualified, scrubbed=total - qualified)

    async def get_active_identity_entities(
        self, line_item: LineItemTargeting, urls: Optional[EligibleUrls] = None
    ) -> List[UUID]:
        """
        Qualified identity ids, capped at `required_leads`.

        A cap of 0 means no cap. The order is the store's natural order.
        """
        urls, criteria = await self._resolve(line_item, urls, self.exclusion.build_identity_exclusion_criteria)
        if urls.is_empty():
            return []
        return await self.store.find_identity_ids(
            self.eligible_identity_filter(line_item, urls, criteria),
            limit=line_item.required_leads or None,
        )

    async def get_inactive_identities(
        self, line_item: LineItemTargeting, urls: Optional[EligibleUrls] = None
    ) -> List[UUID]:
        """Eligible identities deactivated globally, for the customer scope or for this line item."""
        urls, criteria = await self._resolve(line_item, urls, self.exclusion.build_inactive_identity_criteria)
        if urls.is_empty():
            return []
        return await self.store.distinct_identity_ids(self.eligible_identity_filter(line_item, urls, criteria))

    async def get_click_event_identifiers(self, line_item: LineItemTargeting) -> ClickEventIdentifiers:
        urls = await self.resolver.get_eligible_urls_and_deployments(line_item)
        identity_ids = await self.get_active_identity_entities(line_item, urls)
        return ClickEventIdentifiers(
            identity_ids=identity_ids,
            url_ids=urls.url_ids,
            deployment_entities=urls.deployment_entities,
        )

    async def build_export_pipeline(
        self,
        line_item: LineItemTargeting,
        identifiers: Optional[ClickEventIdentifiers] = None,
    ) -> ExportPipeline:
        """
        Click statement over the active identities.

        Without `identifiers`, an uncapped line item embeds the qualified
        identities as a subquery; a capped one binds at most `required_leads`
        ids so the export matches get_active_identity_entities.
        """
        if identifiers is not None:
            return self.clicks.build_export_pipeline(
                line_item,
                identifiers.identity_ids,
                identifiers.url_ids,
                identifiers.deployment_entities,
            )
        pipeline, _ = await self._export_pipeline(line_item)
        return pipeline

    async def get_identity_click_metrics(self, line_item: LineItemTargeting) -> List[IdentityClickMetrics]:
        pipeline = await self.build_export_pipeline(line_item)
        return await self.clicks.run_export_pipeline(pipeline)

    async def build_email_metrics(
        self,
        results: List[IdentityClickMetrics],
        sort: Optional[EmailMetricsSort] = None,
        deployment_entities: Iterable[str] = (),
    ) -> EmailMetricsReport:
        return build_email_metrics(results, sort, deployment_entities)

    async def get_email_metrics(
        self, line_item: LineItemTargeting, sort: Optional[EmailMetricsSort] = None
    ) -> EmailMetricsReport:
        pipeline, urls = await self._export_pipeline(line_item)
        results = await self.clicks.run_export_pipeline(pipeline)
        return await self.build_email_metrics(results, sort, urls.deployment_entities)

    async def export_identities(self, line_item: LineItemTargeting) -> List[Dict[str, Any]]:
        """
        Active identities with their click metrics, projected to the
        exportable fields of the line item.
        """
        pipeline, _ = await self._export_pipeline(line_item)
        results = await self.clicks.run_export_pipeline(pipeline)
        if not results:
            return []

        fields = self.exclusion.identity_field_projection(line_item)
        identities = await self.store.find_identities(models.Identity.id.in_(pipeline.identities))
        by_id = {identity.id: identity for identity in identities}

        rows: List[Dict[str, Any]] = []
        for result in results:
            identity = by_id.get(result.identity_id)
            if identity is None:
                logger.warning(f"[QUALIFICATION] Identity {result.identity_id} disappeared during export")
                continue
            row: Dict[str, Any] = {"identity_id": identity.id}
            row.update({name: getattr(identity, name) for name in fields})
            row["clicks"] = result.clicks
            row["url_count"] = len(result.url_ids)
            row["deployment_entities"] = sorted(result.deployment_entities)
            rows.append(row)
        return rows

    async def explain_identity(self, line_item: LineItemTargeting, identity_id: UUID) -> ScrubExplanation:
        """
        Why an identity is (or is not) scrubbed for a line item.

        Evaluates each exclusion predicate in memory. No reasons means the
        identity passes the exclusion criteria.

        Raises:
            NotFoundError: no identity with that id
        """
        identity, criteria = await asyncio.gather(
            self.store.find_identity(identity_id),
            self.exclusion.build_identity_exclusion_criteria(line_item),
        )
        if identity is None:
            raise NotFoundError("identity", identity_id)

        record = identity_record(identity)
        reasons = []
        for predicate in iter_predicates(criteria):
            if not evaluate_predicate(predicate, record, IDENTITY_FIELDS):
                reason = scrub_reason(predicate)
                if reason not in reasons:
                    reasons.append(reason)

        if reasons:
            logger.debug(f"[QUALIFICATION] Identity {identity_id} scrubbed for {line_item.id}: {reasons}")
        return ScrubExplanation(identity_id=identity.id, qualified=not reasons, reasons=reasons)

    async def _resolve(
        self,
        line_item: LineItemTargeting,
        urls: Optional[EligibleUrls],
        build_criteria: Callable[[LineItemTargeting], Awaitable[Criteria]],
    ) -> Tuple[EligibleUrls, Criteria]:
        """Eligible urls and identity criteria, resolved concurrently."""
        if urls is not None:
            return urls, await build_criteria(line_item)
        urls, criteria = await asyncio.gather(
            self.resolver.get_eligible_urls_and_deployments(line_item),
            build_criteria(line_item),
        )
        return urls, criteria

    async def _export_pipeline(self, line_item: LineItemTargeting) -> Tuple[ExportPipeline, EligibleUrls]:
        urls, criteria = await self._resolve(line_item, None, self.exclusion.build_identity_exclusion_criteria)
        where = self.eligible_identity_filter(line_item, urls, criteria)
        if line_item.required_leads:
            identities = []
            if not urls.is_empty():
                identities = await self.store.find_identity_ids(where, limit=line_item.required_leads)
        else:
            identities = select(models.Identity.id).where(where)
        pipeline = self.clicks.build_export_pipeline(
            line_item, identities, urls.url_ids, urls.deployment_entities
        )
        return pipeline, urls
