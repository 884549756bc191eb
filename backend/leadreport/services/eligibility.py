"""
Eligibility Resolver
====================

Resolves which (url, deployment) pairs a line item targets.

WHAT: Customer scope, deployment url criteria and the eligible pair lists
WHY: Every qualification figure starts from the eligible deployment urls
HOW: Criteria from leadreport/criteria/builder.py, executed through ReportStore

Pipeline:
    line item -> order -> root customer (+ direct children)
              -> deployment url criteria (customers, tags, link types, window)
              -> matching (url_id, deployment_entity) pairs
              -> minus the line item's excluded urls

Related files:
- leadreport/criteria/builder.py: deployment_url_criteria
- leadreport/services/clicks.py: Consumes the eligible pairs
- leadreport/services/qualification_service.py: Orchestrator
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Sequence, Tuple
from uuid import UUID

from leadreport import models
from leadreport.criteria.builder import END_DATE_GRACE_DAYS, deployment_url_criteria
from leadreport.criteria.executor import DEPLOYMENT_URL_FIELDS, compile_criteria
from leadreport.criteria.schema import AllOf, ExcludedUrl, LineItemTargeting
from leadreport.exceptions import DataIntegrityError
from leadreport.services.store import ReportStore

logger = logging.getLogger(__name__)


@dataclass
class EligibleUrls:
    """
    Parallel lists of eligible pairs: `url_ids[i]` was sent in
    `deployment_entities[i]`. The lists are not deduplicated.
    """
    url_ids: List[UUID] = field(default_factory=list)
    deployment_entities: List[str] = field(default_factory=list)

    def pairs(self) -> List[Tuple[UUID, str]]:
        return list(zip(self.url_ids, self.deployment_entities))

    def is_empty(self) -> bool:
        return not self.url_ids


def remove_excluded_urls(
    pairs: Iterable[Tuple[UUID, str]],
    excluded_urls: Sequence[ExcludedUrl],
) -> EligibleUrls:
    """
    Drop pairs listed in `excluded_urls`.

    A pair is dropped only when BOTH its url id and deployment entity match
    an entry. Ids are compared by their string form.
    """
    excluded = {(str(e.url_id), e.deployment_entity) for e in excluded_urls}
    result = EligibleUrls()
    for url_id, deployment_entity in pairs:
        if (str(url_id), deployment_entity) in excluded:
            continue
        result.url_ids.append(url_id)
        result.deployment_entities.append(deployment_entity)
    return result


class EligibilityResolver:
    """Resolves the customer scope and eligible deployment urls of a line item."""

    def __init__(self, store: ReportStore, grace_days: int = END_DATE_GRACE_DAYS):
        self.store = store
        self.grace_days = grace_days

    async def find_customer_ids_for(self, line_item: LineItemTargeting) -> List[UUID]:
        """
        Root customer of the line item's order followed by its direct children.

        Only one level of the hierarchy is expanded and deleted children are
        skipped.

        Raises:
            DataIntegrityError: the order or its customer does not exist
        """
        order = await self.store.find_order(line_item.order_id)
        if order is None:
            raise DataIntegrityError("order", line_item.order_id, line_item.id)

        customer_id = order.customer_id
        root, child_ids = await asyncio.gather(
            self.store.find_customer(customer_id),
            self.store.distinct_child_customer_ids(customer_id),
        )
        if root is None:
            raise DataIntegrityError("customer", customer_id, line_item.id)

        customer_ids = [customer_id] + [c for c in child_ids if c != customer_id]
        logger.debug(f"[ELIGIBILITY] Line item {line_item.id}: {len(customer_ids)} customer(s) in scope")
        return customer_ids

    async def build_deployment_url_criteria(self, line_item: LineItemTargeting) -> AllOf:
        customer_ids = await self.find_customer_ids_for(line_item)
        return deployment_url_criteria(line_item, customer_ids, self.grace_days)

    async def get_eligible_urls_and_deployments(self, line_item: LineItemTargeting) -> EligibleUrls:
        """
        Eligible (url, deployment) pairs, minus the line item's excluded urls.

        An empty result is valid: nothing matches the targeting.
        """
        criteria = await self.build_deployment_url_criteria(line_item)
        rows = await self.store.project(
            [models.EmailDeploymentUrl.url_id, models.EmailDeploymentUrl.deployment_entity],
            compile_criteria(criteria, DEPLOYMENT_URL_FIELDS),
        )
        eligible = remove_excluded_urls(((r[0], r[1]) for r in rows), line_item.excluded_urls)

        logger.info(
            f"[ELIGIBILITY] Line item {line_item.id}: {len(rows)} matching deployment urls, "
            f"{len(eligible.url_ids)} after exclusions"
        )
        return eligible

    async def find_all_deployment_urls_for_line_item(
        self, line_item: LineItemTargeting
    ) -> List[models.EmailDeploymentUrl]:
        """
        Full deployment url rows matching the criteria, oldest send first.

        Unlike get_eligible_urls_and_deployments, the excluded urls are NOT
        removed; the listing is unrestricted.
        """
        criteria = await self.build_deployment_url_criteria(line_item)
        return await self.store.find_deployment_urls(
            compile_criteria(criteria, DEPLOYMENT_URL_FIELDS),
            order_by=[models.EmailDeploymentUrl.sent_date.asc()],
            with_relations=True,
        )
