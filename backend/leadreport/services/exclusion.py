"""
Exclusion Engine
================

Builds the identity-level criteria that separate qualified identities from
scrubbed ones.

A qualified identity:
1. Is not deactivated globally, for the customer scope, or for the line item
2. Is not on a denylisted email domain
3. Has every required field and is not filtered by the identity filters

Customer scope and the domain denylist are independent lookups and are
resolved concurrently.

Related files:
- leadreport/criteria/builder.py: identity_exclusion_criteria, inactive_identity_criteria
- leadreport/services/eligibility.py: Customer scope
"""

from __future__ import annotations

import asyncio
import logging
from typing import List, Tuple

from leadreport.criteria.builder import identity_exclusion_criteria, inactive_identity_criteria
from leadreport.criteria.schema import IDENTITY_PROFILE_FIELDS, AllOf, AnyOf, LineItemTargeting
from leadreport.services.eligibility import EligibilityResolver
from leadreport.services.store import ReportStore

logger = logging.getLogger(__name__)

# Identity fields available to exports, in column order.
EXPORT_IDENTITY_FIELDS: Tuple[str, ...] = ("entity",) + IDENTITY_PROFILE_FIELDS


class ExclusionEngine:
    def __init__(self, store: ReportStore, resolver: EligibilityResolver):
        self.store = store
        self.resolver = resolver

    async def build_identity_exclusion_criteria(self, line_item: LineItemTargeting) -> AllOf:
        customer_ids, excluded_domains = await asyncio.gather(
            self.resolver.find_customer_ids_for(line_item),
            self.store.distinct_excluded_domains(),
        )
        logger.debug(
            f"[EXCLUSION] Line item {line_item.id}: {len(customer_ids)} customer(s), "
            f"{len(excluded_domains)} excluded domain(s)"
        )
        return identity_exclusion_criteria(line_item, customer_ids, excluded_domains)

    async def build_inactive_identity_criteria(self, line_item: LineItemTargeting) -> AnyOf:
        customer_ids = await self.resolver.find_customer_ids_for(line_item)
        return inactive_identity_criteria(line_item, customer_ids)

    def identity_field_projection(self, line_item: LineItemTargeting) -> List[str]:
        """Exportable identity fields minus the line item's excluded fields."""
        excluded = set(line_item.excluded_fields)
        return [name for name in EXPORT_IDENTITY_FIELDS if name not in excluded]
