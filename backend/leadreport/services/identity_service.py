"""
Identity Service
================

Activation toggles and domain checks for a single identity.

- set_active: global opt-out flag
- set_customer_active / set_line_item_active: add or remove an id from the
  identity's inactive sets (set semantics, removing an absent id is a no-op)
- is_domain_excluded: whether the identity's email domain is denylisted

Qualification reads these flags through the exclusion criteria; see
leadreport/services/exclusion.py.
"""

from __future__ import annotations

import logging
from uuid import UUID

from leadreport import models
from leadreport.exceptions import NotFoundError
from leadreport.services.store import ReportStore

logger = logging.getLogger(__name__)


class IdentityService:
    def __init__(self, store: ReportStore):
        self.store = store

    async def get_identity(self, identity_id: UUID) -> models.Identity:
        identity = await self.store.find_identity(identity_id)
        if identity is None:
            raise NotFoundError("identity", identity_id)
        return identity

    async def set_active(self, identity_id: UUID, active: bool) -> models.Identity:
        def apply(identity: models.Identity) -> None:
            identity.inactive = not active

        identity = await self._save(identity_id, apply)
        logger.info(f"[IDENTITY] {identity_id} active={active}")
        return identity

    async def set_customer_active(self, identity_id: UUID, customer_id: UUID, active: bool) -> models.Identity:
        def apply(identity: models.Identity) -> None:
            rows = identity.inactive_customers
            existing = [row for row in rows if str(row.customer_id) == str(customer_id)]
            if active:
                for row in existing:
                    rows.remove(row)
            elif not existing:
                rows.append(models.IdentityInactiveCustomer(customer_id=customer_id))

        identity = await self._save(identity_id, apply)
        logger.info(f"[IDENTITY] {identity_id} active={active} for customer {customer_id}")
        return identity

    async def set_line_item_active(self, identity_id: UUID, line_item_id: UUID, active: bool) -> models.Identity:
        def apply(identity: models.Identity) -> None:
            rows = identity.inactive_line_items
            existing = [row for row in rows if str(row.line_item_id) == str(line_item_id)]
            if active:
                for row in existing:
                    rows.remove(row)
            elif not existing:
                rows.append(models.IdentityInactiveLineItem(line_item_id=line_item_id))

        identity = await self._save(identity_id, apply)
        logger.info(f"[IDENTITY] {identity_id} active={active} for line item {line_item_id}")
        return identity

    async def is_domain_excluded(self, identity: models.Identity) -> bool:
        if not identity.email_domain:
            return False
        count = await self.store.count(
            models.ExcludedEmailDomain,
            models.ExcludedEmailDomain.domain == identity.email_domain,
        )
        return count > 0

    async def _save(self, identity_id: UUID, apply) -> models.Identity:
        identity = await self.store.save_identity(identity_id, apply)
        if identity is None:
            raise NotFoundError("identity", identity_id)
        return identity
